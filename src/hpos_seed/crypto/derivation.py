"""
Seed sources and deterministic seed derivation for the HPOS Seed SDK

A device seed is derived from a 32-byte master seed and an unsigned 32-bit
derivation index with libsodium's BLAKE2b based KDF construction
(``crypto_kdf_derive_from_key``, context ``SeedBndl``). The same master seed
and index always give the same device seed, and distinct indices give
independent seeds.
"""

import asyncio
import logging
import struct
from functools import partial
from typing import Optional, Union

import nacl.hash
import nacl.utils
import nacl.encoding

from ..config import SeedConfigManager, MAX_DERIVATION_PATH
from ..exceptions import DerivationError
from .bundle import SeedBundle
from .memory import SecretBuffer

logger = logging.getLogger(__name__)

# Constants for seed derivation
MASTER_SEED_LENGTH = 32
DERIVED_SEED_LENGTH = 32
KDF_CONTEXT = b"SeedBndl"
BLAKE2B_SALT_LENGTH = 16
BLAKE2B_PERSONAL_LENGTH = 16


def generate_master_seed() -> SecretBuffer:
    """
    Generate a random master seed.

    Returns:
        SecretBuffer: 32 bytes from the libsodium CSPRNG

    Raises:
        DerivationError: If the random source fails
    """
    try:
        return SecretBuffer.from_bytes(nacl.utils.random(MASTER_SEED_LENGTH))
    except Exception as e:
        raise DerivationError(
            f"Master seed generation failed: {type(e).__name__}",
            "RANDOM_SOURCE_FAILED"
        ) from e


def master_seed_from_bytes(data: Union[SecretBuffer, bytes, bytearray]) -> SecretBuffer:
    """
    Accept an externally supplied master seed (tests and deterministic setups).

    Raises:
        DerivationError: If the material is empty or not 32 bytes
    """
    if not isinstance(data, (SecretBuffer, bytes, bytearray)):
        raise DerivationError("Master seed must be bytes", "INVALID_MASTER_SEED_TYPE")

    if len(data) == 0:
        raise DerivationError("Master seed must not be empty", "EMPTY_MASTER_SEED")

    if len(data) != MASTER_SEED_LENGTH:
        raise DerivationError(
            f"Master seed must be exactly {MASTER_SEED_LENGTH} bytes, got {len(data)}",
            "INVALID_MASTER_SEED_LENGTH",
            {'actual': len(data), 'expected': MASTER_SEED_LENGTH}
        )

    if isinstance(data, SecretBuffer):
        return data.copy()
    return SecretBuffer.from_bytes(data)


def _validate_derivation_path(path_index: int) -> None:
    if not isinstance(path_index, int) or isinstance(path_index, bool):
        raise DerivationError("Derivation path must be an integer", "INVALID_DERIVATION_PATH_TYPE")

    if not 0 <= path_index <= MAX_DERIVATION_PATH:
        raise DerivationError(
            f"Derivation path {path_index} is outside the unsigned 32-bit range",
            "INVALID_DERIVATION_PATH"
        )


def resolve_derivation_path(path_index: Optional[int] = None,
                            config: Optional[SeedConfigManager] = None) -> int:
    """Return ``path_index`` or, if None, the profile's default derivation index"""
    if path_index is not None:
        _validate_derivation_path(path_index)
        return path_index

    manager = config or SeedConfigManager()
    return manager.default_derivation_path()


def _kdf_derive(master: bytes, subkey_id: int) -> bytes:
    salt = struct.pack('<Q', subkey_id).ljust(BLAKE2B_SALT_LENGTH, b'\x00')
    person = KDF_CONTEXT.ljust(BLAKE2B_PERSONAL_LENGTH, b'\x00')
    return nacl.hash.blake2b(
        b'',
        digest_size=DERIVED_SEED_LENGTH,
        key=master,
        salt=salt,
        person=person,
        encoder=nacl.encoding.RawEncoder,
    )


def derive_seed(master_seed: Union[SecretBuffer, bytes, bytearray],
                path_index: Optional[int] = None,
                *,
                config: Optional[SeedConfigManager] = None) -> SeedBundle:
    """
    Derive the device seed bundle for a derivation index.

    Args:
        master_seed: 32-byte master seed
        path_index: Derivation index (profile default if None)
        config: Configuration supplying the default index

    Returns:
        SeedBundle: Bundle holding the derived seed and its derivation path

    Raises:
        DerivationError: If the master seed or index is malformed, or derivation fails
    """
    path = resolve_derivation_path(path_index, config)

    with master_seed_from_bytes(master_seed) as master:
        try:
            derived = _kdf_derive(master.read(), path)
        except Exception as e:
            raise DerivationError(
                f"Seed derivation failed for path {path}: {type(e).__name__}",
                "KDF_DERIVATION_FAILED"
            ) from e

    if len(derived) != DERIVED_SEED_LENGTH:
        raise DerivationError(
            f"Derived seed has length {len(derived)}, expected {DERIVED_SEED_LENGTH}",
            "KDF_OUTPUT_LENGTH"
        )

    logger.debug(f"Derived seed for derivation path {path}")
    return SeedBundle(seed=SecretBuffer.from_bytes(derived), derivation_path=path)


async def derive(master_seed: Union[SecretBuffer, bytes, bytearray],
                 path_index: Optional[int] = None,
                 *,
                 config: Optional[SeedConfigManager] = None) -> SeedBundle:
    """Async variant of :func:`derive_seed`, run in the default executor"""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, partial(derive_seed, master_seed, path_index, config=config))


async def new_random_master() -> SecretBuffer:
    """Async variant of :func:`generate_master_seed`"""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, generate_master_seed)
