"""
Device bundle workflows for the HPOS Seed SDK

This module glues derivation, locking, unlocking and key reconstruction into
the two paths a device needs:

* generation: master seed -> derived device seed -> locked bundle
* unlock: base64 bundle text -> seed -> Ed25519 signing key -> identifiers
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Tuple, Union

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from .config import SeedConfigManager
from .crypto.bundle import (
    Passphrase,
    SeedBundle,
    extract_seed,
    lock as lock_bundle_async,
    unlock as unlock_bundle_async,
    encode_locked_bundle,
    decode_locked_bundle,
)
from .crypto.derivation import derive, new_random_master, master_seed_from_bytes
from .crypto.ed25519 import to_signing_key, to_public_key, verify_key_integrity
from .crypto.memory import SecretBuffer
from .exceptions import EmptyInput
from .identity.hcid import to_identifier_pair

logger = logging.getLogger(__name__)


@dataclass
class DeviceIdentity:
    """
    Public identity of an unlocked device.

    Attributes:
        public_key: Raw Ed25519 public key (32 bytes)
        hcid: Checksummed human identifier
        hostname: DNS label of the device
        url: Host URL of the device
        derivation_path: Index the device seed was derived with, if recorded
    """
    public_key: bytes
    hcid: str
    hostname: str
    url: str
    derivation_path: Optional[int] = None

    @property
    def public_key_hex(self) -> str:
        return self.public_key.hex()


def encode_device_bundle(locked_bundle: bytes) -> str:
    """Encode locked bundle bytes as URL-safe unpadded base64 text"""
    return encode_locked_bundle(locked_bundle)


def decode_device_bundle(device_bundle: str) -> bytes:
    """Decode URL-safe unpadded base64 text into locked bundle bytes"""
    if not device_bundle:
        raise EmptyInput("Device bundle is empty", "EMPTY_DEVICE_BUNDLE")
    return decode_locked_bundle(device_bundle)


def _reconstruct_signing_key(seed: SecretBuffer) -> Tuple[Ed25519PrivateKey, bytes]:
    """Rebuild the device key pair and prove it with a sign/verify round trip"""
    signing_key = to_signing_key(seed)
    public_key = to_public_key(signing_key)
    verify_key_integrity(signing_key, public_key)
    return signing_key, public_key


class DeviceBundleManager:
    """
    Runs the device workflows under one configuration.

    The manager owns the semaphore limiting how many password hashes run at
    once; Argon2id is memory hungry, so the limit comes from
    ``PerformanceConfig.max_concurrent_pwhash``.
    """

    def __init__(self, config: Optional[SeedConfigManager] = None):
        self.config = config or SeedConfigManager()
        self._limiter: Optional[asyncio.Semaphore] = None
        self._limiter_loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def limiter(self) -> asyncio.Semaphore:
        """Password-hash semaphore for the running event loop"""
        loop = asyncio.get_running_loop()
        if self._limiter is None or self._limiter_loop is not loop:
            self._limiter = asyncio.Semaphore(self.config.get_performance_config().max_concurrent_pwhash)
            self._limiter_loop = loop
        return self._limiter

    async def generate_device_bundle(self,
                                     passphrase: Passphrase,
                                     derivation_path: Optional[int] = None,
                                     *,
                                     master_seed: Optional[Union[SecretBuffer, bytes]] = None
                                     ) -> Tuple[bytes, SecretBuffer]:
        """
        Generate a device seed and lock it under a passphrase.

        Args:
            passphrase: Passphrase protecting the bundle
            derivation_path: Derivation index (profile default if None)
            master_seed: Master seed to derive from (random if None)

        Returns:
            tuple: (locked bundle bytes, device seed). The caller owns the
            seed buffer and should wipe it when done.
        """
        if master_seed is None:
            master = await new_random_master()
        else:
            master = master_seed_from_bytes(master_seed)

        with master:
            device_bundle = await derive(master, derivation_path, config=self.config)

        with device_bundle:
            seed = extract_seed(device_bundle)
            try:
                locked = await lock_bundle_async(
                    device_bundle,
                    passphrase,
                    limits=self.config.pwhash_limits(),
                    limiter=self.limiter,
                )
            except BaseException:
                seed.wipe()
                raise

        logger.info(f"Generated device bundle for derivation path {device_bundle.derivation_path}")
        return locked, seed

    async def _unlock_bundle(self, locked_bundle: bytes, passphrase: Passphrase) -> SeedBundle:
        logger.debug("Matching device bundle cipher")
        return await unlock_bundle_async(locked_bundle, passphrase, limiter=self.limiter)

    async def get_seed_from_locked_device_bundle(self,
                                                 locked_bundle: bytes,
                                                 passphrase: Passphrase) -> SecretBuffer:
        """Unlock locked bundle bytes and return the 32-byte device seed"""
        with await self._unlock_bundle(locked_bundle, passphrase) as bundle:
            return extract_seed(bundle)

    async def unlock(self, device_bundle: str, passphrase: Passphrase) -> Ed25519PrivateKey:
        """
        Unlock base64 device bundle text into the device signing key.

        Raises:
            EmptyInput: If device_bundle is empty
            BundleFormatError: If the text or envelope is malformed
            UnsupportedCipher: If the bundle is not locked with a passphrase
            AuthenticationFailed: If the passphrase is wrong
            SeedLengthMismatch: If the unlocked seed is not 32 bytes
            KeyReconstructionError: If the rebuilt key fails the sign/verify check
        """
        logger.debug("Base64 decoding device bundle")
        locked = decode_device_bundle(device_bundle)

        with await self.get_seed_from_locked_device_bundle(locked, passphrase) as seed:
            signing_key, _ = _reconstruct_signing_key(seed)
            return signing_key

    async def unlock_identity(self, device_bundle: str, passphrase: Passphrase) -> DeviceIdentity:
        """Unlock base64 device bundle text and compute the device's public identifiers"""
        locked = decode_device_bundle(device_bundle)

        with await self._unlock_bundle(locked, passphrase) as bundle:
            derivation_path = bundle.derivation_path
            with extract_seed(bundle) as seed:
                _, public_key = _reconstruct_signing_key(seed)

        pair = to_identifier_pair(public_key, self.config.get_identity_config().host_suffix)

        return DeviceIdentity(
            public_key=public_key,
            hcid=pair.hcid,
            hostname=pair.hostname,
            url=pair.url,
            derivation_path=derivation_path,
        )


_default_manager: Optional[DeviceBundleManager] = None


def get_default_manager() -> DeviceBundleManager:
    """Manager over the default configuration, created on first use"""
    global _default_manager
    if _default_manager is None:
        _default_manager = DeviceBundleManager(SeedConfigManager.load_default())
    return _default_manager


def _manager(config: Optional[SeedConfigManager]) -> DeviceBundleManager:
    return DeviceBundleManager(config) if config is not None else get_default_manager()


async def generate_device_bundle(passphrase: Passphrase,
                                 derivation_path: Optional[int] = None,
                                 *,
                                 master_seed: Optional[Union[SecretBuffer, bytes]] = None,
                                 config: Optional[SeedConfigManager] = None) -> Tuple[bytes, SecretBuffer]:
    """Generate a new device bundle and lock it with the given passphrase"""
    return await _manager(config).generate_device_bundle(passphrase, derivation_path, master_seed=master_seed)


async def get_seed_from_locked_device_bundle(locked_bundle: bytes,
                                             passphrase: Passphrase,
                                             *,
                                             config: Optional[SeedConfigManager] = None) -> SecretBuffer:
    return await _manager(config).get_seed_from_locked_device_bundle(locked_bundle, passphrase)


async def unlock(device_bundle: str,
                 passphrase: Passphrase,
                 *,
                 config: Optional[SeedConfigManager] = None) -> Ed25519PrivateKey:
    """Unlock the given base64 device bundle with the given passphrase"""
    return await _manager(config).unlock(device_bundle, passphrase)


async def unlock_identity(device_bundle: str,
                          passphrase: Passphrase,
                          *,
                          config: Optional[SeedConfigManager] = None) -> DeviceIdentity:
    return await _manager(config).unlock_identity(device_bundle, passphrase)
