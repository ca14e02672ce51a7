"""
Seed bundle locking and unlocking for the HPOS Seed SDK

A locked bundle is a msgpack ``hcsb0`` envelope:

    ["hcsb0", [cipher, ...], app_data]

The only cipher this SDK creates or opens is the password-hash cipher:

    ["pw", salt(16), mem_limit, ops_limit, header(24), cipher(49)]

The passphrase is hashed with BLAKE2b-512, stretched with Argon2id into a
32-byte key, and the seed is sealed as a single final message of a
XChaCha20-Poly1305 secretstream. Every other cipher tag decodes to an
UnsupportedCipherSpec and is refused on unlock without parsing its payload.
"""

import asyncio
import base64
import binascii
import logging
from enum import Enum
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Callable, List, Optional, Tuple, Union

import msgpack
import nacl.exceptions
import nacl.encoding
import nacl.hash
import nacl.pwhash
import nacl.utils
from nacl.bindings import (
    crypto_secretstream_xchacha20poly1305_state,
    crypto_secretstream_xchacha20poly1305_init_push,
    crypto_secretstream_xchacha20poly1305_push,
    crypto_secretstream_xchacha20poly1305_init_pull,
    crypto_secretstream_xchacha20poly1305_pull,
    crypto_secretstream_xchacha20poly1305_ABYTES,
    crypto_secretstream_xchacha20poly1305_HEADERBYTES,
    crypto_secretstream_xchacha20poly1305_KEYBYTES,
    crypto_secretstream_xchacha20poly1305_TAG_FINAL,
)

from ..config import PwHashLimits, MAX_DERIVATION_PATH
from ..exceptions import (
    HposSeedError,
    LockError,
    UnsupportedCipher,
    AuthenticationFailed,
    SeedLengthMismatch,
    BundleFormatError,
    EmptyInput,
)
from .memory import SecretBuffer, passphrase_buffer

logger = logging.getLogger(__name__)

# Envelope constants
BUNDLE_MAGIC = "hcsb0"
SEED_LENGTH = 32
SALT_LENGTH = nacl.pwhash.argon2id.SALTBYTES
HEADER_LENGTH = crypto_secretstream_xchacha20poly1305_HEADERBYTES
CIPHER_LENGTH = SEED_LENGTH + crypto_secretstream_xchacha20poly1305_ABYTES
SECRET_KEY_LENGTH = crypto_secretstream_xchacha20poly1305_KEYBYTES
PASSPHRASE_HASH_LENGTH = 64
PW_HASH_FIELD_COUNT = 6
APP_DATA_DERIVATION_PATH = "derivation_path"

Passphrase = Union[str, bytes, bytearray, SecretBuffer]


class CipherKind(Enum):
    """Cipher selector tags this SDK can open; any other tag becomes an UnsupportedCipherSpec"""
    PW_HASH = 'pw'


@dataclass
class SeedBundle:
    """
    Unlocked, in-memory seed bundle.

    Attributes:
        seed: Raw seed material (32 bytes for a valid bundle)
        derivation_path: Index the seed was derived with, if known
        app_data: Opaque application data carried alongside the seed
    """
    seed: SecretBuffer
    derivation_path: Optional[int] = None
    app_data: bytes = b""

    def __post_init__(self):
        if isinstance(self.seed, (bytes, bytearray, memoryview)):
            self.seed = SecretBuffer.from_bytes(self.seed)
        if not isinstance(self.seed, SecretBuffer):
            raise TypeError("SeedBundle.seed must be a SecretBuffer or bytes")

    def encode_app_data(self) -> bytes:
        """App data to store in the envelope; carries the derivation path when no app data is set"""
        if self.app_data:
            return bytes(self.app_data)
        if self.derivation_path is None:
            return b""
        return msgpack.packb({APP_DATA_DERIVATION_PATH: self.derivation_path}, use_bin_type=True)

    def wipe(self) -> None:
        self.seed.wipe()

    def __enter__(self) -> 'SeedBundle':
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> bool:
        self.wipe()
        return False


@dataclass(frozen=True)
class PwHashCipher:
    """Password-hash cipher entry of an hcsb0 envelope"""
    salt: bytes
    mem_limit: int
    ops_limit: int
    header: bytes
    cipher: bytes
    tag: str = field(default=CipherKind.PW_HASH.value, init=False)

    def to_wire(self) -> List[Any]:
        return [self.tag, self.salt, self.mem_limit, self.ops_limit, self.header, self.cipher]

    @classmethod
    def from_wire(cls, fields: List[Any], index: int) -> 'PwHashCipher':
        """Parse the fields of a ``pw`` entry, checking every size"""
        if len(fields) != PW_HASH_FIELD_COUNT:
            raise BundleFormatError(
                f"Bundle entry {index}: pwhash cipher has {len(fields)} fields, expected {PW_HASH_FIELD_COUNT}",
                "INVALID_PWHASH_CIPHER",
                {'index': index}
            )

        _, salt, mem_limit, ops_limit, header, cipher = fields

        _check_bin(salt, SALT_LENGTH, 'salt', index)
        _check_bin(header, HEADER_LENGTH, 'header', index)
        _check_bin(cipher, CIPHER_LENGTH, 'cipher', index)
        _check_limit(mem_limit, nacl.pwhash.argon2id.MEMLIMIT_MIN, nacl.pwhash.argon2id.MEMLIMIT_MAX, 'mem_limit', index)
        _check_limit(ops_limit, nacl.pwhash.argon2id.OPSLIMIT_MIN, nacl.pwhash.argon2id.OPSLIMIT_MAX, 'ops_limit', index)

        return cls(salt=salt, mem_limit=mem_limit, ops_limit=ops_limit, header=header, cipher=cipher)


@dataclass(frozen=True)
class UnsupportedCipherSpec:
    """Any cipher entry other than ``pw``; its payload is kept opaque"""
    tag: str
    payload: Tuple[Any, ...] = ()

    def to_wire(self) -> List[Any]:
        return [self.tag, *self.payload]


CipherSpec = Union[PwHashCipher, UnsupportedCipherSpec]


@dataclass(frozen=True)
class LockedEnvelope:
    """Decoded hcsb0 envelope"""
    ciphers: Tuple[CipherSpec, ...]
    app_data: bytes = b""


def _check_bin(value: Any, length: int, name: str, index: int) -> None:
    if not isinstance(value, bytes) or len(value) != length:
        actual = len(value) if isinstance(value, bytes) else type(value).__name__
        raise BundleFormatError(
            f"Bundle entry {index}: {name} must be {length} bytes, got {actual}",
            "INVALID_PWHASH_CIPHER",
            {'index': index, 'field': name}
        )


def _check_limit(value: Any, minimum: int, maximum: int, name: str, index: int) -> None:
    if not isinstance(value, int) or isinstance(value, bool) or not minimum <= value <= maximum:
        raise BundleFormatError(
            f"Bundle entry {index}: {name} is outside the supported range",
            "INVALID_PWHASH_LIMITS",
            {'index': index, 'field': name}
        )


def encode_envelope(envelope: LockedEnvelope) -> bytes:
    """Serialize an envelope to hcsb0 msgpack bytes"""
    return msgpack.packb(
        [BUNDLE_MAGIC, [cipher.to_wire() for cipher in envelope.ciphers], bytes(envelope.app_data)],
        use_bin_type=True,
    )


def decode_envelope(data: bytes) -> LockedEnvelope:
    """
    Parse hcsb0 msgpack bytes into an envelope.

    Raises:
        EmptyInput: If data is empty
        BundleFormatError: If the bytes are not a well-formed hcsb0 envelope
    """
    if not isinstance(data, (bytes, bytearray)):
        raise BundleFormatError("Locked bundle must be bytes", "INVALID_BUNDLE_TYPE")

    if len(data) == 0:
        raise EmptyInput("Locked bundle is empty", "EMPTY_BUNDLE")

    try:
        decoded = msgpack.unpackb(bytes(data), raw=False)
    except Exception as e:
        raise BundleFormatError(
            f"Locked bundle is not valid msgpack ({len(data)} bytes)",
            "INVALID_BUNDLE_ENCODING"
        ) from e

    if not isinstance(decoded, list) or len(decoded) != 3:
        raise BundleFormatError("Locked bundle is not a 3-element array", "INVALID_BUNDLE_STRUCTURE")

    magic, cipher_list, app_data = decoded

    if magic != BUNDLE_MAGIC:
        raise BundleFormatError("Locked bundle has an unknown format marker", "INVALID_BUNDLE_MAGIC")

    if not isinstance(cipher_list, list) or not cipher_list:
        raise BundleFormatError("Locked bundle has no cipher entries", "NO_CIPHERS")

    if not isinstance(app_data, bytes):
        raise BundleFormatError("Locked bundle app data must be bytes", "INVALID_APP_DATA")

    ciphers: List[CipherSpec] = []
    for index, entry in enumerate(cipher_list):
        if not isinstance(entry, list) or not entry or not isinstance(entry[0], str):
            raise BundleFormatError(
                f"Bundle entry {index} has no cipher tag",
                "INVALID_CIPHER_ENTRY",
                {'index': index}
            )

        tag = entry[0]
        if tag == CipherKind.PW_HASH.value:
            ciphers.append(PwHashCipher.from_wire(entry, index))
        else:
            logger.debug(f"Bundle entry {index} uses unsupported cipher '{tag}'")
            ciphers.append(UnsupportedCipherSpec(tag=tag, payload=tuple(entry[1:])))

    return LockedEnvelope(ciphers=tuple(ciphers), app_data=app_data)


def _parse_derivation_path(app_data: bytes) -> Optional[int]:
    """Read the derivation path this SDK stores in app data; foreign app data yields None"""
    if not app_data:
        return None

    try:
        decoded = msgpack.unpackb(app_data, raw=False)
    except (ValueError, TypeError, msgpack.exceptions.UnpackException):
        logger.debug(f"App data ({len(app_data)} bytes) is not msgpack, no derivation path")
        return None

    if not isinstance(decoded, dict):
        return None

    path = decoded.get(APP_DATA_DERIVATION_PATH)
    if isinstance(path, int) and not isinstance(path, bool) and 0 <= path <= MAX_DERIVATION_PATH:
        return path
    return None


def extract_seed(bundle: SeedBundle) -> SecretBuffer:
    """
    Copy a bundle's seed into a fresh 32-byte secret buffer.

    This is the single gate every seed passes through before key
    reconstruction, whether freshly derived or freshly unlocked.

    Raises:
        SeedLengthMismatch: If the bundle's seed is not exactly 32 bytes
    """
    source = bundle.seed
    if len(source) != SEED_LENGTH:
        raise SeedLengthMismatch(
            f"Seed bundle holds {len(source)} bytes, expected {SEED_LENGTH}",
            actual=len(source),
            expected=SEED_LENGTH,
        )

    seed = SecretBuffer(SEED_LENGTH)
    for i in range(SEED_LENGTH):
        try:
            seed[i] = source[i]
        except IndexError:
            seed.wipe()
            raise SeedLengthMismatch(
                f"Seed bundle has no byte at index {i} ({len(source)} bytes, expected {SEED_LENGTH})",
                actual=len(source),
                expected=SEED_LENGTH,
            )
    return seed


def _passphrase_source(passphrase: Passphrase) -> SecretBuffer:
    # Callers enter the result immediately so it is wiped on every exit
    if isinstance(passphrase, SecretBuffer):
        return passphrase.copy()
    return passphrase_buffer(passphrase)


def _hash_passphrase(passphrase: SecretBuffer) -> SecretBuffer:
    return SecretBuffer.from_bytes(
        nacl.hash.blake2b(passphrase.read(), digest_size=PASSPHRASE_HASH_LENGTH, encoder=nacl.encoding.RawEncoder)
    )


def _derive_secret(passphrase_hash: SecretBuffer, salt: bytes, ops_limit: int, mem_limit: int) -> SecretBuffer:
    return SecretBuffer.from_bytes(
        nacl.pwhash.argon2id.kdf(
            SECRET_KEY_LENGTH,
            passphrase_hash.read(),
            salt,
            opslimit=ops_limit,
            memlimit=mem_limit,
            encoder=nacl.encoding.RawEncoder,
        )
    )


def _encrypt_seed(key: SecretBuffer, seed: SecretBuffer) -> Tuple[bytes, bytes]:
    state = crypto_secretstream_xchacha20poly1305_state()
    header = crypto_secretstream_xchacha20poly1305_init_push(state, key.read())
    cipher = crypto_secretstream_xchacha20poly1305_push(
        state, seed.read(), tag=crypto_secretstream_xchacha20poly1305_TAG_FINAL
    )
    return header, cipher


def _decrypt_seed(key: SecretBuffer, cipher: PwHashCipher) -> SecretBuffer:
    state = crypto_secretstream_xchacha20poly1305_state()
    try:
        crypto_secretstream_xchacha20poly1305_init_pull(state, cipher.header, key.read())
        message, tag = crypto_secretstream_xchacha20poly1305_pull(state, cipher.cipher)
    except nacl.exceptions.CryptoError as e:
        raise AuthenticationFailed(
            "Bundle authentication failed - wrong passphrase or corrupted bundle",
            "AUTHENTICATION_FAILED"
        ) from e

    plaintext = SecretBuffer.from_bytes(message)
    del message

    if tag != crypto_secretstream_xchacha20poly1305_TAG_FINAL:
        plaintext.wipe()
        raise AuthenticationFailed(
            "Bundle authentication failed - wrong passphrase or corrupted bundle",
            "AUTHENTICATION_FAILED"
        )
    return plaintext


def lock_bundle(bundle: SeedBundle,
                passphrase: Passphrase,
                *,
                limits: PwHashLimits = PwHashLimits.MODERATE) -> bytes:
    """
    Lock a seed bundle under a passphrase.

    Every call draws a fresh salt and a fresh stream header, so locking the
    same seed twice never yields the same bytes.

    Args:
        bundle: Seed bundle to protect
        passphrase: Passphrase to lock with
        limits: Argon2id cost preset

    Returns:
        bytes: hcsb0 envelope

    Raises:
        SeedLengthMismatch: If the bundle seed is not 32 bytes
        LockError: If the passphrase is empty or entropy / cipher primitives fail
    """
    with extract_seed(bundle) as seed, _passphrase_source(passphrase) as pw:
        if len(pw) == 0:
            raise LockError("Passphrase must not be empty", "EMPTY_PASSPHRASE")

        try:
            salt = nacl.utils.random(SALT_LENGTH)
            with _hash_passphrase(pw) as pw_hash, \
                    _derive_secret(pw_hash, salt, limits.ops_limit, limits.mem_limit) as key:
                header, cipher = _encrypt_seed(key, seed)
        except Exception as e:
            raise LockError(
                f"Locking seed bundle failed: {type(e).__name__}",
                "LOCK_FAILED"
            ) from e

    envelope = LockedEnvelope(
        ciphers=(PwHashCipher(
            salt=salt,
            mem_limit=limits.mem_limit,
            ops_limit=limits.ops_limit,
            header=header,
            cipher=cipher,
        ),),
        app_data=bundle.encode_app_data(),
    )

    logger.debug(f"Locked seed bundle with pwhash cipher ({limits.value} limits)")
    return encode_envelope(envelope)


def unlock_cipher(cipher: CipherSpec, passphrase: Passphrase, app_data: bytes = b"", index: int = 0) -> SeedBundle:
    """
    Open one cipher entry of an envelope.

    Raises:
        UnsupportedCipher: If the entry is not a pwhash cipher
        AuthenticationFailed: If the passphrase is wrong or the entry was tampered with
    """
    if not isinstance(cipher, PwHashCipher):
        raise UnsupportedCipher(
            f"Unsupported cipher '{cipher.tag}' at bundle entry {index}",
            tag=cipher.tag,
            index=index,
        )

    with _passphrase_source(passphrase) as pw:
        try:
            with _hash_passphrase(pw) as pw_hash, \
                    _derive_secret(pw_hash, cipher.salt, cipher.ops_limit, cipher.mem_limit) as key:
                seed = _decrypt_seed(key, cipher)
        except HposSeedError:
            raise
        except Exception as e:
            raise BundleFormatError(
                f"Bundle entry {index}: password hash failed ({type(e).__name__})",
                "PWHASH_FAILED",
                {'index': index}
            ) from e

    logger.debug(f"Unlocked pwhash cipher at bundle entry {index}")
    return SeedBundle(seed=seed, derivation_path=_parse_derivation_path(app_data), app_data=bytes(app_data))


def unlock_bundle(locked: bytes, passphrase: Passphrase) -> SeedBundle:
    """
    Unlock an hcsb0 envelope with a passphrase.

    The first cipher entry is used. Authentication completes before any
    plaintext is returned; the input bytes are never modified.

    Raises:
        EmptyInput: If the envelope is empty
        BundleFormatError: If the envelope is malformed
        UnsupportedCipher: If the first entry is not a pwhash cipher
        AuthenticationFailed: If the passphrase is wrong or the bundle was tampered with
    """
    envelope = decode_envelope(locked)
    cipher = envelope.ciphers[0]
    logger.debug(f"Matching bundle cipher: '{cipher.tag}' ({len(envelope.ciphers)} entries)")
    return unlock_cipher(cipher, passphrase, envelope.app_data, index=0)


async def lock(bundle: SeedBundle,
               passphrase: Passphrase,
               *,
               limits: PwHashLimits = PwHashLimits.MODERATE,
               limiter: Optional[asyncio.Semaphore] = None) -> bytes:
    """Async :func:`lock_bundle`; ``limiter`` bounds simultaneous password hashes"""
    return await _run_pwhash(partial(lock_bundle, bundle, passphrase, limits=limits), limiter)


async def unlock(locked: bytes,
                 passphrase: Passphrase,
                 *,
                 limiter: Optional[asyncio.Semaphore] = None) -> SeedBundle:
    """
    Async :func:`unlock_bundle`; ``limiter`` bounds simultaneous password hashes.

    If the caller is cancelled, the bundle the worker thread eventually
    produces is wiped instead of returned.
    """
    return await _run_pwhash(partial(unlock_bundle, locked, passphrase), limiter, discard=SeedBundle.wipe)


async def _run_pwhash(call: Callable[[], Any],
                      limiter: Optional[asyncio.Semaphore],
                      discard: Optional[Callable[[Any], None]] = None) -> Any:
    """
    Run a password-hash call in the default executor.

    The worker thread cannot be interrupted, so a cancelled caller leaves the
    limiter permit with the thread until it finishes.
    """
    loop = asyncio.get_running_loop()
    if limiter is not None:
        await limiter.acquire()

    handed_off = False
    try:
        future = loop.run_in_executor(None, call)
        try:
            return await asyncio.shield(future)
        except asyncio.CancelledError:
            if future.done():
                _discard_result(future, discard)
            else:
                future.add_done_callback(partial(_settle_abandoned, limiter, discard))
                handed_off = True
            raise
    finally:
        if limiter is not None and not handed_off:
            limiter.release()


def _settle_abandoned(limiter: Optional[asyncio.Semaphore],
                      discard: Optional[Callable[[Any], None]],
                      future: asyncio.Future) -> None:
    if limiter is not None:
        limiter.release()
    _discard_result(future, discard)


def _discard_result(future: asyncio.Future, discard: Optional[Callable[[Any], None]]) -> None:
    if discard is None or future.cancelled() or future.exception() is not None:
        return
    logger.debug("Discarding result of an abandoned password hash")
    discard(future.result())


def encode_locked_bundle(locked: bytes) -> str:
    """URL-safe, unpadded base64 text for a locked bundle"""
    return base64.urlsafe_b64encode(locked).decode('ascii').rstrip('=')


def decode_locked_bundle(text: str) -> bytes:
    """
    Decode URL-safe, unpadded base64 text into locked bundle bytes.

    Raises:
        EmptyInput: If text is empty
        BundleFormatError: If text is not valid unpadded base64url
    """
    if not isinstance(text, str):
        raise BundleFormatError("Locked bundle text must be a string", "INVALID_BUNDLE_TYPE")

    if not text:
        raise EmptyInput("Locked bundle text is empty", "EMPTY_BUNDLE")

    if '=' in text or len(text) % 4 == 1:
        raise BundleFormatError("Locked bundle text is not unpadded base64url", "INVALID_BASE64")

    try:
        return base64.b64decode(text + '=' * (-len(text) % 4), altchars=b'-_', validate=True)
    except (binascii.Error, ValueError) as e:
        raise BundleFormatError("Locked bundle text is not unpadded base64url", "INVALID_BASE64") from e
