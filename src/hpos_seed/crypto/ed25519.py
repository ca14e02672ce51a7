"""
Ed25519 key reconstruction for the HPOS Seed SDK

This module turns a 32-byte device seed into an Ed25519 signing key and its
public key using the cryptography package. Both steps are pure and one-way.
"""

import sys
import platform
from typing import Dict, Union, Any

import nacl.utils

# Import cryptography components
try:
    from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey
    from cryptography.hazmat.primitives import serialization
    from cryptography.exceptions import InvalidSignature
    CRYPTOGRAPHY_AVAILABLE = True
except ImportError:
    CRYPTOGRAPHY_AVAILABLE = False
    Ed25519PrivateKey = None
    Ed25519PublicKey = None

from ..exceptions import HposSeedError, ValidationError, UnsupportedPlatformError, SeedLengthMismatch
from .memory import SecretBuffer

# Constants for Ed25519 key operations
ED25519_SEED_LENGTH = 32
ED25519_PUBLIC_KEY_LENGTH = 32
ED25519_SIGNATURE_LENGTH = 64

INTEGRITY_CHECK_MESSAGE = b"hpos_seed_integrity_check"
RANDOM_PROBE_LENGTH = 32


class KeyReconstructionError(HposSeedError):
    """Exception raised when a signing key cannot be rebuilt from a seed"""
    pass


def _sodium_random_available() -> bool:
    """Seeds and salts come from libsodium's randombytes, so that is what gets checked"""
    try:
        sample = nacl.utils.random(RANDOM_PROBE_LENGTH)
    except Exception:
        return False
    return len(sample) == RANDOM_PROBE_LENGTH and any(sample)


def check_platform_compatibility() -> Dict[str, Any]:
    """
    Check platform compatibility for Ed25519 operations.

    Returns:
        dict: Compatibility information including cryptography availability,
              Ed25519 support, secure random availability, and platform details
    """
    compatibility = {
        'cryptography_available': CRYPTOGRAPHY_AVAILABLE,
        'ed25519_supported': False,
        'secure_random_available': _sodium_random_available(),
        'platform_info': {
            'system': platform.system(),
            'python_version': sys.version,
            'architecture': platform.architecture()[0],
        }
    }

    if CRYPTOGRAPHY_AVAILABLE:
        try:
            # Test Ed25519 availability by attempting key generation
            Ed25519PrivateKey.generate()
            compatibility['ed25519_supported'] = True
        except Exception:
            compatibility['ed25519_supported'] = False

    return compatibility


def _require_cryptography() -> None:
    if not CRYPTOGRAPHY_AVAILABLE:
        raise UnsupportedPlatformError(
            "Cryptography package not available - install with: pip install cryptography",
            "CRYPTOGRAPHY_UNAVAILABLE"
        )


def _validate_public_key(public_key: bytes) -> None:
    """
    Validate Ed25519 public key.

    Raises:
        ValidationError: If public key is invalid
    """
    if not isinstance(public_key, bytes):
        raise ValidationError("Public key must be bytes", "INVALID_PUBLIC_KEY_TYPE")

    if len(public_key) != ED25519_PUBLIC_KEY_LENGTH:
        raise ValidationError(
            f"Public key must be exactly {ED25519_PUBLIC_KEY_LENGTH} bytes",
            "INVALID_PUBLIC_KEY_LENGTH"
        )


def to_signing_key(seed: Union[SecretBuffer, bytes]) -> 'Ed25519PrivateKey':
    """
    Build the Ed25519 signing key for a 32-byte seed.

    Args:
        seed: Seed produced by the seed extractor

    Returns:
        Ed25519PrivateKey: The signing key

    Raises:
        SeedLengthMismatch: If the seed is not exactly 32 bytes
        KeyReconstructionError: If the key cannot be built
    """
    _require_cryptography()

    if len(seed) != ED25519_SEED_LENGTH:
        raise SeedLengthMismatch(
            f"Seed must be exactly {ED25519_SEED_LENGTH} bytes, got {len(seed)}",
            actual=len(seed),
            expected=ED25519_SEED_LENGTH,
        )

    seed_bytes = seed.read() if isinstance(seed, SecretBuffer) else bytes(seed)
    try:
        return Ed25519PrivateKey.from_private_bytes(seed_bytes)
    except Exception as e:
        raise KeyReconstructionError(
            f"Signing key reconstruction failed: {type(e).__name__}",
            "KEY_RECONSTRUCTION_FAILED"
        ) from e
    finally:
        del seed_bytes


def to_public_key(signing_key: 'Ed25519PrivateKey') -> bytes:
    """
    Get the raw 32-byte public key of a signing key.

    Raises:
        ValidationError: If signing_key is not an Ed25519 private key
    """
    _require_cryptography()

    if not isinstance(signing_key, Ed25519PrivateKey):
        raise ValidationError("signing_key must be an Ed25519PrivateKey", "INVALID_SIGNING_KEY_TYPE")

    return signing_key.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw
    )


def public_key_from_seed(seed: Union[SecretBuffer, bytes]) -> bytes:
    """Shortcut for ``to_public_key(to_signing_key(seed))``"""
    return to_public_key(to_signing_key(seed))


def sign_message(signing_key: 'Ed25519PrivateKey', message: Union[str, bytes]) -> bytes:
    """
    Sign a message with a reconstructed signing key.

    Args:
        signing_key: Ed25519 signing key
        message: Message to sign (string or bytes)

    Returns:
        bytes: Ed25519 signature (64 bytes)

    Raises:
        KeyReconstructionError: If signing fails
    """
    _require_cryptography()

    if isinstance(message, str):
        message_bytes = message.encode('utf-8')
    else:
        message_bytes = message

    try:
        return signing_key.sign(message_bytes)
    except Exception as e:
        raise KeyReconstructionError(f"Message signing failed: {e}", "SIGNING_FAILED") from e


def verify_signature(public_key: bytes, message: Union[str, bytes], signature: bytes) -> bool:
    """
    Verify a signature using an Ed25519 public key.

    Args:
        public_key: Ed25519 public key bytes (32 bytes)
        message: Original message (string or bytes)
        signature: Signature to verify (64 bytes)

    Returns:
        bool: True if signature is valid, False otherwise

    Raises:
        ValidationError: If inputs are invalid
    """
    _require_cryptography()

    _validate_public_key(public_key)

    if not isinstance(signature, bytes) or len(signature) != ED25519_SIGNATURE_LENGTH:
        raise ValidationError(f"Signature must be {ED25519_SIGNATURE_LENGTH} bytes", "INVALID_SIGNATURE")

    if isinstance(message, str):
        message_bytes = message.encode('utf-8')
    else:
        message_bytes = message

    try:
        Ed25519PublicKey.from_public_bytes(public_key).verify(signature, message_bytes)
        return True
    except InvalidSignature:
        return False


def verify_key_integrity(signing_key: 'Ed25519PrivateKey', public_key: bytes) -> None:
    """
    Check that a signing key matches a public key with a sign/verify test.

    Raises:
        KeyReconstructionError: If the pair is inconsistent
    """
    if to_public_key(signing_key) != public_key:
        raise KeyReconstructionError(
            "Key integrity check failed - public key mismatch",
            "INTEGRITY_CHECK_FAILED"
        )

    signature = sign_message(signing_key, INTEGRITY_CHECK_MESSAGE)
    if not verify_signature(public_key, INTEGRITY_CHECK_MESSAGE, signature):
        raise KeyReconstructionError(
            "Key integrity check failed - signature verification failed",
            "INTEGRITY_CHECK_FAILED"
        )
