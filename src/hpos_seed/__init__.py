"""
HPOS Seed SDK
Device seed derivation, passphrase-locked seed bundles and device identifiers
"""

from .version import __version__
from .crypto.memory import SecretBuffer
from .crypto.ed25519 import (
    check_platform_compatibility,
    to_signing_key,
    to_public_key,
    public_key_from_seed,
    sign_message,
    verify_signature,
)
from .crypto.bundle import (
    SeedBundle,
    PwHashCipher,
    UnsupportedCipherSpec,
    extract_seed,
    lock_bundle,
    unlock_bundle,
)
from .crypto.derivation import (
    generate_master_seed,
    master_seed_from_bytes,
    derive_seed,
)
from .crypto.storage import (
    LockedBundleStorage,
    StorageMetadata,
    get_default_storage,
)
from .config import (
    SeedConfigManager,
    PwHashLimits,
    load_default_config,
)
from .identity import (
    IdentifierPair,
    to_hcid,
    from_hcid,
    to_hostname,
    from_hostname,
    to_url,
    to_identifier_pair,
)
from .device import (
    DeviceBundleManager,
    DeviceIdentity,
    generate_device_bundle,
    get_seed_from_locked_device_bundle,
    unlock,
    unlock_identity,
    encode_device_bundle,
    decode_device_bundle,
)
from .exceptions import (
    HposSeedError,
    ValidationError,
    UnsupportedPlatformError,
    DerivationError,
    LockError,
    UnsupportedCipher,
    AuthenticationFailed,
    SeedLengthMismatch,
    EmptyInput,
    BundleFormatError,
    IdentifierError,
    ChecksumMismatch,
    StorageError,
    ConfigError,
)


def initialize_sdk():
    """
    Initialize the HPOS Seed SDK and check platform compatibility.

    Returns:
        dict: Compatibility information with 'compatible' (bool) and 'warnings' (list)
    """
    warnings = []
    compatible = True

    compat_info = check_platform_compatibility()
    if not compat_info['cryptography_available']:
        warnings.append('Cryptography package not available - key reconstruction will fail')
        compatible = False

    if not compat_info['secure_random_available']:
        warnings.append('Secure random generation not available - seed generation may be insecure')
        compatible = False

    if not compat_info['ed25519_supported']:
        warnings.append('Ed25519 not supported by cryptography package - check version')
        compatible = False

    return {
        'compatible': compatible,
        'warnings': warnings
    }


def is_compatible():
    """
    Quick synchronous compatibility check.

    Returns:
        bool: True if platform is compatible with basic SDK functionality
    """
    return initialize_sdk()['compatible']


# Public API exports
__all__ = [
    '__version__',
    'SecretBuffer',
    'check_platform_compatibility',
    'to_signing_key',
    'to_public_key',
    'public_key_from_seed',
    'sign_message',
    'verify_signature',
    'initialize_sdk',
    'is_compatible',
    # Seed bundles
    'SeedBundle',
    'PwHashCipher',
    'UnsupportedCipherSpec',
    'extract_seed',
    'lock_bundle',
    'unlock_bundle',
    # Derivation
    'generate_master_seed',
    'master_seed_from_bytes',
    'derive_seed',
    # Storage
    'LockedBundleStorage',
    'StorageMetadata',
    'get_default_storage',
    # Configuration
    'SeedConfigManager',
    'PwHashLimits',
    'load_default_config',
    # Identifiers
    'IdentifierPair',
    'to_hcid',
    'from_hcid',
    'to_hostname',
    'from_hostname',
    'to_url',
    'to_identifier_pair',
    # Device workflows
    'DeviceBundleManager',
    'DeviceIdentity',
    'generate_device_bundle',
    'get_seed_from_locked_device_bundle',
    'unlock',
    'unlock_identity',
    'encode_device_bundle',
    'decode_device_bundle',
    # Exceptions
    'HposSeedError',
    'ValidationError',
    'UnsupportedPlatformError',
    'DerivationError',
    'LockError',
    'UnsupportedCipher',
    'AuthenticationFailed',
    'SeedLengthMismatch',
    'EmptyInput',
    'BundleFormatError',
    'IdentifierError',
    'ChecksumMismatch',
    'StorageError',
    'ConfigError',
]
