"""
Cryptographic operations for the HPOS Seed SDK
"""

from .memory import (
    SecretBuffer,
    passphrase_buffer,
)

from .ed25519 import (
    KeyReconstructionError,
    check_platform_compatibility,
    to_signing_key,
    to_public_key,
    public_key_from_seed,
    sign_message,
    verify_signature,
    verify_key_integrity,
)

from .bundle import (
    SeedBundle,
    CipherKind,
    PwHashCipher,
    UnsupportedCipherSpec,
    CipherSpec,
    LockedEnvelope,
    encode_envelope,
    decode_envelope,
    extract_seed,
    lock_bundle,
    unlock_bundle,
    unlock_cipher,
    lock,
    unlock,
    encode_locked_bundle,
    decode_locked_bundle,
)

from .derivation import (
    generate_master_seed,
    master_seed_from_bytes,
    resolve_derivation_path,
    derive_seed,
    derive,
    new_random_master,
)

from .storage import (
    LockedBundleStorage,
    StorageMetadata,
    get_default_storage,
)

__all__ = [
    # Secret buffers
    'SecretBuffer',
    'passphrase_buffer',

    # Ed25519 key reconstruction
    'KeyReconstructionError',
    'check_platform_compatibility',
    'to_signing_key',
    'to_public_key',
    'public_key_from_seed',
    'sign_message',
    'verify_signature',
    'verify_key_integrity',

    # Seed bundles
    'SeedBundle',
    'CipherKind',
    'PwHashCipher',
    'UnsupportedCipherSpec',
    'CipherSpec',
    'LockedEnvelope',
    'encode_envelope',
    'decode_envelope',
    'extract_seed',
    'lock_bundle',
    'unlock_bundle',
    'unlock_cipher',
    'lock',
    'unlock',
    'encode_locked_bundle',
    'decode_locked_bundle',

    # Seed derivation
    'generate_master_seed',
    'master_seed_from_bytes',
    'resolve_derivation_path',
    'derive_seed',
    'derive',
    'new_random_master',

    # Bundle storage
    'LockedBundleStorage',
    'StorageMetadata',
    'get_default_storage',
]
