"""
Exception classes for the HPOS Seed SDK

Messages and details only ever carry lengths, tags, indices and operation
names. Seed bytes, signing keys and passphrases never end up in an exception.
"""

from typing import Optional, Dict, Any


class HposSeedError(Exception):
    """Base exception for all HPOS Seed SDK errors"""

    def __init__(self, message: str, error_code: str = "UNKNOWN_ERROR", details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.error_code = error_code
        self.details = details or {}


class ValidationError(HposSeedError):
    """Exception raised for validation failures"""
    pass


class UnsupportedPlatformError(HposSeedError):
    """Exception raised when platform features are not supported"""
    pass


class DerivationError(HposSeedError):
    """Exception raised for malformed master seeds or failed seed derivation"""
    pass


class LockError(HposSeedError):
    """Exception raised when entropy or the cipher fails while locking a bundle"""
    pass


class UnsupportedCipher(HposSeedError):
    """Exception raised when a locked bundle uses a cipher kind other than pwhash"""

    def __init__(self, message: str, tag: str, index: int = 0,
                 error_code: str = "UNSUPPORTED_CIPHER", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code, details)
        self.tag = tag
        self.index = index


class AuthenticationFailed(HposSeedError):
    """
    Exception raised when a locked bundle fails authentication.

    A wrong passphrase and a corrupted or tampered bundle both end up here
    and are deliberately not told apart.
    """
    pass


class SeedLengthMismatch(HposSeedError):
    """Exception raised when seed material is not exactly the required length"""

    def __init__(self, message: str, actual: int, expected: int,
                 error_code: str = "SEED_LENGTH_MISMATCH", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code, details)
        self.actual = actual
        self.expected = expected


class EmptyInput(HposSeedError):
    """Exception raised when an empty bundle string is passed where content is required"""
    pass


class BundleFormatError(HposSeedError):
    """Exception raised for locked bundles that cannot be decoded"""
    pass


class IdentifierError(HposSeedError):
    """Exception raised for malformed public key identifiers"""
    pass


class ChecksumMismatch(IdentifierError):
    """Exception raised when an identifier's embedded checksum does not match"""
    pass


class StorageError(HposSeedError):
    """Exception raised for locked bundle storage errors"""
    pass


class ConfigError(HposSeedError):
    """Exception raised for configuration loading and validation errors"""
    pass
