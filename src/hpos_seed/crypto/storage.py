"""
Locked bundle storage for the HPOS Seed SDK

Stores the URL-safe base64 text of locked device bundles. The text is
already encrypted under the device passphrase, so storage adds no cipher of
its own: the OS keychain is used when available, with a JSON file fallback
readable only by the owner. Seeds and passphrases never reach this module.
"""

import os
import json
import logging
import platform
import secrets
from datetime import datetime, timezone
from typing import Dict, List, Optional, Any
from dataclasses import dataclass
from pathlib import Path

# Keyring import for OS keychain
try:
    import keyring
    from keyring.errors import KeyringError, KeyringLocked, PasswordDeleteError
    KEYRING_AVAILABLE = True
except ImportError:
    KEYRING_AVAILABLE = False
    keyring = None
    KeyringError = Exception
    KeyringLocked = Exception
    PasswordDeleteError = Exception

from ..exceptions import StorageError, BundleFormatError, EmptyInput
from .bundle import decode_locked_bundle

logger = logging.getLogger(__name__)

# Constants
STORAGE_SERVICE_NAME = "HPOS Seed"
DEFAULT_STORAGE_DIR = "hpos-seed"
BUNDLE_FILE_EXTENSION = ".bundle.json"
BUNDLE_FILE_PERMISSIONS = 0o600  # Owner read/write only
STORAGE_DIR_PERMISSIONS = 0o700
BUNDLE_TEXT_FORMAT = "hcsb0-base64url"
BUNDLE_ID_EXTRA_CHARS = "-_."


@dataclass
class StorageMetadata:
    """
    Metadata for stored bundles

    Attributes:
        bundle_id: Unique identifier for the bundle
        storage_type: Type of storage used ('keyring' or 'file')
        created_at: Timestamp when the bundle was stored
        format: Encoding of the stored text
    """
    bundle_id: str
    storage_type: str
    created_at: str
    format: str = BUNDLE_TEXT_FORMAT


class LockedBundleStorage:
    """
    Locked bundle storage with OS keychain and file fallback

    A small metadata file is written for every bundle, including those kept
    in the keychain, so stored bundles can be listed.
    """

    def __init__(self, storage_dir: Optional[str] = None, use_keyring: bool = True):
        """
        Initialize locked bundle storage

        Args:
            storage_dir: Directory for file storage (optional)
            use_keyring: Whether to use OS keyring when available
        """
        self.use_keyring = use_keyring and KEYRING_AVAILABLE
        self.storage_dir = Path(storage_dir) if storage_dir else self._get_default_storage_dir()
        self._ensure_storage_dir()

    def _get_default_storage_dir(self) -> Path:
        """Get default storage directory based on platform"""
        home = Path.home()

        if platform.system() == "Windows":
            appdata = os.getenv("APPDATA", str(home))
            return Path(appdata) / DEFAULT_STORAGE_DIR
        elif platform.system() == "Darwin":
            return home / "Library" / "Application Support" / DEFAULT_STORAGE_DIR
        else:
            return home / f".{DEFAULT_STORAGE_DIR}"

    def _ensure_storage_dir(self) -> None:
        """Ensure storage directory exists with proper permissions"""
        try:
            self.storage_dir.mkdir(parents=True, exist_ok=True)
            if platform.system() != "Windows":
                os.chmod(self.storage_dir, STORAGE_DIR_PERMISSIONS)
        except OSError as e:
            raise StorageError(
                f"Failed to create storage directory: {e}",
                "STORAGE_DIR_CREATION_FAILED"
            ) from e

    def _get_bundle_identifier(self, bundle_id: str) -> str:
        return f"{STORAGE_SERVICE_NAME}:{bundle_id}"

    def _get_file_path(self, bundle_id: str) -> Path:
        """Get file path for a bundle; the ID is used as-is, so it must already be validated"""
        return self.storage_dir / f"{bundle_id}{BUNDLE_FILE_EXTENSION}"

    @staticmethod
    def _validate_bundle_id(bundle_id: str) -> None:
        if not bundle_id or not isinstance(bundle_id, str):
            raise StorageError("Bundle ID must be a non-empty string", "INVALID_BUNDLE_ID")

        # File names and keyring entries both use the ID unchanged
        if any(not (c.isascii() and c.isalnum()) and c not in BUNDLE_ID_EXTRA_CHARS for c in bundle_id):
            raise StorageError(
                f"Bundle ID may only contain letters, digits and '{BUNDLE_ID_EXTRA_CHARS}'",
                "INVALID_BUNDLE_ID"
            )

        if not any(c.isalnum() for c in bundle_id):
            raise StorageError("Bundle ID must contain a letter or digit", "INVALID_BUNDLE_ID")

    @staticmethod
    def _validate_bundle_text(encoded_bundle: str) -> None:
        try:
            decode_locked_bundle(encoded_bundle)
        except (BundleFormatError, EmptyInput) as e:
            raise StorageError(
                f"Refusing to store invalid bundle text: {e}",
                "INVALID_BUNDLE_TEXT"
            ) from e

    def _store_to_keyring(self, bundle_id: str, encoded_bundle: str) -> None:
        try:
            keyring.set_password(STORAGE_SERVICE_NAME, self._get_bundle_identifier(bundle_id), encoded_bundle)
        except (KeyringError, KeyringLocked) as e:
            raise StorageError(f"Keyring storage failed: {e}", "KEYRING_STORAGE_FAILED") from e

    def _retrieve_from_keyring(self, bundle_id: str) -> Optional[str]:
        try:
            return keyring.get_password(STORAGE_SERVICE_NAME, self._get_bundle_identifier(bundle_id))
        except (KeyringError, KeyringLocked) as e:
            raise StorageError(f"Keyring retrieval failed: {e}", "KEYRING_RETRIEVAL_FAILED") from e

    def _delete_from_keyring(self, bundle_id: str) -> bool:
        try:
            keyring.delete_password(STORAGE_SERVICE_NAME, self._get_bundle_identifier(bundle_id))
            return True
        except PasswordDeleteError:
            return False
        except KeyringError as e:
            raise StorageError(f"Keyring deletion failed: {e}", "KEYRING_DELETION_FAILED") from e

    def _write_file(self, bundle_id: str, storage_type: str, encoded_bundle: Optional[str]) -> str:
        file_path = self._get_file_path(bundle_id)
        created_at = self._get_timestamp()

        file_data = {
            'bundle_id': bundle_id,
            'storage_type': storage_type,
            'format': BUNDLE_TEXT_FORMAT,
            'created_at': created_at,
            'bundle': encoded_bundle,
        }

        try:
            fd = os.open(file_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, BUNDLE_FILE_PERMISSIONS)
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(file_data, f, indent=2)

            if platform.system() != "Windows":
                os.chmod(file_path, BUNDLE_FILE_PERMISSIONS)
        except OSError as e:
            if file_path.exists():
                file_path.unlink()
            raise StorageError(f"File storage failed: {e}", "FILE_STORAGE_FAILED") from e

        return created_at

    def _read_file(self, bundle_id: str) -> Optional[Dict[str, Any]]:
        file_path = self._get_file_path(bundle_id)

        if not file_path.exists():
            return None

        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"File retrieval failed: {e}", "FILE_RETRIEVAL_FAILED") from e

    def _delete_file(self, bundle_id: str) -> bool:
        file_path = self._get_file_path(bundle_id)

        try:
            if file_path.exists():
                file_path.unlink()
                return True
            return False
        except OSError as e:
            raise StorageError(f"File deletion failed: {e}", "FILE_DELETION_FAILED") from e

    def _get_timestamp(self) -> str:
        """Get current timestamp as ISO string"""
        return datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z')

    def store_bundle(self, bundle_id: str, encoded_bundle: str) -> StorageMetadata:
        """
        Store locked bundle text

        Args:
            bundle_id: Unique identifier for the bundle
            encoded_bundle: URL-safe unpadded base64 of a locked bundle

        Returns:
            StorageMetadata: Metadata about the stored bundle

        Raises:
            StorageError: If the id or text is invalid, or storage fails
        """
        self._validate_bundle_id(bundle_id)
        self._validate_bundle_text(encoded_bundle)

        storage_type = None

        if self.use_keyring:
            try:
                self._store_to_keyring(bundle_id, encoded_bundle)
                storage_type = 'keyring'
            except StorageError as e:
                logger.warning(f"Keyring unavailable for bundle '{bundle_id}', using file storage: {e}")

        if storage_type == 'keyring':
            created_at = self._write_file(bundle_id, storage_type, None)
        else:
            storage_type = 'file'
            created_at = self._write_file(bundle_id, storage_type, encoded_bundle)

        logger.info(f"Stored locked bundle '{bundle_id}' in {storage_type} storage")
        return StorageMetadata(bundle_id=bundle_id, storage_type=storage_type, created_at=created_at)

    def retrieve_bundle(self, bundle_id: str) -> Optional[str]:
        """
        Retrieve locked bundle text

        Returns:
            str or None if the bundle is not stored

        Raises:
            StorageError: If retrieval fails
        """
        self._validate_bundle_id(bundle_id)

        if self.use_keyring:
            try:
                encoded_bundle = self._retrieve_from_keyring(bundle_id)
                if encoded_bundle is not None:
                    return encoded_bundle
            except StorageError as e:
                logger.warning(f"Keyring retrieval failed for bundle '{bundle_id}', trying file storage: {e}")

        file_data = self._read_file(bundle_id)
        if file_data is None:
            return None

        encoded_bundle = file_data.get('bundle')
        if encoded_bundle is None:
            raise StorageError(
                f"Bundle '{bundle_id}' is recorded in the keyring but could not be read from it",
                "KEYRING_ENTRY_MISSING"
            )
        return encoded_bundle

    def delete_bundle(self, bundle_id: str) -> bool:
        """
        Delete a bundle from storage

        Returns:
            bool: True if the bundle was deleted, False if not found
        """
        self._validate_bundle_id(bundle_id)

        deleted_from_keyring = False
        if self.use_keyring:
            try:
                deleted_from_keyring = self._delete_from_keyring(bundle_id)
            except StorageError as e:
                logger.warning(f"Keyring deletion failed for bundle '{bundle_id}': {e}")

        deleted_from_file = self._delete_file(bundle_id)
        return deleted_from_keyring or deleted_from_file

    def list_bundles(self) -> List[str]:
        """List all stored bundle IDs"""
        bundle_ids = set()

        try:
            for file_path in self.storage_dir.glob(f"*{BUNDLE_FILE_EXTENSION}"):
                bundle_ids.add(file_path.name[:-len(BUNDLE_FILE_EXTENSION)])
        except OSError as e:
            raise StorageError(f"Listing bundles failed: {e}", "STORAGE_LIST_FAILED") from e

        return sorted(bundle_ids)

    def check_storage_availability(self) -> Dict[str, Any]:
        """
        Check availability of storage methods

        Returns:
            dict: Storage availability information
        """
        result = {
            'keyring_available': KEYRING_AVAILABLE and self.use_keyring,
            'file_storage_available': True,
            'storage_dir': str(self.storage_dir),
            'storage_dir_exists': self.storage_dir.exists(),
            'platform': platform.system()
        }

        if KEYRING_AVAILABLE and self.use_keyring:
            try:
                test_key = f"test_key_{secrets.token_hex(8)}"
                test_data = "test_data"
                keyring.set_password(STORAGE_SERVICE_NAME, test_key, test_data)
                retrieved = keyring.get_password(STORAGE_SERVICE_NAME, test_key)
                keyring.delete_password(STORAGE_SERVICE_NAME, test_key)
                result['keyring_functional'] = (retrieved == test_data)
            except KeyringError as e:
                result['keyring_functional'] = False
                result['keyring_error'] = str(e)
        else:
            result['keyring_functional'] = False

        return result


def get_default_storage() -> LockedBundleStorage:
    """Get default locked bundle storage instance"""
    return LockedBundleStorage()
