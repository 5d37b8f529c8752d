"""
Secure Token Storage for the Hostel API Client.

This module provides durable storage of the access credential using the
system keyring or encrypted file storage as fallback.
"""

import os
import json
import logging
import threading
from typing import Optional
from pathlib import Path
import base64
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from hostel_shared.exceptions import TokenStorageError, ErrorCode
from hostel_shared.interfaces import IDurableStorage
from hostel_shared.models import Credential

logger = logging.getLogger(__name__)

CREDENTIAL_SLOT = "access_credential"


class SecureTokenStorage(IDurableStorage):
    """
    Durable key-value slot for the access credential.

    Uses system keyring when available, falls back to encrypted file storage.
    """

    def __init__(self, service_name: str = "hostel-api-client", storage_path: Optional[Path] = None):
        self.service_name = service_name
        self.keyring_available = self._check_keyring_availability()
        self.storage_path = storage_path or self._get_storage_path()

        # Encryption key for file storage
        self._encryption_key: Optional[bytes] = None

        logger.info(f"Token storage initialized (keyring: {self.keyring_available})")

    def _check_keyring_availability(self) -> bool:
        """Check if system keyring is available."""
        try:
            import keyring
            test_key = f"{self.service_name}_test"
            keyring.set_password(self.service_name, test_key, "test")
            result = keyring.get_password(self.service_name, test_key)
            keyring.delete_password(self.service_name, test_key)
            return result == "test"
        except Exception as e:
            logger.debug(f"Keyring not available: {e}")
            return False

    def _get_storage_path(self) -> Path:
        """Get path for encrypted file storage."""
        xdg_config = os.environ.get('XDG_CONFIG_HOME')
        if xdg_config:
            config_dir = Path(xdg_config) / 'hostel-client'
        else:
            config_dir = Path.home() / '.config' / 'hostel-client'

        return config_dir / 'credential.enc'

    def _key_path(self) -> Path:
        return self.storage_path.with_suffix('.key')

    def _get_encryption_key(self) -> bytes:
        """Get or create encryption key for file storage."""
        if self._encryption_key:
            return self._encryption_key

        if self.keyring_available:
            try:
                import keyring
                stored_key = keyring.get_password(self.service_name, "encryption_key")
                if stored_key:
                    self._encryption_key = base64.b64decode(stored_key.encode())
                    return self._encryption_key
            except Exception as e:
                logger.warning(f"Failed to get encryption key from keyring: {e}")

        key_path = self._key_path()
        if key_path.exists():
            self._encryption_key = key_path.read_bytes()
            return self._encryption_key

        password = os.urandom(32)
        salt = os.urandom(16)

        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=100000,
        )
        key = base64.urlsafe_b64encode(kdf.derive(password))

        stored = False
        if self.keyring_available:
            try:
                import keyring
                keyring.set_password(self.service_name, "encryption_key", base64.b64encode(key).decode())
                stored = True
            except Exception as e:
                logger.warning(f"Failed to store encryption key in keyring: {e}")

        if not stored:
            key_path.parent.mkdir(parents=True, exist_ok=True)
            key_path.write_bytes(key)
            os.chmod(key_path, 0o600)

        self._encryption_key = key
        return key

    def _encrypt_data(self, data: str) -> bytes:
        return Fernet(self._get_encryption_key()).encrypt(data.encode())

    def _decrypt_data(self, encrypted_data: bytes) -> str:
        return Fernet(self._get_encryption_key()).decrypt(encrypted_data).decode()

    def save(self, credential: Credential) -> None:
        """
        Persist the credential.

        Args:
            credential: Credential to persist

        Raises:
            TokenStorageError: If the credential could not be written
        """
        value = json.dumps(credential.to_dict())

        try:
            if self.keyring_available:
                import keyring
                keyring.set_password(self.service_name, CREDENTIAL_SLOT, value)
            else:
                self.storage_path.parent.mkdir(parents=True, exist_ok=True)
                self.storage_path.write_bytes(self._encrypt_data(value))
                os.chmod(self.storage_path, 0o600)

            logger.debug("Credential persisted")

        except Exception as e:
            logger.error(f"Failed to store credential: {e}")
            raise TokenStorageError(f"Failed to store credential: {e}", cause=e)

    def load(self) -> Optional[Credential]:
        """
        Load the persisted credential.

        Returns:
            Credential or None if nothing usable is stored
        """
        try:
            if self.keyring_available:
                import keyring
                value = keyring.get_password(self.service_name, CREDENTIAL_SLOT)
            else:
                if not self.storage_path.exists():
                    return None
                value = self._decrypt_data(self.storage_path.read_bytes())

            if not value:
                return None
            return Credential.from_dict(json.loads(value))

        except (InvalidToken, ValueError, KeyError) as e:
            logger.warning(f"Stored credential is unreadable, ignoring it: {e}")
            return None
        except Exception as e:
            logger.error(f"Failed to load credential: {e}")
            raise TokenStorageError(
                f"Failed to load credential: {e}",
                error_code=ErrorCode.STORAGE_READ_FAILED,
                cause=e
            )

    def erase(self) -> None:
        """Erase the persisted credential; erasing an empty slot is a no-op."""
        try:
            if self.keyring_available:
                import keyring
                from keyring.errors import PasswordDeleteError
                try:
                    keyring.delete_password(self.service_name, CREDENTIAL_SLOT)
                except PasswordDeleteError:
                    pass
            elif self.storage_path.exists():
                self.storage_path.unlink()

            logger.debug("Persisted credential erased")

        except Exception as e:
            logger.error(f"Failed to erase credential: {e}")
            raise TokenStorageError(f"Failed to erase credential: {e}", cause=e)


class MemoryTokenStorage(IDurableStorage):
    """Process-local storage slot, for tests and ephemeral sessions."""

    def __init__(self, credential: Optional[Credential] = None):
        self._credential = credential
        self._lock = threading.Lock()
        self.save_count = 0
        self.erase_count = 0

    def load(self) -> Optional[Credential]:
        with self._lock:
            return self._credential

    def save(self, credential: Credential) -> None:
        with self._lock:
            self._credential = credential
            self.save_count += 1

    def erase(self) -> None:
        with self._lock:
            self._credential = None
            self.erase_count += 1
