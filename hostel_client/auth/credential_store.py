"""
Credential Store for the Hostel API Client.

Holds the current access credential and mirrors every mutation to the
durable storage slot.
"""

import logging
import threading
from typing import Optional, Dict, Any

from hostel_shared.exceptions import TokenStorageError
from hostel_shared.interfaces import IDurableStorage
from hostel_shared.models import Credential
from hostel_client.auth.token_storage import MemoryTokenStorage

logger = logging.getLogger(__name__)


class CredentialStore:
    """
    Owner of the mutable credential singleton.

    The slot is swapped under a lock and holds immutable Credential
    instances, so concurrent readers only ever see a complete value.
    """

    def __init__(self, storage: Optional[IDurableStorage] = None):
        self.storage = storage or MemoryTokenStorage()
        self._credential: Optional[Credential] = None
        self._lock = threading.Lock()

    def load(self) -> Optional[Credential]:
        """
        Restore the persisted credential at startup.

        A credential whose known expiry has already passed is discarded and
        erased from storage.
        """
        credential = self.storage.load()
        if credential is None:
            logger.info("No stored credential found")
            return None

        if credential.is_expired():
            logger.info("Stored credential is expired, discarding it")
            self.storage.erase()
            return None

        with self._lock:
            self._credential = credential

        logger.info(f"Loaded stored credential {credential!r}")
        return credential

    def get(self) -> Optional[Credential]:
        """Return the current credential, or None."""
        with self._lock:
            return self._credential

    def set(self, credential: Credential) -> None:
        """
        Replace the current credential and persist it.

        Raises:
            TokenStorageError: If the durable copy could not be written; the
                in-memory credential is replaced regardless
        """
        with self._lock:
            self._credential = credential
        try:
            self.storage.save(credential)
        except TokenStorageError:
            raise
        except Exception as e:
            raise TokenStorageError(f"Failed to store credential: {e}", cause=e)
        logger.debug(f"Credential replaced: {credential!r}")

    def clear(self) -> None:
        """
        Remove the current credential and erase its persisted copy.

        Raises:
            TokenStorageError: If the durable copy could not be erased; the
                in-memory credential is removed regardless
        """
        with self._lock:
            self._credential = None
        try:
            self.storage.erase()
        except TokenStorageError:
            raise
        except Exception as e:
            raise TokenStorageError(f"Failed to erase credential: {e}", cause=e)
        logger.debug("Credential cleared")

    @property
    def token(self) -> Optional[str]:
        credential = self.get()
        return credential.token if credential else None

    @property
    def user(self) -> Optional[Dict[str, Any]]:
        credential = self.get()
        return credential.user if credential else None

    def is_authenticated(self) -> bool:
        return self.get() is not None
