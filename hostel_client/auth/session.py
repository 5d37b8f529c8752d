"""
Session invalidation for the Hostel API Client.

Clears local session state and routes the user back to the login entry
point when a session cannot be recovered.
"""

import logging
import threading
from typing import Callable, List, Optional

from hostel_shared.exceptions import TokenStorageError
from hostel_shared.interfaces import INavigator
from hostel_shared.logging_config import AuditLogger, log_structured_error
from hostel_client.auth.credential_store import CredentialStore

logger = logging.getLogger(__name__)


class LoggingNavigator(INavigator):
    """Default navigator for headless use: records the redirect target."""

    def __init__(self, login_route: str = "/login"):
        self.login_route = login_route

    def redirect_to_login(self, reason: Optional[str] = None) -> None:
        logger.warning(f"Re-authentication required, redirecting to {self.login_route}"
                       + (f" ({reason})" if reason else ""))


class SessionInvalidator:
    """
    Resets the session after an unrecoverable authentication failure.

    invalidate() always clears the credential store; navigation and
    callbacks fire once per session, until arm() is called after a new login.
    """

    def __init__(
        self,
        credential_store: CredentialStore,
        navigator: Optional[INavigator] = None,
        audit_logger: Optional[AuditLogger] = None
    ):
        self.credential_store = credential_store
        self.navigator = navigator or LoggingNavigator()
        self._audit_logger = audit_logger or AuditLogger()
        self._auth_callbacks: List[Callable[[bool], None]] = []
        self._invalidated = False
        self._lock = threading.Lock()
        self.invalidation_count = 0

    def add_auth_callback(self, callback: Callable[[bool], None]) -> None:
        """
        Add callback for authentication state changes.

        Args:
            callback: Function called with authentication status (bool)
        """
        self._auth_callbacks.append(callback)

    def notify_auth_change(self, is_authenticated: bool) -> None:
        """Notify callbacks of authentication state change."""
        for callback in self._auth_callbacks:
            try:
                callback(is_authenticated)
            except Exception as e:
                logger.error(f"Error in auth callback: {e}")

    @property
    def is_invalidated(self) -> bool:
        return self._invalidated

    def arm(self) -> None:
        """Re-enable invalidation side effects for a freshly established session."""
        with self._lock:
            self._invalidated = False

    def invalidate(self, reason: Optional[str] = None) -> bool:
        """
        Clear the session and force re-authentication.

        Args:
            reason: Human-readable cause, passed to the navigator

        Returns:
            True if this call performed the invalidation, False if the
            session had already been invalidated
        """
        user = self.credential_store.user
        try:
            self.credential_store.clear()
        except TokenStorageError as e:
            log_structured_error(logger, e)

        with self._lock:
            if self._invalidated:
                logger.debug("Session already invalidated, skipping redirect")
                return False
            self._invalidated = True
            self.invalidation_count += 1

        logger.warning(f"Invalidating session: {reason or 'unspecified reason'}")
        self._audit_logger.log_session_invalidated(
            reason=reason,
            user_id=str(user.get('id')) if user and user.get('id') else None
        )

        self.notify_auth_change(False)

        try:
            self.navigator.redirect_to_login(reason)
        except Exception as e:
            logger.error(f"Navigator failed to redirect to login: {e}")

        return True
