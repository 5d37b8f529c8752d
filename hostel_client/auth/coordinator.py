"""
Single-flight credential renewal for the Hostel API Client.

However many requests discover an expired credential at the same time, one
renewal call is made and its outcome is broadcast to all of them.
"""

import asyncio
import logging
from typing import List, Optional

from hostel_shared.exceptions import (
    HostelClientError, AuthRejectedError, RenewalTimeoutError,
    TokenStorageError, ErrorCode
)
from hostel_shared.interfaces import IRenewalProvider
from hostel_shared.logging_config import AuditLogger, log_structured_error
from hostel_shared.models import Credential, RenewalState
from hostel_client.auth.credential_store import CredentialStore
from hostel_client.auth.session import SessionInvalidator

logger = logging.getLogger(__name__)

DEFAULT_RENEWAL_TIMEOUT = 10.0


class RenewalCoordinator:
    """
    Coordinates credential renewal across concurrent callers.

    State transitions happen without any suspension point between checking
    and setting the state, which is what makes the IDLE -> IN_FLIGHT
    transition atomic on the event loop:

        IDLE      --first caller-->       IN_FLIGHT  (provider call started)
        IN_FLIGHT --further callers-->    IN_FLIGHT  (waiter queued)
        IN_FLIGHT --provider success-->   IDLE       (all waiters resolved)
        IN_FLIGHT --failure or timeout--> IDLE       (all waiters rejected, session invalidated)
    """

    def __init__(
        self,
        provider: IRenewalProvider,
        credential_store: CredentialStore,
        invalidator: SessionInvalidator,
        renewal_timeout: float = DEFAULT_RENEWAL_TIMEOUT,
        audit_logger: Optional[AuditLogger] = None
    ):
        if renewal_timeout <= 0:
            raise ValueError("renewal_timeout must be positive")

        self.provider = provider
        self.credential_store = credential_store
        self.invalidator = invalidator
        self.renewal_timeout = renewal_timeout
        self._audit_logger = audit_logger or AuditLogger()

        self._state = RenewalState.IDLE
        self._waiters: List[asyncio.Future] = []
        self._task: Optional[asyncio.Task] = None
        self.renewal_count = 0

    @property
    def state(self) -> RenewalState:
        return self._state

    @property
    def pending_waiters(self) -> int:
        return sum(1 for waiter in self._waiters if not waiter.done())

    async def await_renewal(self) -> Credential:
        """
        Wait for a renewed credential, starting the renewal if none is in flight.

        Returns:
            The renewed credential, identical for every concurrent caller

        Raises:
            The renewal error, identical for every concurrent caller
        """
        loop = asyncio.get_running_loop()
        waiter = loop.create_future()
        self._waiters.append(waiter)

        if self._state is RenewalState.IDLE:
            self._state = RenewalState.IN_FLIGHT
            self.renewal_count += 1
            logger.info("Access credential expired, starting renewal")
            self._task = loop.create_task(self._renew())
        else:
            logger.debug(f"Renewal already in flight, queued waiter ({len(self._waiters)} pending)")

        try:
            return await waiter
        except asyncio.CancelledError:
            self._discard(waiter)
            raise

    def _discard(self, waiter: asyncio.Future) -> None:
        try:
            self._waiters.remove(waiter)
        except ValueError:
            pass
        logger.debug("Cancelled caller removed from renewal queue")

    def _drain(self) -> List[asyncio.Future]:
        waiters, self._waiters = self._waiters, []
        self._state = RenewalState.IDLE
        return [waiter for waiter in waiters if not waiter.done()]

    async def _renew(self) -> None:
        loop = asyncio.get_running_loop()
        started = loop.time()

        try:
            credential = await asyncio.wait_for(self.provider.renew(), timeout=self.renewal_timeout)
            if not credential:
                raise AuthRejectedError(
                    "No access token received from renewal",
                    error_code=ErrorCode.AUTH_RENEWAL_FAILED
                )
        except asyncio.CancelledError:
            self._reject(self._cancelled_error())
            raise
        except asyncio.TimeoutError as e:
            self._fail(RenewalTimeoutError(
                f"Credential renewal timed out after {self.renewal_timeout}s",
                timeout=self.renewal_timeout,
                cause=e
            ), loop.time() - started)
            return
        except HostelClientError as e:
            self._fail(e, loop.time() - started)
            return
        except Exception as e:
            self._fail(AuthRejectedError(
                f"Credential renewal failed: {e}",
                error_code=ErrorCode.AUTH_RENEWAL_FAILED,
                cause=e
            ), loop.time() - started)
            return

        self._succeed(credential, loop.time() - started)

    def _succeed(self, credential: Credential, duration: float) -> None:
        previous = self.credential_store.get()
        if credential.user is None and previous is not None and previous.user:
            credential = credential.with_user(previous.user)

        try:
            self.credential_store.set(credential)
        except TokenStorageError as e:
            log_structured_error(logger, e, logging.WARNING)
        finally:
            # waiters are settled even if the store raised something unexpected
            waiters = self._drain()
            for waiter in waiters:
                waiter.set_result(credential)

        logger.info(f"Credential renewed in {duration:.2f}s, resuming {len(waiters)} request(s)")
        self._audit_logger.log_renewal(success=True, waiters=len(waiters), duration_seconds=duration)

    def _fail(self, error: HostelClientError, duration: float) -> None:
        try:
            self.credential_store.clear()
        except TokenStorageError as e:
            log_structured_error(logger, e, logging.WARNING)
        finally:
            waiters = self._reject(error)

        log_structured_error(logger, error)
        self._audit_logger.log_renewal(success=False, waiters=waiters, duration_seconds=duration, error=error)
        self.invalidator.invalidate(reason=error.message)

    def _reject(self, error: HostelClientError) -> int:
        waiters = self._drain()
        for waiter in waiters:
            waiter.set_exception(error)
        return len(waiters)

    @staticmethod
    def _cancelled_error() -> AuthRejectedError:
        return AuthRejectedError(
            "Credential renewal was cancelled",
            error_code=ErrorCode.AUTH_RENEWAL_CANCELLED
        )

    async def close(self) -> None:
        """Cancel an in-flight renewal; its waiters are rejected, the session is kept."""
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None

        # a task cancelled before its first step never reaches its handler
        if self._state is RenewalState.IN_FLIGHT:
            self._reject(self._cancelled_error())
