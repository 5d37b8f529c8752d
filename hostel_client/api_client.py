"""
HTTP API Client for the Hostel API Client.

This module provides the request dispatcher that attaches the access
credential and transparently renews it once, plus the high-level client used
by application code for login, logout and authenticated API calls.
"""

import logging
from typing import Optional, Dict, Any, Callable

from hostel_shared.exceptions import (
    HostelClientError, AuthExpiredError, AuthRejectedError, APIRequestError,
    ServerError, TransportError, ErrorCode
)
from hostel_shared.interfaces import ITransport, IDurableStorage, INavigator, IRenewalProvider
from hostel_shared.logging_config import AuditLogger
from hostel_shared.models import Credential, PendingRequest, Response, mask_token
from hostel_client.auth.classifier import RenewalClassifier
from hostel_client.auth.coordinator import RenewalCoordinator
from hostel_client.auth.credential_store import CredentialStore
from hostel_client.auth.renewal_provider import AccessTokenRenewalProvider
from hostel_client.auth.session import SessionInvalidator, LoggingNavigator
from hostel_client.auth.token_storage import SecureTokenStorage, MemoryTokenStorage
from hostel_client.config import ClientConfiguration
from hostel_client.transport import AiohttpTransport

logger = logging.getLogger(__name__)


class RequestDispatcher:
    """
    Sends private requests: attach credential, send, and on an expired
    credential wait for renewal and resend exactly once.
    """

    def __init__(
        self,
        transport: ITransport,
        credential_store: CredentialStore,
        classifier: RenewalClassifier,
        coordinator: RenewalCoordinator
    ):
        self.transport = transport
        self.credential_store = credential_store
        self.classifier = classifier
        self.coordinator = coordinator

    async def send(self, request: PendingRequest) -> Response:
        """
        Send a request with the current credential.

        Returns:
            The response of the first attempt, or of the single resend after
            a successful renewal. Non-2xx responses are returned unchanged.

        Raises:
            TransportError: On connectivity failure
            HostelClientError: The renewal error if renewal was needed and failed
        """
        response = await self._dispatch(request, self.credential_store.get())

        failure = self.classifier.classify(response, request)
        if not isinstance(failure, AuthExpiredError):
            return response

        logger.info(f"{request.method} {request.target} returned {response.status}, awaiting credential renewal")
        credential = await self.coordinator.await_renewal()

        request.retried = True
        logger.debug(f"Resending {request.method} {request.target} with renewed credential")
        return await self._dispatch(request, credential)

    async def _dispatch(self, request: PendingRequest, credential: Optional[Credential]) -> Response:
        if credential is not None:
            request.headers['Authorization'] = f'Bearer {credential.token}'
        else:
            request.headers.pop('Authorization', None)

        return await self.transport.send(
            request.method,
            request.target,
            headers=dict(request.headers),
            body=request.body,
            params=request.params
        )


class HostelAPIClient:
    """
    High-level client for the hostel management API.

    Public calls (login, logout) go straight to the transport; every other
    call goes through the RequestDispatcher and its renewal path.
    """

    def __init__(
        self,
        config: Optional[ClientConfiguration] = None,
        transport: Optional[ITransport] = None,
        storage: Optional[IDurableStorage] = None,
        navigator: Optional[INavigator] = None,
        renewal_provider: Optional[IRenewalProvider] = None
    ):
        self.config = config or ClientConfiguration.defaults()
        self._audit_logger = AuditLogger()

        self.transport = transport or AiohttpTransport(
            self.config.get_server_url(),
            timeout=self.config.get_server_timeout()
        )
        self.credential_store = CredentialStore(storage or self._create_storage())
        self.classifier = RenewalClassifier(self.config.get_exempt_paths())
        self.invalidator = SessionInvalidator(
            self.credential_store,
            navigator=navigator or LoggingNavigator(self.config.get_login_route()),
            audit_logger=self._audit_logger
        )
        self.coordinator = RenewalCoordinator(
            renewal_provider or AccessTokenRenewalProvider(self.transport, self.config.get_renewal_path()),
            self.credential_store,
            self.invalidator,
            renewal_timeout=self.config.get_renewal_timeout(),
            audit_logger=self._audit_logger
        )
        self.dispatcher = RequestDispatcher(
            self.transport,
            self.credential_store,
            self.classifier,
            self.coordinator
        )

        logger.info(f"API client initialized for server: {self.config.get_server_url()}")

    def _create_storage(self) -> IDurableStorage:
        if self.config.get_storage_backend() == 'memory':
            return MemoryTokenStorage()
        return SecureTokenStorage(service_name=self.config.get_storage_service_name())

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def add_auth_callback(self, callback: Callable[[bool], None]) -> None:
        """
        Add callback for authentication state changes.

        Args:
            callback: Function called with authentication status (bool)
        """
        self.invalidator.add_auth_callback(callback)

    def is_authenticated(self) -> bool:
        return self.credential_store.is_authenticated()

    @property
    def current_user(self) -> Optional[Dict[str, Any]]:
        return self.credential_store.user

    def load_stored_credential(self) -> bool:
        """
        Restore the credential persisted by a previous session.

        Returns:
            True if a usable credential was loaded
        """
        credential = self.credential_store.load()
        if credential is None:
            return False

        self.invalidator.arm()
        self.invalidator.notify_auth_change(True)
        return True

    async def login(self, email: str, password: str) -> Optional[Dict[str, Any]]:
        """
        Log in and store the issued access credential.

        The server also sets the session cookie used later for renewal.

        Args:
            email: Account email
            password: Account password

        Returns:
            The signed-in user's profile

        Raises:
            AuthRejectedError: Credentials refused (401/403) or no token issued
            APIRequestError: Any other error response
            TransportError: On connectivity failure
        """
        request = PendingRequest('POST', self.config.get_login_path(), body={'email': email, 'password': password})
        response = await self.transport.send(request.method, request.target, body=request.body)

        if not response.ok:
            error = self._error_for(response, request)
            self._audit_logger.log_authentication('login', success=False, failure_reason=error.message)
            raise error

        body = response.body if isinstance(response.body, dict) else {}
        tokens = body.get('tokens') or {}
        token = tokens.get('accessToken') or body.get('accessToken')
        if not token:
            self._audit_logger.log_authentication('login', success=False, failure_reason="no access token")
            raise AuthRejectedError(
                "No access token received from login",
                error_code=ErrorCode.AUTH_LOGIN_FAILED
            )

        user = body.get('user')
        credential = Credential.from_token(token, user=user)
        self.credential_store.set(credential)
        self.invalidator.arm()
        self.invalidator.notify_auth_change(True)

        user_id = str(user.get('id')) if isinstance(user, dict) and user.get('id') else None
        self._audit_logger.log_authentication('login', user_id=user_id, success=True)
        logger.info(f"Logged in, credential {mask_token(token)}")
        return user

    async def logout(self) -> None:
        """
        Log out: ask the server to drop the session cookie, then clear local state.

        The server call is best-effort; local state is cleared regardless.
        An in-flight renewal is cancelled first so it cannot store a
        credential after logout; its waiters are rejected.
        """
        user = self.credential_store.user
        await self.coordinator.close()

        try:
            response = await self.transport.send('POST', self.config.get_logout_path())
            if not response.ok:
                logger.warning(f"Server logout returned {response.status}")
        except TransportError as e:
            logger.warning(f"Server logout failed, clearing local session anyway: {e}")

        self.credential_store.clear()
        self.invalidator.notify_auth_change(False)

        user_id = str(user.get('id')) if user and user.get('id') else None
        self._audit_logger.log_authentication('logout', user_id=user_id, success=True)
        logger.info("Logged out and cleared authentication state")

    async def request(
        self,
        method: str,
        path: str,
        data: Any = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None
    ) -> Any:
        """
        Make an authenticated API request.

        Args:
            method: HTTP method (GET, POST, PUT, PATCH, DELETE)
            path: API path relative to the server URL
            data: JSON request body
            params: Query parameters
            headers: Additional request headers

        Returns:
            Decoded response body ({} for empty bodies)

        Raises:
            AuthRejectedError: Authentication failed after renewal, or renewal failed
            APIRequestError: Any other error response
            TransportError: On connectivity failure
        """
        request = PendingRequest(method, path, headers=dict(headers or {}), body=data, params=params)
        response = await self.dispatcher.send(request)

        if response.ok:
            return response.body if response.body is not None else {}

        raise self._error_for(response, request)

    def _error_for(self, response: Response, request: PendingRequest) -> HostelClientError:
        """Map an error response to the exception surfaced to callers."""
        failure = self.classifier.classify(response, request)
        if failure is not None:
            return failure

        detail = response.detail()
        if response.status >= 500:
            return ServerError(f"Server error ({response.status}): {detail}", status=response.status, body=response.body)
        if response.status == 404:
            return APIRequestError(
                f"Not found: {detail}",
                status=response.status,
                error_code=ErrorCode.API_NOT_FOUND,
                body=response.body
            )
        return APIRequestError(f"Request failed ({response.status}): {detail}", status=response.status, body=response.body)

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self.request('GET', path, params=params)

    async def post(self, path: str, data: Any = None) -> Any:
        return await self.request('POST', path, data=data)

    async def put(self, path: str, data: Any = None) -> Any:
        return await self.request('PUT', path, data=data)

    async def patch(self, path: str, data: Any = None) -> Any:
        return await self.request('PATCH', path, data=data)

    async def delete(self, path: str) -> Any:
        return await self.request('DELETE', path)

    async def close(self) -> None:
        """Cancel any in-flight renewal and close the transport."""
        await self.coordinator.close()
        await self.transport.close()
