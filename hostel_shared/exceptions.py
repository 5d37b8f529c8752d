"""
Exception hierarchy for the Hostel API Client.

This module defines structured exceptions with error codes, context information,
and recovery suggestions for consistent error handling across the client.
"""

import asyncio
from datetime import datetime
from typing import Optional, Dict, Any, List
from enum import Enum


class ErrorCode(Enum):
    """Standardized error codes for the Hostel API Client."""

    # Authentication Errors (1000-1099)
    AUTH_TOKEN_EXPIRED = "AUTH_1001"
    AUTH_REJECTED = "AUTH_1002"
    AUTH_RENEWAL_FAILED = "AUTH_1003"
    AUTH_RENEWAL_TIMEOUT = "AUTH_1004"
    AUTH_RENEWAL_CANCELLED = "AUTH_1005"
    AUTH_LOGIN_FAILED = "AUTH_1006"

    # Network and Communication Errors (2000-2099)
    NETWORK_CONNECTION_FAILED = "NETWORK_2001"
    NETWORK_TIMEOUT = "NETWORK_2002"

    # API Errors (3000-3099)
    API_BAD_REQUEST = "API_3001"
    API_NOT_FOUND = "API_3002"
    API_SERVER_ERROR = "API_3003"
    API_INVALID_RESPONSE = "API_3004"

    # Storage Errors (4000-4099)
    STORAGE_WRITE_FAILED = "STORAGE_4001"
    STORAGE_READ_FAILED = "STORAGE_4002"

    # Configuration Errors (8000-8099)
    CONFIG_INVALID_VALUE = "CONFIG_8001"
    CONFIG_INVALID_FORMAT = "CONFIG_8002"

    # Internal Errors (9000-9099)
    INTERNAL_UNEXPECTED_ERROR = "INTERNAL_9001"


class ErrorSeverity(Enum):
    """Error severity levels for logging and handling."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RecoveryAction(Enum):
    """Suggested recovery actions for errors."""
    RETRY_WITH_BACKOFF = "retry_with_backoff"
    RECONNECT = "reconnect"
    REFRESH_TOKEN = "refresh_token"
    REAUTHENTICATE = "reauthenticate"
    USER_INTERVENTION = "user_intervention"
    CONTACT_ADMIN = "contact_admin"


class HostelClientError(Exception):
    """
    Base exception class for all Hostel API Client errors.

    Provides structured error information including error codes, context,
    and recovery suggestions for consistent error handling.
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_UNEXPECTED_ERROR,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        context: Optional[Dict[str, Any]] = None,
        recovery_actions: Optional[List[RecoveryAction]] = None,
        cause: Optional[Exception] = None,
        user_message: Optional[str] = None
    ):
        super().__init__(message)

        self.message = message
        self.error_code = error_code
        self.severity = severity
        self.context = context or {}
        self.recovery_actions = recovery_actions or []
        self.cause = cause
        self.user_message = user_message or message
        self.timestamp = datetime.now()

        if cause:
            self.context['cause_type'] = type(cause).__name__
            self.context['cause_message'] = str(cause)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary format for serialization."""
        return {
            'error': {
                'code': self.error_code.value,
                'message': self.message,
                'user_message': self.user_message,
                'severity': self.severity.value,
                'timestamp': self.timestamp.isoformat(),
                'context': self.context,
                'recovery_actions': [action.value for action in self.recovery_actions],
                'cause': {
                    'type': self.context.get('cause_type'),
                    'message': self.context.get('cause_message')
                } if self.cause else None
            }
        }


class TransportError(HostelClientError):
    """Connectivity failure while talking to the server. Never renewal-eligible."""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.NETWORK_CONNECTION_FAILED, **kwargs):
        super().__init__(
            message=message,
            error_code=error_code,
            severity=ErrorSeverity.MEDIUM,
            recovery_actions=[RecoveryAction.RETRY_WITH_BACKOFF, RecoveryAction.RECONNECT],
            **kwargs
        )


class AuthenticationError(HostelClientError):
    """Base class for authentication failures carrying the HTTP status, if any."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        status: Optional[int] = None,
        recovery_actions: Optional[List[RecoveryAction]] = None,
        **kwargs
    ):
        context = kwargs.pop('context', {})
        if status is not None:
            context['status'] = status

        super().__init__(
            message=message,
            error_code=error_code,
            severity=kwargs.pop('severity', ErrorSeverity.HIGH),
            recovery_actions=recovery_actions or [RecoveryAction.REAUTHENTICATE],
            context=context,
            **kwargs
        )
        self.status = status


class AuthExpiredError(AuthenticationError):
    """401/403 on a first attempt against a non-exempt endpoint; recovered by renewal."""

    def __init__(self, message: str, status: Optional[int] = None, **kwargs):
        super().__init__(
            message=message,
            error_code=ErrorCode.AUTH_TOKEN_EXPIRED,
            status=status,
            recovery_actions=[RecoveryAction.REFRESH_TOKEN],
            severity=ErrorSeverity.LOW,
            **kwargs
        )


class AuthRejectedError(AuthenticationError):
    """Terminal authentication failure."""

    def __init__(self, message: str, status: Optional[int] = None, error_code: ErrorCode = ErrorCode.AUTH_REJECTED, **kwargs):
        super().__init__(
            message=message,
            error_code=error_code,
            status=status,
            **kwargs
        )


class RenewalTimeoutError(AuthRejectedError):
    """The renewal call did not complete within the configured timeout."""

    def __init__(self, message: str, timeout: Optional[float] = None, **kwargs):
        context = kwargs.pop('context', {})
        if timeout is not None:
            context['timeout_seconds'] = timeout
        super().__init__(
            message=message,
            error_code=ErrorCode.AUTH_RENEWAL_TIMEOUT,
            context=context,
            **kwargs
        )
        self.timeout = timeout


class APIRequestError(HostelClientError):
    """Non-authentication HTTP error returned by the server."""

    def __init__(
        self,
        message: str,
        status: int,
        error_code: ErrorCode = ErrorCode.API_BAD_REQUEST,
        body: Any = None,
        **kwargs
    ):
        context = kwargs.pop('context', {})
        context['status'] = status
        super().__init__(
            message=message,
            error_code=error_code,
            severity=kwargs.pop('severity', ErrorSeverity.MEDIUM),
            recovery_actions=kwargs.pop('recovery_actions', [RecoveryAction.USER_INTERVENTION]),
            context=context,
            **kwargs
        )
        self.status = status
        self.body = body


class ServerError(APIRequestError):
    """Server-side (5xx) errors."""

    def __init__(self, message: str, status: int, **kwargs):
        super().__init__(
            message=message,
            status=status,
            error_code=ErrorCode.API_SERVER_ERROR,
            severity=ErrorSeverity.HIGH,
            recovery_actions=[RecoveryAction.RETRY_WITH_BACKOFF, RecoveryAction.CONTACT_ADMIN],
            **kwargs
        )


class TokenStorageError(HostelClientError):
    """Durable credential storage errors."""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.STORAGE_WRITE_FAILED, **kwargs):
        super().__init__(
            message=message,
            error_code=error_code,
            severity=ErrorSeverity.HIGH,
            recovery_actions=[RecoveryAction.USER_INTERVENTION],
            **kwargs
        )


class ConfigurationError(HostelClientError):
    """Configuration related errors."""

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        context = kwargs.pop('context', {})
        if config_key:
            context['config_key'] = config_key

        super().__init__(
            message=message,
            error_code=kwargs.pop('error_code', ErrorCode.CONFIG_INVALID_VALUE),
            severity=ErrorSeverity.HIGH,
            recovery_actions=[RecoveryAction.USER_INTERVENTION],
            context=context,
            **kwargs
        )


def handle_exception(
    exception: Exception,
    context: Optional[Dict[str, Any]] = None,
    default_error_code: ErrorCode = ErrorCode.INTERNAL_UNEXPECTED_ERROR
) -> HostelClientError:
    """
    Convert a generic exception to a structured HostelClientError.

    Args:
        exception: The original exception
        context: Additional context information
        default_error_code: Default error code if specific mapping not found

    Returns:
        Structured HostelClientError
    """
    if isinstance(exception, HostelClientError):
        return exception

    if isinstance(exception, (asyncio.TimeoutError, TimeoutError)):
        return TransportError(
            message=str(exception) or "Request timed out",
            error_code=ErrorCode.NETWORK_TIMEOUT,
            context=context,
            cause=exception
        )

    if isinstance(exception, (ConnectionError, OSError)):
        return TransportError(
            message=str(exception),
            context=context,
            cause=exception
        )

    return HostelClientError(
        message=str(exception),
        error_code=default_error_code,
        context=context,
        cause=exception
    )
