"""
Core data models for the Hostel API Client.

This module defines the data structures shared by the credential store,
the renewal coordinator and the request dispatcher.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Dict, Any
from enum import Enum

from jose import jwt, JWTError

logger = logging.getLogger(__name__)


class RenewalState(Enum):
    """State of the single-flight credential renewal."""
    IDLE = "idle"
    IN_FLIGHT = "in_flight"


@dataclass(frozen=True)
class Credential:
    """
    Short-lived bearer credential attached to authenticated requests.

    Instances are immutable; the credential store swaps whole instances so
    readers never observe a partially written value.
    """
    token: str
    issued_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    user: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        if not self.token:
            raise ValueError("Credential token cannot be empty")

    @classmethod
    def from_token(cls, token: str, user: Optional[Dict[str, Any]] = None) -> 'Credential':
        """
        Build a credential, reading issued-at and expiry from JWT claims if present.

        The claims are read without verification; the token stays opaque to
        the client and a non-JWT token is accepted as-is.
        """
        issued_at = None
        expires_at = None
        try:
            claims = jwt.get_unverified_claims(token)
            if claims.get('iat'):
                issued_at = datetime.fromtimestamp(claims['iat'])
            if claims.get('exp'):
                expires_at = datetime.fromtimestamp(claims['exp'])
        except (JWTError, TypeError, ValueError, OverflowError, OSError) as e:
            logger.debug(f"Token is not a readable JWT, treating as opaque: {e}")

        return cls(token=token, issued_at=issued_at, expires_at=expires_at, user=user)

    def with_user(self, user: Optional[Dict[str, Any]]) -> 'Credential':
        """Return a copy of this credential carrying the given user profile."""
        return Credential(
            token=self.token,
            issued_at=self.issued_at,
            expires_at=self.expires_at,
            user=user
        )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Check the known expiry; a credential without one is never considered expired."""
        if not self.expires_at:
            return False
        return (now or datetime.now()) >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            'token': self.token,
            'issued_at': self.issued_at.isoformat() if self.issued_at else None,
            'expires_at': self.expires_at.isoformat() if self.expires_at else None,
            'user': self.user,
            'stored_at': datetime.now().isoformat()
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Credential':
        issued_at = data.get('issued_at')
        expires_at = data.get('expires_at')
        return cls(
            token=data['token'],
            issued_at=datetime.fromisoformat(issued_at) if issued_at else None,
            expires_at=datetime.fromisoformat(expires_at) if expires_at else None,
            user=data.get('user')
        )

    def __repr__(self) -> str:
        return f"Credential(token='{mask_token(self.token)}', expires_at={self.expires_at})"


@dataclass
class PendingRequest:
    """A single outbound API call; resent at most once after renewal."""
    method: str
    target: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Any = None
    params: Optional[Dict[str, Any]] = None
    retried: bool = False

    def __post_init__(self):
        self.method = self.method.upper()
        if not self.target:
            raise ValueError("Request target cannot be empty")


@dataclass
class Response:
    """Raw HTTP outcome returned by a transport."""
    status: int
    body: Any = None
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def detail(self, default: str = "Unknown error") -> str:
        """Best-effort error message from the response body."""
        if isinstance(self.body, dict):
            return str(self.body.get('message') or self.body.get('detail') or default)
        if isinstance(self.body, str) and self.body:
            return self.body
        return default


def mask_token(token: Optional[str]) -> str:
    """Shorten a token for log output."""
    if not token:
        return "<none>"
    if len(token) <= 12:
        return "***"
    return f"{token[:6]}...{token[-4:]}"
