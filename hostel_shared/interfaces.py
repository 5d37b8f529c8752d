"""
Core interfaces for the Hostel API Client.

This module defines the abstract boundaries to the external collaborators
the authenticated client depends on.
"""

from abc import ABC, abstractmethod
from typing import Optional, Dict, Any

from .models import Credential, Response


class ITransport(ABC):
    """Interface for performing raw network calls."""

    @abstractmethod
    async def send(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        body: Any = None,
        params: Optional[Dict[str, Any]] = None
    ) -> Response:
        """Send a request and return the raw response, raising TransportError on connectivity failure."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release network resources."""
        pass


class IRenewalProvider(ABC):
    """Interface for exchanging the ambient session proof for a new credential."""

    @abstractmethod
    async def renew(self) -> Credential:
        """Obtain a new credential or raise."""
        pass


class IDurableStorage(ABC):
    """Interface for persisting the credential across restarts."""

    @abstractmethod
    def load(self) -> Optional[Credential]:
        """Load the persisted credential, if any."""
        pass

    @abstractmethod
    def save(self, credential: Credential) -> None:
        """Persist the credential."""
        pass

    @abstractmethod
    def erase(self) -> None:
        """Erase the persisted credential."""
        pass


class INavigator(ABC):
    """Interface to the application navigation used to force re-authentication."""

    @abstractmethod
    def redirect_to_login(self, reason: Optional[str] = None) -> None:
        """Route the user to the re-authentication entry point."""
        pass
