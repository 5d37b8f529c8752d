"""
Shared fixtures and fakes for the Hostel API Client tests.
"""

import asyncio
from typing import Any, Callable, Dict, List, Optional

import pytest

from hostel_shared.interfaces import ITransport, IRenewalProvider, INavigator
from hostel_shared.models import Credential, Response
from hostel_client.auth.classifier import RenewalClassifier
from hostel_client.auth.coordinator import RenewalCoordinator
from hostel_client.auth.credential_store import CredentialStore
from hostel_client.auth.session import SessionInvalidator
from hostel_client.auth.token_storage import MemoryTokenStorage
from hostel_client.api_client import RequestDispatcher


class FakeTransport(ITransport):
    """Transport stub that records every call and answers through a handler."""

    def __init__(self, handler: Optional[Callable[[str, str, Dict[str, str]], Response]] = None):
        self.handler = handler or (lambda method, url, headers: Response(200, {'ok': True}))
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    async def send(self, method, url, headers=None, body=None, params=None) -> Response:
        headers = dict(headers or {})
        self.calls.append({'method': method, 'url': url, 'headers': headers, 'body': body, 'params': params})
        # yield so concurrent requests interleave like real network calls
        await asyncio.sleep(0)
        result = self.handler(method, url, headers)
        if isinstance(result, Exception):
            raise result
        return result

    async def close(self) -> None:
        self.closed = True

    def calls_to(self, url: str) -> List[Dict[str, Any]]:
        return [call for call in self.calls if call['url'] == url]


class FakeRenewalProvider(IRenewalProvider):
    """Renewal provider stub with a configurable delay and outcome.

    Set `gate` to an asyncio.Event inside a test to hold the renewal until
    the event is set (or forever, for timeout tests).
    """

    def __init__(self, token: Optional[str] = "A2", error: Optional[Exception] = None, delay: float = 0.01):
        self.token = token
        self.error = error
        self.delay = delay
        self.calls = 0
        self.gate: Optional[asyncio.Event] = None

    async def renew(self) -> Credential:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return Credential(token=self.token) if self.token else None


class RecordingNavigator(INavigator):
    def __init__(self):
        self.redirects: List[Optional[str]] = []

    def redirect_to_login(self, reason: Optional[str] = None) -> None:
        self.redirects.append(reason)


def reject_token(token: str, status: int = 401) -> Callable[[str, str, Dict[str, str]], Response]:
    """Handler answering `status` whenever the request carries `token`, 200 otherwise."""
    def handler(method, url, headers):
        if headers.get('Authorization') == f'Bearer {token}':
            return Response(status, {'message': 'Invalid or expired token'})
        return Response(200, {'url': url, 'authorization': headers.get('Authorization')})
    return handler


@pytest.fixture
def storage():
    return MemoryTokenStorage()


@pytest.fixture
def credential_store(storage):
    return CredentialStore(storage)


@pytest.fixture
def navigator():
    return RecordingNavigator()


@pytest.fixture
def invalidator(credential_store, navigator):
    return SessionInvalidator(credential_store, navigator=navigator)


@pytest.fixture
def provider():
    return FakeRenewalProvider()


@pytest.fixture
def coordinator(provider, credential_store, invalidator):
    return RenewalCoordinator(provider, credential_store, invalidator, renewal_timeout=1.0)


@pytest.fixture
def classifier():
    return RenewalClassifier(["/auth/login", "/auth/access-token"])


@pytest.fixture
def transport():
    return FakeTransport(reject_token("A1"))


@pytest.fixture
def dispatcher(transport, credential_store, classifier, coordinator):
    return RequestDispatcher(transport, credential_store, classifier, coordinator)
