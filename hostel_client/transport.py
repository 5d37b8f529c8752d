"""
HTTP transport for the Hostel API Client.

Performs raw network calls over a shared aiohttp session. The session's
cookie jar carries the server-issued session cookie used for renewal.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional, Dict, Any
from urllib.parse import urljoin

import aiohttp
from aiohttp import ClientSession, ClientTimeout, ClientError

from hostel_shared.exceptions import TransportError, APIRequestError, ErrorCode
from hostel_shared.interfaces import ITransport
from hostel_shared.models import Response

logger = logging.getLogger(__name__)


class AiohttpTransport(ITransport):
    """
    aiohttp-based transport.

    Relative targets are resolved against the base URL; any HTTP status is
    returned as a Response, only connectivity failures raise.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        cookie_jar: Optional[aiohttp.CookieJar] = None,
        user_agent: str = "HostelAPIClient/1.0"
    ):
        self.base_url = base_url.rstrip('/') + '/'
        self.timeout = ClientTimeout(total=timeout)
        self.user_agent = user_agent
        self._cookie_jar = cookie_jar
        self._session: Optional[ClientSession] = None

        logger.info(f"Transport initialized for server: {self.base_url}")

    async def __aenter__(self):
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _ensure_session(self) -> ClientSession:
        """Ensure HTTP session is available."""
        if self._session is None or self._session.closed:
            if self._cookie_jar is None:
                # unsafe=True keeps cookies for IP-address hosts such as 127.0.0.1
                self._cookie_jar = aiohttp.CookieJar(unsafe=True)
            connector = aiohttp.TCPConnector(
                limit=10,
                limit_per_host=5,
                keepalive_timeout=30,
                enable_cleanup_closed=True
            )
            self._session = ClientSession(
                connector=connector,
                timeout=self.timeout,
                cookie_jar=self._cookie_jar,
                headers={'User-Agent': self.user_agent}
            )
        return self._session

    @property
    def cookie_jar(self) -> Optional[aiohttp.CookieJar]:
        return self._cookie_jar

    def resolve_url(self, target: str) -> str:
        if target.startswith(('http://', 'https://')):
            return target
        return urljoin(self.base_url, target.lstrip('/'))

    async def send(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        body: Any = None,
        params: Optional[Dict[str, Any]] = None
    ) -> Response:
        """
        Make a single HTTP request.

        Args:
            method: HTTP method (GET, POST, PUT, DELETE, ...)
            url: Absolute URL or path relative to the base URL
            headers: Request headers
            body: JSON-serializable request body
            params: Query parameters

        Returns:
            Response with the decoded body

        Raises:
            TransportError: On connectivity failure or timeout
            APIRequestError: If the response body cannot be decoded as text
        """
        session = await self._ensure_session()
        full_url = self.resolve_url(url)

        logger.debug(f"{method} {full_url}")

        try:
            async with session.request(
                method=method,
                url=full_url,
                json=body,
                params=params,
                headers=headers or {}
            ) as response:
                return Response(
                    status=response.status,
                    body=await self._read_body(response),
                    headers=dict(response.headers)
                )

        except asyncio.TimeoutError as e:
            logger.warning(f"Request timed out: {method} {full_url}")
            raise TransportError(
                f"Request to {full_url} timed out",
                error_code=ErrorCode.NETWORK_TIMEOUT,
                context={'method': method, 'url': full_url},
                cause=e
            )
        except (ClientError, OSError) as e:
            logger.warning(f"Network error: {method} {full_url}: {e}")
            raise TransportError(
                f"Network request to {full_url} failed: {e}",
                context={'method': method, 'url': full_url},
                cause=e
            )

    async def _read_body(self, response: aiohttp.ClientResponse) -> Any:
        raw = await response.read()
        if not raw:
            return None
        try:
            text = raw.decode(response.get_encoding())
        except (UnicodeDecodeError, LookupError) as e:
            raise APIRequestError(
                f"Response from {response.url} is not valid text: {e}",
                status=response.status,
                error_code=ErrorCode.API_INVALID_RESPONSE,
                context={'url': str(response.url)},
                cause=e
            )
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            return text

    def load_cookies(self, path: Path) -> None:
        """Restore the cookie jar saved by a previous run."""
        if self._cookie_jar is None:
            self._cookie_jar = aiohttp.CookieJar(unsafe=True)
        if path.exists():
            try:
                self._cookie_jar.load(path)
                logger.debug(f"Loaded cookies from {path}")
            except Exception as e:
                logger.warning(f"Failed to load cookies from {path}: {e}")

    def save_cookies(self, path: Path) -> None:
        """Persist the cookie jar for the next run."""
        if self._cookie_jar is None:
            return
        path.parent.mkdir(parents=True, exist_ok=True)
        self._cookie_jar.save(path)

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None
