"""
Access token renewal provider for the Hostel API Client.
"""

import logging

from hostel_shared.exceptions import AuthRejectedError, APIRequestError, ErrorCode
from hostel_shared.interfaces import IRenewalProvider, ITransport
from hostel_shared.models import Credential

logger = logging.getLogger(__name__)


class AccessTokenRenewalProvider(IRenewalProvider):
    """
    Exchanges the session cookie held by the transport for a new access token.

    The request carries no Authorization header; the server reads the
    session proof from the cookie jar. The call is never retried here.
    """

    def __init__(self, transport: ITransport, renewal_path: str = "/auth/access-token", method: str = "GET"):
        self.transport = transport
        self.renewal_path = renewal_path
        self.method = method

    async def renew(self) -> Credential:
        logger.debug(f"Requesting new access token from {self.renewal_path}")
        response = await self.transport.send(self.method, self.renewal_path)

        if response.status in (401, 403):
            raise AuthRejectedError(
                f"Credential renewal rejected ({response.status}): {response.detail()}",
                status=response.status,
                error_code=ErrorCode.AUTH_RENEWAL_FAILED
            )
        if not response.ok:
            raise APIRequestError(
                f"Credential renewal failed ({response.status}): {response.detail()}",
                status=response.status,
                body=response.body
            )

        token = response.body.get('accessToken') if isinstance(response.body, dict) else None
        if not token:
            raise AuthRejectedError(
                "No access token received from renewal",
                error_code=ErrorCode.AUTH_RENEWAL_FAILED
            )

        return Credential.from_token(token)
