"""
Renewal classifier for the Hostel API Client.

Decides whether a failed response should send its request down the
credential renewal path.
"""

import logging
from typing import Iterable, Optional, FrozenSet
from urllib.parse import urlsplit

from hostel_shared.exceptions import AuthenticationError, AuthExpiredError, AuthRejectedError
from hostel_shared.models import PendingRequest, Response

logger = logging.getLogger(__name__)

AUTH_FAILURE_STATUSES = frozenset({401, 403})

DEFAULT_EXEMPT_PATHS = (
    "/auth/login",
    "/auth/access-token",
    "/auth/refresh",
)


class RenewalClassifier:
    """
    Classifies responses against a static set of exempt endpoints.

    A target is exempt when its path contains any configured exempt path,
    so both relative targets and absolute URLs match.
    """

    def __init__(self, exempt_paths: Optional[Iterable[str]] = None):
        paths = DEFAULT_EXEMPT_PATHS if exempt_paths is None else exempt_paths
        self._exempt_paths: FrozenSet[str] = frozenset(p for p in paths if p)

    @property
    def exempt_paths(self) -> FrozenSet[str]:
        return self._exempt_paths

    def is_exempt(self, target: str) -> bool:
        path = urlsplit(target).path or target
        return any(exempt in path for exempt in self._exempt_paths)

    def is_renewal_eligible(self, response: Response, request: PendingRequest) -> bool:
        return (
            response.status in AUTH_FAILURE_STATUSES
            and not self.is_exempt(request.target)
            and not request.retried
        )

    def classify(self, response: Response, request: PendingRequest) -> Optional[AuthenticationError]:
        """
        Map an auth failure to AuthExpiredError (renewable) or AuthRejectedError (terminal).

        Returns None for any status that is not an authentication failure.
        """
        if response.status not in AUTH_FAILURE_STATUSES:
            return None

        detail = response.detail("Unauthorized" if response.status == 401 else "Forbidden")

        if self.is_renewal_eligible(response, request):
            return AuthExpiredError(
                f"Access credential rejected ({response.status}): {detail}",
                status=response.status,
                context={'method': request.method, 'target': request.target}
            )

        reason = "already retried" if request.retried else "exempt endpoint"
        logger.debug(f"{request.method} {request.target} auth failure is terminal ({reason})")
        return AuthRejectedError(
            f"Authentication failed ({response.status}): {detail}",
            status=response.status,
            context={'method': request.method, 'target': request.target, 'reason': reason}
        )
