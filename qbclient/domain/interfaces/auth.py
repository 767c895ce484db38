"""Interface for authentication strategies.

QuickBase accepts long-lived user tokens and short-lived, table-scoped
temporary tokens. Strategies hide the difference from the request executor.
"""

import abc
from typing import Optional

import httpx

from ..models.common import AuthToken, DbId


class AuthStrategy(abc.ABC):
    """Abstract Base Class for attaching credentials to requests."""

    @abc.abstractmethod
    def get_token(self, dbid: Optional[DbId]) -> AuthToken:
        """Returns the token to use for a request.

        Args:
            dbid: Table or app id the request targets, if one could be found.
                Strategies with global tokens ignore it.

        Raises:
            QuickbaseError: If no token can be obtained.
        """
        pass

    @abc.abstractmethod
    def apply_auth(self, request: httpx.Request, token: AuthToken) -> None:
        """Sets the Authorization header on the request."""
        pass

    @abc.abstractmethod
    def on_auth_error(
        self,
        status_code: int,
        dbid: Optional[DbId],
        attempt: int,
        max_attempts: int,
    ) -> Optional[AuthToken]:
        """Handles a 401 response.

        Args:
            status_code: HTTP status of the failed attempt.
            dbid: Table or app id the request targeted.
            attempt: The attempt that failed (1-based).
            max_attempts: Maximum attempts for the call.

        Returns:
            A token to retry with, or None to give up.
        """
        pass

    def close(self) -> None:
        """Releases any resources held by the strategy. Optional for implementations."""
        pass
