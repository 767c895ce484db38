"""User token authentication.

User tokens are long-lived and work across every app the user can access.
Generate one at ``https://YOUR-REALM.quickbase.com/db/main?a=UserTokens``.
"""

from typing import Optional

import httpx

from qbclient.domain.interfaces.auth import AuthStrategy
from qbclient.domain.models.common import AuthToken, DbId


class UserTokenStrategy(AuthStrategy):
    """Authenticates every request with the same user token."""

    def __init__(self, token: str):
        if not token:
            raise ValueError("User token not provided.")
        self._token = AuthToken(token)

    def get_token(self, dbid: Optional[DbId]) -> AuthToken:
        return self._token

    def apply_auth(self, request: httpx.Request, token: AuthToken) -> None:
        request.headers["Authorization"] = f"QB-USER-TOKEN {token}"

    def on_auth_error(self, status_code: int, dbid: Optional[DbId], attempt: int, max_attempts: int) -> Optional[AuthToken]:
        # User tokens can't be refreshed; retry with the same one unless this is the last chance.
        if status_code != 401 or attempt >= max_attempts - 1:
            return None
        return self._token

    def __repr__(self) -> str:
        return "UserTokenStrategy(token=***)"
