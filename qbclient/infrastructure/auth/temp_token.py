"""Temporary token authentication.

Temp tokens are short-lived (about five minutes) and scoped to one table or
app. Tokens are cached per dbid and refetched when they expire or when the
server rejects them with 401. Concurrent callers needing the same dbid share
a single fetch.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import httpx

from qbclient.domain.interfaces.auth import AuthStrategy
from qbclient.domain.models.common import AuthToken, DbId
from qbclient.domain.models.errors import MissingTokenError, NetworkError, QuickbaseError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.quickbase.com/v1"
DEFAULT_TOKEN_LIFESPAN_S = 290.0


@dataclass
class _CachedToken:
    token: AuthToken
    expires_at: float


class TempTokenStrategy(AuthStrategy):
    """Fetches and caches table-scoped temporary tokens."""

    def __init__(
        self,
        realm: str,
        user_token: Optional[str] = None,
        initial_token: Optional[str] = None,
        base_url: str = DEFAULT_BASE_URL,
        lifespan: float = DEFAULT_TOKEN_LIFESPAN_S,
        http_client: Optional[httpx.Client] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initializes the strategy.

        Args:
            realm: QuickBase realm subdomain.
            user_token: Credential used to request temp tokens, if the
                process has no browser session.
            initial_token: Token to use for requests with no dbid, typically
                one POSTed to the server by a QuickBase formula-URL field.
            base_url: JSON API base URL.
            lifespan: Seconds a fetched token is reused before refetching.
            http_client: Client used for token fetches.
            clock: Monotonic time source for cache expiry.
        """
        self.realm = realm
        self.base_url = base_url.rstrip("/")
        self.lifespan = lifespan
        self._user_token = user_token
        self._initial_token = AuthToken(initial_token) if initial_token else None
        self._owns_http = http_client is None
        self._http = http_client or httpx.Client(timeout=30.0)
        self._clock = clock
        self._cache: Dict[str, _CachedToken] = {}
        self._pending: Dict[str, threading.Event] = {}
        self._lock = threading.Lock()

    def get_token(self, dbid: Optional[DbId]) -> AuthToken:
        if not dbid:
            if self._initial_token:
                return self._initial_token
            raise QuickbaseError("dbid required for temp token authentication")

        while True:
            with self._lock:
                cached = self._cache.get(dbid)
                if cached and self._clock() < cached.expires_at:
                    return cached.token
                pending = self._pending.get(dbid)
                owner = pending is None
                if owner:
                    pending = threading.Event()
                    self._pending[dbid] = pending

            if not owner:
                pending.wait()
                continue

            try:
                token = self._fetch_token(dbid)
                with self._lock:
                    self._cache[dbid] = _CachedToken(token, self._clock() + self.lifespan)
                return token
            finally:
                with self._lock:
                    self._pending.pop(dbid, None)
                pending.set()

    def invalidate(self, dbid: DbId) -> None:
        with self._lock:
            self._cache.pop(dbid, None)

    def _fetch_token(self, dbid: DbId) -> AuthToken:
        logger.debug(f"Token fetch for dbid: {dbid}")
        headers = {
            "QB-Realm-Hostname": f"{self.realm}.quickbase.com",
            "Content-Type": "application/json",
        }
        if self._user_token:
            headers["Authorization"] = f"QB-USER-TOKEN {self._user_token}"

        try:
            response = self._http.get(f"{self.base_url}/auth/temporary/{dbid}", headers=headers)
        except httpx.RequestError as e:
            raise NetworkError(f"Fetching temp token failed: {e}", cause=e) from e

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if response.status_code != 200:
            message = body.get("message") or "unknown error"
            raise QuickbaseError(f"API error: {message}", status_code=response.status_code)

        token = body.get("temporaryAuthorization")
        if not token:
            raise MissingTokenError(dbid)
        return AuthToken(token)

    def apply_auth(self, request: httpx.Request, token: AuthToken) -> None:
        request.headers["Authorization"] = f"QB-TEMP-TOKEN {token}"

    def on_auth_error(self, status_code: int, dbid: Optional[DbId], attempt: int, max_attempts: int) -> Optional[AuthToken]:
        if status_code != 401 or attempt >= max_attempts - 1 or not dbid:
            return None
        logger.debug(f"Token refresh for dbid: {dbid}")
        self.invalidate(dbid)
        return self.get_token(dbid)

    def close(self) -> None:
        if self._owns_http:
            self._http.close()
