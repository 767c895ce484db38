"""SSO authentication via SAML token exchange.

A SAML assertion is exchanged once for a realm-wide temp token, which is then
reused for every request until the server rejects it with 401. Concurrent
callers arriving while an exchange is in flight wait for it instead of
starting their own.
"""

import logging
import threading
from typing import Optional

import httpx

from qbclient.domain.interfaces.auth import AuthStrategy
from qbclient.domain.models.common import AuthToken, DbId
from qbclient.domain.models.errors import NetworkError, QuickbaseError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.quickbase.com/v1"

GRANT_TYPE = "urn:ietf:params:oauth:grant-type:token-exchange"
REQUESTED_TOKEN_TYPE = "urn:quickbase:params:oauth:token-type:temp_token"
SUBJECT_TOKEN_TYPE = "urn:ietf:params:oauth:token-type:saml2"


class SSOTokenStrategy(AuthStrategy):
    """Exchanges a SAML assertion for a QuickBase temp token."""

    def __init__(
        self,
        saml_token: str,
        realm: str,
        base_url: str = DEFAULT_BASE_URL,
        http_client: Optional[httpx.Client] = None,
    ):
        """Initializes the strategy.

        Args:
            saml_token: Base64url-encoded SAML assertion from the identity
                provider.
            realm: QuickBase realm subdomain.
            base_url: JSON API base URL.
            http_client: Client used for the exchange.
        """
        self.realm = realm
        self.base_url = base_url.rstrip("/")
        self._saml_token = saml_token
        self._owns_http = http_client is None
        self._http = http_client or httpx.Client(timeout=30.0)
        self._current: Optional[AuthToken] = None
        self._pending: Optional[threading.Event] = None
        self._lock = threading.Lock()

    def get_token(self, dbid: Optional[DbId]) -> AuthToken:
        """Returns the exchanged token; the dbid is ignored."""
        while True:
            with self._lock:
                if self._current:
                    return self._current
                pending = self._pending
                owner = pending is None
                if owner:
                    pending = threading.Event()
                    self._pending = pending

            if not owner:
                pending.wait()
                continue

            try:
                token = self._exchange_token()
                with self._lock:
                    self._current = token
                return token
            finally:
                with self._lock:
                    self._pending = None
                pending.set()

    def invalidate(self) -> None:
        with self._lock:
            self._current = None

    def _exchange_token(self) -> AuthToken:
        logger.debug(f"SSO token exchange for realm: {self.realm}")
        headers = {
            "QB-Realm-Hostname": f"{self.realm}.quickbase.com",
            "Content-Type": "application/json",
        }
        payload = {
            "grant_type": GRANT_TYPE,
            "requested_token_type": REQUESTED_TOKEN_TYPE,
            "subject_token": self._saml_token,
            "subject_token_type": SUBJECT_TOKEN_TYPE,
        }

        try:
            response = self._http.post(f"{self.base_url}/auth/oauth/token", headers=headers, json=payload)
        except httpx.RequestError as e:
            raise NetworkError(f"SSO token exchange failed: {e}", cause=e) from e

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if response.status_code != 200:
            message = body.get("message") or "unknown error"
            raise QuickbaseError(
                f"SSO token exchange failed: {message} (status: {response.status_code})",
                status_code=response.status_code,
            )

        token = body.get("access_token")
        if not token:
            raise QuickbaseError("No access token returned from SSO token exchange")
        return AuthToken(token)

    def apply_auth(self, request: httpx.Request, token: AuthToken) -> None:
        request.headers["Authorization"] = f"QB-TEMP-TOKEN {token}"

    def on_auth_error(self, status_code: int, dbid: Optional[DbId], attempt: int, max_attempts: int) -> Optional[AuthToken]:
        if status_code != 401 or attempt >= max_attempts - 1:
            return None
        logger.debug("SSO token rejected, exchanging again")
        self.invalidate()
        return self.get_token(dbid)

    def close(self) -> None:
        if self._owns_http:
            self._http.close()
