"""QuickBase JSON API client.

Wires the request pipeline together: settings, auth strategy, throttle,
transport and executor. Endpoint helpers are thin; every call goes through
``RequestExecutor.execute`` and every paged call through ``PaginatedRequest``.

Example:

    with Client(realm="mycompany", user_token="b12345_xyz") as client:
        records = client.run_query({"from": "bck7gp3q2", "select": [3, 6]}).all()
"""

import copy
import dataclasses
import logging
import threading
from typing import Any, Callable, Dict, Optional

import httpx

from qbclient import __version__
from qbclient.domain.events.api_events import RequestCompleted, RetryScheduled
from qbclient.domain.interfaces.auth import AuthStrategy
from qbclient.domain.interfaces.throttle import Throttle
from qbclient.domain.interfaces.transport import Transport
from qbclient.domain.models.common import RateLimitInfo
from qbclient.domain.models.errors import ApiError
from qbclient.domain.models.pagination import Page, PaginationMetadata
from qbclient.infrastructure.auth.user_token import UserTokenStrategy
from qbclient.infrastructure.config.settings import ClientSettings, load_client_settings
from qbclient.infrastructure.http.transport import HttpxTransport
from qbclient.infrastructure.pagination.paginator import PaginatedRequest
from qbclient.infrastructure.resilience.request_executor import RequestExecutor
from qbclient.infrastructure.resilience.throttle import NoOpThrottle, SlidingWindowThrottle

logger = logging.getLogger(__name__)

USER_AGENT = f"qbclient/{__version__}"


def validate_realm(realm: Optional[str]) -> str:
    """Checks that `realm` is a bare subdomain such as "mycompany".

    Raises:
        ValueError: If the realm is empty or looks like a hostname.
    """
    if not realm:
        raise ValueError("realm is required")
    if "." in realm:
        raise ValueError('realm should be just the subdomain (e.g., "mycompany" not "mycompany.quickbase.com")')
    return realm


class Client:
    """Entry point for QuickBase API calls.

    Thread-safe: concurrent calls share one connection pool and one throttle.
    """

    def __init__(
        self,
        settings: Optional[ClientSettings] = None,
        auth: Optional[AuthStrategy] = None,
        transport: Optional[Transport] = None,
        throttle: Optional[Throttle] = None,
        **overrides: Any,
    ):
        """Initializes the client.

        Args:
            settings: Fully built settings. When omitted they are loaded from
                the environment, .env and YAML configuration. Either way,
                `overrides` (e.g. ``realm=``, ``user_token=``) are applied on
                top; an unknown override name raises TypeError.
            auth: Auth strategy. Defaults to UserTokenStrategy with the
                configured user token.
            transport: Transport. Defaults to a pooled HttpxTransport.
            throttle: Throttle. Defaults to a SlidingWindowThrottle when
                `throttle_limit` is set, otherwise no throttling.
        """
        if settings is None:
            settings = load_client_settings(**overrides)
        elif overrides:
            settings = dataclasses.replace(settings, **{k: v for k, v in overrides.items() if v is not None})
        self.settings = settings
        self.realm = validate_realm(self.settings.realm)
        self.base_url = self.settings.base_url.rstrip("/")

        self.auth = auth or UserTokenStrategy(self.settings.user_token or "")
        self.transport = transport or HttpxTransport(timeout=self.settings.request_timeout)
        if throttle is None:
            limit = self.settings.throttle_limit
            throttle = SlidingWindowThrottle(limit) if limit else NoOpThrottle()
        self.throttle = throttle

        self.executor = RequestExecutor(
            transport=self.transport,
            auth=self.auth,
            throttle=self.throttle,
            policy=self.settings.retry_policy,
            request_timeout=self.settings.request_timeout,
            read_only=self.settings.read_only,
        )
        logger.info(f"Client initialized for realm '{self.realm}' (read_only={self.settings.read_only})")

    # --- Observers ---

    def on_request(self, callback: Callable[[RequestCompleted], None]) -> None:
        self.executor.on_request(callback)

    def on_retry(self, callback: Callable[[RetryScheduled], None]) -> None:
        self.executor.on_retry(callback)

    def on_rate_limit(self, callback: Callable[[RateLimitInfo], None]) -> None:
        self.executor.on_rate_limit(callback)

    # --- Requests ---

    def build_request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
    ) -> httpx.Request:
        """Builds a request for `path`, relative to the API base URL."""
        headers = {
            "QB-Realm-Hostname": f"{self.realm}.quickbase.com",
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
        }
        return httpx.Request(
            method.upper(),
            f"{self.base_url}/{path.lstrip('/')}",
            params=params,
            json=json,
            headers=headers,
        )

    def request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
        cancel: Optional[threading.Event] = None,
    ) -> Any:
        """Sends one API call and returns the decoded JSON body.

        Args:
            method: HTTP method.
            path: Endpoint path relative to the base URL, e.g. "/records/query".
            params: Query parameters.
            json: Request body, encoded as JSON.
            cancel: Optional event that aborts the call when set.

        Returns:
            The decoded response body, or None for an empty response.

        Raises:
            QuickbaseError: Any error from the request pipeline.
        """
        response = self.executor.execute(self.build_request(method, path, params, json), cancel=cancel)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise ApiError(f"Invalid JSON in response: {e}", status_code=response.status_code) from e

    def paginate(
        self,
        method: str,
        path: str,
        items_key: str = "data",
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        cancel: Optional[threading.Event] = None,
        auto_paginate: Optional[bool] = None,
    ) -> PaginatedRequest:
        """Wraps a paged endpoint.

        When the call has a JSON body, the offset goes into ``options.skip``
        and the continuation token into ``nextPageToken`` of the body;
        otherwise both are sent as query parameters.

        Args:
            items_key: Key of the item list in the response body.
            auto_paginate: Overrides the configured auto-pagination for
                ``PaginatedRequest.execute``.
        """
        def fetch(skip: int, next_token: str) -> Page:
            page_params = dict(params or {})
            page_body = copy.deepcopy(json) if json is not None else None
            if page_body is not None:
                if next_token:
                    page_body["nextPageToken"] = next_token
                elif skip:
                    page_body.setdefault("options", {})["skip"] = skip
            else:
                if next_token:
                    page_params["nextPageToken"] = next_token
                elif skip:
                    page_params["skip"] = skip
            body = self.request(method, path, params=page_params or None, json=page_body, cancel=cancel)
            return self._to_page(body, items_key)

        if auto_paginate is None:
            auto_paginate = self.settings.auto_paginate
        return PaginatedRequest(fetch, auto_paginate=auto_paginate)

    @staticmethod
    def _to_page(body: Any, items_key: str) -> Page:
        if not isinstance(body, dict):
            return Page(items=[], raw=None)
        items = body.get(items_key) or []
        return Page(items=list(items), metadata=PaginationMetadata.from_dict(body.get("metadata")), raw=body)

    # --- Endpoints ---

    def run_query(self, query: Dict[str, Any], cancel: Optional[threading.Event] = None) -> PaginatedRequest:
        """Queries records (``POST /records/query``), paging by ``options.skip``.

        Args:
            query: Query body, e.g. ``{"from": tableId, "select": [...], "where": ...}``.
        """
        return self.paginate("POST", "/records/query", items_key="data", json=query, cancel=cancel)

    def get_users(
        self,
        account_id: Optional[str] = None,
        emails: Optional[list] = None,
        app_ids: Optional[list] = None,
        cancel: Optional[threading.Event] = None,
    ) -> PaginatedRequest:
        """Lists users (``POST /users``), paging by ``nextPageToken``."""
        body: Dict[str, Any] = {}
        if emails:
            body["emails"] = list(emails)
        if app_ids:
            body["appIds"] = list(app_ids)
        params = {"accountId": account_id} if account_id else None
        return self.paginate("POST", "/users", items_key="users", params=params, json=body, cancel=cancel)

    # --- Lifecycle ---

    def close(self) -> None:
        self.transport.close()
        self.auth.close()

    def __enter__(self) -> "Client":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
