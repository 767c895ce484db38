"""Helpers that look inside a request before it is sent.

Temp tokens are scoped to a table, so the executor needs the table (or app)
id a request targets. Read-only mode needs to know whether a request writes.
"""

import json
import re
from typing import Optional

import httpx

from qbclient.domain.models.common import DbId

TABLE_ID_PATTERN = re.compile(r"/tables/([^/?]+)")
APP_ID_PATTERN = re.compile(r"/apps/([^/?]+)")

WRITE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})

# POST endpoints that only read. Entries ending in '/' match by prefix.
READ_ONLY_POST_ENDPOINTS = (
    "/v1/records/query",
    "/v1/reports/",
    "/v1/formula/run",
    "/v1/audit",
    "/v1/users",
    "/v1/analytics/",
)

# Endpoints that modify data even though they are not POST/PUT/PATCH/DELETE.
WRITE_GET_ENDPOINTS = (
    "/v1/docTemplates/",
    "/v1/solutions/fromrecord",
)


def extract_dbid(request: httpx.Request, body: Optional[bytes] = None) -> Optional[DbId]:
    """Finds the table or app id a request targets.

    Looks at the ``tableId`` then ``appId`` query parameters, then the
    ``/tables/{id}`` and ``/apps/{id}`` path segments, then the ``from`` and
    ``to`` keys of a JSON body.
    """
    params = request.url.params
    for key in ("tableId", "appId"):
        value = params.get(key)
        if value:
            return DbId(value)

    path = request.url.path
    for pattern in (TABLE_ID_PATTERN, APP_ID_PATTERN):
        match = pattern.search(path)
        if match:
            return DbId(match.group(1))

    return extract_dbid_from_body(body)


def extract_dbid_from_body(body: Optional[bytes]) -> Optional[DbId]:
    if not body:
        return None
    try:
        data = json.loads(body)
    except (ValueError, UnicodeDecodeError):
        return None
    if not isinstance(data, dict):
        return None
    for key in ("from", "to"):
        value = data.get(key)
        if isinstance(value, str) and value:
            return DbId(value)
    return None


def _matches(path: str, endpoints) -> bool:
    for endpoint in endpoints:
        if endpoint.endswith("/"):
            if path.startswith(endpoint):
                return True
        elif path == endpoint:
            return True
    return False


def is_write_request(method: str, path: str) -> bool:
    """Returns True if the request would modify data on the server."""
    method = method.upper()
    if method == "GET" and _matches(path, WRITE_GET_ENDPOINTS):
        return True
    if method not in WRITE_METHODS:
        return False
    if method == "POST" and _matches(path, READ_ONLY_POST_ENDPOINTS):
        return False
    return True
