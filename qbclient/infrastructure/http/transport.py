"""Transport implementation backed by a pooled httpx.Client."""

import logging
from typing import Optional

import httpx

from qbclient.domain.interfaces.transport import Transport
from qbclient.domain.models.common import DEFAULT_REQUEST_TIMEOUT_S

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONNECTIONS = 100
DEFAULT_MAX_KEEPALIVE_CONNECTIONS = 6
DEFAULT_KEEPALIVE_EXPIRY_S = 90.0


class HttpxTransport(Transport):
    """Sends requests over one shared connection pool.

    All concurrent calls through the same transport share its pool.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_REQUEST_TIMEOUT_S,
        max_connections: int = DEFAULT_MAX_CONNECTIONS,
        max_keepalive_connections: int = DEFAULT_MAX_KEEPALIVE_CONNECTIONS,
        keepalive_expiry: float = DEFAULT_KEEPALIVE_EXPIRY_S,
        client: Optional[httpx.Client] = None,
    ):
        """Initializes the transport.

        Args:
            timeout: Per-request timeout in seconds.
            max_connections: Maximum open connections in the pool.
            max_keepalive_connections: Idle connections kept for reuse. The
                default of 6 matches browser behaviour; batch jobs running
                with a throttle may want 10-20.
            keepalive_expiry: Seconds an idle connection stays pooled.
            client: Pre-built client to use instead (e.g. with a mock transport).
        """
        self._owns_client = client is None
        self._client = client or httpx.Client(
            timeout=httpx.Timeout(timeout),
            limits=httpx.Limits(
                max_connections=max_connections,
                max_keepalive_connections=max_keepalive_connections,
                keepalive_expiry=keepalive_expiry,
            ),
        )
        logger.debug(
            f"HttpxTransport initialized: timeout={timeout}s, max_connections={max_connections}, "
            f"keepalive={max_keepalive_connections}"
        )

    def send(self, request: httpx.Request) -> httpx.Response:
        return self._client.send(request)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()
