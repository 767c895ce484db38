"""Interface for the HTTP transport.

Defines the single capability the request executor needs from the network:
send one fully-built request and return the response.
"""

import abc

import httpx


class Transport(abc.ABC):
    """Abstract Base Class for sending a single HTTP request."""

    @abc.abstractmethod
    def send(self, request: httpx.Request) -> httpx.Response:
        """Sends the request once, without retrying.

        Args:
            request: The request to send. It is not reused after this call.

        Returns:
            The response with its body already read.

        Raises:
            httpx.RequestError: If no usable response could be obtained (connection
                failure, timeout, protocol error, undecodable body, redirect loop).
        """
        pass

    def close(self) -> None:
        """Releases pooled connections. Optional for implementations."""
        pass
