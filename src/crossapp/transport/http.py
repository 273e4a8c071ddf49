"""HTTP transport seam for the cross-app access interceptor.

The interceptor only ever needs one network primitive: send a request, get a
response. HttpTransport names that primitive; HttpxTransport is the default
implementation. CrossAppAccessTransport goes the other way and plugs the
interceptor into an httpx.AsyncClient.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

import httpx

if TYPE_CHECKING:
    from crossapp.auth.client.interceptor import CrossAppAccessInterceptor
    from crossapp.auth.client.models.config import CrossAppAccessConfig

logger = logging.getLogger(__name__)


class HttpTransport(Protocol):
    """Protocol for the request/response primitive used for every outbound call."""

    async def send(self, request: httpx.Request) -> httpx.Response:
        """Send a request and return the fully read response.

        Args:
            request: Request to send

        Returns:
            Response from the server

        Raises:
            httpx.RequestError: If the request could not be delivered
        """
        ...


class HttpxTransport:
    """HttpTransport backed by an httpx.AsyncClient.

    Owns the client unless one is passed in.
    """

    def __init__(
        self, client: httpx.AsyncClient | None = None, timeout: float = 30.0
    ) -> None:
        self._owns_client = client is None
        self._http_client = client or httpx.AsyncClient(timeout=timeout)

    async def send(self, request: httpx.Request) -> httpx.Response:
        logger.debug(f"{request.method} {request.url}")
        return await self._http_client.send(request)

    async def aclose(self) -> None:
        """Close the underlying client if this transport created it."""
        if self._owns_client:
            await self._http_client.aclose()


class CrossAppAccessTransport(httpx.AsyncBaseTransport):
    """httpx transport that routes every request through the interceptor.

    Lets any httpx.AsyncClient pick up cross-app access authorization without
    changes at the call sites.
    """

    def __init__(self, interceptor: CrossAppAccessInterceptor) -> None:
        self.interceptor = interceptor

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        return await self.interceptor.send(request)

    async def aclose(self) -> None:
        await self.interceptor.aclose()


def create_cross_app_access_client(
    config: CrossAppAccessConfig, **client_kwargs
) -> httpx.AsyncClient:
    """Create an httpx.AsyncClient with cross-app access applied.

    Args:
        config: Interceptor configuration
        **client_kwargs: Extra keyword arguments for httpx.AsyncClient

    Returns:
        Client whose requests are authorized transparently
    """
    from crossapp.auth.client.interceptor import CrossAppAccessInterceptor

    interceptor = CrossAppAccessInterceptor(config)
    return httpx.AsyncClient(
        transport=CrossAppAccessTransport(interceptor), **client_kwargs
    )
