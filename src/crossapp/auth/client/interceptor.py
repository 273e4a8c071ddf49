"""Cross-app access request interceptor.

Implements Enterprise-Managed Authorization for MCP on the client side.
Requests are sent with a cached access token when one exists. On a 401 Bearer
challenge the interceptor:
1. Discovers the resource's authorization server
2. Exchanges the caller's identity token for an ID-JAG
3. Exchanges the ID-JAG for an access token
4. Retries the original request once with that token
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from types import TracebackType
from typing import Self

import httpx

from crossapp.auth.client.models.config import CrossAppAccessConfig
from crossapp.auth.client.models.errors import MissingResourceMetadataError
from crossapp.auth.client.models.tokens import AccessTokenResponse
from crossapp.auth.client.primitives.challenge import parse_www_authenticate
from crossapp.auth.client.primitives.responses import (
    get_resource_url,
    is_unauthorized,
    with_bearer_token,
)
from crossapp.auth.client.services.cache import AcquisitionDeduplicator, TokenCache
from crossapp.auth.client.services.discovery import MetadataDiscovery
from crossapp.auth.client.services.tokens import TokenExchanger
from crossapp.transport.http import HttpTransport, HttpxTransport

logger = logging.getLogger(__name__)


class CrossAppAccessInterceptor:
    """Authorizes outbound requests transparently using cross-app access.

    Each call to send() makes at most two requests to the target resource:
    a first attempt (with a cached token or bare) and a single retry after
    acquiring a new token. Token acquisitions are shared between concurrent
    callers for the same resource origin.
    """

    def __init__(
        self,
        config: CrossAppAccessConfig,
        clock: Callable[[], float] | None = None,
    ):
        """Initialize the interceptor.

        Args:
            config: Credentials, hooks and optional transport
            clock: Optional source of the current Unix time for token expiry
        """
        self.config = config
        self._default_transport: HttpxTransport | None = None
        if config.transport is None:
            self._default_transport = HttpxTransport(timeout=config.timeout)
        self._transport: HttpTransport = config.transport or self._default_transport

        cache_kwargs = {"clock": clock} if clock is not None else {}
        self.token_cache = TokenCache(config.get_cached_access_token, **cache_kwargs)
        self._pending: AcquisitionDeduplicator[str] = AcquisitionDeduplicator()

        self.discovery = MetadataDiscovery(self._transport)
        self.token_exchanger = TokenExchanger(config, self._transport)

    async def send(self, request: httpx.Request) -> httpx.Response:
        """Send a request, acquiring an access token if the resource asks for one.

        Args:
            request: Request to send

        Returns:
            The first non-401 response, the untouched 401 when the challenge
            cannot be handled, or the response to the single retry

        Raises:
            MissingResourceMetadataError: Bearer 401 without resource_metadata
            DiscoveryError: If metadata discovery fails
            ProtocolViolationError: If an upstream document is invalid
            TokenError: If either grant is rejected
        """
        # Body must be buffered so the request can be replayed
        await request.aread()
        resource_url = get_resource_url(request)

        cached_token = await self.token_cache.lookup(resource_url)
        if cached_token:
            response = await self._transport.send(
                with_bearer_token(request, cached_token)
            )
            if not is_unauthorized(response):
                return response

            logger.warning(f"Cached access token for {resource_url} was rejected")
            await response.aclose()
            self.token_cache.evict(resource_url)

        response = await self._transport.send(request)
        if not is_unauthorized(response):
            return response

        return await self._handle_unauthorized(
            request, response, resource_url, rejected_token=cached_token
        )

    async def _handle_unauthorized(
        self,
        request: httpx.Request,
        response: httpx.Response,
        resource_url: str,
        rejected_token: str | None = None,
    ) -> httpx.Response:
        """Handle a 401 by acquiring a token and retrying once."""
        www_auth = response.headers.get("WWW-Authenticate")
        if not www_auth:
            logger.debug("401 without WWW-Authenticate header, returning as-is")
            return response

        challenge = parse_www_authenticate(www_auth)
        if not challenge.is_bearer():
            logger.debug(
                f"Unsupported challenge scheme '{challenge.scheme}', returning as-is"
            )
            return response

        if not challenge.resource_metadata:
            await response.aclose()
            raise MissingResourceMetadataError(
                "WWW-Authenticate header missing resource_metadata URL"
            )

        try:
            access_token = await self.acquire_access_token(
                resource_url,
                challenge.resource_metadata,
                challenge.scope,
                rejected_token=rejected_token,
            )
        finally:
            await response.aclose()

        return await self._transport.send(with_bearer_token(request, access_token))

    async def acquire_access_token(
        self,
        resource_url: str,
        metadata_url: str,
        scope: str | None = None,
        rejected_token: str | None = None,
    ) -> str:
        """Acquire an access token for a resource.

        Only one acquisition runs per resource at a time; concurrent callers
        share its result or its failure. A caller that starts a new
        acquisition first reuses a token cached by an acquisition that
        settled after its own lookup, unless that token is the one the
        resource just rejected.

        Args:
            resource_url: Resource origin used as cache key
            metadata_url: Protected resource metadata URL
            scope: Optional scope to request
            rejected_token: Token the resource rejected, if one was sent

        Returns:
            Access token
        """
        acquired: list[AccessTokenResponse] = []

        async def acquire() -> str:
            cached_token = self.token_cache.get(resource_url)
            if cached_token and cached_token != rejected_token:
                logger.debug(f"Reusing access token acquired for {resource_url}")
                return cached_token

            token_response = await self._perform_token_acquisition(
                resource_url, metadata_url, scope
            )
            acquired.append(token_response)
            return token_response.access_token

        access_token = await self._pending.run(resource_url, acquire)

        # Waiters are released before the hook runs
        if acquired:
            await self._notify_token_received(acquired[0])
        return access_token

    async def _perform_token_acquisition(
        self, resource_url: str, metadata_url: str, scope: str | None
    ) -> AccessTokenResponse:
        logger.info(f"Acquiring access token for {resource_url}")

        discovery = await self.discovery.discover(metadata_url)
        token_response = await self.token_exchanger.acquire(discovery, scope)

        self.token_cache.store(resource_url, token_response)
        logger.info(f"Cached new access token for {resource_url}")
        return token_response

    async def _notify_token_received(self, token_response: AccessTokenResponse) -> None:
        if self.config.on_access_token_received is None:
            return

        try:
            await self.config.on_access_token_received(token_response)
        except Exception:
            logger.exception("on_access_token_received hook failed")

    def clear_token_cache(self) -> None:
        """Clear all internally cached tokens."""
        self.token_cache.clear()

    def clear_token_for_resource(self, resource_url: str) -> None:
        """Clear the internally cached token for one resource origin."""
        self.token_cache.evict(resource_url)

    async def aclose(self) -> None:
        """Close the default transport if the interceptor created it."""
        if self._default_transport is not None:
            await self._default_transport.aclose()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()
