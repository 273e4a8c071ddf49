"""Metadata discovery service for cross-app access.

Implements RFC 9728 (Protected Resource Metadata) and RFC 8414
(Authorization Server Metadata) discovery to find the token endpoint of the
authorization server protecting a resource.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from crossapp.auth.client.models.discovery import (
    AuthorizationServerMetadata,
    DiscoveryResult,
    ProtectedResourceMetadata,
)
from crossapp.auth.client.models.errors import (
    AuthorizationServerMetadataError,
    ProtectedResourceMetadataError,
    ProtocolViolationError,
)
from crossapp.auth.client.primitives.responses import extract_oauth_error
from crossapp.transport.http import HttpTransport

logger = logging.getLogger(__name__)

OAUTH_AUTHORIZATION_SERVER_PATH = "/.well-known/oauth-authorization-server"
OPENID_CONFIGURATION_PATH = "/.well-known/openid-configuration"


class MetadataDiscovery:
    """Resolves a resource metadata URL into the endpoints needed for a grant.

    Implements the two-step discovery process:
    1. Protected Resource Metadata (RFC 9728) - find authorization servers
    2. Authorization Server Metadata (RFC 8414) - find the token endpoint

    Nothing is cached here; every acquisition re-fetches both documents.
    """

    def __init__(self, transport: HttpTransport):
        """Initialize metadata discovery.

        Args:
            transport: Transport used for every metadata request
        """
        self._transport = transport

    async def discover(self, metadata_url: str) -> DiscoveryResult:
        """Run the complete discovery chain from a resource metadata URL.

        The first authorization server listed by the resource is used.

        Args:
            metadata_url: resource_metadata URL from the 401 challenge

        Returns:
            Complete discovery results

        Raises:
            DiscoveryError: If either document cannot be fetched
            ProtocolViolationError: If a document is missing required fields
        """
        prm = await self.fetch_protected_resource_metadata(metadata_url)
        issuer = prm.select_authorization_server()
        asm = await self.discover_authorization_server_metadata(issuer)

        return DiscoveryResult(
            protected_resource_metadata=prm,
            authorization_server_metadata=asm,
            auth_server_issuer=issuer,
        )

    async def fetch_protected_resource_metadata(
        self, metadata_url: str
    ) -> ProtectedResourceMetadata:
        """Fetch and parse protected resource metadata.

        Args:
            metadata_url: URL to fetch metadata from

        Returns:
            Parsed protected resource metadata

        Raises:
            ProtectedResourceMetadataError: If the fetch fails or is not 2xx
            ProtocolViolationError: If the document is malformed
        """
        logger.debug(f"Fetching protected resource metadata from: {metadata_url}")

        try:
            response = await self._transport.send(_get(metadata_url))
        except httpx.RequestError as e:
            raise ProtectedResourceMetadataError(
                f"Failed to fetch protected resource metadata: {e}"
            ) from e

        if not response.is_success:
            raise ProtectedResourceMetadataError(
                "Failed to fetch protected resource metadata: "
                f"{extract_oauth_error(response)}"
            )

        data = _json_object(response, "protected resource metadata")
        if not data.get("authorization_servers"):
            raise ProtocolViolationError(
                "No authorization servers found in protected resource metadata"
            )

        try:
            metadata = ProtectedResourceMetadata.model_validate(data)
        except ValidationError as e:
            raise ProtocolViolationError(
                f"Invalid protected resource metadata from {metadata_url}: {e}"
            ) from e

        logger.debug(
            "Discovered protected resource metadata: "
            f"{len(metadata.authorization_servers)} auth servers"
        )
        return metadata

    async def discover_authorization_server_metadata(
        self, issuer_url: str
    ) -> AuthorizationServerMetadata:
        """Discover authorization server metadata.

        Tries OAuth discovery (RFC 8414) first, then OpenID Connect discovery.
        A network error, non-2xx status or non-JSON body moves on to the next
        URL. The first JSON document found is used.

        Args:
            issuer_url: Authorization server issuer identifier

        Returns:
            Authorization server metadata

        Raises:
            AuthorizationServerMetadataError: If no discovery URL answers
            ProtocolViolationError: If the document has no token_endpoint
        """
        for url in self.build_discovery_urls(issuer_url):
            try:
                logger.debug(f"Trying authorization server metadata discovery: {url}")
                response = await self._transport.send(_get(url))
            except httpx.RequestError as e:
                logger.debug(f"Discovery request to {url} failed: {e}")
                continue

            if not response.is_success:
                logger.debug(
                    f"Discovery at {url} failed: {extract_oauth_error(response)}"
                )
                continue

            try:
                data = response.json()
            except ValueError:
                logger.debug(f"Discovery at {url} returned a non-JSON body")
                continue

            if not isinstance(data, dict) or not data.get("token_endpoint"):
                raise ProtocolViolationError(
                    "Authorization server metadata missing token_endpoint"
                )

            try:
                metadata = AuthorizationServerMetadata.model_validate(data)
            except ValidationError as e:
                raise ProtocolViolationError(
                    f"Invalid authorization server metadata from {url}: {e}"
                ) from e

            logger.debug(f"Discovered authorization server metadata from: {url}")
            return metadata

        raise AuthorizationServerMetadataError(
            f"Failed to discover authorization server metadata for {issuer_url}"
        )

    @staticmethod
    def build_discovery_urls(issuer_url: str) -> list[str]:
        """Build the ordered list of discovery URLs to try.

        Well-known suffixes are appended to the issuer with any trailing
        slash removed. OAuth discovery comes first, OIDC second.

        Args:
            issuer_url: Authorization server issuer identifier

        Returns:
            Ordered list of URLs to try for discovery
        """
        base_url = issuer_url.removesuffix("/")
        return [
            base_url + OAUTH_AUTHORIZATION_SERVER_PATH,
            base_url + OPENID_CONFIGURATION_PATH,
        ]


def _get(url: str) -> httpx.Request:
    return httpx.Request("GET", url, headers={"Accept": "application/json"})


def _json_object(response: httpx.Response, document: str) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError as e:
        raise ProtocolViolationError(f"Invalid {document}: body is not JSON") from e

    if not isinstance(data, dict):
        raise ProtocolViolationError(f"Invalid {document}: expected a JSON object")
    return data
