"""Discovery-related models for cross-app access.

Contains models for Protected Resource Metadata (RFC 9728) and
Authorization Server Metadata (RFC 8414) discovery. Both documents are
fetched fresh for every token acquisition and never cached.
"""

from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field


class ProtectedResourceMetadata(BaseModel):
    """OAuth 2.0 Protected Resource Metadata (RFC 9728).

    Advertises which authorization servers may issue tokens for a resource.
    """

    model_config = ConfigDict(extra="ignore")

    resource: str
    authorization_servers: list[str] = Field(min_length=1)

    # Optional fields from RFC 9728
    bearer_methods_supported: list[str] | None = None
    resource_signing_alg_values_supported: list[str] | None = None
    resource_documentation: str | None = None

    def select_authorization_server(self) -> str:
        """Return the issuer to use. The first advertised server always wins."""
        return self.authorization_servers[0]


class AuthorizationServerMetadata(BaseModel):
    """OAuth 2.0 Authorization Server Metadata (RFC 8414).

    Only the token endpoint is needed for the JWT bearer grant; the rest is
    informational.
    """

    model_config = ConfigDict(extra="ignore")

    issuer: str | None = None
    token_endpoint: str

    grant_types_supported: list[str] | None = None
    token_endpoint_auth_methods_supported: list[str] | None = None
    token_endpoint_auth_signing_alg_values_supported: list[str] | None = None
    response_types_supported: list[str] | None = None
    jwks_uri: str | None = None


@dataclass(frozen=True)
class DiscoveryResult:
    """Complete discovery results for one token acquisition.

    Immutable result combining Protected Resource Metadata and the metadata of
    the selected authorization server.
    """

    protected_resource_metadata: ProtectedResourceMetadata
    authorization_server_metadata: AuthorizationServerMetadata
    auth_server_issuer: str

    @property
    def resource(self) -> str:
        return self.protected_resource_metadata.resource

    @property
    def token_endpoint(self) -> str:
        return self.authorization_server_metadata.token_endpoint
