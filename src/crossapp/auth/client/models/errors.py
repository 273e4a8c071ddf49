"""Exception hierarchy for cross-app access authorization errors.

Provides specific exception types for each failure mode of the token
acquisition flow so callers can tell discovery problems, protocol violations
and rejected grants apart.
"""

from __future__ import annotations


class OAuth2Error(Exception):
    """Base exception for all cross-app access errors."""

    pass


class ConfigurationError(OAuth2Error):
    """Raised when the interceptor configuration is invalid or incomplete."""

    pass


class DiscoveryError(OAuth2Error):
    """Raised when a metadata document cannot be fetched."""

    pass


class ProtectedResourceMetadataError(DiscoveryError):
    """Raised when Protected Resource Metadata (RFC 9728) cannot be fetched."""

    pass


class AuthorizationServerMetadataError(DiscoveryError):
    """Raised when Authorization Server Metadata (RFC 8414) discovery fails."""

    pass


class ProtocolViolationError(OAuth2Error):
    """Raised when an upstream response breaks an expected protocol invariant."""

    pass


class MissingResourceMetadataError(ProtocolViolationError):
    """Raised when a Bearer 401 challenge carries no resource_metadata URL.

    Without the metadata URL there is no way to locate the authorization
    server, so the flow cannot proceed.
    """

    pass


class UnexpectedTokenTypeError(ProtocolViolationError):
    """Raised when the identity provider issues something other than an ID-JAG."""

    def __init__(self, issued_token_type: str | None):
        self.issued_token_type = issued_token_type
        super().__init__(f"Unexpected token type: {issued_token_type}")


class TokenError(OAuth2Error):
    """Raised when a token endpoint rejects a grant.

    Carries the OAuth error fields from the upstream response when the body
    was well-formed, and the HTTP status when a response was received.
    """

    def __init__(
        self,
        message: str,
        error: str | None = None,
        error_description: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.error = error
        self.error_description = error_description
        self.status_code = status_code


class TokenExchangeError(TokenError):
    """Raised when the identity token to ID-JAG exchange (RFC 8693) fails."""

    pass


class JwtBearerGrantError(TokenError):
    """Raised when the ID-JAG to access token grant (RFC 7523) fails."""

    pass
