"""Token request, response and cache models for cross-app access.

Covers the two grants of the acquisition flow:
- Token Exchange (RFC 8693): identity token -> ID-JAG
- JWT Bearer grant (RFC 7523): ID-JAG -> access token
"""

from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict

TOKEN_EXCHANGE_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:token-exchange"
JWT_BEARER_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:jwt-bearer"

ID_JAG_TOKEN_TYPE = "urn:ietf:params:oauth:token-type:id-jag"
ID_TOKEN_TYPE = "urn:ietf:params:oauth:token-type:id_token"
SAML2_TOKEN_TYPE = "urn:ietf:params:oauth:token-type:saml2"

SUBJECT_TOKEN_TYPES = frozenset({ID_TOKEN_TYPE, SAML2_TOKEN_TYPE})

DEFAULT_EXPIRES_IN = 3600  # seconds, when the server omits expires_in
EXPIRY_SKEW_SECONDS = 60


def _form(fields: dict[str, str | None]) -> dict[str, str]:
    """Drop unset fields; token requests never send empty parameters."""
    return {key: value for key, value in fields.items() if value is not None}


@dataclass(frozen=True)
class TokenExchangeRequest:
    """Token Exchange request parameters (RFC 8693 Section 2.1).

    Sent to the identity provider to trade the caller's identity token for an
    Identity Assertion JWT Authorization Grant (ID-JAG).
    """

    # Required fields first
    token_endpoint: str
    subject_token: str
    audience: str  # Issuer of the resource's authorization server
    resource: str  # RFC 8707 Resource Indicators

    # Optional fields with defaults last
    subject_token_type: str = ID_TOKEN_TYPE
    scope: str | None = None
    client_id: str | None = None
    client_secret: str | None = None
    grant_type: str = TOKEN_EXCHANGE_GRANT_TYPE
    requested_token_type: str = ID_JAG_TOKEN_TYPE

    def to_form_data(self) -> dict[str, str]:
        """Convert to form data for application/x-www-form-urlencoded request.

        Returns:
            Dictionary suitable for httpx data parameter
        """
        return _form(
            {
                "grant_type": self.grant_type,
                "requested_token_type": self.requested_token_type,
                "audience": self.audience,
                "resource": self.resource,
                "scope": self.scope,
                "subject_token": self.subject_token,
                "subject_token_type": self.subject_token_type,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
            }
        )


@dataclass(frozen=True)
class JwtBearerGrantRequest:
    """JWT Bearer grant request parameters (RFC 7523 Section 2.1).

    Sent to the resource's authorization server to trade the ID-JAG for an
    access token.
    """

    token_endpoint: str
    assertion: str

    client_id: str | None = None
    client_secret: str | None = None
    grant_type: str = JWT_BEARER_GRANT_TYPE

    def to_form_data(self) -> dict[str, str]:
        """Convert to form data for application/x-www-form-urlencoded request."""
        return _form(
            {
                "grant_type": self.grant_type,
                "assertion": self.assertion,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
            }
        )


class TokenExchangeResponse(BaseModel):
    """Token Exchange response (RFC 8693 Section 2.2.1).

    The ID-JAG arrives in the access_token field. The name comes from the
    token exchange profile; the value is an assertion, not an access token,
    and token_type is typically "N_A".
    """

    model_config = ConfigDict(extra="ignore")

    issued_token_type: str | None = None
    access_token: str
    token_type: str | None = None
    scope: str | None = None
    expires_in: int | None = None


class AccessTokenResponse(BaseModel):
    """Access token response (RFC 6749 Section 5.1).

    Passed as-is to the on_access_token_received hook.
    """

    model_config = ConfigDict(extra="ignore")

    access_token: str
    token_type: str = "Bearer"
    expires_in: int | None = None
    scope: str | None = None
    refresh_token: str | None = None

    def calculate_expires_at(self, now: float) -> float:
        """Absolute expiry with the clock-skew margin already subtracted.

        Args:
            now: Current Unix timestamp

        Returns:
            Unix timestamp after which the token must not be served
        """
        expires_in = self.expires_in or DEFAULT_EXPIRES_IN
        return now + expires_in - EXPIRY_SKEW_SECONDS


class OAuthErrorResponse(BaseModel):
    """OAuth 2.0 error response (RFC 6749 Section 5.2)."""

    model_config = ConfigDict(extra="ignore")

    error: str
    error_description: str | None = None
    error_uri: str | None = None


@dataclass(frozen=True)
class CachedToken:
    """Access token held in the internal cache.

    expires_at already includes the skew margin, so a token is usable exactly
    while expires_at is in the future.
    """

    token: str
    expires_at: float  # Unix timestamp

    def is_valid(self, now: float) -> bool:
        return self.expires_at > now
