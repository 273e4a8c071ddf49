"""Token exchange service for cross-app access.

Performs the two grants that turn an identity token into an access token:
1. Token Exchange (RFC 8693) at the identity provider -> ID-JAG
2. JWT Bearer grant (RFC 7523) at the resource's authorization server

Both use application/x-www-form-urlencoded bodies as required by RFC 6749.
"""

from __future__ import annotations

import logging
from typing import TypeVar

import httpx
from pydantic import ValidationError

from crossapp.auth.client.models.config import CrossAppAccessConfig
from crossapp.auth.client.models.discovery import DiscoveryResult
from crossapp.auth.client.models.errors import (
    JwtBearerGrantError,
    ProtocolViolationError,
    TokenError,
    TokenExchangeError,
    UnexpectedTokenTypeError,
)
from crossapp.auth.client.models.tokens import (
    ID_JAG_TOKEN_TYPE,
    AccessTokenResponse,
    JwtBearerGrantRequest,
    TokenExchangeRequest,
    TokenExchangeResponse,
)
from crossapp.auth.client.primitives.responses import (
    extract_oauth_error,
    parse_oauth_error,
)
from crossapp.transport.http import HttpTransport

logger = logging.getLogger(__name__)

T = TypeVar("T", TokenExchangeResponse, AccessTokenResponse)

_FORM_HEADERS = {
    "Content-Type": "application/x-www-form-urlencoded",
    "Accept": "application/json",
}


class TokenExchanger:
    """Runs the identity token -> ID-JAG -> access token exchange chain.

    The two calls are strictly sequential; the second needs the assertion
    returned by the first. The assertion is returned to the caller and never
    stored.
    """

    def __init__(self, config: CrossAppAccessConfig, transport: HttpTransport):
        """Initialize the token exchanger.

        Args:
            config: Client credentials and identity token provider
            transport: Transport used for both token requests
        """
        self._config = config
        self._transport = transport

    async def acquire(
        self, discovery: DiscoveryResult, scope: str | None = None
    ) -> AccessTokenResponse:
        """Exchange the caller's identity token for an access token.

        Args:
            discovery: Discovered resource and authorization server metadata
            scope: Optional scope carried over from the 401 challenge

        Returns:
            Access token response from the authorization server
        """
        assertion = await self.exchange_identity_token(
            audience=discovery.auth_server_issuer,
            resource=discovery.resource,
            scope=scope,
        )
        return await self.exchange_assertion(assertion, discovery.token_endpoint)

    async def exchange_identity_token(
        self, audience: str, resource: str, scope: str | None = None
    ) -> str:
        """Exchange the identity token for an ID-JAG at the identity provider.

        Implements RFC 8693 Section 2.1 with the ID-JAG requested token type.

        Args:
            audience: Issuer of the resource's authorization server
            resource: Protected resource identifier
            scope: Optional scope to request

        Returns:
            The ID-JAG assertion

        Raises:
            TokenExchangeError: If the identity provider rejects the exchange
            UnexpectedTokenTypeError: If the issued token is not an ID-JAG
        """
        id_token = await self._config.get_id_token()

        token_request = TokenExchangeRequest(
            token_endpoint=self._config.get_idp_token_endpoint(),
            subject_token=id_token,
            subject_token_type=self._config.subject_token_type,
            audience=audience,
            resource=resource,
            scope=scope,
            client_id=self._config.idp_client_id,
            client_secret=self._config.idp_client_secret,
        )
        form_data = token_request.to_form_data()

        # Log request details (without sensitive data)
        logger.debug(
            f"Token exchange request to {token_request.token_endpoint}: "
            f"audience={audience}, resource={resource}, "
            f"scope={form_data.get('scope', 'none')}"
        )

        response = await self._post(
            token_request.token_endpoint, form_data, TokenExchangeError
        )
        if not response.is_success:
            raise _grant_error(TokenExchangeError, "Token exchange failed", response)

        exchange_response = _parse(TokenExchangeResponse, response, "token exchange")
        if exchange_response.issued_token_type != ID_JAG_TOKEN_TYPE:
            raise UnexpectedTokenTypeError(exchange_response.issued_token_type)

        logger.debug("Token exchange successful, received ID-JAG")
        # The ID-JAG is carried in the access_token field (RFC 8693 Section 2.2.1)
        return exchange_response.access_token

    async def exchange_assertion(
        self, assertion: str, token_endpoint: str
    ) -> AccessTokenResponse:
        """Exchange an ID-JAG for an access token at the authorization server.

        Implements the RFC 7523 Section 2.1 JWT bearer authorization grant.

        Args:
            assertion: ID-JAG from the token exchange
            token_endpoint: Token endpoint of the resource's authorization server

        Returns:
            Access token response

        Raises:
            JwtBearerGrantError: If the authorization server rejects the grant
        """
        grant_request = JwtBearerGrantRequest(
            token_endpoint=token_endpoint,
            assertion=assertion,
            client_id=self._config.mcp_client_id,
            client_secret=self._config.mcp_client_secret,
        )

        logger.debug(f"JWT bearer grant request to {token_endpoint}")

        response = await self._post(
            token_endpoint, grant_request.to_form_data(), JwtBearerGrantError
        )
        if not response.is_success:
            raise _grant_error(JwtBearerGrantError, "JWT bearer grant failed", response)

        token_response = _parse(AccessTokenResponse, response, "access token")
        logger.debug("JWT bearer grant successful")
        return token_response

    async def _post(
        self, url: str, form_data: dict[str, str], error_type: type[TokenError]
    ) -> httpx.Response:
        request = httpx.Request("POST", url, data=form_data, headers=_FORM_HEADERS)
        try:
            return await self._transport.send(request)
        except httpx.RequestError as e:
            raise error_type(f"HTTP error during request to {url}: {e}") from e


def _grant_error(
    error_type: type[TokenError], prefix: str, response: httpx.Response
) -> TokenError:
    oauth_error = parse_oauth_error(response)
    message = f"{prefix}: {extract_oauth_error(response)}"
    logger.warning(f"{message} (status {response.status_code})")

    return error_type(
        message,
        error=oauth_error.error if oauth_error else None,
        error_description=oauth_error.error_description if oauth_error else None,
        status_code=response.status_code,
    )


def _parse(model: type[T], response: httpx.Response, what: str) -> T:
    try:
        return model.model_validate(response.json())
    except (ValueError, ValidationError) as e:
        raise ProtocolViolationError(f"Invalid {what} response format: {e}") from e
