"""Configuration for the cross-app access interceptor.

Every optional hook is listed explicitly together with the behaviour used
when it is left unset.
"""

from __future__ import annotations

import os
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from crossapp.auth.client.models.errors import ConfigurationError
from crossapp.auth.client.models.tokens import (
    ID_TOKEN_TYPE,
    SUBJECT_TOKEN_TYPES,
    AccessTokenResponse,
)

if TYPE_CHECKING:
    from crossapp.transport.http import HttpTransport

IdTokenProvider = Callable[[], Awaitable[str]]
CachedAccessTokenLookup = Callable[[str], Awaitable[str | None]]
AccessTokenCallback = Callable[[AccessTokenResponse], Awaitable[None]]


@dataclass(frozen=True)
class CrossAppAccessConfig:
    """Settings for CrossAppAccessInterceptor.

    Optional fields and their behaviour when unset:
    - idp_client_secret / mcp_client_secret: omitted from token requests
    - idp_token_endpoint: idp_issuer_url + "/oauth2/token"
    - transport: HttpxTransport over a new httpx.AsyncClient
    - get_cached_access_token: internal cache only
    - on_access_token_received: no notification
    """

    # Required fields first
    get_id_token: IdTokenProvider
    idp_issuer_url: str
    idp_client_id: str
    mcp_client_id: str

    # Optional fields with defaults last
    idp_client_secret: str | None = None
    idp_token_endpoint: str | None = None
    mcp_client_secret: str | None = None
    subject_token_type: str = ID_TOKEN_TYPE
    transport: HttpTransport | None = None
    get_cached_access_token: CachedAccessTokenLookup | None = None
    on_access_token_received: AccessTokenCallback | None = None
    timeout: float = 30.0

    def __post_init__(self) -> None:
        if not self.idp_issuer_url:
            raise ConfigurationError("idp_issuer_url is required")
        if not self.idp_client_id:
            raise ConfigurationError("idp_client_id is required")
        if not self.mcp_client_id:
            raise ConfigurationError("mcp_client_id is required")
        if self.subject_token_type not in SUBJECT_TOKEN_TYPES:
            raise ConfigurationError(
                f"Unsupported subject_token_type: {self.subject_token_type}"
            )

    def get_idp_token_endpoint(self) -> str:
        """Token endpoint of the identity provider."""
        if self.idp_token_endpoint:
            return self.idp_token_endpoint
        return self.idp_issuer_url.rstrip("/") + "/oauth2/token"

    @classmethod
    def from_env(
        cls,
        get_id_token: IdTokenProvider,
        prefix: str = "CROSSAPP_",
        **overrides,
    ) -> CrossAppAccessConfig:
        """Build a config from environment variables.

        Reads <prefix>IDP_ISSUER_URL, <prefix>IDP_CLIENT_ID,
        <prefix>IDP_CLIENT_SECRET, <prefix>IDP_TOKEN_ENDPOINT,
        <prefix>MCP_CLIENT_ID and <prefix>MCP_CLIENT_SECRET. Call
        dotenv.load_dotenv() beforehand to pick up a .env file.

        Args:
            get_id_token: Async callable returning the current identity token
            prefix: Environment variable prefix
            **overrides: Extra fields passed straight to the constructor

        Raises:
            ConfigurationError: If a required variable is missing
        """
        required = ("IDP_ISSUER_URL", "IDP_CLIENT_ID", "MCP_CLIENT_ID")
        missing = [prefix + name for name in required if not os.getenv(prefix + name)]
        if missing:
            raise ConfigurationError(
                f"Missing required environment variables: {', '.join(missing)}"
            )

        return cls(
            get_id_token=get_id_token,
            idp_issuer_url=os.environ[prefix + "IDP_ISSUER_URL"],
            idp_client_id=os.environ[prefix + "IDP_CLIENT_ID"],
            mcp_client_id=os.environ[prefix + "MCP_CLIENT_ID"],
            idp_client_secret=os.getenv(prefix + "IDP_CLIENT_SECRET") or None,
            idp_token_endpoint=os.getenv(prefix + "IDP_TOKEN_ENDPOINT") or None,
            mcp_client_secret=os.getenv(prefix + "MCP_CLIENT_SECRET") or None,
            **overrides,
        )
