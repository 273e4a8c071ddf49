import asyncio
from collections.abc import Callable
from typing import Any
from unittest.mock import AsyncMock

import httpx
import pytest

from crossapp.auth.client.interceptor import CrossAppAccessInterceptor
from crossapp.auth.client.models.config import CrossAppAccessConfig

RESOURCE_URL = "https://mcp.example.com/mcp"
RESOURCE_KEY = "https://mcp.example.com"
METADATA_URL = "https://mcp.example.com/.well-known/oauth-protected-resource"
AS_ISSUER = "https://auth.example.com"
AS_METADATA_URL = "https://auth.example.com/.well-known/oauth-authorization-server"
AS_OIDC_URL = "https://auth.example.com/.well-known/openid-configuration"
AS_TOKEN_URL = "https://auth.example.com/oauth2/token"
IDP_ISSUER = "https://idp.example.com"
IDP_TOKEN_URL = "https://idp.example.com/oauth2/token"
ID_JAG = "urn:ietf:params:oauth:token-type:id-jag"

Handler = Callable[[httpx.Request], httpx.Response]


class MockHttpTransport:
    """Routes requests to canned handlers and records everything sent."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.routes: dict[tuple[str, str], Handler | Exception] = {}

    def add(self, method: str, url: str, handler: Handler | Exception) -> None:
        self.routes[(method, url)] = handler

    def add_json(
        self,
        method: str,
        url: str,
        body: Any,
        status_code: int = 200,
    ) -> None:
        self.add(method, url, lambda request: httpx.Response(status_code, json=body))

    async def send(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        # Yield so concurrent callers interleave like real network calls
        await asyncio.sleep(0)

        handler = self.routes.get((request.method, str(request.url)))
        if handler is None:
            return httpx.Response(404, request=request)
        if isinstance(handler, Exception):
            raise handler

        response = handler(request)
        response.request = request
        return response

    def requests_to(self, url: str) -> list[httpx.Request]:
        return [r for r in self.requests if str(r.url) == url]


def bearer_challenge(**params: str) -> dict[str, str]:
    value = "Bearer " + ", ".join(f'{k}="{v}"' for k, v in params.items())
    return {"WWW-Authenticate": value}


class ProtectedResource:
    """Resource handler accepting only a known set of access tokens."""

    def __init__(self, valid_tokens: set[str], challenge: dict[str, str]):
        self.valid_tokens = valid_tokens
        self.challenge = challenge

    def __call__(self, request: httpx.Request) -> httpx.Response:
        auth = request.headers.get("Authorization", "")
        if auth.removeprefix("Bearer ") in self.valid_tokens:
            return httpx.Response(200, json={"ok": True})
        return httpx.Response(401, headers=self.challenge)


@pytest.fixture
def transport() -> MockHttpTransport:
    return MockHttpTransport()


@pytest.fixture
def protected_resource() -> ProtectedResource:
    return ProtectedResource(
        valid_tokens={"access-token-xyz"},
        challenge=bearer_challenge(
            realm="mcp", scope="read write", resource_metadata=METADATA_URL
        ),
    )


@pytest.fixture
def happy_transport(
    transport: MockHttpTransport, protected_resource: ProtectedResource
) -> MockHttpTransport:
    """Transport wired with a complete, working discovery and exchange chain."""
    transport.add("GET", RESOURCE_URL, protected_resource)
    transport.add_json(
        "GET",
        METADATA_URL,
        {"resource": RESOURCE_KEY, "authorization_servers": [AS_ISSUER]},
    )
    transport.add_json(
        "GET",
        AS_METADATA_URL,
        {"issuer": AS_ISSUER, "token_endpoint": AS_TOKEN_URL},
    )
    transport.add_json(
        "POST",
        IDP_TOKEN_URL,
        {
            "issued_token_type": ID_JAG,
            "access_token": "id-jag-123",
            "token_type": "N_A",
            "expires_in": 300,
        },
    )
    transport.add_json(
        "POST",
        AS_TOKEN_URL,
        {
            "access_token": "access-token-xyz",
            "token_type": "Bearer",
            "expires_in": 3600,
            "scope": "read write",
        },
    )
    return transport


@pytest.fixture
def get_id_token() -> AsyncMock:
    return AsyncMock(return_value="id-token-abc")


@pytest.fixture
def make_config(get_id_token: AsyncMock, transport: MockHttpTransport):
    def factory(**overrides) -> CrossAppAccessConfig:
        fields = {
            "get_id_token": get_id_token,
            "idp_issuer_url": IDP_ISSUER,
            "idp_client_id": "idp-client",
            "idp_client_secret": "idp-secret",
            "mcp_client_id": "mcp-client",
            "mcp_client_secret": "mcp-secret",
            "transport": transport,
        }
        fields.update(overrides)
        return CrossAppAccessConfig(**fields)

    return factory


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def interceptor(make_config, clock: FakeClock) -> CrossAppAccessInterceptor:
    return CrossAppAccessInterceptor(make_config(), clock=clock)
