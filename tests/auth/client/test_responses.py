"""Tests for shared request/response helpers."""

import httpx
import pytest

from crossapp.auth.client.primitives.responses import (
    extract_oauth_error,
    get_resource_url,
    is_unauthorized,
    with_bearer_token,
)


class TestResourceURL:
    """The resource key is the request origin."""

    @pytest.mark.parametrize(
        "url, expected",
        [
            ("https://mcp.example.com/mcp/tools?x=1", "https://mcp.example.com"),
            ("https://MCP.Example.com/", "https://mcp.example.com"),
            ("https://mcp.example.com:443/mcp", "https://mcp.example.com"),
            ("https://mcp.example.com:8443/mcp", "https://mcp.example.com:8443"),
            ("http://localhost:3000/sse", "http://localhost:3000"),
            ("http://[::1]:8080/mcp", "http://[::1]:8080"),
        ],
    )
    def test_origin_extraction(self, url, expected):
        # Arrange & Act
        resource_url = get_resource_url(httpx.Request("GET", url))

        # Assert
        assert resource_url == expected


class TestBearerToken:
    def test_adds_authorization_and_keeps_request(self):
        # Arrange
        request = httpx.Request(
            "POST",
            "https://mcp.example.com/mcp",
            headers={"X-Trace": "abc"},
            content=b"payload",
        )

        # Act
        authorized = with_bearer_token(request, "token-1")

        # Assert
        assert authorized is not request
        assert authorized.method == "POST"
        assert authorized.url == request.url
        assert authorized.headers["Authorization"] == "Bearer token-1"
        assert authorized.headers["X-Trace"] == "abc"
        assert authorized.content == b"payload"
        assert "Authorization" not in request.headers

    def test_replaces_existing_authorization(self):
        # Arrange
        request = httpx.Request(
            "GET", "https://mcp.example.com", headers={"Authorization": "Basic xyz"}
        )

        # Act
        authorized = with_bearer_token(request, "token-1")

        # Assert
        assert authorized.headers.get_list("Authorization") == ["Bearer token-1"]


class TestOAuthErrorExtraction:
    """One rendering for every upstream failure."""

    def test_error_description_preferred(self):
        # Arrange
        response = httpx.Response(
            400, json={"error": "invalid_grant", "error_description": "Expired"}
        )

        # Act & Assert
        assert extract_oauth_error(response) == "Expired"

    def test_error_code_when_no_description(self):
        # Arrange
        response = httpx.Response(400, json={"error": "invalid_request"})

        # Act & Assert
        assert extract_oauth_error(response) == "invalid_request"

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(500, text="<html>oops</html>"),
            httpx.Response(500, json={"message": "no oauth fields"}),
            httpx.Response(500, json=["not", "an", "object"]),
        ],
    )
    def test_status_line_fallback(self, response):
        # Act & Assert
        assert extract_oauth_error(response) == "HTTP 500 Internal Server Error"


def test_is_unauthorized():
    assert is_unauthorized(httpx.Response(401))
    assert not is_unauthorized(httpx.Response(403))
