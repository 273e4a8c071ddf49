"""HTTP request/response helpers shared by every outbound call.

extract_oauth_error is the one place upstream failures are rendered, so
discovery and both token grants report errors the same way.
"""

from __future__ import annotations

import httpx
from pydantic import ValidationError

from crossapp.auth.client.models.tokens import OAuthErrorResponse


def is_unauthorized(response: httpx.Response) -> bool:
    return response.status_code == 401


def get_resource_url(request: httpx.Request) -> str:
    """Resource key for a request: scheme, host and port, no path.

    Default ports are dropped, matching the origin of a URL.
    """
    url = request.url
    host = f"[{url.host}]" if ":" in url.host else url.host
    origin = f"{url.scheme}://{host}"
    if url.port is not None:
        origin += f":{url.port}"
    return origin


def with_bearer_token(request: httpx.Request, access_token: str) -> httpx.Request:
    """Copy a request, setting the Authorization header to a bearer credential.

    The request body must already be read so it can be replayed.
    """
    headers = request.headers.copy()
    headers["Authorization"] = f"Bearer {access_token}"
    return httpx.Request(
        request.method,
        request.url,
        headers=headers,
        content=request.content,
        extensions=request.extensions,
    )


def parse_oauth_error(response: httpx.Response) -> OAuthErrorResponse | None:
    """Parse an RFC 6749 Section 5.2 error body, if there is one."""
    try:
        return OAuthErrorResponse.model_validate(response.json())
    except (ValueError, ValidationError):
        return None


def extract_oauth_error(response: httpx.Response) -> str:
    """Render an upstream failure as a human-readable message.

    Uses error_description (or error) from a JSON OAuth error body, otherwise
    falls back to the HTTP status line.

    Args:
        response: Failed upstream response

    Returns:
        Error message
    """
    oauth_error = parse_oauth_error(response)
    if oauth_error is not None:
        return oauth_error.error_description or oauth_error.error

    return f"HTTP {response.status_code} {response.reason_phrase}".rstrip()
