"""WWW-Authenticate header parsing primitive.

Decodes a Bearer challenge (RFC 6750 Section 3) into a Challenge. Parsing is
lenient: malformed input never raises, it just leaves fields unset. Callers
decide which missing fields are fatal.
"""

from __future__ import annotations

import re

from crossapp.auth.client.models.challenge import Challenge

_SCHEME_PATTERN = re.compile(r"^\s*(\w+)")

# key="value" or key=value (unquoted values stop at whitespace or comma)
_PARAM_PATTERN = re.compile(r'(\w+)=(?:"([^"]*)"|([^\s,]*))')

_RECOGNIZED_PARAMS = frozenset(
    {"realm", "scope", "error", "error_description", "resource_metadata"}
)


def parse_www_authenticate(header_value: str) -> Challenge:
    """Parse a WWW-Authenticate header value into a Challenge.

    The scheme is the leading token. Parameters are matched in a single pass
    and may appear in any order, quoted or not. Unknown parameters are
    ignored, and empty values are treated as absent.

    Args:
        header_value: Raw WWW-Authenticate header value

    Returns:
        Parsed challenge
    """
    scheme_match = _SCHEME_PATTERN.match(header_value)
    scheme = scheme_match.group(1) if scheme_match else ""

    params: dict[str, str] = {}
    for match in _PARAM_PATTERN.finditer(header_value):
        key = match.group(1)
        value = match.group(2) or match.group(3)
        if key in _RECOGNIZED_PARAMS and value:
            params[key] = value

    return Challenge(scheme=scheme, **params)
