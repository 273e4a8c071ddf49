"""WWW-Authenticate challenge model (RFC 6750 / RFC 7235)."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Challenge:
    """A single parsed authentication challenge.

    Scoped to the response it was read from. Only the parameters this client
    acts on are kept; anything else in the header is dropped.
    """

    scheme: str = ""
    realm: str | None = None
    scope: str | None = None
    error: str | None = None
    error_description: str | None = None
    resource_metadata: str | None = None  # RFC 9728 Section 5.1

    def is_bearer(self) -> bool:
        return self.scheme == "Bearer"
