"""Explicit authenticated-session context passed into every component."""
from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class SessionContext:
    """Bearer credential and identity supplied by the auth collaborator.

    The token is opaque here; it is only forwarded as a header.
    """

    token: str | None
    user_id: int | None = None
    role: str | None = None
    provider_id: int | None = None

    def auth_headers(self) -> dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}
