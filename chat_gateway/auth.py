from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from fastapi import Request


USER_ID_HEADER = "x-user-id"
USER_ROLE_HEADER = "x-user-role"
PROFESSIONAL_ROLE_HEADER = "x-professional-role"


@dataclass(frozen=True)
class Principal:
    user_id: str
    role: str = "user"
    professional_role: str | None = None


class AuthResolver(Protocol):
    async def resolve(self, request: Request) -> Principal | None:
        """Return the authenticated caller, or None when there is none."""
        ...


class HeaderAuthResolver:
    """Trusts identity headers injected by the authenticating proxy in front."""

    async def resolve(self, request: Request) -> Principal | None:
        user_id = request.headers.get(USER_ID_HEADER, "").strip()
        if not user_id:
            return None
        return Principal(
            user_id=user_id,
            role=request.headers.get(USER_ROLE_HEADER, "user").strip() or "user",
            professional_role=request.headers.get(PROFESSIONAL_ROLE_HEADER, "").strip()
            or None,
        )
