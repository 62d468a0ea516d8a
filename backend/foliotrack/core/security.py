"""
Caller identity.

Token verification happens upstream (API gateway or auth proxy). The ledger
only needs a resolved user id, which it trusts as given.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request


@dataclass(frozen=True)
class Identity:
    user_id: str
    email: Optional[str] = None
    claims: Dict[str, Any] = field(default_factory=dict)


class IdentityProvider(ABC):
    """Resolves a request credential into an Identity."""

    @abstractmethod
    async def verify(self, request: Request) -> Identity:
        """Return the caller's identity or raise HTTPException(401)."""
        raise NotImplementedError


class GatewayIdentityProvider(IdentityProvider):
    """
    Reads the identity forwarded by an authenticating gateway.

    The gateway verifies the bearer token and sets ``X-User-Id`` (required)
    and ``X-User-Email`` (optional) on the forwarded request.
    """

    USER_HEADER = "X-User-Id"
    EMAIL_HEADER = "X-User-Email"

    async def verify(self, request: Request) -> Identity:
        user_id = request.headers.get(self.USER_HEADER, "").strip()
        if not user_id:
            raise HTTPException(status_code=401, detail="Missing authenticated user")
        return Identity(
            user_id=user_id,
            email=request.headers.get(self.EMAIL_HEADER),
            claims={"source": "gateway"},
        )


identity_provider: IdentityProvider = GatewayIdentityProvider()


async def get_current_identity(request: Request) -> Identity:
    """FastAPI dependency resolving the caller through the configured provider."""
    return await identity_provider.verify(request)
