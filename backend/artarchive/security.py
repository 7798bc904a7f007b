from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any
import jwt
from artarchive.config import settings

JWT_ALG = "HS256"
REVIEWER_ROLES = {"moderator", "reviewer", "admin"}


@dataclass(frozen=True)
class Identity:
    """Who is calling. Capabilities are derived once, here, from the token claims."""
    subject: str
    is_authenticated: bool = False
    is_moderator: bool = False

    @property
    def kind(self) -> str:
        return "user" if self.is_authenticated else "anonymous"


def _make_token(sub: str, ttl_min: int, token_type: str, extra: dict[str, Any] | None = None) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": sub,
        "type": token_type,
        "iat": now.timestamp(),  # Use float for microsecond precision
        "exp": int((now + timedelta(minutes=ttl_min)).timestamp()),
    }
    payload.update(extra or {})
    return jwt.encode(payload, settings.jwt_secret, algorithm=JWT_ALG)


def make_access_token(sub: str, moderator: bool = False) -> str:
    return _make_token(sub, settings.access_ttl_min, "access", {"moderator": moderator})


def decode_token(token: str) -> dict[str, Any]:
    return jwt.decode(token, settings.jwt_secret, algorithms=[JWT_ALG])


def has_moderator_claim(claims: dict[str, Any]) -> bool:
    # Older tokens carry roles / is_reviewer instead of the boolean
    if claims.get("moderator") is True or claims.get("is_reviewer") is True:
        return True
    roles = claims.get("roles") or []
    if isinstance(roles, str):
        roles = [roles]
    return any(r in REVIEWER_ROLES for r in roles if isinstance(r, str))


def identity_from_claims(claims: dict[str, Any]) -> Identity:
    return Identity(subject=str(claims["sub"]), is_authenticated=True, is_moderator=has_moderator_claim(claims))
