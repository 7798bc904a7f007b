from __future__ import annotations
import jwt
from fastapi import Depends, Header
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from artarchive.errors import AuthenticationError, PermissionDeniedError
from artarchive.security import Identity, decode_token, identity_from_claims

security = HTTPBearer(auto_error=False)


async def get_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    anonymous_token: str | None = Header(default=None, alias="X-Anonymous-Token"),
) -> Identity:
    if credentials is not None:
        try:
            data = decode_token(credentials.credentials)
        except jwt.PyJWTError:
            raise AuthenticationError("Invalid token")
        if data.get("type") != "access":
            raise AuthenticationError("Wrong token type")
        if not data.get("sub"):
            raise AuthenticationError("Token has no subject")
        return identity_from_claims(data)
    token = (anonymous_token or "").strip()
    if not token or len(token) > 128:
        raise AuthenticationError("Send a bearer token or an X-Anonymous-Token header")
    return Identity(subject=token)


async def require_moderator(identity: Identity = Depends(get_identity)) -> Identity:
    if not identity.is_moderator:
        raise PermissionDeniedError()
    return identity
