# storefront/app/services/auth_service.py
"""
JWT validation capability.

Token issuance belongs to the surrounding platform; this module only
verifies tokens and exposes FastAPI dependencies for the HTTP surface.
`create_access_token` exists for local tooling and tests.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt

from storefront.app.config import settings
from storefront.app.exceptions import AuthError

bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Claims:
    uid: str
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def create_access_token(data: Dict[str, Any], expires_delta: Optional[int] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + timedelta(
        seconds=(expires_delta if expires_delta is not None else settings.ACCESS_TOKEN_EXPIRE_SECONDS)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Claims:
    if not token:
        raise AuthError("missing_token", "Missing token")
    try:
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except ExpiredSignatureError:
        raise AuthError("token_expired", "Token expired")
    except JWTError:
        raise AuthError("invalid_token", "Invalid token")

    uid = payload.get("sub") or payload.get("uid")
    if not uid:
        raise AuthError("invalid_token", "Invalid token payload")
    return Claims(uid=str(uid), role=str(payload.get("role") or "user"))


class JWTVerifier:
    """Auth capability used by the socket layer: verify(token) -> Claims | AuthError."""

    async def verify(self, token: str) -> Claims:
        return decode_token(token)


# ---------------------------------------------------
# HTTP dependencies
# ---------------------------------------------------
def get_current_claims(creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer)) -> Claims:
    if creds is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="missing_token")
    try:
        return decode_token(creds.credentials)
    except AuthError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=e.code)


def get_current_admin(claims: Claims = Depends(get_current_claims)) -> Claims:
    if not claims.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="admin_required")
    return claims
