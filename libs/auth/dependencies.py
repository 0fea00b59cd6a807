from typing import Annotated, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import ValidationError

from libs.auth.models import AuthUser
from libs.common.config import get_settings

settings = get_settings()
security = HTTPBearer()
optional_security = HTTPBearer(auto_error=False)


def _decode_token(token: str) -> AuthUser:
    payload = jwt.decode(
        token,
        settings.AUTH_JWT_SECRET,
        algorithms=[settings.AUTH_JWT_ALGORITHM],
        options={"verify_aud": False},
    )
    return AuthUser(**payload)


def create_access_token(user_id: int, role: str, email: Optional[str] = None) -> str:
    """Issue a signed token for a user (used by seed scripts and tests)."""
    claims = {"sub": str(user_id), "role": role}
    if email:
        claims["email"] = email
    return jwt.encode(
        claims, settings.AUTH_JWT_SECRET, algorithm=settings.AUTH_JWT_ALGORITHM
    )


async def get_current_user(
    token: Annotated[HTTPAuthorizationCredentials, Depends(security)]
) -> AuthUser:
    """
    Validate the bearer JWT and return the authenticated user.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        return _decode_token(token.credentials)
    except (JWTError, ValidationError):
        raise credentials_exception


async def get_optional_user(
    token: Annotated[
        Optional[HTTPAuthorizationCredentials], Depends(optional_security)
    ],
) -> Optional[AuthUser]:
    """Like get_current_user, but anonymous visitors get None instead of 401."""
    if token is None:
        return None
    try:
        return _decode_token(token.credentials)
    except (JWTError, ValidationError):
        return None


async def require_admin(
    current_user: Annotated[AuthUser, Depends(get_current_user)]
) -> AuthUser:
    if current_user.role != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    return current_user


async def require_seller(
    current_user: Annotated[AuthUser, Depends(get_current_user)]
) -> AuthUser:
    """Sellers manage their own listings; admins may act on any."""
    if current_user.role not in ("seller", "admin"):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Seller account required",
        )
    return current_user
