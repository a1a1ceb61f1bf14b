import time
from typing import Annotated, Callable, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import ValidationError

from libs.auth.models import AuthUser, ClubRole
from libs.common.config import get_settings

settings = get_settings()
security = HTTPBearer()
optional_security = HTTPBearer(auto_error=False)


def _decode_token(token: str) -> AuthUser:
    # Supabase signs access tokens with HS256; audience varies between
    # anon and authenticated tokens so it is not checked.
    payload = jwt.decode(
        token,
        settings.SUPABASE_JWT_SECRET,
        algorithms=["HS256"],
        options={"verify_aud": False},
    )
    return AuthUser(**payload)


def _service_role_jwt(calling_service: str) -> str:
    """Mint a short-lived service_role token for internal calls."""
    now = int(time.time())
    claims = {
        "sub": calling_service,
        "role": "service_role",
        "iat": now,
        "exp": now + settings.SERVICE_TOKEN_TTL_SECONDS,
    }
    return jwt.encode(claims, settings.SUPABASE_JWT_SECRET, algorithm="HS256")


async def get_current_user(
    request: Request,
    token: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> AuthUser:
    """
    Validate Supabase JWT and return the authenticated user.
    """
    try:
        user = _decode_token(token.credentials)
    except (JWTError, ValidationError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    request.state.user = user
    return user


async def get_optional_user(
    request: Request,
    token: Annotated[
        Optional[HTTPAuthorizationCredentials], Depends(optional_security)
    ],
) -> Optional[AuthUser]:
    """Like get_current_user, but anonymous requests yield None."""
    if token is None:
        return None
    return await get_current_user(request, token)


def require_roles(*roles: ClubRole) -> Callable:
    """Dependency factory: the user must hold one of ``roles``.

    Admins, presidents and service tokens always pass.
    """

    async def _require_roles(
        current_user: Annotated[AuthUser, Depends(get_current_user)]
    ) -> AuthUser:
        if not current_user.has_any_role(roles):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return current_user

    return _require_roles


require_admin = require_roles(ClubRole.ADMIN)


async def require_service_role(
    current_user: Annotated[AuthUser, Depends(get_current_user)]
) -> AuthUser:
    """Internal endpoints only accept service-to-service tokens."""
    if not current_user.is_service:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Service credentials required",
        )
    return current_user
