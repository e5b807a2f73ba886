"""Authentication dependencies for API user and organization scoping."""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from config import settings
from services.members import is_admin_role
from services.session_token import decode_session_token


auth_scheme = HTTPBearer(auto_error=False)


@dataclass
class AuthContext:
    user_id: str
    email: Optional[str] = None
    org_id: Optional[str] = None
    role: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return is_admin_role(self.role)


async def get_auth_context(
    credentials: HTTPAuthorizationCredentials = Depends(auth_scheme),
) -> AuthContext:
    """Resolve authenticated user from Bearer session token."""
    if not credentials or credentials.scheme.lower() != "bearer":
        raise HTTPException(status_code=401, detail="Missing Bearer session token.")

    try:
        claims = decode_session_token(credentials.credentials)
    except ValueError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc

    return AuthContext(
        user_id=claims.user_id,
        email=claims.email,
        org_id=claims.org_id,
        role=claims.org_role,
    )


async def require_org_context(auth: AuthContext = Depends(get_auth_context)) -> AuthContext:
    """Reject sessions that are not scoped to an organization."""
    if not auth.org_id:
        raise HTTPException(status_code=401, detail="Unauthorized - Organization required")
    return auth


async def require_admin_context(auth: AuthContext = Depends(require_org_context)) -> AuthContext:
    if not auth.is_admin:
        raise HTTPException(status_code=403, detail="Forbidden - Admin access required")
    return auth


async def require_platform_admin(auth: AuthContext = Depends(require_org_context)) -> AuthContext:
    if auth.org_id not in set(settings.PLATFORM_ADMIN_ORG_IDS or []):
        raise HTTPException(status_code=403, detail="Unauthorized - Platform admin access required")
    return auth
