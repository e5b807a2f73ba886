"""Signed session tokens scoping an API caller to a user and an organization."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from config import settings


SESSION_TOKEN_TYPE = "ledger_session"


@dataclass(frozen=True)
class SessionClaims:
    user_id: str
    email: Optional[str] = None
    org_id: Optional[str] = None
    org_role: Optional[str] = None
    expires_at: Optional[int] = None


def _optional_claim(payload: Dict[str, Any], key: str) -> Optional[str]:
    value = str(payload.get(key) or "").strip()
    return value or None


def create_session_token(
    user_id: str,
    email: Optional[str] = None,
    expires_hours: Optional[int] = None,
    *,
    org_id: Optional[str] = None,
    org_role: Optional[str] = None,
) -> Dict[str, Any]:
    """Sign a token for ``user_id``, optionally scoped to an org and role."""
    issued_at = datetime.now(timezone.utc)
    lifetime = timedelta(hours=max(int(expires_hours or settings.JWT_EXPIRATION_HOURS or 24), 1))
    expires_at = int((issued_at + lifetime).timestamp())

    scope = {"email": email, "org_id": org_id, "org_role": org_role}
    claims: Dict[str, Any] = {key: value for key, value in scope.items() if value}
    claims.update(
        sub=user_id,
        type=SESSION_TOKEN_TYPE,
        iat=int(issued_at.timestamp()),
        exp=expires_at,
    )

    return {
        "token": jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM),
        "expires_at": expires_at,
    }


def decode_session_token(token: str) -> SessionClaims:
    """Verify signature, expiry and token type. Raises ``ValueError`` on failure."""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as exc:
        raise ValueError("Invalid or expired session token.") from exc

    if _optional_claim(payload, "type") != SESSION_TOKEN_TYPE:
        raise ValueError("Invalid session token type.")

    user_id = _optional_claim(payload, "sub")
    if not user_id:
        raise ValueError("Session token missing subject.")

    return SessionClaims(
        user_id=user_id,
        email=_optional_claim(payload, "email"),
        org_id=_optional_claim(payload, "org_id"),
        org_role=_optional_claim(payload, "org_role"),
        expires_at=payload.get("exp"),
    )
