from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt

from matatupay.config import get_settings
from matatupay.models.enums import Role

settings = get_settings()
bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Principal:
    """The already-authenticated caller, passed explicitly into every service call."""

    user_id: str
    role: Role
    phone_number: Optional[str] = None


def create_access_token(data: dict, expires_minutes: Optional[int] = None) -> str:
    """Sign a JWT with the configured secret (HS256)."""
    to_encode = dict(data)
    minutes = expires_minutes or settings.access_token_expire_minutes
    to_encode.setdefault("exp", datetime.now(timezone.utc) + timedelta(minutes=minutes))
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.jwt_algorithm)


def token_for(user_id: str, role: Role | str, phone_number: Optional[str] = None) -> str:
    role_value = role.value if isinstance(role, Role) else role
    return create_access_token({"sub": user_id, "role": role_value, "phone": phone_number})


async def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Principal:
    """Decode and validate the JWT Bearer token."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing Bearer token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        payload = jwt.decode(
            credentials.credentials,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("sub")
    try:
        role = Role.parse(payload.get("role", ""))
    except ValueError:
        role = None
    if not user_id or role is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload")
    return Principal(user_id=user_id, role=role, phone_number=payload.get("phone"))


def require_roles(*roles: Role):
    """Dependency factory: reject principals whose role is not listed."""

    async def _check(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires one of: {', '.join(r.value for r in roles)}",
            )
        return principal

    return _check
