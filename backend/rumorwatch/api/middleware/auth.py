from datetime import datetime, timedelta
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from rumorwatch.config import get_settings
from rumorwatch.db.postgres import get_db
from rumorwatch.models.admin import Admin, AdminRole, Permission
from rumorwatch.services import admin_service

settings = get_settings()
security = HTTPBearer()


class Identity(BaseModel):
    """Caller as asserted by the identity provider's token."""
    user_id: str
    email: Optional[str] = None
    name: Optional[str] = None


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    # Tokens are normally minted by the identity provider; used by tests and local tooling.
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(hours=1))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Identity:
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    if not payload.get("sub"):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token has no subject")
    return Identity(
        user_id=str(payload["sub"]),
        email=payload.get("email"),
        name=payload.get("name"),
    )


async def get_current_identity(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Identity:
    return decode_token(credentials.credentials)


async def get_current_admin(
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
) -> Admin:
    admin = await admin_service.resolve_admin(
        db, identity.user_id, email=identity.email, name=identity.name,
    )
    if admin is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not an administrator")
    if not admin.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Inactive administrator")
    return admin


def ensure_permission(admin: Admin, *permissions: Permission) -> None:
    missing = [p.value for p in permissions if not admin.can(p)]
    if missing:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Role {AdminRole(admin.role).value} not authorized. Required: {missing}",
        )


def require_permission(*permissions: Permission):
    async def permission_checker(current_admin: Admin = Depends(get_current_admin)) -> Admin:
        ensure_permission(current_admin, *permissions)
        return current_admin
    return permission_checker
