"""
Admin records — role lookup and super-admin management.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rumorwatch.config import get_settings
from rumorwatch.models.admin import Admin, AdminRole, ROLE_PERMISSIONS

logger = logging.getLogger(__name__)


class AdminNotFoundError(LookupError):
    pass


class InvalidAdminRoleError(ValueError):
    pass


def admin_to_dict(admin: Admin) -> dict[str, Any]:
    role = AdminRole(admin.role) if admin.role else None
    return {
        "id": admin.id,
        "email": admin.email,
        "name": admin.name,
        "role": role.value if role else None,
        "is_active": bool(admin.is_active),
        "permissions": sorted(p.value for p in ROLE_PERMISSIONS.get(role, ())) if role else [],
        "created_at": admin.created_at.isoformat() if admin.created_at else None,
        "updated_at": admin.updated_at.isoformat() if admin.updated_at else None,
        "last_login": admin.last_login.isoformat() if admin.last_login else None,
    }


async def get_admin(db: AsyncSession, admin_id: str) -> Admin | None:
    result = await db.execute(select(Admin).where(Admin.id == admin_id))
    return result.scalar_one_or_none()


async def resolve_admin(
    db: AsyncSession,
    admin_id: str,
    *,
    email: str | None = None,
    name: str | None = None,
) -> Admin | None:
    """Admin record for an identity, provisioning bootstrap super admins."""
    admin = await get_admin(db, admin_id)
    if admin is not None:
        return admin
    if admin_id not in get_settings().SUPER_ADMIN_IDS:
        return None

    admin = Admin(
        id=admin_id,
        email=email,
        name=name,
        role=AdminRole.SUPER_ADMIN,
        is_active=True,
    )
    db.add(admin)
    await db.flush()
    logger.info("Provisioned bootstrap super admin %s", admin_id)
    return admin


async def list_admins(db: AsyncSession, *, include_inactive: bool = True) -> list[dict[str, Any]]:
    query = select(Admin).order_by(Admin.created_at.asc())
    if not include_inactive:
        query = query.where(Admin.is_active.is_(True))
    result = await db.execute(query)
    return [admin_to_dict(a) for a in result.scalars().all()]


async def upsert_admin(
    db: AsyncSession,
    admin_id: str,
    *,
    role: str | AdminRole | None = None,
    email: str | None = None,
    name: str | None = None,
    is_active: bool | None = None,
) -> tuple[Admin, bool]:
    """Create or update an admin record; returns ``(admin, created)``."""
    if role is not None:
        try:
            role = AdminRole(role)
        except ValueError:
            raise InvalidAdminRoleError(f"Unknown admin role {role!r}")

    admin = await get_admin(db, admin_id)
    created = admin is None
    if created:
        admin = Admin(
            id=admin_id,
            role=role or AdminRole.VIEWER,
            email=email,
            name=name,
            is_active=True if is_active is None else is_active,
        )
        db.add(admin)
    else:
        if role is not None:
            admin.role = role
        if email is not None:
            admin.email = email
        if name is not None:
            admin.name = name
        if is_active is not None:
            admin.is_active = is_active
        admin.updated_at = datetime.utcnow()

    await db.flush()
    logger.info("Admin %s %s (role=%s)", admin_id, "created" if created else "updated", AdminRole(admin.role).value)
    return admin, created


async def deactivate_admin(db: AsyncSession, admin_id: str) -> Admin:
    admin = await get_admin(db, admin_id)
    if admin is None:
        raise AdminNotFoundError(f"Admin {admin_id} not found")
    admin.is_active = False
    admin.updated_at = datetime.utcnow()
    await db.flush()
    logger.info("Admin %s deactivated", admin_id)
    return admin


async def record_admin_login(db: AsyncSession, admin: Admin) -> Admin:
    """Stamp ``last_login`` for an admin starting a dashboard session."""
    admin.last_login = datetime.utcnow()
    await db.flush()
    logger.info("Admin %s signed in", admin.id)
    return admin
