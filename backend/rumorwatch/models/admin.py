import enum
from datetime import datetime

from sqlalchemy import Column, String, Enum, DateTime, Boolean

from rumorwatch.db.postgres import Base


class AdminRole(str, enum.Enum):
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    MODERATOR = "moderator"
    VIEWER = "viewer"


class Permission(str, enum.Enum):
    VIEW_REPORTS = "view_reports"
    APPROVE_REPORTS = "approve_reports"
    REJECT_REPORTS = "reject_reports"
    DELETE_REPORTS = "delete_reports"
    VIEW_USERS = "view_users"
    MANAGE_USERS = "manage_users"
    DELETE_USERS = "delete_users"
    VIEW_ADMINS = "view_admins"
    CREATE_ADMINS = "create_admins"
    EDIT_ADMINS = "edit_admins"
    DELETE_ADMINS = "delete_admins"
    VIEW_STATISTICS = "view_statistics"
    MANAGE_SETTINGS = "manage_settings"
    VIEW_LOGS = "view_logs"


ROLE_PERMISSIONS: dict[AdminRole, frozenset[Permission]] = {
    AdminRole.SUPER_ADMIN: frozenset(Permission),
    AdminRole.ADMIN: frozenset({
        Permission.VIEW_REPORTS,
        Permission.APPROVE_REPORTS,
        Permission.REJECT_REPORTS,
        Permission.VIEW_USERS,
        Permission.MANAGE_USERS,
        Permission.VIEW_ADMINS,
        Permission.VIEW_STATISTICS,
    }),
    AdminRole.MODERATOR: frozenset({
        Permission.VIEW_REPORTS,
        Permission.APPROVE_REPORTS,
        Permission.REJECT_REPORTS,
        Permission.VIEW_USERS,
    }),
    AdminRole.VIEWER: frozenset({
        Permission.VIEW_REPORTS,
        Permission.VIEW_USERS,
        Permission.VIEW_STATISTICS,
    }),
}


def has_permission(role: AdminRole | None, permission: Permission) -> bool:
    if role is None:
        return False
    return permission in ROLE_PERMISSIONS.get(AdminRole(role), frozenset())


class Admin(Base):
    __tablename__ = "admins"

    id = Column(String, primary_key=True)  # identity-provider user id
    email = Column(String, nullable=True)
    name = Column(String, nullable=True)
    role = Column(Enum(AdminRole), nullable=False, default=AdminRole.VIEWER)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    last_login = Column(DateTime, nullable=True)

    def can(self, permission: Permission) -> bool:
        return bool(self.is_active) and has_permission(self.role, permission)
