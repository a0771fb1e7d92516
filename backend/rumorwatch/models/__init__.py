from rumorwatch.models.report import Report, ReportStatus
from rumorwatch.models.user import User
from rumorwatch.models.notification import Notification, NotificationType
from rumorwatch.models.points_ledger import PointsLedgerEntry, LedgerReason
from rumorwatch.models.scoring_profile import ScoringProfile, CURRENT_PROFILE
from rumorwatch.models.admin import Admin, AdminRole, Permission
from rumorwatch.models.audit_log import AuditLog

__all__ = [
    "Report",
    "ReportStatus",
    "User",
    "Notification",
    "NotificationType",
    "PointsLedgerEntry",
    "LedgerReason",
    "ScoringProfile",
    "CURRENT_PROFILE",
    "Admin",
    "AdminRole",
    "Permission",
    "AuditLog",
]
