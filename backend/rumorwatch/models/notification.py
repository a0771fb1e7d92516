import enum
import uuid
from datetime import datetime

from sqlalchemy import Column, String, Enum, DateTime, Integer, Boolean, Index

from rumorwatch.db.postgres import Base, UUIDType


class NotificationType(str, enum.Enum):
    REPORT_APPROVED = "report_approved"
    REPORT_REJECTED = "report_rejected"
    REPORT_APPROVED_BROADCAST = "report_approved_broadcast"
    OTHER = "other"


class Notification(Base):
    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_user_id_created_at", "user_id", "created_at"),
    )

    id = Column(UUIDType, primary_key=True, default=uuid.uuid4)
    user_id = Column(String, nullable=False)  # recipient
    type = Column(Enum(NotificationType), nullable=False, default=NotificationType.OTHER)
    title = Column(String, nullable=False)
    message = Column(String, nullable=False)
    points = Column(Integer, nullable=False, default=0)  # only meaningful on the submitter's approval notice
    read = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime, nullable=True)
    report_id = Column(UUIDType, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
