import enum
import uuid
from datetime import datetime

from sqlalchemy import Column, String, Enum, DateTime, Integer, Index

from rumorwatch.db.postgres import Base, UUIDType


class ReportStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# Reviewed reports never change status again
TERMINAL_STATUSES = {ReportStatus.APPROVED, ReportStatus.REJECTED}


class Report(Base):
    __tablename__ = "reports"
    __table_args__ = (
        Index("ix_reports_rumor_url_created_at", "rumor_url", "created_at"),
    )

    id = Column(UUIDType, primary_key=True, default=uuid.uuid4)
    rumor_url = Column(String, nullable=True)  # required at submission; legacy rows may lack it
    description = Column(String, nullable=False)
    image_url = Column(String, nullable=True)
    submitted_by = Column(String, nullable=False, index=True)  # identity-provider user id
    submitted_by_email = Column(String, nullable=True)
    submitted_by_name = Column(String, nullable=True)
    status = Column(Enum(ReportStatus), nullable=False, default=ReportStatus.PENDING, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    reviewed_at = Column(DateTime, nullable=True)
    reviewed_by = Column(String, nullable=True)  # reviewer email or id
    admin_notes = Column(String, nullable=True)
    points_awarded = Column(Integer, nullable=True)  # set only on approval

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
