import enum
import uuid
from datetime import datetime

from sqlalchemy import Column, String, Enum, DateTime, Integer

from rumorwatch.db.postgres import Base, UUIDType


class LedgerReason(str, enum.Enum):
    REPORT_APPROVED = "report_approved"


class PointsLedgerEntry(Base):
    """Append-only record of a points award. Rows are never updated."""

    __tablename__ = "points_ledger"

    id = Column(UUIDType, primary_key=True, default=uuid.uuid4)
    user_id = Column(String, nullable=False, index=True)
    # One award per report; the unique constraint backs the review precondition
    report_id = Column(UUIDType, nullable=False, unique=True)
    rumor_url = Column(String, nullable=True)
    points = Column(Integer, nullable=False)
    reason = Column(Enum(LedgerReason), nullable=False, default=LedgerReason.REPORT_APPROVED)
    created_at = Column(DateTime, default=datetime.utcnow)
