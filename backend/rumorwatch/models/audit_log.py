import uuid
from datetime import datetime

from sqlalchemy import Column, String, DateTime

from rumorwatch.db.postgres import Base, UUIDType


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(UUIDType, primary_key=True, default=uuid.uuid4)
    actor_id = Column(String, nullable=True)
    action = Column(String, nullable=False)  # "review", "save", "promote", "update", "deactivate"
    resource = Column(String, nullable=False)  # "report", "scoring_profile", "admin"
    resource_id = Column(String, nullable=True)
    details = Column(String, nullable=True)
    ip_address = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
