from datetime import datetime

from sqlalchemy import Column, String, DateTime, Integer, JSON
from sqlalchemy.dialects.postgresql import JSONB

from rumorwatch.db.postgres import Base

# Reserved profile name consulted at approval time
CURRENT_PROFILE = "current"


class ScoringProfile(Base):
    __tablename__ = "scoring_profiles"

    name = Column(String, primary_key=True)
    tiers = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=False)  # list[int], index 0 = first reporter
    default_points = Column(Integer, nullable=False)
    version = Column(Integer, nullable=False, default=1)  # bumped on every overwrite
    source_profile = Column(String, nullable=True)  # set on "current" when promoted from a named profile
    updated_by = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
