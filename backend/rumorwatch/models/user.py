from datetime import datetime

from sqlalchemy import Column, String, DateTime, Integer

from rumorwatch.db.postgres import Base


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True)  # matches the identity-provider id
    email = Column(String, nullable=True)
    name = Column(String, nullable=True)
    total_points = Column(Integer, nullable=False, default=0)
    total_reports = Column(Integer, nullable=False, default=0)  # approved contributions credited
    created_at = Column(DateTime, default=datetime.utcnow)
    last_active = Column(DateTime, default=datetime.utcnow)

    @property
    def display_name(self):
        """Name shown on leaderboards, falling back to email."""
        return self.name or self.email or self.id
