"""
Platform model - small reference table ("Web", "iOS", ...)
"""
from sqlalchemy import Column, DateTime, Integer, String

from tracking.db.database import Base
from tracking.db.models._types import utcnow


class Platform(Base):
    __tablename__ = "platforms"

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
    deleted_at = Column(DateTime(timezone=True), index=True)

    def __repr__(self):
        return f"<Platform(id={self.id}, name='{self.name}')>"
