"""
Session model - a client-side usage session
"""
from sqlalchemy import Column, DateTime, ForeignKey, Integer, String

from tracking.db.database import Base
from tracking.db.models._types import utcnow


class Session(Base):
    __tablename__ = "sessions"

    id = Column(String(32), primary_key=True)
    application_id = Column(String(32), ForeignKey("applications.id"), nullable=False, index=True)
    platform_id = Column(Integer, ForeignKey("platforms.id"), nullable=False, index=True)
    session_key = Column(String(255), nullable=False, unique=True)
    user_id = Column(String(255))
    user_agent = Column(String(1024))
    ip_address = Column(String(64))
    started_at = Column(DateTime(timezone=True), nullable=False)
    ended_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
    deleted_at = Column(DateTime(timezone=True), index=True)

    def __repr__(self):
        return f"<Session(id={self.id}, application_id={self.application_id}, key='{self.session_key}')>"
