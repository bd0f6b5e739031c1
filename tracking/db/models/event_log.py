"""
EventLog model - one ingested occurrence of an event

Append-only: rows are never updated or soft-deleted. Ids, session and
event references are plain columns (no foreign keys) so the table can
also be filled by downstream stream consumers.
"""
from sqlalchemy import Column, DateTime, Index, Integer, String

from tracking.db.database import Base
from tracking.db.models._types import JSONType


class EventLog(Base):
    __tablename__ = "event_logs"

    id = Column(String(32), primary_key=True)
    application_id = Column(String(32), nullable=False, index=True)
    session_id = Column(String(64), nullable=False, index=True)
    event_id = Column(String(32), nullable=False, index=True)
    platform_id = Column(Integer, nullable=False)
    properties = Column(JSONType, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("idx_event_logs_app_event_created", "application_id", "event_id", "created_at"),
    )

    def __repr__(self):
        return f"<EventLog(id={self.id}, event_id={self.event_id}, session_id={self.session_id})>"

    def to_dict(self):
        """Convert to the message payload shape"""
        return {
            "id": self.id,
            "application_id": self.application_id,
            "session_id": self.session_id,
            "event_id": self.event_id,
            "platform_id": self.platform_id,
            "properties": self.properties,
            "created_at": self.created_at,
        }
