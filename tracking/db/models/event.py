"""
Event and event field models

An event is a named occurrence type scoped to one application and one
platform. Its fields describe the expected payload; they are not
enforced when event logs are ingested.
"""
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from tracking.db.database import Base
from tracking.db.models._types import utcnow


class Event(Base):
    __tablename__ = "events"

    id = Column(String(32), primary_key=True)
    application_id = Column(String(32), ForeignKey("applications.id"), nullable=False, index=True)
    platform_id = Column(Integer, ForeignKey("platforms.id"), nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
    deleted_at = Column(DateTime(timezone=True), index=True)

    # Live fields only; soft-deleted ones stay in the table
    fields = relationship(
        "EventField",
        primaryjoin="and_(Event.id == EventField.event_id, EventField.deleted_at.is_(None))",
        order_by="EventField.created_at",
        lazy="selectin",
    )

    def __repr__(self):
        return f"<Event(id={self.id}, application_id={self.application_id}, name='{self.name}')>"


class EventField(Base):
    __tablename__ = "event_fields"

    id = Column(String(32), primary_key=True)
    event_id = Column(String(32), ForeignKey("events.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    data_type = Column(String(20), nullable=False)  # string, int, float, boolean, datetime, json
    is_required = Column(Boolean, default=False, nullable=False)
    description = Column(Text)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
    deleted_at = Column(DateTime(timezone=True), index=True)

    def __repr__(self):
        return f"<EventField(id={self.id}, event_id={self.event_id}, name='{self.name}', type='{self.data_type}')>"
