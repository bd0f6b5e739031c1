"""
SQLAlchemy models for the tracking service

Import all models here for easy access and to ensure proper relationship setup.
"""
from tracking.db.database import Base

from tracking.db.models.tenant import Tenant
from tracking.db.models.platform import Platform
from tracking.db.models.application import Application, ApplicationApiKey
from tracking.db.models.event import Event, EventField
from tracking.db.models.session import Session
from tracking.db.models.event_log import EventLog

__all__ = [
    "Base",
    "Tenant",
    "Platform",
    "Application",
    "ApplicationApiKey",
    "Event",
    "EventField",
    "Session",
    "EventLog",
]
