"""
Application and API key models

An application is what a client SDK authenticates as. It can hold
several API keys so keys can be rotated without downtime.
"""
from sqlalchemy import Column, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import relationship

from tracking.db.database import Base
from tracking.db.models._types import utcnow


class Application(Base):
    __tablename__ = "applications"

    id = Column(String(32), primary_key=True)
    tenant_id = Column(String(32), ForeignKey("tenants.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
    deleted_at = Column(DateTime(timezone=True), index=True)

    # Relationships
    tenant = relationship("Tenant", back_populates="applications")
    api_keys = relationship("ApplicationApiKey", back_populates="application", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Application(id={self.id}, tenant_id={self.tenant_id}, name='{self.name}')>"

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


class ApplicationApiKey(Base):
    __tablename__ = "application_api_keys"

    id = Column(String(32), primary_key=True)
    application_id = Column(String(32), ForeignKey("applications.id"), nullable=False, index=True)
    api_key = Column(String(255), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
    deleted_at = Column(DateTime(timezone=True), index=True)

    application = relationship("Application", back_populates="api_keys")

    def __repr__(self):
        return f"<ApplicationApiKey(id={self.id}, application_id={self.application_id})>"
