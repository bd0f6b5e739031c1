"""
Tenant model - owner of applications
"""
from sqlalchemy import Column, DateTime, String, Text
from sqlalchemy.orm import relationship

from tracking.db.database import Base
from tracking.db.models._types import utcnow


class Tenant(Base):
    __tablename__ = "tenants"

    id = Column(String(32), primary_key=True)
    name = Column(String(255), nullable=False, unique=True)
    description = Column(Text)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
    deleted_at = Column(DateTime(timezone=True), index=True)

    applications = relationship("Application", back_populates="tenant")

    def __repr__(self):
        return f"<Tenant(id={self.id}, name='{self.name}')>"
