"""Request and response schemas for the tenant API.

These Pydantic models validate input at the FastAPI boundary and shape
the JSON returned to client applications. ORM rows are converted with
``model_validate`` (``from_attributes``).
"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

T = TypeVar("T")

# Format used by clients for session timestamps
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class FieldDataType(str, Enum):
    """Declared data types for event fields."""

    STRING = "string"
    INT = "int"
    FLOAT = "float"
    BOOLEAN = "boolean"
    DATETIME = "datetime"
    JSON = "json"


class TenantContext(BaseModel):
    """Identity resolved from an API key."""

    application_id: str
    tenant_id: str


class DataResponse(BaseModel, Generic[T]):
    """Envelope for successful responses."""

    data: T


# Requests

class CreateEventLogRequest(BaseModel):
    """One event occurrence sent by a client application.

    The application comes from the API key and the event from the URL,
    so neither is accepted in the body.
    """

    platform_id: int = Field(..., description="Platform the event happened on")
    session_id: str = Field(..., min_length=1, description="Session the event belongs to")
    properties: Dict[str, Any] = Field(..., description="Free-form event payload")


class CreateEventRequest(BaseModel):
    """Definition of a new event type for the calling application."""

    platform_id: int = Field(..., description="Platform id")
    name: str = Field(..., min_length=1, max_length=255, description="Event name, e.g. click_button")
    description: str = Field(default="", description="Human readable description")
    is_active: bool = Field(default=True)


class UpdateEventRequest(BaseModel):
    """Replacement values for an event. The platform cannot be changed."""

    name: str = Field(..., min_length=1, max_length=255)
    description: str = Field(default="")
    is_active: bool = Field(default=True)


class CreateEventFieldRequest(BaseModel):
    """One declared property of an event's payload."""

    name: str = Field(..., min_length=1, max_length=255)
    data_type: FieldDataType = Field(..., description="Declared data type")
    is_required: bool = Field(default=False)
    description: str = Field(default="")


class UpdateEventFieldRequest(CreateEventFieldRequest):
    """Replacement values for an event field (all columns are rewritten)."""


class CreateSessionRequest(BaseModel):
    """A client usage session.

    Timestamps use the ``YYYY-MM-DD HH:MM:SS`` format and are parsed by
    the service, which reports bad values as invalid requests.
    """

    platform_id: int
    session_key: str = Field(..., min_length=1, max_length=255)
    user_id: Optional[str] = None
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    started_at: str = Field(..., examples=["2006-01-02 15:04:05"])
    ended_at: Optional[str] = Field(default=None, examples=["2006-01-02 16:04:05"])


class UpdateSessionRequest(BaseModel):
    """Fields a client may change on an open session."""

    user_id: Optional[str] = None
    ended_at: Optional[str] = None

    @field_validator("user_id", "ended_at")
    @classmethod
    def blank_is_unset(cls, v: Optional[str]) -> Optional[str]:
        """Treat empty strings as 'not provided'."""
        if v is not None and not v.strip():
            return None
        return v


# Responses

class _OrmModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class PlatformOut(_OrmModel):
    id: int
    name: str


class ApplicationOut(_OrmModel):
    id: str
    tenant_id: str
    name: str
    description: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class EventFieldOut(_OrmModel):
    id: str
    event_id: str
    name: str
    data_type: str
    is_required: bool
    description: Optional[str] = None
    created_at: datetime


class EventOut(_OrmModel):
    id: str
    application_id: str
    platform_id: int
    name: str
    description: Optional[str] = None
    is_active: bool
    created_at: datetime
    fields: List[EventFieldOut] = Field(default_factory=list)


class SessionOut(_OrmModel):
    id: str
    application_id: str
    platform_id: int
    session_key: str
    user_id: Optional[str] = None
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    started_at: datetime
    ended_at: Optional[datetime] = None
    created_at: datetime


class EventLogOut(_OrmModel):
    id: str
    application_id: str
    session_id: str
    event_id: str
    platform_id: int
    properties: Dict[str, Any]
    created_at: datetime
