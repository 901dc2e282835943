from datetime import datetime, timezone
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel
from pydantic.config import ConfigDict

from .utils import sanitize_input

Role = Literal["client", "admin"]
ServiceType = Literal[
    "cloud-computing",
    "network-setup",
    "cybersecurity",
    "devops",
    "it-support",
    "data-analytics",
]
AppointmentStatus = Literal["pending", "confirmed", "cancelled"]
Priority = Literal["low", "medium", "high", "urgent"]
ServiceRequestStatus = Literal["open", "in-progress", "resolved", "closed"]
InvoiceStatus = Literal["pending", "paid", "overdue"]


def _required_text(value):
    if value is None:
        return value
    cleaned = sanitize_input(value)
    if not cleaned:
        raise ValueError("must not be empty")
    return cleaned


def _optional_text(value):
    if value is None:
        return None
    return sanitize_input(value) or None


def _naive_utc(value):
    if isinstance(value, datetime) and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _not_null(value):
    if value is None:
        raise ValueError("may not be null")
    return value


class CamelModel(BaseModel):
    # JSON uses camelCase; snake_case is accepted on input too
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ReadModel(CamelModel):
    model_config = ConfigDict(from_attributes=True)


# -------------------- Users --------------------

class UserRead(ReadModel):
    id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image_url: Optional[str] = None
    role: str = "client"
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class UserUpsert(CamelModel):
    """Profile fields taken from identity-provider claims at login."""
    id: str = Field(..., min_length=1)
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image_url: Optional[str] = None


class RoleUpdate(CamelModel):
    role: Role


class StatusUpdate(CamelModel):
    is_active: bool = Field(..., strict=True)


# -------------------- Appointments --------------------

class AppointmentCreate(CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    service_type: ServiceType
    description: Optional[str] = Field(default=None, max_length=5000)
    scheduled_at: datetime
    notes: Optional[str] = Field(default=None, max_length=5000)

    @field_validator("title")
    def clean_title(cls, v):
        return _required_text(v)

    @field_validator("description", "notes")
    def clean_text(cls, v):
        return _optional_text(v)

    @field_validator("scheduled_at")
    def to_utc(cls, v):
        return _naive_utc(v)


class AppointmentUpdate(CamelModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    service_type: Optional[ServiceType] = None
    description: Optional[str] = Field(default=None, max_length=5000)
    scheduled_at: Optional[datetime] = None
    status: Optional[AppointmentStatus] = None
    notes: Optional[str] = Field(default=None, max_length=5000)

    @field_validator("title", "service_type", "scheduled_at", "status")
    def not_null(cls, v):
        return _not_null(v)

    @field_validator("title")
    def clean_title(cls, v):
        return _required_text(v)

    @field_validator("description", "notes")
    def clean_text(cls, v):
        return _optional_text(v)

    @field_validator("scheduled_at")
    def to_utc(cls, v):
        return _naive_utc(v)


class AppointmentRead(ReadModel):
    id: int
    user_id: str
    title: str
    service_type: str
    description: Optional[str] = None
    scheduled_at: datetime
    status: str
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime


# -------------------- Service requests --------------------

class ServiceRequestCreate(CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    service_type: ServiceType
    priority: Priority = "medium"
    description: str = Field(..., min_length=1, max_length=5000)

    @field_validator("title", "description")
    def clean_text(cls, v):
        return _required_text(v)


class ServiceRequestUpdate(CamelModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    service_type: Optional[ServiceType] = None
    priority: Optional[Priority] = None
    description: Optional[str] = Field(default=None, min_length=1, max_length=5000)
    status: Optional[ServiceRequestStatus] = None

    @field_validator("title", "service_type", "priority", "description", "status")
    def not_null(cls, v):
        return _not_null(v)

    @field_validator("title", "description")
    def clean_text(cls, v):
        return _required_text(v)


class ServiceRequestRead(ReadModel):
    id: int
    user_id: str
    title: str
    service_type: str
    priority: str
    description: str
    status: str
    created_at: datetime
    updated_at: datetime


# -------------------- Invoices --------------------

class InvoiceCreate(CamelModel):
    user_id: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=Decimal("-0.01"))
    description: str = Field(..., min_length=1, max_length=2000)
    due_date: datetime
    status: InvoiceStatus = "pending"

    @field_validator("description")
    def clean_text(cls, v):
        return _required_text(v)

    @field_validator("due_date")
    def to_utc(cls, v):
        return _naive_utc(v)

    @field_validator("amount")
    def non_negative(cls, v: Decimal):
        if v < 0:
            raise ValueError("amount must be non-negative")
        # Do not quantize here; business logic will round using HALF_UP
        return v


class InvoiceUpdate(CamelModel):
    amount: Optional[Decimal] = None
    description: Optional[str] = Field(default=None, min_length=1, max_length=2000)
    due_date: Optional[datetime] = None
    status: Optional[InvoiceStatus] = None

    @field_validator("amount", "description", "due_date", "status")
    def not_null(cls, v):
        return _not_null(v)

    @field_validator("description")
    def clean_text(cls, v):
        return _required_text(v)

    @field_validator("due_date")
    def to_utc(cls, v):
        return _naive_utc(v)

    @field_validator("amount")
    def non_negative(cls, v: Decimal):
        if v < 0:
            raise ValueError("amount must be non-negative")
        return v


class InvoiceRead(ReadModel):
    id: int
    user_id: str
    amount: Decimal
    description: str
    status: str
    due_date: datetime
    created_at: datetime
    updated_at: datetime


# -------------------- Contact --------------------

class ContactSubmissionCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    subject: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1, max_length=5000)

    @field_validator("name", "subject", "message")
    def clean_text(cls, v):
        return _required_text(v)


class ContactSubmissionRead(ReadModel):
    id: int
    name: str
    email: str
    subject: str
    message: str
    is_read: bool
    created_at: datetime


class ContactAccepted(CamelModel):
    id: int
    message: str = "Contact form submitted successfully"


# -------------------- Health --------------------

class PoolHealth(CamelModel):
    healthy: bool
    latency_ms: float
    error: Optional[str] = None


class ClusterHealth(CamelModel):
    status: Literal["healthy", "degraded", "unhealthy"]
    timestamp: datetime
    primary: PoolHealth
    replica: PoolHealth


class PoolStats(CamelModel):
    total: int
    idle: int
    waiting: int


class ConnectionStats(CamelModel):
    timestamp: datetime
    primary: PoolStats
    replica: PoolStats
