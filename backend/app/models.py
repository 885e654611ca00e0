import re
import uuid
from datetime import datetime, timezone
from typing import Literal

from pydantic import EmailStr, field_validator
from sqlalchemy import DateTime, JSON
from sqlmodel import Field, Relationship, SQLModel


def get_datetime_utc() -> datetime:
    return datetime.now(timezone.utc)


ReportStatus = Literal["draft", "generating", "complete", "error"]
InputMode = Literal["guided", "freeform"]

REVIEW_STATUSES = ("under_review", "ready_to_send", "sent")
FILE_TYPES = ("t12", "rent_roll", "leasing_activity", "other", "additional")
HEX_COLOR = re.compile(r"^#[0-9A-Fa-f]{6}$")


# Shared properties
class UserBase(SQLModel):
    email: EmailStr = Field(unique=True, index=True, max_length=255)
    is_active: bool = True
    is_superuser: bool = False
    full_name: str | None = Field(default=None, max_length=255)


# Properties to receive via API on creation
class UserCreate(UserBase):
    password: str = Field(min_length=8, max_length=128)


class UserRegister(SQLModel):
    email: EmailStr = Field(max_length=255)
    password: str = Field(min_length=8, max_length=128)
    full_name: str | None = Field(default=None, max_length=255)


# Properties to receive via API on update, all are optional
class UserUpdate(UserBase):
    email: EmailStr | None = Field(default=None, max_length=255)  # type: ignore
    password: str | None = Field(default=None, min_length=8, max_length=128)


class UserUpdateMe(SQLModel):
    full_name: str | None = Field(default=None, max_length=255)
    email: EmailStr | None = Field(default=None, max_length=255)


class UpdatePassword(SQLModel):
    current_password: str = Field(min_length=8, max_length=128)
    new_password: str = Field(min_length=8, max_length=128)


# Database model, database table inferred from class name
class User(UserBase, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    hashed_password: str
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )


# Properties to return via API, id is always required
class UserPublic(UserBase):
    id: uuid.UUID
    created_at: datetime | None = None


class UsersPublic(SQLModel):
    data: list[UserPublic]
    count: int


# Generic message
class Message(SQLModel):
    message: str


# JSON payload containing access token
class Token(SQLModel):
    access_token: str
    token_type: str = "bearer"


# Contents of JWT token
class TokenPayload(SQLModel):
    sub: str | None = None


# Properties (real estate assets)

class PropertyBase(SQLModel):
    name: str = Field(min_length=1, max_length=255)
    address: str | None = Field(default=None, max_length=500)
    city: str | None = Field(default=None, max_length=255)
    state: str | None = Field(default=None, max_length=100)
    units: int | None = Field(default=None, ge=0)
    investment_strategy: str | None = Field(default=None, max_length=100)


class PropertyCreate(PropertyBase):
    pass


class PropertyUpdate(SQLModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    address: str | None = Field(default=None, max_length=500)
    city: str | None = Field(default=None, max_length=255)
    state: str | None = Field(default=None, max_length=100)
    units: int | None = Field(default=None, ge=0)
    investment_strategy: str | None = Field(default=None, max_length=100)

    @field_validator("name")
    @classmethod
    def _name_not_null(cls, value: str | None) -> str:
        if value is None:
            raise ValueError("name may not be null")
        return value


class Property(PropertyBase, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID = Field(
        foreign_key="user.id", nullable=False, ondelete="CASCADE", index=True
    )
    budget_file_path: str | None = Field(default=None, max_length=1024)
    budget_file_name: str | None = Field(default=None, max_length=255)
    budget_uploaded_at: datetime | None = Field(
        default=None,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    locked: bool = False
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    updated_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )


class PropertyPublic(PropertyBase):
    id: uuid.UUID
    user_id: uuid.UUID
    budget_file_path: str | None = None
    budget_file_name: str | None = None
    budget_uploaded_at: datetime | None = None
    locked: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ReportSummary(SQLModel):
    id: uuid.UUID
    month: int
    year: int
    status: str
    review_status: str
    created_at: datetime | None = None


class PropertyWithLastReport(PropertyPublic):
    last_report: ReportSummary | None = None


class PropertyDetail(PropertyPublic):
    has_reports: bool = False


class PropertyStats(SQLModel):
    total_properties: int
    total_units: int


class PropertiesPublic(SQLModel):
    data: list[PropertyWithLastReport]
    count: int
    stats: PropertyStats


# Reports

class ReportBase(SQLModel):
    month: int = Field(ge=1, le=12)
    year: int = Field(ge=2000, le=2100)
    input_mode: str = Field(default="guided", max_length=20)  # guided, freeform
    questionnaire: dict = Field(default_factory=dict, sa_type=JSON)
    freeform_narrative: str | None = Field(default=None)
    distribution_status: str | None = Field(default=None, max_length=50)
    distribution_note: str | None = Field(default=None)


class ReportCreate(ReportBase):
    property_id: uuid.UUID
    input_mode: InputMode = "guided"


class ReportUpdate(SQLModel):
    questionnaire: dict | None = None
    freeform_narrative: str | None = None
    input_mode: InputMode | None = None
    narrative: str | None = None
    content: dict | None = None
    distribution_status: str | None = Field(default=None, max_length=50)
    distribution_note: str | None = None
    status: ReportStatus | None = None
    generated_sections: list[dict] | None = None

    # Columns that are NOT NULL in the report table
    @field_validator("questionnaire", "input_mode", "status")
    @classmethod
    def _not_null(cls, value):
        if value is None:
            raise ValueError("may not be null")
        return value


class ReviewStatusUpdate(SQLModel):
    review_status: str


class Report(ReportBase, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    property_id: uuid.UUID = Field(
        foreign_key="property.id", nullable=False, ondelete="CASCADE", index=True
    )
    user_id: uuid.UUID = Field(
        foreign_key="user.id", nullable=False, ondelete="CASCADE", index=True
    )
    status: str = Field(default="draft", max_length=20)  # draft, generating, complete, error
    review_status: str = Field(default="under_review", max_length=20)
    narrative: str | None = Field(default=None)
    content: dict | None = Field(default=None, sa_type=JSON)
    financial_data: dict | None = Field(default=None, sa_type=JSON)
    generated_sections: list | None = Field(default=None, sa_type=JSON)
    raw_analysis: dict | None = Field(default=None, sa_type=JSON)
    generation_status: str | None = Field(default=None, max_length=50)
    generation_started_at: datetime | None = Field(
        default=None,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    generation_completed_at: datetime | None = Field(
        default=None,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    generation_config: dict | None = Field(default=None, sa_type=JSON)
    template_version: str = Field(default="v1", max_length=20)
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    updated_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    files: list["ReportFile"] = Relationship(back_populates="report", cascade_delete=True)


class ReportPublic(ReportBase):
    id: uuid.UUID
    property_id: uuid.UUID
    user_id: uuid.UUID
    status: str
    review_status: str
    narrative: str | None = None
    content: dict | None = None
    financial_data: dict | None = None
    generated_sections: list | None = None
    raw_analysis: dict | None = None
    generation_status: str | None = None
    generation_started_at: datetime | None = None
    generation_completed_at: datetime | None = None
    generation_config: dict | None = None
    template_version: str = "v1"
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ReportWithProperty(ReportPublic):
    property: PropertyPublic | None = None


class ReportListItem(ReportPublic):
    property_name: str | None = None


class ReportStats(SQLModel):
    total: int = 0
    complete: int = 0
    draft: int = 0
    generating: int = 0
    error: int = 0
    this_month: int = 0


class ReportPeriod(SQLModel):
    month: int
    year: int


class ReportsPublic(SQLModel):
    data: list[ReportListItem]
    count: int
    stats: ReportStats
    current_period: ReportPeriod


class ReportGenerationStatus(SQLModel):
    status: str
    generation_status: str | None = None
    generation_started_at: datetime | None = None
    generation_completed_at: datetime | None = None


class RegenerateSectionRequest(SQLModel):
    section_id: str
    user_notes: str = "Improve this section"


# Uploaded report documents

class ReportFileBase(SQLModel):
    file_type: str = Field(max_length=50)  # t12, rent_roll, leasing_activity, other, additional
    file_name: str = Field(max_length=255)
    file_size: int | None = Field(default=None, ge=0)


class ReportFileCreate(ReportFileBase):
    report_id: uuid.UUID
    storage_path: str


class ReportFile(ReportFileBase, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    report_id: uuid.UUID = Field(
        foreign_key="report.id", nullable=False, ondelete="CASCADE", index=True
    )
    user_id: uuid.UUID = Field(
        foreign_key="user.id", nullable=False, ondelete="CASCADE"
    )
    storage_path: str = Field(max_length=1024)
    processing_status: str = Field(default="pending", max_length=20)
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    report: Report | None = Relationship(back_populates="files")


class ReportFilePublic(ReportFileBase):
    id: uuid.UUID
    report_id: uuid.UUID
    storage_path: str
    processing_status: str
    created_at: datetime | None = None


# Per-user branding and report preferences

class UserSettingsBase(SQLModel):
    company_name: str | None = Field(default=None, max_length=255)
    company_logo_url: str | None = Field(default=None, max_length=1024)
    accent_color: str = Field(default="#27272A", max_length=20)
    secondary_color: str = Field(default="#EFF6FF", max_length=20)
    report_accent_color: str = Field(default="#2563EB", max_length=20)
    ai_tone: str = Field(default="balanced", max_length=50)
    custom_disclaimer: str | None = Field(default=None)
    report_template: list[str] | None = Field(default=None, sa_type=JSON)


class UserSettingsUpdate(SQLModel):
    company_name: str | None = Field(default=None, max_length=255)
    accent_color: str | None = Field(default=None, max_length=20)
    secondary_color: str | None = Field(default=None, max_length=20)
    report_accent_color: str | None = Field(default=None, max_length=20)
    ai_tone: str | None = Field(default=None, max_length=50)
    custom_disclaimer: str | None = None
    report_template: list[str] | None = None

    @field_validator("accent_color", "secondary_color", "report_accent_color")
    @classmethod
    def _hex_color(cls, value: str | None) -> str | None:
        if value is not None and not HEX_COLOR.match(value):
            raise ValueError("must be a hex color like #1A2B3C")
        return value


class UserSettings(UserSettingsBase, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID = Field(
        foreign_key="user.id", nullable=False, ondelete="CASCADE", unique=True
    )
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    updated_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )


class UserSettingsPublic(UserSettingsBase):
    id: uuid.UUID
    user_id: uuid.UUID
    updated_at: datetime | None = None


# Billing state mirrored from Stripe

class SubscriptionBase(SQLModel):
    stripe_customer_id: str | None = Field(default=None, max_length=255, index=True)
    stripe_subscription_id: str | None = Field(default=None, max_length=255)
    plan_tier: str = Field(default="free", max_length=50)
    billing_cycle: str | None = Field(default=None, max_length=20)
    property_slots: int = Field(default=0, ge=0)
    status: str = Field(default="inactive", max_length=50)  # inactive, active, past_due, canceled, ...
    current_period_start: datetime | None = Field(
        default=None,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    current_period_end: datetime | None = Field(
        default=None,
        sa_type=DateTime(timezone=True),  # type: ignore
    )


class Subscription(SubscriptionBase, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID = Field(
        foreign_key="user.id", nullable=False, ondelete="CASCADE", unique=True
    )
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    updated_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )


class SubscriptionPublic(SubscriptionBase):
    user_id: uuid.UUID | None = None


class SubscriptionUsage(SQLModel):
    properties_used: int
    properties_available: int


class SubscriptionWithUsage(SQLModel):
    subscription: SubscriptionPublic
    usage: SubscriptionUsage


class CheckoutRequest(SQLModel):
    tier: Literal["foundational", "professional", "institutional"]
    billing_cycle: Literal["monthly", "quarterly", "yearly"]
    property_count: int = Field(ge=1)


class RedirectURL(SQLModel):
    url: str


# Dashboard

class DashboardStats(SQLModel):
    total_properties: int
    total_units: int
    reports_this_month: int
    completed_reports: int
    pending_reports: int
    properties_needing_reports: int


class DashboardPublic(SQLModel):
    stats: DashboardStats
    current_period: ReportPeriod
    properties: list[PropertyPublic]
    recent_reports: list[ReportListItem]
    properties_needing_reports: list[PropertyPublic]


# Export

class PdfExportRequest(SQLModel):
    html: str | None = None
    report_id: uuid.UUID | None = None
    title: str | None = None
    file_name: str | None = None

