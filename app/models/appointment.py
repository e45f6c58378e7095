from datetime import datetime

from sqlalchemy import DateTime, Index, text
from sqlmodel import Field, SQLModel

from app.models.file import AvatarPublic
from app.utils.dates import utc_naive_now

ACTIVE_SLOT_INDEX = "uq_appointments_provider_active_slot"


class Appointment(SQLModel, table=True):
    __tablename__ = "appointments"
    # One active booking per provider and hour; canceled rows free the slot
    __table_args__ = (
        Index(
            ACTIVE_SLOT_INDEX,
            "provider_id",
            "date",
            unique=True,
            postgresql_where=text("canceled_at IS NULL"),
            sqlite_where=text("canceled_at IS NULL"),
        ),
    )
    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    provider_id: int = Field(foreign_key="users.id", index=True)
    # Naive UTC columns (TIMESTAMP WITHOUT TIME ZONE)
    date: datetime = Field(sa_type=DateTime(), index=True)  # always truncated to the hour
    canceled_at: datetime | None = Field(default=None, sa_type=DateTime())
    created_at: datetime = Field(default_factory=utc_naive_now, sa_type=DateTime())
    updated_at: datetime = Field(default_factory=utc_naive_now, sa_type=DateTime())


class AppointmentPublic(SQLModel):
    id: int
    user_id: int
    provider_id: int
    date: datetime
    canceled_at: datetime | None = None


class ProviderSummary(SQLModel):
    id: int
    name: str
    avatar: AvatarPublic | None = None


class AppointmentSummary(SQLModel):
    id: int
    date: datetime
    provider: ProviderSummary
