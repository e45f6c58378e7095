from datetime import datetime

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from app.utils.dates import utc_naive_now


class Notification(SQLModel, table=True):
    __tablename__ = "notifications"
    id: int | None = Field(default=None, primary_key=True)
    content: str
    user_id: int = Field(foreign_key="users.id", index=True)  # recipient
    read: bool = False
    created_at: datetime = Field(default_factory=utc_naive_now, sa_type=DateTime())
