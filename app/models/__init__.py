from app.models.file import AvatarPublic, File
from app.models.user import User, UserPublic
from app.models.appointment import (
    Appointment,
    AppointmentPublic,
    AppointmentSummary,
    ProviderSummary,
)
from app.models.notification import Notification

__all__ = [
    "AvatarPublic",
    "File",
    "User",
    "UserPublic",
    "Appointment",
    "AppointmentPublic",
    "AppointmentSummary",
    "ProviderSummary",
    "Notification",
]
