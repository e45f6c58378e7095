import logging
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models.appointment import ACTIVE_SLOT_INDEX, Appointment
from app.models.file import File
from app.models.user import User
from app.services.notification_service import create_notification
from app.utils.date_format import format_booking_date
from app.utils.dates import start_of_hour, to_naive_utc, utc_naive_now

logger = logging.getLogger(__name__)


class AppointmentError(Exception):
    """Base for appointment rule violations; carries the HTTP status to answer with."""

    status_code = 400
    message = "Appointment request rejected"

    def __init__(self, message: str | None = None):
        self.message = message or self.message
        super().__init__(self.message)


class SelfBookingError(AppointmentError):
    status_code = 401
    message = "You can not create appointments for you"


class NotAProviderError(AppointmentError):
    status_code = 401
    message = "You can only create appointments with providers"


class PastDateError(AppointmentError):
    message = "Past date is not permitted"


class SlotUnavailableError(AppointmentError):
    message = "Appointment date is not available"


class AppointmentNotFoundError(AppointmentError):
    status_code = 404
    message = "Appointment not found"


class NotAppointmentOwnerError(AppointmentError):
    status_code = 401
    message = "You don't have permission to cancel this appointment."


class AlreadyCanceledError(AppointmentError):
    message = "Appointment is already canceled"


class CancellationWindowError(AppointmentError):
    status_code = 401

    def __init__(self, hours: int):
        super().__init__(f"You can only cancel appointments {hours} hours in advance.")


async def list_appointments_for_user(
    session: AsyncSession, user_id: int, page: int = 1
) -> list[tuple[Appointment, User, File | None]]:
    """Active appointments of `user_id` by ascending date, joined with provider and avatar."""
    page_size = settings.appointments_page_size
    q = (
        select(Appointment, User, File)
        .join(User, User.id == Appointment.provider_id)
        .outerjoin(File, File.id == User.avatar_id)
        .where(Appointment.user_id == user_id, Appointment.canceled_at.is_(None))
        .order_by(Appointment.date, Appointment.id)
        .limit(page_size)
        .offset((max(page, 1) - 1) * page_size)
    )
    result = await session.execute(q)
    return [(a, u, f) for a, u, f in result.all()]


async def get_provider(session: AsyncSession, provider_id: int) -> User | None:
    result = await session.execute(
        select(User).where(User.id == provider_id, User.provider == True)  # noqa: E712
    )
    return result.scalar_one_or_none()


async def find_active_appointment_at(
    session: AsyncSession, provider_id: int, slot_start: datetime
) -> Appointment | None:
    result = await session.execute(
        select(Appointment).where(
            Appointment.provider_id == provider_id,
            Appointment.date == slot_start,
            Appointment.canceled_at.is_(None),
        )
    )
    return result.scalars().first()


def _constraint_name(orig: BaseException | None) -> str | None:
    # asyncpg sets constraint_name on the driver error, which SQLAlchemy's
    # adapter chains as __cause__; psycopg exposes it through diag
    for err in (orig, getattr(orig, "__cause__", None)):
        if err is None:
            continue
        name = getattr(err, "constraint_name", None) or getattr(
            getattr(err, "diag", None), "constraint_name", None
        )
        if name:
            return name
    return None


def _is_slot_conflict(exc: IntegrityError) -> bool:
    name = _constraint_name(exc.orig)
    if name is not None:
        return name == ACTIVE_SLOT_INDEX
    # sqlite only reports the indexed columns
    return "UNIQUE constraint failed: appointments.provider_id, appointments.date" in str(exc.orig)


async def create_appointment(
    session: AsyncSession,
    user_id: int,
    provider_id: int,
    date: datetime,
    now: datetime | None = None,
) -> Appointment:
    now = now or utc_naive_now()

    if provider_id == user_id:
        raise SelfBookingError()

    if not await get_provider(session, provider_id):
        raise NotAProviderError()

    hours_start = start_of_hour(to_naive_utc(date))
    if hours_start < now:
        raise PastDateError()

    if await find_active_appointment_at(session, provider_id, hours_start):
        raise SlotUnavailableError()

    appointment = Appointment(user_id=user_id, provider_id=provider_id, date=hours_start)
    session.add(appointment)
    try:
        await session.flush()
    except IntegrityError as e:
        # A concurrent request took the slot between the check and the insert
        await session.rollback()
        if _is_slot_conflict(e):
            raise SlotUnavailableError() from e
        raise
    await session.refresh(appointment)

    requester = await session.get(User, user_id)
    formatted_date = format_booking_date(hours_start, requester.locale if requester else None)
    requester_name = requester.name if requester else "unknown"
    await create_notification(
        session,
        user_id=provider_id,
        content=f"New booking from {requester_name} for {formatted_date}",
    )
    logger.info(
        "Appointment %s created: user=%s provider=%s date=%s",
        appointment.id, user_id, provider_id, hours_start.isoformat(),
    )
    return appointment


async def cancel_appointment(
    session: AsyncSession,
    appointment_id: int,
    user_id: int,
    now: datetime | None = None,
) -> Appointment:
    now = now or utc_naive_now()

    appointment = await session.get(Appointment, appointment_id)
    if not appointment:
        raise AppointmentNotFoundError()

    if appointment.user_id != user_id:
        raise NotAppointmentOwnerError()

    if appointment.canceled_at is not None:
        raise AlreadyCanceledError()

    cutoff_hours = settings.cancellation_cutoff_hours
    if appointment.date - timedelta(hours=cutoff_hours) < now:
        raise CancellationWindowError(cutoff_hours)

    appointment.canceled_at = now
    appointment.updated_at = now
    session.add(appointment)
    await session.flush()
    await session.refresh(appointment)
    logger.info("Appointment %s canceled by user %s", appointment.id, user_id)
    return appointment
