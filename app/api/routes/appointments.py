from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user, get_session
from app.api.schemas.appointment import MAX_ID, StoreAppointmentRequest
from app.core.config import settings
from app.models.appointment import (
    Appointment,
    AppointmentPublic,
    AppointmentSummary,
    ProviderSummary,
)
from app.models.file import AvatarPublic, File
from app.models.user import User
from app.services.appointment_service import (
    AppointmentError,
    cancel_appointment,
    create_appointment,
    list_appointments_for_user,
)
from app.utils.dates import to_naive_utc

router = APIRouter(prefix="/appointments", tags=["appointments"])


def _naive(dt: datetime | None) -> datetime | None:
    return to_naive_utc(dt) if dt is not None else None


def _to_public(a: Appointment) -> AppointmentPublic:
    return AppointmentPublic(
        id=a.id,
        user_id=a.user_id,
        provider_id=a.provider_id,
        date=_naive(a.date),
        canceled_at=_naive(a.canceled_at),
    )


def _to_summary(a: Appointment, provider: User, avatar: File | None) -> AppointmentSummary:
    """Listing shape: appointment date plus a shallow provider view."""
    avatar_public = None
    if avatar is not None:
        avatar_public = AvatarPublic(url=settings.file_url(avatar.path), id=avatar.id, path=avatar.path)
    return AppointmentSummary(
        id=a.id,
        date=_naive(a.date),
        provider=ProviderSummary(id=provider.id, name=provider.name, avatar=avatar_public),
    )


def _http_error(exc: AppointmentError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.message)


@router.get("", response_model=list[AppointmentSummary])
async def list_my_appointments(
    page: int = Query(1, ge=1, le=MAX_ID),
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> list[AppointmentSummary]:
    rows = await list_appointments_for_user(session, current_user.id, page=page)
    return [_to_summary(a, provider, avatar) for a, provider, avatar in rows]


@router.post("", response_model=AppointmentPublic)
async def store_appointment(
    body: StoreAppointmentRequest,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> AppointmentPublic:
    try:
        appointment = await create_appointment(
            session, current_user.id, body.provider_id, body.date
        )
    except AppointmentError as e:
        raise _http_error(e) from e
    return _to_public(appointment)


@router.delete("/{appointment_id}", response_model=AppointmentPublic)
async def cancel_my_appointment(
    appointment_id: int = Path(le=MAX_ID),
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> AppointmentPublic:
    try:
        appointment = await cancel_appointment(session, appointment_id, current_user.id)
    except AppointmentError as e:
        raise _http_error(e) from e
    return _to_public(appointment)
