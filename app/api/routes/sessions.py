import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.schemas.auth import SessionRequest, SessionResponse
from app.core.db import get_session
from app.services.auth_service import login_user, user_to_public

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.post("", response_model=SessionResponse)
async def create_session(
    body: SessionRequest,
    session: AsyncSession = Depends(get_session),
) -> SessionResponse:
    pair = await login_user(session, body.email, body.password)
    if not pair:
        logger.info("Failed login for %s", body.email)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )
    user, token = pair
    return SessionResponse(user=user_to_public(user), token=token)
