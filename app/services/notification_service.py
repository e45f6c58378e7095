from sqlalchemy.ext.asyncio import AsyncSession

from app.models.notification import Notification


async def create_notification(session: AsyncSession, user_id: int, content: str) -> Notification:
    """Append a notification for `user_id`; notifications are never updated here."""
    notification = Notification(user_id=user_id, content=content)
    session.add(notification)
    await session.flush()
    return notification
