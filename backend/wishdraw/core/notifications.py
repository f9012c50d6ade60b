from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from wishdraw.core.i18n import translate
from wishdraw.models.models import Notification, NotificationTypeEnum, User


async def create_notification(
    session: AsyncSession,
    user: User,
    type: NotificationTypeEnum,
    title: str,
    body: str,
    group_id: int | None = None,
    data: dict[str, Any] | None = None,
) -> Notification | None:
    """Add an in-app notification unless the user has them switched off."""
    if not user.notify_in_app:
        return None
    notification = Notification(
        user_id=user.id,
        type=type.value,
        title=title,
        body=body,
        group_id=group_id,
        data=data,
    )
    session.add(notification)
    await session.flush()
    return notification


async def create_localized_notification(
    session: AsyncSession,
    user: User,
    type: NotificationTypeEnum,
    message_type: str,
    message_params: dict[str, Any],
    group_id: int | None = None,
    data: dict[str, Any] | None = None,
) -> Notification | None:
    content = translate(user.locale, message_type, **message_params)
    return await create_notification(
        session,
        user,
        type,
        title=content["title"],
        body=content["body"],
        group_id=group_id,
        data=data,
    )
