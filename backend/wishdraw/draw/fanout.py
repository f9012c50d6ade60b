"""Post-commit notifications for a Secret Santa draw.

Only givers are contacted, and only about their own receiver. Every channel
for every giver is attempted on its own; failures are logged and reported,
never raised, because the draw they describe is already committed.
"""
import logging
from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from wishdraw.core.config import settings
from wishdraw.core.email_queue import SECRET_SANTA_EMAIL, queue_email
from wishdraw.core.i18n import normalize_locale, translate
from wishdraw.core.notifications import create_localized_notification
from wishdraw.draw.errors import NotificationDeliveryError
from wishdraw.models.models import NotificationTypeEnum, User

logger = logging.getLogger("wishdraw.fanout")

IN_APP = "in_app"
EMAIL = "email"


@dataclass(frozen=True)
class CommittedDraw:
    group_id: int
    group_name: str
    assignments: list[tuple[int, int]]
    names: dict[int, str | None]


@dataclass
class FanoutReport:
    notifications_created: int = 0
    emails_queued: int = 0
    skipped: int = 0
    errors: list[NotificationDeliveryError] = field(default_factory=list)


class NotificationFanout:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def notify(self, draw: CommittedDraw) -> FanoutReport:
        report = FanoutReport()
        for giver_id, receiver_id in draw.assignments:
            for channel, send in ((IN_APP, self._notify_in_app), (EMAIL, self._queue_email)):
                try:
                    delivered = await send(draw, giver_id, receiver_id)
                except Exception as exc:
                    error = NotificationDeliveryError(channel, giver_id, exc)
                    report.errors.append(error)
                    logger.error(
                        "Secret Santa %s notification failed group_id=%s giver_id=%s error=%s",
                        channel,
                        draw.group_id,
                        giver_id,
                        exc,
                    )
                    continue
                if not delivered:
                    report.skipped += 1
                elif channel == IN_APP:
                    report.notifications_created += 1
                else:
                    report.emails_queued += 1

        logger.info(
            "Secret Santa notifications group_id=%s in_app=%s emails=%s skipped=%s errors=%s",
            draw.group_id,
            report.notifications_created,
            report.emails_queued,
            report.skipped,
            len(report.errors),
        )
        return report

    def _receiver_name(self, draw: CommittedDraw, receiver_id: int, locale: str | None) -> str:
        return draw.names.get(receiver_id) or translate(locale, "someone")["text"]

    async def _notify_in_app(self, draw: CommittedDraw, giver_id: int, receiver_id: int) -> bool:
        async with self._session_factory() as session:
            giver = await session.get(User, giver_id)
            if giver is None:
                return False
            receiver_name = self._receiver_name(draw, receiver_id, giver.locale)
            notification = await create_localized_notification(
                session,
                giver,
                NotificationTypeEnum.SECRET_SANTA_DRAWN,
                message_type="secret_santa_drawn",
                message_params={"group_name": draw.group_name, "receiver_name": receiver_name},
                group_id=draw.group_id,
                data={"receiver_name": receiver_name, "group_url": settings.group_url(draw.group_id)},
            )
            await session.commit()
            return notification is not None

    async def _queue_email(self, draw: CommittedDraw, giver_id: int, receiver_id: int) -> bool:
        async with self._session_factory() as session:
            giver = await session.get(User, giver_id)
            if giver is None or not giver.email or not giver.notify_email:
                return False
            locale = normalize_locale(giver.locale)
            await queue_email(
                session,
                SECRET_SANTA_EMAIL,
                giver.email,
                {
                    "receiver_name": self._receiver_name(draw, receiver_id, locale),
                    "group_name": draw.group_name,
                    "group_url": settings.group_url(draw.group_id),
                    "locale": locale,
                },
            )
            await session.commit()
            return True
