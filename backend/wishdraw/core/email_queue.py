"""Persistent outgoing email queue.

Producers insert rows with ``queue_email``; the ``/cron/email-queue`` job
drains them with ``process_email_queue``.
"""
import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from wishdraw.core.config import settings
from wishdraw.core.mailer import send_secret_santa_email
from wishdraw.models.models import EmailPriorityEnum, EmailQueue, EmailQueueStatusEnum, utcnow

logger = logging.getLogger("wishdraw.email_queue")

SECRET_SANTA_EMAIL = "secret_santa"


async def _send_secret_santa(to: str, payload: dict[str, Any]) -> None:
    await send_secret_santa_email(
        to_email=to,
        receiver_name=payload["receiver_name"],
        group_name=payload["group_name"],
        group_url=payload["group_url"],
        locale=payload.get("locale"),
    )


EMAIL_SENDERS: dict[str, Callable[[str, dict[str, Any]], Awaitable[None]]] = {
    SECRET_SANTA_EMAIL: _send_secret_santa,
}


@dataclass
class QueueRunStats:
    processed: int = 0
    succeeded: int = 0
    failed: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


async def queue_email(
    session: AsyncSession,
    email_type: str,
    to: str,
    payload: dict[str, Any],
    priority: EmailPriorityEnum = EmailPriorityEnum.NORMAL,
    scheduled_for: datetime | None = None,
    max_attempts: int | None = None,
) -> EmailQueue:
    """Add a pending email to the session; the caller commits."""
    if email_type not in EMAIL_SENDERS:
        raise ValueError(f"Unknown email type: {email_type}")
    row = EmailQueue(
        type=email_type,
        to=to,
        payload=payload,
        priority=int(priority),
        scheduled_for=scheduled_for or utcnow(),
        max_attempts=max_attempts or settings.email_queue_max_attempts,
        status=EmailQueueStatusEnum.PENDING.value,
        attempts=0,
    )
    session.add(row)
    await session.flush()
    logger.debug("Email queued id=%s type=%s to=%s", row.id, email_type, to)
    return row


def _retry_delay(attempts: int) -> timedelta:
    # 4, 16, 64 minutes
    return timedelta(minutes=4 ** attempts)


async def process_email_queue(
    session_factory: async_sessionmaker[AsyncSession],
    batch_size: int | None = None,
    send_delay_ms: int | None = None,
    now: datetime | None = None,
) -> QueueRunStats:
    stats = QueueRunStats()
    now = now or utcnow()
    batch_size = batch_size or settings.email_queue_batch_size
    delay_s = (settings.email_queue_send_delay_ms if send_delay_ms is None else send_delay_ms) / 1000.0

    async with session_factory() as session:
        result = await session.execute(
            select(EmailQueue.id)
            .where(
                EmailQueue.status == EmailQueueStatusEnum.PENDING.value,
                EmailQueue.scheduled_for <= now,
                EmailQueue.attempts < EmailQueue.max_attempts,
            )
            .order_by(EmailQueue.priority.asc(), EmailQueue.scheduled_for.asc())
            .limit(batch_size)
        )
        pending_ids = list(result.scalars().all())

    if not pending_ids:
        logger.debug("No pending emails to process")
        return stats

    logger.info("Processing email queue count=%s", len(pending_ids))

    for index, email_id in enumerate(pending_ids):
        async with session_factory() as session:
            email = await session.get(EmailQueue, email_id)
            if email is None or email.status != EmailQueueStatusEnum.PENDING.value:
                continue
            email.status = EmailQueueStatusEnum.PROCESSING.value
            email.attempts += 1
            await session.commit()

            sender = EMAIL_SENDERS.get(email.type)
            try:
                if sender is None:
                    raise LookupError(f"Unknown email type: {email.type}")
                await sender(email.to, dict(email.payload or {}))
            except Exception as exc:
                final = email.attempts >= email.max_attempts
                email.status = (
                    EmailQueueStatusEnum.FAILED.value if final else EmailQueueStatusEnum.PENDING.value
                )
                email.last_error = str(exc) or type(exc).__name__
                if not final:
                    email.scheduled_for = utcnow() + _retry_delay(email.attempts)
                stats.failed += 1
                logger.exception(
                    "Error processing queued email id=%s type=%s attempts=%s final=%s",
                    email.id,
                    email.type,
                    email.attempts,
                    final,
                )
            else:
                email.status = EmailQueueStatusEnum.COMPLETED.value
                email.processed_at = utcnow()
                stats.succeeded += 1
            await session.commit()

        stats.processed += 1
        if delay_s > 0 and index < len(pending_ids) - 1:
            await asyncio.sleep(delay_s)

    logger.info(
        "Email queue processing complete processed=%s succeeded=%s failed=%s",
        stats.processed,
        stats.succeeded,
        stats.failed,
    )
    return stats
