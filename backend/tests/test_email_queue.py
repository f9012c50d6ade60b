from datetime import timedelta

import pytest
from sqlalchemy import select

from wishdraw.core import email_queue
from wishdraw.core.email_queue import SECRET_SANTA_EMAIL, process_email_queue, queue_email
from wishdraw.models.models import EmailPriorityEnum, EmailQueue, EmailQueueStatusEnum, utcnow


PAYLOAD = {
    "receiver_name": "Member 2",
    "group_name": "Family",
    "group_url": "http://localhost:3000/bubbles/1/secret-santa",
    "locale": "en",
}


async def _enqueue(session_factory, to="giver@example.com", **kwargs) -> int:
    async with session_factory() as session:
        row = await queue_email(session, SECRET_SANTA_EMAIL, to, dict(PAYLOAD), **kwargs)
        await session.commit()
        return row.id


async def _load(session_factory, email_id: int) -> EmailQueue:
    async with session_factory() as session:
        return await session.get(EmailQueue, email_id)


@pytest.fixture
def sent(monkeypatch):
    calls = []

    async def _fake_sender(to, payload):
        calls.append((to, payload))

    monkeypatch.setitem(email_queue.EMAIL_SENDERS, SECRET_SANTA_EMAIL, _fake_sender)
    return calls


@pytest.fixture
def failing_sender(monkeypatch):
    async def _fail(to, payload):
        raise ConnectionRefusedError("smtp down")

    monkeypatch.setitem(email_queue.EMAIL_SENDERS, SECRET_SANTA_EMAIL, _fail)


@pytest.mark.anyio
async def test_pending_email_is_sent(session_factory, sent):
    email_id = await _enqueue(session_factory)

    stats = await process_email_queue(session_factory, send_delay_ms=0)

    assert stats.as_dict() == {"processed": 1, "succeeded": 1, "failed": 0}
    assert sent == [("giver@example.com", PAYLOAD)]
    row = await _load(session_factory, email_id)
    assert row.status == EmailQueueStatusEnum.COMPLETED.value
    assert row.attempts == 1
    assert row.processed_at is not None


@pytest.mark.anyio
async def test_failed_send_is_retried_later(session_factory, failing_sender):
    email_id = await _enqueue(session_factory)

    stats = await process_email_queue(session_factory, send_delay_ms=0)

    assert stats.failed == 1
    row = await _load(session_factory, email_id)
    assert row.status == EmailQueueStatusEnum.PENDING.value
    assert row.attempts == 1
    assert "smtp down" in row.last_error
    # Not due again until the backoff has passed.
    assert row.scheduled_for.replace(tzinfo=None) > (utcnow() + timedelta(minutes=3)).replace(tzinfo=None)

    again = await process_email_queue(session_factory, send_delay_ms=0)
    assert again.processed == 0


@pytest.mark.anyio
async def test_last_attempt_marks_failed(session_factory, failing_sender):
    email_id = await _enqueue(session_factory, max_attempts=2)

    await process_email_queue(session_factory, send_delay_ms=0)
    await process_email_queue(session_factory, send_delay_ms=0, now=utcnow() + timedelta(hours=1))

    row = await _load(session_factory, email_id)
    assert row.status == EmailQueueStatusEnum.FAILED.value
    assert row.attempts == 2

    later = await process_email_queue(session_factory, send_delay_ms=0, now=utcnow() + timedelta(days=1))
    assert later.processed == 0


@pytest.mark.anyio
async def test_high_priority_goes_first(session_factory, sent):
    await _enqueue(session_factory, to="normal@example.com")
    await _enqueue(session_factory, to="urgent@example.com", priority=EmailPriorityEnum.HIGH)

    await process_email_queue(session_factory, send_delay_ms=0)

    assert [to for to, _ in sent] == ["urgent@example.com", "normal@example.com"]


@pytest.mark.anyio
async def test_batch_size_limits_run(session_factory, sent):
    for index in range(3):
        await _enqueue(session_factory, to=f"giver{index}@example.com")

    stats = await process_email_queue(session_factory, batch_size=2, send_delay_ms=0)

    assert stats.processed == 2
    async with session_factory() as session:
        pending = (
            await session.scalars(
                select(EmailQueue).where(EmailQueue.status == EmailQueueStatusEnum.PENDING.value)
            )
        ).all()
    assert len(pending) == 1


@pytest.mark.anyio
async def test_future_email_waits(session_factory, sent):
    await _enqueue(session_factory, scheduled_for=utcnow() + timedelta(hours=2))
    stats = await process_email_queue(session_factory, send_delay_ms=0)
    assert stats.processed == 0
    assert sent == []


@pytest.mark.anyio
async def test_unknown_email_type_is_rejected(session_factory):
    async with session_factory() as session:
        with pytest.raises(ValueError):
            await queue_email(session, "newsletter", "someone@example.com", {})
