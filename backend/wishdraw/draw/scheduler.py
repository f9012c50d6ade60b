import logging
import time
from dataclasses import asdict, dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from wishdraw.core.config import settings
from wishdraw.core.draw_metrics import draw_metrics
from wishdraw.draw.errors import DrawError
from wishdraw.draw.orchestrator import DrawOrchestrator
from wishdraw.models.models import Group, utcnow

logger = logging.getLogger("wishdraw.scheduler")


@dataclass
class SweepResult:
    groups_checked: int = 0
    draws_executed: int = 0
    draws_failed: int = 0
    groups_deferred: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


async def list_due_groups(session: AsyncSession, now: datetime) -> list[int]:
    result = await session.execute(
        select(Group.id)
        .where(
            Group.archived_at.is_(None),
            Group.is_secret_santa.is_(True),
            Group.secret_santa_drawn.is_(False),
            Group.secret_santa_draw_date.is_not(None),
            Group.secret_santa_draw_date <= now,
        )
        .order_by(Group.secret_santa_draw_date.asc(), Group.id.asc())
    )
    return list(result.scalars().all())


async def run_scheduled_draws(
    session_factory: async_sessionmaker[AsyncSession],
    now: datetime | None = None,
    orchestrator: DrawOrchestrator | None = None,
    budget_seconds: float | None = None,
) -> SweepResult:
    """Draw every group whose scheduled time has passed.

    Each group is its own unit of work: a failure is counted and logged and the
    sweep moves on. Groups left over when the time budget runs out are counted
    as deferred and picked up by the next sweep, since they are still undrawn.
    """
    now = now or utcnow()
    orchestrator = orchestrator or DrawOrchestrator(session_factory)
    budget = settings.scheduled_draw_budget_seconds if budget_seconds is None else budget_seconds
    deadline = time.monotonic() + budget

    async with session_factory() as session:
        due = await list_due_groups(session, now)

    result = SweepResult(groups_checked=len(due))
    for index, group_id in enumerate(due):
        if time.monotonic() >= deadline:
            result.groups_deferred = len(due) - index
            logger.warning(
                "Scheduled draw budget exhausted budget_s=%.1f deferred=%s",
                budget,
                result.groups_deferred,
            )
            break
        try:
            outcome = await orchestrator.execute_draw(group_id, automated=True)
        except DrawError as exc:
            result.draws_failed += 1
            logger.error(
                "Scheduled draw failed group_id=%s kind=%s reason=%s",
                group_id,
                exc.kind.value,
                exc.message,
            )
        except Exception:
            result.draws_failed += 1
            logger.exception("Error executing scheduled draw group_id=%s", group_id)
        else:
            result.draws_executed += 1
            logger.info(
                "Scheduled draw executed successfully group_id=%s assignments=%s",
                group_id,
                outcome.assignment_count,
            )

    draw_metrics.record_sweep()
    logger.info(
        "Scheduled draw cron completed checked=%s executed=%s failed=%s deferred=%s",
        result.groups_checked,
        result.draws_executed,
        result.draws_failed,
        result.groups_deferred,
    )
    return result
