import random
from datetime import timedelta

import pytest
from sqlalchemy import func, select

from wishdraw.draw.orchestrator import DrawOrchestrator
from wishdraw.draw.scheduler import list_due_groups, run_scheduled_draws
from wishdraw.models.models import Activity, SecretSantaDraw, utcnow


def _orchestrator(session_factory) -> DrawOrchestrator:
    return DrawOrchestrator(session_factory, rng=random.Random(11), max_attempts=50)


def _past():
    return utcnow() - timedelta(minutes=5)


@pytest.mark.anyio
async def test_sweep_counts_success_and_failure(session_factory, seed_group):
    feasible = await seed_group(3, draw_date=_past())
    infeasible = await seed_group(3, draw_date=_past(), exclusions=((0, 1), (1, 2), (0, 2)))

    result = await run_scheduled_draws(session_factory, orchestrator=_orchestrator(session_factory))

    assert result.as_dict() == {
        "groups_checked": 2,
        "draws_executed": 1,
        "draws_failed": 1,
        "groups_deferred": 0,
    }
    async with session_factory() as session:
        drawn_groups = set(
            (await session.scalars(select(SecretSantaDraw.group_id).distinct())).all()
        )
    assert drawn_groups == {feasible.id}
    assert infeasible.id not in drawn_groups


@pytest.mark.anyio
async def test_only_due_groups_are_selected(session_factory, seed_group):
    due = await seed_group(3, draw_date=_past())
    await seed_group(3, draw_date=utcnow() + timedelta(days=1))
    await seed_group(3, draw_date=_past(), archived=True)
    await seed_group(3, draw_date=_past(), drawn=True)
    await seed_group(3, draw_date=_past(), is_secret_santa=False)
    await seed_group(3)

    async with session_factory() as session:
        assert await list_due_groups(session, utcnow()) == [due.id]


@pytest.mark.anyio
async def test_failing_group_does_not_abort_sweep(session_factory, seed_group):
    broken = await seed_group(3, draw_date=_past() - timedelta(hours=1))
    healthy = await seed_group(3, draw_date=_past())

    class _FlakyOrchestrator(DrawOrchestrator):
        async def execute_draw(self, group_id, actor_id=None, automated=False):
            if group_id == broken.id:
                raise RuntimeError("connection reset")
            return await super().execute_draw(group_id, actor_id=actor_id, automated=automated)

    orchestrator = _FlakyOrchestrator(session_factory, rng=random.Random(3))
    result = await run_scheduled_draws(session_factory, orchestrator=orchestrator)

    assert result.groups_checked == 2
    assert result.draws_executed == 1
    assert result.draws_failed == 1
    async with session_factory() as session:
        count = await session.scalar(
            select(func.count()).select_from(SecretSantaDraw).where(SecretSantaDraw.group_id == healthy.id)
        )
    assert count == 3


@pytest.mark.anyio
async def test_too_small_group_counts_as_failed(session_factory, seed_group):
    await seed_group(2, draw_date=_past())
    result = await run_scheduled_draws(session_factory, orchestrator=_orchestrator(session_factory))
    assert (result.groups_checked, result.draws_executed, result.draws_failed) == (1, 0, 1)


@pytest.mark.anyio
async def test_exhausted_budget_defers_remaining_groups(session_factory, seed_group):
    await seed_group(3, draw_date=_past())
    await seed_group(3, draw_date=_past())

    result = await run_scheduled_draws(
        session_factory,
        orchestrator=_orchestrator(session_factory),
        budget_seconds=0,
    )

    assert result.groups_checked == 2
    assert result.draws_executed == 0
    assert result.groups_deferred == 2

    retry = await run_scheduled_draws(session_factory, orchestrator=_orchestrator(session_factory))
    assert retry.draws_executed == 2


@pytest.mark.anyio
async def test_repeated_sweep_does_not_redraw(session_factory, seed_group):
    await seed_group(3, draw_date=_past())
    await seed_group(3, draw_date=_past(), exclusions=((0, 1), (1, 2), (0, 2)))

    first = await run_scheduled_draws(session_factory, orchestrator=_orchestrator(session_factory))
    second = await run_scheduled_draws(session_factory, orchestrator=_orchestrator(session_factory))

    assert (first.groups_checked, first.draws_executed, first.draws_failed) == (2, 1, 1)
    # The infeasible group stays due and fails again; the drawn one is gone.
    assert (second.groups_checked, second.draws_executed, second.draws_failed) == (1, 0, 1)
    async with session_factory() as session:
        activities = await session.scalar(select(func.count()).select_from(Activity))
    assert activities == 1


@pytest.mark.anyio
async def test_sweep_with_nothing_due(session_factory):
    result = await run_scheduled_draws(session_factory)
    assert result.as_dict() == {
        "groups_checked": 0,
        "draws_executed": 0,
        "draws_failed": 0,
        "groups_deferred": 0,
    }
