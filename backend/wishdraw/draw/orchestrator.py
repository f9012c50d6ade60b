"""Run a Secret Santa draw for one group, at most once per drawing epoch.

All reads and writes of one attempt share a single transaction. The
``drawn`` flag is claimed with a conditional UPDATE in that transaction, so
a manual trigger racing the scheduler cannot commit two assignment sets.
"""
import logging
import random
from dataclasses import dataclass
from time import perf_counter

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from wishdraw.core.audit import audit_draw, audit_draw_failed
from wishdraw.core.config import settings
from wishdraw.core.draw_metrics import draw_metrics
from wishdraw.draw.engine import MIN_MEMBERS, assign
from wishdraw.draw.errors import (
    AlreadyDrawn,
    ConstraintInfeasible,
    DrawError,
    GroupNotFound,
    InsufficientMembers,
    NothingToReset,
    PersistenceError,
)
from wishdraw.draw.exclusions import build_adjacency
from wishdraw.draw.fanout import CommittedDraw, FanoutReport, NotificationFanout
from wishdraw.models.models import (
    Activity,
    ActivityTypeEnum,
    Group,
    GroupMember,
    SecretSantaDraw,
    SecretSantaExclusion,
)

logger = logging.getLogger("wishdraw.draw")


@dataclass(frozen=True)
class DrawOutcome:
    group_id: int
    assignments: list[tuple[int, int]]
    notifications: FanoutReport | None = None

    @property
    def assignment_count(self) -> int:
        return len(self.assignments)


class DrawOrchestrator:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        rng: random.Random | None = None,
        max_attempts: int | None = None,
        min_members: int | None = None,
        exhaustive_fallback: bool | None = None,
        fanout: NotificationFanout | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._rng = rng if rng is not None else random.SystemRandom()
        self._max_attempts = settings.draw_max_attempts if max_attempts is None else max_attempts
        self._min_members = settings.draw_min_members if min_members is None else min_members
        if self._max_attempts < 1:
            raise ValueError("max_attempts must be positive")
        if self._min_members < MIN_MEMBERS:
            raise ValueError(f"min_members must be at least {MIN_MEMBERS}, got {self._min_members}")
        self._exhaustive_fallback = (
            settings.draw_exhaustive_fallback if exhaustive_fallback is None else exhaustive_fallback
        )
        self._fanout = fanout or NotificationFanout(session_factory)

    async def execute_draw(
        self,
        group_id: int,
        actor_id: int | None = None,
        automated: bool = False,
    ) -> DrawOutcome:
        """Draw, commit and notify.

        Raises a ``DrawError`` subclass (group left as it was) or
        ``GroupNotFound``. Notification problems never surface here.
        """
        start = perf_counter()
        try:
            committed = await self._draw_in_transaction(group_id, actor_id, automated)
        except DrawError as exc:
            draw_metrics.record_draw((perf_counter() - start) * 1000.0, automated, exc.kind.value)
            audit_draw_failed(group_id, exc.kind.value, automated, user_id=actor_id)
            logger.warning(
                "Secret Santa draw rejected group_id=%s kind=%s automated=%s reason=%s",
                group_id,
                exc.kind.value,
                automated,
                exc.message,
            )
            raise

        draw_metrics.record_draw((perf_counter() - start) * 1000.0, automated)
        audit_draw(group_id, len(committed.assignments), automated, user_id=actor_id)
        logger.info(
            "Secret Santa draw committed group_id=%s assignments=%s automated=%s",
            group_id,
            len(committed.assignments),
            automated,
        )

        report = None
        try:
            report = await self._fanout.notify(committed)
        except Exception:
            logger.exception("Secret Santa notifications aborted group_id=%s", group_id)
        return DrawOutcome(group_id=group_id, assignments=committed.assignments, notifications=report)

    async def _draw_in_transaction(
        self,
        group_id: int,
        actor_id: int | None,
        automated: bool,
    ) -> CommittedDraw:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    group = await session.scalar(
                        select(Group)
                        .where(Group.id == group_id)
                        .options(selectinload(Group.members).selectinload(GroupMember.user))
                    )
                    if group is None:
                        raise GroupNotFound(group_id)
                    if group.secret_santa_drawn:
                        raise AlreadyDrawn(group_id)

                    active = [member for member in group.members if member.is_active]
                    if len(active) < self._min_members:
                        raise InsufficientMembers(
                            group_id,
                            f"Need at least {self._min_members} members to do a Secret Santa draw",
                        )

                    rules = (
                        await session.scalars(
                            select(SecretSantaExclusion).where(SecretSantaExclusion.group_id == group_id)
                        )
                    ).all()
                    adjacency = build_adjacency(rules)
                    member_ids = [member.user_id for member in active]

                    pairs = assign(
                        member_ids,
                        adjacency,
                        max_attempts=self._max_attempts,
                        rng=self._rng,
                        exhaustive_fallback=self._exhaustive_fallback,
                    )
                    if pairs is None:
                        raise ConstraintInfeasible(group_id)

                    claimed = await session.execute(
                        update(Group)
                        .where(Group.id == group_id, Group.secret_santa_drawn.is_(False))
                        .values(secret_santa_drawn=True, secret_santa_draw_date=None)
                        .execution_options(synchronize_session=False)
                    )
                    if claimed.rowcount != 1:
                        raise AlreadyDrawn(group_id)

                    session.add_all(
                        SecretSantaDraw(
                            group_id=group_id,
                            giver_id=giver_id,
                            receiver_id=receiver_id,
                            excluded_user_ids=sorted(adjacency[giver_id]),
                        )
                        for giver_id, receiver_id in pairs
                    )
                    session.add(
                        Activity(
                            group_id=group_id,
                            user_id=actor_id if actor_id is not None else group.owner_id,
                            type=ActivityTypeEnum.SECRET_SANTA_DRAWN.value,
                            details={
                                "automated": automated,
                                "scheduled_draw": automated,
                                "assignment_count": len(pairs),
                            },
                        )
                    )
                    names = {member.user_id: member.user.name for member in active}
                    group_name = group.name
        except (SQLAlchemyError, OSError) as exc:
            logger.exception("Secret Santa draw transaction failed group_id=%s", group_id)
            raise PersistenceError(group_id) from exc

        return CommittedDraw(group_id=group_id, group_name=group_name, assignments=pairs, names=names)

    async def reset_draw(self, group_id: int, actor_id: int) -> int:
        """Delete the group's assignments and reopen it for drawing.

        Returns the number of assignments removed.
        """
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    group = await session.get(Group, group_id)
                    if group is None:
                        raise GroupNotFound(group_id)
                    if not group.secret_santa_drawn:
                        raise NothingToReset(group_id)

                    deleted = await session.execute(
                        delete(SecretSantaDraw).where(SecretSantaDraw.group_id == group_id)
                    )
                    group.secret_santa_drawn = False
                    session.add(
                        Activity(
                            group_id=group_id,
                            user_id=actor_id,
                            type=ActivityTypeEnum.SECRET_SANTA_RESET.value,
                            details={"reset_by": actor_id},
                        )
                    )
        except (SQLAlchemyError, OSError) as exc:
            logger.exception("Secret Santa reset failed group_id=%s", group_id)
            raise PersistenceError(group_id, "Failed to reset the draw, please try again") from exc

        logger.info("Secret Santa draw reset group_id=%s deleted=%s by=%s", group_id, deleted.rowcount, actor_id)
        return deleted.rowcount
