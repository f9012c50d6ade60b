from typing import Annotated
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.orm import selectinload

from wishdraw.api.deps import CurrentUserDep, DbSessionDep, SessionFactoryDep
from wishdraw.core.audit import audit_draw_reset
from wishdraw.draw.errors import (
    DrawError,
    DrawErrorKind,
    GroupNotFound,
    NothingToReset,
)
from wishdraw.draw.orchestrator import DrawOrchestrator
from wishdraw.models.models import Group, GroupMember, GroupRoleEnum, SecretSantaDraw, User, utcnow
from wishdraw.schemas.draw import (
    AssignmentPublic,
    DrawErrorDetail,
    DrawResetResult,
    DrawResult,
    MyAssignmentResponse,
    ReceiverPublic,
)

logger = logging.getLogger("wishdraw.draws")

router = APIRouter(prefix="/groups", tags=["secret-santa"])

_ERROR_STATUS = {
    DrawErrorKind.ALREADY_DRAWN: status.HTTP_409_CONFLICT,
    DrawErrorKind.INSUFFICIENT_MEMBERS: status.HTTP_400_BAD_REQUEST,
    DrawErrorKind.CONSTRAINT_INFEASIBLE: status.HTTP_400_BAD_REQUEST,
    DrawErrorKind.PERSISTENCE_ERROR: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def get_orchestrator(session_factory: SessionFactoryDep) -> DrawOrchestrator:
    return DrawOrchestrator(session_factory)


OrchestratorDep = Annotated[DrawOrchestrator, Depends(get_orchestrator)]


def _draw_http_error(exc: DrawError) -> HTTPException:
    detail = DrawErrorDetail(kind=exc.kind, message=exc.message)
    return HTTPException(status_code=_ERROR_STATUS[exc.kind], detail=detail.model_dump(mode="json"))


async def _load_group(db: DbSessionDep, group_id: int) -> Group:
    group = await db.scalar(
        select(Group).where(Group.id == group_id).options(selectinload(Group.members))
    )
    if group is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Group not found")
    return group


def _active_membership(group: Group, user: User) -> GroupMember | None:
    return next(
        (m for m in group.members if m.user_id == user.id and m.is_active),
        None,
    )


def _ensure_can_manage(group: Group, user: User, action: str) -> None:
    if group.owner_id == user.id:
        return
    membership = _active_membership(group, user)
    if membership is None or membership.role != GroupRoleEnum.ADMIN.value:
        logger.info("Draw %s denied group_id=%s user_id=%s", action, group.id, user.id)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Only the owner or admin can {action} the draw",
        )


@router.post("/{group_id}/draw", response_model=DrawResult)
async def perform_draw(
    group_id: int,
    db: DbSessionDep,
    current_user: CurrentUserDep,
    orchestrator: OrchestratorDep,
) -> DrawResult:
    group = await _load_group(db, group_id)
    _ensure_can_manage(group, current_user, "trigger")

    try:
        outcome = await orchestrator.execute_draw(group_id, actor_id=current_user.id)
    except GroupNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Group not found") from None
    except DrawError as exc:
        raise _draw_http_error(exc) from None

    return DrawResult(assignment_count=outcome.assignment_count)


@router.delete("/{group_id}/draw", response_model=DrawResetResult)
async def reset_draw(
    group_id: int,
    request: Request,
    db: DbSessionDep,
    current_user: CurrentUserDep,
    orchestrator: OrchestratorDep,
) -> DrawResetResult:
    group = await _load_group(db, group_id)
    _ensure_can_manage(group, current_user, "reset")

    try:
        deleted = await orchestrator.reset_draw(group_id, actor_id=current_user.id)
    except GroupNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Group not found") from None
    except NothingToReset as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from None
    except DrawError as exc:
        raise _draw_http_error(exc) from None

    audit_draw_reset(request, current_user.id, group_id, deleted)
    return DrawResetResult(deleted_assignments=deleted)


@router.get("/{group_id}/draw", response_model=MyAssignmentResponse)
async def get_my_assignment(
    group_id: int,
    db: DbSessionDep,
    current_user: CurrentUserDep,
) -> MyAssignmentResponse:
    """The caller's own receiver. Nobody can look up their giver."""
    group = await _load_group(db, group_id)
    if _active_membership(group, current_user) is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You are not a member of this group")

    draw = await db.scalar(
        select(SecretSantaDraw)
        .where(SecretSantaDraw.group_id == group_id, SecretSantaDraw.giver_id == current_user.id)
        .options(selectinload(SecretSantaDraw.receiver))
    )
    if draw is None:
        return MyAssignmentResponse(assignment=None)

    if draw.viewed_at is None:
        draw.viewed_at = utcnow()
        await db.commit()

    return MyAssignmentResponse(
        assignment=AssignmentPublic(
            receiver=ReceiverPublic.model_validate(draw.receiver),
            viewed_at=draw.viewed_at,
        )
    )
