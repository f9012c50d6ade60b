import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from wishdraw.api.deps import SessionFactoryDep, require_cron_secret
from wishdraw.core.audit import AuditAction, audit_log
from wishdraw.core.config import settings
from wishdraw.core.email_queue import process_email_queue
from wishdraw.core.sweep_lock import sweep_lock
from wishdraw.draw.scheduler import run_scheduled_draws
from wishdraw.schemas.draw import EmailQueueRun, ScheduledDrawRun

logger = logging.getLogger("wishdraw.cron")

router = APIRouter(prefix="/cron", tags=["cron"], dependencies=[Depends(require_cron_secret)])


@router.get("/scheduled-draw", response_model=ScheduledDrawRun)
async def scheduled_draw(request: Request, session_factory: SessionFactoryDep) -> ScheduledDrawRun:
    async with sweep_lock.hold("scheduled-draw", settings.scheduled_draw_lock_ttl_seconds) as acquired:
        if not acquired:
            logger.info("Scheduled draw sweep already running, skipping")
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Scheduled draw sweep already running")
        result = await run_scheduled_draws(session_factory)

    audit_log(AuditAction.SCHEDULED_DRAW_SWEEP, request=request, details=result.as_dict())
    return ScheduledDrawRun(**result.as_dict())


@router.get("/email-queue", response_model=EmailQueueRun)
async def email_queue(request: Request, session_factory: SessionFactoryDep) -> EmailQueueRun:
    async with sweep_lock.hold("email-queue", settings.scheduled_draw_lock_ttl_seconds) as acquired:
        if not acquired:
            logger.info("Email queue run already in progress, skipping")
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email queue run already in progress")
        stats = await process_email_queue(session_factory)

    audit_log(AuditAction.EMAIL_QUEUE_RUN, request=request, details=stats.as_dict())
    return EmailQueueRun(**stats.as_dict())
