"""Audit logging for critical operations."""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from fastapi import Request


logger = logging.getLogger("wishdraw.audit")

_SENSITIVE_KEYS = ("password", "token", "secret", "key", "authorization")


class AuditAction(str, Enum):
    """Audit action types."""
    # Secret Santa
    SECRET_SANTA_DRAWN = "secret_santa_drawn"
    SECRET_SANTA_DRAW_FAILED = "secret_santa_draw_failed"
    SECRET_SANTA_RESET = "secret_santa_reset"

    # Cron
    SCHEDULED_DRAW_SWEEP = "scheduled_draw_sweep"
    EMAIL_QUEUE_RUN = "email_queue_run"
    CRON_UNAUTHORIZED = "cron_unauthorized"


def audit_log(
    action: AuditAction,
    request: Request | None = None,
    user_id: int | str | None = None,
    details: dict[str, Any] | None = None,
    success: bool = True,
) -> None:
    """
    Log an audit event.

    Args:
        action: The action being performed
        request: FastAPI request object (for IP, user agent)
        user_id: ID of the user performing the action
        details: Additional details about the action
        success: Whether the action was successful
    """
    event: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "action": action.value,
        "success": success,
    }

    if user_id is not None:
        event["user_id"] = str(user_id)

    if request:
        client_host = None
        if request.client:
            client_host = request.client.host

        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            client_host = forwarded.split(",")[0].strip()

        event["ip"] = client_host
        event["user_agent"] = request.headers.get("User-Agent", "")[:200]
        event["request_id"] = request.headers.get("X-Request-Id", "")

    if details:
        event["details"] = {
            key: "***REDACTED***" if key in _SENSITIVE_KEYS else value
            for key, value in details.items()
        }

    if success:
        logger.info("AUDIT: %s", event)
    else:
        logger.warning("AUDIT: %s", event)


def audit_draw(
    group_id: int,
    assignment_count: int,
    automated: bool,
    request: Request | None = None,
    user_id: int | None = None,
) -> None:
    """Log a committed Secret Santa draw."""
    audit_log(
        AuditAction.SECRET_SANTA_DRAWN,
        request=request,
        user_id=user_id,
        details={
            "group_id": group_id,
            "assignment_count": assignment_count,
            "automated": automated,
        },
    )


def audit_draw_failed(
    group_id: int,
    kind: str,
    automated: bool,
    request: Request | None = None,
    user_id: int | None = None,
) -> None:
    audit_log(
        AuditAction.SECRET_SANTA_DRAW_FAILED,
        request=request,
        user_id=user_id,
        details={"group_id": group_id, "kind": kind, "automated": automated},
        success=False,
    )


def audit_draw_reset(request: Request, user_id: int, group_id: int, deleted: int) -> None:
    audit_log(
        AuditAction.SECRET_SANTA_RESET,
        request=request,
        user_id=user_id,
        details={"group_id": group_id, "deleted_assignments": deleted},
    )


def audit_cron_unauthorized(request: Request, cron: str) -> None:
    """Log a cron call that failed the shared secret check."""
    audit_log(
        AuditAction.CRON_UNAUTHORIZED,
        request=request,
        details={"cron": cron},
        success=False,
    )
