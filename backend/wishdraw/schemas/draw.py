from datetime import datetime, timezone

from pydantic import BaseModel, field_validator

from wishdraw.draw.errors import DrawErrorKind


class DrawResult(BaseModel):
    success: bool = True
    assignment_count: int


class DrawErrorDetail(BaseModel):
    kind: DrawErrorKind
    message: str


class DrawResetResult(BaseModel):
    success: bool = True
    message: str = "Secret Santa draw has been reset"
    deleted_assignments: int


class ReceiverPublic(BaseModel):
    id: int
    name: str | None
    avatar_url: str | None = None

    class Config:
        from_attributes = True


class AssignmentPublic(BaseModel):
    receiver: ReceiverPublic
    viewed_at: datetime

    @field_validator("viewed_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        # SQLite hands back naive timestamps
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class MyAssignmentResponse(BaseModel):
    assignment: AssignmentPublic | None


class ScheduledDrawRun(BaseModel):
    success: bool = True
    groups_checked: int
    draws_executed: int
    draws_failed: int
    groups_deferred: int = 0


class EmailQueueRun(BaseModel):
    success: bool = True
    processed: int
    succeeded: int
    failed: int
