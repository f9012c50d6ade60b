from enum import Enum


class DrawErrorKind(str, Enum):
    ALREADY_DRAWN = "already_drawn"
    INSUFFICIENT_MEMBERS = "insufficient_members"
    CONSTRAINT_INFEASIBLE = "constraint_infeasible"
    PERSISTENCE_ERROR = "persistence_error"


class DrawError(Exception):
    """A draw attempt that left the group untouched."""

    kind: DrawErrorKind
    default_message = "Draw failed"

    def __init__(self, group_id: int, message: str | None = None) -> None:
        self.group_id = group_id
        self.message = message or self.default_message
        super().__init__(self.message)

    def as_dict(self) -> dict[str, str]:
        return {"kind": self.kind.value, "message": self.message}


class AlreadyDrawn(DrawError):
    kind = DrawErrorKind.ALREADY_DRAWN
    default_message = "Secret Santa has already been drawn for this group"


class InsufficientMembers(DrawError):
    kind = DrawErrorKind.INSUFFICIENT_MEMBERS
    default_message = "Need at least 3 members to do a Secret Santa draw"


class ConstraintInfeasible(DrawError):
    kind = DrawErrorKind.CONSTRAINT_INFEASIBLE
    default_message = (
        "Could not create valid assignments with current exclusion rules. "
        "Try removing some exclusions."
    )


class PersistenceError(DrawError):
    kind = DrawErrorKind.PERSISTENCE_ERROR
    default_message = "Failed to save the draw, please try again"


class GroupNotFound(LookupError):
    def __init__(self, group_id: int) -> None:
        self.group_id = group_id
        super().__init__(f"Group {group_id} not found")


class NothingToReset(Exception):
    def __init__(self, group_id: int) -> None:
        self.group_id = group_id
        super().__init__("No Secret Santa draw to reset")


class NotificationDeliveryError(Exception):
    """One channel failed for one giver after the draw was committed."""

    def __init__(self, channel: str, user_id: int, cause: Exception | None = None) -> None:
        self.channel = channel
        self.user_id = user_id
        self.cause = cause
        super().__init__(f"{channel} delivery failed for user {user_id}: {cause}")
