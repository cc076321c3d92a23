"""Post lifecycle state machine. Pure logic, no DB access.

draft -> scheduled -> published | failed, and any live state -> deleted.
Deletion is soft: the row keeps its last status and gains ``deleted_at``.
"""

from enum import StrEnum

from creatorpulse.core.exceptions import ValidationError


class PostStatus(StrEnum):
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    PUBLISHED = "published"
    FAILED = "failed"
    DELETED = "deleted"


class PostAction(StrEnum):
    EDIT = "edit"
    SCHEDULE = "schedule"
    UNSCHEDULE = "unschedule"
    MARK_PUBLISHED = "mark_published"
    MARK_FAILED = "mark_failed"
    DELETE = "delete"


class InvalidTransitionError(ValidationError):
    """Raised when a post transition is not allowed."""

    def __init__(self, current: str, action: str):
        self.current = current
        self.action = action
        super().__init__(f"Cannot {action} a post in status {current}")


# Statuses a publish attempt may start from
PUBLISHABLE_STATUSES: frozenset[PostStatus] = frozenset({
    PostStatus.DRAFT,
    PostStatus.SCHEDULED,
    PostStatus.FAILED,
})

# Mapping: (current_status, action) -> new_status
TRANSITIONS: dict[tuple[PostStatus, PostAction], PostStatus] = {
    # Editing keeps the status; published posts are frozen
    (PostStatus.DRAFT, PostAction.EDIT): PostStatus.DRAFT,
    (PostStatus.SCHEDULED, PostAction.EDIT): PostStatus.SCHEDULED,
    (PostStatus.FAILED, PostAction.EDIT): PostStatus.FAILED,
    # Scheduling (re-scheduling allowed, failed posts may be retried later)
    (PostStatus.DRAFT, PostAction.SCHEDULE): PostStatus.SCHEDULED,
    (PostStatus.SCHEDULED, PostAction.SCHEDULE): PostStatus.SCHEDULED,
    (PostStatus.FAILED, PostAction.SCHEDULE): PostStatus.SCHEDULED,
    (PostStatus.SCHEDULED, PostAction.UNSCHEDULE): PostStatus.DRAFT,
    # Publish outcomes
    **{(status, PostAction.MARK_PUBLISHED): PostStatus.PUBLISHED for status in PUBLISHABLE_STATUSES},
    **{(status, PostAction.MARK_FAILED): PostStatus.FAILED for status in PUBLISHABLE_STATUSES},
    # Soft delete from any live state
    (PostStatus.DRAFT, PostAction.DELETE): PostStatus.DELETED,
    (PostStatus.SCHEDULED, PostAction.DELETE): PostStatus.DELETED,
    (PostStatus.PUBLISHED, PostAction.DELETE): PostStatus.DELETED,
    (PostStatus.FAILED, PostAction.DELETE): PostStatus.DELETED,
}

TERMINAL_STATUSES: frozenset[PostStatus] = frozenset({PostStatus.DELETED})


def validate_transition(current: str, action: str) -> PostStatus:
    """Validate and return the new status for a transition.

    Raises InvalidTransitionError if the transition is not allowed.
    """
    try:
        key = (PostStatus(current), PostAction(action))
    except ValueError:
        raise InvalidTransitionError(current, action)

    if key not in TRANSITIONS:
        raise InvalidTransitionError(current, action)
    return TRANSITIONS[key]


def ensure_publishable(current: str) -> None:
    """Raise InvalidTransitionError unless a publish may start from ``current``."""
    if current not in PUBLISHABLE_STATUSES:
        raise InvalidTransitionError(current, "publish")


def get_available_actions(current: str) -> list[str]:
    try:
        current_status = PostStatus(current)
    except ValueError:
        return []

    if current_status in TERMINAL_STATUSES:
        return []
    return [action.value for (status, action) in TRANSITIONS if status == current_status]
