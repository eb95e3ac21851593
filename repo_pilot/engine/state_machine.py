"""
Task status transition table.

The table is the single source of truth for which status changes are legal.
``COMPLETED`` is reachable from every non-terminal status (explicit abort)
and has no outbound transitions.

Example:
    >>> can_transition(TaskStatus.PLAN_PENDING, TaskStatus.EXECUTING)
    True
    >>> validate_transition(TaskStatus.EXECUTING, TaskStatus.REJECTED)
    Traceback (most recent call last):
    ...
    repo_pilot.exceptions.InvalidTransition: Invalid state transition: EXECUTING -> REJECTED
"""

from repo_pilot.exceptions import InvalidTransition
from repo_pilot.models.domain import TaskStatus

VALID_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.IDLE: frozenset({TaskStatus.PLANNING, TaskStatus.COMPLETED}),
    TaskStatus.PLANNING: frozenset({TaskStatus.PLAN_PENDING, TaskStatus.COMPLETED}),
    TaskStatus.PLAN_PENDING: frozenset({TaskStatus.EXECUTING, TaskStatus.REJECTED, TaskStatus.COMPLETED}),
    TaskStatus.EXECUTING: frozenset({TaskStatus.VERIFYING, TaskStatus.COMPLETED}),
    TaskStatus.VERIFYING: frozenset(
        {TaskStatus.EXECUTING, TaskStatus.PR_CREATED, TaskStatus.FAILED, TaskStatus.COMPLETED}
    ),
    TaskStatus.PR_CREATED: frozenset({TaskStatus.COMPLETED}),
    TaskStatus.REJECTED: frozenset({TaskStatus.PLANNING, TaskStatus.COMPLETED}),
    TaskStatus.FAILED: frozenset({TaskStatus.EXECUTING, TaskStatus.COMPLETED}),
    TaskStatus.COMPLETED: frozenset(),
}

TERMINAL_STATES: frozenset[TaskStatus] = frozenset(
    status for status, targets in VALID_TRANSITIONS.items() if not targets
)


def is_terminal(status: TaskStatus) -> bool:
    return status in TERMINAL_STATES


def can_transition(source: TaskStatus, target: TaskStatus) -> bool:
    """Return True if ``source -> target`` is in the transition table."""
    return target in VALID_TRANSITIONS[source]


def validate_transition(source: TaskStatus, target: TaskStatus, task_id: str | None = None) -> None:
    """Raise InvalidTransition unless ``source -> target`` is legal.

    Args:
        source: Current status
        target: Requested status
        task_id: Included in the error message when given

    Raises:
        InvalidTransition: If the move is not in the transition table
    """
    if not can_transition(source, target):
        raise InvalidTransition(source, target, task_id=task_id)
