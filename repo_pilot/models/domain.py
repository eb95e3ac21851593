"""
Domain models for the orchestration engine.

This module contains the data classes and enums representing the core
entities of repo-pilot: tasks and their lifecycle status, raw comments as
delivered by the issue tracker, and the typed events produced from them.

Example:
    Creating a typed event by hand::

        event = TypedEvent(
            type=EventType.APPROVE,
            repo="octo/widgets",
            issue_number=42,
            source_comment_id=1001,
            author="alice",
            body="/approve",
            created_at=datetime(2024, 1, 1, tzinfo=UTC),
        )
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class TaskStatus(str, Enum):
    """Task status throughout the plan/approve/execute lifecycle.

    The happy path is:
    IDLE -> PLANNING -> PLAN_PENDING -> EXECUTING -> VERIFYING -> PR_CREATED -> COMPLETED
    """

    IDLE = "IDLE"
    """Task was just created and nothing has run yet."""

    PLANNING = "PLANNING"
    """The AI assistant is producing an implementation plan."""

    PLAN_PENDING = "PLAN_PENDING"
    """Plan was posted; waiting for a human approve or reject."""

    EXECUTING = "EXECUTING"
    """Code generation is running in the task workspace."""

    VERIFYING = "VERIFYING"
    """Verification commands are running against the generated change."""

    PR_CREATED = "PR_CREATED"
    """A pull request was opened for the change."""

    COMPLETED = "COMPLETED"
    """Terminal. Reached after the pull request or an explicit abort."""

    REJECTED = "REJECTED"
    """The plan was rejected; the task is re-planned."""

    FAILED = "FAILED"
    """The attempt failed; waiting for approve (retry) or abort."""

    def __str__(self) -> str:
        return self.value


class EventType(str, Enum):
    """Actionable comment types, in trigger priority order."""

    APPROVE = "approve"
    REJECT = "reject"
    ABORT = "abort"
    MENTION = "mention"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class RawComment:
    """An issue comment as delivered by the issue tracker."""

    id: int
    issue_number: int
    body: str
    author: str
    created_at: datetime


@dataclass(frozen=True)
class IssueDetails:
    """Title and description of an issue."""

    number: int
    title: str
    body: str


@dataclass(frozen=True)
class TypedEvent:
    """A parsed, actionable comment."""

    type: EventType
    repo: str
    issue_number: int
    source_comment_id: int
    author: str
    body: str
    created_at: datetime


@dataclass(frozen=True)
class TransitionRecord:
    """One accepted status change, kept for audit."""

    source: TaskStatus
    target: TaskStatus
    at: datetime

    def to_dict(self) -> dict[str, str]:
        return {"from": self.source.value, "to": self.target.value, "at": self.at.isoformat()}

    @classmethod
    def from_dict(cls, data: dict[str, str]) -> TransitionRecord:
        return cls(
            source=TaskStatus(data["from"]),
            target=TaskStatus(data["to"]),
            at=datetime.fromisoformat(data["at"]),
        )


@dataclass
class Task:
    """The durable record tracking one issue's change-request lifecycle.

    Tasks are keyed naturally by ``(repo, issue_number)``; at most one task
    per issue is outside the terminal set at any time. Completed tasks are
    kept as history and never deleted.
    """

    id: str
    """Synthetic identifier, ``"<owner>/<name>#<issue>-<seq>"``."""

    repo: str
    """Repository in ``owner/name`` form."""

    issue_number: int

    status: TaskStatus

    created_at: datetime

    updated_at: datetime
    """Never moves backwards, even if the wall clock does."""

    plan_artifact_id: int | None = None
    """Comment id of the posted plan."""

    branch_name: str | None = None

    change_request_id: int | None = None
    """Pull request number once opened."""

    retry_count: int = 0
    """Verification retries consumed in the current attempt."""

    last_error: str | None = None

    transitions: list[TransitionRecord] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status == TaskStatus.COMPLETED

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the JSON state files."""
        return {
            "id": self.id,
            "repo": self.repo,
            "issue_number": self.issue_number,
            "status": self.status.value,
            "plan_artifact_id": self.plan_artifact_id,
            "branch_name": self.branch_name,
            "change_request_id": self.change_request_id,
            "retry_count": self.retry_count,
            "last_error": self.last_error,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "transitions": [t.to_dict() for t in self.transitions],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Task:
        return cls(
            id=data["id"],
            repo=data["repo"],
            issue_number=data["issue_number"],
            status=TaskStatus(data["status"]),
            plan_artifact_id=data.get("plan_artifact_id"),
            branch_name=data.get("branch_name"),
            change_request_id=data.get("change_request_id"),
            retry_count=data.get("retry_count", 0),
            last_error=data.get("last_error"),
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
            transitions=[TransitionRecord.from_dict(t) for t in data.get("transitions", [])],
        )


@dataclass
class VerificationResult:
    """Outcome of running every configured verification command."""

    failures: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failures
