"""
Durable task records with validated status transitions.

This module provides the TaskStore class, the only code path that mutates
tasks. Status changes go through ``transition()``, which validates the move
against the transition table and writes the new status inside the same
per-issue lock, so a rejected move never touches the record.

State File Structure:
    One JSON file per issue, ``tasks/<owner>__<name>/issue-<n>.json``, holding
    the complete task history for that issue (oldest first)::

        {
            "repo": "octo/widgets",
            "issue_number": 42,
            "tasks": [
                {"id": "octo/widgets#42-1", "status": "COMPLETED", ...},
                {"id": "octo/widgets#42-2", "status": "PLAN_PENDING", ...}
            ]
        }

    The last entry is the current task. Earlier entries are always
    ``COMPLETED`` and are kept for audit; nothing is ever deleted.

Example:
    >>> store = TaskStore(".repo-pilot/state")
    >>> task = await store.create("octo/widgets", 42)
    >>> task = await store.transition(task.id, TaskStatus.PLANNING)
"""

from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import structlog

from repo_pilot.engine.json_store import JsonFileStore, repo_slug
from repo_pilot.engine.state_machine import is_terminal, validate_transition
from repo_pilot.exceptions import TaskNotFoundError, WorkflowError
from repo_pilot.models.domain import Task, TaskStatus, TransitionRecord

log = structlog.get_logger(__name__)

# Fields writable through update(). Status only changes through transition().
UPDATABLE_FIELDS = frozenset(
    {"plan_artifact_id", "branch_name", "change_request_id", "retry_count", "last_error"}
)


def parse_task_id(task_id: str) -> tuple[str, int]:
    """Split ``"<owner>/<name>#<issue>-<seq>"`` into repository and issue number.

    Raises:
        TaskNotFoundError: If the identifier is malformed
    """
    repo, sep, rest = task_id.rpartition("#")
    issue, dash, seq = rest.partition("-")
    if not sep or not dash or not repo or not issue.isdigit() or not seq.isdigit():
        raise TaskNotFoundError(f"Malformed task id: {task_id}")
    return repo, int(issue)


class TaskStore:
    """Persist tasks keyed by ``(repo, issue_number)``.

    Attributes:
        tasks_dir: Directory holding per-issue task files.
    """

    def __init__(
        self,
        state_dir: str | Path,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            state_dir: Base state directory; tasks go under ``<state_dir>/tasks``
            clock: Source of the current time (tests pass a fixed clock)
        """
        self._files = JsonFileStore(Path(state_dir) / "tasks")
        self.tasks_dir = self._files.root
        self._clock = clock or (lambda: datetime.now(UTC))

    def _issue_path(self, repo: str, issue_number: int) -> Path:
        return self.tasks_dir / repo_slug(repo) / f"issue-{issue_number}.json"

    @staticmethod
    def _issue_key(repo: str, issue_number: int) -> str:
        return f"{repo}#{issue_number}"

    async def _load_history(self, repo: str, issue_number: int) -> list[Task]:
        document = await self._files.read_document(self._issue_path(repo, issue_number))
        if document is None:
            return []
        return [Task.from_dict(entry) for entry in document.get("tasks", [])]

    async def _save_history(self, repo: str, issue_number: int, tasks: list[Task]) -> None:
        document: dict[str, Any] = {
            "repo": repo,
            "issue_number": issue_number,
            "tasks": [task.to_dict() for task in tasks],
        }
        await self._files.write_document(self._issue_path(repo, issue_number), document)

    def _touch(self, task: Task) -> None:
        # updated_at never moves backwards, even if the wall clock does
        task.updated_at = max(self._clock(), task.updated_at)

    async def find_by_issue(self, repo: str, issue_number: int) -> Task | None:
        """Return the current (latest) task for an issue, or None."""
        async with self._files.locked(self._issue_key(repo, issue_number)):
            history = await self._load_history(repo, issue_number)
        return history[-1] if history else None

    async def history(self, repo: str, issue_number: int) -> list[Task]:
        """Return every task ever created for an issue, oldest first."""
        async with self._files.locked(self._issue_key(repo, issue_number)):
            return await self._load_history(repo, issue_number)

    async def get(self, task_id: str) -> Task:
        """Load a task by id.

        Raises:
            TaskNotFoundError: If no task has this id
        """
        repo, issue_number = parse_task_id(task_id)
        for task in await self.history(repo, issue_number):
            if task.id == task_id:
                return task
        raise TaskNotFoundError(f"Task not found: {task_id}")

    async def create(self, repo: str, issue_number: int) -> Task:
        """Create a new IDLE task for an issue.

        Raises:
            WorkflowError: If the issue already has a non-terminal task
        """
        async with self._files.locked(self._issue_key(repo, issue_number)):
            history = await self._load_history(repo, issue_number)
            if history and not is_terminal(history[-1].status):
                current = history[-1]
                raise WorkflowError(
                    f"Issue {repo}#{issue_number} already has an active task "
                    f"({current.id}, status {current.status.value})"
                )

            now = self._clock()
            task = Task(
                id=f"{repo}#{issue_number}-{len(history) + 1}",
                repo=repo,
                issue_number=issue_number,
                status=TaskStatus.IDLE,
                created_at=now,
                updated_at=now,
            )
            history.append(task)
            await self._save_history(repo, issue_number, history)

        log.info("task_created", task_id=task.id, repo=repo, issue=issue_number)
        return task

    async def _mutate(self, task_id: str, mutator: Callable[[Task], None]) -> Task:
        repo, issue_number = parse_task_id(task_id)
        async with self._files.locked(self._issue_key(repo, issue_number)):
            history = await self._load_history(repo, issue_number)
            for task in history:
                if task.id == task_id:
                    break
            else:
                raise TaskNotFoundError(f"Task not found: {task_id}")

            mutator(task)
            self._touch(task)
            await self._save_history(repo, issue_number, history)
        return task

    async def transition(self, task_id: str, target: TaskStatus) -> Task:
        """Move a task to ``target`` if the transition table allows it.

        Validation and the status write happen under the same lock; when the
        move is rejected nothing is written.

        Returns:
            The updated task

        Raises:
            InvalidTransition: If ``current -> target`` is not legal
            TaskNotFoundError: If the task does not exist
        """
        source: TaskStatus | None = None

        def apply(task: Task) -> None:
            nonlocal source
            source = task.status
            validate_transition(task.status, target, task_id=task.id)
            task.status = target
            task.transitions.append(TransitionRecord(source=source, target=target, at=self._clock()))

        task = await self._mutate(task_id, apply)
        log.info(
            "task_transitioned",
            task_id=task_id,
            source=source.value if source else None,
            target=target.value,
        )
        return task

    async def update(self, task_id: str, **fields: Any) -> Task:
        """Set non-status attributes of a task.

        Args:
            task_id: Task to update
            **fields: Any of plan_artifact_id, branch_name, change_request_id,
                retry_count, last_error

        Raises:
            ValueError: If a field is unknown or is ``status``
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update task fields: {', '.join(sorted(unknown))}")
        if "retry_count" in fields and fields["retry_count"] < 0:
            raise ValueError("retry_count must be non-negative")

        def apply(task: Task) -> None:
            for name, value in fields.items():
                setattr(task, name, value)

        return await self._mutate(task_id, apply)

    async def increment_retry(self, task_id: str) -> Task:
        def apply(task: Task) -> None:
            task.retry_count += 1

        return await self._mutate(task_id, apply)

    async def reset_retry(self, task_id: str) -> Task:
        return await self.update(task_id, retry_count=0)

    async def list_tasks(self, repo: str | None = None, include_terminal: bool = False) -> list[Task]:
        """List current tasks, one per issue.

        Args:
            repo: Restrict to one repository
            include_terminal: Include issues whose latest task is COMPLETED

        Returns:
            Tasks ordered by repository and issue number
        """
        pattern = f"{repo_slug(repo)}/issue-*.json" if repo else "*/issue-*.json"
        tasks: list[Task] = []
        for path in self.tasks_dir.glob(pattern):
            document = await self._files.read_document(path)
            if not document or not document.get("tasks"):
                continue
            current = Task.from_dict(document["tasks"][-1])
            if include_terminal or not current.is_terminal:
                tasks.append(current)
        return sorted(tasks, key=lambda t: (t.repo, t.issue_number))
