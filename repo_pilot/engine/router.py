"""
Event routing to workflow stages.

Maps a typed event and the persisted status of the issue's task to an
action. Every handler re-reads the task from the store before deciding, so a
poll cycle re-run after a crash acts on canonical state rather than on a
stale in-memory copy.
"""

from collections.abc import Awaitable, Callable

import structlog

from repo_pilot.config.settings import PilotSettings
from repo_pilot.engine.prompts import format_abort_comment
from repo_pilot.engine.stages.execution import ExecutionStage
from repo_pilot.engine.stages.planning import PlanningStage
from repo_pilot.engine.task_store import TaskStore
from repo_pilot.exceptions import AdapterFailure
from repo_pilot.models.domain import EventType, Task, TaskStatus, TypedEvent
from repo_pilot.providers.base import IssueTracker

log = structlog.get_logger(__name__)

APPROVABLE = frozenset({TaskStatus.PLAN_PENDING, TaskStatus.FAILED})


class EventRouter:
    """Routes typed events to the planning and execution stages."""

    def __init__(
        self,
        tasks: TaskStore,
        planning: PlanningStage,
        execution: ExecutionStage,
        tracker: IssueTracker,
        settings: PilotSettings,
    ):
        """Initialize router.

        Args:
            tasks: Task store
            planning: Stage run on mention and reject
            execution: Stage run on approve
            tracker: Issue tracker, used for the abort acknowledgement
            settings: Global settings
        """
        self.tasks = tasks
        self.planning = planning
        self.execution = execution
        self.tracker = tracker
        self.settings = settings
        self._handlers: dict[EventType, Callable[[TypedEvent], Awaitable[Task | None]]] = {
            EventType.MENTION: self._handle_mention,
            EventType.APPROVE: self._handle_approve,
            EventType.REJECT: self._handle_reject,
            EventType.ABORT: self._handle_abort,
        }

    async def route(self, event: TypedEvent) -> Task | None:
        """Handle one event.

        Errors raised while handling are logged and swallowed here; the task
        keeps whatever status was last durably written.

        Returns:
            The task after handling, or None when the event was a no-op or
            handling failed
        """
        log.info(
            "routing_event",
            type=event.type.value,
            repo=event.repo,
            issue=event.issue_number,
            comment_id=event.source_comment_id,
            author=event.author,
        )

        try:
            return await self._handlers[event.type](event)
        except Exception as e:
            log.error(
                "routing_failed",
                type=event.type.value,
                issue=event.issue_number,
                error=str(e),
                exc_info=True,
            )
            return None

    async def _handle_mention(self, event: TypedEvent) -> Task | None:
        existing = await self.tasks.find_by_issue(event.repo, event.issue_number)

        if existing and not existing.is_terminal and existing.status != TaskStatus.REJECTED:
            log.info("task_already_active", task_id=existing.id, status=existing.status.value)
            return None

        if existing and existing.status == TaskStatus.REJECTED:
            task = existing
        else:
            task = await self.tasks.create(event.repo, event.issue_number)

        task = await self.tasks.transition(task.id, TaskStatus.PLANNING)
        return await self.planning.execute(task)

    async def _handle_approve(self, event: TypedEvent) -> Task | None:
        task = await self.tasks.find_by_issue(event.repo, event.issue_number)

        if task is None:
            log.warning("approve_without_task", repo=event.repo, issue=event.issue_number)
            return None

        if task.status not in APPROVABLE:
            log.warning("approve_ignored", task_id=task.id, status=task.status.value)
            return None

        if task.status == TaskStatus.FAILED:
            await self.tasks.reset_retry(task.id)
            log.info("retrying_failed_task", task_id=task.id)

        task = await self.tasks.transition(task.id, TaskStatus.EXECUTING)
        return await self.execution.execute(task)

    async def _handle_reject(self, event: TypedEvent) -> Task | None:
        task = await self.tasks.find_by_issue(event.repo, event.issue_number)

        if task is None:
            log.warning("reject_without_task", repo=event.repo, issue=event.issue_number)
            return None

        if task.status != TaskStatus.PLAN_PENDING:
            log.warning("reject_ignored", task_id=task.id, status=task.status.value)
            return None

        await self.tasks.transition(task.id, TaskStatus.REJECTED)
        task = await self.tasks.transition(task.id, TaskStatus.PLANNING)
        return await self.planning.execute(task, feedback=event.body)

    async def _handle_abort(self, event: TypedEvent) -> Task | None:
        task = await self.tasks.find_by_issue(event.repo, event.issue_number)

        if task is None or task.is_terminal:
            log.info("abort_ignored", repo=event.repo, issue=event.issue_number)
            return None

        task = await self.tasks.transition(task.id, TaskStatus.COMPLETED)
        log.info("task_aborted", task_id=task.id)

        try:
            await self.tracker.post_comment(event.repo, event.issue_number, format_abort_comment(self.settings.triggers))
        except AdapterFailure as e:
            log.error("notification_failed", task_id=task.id, error=str(e))
        return task
