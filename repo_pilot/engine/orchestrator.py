"""
Poll cycle orchestration.

This module provides the PilotOrchestrator class, the central coordination
point for one configured repository. It wires the stages and the router to
the collaborators and runs poll cycles.

Poll Cycle:
    1. Read the checkpoint and fetch comments created since then
    2. Visit comments in ascending ``(created_at, id)`` order
    3. Skip comments older than the checkpoint and comments already in the
       ledger
    4. Classify each remaining comment and route actionable events; a routed
       event runs to completion or to a suspension point before the next
       comment is looked at
    5. Record the comment in the ledger
    6. Advance the checkpoint to the newest ``created_at`` visited

    A failed fetch ends the cycle before anything is written. A crash in
    the middle of a cycle leaves the checkpoint at its previous value; the
    next cycle re-fetches the same comments and the ledger skips those
    already handled.

Example:
    >>> orchestrator = PilotOrchestrator(settings, repo, tracker, agent, workspace)
    >>> result = await orchestrator.run_cycle()
    >>> result.routed
    1
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime

import structlog

from repo_pilot.config.settings import PilotSettings, RepoConfig
from repo_pilot.engine.poll_state import PollStateStore
from repo_pilot.engine.router import EventRouter
from repo_pilot.engine.stages.execution import ExecutionStage
from repo_pilot.engine.stages.planning import PlanningStage
from repo_pilot.engine.task_store import TaskStore
from repo_pilot.engine.trigger_parser import parse_comment
from repo_pilot.engine.verification import VerificationRunner
from repo_pilot.exceptions import RepoPilotError
from repo_pilot.providers.base import AgentProvider, IssueTracker, WorkspaceManager

log = structlog.get_logger(__name__)


@dataclass
class CycleResult:
    """Counters for one poll cycle."""

    fetched: int = 0
    stale: int = 0
    duplicates: int = 0
    ignored: int = 0
    routed: int = 0
    checkpoint: datetime | None = None


class PilotOrchestrator:
    """Run poll cycles for one repository.

    Attributes:
        settings: Global settings.
        repo: The processed repository.
        tracker: Issue tracker adapter.
        tasks: Task store.
        poll_state: Checkpoint and ledger store.
        router: Event router, owning the planning and execution stages.
    """

    def __init__(
        self,
        settings: PilotSettings,
        repo: RepoConfig,
        tracker: IssueTracker,
        agent: AgentProvider,
        workspace: WorkspaceManager,
        tasks: TaskStore | None = None,
        poll_state: PollStateStore | None = None,
    ) -> None:
        """Wire stages and router to the collaborators.

        Args:
            settings: Global settings
            repo: Repository to process
            tracker: Issue tracker adapter
            agent: AI assistant adapter
            workspace: Workspace manager for per-task worktrees
            tasks: Task store (defaults to one under ``settings.state_dir``)
            poll_state: Checkpoint store (defaults to one under ``settings.state_dir``)
        """
        self.settings = settings
        self.repo = repo
        self.tracker = tracker
        self.tasks = tasks or TaskStore(settings.state_dir)
        self.poll_state = poll_state or PollStateStore(settings.state_dir)

        verifier = VerificationRunner(
            repo.verify_commands,
            timeout=settings.verification.command_timeout,
            max_output=settings.verification.max_output_chars,
        )
        planning = PlanningStage(tracker, agent, self.tasks, settings, repo)
        execution = ExecutionStage(tracker, agent, self.tasks, settings, repo, workspace, verifier)
        self.router = EventRouter(self.tasks, planning, execution, tracker, settings)

    async def run_cycle(self) -> CycleResult:
        """Run one poll cycle.

        Raises:
            AdapterFailure: If the comments cannot be fetched; nothing is
                recorded in that case
        """
        repo = self.repo.name
        checkpoint = await self.poll_state.get_checkpoint(repo)
        comments = await self.tracker.list_new_comments(repo, checkpoint)

        result = CycleResult(fetched=len(comments), checkpoint=checkpoint)
        newest = checkpoint

        for comment in sorted(comments, key=lambda c: (c.created_at, c.id)):
            if checkpoint is not None and comment.created_at < checkpoint:
                result.stale += 1
                continue

            newest = comment.created_at if newest is None else max(newest, comment.created_at)

            if await self.poll_state.is_processed(repo, comment.id):
                result.duplicates += 1
                continue

            event = parse_comment(comment, repo, self.settings.triggers, self.repo.allowed_authors)
            if event is None:
                result.ignored += 1
            else:
                await self.router.route(event)
                result.routed += 1

            await self.poll_state.mark_processed(repo, comment.id, comment.created_at)

        if newest is not None:
            result.checkpoint = await self.poll_state.advance_checkpoint(repo, newest)

        log.info(
            "poll_cycle_complete",
            repo=repo,
            fetched=result.fetched,
            routed=result.routed,
            ignored=result.ignored,
            duplicates=result.duplicates,
            stale=result.stale,
            checkpoint=result.checkpoint.isoformat() if result.checkpoint else None,
        )
        return result

    async def run_forever(self, interval: float, stop: asyncio.Event | None = None) -> None:
        """Run poll cycles until ``stop`` is set.

        A failing cycle is logged and retried on the next tick; the loop
        itself never dies on a cycle error.
        """
        stop = stop or asyncio.Event()
        log.info("daemon_started", repo=self.repo.name, interval=interval)

        while not stop.is_set():
            try:
                await self.run_cycle()
            except RepoPilotError as e:
                log.error("poll_cycle_failed", repo=self.repo.name, error=e.message)
            except Exception as e:
                log.error("poll_cycle_failed_unexpected", repo=self.repo.name, error=str(e), exc_info=True)

            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except TimeoutError:
                pass

        log.info("daemon_stopped", repo=self.repo.name)
