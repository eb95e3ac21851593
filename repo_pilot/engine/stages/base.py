"""
Base class for workflow stages.

Stages are instantiated once per orchestrator and reused for every task of
the processed repository. They receive the shared collaborators (issue
tracker, AI assistant, task store, settings) during construction.

Stage Responsibilities:
    Each stage implementation is responsible for:
    - Performing the stage-specific work for one task
    - Moving the task through the state machine via the task store
    - Posting signed, informative comments to the issue

Stages never catch ``InvalidTransition``: an illegal move is a programming
or race error and propagates to the router boundary.
"""

import structlog

from repo_pilot.config.settings import PilotSettings, RepoConfig
from repo_pilot.engine.task_store import TaskStore
from repo_pilot.providers.base import AgentProvider, IssueTracker

log = structlog.get_logger(__name__)


class WorkflowStage:
    """Shared dependencies and helpers for workflow stages.

    Attributes:
        tracker: Issue tracker for reading issues and posting comments.
        agent: AI assistant used for planning, generation and analysis.
        tasks: Task store, the only way task state changes.
        settings: Global settings (triggers, retries, timeouts).
        repo: The repository this stage operates on.
    """

    def __init__(
        self,
        tracker: IssueTracker,
        agent: AgentProvider,
        tasks: TaskStore,
        settings: PilotSettings,
        repo: RepoConfig,
    ) -> None:
        self.tracker = tracker
        self.agent = agent
        self.tasks = tasks
        self.settings = settings
        self.repo = repo

    async def _post(self, issue_number: int, body: str) -> int:
        """Post an already signed comment on an issue of this repository."""
        comment_id = await self.tracker.post_comment(self.repo.name, issue_number, body)
        log.debug("comment_posted", repo=self.repo.name, issue=issue_number, comment_id=comment_id)
        return comment_id
