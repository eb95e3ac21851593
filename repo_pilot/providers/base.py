"""
Abstract base classes for providers.

This module defines the collaborator interfaces the orchestration engine
depends on: the issue tracker (source of comments and sink for plans and
pull requests), the AI assistant, and the isolated workspace manager.
Concrete adapters live next to this module; tests substitute mocks.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path

from repo_pilot.models.domain import IssueDetails, RawComment


class IssueTracker(ABC):
    """Abstract base class for issue tracker implementations.

    Every method raises ``AdapterFailure`` on transport or authentication
    errors. "No data" is always an empty result, never an exception.
    """

    @abstractmethod
    async def list_new_comments(self, repo: str, since: datetime | None) -> list[RawComment]:
        """Fetch issue comments created at or after ``since``.

        Args:
            repo: Repository in ``owner/name`` form
            since: Lower bound, or None to fetch every comment

        Returns:
            Comments in ascending ``(created_at, id)`` order. Implementations
            may return comments older than ``since`` (trackers often filter
            on update time); callers must tolerate that.
        """
        pass

    @abstractmethod
    async def get_issue(self, repo: str, number: int) -> IssueDetails:
        """Get the title and description of an issue."""
        pass

    @abstractmethod
    async def get_comment(self, repo: str, comment_id: int) -> RawComment:
        """Get a single comment by id."""
        pass

    @abstractmethod
    async def post_comment(self, repo: str, number: int, body: str) -> int:
        """Post a comment on an issue.

        Returns:
            Id of the created comment
        """
        pass

    @abstractmethod
    async def open_change_request(self, repo: str, head: str, base: str, title: str, body: str) -> int:
        """Open a pull request from ``head`` into ``base``.

        Returns:
            Number of the created pull request
        """
        pass


class AgentProvider(ABC):
    """Abstract base class for AI assistant implementations.

    Each call returns the assistant's text output. A non-zero exit raises
    ``AgentError``; running past the timeout raises ``TimeoutExceeded``.
    """

    @abstractmethod
    async def plan(self, prompt: str, workdir: Path) -> str:
        """Produce an implementation plan without modifying files."""
        pass

    @abstractmethod
    async def generate(self, prompt: str, workdir: Path) -> str:
        """Modify files in ``workdir`` to carry out ``prompt``."""
        pass

    @abstractmethod
    async def analyze(self, prompt: str, workdir: Path | None = None) -> str:
        """Read-only analysis, used to turn verification failures into fix instructions."""
        pass


class WorkspaceManager(ABC):
    """Abstract base class for isolated per-task workspaces.

    Failures raise ``GitOperationError``.
    """

    @abstractmethod
    async def create_isolated_workspace(self, path: Path, branch: str, base_branch: str) -> Path:
        """Create a fresh workspace on ``branch`` based on the latest ``base_branch``.

        Any previous workspace at ``path`` and any local ``branch`` are
        discarded first.
        """
        pass

    @abstractmethod
    async def remove_workspace(self, path: Path) -> None:
        pass

    @abstractmethod
    async def has_uncommitted_changes(self, path: Path) -> bool:
        pass

    @abstractmethod
    async def commit_all(self, path: Path, message: str) -> bool:
        """Stage and commit everything.

        Returns:
            False when there was nothing to commit, True otherwise
        """
        pass

    @abstractmethod
    async def push(self, path: Path, branch: str) -> None:
        pass
