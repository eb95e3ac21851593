"""Pytest configuration and shared fixtures."""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from repo_pilot.config.settings import PilotSettings, RepoConfig
from repo_pilot.engine.poll_state import PollStateStore
from repo_pilot.engine.task_store import TaskStore
from repo_pilot.models.domain import IssueDetails, RawComment
from repo_pilot.providers.base import AgentProvider, IssueTracker, WorkspaceManager

REPO = "octo/widgets"
BASE_TIME = datetime(2024, 5, 1, 10, 0, tzinfo=UTC)


@pytest.fixture
def temp_state_dir(tmp_path: Path) -> Path:
    """Temporary state directory."""
    state_dir = tmp_path / "state"
    state_dir.mkdir()
    return state_dir


@pytest.fixture
def settings(tmp_path: Path, temp_state_dir: Path) -> PilotSettings:
    """Settings for one repository with two verification commands."""
    return PilotSettings(
        github={"api_token": "test-token"},
        repos=[
            {
                "name": REPO,
                "local_path": str(tmp_path / "clone"),
                "allowed_authors": ["alice", "bob"],
                "verify_commands": ["make lint", "make test"],
                "workspace_root": str(tmp_path / "worktrees"),
            }
        ],
        workflow={"state_directory": str(temp_state_dir), "max_retries": 2},
    )


@pytest.fixture
def repo_config(settings: PilotSettings) -> RepoConfig:
    return settings.repos[0]


@pytest.fixture
def task_store(temp_state_dir: Path) -> TaskStore:
    """TaskStore instance with temp directory."""
    return TaskStore(temp_state_dir)


@pytest.fixture
def poll_state(temp_state_dir: Path) -> PollStateStore:
    return PollStateStore(temp_state_dir)


@pytest.fixture
def sample_issue() -> IssueDetails:
    """Sample issue for testing."""
    return IssueDetails(
        number=42,
        title="Add CSV export",
        body="Users need to export the widget list as CSV.",
    )


@pytest.fixture
def make_comment() -> Callable[..., RawComment]:
    """Factory for comments; ``minutes`` offsets created_at from a fixed base time."""

    def _make(
        comment_id: int,
        body: str,
        author: str = "alice",
        issue_number: int = 42,
        minutes: int = 0,
    ) -> RawComment:
        return RawComment(
            id=comment_id,
            issue_number=issue_number,
            body=body,
            author=author,
            created_at=BASE_TIME + timedelta(minutes=minutes),
        )

    return _make


@pytest.fixture
def mock_tracker(sample_issue: IssueDetails) -> AsyncMock:
    """Issue tracker mock: returns the sample issue and sequential comment ids."""
    tracker = AsyncMock(spec=IssueTracker)
    tracker.list_new_comments.return_value = []
    tracker.get_issue.return_value = sample_issue
    tracker.post_comment.side_effect = range(9000, 9100)
    tracker.open_change_request.return_value = 77
    tracker.get_comment.return_value = RawComment(
        id=9000,
        issue_number=42,
        body="## 📋 Implementation Plan\n\n1. Add exporter\n\n> Reply `/approve` ...\n\n<!-- repo-pilot -->",
        author="repo-pilot[bot]",
        created_at=BASE_TIME,
    )
    return tracker


@pytest.fixture
def mock_agent() -> AsyncMock:
    agent = AsyncMock(spec=AgentProvider)
    agent.plan.return_value = "1. Add `export_csv()` to widgets/export.py\n2. Add tests"
    agent.generate.return_value = "done"
    agent.analyze.return_value = "Fix the import in widgets/export.py"
    return agent


@pytest.fixture
def mock_workspace() -> AsyncMock:
    workspace = AsyncMock(spec=WorkspaceManager)
    workspace.create_isolated_workspace.side_effect = lambda path, branch, base: path
    workspace.commit_all.return_value = True
    workspace.has_uncommitted_changes.return_value = False
    return workspace
