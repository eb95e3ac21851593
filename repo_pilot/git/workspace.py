"""
Isolated per-task workspaces backed by git worktrees.

Each task gets its own worktree of the configured local clone, on a branch
created from the freshly fetched base branch. The main clone's working tree
is never modified, so planning (which reads the main clone) and execution
never see each other's files.
"""

from pathlib import Path

import structlog

from repo_pilot.exceptions import GitOperationError
from repo_pilot.providers.base import WorkspaceManager
from repo_pilot.utils.async_subprocess import run_command

log = structlog.get_logger(__name__)


class GitWorktreeManager(WorkspaceManager):
    """Workspace manager that creates ``git worktree`` checkouts.

    Attributes:
        repo_path: The local clone worktrees are created from
        remote: Remote to fetch from and push to
        timeout: Timeout for every git command, in seconds
    """

    def __init__(self, repo_path: Path, remote: str = "origin", timeout: float = 300.0):
        self.repo_path = Path(repo_path)
        self.remote = remote
        self.timeout = timeout

    async def _git(self, *args: str, cwd: Path | None = None, check: bool = True) -> str:
        """Run a git command and return its stdout.

        Raises:
            GitOperationError: If the command fails (when ``check``) or times out
        """
        workdir = cwd or self.repo_path
        if not workdir.is_dir():
            raise GitOperationError(f"git {args[0]} failed: working directory does not exist: {workdir}")
        try:
            stdout, stderr, returncode = await run_command(
                "git", *args, cwd=workdir, check=False, timeout=self.timeout
            )
        except TimeoutError as e:
            raise GitOperationError(f"git {args[0]} timed out after {self.timeout:g}s") from e
        except FileNotFoundError as e:
            raise GitOperationError("git executable not found") from e

        if check and returncode != 0:
            log.error("git_command_failed", args=list(args), cwd=str(workdir), stderr=stderr.strip())
            raise GitOperationError(f"git {' '.join(args)} failed: {stderr.strip() or stdout.strip()}")
        return stdout

    async def create_isolated_workspace(self, path: Path, branch: str, base_branch: str) -> Path:
        log.info("workspace_creating", path=str(path), branch=branch, base=base_branch)

        await self._git("fetch", self.remote, base_branch)

        # Leftovers from an earlier attempt; absence is fine
        await self._git("worktree", "remove", "--force", str(path), check=False)
        await self._git("worktree", "prune", check=False)
        await self._git("branch", "-D", branch, check=False)

        path.parent.mkdir(parents=True, exist_ok=True)
        await self._git("worktree", "add", "-b", branch, str(path), f"{self.remote}/{base_branch}")

        log.info("workspace_created", path=str(path), branch=branch)
        return path

    async def remove_workspace(self, path: Path) -> None:
        await self._git("worktree", "remove", "--force", str(path))
        log.info("workspace_removed", path=str(path))

    async def has_uncommitted_changes(self, path: Path) -> bool:
        status = await self._git("status", "--porcelain", cwd=path)
        return bool(status.strip())

    async def commit_all(self, path: Path, message: str) -> bool:
        await self._git("add", "-A", cwd=path)

        if not await self.has_uncommitted_changes(path):
            log.info("no_changes_to_commit", path=str(path))
            return False

        await self._git("commit", "-m", message, cwd=path)
        log.info("changes_committed", path=str(path))
        return True

    async def push(self, path: Path, branch: str) -> None:
        # The branch is recreated from the base on every approval
        await self._git("push", "--force", "-u", self.remote, branch, cwd=path)
        log.info("branch_pushed", branch=branch, remote=self.remote)

