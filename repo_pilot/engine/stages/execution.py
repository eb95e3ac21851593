"""
Execute/verify/retry stage.

Drives an approved task from ``EXECUTING`` to an open pull request:

1. Create a clean worktree on ``pilot/issue-<n>`` from the latest base branch
2. Ask the assistant to implement the approved plan, then commit
3. Move to ``VERIFYING`` and run every verification command
4. On success push, open the pull request and complete the task
5. On failure, while retries remain: count the retry, move back to
   ``EXECUTING``, have the assistant turn the failures into fix
   instructions, apply them in the same worktree and go to step 2

Failure Semantics:
    Verification failures are expected and consume a retry. Running out of
    retries moves the task to ``FAILED`` with the collected failures in
    ``last_error``. Collaborator failures (worktree setup, assistant, push,
    pull request) move the task to ``FAILED`` without consuming a retry.
    ``FAILED`` is only reachable from ``VERIFYING``, so a collaborator
    failure while ``EXECUTING`` is recorded as ``EXECUTING -> VERIFYING ->
    FAILED``.
"""

from pathlib import Path

import structlog

from repo_pilot.config.settings import PilotSettings, RepoConfig
from repo_pilot.engine.prompts import (
    build_analysis_prompt,
    build_execution_prompt,
    build_fix_prompt,
    extract_plan,
    format_execution_failed_comment,
    format_pull_request_body,
    format_pull_request_comment,
    format_verification_failed_comment,
)
from repo_pilot.engine.stages.base import WorkflowStage
from repo_pilot.engine.task_store import TaskStore
from repo_pilot.engine.verification import VerificationRunner
from repo_pilot.exceptions import AdapterFailure, ExhaustedRetries, VerificationFailure
from repo_pilot.models.domain import IssueDetails, Task, TaskStatus
from repo_pilot.providers.base import AgentProvider, IssueTracker, WorkspaceManager

log = structlog.get_logger(__name__)


def branch_name_for(issue_number: int) -> str:
    return f"pilot/issue-{issue_number}"


def commit_message_for(issue_number: int) -> str:
    return f"repo-pilot: resolve #{issue_number}"


class ExecutionStage(WorkflowStage):
    """Generate, verify and retry a change, then open a pull request.

    Attributes:
        workspace: Creates and commits in the per-task worktree.
        verifier: Runs the repository's verification commands.
    """

    def __init__(
        self,
        tracker: IssueTracker,
        agent: AgentProvider,
        tasks: TaskStore,
        settings: PilotSettings,
        repo: RepoConfig,
        workspace: WorkspaceManager,
        verifier: VerificationRunner,
    ) -> None:
        super().__init__(tracker, agent, tasks, settings, repo)
        self.workspace = workspace
        self.verifier = verifier

    def workspace_path(self, issue_number: int) -> Path:
        return self.repo.worktrees_dir / f"issue-{issue_number}"

    async def execute(self, task: Task) -> Task:
        """Run the loop for a task in EXECUTING.

        Returns:
            The task at its suspension point: COMPLETED with a pull request,
            or FAILED awaiting approve or abort

        Raises:
            InvalidTransition: If the task is not in EXECUTING
        """
        max_retries = self.settings.workflow.max_retries
        log.info("execution_stage_start", task_id=task.id, issue=task.issue_number, max_retries=max_retries)

        branch = branch_name_for(task.issue_number)
        path = self.workspace_path(task.issue_number)

        try:
            issue = await self.tracker.get_issue(self.repo.name, task.issue_number)
            plan = await self._load_plan(task)

            await self.workspace.create_isolated_workspace(path, branch, self.repo.base_branch)
            task = await self.tasks.update(task.id, branch_name=branch, last_error=None)

            task = await self._generate_until_verified(task, issue, plan, path, max_retries)
            return await self._open_pull_request(task, issue, plan, path, branch)

        except ExhaustedRetries as e:
            return await self._handle_exhausted(task, e)
        except AdapterFailure as e:
            return await self._handle_failure(task, e)

    async def _load_plan(self, task: Task) -> str:
        if task.plan_artifact_id is None:
            return "(no plan recorded)"
        comment = await self.tracker.get_comment(self.repo.name, task.plan_artifact_id)
        return extract_plan(comment.body, self.settings.triggers)

    async def _generate_until_verified(
        self,
        task: Task,
        issue: IssueDetails,
        plan: str,
        path: Path,
        max_retries: int,
    ) -> Task:
        """Generate, commit and verify until verification passes.

        Returns:
            The task in VERIFYING after a passing verification run

        Raises:
            ExhaustedRetries: If verification still fails after ``max_retries`` retries
            AdapterFailure: If the assistant or git fails
        """
        prompt = build_execution_prompt(issue, plan)

        while True:
            await self.agent.generate(prompt, path)
            committed = await self.workspace.commit_all(path, commit_message_for(task.issue_number))
            log.info("attempt_committed", task_id=task.id, attempt=task.retry_count + 1, committed=committed)

            task = await self.tasks.transition(task.id, TaskStatus.VERIFYING)
            try:
                await self._verify(path)
            except VerificationFailure as e:
                if task.retry_count >= max_retries:
                    raise ExhaustedRetries(task.retry_count, e.failures) from e

                task = await self.tasks.increment_retry(task.id)
                task = await self.tasks.transition(task.id, TaskStatus.EXECUTING)
                log.warning("verification_retry", task_id=task.id, retry=task.retry_count, failures=len(e.failures))

                instructions = await self.agent.analyze(build_analysis_prompt(e.failures, issue), path)
                prompt = build_fix_prompt(instructions)
                continue

            return task

    async def _verify(self, path: Path) -> None:
        result = await self.verifier.run(path)
        if not result.success:
            raise VerificationFailure(result.failures)

    async def _open_pull_request(self, task: Task, issue: IssueDetails, plan: str, path: Path, branch: str) -> Task:
        await self.workspace.push(path, branch)
        number = await self.tracker.open_change_request(
            self.repo.name,
            branch,
            self.repo.base_branch,
            f"{issue.title} (#{issue.number})",
            format_pull_request_body(issue, plan, self.settings.triggers.signature),
        )

        await self.tasks.update(task.id, change_request_id=number)
        await self.tasks.transition(task.id, TaskStatus.PR_CREATED)
        task = await self.tasks.transition(task.id, TaskStatus.COMPLETED)
        log.info("execution_stage_complete", task_id=task.id, pull_request=number, retries=task.retry_count)

        await self._notify(task, format_pull_request_comment(number, self.settings.triggers))
        try:
            await self.workspace.remove_workspace(path)
        except AdapterFailure as e:
            log.warning("workspace_not_removed", task_id=task.id, path=str(path), error=str(e))
        return task

    async def _handle_exhausted(self, task: Task, error: ExhaustedRetries) -> Task:
        failures = "\n\n".join(error.failures)
        log.error("retries_exhausted", task_id=task.id, retries=error.retries)

        await self.tasks.update(task.id, last_error=failures)
        task = await self.tasks.transition(task.id, TaskStatus.FAILED)
        await self._notify(
            task, format_verification_failed_comment(error.retries, failures, self.settings.triggers)
        )
        return task

    async def _handle_failure(self, task: Task, error: AdapterFailure) -> Task:
        log.error("execution_failed", task_id=task.id, error=str(error))

        current = await self.tasks.get(task.id)
        await self.tasks.update(task.id, last_error=str(error))
        if current.status == TaskStatus.EXECUTING:
            await self.tasks.transition(task.id, TaskStatus.VERIFYING)
        task = await self.tasks.transition(task.id, TaskStatus.FAILED)

        await self._notify(task, format_execution_failed_comment(str(error), self.settings.triggers))
        return task

    async def _notify(self, task: Task, body: str) -> None:
        try:
            await self._post(task.issue_number, body)
        except AdapterFailure as e:
            log.error("notification_failed", task_id=task.id, error=str(e))
