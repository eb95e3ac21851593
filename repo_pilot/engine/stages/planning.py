"""
Planning stage implementation.

This module implements the planning stage, which asks the AI assistant for
an implementation plan and posts it on the issue for human review.

Workflow Integration:
    The router moves the task to ``PLANNING`` before calling this stage
    (on a mention, or after a rejection). On success the stage records the
    plan comment id and moves the task to ``PLAN_PENDING``, where it waits
    for an approve or reject comment.

Failure Handling:
    When the issue cannot be read, the assistant fails or times out, or the
    plan cannot be posted, the task stays at ``PLANNING`` with
    ``last_error`` set and a comment asks the user to abort. A later
    mention does not restart a task in ``PLANNING``; abort completes it and
    the next mention starts a fresh task.
"""

import structlog

from repo_pilot.engine.prompts import build_plan_prompt, format_plan_comment, format_planning_failed_comment
from repo_pilot.engine.stages.base import WorkflowStage
from repo_pilot.exceptions import AdapterFailure
from repo_pilot.models.domain import Task, TaskStatus

log = structlog.get_logger(__name__)


class PlanningStage(WorkflowStage):
    """Generate an implementation plan for an issue and post it for approval.

    Execution Flow:
        1. Fetch the issue title and description
        2. Build the planning prompt, including rejection feedback if any
        3. Run the assistant read-only in the repository's local clone
        4. Post the plan comment with reply instructions
        5. Record the comment id and move the task to PLAN_PENDING

    Example:
        >>> stage = PlanningStage(tracker, agent, tasks, settings, repo)
        >>> await stage.execute(task, feedback="Please also update the docs")
    """

    async def execute(self, task: Task, feedback: str | None = None) -> Task:
        """Plan the change for ``task``.

        Args:
            task: Task in PLANNING status
            feedback: Body of the reject comment when re-planning

        Returns:
            The task after the stage, in PLAN_PENDING on success or still
            in PLANNING on failure

        Raises:
            InvalidTransition: If the task is not in PLANNING
        """
        log.info("planning_stage_start", task_id=task.id, issue=task.issue_number, replan=feedback is not None)
        triggers = self.settings.triggers

        try:
            issue = await self.tracker.get_issue(self.repo.name, task.issue_number)
            prompt = build_plan_prompt(issue, feedback)
            plan = await self.agent.plan(prompt, self.repo.local_path)
            if not plan.strip():
                raise AdapterFailure("Assistant returned an empty plan")
            comment_id = await self._post(task.issue_number, format_plan_comment(plan, triggers))
        except AdapterFailure as e:
            return await self._handle_planning_error(task, e)

        await self.tasks.update(task.id, plan_artifact_id=comment_id, last_error=None)
        task = await self.tasks.transition(task.id, TaskStatus.PLAN_PENDING)

        log.info("planning_stage_complete", task_id=task.id, plan_comment_id=comment_id)
        return task

    async def _handle_planning_error(self, task: Task, error: AdapterFailure) -> Task:
        log.error("planning_failed", task_id=task.id, issue=task.issue_number, error=str(error))
        task = await self.tasks.update(task.id, last_error=str(error))

        try:
            await self._post(task.issue_number, format_planning_failed_comment(str(error), self.settings.triggers))
        except AdapterFailure as notify_error:
            log.error("failure_comment_not_posted", task_id=task.id, error=str(notify_error))

        return task
