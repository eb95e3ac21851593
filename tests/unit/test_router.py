"""Tests for repo_pilot/engine/router.py."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from repo_pilot.engine.router import EventRouter
from repo_pilot.engine.task_store import TaskStore
from repo_pilot.models.domain import EventType, TaskStatus, TypedEvent

REPO = "octo/widgets"


def _event(event_type: EventType, body: str = "", issue_number: int = 42) -> TypedEvent:
    return TypedEvent(
        type=event_type,
        repo=REPO,
        issue_number=issue_number,
        source_comment_id=1001,
        author="alice",
        body=body or f"/{event_type.value}",
        created_at=datetime(2024, 5, 1, tzinfo=UTC),
    )


@pytest.fixture
def planning() -> MagicMock:
    stage = MagicMock()
    stage.execute = AsyncMock(side_effect=lambda task, feedback=None: task)
    return stage


@pytest.fixture
def execution() -> MagicMock:
    stage = MagicMock()
    stage.execute = AsyncMock(side_effect=lambda task: task)
    return stage


@pytest.fixture
def router(task_store, planning, execution, mock_tracker, settings) -> EventRouter:
    return EventRouter(task_store, planning, execution, mock_tracker, settings)


async def _task_at(store: TaskStore, *path: TaskStatus):
    task = await store.create(REPO, 42)
    for status in path:
        task = await store.transition(task.id, status)
    return task


PLAN_PENDING_PATH = (TaskStatus.PLANNING, TaskStatus.PLAN_PENDING)
EXECUTING_PATH = PLAN_PENDING_PATH + (TaskStatus.EXECUTING,)
FAILED_PATH = EXECUTING_PATH + (TaskStatus.VERIFYING, TaskStatus.FAILED)


class TestMention:
    @pytest.mark.asyncio
    async def test_mention_creates_task_and_plans(self, router, task_store, planning):
        task = await router.route(_event(EventType.MENTION))

        assert task.status is TaskStatus.PLANNING
        planning.execute.assert_awaited_once()
        assert planning.execute.await_args.args[0].status is TaskStatus.PLANNING
        assert (await task_store.find_by_issue(REPO, 42)).id == "octo/widgets#42-1"

    @pytest.mark.asyncio
    async def test_mention_with_active_task_is_noop(self, router, task_store, planning):
        existing = await _task_at(task_store, *PLAN_PENDING_PATH)

        assert await router.route(_event(EventType.MENTION)) is None

        planning.execute.assert_not_awaited()
        assert (await task_store.get(existing.id)).status is TaskStatus.PLAN_PENDING

    @pytest.mark.asyncio
    async def test_mention_reuses_rejected_task(self, router, task_store, planning):
        existing = await _task_at(task_store, *PLAN_PENDING_PATH, TaskStatus.REJECTED)

        task = await router.route(_event(EventType.MENTION))

        assert task.id == existing.id
        assert task.status is TaskStatus.PLANNING

    @pytest.mark.asyncio
    async def test_mention_after_completed_starts_new_task(self, router, task_store):
        await _task_at(task_store, TaskStatus.COMPLETED)

        task = await router.route(_event(EventType.MENTION))

        assert task.id == "octo/widgets#42-2"
        assert len(await task_store.history(REPO, 42)) == 2


class TestApprove:
    @pytest.mark.asyncio
    async def test_approve_plan_pending_executes(self, router, task_store, execution):
        await _task_at(task_store, *PLAN_PENDING_PATH)

        task = await router.route(_event(EventType.APPROVE))

        assert task.status is TaskStatus.EXECUTING
        execution.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_approve_failed_resets_retries(self, router, task_store, execution):
        failed = await _task_at(task_store, *FAILED_PATH)
        await task_store.update(failed.id, retry_count=2)

        task = await router.route(_event(EventType.APPROVE))

        assert task.status is TaskStatus.EXECUTING
        assert task.retry_count == 0

    @pytest.mark.asyncio
    async def test_approve_without_task_is_noop(self, router, execution):
        assert await router.route(_event(EventType.APPROVE)) is None
        execution.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_approve_in_wrong_state_is_noop(self, router, task_store, execution):
        existing = await _task_at(task_store, *EXECUTING_PATH)

        assert await router.route(_event(EventType.APPROVE)) is None

        execution.execute.assert_not_awaited()
        assert (await task_store.get(existing.id)).status is TaskStatus.EXECUTING


class TestReject:
    @pytest.mark.asyncio
    async def test_reject_on_executing_is_ignored(self, router, task_store, planning):
        existing = await _task_at(task_store, *EXECUTING_PATH)
        before = await task_store.get(existing.id)

        assert await router.route(_event(EventType.REJECT)) is None

        after = await task_store.get(existing.id)
        assert after.status is TaskStatus.EXECUTING
        assert after.transitions == before.transitions
        planning.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reject_on_plan_pending_replans_with_feedback(self, router, task_store, planning):
        await _task_at(task_store, *PLAN_PENDING_PATH)

        task = await router.route(_event(EventType.REJECT, body="/reject keep the old CLI flags"))

        assert task.status is TaskStatus.PLANNING
        moves = [(r.source, r.target) for r in task.transitions[-2:]]
        assert moves == [
            (TaskStatus.PLAN_PENDING, TaskStatus.REJECTED),
            (TaskStatus.REJECTED, TaskStatus.PLANNING),
        ]
        planning.execute.assert_awaited_once()
        assert planning.execute.await_args.kwargs["feedback"] == "/reject keep the old CLI flags"


class TestAbort:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "path",
        [
            (),
            (TaskStatus.PLANNING,),
            PLAN_PENDING_PATH,
            EXECUTING_PATH,
            FAILED_PATH,
            PLAN_PENDING_PATH + (TaskStatus.REJECTED,),
        ],
    )
    async def test_abort_completes_non_terminal_task(self, router, task_store, mock_tracker, path):
        existing = await _task_at(task_store, *path)

        task = await router.route(_event(EventType.ABORT))

        assert task.status is TaskStatus.COMPLETED
        assert (await task_store.get(existing.id)).status is TaskStatus.COMPLETED
        mock_tracker.post_comment.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_abort_on_completed_is_noop(self, router, task_store, mock_tracker):
        existing = await _task_at(task_store, TaskStatus.COMPLETED)
        before = await task_store.get(existing.id)

        assert await router.route(_event(EventType.ABORT)) is None

        assert (await task_store.get(existing.id)).transitions == before.transitions
        mock_tracker.post_comment.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_abort_without_task_is_noop(self, router, mock_tracker):
        assert await router.route(_event(EventType.ABORT)) is None
        mock_tracker.post_comment.assert_not_awaited()


class TestErrorBoundary:
    @pytest.mark.asyncio
    async def test_stage_exception_is_caught(self, router, task_store, planning):
        planning.execute.side_effect = RuntimeError("boom")

        assert await router.route(_event(EventType.MENTION)) is None

        # The PLANNING transition was durably written before the stage failed
        assert (await task_store.find_by_issue(REPO, 42)).status is TaskStatus.PLANNING
