"""Tests for repo_pilot/providers/github_rest.py."""

import json
from datetime import UTC, datetime
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from repo_pilot.exceptions import AdapterFailure
from repo_pilot.providers.github_rest import GitHubRestTracker

REPO = "octo/widgets"
API = "https://api.github.com"


def _comment(comment_id: int, created_at: str, body: str = "hello", issue: int = 42) -> dict:
    return {
        "id": comment_id,
        "issue_url": f"{API}/repos/{REPO}/issues/{issue}",
        "body": body,
        "user": {"login": "alice"},
        "created_at": created_at,
    }


def _tracker(handler) -> GitHubRestTracker:
    return GitHubRestTracker("test-token", transport=httpx.MockTransport(handler))


class TestListNewComments:
    @pytest.mark.asyncio
    async def test_parses_comments_and_sends_headers(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[_comment(1001, "2024-05-01T10:00:00Z", body="/approve")])

        async with _tracker(handler) as tracker:
            comments = await tracker.list_new_comments(REPO, None)

        assert len(comments) == 1
        comment = comments[0]
        assert comment.id == 1001
        assert comment.issue_number == 42
        assert comment.author == "alice"
        assert comment.body == "/approve"
        assert comment.created_at == datetime(2024, 5, 1, 10, 0, tzinfo=UTC)

        request = seen[0]
        assert request.url.path == f"/repos/{REPO}/issues/comments"
        assert request.headers["Authorization"] == "Bearer test-token"
        assert request.headers["Accept"] == "application/vnd.github+json"
        assert "since" not in request.url.params
        assert request.url.params["sort"] == "created"

    @pytest.mark.asyncio
    async def test_since_is_sent_in_utc(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[])

        since = datetime.fromisoformat("2024-05-01T12:30:00+02:00")
        async with _tracker(handler) as tracker:
            assert await tracker.list_new_comments(REPO, since) == []

        assert seen[0].url.params["since"] == "2024-05-01T10:30:00Z"

    @pytest.mark.asyncio
    async def test_follows_pagination_and_sorts(self):
        page_two = f"{API}/repos/{REPO}/issues/comments?page=2"

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.params.get("page") == "2":
                return httpx.Response(200, json=[_comment(1001, "2024-05-01T10:00:00Z")])
            return httpx.Response(
                200,
                json=[_comment(1003, "2024-05-01T10:05:00Z"), _comment(1002, "2024-05-01T10:00:00Z")],
                headers={"Link": f'<{page_two}>; rel="next"'},
            )

        async with _tracker(handler) as tracker:
            comments = await tracker.list_new_comments(REPO, None)

        assert [c.id for c in comments] == [1001, 1002, 1003]

    @pytest.mark.asyncio
    async def test_http_error_maps_to_adapter_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"message": "Bad credentials"})

        async with _tracker(handler) as tracker:
            with pytest.raises(AdapterFailure) as exc_info:
                await tracker.list_new_comments(REPO, None)

        assert exc_info.value.status_code == 401
        assert "Bad credentials" in exc_info.value.response_text

    @pytest.mark.asyncio
    async def test_transport_error_is_retried(self):
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            if len(attempts) < 3:
                raise httpx.ConnectError("connection refused")
            return httpx.Response(200, json=[])

        with patch("repo_pilot.utils.retry.asyncio.sleep", new_callable=AsyncMock):
            async with _tracker(handler) as tracker:
                assert await tracker.list_new_comments(REPO, None) == []

        assert len(attempts) == 3

    @pytest.mark.asyncio
    async def test_persistent_transport_error_maps_to_adapter_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused")

        with patch("repo_pilot.utils.retry.asyncio.sleep", new_callable=AsyncMock):
            async with _tracker(handler) as tracker:
                with pytest.raises(AdapterFailure, match="connection refused"):
                    await tracker.list_new_comments(REPO, None)


class TestIssuesAndComments:
    @pytest.mark.asyncio
    async def test_get_issue_with_null_body(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == f"/repos/{REPO}/issues/42"
            return httpx.Response(200, json={"number": 42, "title": "Add CSV export", "body": None})

        async with _tracker(handler) as tracker:
            issue = await tracker.get_issue(REPO, 42)

        assert issue.title == "Add CSV export"
        assert issue.body == ""

    @pytest.mark.asyncio
    async def test_get_comment(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == f"/repos/{REPO}/issues/comments/9000"
            return httpx.Response(200, json=_comment(9000, "2024-05-01T10:00:00Z", body="plan"))

        async with _tracker(handler) as tracker:
            comment = await tracker.get_comment(REPO, 9000)

        assert comment.body == "plan"

    @pytest.mark.asyncio
    async def test_post_comment_returns_id(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201, json={"id": 9001})

        async with _tracker(handler) as tracker:
            assert await tracker.post_comment(REPO, 42, "hi") == 9001

        assert seen[0].method == "POST"
        assert seen[0].url.path == f"/repos/{REPO}/issues/42/comments"
        assert json.loads(seen[0].content) == {"body": "hi"}

    @pytest.mark.asyncio
    async def test_post_comment_is_not_retried(self):
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            raise httpx.ConnectError("connection reset")

        async with _tracker(handler) as tracker:
            with pytest.raises(AdapterFailure):
                await tracker.post_comment(REPO, 42, "hi")

        assert len(attempts) == 1


class TestOpenChangeRequest:
    @pytest.mark.asyncio
    async def test_creates_pull_request(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201, json={"number": 77})

        async with _tracker(handler) as tracker:
            number = await tracker.open_change_request(REPO, "pilot/issue-42", "main", "Add CSV export (#42)", "b")

        assert number == 77
        payload = json.loads(seen[0].content)
        assert payload == {"title": "Add CSV export (#42)", "head": "pilot/issue-42", "base": "main", "body": "b"}

    @pytest.mark.asyncio
    async def test_existing_pull_request_is_reused(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "POST":
                return httpx.Response(422, json={"message": "A pull request already exists"})
            assert request.url.params["head"] == "octo:pilot/issue-42"
            assert request.url.params["state"] == "open"
            return httpx.Response(200, json=[{"number": 76}])

        async with _tracker(handler) as tracker:
            assert await tracker.open_change_request(REPO, "pilot/issue-42", "main", "t", "b") == 76

    @pytest.mark.asyncio
    async def test_validation_error_without_open_pull_request_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "POST":
                return httpx.Response(422, json={"message": "No commits between main and pilot/issue-42"})
            return httpx.Response(200, json=[])

        async with _tracker(handler) as tracker:
            with pytest.raises(AdapterFailure) as exc_info:
                await tracker.open_change_request(REPO, "pilot/issue-42", "main", "t", "b")

        assert exc_info.value.status_code == 422
