"""GitHub issue tracker implementation using direct REST API calls."""

from datetime import UTC, datetime
from typing import Any

import httpx
import structlog

from repo_pilot.exceptions import AdapterFailure
from repo_pilot.models.domain import IssueDetails, RawComment
from repo_pilot.providers.base import IssueTracker
from repo_pilot.utils.connection_pool import HTTPConnectionPool
from repo_pilot.utils.retry import async_retry

log = structlog.get_logger(__name__)

PER_PAGE = 100


def _format_since(since: datetime) -> str:
    return since.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def _issue_number_from_url(issue_url: str) -> int:
    # https://api.github.com/repos/octo/widgets/issues/42
    return int(issue_url.rstrip("/").rsplit("/", 1)[1])


class GitHubRestTracker(IssueTracker):
    """GitHub implementation of the issue tracker using the REST API.

    Reads are retried with exponential backoff on transport errors. Writes
    (comments, pull requests) are attempted once: a retried POST could
    create a duplicate.
    """

    def __init__(
        self,
        token: str,
        base_url: str = "https://api.github.com",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize GitHub tracker.

        Args:
            token: Personal access or app token
            base_url: REST API base URL (differs for GitHub Enterprise)
            timeout: Per-request timeout in seconds
            transport: Custom httpx transport (tests use httpx.MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self._pool = HTTPConnectionPool(
            base_url=self.base_url,
            timeout=timeout,
            headers={
                "Authorization": f"Bearer {token.strip()}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            },
            transport=transport,
        )

    async def connect(self) -> None:
        await self._pool.initialize()
        log.info("github_connected", base_url=self.base_url)

    async def close(self) -> None:
        await self._pool.close()

    async def __aenter__(self) -> "GitHubRestTracker":
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Async context manager exit."""
        await self.close()

    @staticmethod
    def _check(response: httpx.Response, action: str) -> None:
        if response.is_success:
            return
        raise AdapterFailure(
            f"GitHub API request failed: {action}",
            status_code=response.status_code,
            response_text=response.text,
        )

    @async_retry(max_attempts=3, backoff_factor=2.0, exceptions=(httpx.TransportError,))
    async def _get_with_retry(self, url: str, params: dict[str, Any] | None) -> httpx.Response:
        return await self._pool.get(url, params=params)

    async def _get(self, url: str, params: dict[str, Any] | None = None) -> httpx.Response:
        try:
            response = await self._get_with_retry(url, params)
        except httpx.HTTPError as e:
            raise AdapterFailure(f"GitHub API request failed: GET {url}: {e}") from e
        self._check(response, f"GET {url}")
        return response

    async def _post(self, url: str, payload: dict[str, Any]) -> httpx.Response:
        try:
            response = await self._pool.post(url, json=payload)
        except httpx.HTTPError as e:
            raise AdapterFailure(f"GitHub API request failed: POST {url}: {e}") from e
        self._check(response, f"POST {url}")
        return response

    async def list_new_comments(self, repo: str, since: datetime | None) -> list[RawComment]:
        """Fetch repository-wide issue comments, following pagination.

        GitHub's ``since`` filters on update time, so edited older comments
        can be returned; the orchestrator skips those by creation time.
        """
        query: dict[str, Any] = {"sort": "created", "direction": "asc", "per_page": PER_PAGE}
        if since is not None:
            query["since"] = _format_since(since)
        params: dict[str, Any] | None = query

        comments: list[RawComment] = []
        url: str | None = f"/repos/{repo}/issues/comments"
        while url:
            response = await self._get(url, params)
            comments.extend(self._parse_comment(data) for data in response.json())
            # The next link already carries the query string
            url = response.links.get("next", {}).get("url")
            params = None

        comments.sort(key=lambda c: (c.created_at, c.id))
        log.info("comments_fetched", repo=repo, since=since.isoformat() if since else None, count=len(comments))
        return comments

    async def get_issue(self, repo: str, number: int) -> IssueDetails:
        log.info("get_issue", repo=repo, issue=number)
        response = await self._get(f"/repos/{repo}/issues/{number}")
        data = response.json()
        return IssueDetails(number=data["number"], title=data["title"], body=data.get("body") or "")

    async def get_comment(self, repo: str, comment_id: int) -> RawComment:
        response = await self._get(f"/repos/{repo}/issues/comments/{comment_id}")
        return self._parse_comment(response.json())

    async def post_comment(self, repo: str, number: int, body: str) -> int:
        log.info("post_comment", repo=repo, issue=number)
        response = await self._post(f"/repos/{repo}/issues/{number}/comments", {"body": body})
        comment_id: int = response.json()["id"]
        return comment_id

    async def open_change_request(self, repo: str, head: str, base: str, title: str, body: str) -> int:
        """Open a pull request, or return the open one for ``head`` if it exists.

        GitHub answers 422 when an open pull request for the same head and
        base already exists (a re-approved task pushes to the same branch).
        """
        log.info("open_pull_request", repo=repo, head=head, base=base)
        payload = {"title": title, "head": head, "base": base, "body": body}
        try:
            response = await self._post(f"/repos/{repo}/pulls", payload)
        except AdapterFailure as e:
            if e.status_code != 422:
                raise
            existing = await self._find_open_pull_request(repo, head, base)
            if existing is None:
                raise
            log.info("pull_request_exists", repo=repo, head=head, number=existing)
            return existing

        number: int = response.json()["number"]
        return number

    async def _find_open_pull_request(self, repo: str, head: str, base: str) -> int | None:
        owner = repo.split("/", 1)[0]
        response = await self._get(
            f"/repos/{repo}/pulls",
            {"head": f"{owner}:{head}", "base": base, "state": "open"},
        )
        pulls = response.json()
        return pulls[0]["number"] if pulls else None

    @staticmethod
    def _parse_comment(data: dict[str, Any]) -> RawComment:
        return RawComment(
            id=data["id"],
            issue_number=_issue_number_from_url(data["issue_url"]),
            body=data.get("body") or "",
            author=(data.get("user") or {}).get("login", ""),
            created_at=datetime.fromisoformat(data["created_at"]),
        )
