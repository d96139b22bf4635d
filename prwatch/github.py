from __future__ import annotations

import asyncio
import logging
import time
import webbrowser
from typing import Any

import httpx

from .models import Check, DetailMeta, PullRequest, WorkflowRun
from .parsers import parse_checks, parse_pr_detail_meta, parse_pull_requests, parse_viewer, parse_workflow_runs

# Set up logging
logger = logging.getLogger(__name__)

GITHUB_API = "https://api.github.com"
GITHUB_WEB = "https://github.com"
REQUEST_TIMEOUT_SECONDS = 20

# Rate limiting constants
RATE_LIMIT_RESET_HEADER = "X-RateLimit-Reset"
RATE_LIMIT_REMAINING_HEADER = "X-RateLimit-Remaining"
FORBIDDEN_STATUS_CODE = 403

PAGE_SIZE = 100
LIST_CONCURRENCY = 4

DETAIL_META_QUERY = """
query($owner: String!, $repo: String!, $number: Int!) {
  repository(owner: $owner, name: $repo) {
    pullRequest(number: $number) {
      reviewDecision
      commits(last: 1) {
        nodes {
          commit {
            statusCheckRollup {
              contexts(first: 100) {
                nodes {
                  __typename
                  ... on CheckRun { name isRequired(pullRequestNumber: $number) }
                  ... on StatusContext { context isRequired(pullRequestNumber: $number) }
                }
              }
            }
          }
        }
      }
    }
  }
}
"""


class ProviderError(Exception):
    """A GitHub request failed or returned an unusable payload."""


class GitHubClient:
    """Async GitHub API client for the viewer's PRs, checks and workflow runs."""

    def __init__(self, token: str | None, max_retries: int = 3) -> None:
        """Initialize the client.

        Args:
            token: A GitHub personal access token. If provided, it is used for
                authenticated requests; otherwise, unauthenticated requests are
                made with stricter rate limits and no viewer/GraphQL access.
            max_retries: Maximum number of retries for failed requests.
        """
        self._headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": "prwatch",
        }
        if token:
            self._headers["Authorization"] = f"Bearer {token}"
        self._max_retries = max_retries
        self._rate_limit_remaining = 999  # Initial value, will be updated after first request
        self._rate_limit_reset_time = 0
        self._head_sha_lookups: dict[tuple[str, str, int], asyncio.Task[str]] = {}

    async def _request(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> Any:
        """Perform a request and return parsed JSON (None for empty bodies).

        Args:
            method: "GET" or "POST".
            url: Absolute endpoint URL.
            params: Optional query parameters.
            json_body: Optional JSON body for POST requests.

        Returns:
            The JSON-decoded response body.

        Raises:
            ProviderError: If the response indicates an HTTP error or the
                network keeps failing after all retries.
        """
        # Check if we're rate limited and need to wait
        if self._rate_limit_remaining <= 1 and time.time() < self._rate_limit_reset_time:
            sleep_time = self._rate_limit_reset_time - time.time() + 1  # Add 1 second buffer
            logger.warning(f"Rate limited. Sleeping for {sleep_time} seconds.")
            await asyncio.sleep(sleep_time)

        for attempt in range(self._max_retries + 1):
            try:
                async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT_SECONDS) as client:
                    if method == "GET":
                        r = await client.get(url, headers=self._headers, params=params)
                    else:
                        r = await client.post(url, headers=self._headers, json=json_body)
                    self._update_rate_limit_info(r)
                    r.raise_for_status()
                    return r.json() if r.content else None
            except httpx.HTTPStatusError as e:
                status_code = getattr(e.response, "status_code", None)
                if (
                    status_code == FORBIDDEN_STATUS_CODE
                    and self._rate_limit_remaining <= 1
                    and attempt < self._max_retries
                ):
                    if time.time() < self._rate_limit_reset_time:
                        sleep_time = self._rate_limit_reset_time - time.time() + 1
                        logger.warning(f"Hit rate limit. Waiting {sleep_time} seconds before retry.")
                        await asyncio.sleep(sleep_time)
                    continue
                code_str = str(status_code or "unknown")
                logger.error(f"HTTP error {code_str} for URL {url}: {e}")
                raise ProviderError(f"HTTP {code_str} from {url.removeprefix(GITHUB_API)}") from e
            except httpx.RequestError as e:
                if attempt < self._max_retries:
                    logger.warning(f"Network error (attempt {attempt + 1}/{self._max_retries + 1}): {e}")
                    await asyncio.sleep(2**attempt)  # Exponential backoff
                    continue
                logger.error(f"Network error after {self._max_retries + 1} attempts: {e}")
                raise ProviderError(f"network error: {e}") from e
            except ValueError as e:
                logger.error(f"Malformed response from {url}: {e}")
                raise ProviderError(f"malformed response from {url.removeprefix(GITHUB_API)}") from e

        raise ProviderError("max retries exceeded")

    async def _get(self, url: str, params: dict[str, Any] | None = None) -> Any:
        return await self._request("GET", url, params=params)

    async def _post(self, url: str, json_body: dict[str, Any] | None = None) -> Any:
        return await self._request("POST", url, json_body=json_body)

    def _update_rate_limit_info(self, response: httpx.Response) -> None:
        """Update rate limit information from response headers.

        Args:
            response: The HTTP response to extract rate limit info from.
        """
        headers = getattr(response, "headers", None) or {}
        try:
            remaining = headers.get(RATE_LIMIT_REMAINING_HEADER)
            reset = headers.get(RATE_LIMIT_RESET_HEADER)
            if remaining is not None:
                self._rate_limit_remaining = int(remaining)
            if reset is not None:
                self._rate_limit_reset_time = int(reset)
        except ValueError:
            logger.debug("Ignoring unparsable rate limit headers")

    async def get_viewer(self) -> str:
        """Return the login of the authenticated user.

        Raises:
            ProviderError: If the request fails or the login is empty.
        """
        data = await self._get(f"{GITHUB_API}/user")
        try:
            return parse_viewer(data)
        except ValueError as e:
            raise ProviderError(str(e)) from e

    async def list_open_prs(self, owner: str, repo: str, author: str | None = None) -> list[PullRequest]:
        """List open pull requests for a repository.

        Pages are followed until one comes back short, so PRs past the first
        page are not missed when filtering by author.

        Args:
            owner: Repository owner/org login.
            repo: Repository name.
            author: If given, only PRs opened by this login are returned.

        Returns:
            PRs sorted by most recent update first.

        Raises:
            ProviderError: If the API responds with an error status.
        """
        url = f"{GITHUB_API}/repos/{owner}/{repo}/pulls"
        prs: list[PullRequest] = []
        page = 1
        while True:
            data = await self._get(url, params={"state": "open", "per_page": PAGE_SIZE, "page": page})
            items = data if isinstance(data, list) else []
            prs.extend(parse_pull_requests(items, owner, repo, author))
            if len(items) < PAGE_SIZE:
                break
            page += 1
        prs.sort(key=lambda p: p.updated_at, reverse=True)
        return prs

    async def list_authored_prs(self, repo_identifiers: list[str], author: str) -> list[PullRequest]:
        """List the author's open PRs across several repositories.

        Repositories are fetched by a fixed pool of workers pulling from a
        shared queue. If any repository fails, the whole call fails and the
        PRs of the repositories that succeeded are discarded.

        Args:
            repo_identifiers: `owner/repo` strings.
            author: Login whose PRs are listed.

        Returns:
            All matching PRs sorted by most recent update first.

        Raises:
            ProviderError: With one `"repo: reason"` part per failed repository,
                joined by "; ".
        """
        identifiers = [item.strip() for item in repo_identifiers if item.strip()]
        if not identifiers:
            return []

        queue: asyncio.Queue[str] = asyncio.Queue()
        for identifier in identifiers:
            queue.put_nowait(identifier)
        prs: list[PullRequest] = []
        errors: list[str] = []

        async def worker() -> None:
            while not queue.empty():
                identifier = queue.get_nowait()
                parts = [part.strip() for part in identifier.split("/")]
                if len(parts) != 2 or not all(parts):
                    errors.append(f"{identifier}: expected owner/repo")
                    continue
                owner, repo = parts
                try:
                    prs.extend(await self.list_open_prs(owner, repo, author))
                except ProviderError as e:
                    errors.append(f"{owner}/{repo}: {e}")

        await asyncio.gather(*(worker() for _ in range(min(LIST_CONCURRENCY, len(identifiers)))))
        if errors:
            raise ProviderError("; ".join(errors))
        prs.sort(key=lambda p: p.updated_at, reverse=True)
        return prs

    async def get_pr_head_sha(self, owner: str, repo: str, number: int) -> str:
        data = await self._get(f"{GITHUB_API}/repos/{owner}/{repo}/pulls/{number}")
        sha = ((data or {}).get("head") or {}).get("sha") if isinstance(data, dict) else None
        if not isinstance(sha, str) or not sha.strip():
            raise ProviderError("no head sha found")
        return sha

    async def get_pr_status_checks(self, owner: str, repo: str, ref: str) -> list[dict[str, Any]]:
        """Get commit status contexts for a ref (branch or commit SHA).

        Raises:
            ProviderError: If the API responds with an error status.
        """
        url = f"{GITHUB_API}/repos/{owner}/{repo}/commits/{ref}/status"
        data = await self._get(url, params={"per_page": PAGE_SIZE})
        return list((data or {}).get("statuses", []))

    async def get_check_runs(self, owner: str, repo: str, ref: str) -> list[dict[str, Any]]:
        """Get every check-run of a ref, following pagination via `total_count`."""
        url = f"{GITHUB_API}/repos/{owner}/{repo}/commits/{ref}/check-runs"
        first = await self._get(url, params={"per_page": PAGE_SIZE, "page": 1}) or {}
        runs = list(first.get("check_runs", []))
        total = first.get("total_count", 0)
        if isinstance(total, int) and total > PAGE_SIZE:
            pages = range(2, (total + PAGE_SIZE - 1) // PAGE_SIZE + 1)
            bodies = await asyncio.gather(
                *(self._get(url, params={"per_page": PAGE_SIZE, "page": page}) for page in pages)
            )
            for body in bodies:
                runs.extend((body or {}).get("check_runs", []))
        return runs

    async def get_checks_for_sha(self, owner: str, repo: str, sha: str) -> list[Check]:
        check_runs, statuses = await asyncio.gather(
            self.get_check_runs(owner, repo, sha),
            self.get_pr_status_checks(owner, repo, sha),
        )
        return parse_checks(check_runs, statuses)

    async def get_workflow_runs_for_sha(self, owner: str, repo: str, sha: str) -> list[WorkflowRun]:
        url = f"{GITHUB_API}/repos/{owner}/{repo}/actions/runs"
        data = await self._get(url, params={"head_sha": sha, "per_page": PAGE_SIZE})
        return parse_workflow_runs(data)

    async def _shared_head_sha(self, owner: str, repo: str, number: int) -> str:
        """Resolve a PR's head SHA, joining a lookup already in flight for it."""
        key = (owner, repo, number)
        task = self._head_sha_lookups.get(key)
        if task is None:
            task = asyncio.create_task(self.get_pr_head_sha(owner, repo, number))
            self._head_sha_lookups[key] = task
            task.add_done_callback(lambda _: self._head_sha_lookups.pop(key, None))
        return await asyncio.shield(task)

    async def get_pr_checks(self, owner: str, repo: str, number: int) -> list[Check]:
        sha = await self._shared_head_sha(owner, repo, number)
        return await self.get_checks_for_sha(owner, repo, sha)

    async def get_pr_workflow_runs(self, owner: str, repo: str, number: int) -> list[WorkflowRun]:
        sha = await self._shared_head_sha(owner, repo, number)
        return await self.get_workflow_runs_for_sha(owner, repo, sha)

    async def get_pr_detail_meta(self, owner: str, repo: str, number: int) -> DetailMeta:
        """Fetch review decision and branch-protection required checks.

        Raises:
            ProviderError: If the GraphQL call fails or reports errors.
        """
        data = await self._post(
            f"{GITHUB_API}/graphql",
            json_body={"query": DETAIL_META_QUERY, "variables": {"owner": owner, "repo": repo, "number": number}},
        )
        if not isinstance(data, dict):
            raise ProviderError("empty GraphQL response")
        if data.get("errors"):
            message = (data["errors"][0] or {}).get("message", "unknown GraphQL error")
            raise ProviderError(str(message))
        node = ((data.get("data") or {}).get("repository") or {}).get("pullRequest")
        return parse_pr_detail_meta(node)

    async def rerun_failed_workflow_runs(self, owner: str, repo: str, ids: list[int]) -> int:
        """Request a rerun of the failed jobs of each workflow run.

        Returns:
            Number of runs for which a rerun was requested.

        Raises:
            ProviderError: If any rerun request fails.
        """
        await asyncio.gather(
            *(self._post(f"{GITHUB_API}/repos/{owner}/{repo}/actions/runs/{run_id}/rerun-failed-jobs") for run_id in ids)
        )
        return len(ids)

    async def open_pr_in_browser(self, owner: str, repo: str, number: int) -> None:
        """Open the PR page in the default web browser.

        Raises:
            ProviderError: If no browser could be launched.
        """
        url = f"{GITHUB_WEB}/{owner}/{repo}/pull/{number}"
        opened = await asyncio.to_thread(webbrowser.open, url)
        if not opened:
            raise ProviderError(f"could not open {url}")
