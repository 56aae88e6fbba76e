"""GitHub REST API v3 issue source."""

import logging
import re
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import httpx

from gh2notion.errors import ConfigurationError, RemoteError
from gh2notion.models import Issue
from gh2notion.providers.base import IssueSource

BASE_URL = "https://api.github.com"
PER_PAGE = 100
DEFAULT_MAX_PAGES = 10

_REPO_RE = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$")

logger = logging.getLogger(__name__)


def parse_repo(repo: str) -> tuple[str, str]:
    """Split "owner/name", raising ConfigurationError on anything else."""
    repo = (repo or "").strip()
    if not _REPO_RE.match(repo):
        raise ConfigurationError(f"GitHub repository must look like 'owner/name', got '{repo}'")
    owner, name = repo.split("/", 1)
    return owner, name


def format_since(since: datetime) -> str:
    # GitHub wants ISO-8601 in UTC; naive datetimes are taken to be UTC already
    if since.tzinfo is None:
        since = since.replace(tzinfo=timezone.utc)
    return since.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class GitHubIssueSource(IssueSource):
    def __init__(self, client: httpx.AsyncClient | None = None, max_pages: int = DEFAULT_MAX_PAGES) -> None:
        self._client = client
        self.max_pages = max_pages

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=30) as client:
            yield client

    @staticmethod
    def _headers(token: str) -> dict:
        return {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    async def _get(self, client: httpx.AsyncClient, url: str, token: str, params: dict | None) -> httpx.Response:
        try:
            response = await client.get(url, headers=self._headers(token), params=params)
        except httpx.TransportError as exc:
            raise RemoteError("GitHub", None, str(exc)) from exc
        if response.is_error:
            raise RemoteError("GitHub", response.status_code, response.text)
        return response

    @staticmethod
    def _issue_from_node(node: dict) -> Issue:
        return Issue(
            id=node["id"],
            number=node["number"],
            title=node["title"],
            body=node.get("body"),
            state=node.get("state", "open"),
            url=node["html_url"],
            updated_at=node["updated_at"],
            is_pull_request="pull_request" in node,
        )

    async def fetch_issues(self, token: str, repo: str, since: datetime | None = None) -> list[Issue]:
        owner, name = parse_repo(repo)
        url = f"{BASE_URL}/repos/{owner}/{name}/issues"
        params: dict | None = {
            "state": "all",
            "sort": "updated",
            "direction": "desc",
            "per_page": str(PER_PAGE),
        }
        if since is not None:
            params["since"] = format_since(since)

        self.truncated = False
        issues: list[Issue] = []
        async with self._session() as client:
            for page in range(1, self.max_pages + 1):
                response = await self._get(client, url, token, params)
                nodes = response.json()
                issues.extend(self._issue_from_node(node) for node in nodes)
                next_url = response.links.get("next", {}).get("url")
                if not next_url:
                    break
                if page == self.max_pages:
                    logger.warning("Stopped after %d pages of issues for %s/%s", page, owner, name)
                    self.truncated = True
                    break
                # the next link already carries every query parameter
                url, params = next_url, None

        # /issues lists pull requests too
        result = [issue for issue in issues if not issue.is_pull_request]
        logger.debug("Fetched %d issues (%d pull requests dropped)", len(result), len(issues) - len(result))
        return result
