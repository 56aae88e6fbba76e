"""Shared test fixtures."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from gh2notion.models import Issue, RemotePage, SyncConfig
from gh2notion.providers.base import IssueSource, PageStore

UPDATED_AT = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def make_issue(issue_id: int = 987654321, number: int = 42, **overrides) -> Issue:
    values = {
        "id": issue_id,
        "number": number,
        "title": "Fix null check",
        "body": "Null pointer in logout handler.",
        "state": "open",
        "url": f"https://github.com/octo/widgets/issues/{number}",
        "updated_at": UPDATED_AT,
    }
    values.update(overrides)
    return Issue(**values)


def make_page(
    page_id: str = "page-1",
    last_edited_time: datetime = UPDATED_AT,
    external_id: int = 987654321,
) -> RemotePage:
    return RemotePage(
        id=page_id,
        last_edited_time=last_edited_time,
        url=f"https://www.notion.so/{page_id}",
        external_id=external_id,
    )


def make_store(existing: RemotePage | None = None) -> MagicMock:
    store = MagicMock(spec=PageStore)
    store.verify_schema = AsyncMock(return_value=None)
    store.find_by_external_id = AsyncMock(return_value=existing)
    store.create_page = AsyncMock(return_value=make_page("created"))
    store.update_page_properties = AsyncMock(return_value=make_page("updated"))
    store.replace_page_content = AsyncMock(return_value=None)
    store.provision_schema = AsyncMock(return_value={})
    store.aclose = AsyncMock(return_value=None)
    return store


def make_source(issues: list[Issue] | None = None) -> MagicMock:
    source = MagicMock(spec=IssueSource)
    source.fetch_issues = AsyncMock(return_value=issues or [])
    source.truncated = False
    return source


@pytest.fixture
def issue() -> Issue:
    return make_issue()


@pytest.fixture
def config() -> SyncConfig:
    return SyncConfig(
        github_token="ghp_test",
        github_repo="octo/widgets",
        notion_token="secret_test",
        notion_database_id="0123456789abcdef0123456789abcdef",
    )


# Raw API payloads


ISSUE_NODE = {
    "id": 987654321,
    "number": 42,
    "title": "Fix null check",
    "body": "Null pointer in logout handler.",
    "html_url": "https://github.com/octo/widgets/issues/42",
    "state": "open",
    "updated_at": "2024-05-01T12:00:00Z",
}

PULL_REQUEST_NODE = {
    **ISSUE_NODE,
    "id": 111,
    "number": 43,
    "title": "Add retries",
    "html_url": "https://github.com/octo/widgets/pull/43",
    "pull_request": {"url": "https://api.github.com/repos/octo/widgets/pulls/43"},
}

PAGE_PAYLOAD = {
    "object": "page",
    "id": "59833787-2cf9-4fdf-8782-e53db20768a5",
    "last_edited_time": "2024-05-01T12:00:00.000Z",
    "url": "https://www.notion.so/Fix-null-check-598337872cf94fdf8782e53db20768a5",
    "properties": {
        "Name": {"id": "title", "type": "title", "title": [{"plain_text": "Fix null check"}]},
        "GitHub ID": {"id": "abc", "type": "number", "number": 987654321},
    },
}


def database_payload(properties: dict[str, str]) -> dict:
    """Notion database payload with the given name -> type properties."""
    return {
        "object": "database",
        "id": "01234567-89ab-cdef-0123-456789abcdef",
        "properties": {
            name: {"id": f"id-{i}", "name": name, "type": kind, kind: {}}
            for i, (name, kind) in enumerate(properties.items())
        },
    }


FULL_SCHEMA = {"Name": "title", "URL": "url", "State": "select", "GitHub ID": "number"}
