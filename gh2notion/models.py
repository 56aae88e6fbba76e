"""Shared pydantic models — the contract between providers, engine and main.py."""

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, SecretStr


class Issue(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int  # GitHub's stable issue id, stored in the "GitHub ID" property
    number: int  # the #123 shown in the UI
    title: str
    body: str | None = None
    state: Literal["open", "closed"]
    url: str
    updated_at: datetime
    is_pull_request: bool = False


class RemotePage(BaseModel):
    """One row of the Notion database."""

    model_config = ConfigDict(frozen=True)

    id: str
    last_edited_time: datetime
    url: str | None = None
    external_id: int | None = None  # value of "GitHub ID", negative for manual tasks
    properties: dict = {}


class BlockType(str, Enum):
    PARAGRAPH = "paragraph"
    HEADING = "heading"
    CODE = "code"
    BULLETED_LIST_ITEM = "bulleted_list_item"


class ContentBlock(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: BlockType
    text: str
    level: int | None = None  # headings only, 1-3
    language: str | None = None  # code only, from the fence tag


class MissingProperty(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    expected_type: str
    found_type: str | None = None  # set when the property exists with the wrong type

    def describe(self) -> str:
        if self.found_type:
            return f'"{self.name}" (found as {self.found_type}, but should be {self.expected_type})'
        return f'"{self.name}" (type: {self.expected_type})'


class SyncDecision(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    SKIP = "skip"


class SyncConfig(BaseModel):
    """Everything one sync pass needs. Built from settings by the caller."""

    model_config = ConfigDict(frozen=True)

    github_token: SecretStr | None = None
    github_repo: str | None = None  # "owner/name"
    notion_token: SecretStr | None = None
    notion_database_id: str | None = None
    last_sync_time: datetime | None = None

    @property
    def is_complete(self) -> bool:
        return bool(
            self.github_token
            and self.github_token.get_secret_value()
            and self.github_repo
            and self.notion_token
            and self.notion_token.get_secret_value()
            and self.notion_database_id
        )


class IssueFailure(BaseModel):
    model_config = ConfigDict(frozen=True)

    issue_id: int
    issue_number: int
    error: str


class SyncReport(BaseModel):
    """Outcome of one completed pass. completed_at is the new watermark."""

    model_config = ConfigDict(frozen=True)

    issues_count: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    truncated: bool = False  # the issue fetch stopped at the page limit
    started_at: datetime
    completed_at: datetime
    failures: list[IssueFailure] = []

    @property
    def synced(self) -> int:
        return self.created + self.updated
