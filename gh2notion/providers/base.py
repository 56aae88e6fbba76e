"""Abstract base classes for the two remote collaborators of the sync engine."""

from abc import ABC, abstractmethod
from datetime import datetime

from gh2notion.models import ContentBlock, Issue, RemotePage


class IssueSource(ABC):
    # Set by fetch_issues when it stopped before the last page.
    truncated: bool = False

    @abstractmethod
    async def fetch_issues(self, token: str, repo: str, since: datetime | None = None) -> list[Issue]: ...


class PageStore(ABC):
    @abstractmethod
    async def find_by_external_id(self, external_id: int) -> RemotePage | None: ...

    @abstractmethod
    async def create_page(self, properties: dict, blocks: list[ContentBlock] | None = None) -> RemotePage: ...

    @abstractmethod
    async def update_page_properties(self, page_id: str, properties: dict) -> RemotePage: ...

    @abstractmethod
    async def replace_page_content(self, page_id: str, blocks: list[ContentBlock]) -> None: ...

    @abstractmethod
    async def verify_schema(self) -> None: ...

    @abstractmethod
    async def provision_schema(self) -> dict: ...

    async def aclose(self) -> None:
        """Release transport resources. No-op unless the store owns a client."""
