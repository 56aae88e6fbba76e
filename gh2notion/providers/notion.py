"""Notion REST API page store.

One ``NotionPageStore`` is bound to one database. Pages are matched to GitHub
issues through the numeric "GitHub ID" property; the store itself enforces
nothing about uniqueness, callers look up before they write.
"""

import logging
from typing import Any

import httpx

from gh2notion.blocks import rich_text, to_notion_blocks
from gh2notion.errors import RemoteError, SchemaError
from gh2notion.models import ContentBlock, MissingProperty, RemotePage
from gh2notion.providers.base import PageStore

BASE_URL = "https://api.notion.com/v1"
NOTION_VERSION = "2022-06-28"

# Notion caps children per append request at 100.
MAX_CHILDREN_PER_REQUEST = 100

TITLE_PROPERTY = "Name"
DISPLACED_TITLE_NAME = f"{TITLE_PROPERTY} (old)"
EXTERNAL_ID_PROPERTY = "GitHub ID"
REQUIRED_PROPERTIES = {
    TITLE_PROPERTY: "title",
    "URL": "url",
    "State": "select",
    EXTERNAL_ID_PROPERTY: "number",
}
STATE_OPTIONS = [
    {"name": "Open", "color": "green"},
    {"name": "Closed", "color": "red"},
]

logger = logging.getLogger(__name__)


def normalize_database_id(database_id: str) -> str:
    """Return the 8-4-4-4-12 form of a 32-character id; other input unchanged.

    Notion hands out ids both with and without hyphens (the share URL drops
    them).
    """
    compact = database_id.replace("-", "")
    if len(compact) != 32:
        return database_id
    return f"{compact[:8]}-{compact[8:12]}-{compact[12:16]}-{compact[16:20]}-{compact[20:]}"


def build_properties(title: str, url: str, state: str, external_id: int) -> dict:
    """Property envelopes for one database row."""
    return {
        TITLE_PROPERTY: {"title": rich_text(title)},
        "URL": {"url": url},
        "State": {"select": {"name": state}},
        EXTERNAL_ID_PROPERTY: {"number": external_id},
    }


def _chunks(items: list, size: int) -> list[list]:
    return [items[i : i + size] for i in range(0, len(items), size)]


def _schema_types(database: dict) -> dict[str, str]:
    """Map property name -> type from a database payload."""
    properties = database.get("properties", {})
    return {prop.get("name", key): prop.get("type", "") for key, prop in properties.items()}


def missing_properties(database: dict) -> list[MissingProperty]:
    found = _schema_types(database)
    missing = []
    for name, expected in REQUIRED_PROPERTIES.items():
        if name not in found:
            missing.append(MissingProperty(name=name, expected_type=expected))
        elif found[name] != expected:
            missing.append(MissingProperty(name=name, expected_type=expected, found_type=found[name]))
    return missing


class NotionPageStore(PageStore):
    def __init__(self, token: str, database_id: str, client: httpx.AsyncClient | None = None) -> None:
        self.database_id = normalize_database_id(database_id)
        self._headers = {
            "Authorization": f"Bearer {token}",
            "Notion-Version": NOTION_VERSION,
            "Content-Type": "application/json",
        }
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=30)

    async def __aenter__(self) -> "NotionPageStore":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(self, method: str, path: str, json: dict | None = None, params: dict | None = None) -> Any:
        try:
            response = await self._client.request(
                method,
                f"{BASE_URL}{path}",
                headers=self._headers,
                json=json,
                params=params,
            )
        except httpx.TransportError as exc:
            raise RemoteError("Notion", None, str(exc)) from exc
        if response.is_error:
            if response.status_code == 404:
                logger.error(
                    "Notion returned 404 for %s. Check the database id and that the integration is shared with it.",
                    path,
                )
            raise RemoteError("Notion", response.status_code, response.text)
        return response.json()

    @staticmethod
    def _page_from_payload(payload: dict) -> RemotePage:
        properties = payload.get("properties", {})
        external_id = properties.get(EXTERNAL_ID_PROPERTY, {}).get("number")
        return RemotePage(
            id=payload["id"],
            last_edited_time=payload["last_edited_time"],
            url=payload.get("url"),
            external_id=external_id,
            properties=properties,
        )

    # ------------------------------------------------------------------
    # Pages
    # ------------------------------------------------------------------

    async def find_by_external_id(self, external_id: int) -> RemotePage | None:
        result = await self._request(
            "POST",
            f"/databases/{self.database_id}/query",
            json={"filter": {"property": EXTERNAL_ID_PROPERTY, "number": {"equals": external_id}}},
        )
        pages = result.get("results", [])
        if not pages:
            return None
        if len(pages) > 1:
            logger.warning("%d pages share %s %s, using the first", len(pages), EXTERNAL_ID_PROPERTY, external_id)
        return self._page_from_payload(pages[0])

    async def create_page(self, properties: dict, blocks: list[ContentBlock] | None = None) -> RemotePage:
        body: dict = {"parent": {"database_id": self.database_id}, "properties": properties}
        children = to_notion_blocks(blocks or [])
        if children:
            body["children"] = children[:MAX_CHILDREN_PER_REQUEST]
        page = self._page_from_payload(await self._request("POST", "/pages", json=body))
        if len(children) > MAX_CHILDREN_PER_REQUEST:
            await self._append_children(page.id, children[MAX_CHILDREN_PER_REQUEST:])
        return page

    async def update_page_properties(self, page_id: str, properties: dict) -> RemotePage:
        payload = await self._request("PATCH", f"/pages/{page_id}", json={"properties": properties})
        return self._page_from_payload(payload)

    async def _list_child_ids(self, block_id: str) -> list[str]:
        ids: list[str] = []
        params: dict = {"page_size": MAX_CHILDREN_PER_REQUEST}
        while True:
            result = await self._request("GET", f"/blocks/{block_id}/children", params=params)
            ids.extend(child["id"] for child in result.get("results", []))
            if not result.get("has_more"):
                return ids
            params = {"page_size": MAX_CHILDREN_PER_REQUEST, "start_cursor": result["next_cursor"]}

    async def _append_children(self, block_id: str, children: list[dict]) -> None:
        for batch in _chunks(children, MAX_CHILDREN_PER_REQUEST):
            await self._request("PATCH", f"/blocks/{block_id}/children", json={"children": batch})

    async def replace_page_content(self, page_id: str, blocks: list[ContentBlock]) -> None:
        # Deletion is best-effort; the append below runs regardless.
        try:
            child_ids = await self._list_child_ids(page_id)
        except RemoteError as exc:
            logger.warning("Could not list blocks of page %s: %s", page_id, exc)
            child_ids = []

        for child_id in child_ids:
            try:
                await self._request("DELETE", f"/blocks/{child_id}")
            except RemoteError as exc:
                logger.warning("Could not delete block %s of page %s: %s", child_id, page_id, exc)

        children = to_notion_blocks(blocks)
        if children:
            await self._append_children(page_id, children)

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    async def _get_database(self) -> dict:
        return await self._request("GET", f"/databases/{self.database_id}")

    async def verify_schema(self) -> None:
        logger.debug("Checking properties of Notion database %s", self.database_id)
        missing = missing_properties(await self._get_database())
        if missing:
            raise SchemaError(missing)
        logger.debug("All required properties found in Notion database")

    async def provision_schema(self) -> dict:
        """Add or fix the required properties. Safe to run repeatedly."""
        database = await self._get_database()
        found = _schema_types(database)
        updates: dict[str, dict] = {}

        title_name = next((name for name, kind in found.items() if kind == "title"), None)
        if title_name is None:
            updates[TITLE_PROPERTY] = {"title": {}}
        elif title_name != TITLE_PROPERTY:
            if TITLE_PROPERTY in found:
                # Property names are unique; move the non-title "Name" aside first.
                updates[TITLE_PROPERTY] = {"name": DISPLACED_TITLE_NAME}
                logger.info(
                    'Renaming %s property "%s" to "%s"', found[TITLE_PROPERTY], TITLE_PROPERTY, DISPLACED_TITLE_NAME
                )
            # A database has exactly one title property, so rename rather than add.
            updates[title_name] = {"name": TITLE_PROPERTY}
            logger.info('Renaming title property "%s" to "%s"', title_name, TITLE_PROPERTY)

        for name, expected in REQUIRED_PROPERTIES.items():
            if expected == "title" or found.get(name) == expected:
                continue
            if name in found:
                logger.info('Changing type of "%s" from %s to %s', name, found[name], expected)
            config: dict = {"options": STATE_OPTIONS} if expected == "select" else {}
            updates[name] = {expected: config}

        if not updates:
            logger.info("Notion database %s already has every required property", self.database_id)
            return database

        updated = await self._request("PATCH", f"/databases/{self.database_id}", json={"properties": updates})
        logger.info("Updated Notion database properties: %s", ", ".join(updates))
        return updated
