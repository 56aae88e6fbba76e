"""Single-flight entry point shared by the on-demand and the scheduled trigger."""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime
from functools import partial

from gh2notion.engine import SyncEngine
from gh2notion.models import SyncConfig, SyncReport
from gh2notion.providers.base import IssueSource, PageStore
from gh2notion.providers.github import GitHubIssueSource
from gh2notion.providers.notion import NotionPageStore
from gh2notion.settings import get_settings, save_last_sync_time

logger = logging.getLogger(__name__)


def notion_store(config: SyncConfig) -> PageStore:
    return NotionPageStore(
        config.notion_token.get_secret_value(),  # type: ignore[union-attr]
        config.notion_database_id or "",
    )


class SyncRunner:
    """Load config, run one engine pass, persist the watermark.

    Only one pass runs at a time. A trigger that arrives while a pass is in
    flight waits for that pass and gets its result instead of starting a
    second one.
    """

    def __init__(
        self,
        load_config: Callable[[], SyncConfig],
        save_watermark: Callable[[datetime], None],
        source: IssueSource | None = None,
        store_factory: Callable[[SyncConfig], PageStore] = notion_store,
    ) -> None:
        self.load_config = load_config
        self.save_watermark = save_watermark
        self.source = source or GitHubIssueSource()
        self.store_factory = store_factory
        self._in_flight: asyncio.Task | None = None

    @classmethod
    def for_profile(cls, profile: str | None = None) -> "SyncRunner":
        settings = get_settings(profile=profile)
        return cls(
            load_config=lambda: get_settings(profile=profile, reload=True).to_config(),
            save_watermark=partial(save_last_sync_time, profile=profile),
            source=GitHubIssueSource(max_pages=settings.max_pages),
        )

    @property
    def running(self) -> bool:
        return self._in_flight is not None and not self._in_flight.done()

    async def trigger(self) -> SyncReport | None:
        task = self._in_flight
        if task is not None and not task.done():
            logger.info("Sync already in progress, waiting for it instead of starting another")
        else:
            task = self._in_flight = asyncio.create_task(self._run_pass())
            task.add_done_callback(self._log_failure)
        # shield: a cancelled caller must not cancel the shared pass
        return await asyncio.shield(task)

    @staticmethod
    def _log_failure(task: asyncio.Task) -> None:
        # Retrieves the exception even when every waiting caller was cancelled.
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.info("Sync pass failed: %s", exc)

    async def _run_pass(self) -> SyncReport | None:
        config = self.load_config()
        if not config.is_complete:
            logger.info("Configuration incomplete, skipping sync")
            return None

        store = self.store_factory(config)
        try:
            report = await SyncEngine(config, self.source, store).run()
        finally:
            await store.aclose()

        if report is None:
            return None
        if report.truncated:
            logger.warning(
                "Issue list was cut off at the page limit, keeping the previous watermark. Raise max_pages to catch up."
            )
        else:
            self.save_watermark(report.completed_at)
        return report
