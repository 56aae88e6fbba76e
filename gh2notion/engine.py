"""Reconciliation of GitHub issues into the Notion database.

Each issue goes through ``Lookup -> {Skip | Create | Update} -> Counted``:

1. Look the issue up by its GitHub id.
2. Skip it when the page was edited at or after the issue's last update.
3. Otherwise create a page, or patch the stale page's properties and, when
   the issue has a body, replace its content.

Issues are processed one after another. Errors are per-issue: a failing
issue is logged and counted, the pass carries on. Only a broken config,
a broken schema or a failing issue fetch aborts the whole pass.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timezone

from gh2notion.blocks import to_blocks
from gh2notion.errors import ValidationError
from gh2notion.models import Issue, IssueFailure, RemotePage, SyncConfig, SyncDecision, SyncReport
from gh2notion.providers.base import IssueSource, PageStore
from gh2notion.providers.github import parse_repo
from gh2notion.providers.notion import STATE_OPTIONS, build_properties

MANUAL_TASK_URL = "https://github.com/manual-task/{id}"
TASK_STATES = [option["name"] for option in STATE_OPTIONS]

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def decide(issue: Issue, page: RemotePage | None) -> SyncDecision:
    """Pick the action for one issue given its existing page, if any.

    The comparison mixes Notion's edit clock with GitHub's update clock; a
    page edited by hand after the issue changed counts as current.
    """
    if page is None:
        return SyncDecision.CREATE
    if page.last_edited_time >= issue.updated_at:
        return SyncDecision.SKIP
    return SyncDecision.UPDATE


def issue_properties(issue: Issue) -> dict:
    return build_properties(
        title=issue.title,
        url=issue.url,
        state=issue.state.capitalize(),
        external_id=issue.id,
    )


class SyncEngine:
    """Run one reconciliation pass.

    Args:
        config: Credentials, repo, database and the current watermark.
        source: Where issues come from.
        store: Where pages go. Must already be bound to ``config.notion_database_id``.
        clock: Returns "now"; injectable for tests.
    """

    def __init__(
        self,
        config: SyncConfig,
        source: IssueSource,
        store: PageStore,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.config = config
        self.source = source
        self.store = store
        self.clock = clock

    async def run(self) -> SyncReport | None:
        """Execute a full pass.

        Returns:
            ``None`` when the configuration is incomplete (nothing was done),
            otherwise a ``SyncReport`` whose ``completed_at`` is the new watermark.

        Raises:
            ConfigurationError: malformed repository identifier.
            SchemaError: the database lacks required properties; no issue was touched.
            RemoteError: fetching issues or reading the schema failed.
        """
        if not self.config.is_complete:
            logger.info("Configuration incomplete, skipping sync")
            return None

        started_at = self.clock()
        repo = self.config.github_repo or ""
        parse_repo(repo)

        await self.store.verify_schema()

        issues = await self.source.fetch_issues(
            self.config.github_token.get_secret_value(),  # type: ignore[union-attr]
            repo,
            since=self.config.last_sync_time,
        )
        logger.info("Fetched %d issues from %s", len(issues), repo)

        counts = {decision: 0 for decision in SyncDecision}
        failures: list[IssueFailure] = []
        for issue in issues:
            try:
                decision = await self.sync_issue(issue)
            except Exception as exc:
                logger.error("Error processing issue #%s (id %s): %s", issue.number, issue.id, exc)
                failures.append(IssueFailure(issue_id=issue.id, issue_number=issue.number, error=str(exc)))
                continue
            counts[decision] += 1

        report = SyncReport(
            issues_count=len(issues),
            created=counts[SyncDecision.CREATE],
            updated=counts[SyncDecision.UPDATE],
            skipped=counts[SyncDecision.SKIP],
            failed=len(failures),
            truncated=self.source.truncated,
            started_at=started_at,
            completed_at=self.clock(),
            failures=failures,
        )
        logger.info(
            "Sync results: %d created, %d updated, %d skipped, %d failed",
            report.created,
            report.updated,
            report.skipped,
            report.failed,
        )
        return report

    async def sync_issue(self, issue: Issue) -> SyncDecision:
        page = await self.store.find_by_external_id(issue.id)
        decision = decide(issue, page)

        if decision is SyncDecision.SKIP:
            logger.debug("Issue #%s already up-to-date in Notion", issue.number)
            return decision

        properties = issue_properties(issue)
        if page is None:
            await self.store.create_page(properties, to_blocks(issue.body))
            logger.debug("Created page for issue #%s", issue.number)
            return decision

        await self.store.update_page_properties(page.id, properties)
        if issue.body and issue.body.strip():
            await self.store.replace_page_content(page.id, to_blocks(issue.body))
        logger.debug("Updated page %s for issue #%s", page.id, issue.number)
        return decision


async def add_task(
    store: PageStore,
    title: str,
    description: str | None = None,
    status: str = "Open",
    clock: Callable[[], datetime] = utcnow,
) -> RemotePage:
    """Create a page for an ad-hoc task that has no GitHub issue behind it.

    The task gets a negative "GitHub ID" derived from the current time in
    milliseconds, so it never collides with a real issue id and is never
    matched by the reconciliation lookup.
    """
    title = (title or "").strip()
    if not title:
        raise ValidationError("Task title is required")
    if status not in TASK_STATES:
        raise ValidationError(f"Task status must be one of {', '.join(TASK_STATES)}, got '{status}'")

    external_id = -int(clock().timestamp() * 1000)
    properties = build_properties(
        title=title,
        url=MANUAL_TASK_URL.format(id=-external_id),
        state=status,
        external_id=external_id,
    )
    page = await store.create_page(properties, to_blocks(description))
    logger.info("Added task %r as page %s", title, page.id)
    return page
