"""gh2notion CLI — all commands."""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Annotated

import typer
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from rich import print as rprint
from rich.table import Table

from gh2notion.blocks import to_blocks
from gh2notion.engine import TASK_STATES, add_task
from gh2notion.errors import Gh2NotionError, SchemaError
from gh2notion.logger import setup_logging
from gh2notion.models import SyncReport
from gh2notion.providers.notion import NotionPageStore, normalize_database_id
from gh2notion.runner import SyncRunner
from gh2notion.settings import (
    CONFIG_PATH,
    SyncSettings,
    get_settings,
    save_profile,
    set_default_profile,
)

app = typer.Typer(help="gh2notion: mirror GitHub issues into a Notion database", no_args_is_help=True)

logger = logging.getLogger(__name__)

ProfileOpt = Annotated[
    str | None,
    typer.Option("--profile", "-P", help="Profile name from ~/.config/gh2notion/config.toml"),
]

_NOT_SET = "[dim](not set)[/dim]"


@app.callback()
def main(
    debug: Annotated[bool, typer.Option("--debug", help="Verbose logging")] = False,
) -> None:
    setup_logging(debug=debug)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _notion_store(settings: SyncSettings) -> NotionPageStore:
    if not settings.notion_token or not settings.notion_database_id:
        rprint(
            "[red]Notion configuration is incomplete. Run 'gh2notion init' or set "
            "GH2NOTION_NOTION_TOKEN and GH2NOTION_NOTION_DATABASE_ID.[/red]"
        )
        raise typer.Exit(1)
    return NotionPageStore(settings.notion_token.get_secret_value(), settings.notion_database_id)


def _print_missing(exc: SchemaError) -> None:
    table = Table(title="Missing Notion properties")
    table.add_column("Property", style="bold")
    table.add_column("Expected type")
    table.add_column("Found type")
    for prop in exc.missing:
        table.add_row(prop.name, prop.expected_type, prop.found_type or "[dim](missing)[/dim]")
    rprint(table)


def _print_report(report: SyncReport) -> None:
    table = Table(title="Sync results")
    table.add_column("Issues", justify="right")
    table.add_column("Created", justify="right", style="green")
    table.add_column("Updated", justify="right", style="cyan")
    table.add_column("Skipped", justify="right", style="dim")
    table.add_column("Failed", justify="right", style="red")
    table.add_row(
        str(report.issues_count),
        str(report.created),
        str(report.updated),
        str(report.skipped),
        str(report.failed),
    )
    rprint(table)
    for failure in report.failures:
        rprint(f"  [red]✗[/red] #{failure.issue_number}: {failure.error}")
    if report.truncated:
        rprint("[yellow]Stopped at the page limit, last_sync_time kept. Raise max_pages to catch up.[/yellow]")


async def _provision(settings: SyncSettings) -> None:
    async with _notion_store(settings) as store:
        await store.provision_schema()


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command("sync")
def sync_cmd(
    profile: ProfileOpt = None,
    provision: Annotated[
        bool, typer.Option("--provision", help="Create missing Notion properties and retry on schema errors")
    ] = False,
) -> None:
    """Sync GitHub issues to Notion once."""
    runner = SyncRunner.for_profile(profile)
    try:
        try:
            report = asyncio.run(runner.trigger())
        except SchemaError:
            if not provision:
                raise
            rprint("[yellow]Notion database is missing properties, creating them…[/yellow]")
            asyncio.run(_provision(get_settings(profile=profile)))
            report = asyncio.run(runner.trigger())
    except SchemaError as exc:
        _print_missing(exc)
        rprint("Run [bold]gh2notion provision-schema[/bold] or re-run with [bold]--provision[/bold].")
        raise typer.Exit(1)
    except Gh2NotionError as exc:
        rprint(f"[red]{exc}[/red]")
        raise typer.Exit(1)

    if report is None:
        rprint("[yellow]Configuration incomplete, nothing synced.[/yellow] Run [bold]gh2notion init[/bold].")
        raise typer.Exit(1)
    _print_report(report)


@app.command("watch")
def watch_cmd(
    profile: ProfileOpt = None,
    interval: Annotated[
        int | None,
        typer.Option("--interval", "-i", min=1, help="Minutes between syncs (default: sync_interval_minutes)"),
    ] = None,
) -> None:
    """Sync on a recurring interval until interrupted."""
    settings = get_settings(profile=profile)
    minutes = interval or settings.sync_interval_minutes
    runner = SyncRunner.for_profile(profile)

    async def scheduled_sync() -> None:
        try:
            report = await runner.trigger()
        except Gh2NotionError as exc:
            # the next tick is the retry
            logger.error("Sync failed: %s", exc)
            return
        if report is not None:
            logger.info("Synced %d of %d issues (%d failed)", report.synced, report.issues_count, report.failed)

    async def serve() -> None:
        scheduler = AsyncIOScheduler(timezone="UTC")
        scheduler.add_job(
            scheduled_sync,
            trigger=IntervalTrigger(minutes=minutes),
            id="sync_github_issues",
            max_instances=1,
            coalesce=True,
        )
        scheduler.start()
        rprint(f"[green]✓[/green] Syncing every {minutes} minute(s). Ctrl-C to stop.")
        try:
            await scheduled_sync()
            await asyncio.Event().wait()
        finally:
            scheduler.shutdown(wait=False)

    try:
        asyncio.run(serve())
    except KeyboardInterrupt:
        rprint("[dim]Stopped.[/dim]")


@app.command("add-task")
def add_task_cmd(
    title: Annotated[str, typer.Argument(help="Task title")],
    description: Annotated[str | None, typer.Argument(help="Task description (markdown)")] = None,
    status: Annotated[str, typer.Option("--status", "-s", help=f"One of: {', '.join(TASK_STATES)}")] = "Open",
    profile: ProfileOpt = None,
) -> None:
    """Add an ad-hoc task to the Notion database."""
    settings = get_settings(profile=profile)

    async def create() -> None:
        async with _notion_store(settings) as store:
            page = await add_task(store, title, description, status)
        rprint("[green]✓[/green] Task added to Notion")
        if page.url:
            rprint(f"  {page.url}")

    try:
        asyncio.run(create())
    except Gh2NotionError as exc:
        rprint(f"[red]{exc}[/red]")
        raise typer.Exit(1)


@app.command("check-schema")
def check_schema(profile: ProfileOpt = None) -> None:
    """Verify the Notion database has the properties the sync writes."""
    settings = get_settings(profile=profile)

    async def verify() -> None:
        async with _notion_store(settings) as store:
            await store.verify_schema()

    try:
        asyncio.run(verify())
    except SchemaError as exc:
        _print_missing(exc)
        raise typer.Exit(1)
    except Gh2NotionError as exc:
        rprint(f"[red]{exc}[/red]")
        raise typer.Exit(1)
    rprint("[green]✓[/green] All required properties found in Notion database")


@app.command("provision-schema")
def provision_schema(profile: ProfileOpt = None) -> None:
    """Create (or rename) the Notion properties the sync needs."""
    settings = get_settings(profile=profile)
    try:
        asyncio.run(_provision(settings))
    except Gh2NotionError as exc:
        rprint(f"[red]{exc}[/red]")
        raise typer.Exit(1)
    rprint("[green]✓[/green] Properties created successfully")


@app.command("preview-blocks")
def preview_blocks(
    path: Annotated[Path | None, typer.Argument(help="Markdown file (default: stdin)")] = None,
) -> None:
    """Show how a body would be split into Notion blocks."""
    text = path.read_text() if path else sys.stdin.read()

    table = Table(title="Blocks")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Type", style="cyan")
    table.add_column("Text")
    for i, block in enumerate(to_blocks(text), 1):
        kind = block.type.value
        if block.level:
            kind = f"{kind} {block.level}"
        elif block.language:
            kind = f"{kind} ({block.language})"
        table.add_row(str(i), kind, block.text)
    rprint(table)


@app.command("set-default")
def set_default(
    profile: Annotated[str, typer.Argument(help="Profile name to set as default")],
) -> None:
    """Set the default profile in ~/.config/gh2notion/config.toml."""
    set_default_profile(profile)
    rprint(f'[green]✓[/green] Default profile set to "{profile}" in {CONFIG_PATH}')


@app.command("config-show")
def config_show(profile: ProfileOpt = None) -> None:
    """Show resolved configuration (masks credentials)."""
    try:
        settings = get_settings(profile=profile)
    except typer.Exit:
        return

    def mask(val: str | None, prefix: str = "") -> str:
        if val is None:
            return _NOT_SET
        if len(val) <= 5:
            return "***"
        return f"{prefix}...{val[-5:]}"

    table = Table(title="gh2notion Configuration")
    table.add_column("Field", style="bold")
    table.add_column("Value")

    table.add_row("default_profile", settings.default_profile or _NOT_SET)
    table.add_row(
        "github_token",
        mask(settings.github_token.get_secret_value() if settings.github_token else None, prefix="ghp_"),
    )
    table.add_row("github_repo", settings.github_repo or _NOT_SET)
    table.add_row(
        "notion_token",
        mask(settings.notion_token.get_secret_value() if settings.notion_token else None, prefix="secret_"),
    )
    table.add_row(
        "notion_database_id",
        normalize_database_id(settings.notion_database_id) if settings.notion_database_id else _NOT_SET,
    )
    table.add_row("last_sync_time", settings.last_sync_time.isoformat() if settings.last_sync_time else "never")
    table.add_row("sync_interval_minutes", str(settings.sync_interval_minutes))

    rprint(table)


@app.command("init")
def init_cmd() -> None:
    """Interactive first-time setup wizard."""
    rprint("[bold]gh2notion Setup Wizard[/bold]")
    rprint("")

    profile_name = typer.prompt("Profile name (e.g. work, personal)", default="default").strip()
    if not profile_name:
        rprint("[red]Profile name cannot be empty.[/red]")
        raise typer.Exit(1)

    rprint("Create a GitHub token at: https://github.com/settings/tokens (scope: repo)")
    github_token = typer.prompt("Paste GitHub token", hide_input=True).strip()
    github_repo = typer.prompt("Repository (owner/name)").strip()

    rprint("Create a Notion integration at: https://www.notion.so/my-integrations")
    rprint("Then share your database with the integration.")
    notion_token = typer.prompt("Paste Notion integration token", hide_input=True).strip()
    database_id = typer.prompt("Notion database ID").strip()

    if not all((github_token, github_repo, notion_token, database_id)):
        rprint("[red]All four values are required.[/red]")
        raise typer.Exit(1)

    set_as_default = typer.confirm(f"Set '{profile_name}' as default profile?", default=True)
    save_profile(
        profile_name,
        {
            "github_token": github_token,
            "github_repo": github_repo,
            "notion_token": notion_token,
            "notion_database_id": normalize_database_id(database_id),
        },
        set_default=set_as_default,
    )
    rprint(f"[green]✓[/green] Profile '{profile_name}' written to {CONFIG_PATH}")

    if typer.confirm("Check the Notion database now?", default=True):
        settings = get_settings(profile=profile_name, reload=True)

        async def verify() -> None:
            async with _notion_store(settings) as store:
                await store.verify_schema()

        try:
            asyncio.run(verify())
            rprint("[green]✓[/green] Notion database looks good.")
        except SchemaError as exc:
            _print_missing(exc)
            if typer.confirm("Create the missing properties?", default=True):
                asyncio.run(_provision(settings))
                rprint("[green]✓[/green] Properties created successfully")
        except Gh2NotionError as exc:
            rprint(f"[yellow]Warning:[/yellow] Could not check the database: {exc}")

    rprint("")
    config_show(profile=profile_name)
