"""Smoke tests for the CLI commands using typer CliRunner."""

from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import tomlkit
from typer.testing import CliRunner

import gh2notion.settings as settings_module
from conftest import make_page
from gh2notion.errors import RemoteError, SchemaError
from gh2notion.main import app
from gh2notion.models import IssueFailure, MissingProperty, SyncReport
from gh2notion.settings import SyncSettings

runner = CliRunner()

NOW = datetime(2024, 5, 2, 9, 30, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def config_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    path = tmp_path / "config.toml"
    monkeypatch.setattr(settings_module, "CONFIG_PATH", path)
    monkeypatch.chdir(tmp_path)
    for var in ("DEFAULT_PROFILE", "GITHUB_TOKEN", "GITHUB_REPO", "NOTION_TOKEN", "NOTION_DATABASE_ID"):
        monkeypatch.delenv(f"GH2NOTION_{var}", raising=False)
    settings_module._load_toml.cache_clear()
    yield path
    settings_module._load_toml.cache_clear()


def _report(**counts) -> SyncReport:
    return SyncReport(started_at=NOW, completed_at=NOW, **counts)


def _mock_runner(**trigger_kwargs) -> MagicMock:
    sync_runner = MagicMock()
    sync_runner.trigger = AsyncMock(**trigger_kwargs)
    return sync_runner


def _mock_store() -> MagicMock:
    store = MagicMock()
    store.__aenter__.return_value = store
    store.__aexit__.return_value = False
    store.create_page = AsyncMock(return_value=make_page("created"))
    store.verify_schema = AsyncMock(return_value=None)
    store.provision_schema = AsyncMock(return_value={})
    return store


def _notion_settings() -> SyncSettings:
    return SyncSettings(notion_token="secret_test", notion_database_id="0123456789abcdef0123456789abcdef")


SCHEMA_ERROR = SchemaError([MissingProperty(name="GitHub ID", expected_type="number")])


class TestSync:
    def test_prints_report(self) -> None:
        report = _report(issues_count=3, created=1, updated=1, skipped=1)
        with patch("gh2notion.main.SyncRunner") as mock_runner_cls:
            mock_runner_cls.for_profile.return_value = _mock_runner(return_value=report)
            result = runner.invoke(app, ["sync", "--profile", "work"])
        assert result.exit_code == 0
        assert "Sync results" in result.output
        mock_runner_cls.for_profile.assert_called_once_with("work")

    def test_lists_failures(self) -> None:
        failure = IssueFailure(issue_id=7, issue_number=7, error="Notion API error (400): bad")
        report = _report(issues_count=1, failed=1, failures=[failure])
        with patch("gh2notion.main.SyncRunner") as mock_runner_cls:
            mock_runner_cls.for_profile.return_value = _mock_runner(return_value=report)
            result = runner.invoke(app, ["sync"])
        assert result.exit_code == 0
        assert "#7" in result.output

    def test_truncated_report_warns(self) -> None:
        with patch("gh2notion.main.SyncRunner") as mock_runner_cls:
            mock_runner_cls.for_profile.return_value = _mock_runner(return_value=_report(truncated=True))
            result = runner.invoke(app, ["sync"])
        assert result.exit_code == 0
        assert "page limit" in result.output

    def test_incomplete_config_exits(self) -> None:
        with patch("gh2notion.main.SyncRunner") as mock_runner_cls:
            mock_runner_cls.for_profile.return_value = _mock_runner(return_value=None)
            result = runner.invoke(app, ["sync"])
        assert result.exit_code == 1
        assert "Configuration incomplete" in result.output

    def test_schema_error_exits(self) -> None:
        with patch("gh2notion.main.SyncRunner") as mock_runner_cls:
            mock_runner_cls.for_profile.return_value = _mock_runner(side_effect=SCHEMA_ERROR)
            result = runner.invoke(app, ["sync"])
        assert result.exit_code == 1
        assert "GitHub ID" in result.output
        assert "provision-schema" in result.output

    def test_provision_flag_retries(self) -> None:
        sync_runner = _mock_runner(side_effect=[SCHEMA_ERROR, _report()])
        with patch("gh2notion.main.SyncRunner") as mock_runner_cls:
            mock_runner_cls.for_profile.return_value = sync_runner
            with patch("gh2notion.main.get_settings", return_value=_notion_settings()):
                with patch("gh2notion.main._provision", new=AsyncMock()) as mock_provision:
                    result = runner.invoke(app, ["sync", "--provision"])
        assert result.exit_code == 0
        mock_provision.assert_awaited_once()
        assert sync_runner.trigger.await_count == 2

    def test_remote_error_exits(self) -> None:
        with patch("gh2notion.main.SyncRunner") as mock_runner_cls:
            mock_runner_cls.for_profile.return_value = _mock_runner(
                side_effect=RemoteError("GitHub", 401, "Bad credentials")
            )
            result = runner.invoke(app, ["sync"])
        assert result.exit_code == 1
        assert "Bad credentials" in result.output


class TestAddTask:
    def test_creates_page(self) -> None:
        store = _mock_store()
        with patch("gh2notion.main.get_settings", return_value=_notion_settings()):
            with patch("gh2notion.main.NotionPageStore", return_value=store):
                result = runner.invoke(app, ["add-task", "Write notes", "Draft the outline", "--status", "Closed"])
        assert result.exit_code == 0
        assert "Task added" in result.output
        properties, _blocks = store.create_page.await_args.args
        assert properties["State"] == {"select": {"name": "Closed"}}

    def test_blank_title_exits(self) -> None:
        store = _mock_store()
        with patch("gh2notion.main.get_settings", return_value=_notion_settings()):
            with patch("gh2notion.main.NotionPageStore", return_value=store):
                result = runner.invoke(app, ["add-task", "   "])
        assert result.exit_code == 1
        assert "title is required" in result.output
        store.create_page.assert_not_called()

    def test_missing_notion_config_exits(self) -> None:
        with patch("gh2notion.main.get_settings", return_value=SyncSettings()):
            result = runner.invoke(app, ["add-task", "Write notes"])
        assert result.exit_code == 1
        assert "Notion configuration is incomplete" in result.output


class TestSchemaCommands:
    def test_check_schema_ok(self) -> None:
        with patch("gh2notion.main.get_settings", return_value=_notion_settings()):
            with patch("gh2notion.main.NotionPageStore", return_value=_mock_store()):
                result = runner.invoke(app, ["check-schema"])
        assert result.exit_code == 0
        assert "All required properties found" in result.output

    def test_check_schema_missing(self) -> None:
        store = _mock_store()
        store.verify_schema = AsyncMock(side_effect=SCHEMA_ERROR)
        with patch("gh2notion.main.get_settings", return_value=_notion_settings()):
            with patch("gh2notion.main.NotionPageStore", return_value=store):
                result = runner.invoke(app, ["check-schema"])
        assert result.exit_code == 1
        assert "GitHub ID" in result.output

    def test_provision_schema(self) -> None:
        store = _mock_store()
        with patch("gh2notion.main.get_settings", return_value=_notion_settings()):
            with patch("gh2notion.main.NotionPageStore", return_value=store):
                result = runner.invoke(app, ["provision-schema"])
        assert result.exit_code == 0
        store.provision_schema.assert_awaited_once()


class TestPreviewBlocks:
    def test_reads_stdin(self) -> None:
        result = runner.invoke(app, ["preview-blocks"], input="# Title\n\n- one\n- two\n")
        assert result.exit_code == 0
        assert "heading 1" in result.output
        assert "bulleted_list_item" in result.output

    def test_reads_file(self, tmp_path: Path) -> None:
        body = tmp_path / "body.md"
        body.write_text("```python\nprint(1)\n```\n")
        result = runner.invoke(app, ["preview-blocks", str(body)])
        assert result.exit_code == 0
        assert "code (python)" in result.output


class TestConfigShow:
    def test_masks_tokens(self, config_path: Path) -> None:
        config_path.write_text(
            tomlkit.dumps(
                {
                    "work": {
                        "github_token": "ghp_abcdefghijklmnop",
                        "github_repo": "acme/api",
                        "notion_token": "secret_qrstuvwxyz12345",
                        "notion_database_id": "0123456789abcdef0123456789abcdef",
                    }
                }
            )
        )
        result = runner.invoke(app, ["config-show"])
        assert result.exit_code == 0
        assert "ghp_abcdefghijklmnop" not in result.output
        assert "lmnop" in result.output
        assert "secret_qrstuvwxyz12345" not in result.output
        assert "acme/api" in result.output
        assert "never" in result.output

    def test_unknown_profile_does_not_crash(self, config_path: Path) -> None:
        config_path.write_text(tomlkit.dumps({"work": {"github_repo": "acme/api"}}))
        result = runner.invoke(app, ["config-show", "--profile", "nope"])
        assert result.exit_code == 0
        assert "not found" in result.output


class TestSetDefault:
    def test_writes_default(self, config_path: Path) -> None:
        config_path.write_text(tomlkit.dumps({"work": {}, "home": {}}))
        result = runner.invoke(app, ["set-default", "home"])
        assert result.exit_code == 0
        assert tomlkit.parse(config_path.read_text())["default_profile"] == "home"

    def test_unknown_profile_exits(self, config_path: Path) -> None:
        config_path.write_text(tomlkit.dumps({"work": {}}))
        result = runner.invoke(app, ["set-default", "nope"])
        assert result.exit_code == 1
        assert "not found" in result.output
