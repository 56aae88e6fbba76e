"""Settings resolution with named profiles and watermark write-back."""

import os
from collections.abc import Mapping
from datetime import datetime
from functools import lru_cache
from pathlib import Path

import tomlkit
import typer
from pydantic import SecretStr
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from gh2notion.models import SyncConfig

CONFIG_PATH = Path.home() / ".config" / "gh2notion" / "config.toml"
FALLBACK_PROFILE = "default"


class SyncSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="GH2NOTION_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    default_profile: str | None = None

    # GitHub
    github_token: SecretStr | None = None
    github_repo: str | None = None  # "owner/name"

    # Notion
    notion_token: SecretStr | None = None
    notion_database_id: str | None = None

    # Sync state and behaviour
    last_sync_time: datetime | None = None  # written back after every completed pass
    sync_interval_minutes: int = 5
    max_pages: int = 10

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Profile values arrive as init kwargs; the environment and .env outrank them.
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    def to_config(self) -> SyncConfig:
        return SyncConfig(
            github_token=self.github_token,
            github_repo=self.github_repo,
            notion_token=self.notion_token,
            notion_database_id=self.notion_database_id,
            last_sync_time=self.last_sync_time,
        )


@lru_cache(maxsize=1)
def _load_toml() -> tomlkit.TOMLDocument:
    """Load ~/.config/gh2notion/config.toml, returning empty document if missing."""
    if not CONFIG_PATH.exists():
        return tomlkit.document()
    with CONFIG_PATH.open() as fh:
        return tomlkit.load(fh)


def _list_profiles(config: Mapping) -> list[str]:
    # tomlkit Table implements MutableMapping but not dict, so check Mapping
    return [k for k, v in config.items() if isinstance(v, Mapping)]


def resolve_profile(profile: str | None = None) -> str | None:
    """Name of the active profile.

    Precedence (highest to lowest):
    1. profile argument (--profile CLI flag)
    2. GH2NOTION_DEFAULT_PROFILE env var
    3. default_profile key in ~/.config/gh2notion/config.toml
    4. First profile defined in ~/.config/gh2notion/config.toml
    """
    toml_config = _load_toml()
    profiles = _list_profiles(toml_config)
    return (
        profile
        or os.environ.get("GH2NOTION_DEFAULT_PROFILE")
        or toml_config.get("default_profile")
        or (profiles[0] if profiles else None)
    )


def get_settings(profile: str | None = None, reload: bool = False) -> SyncSettings:
    """Return settings for the active profile; GH2NOTION_* env vars and .env override the file.

    Missing credentials are not an error here: an incomplete config makes a
    sync pass a no-op. An unknown profile name exits.
    """
    if reload:
        _load_toml.cache_clear()
    toml_config = _load_toml()
    active = resolve_profile(profile)

    profile_defaults: dict = {}
    if active:
        if active in toml_config and isinstance(toml_config[active], Mapping):
            profile_defaults = dict(toml_config[active])
        elif active not in toml_config:
            profiles = _list_profiles(toml_config)
            typer.echo(f"Profile '{active}' not found in {CONFIG_PATH}. Available: {profiles or '(none)'}")
            raise typer.Exit(1)

    return SyncSettings(**profile_defaults)


def _read_document() -> tomlkit.TOMLDocument:
    if not CONFIG_PATH.exists():
        return tomlkit.document()
    with CONFIG_PATH.open() as fh:
        return tomlkit.load(fh)


def _write_document(doc: tomlkit.TOMLDocument) -> None:
    CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
    CONFIG_PATH.write_text(tomlkit.dumps(doc))
    _load_toml.cache_clear()


def save_profile(name: str, values: dict, set_default: bool = False) -> None:
    """Create or overwrite a profile table (round-trip preserves comments)."""
    doc = _read_document()
    doc[name] = values
    if set_default:
        doc["default_profile"] = name
    _write_document(doc)


def set_default_profile(name: str) -> None:
    doc = _read_document()
    profiles = _list_profiles(doc)
    if CONFIG_PATH.exists() and name not in profiles:
        typer.echo(f"Profile '{name}' not found in {CONFIG_PATH}. Available: {profiles or '(none)'}")
        raise typer.Exit(1)
    doc["default_profile"] = name
    _write_document(doc)


def save_last_sync_time(when: datetime, profile: str | None = None) -> None:
    """Persist the watermark into the active profile's table."""
    doc = _read_document()
    active = resolve_profile(profile) or FALLBACK_PROFILE
    if active not in doc:
        doc.add(active, tomlkit.table())
    doc[active]["last_sync_time"] = when.isoformat()
    _write_document(doc)
