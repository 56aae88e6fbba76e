"""Exception hierarchy shared by the providers, the engine and the CLI."""

from gh2notion.models import MissingProperty


class Gh2NotionError(Exception):
    """Base class for every error raised by gh2notion."""


class ConfigurationError(Gh2NotionError):
    """Settings are missing or malformed. Raised before any network call."""


class ValidationError(Gh2NotionError):
    """Bad manual-task input."""


class RemoteError(Gh2NotionError):
    """Non-success response (or transport failure) from GitHub or Notion."""

    def __init__(self, service: str, status: int | None, body: str) -> None:
        self.service = service
        self.status = status
        self.body = body
        label = status if status is not None else "transport error"
        super().__init__(f"{service} API error ({label}): {body}")


class SchemaError(Gh2NotionError):
    """The Notion database lacks required properties or has them mistyped."""

    def __init__(self, missing: list[MissingProperty]) -> None:
        self.missing = missing
        super().__init__(f"Notion database is missing required properties: {', '.join(m.describe() for m in missing)}")
