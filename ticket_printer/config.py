"""Configuration for ticket-printer using pydantic-settings.

Settings are layered, later sources overriding earlier ones:

    1. /etc/ticket_printer/ticket_printer.{toml,json}
    2. ~/.config/ticket_printer/ticket_printer.{toml,json}
    3. ./ticket_printer.{toml,json}
    4. Environment variables (TICKET_PRINTER_PDF__WIDTH=80, ...)
    5. Keyword arguments (command line options)
"""

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic_settings import (
    BaseSettings,
    JsonConfigSettingsSource,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

from ticket_printer.exceptions import ConfigError

logger = logging.getLogger(__name__)

CONFIG_NAME = "ticket_printer"
CONFIG_EXTENSIONS = (".toml", ".json")

SYSTEM_CONFIG_DIR = Path("/etc") / CONFIG_NAME
USER_CONFIG_DIR = Path.home() / ".config" / CONFIG_NAME

SECRET_FIELDS = ("app_key", "token")


class LayoutConfig(BaseModel):
    """Card dimensions in millimetres.

    Attributes:
        height: Page height.
        width: Page width.
        margin: Border kept free on every side.
        title_lines: Number of lines available to the title.
        title_seperator_margin: Gap between the title block and the lower half.
        qrcode_seperator_margin: Gap between the QR code and the subtitle.
        subtitle_size: Font size of the subtitle.
        qr_version: Fixed QR symbol version used for the ticket URL.
    """

    model_config = ConfigDict(frozen=True)

    height: float = Field(62.0, gt=0)
    width: float = Field(100.0, gt=0)
    margin: float = Field(4.0, gt=0)
    title_lines: int = Field(2, ge=1)
    title_seperator_margin: float = Field(4.0, gt=0)
    qrcode_seperator_margin: float = Field(4.0, gt=0)
    subtitle_size: float = Field(4.0, gt=0)
    qr_version: int = Field(3, ge=1, le=40)

    @model_validator(mode="after")
    def _check_regions(self) -> "LayoutConfig":
        if self.width - 2 * self.margin <= 0:
            raise ValueError("margin leaves no room for the title")
        if self.height / 2 - self.margin - self.title_seperator_margin / 2 <= 0:
            raise ValueError("margins leave no room for the title block")
        if self.width / 2 - self.margin - self.qrcode_seperator_margin / 2 <= 0:
            raise ValueError("margins leave no room for the QR code")
        return self


class PrinterConfig(BaseModel):
    """Options passed to the print spooler."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="CUPS destination name")
    media: str = Field("Custom.62x100mm", description="media=<value> option")
    orientation: str = Field("landscape", description="Orientation option")
    number_of_copies: int = Field(1, ge=1)
    command: str = Field("lp", description="Print spool executable")
    timeout: float = Field(30.0, gt=0)


class TrelloConfig(BaseModel):
    """Trello credentials and card selection."""

    model_config = ConfigDict(frozen=True)

    app_key: str = Field(..., min_length=1)
    token: str = Field(..., min_length=1)
    print_label: str = Field(..., min_length=1)
    limit_to_boards: list[str] = Field(default_factory=list)


class JiraConfig(BaseModel):
    """Jira credentials and issue selection.

    ``host`` is a bare hostname such as ``example.atlassian.net``; only
    https is supported.
    """

    model_config = ConfigDict(frozen=True)

    host: str = Field(..., min_length=1)
    user: str = Field(..., min_length=1)
    token: str = Field(..., min_length=1)
    print_label: str = Field(..., min_length=1)
    limit_to_types: list[str] = Field(default_factory=list)
    limit_to_projects: list[str] = Field(default_factory=list)


class GeneralConfig(BaseModel):
    """Run-wide options."""

    model_config = ConfigDict(frozen=True)

    poll: int | None = Field(None, ge=1, description="Seconds between poll cycles")
    out_dir: Path | None = Field(None, description="Keep PDFs here instead of a temp dir")
    request_timeout: float = Field(10.0, gt=0, description="HTTP timeout in seconds")
    shorten_urls: bool = False
    log_level: str = Field("INFO", pattern="^(DEBUG|INFO|WARNING|ERROR)$")


def default_config_files() -> list[Path]:
    """Candidate config files, lowest precedence first."""
    files = []
    for directory in (SYSTEM_CONFIG_DIR, USER_CONFIG_DIR, Path.cwd()):
        for ext in CONFIG_EXTENSIONS:
            files.append(directory / f"{CONFIG_NAME}{ext}")
    return files


def _checked(read: Callable[[Path], Any], path: Path) -> dict[str, Any]:
    """Run a file reader, reporting parse failures as ConfigError."""
    logger.debug(f"Loading configuration from {path}")
    try:
        data = read(path)
    except (OSError, ValueError) as e:
        raise ConfigError(f"Could not read configuration {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Configuration {path} must contain a table at the top level")
    return data


class TomlFileSource(TomlConfigSettingsSource):
    """One TOML configuration file."""

    def _read_file(self, file_path: Path) -> dict[str, Any]:
        return _checked(super()._read_file, file_path)


class JsonFileSource(JsonConfigSettingsSource):
    """One JSON configuration file."""

    def _read_file(self, file_path: Path) -> dict[str, Any]:
        return _checked(super()._read_file, file_path)


def config_file_source(settings_cls: type[BaseSettings], path: Path) -> PydanticBaseSettingsSource:
    """Settings source for a config file, chosen by its extension.

    Missing files yield no values.
    """
    if path.suffix == ".json":
        return JsonFileSource(settings_cls, json_file=path)
    return TomlFileSource(settings_cls, toml_file=path)


class Settings(BaseSettings):
    """Resolved configuration for one ticket-printer process.

    Attributes:
        pdf: Card layout.
        printer: Print spooler options (None = only write PDFs).
        trello: Trello source (None = disabled).
        jira: Jira source (None = disabled).
        general: Polling, output directory and transport options.
        config_files: Files merged below the environment.
    """

    model_config = SettingsConfigDict(
        env_prefix="TICKET_PRINTER_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    pdf: LayoutConfig = Field(default_factory=LayoutConfig)
    printer: PrinterConfig | None = None
    trello: TrelloConfig | None = None
    jira: JiraConfig | None = None
    general: GeneralConfig = Field(default_factory=GeneralConfig)
    config_files: list[Path] = Field(default_factory=default_config_files, exclude=True)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        files = getattr(init_settings, "init_kwargs", {}).get("config_files")
        if files is None:
            files = default_config_files()
        # One source per file, highest precedence first; sources are deep-merged
        file_sources = [config_file_source(settings_cls, Path(p)) for p in reversed(files)]
        return (init_settings, env_settings, *file_sources)

    def service_available(self) -> bool:
        """Check if at least one ticket source is configured.

        Returns:
            bool: True if trello or jira is set.
        """
        return self.trello is not None or self.jira is not None

    def masked_dump(self) -> dict:
        """Dump settings as plain data with credentials hidden."""
        data = self.model_dump(mode="json")
        for section in ("trello", "jira"):
            values = data.get(section)
            if not values:
                continue
            for key in SECRET_FIELDS:
                if values.get(key):
                    values[key] = "*" * 8
        return data


def load_settings(config_file: Path | str | None = None, **overrides: Any) -> Settings:
    """Build the settings for this process.

    Args:
        config_file: Explicit config file replacing the default search path.
        **overrides: Section dicts (e.g. ``pdf={"width": 80}``) that take
            precedence over files and environment.

    Returns:
        Settings: Validated configuration.

    Raises:
        ConfigError: If a file is unreadable or validation fails.
    """
    if config_file is not None:
        path = Path(config_file)
        if not path.is_file():
            raise ConfigError(f"Configuration file not found: {path}")
        overrides["config_files"] = [path]

    try:
        return Settings(**overrides)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration:\n{e}") from e


EXAMPLE_CONFIG = """\
[pdf]
height = 62.0
width = 100.0
margin = 4.0
title_lines = 2
title_seperator_margin = 4.0
qrcode_seperator_margin = 4.0
subtitle_size = 4.0
qr_version = 3

[printer]
media = "Custom.62x100mm"
orientation = "landscape"
number_of_copies = 2
name = "<printer name>"

# Comment out or remove if trello is not needed
[trello]
app_key = "<APP KEY>"
token = "<USER TOKEN>"
# Cards are selected by this label, which is removed after printing
print_label = "<LABEL>"
# Use an empty array to search all boards
limit_to_boards = ["Example Board"]

# Comment out or remove if jira is not needed
[jira]
# Hostname only, https is always used
host = "<JIRA HOSTNAME>"
user = "<USERNAME OR MAIL>"
token = "<USER TOKEN>"
# Issues are selected by this label, which is removed after printing
print_label = "<LABEL>"
# Use an empty array to search all issue types
limit_to_types = ["Story"]
# Use an empty array to search all projects
limit_to_projects = ["EXAMPLE"]

[general]
# poll = 60
# out_dir = "/tmp/tickets"
request_timeout = 10.0
shorten_urls = false
log_level = "INFO"
"""
