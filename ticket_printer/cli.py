"""Command-line interface for ticket-printer."""

import functools
import json
import logging
import sys
from pathlib import Path

import click

from ticket_printer import __version__
from ticket_printer.config import EXAMPLE_CONFIG, Settings, load_settings
from ticket_printer.exceptions import ConfigError, CycleFailedError
from ticket_printer.pipeline import get_pipeline

SECTIONS = ("pdf", "printer", "trello", "jira", "general")

# (flag, destination, click type, multiple, help)
CONFIG_OPTIONS = [
    ("--config", "config_file", click.Path(dir_okay=False, path_type=Path), False,
     "Use this configuration file instead of the default search path"),
    ("--poll", "general_poll", click.IntRange(min=1), False,
     "Seconds to wait between polling [conf: general.poll]"),
    ("--out-dir", "general_out_dir", click.Path(file_okay=False, path_type=Path), False,
     "Keep generated PDFs in this directory [conf: general.out_dir]"),
    ("--pdf-height", "pdf_height", float, False, "Height of the card [conf: pdf.height]"),
    ("--pdf-width", "pdf_width", float, False, "Width of the card [conf: pdf.width]"),
    ("--pdf-margin", "pdf_margin", float, False, "Border margin of the card [conf: pdf.margin]"),
    ("--pdf-title-lines", "pdf_title_lines", int, False,
     "Number of lines for the title [conf: pdf.title_lines]"),
    ("--pdf-title-seperator-margin", "pdf_title_seperator_margin", float, False,
     "Margin between title and lower content [conf: pdf.title_seperator_margin]"),
    ("--pdf-qrcode-seperator-margin", "pdf_qrcode_seperator_margin", float, False,
     "Margin between qrcode and subtitle [conf: pdf.qrcode_seperator_margin]"),
    ("--pdf-subtitle-size", "pdf_subtitle_size", float, False,
     "Font size of the subtitle [conf: pdf.subtitle_size]"),
    ("--pdf-qr-version", "pdf_qr_version", click.IntRange(1, 40), False,
     "QR code symbol version [conf: pdf.qr_version]"),
    ("--printer-media", "printer_media", str, False, "Type of the output paper [conf: printer.media]"),
    ("--printer-orientation", "printer_orientation", str, False,
     "Paper orientation [conf: printer.orientation]"),
    ("--printer-number-of-copies", "printer_number_of_copies", int, False,
     "Number of copies [conf: printer.number_of_copies]"),
    ("--printer-name", "printer_name", str, False, "Name of the printer [conf: printer.name]"),
    ("--trello-app-key", "trello_app_key", str, False, "Trello app key [conf: trello.app_key]"),
    ("--trello-token", "trello_token", str, False, "Trello access token [conf: trello.token]"),
    ("--trello-print-label", "trello_print_label", str, False,
     "Label to find cards [conf: trello.print_label]"),
    ("--trello-limit-to-boards", "trello_limit_to_boards", str, True,
     "Limit search to board, repeatable [conf: trello.limit_to_boards]"),
    ("--jira-host", "jira_host", str, False, "Jira server hostname [conf: jira.host]"),
    ("--jira-user", "jira_user", str, False, "Jira username [conf: jira.user]"),
    ("--jira-token", "jira_token", str, False, "Jira access token [conf: jira.token]"),
    ("--jira-print-label", "jira_print_label", str, False,
     "Label to find issues [conf: jira.print_label]"),
    ("--jira-limit-to-projects", "jira_limit_to_projects", str, True,
     "Limit search to project, repeatable [conf: jira.limit_to_projects]"),
    ("--jira-limit-to-types", "jira_limit_to_types", str, True,
     "Limit search to issue type, repeatable [conf: jira.limit_to_types]"),
]

CONFIG_DESTS = {dest for _, dest, _, _, _ in CONFIG_OPTIONS}


def setup_logging(level: str) -> None:
    """Set up logging configuration.

    Args:
        level: Log level string.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )


def config_options(func):
    """Attach every configuration override option to a command."""
    for flag, dest, type_, multiple, help_ in reversed(CONFIG_OPTIONS):
        func = click.option(flag, dest, type=type_, multiple=multiple, default=None, help=help_)(
            func
        )
    return func


def collect_overrides(options: dict) -> dict:
    """Group flat option values into settings sections.

    Unset options (None or an empty repeatable) are left out so they
    do not mask files or environment.

    Args:
        options: Option values keyed by destination name.

    Returns:
        dict: e.g. {"pdf": {"width": 80.0}, "general": {"poll": 30}}.
    """
    overrides: dict[str, dict] = {}
    for dest, value in options.items():
        if value is None or value == ():
            continue
        section, _, key = dest.partition("_")
        if section not in SECTIONS:
            continue
        overrides.setdefault(section, {})[key] = list(value) if isinstance(value, tuple) else value
    return overrides


def resolve_settings(options: dict) -> Settings:
    """Load settings from files, environment and command line, or exit."""
    config_file = options.pop("config_file", None)
    try:
        return load_settings(config_file, **collect_overrides(options))
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


def with_settings(func):
    """Resolve the configuration options into a Settings argument."""

    @config_options
    @functools.wraps(func)
    def wrapper(**options):
        config_values = {name: options.pop(name) for name in list(options) if name in CONFIG_DESTS}
        return func(resolve_settings(config_values), **options)

    return wrapper


@click.group()
@click.version_option(version=__version__)
def main():
    """ticket-printer - print Trello cards and Jira issues on small labels.

    Tickets carrying the configured print label are rendered to a card
    with a QR code linking back to the ticket and sent to a label
    printer. The label is removed once the ticket is claimed and put back
    if printing fails.

    Configuration is read from /etc/ticket_printer/, ~/.config/ticket_printer/
    and ./ (ticket_printer.toml or ticket_printer.json), then from
    TICKET_PRINTER_* environment variables (e.g. TICKET_PRINTER_JIRA__TOKEN),
    then from the command line.
    """
    pass


@main.command()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@with_settings
def run(settings: Settings, verbose: bool):
    """Claim, render and print labelled tickets.

    Runs a single cycle unless a poll interval is configured. Press
    Ctrl+C to stop polling.
    """
    if not settings.service_available():
        click.echo(
            "No Service configured. You may want to adapt the configuration file.", err=True
        )
        sys.exit(1)

    level = "DEBUG" if verbose else settings.general.log_level
    setup_logging(level)

    pipeline = get_pipeline(settings)
    pipeline.install_signal_handlers()
    try:
        pipeline.run()
    except CycleFailedError as e:
        click.echo(f"Error: {e}", err=True)
        for ticket in e.unreverted:
            click.echo(f"  label not restored: {ticket.source.value} {ticket.id}", err=True)
        sys.exit(1)


@main.command("print-config")
@with_settings
def print_config(settings: Settings):
    """Print the resolved configuration with credentials masked."""
    click.echo(json.dumps(settings.masked_dump(), indent=2))


@main.command("generate-config")
def generate_config():
    """Print a complete example configuration (TOML)."""
    click.echo(EXAMPLE_CONFIG, nl=False)


if __name__ == "__main__":
    main()
