"""CUPS printing of rendered cards through the lp command."""

import logging
import subprocess
from pathlib import Path

from ticket_printer.config import PrinterConfig
from ticket_printer.exceptions import PrintError

logger = logging.getLogger(__name__)


def build_lp_command(document_path: Path, printer: PrinterConfig) -> list[str]:
    """Build the print spool command line.

    Args:
        document_path: PDF to print.
        printer: Printer options.

    Returns:
        list[str]: Command and arguments.
    """
    return [
        printer.command,
        "-o",
        "fit-to-page",
        "-o",
        f"media={printer.media}",
        "-o",
        printer.orientation,
        "-n",
        str(printer.number_of_copies),
        "-d",
        printer.name,
        str(document_path),
    ]


def dispatch(document_path: Path, printer: PrinterConfig | None) -> None:
    """Send a document to the configured printer.

    Without a printer this is a no-op and the document simply stays on
    disk.

    Args:
        document_path: PDF to print.
        printer: Printer options, or None to skip printing.

    Raises:
        PrintError: If the spool command is missing, times out or fails.
    """
    if printer is None:
        logger.debug(f"No printer configured, keeping {document_path}")
        return

    cmd = build_lp_command(document_path, printer)
    logger.debug(f"Print command: {' '.join(cmd)}")

    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=printer.timeout)
    except subprocess.TimeoutExpired as err:
        raise PrintError("Print command timed out") from err
    except FileNotFoundError as err:
        raise PrintError(f"{printer.command} command not found - is CUPS installed?") from err

    if result.returncode != 0:
        raise PrintError(
            f"{printer.command} failed with exit status {result.returncode}: {result.stderr.strip()}"
        )

    logger.info(f"Print job submitted to {printer.name}: {result.stdout.strip()}")
