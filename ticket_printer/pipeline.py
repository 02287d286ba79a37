"""Claim pipeline - fetches labelled tickets, prints them, reverts on failure.

One poll cycle:

1. Fetch: every source lists its labelled items and removes the label
   (claim). Claimed tickets are collected into one batch, sources in
   configuration order.
2. Render + dispatch: tickets are taken from the end of the batch, turned
   into a card PDF and sent to the printer, one at a time.
3. On any failure after the first claim, the label is put back on every
   ticket of the batch, including the ones already printed, and the
   cycle fails. A failed cycle therefore never leaves tickets claimed,
   at the price of printing some cards twice on the next run.
"""

import logging
import signal
import tempfile
import time
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path

from ticket_printer.config import Settings
from ticket_printer.exceptions import CycleFailedError, RenderError, TicketPrinterError
from ticket_printer.models import CycleResult, CycleState, SourceKind, Ticket
from ticket_printer.printing import dispatch
from ticket_printer.rendering import render_card
from ticket_printer.shortener import UrlShortener
from ticket_printer.sources import TicketSource, get_sources

logger = logging.getLogger(__name__)


class ClaimPipeline:
    """Drives ticket sources, the card renderer and the printer.

    The pipeline:
    1. Claims labelled tickets from every configured source
    2. Renders a card per ticket and hands it to the printer
    3. Restores every label of the cycle if anything goes wrong
    4. Repeats after the poll interval, if one is configured
    """

    def __init__(
        self,
        settings: Settings,
        sources: Sequence[TicketSource] | None = None,
        shortener: UrlShortener | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize the pipeline.

        Args:
            settings: Resolved settings.
            sources: Ticket sources (built from settings if not provided).
            shortener: URL shortener (built from settings if not provided
                and general.shorten_urls is set).
            sleep: Function used to wait between poll cycles.
        """
        self.settings = settings
        self.sources = list(sources) if sources is not None else get_sources(settings)
        self.revert_table: dict[SourceKind, Callable[[Ticket], None]] = {
            source.kind: source.revert for source in self.sources
        }
        if shortener is None and settings.general.shorten_urls:
            shortener = UrlShortener(timeout=settings.general.request_timeout)
        self.shortener = shortener
        self.state = CycleState.IDLE
        self.running = False
        self._sleep = sleep

    def install_signal_handlers(self) -> None:
        """Stop polling after the current cycle on SIGINT/SIGTERM."""
        signal.signal(signal.SIGINT, self._handle_shutdown)
        signal.signal(signal.SIGTERM, self._handle_shutdown)

    def _handle_shutdown(self, signum, frame):
        """Handle shutdown signals gracefully."""
        logger.info("Shutdown signal received")
        self.running = False

    def revert_all(self, tickets: Sequence[Ticket]) -> list[Ticket]:
        """Restore the print label on every ticket, each via its own source.

        Failures are logged and never raised.

        Args:
            tickets: Claimed tickets.

        Returns:
            list[Ticket]: Tickets whose label could not be restored.
        """
        failed = []
        for ticket in tickets:
            revert = self.revert_table.get(ticket.source)
            if revert is None:
                logger.error(f"No {ticket.source.value} source configured to revert {ticket.id}")
                failed.append(ticket)
                continue
            try:
                revert(ticket)
            except TicketPrinterError as e:
                logger.error(
                    f"Could not restore label on {ticket.source.value} ticket {ticket.id}, "
                    f"it has to be re-labelled manually: {e}"
                )
                failed.append(ticket)
        return failed

    @contextmanager
    def _claimed(self, batch: list[Ticket]) -> Iterator[None]:
        """Revert the whole batch if the enclosed block fails."""
        try:
            yield
        except (TicketPrinterError, KeyboardInterrupt) as e:
            self.state = CycleState.REVERTING_THEN_FAILED
            reason = str(e) or type(e).__name__
            logger.error(f"Cycle failed, reverting {len(batch)} ticket(s): {reason}")
            unreverted = self.revert_all(batch)
            raise CycleFailedError(
                f"Poll cycle failed: {reason}", tickets=list(batch), unreverted=unreverted
            ) from e
        except BaseException:
            self.state = CycleState.REVERTING_THEN_FAILED
            logger.error(f"Cycle aborted, reverting {len(batch)} ticket(s)")
            self.revert_all(batch)
            raise

    @contextmanager
    def _working_dir(self) -> Iterator[Path]:
        """Output directory for one cycle (temporary unless configured).

        Raises:
            RenderError: If the directory cannot be created.
        """
        out_dir = self.settings.general.out_dir
        if out_dir is not None:
            try:
                out_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise RenderError(f"Could not create output directory {out_dir}: {e}") from e
            yield out_dir
            return

        try:
            tmp = tempfile.TemporaryDirectory(prefix="ticket_printer_")
        except OSError as e:
            raise RenderError(f"Could not create a temporary output directory: {e}") from e
        with tmp as name:
            yield Path(name)

    def fetch(self, batch: list[Ticket]) -> None:
        """Claim tickets from every source into batch.

        Tickets join the batch one by one as their label is removed, so an
        interrupted fetch still reverts every claim made so far.
        """
        self.state = CycleState.FETCHING
        for source in self.sources:
            source.fetch_and_claim(on_claim=batch.append)

    def _shorten(self, ticket: Ticket) -> Ticket:
        if self.shortener is None:
            return ticket
        return ticket.with_url(self.shortener.shorten(ticket.url))

    def print_batch(self, batch: list[Ticket], out_dir: Path, result: CycleResult) -> None:
        """Render and dispatch every ticket, last claimed first."""
        if self.settings.printer is None:
            logger.info("Missing printer configuration. Only saving pdfs.")

        pending = list(batch)
        while pending:
            ticket = self._shorten(pending.pop())

            self.state = CycleState.RENDERING
            pdf_path = render_card(ticket, self.settings.pdf, out_dir)
            result.documents.append(pdf_path)

            self.state = CycleState.DISPATCHING
            dispatch(pdf_path, self.settings.printer)
            result.printed.append(ticket.id)
            logger.info(f"Printed: {ticket.id}")

    def run_cycle(self) -> CycleResult:
        """Run a single poll cycle.

        Returns:
            CycleResult: Printed ticket ids and written documents.

        Raises:
            CycleFailedError: If any step failed; labels have been restored.
        """
        result = CycleResult()
        batch: list[Ticket] = []

        with self._claimed(batch):
            self.fetch(batch)

        if not batch:
            logger.info("No tickets marked for printing.")
        else:
            with self._claimed(batch), self._working_dir() as out_dir:
                self.print_batch(batch, out_dir, result)

        self.state = CycleState.DONE
        result.state = self.state
        return result

    def run(self) -> None:
        """Run poll cycles until stopped.

        Runs exactly one cycle when no poll interval is configured. A
        failed cycle ends the loop by raising CycleFailedError.
        """
        poll = self.settings.general.poll

        logger.info("Starting ticket printer")
        logger.info(f"Sources: {', '.join(s.kind.value for s in self.sources)}")
        logger.info(f"Printer: {self.settings.printer.name if self.settings.printer else 'none'}")
        if poll is not None:
            logger.info(f"Poll interval: {poll}s")

        self.running = True
        try:
            while self.running:
                self.run_cycle()
                if poll is None:
                    break
                self._sleep(poll)
        finally:
            self.running = False

        logger.info("Ticket printer stopped")


def get_pipeline(settings: Settings) -> ClaimPipeline:
    """Factory function for ClaimPipeline.

    Args:
        settings: Resolved settings.

    Returns:
        ClaimPipeline: Pipeline instance.
    """
    return ClaimPipeline(settings)
