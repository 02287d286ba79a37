"""Pytest configuration and fixtures."""

import os

import pytest

from ticket_printer.config import Settings
from ticket_printer.exceptions import NetworkError
from ticket_printer.models import SourceKind, Ticket


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep TICKET_PRINTER_* variables of the host out of the tests."""
    for name in list(os.environ):
        if name.upper().startswith("TICKET_PRINTER_"):
            monkeypatch.delenv(name)


class FakeSource:
    """In-memory ticket source recording claims and reverts."""

    def __init__(self, kind: SourceKind, tickets=(), error: BaseException | None = None):
        self.kind = kind
        self.remote = list(tickets)
        self.error = error
        # With error set, raise it after this many tickets were claimed
        self.fail_after = 0
        self.fetch_calls = 0
        self.reverted: list[Ticket] = []
        self.failing_reverts: set[str] = set()

    def fetch_and_claim(self, on_claim=None) -> list[Ticket]:
        self.fetch_calls += 1
        claimed = []
        while self.remote:
            if self.error is not None and len(claimed) >= self.fail_after:
                raise self.error
            ticket = self.remote.pop(0)
            claimed.append(ticket)
            if on_claim is not None:
                on_claim(ticket)
        if self.error is not None:
            raise self.error
        return claimed

    def revert(self, ticket: Ticket) -> None:
        if ticket.id in self.failing_reverts:
            raise NetworkError(f"cannot restore {ticket.id}", status_code=500)
        self.reverted.append(ticket)
        self.remote.append(ticket)


def make_ticket(ticket_id: str, source: SourceKind = SourceKind.TRELLO, **kwargs) -> Ticket:
    """Build a ticket with sensible defaults."""
    values = {
        "id": ticket_id,
        "claim_token": f"label-{ticket_id}",
        "title": f"Ticket {ticket_id}",
        "subtitle": ticket_id.upper(),
        "url": f"https://is.gd/{ticket_id}",
        "source": source,
    }
    values.update(kwargs)
    return Ticket(**values)


@pytest.fixture
def ticket_factory():
    """Factory for Ticket values."""
    return make_ticket


@pytest.fixture
def fake_source():
    """Factory for FakeSource instances."""
    return FakeSource


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings writing PDFs to a temporary output directory, no printer."""
    return Settings(config_files=[], general={"out_dir": tmp_path / "out"})
