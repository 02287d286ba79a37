"""Core value types shared by sources, renderer and pipeline."""

from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path


class SourceKind(str, Enum):
    """Ticket service a ticket was claimed from."""

    TRELLO = "trello"
    JIRA = "jira"


class CycleState(str, Enum):
    """Phases of a single poll cycle."""

    IDLE = "idle"
    FETCHING = "fetching"
    RENDERING = "rendering"
    DISPATCHING = "dispatching"
    DONE = "done"
    REVERTING_THEN_FAILED = "reverting_then_failed"


@dataclass(frozen=True)
class Ticket:
    """A claimed ticket, ready to be printed.

    Attributes:
        id: Identifier in the remote service, also used as the PDF file name.
        claim_token: Opaque value the source needs to undo the claim.
        title: Text printed in the title block.
        subtitle: Short reference printed in the bottom-right corner.
        url: Link encoded in the QR code.
        source: Service the ticket came from.
    """

    id: str
    claim_token: str
    title: str
    subtitle: str
    url: str
    source: SourceKind

    def with_url(self, url: str) -> "Ticket":
        """Return a copy pointing at a different URL."""
        return replace(self, url=url)


@dataclass
class CycleResult:
    """Outcome of a poll cycle that reached ``done``."""

    state: CycleState = CycleState.IDLE
    printed: list[str] = field(default_factory=list)
    documents: list[Path] = field(default_factory=list)
