"""Abstract ticket source interface."""

from collections.abc import Callable
from typing import Protocol, runtime_checkable

from ticket_printer.models import SourceKind, Ticket


@runtime_checkable
class TicketSource(Protocol):
    """Protocol defining a ticket service adapter.

    All service-specific adapters must satisfy this protocol.
    """

    kind: SourceKind

    def fetch_and_claim(self, on_claim: Callable[[Ticket], None] | None = None) -> list[Ticket]:
        """List labelled items and remove the print label from each.

        Items whose label cannot be removed are logged and skipped.

        Args:
            on_claim: Called with each ticket right after its label was
                removed, before the next item is claimed.

        Returns:
            list[Ticket]: Claimed tickets in discovery order.

        Raises:
            NetworkError: If the listing could not be fetched.
            AuthError: If the service rejected the credentials.
            ProtocolError: If the listing had an unexpected shape.
        """
        ...

    def revert(self, ticket: Ticket) -> None:
        """Put the print label back on a previously claimed ticket.

        Args:
            ticket: Ticket returned by fetch_and_claim.

        Raises:
            NetworkError: If the label could not be re-added.
        """
        ...
