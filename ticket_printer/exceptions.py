"""Exception hierarchy for ticket-printer."""


class TicketPrinterError(Exception):
    """Base class for all ticket-printer errors."""

    pass


class ConfigError(TicketPrinterError):
    """Configuration could not be loaded or failed validation."""

    pass


class NetworkError(TicketPrinterError):
    """Transport failure or non-2xx response from a ticket service."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class AuthError(NetworkError):
    """The ticket service rejected the supplied credentials."""

    pass


class ProtocolError(TicketPrinterError):
    """Response body was malformed or did not have the expected shape."""

    pass


class RenderError(TicketPrinterError):
    """Card document could not be built or written."""

    pass


class PrintError(TicketPrinterError):
    """Error during printing operation."""

    pass


class CycleFailedError(TicketPrinterError):
    """A poll cycle failed after claiming tickets.

    Reverts have already been attempted when this is raised. ``tickets``
    is the whole claimed batch, ``unreverted`` the tickets whose label
    could not be restored, and ``__cause__`` the error that aborted the
    cycle.
    """

    def __init__(
        self,
        message: str,
        tickets: list | None = None,
        unreverted: list | None = None,
    ):
        super().__init__(message)
        self.tickets = tickets or []
        self.unreverted = unreverted or []
