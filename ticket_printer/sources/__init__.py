"""Ticket service adapters.

Use get_sources() to build the adapters enabled in the settings, in the
order their tickets are collected.
"""

from ticket_printer.config import Settings
from ticket_printer.sources.base import TicketSource
from ticket_printer.sources.jira import JiraSource
from ticket_printer.sources.trello import TrelloSource


def get_sources(settings: Settings) -> list[TicketSource]:
    """Factory function for the configured ticket sources.

    Args:
        settings: Resolved settings.

    Returns:
        list[TicketSource]: Trello first, then Jira, skipping unset ones.
    """
    timeout = settings.general.request_timeout
    sources: list[TicketSource] = []
    if settings.trello is not None:
        sources.append(TrelloSource(settings.trello, timeout=timeout))
    if settings.jira is not None:
        sources.append(JiraSource(settings.jira, timeout=timeout))
    return sources


__all__ = [
    "JiraSource",
    "TicketSource",
    "TrelloSource",
    "get_sources",
]
