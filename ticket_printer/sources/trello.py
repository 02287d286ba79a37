"""Trello card source.

Cards carrying the print label are claimed by deleting that label
instance from the card; the label id is kept as the claim token so it
can be attached again on revert.
"""

import logging
from collections.abc import Callable, Iterable

import requests

from ticket_printer.config import TrelloConfig
from ticket_printer.exceptions import NetworkError, ProtocolError
from ticket_printer.models import SourceKind, Ticket
from ticket_printer.sources.http import ServiceClient

logger = logging.getLogger(__name__)

TRELLO_API_URL = "https://api.trello.com/1"


def make_board_filter(allowed: Iterable[str]) -> Callable[[dict], bool]:
    """Build the board predicate for an allow-list.

    Args:
        allowed: Board names to keep (empty = keep every board).

    Returns:
        Callable[[dict], bool]: True for boards that should be searched.
    """
    names = frozenset(allowed)
    if not names:
        return lambda board: True
    return lambda board: board.get("name") in names


class TrelloSource:
    """Ticket source backed by the Trello REST API."""

    kind = SourceKind.TRELLO

    def __init__(
        self,
        config: TrelloConfig,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ):
        """Initialize the Trello source.

        Args:
            config: Trello credentials and selection.
            timeout: HTTP timeout in seconds.
            session: Optional requests session.
        """
        self.config = config
        self.client = ServiceClient(TRELLO_API_URL, timeout=timeout, session=session)
        self.keep_board = make_board_filter(config.limit_to_boards)

    @property
    def _auth(self) -> dict:
        """Key and token query parameters."""
        return {"key": self.config.app_key, "token": self.config.token}

    def get_boards(self) -> list[dict]:
        """Get open boards of the authenticated member."""
        boards = self.client.get_json(
            "/members/me/boards", params={**self._auth, "filter": "open"}
        )
        if not isinstance(boards, list):
            raise ProtocolError("Trello board listing is not a list")
        return boards

    def get_lists(self, board: dict) -> list[dict]:
        """Get the lists of a board with their open cards."""
        lists = self.client.get_json(
            f"/boards/{board['id']}/lists", params={**self._auth, "cards": "open"}
        )
        if not isinstance(lists, list):
            raise ProtocolError(f"Trello lists of board {board.get('name')} is not a list")
        return lists

    def find_labelled(self) -> list[Ticket]:
        """Collect labelled cards from every kept board without claiming them.

        Returns:
            list[Ticket]: Candidates in board, list and card order.

        Raises:
            ProtocolError: If a board, list or card has an unexpected shape.
        """
        candidates = []
        try:
            boards = [board for board in self.get_boards() if self.keep_board(board)]
            for board in boards:
                logger.debug(f"Searching Trello board {board.get('name')}")
                for card_list in self.get_lists(board):
                    for card in card_list.get("cards") or []:
                        ticket = self._ticket_for_card(card)
                        if ticket is not None:
                            candidates.append(ticket)
        except (KeyError, TypeError, AttributeError) as e:
            raise ProtocolError(f"Unexpected Trello response: {e}") from e
        return candidates

    def _ticket_for_card(self, card: dict) -> Ticket | None:
        label = next(
            (lb for lb in card.get("labels") or [] if lb.get("name") == self.config.print_label),
            None,
        )
        if label is None:
            return None
        return Ticket(
            id=card["id"],
            claim_token=label["id"],
            title=card["name"],
            subtitle=card["id"],
            url=card.get("shortUrl") or card["url"],
            source=self.kind,
        )

    def fetch_and_claim(self, on_claim: Callable[[Ticket], None] | None = None) -> list[Ticket]:
        # The whole listing is read before the first label is touched
        candidates = self.find_labelled()

        tickets = []
        for ticket in candidates:
            try:
                self.remove_label(ticket.id, ticket.claim_token)
            except NetworkError as e:
                logger.error(f"Could not remove label from card {ticket.title}: {e}")
                continue
            tickets.append(ticket)
            if on_claim is not None:
                on_claim(ticket)

        logger.info(f"Claimed {len(tickets)} Trello card(s)")
        return tickets

    def remove_label(self, card_id: str, label_id: str) -> None:
        self.client.request("DELETE", f"/cards/{card_id}/idLabels/{label_id}", params=self._auth)

    def add_label(self, card_id: str, label_id: str) -> None:
        self.client.request(
            "POST", f"/cards/{card_id}/idLabels", params={**self._auth, "value": label_id}
        )

    def revert(self, ticket: Ticket) -> None:
        self.add_label(ticket.id, ticket.claim_token)
        logger.info(f"Restored label on Trello card {ticket.id}")
