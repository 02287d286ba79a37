"""Tests for the Trello ticket source."""

import copy
import logging
import re
from unittest.mock import MagicMock

import pytest
import requests

from ticket_printer.config import TrelloConfig
from ticket_printer.exceptions import AuthError, NetworkError, ProtocolError
from ticket_printer.models import SourceKind
from ticket_printer.sources.trello import TRELLO_API_URL, TrelloSource, make_board_filter

PRINT_LABEL = {"id": "lbl-print", "name": "print"}
OTHER_LABEL = {"id": "lbl-bug", "name": "bug"}


def make_response(status_code=200, json_data=None):
    response = MagicMock()
    response.status_code = status_code
    if isinstance(json_data, Exception):
        response.json.side_effect = json_data
    else:
        response.json.return_value = json_data
    return response


class FakeTrelloApi:
    """Stateful stand-in for the Trello REST API behind a requests session."""

    def __init__(self, boards: list[dict], cards: dict[str, list[dict]]):
        self.boards = boards
        self.cards = cards
        self.labels = {label["id"]: label for label in (PRINT_LABEL, OTHER_LABEL)}
        self.failing_deletes: set[str] = set()
        self.calls: list[tuple[str, str, dict]] = []

    def _card(self, card_id: str) -> dict:
        for cards in self.cards.values():
            for card in cards:
                if card["id"] == card_id:
                    return card
        raise AssertionError(f"unknown card {card_id}")

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        path = url.removeprefix(TRELLO_API_URL)

        if method == "GET" and path == "/members/me/boards":
            return make_response(json_data=self.boards)

        match = re.fullmatch(r"/boards/([\w-]+)/lists", path)
        if method == "GET" and match:
            board_cards = copy.deepcopy(self.cards.get(match.group(1), []))
            return make_response(json_data=[{"id": f"list-{match.group(1)}", "cards": board_cards}])

        match = re.fullmatch(r"/cards/([\w-]+)/idLabels/([\w-]+)", path)
        if method == "DELETE" and match:
            card_id, label_id = match.groups()
            if card_id in self.failing_deletes:
                return make_response(500)
            card = self._card(card_id)
            card["labels"] = [lb for lb in card["labels"] if lb["id"] != label_id]
            return make_response(json_data=[])

        match = re.fullmatch(r"/cards/([\w-]+)/idLabels", path)
        if method == "POST" and match:
            card = self._card(match.group(1))
            card["labels"].append(self.labels[kwargs["params"]["value"]])
            return make_response(json_data=[])

        raise AssertionError(f"unexpected request {method} {url}")

    def requested_paths(self, method: str) -> list[str]:
        return [url.removeprefix(TRELLO_API_URL) for m, url, _ in self.calls if m == method]


def card(card_id, name, labels, short_url=None):
    return {
        "id": card_id,
        "name": name,
        "desc": "",
        "url": f"https://trello.com/c/{card_id}/1-{name.lower().replace(' ', '-')}",
        "shortUrl": short_url or f"https://trello.com/c/{card_id}",
        "labels": list(labels),
    }


@pytest.fixture
def api():
    return FakeTrelloApi(
        boards=[{"id": "board-a", "name": "A"}, {"id": "board-b", "name": "B"}],
        cards={
            "board-a": [
                card("c1", "Write release notes", [PRINT_LABEL]),
                card("c2", "Triage inbox", [OTHER_LABEL]),
            ],
            "board-b": [card("c3", "Order toner", [OTHER_LABEL, PRINT_LABEL])],
        },
    )


def make_source(api, limit_to_boards=()):
    config = TrelloConfig(
        app_key="key", token="tok", print_label="print", limit_to_boards=list(limit_to_boards)
    )
    return TrelloSource(config, timeout=5, session=api)


class TestBoardFilter:
    """Tests for make_board_filter()."""

    def test_empty_allows_everything(self):
        keep = make_board_filter([])
        assert keep({"name": "A"}) and keep({"name": "anything"})

    def test_exact_name_match(self):
        keep = make_board_filter(["Team Board"])
        assert keep({"name": "Team Board"})
        assert not keep({"name": "team board"})
        assert not keep({"name": "Team Board 2"})


class TestFetchAndClaim:
    """Tests for TrelloSource.fetch_and_claim()."""

    def test_claims_labelled_cards(self, api):
        """Only cards with the print label become tickets."""
        tickets = make_source(api).fetch_and_claim()

        assert [t.id for t in tickets] == ["c1", "c3"]
        first = tickets[0]
        assert first.title == "Write release notes"
        assert first.subtitle == "c1"
        assert first.url == "https://trello.com/c/c1"
        assert first.claim_token == "lbl-print"
        assert first.source == SourceKind.TRELLO

    def test_removes_label_remotely(self, api):
        """Claimed cards lose the print label but keep others."""
        make_source(api).fetch_and_claim()

        assert api.requested_paths("DELETE") == [
            "/cards/c1/idLabels/lbl-print",
            "/cards/c3/idLabels/lbl-print",
        ]
        assert api._card("c3")["labels"] == [OTHER_LABEL]

    def test_sends_credentials_and_timeout(self, api):
        """Key and token travel as query parameters on every call."""
        make_source(api).fetch_and_claim()
        for _, _, kwargs in api.calls:
            assert kwargs["params"]["key"] == "key"
            assert kwargs["params"]["token"] == "tok"
            assert kwargs["timeout"] == 5

    def test_second_fetch_finds_nothing(self, api):
        """Claimed cards are not returned again."""
        source = make_source(api)
        first = source.fetch_and_claim()
        second = source.fetch_and_claim()

        assert len(first) == 2
        assert second == []

    def test_board_allow_list(self, api):
        """Only allowed boards are queried for lists."""
        tickets = make_source(api, limit_to_boards=["A"]).fetch_and_claim()

        assert api.requested_paths("GET") == ["/members/me/boards", "/boards/board-a/lists"]
        assert [t.id for t in tickets] == ["c1"]

    def test_failed_label_removal_skips_card(self, api, caplog):
        """A card whose label cannot be removed is skipped, others continue."""
        api.failing_deletes.add("c1")
        with caplog.at_level(logging.ERROR, logger="ticket_printer.sources.trello"):
            tickets = make_source(api).fetch_and_claim()

        assert [t.id for t in tickets] == ["c3"]
        assert "Write release notes" in caplog.text

    def test_reports_each_claim_immediately(self, api):
        """on_claim sees a card as soon as its label is gone."""
        source = make_source(api)
        claimed = []
        real_remove = source.remove_label

        def remove_label(card_id, label_id):
            if card_id == "c3":
                raise KeyboardInterrupt
            real_remove(card_id, label_id)

        source.remove_label = remove_label
        with pytest.raises(KeyboardInterrupt):
            source.fetch_and_claim(on_claim=claimed.append)

        assert [t.id for t in claimed] == ["c1"]
        assert api._card("c1")["labels"] == []

    def test_missing_short_url_falls_back(self, api):
        """The full card URL is used when shortUrl is absent."""
        del api.cards["board-a"][0]["shortUrl"]
        tickets = make_source(api, ["A"]).fetch_and_claim()
        assert tickets[0].url.startswith("https://trello.com/c/c1/1-")


class TestRevert:
    """Tests for TrelloSource.revert()."""

    def test_restores_label(self, api):
        """Revert re-attaches the removed label instance."""
        source = make_source(api)
        tickets = source.fetch_and_claim()

        source.revert(tickets[0])

        assert PRINT_LABEL in api._card("c1")["labels"]
        post = [c for c in api.calls if c[0] == "POST"][0]
        assert post[2]["params"]["value"] == "lbl-print"
        assert [t.id for t in source.fetch_and_claim()] == ["c1"]


class TestErrors:
    """Tests for error mapping."""

    def test_unauthorized(self):
        session = MagicMock()
        session.request.return_value = make_response(401)
        with pytest.raises(AuthError):
            make_source(session).fetch_and_claim()

    def test_connection_error(self):
        session = MagicMock()
        session.request.side_effect = requests.ConnectionError("refused")
        with pytest.raises(NetworkError, match="refused"):
            make_source(session).fetch_and_claim()

    def test_server_error(self):
        session = MagicMock()
        session.request.return_value = make_response(503)
        with pytest.raises(NetworkError) as exc_info:
            make_source(session).fetch_and_claim()
        assert not isinstance(exc_info.value, AuthError)
        assert exc_info.value.status_code == 503

    def test_invalid_json(self):
        session = MagicMock()
        session.request.return_value = make_response(json_data=ValueError("no json"))
        with pytest.raises(ProtocolError):
            make_source(session).fetch_and_claim()

    def test_malformed_card_claims_nothing(self, api):
        """A card without a name aborts before any label is removed."""
        del api.cards["board-b"][0]["name"]
        with pytest.raises(ProtocolError):
            make_source(api).fetch_and_claim()
        assert api.requested_paths("DELETE") == []
