"""Jira issue source.

Issues are selected with a JQL query and claimed by removing the print
label through a partial update. Jira labels are plain names, so the
label name itself is the claim token.
"""

import logging
from collections.abc import Callable, Iterator
from typing import Any

import requests

from ticket_printer.config import JiraConfig
from ticket_printer.exceptions import NetworkError, ProtocolError
from ticket_printer.models import SourceKind, Ticket
from ticket_printer.sources.http import ServiceClient

logger = logging.getLogger(__name__)

PAGE_SIZE = 50


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def build_jql(config: JiraConfig) -> str:
    """Build the JQL selecting labelled issues.

    Args:
        config: Jira selection settings.

    Returns:
        str: Query such as
        '(project = "A" OR project = "B") AND issuetype in ("Bug") AND labels = "print"'.
    """
    clauses = []
    if config.limit_to_projects:
        projects = " OR ".join(f"project = {_quote(p)}" for p in config.limit_to_projects)
        clauses.append(f"({projects})")
    if config.limit_to_types:
        types = ", ".join(_quote(t) for t in config.limit_to_types)
        clauses.append(f"issuetype in ({types})")
    clauses.append(f"labels = {_quote(config.print_label)}")
    return " AND ".join(clauses)


class JiraSource:
    """Ticket source backed by the Jira REST API."""

    kind = SourceKind.JIRA

    def __init__(
        self,
        config: JiraConfig,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ):
        """Initialize the Jira source.

        Args:
            config: Jira credentials and selection.
            timeout: HTTP timeout in seconds.
            session: Optional requests session.
        """
        self.config = config
        self.client = ServiceClient(f"https://{config.host}", timeout=timeout, session=session)
        self.jql = build_jql(config)

    @property
    def _headers(self) -> dict:
        return {"Content-Type": "application/json", "Accept": "application/json"}

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        return self.client.request(
            method,
            path,
            auth=(self.config.user, self.config.token),
            headers=self._headers,
            **kwargs,
        )

    def iter_issues(self) -> Iterator[dict]:
        """Page through the search results.

        A page shorter than PAGE_SIZE is the last one.

        Yields:
            dict: Raw issue objects in result order.
        """
        start_at = 0
        while True:
            response = self._request(
                "GET",
                "/rest/api/2/search",
                params={"jql": self.jql, "startAt": start_at, "maxResults": PAGE_SIZE},
            )
            try:
                issues = response.json()["issues"]
            except (ValueError, KeyError, TypeError) as e:
                raise ProtocolError(f"Unexpected Jira search response: {e}") from e
            if not isinstance(issues, list):
                raise ProtocolError("Jira search 'issues' is not a list")

            logger.debug(f"Jira search page at {start_at}: {len(issues)} issue(s)")
            yield from issues

            if len(issues) < PAGE_SIZE:
                break
            start_at += len(issues)

    def find_labelled(self) -> list[Ticket]:
        """Collect every matching issue without claiming it.

        Returns:
            list[Ticket]: Candidates in search order.

        Raises:
            ProtocolError: If an issue has an unexpected shape.
        """
        try:
            return [
                Ticket(
                    id=issue["id"],
                    claim_token=self.config.print_label,
                    title=issue["fields"]["summary"],
                    subtitle=issue["key"],
                    url=f"https://{self.config.host}/browse/{issue['key']}",
                    source=self.kind,
                )
                for issue in self.iter_issues()
            ]
        except (KeyError, TypeError) as e:
            raise ProtocolError(f"Unexpected Jira issue shape: {e}") from e

    def fetch_and_claim(self, on_claim: Callable[[Ticket], None] | None = None) -> list[Ticket]:
        # Claiming shrinks the result set, so finish paging first
        candidates = self.find_labelled()

        tickets = []
        for ticket in candidates:
            try:
                self.update_label(ticket.id, "remove", ticket.claim_token)
            except NetworkError as e:
                logger.error(f"Could not remove label from issue {ticket.subtitle}: {e}")
                continue
            tickets.append(ticket)
            if on_claim is not None:
                on_claim(ticket)

        logger.info(f"Claimed {len(tickets)} Jira issue(s)")
        return tickets

    def update_label(self, issue_id: str, action: str, label: str) -> None:
        """Add or remove a label with a partial issue update.

        Args:
            issue_id: Issue id.
            action: 'add' or 'remove'.
            label: Label name.
        """
        self._request(
            "PUT",
            f"/rest/api/3/issue/{issue_id}",
            json={"update": {"labels": [{action: label}]}},
        )

    def revert(self, ticket: Ticket) -> None:
        self.update_label(ticket.id, "add", ticket.claim_token)
        logger.info(f"Restored label on Jira issue {ticket.subtitle}")
