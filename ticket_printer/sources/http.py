"""Shared HTTP plumbing for ticket sources."""

import logging
from typing import Any

import requests

from ticket_printer.exceptions import AuthError, NetworkError, ProtocolError

logger = logging.getLogger(__name__)

AUTH_STATUS_CODES = (401, 403)


class ServiceClient:
    """Thin wrapper around a requests session for one ticket service.

    Translates transport failures and error statuses into the
    ticket-printer exception hierarchy and applies a fixed timeout to
    every call.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ):
        """Initialize the client.

        Args:
            base_url: Service root, e.g. 'https://api.trello.com/1'.
            timeout: Seconds to wait for each request.
            session: Session to use (a new one is created if not provided).
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        """Send a request and check its status.

        Args:
            method: HTTP method.
            path: Path relative to base_url.
            **kwargs: Passed through to requests.

        Returns:
            requests.Response: Successful response.

        Raises:
            AuthError: On 401/403.
            NetworkError: On transport errors and any other non-2xx status.
        """
        url = self.url(path)
        kwargs.setdefault("timeout", self.timeout)
        try:
            response = self.session.request(method, url, **kwargs)
        except requests.Timeout as e:
            raise NetworkError(f"{method} {url} timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            raise NetworkError(f"{method} {url} failed: {e}") from e

        if response.status_code in AUTH_STATUS_CODES:
            raise AuthError(
                f"{method} {url} was rejected: {response.status_code}",
                status_code=response.status_code,
            )
        if not 200 <= response.status_code < 300:
            raise NetworkError(
                f"{method} {url} returned {response.status_code}",
                status_code=response.status_code,
            )
        return response

    def get_json(self, path: str, **kwargs: Any) -> Any:
        """GET a resource and decode its JSON body.

        Raises:
            ProtocolError: If the body is not valid JSON.
        """
        response = self.request("GET", path, **kwargs)
        try:
            return response.json()
        except ValueError as e:
            raise ProtocolError(f"GET {self.url(path)} did not return JSON") from e
