"""Best-effort URL shortening so ticket links fit a small QR code."""

import logging

import requests

logger = logging.getLogger(__name__)

# is.gd-compatible endpoints, tried in order
SHORTENER_ENDPOINTS = (
    "https://is.gd/create.php",
    "https://v.gd/create.php",
)


class UrlShortener:
    """Shortens URLs through public is.gd-style services."""

    def __init__(
        self,
        endpoints: tuple[str, ...] = SHORTENER_ENDPOINTS,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ):
        self.endpoints = endpoints
        self.timeout = timeout
        self.session = session or requests.Session()

    def shorten(self, url: str) -> str:
        """Return a shorter URL, or the original if every service fails.

        Args:
            url: URL to shorten.

        Returns:
            str: Short URL or the input unchanged.
        """
        for endpoint in self.endpoints:
            try:
                response = self.session.get(
                    endpoint,
                    params={"format": "simple", "url": url},
                    timeout=self.timeout,
                )
            except requests.RequestException as e:
                logger.debug(f"Shortener {endpoint} failed: {e}")
                continue

            short = response.text.strip()
            if response.status_code == 200 and short.startswith("http"):
                logger.debug(f"Shortened {url} to {short}")
                return short
            logger.debug(f"Shortener {endpoint} returned {response.status_code}")

        logger.warning(f"Could not shorten {url}, keeping the original")
        return url
