"""HTTP access to the sample application's product page."""

import logging
import time
from pathlib import Path
from typing import Optional

import requests

from meshcheck.models import FetchResult

logger = logging.getLogger(__name__)

PRODUCTPAGE_PATH = "/productpage"


def user_cookie(user: str) -> str:
    """Cookie header tagging a request with a user identity."""
    return f"foo=bar;user={user};"


class ProductPageClient:
    """Fetches the product page through the mesh ingress."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def url(self) -> str:
        return f"{self.base_url}{PRODUCTPAGE_PATH}"

    def status(self) -> Optional[int]:
        """Status code of an untagged request, None if the request failed."""
        try:
            response = self.session.get(self.url, timeout=self.timeout)
            return response.status_code
        except requests.RequestException as e:
            logger.debug("GET %s failed: %s", self.url, e)
            return None

    def fetch(self, user: str, output_file: Optional[Path] = None) -> FetchResult:
        """Fetch the page as user, timing the round trip.

        The body is written to output_file when given, so failing runs leave
        the actual response next to the expected one.
        """
        headers = {"Cookie": user_cookie(user)}
        start = time.monotonic()
        try:
            response = self.session.get(self.url, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            elapsed = time.monotonic() - start
            logger.debug("GET %s as %s failed: %s", self.url, user, e)
            # Never leave an earlier capture behind for the comparator
            if output_file is not None:
                output_file.unlink(missing_ok=True)
            return FetchResult(elapsed_seconds=elapsed, error=str(e), output_file=output_file)
        elapsed = time.monotonic() - start

        if output_file is not None:
            output_file.parent.mkdir(parents=True, exist_ok=True)
            output_file.write_bytes(response.content)

        return FetchResult(
            status_code=response.status_code,
            body=response.content,
            elapsed_seconds=elapsed,
            output_file=output_file,
        )
