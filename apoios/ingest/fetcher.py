"""
HTTP fetch layer with retry and linear backoff.
"""

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from apoios.core.config import Settings

logger = logging.getLogger(__name__)

HTML_ACCEPT = "text/html,application/xhtml+xml,application/xml"
JSON_ACCEPT = "application/json"
CSV_ACCEPT = "text/csv,text/plain,application/octet-stream;q=0.9,*/*;q=0.8"


@dataclass
class FetchedPage:
    url: str
    text: str
    content_type: str = ""

    @property
    def is_html(self) -> bool:
        return "text/html" in self.content_type.lower()


class PageFetcher:
    """Fetch pages with a fixed user agent, per-request timeout and retries."""

    def __init__(self, settings: Optional[Settings] = None, session: Optional[requests.Session] = None):
        self.settings = settings or Settings()
        self.session = session or requests.Session()
        self.session.headers.update({
            "User-Agent": self.settings.user_agent,
            "Accept": HTML_ACCEPT,
        })

    def fetch(self, url: str, **kwargs) -> Optional[str]:
        """
        Fetch a page body.

        Returns the body text, or None once every attempt has failed.
        """
        page = self.fetch_page(url, **kwargs)
        return page.text if page else None

    def fetch_page(
        self,
        url: str,
        accept: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
        timeout_ms: Optional[int] = None,
        attempts: Optional[int] = None,
    ) -> Optional[FetchedPage]:
        """
        GET a URL, retrying on HTTP errors and timeouts.

        Attempt N waits N * backoff before the next attempt. JSON bodies are
        re-serialized so callers always receive a string.

        Args:
            url: Absolute URL
            accept: Override for the Accept header
            params: Query string parameters
            timeout_ms: Override for the per-attempt timeout
            attempts: Override for the number of attempts

        Returns:
            FetchedPage or None when all attempts fail
        """
        attempts = attempts or self.settings.http_max_attempts
        timeout = (timeout_ms or self.settings.http_timeout_ms) / 1000.0
        headers = {"Accept": accept} if accept else None

        for attempt in range(1, attempts + 1):
            try:
                response = self.session.get(url, params=params, headers=headers, timeout=timeout)
                response.raise_for_status()

                content_type = response.headers.get("content-type", "")
                return FetchedPage(
                    url=url,
                    text=self._body_as_text(response, content_type),
                    content_type=content_type,
                )

            except requests.RequestException as e:
                if attempt < attempts:
                    logger.warning(f"Fetch attempt {attempt}/{attempts} failed for {url}: {e}")
                    time.sleep(attempt * self.settings.http_backoff_ms / 1000.0)
                else:
                    logger.error(f"Giving up on {url} after {attempts} attempts: {e}")

        return None

    def fetch_json(self, url: str, params: Optional[Dict[str, Any]] = None, timeout_ms: Optional[int] = None) -> Optional[Any]:
        """Fetch and decode a JSON document; None on failure or non-JSON body."""
        page = self.fetch_page(url, accept=JSON_ACCEPT, params=params, timeout_ms=timeout_ms)
        if not page:
            return None
        try:
            return json.loads(page.text)
        except ValueError:
            logger.warning(f"Response from {url} is not valid JSON ({page.content_type})")
            return None

    @staticmethod
    def _body_as_text(response: requests.Response, content_type: str) -> str:
        if "json" in content_type.lower():
            try:
                return json.dumps(response.json(), ensure_ascii=False)
            except ValueError:
                pass
        return response.text
