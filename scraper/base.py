"""Base class for upstream event providers."""
import logging
import time
from abc import ABC, abstractmethod
from typing import List, Optional

import requests

from processor.errors import ProviderError
from processor.models import RawEvent

logger = logging.getLogger(__name__)

HEADERS = {
    'User-Agent': (
        'Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 '
        '(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36'
    ),
    'Accept': 'text/html,application/json;q=0.9,*/*;q=0.8',
}


class SourceProvider(ABC):
    """
    An upstream source of event listings.

    Subclasses turn one provider's payloads into RawEvent records; the
    processor converts those into canonical events.
    """

    name: str = 'base'

    def __init__(
        self,
        timeout: int = 10,
        max_retries: int = 2,
        retry_delay: float = 1.0,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the provider.

        Args:
            timeout: HTTP request timeout in seconds
            max_retries: Attempts per request for transient failures
            retry_delay: Base delay between attempts in seconds
            session: Optional requests session to reuse
        """
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.session = session or requests.Session()
        self.session.headers.update(HEADERS)

    @abstractmethod
    def fetch_events(self, query: str, limit: int) -> List[RawEvent]:
        """Fetch up to limit events matching query."""

    def _get(self, url: str, params: Optional[dict] = None) -> requests.Response:
        """
        GET a URL, retrying transport errors and 5xx responses.

        Raises:
            ProviderError: If the request fails on every attempt or with a 4xx
        """
        last_error: Optional[Exception] = None
        for attempt in range(self.max_retries):
            try:
                response = self.session.get(url, params=params, timeout=self.timeout)
                response.raise_for_status()
                return response

            except requests.HTTPError as e:
                status = e.response.status_code if e.response is not None else None
                # 4xx errors won't improve with retries
                if status is not None and status < 500:
                    raise ProviderError(self.name, f"HTTP {status} from {url}") from e
                last_error = e

            except (requests.ConnectionError, requests.Timeout) as e:
                last_error = e

            if attempt < self.max_retries - 1:
                delay = self.retry_delay * (2 ** attempt)
                logger.warning(
                    f"[{self.name}] Request failed (attempt {attempt + 1}/"
                    f"{self.max_retries}): {last_error}. Retrying in {delay} seconds..."
                )
                time.sleep(delay)

        logger.error(
            f"[{self.name}] All {self.max_retries} attempts failed. "
            f"Last error: {last_error}"
        )
        raise ProviderError(self.name, f"Request to {url} failed: {last_error}") from last_error
