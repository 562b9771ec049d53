"""Scraper for HTML event calendar listing pages."""
import logging
import re
from typing import List, Optional, Tuple
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from processor.models import RawEvent
from scraper.base import SourceProvider

logger = logging.getLogger(__name__)

# Thousands-grouped amounts first so "1,200" is one number
PRICE_RE = re.compile(r'\d{1,3}(?:,\d{3})+(?:\.\d{1,2})?|\d+(?:\.\d{1,2})?')


class HtmlCalendarScraper(SourceProvider):
    """
    Scraper for calendar pages that list events as ``div.event-item``.

    Each item is expected to carry ``h3.event-title``, ``span.event-date`` and
    optionally ``span.event-time`` ("7:00 PM - 9:00 PM"), ``span.event-venue``,
    ``span.event-address``, ``div.event-description``, ``span.event-category``,
    ``span.event-price``, ``img`` and ``a.event-link``.
    """

    def __init__(self, name: str, url: str, **kwargs):
        """
        Initialize the calendar scraper.

        Args:
            name: Provider tag recorded on every event
            url: Listing page URL
            **kwargs: Passed to SourceProvider
        """
        super().__init__(**kwargs)
        self.name = name
        self.url = url

    def fetch_events(self, query: str, limit: int) -> List[RawEvent]:
        """
        Fetch events from the calendar listing.

        Args:
            query: Search text passed to the listing as ``q``
            limit: Maximum number of events to return

        Returns:
            List of RawEvent objects
        """
        logger.info(f"[{self.name}] Fetching calendar listing for '{query}'")
        params = {'q': query} if query else None
        response = self._get(self.url, params=params)

        events = self._parse_events(response.text)[:limit]
        logger.info(f"[{self.name}] Successfully fetched {len(events)} events")
        return events

    def _parse_events(self, html_content: str) -> List[RawEvent]:
        """
        Parse events from calendar HTML.

        Args:
            html_content: HTML content from calendar page

        Returns:
            List of RawEvent objects
        """
        soup = BeautifulSoup(html_content, 'html.parser')
        events = []

        for element in soup.find_all('div', class_='event-item'):
            try:
                event = self._parse_event_element(element)
                if event:
                    events.append(event)
            except (AttributeError, TypeError, ValueError) as e:
                logger.warning(f"[{self.name}] Failed to parse event element: {e}")
                continue

        return events

    def _parse_event_element(self, element) -> Optional[RawEvent]:
        """
        Parse a single event element.

        Args:
            element: BeautifulSoup element containing event data

        Returns:
            RawEvent object or None if the element has no title or date
        """
        title = _text(element.find('h3', class_='event-title'))
        date = _text(element.find('span', class_='event-date'))
        if not title or not date:
            logger.debug(f"[{self.name}] Skipping element without title or date")
            return None

        start_time = None
        time_text = _text(element.find('span', class_='event-time'))
        if time_text:
            start_time, _ = self._parse_time_range(time_text)

        price_min, price_max, is_free = self._parse_price(
            _text(element.find('span', class_='event-price'))
        )

        link = element.find('a', class_='event-link')
        image = element.find('img')

        return RawEvent(
            source_provider=self.name,
            title=title,
            date=date,
            start_time=start_time,
            venue_name=_text(element.find('span', class_='event-venue')),
            address=_text(element.find('span', class_='event-address')),
            description=_text(element.find('div', class_='event-description')),
            category=_text(element.find('span', class_='event-category')),
            price_min=price_min,
            price_max=price_max,
            is_free=is_free,
            image_url=urljoin(self.url, image['src']) if image and image.get('src') else None,
            external_url=urljoin(self.url, link['href']) if link and link.get('href') else None
        )

    def _parse_time_range(self, time_text: str) -> Tuple[str, Optional[str]]:
        """
        Parse time range from text.

        Args:
            time_text: Time text (e.g., "10:00 AM - 2:00 PM")

        Returns:
            Tuple of (start_time, end_time)
        """
        if '-' in time_text:
            parts = time_text.split('-')
            start_time = parts[0].strip()
            end_time = parts[1].strip() if len(parts) > 1 else None
        else:
            start_time = time_text.strip()
            end_time = None

        return start_time, end_time

    def _parse_price(self, price_text: Optional[str]) -> Tuple[Optional[float], Optional[float], Optional[bool]]:
        """
        Parse a price label such as "Free", "$25" or "$25 - $40".

        Returns:
            Tuple of (price_min, price_max, is_free)
        """
        if not price_text:
            return None, None, None
        if 'free' in price_text.lower():
            return 0.0, 0.0, True

        amounts = [float(value.replace(',', '')) for value in PRICE_RE.findall(price_text)]
        if not amounts:
            return None, None, None
        return min(amounts), max(amounts), None


def _text(element) -> Optional[str]:
    if element is None:
        return None
    return element.get_text(strip=True) or None
