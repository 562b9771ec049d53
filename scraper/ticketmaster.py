"""Ticketmaster Discovery API provider."""
import logging
from typing import List, Optional

from processor.errors import ProviderError
from processor.models import RawEvent
from scraper.base import SourceProvider

logger = logging.getLogger(__name__)


class TicketmasterProvider(SourceProvider):
    """Fetches events from the Ticketmaster Discovery API."""

    name = 'ticketmaster'
    BASE_URL = 'https://app.ticketmaster.com/discovery/v2/events.json'
    MAX_PAGE_SIZE = 200

    def __init__(self, api_key: str, city: Optional[str] = None, **kwargs):
        """
        Initialize the provider.

        Args:
            api_key: Discovery API key
            city: Optional city to restrict results to
            **kwargs: Passed to SourceProvider
        """
        super().__init__(**kwargs)
        self.api_key = api_key
        self.city = city

    def fetch_events(self, query: str, limit: int) -> List[RawEvent]:
        params = {
            'apikey': self.api_key,
            'size': min(limit, self.MAX_PAGE_SIZE),
            'sort': 'date,asc',
        }
        if query:
            params['keyword'] = query
        if self.city:
            params['city'] = self.city

        response = self._get(self.BASE_URL, params=params)
        try:
            payload = response.json()
        except ValueError as e:
            raise ProviderError(self.name, f"Invalid JSON response: {e}") from e

        items = (payload.get('_embedded') or {}).get('events') or []
        events = []
        for item in items[:limit]:
            if not isinstance(item, dict):
                logger.warning(f"[{self.name}] Skipping malformed item: {item!r}")
                continue
            events.append(self._to_raw_event(item))

        logger.info(f"[{self.name}] Fetched {len(events)} events for '{query}'")
        return events

    def _to_raw_event(self, item: dict) -> RawEvent:
        """
        Map one Discovery API event onto a RawEvent.

        Args:
            item: Event object from the API response

        Returns:
            RawEvent, possibly missing fields the API did not provide
        """
        start = (item.get('dates') or {}).get('start') or {}
        venue = ((item.get('_embedded') or {}).get('venues') or [{}])[0]
        location = venue.get('location') or {}
        prices = (item.get('priceRanges') or [{}])[0]
        classification = (item.get('classifications') or [{}])[0]

        address_parts = [
            (venue.get('address') or {}).get('line1'),
            (venue.get('city') or {}).get('name'),
        ]
        address = ', '.join(part for part in address_parts if part) or None

        return RawEvent(
            source_provider=self.name,
            title=item.get('name'),
            description=item.get('info') or item.get('pleaseNote'),
            date=start.get('localDate'),
            start_time=start.get('localTime'),
            venue_name=venue.get('name'),
            address=address,
            latitude=location.get('latitude'),
            longitude=location.get('longitude'),
            price_min=prices.get('min'),
            price_max=prices.get('max'),
            currency=prices.get('currency'),
            category=(classification.get('segment') or {}).get('name'),
            image_url=self._pick_image(item.get('images') or []),
            external_url=item.get('url'),
            external_id=item.get('id')
        )

    @staticmethod
    def _pick_image(images: list) -> Optional[str]:
        for image in images:
            if image.get('ratio') == '16_9':
                return image.get('url')
        return images[0].get('url') if images else None
