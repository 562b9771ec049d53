"""Event processor for validating and normalizing provider records."""
import hashlib
import logging
import re
from datetime import datetime
from typing import Callable, List, Optional

from processor.models import CanonicalEvent, RawEvent
from processor.slug import normalize_slug

logger = logging.getLogger(__name__)

# YYYY-MM-DDTHH... or YYYY-MM-DD HH...
ISO_DATETIME_RE = re.compile(r'^\d{4}-\d{2}-\d{2}[T ]\d')

CATEGORY_ALIASES = {
    'music': 'music',
    'arts & theatre': 'arts',
    'arts': 'arts',
    'theatre': 'arts',
    'theater': 'arts',
    'food': 'food',
    'drink': 'food',
    'culinary': 'food',
    'sports': 'sports',
    'sport': 'sports',
    'nightlife': 'social',
    'community': 'social',
    'social': 'social',
    'networking': 'business',
    'business': 'business',
    'tech': 'tech',
    'technology': 'tech',
    'education': 'education',
    'learning': 'education',
    'family': 'family',
    'kids': 'family',
    'health': 'health',
    'wellness': 'health',
}


class EventProcessor:
    """Converts tolerant provider records into canonical events."""

    MAX_TITLE_LENGTH = 500
    MAX_DESCRIPTION_LENGTH = 2000
    DEFAULT_CURRENCY = 'USD'

    def __init__(self, clock: Callable[[], datetime] = datetime.now):
        self._clock = clock

    def process_events(self, raw_events: List[RawEvent]) -> List[CanonicalEvent]:
        """
        Process and validate raw provider records.

        Args:
            raw_events: List of RawEvent objects from a provider

        Returns:
            List of CanonicalEvent objects; malformed records are dropped
        """
        processed_events = []

        for event in raw_events:
            try:
                processed_event = self.process_event(event)
                if processed_event:
                    processed_events.append(processed_event)
            except (TypeError, ValueError, AttributeError) as e:
                logger.warning(
                    f"Failed to process event '{getattr(event, 'title', None)}' "
                    f"from {getattr(event, 'source_provider', 'unknown')}: {e}"
                )
                continue

        logger.info(
            f"Processed {len(processed_events)} valid events out of "
            f"{len(raw_events)} total events"
        )
        return processed_events

    def process_event(self, event: RawEvent) -> Optional[CanonicalEvent]:
        """
        Process a single record.

        Args:
            event: Raw provider record

        Returns:
            CanonicalEvent object or None if the record has no title
        """
        if not event.title or not str(event.title).strip():
            logger.warning(
                f"Dropping record from {event.source_provider}: missing title"
            )
            return None

        title = ' '.join(str(event.title).split())[:self.MAX_TITLE_LENGTH]
        description = _clean_text(event.description)
        if description:
            description = description[:self.MAX_DESCRIPTION_LENGTH]

        start_date, embedded_time = self._split_datetime(event.date)
        if event.date and not start_date:
            logger.warning(
                f"Invalid date format for event '{title}': {event.date}"
            )

        start_time = None
        time_source = event.start_time or embedded_time
        if time_source:
            start_time = self._normalize_time(time_source)
            if not start_time:
                logger.debug(
                    f"Ignoring unparseable start time for event '{title}': "
                    f"{time_source}"
                )

        venue_name = _clean_text(event.venue_name)
        price_min = _coerce_float(event.price_min)
        price_max = _coerce_float(event.price_max)
        now = int(self._clock().timestamp())

        return CanonicalEvent(
            event_id=self.generate_event_id(title, start_date, venue_name),
            title=title,
            normalized_slug=normalize_slug(title, venue_name),
            source_provider=event.source_provider,
            description=description,
            start_date=start_date,
            start_time=start_time,
            venue_name=venue_name,
            address=_clean_text(event.address),
            latitude=_coerce_coordinate(event.latitude, 90),
            longitude=_coerce_coordinate(event.longitude, 180),
            price_min=price_min,
            price_max=price_max,
            currency=(_clean_text(event.currency) or self.DEFAULT_CURRENCY).upper(),
            is_free=self._compute_is_free(event.is_free, price_min, price_max),
            category=self.normalize_category(event.category),
            image_url=_clean_text(event.image_url),
            external_url=_clean_text(event.external_url),
            external_id=_clean_text(event.external_id),
            created_at=now,
            updated_at=now
        )

    def _split_datetime(self, value) -> tuple:
        """
        Split a provider date into ISO date and optional embedded time.

        Args:
            value: Date string in various formats, possibly with a time

        Returns:
            Tuple of (YYYY-MM-DD or None, time string or None)
        """
        if not value:
            return None, None
        value = str(value).strip()

        if ISO_DATETIME_RE.match(value):
            try:
                parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
                return parsed.strftime('%Y-%m-%d'), parsed.strftime('%H:%M')
            except ValueError:
                pass

        return self._normalize_date(value), None

    def _normalize_date(self, date_str: str) -> Optional[str]:
        """
        Normalize date to ISO 8601 format (YYYY-MM-DD).

        Args:
            date_str: Date string in various formats

        Returns:
            ISO 8601 formatted date string or None if parsing fails
        """
        date_formats = [
            '%Y-%m-%d',      # ISO 8601
            '%m/%d/%Y',      # US format
            '%m-%d-%Y',      # US format with dashes
            '%B %d, %Y',     # Full month name
            '%b %d, %Y',     # Abbreviated month name
            '%a, %b %d, %Y', # Weekday prefix
            '%Y/%m/%d',      # Alternative ISO format
        ]

        for fmt in date_formats:
            try:
                date_obj = datetime.strptime(date_str.strip(), fmt)
                return date_obj.strftime('%Y-%m-%d')
            except ValueError:
                continue

        return None

    def _normalize_time(self, time_str: str) -> Optional[str]:
        """
        Normalize time to 24-hour format (HH:MM).

        Args:
            time_str: Time string in various formats

        Returns:
            24-hour formatted time string or None if parsing fails
        """
        time_formats = [
            '%H:%M',         # 24-hour format
            '%I:%M %p',      # 12-hour format with AM/PM
            '%I:%M%p',       # 12-hour format without space
            '%I %p',         # Hour only with AM/PM
            '%H:%M:%S',      # 24-hour with seconds
            '%I:%M:%S %p',   # 12-hour with seconds and AM/PM
        ]

        time_str = str(time_str).strip().upper()

        for fmt in time_formats:
            try:
                time_obj = datetime.strptime(time_str, fmt)
                return time_obj.strftime('%H:%M')
            except ValueError:
                continue

        return None

    def _compute_is_free(self, is_free, price_min, price_max) -> bool:
        if isinstance(is_free, bool):
            return is_free
        if price_min is None and price_max is None:
            return False
        low = price_min if price_min is not None else price_max
        high = price_max if price_max is not None else price_min
        return low == 0 and high == 0

    @staticmethod
    def normalize_category(raw: Optional[str]) -> Optional[str]:
        """Map a provider category onto the canonical category set."""
        if not raw or not str(raw).strip():
            return None
        return CATEGORY_ALIASES.get(str(raw).strip().lower(), 'other')

    @staticmethod
    def generate_event_id(title: str, start_date: Optional[str], venue: Optional[str]) -> str:
        """
        Generate the deterministic identifier of an event.

        The id is a hash of the normalized title, the date and the
        normalized venue, so listings that normalize identically share it.

        Args:
            title: Event title
            start_date: Event date (ISO 8601 format) or None
            venue: Venue name or None

        Returns:
            Unique event ID (SHA256 hash)
        """
        composite = f"{normalize_slug(title)}|{start_date or ''}|{normalize_slug(venue)}"
        hash_obj = hashlib.sha256(composite.encode('utf-8'))
        return hash_obj.hexdigest()


def _clean_text(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _coerce_float(value) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(str(value).replace('$', '').replace(',', '').strip())
    except ValueError:
        return None
    if number != number or number < 0:
        return None
    return number


def _coerce_coordinate(value, bound: float) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not -bound <= number <= bound:
        return None
    return number
