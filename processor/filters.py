"""Search predicates, ordering and pagination over canonical events."""
import math
from datetime import datetime
from typing import Iterable, List

from processor.models import CanonicalEvent, SearchFilters, SearchResult
from processor.time_window import DEFAULT_EVENT_TIME, in_window, resolve_start

KM_PER_DEGREE = 111.0


def matches_query(event: CanonicalEvent, query: str) -> bool:
    """Case-insensitive substring match across title, description and venue."""
    needle = (query or '').strip().lower()
    if not needle:
        return True
    haystacks = (event.title, event.description, event.venue_name)
    return any(needle in (text or '').lower() for text in haystacks)


def _is_free(event: CanonicalEvent) -> bool:
    return event.is_free or event.price_min == 0


def _is_paid(event: CanonicalEvent) -> bool:
    if _is_free(event):
        return False
    return (event.price_min or 0) > 0 or (event.price_max or 0) > 0


def _within_box(event: CanonicalEvent, filters: SearchFilters) -> bool:
    if event.latitude is None or event.longitude is None:
        return False
    lat_delta = filters.radius_km / KM_PER_DEGREE
    lng_delta = filters.radius_km / (KM_PER_DEGREE * max(math.cos(math.radians(filters.latitude)), 1e-6))
    return (
        abs(event.latitude - filters.latitude) <= lat_delta
        and abs(event.longitude - filters.longitude) <= lng_delta
    )


def matches_filters(event: CanonicalEvent, filters: SearchFilters, now: datetime) -> bool:
    """Apply category, price, time-window and location filters to one event."""
    if filters.category:
        if (event.category or '').lower() != filters.category.lower():
            return False

    if filters.price == 'free' and not _is_free(event):
        return False
    if filters.price == 'paid' and not _is_paid(event):
        return False

    if filters.time_window:
        start = resolve_start(event.start_date, event.start_time)
        if start is None or not in_window(start, now, filters.time_window):
            return False

    if filters.has_location and not _within_box(event, filters):
        return False

    return True


def sort_key(event: CanonicalEvent) -> tuple:
    return (
        event.start_date or '9999-12-31',
        event.start_time or DEFAULT_EVENT_TIME.strftime('%H:%M'),
        event.title.lower()
    )


def apply_filters(
    events: Iterable[CanonicalEvent],
    query: str,
    filters: SearchFilters,
    now: datetime
) -> SearchResult:
    """
    Filter, order and paginate events.

    Returns:
        SearchResult holding the requested page and the total match count
    """
    matched: List[CanonicalEvent] = [
        event for event in events
        if matches_query(event, query) and matches_filters(event, filters, now)
    ]
    matched.sort(key=sort_key)
    page = matched[filters.offset:filters.offset + filters.limit]
    return SearchResult(events=page, total_count=len(matched))
