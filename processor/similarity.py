"""Pairwise duplicate judgment between two canonical events."""
from difflib import SequenceMatcher
from typing import Optional

from processor.models import CanonicalEvent, DedupeOptions
from processor.slug import normalize_slug
from processor.time_window import resolve_start

DEFAULT_OPTIONS = DedupeOptions()


def title_similarity(slug_a: str, slug_b: str) -> float:
    """Order-independent similarity ratio of two slugs in [0, 1]."""
    if slug_a == slug_b:
        return 1.0
    first, second = sorted((slug_a, slug_b))
    return SequenceMatcher(None, first, second, autojunk=False).ratio()


def are_similar(
    event_a: CanonicalEvent,
    event_b: CanonicalEvent,
    options: Optional[DedupeOptions] = None
) -> bool:
    """
    Decide whether two events describe the same real-world occurrence.

    Args:
        event_a: First event
        event_b: Second event
        options: Time window, title threshold and venue policy

    Returns:
        True if the events should be treated as duplicates
    """
    options = options or DEFAULT_OPTIONS

    # Nothing to compare on
    for event in (event_a, event_b):
        if not event.title and not event.start_date:
            return False

    slug_a = normalize_slug(event_a.title)
    slug_b = normalize_slug(event_b.title)
    if not slug_a or not slug_b:
        return False

    start_a = resolve_start(event_a.start_date, event_a.start_time)
    start_b = resolve_start(event_b.start_date, event_b.start_time)

    if start_a is None and start_b is None:
        return (
            normalize_slug(event_a.title, event_a.venue_name)
            == normalize_slug(event_b.title, event_b.venue_name)
        )
    if start_a is None or start_b is None:
        return False

    # Same title on another day is a recurrence, not a duplicate
    if start_a.date() != start_b.date():
        return False

    delta_minutes = abs((start_a - start_b).total_seconds()) / 60
    if delta_minutes > options.time_window_minutes:
        return False

    if options.venue_match_required:
        if normalize_slug(event_a.venue_name) != normalize_slug(event_b.venue_name):
            return False

    return title_similarity(slug_a, slug_b) >= options.title_similarity_threshold
