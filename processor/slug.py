"""Deterministic comparison keys for event titles and venues."""
import re
import unicodedata
from typing import Optional

_DISALLOWED = re.compile(r'[^a-z0-9\s-]')
_SEPARATORS = re.compile(r'[\s-]+')
VENUE_DELIMITER = '--'


def _slugify(text: str) -> str:
    text = unicodedata.normalize('NFKD', text)
    text = ''.join(ch for ch in text if not unicodedata.combining(ch))
    text = _DISALLOWED.sub('', text.lower())
    return _SEPARATORS.sub('-', text).strip('-')


def normalize_slug(title: Optional[str], venue: Optional[str] = None) -> str:
    """
    Normalize an event title, and optionally its venue, into a slug.

    Titles that differ only by case, punctuation or spacing produce the
    same slug. A venue is appended after a double hyphen, which can never
    occur inside a normalized title.

    Args:
        title: Event title
        venue: Optional venue name

    Returns:
        Slug string, empty when the title is empty
    """
    slug = _slugify(title or '')
    if not slug:
        return ''

    if venue:
        venue_slug = _slugify(venue)
        if venue_slug:
            return f"{slug}{VENUE_DELIMITER}{venue_slug}"

    return slug
