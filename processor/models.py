"""Data models for event aggregation."""
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from processor.errors import ValidationError

TIME_WINDOWS = (
    'past', 'now', 'next-hour', 'next-3-hours', 'tonight', 'weekend', 'future'
)
PRICE_FILTERS = ('free', 'paid')
MAX_PAGE_SIZE = 100

SOURCE_STORED = 'stored'
SOURCE_SCRAPED_ONLY = 'scraped_only'
SOURCE_MERGED = 'merged'


@dataclass
class RawEvent:
    """Loosely-typed event as handed over by a source provider."""
    source_provider: str
    title: Optional[str] = None
    description: Optional[str] = None
    date: Optional[str] = None
    start_time: Optional[str] = None
    venue_name: Optional[str] = None
    address: Optional[str] = None
    latitude: Any = None
    longitude: Any = None
    price_min: Any = None
    price_max: Any = None
    currency: Optional[str] = None
    is_free: Optional[bool] = None
    category: Optional[str] = None
    image_url: Optional[str] = None
    external_url: Optional[str] = None
    external_id: Optional[str] = None

    _ALIASES = {
        'name': 'title',
        'venue': 'venue_name',
        'url': 'external_url',
        'image': 'image_url',
        'start': 'date',
        'start_date': 'date',
        'time': 'start_time',
        'id': 'external_id',
    }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any], source_provider: str) -> 'RawEvent':
        """Build a RawEvent from an arbitrary dict, ignoring unknown keys."""
        known = set(cls.__dataclass_fields__) - {'source_provider'}
        values = {}
        for key, value in payload.items():
            name = cls._ALIASES.get(key, key)
            if name in known and values.get(name) is None:
                values[name] = value
        return cls(source_provider=source_provider, **values)


@dataclass
class CanonicalEvent:
    """Validated and normalized event."""
    event_id: str
    title: str
    normalized_slug: str
    source_provider: str
    description: Optional[str] = None
    start_date: Optional[str] = None
    start_time: Optional[str] = None
    venue_name: Optional[str] = None
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    price_min: Optional[float] = None
    price_max: Optional[float] = None
    currency: str = 'USD'
    is_free: bool = False
    category: Optional[str] = None
    image_url: Optional[str] = None
    external_url: Optional[str] = None
    external_id: Optional[str] = None
    ingest_tag: Optional[str] = None
    is_active: bool = True
    created_at: int = 0
    updated_at: int = 0

    @property
    def completeness_score(self) -> int:
        """Count of populated optional descriptive fields."""
        populated = [
            self.description,
            self.start_time,
            self.venue_name,
            self.address,
            self.latitude is not None and self.longitude is not None,
            self.price_min is not None or self.price_max is not None,
            self.image_url,
            self.external_url,
            self.category and self.category != 'other',
        ]
        return sum(1 for value in populated if value)

    def to_dict(self) -> dict:
        data = asdict(self)
        data['completeness_score'] = self.completeness_score
        return data


@dataclass
class DedupeOptions:
    """Options for pairwise similarity and survivor selection."""
    time_window_minutes: int = 90
    title_similarity_threshold: float = 0.6
    venue_match_required: bool = False
    preserve_provider: Optional[str] = None

    def __post_init__(self):
        if self.time_window_minutes < 0:
            raise ValidationError(
                f"time_window_minutes must be >= 0, got {self.time_window_minutes}"
            )
        if not 0.0 <= self.title_similarity_threshold <= 1.0:
            raise ValidationError(
                "title_similarity_threshold must be between 0 and 1, got "
                f"{self.title_similarity_threshold}"
            )


@dataclass
class SearchFilters:
    """Filters accepted by store search and list operations."""
    category: Optional[str] = None
    time_window: Optional[str] = None
    price: Optional[str] = None
    offset: int = 0
    limit: int = 20
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    radius_km: Optional[float] = None

    def __post_init__(self):
        if self.time_window is not None and self.time_window not in TIME_WINDOWS:
            raise ValidationError(
                f"Unknown time window '{self.time_window}', expected one of "
                f"{', '.join(TIME_WINDOWS)}"
            )
        if self.price is not None and self.price not in PRICE_FILTERS:
            raise ValidationError(
                f"Unknown price filter '{self.price}', expected 'free' or 'paid'"
            )
        if self.offset < 0:
            raise ValidationError(f"offset must be >= 0, got {self.offset}")
        if not 1 <= self.limit <= MAX_PAGE_SIZE:
            raise ValidationError(
                f"limit must be between 1 and {MAX_PAGE_SIZE}, got {self.limit}"
            )
        location = (self.latitude, self.longitude, self.radius_km)
        if any(value is not None for value in location):
            if any(value is None for value in location):
                raise ValidationError(
                    "latitude, longitude and radius_km must be given together"
                )
            if self.radius_km <= 0:
                raise ValidationError(f"radius_km must be > 0, got {self.radius_km}")
            if not -90 <= self.latitude <= 90 or not -180 <= self.longitude <= 180:
                raise ValidationError("latitude/longitude out of range")

    @property
    def has_location(self) -> bool:
        return self.radius_km is not None


@dataclass
class MergeResult:
    """Result of merging a batch into the store."""
    success: bool
    new_count: int
    total_count: int
    updated_count: int = 0
    removed_count: int = 0
    skipped: int = 0
    failed: int = 0


@dataclass
class SearchResult:
    """A page of matching events plus the unpaginated match count."""
    events: List[CanonicalEvent]
    total_count: int


@dataclass
class ProviderResult:
    """Outcome of one provider fetch during an aggregation pass."""
    provider: str
    fetched: int = 0
    accepted: int = 0
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass
class AggregationResult:
    """Response of a single search request."""
    query: str
    events: List[CanonicalEvent]
    total_count: int
    has_more: bool
    source: str
    new_events_added: Optional[int] = None
    total_stored_events: Optional[int] = None
    providers: List[ProviderResult] = field(default_factory=list)
    cached: bool = False

    @property
    def count(self) -> int:
        return len(self.events)

    def to_dict(self) -> dict:
        return {
            'success': True,
            'query': self.query,
            'events': [event.to_dict() for event in self.events],
            'count': self.count,
            'totalCount': self.total_count,
            'hasMore': self.has_more,
            'source': self.source,
            'cached': self.cached,
            'newEventsAdded': self.new_events_added,
            'totalStoredEvents': self.total_stored_events,
            'providers': [asdict(result) for result in self.providers],
        }
