"""Unit tests for EventProcessor."""
import pytest

from conftest import FakeClock, NOW
from processor.event_processor import EventProcessor
from processor.models import RawEvent
from processor.slug import normalize_slug


@pytest.fixture
def processor():
    return EventProcessor(clock=FakeClock(NOW))


class TestEventProcessor:
    """Test cases for EventProcessor class."""

    def test_process_events_valid_event(self, processor):
        """Test processing a complete provider record."""
        raw_events = [
            RawEvent(
                source_provider="ticketmaster",
                title="  Live   Music Night ",
                date="2026-10-15",
                start_time="7:00 PM",
                venue_name="Spanish Springs",
                description="Enjoy live entertainment",
                category="Music",
                price_min="25",
                price_max=40,
                currency="usd",
                external_url="https://example.com/event/123",
                external_id="tm-123"
            )
        ]

        processed = processor.process_events(raw_events)

        assert len(processed) == 1
        event = processed[0]

        assert event.title == "Live Music Night"
        assert event.start_date == "2026-10-15"
        assert event.start_time == "19:00"
        assert event.venue_name == "Spanish Springs"
        assert event.category == "music"
        assert event.price_min == 25.0
        assert event.price_max == 40.0
        assert event.currency == "USD"
        assert event.is_free is False
        assert event.external_id == "tm-123"
        assert event.normalized_slug == normalize_slug("Live Music Night", "Spanish Springs")
        assert event.created_at == int(NOW.timestamp())
        assert event.updated_at == event.created_at

    def test_process_events_drops_missing_title(self, processor):
        """Test that records without a title are dropped."""
        raw_events = [
            RawEvent(source_provider="eventbrite", title="", date="2026-10-15"),
            RawEvent(source_provider="eventbrite", title="   ", date="2026-10-15"),
            RawEvent(source_provider="eventbrite", date="2026-10-15"),
            RawEvent(source_provider="eventbrite", title="Kept", date="2026-10-15"),
        ]

        processed = processor.process_events(raw_events)

        assert [event.title for event in processed] == ["Kept"]

    def test_unparseable_date_keeps_record_without_date(self, processor):
        """Test that a bad date does not drop the record."""
        processed = processor.process_events([
            RawEvent(source_provider="eventbrite", title="Mystery Gig", date="soon")
        ])

        assert len(processed) == 1
        assert processed[0].start_date is None

    def test_unparseable_time_is_cleared(self, processor):
        """Test that an unparseable time is dropped but the record kept."""
        event = processor.process_event(
            RawEvent(source_provider="eventbrite", title="Gig", date="2026-10-15",
                     start_time="doors open late")
        )

        assert event.start_date == "2026-10-15"
        assert event.start_time is None

    def test_iso_datetime_carries_time(self, processor):
        """Test that an ISO timestamp populates both date and time."""
        event = processor.process_event(
            RawEvent(source_provider="ticketmaster", title="Gig",
                     date="2026-10-15T20:30:00Z")
        )

        assert event.start_date == "2026-10-15"
        assert event.start_time == "20:30"

    @pytest.mark.parametrize("raw,expected", [
        ("Tue, Oct 20, 2026", "2026-10-20"),
        ("Thu, Oct 22, 2026", "2026-10-22"),
        ("Sat, Oct 17, 2026", "2026-10-17"),
    ])
    def test_weekday_prefixed_dates_are_not_timestamps(self, processor, raw, expected):
        """Test that weekday names containing a T still parse as dates."""
        event = processor.process_event(
            RawEvent(source_provider="town-calendar", title="Gig", date=raw)
        )

        assert event.start_date == expected
        assert event.start_time is None

    def test_explicit_time_wins_over_embedded_time(self, processor):
        event = processor.process_event(
            RawEvent(source_provider="ticketmaster", title="Gig",
                     date="2026-10-15T20:30:00", start_time="21:00")
        )

        assert event.start_time == "21:00"

    def test_process_events_truncates_long_fields(self, processor):
        """Test that long title and description are truncated."""
        processed = processor.process_events([
            RawEvent(source_provider="eventbrite", title="A" * 600,
                     date="2026-10-15", description="B" * 3000)
        ])

        assert len(processed[0].title) == EventProcessor.MAX_TITLE_LENGTH
        assert len(processed[0].description) == EventProcessor.MAX_DESCRIPTION_LENGTH

    def test_zero_prices_mark_event_free(self, processor):
        event = processor.process_event(
            RawEvent(source_provider="eventbrite", title="Open Day",
                     price_min=0, price_max=0)
        )
        assert event.is_free is True

    def test_explicit_free_flag_wins(self, processor):
        event = processor.process_event(
            RawEvent(source_provider="eventbrite", title="Gala", is_free=False,
                     price_min=0)
        )
        assert event.is_free is False

    def test_missing_prices_not_free(self, processor):
        event = processor.process_event(RawEvent(source_provider="eventbrite", title="Gig"))

        assert event.is_free is False
        assert event.price_min is None

    def test_invalid_numbers_are_dropped(self, processor):
        """Test that bad prices and out of range coordinates become None."""
        event = processor.process_event(
            RawEvent(source_provider="eventbrite", title="Gig", price_min="call us",
                     price_max=-5, latitude="91.5", longitude="-81.2")
        )

        assert event.price_min is None
        assert event.price_max is None
        assert event.latitude is None
        assert event.longitude == -81.2

    def test_same_listing_from_two_providers_shares_id(self, processor):
        """Test that identically-normalizing listings collapse to one id."""
        first = processor.process_event(
            RawEvent(source_provider="eventbrite", title="DJ Set!", date="10/15/2026",
                     venue_name="The Club")
        )
        second = processor.process_event(
            RawEvent(source_provider="ticketmaster", title="dj set", date="2026-10-15",
                     venue_name="the club", start_time="22:00")
        )

        assert first.event_id == second.event_id

    def test_process_events_multiple_valid_and_invalid(self, processor):
        """Test processing mix of valid and invalid events."""
        raw_events = [
            RawEvent(source_provider="eventbrite", title="Valid Event 1", date="2026-10-15"),
            RawEvent(source_provider="eventbrite", title=None, date="2026-10-16"),
            RawEvent(source_provider="eventbrite", title="Valid Event 2", date="2026-10-17"),
        ]

        processed = processor.process_events(raw_events)

        assert len(processed) == 2
        assert processed[0].title == "Valid Event 1"
        assert processed[1].title == "Valid Event 2"


class TestRawEventFromDict:
    """Test cases for building raw records from provider payloads."""

    def test_aliases_and_unknown_keys(self):
        raw = RawEvent.from_dict(
            {"name": "Gig", "venue": "Club", "url": "https://x", "start": "2026-10-15",
             "ticket_tiers": [1, 2]},
            source_provider="eventbrite"
        )

        assert raw.title == "Gig"
        assert raw.venue_name == "Club"
        assert raw.external_url == "https://x"
        assert raw.date == "2026-10-15"
        assert raw.source_provider == "eventbrite"


class TestEventIds:
    """Test cases for deterministic ids."""

    def test_generate_event_id_consistency(self):
        """Test that event_id generation is consistent for same inputs."""
        event_id_1 = EventProcessor.generate_event_id("Test Event", "2026-10-15", "Hall")
        event_id_2 = EventProcessor.generate_event_id("Test Event", "2026-10-15", "Hall")

        assert event_id_1 == event_id_2
        assert len(event_id_1) == 64  # SHA256 produces 64 character hex string

    def test_generate_event_id_uniqueness(self):
        """Test that different events produce different event_ids."""
        ids = {
            EventProcessor.generate_event_id("Event A", "2026-10-15", "Hall"),
            EventProcessor.generate_event_id("Event B", "2026-10-15", "Hall"),
            EventProcessor.generate_event_id("Event A", "2026-10-16", "Hall"),
            EventProcessor.generate_event_id("Event A", "2026-10-15", "Park"),
            EventProcessor.generate_event_id("Event A", None, None),
        }
        assert len(ids) == 5

    def test_missing_date_and_venue_are_stable(self):
        assert (
            EventProcessor.generate_event_id("Event A", None, None)
            == EventProcessor.generate_event_id("event a!", "", "")
        )


class TestNormalization:
    """Test cases for the date, time and category helpers."""

    @pytest.mark.parametrize("raw,expected", [
        ("2026-01-15", "2026-01-15"),
        ("01/15/2026", "2026-01-15"),
        ("January 15, 2026", "2026-01-15"),
        ("Thu, Jan 15, 2026", "2026-01-15"),
        ("invalid-date", None),
    ])
    def test_normalize_date(self, processor, raw, expected):
        assert processor._normalize_date(raw) == expected

    @pytest.mark.parametrize("raw,expected", [
        ("19:00", "19:00"),
        ("7:00 PM", "19:00"),
        ("9:30 am", "09:30"),
        ("7:00PM", "19:00"),
        ("8 PM", "20:00"),
        ("19:00:00", "19:00"),
        ("invalid-time", None),
    ])
    def test_normalize_time(self, processor, raw, expected):
        assert processor._normalize_time(raw) == expected

    @pytest.mark.parametrize("raw,expected", [
        ("Arts & Theatre", "arts"),
        ("NIGHTLIFE", "social"),
        ("Underwater Basket Weaving", "other"),
        ("", None),
        (None, None),
    ])
    def test_normalize_category(self, raw, expected):
        assert EventProcessor.normalize_category(raw) == expected
