"""Merge-into-store, expiry cleanup and read paths for the event catalog."""
import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from processor.deduplication import EventDeduplicator
from processor.errors import StorageError
from processor.filters import apply_filters
from processor.models import (
    CanonicalEvent,
    DedupeOptions,
    MergeResult,
    SearchFilters,
    SearchResult,
)

logger = logging.getLogger(__name__)


class EventStore:
    """
    Persistent event catalog with bounded staleness.

    Writes are idempotent upserts keyed by the deterministic event id, so
    concurrent merges of overlapping batches converge on the same records
    without locking.
    """

    RETENTION_DAYS = 7
    WRITE_ATTEMPTS = 2

    def __init__(
        self,
        backend,
        clock: Callable[[], datetime] = datetime.now,
        retention_days: int = RETENTION_DAYS,
        options: Optional[DedupeOptions] = None
    ):
        """
        Initialize the store.

        Args:
            backend: Storage backend, e.g. DynamoDBManager
            clock: Source of the current time
            retention_days: Days after which past events leave read paths
            options: Dedup options applied when merging
        """
        self.backend = backend
        self.retention_days = retention_days
        self.deduplicator = EventDeduplicator(options)
        self._clock = clock

    def retention_cutoff(self) -> str:
        """Earliest start_date still served, as YYYY-MM-DD."""
        cutoff = self._clock() - timedelta(days=self.retention_days)
        return cutoff.strftime('%Y-%m-%d')

    def merge(self, new_events: List[CanonicalEvent], source_tag: str) -> MergeResult:
        """
        Merge a freshly fetched batch into the store.

        The batch is deduplicated together with all active stored events, so
        a listing already stored from another provider is not added again.
        Fresh survivors are upserted; stored records displaced by a survivor
        with a different id are deleted. Failed writes are retried once and
        then counted, never raised.

        Args:
            new_events: Canonical events from providers
            source_tag: Label recorded on every written event

        Returns:
            MergeResult with aggregate counts

        Raises:
            StorageError: If the stored events cannot be read at all
        """
        cutoff = self.retention_cutoff()
        now = int(self._clock().timestamp())

        fresh = []
        skipped = 0
        for event in new_events:
            if not event.start_date or event.start_date < cutoff:
                skipped += 1
                continue
            fresh.append(event)

        stored = self.backend.get_active_events(cutoff)
        stored_ids = {event.event_id for event in stored}
        logger.info(
            f"Merging {len(fresh)} fresh events ({skipped} skipped) from "
            f"'{source_tag}' with {len(stored)} stored events"
        )

        fresh_count = len(fresh)
        clusters = self.deduplicator.cluster(fresh + stored)

        inserted = updated = removed = failed = attempted = 0
        live_ids = set(stored_ids)
        written_ids = set()

        for cluster in clusters:
            survivor_is_fresh = cluster.survivor_index < fresh_count
            displaced = [
                event for index, event in cluster.members
                if index >= fresh_count and event.event_id != cluster.survivor.event_id
            ]

            if survivor_is_fresh:
                survivor = cluster.survivor
                if survivor.event_id in written_ids:
                    logger.debug(
                        f"Skipping '{survivor.title}': id already written in this batch"
                    )
                    continue

                survivor.ingest_tag = source_tag
                survivor.is_active = True
                survivor.updated_at = now
                attempted += 1
                was_inserted = self._write(survivor)
                if was_inserted is None:
                    failed += 1
                    continue

                written_ids.add(survivor.event_id)
                live_ids.add(survivor.event_id)
                if was_inserted:
                    inserted += 1
                else:
                    updated += 1

            for stale in displaced:
                if stale.event_id in written_ids:
                    continue
                if self._remove(stale.event_id):
                    removed += 1
                    live_ids.discard(stale.event_id)
                else:
                    failed += 1

        success = attempted == 0 or failed < attempted
        logger.info(
            f"Merge complete: {inserted} new, {updated} updated, {removed} "
            f"removed, {failed} failed, {len(live_ids)} total"
        )
        return MergeResult(
            success=success,
            new_count=inserted,
            total_count=len(live_ids),
            updated_count=updated,
            removed_count=removed,
            skipped=skipped,
            failed=failed
        )

    def cleanup(self) -> int:
        """
        Deactivate events that started before the retention cutoff.

        Returns:
            Number of events deactivated

        Raises:
            StorageError: If expired events cannot be listed
        """
        cutoff = self.retention_cutoff()
        now = int(self._clock().timestamp())
        expired = self.backend.get_events_before(cutoff)

        deactivated = 0
        for event in expired:
            try:
                self.backend.deactivate_event(event.event_id, now)
                deactivated += 1
            except StorageError as e:
                logger.warning(f"Could not deactivate expired event: {e}")

        if deactivated:
            logger.info(f"Cleaned up {deactivated} events older than {cutoff}")
        return deactivated

    def search(self, query: str, filters: Optional[SearchFilters] = None) -> SearchResult:
        """
        Search active events by free text and filters.

        Args:
            query: Substring matched against title, description and venue
            filters: Category, time window, price, location and pagination

        Returns:
            SearchResult with the requested page and the total match count
        """
        filters = filters or SearchFilters()
        events = self.backend.get_active_events(self.retention_cutoff())
        return apply_filters(events, query, filters, self._clock())

    def list_events(self, filters: Optional[SearchFilters] = None) -> SearchResult:
        """List active events matching filters, without a text query."""
        return self.search('', filters)

    def get_stats(self) -> dict:
        """Counts of active events by category and price bucket."""
        events = self.backend.get_active_events(self.retention_cutoff())
        by_category = Counter(event.category or 'uncategorized' for event in events)
        free = sum(1 for event in events if event.is_free or event.price_min == 0)
        paid = sum(1 for event in events if (event.price_min or 0) > 0)
        return {
            'total': len(events),
            'by_category': dict(by_category),
            'free_events': free,
            'paid_events': paid,
        }

    def _write(self, event: CanonicalEvent) -> Optional[bool]:
        """Upsert with one retry; None means the write failed."""
        for attempt in range(1, self.WRITE_ATTEMPTS + 1):
            try:
                return self.backend.upsert_event(event)
            except StorageError as e:
                if attempt < self.WRITE_ATTEMPTS:
                    logger.warning(f"Write failed, retrying: {e}")
                else:
                    logger.error(f"Write failed after {attempt} attempts: {e}")
        return None

    def _remove(self, event_id: str) -> bool:
        for attempt in range(1, self.WRITE_ATTEMPTS + 1):
            try:
                self.backend.delete_event(event_id)
                return True
            except StorageError as e:
                if attempt < self.WRITE_ATTEMPTS:
                    logger.warning(f"Delete failed, retrying: {e}")
                else:
                    logger.error(f"Delete failed after {attempt} attempts: {e}")
        return False
