"""
Aggregation orchestrator.

Serves one search request: cached result, stored catalog, or a concurrent
fan-out to providers merged into the store.
"""
import logging
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import replace
from datetime import datetime
from typing import Callable, List, Optional, Sequence, Tuple

from cache.query_cache import CACHE_KEYS, CACHE_TTL, SEARCH_KEY_PATTERN, QueryCache
from processor.deduplication import dedupe
from processor.errors import AggregationError, StorageError
from processor.event_processor import EventProcessor
from processor.filters import apply_filters
from processor.models import (
    SOURCE_MERGED,
    SOURCE_SCRAPED_ONLY,
    SOURCE_STORED,
    AggregationResult,
    CanonicalEvent,
    DedupeOptions,
    ProviderResult,
    SearchFilters,
    SearchResult,
)
from scraper.base import SourceProvider
from storage.event_store import EventStore

logger = logging.getLogger(__name__)


class EventAggregator:
    """Composes store, providers and cache for search requests."""

    MIN_STORED_RESULTS = 10
    FETCH_HEADROOM = 20

    def __init__(
        self,
        store: EventStore,
        providers: Sequence[SourceProvider],
        processor: Optional[EventProcessor] = None,
        cache: Optional[QueryCache] = None,
        clock: Callable[[], datetime] = datetime.now,
        min_stored_results: int = MIN_STORED_RESULTS,
        provider_timeout: float = 15.0,
        cache_ttl: float = CACHE_TTL['SEARCH'],
        dedupe_options: Optional[DedupeOptions] = None,
        source_tag: str = 'live_scrape'
    ):
        """
        Initialize the aggregator.

        Args:
            store: Persistent event store
            providers: Upstream sources to fan out to
            processor: Converter from provider records to canonical events
            cache: Optional query cache for search results
            clock: Source of the current time
            min_stored_results: Stored matches needed to skip providers
            provider_timeout: Seconds to wait for all providers
            cache_ttl: Seconds a cached search result stays valid
            dedupe_options: Options for in-memory dedup of fetched events
            source_tag: Tag recorded on events merged by this aggregator
        """
        self.store = store
        self.providers = list(providers)
        self.processor = processor or EventProcessor(clock=clock)
        self.cache = cache
        self.min_stored_results = min_stored_results
        self.provider_timeout = provider_timeout
        self.cache_ttl = cache_ttl
        self.dedupe_options = dedupe_options or DedupeOptions()
        self.source_tag = source_tag
        self._clock = clock

    def search(
        self,
        query: str = '',
        filters: Optional[SearchFilters] = None,
        force_refresh: bool = False
    ) -> AggregationResult:
        """
        Serve a search request.

        Args:
            query: Free-text query
            filters: Validated search filters
            force_refresh: Skip cache and stored fast path, always fetch

        Returns:
            AggregationResult with provenance and counts

        Raises:
            AggregationError: If the store and every provider are unavailable
        """
        query = (query or '').strip()
        filters = filters or SearchFilters()
        cache_key = CACHE_KEYS['SEARCH'](query, filters)

        if self.cache is not None and not force_refresh:
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.info(f"Serving '{query}' from cache")
                return replace(cached, cached=True)

        store_available = True
        stored: Optional[SearchResult] = None
        try:
            self.store.cleanup()
            if not force_refresh:
                stored = self.store.search(query, filters)
                if stored.total_count >= self.min_stored_results:
                    logger.info(f"Using {stored.total_count} stored events for '{query}'")
                    return self._remember(
                        cache_key, self._build(query, filters, stored, SOURCE_STORED)
                    )
        except StorageError as e:
            logger.error(f"Event store unavailable: {e}", exc_info=True)
            store_available = False

        logger.info(f"Fetching fresh events for '{query}'")
        events, provider_results = self.fetch_from_providers(
            query, filters.offset + filters.limit + self.FETCH_HEADROOM
        )
        all_failed = all(not result.succeeded for result in provider_results)

        if not events:
            if not store_available and all_failed:
                raise AggregationError(
                    "Event store and all providers are unavailable"
                )
            if store_available:
                try:
                    stored = stored or self.store.search(query, filters)
                    return self._remember(
                        cache_key,
                        self._build(query, filters, stored, SOURCE_STORED, provider_results)
                    )
                except StorageError as e:
                    logger.error(f"Event store unavailable: {e}", exc_info=True)
            return self._scraped_only(query, filters, [], provider_results)

        if not store_available:
            return self._scraped_only(query, filters, events, provider_results)

        try:
            merge_result = self.store.merge(events, self.source_tag)
            if not merge_result.success:
                logger.warning("Every store write failed, serving fetched events only")
                return self._scraped_only(query, filters, events, provider_results)

            if self.cache is not None:
                self.cache.delete_pattern(SEARCH_KEY_PATTERN)
                self.cache.delete(CACHE_KEYS['STATS']())
            merged = self.store.search(query, filters)
        except StorageError as e:
            logger.error(f"Failed to merge fetched events: {e}", exc_info=True)
            return self._scraped_only(query, filters, events, provider_results)

        logger.info(
            f"Returning {len(merged.events)} events ({merge_result.new_count} new, "
            f"{merge_result.total_count} total stored)"
        )
        result = self._build(query, filters, merged, SOURCE_MERGED, provider_results)
        result.new_events_added = merge_result.new_count
        result.total_stored_events = merge_result.total_count
        return self._remember(cache_key, result)

    def get_stats(self) -> dict:
        """
        Catalog counts, cached for CACHE_TTL['STATS'] seconds.

        Raises:
            StorageError: If the store cannot be read
        """
        self.store.cleanup()
        if self.cache is None:
            return self.store.get_stats()
        return self.cache.with_cache(
            CACHE_KEYS['STATS'](), CACHE_TTL['STATS'], self.store.get_stats
        )

    def fetch_from_providers(self, query: str, limit: int) -> Tuple[List[CanonicalEvent], List[ProviderResult]]:
        """
        Fetch from every provider concurrently.

        A provider that raises or does not finish within provider_timeout
        is reported as failed; the others still contribute.

        Returns:
            Tuple of (canonical events, per-provider results)
        """
        if not self.providers:
            return [], []

        executor = ThreadPoolExecutor(max_workers=len(self.providers))
        try:
            futures = [
                (provider, executor.submit(provider.fetch_events, query, limit))
                for provider in self.providers
            ]
            wait([future for _, future in futures], timeout=self.provider_timeout)

            events: List[CanonicalEvent] = []
            results: List[ProviderResult] = []
            for provider, future in futures:
                result = ProviderResult(provider=provider.name)
                if not future.done():
                    future.cancel()
                    result.error = f"timed out after {self.provider_timeout}s"
                    logger.warning(f"[{provider.name}] Provider {result.error}")
                else:
                    try:
                        raw_events = future.result()
                        result.fetched = len(raw_events)
                        accepted = self.processor.process_events(raw_events)
                        result.accepted = len(accepted)
                        events.extend(accepted)
                    except Exception as e:
                        result.error = f"{type(e).__name__}: {e}"
                        logger.error(f"[{provider.name}] Provider failed: {e}")
                results.append(result)
        finally:
            executor.shutdown(wait=False)

        succeeded = sum(1 for result in results if result.succeeded)
        logger.info(
            f"Fetched {len(events)} events from {succeeded}/{len(results)} providers"
        )
        return events, results

    def _scraped_only(
        self,
        query: str,
        filters: SearchFilters,
        events: List[CanonicalEvent],
        provider_results: List[ProviderResult]
    ) -> AggregationResult:
        unique = dedupe(events, self.dedupe_options) or []
        page = apply_filters(unique, query, filters, self._clock())
        return self._build(query, filters, page, SOURCE_SCRAPED_ONLY, provider_results)

    def _build(
        self,
        query: str,
        filters: SearchFilters,
        page: SearchResult,
        source: str,
        provider_results: Optional[List[ProviderResult]] = None
    ) -> AggregationResult:
        return AggregationResult(
            query=query,
            events=page.events,
            total_count=page.total_count,
            has_more=page.total_count > filters.offset + filters.limit,
            source=source,
            providers=provider_results or []
        )

    def _remember(self, key: str, result: AggregationResult) -> AggregationResult:
        if self.cache is not None:
            self.cache.set(key, result, self.cache_ttl)
        return result
