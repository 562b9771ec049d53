"""AWS Lambda handler for event catalog search requests."""
import json
import logging
import os
import time
from typing import Any, Dict, List, Optional

from aggregator.orchestrator import EventAggregator
from cache.query_cache import CACHE_TTL, QueryCache
from processor.errors import AggregationError, ValidationError
from processor.models import DedupeOptions, SearchFilters
from scraper.base import SourceProvider
from scraper.html_calendar import HtmlCalendarScraper
from scraper.ticketmaster import TicketmasterProvider
from storage.dynamodb_manager import DynamoDBManager
from storage.event_store import EventStore

VIEWS = ('search', 'stats')

# Survives across warm invocations of the same container
_query_cache: Optional[QueryCache] = None


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def get_query_cache(max_size: int) -> QueryCache:
    """Return the process-wide query cache, starting its sweep thread once."""
    global _query_cache
    if _query_cache is None:
        _query_cache = QueryCache(max_size=max_size)
        _query_cache.start()
    return _query_cache


def build_providers(timeout_seconds: int) -> List[SourceProvider]:
    """
    Create the configured providers.

    TICKETMASTER_API_KEY enables the Ticketmaster provider; CALENDAR_URLS is
    a comma-separated list of HTML calendar listing pages.
    """
    providers: List[SourceProvider] = []

    api_key = os.environ.get('TICKETMASTER_API_KEY')
    if api_key:
        providers.append(TicketmasterProvider(api_key=api_key, timeout=timeout_seconds))

    calendar_urls = os.environ.get('CALENDAR_URLS', '')
    for position, url in enumerate(u.strip() for u in calendar_urls.split(',')):
        if url:
            providers.append(
                HtmlCalendarScraper(name=f"calendar-{position + 1}", url=url, timeout=timeout_seconds)
            )

    return providers


def parse_request(event: Dict[str, Any]) -> Dict[str, Any]:
    """
    Read search parameters from an API Gateway proxy event.

    Raises:
        ValidationError: If a numeric parameter is malformed
    """
    params = event.get('queryStringParameters') or {}

    def _filter(name: str) -> Optional[str]:
        value = (params.get(name) or '').strip()
        return None if value in ('', 'all') else value

    try:
        limit = int(params.get('limit') or 20)
        offset = int(params.get('offset') or 0)
    except ValueError as e:
        raise ValidationError(f"limit and offset must be integers: {e}") from e

    view = (params.get('view') or 'search').strip().lower()
    if view not in VIEWS:
        raise ValidationError(f"view must be one of {', '.join(VIEWS)}, got '{view}'")

    filters = SearchFilters(
        category=_filter('category'),
        time_window=_filter('time'),
        price=_filter('price'),
        limit=limit,
        offset=offset
    )
    return {
        'query': params.get('q') or '',
        'filters': filters,
        'force_refresh': (params.get('refresh') or '').lower() == 'true',
        'view': view,
    }


def _error_response(status_code: int, message: str, error: Exception, start_time: float) -> Dict[str, Any]:
    return {
        'statusCode': status_code,
        'body': json.dumps({
            'success': False,
            'message': message,
            'error': str(error),
            'error_type': type(error).__name__,
            'duration_seconds': round(time.time() - start_time, 2)
        })
    }


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler for event search.

    Args:
        event: API Gateway proxy event
        context: Lambda context object

    Returns:
        Response dict with statusCode and JSON body
    """
    # Read configuration from environment variables
    table_name = os.environ.get('TABLE_NAME', 'events-catalog')
    log_level = os.environ.get('LOG_LEVEL', 'INFO')
    retention_days = int(os.environ.get('RETENTION_DAYS', '7'))
    min_stored_results = int(os.environ.get('MIN_STORED_RESULTS', '10'))
    timeout_seconds = int(os.environ.get('PROVIDER_TIMEOUT_SECONDS', '15'))
    cache_ttl = int(os.environ.get('CACHE_TTL_SECONDS', str(CACHE_TTL['SEARCH'])))
    cache_max_size = int(os.environ.get('CACHE_MAX_SIZE', '1000'))
    preserve_provider = os.environ.get('PRESERVE_PROVIDER', 'ticketmaster') or None

    setup_logging(log_level)
    logger = logging.getLogger(__name__)

    start_time = time.time()
    logger.info("Search request started")

    try:
        request = parse_request(event)
    except ValidationError as e:
        logger.warning(f"Rejected search request: {e}")
        return _error_response(400, 'Invalid search parameters', e, start_time)

    try:
        options = DedupeOptions(preserve_provider=preserve_provider)
        store = EventStore(
            DynamoDBManager(table_name=table_name),
            retention_days=retention_days,
            options=options
        )
        aggregator = EventAggregator(
            store=store,
            providers=build_providers(timeout_seconds),
            cache=get_query_cache(cache_max_size),
            min_stored_results=min_stored_results,
            provider_timeout=timeout_seconds,
            cache_ttl=cache_ttl,
            dedupe_options=options
        )

        if request['view'] == 'stats':
            stats = aggregator.get_stats()
        else:
            result = aggregator.search(
                request['query'],
                request['filters'],
                force_refresh=request['force_refresh']
            )

    except AggregationError as e:
        logger.error(f"Search failed: {e}", exc_info=True)
        return _error_response(503, 'No event source available', e, start_time)

    except Exception as e:
        logger.error(
            f"Search request failed: {str(e)}",
            extra={'error_type': type(e).__name__},
            exc_info=True
        )
        return _error_response(500, 'Search failed', e, start_time)

    duration = time.time() - start_time
    if request['view'] == 'stats':
        logger.info(f"Stats request completed: {stats['total']} active events")
        return {
            'statusCode': 200,
            'body': json.dumps({
                'success': True,
                'stats': stats,
                'duration_seconds': round(duration, 2)
            })
        }

    logger.info(
        f"Search request completed: {result.count} events from {result.source}",
        extra={'duration_seconds': round(duration, 2)}
    )

    body = result.to_dict()
    body['duration_seconds'] = round(duration, 2)
    return {
        'statusCode': 200,
        'body': json.dumps(body)
    }
