"""DynamoDB manager for canonical event storage operations."""
import logging
from decimal import Decimal
from typing import Dict, List, Optional

import boto3
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import ClientError

from processor.errors import StorageError
from processor.models import CanonicalEvent

logger = logging.getLogger(__name__)

# Attributes written on every upsert; event_id is the key and created_at is
# only written when the item is first inserted.
MUTABLE_FIELDS = (
    'title', 'normalized_slug', 'source_provider', 'description',
    'start_date', 'start_time', 'venue_name', 'address', 'latitude',
    'longitude', 'price_min', 'price_max', 'currency', 'is_free', 'category',
    'image_url', 'external_url', 'external_id', 'ingest_tag', 'is_active',
    'updated_at',
)
DECIMAL_FIELDS = ('latitude', 'longitude', 'price_min', 'price_max')


class DynamoDBManager:
    """Manager for DynamoDB operations on the events table."""

    def __init__(self, table_name: str, region_name: Optional[str] = None):
        """
        Initialize DynamoDB client and table reference.

        Args:
            table_name: Name of the DynamoDB table
            region_name: AWS region, defaults to the environment's region
        """
        self.table_name = table_name
        self.dynamodb = boto3.resource('dynamodb', region_name=region_name)
        self.table = self.dynamodb.Table(table_name)
        logger.info(f"Initialized DynamoDBManager for table: {table_name}")

    def get_event(self, event_id: str) -> Optional[CanonicalEvent]:
        """Fetch a single event by id, or None if it does not exist."""
        try:
            response = self.table.get_item(Key={'event_id': event_id})
        except ClientError as e:
            raise StorageError(f"Error reading event {event_id}: {e}", event_id) from e

        item = response.get('Item')
        return self._item_to_event(item) if item else None

    def get_active_events(self, since_date: Optional[str] = None) -> List[CanonicalEvent]:
        """
        Retrieve active events starting on or after a date.

        Args:
            since_date: ISO 8601 lower bound for start_date, inclusive

        Returns:
            List of CanonicalEvent objects
        """
        condition = Attr('is_active').eq(True)
        if since_date:
            condition = condition & Attr('start_date').gte(since_date)
        return self._scan(condition)

    def get_events_before(self, cutoff_date: str) -> List[CanonicalEvent]:
        """Retrieve active events whose start_date precedes cutoff_date."""
        condition = Attr('is_active').eq(True) & Attr('start_date').lt(cutoff_date)
        return self._scan(condition)

    def upsert_event(self, event: CanonicalEvent) -> bool:
        """
        Insert an event or update the mutable fields of the stored copy.

        The write is a single atomic update keyed by event_id; created_at is
        kept from the first insert.

        Args:
            event: Event to write

        Returns:
            True if the event was inserted, False if it already existed

        Raises:
            StorageError: If DynamoDB rejects the write
        """
        item = self._event_to_item(event)
        names = {'#created': 'created_at'}
        values = {':created': event.created_at}
        set_parts = ['#created = if_not_exists(#created, :created)']
        remove_parts = []

        for position, name in enumerate(MUTABLE_FIELDS):
            placeholder = f"#f{position}"
            names[placeholder] = name
            if item.get(name) is None:
                remove_parts.append(placeholder)
            else:
                set_parts.append(f"{placeholder} = :v{position}")
                values[f":v{position}"] = item[name]

        expression = 'SET ' + ', '.join(set_parts)
        if remove_parts:
            expression += ' REMOVE ' + ', '.join(remove_parts)

        try:
            response = self.table.update_item(
                Key={'event_id': event.event_id},
                UpdateExpression=expression,
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values,
                ReturnValues='ALL_OLD'
            )
        except ClientError as e:
            raise StorageError(
                f"Error writing event {event.event_id}: {e}", event.event_id
            ) from e

        return not response.get('Attributes')

    def deactivate_event(self, event_id: str, updated_at: int) -> None:
        """Mark a stored event inactive."""
        try:
            self.table.update_item(
                Key={'event_id': event_id},
                UpdateExpression='SET is_active = :inactive, updated_at = :updated',
                ExpressionAttributeValues={':inactive': False, ':updated': updated_at}
            )
        except ClientError as e:
            raise StorageError(f"Error deactivating event {event_id}: {e}", event_id) from e

    def delete_event(self, event_id: str) -> None:
        """Delete a stored event."""
        try:
            self.table.delete_item(Key={'event_id': event_id})
        except ClientError as e:
            raise StorageError(f"Error deleting event {event_id}: {e}", event_id) from e

    def _scan(self, condition) -> List[CanonicalEvent]:
        """
        Scan the table with a filter, following pagination.

        Raises:
            StorageError: If the scan fails
        """
        try:
            response = self.table.scan(FilterExpression=condition)
            items = response.get('Items', [])

            while 'LastEvaluatedKey' in response:
                response = self.table.scan(
                    FilterExpression=condition,
                    ExclusiveStartKey=response['LastEvaluatedKey']
                )
                items.extend(response.get('Items', []))
        except ClientError as e:
            logger.error(f"Error scanning DynamoDB table: {e}")
            raise StorageError(f"Error scanning table {self.table_name}: {e}") from e

        events = []
        for item in items:
            event = self._item_to_event(item)
            if event:
                events.append(event)
        return events

    def _item_to_event(self, item: dict) -> Optional[CanonicalEvent]:
        """
        Convert DynamoDB item to CanonicalEvent object.

        Args:
            item: DynamoDB item dictionary

        Returns:
            CanonicalEvent object or None if conversion fails
        """
        try:
            values = {
                name: item.get(name) for name in MUTABLE_FIELDS
                if item.get(name) is not None
            }
            for name in DECIMAL_FIELDS:
                if name in values:
                    values[name] = float(values[name])
            values['updated_at'] = int(item.get('updated_at', 0))
            values['created_at'] = int(item.get('created_at', 0))
            return CanonicalEvent(event_id=item['event_id'], **values)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Failed to convert item to CanonicalEvent: {e}")
            return None

    def _event_to_item(self, event: CanonicalEvent) -> Dict[str, object]:
        """
        Convert CanonicalEvent object to DynamoDB attribute values.

        Floats are stored as Decimal, which is what DynamoDB accepts.
        """
        item = {name: getattr(event, name) for name in MUTABLE_FIELDS}
        for name in DECIMAL_FIELDS:
            if item[name] is not None:
                item[name] = Decimal(str(item[name]))
        return item
