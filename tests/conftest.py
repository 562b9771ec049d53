"""Shared fixtures for the test suite."""
import os
from datetime import datetime, timedelta

import boto3
import pytest
from moto import mock_aws

from processor.event_processor import EventProcessor
from processor.models import CanonicalEvent
from processor.slug import normalize_slug

# A Wednesday
NOW = datetime(2026, 10, 14, 12, 0)
TABLE_NAME = 'test-events-catalog'


class FakeClock:
    """Manually advanced clock returning naive datetimes."""

    def __init__(self, start: datetime = NOW):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


def make_event(
    title='Jazz Night',
    start_date='2026-10-15',
    start_time='20:00',
    venue_name='Blue Room',
    source_provider='eventbrite',
    **fields
) -> CanonicalEvent:
    """Build a CanonicalEvent with a deterministic id."""
    return CanonicalEvent(
        event_id=EventProcessor.generate_event_id(title, start_date, venue_name),
        title=title,
        normalized_slug=normalize_slug(title, venue_name),
        source_provider=source_provider,
        start_date=start_date,
        start_time=start_time,
        venue_name=venue_name,
        **fields
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def aws_credentials():
    """Mocked AWS credentials for moto."""
    env = {
        'AWS_ACCESS_KEY_ID': 'testing',
        'AWS_SECRET_ACCESS_KEY': 'testing',
        'AWS_SECURITY_TOKEN': 'testing',
        'AWS_SESSION_TOKEN': 'testing',
        'AWS_DEFAULT_REGION': 'us-east-1',
    }
    original = {key: os.environ.get(key) for key in env}
    os.environ.update(env)
    yield
    for key, value in original.items():
        if value is None:
            os.environ.pop(key, None)
        else:
            os.environ[key] = value


@pytest.fixture
def dynamodb_table(aws_credentials):
    """Create a mock DynamoDB table for testing."""
    with mock_aws():
        dynamodb = boto3.resource('dynamodb', region_name='us-east-1')

        table = dynamodb.create_table(
            TableName=TABLE_NAME,
            KeySchema=[
                {'AttributeName': 'event_id', 'KeyType': 'HASH'}
            ],
            AttributeDefinitions=[
                {'AttributeName': 'event_id', 'AttributeType': 'S'}
            ],
            BillingMode='PAY_PER_REQUEST'
        )

        yield table
