"""Shared fixtures for the event lifecycle tests."""
from datetime import datetime, timedelta, timezone
from typing import Optional

import boto3
import pytest
from moto import mock_aws

from clients.identity import IdentityProvider
from processor.models import (
    Category,
    Event,
    EventSource,
    LocationMode,
    User,
)
from storage.event_store import EventStore
from storage.local_storage import LocalStorage

TABLE_NAME = 'test-events'
NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


class StubIdentity(IdentityProvider):
    """In-process identity used by tests."""

    def __init__(self, user: Optional[User] = None, reloaded: Optional[User] = None):
        super().__init__()
        self._user = user
        self.reloaded = reloaded
        self.reload_calls = 0

    @property
    def current_user(self) -> Optional[User]:
        return self._user

    def reload(self) -> Optional[User]:
        self.reload_calls += 1
        if self.reloaded is not None:
            self._user = self.reloaded
        return self._user

    def switch(self, user: Optional[User]) -> None:
        self._user = user
        self._notify(user)


@pytest.fixture
def aws_credentials(monkeypatch):
    """Fake credentials so boto3 never reaches real AWS."""
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
    monkeypatch.setenv('AWS_SECURITY_TOKEN', 'testing')
    monkeypatch.setenv('AWS_SESSION_TOKEN', 'testing')
    monkeypatch.setenv('AWS_DEFAULT_REGION', 'us-east-1')


@pytest.fixture
def dynamodb_table(aws_credentials):
    """Create a mock DynamoDB events table."""
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


@pytest.fixture
def event_store(dynamodb_table):
    return EventStore(TABLE_NAME, region_name='us-east-1')


@pytest.fixture
def local_storage(tmp_path):
    return LocalStorage(tmp_path / 'local')


@pytest.fixture
def organizer():
    return User(uid='organizer-uid', email='organizer@example.com', email_verified=True)


@pytest.fixture
def attendee():
    return User(uid='attendee-uid', email='Attendee@Example.com', email_verified=True)


def make_event(event_id: str, **overrides) -> Event:
    """Build an Event with sensible defaults for tests."""
    values = dict(
        event_id=event_id,
        title=f'Event {event_id}',
        description='A description',
        headline='A description',
        category=Category.GENERAL,
        date='',
        time='',
        location='On site',
        mode=LocationMode.ONSITE,
        image_url='https://img.example.com/cover.png',
        start_date_time=(NOW + timedelta(days=1)).isoformat(),
        source=EventSource.USER,
    )
    values.update(overrides)
    return Event(**values)
