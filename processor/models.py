"""Data models for events and participation."""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple


DEFAULT_IMAGE_URL = (
    "https://images.unsplash.com/photo-1521737604893-d14cc237f11d"
    "?auto=format&fit=crop&w=1200&q=80"
)


class Category(str, Enum):
    """Event category; unknown values normalize to GENERAL."""
    MUSIC = 'Music'
    TECH = 'Tech'
    ART = 'Art'
    WORKSHOP = 'Workshop'
    GENERAL = 'General'

    @classmethod
    def normalize(cls, value) -> 'Category':
        if isinstance(value, cls):
            return value
        for member in cls:
            if member.value == value:
                return member
        return cls.GENERAL


class LocationMode(str, Enum):
    ONSITE = 'Onsite'
    ONLINE = 'Online'

    @classmethod
    def normalize(cls, value) -> 'LocationMode':
        if value == cls.ONSITE or value == cls.ONSITE.value:
            return cls.ONSITE
        return cls.ONLINE

    @property
    def label(self) -> str:
        return 'On site' if self is LocationMode.ONSITE else 'Online event'


class EventSource(str, Enum):
    """Where an event came from: seed data or the remote store."""
    STATIC = 'static'
    USER = 'user'


@dataclass(frozen=True)
class Participant:
    """Participant of an event, keyed by case-insensitive email."""
    email: str
    uid: Optional[str] = None

    @property
    def key(self) -> str:
        return self.email.strip().lower()


@dataclass
class Event:
    """Normalized event as seen by the rest of the application."""
    event_id: str
    title: str
    description: str
    headline: str
    category: Category
    date: str
    time: str
    location: str
    mode: LocationMode
    image_url: str
    start_date_time: Optional[str] = None
    end_date_time: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    source: EventSource = EventSource.USER
    participants: Tuple[Participant, ...] = ()
    is_featured: bool = False
    is_popular: bool = False

    @property
    def participant_emails(self) -> List[str]:
        return [participant.email for participant in self.participants]


@dataclass(frozen=True)
class User:
    """Signed-in identity."""
    uid: str
    email: Optional[str]
    email_verified: bool = False


@dataclass
class EventInput:
    """Fields supplied by the organizer when publishing an event."""
    title: str
    description: str
    start_date_time: Optional[datetime]
    end_date_time: Optional[datetime]
    location_type: LocationMode
    image_path: str
    category: Category = Category.GENERAL


@dataclass
class EventUpdate:
    """Fields supplied by the organizer when editing an event."""
    event_id: str
    title: str
    description: str
    start_date_time: Optional[datetime]
    end_date_time: Optional[datetime]
    location_type: LocationMode
    category: Category = Category.GENERAL
    image_path: Optional[str] = None
    image_updated: bool = False


@dataclass
class DeletedEvent:
    """Snapshot of a deleted event, handed to the notification relay."""
    event_id: str
    title: str
    date: str
    location: str
    participant_emails: List[str] = field(default_factory=list)
