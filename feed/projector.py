"""Pure projections of the event list into the home feed views.

Every function takes the current events and a ``now`` instant and returns
a new list; nothing here mutates its input or performs I/O.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Sequence, Set

from processor.models import Event

# Timestamp resolution falls back to these date label formats
DATE_FORMATS = [
    '%Y-%m-%d',      # ISO 8601
    '%m/%d/%Y',      # US format
    '%m-%d-%Y',      # US format with dashes
    '%B %d, %Y',     # Full month name
    '%b %d, %Y',     # Abbreviated month name
    '%A, %B %d, %Y', # Weekday and full month name
    '%a, %b %d, %Y', # Abbreviated weekday and month
    '%Y/%m/%d',      # Alternative ISO format
]

# Labels written without a year, completed with the reference year
YEARLESS_DATE_FORMATS = [
    '%A, %B %d',
    '%a, %b %d',
    '%B %d',
    '%b %d',
]


class FeaturedStrategy(str, Enum):
    FIRST_UPCOMING = 'first_upcoming'
    FLAGGED = 'flagged'


@dataclass(frozen=True)
class FeaturedSelection:
    """How the featured section is chosen.

    FIRST_UPCOMING takes the first ``limit`` upcoming events in arrival
    order (carousel). FLAGGED takes upcoming events marked as featured
    (spotlight card, usually with a limit of 1).
    """
    strategy: FeaturedStrategy = FeaturedStrategy.FIRST_UPCOMING
    limit: int = 3


CAROUSEL = FeaturedSelection(FeaturedStrategy.FIRST_UPCOMING, 3)
SPOTLIGHT = FeaturedSelection(FeaturedStrategy.FLAGGED, 1)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _parse_iso(value: str) -> Optional[datetime]:
    try:
        return _as_utc(datetime.fromisoformat(value.strip().replace('Z', '+00:00')))
    except (ValueError, AttributeError):
        return None


def _parse_date_label(label: str, reference: Optional[datetime]) -> Optional[datetime]:
    label = label.strip()
    if not label:
        return None

    for fmt in DATE_FORMATS:
        try:
            return _as_utc(datetime.strptime(label, fmt))
        except ValueError:
            continue

    if reference is None:
        return None

    for fmt in YEARLESS_DATE_FORMATS:
        try:
            return _as_utc(datetime.strptime(f"{label} {reference.year}", f"{fmt} %Y"))
        except ValueError:
            continue

    return None


def resolve_timestamp(event: Event, reference: Optional[datetime] = None) -> Optional[datetime]:
    """
    Resolve the instant an event starts.

    Prefers ``start_date_time``, then the human-readable date label.

    Args:
        event: Event to inspect
        reference: Instant whose year completes yearless date labels

    Returns:
        Aware UTC datetime, or None when the start is unknown
    """
    if event.start_date_time:
        parsed = _parse_iso(event.start_date_time)
        if parsed is not None:
            return parsed

    if event.date:
        return _parse_date_label(event.date, reference)

    return None


def is_upcoming(event: Event, now: datetime) -> bool:
    """Events with an unknown start always count as upcoming."""
    timestamp = resolve_timestamp(event, now)
    return timestamp is None or timestamp >= _as_utc(now)


def _upcoming_only(events: Sequence[Event], now: datetime) -> List[Event]:
    return [event for event in events if is_upcoming(event, now)]


def upcoming(events: Sequence[Event], now: datetime) -> List[Event]:
    """
    Upcoming events ordered for the home feed.

    Future events come first, soonest first, keeping upstream order on
    ties. Past events follow, most recently started first. Events without
    a known start come last, ordered by title.

    Args:
        events: Current events
        now: Reference instant

    Returns:
        Ordered list of upcoming events
    """
    now = _as_utc(now)

    def sort_key(event: Event):
        timestamp = resolve_timestamp(event, now)
        if timestamp is None:
            return (2, 0.0, event.title)
        delta = (timestamp - now).total_seconds()
        if delta >= 0:
            return (0, delta, '')
        return (1, -delta, '')

    return sorted(_upcoming_only(events, now), key=sort_key)


def featured(
    events: Sequence[Event],
    now: datetime,
    selection: FeaturedSelection = CAROUSEL
) -> List[Event]:
    """
    Events shown in the featured section.

    Args:
        events: Current events in arrival order
        now: Reference instant
        selection: Strategy and size of the section

    Returns:
        Featured events
    """
    candidates = _upcoming_only(events, now)
    if selection.strategy is FeaturedStrategy.FLAGGED:
        candidates = [event for event in candidates if event.is_featured]
    return candidates[:max(0, selection.limit)]


def popular(
    events: Sequence[Event],
    now: datetime,
    featured_events: Optional[Sequence[Event]] = None,
    selection: FeaturedSelection = CAROUSEL
) -> List[Event]:
    """
    Upcoming events flagged popular that are not already featured.

    Args:
        events: Current events
        now: Reference instant
        featured_events: Featured section; computed from ``selection``
            when omitted
        selection: Featured configuration used when computing it

    Returns:
        Popular events in arrival order
    """
    if featured_events is None:
        featured_events = featured(events, now, selection)
    featured_ids: Set[str] = {event.event_id for event in featured_events}

    return [
        event for event in events
        if event.is_popular
        and event.event_id not in featured_ids
        and is_upcoming(event, now)
    ]


def search(events: Sequence[Event], query: str, now: datetime) -> List[Event]:
    """
    Case-insensitive substring search over title and creator.

    Args:
        events: Current events
        query: Raw search text
        now: Reference instant

    Returns:
        Matching upcoming events, earliest first, undated events last
    """
    normalized = (query or '').strip().lower()
    if not normalized:
        return []

    matches = [
        event for event in _upcoming_only(events, now)
        if normalized in (event.title or '').lower()
        or normalized in (event.created_by or '').lower()
    ]

    def sort_key(event: Event):
        timestamp = resolve_timestamp(event, now)
        if timestamp is None:
            return (1, 0.0)
        return (0, timestamp.timestamp())

    return sorted(matches, key=sort_key)
