"""Conversions between stored shapes and Event objects."""
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from processor.event_processor import EventProcessor
from processor.models import (
    DEFAULT_IMAGE_URL,
    Category,
    Event,
    EventSource,
    LocationMode,
    Participant,
)

logger = logging.getLogger(__name__)

_processor = EventProcessor()


def decode_participant(raw: Any) -> Optional[Participant]:
    """
    Decode one stored participant entry.

    Accepts a bare email string or a mapping with 'email' and optional 'uid'.

    Args:
        raw: Stored participant value

    Returns:
        Participant or None if the entry carries no usable email
    """
    if isinstance(raw, str):
        email, uid = raw, None
    elif isinstance(raw, dict):
        email, uid = raw.get('email'), raw.get('uid')
    else:
        return None

    if not isinstance(email, str) or not email.strip():
        return None

    return Participant(email=email.strip(), uid=uid or None)


def decode_participants(raw: Any) -> Tuple[Participant, ...]:
    """
    Normalize every stored participant shape into a deduplicated tuple.

    Supported shapes: a map keyed by lowercased email, a list of
    {email, uid} maps, a list of bare email strings, or nothing at all.

    Args:
        raw: Stored participants attribute

    Returns:
        Tuple of Participant, deduplicated by lowercased email
    """
    if not raw:
        return ()

    if isinstance(raw, dict):
        entries: Iterable[Any] = raw.values()
    elif isinstance(raw, (list, tuple, set)):
        entries = raw
    else:
        logger.warning(f"Ignoring participants of unexpected type {type(raw).__name__}")
        return ()

    decoded = (decode_participant(entry) for entry in entries)
    return dedupe_participants(p for p in decoded if p is not None)


def dedupe_participants(participants: Iterable[Participant]) -> Tuple[Participant, ...]:
    """Drop later duplicates by lowercased email, keeping the first seen."""
    seen = set()
    result = []
    for participant in participants:
        if not participant.key or participant.key in seen:
            continue
        seen.add(participant.key)
        result.append(participant)
    return tuple(result)


def encode_participant(participant: Participant) -> Dict[str, Any]:
    return {'email': participant.email, 'uid': participant.uid}


def parse_instant(value: Any) -> Optional[str]:
    """
    Normalize a stored timestamp to an ISO 8601 string.

    Args:
        value: ISO string, datetime, or epoch seconds

    Returns:
        ISO 8601 string or None if the value cannot be interpreted
    """
    if value is None or value == '':
        return None

    try:
        if isinstance(value, datetime):
            return value.isoformat()
        if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
            return datetime.fromtimestamp(float(value), tz=timezone.utc).isoformat()
        if isinstance(value, str):
            return datetime.fromisoformat(value.strip().replace('Z', '+00:00')).isoformat()
    except (ValueError, OverflowError, OSError):
        pass

    logger.debug(f"Unparseable timestamp value: {value!r}")
    return None


def _label(instant: Optional[str], formatter) -> str:
    """Derive a display label from an ISO instant, or return an empty label."""
    if not instant:
        return ''
    return formatter(datetime.fromisoformat(instant))


def record_to_event(record: Dict[str, Any], source: EventSource = EventSource.USER) -> Event:
    """
    Convert a stored record into an Event, tolerating missing fields.

    Args:
        record: Mapping with snake_case attribute names
        source: Origin tag for the event

    Returns:
        Event

    Raises:
        KeyError: If the record has no event_id
    """
    mode = LocationMode.normalize(record.get('location_type', record.get('mode')))
    description = record.get('description') or ''
    start = parse_instant(record.get('start_date_time'))
    end = parse_instant(record.get('end_date_time'))

    return Event(
        event_id=str(record['event_id']),
        title=record.get('title') or 'Untitled event',
        description=description,
        headline=record.get('headline') or _processor.build_headline(description),
        category=Category.normalize(record.get('category')),
        date=record.get('date') or _label(start, _processor.format_date_label),
        time=record.get('time') or _label(start, _processor.format_time_label),
        location=record.get('location') or mode.label,
        mode=mode,
        image_url=record.get('image_url') or DEFAULT_IMAGE_URL,
        start_date_time=start,
        end_date_time=end,
        created_by=record.get('created_by'),
        created_at=parse_instant(record.get('created_at')),
        updated_at=parse_instant(record.get('updated_at')),
        source=EventSource(record.get('source', source.value)),
        participants=decode_participants(record.get('participants')),
        is_featured=bool(record.get('is_featured', False)),
        is_popular=bool(record.get('is_popular', False)),
    )


def event_to_record(event: Event) -> Dict[str, Any]:
    """Encode an Event as a JSON-safe dictionary for the local cache."""
    return {
        'event_id': event.event_id,
        'title': event.title,
        'description': event.description,
        'headline': event.headline,
        'category': event.category.value,
        'date': event.date,
        'time': event.time,
        'location': event.location,
        'location_type': event.mode.value,
        'image_url': event.image_url,
        'start_date_time': event.start_date_time,
        'end_date_time': event.end_date_time,
        'created_by': event.created_by,
        'created_at': event.created_at,
        'updated_at': event.updated_at,
        'source': event.source.value,
        'participants': [encode_participant(p) for p in event.participants],
        'is_featured': event.is_featured,
        'is_popular': event.is_popular,
    }


def records_to_events(records: Iterable[Dict[str, Any]]) -> List[Event]:
    """Decode a list of cached records, skipping the ones that fail."""
    events = []
    for record in records:
        try:
            events.append(record_to_event(record))
        except (KeyError, ValueError, TypeError, AttributeError) as e:
            logger.warning(f"Skipping undecodable cached event: {e}")
    return events
