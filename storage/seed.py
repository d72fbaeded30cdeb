"""Loader for statically seeded demo events."""
import json
import logging
from pathlib import Path
from typing import List, Optional, Union

from processor.models import Event, EventSource
from storage.codec import record_to_event

logger = logging.getLogger(__name__)

DEFAULT_SEED_PATH = Path(__file__).with_name('static_events.json')


def load_static_events(path: Optional[Union[str, Path]]) -> List[Event]:
    """
    Load demo events from a JSON file.

    The file holds a list of records using the same snake_case attribute
    names as the event store. Every loaded event is tagged as static and
    carries no participants.

    Args:
        path: JSON file location, or None when no seed data is configured

    Returns:
        List of static Event objects; empty if the file is missing or invalid
    """
    if not path:
        return []

    try:
        with open(path, encoding='utf-8') as handle:
            records = json.load(handle)
    except (OSError, ValueError) as e:
        logger.warning(f"Failed to load static events from {path}: {e}")
        return []

    if not isinstance(records, list):
        logger.warning(f"Static events file {path} does not contain a list")
        return []

    events = []
    for record in records:
        try:
            record = dict(record, source=EventSource.STATIC.value, participants=None)
            events.append(record_to_event(record, source=EventSource.STATIC))
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(f"Skipping invalid static event: {e}")

    logger.info(f"Loaded {len(events)} static events from {path}")
    return events
