"""Event processor for validating input and deriving display fields."""
import logging
import re
from datetime import datetime
from typing import Any, Dict, Union

import pytz

from processor.errors import InvalidEventInput
from processor.models import Category, Event, EventInput, EventUpdate, LocationMode

logger = logging.getLogger(__name__)

InputLike = Union[EventInput, EventUpdate]


class EventProcessor:
    """Processor for validating organizer input and deriving display fields."""

    MAX_HEADLINE_LENGTH = 90
    HEADLINE_CUT = 87
    EMPTY_HEADLINE = 'New event'

    # Semantic fields compared when computing an update
    UPDATABLE_FIELDS = (
        'title',
        'description',
        'headline',
        'category',
        'date',
        'time',
        'location',
        'location_type',
        'image_url',
        'start_date_time',
        'end_date_time',
    )

    def __init__(self, display_timezone: str = 'UTC'):
        """
        Initialize the processor.

        Args:
            display_timezone: Time zone the date and time labels are rendered in
        """
        self.display_timezone = pytz.timezone(display_timezone)

    def validate(self, event_input: InputLike) -> None:
        """
        Validate organizer input before any network call is made.

        Args:
            event_input: EventInput or EventUpdate to validate

        Raises:
            InvalidEventInput: If a required field is missing or the
                date range is inverted
        """
        if not event_input.title or not event_input.title.strip():
            raise InvalidEventInput("Event title is required.")

        if not event_input.description or not event_input.description.strip():
            raise InvalidEventInput("Event description is required.")

        if event_input.start_date_time is None or event_input.end_date_time is None:
            raise InvalidEventInput(
                "Please choose both start and end date/time before saving."
            )

        start = self._to_aware(event_input.start_date_time)
        end = self._to_aware(event_input.end_date_time)
        if end < start:
            raise InvalidEventInput(
                "End date and time must be the same or later than the start "
                "date and time."
            )

        needs_image = isinstance(event_input, EventInput) or event_input.image_updated
        if needs_image and not event_input.image_path:
            raise InvalidEventInput("Pick a cover image before saving your event.")

    def build_headline(self, description: str) -> str:
        """
        Collapse whitespace and truncate the description to a headline.

        Args:
            description: Free-form event description

        Returns:
            Single-line headline of at most 90 characters
        """
        if not description:
            return self.EMPTY_HEADLINE

        single_line = re.sub(r'\s+', ' ', description).strip()
        if len(single_line) <= self.MAX_HEADLINE_LENGTH:
            return single_line

        return f"{single_line[:self.HEADLINE_CUT]}..."

    def format_date_label(self, value: datetime) -> str:
        """Long date label, e.g. 'Monday, January 15'."""
        local = self._to_display(value)
        return f"{local.strftime('%A')}, {local.strftime('%B')} {local.day}"

    def format_time_label(self, value: datetime) -> str:
        """24-hour time label, e.g. '19:05'."""
        return self._to_display(value).strftime('%H:%M')

    def to_iso(self, value: datetime) -> str:
        """Serialize a datetime as an ISO 8601 UTC instant."""
        return self._to_aware(value).astimezone(pytz.utc).isoformat()

    def build_record(
        self,
        event_input: EventInput,
        image_url: str,
        created_by: str,
        now: datetime
    ) -> Dict[str, Any]:
        """
        Build the stored fields for a new event.

        Args:
            event_input: Validated organizer input
            image_url: Public URL returned by the image host
            created_by: Identifier of the creating user
            now: Creation instant

        Returns:
            Dictionary of fields ready for the event store
        """
        fields = self._derived_fields(event_input, image_url)
        fields['created_by'] = created_by
        fields['created_at'] = self.to_iso(now)
        return fields

    def build_changes(
        self,
        existing: Event,
        update: EventUpdate,
        image_url: str,
        now: datetime
    ) -> Dict[str, Any]:
        """
        Compute the fields of an update that differ from the stored event.

        Args:
            existing: Event as currently stored
            update: Validated organizer input
            image_url: Image URL to keep or the freshly uploaded one
            now: Update instant

        Returns:
            Changed fields plus updated_at
        """
        desired = self._derived_fields(update, image_url)
        current = {
            'title': existing.title,
            'description': existing.description,
            'headline': existing.headline,
            'category': existing.category.value,
            'date': existing.date,
            'time': existing.time,
            'location': existing.location,
            'location_type': existing.mode.value,
            'image_url': existing.image_url,
            'start_date_time': existing.start_date_time,
            'end_date_time': existing.end_date_time,
        }

        changes = {
            name: desired[name]
            for name in self.UPDATABLE_FIELDS
            if desired[name] != current[name]
        }
        changes['updated_at'] = self.to_iso(now)

        logger.debug(
            f"Update for event {existing.event_id} touches fields: "
            f"{sorted(changes)}"
        )
        return changes

    def _derived_fields(self, event_input: InputLike, image_url: str) -> Dict[str, Any]:
        mode = LocationMode.normalize(event_input.location_type)
        start = event_input.start_date_time

        return {
            'title': event_input.title.strip(),
            'description': event_input.description.strip(),
            'headline': self.build_headline(event_input.description),
            'category': Category.normalize(event_input.category).value,
            'date': self.format_date_label(start),
            'time': self.format_time_label(start),
            'location': mode.label,
            'location_type': mode.value,
            'image_url': image_url,
            'start_date_time': self.to_iso(start),
            'end_date_time': self.to_iso(event_input.end_date_time),
        }

    def _to_aware(self, value: datetime) -> datetime:
        # Naive datetimes are wall-clock times in the display time zone
        if value.tzinfo is None:
            return self.display_timezone.localize(value)
        return value

    def _to_display(self, value: datetime) -> datetime:
        return self._to_aware(value).astimezone(self.display_timezone)
