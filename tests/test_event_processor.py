"""Unit tests for EventProcessor."""
from datetime import datetime, timedelta, timezone

import pytest

from conftest import make_event
from processor.errors import InvalidEventInput
from processor.event_processor import EventProcessor
from processor.models import Category, EventInput, EventUpdate, LocationMode


def build_input(**overrides):
    values = dict(
        title='Jazz Night',
        description='Live jazz   in the\npark',
        start_date_time=datetime(2026, 1, 15, 19, 0, tzinfo=timezone.utc),
        end_date_time=datetime(2026, 1, 15, 22, 0, tzinfo=timezone.utc),
        location_type=LocationMode.ONSITE,
        image_path='/tmp/cover.png',
        category=Category.MUSIC,
    )
    values.update(overrides)
    return EventInput(**values)


class TestHeadline:
    """Test cases for headline derivation."""

    def test_collapses_whitespace(self):
        processor = EventProcessor()
        assert processor.build_headline("  Live  jazz\n\tin the park ") == "Live jazz in the park"

    def test_exactly_90_characters_is_unchanged(self):
        processor = EventProcessor()
        description = "a" * 90

        assert processor.build_headline(description) == description

    def test_91_characters_is_truncated(self):
        processor = EventProcessor()
        description = "b" * 91

        headline = processor.build_headline(description)

        assert headline == "b" * 87 + "..."
        assert len(headline) == 90

    def test_length_counted_after_collapsing(self):
        processor = EventProcessor()
        # 90 characters once the double spaces are collapsed
        description = "word " * 17 + "abcde"
        padded = description.replace(" ", "   ")

        assert processor.build_headline(padded) == description.strip()

    def test_empty_description(self):
        processor = EventProcessor()
        assert processor.build_headline("") == "New event"


class TestLabels:
    """Test cases for date and time labels."""

    def test_labels_in_utc(self):
        processor = EventProcessor()
        value = datetime(2026, 1, 15, 19, 5, tzinfo=timezone.utc)

        assert processor.format_date_label(value) == "Thursday, January 15"
        assert processor.format_time_label(value) == "19:05"

    def test_labels_follow_display_timezone(self):
        processor = EventProcessor(display_timezone='Asia/Bangkok')
        value = datetime(2026, 1, 15, 19, 5, tzinfo=timezone.utc)

        assert processor.format_date_label(value) == "Friday, January 16"
        assert processor.format_time_label(value) == "02:05"

    def test_naive_datetime_is_display_wall_clock(self):
        processor = EventProcessor(display_timezone='Asia/Bangkok')
        value = datetime(2026, 1, 15, 9, 30)

        assert processor.format_time_label(value) == "09:30"
        assert processor.to_iso(value) == "2026-01-15T02:30:00+00:00"


class TestValidation:
    """Test cases for input validation."""

    def test_valid_input(self):
        EventProcessor().validate(build_input())

    def test_end_before_start_rejected(self):
        start = datetime(2026, 1, 15, 19, 0, tzinfo=timezone.utc)
        event_input = build_input(start_date_time=start, end_date_time=start - timedelta(minutes=1))

        with pytest.raises(InvalidEventInput):
            EventProcessor().validate(event_input)

    def test_equal_start_and_end_accepted(self):
        start = datetime(2026, 1, 15, 19, 0, tzinfo=timezone.utc)
        EventProcessor().validate(build_input(start_date_time=start, end_date_time=start))

    @pytest.mark.parametrize('overrides', [
        {'title': '   '},
        {'description': ''},
        {'start_date_time': None},
        {'end_date_time': None},
        {'image_path': ''},
    ])
    def test_missing_fields_rejected(self, overrides):
        with pytest.raises(InvalidEventInput):
            EventProcessor().validate(build_input(**overrides))

    def test_update_without_new_image_needs_no_path(self):
        update = EventUpdate(
            event_id='e1',
            title='Jazz Night',
            description='Live jazz',
            start_date_time=datetime(2026, 1, 15, 19, 0, tzinfo=timezone.utc),
            end_date_time=datetime(2026, 1, 15, 22, 0, tzinfo=timezone.utc),
            location_type=LocationMode.ONLINE,
        )
        EventProcessor().validate(update)

        update.image_updated = True
        with pytest.raises(InvalidEventInput):
            EventProcessor().validate(update)


class TestRecords:
    """Test cases for stored field derivation."""

    def test_build_record(self):
        processor = EventProcessor()
        now = datetime(2026, 1, 1, 8, 0, tzinfo=timezone.utc)

        record = processor.build_record(build_input(), 'https://img/1.png', 'uid-1', now)

        assert record['title'] == 'Jazz Night'
        assert record['headline'] == 'Live jazz in the park'
        assert record['category'] == 'Music'
        assert record['date'] == 'Thursday, January 15'
        assert record['time'] == '19:00'
        assert record['location'] == 'On site'
        assert record['location_type'] == 'Onsite'
        assert record['image_url'] == 'https://img/1.png'
        assert record['start_date_time'] == '2026-01-15T19:00:00+00:00'
        assert record['end_date_time'] == '2026-01-15T22:00:00+00:00'
        assert record['created_by'] == 'uid-1'
        assert record['created_at'] == '2026-01-01T08:00:00+00:00'

    def test_build_changes_only_changed_fields(self):
        processor = EventProcessor()
        start = datetime(2026, 1, 15, 19, 0, tzinfo=timezone.utc)
        end = datetime(2026, 1, 15, 22, 0, tzinfo=timezone.utc)
        existing = make_event(
            'e1',
            title='Jazz Night',
            description='Live jazz',
            headline='Live jazz',
            category=Category.MUSIC,
            date='Thursday, January 15',
            time='19:00',
            location='On site',
            mode=LocationMode.ONSITE,
            image_url='https://img/1.png',
            start_date_time=start.isoformat(),
            end_date_time=end.isoformat(),
        )
        update = EventUpdate(
            event_id='e1',
            title='Jazz Night Deluxe',
            description='Live jazz',
            start_date_time=start,
            end_date_time=end,
            location_type=LocationMode.ONSITE,
            category=Category.MUSIC,
        )
        now = datetime(2026, 1, 2, tzinfo=timezone.utc)

        changes = processor.build_changes(existing, update, existing.image_url, now)

        assert changes == {
            'title': 'Jazz Night Deluxe',
            'updated_at': '2026-01-02T00:00:00+00:00',
        }
