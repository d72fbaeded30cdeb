"""Unit tests for the feed projections."""
from datetime import timedelta

from conftest import NOW, make_event
from feed.projector import (
    CAROUSEL,
    SPOTLIGHT,
    FeaturedSelection,
    FeaturedStrategy,
    featured,
    popular,
    resolve_timestamp,
    search,
    upcoming,
)


def at(delta):
    return (NOW + delta).isoformat()


def ids(events):
    return [event.event_id for event in events]


class TestUpcoming:
    """Test cases for upcoming ordering."""

    def test_unknown_start_after_known_and_past_excluded(self):
        events = [
            make_event('a', start_date_time=at(timedelta(days=1))),
            make_event('b', start_date_time=None, date='unparseable'),
            make_event('c', start_date_time=at(-timedelta(days=1))),
        ]

        assert ids(upcoming(events, NOW)) == ['a', 'b']

    def test_soonest_first(self):
        events = [
            make_event('later', start_date_time=at(timedelta(days=5))),
            make_event('sooner', start_date_time=at(timedelta(hours=2))),
            make_event('now', start_date_time=NOW.isoformat()),
        ]

        assert ids(upcoming(events, NOW)) == ['now', 'sooner', 'later']

    def test_ties_keep_upstream_order(self):
        start = at(timedelta(days=1))
        events = [make_event('x', start_date_time=start), make_event('y', start_date_time=start)]

        assert ids(upcoming(events, NOW)) == ['x', 'y']

    def test_unknowns_ordered_by_title(self):
        events = [
            make_event('1', title='Zumba', start_date_time=None),
            make_event('2', title='Archery', start_date_time=None),
            make_event('3', title='Mosaics', start_date_time='garbage'),
        ]

        assert ids(upcoming(events, NOW)) == ['2', '3', '1']

    def test_date_label_fallback(self):
        events = [
            make_event('labelled', start_date_time=None, date='Friday, March 13'),
            make_event('iso', start_date_time=at(timedelta(days=5))),
        ]

        assert ids(upcoming(events, NOW)) == ['labelled', 'iso']

    def test_resolve_timestamp_yearless_label(self):
        event = make_event('e', start_date_time=None, date='Friday, March 13')

        resolved = resolve_timestamp(event, NOW)

        assert (resolved.year, resolved.month, resolved.day) == (2026, 3, 13)

    def test_input_is_not_mutated(self):
        events = [
            make_event('later', start_date_time=at(timedelta(days=2))),
            make_event('sooner', start_date_time=at(timedelta(days=1))),
        ]

        upcoming(events, NOW)

        assert ids(events) == ['later', 'sooner']


class TestFeatured:
    """Test cases for featured and popular sections."""

    def events(self):
        return [
            make_event('past', start_date_time=at(-timedelta(days=1)), is_featured=True),
            make_event('e1', start_date_time=at(timedelta(days=3)), is_popular=True),
            make_event('e2', start_date_time=at(timedelta(days=1)), is_featured=True),
            make_event('e3', start_date_time=at(timedelta(days=2))),
            make_event('e4', start_date_time=at(timedelta(days=4)), is_popular=True),
        ]

    def test_carousel_takes_first_upcoming_in_arrival_order(self):
        assert ids(featured(self.events(), NOW, CAROUSEL)) == ['e1', 'e2', 'e3']

    def test_spotlight_takes_flagged_upcoming(self):
        assert ids(featured(self.events(), NOW, SPOTLIGHT)) == ['e2']

    def test_custom_limit(self):
        selection = FeaturedSelection(FeaturedStrategy.FIRST_UPCOMING, 1)

        assert ids(featured(self.events(), NOW, selection)) == ['e1']

    def test_popular_excludes_featured(self):
        assert ids(popular(self.events(), NOW)) == ['e4']
        assert ids(popular(self.events(), NOW, selection=SPOTLIGHT)) == ['e1', 'e4']


class TestSearch:
    """Test cases for search."""

    def test_matches_title_and_creator(self):
        events = [
            make_event('1', title='Jazz night', start_date_time=at(timedelta(days=2))),
            make_event('2', title='Pottery', created_by='jazzfan', start_date_time=at(timedelta(days=1))),
            make_event('3', title='Jazz brunch', start_date_time=None),
            make_event('4', title='Chess'),
        ]

        assert ids(search(events, '  JAZZ ', NOW)) == ['2', '1', '3']

    def test_blank_query(self):
        assert search([make_event('1')], '   ', NOW) == []

    def test_past_events_excluded(self):
        events = [make_event('old', title='Jazz', start_date_time=at(-timedelta(hours=1)))]

        assert search(events, 'jazz', NOW) == []
