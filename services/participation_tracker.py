"""Tracking of the events the signed-in user has joined."""
import json
import logging
import threading
from collections import Counter
from concurrent.futures import Executor, Future, ThreadPoolExecutor, wait
from dataclasses import replace
from typing import List, Optional, Sequence

from processor.errors import NotFound
from processor.models import Event, EventSource, Participant, User
from storage.codec import dedupe_participants, event_to_record, records_to_events
from storage.event_store import EventStore
from storage.local_storage import LocalStorage

logger = logging.getLogger(__name__)


class ParticipationTracker:
    """
    Joined-events cache for the signed-in user.

    Join and leave update the local cache and local storage immediately;
    the matching change to the remote participant list runs in the
    background and its failure is only logged. Reconciliation against
    freshly fetched events corrects any divergence afterwards.
    """

    STORAGE_PREFIX = 'joined_events.'

    def __init__(
        self,
        store: EventStore,
        storage: LocalStorage,
        user: Optional[User] = None,
        executor: Optional[Executor] = None
    ):
        """
        Initialize the tracker.

        Args:
            store: Event store holding the remote participant lists
            storage: Local key-value storage for the joined-events cache
            user: User signed in at startup, if any
            executor: Executor for remote participant writes; a small
                thread pool is created when omitted
        """
        self.store = store
        self.storage = storage
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=2, thread_name_prefix='participation-sync'
        )
        self._lock = threading.RLock()
        self._user = user
        self._joined: List[Event] = []
        self._pending_joins: Counter = Counter()
        self._pending_leaves: Counter = Counter()
        self._futures: List[Future] = []

        if user is not None:
            self._joined = self._load(user.uid)

    @property
    def joined_events(self) -> List[Event]:
        with self._lock:
            return list(self._joined)

    def is_joined(self, event_id: str) -> bool:
        with self._lock:
            return any(event.event_id == event_id for event in self._joined)

    def join_event(self, event: Event) -> bool:
        """
        Join an event.

        Args:
            event: Event to join

        Returns:
            True if the event was added, False if it was already joined
        """
        with self._lock:
            if any(item.event_id == event.event_id for item in self._joined):
                return False

            participant = self._participant_for(event)
            entry = event
            if participant is not None:
                entry = replace(
                    event,
                    participants=dedupe_participants(event.participants + (participant,))
                )
                self._pending_joins[event.event_id] += 1

            self._joined = self._joined + [entry]
            self._persist(self._joined)

        logger.info(f"Joined event {event.event_id}", extra={'event_id': event.event_id})
        if participant is not None:
            self._submit(self._register_participation, event.event_id, participant)
        return True

    def leave_event(self, event_id: str) -> bool:
        """
        Leave an event.

        Args:
            event_id: Event to leave

        Returns:
            True if the event was removed, False if it was not joined
        """
        with self._lock:
            removed = next((e for e in self._joined if e.event_id == event_id), None)
            if removed is None:
                return False

            self._joined = [e for e in self._joined if e.event_id != event_id]
            self._persist(self._joined)

            participant = self._participant_for(removed)
            if participant is not None:
                self._pending_leaves[event_id] += 1

        logger.info(f"Left event {event_id}", extra={'event_id': event_id})
        if participant is not None:
            self._submit(self._remove_participation, event_id, participant)
        return True

    def reconcile(self, events: Sequence[Event]) -> bool:
        """
        Rebuild the joined list from authoritative event data.

        User-sourced entries are exactly the events listing the user's
        email as a participant; entries from other sources are kept as
        they are. Entries with a join or leave still in flight keep their
        local state until the remote write finishes.

        Args:
            events: Freshly fetched events

        Returns:
            True if the joined list changed
        """
        with self._lock:
            user = self._user
            if user is None or not user.email:
                if not self._joined:
                    return False
                self._joined = []
                self._persist(self._joined)
                return True

            email = user.email.strip().lower()
            remote_joined = [
                event for event in events
                if event.source is EventSource.USER
                and event.event_id not in self._pending_leaves
                and any(p.key == email for p in event.participants)
            ]
            remote_ids = {event.event_id for event in remote_joined}

            kept = [
                event for event in self._joined
                if event.event_id not in remote_ids
                and (
                    event.source is not EventSource.USER
                    or event.event_id in self._pending_joins
                )
            ]

            updated = remote_joined + kept
            if updated == self._joined:
                return False

            logger.info(
                f"Reconciled joined events: {len(self._joined)} -> {len(updated)}"
            )
            self._joined = updated
            self._persist(self._joined)
            return True

    def handle_identity_change(self, user: Optional[User]) -> None:
        """
        React to sign-in state changes.

        Signing out clears the in-memory cache; signing in as a different
        user loads that user's persisted cache.
        """
        with self._lock:
            previous = self._user
            self._user = user

            if user is None:
                self._joined = []
                return

            if previous is None or previous.uid != user.uid:
                self._joined = self._load(user.uid)

    def wait_for_sync(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for outstanding remote participant writes.

        Returns:
            True if every write finished within the timeout
        """
        with self._lock:
            futures = list(self._futures)
        done, not_done = wait(futures, timeout=timeout)
        with self._lock:
            self._futures = [f for f in self._futures if not f.done()]
        return not not_done

    def close(self) -> None:
        self.wait_for_sync()
        if self._owns_executor:
            self._executor.shutdown(wait=True)

    def _participant_for(self, event: Event) -> Optional[Participant]:
        user = self._user
        if event.source is not EventSource.USER or user is None:
            return None
        if not (user.email or '').strip():
            return None
        return Participant(email=user.email.strip(), uid=user.uid)

    def _submit(self, fn, event_id: str, participant: Participant) -> None:
        future = self._executor.submit(fn, event_id, participant)
        with self._lock:
            self._futures = [f for f in self._futures if not f.done()]
            self._futures.append(future)

    def _register_participation(self, event_id: str, participant: Participant) -> None:
        try:
            self.store.add_participant(event_id, participant)
        except Exception as e:
            logger.warning(
                f"Failed to register event participation: {e}",
                extra={'event_id': event_id, 'error_type': type(e).__name__}
            )
        finally:
            with self._lock:
                self._pending_joins[event_id] -= 1
                if self._pending_joins[event_id] <= 0:
                    del self._pending_joins[event_id]

    def _remove_participation(self, event_id: str, participant: Participant) -> None:
        try:
            self.store.remove_participant(event_id, participant)
        except NotFound:
            logger.debug(f"Event {event_id} is gone, nothing to leave")
        except Exception as e:
            logger.warning(
                f"Failed to remove event participation: {e}",
                extra={'event_id': event_id, 'error_type': type(e).__name__}
            )
        finally:
            with self._lock:
                self._pending_leaves[event_id] -= 1
                if self._pending_leaves[event_id] <= 0:
                    del self._pending_leaves[event_id]

    def _storage_key(self) -> Optional[str]:
        if self._user is None:
            return None
        return f"{self.STORAGE_PREFIX}{self._user.uid}"

    def _load(self, uid: str) -> List[Event]:
        key = f"{self.STORAGE_PREFIX}{uid}"
        try:
            stored = self.storage.get(key)
        except OSError as e:
            logger.warning(f"Failed to load joined events: {e}")
            return []

        if not stored:
            return []

        try:
            records = json.loads(stored)
        except ValueError as e:
            logger.warning(f"Discarding unreadable joined events cache: {e}")
            return []
        if not isinstance(records, list):
            logger.warning("Discarding joined events cache that is not a list")
            return []

        events = records_to_events(records)
        logger.info(f"Hydrated {len(events)} joined events for user {uid}")
        return events

    def _persist(self, events: List[Event]) -> None:
        key = self._storage_key()
        if key is None:
            return
        try:
            self.storage.set(key, json.dumps([event_to_record(e) for e in events]))
        except (OSError, TypeError, ValueError) as e:
            logger.warning(f"Failed to persist joined events: {e}")
