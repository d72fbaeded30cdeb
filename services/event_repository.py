"""In-memory repository of events backed by the remote event store."""
import logging
import threading
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence

from clients.identity import IdentityProvider
from clients.image_host import ImageHostClient
from processor.errors import (
    AuthenticationRequired,
    EmailNotVerified,
    Forbidden,
    NotFound,
    PermissionDenied,
    TransientNetworkFailure,
)
from processor.event_processor import EventProcessor
from processor.models import DeletedEvent, Event, EventInput, EventUpdate, User
from storage.codec import event_to_record, record_to_event
from storage.event_store import EventStore

logger = logging.getLogger(__name__)

EventsListener = Callable[[List[Event]], None]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class EventRepository:
    """
    Process-wide cache of events with confirmed-first write operations.

    The cache holds remote events newest first; static seed events are
    appended after them in the public ``events`` view. Create, update and
    delete only touch the cache after the store accepted the write.
    """

    def __init__(
        self,
        store: EventStore,
        identity: IdentityProvider,
        image_host: ImageHostClient,
        processor: Optional[EventProcessor] = None,
        static_events: Sequence[Event] = (),
        clock: Callable[[], datetime] = utc_now
    ):
        self.store = store
        self.identity = identity
        self.image_host = image_host
        self.processor = processor or EventProcessor()
        self.clock = clock
        self._static_events = list(static_events)
        self._remote_events: List[Event] = []
        self._loading = False
        self._loaded = False
        self._lock = threading.RLock()
        self._listeners: List[EventsListener] = []

    @property
    def events(self) -> List[Event]:
        """Snapshot of remote events followed by static seed events."""
        with self._lock:
            return self._remote_events + self._static_events

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def loaded(self) -> bool:
        """True once a refresh has succeeded."""
        return self._loaded

    def get(self, event_id: str) -> Optional[Event]:
        for event in self.events:
            if event.event_id == event_id:
                return event
        return None

    def subscribe(self, listener: EventsListener) -> Callable[[], None]:
        """
        Register a listener called with the event snapshot after each change.

        Returns:
            Function removing the listener again
        """
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def refresh(self) -> bool:
        """
        Replace the cache with the current contents of the store.

        Failures are logged and leave the previous cache untouched.

        Returns:
            True if the cache was replaced
        """
        self._loading = True
        try:
            remote_events = self.store.list_events()
        except Exception as e:
            logger.warning(
                f"Failed to load events: {e}",
                extra={'error_type': type(e).__name__}
            )
            return False
        finally:
            self._loading = False

        with self._lock:
            self._remote_events = list(remote_events)
            self._loaded = True

        logger.info(f"Refreshed event cache with {len(remote_events)} events")
        self._notify()
        return True

    def create_event(self, event_input: EventInput) -> Event:
        """
        Publish a new event as the signed-in user.

        Args:
            event_input: Organizer input

        Returns:
            The created Event, also prepended to the cache

        Raises:
            InvalidEventInput: If the input fails validation
            AuthenticationRequired: If nobody is signed in
            EmailNotVerified: If the user has not verified their email
            ImageUploadFailed: If the cover image upload fails
            PermissionDenied: If the store rejects the write
        """
        self.processor.validate(event_input)
        user = self._verified_user()

        image_url = self.image_host.upload(event_input.image_path)

        fields = self.processor.build_record(event_input, image_url, user.uid, self.clock())
        try:
            event_id = self.store.insert_event(fields)
        except PermissionDenied:
            logger.error(f"Store rejected event creation for user {user.uid}")
            raise

        event = record_to_event(dict(fields, event_id=event_id))
        with self._lock:
            self._remote_events.insert(0, event)

        logger.info(f"Created event {event_id}", extra={'event_id': event_id})
        self._notify()
        return event

    def update_event(self, update: EventUpdate) -> Event:
        """
        Edit an event owned by the signed-in user.

        The cover image is uploaded again only when ``image_updated`` is set.

        Args:
            update: Organizer input

        Returns:
            The updated Event

        Raises:
            InvalidEventInput: If the input fails validation
            AuthenticationRequired: If nobody is signed in
            NotFound: If the event no longer exists
            Forbidden: If the user did not create the event
            ImageUploadFailed: If the new cover image upload fails
            PermissionDenied: If the store rejects the write
        """
        self.processor.validate(update)
        user = self.identity.current_user
        if user is None:
            raise AuthenticationRequired("Please sign in before editing an event.")

        existing = self._owned_event(update.event_id, user.uid)

        if update.image_updated:
            image_url = self.image_host.upload(update.image_path)
        else:
            image_url = existing.image_url

        changes = self.processor.build_changes(existing, update, image_url, self.clock())
        self.store.update_event(update.event_id, changes)

        record = event_to_record(existing)
        record.update(changes)
        updated = record_to_event(record)

        with self._lock:
            for index, event in enumerate(self._remote_events):
                if event.event_id == updated.event_id:
                    self._remote_events[index] = updated
                    break
            else:
                self._remote_events.insert(0, updated)

        logger.info(f"Updated event {updated.event_id}", extra={'event_id': updated.event_id})
        self._notify()
        return updated

    def delete_event(self, event_id: str, requestor_id: Optional[str]) -> DeletedEvent:
        """
        Delete an event owned by the requestor.

        Args:
            event_id: Event to delete
            requestor_id: Identifier of the user asking for the deletion

        Returns:
            Snapshot of the deleted event for notifying its participants

        Raises:
            AuthenticationRequired: If no requestor is given
            NotFound: If the event no longer exists
            Forbidden: If the requestor did not create the event
        """
        if not requestor_id:
            raise AuthenticationRequired("Please sign in before deleting an event.")

        existing = self._owned_event(event_id, requestor_id)
        snapshot = DeletedEvent(
            event_id=existing.event_id,
            title=existing.title,
            date=existing.date,
            location=existing.location,
            participant_emails=existing.participant_emails,
        )

        self.store.delete_event(event_id)

        with self._lock:
            self._remote_events = [
                event for event in self._remote_events if event.event_id != event_id
            ]

        logger.info(
            f"Deleted event {event_id} with {len(snapshot.participant_emails)} participants",
            extra={'event_id': event_id}
        )
        self._notify()
        return snapshot

    def _verified_user(self) -> User:
        user = self.identity.current_user
        if user is None:
            raise AuthenticationRequired()

        # Verification may have completed in another session
        try:
            user = self.identity.reload()
        except TransientNetworkFailure as e:
            logger.warning(f"Could not refresh verification status: {e}")
        if user is None:
            raise AuthenticationRequired()

        if not user.email_verified:
            raise EmailNotVerified()
        return user

    def _owned_event(self, event_id: str, uid: str) -> Event:
        existing = self.store.get_event(event_id)
        if existing is None:
            raise NotFound(event_id)
        if existing.created_by != uid:
            logger.warning(f"User {uid} is not the creator of event {event_id}")
            raise Forbidden(event_id)
        return existing

    def _notify(self) -> None:
        with self._lock:
            listeners = list(self._listeners)
        snapshot = self.events
        for listener in listeners:
            try:
                listener(snapshot)
            except Exception as e:
                logger.error(f"Events listener failed: {e}", exc_info=True)
