"""Composition root for the event lifecycle services."""
import json
import logging
import os
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import List, Mapping, Optional, Sequence

from clients.identity import CognitoIdentityProvider, IdentityProvider
from clients.image_host import ImageHostClient
from clients.mail_relay import MailRelayClient
from feed import projector
from feed.projector import FeaturedSelection, FeaturedStrategy
from processor.event_processor import EventProcessor
from processor.models import DeletedEvent, Event, User
from services.event_repository import EventRepository, utc_now
from services.participation_tracker import ParticipationTracker
from services.preferences import NotificationPreferences
from storage.event_store import EventStore
from storage.local_storage import LocalStorage
from storage.seed import DEFAULT_SEED_PATH, load_static_events

logger = logging.getLogger(__name__)

# Attributes every LogRecord has; anything else came in through extra=
_RESERVED_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord('', 0, '', 0, '', (), None)).keys()
) | {'message', 'asctime'}


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON, including fields passed via extra."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        for key, value in vars(record).items():
            if key not in _RESERVED_RECORD_ATTRS and key not in log_data:
                log_data[key] = value

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


@dataclass(frozen=True)
class AppConfig:
    """Settings read once from the environment at process start."""
    table_name: str = 'events'
    aws_region: Optional[str] = None
    log_level: str = 'INFO'
    imgbb_api_key: Optional[str] = None
    upload_timeout_seconds: int = 30
    upload_max_retries: int = 3
    email_api_url: Optional[str] = None
    email_timeout_seconds: int = 10
    local_storage_dir: str = '.local_storage'
    static_events_path: Optional[str] = None
    display_timezone: str = 'UTC'
    cognito_client_id: Optional[str] = None
    featured_strategy: str = FeaturedStrategy.FIRST_UPCOMING.value
    featured_limit: int = 3

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'AppConfig':
        """
        Read configuration from environment variables.

        Args:
            environ: Mapping to read from, defaults to os.environ

        Returns:
            AppConfig
        """
        env = os.environ if environ is None else environ
        return cls(
            table_name=env.get('EVENTS_TABLE_NAME', 'events'),
            aws_region=env.get('AWS_REGION') or None,
            log_level=env.get('LOG_LEVEL', 'INFO'),
            imgbb_api_key=env.get('IMGBB_API_KEY') or None,
            upload_timeout_seconds=int(env.get('UPLOAD_TIMEOUT_SECONDS', '30')),
            upload_max_retries=int(env.get('UPLOAD_MAX_RETRIES', '3')),
            email_api_url=env.get('EMAIL_API_URL') or None,
            email_timeout_seconds=int(env.get('EMAIL_TIMEOUT_SECONDS', '10')),
            local_storage_dir=env.get('LOCAL_STORAGE_DIR', '.local_storage'),
            static_events_path=env.get('STATIC_EVENTS_PATH') or None,
            display_timezone=env.get('DISPLAY_TIMEZONE', 'UTC'),
            cognito_client_id=env.get('COGNITO_CLIENT_ID') or None,
            featured_strategy=env.get(
                'FEATURED_STRATEGY', FeaturedStrategy.FIRST_UPCOMING.value
            ),
            featured_limit=int(env.get('FEATURED_LIMIT', '3')),
        )

    @property
    def featured_selection(self) -> FeaturedSelection:
        return FeaturedSelection(
            strategy=FeaturedStrategy(self.featured_strategy),
            limit=self.featured_limit,
        )


@dataclass
class Feed:
    """Projected views of the home screen."""
    featured: List[Event]
    popular: List[Event]
    upcoming: List[Event]
    search_results: List[Event]


class EventsApp:
    """
    Process-wide services wired together.

    Keeps the joined-events cache reconciled with the repository and the
    signed-in identity, and hands join and cancellation data to the mail
    relay once the core operation has returned.
    """

    def __init__(
        self,
        identity: IdentityProvider,
        repository: EventRepository,
        tracker: ParticipationTracker,
        preferences: NotificationPreferences,
        mail_relay: MailRelayClient,
        featured_selection: FeaturedSelection = projector.CAROUSEL
    ):
        self.identity = identity
        self.repository = repository
        self.tracker = tracker
        self.preferences = preferences
        self.mail_relay = mail_relay
        self.featured_selection = featured_selection

        self._reconcile_lock = threading.Lock()
        self._unsubscribers = [
            repository.subscribe(self._on_events_changed),
            identity.subscribe(self._on_identity_change),
        ]

    def start(self) -> bool:
        """Load events; the tracker reconciles once they arrive."""
        return self.repository.refresh()

    def join_event(self, event: Event) -> bool:
        """
        Join an event and send the confirmation email if enabled.

        Returns:
            True if the event was newly joined
        """
        joined = self.tracker.join_event(event)
        user = self.identity.current_user
        if joined and user and user.email and self.preferences.preferences.notify_on_join:
            self.mail_relay.send_join_email(
                recipient_email=user.email,
                event_title=event.title,
                event_date=event.date or None,
                event_location=event.location or None,
            )
        return joined

    def leave_event(self, event_id: str) -> bool:
        return self.tracker.leave_event(event_id)

    def cancel_event(self, event_id: str) -> DeletedEvent:
        """
        Delete an event as the signed-in user and notify its participants.

        Raises:
            Errors of EventRepository.delete_event
        """
        user = self.identity.current_user
        deleted = self.repository.delete_event(event_id, user.uid if user else None)

        if self.preferences.preferences.notify_on_cancellation:
            self.mail_relay.send_cancellation_email(
                recipients=deleted.participant_emails,
                event_title=deleted.title,
                event_date=deleted.date or None,
                event_location=deleted.location or None,
                organizer_email=user.email if user else None,
            )
        return deleted

    def feed(self, now: Optional[datetime] = None, query: str = '') -> Feed:
        now = now or utc_now()
        events = self.repository.events
        featured = projector.featured(events, now, self.featured_selection)
        return Feed(
            featured=featured,
            popular=projector.popular(events, now, featured_events=featured),
            upcoming=projector.upcoming(events, now),
            search_results=projector.search(events, query, now),
        )

    def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self.tracker.close()

    def _on_events_changed(self, _snapshot: Sequence[Event]) -> None:
        # Pushed snapshots can be stale when notifications overlap
        with self._reconcile_lock:
            self.tracker.reconcile(self.repository.events)

    def _on_identity_change(self, user: Optional[User]) -> None:
        with self._reconcile_lock:
            self.tracker.handle_identity_change(user)
            if self.repository.loaded:
                self.tracker.reconcile(self.repository.events)


def build_services(config: AppConfig, identity: Optional[IdentityProvider] = None) -> EventsApp:
    """
    Construct every component once and wire them together.

    Args:
        config: Application configuration
        identity: Identity provider to use instead of Cognito

    Returns:
        EventsApp ready for start()
    """
    setup_logging(config.log_level)
    logger.info(
        "Building event services",
        extra={
            'table_name': config.table_name,
            'featured_strategy': config.featured_strategy,
        }
    )

    identity = identity or CognitoIdentityProvider(
        client_id=config.cognito_client_id,
        region_name=config.aws_region,
    )
    store = EventStore(config.table_name, region_name=config.aws_region)
    storage = LocalStorage(config.local_storage_dir)

    repository = EventRepository(
        store=store,
        identity=identity,
        image_host=ImageHostClient(
            api_key=config.imgbb_api_key,
            timeout=config.upload_timeout_seconds,
            max_retries=config.upload_max_retries,
        ),
        processor=EventProcessor(config.display_timezone),
        static_events=load_static_events(config.static_events_path or DEFAULT_SEED_PATH),
    )
    tracker = ParticipationTracker(store, storage, user=identity.current_user)

    return EventsApp(
        identity=identity,
        repository=repository,
        tracker=tracker,
        preferences=NotificationPreferences(storage),
        mail_relay=MailRelayClient(config.email_api_url, timeout=config.email_timeout_seconds),
        featured_selection=config.featured_selection,
    )
