"""DynamoDB-backed event store."""
import logging
import uuid
from typing import Any, Callable, Dict, List, Optional, Tuple

import boto3
from botocore.exceptions import ClientError

from processor.errors import NotFound, PermissionDenied
from processor.models import Event, EventSource, Participant
from storage.codec import (
    dedupe_participants,
    decode_participants,
    encode_participant,
    record_to_event,
)

logger = logging.getLogger(__name__)

PERMISSION_ERROR_CODES = frozenset({
    'AccessDeniedException',
    'AccessDenied',
    'UnauthorizedOperation',
})


class EventStore:
    """Adapter for the remote events collection stored in DynamoDB."""

    PARTICIPANTS = 'participants'

    def __init__(self, table_name: str, region_name: Optional[str] = None):
        """
        Initialize DynamoDB resource and table reference.

        Args:
            table_name: Name of the DynamoDB table
            region_name: AWS region, defaults to the boto3 session region
        """
        self.table_name = table_name
        self.dynamodb = boto3.resource('dynamodb', region_name=region_name)
        self.table = self.dynamodb.Table(table_name)
        logger.info(f"Initialized EventStore for table: {table_name}")

    def list_events(self) -> List[Event]:
        """
        Retrieve all events ordered by creation time, newest first.

        Returns:
            List of Event objects

        Raises:
            ClientError: If the scan fails
        """
        logger.info("Scanning DynamoDB table for all events")

        try:
            response = self.table.scan()
            items = response.get('Items', [])

            # Handle pagination
            while 'LastEvaluatedKey' in response:
                response = self.table.scan(
                    ExclusiveStartKey=response['LastEvaluatedKey']
                )
                items.extend(response.get('Items', []))
        except ClientError as e:
            logger.error(f"Error scanning DynamoDB table: {e}")
            raise self._translate(e)

        events = [event for event in map(self._item_to_event, items) if event]
        # Records without created_at sort after every dated record
        events.sort(key=lambda event: event.created_at or '', reverse=True)

        logger.info(f"Retrieved {len(events)} events from DynamoDB")
        return events

    def get_event(self, event_id: str) -> Optional[Event]:
        """
        Fetch a single event.

        Args:
            event_id: Event identifier

        Returns:
            Event or None if the record does not exist
        """
        try:
            response = self.table.get_item(Key={'event_id': event_id})
        except ClientError as e:
            raise self._translate(e, event_id)

        item = response.get('Item')
        if item is None:
            return None
        return self._item_to_event(item)

    def insert_event(self, fields: Dict[str, Any]) -> str:
        """
        Create a new event record with an empty participant map.

        Args:
            fields: Stored attributes of the event

        Returns:
            Identifier assigned to the new record

        Raises:
            PermissionDenied: If the backend rejects the write
        """
        event_id = uuid.uuid4().hex
        item = {key: value for key, value in fields.items() if value is not None}
        item['event_id'] = event_id
        item[self.PARTICIPANTS] = {}

        try:
            self.table.put_item(
                Item=item,
                ConditionExpression='attribute_not_exists(event_id)'
            )
        except ClientError as e:
            logger.error(f"Error inserting event: {e}")
            raise self._translate(e)

        logger.info(f"Inserted event {event_id}")
        return event_id

    def update_event(self, event_id: str, fields: Dict[str, Any]) -> None:
        """
        Update fields of an existing event.

        Fields whose value is None are removed from the record.

        Args:
            event_id: Event identifier
            fields: Attributes to write

        Raises:
            NotFound: If the record does not exist
            PermissionDenied: If the backend rejects the write
        """
        if not fields:
            return

        names = {}
        values = {}
        set_clauses = []
        remove_clauses = []
        for index, (name, value) in enumerate(sorted(fields.items())):
            names[f'#f{index}'] = name
            if value is None:
                remove_clauses.append(f'#f{index}')
            else:
                values[f':v{index}'] = value
                set_clauses.append(f'#f{index} = :v{index}')

        expression = []
        if set_clauses:
            expression.append('SET ' + ', '.join(set_clauses))
        if remove_clauses:
            expression.append('REMOVE ' + ', '.join(remove_clauses))

        kwargs = {
            'Key': {'event_id': event_id},
            'UpdateExpression': ' '.join(expression),
            'ConditionExpression': 'attribute_exists(event_id)',
            'ExpressionAttributeNames': names,
        }
        if values:
            kwargs['ExpressionAttributeValues'] = values

        try:
            self.table.update_item(**kwargs)
        except ClientError as e:
            logger.error(f"Error updating event {event_id}: {e}")
            raise self._translate(e, event_id)

        logger.info(f"Updated event {event_id}: {sorted(fields)}")

    def delete_event(self, event_id: str) -> None:
        """
        Delete an event record.

        Raises:
            NotFound: If the record does not exist
            PermissionDenied: If the backend rejects the delete
        """
        try:
            self.table.delete_item(
                Key={'event_id': event_id},
                ConditionExpression='attribute_exists(event_id)'
            )
        except ClientError as e:
            logger.error(f"Error deleting event {event_id}: {e}")
            raise self._translate(e, event_id)

        logger.info(f"Deleted event {event_id}")

    def add_participant(self, event_id: str, participant: Participant) -> None:
        """
        Add a participant to the event, keyed by lowercased email.

        Adding a participant that is already present overwrites the
        existing entry, so repeated calls are idempotent.

        Args:
            event_id: Event identifier
            participant: Participant to add

        Raises:
            NotFound: If the record does not exist
        """
        try:
            self.table.update_item(
                Key={'event_id': event_id},
                UpdateExpression='SET #p.#k = :participant',
                ConditionExpression='attribute_exists(event_id)',
                ExpressionAttributeNames={
                    '#p': self.PARTICIPANTS,
                    '#k': participant.key,
                },
                ExpressionAttributeValues={
                    ':participant': encode_participant(participant),
                },
            )
        except ClientError as e:
            if self._error_code(e) != 'ValidationException':
                raise self._translate(e, event_id)
            # Legacy record: participants missing or stored as a list
            self._rewrite_participants(
                event_id,
                lambda current: dedupe_participants(current + (participant,))
            )

        logger.info(f"Registered participant on event {event_id}")

    def remove_participant(self, event_id: str, participant: Participant) -> None:
        """
        Remove a participant from the event by lowercased email.

        Args:
            event_id: Event identifier
            participant: Participant to remove

        Raises:
            NotFound: If the record does not exist
        """
        try:
            self.table.update_item(
                Key={'event_id': event_id},
                UpdateExpression='REMOVE #p.#k',
                ConditionExpression='attribute_exists(event_id)',
                ExpressionAttributeNames={
                    '#p': self.PARTICIPANTS,
                    '#k': participant.key,
                },
            )
        except ClientError as e:
            if self._error_code(e) != 'ValidationException':
                raise self._translate(e, event_id)
            self._rewrite_participants(
                event_id,
                lambda current: tuple(p for p in current if p.key != participant.key)
            )

        logger.info(f"Removed participant from event {event_id}")

    def _rewrite_participants(
        self,
        event_id: str,
        mutate: Callable[[Tuple[Participant, ...]], Tuple[Participant, ...]]
    ) -> None:
        """
        Read, normalize and rewrite the participants attribute as a map.

        Args:
            event_id: Event identifier
            mutate: Function producing the new participant tuple
        """
        try:
            response = self.table.get_item(Key={'event_id': event_id})
        except ClientError as e:
            raise self._translate(e, event_id)

        item = response.get('Item')
        if item is None:
            raise NotFound(event_id)

        current = decode_participants(item.get(self.PARTICIPANTS))
        updated = mutate(current)
        logger.info(
            f"Rewriting legacy participants of event {event_id} "
            f"({len(current)} -> {len(updated)})"
        )

        try:
            self.table.update_item(
                Key={'event_id': event_id},
                UpdateExpression='SET #p = :participants',
                ConditionExpression='attribute_exists(event_id)',
                ExpressionAttributeNames={'#p': self.PARTICIPANTS},
                ExpressionAttributeValues={
                    ':participants': {
                        p.key: encode_participant(p) for p in updated
                    },
                },
            )
        except ClientError as e:
            raise self._translate(e, event_id)

    def _item_to_event(self, item: dict) -> Optional[Event]:
        """
        Convert DynamoDB item to Event object.

        Args:
            item: DynamoDB item dictionary

        Returns:
            Event object or None if conversion fails
        """
        try:
            return record_to_event(item, source=EventSource.USER)
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(f"Failed to convert item to Event: {e}")
            return None

    @staticmethod
    def _error_code(error: ClientError) -> str:
        return error.response.get('Error', {}).get('Code', '')

    def _translate(self, error: ClientError, event_id: Optional[str] = None) -> Exception:
        """
        Map a DynamoDB client error to the event error taxonomy.

        Args:
            error: Error raised by boto3
            event_id: Event the operation targeted

        Returns:
            Exception to raise; unknown errors are returned unchanged
        """
        code = self._error_code(error)
        if code == 'ConditionalCheckFailedException' and event_id is not None:
            return NotFound(event_id)
        if code in PERMISSION_ERROR_CODES:
            return PermissionDenied()
        return error
