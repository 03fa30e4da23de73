"""DynamoDB publisher mirroring transcoded calendars per publish target."""
import logging
import time
from typing import Dict, List, Optional

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError
from icalendar import Calendar

from processor.models import PublishedEvent, SyncResult

logger = logging.getLogger(__name__)

LAST_UPDATED_PREFIX = 'Last Updated:'


class DynamoDBPublisher:
    """Publishes finished calendars to DynamoDB, one partition per target."""

    BATCH_SIZE = 25  # DynamoDB batch operation limit

    def __init__(self, table_name: str):
        """
        Initialize DynamoDB client and table reference.

        Args:
            table_name: Name of the DynamoDB table
        """
        self.table_name = table_name
        self.dynamodb = boto3.resource('dynamodb')
        self.table = self.dynamodb.Table(table_name)
        logger.info(f"Initialized DynamoDBPublisher for table: {table_name}")

    def publish(self, calendar_id: str, document: str) -> SyncResult:
        """
        Replace a target's event set with the events of a document.

        Args:
            calendar_id: Publish target identifier
            document: Finished iCal document

        Returns:
            SyncResult with counts of added, updated, deleted events

        Raises:
            ValueError: If the document cannot be read
            ClientError: If the target's current events cannot be read
        """
        events = self.read_document(calendar_id, document)
        return self.sync_events(calendar_id, events)

    def read_document(self, calendar_id: str,
                      document: str) -> List[PublishedEvent]:
        """
        Read the events of a finished document.

        Args:
            calendar_id: Publish target identifier
            document: Finished iCal document

        Returns:
            List of PublishedEvent objects in document order
        """
        calendar = Calendar.from_ical(document)
        last_updated = int(time.time())
        events = []

        for component in calendar.walk('VEVENT'):
            location = component.get('LOCATION')
            events.append(PublishedEvent(
                calendar_id=calendar_id,
                uid=str(component['UID']),
                title=str(component.get('SUMMARY', '')),
                description=str(component.get('DESCRIPTION', '')),
                start=component['DTSTART'].to_ical().decode('utf-8'),
                end=component['DTEND'].to_ical().decode('utf-8'),
                location=str(location) if location else None,
                last_updated=last_updated
            ))

        return events

    def get_target_events(self, calendar_id: str) -> Dict[str, PublishedEvent]:
        """
        Retrieve all stored events of a publish target.

        Args:
            calendar_id: Publish target identifier

        Returns:
            Dictionary mapping uid to PublishedEvent objects
        """
        logger.info(f"Querying stored events for calendar: {calendar_id}")
        events = {}

        try:
            response = self.table.query(
                KeyConditionExpression=Key('calendar_id').eq(calendar_id)
            )
            items = response.get('Items', [])

            # Handle pagination
            while 'LastEvaluatedKey' in response:
                response = self.table.query(
                    KeyConditionExpression=Key('calendar_id').eq(calendar_id),
                    ExclusiveStartKey=response['LastEvaluatedKey']
                )
                items.extend(response.get('Items', []))

            for item in items:
                event = self._item_to_published_event(item)
                if event:
                    events[event.uid] = event

            logger.info(f"Retrieved {len(events)} stored events for {calendar_id}")
            return events

        except ClientError as e:
            logger.error(f"Error querying DynamoDB table: {e}")
            raise

    def sync_events(self, calendar_id: str,
                    new_events: List[PublishedEvent]) -> SyncResult:
        """
        Synchronize a target's stored events with a new event set.

        Events missing from the new set are deleted, so after a successful
        sync the target holds exactly ``new_events``.

        Args:
            calendar_id: Publish target identifier
            new_events: Events of the latest document

        Returns:
            SyncResult with counts of added, updated, deleted events
        """
        logger.info(
            f"Starting sync for {calendar_id} with {len(new_events)} events"
        )
        errors = []

        existing_events = self.get_target_events(calendar_id)
        new_events_dict = {event.uid: event for event in new_events}

        events_to_add = [
            event for uid, event in new_events_dict.items()
            if uid not in existing_events
        ]

        events_to_update = [
            event for uid, event in new_events_dict.items()
            if uid in existing_events and
            self._events_differ(event, existing_events[uid])
        ]

        uids_to_delete = [
            uid for uid in existing_events.keys()
            if uid not in new_events_dict
        ]

        logger.info(
            f"Sync plan: {len(events_to_add)} to add, "
            f"{len(events_to_update)} to update, "
            f"{len(uids_to_delete)} to delete"
        )

        added_count = 0
        updated_count = 0
        deleted_count = 0

        if events_to_add or events_to_update:
            write_count = self.batch_write_events(
                events_to_add + events_to_update, errors
            )
            added_count = min(write_count, len(events_to_add))
            updated_count = write_count - added_count

        if uids_to_delete:
            deleted_count = self.batch_delete_events(
                calendar_id, uids_to_delete, errors
            )

        logger.info(
            f"Sync complete for {calendar_id}: {added_count} added, "
            f"{updated_count} updated, {deleted_count} deleted"
        )

        return SyncResult(
            added=added_count,
            updated=updated_count,
            deleted=deleted_count,
            errors=errors
        )

    def batch_write_events(self, events: List[PublishedEvent],
                           errors: Optional[List[str]] = None) -> int:
        """
        Write events to DynamoDB in batches of 25 items.

        Args:
            events: List of PublishedEvent objects to write
            errors: List that batch error messages are appended to

        Returns:
            Count of successfully written events
        """
        if not events:
            return 0

        logger.info(f"Writing {len(events)} events to DynamoDB")
        success_count = 0

        for i in range(0, len(events), self.BATCH_SIZE):
            batch = events[i:i + self.BATCH_SIZE]

            try:
                with self.table.batch_writer() as writer:
                    for event in batch:
                        writer.put_item(Item=self._published_event_to_item(event))
                success_count += len(batch)

            except ClientError as e:
                error_msg = f"Error writing batch {i // self.BATCH_SIZE + 1}: {e}"
                logger.error(error_msg)
                if errors is not None:
                    errors.append(error_msg)
                # Continue processing remaining batches
                continue

        logger.info(f"Successfully wrote {success_count} events")
        return success_count

    def batch_delete_events(self, calendar_id: str, uids: List[str],
                            errors: Optional[List[str]] = None) -> int:
        """
        Delete a target's events from DynamoDB in batches of 25 items.

        Args:
            calendar_id: Publish target identifier
            uids: Event UIDs to delete
            errors: List that batch error messages are appended to

        Returns:
            Count of successfully deleted events
        """
        if not uids:
            return 0

        logger.info(f"Deleting {len(uids)} events from {calendar_id}")
        success_count = 0

        for i in range(0, len(uids), self.BATCH_SIZE):
            batch = uids[i:i + self.BATCH_SIZE]

            try:
                with self.table.batch_writer() as writer:
                    for uid in batch:
                        writer.delete_item(
                            Key={'calendar_id': calendar_id, 'uid': uid}
                        )
                success_count += len(batch)

            except ClientError as e:
                error_msg = f"Error deleting batch {i // self.BATCH_SIZE + 1}: {e}"
                logger.error(error_msg)
                if errors is not None:
                    errors.append(error_msg)
                continue

        logger.info(f"Successfully deleted {success_count} events")
        return success_count

    def _item_to_published_event(self, item: dict) -> PublishedEvent:
        try:
            return PublishedEvent(
                calendar_id=item['calendar_id'],
                uid=item['uid'],
                title=item['title'],
                description=item['description'],
                start=item['start'],
                end=item['end'],
                location=item.get('location'),
                last_updated=int(item['last_updated'])
            )
        except (KeyError, ValueError) as e:
            logger.warning(f"Failed to convert item to PublishedEvent: {e}")
            return None

    def _published_event_to_item(self, event: PublishedEvent) -> dict:
        item = {
            'calendar_id': event.calendar_id,
            'uid': event.uid,
            'title': event.title,
            'description': event.description,
            'start': event.start,
            'end': event.end,
            'last_updated': event.last_updated
        }

        if event.location:
            item['location'] = event.location

        return item

    def _events_differ(self, event1: PublishedEvent,
                       event2: PublishedEvent) -> bool:
        """
        Compare two PublishedEvent objects, ignoring last_updated and the
        "Last Updated" line each run writes into the description.
        """
        return (
            event1.title != event2.title or
            _stable_description(event1.description) !=
            _stable_description(event2.description) or
            event1.start != event2.start or
            event1.end != event2.end or
            event1.location != event2.location
        )


def _stable_description(description: str) -> str:
    return '\n'.join(
        line for line in description.split('\n')
        if not line.startswith(LAST_UPDATED_PREFIX)
    )
