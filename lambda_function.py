"""AWS Lambda handler for Hockey Victoria Calendar Sync."""
import json
import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Any, List, Optional, Tuple

from scraper.calendar_fetcher import CalendarFetcher
from processor.calendar_transcoder import CalendarTranscoder
from processor.models import RosterEntry, RunSummary, TranscodeResult
from storage.config_files import load_roster, load_rule_tables
from storage.dynamodb_publisher import DynamoDBPublisher


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data)


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


def fetch_and_transcode(
    entry: RosterEntry,
    fetcher: CalendarFetcher,
    transcoder: CalendarTranscoder
) -> Tuple[RosterEntry, Optional[TranscodeResult], Optional[str]]:
    """
    Fetch one roster entry's calendar and transcode it.

    Returns:
        (entry, result, error); result is None when the entry failed
    """
    logger = logging.getLogger(__name__)
    try:
        raw_document = fetcher.fetch_calendar(entry.source_team_ref)
        result = transcoder.transcode(raw_document, entry)
        return entry, result, None
    except Exception as e:
        logger.error(
            f"Failed to process '{entry.name}': {str(e)}",
            extra={'error_type': type(e).__name__}
        )
        return entry, None, f"{entry.name}: {type(e).__name__}: {e}"


def run_roster(
    entries: List[RosterEntry],
    fetcher: CalendarFetcher,
    transcoder: CalendarTranscoder,
    publisher: DynamoDBPublisher,
    max_concurrent: int = 5
) -> RunSummary:
    """
    Fetch, transcode and publish every roster entry.

    Fetching and transcoding run on a thread pool; publishing runs
    sequentially on the calling thread.

    Args:
        entries: Roster entries to process
        fetcher: Raw calendar source
        transcoder: Calendar transcoder with loaded rule tables
        publisher: Publishing sink
        max_concurrent: Worker threads for fetch and transcode

    Returns:
        RunSummary with totals for the run
    """
    logger = logging.getLogger(__name__)
    summary = RunSummary()

    with ThreadPoolExecutor(max_workers=max(1, max_concurrent)) as pool:
        outcomes = list(pool.map(
            lambda entry: fetch_and_transcode(entry, fetcher, transcoder),
            entries
        ))

    for entry, result, error in outcomes:
        if result is None:
            summary.entries_failed += 1
            summary.errors.append(error)
            continue

        summary.entries_processed += 1
        summary.events_dropped += result.dropped

        if result.dropped:
            logger.warning(
                f"Dropped {result.dropped} events from '{entry.name}'"
            )

        if not entry.publish_targets:
            logger.info(f"No publish target for '{entry.name}', skipping publish")
            continue

        for calendar_id in entry.publish_targets:
            try:
                sync_result = publisher.publish(calendar_id, result.document)
            except Exception as e:
                logger.error(
                    f"Failed to publish '{entry.name}' to {calendar_id}: {str(e)}",
                    extra={'error_type': type(e).__name__},
                    exc_info=True
                )
                summary.errors.append(
                    f"{entry.name} -> {calendar_id}: {type(e).__name__}: {e}"
                )
                continue

            summary.events_published += len(result.events)
            summary.added += sync_result.added
            summary.updated += sync_result.updated
            summary.deleted += sync_result.deleted
            summary.errors.extend(sync_result.errors)

    return summary


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler function for Hockey Victoria Calendar Sync.

    Args:
        event: EventBridge event payload; an optional "competition" key
            limits the run to one roster entry
        context: Lambda context object

    Returns:
        Response dict with statusCode and summary statistics
    """
    # Read configuration from environment variables
    table_name = os.environ.get('TABLE_NAME', 'hockey-calendar-events')
    log_level = os.environ.get('LOG_LEVEL', 'INFO')
    timeout_seconds = int(os.environ.get('TIMEOUT_SECONDS', '30'))
    max_concurrent = int(os.environ.get('MAX_CONCURRENT', '5'))
    roster_file = os.environ.get('ROSTER_FILE', 'config/competitions.json')
    club_mappings_file = os.environ.get(
        'CLUB_MAPPINGS_FILE', 'config/mappings-club-names.json'
    )
    competition_mappings_file = os.environ.get(
        'COMPETITION_MAPPINGS_FILE', 'config/mappings-competition-names.json'
    )
    calendars_homepage = os.environ.get('CALENDARS_HOMEPAGE')

    # Initialize logging
    setup_logging(log_level)
    logger = logging.getLogger(__name__)

    start_time = time.time()
    logger.info(
        f"Lambda execution started",
        extra={
            'table_name': table_name,
            'roster_file': roster_file,
            'max_concurrent': max_concurrent
        }
    )

    try:
        # Load rule tables and roster once for the whole run
        try:
            logger.info("Loading configuration")
            rules = load_rule_tables(club_mappings_file, competition_mappings_file)
            entries = load_roster(roster_file, rules=rules)
        except Exception as e:
            logger.error(
                f"Failed to load configuration: {str(e)}",
                extra={'error_type': type(e).__name__},
                exc_info=True
            )
            duration = time.time() - start_time
            return {
                'statusCode': 500,
                'body': json.dumps({
                    'message': 'Failed to load configuration',
                    'error': str(e),
                    'error_type': type(e).__name__,
                    'duration_seconds': round(duration, 2)
                })
            }

        competition = (event or {}).get('competition')
        if competition:
            entries = [
                entry for entry in entries
                if entry.name.lower() == competition.lower()
            ]
            if not entries:
                logger.warning(f"Competition not found in roster: {competition}")

        footer_links = []
        if calendars_homepage:
            footer_links.append(('Calendars Homepage', calendars_homepage))

        fetcher = CalendarFetcher(timeout=timeout_seconds)
        transcoder = CalendarTranscoder(rules, footer_links=footer_links)
        publisher = DynamoDBPublisher(table_name=table_name)

        logger.info(f"Processing {len(entries)} roster entries")
        summary = run_roster(
            entries, fetcher, transcoder, publisher,
            max_concurrent=max_concurrent
        )

        duration = time.time() - start_time

        logger.info(
            f"Lambda execution completed successfully",
            extra={
                'duration_seconds': round(duration, 2),
                'entries_processed': summary.entries_processed,
                'entries_failed': summary.entries_failed,
                'events_dropped': summary.events_dropped,
                'errors': summary.errors
            }
        )

        return {
            'statusCode': 200,
            'body': json.dumps({
                'message': 'Sync completed successfully',
                'statistics': {
                    'entries_processed': summary.entries_processed,
                    'entries_failed': summary.entries_failed,
                    'events_published': summary.events_published,
                    'events_dropped': summary.events_dropped,
                    'events_added': summary.added,
                    'events_updated': summary.updated,
                    'events_deleted': summary.deleted,
                    'duration_seconds': round(duration, 2)
                },
                'errors': summary.errors
            })
        }

    except Exception as e:
        duration = time.time() - start_time

        logger.error(
            f"Lambda execution failed: {str(e)}",
            extra={
                'duration_seconds': round(duration, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )

        return {
            'statusCode': 500,
            'body': json.dumps({
                'message': 'Sync failed',
                'error': str(e),
                'error_type': type(e).__name__,
                'duration_seconds': round(duration, 2)
            })
        }
