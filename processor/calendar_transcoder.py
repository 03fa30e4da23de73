"""Calendar transcoder: source iCal feed in, cleaned and enriched iCal out."""
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from icalendar import (
    Calendar,
    Event,
    Timezone,
    TimezoneDaylight,
    TimezoneStandard,
)
from icalendar.parser import Contentlines

from processor.civil_time import (
    MELBOURNE_TZID,
    CivilTimeError,
    parse_civil,
    resolve_end,
)
from processor.models import (
    RawEvent,
    RosterEntry,
    RuleTables,
    TranscodeResult,
    TransformedEvent,
)
from processor.round_classifier import classify_round, find_max_regular_round
from processor.title_rewriter import TitleRewriter

logger = logging.getLogger(__name__)

PRODID = '-//Hockey Victoria Calendar Scraper//EN'
ROUND_BASE_URL = 'https://www.hockeyvictoria.org.au/games/'
LADDER_ID_PATTERN = re.compile(r'/pointscore/(\d+/\d+)')


class CalendarParseError(ValueError):
    """Raised when the source document is not a readable calendar."""


class CalendarTranscoder:
    """Turns a source team calendar into the published calendar."""

    def __init__(self, rules: RuleTables,
                 footer_links: Sequence[Tuple[str, str]] = (),
                 year: Optional[int] = None):
        """
        Initialize the transcoder.

        Args:
            rules: Rewrite rule tables, read-only and shareable
            footer_links: (label, url) pairs appended to every description
            year: Value for {{YEAR}} in competition templates
                (default: current year)
        """
        self.rewriter = TitleRewriter(rules, year=year)
        self.footer_links = tuple(footer_links)

    def transcode(self, raw_document: Union[str, bytes], roster: RosterEntry,
                  updated_at: Optional[datetime] = None) -> TranscodeResult:
        """
        Transcode one source calendar document.

        Events with a missing UID, a missing or unreadable start time, or an
        end time that cannot be resolved are dropped and counted; everything
        else is emitted in input order.

        Args:
            raw_document: Source calendar text
            roster: Roster entry the calendar belongs to
            updated_at: Timestamp for the "Last Updated" line
                (default: now, UTC)

        Returns:
            TranscodeResult with the output document and drop count

        Raises:
            CalendarParseError: If the document cannot be parsed at all
        """
        raw_events = self.parse_events(raw_document)
        if updated_at is None:
            updated_at = datetime.now(timezone.utc)

        # Pre-pass over every title before any per-event work
        max_regular_round = find_max_regular_round(
            event.title for event in raw_events
        )

        events = []
        dropped = 0
        for raw_event in raw_events:
            event = self._transform_event(
                raw_event, roster, max_regular_round, updated_at
            )
            if event is None:
                dropped += 1
                continue
            events.append(event)

        document = self.serialize(roster, events)

        logger.info(
            f"Transcoded calendar '{roster.name}': {len(events)} events kept, "
            f"{dropped} dropped out of {len(raw_events)}"
        )
        return TranscodeResult(
            document=document,
            events=events,
            dropped=dropped,
            max_regular_round=max_regular_round
        )

    def parse_events(self, raw_document: Union[str, bytes]) -> List[RawEvent]:
        """
        Parse the source document into raw event records.

        The start time is kept as the literal text of the DTSTART line, so
        that the wall-clock fields are never reinterpreted through a zone.

        Args:
            raw_document: Source calendar text

        Returns:
            List of RawEvent objects in document order

        Raises:
            CalendarParseError: If the document cannot be parsed at all
        """
        try:
            if isinstance(raw_document, bytes):
                text = raw_document.decode('utf-8')
            else:
                text = raw_document
            calendar = Calendar.from_ical(text)
        except Exception as e:
            raise CalendarParseError(
                f"Unable to parse calendar document: {e}"
            ) from e

        if calendar.name != 'VCALENDAR':
            raise CalendarParseError(
                f"Expected a VCALENDAR document, found {calendar.name}"
            )

        components = calendar.walk('VEVENT')
        start_literals = _start_literals(text)
        if len(components) != len(start_literals):
            raise CalendarParseError(
                f"Found {len(components)} events but {len(start_literals)} "
                f"event blocks"
            )

        raw_events = []
        for component, (literal, tzid) in zip(components, start_literals):
            uid = component.get('UID')
            location = component.get('LOCATION')
            raw_events.append(RawEvent(
                uid=str(uid) if uid else None,
                title=str(component.get('SUMMARY', '')),
                start_literal=literal,
                start_tzid=tzid,
                location=str(location) if location else None
            ))
        return raw_events

    def _transform_event(self, raw_event: RawEvent, roster: RosterEntry,
                         max_regular_round: int,
                         updated_at: datetime) -> Optional[TransformedEvent]:
        label = raw_event.title or 'Unknown'

        if not raw_event.uid:
            logger.warning(f"Skipping event missing required field uid: {label}")
            return None

        if not raw_event.start_literal:
            logger.warning(
                f"Skipping event missing required field start: {label}"
            )
            return None

        try:
            start = parse_civil(raw_event.start_literal)
        except CivilTimeError as e:
            logger.warning(f"Skipping event with invalid start '{label}': {e}")
            return None

        if raw_event.start_tzid and raw_event.start_tzid != MELBOURNE_TZID:
            logger.warning(
                f"Event '{label}' declares TZID {raw_event.start_tzid}; "
                f"treating its start as {MELBOURNE_TZID} wall-clock time"
            )

        title = self.rewriter.rewrite(raw_event.title)
        round_number = classify_round(raw_event.title, max_regular_round)
        description = self.build_description(roster, round_number, updated_at)

        try:
            end = resolve_end(start, roster.match_duration_minutes)
        except CivilTimeError as e:
            logger.warning(
                f"Skipping event with invalid time range '{title}': {e}"
            )
            return None

        return TransformedEvent(
            uid=raw_event.uid,
            title=title,
            description=description,
            start=start,
            end=end,
            location=raw_event.location,
            round_number=round_number
        )

    def build_description(self, roster: RosterEntry,
                          round_number: Optional[int],
                          updated_at: datetime) -> str:
        """
        Build the description block for an event.

        Args:
            roster: Roster entry providing fixture and ladder URLs
            round_number: Classified round, None for finals and unknown
            updated_at: Timestamp for the "Last Updated" line

        Returns:
            Description text, paragraphs separated by blank lines
        """
        parts = [f"Full Fixture: {roster.source_team_ref}"]

        if roster.ladder_ref:
            parts.append(f"Ladder: {roster.ladder_ref}")

        round_url = build_round_url(roster.ladder_ref, round_number)
        if round_url:
            parts.append(f"Current Round: {round_url}")

        for label, url in self.footer_links:
            parts.append(f"{label}: {url}")

        stamp = updated_at.astimezone(timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ')
        parts.append(f"Last Updated: {stamp}")

        return '\n\n'.join(parts)

    def serialize(self, roster: RosterEntry,
                  events: Iterable[TransformedEvent]) -> str:
        """
        Serialize transformed events into an iCal document.

        Args:
            roster: Roster entry, used for the calendar name
            events: Events to emit, in order

        Returns:
            iCal document text
        """
        calendar = Calendar()
        calendar.add('prodid', PRODID)
        calendar.add('version', '2.0')
        calendar.add('calscale', 'GREGORIAN')
        calendar.add('method', 'PUBLISH')
        calendar.add('x-wr-calname', roster.name)
        calendar.add('x-wr-timezone', MELBOURNE_TZID)
        calendar.add_component(build_melbourne_timezone())

        for event in events:
            vevent = Event()
            vevent.add('uid', event.uid)
            vevent.add(
                'dtstart', event.start.to_datetime(),
                parameters={'TZID': MELBOURNE_TZID}
            )
            vevent.add(
                'dtend', event.end.to_datetime(),
                parameters={'TZID': MELBOURNE_TZID}
            )
            vevent.add('summary', event.title)
            vevent.add('description', event.description)
            if event.location:
                vevent.add('location', event.location)
            calendar.add_component(vevent)

        return calendar.to_ical().decode('utf-8')


def build_round_url(ladder_ref: Optional[str],
                    round_number: Optional[int]) -> Optional[str]:
    """Round page URL derived from the ladder URL, or None."""
    if not ladder_ref or round_number is None:
        return None

    match = LADDER_ID_PATTERN.search(ladder_ref)
    if not match:
        return None

    return f"{ROUND_BASE_URL}{match.group(1)}/round/{round_number}"


def build_melbourne_timezone() -> Timezone:
    """VTIMEZONE for Australia/Melbourne (AEST/AEDT)."""
    standard = TimezoneStandard()
    standard.add('dtstart', datetime(2007, 4, 1, 3, 0, 0))
    standard.add('rrule', {'freq': 'yearly', 'bymonth': 4, 'byday': '1SU'})
    standard.add('tzname', 'AEST')
    standard.add('tzoffsetfrom', timedelta(hours=11))
    standard.add('tzoffsetto', timedelta(hours=10))

    daylight = TimezoneDaylight()
    daylight.add('dtstart', datetime(2007, 10, 7, 2, 0, 0))
    daylight.add('rrule', {'freq': 'yearly', 'bymonth': 10, 'byday': '1SU'})
    daylight.add('tzname', 'AEDT')
    daylight.add('tzoffsetfrom', timedelta(hours=10))
    daylight.add('tzoffsetto', timedelta(hours=11))

    tz = Timezone()
    tz.add('tzid', MELBOURNE_TZID)
    tz.add_component(standard)
    tz.add_component(daylight)
    return tz


def _start_literals(text: str) -> List[Tuple[Optional[str], Optional[str]]]:
    """
    Literal DTSTART value and TZID for every VEVENT block, in order.

    Only the event's own DTSTART counts, not one inside a nested
    component such as VALARM. Blocks without a DTSTART line yield
    (None, None).
    """
    literals = []
    current = None
    depth = 0

    for line in Contentlines.from_ical(text):
        if not line:
            continue
        try:
            name, params, value = line.parts()
        except ValueError:
            continue

        name = name.upper()
        if name == 'BEGIN' and value.upper() == 'VEVENT':
            current = [None, None]
            depth = 0
        elif current is None:
            continue
        elif name == 'BEGIN':
            depth += 1
        elif name == 'END' and depth:
            depth -= 1
        elif name == 'END' and value.upper() == 'VEVENT':
            literals.append(tuple(current))
            current = None
        elif name == 'DTSTART' and depth == 0 and current[0] is None:
            current[0] = value.strip()
            current[1] = params.get('TZID')

    return literals


def transcode(raw_document: Union[str, bytes], roster: RosterEntry,
              rules: RuleTables,
              footer_links: Sequence[Tuple[str, str]] = (),
              updated_at: Optional[datetime] = None,
              year: Optional[int] = None) -> TranscodeResult:
    """Transcode a document with explicitly passed rule tables."""
    transcoder = CalendarTranscoder(rules, footer_links=footer_links, year=year)
    return transcoder.transcode(raw_document, roster, updated_at=updated_at)
