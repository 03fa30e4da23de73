"""Data models for calendar processing."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple


DEFAULT_MATCH_DURATION = 90


@dataclass(frozen=True)
class RosterEntry:
    """One followed team/competition."""
    name: str
    source_team_ref: str
    ladder_ref: Optional[str] = None
    match_duration_minutes: int = DEFAULT_MATCH_DURATION
    category: str = ''
    publish_targets: Tuple[str, ...] = ()


@dataclass(frozen=True)
class CivilTime:
    """Wall-clock date and time, independent of any UTC offset."""
    year: int
    month: int
    day: int
    hour: int
    minute: int
    second: int = 0

    def to_datetime(self) -> datetime:
        return datetime(
            self.year, self.month, self.day,
            self.hour, self.minute, self.second
        )

    @classmethod
    def from_datetime(cls, value: datetime) -> 'CivilTime':
        return cls(
            year=value.year,
            month=value.month,
            day=value.day,
            hour=value.hour,
            minute=value.minute,
            second=value.second
        )


@dataclass
class RawEvent:
    """Event block as parsed from the source calendar."""
    uid: Optional[str]
    title: str
    start_literal: Optional[str]
    start_tzid: Optional[str]
    location: Optional[str]


@dataclass
class TransformedEvent:
    """Event after rewrite, classification and time resolution."""
    uid: str
    title: str
    description: str
    start: CivilTime
    end: CivilTime
    location: Optional[str]
    round_number: Optional[int]


@dataclass(frozen=True)
class ClubRule:
    """Club full name to short code."""
    full_name: str
    code: str


@dataclass(frozen=True)
class CompetitionTemplate:
    """Competition name pattern with optional {{YEAR}}/{{GENDER}} tokens."""
    pattern: str
    replacement: str
    duration: Optional[int] = None


@dataclass(frozen=True)
class RoundPattern:
    """Round label regex and its replacement."""
    regex: str
    replacement: str


@dataclass(frozen=True)
class RuleTables:
    """Read-only rewrite rule tables, shared between calls."""
    clubs: Tuple[ClubRule, ...] = ()
    competitions: Tuple[CompetitionTemplate, ...] = ()
    rounds: Tuple[RoundPattern, ...] = ()
    default_match_duration: int = DEFAULT_MATCH_DURATION


@dataclass
class TranscodeResult:
    """Result of transcoding one source calendar."""
    document: str
    events: List[TransformedEvent]
    dropped: int
    max_regular_round: int


@dataclass
class PublishedEvent:
    """Event as stored for a publish target."""
    calendar_id: str
    uid: str
    title: str
    description: str
    start: str
    end: str
    location: Optional[str]
    last_updated: int


@dataclass
class SyncResult:
    """Result of sync operation."""
    added: int
    updated: int
    deleted: int
    errors: list[str]


@dataclass
class RunSummary:
    """Totals for one run over the roster."""
    entries_processed: int = 0
    entries_failed: int = 0
    events_published: int = 0
    events_dropped: int = 0
    added: int = 0
    updated: int = 0
    deleted: int = 0
    errors: List[str] = field(default_factory=list)
