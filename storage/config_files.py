"""Loaders for rule table and roster configuration files."""
import json
import logging
import re
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from processor.models import (
    DEFAULT_MATCH_DURATION,
    ClubRule,
    CompetitionTemplate,
    RosterEntry,
    RoundPattern,
    RuleTables,
)
from processor.title_rewriter import (
    GENDER_EXPANSIONS,
    GENDER_TOKEN,
    YEAR_TOKEN,
)

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Raised when a configuration file is missing or malformed."""


def _read_json(path: str) -> Dict[str, Any]:
    try:
        with open(path, encoding='utf-8') as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"Configuration file not found: {path}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Expected a JSON object in {path}")
    return data


def load_rule_tables(club_path: str, competition_path: str) -> RuleTables:
    """
    Load the rewrite rule tables.

    Args:
        club_path: Path to the club name mappings file
        competition_path: Path to the competition name mappings file

    Returns:
        RuleTables ready to pass to the transcoder

    Raises:
        ConfigError: If either file is missing or malformed
    """
    club_data = _read_json(club_path)
    competition_data = _read_json(competition_path)

    club_mappings = club_data.get('clubMappings')
    if not isinstance(club_mappings, dict):
        raise ConfigError(f"Missing 'clubMappings' object in {club_path}")

    try:
        clubs = tuple(
            ClubRule(full_name=str(full_name), code=str(code))
            for full_name, code in club_mappings.items()
        )
        competitions = tuple(
            CompetitionTemplate(
                pattern=str(item['pattern']),
                replacement=str(item['replacement']),
                duration=_optional_int(item.get('duration'))
            )
            for item in competition_data.get('competitionReplacements', [])
        )
        rounds = tuple(
            RoundPattern(
                regex=str(item['regex']),
                replacement=str(item['replacement'])
            )
            for item in competition_data.get('roundPatterns', [])
        )
        default_duration = int(
            competition_data.get('defaultMatchDuration', DEFAULT_MATCH_DURATION)
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ConfigError(f"Malformed rule entry in {competition_path}: {e}") from e

    logger.info(
        f"Loaded {len(clubs)} club mappings, {len(competitions)} competition "
        f"templates and {len(rounds)} round patterns"
    )
    return RuleTables(
        clubs=clubs,
        competitions=competitions,
        rounds=rounds,
        default_match_duration=default_duration
    )


def load_roster(path: str, rules: Optional[RuleTables] = None,
                year: Optional[int] = None) -> List[RosterEntry]:
    """
    Load roster entries from the competitions file.

    Entries without a match duration get one from the competition
    templates when ``rules`` is given.

    Args:
        path: Path to the competitions file
        rules: Rule tables used to resolve missing durations
        year: Value for {{YEAR}} when matching templates

    Returns:
        List of RosterEntry objects

    Raises:
        ConfigError: If the file is missing or malformed
    """
    data = _read_json(path)
    competitions = data.get('competitions')
    if not isinstance(competitions, list):
        raise ConfigError(
            f"Invalid competition data format in {path} - "
            f"missing competitions array"
        )

    entries = []
    for item in competitions:
        try:
            name = str(item['name'])
            source_team_ref = str(item['fixtureUrl'])
            duration = _optional_int(item.get('matchDuration'))
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigError(f"Malformed competition entry in {path}: {e}") from e

        if duration is None:
            if rules is not None:
                try:
                    duration = determine_match_duration(name, rules, year=year)
                except re.error as e:
                    raise ConfigError(
                        f"Invalid competition pattern for '{name}': {e}"
                    ) from e
            else:
                duration = DEFAULT_MATCH_DURATION

        entries.append(RosterEntry(
            name=name,
            source_team_ref=source_team_ref,
            ladder_ref=item.get('ladderUrl') or None,
            match_duration_minutes=duration,
            category=item.get('category', '') or '',
            publish_targets=_publish_targets(item.get('googleCalendar'))
        ))

    logger.info(f"Loaded {len(entries)} roster entries from {path}")
    return entries


def determine_match_duration(name: str, rules: RuleTables,
                             year: Optional[int] = None) -> int:
    """
    Match duration for a competition name.

    The first template with a duration whose expanded pattern matches the
    name (regex search, case-insensitive) wins; otherwise the table default
    applies.

    Raises:
        re.error: If a template pattern is not a valid regex
    """
    year_text = str(year if year is not None else date.today().year)

    for template in rules.competitions:
        if not template.duration:
            continue
        for candidate in _expand_pattern(template.pattern, year_text):
            if re.search(candidate, name, re.IGNORECASE):
                return template.duration

    return rules.default_match_duration


def _expand_pattern(pattern: str, year_text: str) -> Sequence[str]:
    pattern = pattern.replace(YEAR_TOKEN, year_text)
    if GENDER_TOKEN not in pattern:
        return [pattern]
    return [
        pattern.replace(GENDER_TOKEN, pattern_word)
        for pattern_word, _ in GENDER_EXPANSIONS
    ]


def _publish_targets(calendar_config: Any) -> tuple:
    if isinstance(calendar_config, dict) and calendar_config.get('calendarId'):
        return (str(calendar_config['calendarId']),)
    if isinstance(calendar_config, list):
        return tuple(
            str(item['calendarId']) for item in calendar_config
            if isinstance(item, dict) and item.get('calendarId')
        )
    return ()


def _optional_int(value: Any) -> Optional[int]:
    if value is None or value == '':
        return None
    return int(value)
