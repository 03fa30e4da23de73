"""Title rewriting for fixture events.

Rewrites run as ordered stages: club names, competition templates, round
labels, then gender-prefix inference. Later stages match tokens that earlier
stages introduce, so the order must not change.
"""
import logging
import re
from datetime import date
from typing import List, Optional, Pattern, Tuple

from processor.models import RuleTables

logger = logging.getLogger(__name__)

YEAR_TOKEN = '{{YEAR}}'
GENDER_TOKEN = '{{GENDER}}'

# (pattern word, replacement word) for each {{GENDER}} expansion
GENDER_EXPANSIONS = (
    ("Men's", 'Men'),
    ("Women's", 'Women'),
)

WOMEN_MARKER = re.compile(r"\b(?:wom[ae]n(?:'?s)?|girls?)\b", re.IGNORECASE)
MEN_MARKER = re.compile(r"\b(?:men(?:'?s)?|boys?)\b", re.IGNORECASE)

GENDER_LEAD = re.compile(r'^(?:Men|Women)\b')
SHORT_CODE = re.compile(r'^[A-Za-z][A-Za-z0-9]{1,3}$')
# Age-group codes such as U12B or U14G already name the gender
GENDERED_CODE = re.compile(r'^U\d{1,2}[BGM]$', re.IGNORECASE)
INDOOR_LABEL = re.compile(r'^Indoor\s*(?:League\s*)?(\d+)$', re.IGNORECASE)
SEGMENT_SEPARATOR = ' - '

_WHITESPACE = re.compile(r'\s+')


def normalize_whitespace(text: str) -> str:
    return _WHITESPACE.sub(' ', text).strip()


def detect_gender(title: str) -> Optional[str]:
    """
    Detect the gender a title refers to.

    Args:
        title: Original, pre-rewrite title

    Returns:
        "Women", "Men", or None when the title has no marker
    """
    if WOMEN_MARKER.search(title):
        return 'Women'
    if MEN_MARKER.search(title):
        return 'Men'
    return None


class TitleRewriter:
    """Applies rewrite rule tables to event titles."""

    def __init__(self, rules: RuleTables, year: Optional[int] = None):
        """
        Compile the rule tables.

        Args:
            rules: Rewrite rule tables
            year: Value for {{YEAR}} (default: current year)

        Raises:
            re.error: If a competition or round pattern is not a valid regex
        """
        self.rules = rules
        self.year = str(year if year is not None else date.today().year)

        self._club_rules = [
            (
                re.compile(
                    re.escape(rule.full_name) + r'(?:[ \t]+([A-Za-z0-9]+)\b)?'
                ),
                rule.code
            )
            for rule in rules.clubs
        ]
        self._competition_rules = self._compile_competition_templates()
        self._round_rules = [
            (re.compile(pattern.regex), pattern.replacement)
            for pattern in rules.rounds
        ]

    def _compile_competition_templates(self) -> List[Tuple[Pattern, str]]:
        compiled = []
        for template in self.rules.competitions:
            pattern = template.pattern.replace(YEAR_TOKEN, self.year)
            replacement = template.replacement.replace(YEAR_TOKEN, self.year)

            if GENDER_TOKEN in pattern:
                for pattern_word, replacement_word in GENDER_EXPANSIONS:
                    compiled.append((
                        re.compile(pattern.replace(GENDER_TOKEN, pattern_word)),
                        replacement.replace(GENDER_TOKEN, replacement_word)
                    ))
            else:
                compiled.append((re.compile(pattern), replacement))
        return compiled

    def rewrite(self, title: str) -> str:
        """
        Rewrite a title through every stage.

        Args:
            title: Title as published by the source

        Returns:
            Rewritten title with single-spaced whitespace
        """
        original = title or ''
        result = self.replace_club_names(original)
        result = self.replace_competition_names(result)
        result = self.replace_round_labels(result)
        result = self.add_gender_prefix(result, original)
        return normalize_whitespace(result)

    def replace_club_names(self, text: str) -> str:
        """Replace club full names with codes, keeping team-number suffixes."""
        result = text
        fired = False

        for pattern, code in self._club_rules:
            def _substitute(match, code=code):
                suffix = match.group(1)
                return f"{code} {suffix}" if suffix else code

            result, count = pattern.subn(_substitute, result)
            fired = fired or count > 0

        if not fired:
            logger.warning(f"No club name mappings found for: \"{text}\"")

        return result

    def replace_competition_names(self, text: str) -> str:
        result = text
        fired = False

        for pattern, replacement in self._competition_rules:
            result, count = pattern.subn(replacement, result)
            fired = fired or count > 0

        if not fired:
            logger.warning(
                f"No competition name mappings found for: \"{text}\""
            )

        return result

    def replace_round_labels(self, text: str) -> str:
        result = text
        for pattern, replacement in self._round_rules:
            result = pattern.sub(replacement, result)
        return result

    def add_gender_prefix(self, text: str, original: str) -> str:
        """
        Prefix an ambiguous competition code with the gender it refers to.

        The competition segment is the text up to the first " - ". Short
        codes (2-4 characters) and "Indoor N" labels carry no gender of
        their own, so the gender found in the original title is prepended.
        Age-group codes that end in a gender letter are left alone.
        "Indoor N" is also expanded to "Indoor League N".

        Args:
            text: Title after the earlier stages
            original: Original, pre-rewrite title

        Returns:
            Title with the prefix applied where needed
        """
        text = normalize_whitespace(text)
        segment, separator, rest = text.partition(SEGMENT_SEPARATOR)

        if GENDER_LEAD.match(segment):
            return text

        gender = detect_gender(original)
        indoor = INDOOR_LABEL.match(segment)

        if indoor:
            segment = f"Indoor League {indoor.group(1)}"
        elif not SHORT_CODE.match(segment) or GENDERED_CODE.match(segment):
            return text

        if gender:
            segment = f"{gender} {segment}"

        return f"{segment}{separator}{rest}"


def rewrite_title(title: str, rules: RuleTables,
                  year: Optional[int] = None) -> str:
    """Rewrite a single title with the given rule tables."""
    return TitleRewriter(rules, year=year).rewrite(title)
