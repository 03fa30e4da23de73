"""Round classification for fixture titles."""
import logging
import re
from typing import Iterable, Optional

logger = logging.getLogger(__name__)

ROUND_PATTERN = re.compile(r'\b(?:Round|Rd)\s+(\d+)\b', re.IGNORECASE)

FINALS_STAGES = (
    'Elimination Final',
    'Semi Final',
    'Preliminary Final',
    'Grand Final',
)


def classify_round(title: str, max_regular_round: int = 0) -> Optional[int]:
    """
    Work out which numbered round a fixture belongs to.

    Finals stages and titles without a round token give None, so no
    "current round" link is attached for them. ``max_regular_round`` is
    accepted for callers that bound round links; it does not change the
    answer.

    Args:
        title: Original event title
        max_regular_round: Highest numbered round in the same document

    Returns:
        Round number, or None for finals and unknown shapes
    """
    match = ROUND_PATTERN.search(title or '')
    if match:
        return int(match.group(1))

    if is_finals_stage(title):
        logger.debug(f"Finals fixture, no round link: {title}")

    return None


def is_finals_stage(title: str) -> bool:
    title_lower = (title or '').lower()
    return any(stage.lower() in title_lower for stage in FINALS_STAGES)


def find_max_regular_round(titles: Iterable[str]) -> int:
    """Highest numbered round across all titles, 0 if none."""
    max_round = 0
    for title in titles:
        match = ROUND_PATTERN.search(title or '')
        if match:
            max_round = max(max_round, int(match.group(1)))
    return max_round
