"""Proficiency level classification for vocabulary entries."""
import logging
from typing import Any, List, Optional, Tuple

from sveord.config import CEFR_LEVELS, UNKNOWN_LEVEL
from sveord.models.word_models import get_field

logger = logging.getLogger(__name__)

LEVEL_ORDER = {level: index for index, level in enumerate(CEFR_LEVELS + [UNKNOWN_LEVEL], start=1)}
ALL_LEVELS = CEFR_LEVELS + [UNKNOWN_LEVEL]

# Rank bands for the frequency and Sidor word lists: (upper bound, level)
FREQUENCY_BANDS: List[Tuple[int, str]] = [
    (1500, "A1"),
    (3000, "A2"),
    (5000, "B1"),
    (7000, "B2"),
    (9000, "C1"),
]
SIDOR_BANDS: List[Tuple[int, str]] = [
    (600, "A1"),
    (1200, "A2"),
    (1800, "B1"),
    (2400, "B2"),
    (3000, "C1"),
]


def _recognized(tag: Any) -> Optional[str]:
    if isinstance(tag, str) and tag.strip().upper() in CEFR_LEVELS:
        return tag.strip().upper()
    return None


def _level_for_rank(rank: Any, bands: List[Tuple[int, str]]) -> Optional[str]:
    if isinstance(rank, bool):
        return None
    try:
        rank = int(rank)
    except (TypeError, ValueError, OverflowError):
        return None
    if rank < 1:
        return None
    for upper, level in bands:
        if rank <= upper:
            return level
    return "C2"


def classify(entry: Any) -> str:
    """Return the level tag of a word; never raises.

    Looks at the enrichment's CEFR hint first, then the Kelly list level,
    then the frequency and Sidor list ranks. Words matching none of them
    land in the Unknown bucket so that every word is countable.
    """
    enrichment = get_field(entry, "enrichment", "word_data")
    level = _recognized(get_field(enrichment, "cefr_level"))
    if level:
        return level

    level = _recognized(get_field(entry, "kelly_level"))
    if level:
        return level

    level = _level_for_rank(get_field(entry, "frequency_rank"), FREQUENCY_BANDS)
    if level:
        return level

    level = _level_for_rank(get_field(entry, "sidor_rank"), SIDOR_BANDS)
    if level:
        return level

    return UNKNOWN_LEVEL


def level_rank(level: Any) -> int:
    """Position of a level tag in A1 < ... < C2 < Unknown; foreign tags go last."""
    return LEVEL_ORDER.get(level, len(LEVEL_ORDER) + 1)
