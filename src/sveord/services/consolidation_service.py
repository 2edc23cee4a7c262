"""Consolidation of duplicate words and export of the unified list."""
import json
import logging
import unicodedata
from dataclasses import replace
from datetime import date
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from sveord import monitoring
from sveord.models.word_models import (
    ProgressRecord,
    VocabularyEntry,
    format_timestamp,
    word_key,
)
from sveord.services.levels import classify, level_rank

logger = logging.getLogger(__name__)

EXPORT_PREFIX = "unified_words_export_"

# Fields merged first-non-null across duplicates, in output order
FIRST_NON_NULL_FIELDS = ["enrichment", "kelly_level", "frequency_rank", "sidor_rank"]
OVERRIDE_FIELDS = ["user_meaning", "custom_spelling"]
FLAG_FIELDS = ["is_learned", "is_reserve", "is_encountered"]

# Letters sorted after "z", mapped onto the code points that follow it
SWEDISH_TAIL = {"å": "{", "ä": "|", "æ": "|", "ö": "}", "ø": "}"}


def _merge_records(existing: ProgressRecord, record: ProgressRecord) -> ProgressRecord:
    return replace(
        existing,
        is_learned=existing.is_learned or record.is_learned,
        is_reserve=existing.is_reserve or record.is_reserve,
        learned_date=existing.learned_date or record.learned_date,
        reserved_at=existing.reserved_at or record.reserved_at,
        user_meaning=existing.user_meaning or record.user_meaning,
        custom_spelling=existing.custom_spelling or record.custom_spelling,
    )


def index_progress_by_priority(progress: Iterable[Any]) -> Dict[str, ProgressRecord]:
    """Index progress by word, merging repeated rows for the same word.

    Flags are OR-ed so a true flag never reverts, and dates and overrides
    already indexed are kept, with later rows only filling the gaps.
    """
    index: Dict[str, ProgressRecord] = {}
    for raw in progress:
        record = ProgressRecord.coerce(raw)
        key = record.key
        if not key:
            continue
        existing = index.get(key)
        index[key] = record if existing is None else _merge_records(existing, record)
    return index


def _headword_sort_key(headword: str) -> str:
    """Collation key following the Swedish alphabet.

    Å, Ä and Ö (and Æ, Ø) come after Z; other accented letters sort with
    their base letter.
    """
    key = []
    for char in unicodedata.normalize("NFC", headword.casefold()):
        if char in SWEDISH_TAIL:
            key.append(SWEDISH_TAIL[char])
        else:
            key.append(unicodedata.normalize("NFD", char)[0])
    return "".join(key)


def _to_row(entry: VocabularyEntry, record: Optional[ProgressRecord]) -> Dict[str, Any]:
    learned = bool(record and record.is_learned)
    reserved = bool(record and record.is_reserve)
    return {
        "id": entry.id,
        "headword": entry.headword.lower(),
        "enrichment": entry.enrichment.to_dict() if entry.enrichment else None,
        "kelly_level": entry.kelly_level,
        "frequency_rank": entry.frequency_rank,
        "sidor_rank": entry.sidor_rank,
        "is_learned": learned,
        "is_reserve": reserved,
        "is_encountered": learned or reserved,
        "user_meaning": record.user_meaning if record else None,
        "custom_spelling": record.custom_spelling if record else None,
        "learned_date": format_timestamp(record.learned_date) if record else None,
        "reserved_at": format_timestamp(record.reserved_at) if record else None,
    }


def _merge(existing: Dict[str, Any], other: Dict[str, Any]) -> None:
    for name in FIRST_NON_NULL_FIELDS + OVERRIDE_FIELDS + ["learned_date", "reserved_at"]:
        if existing.get(name) is None:
            existing[name] = other.get(name)
    for name in FLAG_FIELDS:
        existing[name] = bool(existing[name] or other[name])


def consolidate(words: Iterable[Any], progress: Iterable[Any]) -> List[Dict[str, Any]]:
    """Merge duplicate headwords and their progress into one sorted list.

    Words are grouped by trimmed, case-folded headword. Within a group the
    first non-null value of each data field wins and progress flags are
    OR-ed, then the level is recomputed from the merged record.
    """
    index = index_progress_by_priority(progress)

    groups: Dict[str, Dict[str, Any]] = {}
    scanned = 0
    for raw in words:
        scanned += 1
        entry = VocabularyEntry.coerce(raw)
        key = entry.key
        if not key:
            continue
        row = _to_row(entry, index.get(word_key(entry.id)))
        if key in groups:
            _merge(groups[key], row)
        else:
            groups[key] = row

    for row in groups.values():
        row["unified_level"] = classify(row)

    consolidated = sorted(
        groups.values(),
        key=lambda row: (
            level_rank(row["unified_level"]),
            _headword_sort_key(row["headword"]),
            row["headword"],
            str(row["id"]),
        ),
    )
    logger.info(f"Consolidated {scanned} words into {len(consolidated)} unique entries")
    return consolidated


def count_by_level(consolidated: Iterable[Dict[str, Any]]) -> Dict[str, int]:
    """Number of consolidated words per level."""
    counts: Dict[str, int] = {}
    for row in consolidated:
        counts[row["unified_level"]] = counts.get(row["unified_level"], 0) + 1
    return counts


def export_filename(today: Optional[date] = None) -> str:
    """File name of an export made on the given day."""
    today = today or date.today()
    return f"{EXPORT_PREFIX}{today.isoformat()}.json"


def write_unified_list(consolidated: List[Dict[str, Any]], directory: Union[str, Path], today: Optional[date] = None) -> Path:
    """Write a consolidated list as pretty-printed UTF-8 JSON."""
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / export_filename(today)
    path.write_text(json.dumps(consolidated, indent=2, ensure_ascii=False), encoding="utf-8")
    monitoring.exports_written.inc()
    logger.info(f"Unified list of {len(consolidated)} words saved to {path}")
    return path


def export_unified_list(
    words: Iterable[Any],
    progress: Iterable[Any],
    directory: Union[str, Path],
    today: Optional[date] = None,
) -> Path:
    """Consolidate words and progress and write the result to a dated file."""
    return write_unified_list(consolidate(words, progress), directory, today)


def load_unified_list(path: Union[str, Path]) -> List[Dict[str, Any]]:
    """Read back an exported unified list."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, list):
        raise ValueError(f"{path} does not contain a JSON array")
    return data


def split_unified_list(rows: Iterable[Dict[str, Any]], user_id: Optional[str] = None):
    """Turn exported rows back into word dicts and progress dicts."""
    words = []
    progress = []
    for row in rows:
        words.append({name: row.get(name) for name in ["id", "headword"] + FIRST_NON_NULL_FIELDS})
        if row.get("is_learned") or row.get("is_reserve") or any(row.get(n) for n in OVERRIDE_FIELDS):
            progress.append({
                "user_id": user_id,
                "word_id": row.get("id"),
                "word_headword": row.get("headword"),
                "is_learned": 1 if row.get("is_learned") else 0,
                "is_reserve": 1 if row.get("is_reserve") else 0,
                "learned_date": row.get("learned_date"),
                "reserved_at": row.get("reserved_at"),
                "user_meaning": row.get("user_meaning"),
                "custom_spelling": row.get("custom_spelling"),
            })
    return words, progress
