"""Progress tracking and dashboard statistics."""
import logging
from datetime import UTC, datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from sveord import monitoring
from sveord.models.models import UserProgress, Word
from sveord.models.stats_models import DashboardStats, LevelStats, Proficiency, Velocity
from sveord.models.word_models import (
    ProgressRecord,
    VocabularyEntry,
    fold_headword,
    get_field,
    is_canonical_flag,
    normalize_flag,
    parse_timestamp,
    word_key,
)
from sveord.services.levels import ALL_LEVELS, classify

logger = logging.getLogger(__name__)


def percent(part: int, whole: int) -> int:
    """round(100 * part / whole) with halves rounded up; 0 when whole is 0."""
    if whole <= 0:
        return 0
    return (200 * part + whole) // (2 * whole)


def local_midnight(as_of: Optional[datetime] = None) -> datetime:
    """Start of the local calendar day containing as_of (aware)."""
    if as_of is None:
        as_of = datetime.now().astimezone()
    elif as_of.tzinfo is None:
        as_of = as_of.astimezone()
    return as_of.replace(hour=0, minute=0, second=0, microsecond=0)


def index_progress(progress: Iterable[Any]) -> Tuple[Dict[str, ProgressRecord], int]:
    """Index progress rows by word reference.

    Flags are normalized to 0/1 on the way in and, when a word shows up
    more than once, the most recently indexed row wins. Returns the index
    and the number of flag values that had to be corrected.
    """
    index: Dict[str, ProgressRecord] = {}
    corrections = 0
    for raw in progress:
        for flag in ("is_learned", "is_reserve"):
            value = get_field(raw, flag)
            if value is not None and not is_canonical_flag(value):
                corrections += 1
        record = ProgressRecord.coerce(raw)
        if record.word_id is None:
            continue
        index[record.key] = record
    return index, corrections


def aggregate(
    words: Iterable[Any],
    progress: Iterable[Any],
    as_of: Optional[datetime] = None,
) -> DashboardStats:
    """Summarize a user's progress per level, overall and for today.

    A reserved word counts as "to study" even when it is also learned;
    only learned words that are not reserved count as mastered.
    Words captured from free text are left out of every count.
    """
    progress = list(progress)
    index, corrections = index_progress(progress)
    if corrections:
        logger.debug(f"Normalized {corrections} progress flag(s) during aggregation")
        monitoring.progress_self_heals.inc(corrections)

    counts = {level: LevelStats() for level in ALL_LEVELS}
    mastered = 0
    to_study = 0
    total_unique = 0
    corpus_keys = set()

    for raw in words:
        entry = VocabularyEntry.coerce(raw)
        if entry.is_ft:
            continue
        level = classify(entry)
        stats = counts.setdefault(level, LevelStats())
        stats.total += 1
        total_unique += 1
        corpus_keys.add(word_key(entry.id))

        record = index.get(word_key(entry.id))
        if record is None:
            continue
        if record.is_reserve == 1:
            stats.reserved += 1
            to_study += 1
        elif record.is_learned == 1:
            stats.learned += 1
            mastered += 1

    for stats in counts.values():
        stats.percent = percent(stats.learned, stats.total)

    start = local_midnight(as_of)
    learned_today = set()
    reserved_today = set()
    for raw in progress:
        record = ProgressRecord.coerce(raw)
        key = record.key
        if key not in corpus_keys:
            continue
        if record.is_learned and record.learned_date and record.learned_date >= start:
            learned_today.add(key)
        if record.is_reserve and record.reserved_at and record.reserved_at >= start:
            reserved_today.add(key)

    return DashboardStats(
        levels=counts,
        proficiency=Proficiency(
            mastered=mastered,
            to_study=to_study,
            total_unique=total_unique,
            completion_percent=percent(mastered, total_unique),
        ),
        velocity=Velocity(
            learned_today=len(learned_today),
            reserved_today=len(reserved_today),
        ),
    )


def _resolve_word_id(
    record: ProgressRecord,
    id_map: Dict[str, int],
    headwords: Dict[int, str],
    by_headword: Dict[str, int],
) -> Optional[int]:
    """Local id for a remote progress row, or None when the word is unknown."""
    mapped = id_map.get(record.key)
    if mapped is not None:
        return mapped

    folded = fold_headword(record.word_headword)
    try:
        word_id = int(record.word_id)
    except (TypeError, ValueError):
        word_id = None
    # An id that now belongs to another headword is not trusted.
    if word_id in headwords and (not folded or fold_headword(headwords[word_id]) == folded):
        return word_id
    return by_headword.get(folded) if folded else None


class ProgressService:
    """Service for reading and updating a user's word progress."""

    def __init__(self, db: Session):
        """Initialize the service with a database session."""
        self.db = db

    def get_progress(self, user_id: str, word_id: int) -> Optional[UserProgress]:
        """Get the progress row of a user on a word."""
        return (
            self.db.query(UserProgress)
            .filter(UserProgress.user_id == user_id, UserProgress.word_id == word_id)
            .first()
        )

    def get_user_progress(self, user_id: str) -> List[UserProgress]:
        """Get all progress rows of a user."""
        return self.db.query(UserProgress).filter(UserProgress.user_id == user_id).all()

    def _get_or_create(self, user_id: str, word_id: int) -> UserProgress:
        progress = self.get_progress(user_id, word_id)
        if progress:
            return progress

        word = self.db.query(Word).filter(Word.id == word_id).first()
        if not word:
            raise ValueError(f"Word {word_id} not found")

        progress = UserProgress(
            user_id=user_id,
            word_id=word_id,
            word_headword=word.headword,
            is_learned=0,
            is_reserve=0,
        )
        self.db.add(progress)
        return progress

    def set_learned(
        self, user_id: str, word_id: int, learned: bool = True, when: Optional[datetime] = None
    ) -> UserProgress:
        """Mark a word as learned (or not). The learned date is kept once set."""
        progress = self._get_or_create(user_id, word_id)
        if learned and not progress.is_learned:
            progress.learned_date = when or datetime.now(UTC)
        progress.is_learned = 1 if learned else 0
        self.db.commit()
        self.db.refresh(progress)
        logger.info(f"User {user_id} set word {word_id} learned={int(learned)}")
        return progress

    def set_reserved(
        self, user_id: str, word_id: int, reserved: bool = True, when: Optional[datetime] = None
    ) -> UserProgress:
        """Queue a word for study (or take it off the queue)."""
        progress = self._get_or_create(user_id, word_id)
        if reserved and not progress.is_reserve:
            progress.reserved_at = when or datetime.now(UTC)
        progress.is_reserve = 1 if reserved else 0
        self.db.commit()
        self.db.refresh(progress)
        logger.info(f"User {user_id} set word {word_id} reserved={int(reserved)}")
        return progress

    def update_overrides(
        self,
        user_id: str,
        word_id: int,
        user_meaning: Optional[str] = None,
        custom_spelling: Optional[str] = None,
    ) -> UserProgress:
        """Store the user's own meaning or spelling for a word."""
        progress = self._get_or_create(user_id, word_id)
        if user_meaning is not None:
            progress.user_meaning = user_meaning.strip() or None
        if custom_spelling is not None:
            progress.custom_spelling = custom_spelling.strip() or None
        self.db.commit()
        self.db.refresh(progress)
        return progress

    def import_progress(
        self, user_id: str, rows: Iterable[Dict[str, Any]], id_map: Optional[Dict[str, int]] = None
    ) -> int:
        """Upsert progress rows fetched from the backend.

        Flags arrive as booleans, 0/1 or strings depending on the source and
        are stored as 0/1. Word references go through ``id_map`` (remote id
        to local id, see ``WordService.import_words``) before falling back to
        the id itself and then the row's headword. Rows that land on the same
        local word are merged and a flag set by any of them stays set. Rows
        for words missing locally are skipped.
        """
        id_map = id_map or {}
        headwords = {word_id: headword for word_id, headword in self.db.query(Word.id, Word.headword).all()}
        by_headword = {fold_headword(headword): word_id for word_id, headword in headwords.items()}

        imported = 0
        seen = set()
        for row in rows:
            record = ProgressRecord.coerce(row)
            word_id = _resolve_word_id(record, id_map, headwords, by_headword)
            if word_id is None:
                logger.debug(f"Skipping progress for unknown word {record.word_id!r}")
                continue

            progress = self._get_or_create(user_id, word_id)
            if word_id in seen:
                progress.is_learned = normalize_flag(progress.is_learned or record.is_learned)
                progress.is_reserve = normalize_flag(progress.is_reserve or record.is_reserve)
            else:
                progress.is_learned = record.is_learned
                progress.is_reserve = record.is_reserve
                seen.add(word_id)
            progress.learned_date = record.learned_date or progress.learned_date
            progress.reserved_at = record.reserved_at or progress.reserved_at
            progress.user_meaning = record.user_meaning or progress.user_meaning
            progress.custom_spelling = record.custom_spelling or progress.custom_spelling
            self.db.flush()
            imported += 1
        self.db.commit()
        logger.info(f"Imported {imported} progress rows for user {user_id}")
        return imported

    def get_dashboard_stats(self, user_id: str, as_of: Optional[datetime] = None) -> DashboardStats:
        """Aggregate the user's progress over the whole local vocabulary."""
        words = self.db.query(Word).all()
        progress = self.get_user_progress(user_id)
        return aggregate(words, progress, as_of)

    def _words_touched_today(self, user_id: str, flag: str, date_field: str, as_of: Optional[datetime]) -> List[Word]:
        start = local_midnight(as_of)
        rows = (
            self.db.query(UserProgress)
            .filter(UserProgress.user_id == user_id, getattr(UserProgress, flag) == 1)
            .all()
        )
        words = []
        seen = set()
        for row in rows:
            stamp = parse_timestamp(getattr(row, date_field))
            if stamp is None or stamp < start or row.word_id in seen:
                continue
            seen.add(row.word_id)
            words.append(row.word)
        return words

    def get_todays_learned_words(self, user_id: str, as_of: Optional[datetime] = None) -> List[Word]:
        """Words the user learned since local midnight, one per word."""
        return self._words_touched_today(user_id, "is_learned", "learned_date", as_of)

    def get_todays_reserved_words(self, user_id: str, as_of: Optional[datetime] = None) -> List[Word]:
        """Words the user queued for study since local midnight, one per word."""
        return self._words_touched_today(user_id, "is_reserve", "reserved_at", as_of)
