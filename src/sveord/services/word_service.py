"""Service for managing words in the local store."""
import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from sveord.config import CEFR_LEVELS
from sveord.models.models import UserProgress, Word
from sveord.models.word_models import Enrichment, VocabularyEntry, fold_headword, word_key

logger = logging.getLogger(__name__)

MAX_HEADWORD_LENGTH = 100


def sanitize_headword(headword: Any) -> str:
    """Trim and lowercase a headword, rejecting blank or oversized ones."""
    if not isinstance(headword, str):
        raise ValueError("Headword must be a string")
    folded = fold_headword(headword)
    if not folded:
        raise ValueError("Headword cannot be empty")
    if len(folded) > MAX_HEADWORD_LENGTH:
        raise ValueError(f"Headword is too long (max {MAX_HEADWORD_LENGTH} characters)")
    return folded


def validate_enrichment(data: Any) -> List[str]:
    """Return the problems found in an enrichment payload (empty when valid)."""
    if data is None:
        return []
    if not isinstance(data, dict):
        return ["Enrichment must be an object"]

    errors = []
    meanings = data.get("meanings")
    if meanings is not None:
        if not isinstance(meanings, list):
            errors.append("Meanings must be a list")
        else:
            for index, meaning in enumerate(meanings, start=1):
                if not isinstance(meaning, dict) or not meaning.get("english"):
                    errors.append(f"Meaning {index} missing English translation")
    examples = data.get("examples")
    if examples is not None and not isinstance(examples, list):
        errors.append("Examples must be a list")
    level = data.get("cefr_level")
    if level is not None and level not in CEFR_LEVELS:
        errors.append(f"Unknown CEFR level: {level}")
    return errors


class WordService:
    """Service for managing words in the local store."""

    def __init__(self, db: Session):
        """Initialize the service with a database session."""
        self.db = db
        self.id_map: Dict[str, int] = {}

    def get_word(self, word_id: int) -> Optional[Word]:
        """Get a word by its ID."""
        return self.db.query(Word).filter(Word.id == word_id).first()

    def get_word_by_headword(self, headword: str) -> Optional[Word]:
        """Get a word by its headword, ignoring case and surrounding space."""
        return self.db.query(Word).filter(Word.headword == fold_headword(headword)).first()

    def create_word(
        self,
        headword: str,
        enrichment: Optional[Dict[str, Any]] = None,
        word_id: Optional[int] = None,
        **metadata,
    ) -> Word:
        """Create a word, or return the existing one with the same headword."""
        headword = sanitize_headword(headword)
        existing = self.get_word_by_headword(headword)
        if existing:
            if enrichment and not existing.enrichment:
                existing.enrichment = enrichment
                self.db.commit()
                self.db.refresh(existing)
            return existing

        errors = validate_enrichment(enrichment)
        if errors:
            raise ValueError(f"Invalid enrichment for {headword!r}: {', '.join(errors)}")

        word = Word(
            id=word_id,
            headword=headword,
            enrichment=enrichment,
            kelly_level=metadata.get("kelly_level"),
            frequency_rank=metadata.get("frequency_rank"),
            sidor_rank=metadata.get("sidor_rank"),
        )
        self.db.add(word)
        self.db.commit()
        self.db.refresh(word)
        logger.info(f"Created word {word.id}: {headword!r}")
        return word

    def create_words(self, headwords: Iterable[str]) -> List[Word]:
        """Create multiple words at once."""
        return [self.create_word(headword) for headword in headwords]

    def import_words(self, rows: Iterable[Dict[str, Any]]) -> int:
        """Upsert backend rows into the local store.

        Rows whose headword folds onto an existing word are merged into it:
        data fields are only filled in where the local word has none. A
        remote id is kept only while it is free locally. Where each remote
        id ended up is recorded in ``self.id_map`` for the progress import.
        """
        imported = 0
        for row in rows:
            entry = VocabularyEntry.coerce(row)
            key = entry.key
            if not key:
                logger.debug(f"Skipping word row without headword: {row!r}")
                continue

            enrichment = entry.enrichment.to_dict() if entry.enrichment else None
            word = self.get_word_by_headword(key)
            if word is None:
                word_id = self._free_id(entry.id)
                if word_id is None and entry.id is not None:
                    logger.debug(f"Word id {entry.id} is taken locally, importing {key!r} under a new id")
                word = Word(id=word_id, headword=key)
                self.db.add(word)

            word.enrichment = word.enrichment or enrichment
            word.kelly_level = word.kelly_level or entry.kelly_level
            word.frequency_rank = word.frequency_rank or entry.frequency_rank
            word.sidor_rank = word.sidor_rank or entry.sidor_rank
            self.db.flush()
            if entry.id is not None:
                self.id_map[word_key(entry.id)] = word.id
            imported += 1
        self.db.commit()
        logger.info(f"Imported {imported} words")
        return imported

    def _free_id(self, word_id: Any) -> Optional[int]:
        """The remote id as a local primary key, or None when unusable or taken."""
        try:
            word_id = int(word_id)
        except (TypeError, ValueError):
            return None
        if self.get_word(word_id) is not None:
            return None
        return word_id

    def update_word(self, word_id: int, **kwargs) -> Optional[Word]:
        """Update a word's attributes."""
        word = self.get_word(word_id)
        if not word:
            return None

        if "headword" in kwargs:
            kwargs["headword"] = sanitize_headword(kwargs["headword"])
        for key, value in kwargs.items():
            if hasattr(word, key):
                setattr(word, key, value)

        self.db.commit()
        self.db.refresh(word)
        return word

    def update_enrichment(self, word_id: int, enrichment: Enrichment) -> Optional[Word]:
        """Store generated enrichment on a word."""
        return self.update_word(word_id, enrichment=enrichment.to_dict())

    def delete_word(self, word_id: int) -> bool:
        """Delete a word and its progress rows."""
        word = self.get_word(word_id)
        if not word:
            return False

        self.db.delete(word)
        self.db.commit()
        return True

    def get_word_count(self, enriched: Optional[bool] = None) -> int:
        """Get the count of words in the store."""
        query = self.db.query(Word)
        if enriched is True:
            query = query.filter(Word.enrichment.isnot(None))
        elif enriched is False:
            query = query.filter(Word.enrichment.is_(None))
        return query.count()

    def get_all_words(self) -> List[Word]:
        """Get the whole vocabulary ordered by ID."""
        return self.db.query(Word).order_by(Word.id).all()

    def get_user_words(
        self,
        user_id: str,
        learned: Optional[bool] = None,
        reserved: Optional[bool] = None,
        limit: Optional[int] = None,
    ) -> List[Word]:
        """Get words the user has progress on."""
        query = (
            self.db.query(Word)
            .join(UserProgress, UserProgress.word_id == Word.id)
            .filter(UserProgress.user_id == user_id)
        )

        if learned is not None:
            query = query.filter(UserProgress.is_learned == int(learned))
        if reserved is not None:
            query = query.filter(UserProgress.is_reserve == int(reserved))

        query = query.order_by(Word.id)
        if limit:
            query = query.limit(limit)

        return query.all()

    def search_words(self, query: str, limit: int = 10) -> List[Word]:
        """Search for words by headword prefix or exact match."""
        needle = fold_headword(query)
        return (
            self.db.query(Word)
            .filter(or_(Word.headword == needle, Word.headword.like(f"{needle}%")))
            .order_by(Word.headword)
            .limit(limit)
            .all()
        )
