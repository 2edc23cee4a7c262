"""Plain data structures for vocabulary entries and progress records."""
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

WordRef = Union[int, str]

TRUTHY_STRINGS = {"1", "true", "t", "yes", "y"}

# Payload keys modelled by Enrichment; anything else is carried through untouched.
ENRICHMENT_KEYS = {
    "word_type", "partOfSpeech", "gender", "meanings", "examples",
    "synonyms", "antonyms", "cefr_level", "populated_at",
}


def get_field(source: Any, *names: str, default: Any = None) -> Any:
    """Read the first present attribute or key out of an object or mapping."""
    if source is None:
        return default
    for name in names:
        if isinstance(source, dict):
            if name in source:
                return source[name]
        elif hasattr(source, name):
            return getattr(source, name)
    return default


def normalize_flag(value: Any) -> int:
    """Coerce a boolean-like flag (bool, 0/1, "true", None...) to 0 or 1."""
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return 1 if value else 0
    if isinstance(value, str):
        return 1 if value.strip().lower() in TRUTHY_STRINGS else 0
    return 0


def is_canonical_flag(value: Any) -> bool:
    """Whether a stored flag is already a plain 0/1 integer."""
    return type(value) is int and value in (0, 1)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO timestamp or datetime; naive values are taken as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            logger.debug(f"Ignoring malformed timestamp: {value!r}")
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def format_timestamp(value: Any) -> Optional[str]:
    """Render a timestamp as an ISO string (None stays None)."""
    parsed = parse_timestamp(value)
    return parsed.isoformat() if parsed else None


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _strings(value: Any) -> List[str]:
    return [item for item in _as_list(value) if isinstance(item, str) and item.strip()]


def fold_headword(headword: Any) -> str:
    """Dedup key for a headword: trimmed and case-folded."""
    if headword is None:
        return ""
    return str(headword).strip().lower()


@dataclass
class Meaning:
    """One English meaning of a word."""
    english: str
    context: Optional[str] = None


@dataclass
class Example:
    """Example sentence with its translation."""
    swedish: str
    english: str = ""


@dataclass
class Enrichment:
    """Linguistic metadata attached to a word."""
    word_type: str = ""
    gender: str = ""
    meanings: List[Meaning] = field(default_factory=list)
    examples: List[Example] = field(default_factory=list)
    synonyms: List[str] = field(default_factory=list)
    antonyms: List[str] = field(default_factory=list)
    cefr_level: Optional[str] = None
    populated_at: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["Enrichment"]:
        """Build from a stored payload, skipping malformed items."""
        if not isinstance(data, dict):
            return None

        meanings = []
        for item in _as_list(data.get("meanings")):
            if isinstance(item, dict) and item.get("english"):
                meanings.append(Meaning(str(item["english"]), item.get("context")))
            elif isinstance(item, str) and item.strip():
                meanings.append(Meaning(item))

        examples = []
        for item in _as_list(data.get("examples")):
            if isinstance(item, dict) and item.get("swedish"):
                examples.append(Example(str(item["swedish"]), str(item.get("english") or "")))

        return cls(
            word_type=data.get("word_type") or data.get("partOfSpeech") or "",
            gender=data.get("gender") or "",
            meanings=meanings,
            examples=examples,
            synonyms=_strings(data.get("synonyms")),
            antonyms=_strings(data.get("antonyms")),
            cefr_level=data.get("cefr_level"),
            populated_at=data.get("populated_at"),
            extra={k: v for k, v in data.items() if k not in ENRICHMENT_KEYS},
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serializable payload for storage."""
        data: Dict[str, Any] = {
            **self.extra,
            "word_type": self.word_type,
            "gender": self.gender,
            "meanings": [
                {"english": m.english, **({"context": m.context} if m.context else {})}
                for m in self.meanings
            ],
            "examples": [{"swedish": e.swedish, "english": e.english} for e in self.examples],
            "synonyms": list(self.synonyms),
            "antonyms": list(self.antonyms),
            "populated_at": self.populated_at,
        }
        if self.cefr_level:
            data["cefr_level"] = self.cefr_level
        return data

    @property
    def primary_meaning(self) -> Optional[str]:
        return self.meanings[0].english if self.meanings else None

    @property
    def is_ft(self) -> bool:
        """Whether the word was captured from free text rather than a word list."""
        return bool(normalize_flag(self.extra.get("is_ft")))


@dataclass
class VocabularyEntry:
    """A word as seen by the quiz, stats and consolidation engines."""
    id: WordRef
    headword: str
    enrichment: Optional[Enrichment] = None
    kelly_level: Optional[str] = None
    frequency_rank: Optional[int] = None
    sidor_rank: Optional[int] = None

    @classmethod
    def coerce(cls, source: Any) -> "VocabularyEntry":
        """Build an entry from a model row, backend dict or an entry."""
        if isinstance(source, cls):
            return source
        raw_enrichment = get_field(source, "enrichment", "word_data")
        if isinstance(raw_enrichment, Enrichment):
            enrichment = raw_enrichment
        else:
            enrichment = Enrichment.from_dict(raw_enrichment)
        headword = get_field(source, "headword", "swedish_word", default="")
        return cls(
            id=get_field(source, "id"),
            headword=str(headword).strip() if headword is not None else "",
            enrichment=enrichment,
            kelly_level=get_field(source, "kelly_level"),
            frequency_rank=get_field(source, "frequency_rank"),
            sidor_rank=get_field(source, "sidor_rank"),
        )

    @property
    def key(self) -> str:
        return fold_headword(self.headword)

    @property
    def primary_meaning(self) -> Optional[str]:
        return self.enrichment.primary_meaning if self.enrichment else None

    @property
    def is_ft(self) -> bool:
        return bool(self.enrichment and self.enrichment.is_ft)


@dataclass
class ProgressRecord:
    """A user's progress on one word, with flags normalized to 0/1."""
    word_id: WordRef
    user_id: Optional[str] = None
    word_headword: Optional[str] = None
    is_learned: int = 0
    is_reserve: int = 0
    learned_date: Optional[datetime] = None
    reserved_at: Optional[datetime] = None
    user_meaning: Optional[str] = None
    custom_spelling: Optional[str] = None

    @classmethod
    def coerce(cls, source: Any) -> "ProgressRecord":
        """Normalize a stored progress row or dict."""
        if isinstance(source, cls):
            return source
        return cls(
            word_id=get_field(source, "word_id"),
            user_id=get_field(source, "user_id"),
            word_headword=get_field(source, "word_headword", "word_swedish"),
            is_learned=normalize_flag(get_field(source, "is_learned")),
            is_reserve=normalize_flag(get_field(source, "is_reserve")),
            learned_date=parse_timestamp(get_field(source, "learned_date")),
            reserved_at=parse_timestamp(get_field(source, "reserved_at")),
            user_meaning=get_field(source, "user_meaning") or None,
            custom_spelling=get_field(source, "custom_spelling") or None,
        )

    @property
    def key(self) -> str:
        return word_key(self.word_id)


def word_key(word_id: Any) -> str:
    """Comparable key for a word reference (ints and strings mix freely)."""
    return "" if word_id is None else str(word_id).strip()
