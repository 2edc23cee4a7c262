"""Models for quiz-related data structures."""
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class QuestionType(Enum):
    """Available quiz question types."""
    SYNONYM = "synonym"  # Pick the synonym of the target word
    ANTONYM = "antonym"  # Pick the antonym of the target word
    MEANING = "meaning"  # Pick the English meaning of the target word
    CONTEXT = "context"  # Fill the masked word in an example sentence
    TRANSLATE = "translate"  # Pick the Swedish word for an English meaning
    RECALL = "recall"  # Type the Swedish word, no options

    @property
    def is_choice(self) -> bool:
        return self is not QuestionType.RECALL


class NotEnoughWordsError(ValueError):
    """Raised when too few words carry the data a question type needs."""

    def __init__(self, question_type: QuestionType, eligible: int, required: int):
        self.question_type = question_type
        self.eligible = eligible
        self.required = required
        super().__init__(
            f"Not enough usable words for a {question_type.value} quiz: "
            f"{eligible} eligible, {required} required. Try learning more words!"
        )


@dataclass
class QuizOption:
    """One selectable answer."""
    word: str
    meaning: Optional[str] = None


@dataclass
class QuizQuestion:
    """A single generated question."""
    id: str
    type: QuestionType
    target_word: str
    correct_answer: str
    options: List[QuizOption] = field(default_factory=list)
    target_meaning: Optional[str] = None
    prompt: Optional[str] = None

    def is_correct(self, answer: str) -> bool:
        """Check a submitted answer (case and surrounding space are ignored)."""
        return answer.strip().lower() == self.correct_answer.strip().lower()

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["type"] = self.type.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QuizQuestion":
        return cls(
            id=data["id"],
            type=QuestionType(data["type"]),
            target_word=data["target_word"],
            correct_answer=data["correct_answer"],
            options=[QuizOption(o["word"], o.get("meaning")) for o in data.get("options", [])],
            target_meaning=data.get("target_meaning"),
            prompt=data.get("prompt"),
        )
