"""Quiz generation and saved quiz management."""
import logging
import random
import re
import uuid
from datetime import UTC, datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from sqlalchemy.orm import Session

from sveord import monitoring
from sveord.config import settings
from sveord.models.models import SavedQuiz, UserProgress, Word, WordUsage
from sveord.models.quiz_models import NotEnoughWordsError, QuestionType, QuizOption, QuizQuestion
from sveord.models.word_models import VocabularyEntry, fold_headword

logger = logging.getLogger(__name__)

MASK = "_____"
OPTION_COUNT = 4
MIN_POOL = 4


def _same(a: str, b: str) -> bool:
    return fold_headword(a) == fold_headword(b)


def _example_with_word(entry: VocabularyEntry) -> Optional[str]:
    """First example sentence containing the headword, masked."""
    if not entry.enrichment or not entry.headword:
        return None
    pattern = re.compile(rf"(?<!\w){re.escape(entry.headword)}(?!\w)", re.IGNORECASE)
    for example in entry.enrichment.examples:
        if pattern.search(example.swedish):
            return pattern.sub(MASK, example.swedish)
    return None


def is_eligible(entry: VocabularyEntry, question_type: QuestionType) -> bool:
    """Whether a word carries the data a question type needs."""
    data = entry.enrichment
    if data is None or not entry.headword:
        return False
    if question_type is QuestionType.SYNONYM:
        return bool(data.synonyms)
    if question_type is QuestionType.ANTONYM:
        return bool(data.antonyms)
    if question_type is QuestionType.CONTEXT:
        return _example_with_word(entry) is not None
    return data.primary_meaning is not None


def _distractor_value(entry: VocabularyEntry, question_type: QuestionType) -> Optional[str]:
    if question_type is QuestionType.MEANING:
        return entry.primary_meaning
    return entry.headword


def _pick_distractors(
    target: VocabularyEntry,
    pool: List[VocabularyEntry],
    correct: str,
    question_type: QuestionType,
    rng: random.Random,
    wanted: int,
) -> List[str]:
    """Up to `wanted` unique values from other words, none of them a valid answer.

    For synonym and antonym questions every listed synonym (or antonym)
    of the target counts as an answer, not only the chosen one.
    """
    answers = [correct]
    if question_type is QuestionType.SYNONYM:
        answers += target.enrichment.synonyms
    elif question_type is QuestionType.ANTONYM:
        answers += target.enrichment.antonyms
    others = [w for w in pool if w is not target and str(w.id) != str(target.id)]
    rng.shuffle(others)
    picked: List[str] = []
    for other in others:
        value = _distractor_value(other, question_type)
        if not value or any(_same(value, v) for v in answers + picked):
            continue
        picked.append(value)
        if len(picked) == wanted:
            break
    return picked


def _build_question(
    target: VocabularyEntry,
    pool: List[VocabularyEntry],
    question_type: QuestionType,
    meaning_map: Dict[str, str],
    rng: random.Random,
    option_count: int = OPTION_COUNT,
) -> Optional[QuizQuestion]:
    data = target.enrichment
    prompt = None

    if question_type is QuestionType.SYNONYM:
        correct = rng.choice(data.synonyms)
    elif question_type is QuestionType.ANTONYM:
        correct = rng.choice(data.antonyms)
    elif question_type is QuestionType.MEANING:
        correct = data.primary_meaning
    elif question_type is QuestionType.CONTEXT:
        correct = target.headword
        prompt = _example_with_word(target)
    else:
        correct = target.headword
        prompt = data.primary_meaning

    question_id = f"{target.id}-{uuid.uuid4().hex[:12]}"
    target_meaning = data.primary_meaning

    if question_type is QuestionType.RECALL:
        return QuizQuestion(
            id=question_id,
            type=question_type,
            target_word=target.headword,
            correct_answer=correct,
            target_meaning=target_meaning,
            prompt=prompt,
        )

    distractors = _pick_distractors(target, pool, correct, question_type, rng, option_count - 1)
    if len(distractors) < option_count - 1:
        logger.debug(f"Skipping {target.headword!r}: only {len(distractors)} unique distractors")
        return None

    values = [correct] + distractors
    rng.shuffle(values)
    if question_type is QuestionType.MEANING:
        options = [QuizOption(word=value) for value in values]
    else:
        options = [QuizOption(word=value, meaning=meaning_map.get(fold_headword(value))) for value in values]

    return QuizQuestion(
        id=question_id,
        type=question_type,
        target_word=target.headword,
        correct_answer=correct,
        options=options,
        target_meaning=target_meaning,
        prompt=prompt,
    )


def generate_quiz(
    words: Iterable[Any],
    question_type: Union[QuestionType, str],
    count: int = 10,
    rng: Optional[random.Random] = None,
    min_pool: int = MIN_POOL,
    option_count: int = OPTION_COUNT,
) -> List[QuizQuestion]:
    """Build up to `count` questions of one type from a set of known words.

    Raises NotEnoughWordsError when fewer than `min_pool` words carry the
    data the type needs, or when no target could be given enough unique
    distractors.
    """
    question_type = QuestionType(question_type)
    if count < 1:
        raise ValueError("Question count must be positive")
    rng = rng or random.Random()

    entries = [VocabularyEntry.coerce(w) for w in words]
    meaning_map = {}
    for entry in entries:
        if entry.primary_meaning and entry.key not in meaning_map:
            meaning_map[entry.key] = entry.primary_meaning

    pool = [entry for entry in entries if is_eligible(entry, question_type)]
    if len(pool) < min_pool:
        logger.warning(f"Not enough words to generate a {question_type.value} quiz ({len(pool)} eligible)")
        raise NotEnoughWordsError(question_type, len(pool), min_pool)

    targets = pool[:]
    rng.shuffle(targets)
    targets = targets[:count]

    questions = []
    for target in targets:
        question = _build_question(target, pool, question_type, meaning_map, rng, option_count)
        if question:
            questions.append(question)

    if not questions:
        raise NotEnoughWordsError(question_type, len(pool), min_pool)

    logger.info(f"Generated {len(questions)} {question_type.value} question(s) from {len(pool)} eligible words")
    return questions


class QuizService:
    """Service for generating, saving and practicing quizzes."""

    def __init__(self, db: Session, rng: Optional[random.Random] = None, clock: Callable[[], datetime] = None):
        """Initialize the service with a database session."""
        self.db = db
        self.rng = rng or random.Random()
        self.clock = clock or (lambda: datetime.now(UTC))
        self.last_error: Optional[str] = None

    def get_quiz_pool(self, user_id: str) -> List[Word]:
        """Words the user has learned, optionally minus overused targets."""
        query = (
            self.db.query(Word)
            .join(UserProgress, UserProgress.word_id == Word.id)
            .filter(UserProgress.user_id == user_id, UserProgress.is_learned == 1)
        )
        words = query.order_by(Word.id).all()

        limit = settings.quiz.max_target_uses
        if limit:
            overused = {
                headword
                for (headword,) in self.db.query(WordUsage.headword)
                .filter(WordUsage.target_count >= limit)
                .all()
            }
            words = [w for w in words if w.headword not in overused]
        return words

    def create_quiz(
        self, user_id: str, question_type: Union[QuestionType, str], count: Optional[int] = None
    ) -> Optional[SavedQuiz]:
        """Generate and save a quiz, or return None with the reason in last_error."""
        question_type = QuestionType(question_type)
        count = count or settings.quiz.question_count
        self.last_error = None

        words = self.get_quiz_pool(user_id)
        try:
            questions = generate_quiz(
                words,
                question_type,
                count,
                rng=self.rng,
                min_pool=settings.quiz.min_pool,
                option_count=settings.quiz.option_count,
            )
        except NotEnoughWordsError as e:
            self.last_error = str(e)
            monitoring.quiz_generation_failures.labels(question_type=question_type.value).inc()
            return None

        quiz = SavedQuiz(
            user_id=user_id,
            type=question_type.value,
            questions=[q.to_dict() for q in questions],
            is_practiced=False,
        )
        self.db.add(quiz)
        self._record_usage(questions)
        self.db.commit()
        self.db.refresh(quiz)

        monitoring.quizzes_generated.labels(question_type=question_type.value).inc()
        logger.info(f"Saved {question_type.value} quiz {quiz.id} with {len(questions)} questions for user {user_id}")
        return quiz

    def _record_usage(self, questions: List[QuizQuestion]) -> None:
        """Count how often each word is a target or an option."""
        touched: Dict[str, WordUsage] = {}

        def usage_for(headword: str) -> WordUsage:
            key = fold_headword(headword)
            if key not in touched:
                usage = self.db.get(WordUsage, key)
                if usage is None:
                    usage = WordUsage(headword=key, target_count=0, option_count=0)
                    self.db.add(usage)
                touched[key] = usage
            return touched[key]

        for question in questions:
            usage_for(question.target_word).target_count += 1
            if question.type in (QuestionType.TRANSLATE, QuestionType.CONTEXT):
                for option in question.options:
                    usage_for(option.word).option_count += 1

    def get_quiz(self, quiz_id: int) -> Optional[SavedQuiz]:
        """Get a saved quiz by its ID."""
        return self.db.query(SavedQuiz).filter(SavedQuiz.id == quiz_id).first()

    def get_questions(self, quiz_id: int) -> List[QuizQuestion]:
        """Load the questions of a saved quiz."""
        quiz = self.get_quiz(quiz_id)
        if not quiz:
            raise ValueError(f"Quiz {quiz_id} not found")
        return [QuizQuestion.from_dict(q) for q in quiz.questions]

    def list_quizzes(self, user_id: str, practiced: Optional[bool] = None) -> List[SavedQuiz]:
        """List a user's saved quizzes, newest first."""
        query = self.db.query(SavedQuiz).filter(SavedQuiz.user_id == user_id)
        if practiced is not None:
            query = query.filter(SavedQuiz.is_practiced == practiced)
        return query.order_by(SavedQuiz.id.desc()).all()

    def mark_practiced(self, quiz_id: int, when: Optional[datetime] = None) -> SavedQuiz:
        """Record that a quiz session was completed."""
        quiz = self.get_quiz(quiz_id)
        if not quiz:
            raise ValueError(f"Quiz {quiz_id} not found")

        quiz.is_practiced = True
        quiz.practiced_at = when or self.clock()
        self.db.commit()
        self.db.refresh(quiz)

        monitoring.quizzes_practiced.inc()
        logger.info(f"Quiz {quiz_id} marked as practiced")
        return quiz

    def clear_quizzes(self, user_id: str) -> int:
        """Delete all saved quizzes of a user."""
        deleted = self.db.query(SavedQuiz).filter(SavedQuiz.user_id == user_id).delete()
        self.db.commit()
        return deleted
