"""Database models for the local vocabulary store."""
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from sveord.models.base import Base, TimestampMixin


class Word(Base, TimestampMixin):
    """Vocabulary entry."""

    __tablename__ = "words"

    id = Column(Integer, primary_key=True)
    headword = Column(String, unique=True, nullable=False, index=True)
    enrichment = Column(JSON(none_as_null=True), nullable=True)
    kelly_level = Column(String, nullable=True)
    frequency_rank = Column(Integer, nullable=True)
    sidor_rank = Column(Integer, nullable=True)

    # Relationships
    progress = relationship("UserProgress", back_populates="word", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<Word {self.id} {self.headword!r}>"


class UserProgress(Base, TimestampMixin):
    """Per-user progress on a single word."""

    __tablename__ = "user_progress"
    __table_args__ = (UniqueConstraint("user_id", "word_id", name="uq_user_progress_user_word"),)

    id = Column(Integer, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    word_id = Column(Integer, ForeignKey("words.id"), nullable=False)
    word_headword = Column(String, nullable=True)
    is_learned = Column(Integer, default=0, nullable=False)  # 0/1
    is_reserve = Column(Integer, default=0, nullable=False)  # 0/1
    learned_date = Column(DateTime(timezone=True), nullable=True)
    reserved_at = Column(DateTime(timezone=True), nullable=True)
    user_meaning = Column(String, nullable=True)
    custom_spelling = Column(String, nullable=True)

    # Relationships
    word = relationship("Word", back_populates="progress")


class SavedQuiz(Base, TimestampMixin):
    """Generated quiz kept for practice and review."""

    __tablename__ = "saved_quizzes"

    id = Column(Integer, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    type = Column(String, nullable=False)
    questions = Column(JSON, nullable=False)
    is_practiced = Column(Boolean, default=False)
    practiced_at = Column(DateTime(timezone=True), nullable=True)


class WordUsage(Base):
    """How often a word has appeared in generated quizzes."""

    __tablename__ = "word_usage"

    headword = Column(String, primary_key=True)
    target_count = Column(Integer, default=0, nullable=False)
    option_count = Column(Integer, default=0, nullable=False)
