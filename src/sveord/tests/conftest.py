"""Test configuration."""
import os
from typing import Any, Dict, Generator, List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment before any imports
os.environ["ENV"] = "test"
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("DATA_DIR", "./data-test")

# Import after environment setup
from sveord.models.base import init_db


@pytest.fixture
def engine():
    """In-memory database shared by every connection of one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine) -> Generator[Session, None, None]:
    """Create a fresh database session for each test."""
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


def make_word(
    word_id: Any,
    headword: str,
    meanings: Optional[List[str]] = None,
    synonyms: Optional[List[str]] = None,
    antonyms: Optional[List[str]] = None,
    examples: Optional[List[Dict[str, str]]] = None,
    level: Optional[str] = None,
    **extra,
) -> Dict[str, Any]:
    """Backend-shaped word row."""
    enrichment = None
    if any(v is not None for v in (meanings, synonyms, antonyms, examples, level)):
        enrichment = {
            "word_type": "noun",
            "meanings": [{"english": m} for m in meanings or []],
            "examples": examples or [],
            "synonyms": synonyms or [],
            "antonyms": antonyms or [],
        }
        if level:
            enrichment["cefr_level"] = level
    return {"id": word_id, "headword": headword, "enrichment": enrichment, **extra}


@pytest.fixture
def word_factory():
    return make_word
