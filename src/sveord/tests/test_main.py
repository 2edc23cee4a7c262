"""Tests for the command line entry point."""
import json

import pytest
from sqlalchemy.orm import sessionmaker

from sveord import __main__ as cli
from sveord.models.models import SavedQuiz, UserProgress, Word
from sveord.services.backend_client import AuthenticationError, BackendError


@pytest.fixture
def local_store(engine, mocker):
    """Point the CLI at the test database and skip process-wide setup."""
    mocker.patch.object(cli, "SessionLocal", sessionmaker(autocommit=False, autoflush=False, bind=engine))
    mocker.patch.object(cli, "init_db")
    mocker.patch.object(cli, "ensure_directories")
    mocker.patch.object(cli, "setup_logging")
    return engine


@pytest.fixture
def learned_words(db, local_store):
    for word_id, headword in enumerate(["glad", "stor", "snabb", "vacker"], start=1):
        db.add(Word(id=word_id, headword=headword, enrichment={"meanings": [{"english": f"{headword} (en)"}], "cefr_level": "A1"}))
        db.add(UserProgress(user_id="user-1", word_id=word_id, is_learned=1))
    db.commit()
    return db


def test_init_db(local_store):
    assert cli.main(["init-db"]) == 0
    cli.init_db.assert_called_once()


def test_stats(learned_words, capsys):
    assert cli.main(["stats", "--user", "user-1"]) == 0

    out = capsys.readouterr().out
    assert "Mastered 4, to study 0, unique 4 (100%)" in out


def test_quiz_and_practiced(learned_words, capsys):
    assert cli.main(["quiz", "--user", "user-1", "--type", "translate", "--count", "2"]) == 0
    quiz = learned_words.query(SavedQuiz).one()
    assert len(quiz.questions) == 2
    assert f"Saved quiz {quiz.id}" in capsys.readouterr().out

    assert cli.main(["practiced", str(quiz.id)]) == 0
    learned_words.refresh(quiz)
    assert quiz.is_practiced is True


def test_quiz_without_words(local_store, capsys):
    assert cli.main(["quiz", "--user", "nobody"]) == 1
    assert "Not enough usable words" in capsys.readouterr().out


def test_practiced_unknown_quiz(local_store):
    assert cli.main(["practiced", "42"]) == 1


def test_local_export_and_import(learned_words, tmp_path, capsys):
    assert cli.main(["export", "--local", "user-1", "--dir", str(tmp_path)]) == 0
    [path] = list(tmp_path.iterdir())
    rows = json.loads(path.read_text(encoding="utf-8"))
    assert [r["headword"] for r in rows] == ["glad", "snabb", "stor", "vacker"]

    assert cli.main(["import", str(path), "--user", "user-2"]) == 0
    assert learned_words.query(UserProgress).filter_by(user_id="user-2", is_learned=1).count() == 4


@pytest.mark.parametrize(
    "error, code",
    [
        (AuthenticationError("Not authenticated"), 2),
        (BackendError("GET failed", table="words", partial=[{"id": 1}]), 3),
        (ValueError("No words found"), 1),
    ],
)
def test_pull_errors_map_to_exit_codes(local_store, mocker, error, code):
    mocker.patch.object(cli, "cmd_pull", mocker.AsyncMock(side_effect=error))
    assert cli.main(["pull"]) == code
