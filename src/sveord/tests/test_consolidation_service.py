"""Tests for word list consolidation and export."""
import json
from datetime import UTC, date, datetime

import pytest

from sveord.services.consolidation_service import (
    consolidate,
    count_by_level,
    export_filename,
    export_unified_list,
    index_progress_by_priority,
    load_unified_list,
    split_unified_list,
)


@pytest.fixture
def duplicate_words(word_factory):
    return [
        word_factory(1, "Hund", kelly_level="A1"),
        word_factory(2, "hund ", meanings=["dog"], frequency_rank=120),
        word_factory(3, "katt", meanings=["cat"], level="A2"),
    ]


def test_case_and_space_variants_merge(duplicate_words):
    """'Hund' and 'hund ' end up as a single 'hund' row."""
    rows = consolidate(duplicate_words, [{"word_id": 2, "is_learned": 1}])

    assert [r["headword"] for r in rows] == ["hund", "katt"]
    hund = rows[0]
    assert hund["id"] == 1
    assert hund["kelly_level"] == "A1"
    assert hund["frequency_rank"] == 120
    assert hund["enrichment"]["meanings"] == [{"english": "dog"}]
    assert hund["is_learned"] is True
    assert hund["is_encountered"] is True
    assert hund["unified_level"] == "A1"


def test_headwords_are_unique_and_sorted(word_factory):
    words = [
        word_factory(1, "öl", level="A1"),
        word_factory(2, "äpple", level="A1"),
        word_factory(3, "bok", level="A2"),
        word_factory(4, "ändå"),
        word_factory(5, "Bok", level="B1"),
    ]
    rows = consolidate(words, [])

    headwords = [r["headword"] for r in rows]
    assert len(headwords) == len(set(headwords)) == 4
    levels = [r["unified_level"] for r in rows]
    assert levels == sorted(levels, key=["A1", "A2", "B1", "B2", "C1", "C2", "Unknown"].index)
    assert rows[-1]["headword"] == "ändå"
    assert count_by_level(rows) == {"A1": 2, "A2": 1, "Unknown": 1}


def test_flags_do_not_depend_on_order(duplicate_words):
    progress = [
        {"word_id": 1, "is_reserve": "true"},
        {"word_id": 2, "is_learned": True},
    ]
    forward = consolidate(duplicate_words, progress)
    backward = consolidate(list(reversed(duplicate_words)), list(reversed(progress)))

    def flags(rows):
        return {r["headword"]: (r["is_learned"], r["is_reserve"], r["is_encountered"]) for r in rows}

    assert flags(forward) == flags(backward) == {"hund": (True, True, True), "katt": (False, False, False)}


def test_learned_progress_is_not_overwritten_by_neutral_rows():
    index = index_progress_by_priority([
        {"word_id": 5, "is_learned": 1, "learned_date": "2024-01-02T00:00:00Z"},
        {"word_id": 5, "is_learned": 0, "is_reserve": 0},
        {"word_id": 6, "is_learned": 0},
        {"word_id": 6, "is_reserve": 1},
    ])

    assert index["5"].is_learned == 1
    assert index["5"].learned_date is not None
    assert index["6"].is_reserve == 1


def test_reserved_row_keeps_learned_flag(word_factory):
    """A reserve-only row after a learned one adds the reserve flag."""
    progress = [
        {"word_id": 1, "is_learned": 1, "is_reserve": 0, "learned_date": "2024-01-02T00:00:00Z"},
        {"word_id": 1, "is_learned": 0, "is_reserve": 1, "reserved_at": "2024-03-01T00:00:00Z"},
    ]
    index = index_progress_by_priority(progress)

    assert index["1"].is_learned == 1
    assert index["1"].is_reserve == 1
    assert index["1"].learned_date == datetime(2024, 1, 2, tzinfo=UTC)
    assert index["1"].reserved_at == datetime(2024, 3, 1, tzinfo=UTC)

    rows = consolidate([word_factory(1, "hund", level="A1")], progress)
    assert rows[0]["is_learned"] is True
    assert rows[0]["is_reserve"] is True


def test_headwords_follow_swedish_alphabet(word_factory):
    words = [
        word_factory(1, "äpple", level="A1"),
        word_factory(2, "ål", level="A1"),
        word_factory(3, "zebra", level="A1"),
        word_factory(4, "Öga", level="A1"),
        word_factory(5, "état", level="A1"),
        word_factory(6, "ost", level="A1"),
    ]
    rows = consolidate(words, [])

    assert [r["headword"] for r in rows] == ["état", "ost", "zebra", "ål", "äpple", "öga"]


def test_consolidation_is_idempotent(duplicate_words):
    progress = [{"word_id": 3, "is_reserve": 1, "user_meaning": "kitty", "reserved_at": "2024-03-01T10:00:00+00:00"}]
    once = consolidate(duplicate_words, progress)

    words, rows = split_unified_list(once, user_id="user-1")
    twice = consolidate(words, rows)

    assert twice == once
    assert rows == [{
        "user_id": "user-1",
        "word_id": 3,
        "word_headword": "katt",
        "is_learned": 0,
        "is_reserve": 1,
        "learned_date": None,
        "reserved_at": "2024-03-01T10:00:00+00:00",
        "user_meaning": "kitty",
        "custom_spelling": None,
    }]


def test_words_without_headword_are_dropped(word_factory):
    rows = consolidate([word_factory(1, "  "), {"id": 2}, word_factory(3, "sol")], [])
    assert [r["headword"] for r in rows] == ["sol"]


def test_export_filename():
    assert export_filename(date(2024, 6, 1)) == "unified_words_export_2024-06-01.json"


def test_export_and_load(tmp_path, word_factory, mocker):
    exports = mocker.patch("sveord.monitoring.exports_written")
    words = [word_factory(1, "älg", meanings=["moose"], level="B1")]

    path = export_unified_list(words, [], tmp_path / "out", today=date(2024, 6, 1))

    assert path.name == "unified_words_export_2024-06-01.json"
    text = path.read_text(encoding="utf-8")
    assert "älg" in text
    assert text.startswith("[\n  {")
    assert load_unified_list(path) == consolidate(words, [])
    exports.inc.assert_called_once()


def test_load_rejects_non_list(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text(json.dumps({"words": []}), encoding="utf-8")

    with pytest.raises(ValueError, match="JSON array"):
        load_unified_list(path)


def test_free_text_flag_survives_consolidation():
    words = [
        {"id": 1, "headword": "Fika", "enrichment": {"is_ft": True}},
        {"id": 2, "headword": "fika", "enrichment": {"meanings": [{"english": "coffee break"}]}},
    ]
    rows = consolidate(words, [])

    assert len(rows) == 1
    assert rows[0]["enrichment"]["is_ft"] is True
    split_words, _ = split_unified_list(rows, user_id="user-1")
    assert split_words[0]["enrichment"]["is_ft"] is True
