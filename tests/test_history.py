from __future__ import annotations

import pytest

from rubyhook.history import HistoryEntry, TranslationHistory


def test_overflow_evicts_oldest_entries() -> None:
    history = TranslationHistory()
    for idx in range(1001):
        assert history.record(f"原文{idx}", f"translation {idx}")
    entries = history.list()
    assert len(entries) == 1000
    assert entries[0] == HistoryEntry("原文1", "translation 1")
    assert entries[-1] == HistoryEntry("原文1000", "translation 1000")


def test_blank_fields_are_not_recorded() -> None:
    history = TranslationHistory()
    history.record("a", "b")
    assert not history.record("", "b")
    assert not history.record("a", "   ")
    assert not history.record(" \n", "b")
    assert len(history) == 1


def test_list_returns_a_copy() -> None:
    history = TranslationHistory(capacity=3)
    history.record("一", "one")
    snapshot = history.list()
    snapshot.clear()
    assert history.list() == [HistoryEntry("一", "one")]


def test_small_capacity_keeps_order() -> None:
    history = TranslationHistory(capacity=2)
    for word in ("一", "二", "三"):
        history.record(word, word)
    assert [entry.original for entry in history.list()] == ["二", "三"]


def test_change_callback_fires_only_on_record() -> None:
    calls: list[int] = []
    history = TranslationHistory(on_change=lambda: calls.append(1))
    history.record("", "x")
    history.record("犬", "dog")
    assert calls == [1]


def test_change_callback_failure_is_not_raised(caplog) -> None:
    def _boom() -> None:
        raise RuntimeError("ui gone")

    history = TranslationHistory(on_change=_boom)
    assert history.record("猫", "cat")
    assert len(history) == 1
    assert "ui gone" in caplog.text


def test_invalid_capacity() -> None:
    with pytest.raises(ValueError):
        TranslationHistory(capacity=0)


def test_entry_serializes_to_dict() -> None:
    assert HistoryEntry("a", "b").to_dict() == {"original": "a", "translation": "b"}
