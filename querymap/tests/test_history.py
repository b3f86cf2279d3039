"""
Tests for the JSON search-history store.
"""

from __future__ import annotations

import json

from querymap.config import HistoryConfig
from querymap.history import SearchHistory


def _history(tmp_path, max_entries: int = 20) -> SearchHistory:
    return SearchHistory(HistoryConfig(path=str(tmp_path / "history.json"), max_entries=max_entries))


class TestSearchHistory:
    def test_newest_first(self, tmp_path):
        history = _history(tmp_path)
        history.add("Paris to London")
        history.add("Show me Tokyo")
        assert history.recent() == ["Show me Tokyo", "Paris to London"]

    def test_repeats_move_to_front(self, tmp_path):
        history = _history(tmp_path)
        history.add("Paris to London")
        history.add("Show me Tokyo")
        history.add("paris to london")
        assert history.recent() == ["paris to london", "Show me Tokyo"]

    def test_capped(self, tmp_path):
        history = _history(tmp_path, max_entries=3)
        for q in ["a1", "a2", "a3", "a4"]:
            history.add(q)
        assert history.recent() == ["a4", "a3", "a2"]
        assert history.recent(limit=2) == ["a4", "a3"]

    def test_blank_ignored(self, tmp_path):
        history = _history(tmp_path)
        history.add("   ")
        assert len(history) == 0

    def test_persisted_verbatim(self, tmp_path):
        history = _history(tmp_path)
        history.add("Route from Paris to London")
        history.add("Historical sites in ancient Rome")
        on_disk = json.loads((tmp_path / "history.json").read_text(encoding="utf-8"))
        assert on_disk == ["Historical sites in ancient Rome", "Route from Paris to London"]
        assert _history(tmp_path).recent() == on_disk

    def test_corrupt_file_ignored(self, tmp_path):
        (tmp_path / "history.json").write_text("{not json", encoding="utf-8")
        assert _history(tmp_path).recent() == []

    def test_non_list_ignored(self, tmp_path):
        (tmp_path / "history.json").write_text('{"queries": []}', encoding="utf-8")
        assert _history(tmp_path).recent() == []

    def test_clear(self, tmp_path):
        history = _history(tmp_path)
        history.add("Paris to London")
        history.clear()
        assert history.recent() == []
        assert json.loads((tmp_path / "history.json").read_text(encoding="utf-8")) == []

    def test_in_memory_without_path(self):
        history = SearchHistory(HistoryConfig(path="", max_entries=5))
        history.add("Paris to London")
        assert history.recent() == ["Paris to London"]
