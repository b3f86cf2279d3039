"""Recent-search history stored as a JSON array of query strings, newest first."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from querymap.config import HistoryConfig, get_settings

logger = logging.getLogger(__name__)


class SearchHistory:
    def __init__(self, config: Optional[HistoryConfig] = None):
        self.settings = config or get_settings().history
        self.path: Optional[Path] = Path(self.settings.path) if self.settings.path else None
        self._queries: list[str] = self._load()

    def _load(self) -> list[str]:
        if self.path is None or not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.error("Error loading search history from %s: %s", self.path, e)
            return []
        if not isinstance(data, list):
            logger.error("Search history in %s is not a list, ignoring it", self.path)
            return []
        return [q for q in data if isinstance(q, str)][: self.settings.max_entries]

    def _save(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".history-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._queries, f, ensure_ascii=False)
            os.replace(tmp, self.path)
        except OSError:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def add(self, query: str) -> None:
        """Move ``query`` to the front; repeats are collapsed case-insensitively."""
        query = query.strip()
        if not query:
            return
        self._queries = [q for q in self._queries if q.lower() != query.lower()]
        self._queries.insert(0, query)
        del self._queries[self.settings.max_entries:]
        try:
            self._save()
        except OSError as e:
            logger.error("Could not write search history to %s: %s", self.path, e)

    def recent(self, limit: Optional[int] = None) -> list[str]:
        return list(self._queries[:limit] if limit else self._queries)

    def clear(self) -> None:
        self._queries = []
        try:
            self._save()
        except OSError as e:
            logger.error("Could not write search history to %s: %s", self.path, e)

    def __len__(self) -> int:
        return len(self._queries)
