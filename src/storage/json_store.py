# src/storage/json_store.py

"""Namespaced JSON blobs on disk for alerts, price updates and history."""

import json
import logging
import threading
from pathlib import Path
from typing import Any

from src.config.settings import Settings
from src.models.search import normalize_query

logger = logging.getLogger("aggregator.storage")


class JsonStore:
    """One JSON array per namespace under ``Settings.DATA_DIR``.

    ``load`` never raises: a missing or unreadable file is an empty
    list.  ``save`` writes to a temp file and renames it into place.
    """

    def __init__(self, namespace: str, data_dir: Path | None = None) -> None:
        self.namespace = namespace
        self.data_dir: Path = data_dir or Settings.DATA_DIR
        self.path: Path = self.data_dir / f"{namespace}.json"
        self._lock = threading.Lock()

    def load(self) -> list[dict[str, Any]]:
        with self._lock:
            if not self.path.exists():
                return []
            try:
                with open(self.path, encoding="utf-8") as f:
                    data = json.load(f)
            except (OSError, json.JSONDecodeError) as exc:
                logger.error(
                    "Could not read %s: %s", self.path, exc, exc_info=True
                )
                return []
        if not isinstance(data, list):
            logger.warning("Ignoring non-list JSON in %s", self.path)
            return []
        return [row for row in data if isinstance(row, dict)]

    def save(self, rows: list[dict[str, Any]]) -> Path:
        with self._lock:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(".json.tmp")
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(rows, f, ensure_ascii=False, indent=2)
            tmp.replace(self.path)
        logger.debug(
            "Saved %d row(s) to namespace '%s'", len(rows), self.namespace
        )
        return self.path

    def append(self, rows: list[dict[str, Any]]) -> None:
        """Add rows to the end of the namespace (append-only logs)."""
        if rows:
            self.save(self.load() + rows)


class SearchHistory:
    """Most recent distinct queries, newest first."""

    NAMESPACE = "recent_searches"
    MAX_ENTRIES = 20

    def __init__(self, store: JsonStore | None = None) -> None:
        self.store = store or JsonStore(self.NAMESPACE)

    def recent(self) -> list[str]:
        return [
            str(row["query"])
            for row in self.store.load()
            if row.get("query")
        ][: self.MAX_ENTRIES]

    def record(self, query: str) -> list[str]:
        """Move *query* to the front, trimming to ``MAX_ENTRIES``."""
        normalized = normalize_query(query)
        if not normalized:
            return self.recent()
        queries = [q for q in self.recent() if q != normalized]
        queries.insert(0, normalized)
        queries = queries[: self.MAX_ENTRIES]
        self.store.save([{"query": q} for q in queries])
        return queries

    def clear(self) -> None:
        self.store.save([])
