"""
Datastore adapters.

The orchestrator talks to storage through a small table-oriented
interface (insert / select / update / upsert_ignore) with equality and
membership filters. Every select returns at most ROW_CAP rows, like the
hosted relational store it stands in for; use fetch_all() to page.

Implementations:
- MemoryDatastore: in-process tables (tests, previews)
- JsonFileDatastore: the same tables persisted to one JSON document
"""

from __future__ import annotations

import copy
import json
import os
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from loguru import logger

from .errors import StorageError, TableMissingError


ROW_CAP = 1000

PIPELINE_RUNS = "pipeline_runs"
RUN_ENTITIES = "run_entities"
DISCOVERED_URLS = "discovered_urls"
SUBMODULE_RUNS = "submodule_runs"
RESULT_APPROVALS = "submodule_result_approvals"

TABLES = (PIPELINE_RUNS, RUN_ENTITIES, DISCOVERED_URLS, SUBMODULE_RUNS, RESULT_APPROVALS)

UNIQUE_KEYS = {
    DISCOVERED_URLS: ("run_entity_id", "url"),
    RESULT_APPROVALS: ("submodule_run_id", "result_index"),
}

UNIQUE_VIOLATION = "23505"


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _matches(row: dict, filters: dict | None) -> bool:
    for field, expected in (filters or {}).items():
        value = row.get(field)
        if isinstance(expected, (list, tuple, set, frozenset)):
            if value not in expected:
                return False
        elif value != expected:
            return False
    return True


def _sort_key(field: str):
    def key(row: dict):
        value = row.get(field)
        return (value is not None, value if value is not None else "")
    return key


class Datastore:
    """Table-oriented storage interface."""

    row_cap = ROW_CAP

    def insert(self, table: str, rows: dict | list[dict]) -> list[dict]:
        raise NotImplementedError

    def select(
        self,
        table: str,
        filters: dict | None = None,
        order_by: str | None = None,
        desc: bool = False,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[dict]:
        raise NotImplementedError

    def update(self, table: str, filters: dict, values: dict) -> list[dict]:
        raise NotImplementedError

    def upsert_ignore(self, table: str, rows: list[dict], conflict: tuple[str, ...]) -> list[dict]:
        """Insert rows, silently skipping any whose conflict key already exists."""
        raise NotImplementedError

    def select_one(self, table: str, filters: dict) -> dict | None:
        rows = self.select(table, filters, limit=1)
        return rows[0] if rows else None


class MemoryDatastore(Datastore):
    """
    In-memory tables with generated ids, created_at and unique keys.

    Args:
        missing_tables: tables that behave as if they were never created
            (every access raises TableMissingError)
    """

    def __init__(self, missing_tables: tuple | list | set = ()):
        self._lock = threading.RLock()
        self.missing_tables = set(missing_tables)
        self._tables: dict[str, list[dict]] = {t: [] for t in TABLES if t not in self.missing_tables}

    # Hooks for persistent subclasses
    def _changed(self) -> None:
        pass

    def _table(self, table: str) -> list[dict]:
        if table in self.missing_tables:
            raise TableMissingError(table)
        if table not in self._tables:
            self._tables[table] = []
        return self._tables[table]

    def _prepare(self, table: str, row: dict) -> dict:
        row = copy.deepcopy(row)
        row.setdefault("id", str(uuid.uuid4()))
        row.setdefault("created_at", now_iso())
        return row

    def _conflicts(self, rows: list[dict], row: dict, keys: tuple[str, ...]) -> bool:
        target = tuple(row.get(k) for k in keys)
        return any(tuple(r.get(k) for k in keys) == target for r in rows)

    def insert(self, table: str, rows: dict | list[dict]) -> list[dict]:
        rows = [rows] if isinstance(rows, dict) else list(rows)
        with self._lock:
            existing = self._table(table)
            unique = UNIQUE_KEYS.get(table)
            prepared = []
            for row in rows:
                row = self._prepare(table, row)
                if unique and (self._conflicts(existing, row, unique) or self._conflicts(prepared, row, unique)):
                    raise StorageError(
                        f"duplicate key value violates unique constraint on {table} {unique}",
                        code=UNIQUE_VIOLATION,
                    )
                prepared.append(row)
            existing.extend(prepared)
            self._changed()
            return copy.deepcopy(prepared)

    def upsert_ignore(self, table: str, rows: list[dict], conflict: tuple[str, ...]) -> list[dict]:
        with self._lock:
            existing = self._table(table)
            inserted = []
            for row in rows:
                row = self._prepare(table, row)
                if self._conflicts(existing, row, conflict):
                    continue
                existing.append(row)
                inserted.append(row)
            if inserted:
                self._changed()
            return copy.deepcopy(inserted)

    def select(
        self,
        table: str,
        filters: dict | None = None,
        order_by: str | None = None,
        desc: bool = False,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[dict]:
        cap = self.row_cap if limit is None else min(limit, self.row_cap)
        with self._lock:
            rows = [r for r in self._table(table) if _matches(r, filters)]
            if order_by:
                rows.sort(key=_sort_key(order_by), reverse=desc)
            return copy.deepcopy(rows[offset:offset + cap])

    def update(self, table: str, filters: dict, values: dict) -> list[dict]:
        with self._lock:
            updated = []
            for row in self._table(table):
                if _matches(row, filters):
                    row.update(copy.deepcopy(values))
                    updated.append(row)
            if updated:
                self._changed()
            return copy.deepcopy(updated)

    def count(self, table: str, filters: dict | None = None) -> int:
        with self._lock:
            return sum(1 for r in self._table(table) if _matches(r, filters))

    def dump(self) -> dict:
        with self._lock:
            return copy.deepcopy(self._tables)


class JsonFileDatastore(MemoryDatastore):
    """MemoryDatastore persisted to a single JSON document after every write."""

    def __init__(self, path: str | Path, missing_tables: tuple | list | set = ()):
        super().__init__(missing_tables=missing_tables)
        self.path = Path(path)
        if self.path.exists():
            self._load()

    def _load(self) -> None:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except (json.JSONDecodeError, OSError) as exc:
            raise StorageError(f"Cannot read datastore {self.path}: {exc}") from exc
        for table, rows in data.items():
            if table not in self.missing_tables and isinstance(rows, list):
                self._tables[table] = rows
        logger.debug(f"[datastore] Loaded {self.path}")

    def _changed(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp, "w") as f:
            json.dump(self._tables, f, indent=2, default=str)
        os.replace(tmp, self.path)


def fetch_all(
    store: Datastore,
    table: str,
    filters: dict | None = None,
    order_by: str | None = None,
    page_size: int = ROW_CAP,
    max_rows: int = 50000,
) -> list[dict]:
    """Page through a table past the per-query row cap, up to max_rows."""
    rows: list[dict] = []
    page_size = min(page_size, store.row_cap)
    offset = 0
    while len(rows) < max_rows:
        page = store.select(table, filters, order_by=order_by, offset=offset, limit=page_size)
        rows.extend(page)
        if len(page) < page_size:
            break
        offset += page_size
    return rows[:max_rows]


def is_missing_table(exc: Any) -> bool:
    return isinstance(exc, TableMissingError) or getattr(exc, "code", None) == TableMissingError.CODE
