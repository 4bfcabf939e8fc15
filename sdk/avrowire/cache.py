"""
Registry caches for avrowire.

This module provides the cache backends used by CachedRegistryClient:
- SchemaCache: The cache contract every backend implements
- InMemoryCache: Process-lifetime dictionaries
- DiskCache: InMemoryCache with write-through JSON files

Three tables are kept, all growing monotonically:
- schemas_by_id: schema id -> schema text
- ids_by_schema: subject -> canonical schema text -> schema id
- schemas_by_subject_version: subject -> version -> subject version record

Invariants:
    - A cache is a pure accelerator; an empty cache only costs latency
    - Ids and versions are keyed by their string form in every backend
    - Every store_* returns the stored value
    - A zero-length cache file is an empty cache; any other unparsable
      cache file is an error
"""

from __future__ import annotations

import fcntl
import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from .errors import CacheCorruptionError

logger = logging.getLogger(__name__)

SCHEMAS_BY_ID = "schemas_by_id"
IDS_BY_SCHEMA = "ids_by_schema"
SCHEMAS_BY_SUBJECT_VERSION = "schemas_by_subject_version"
TABLES = (SCHEMAS_BY_ID, IDS_BY_SCHEMA, SCHEMAS_BY_SUBJECT_VERSION)


@runtime_checkable
class SchemaCache(Protocol):
    """Cache-aside contract for registry lookups."""

    def lookup_by_id(self, schema_id: int) -> str | None: ...

    def store_by_id(self, schema_id: int, schema: str) -> str: ...

    def lookup_by_schema(self, subject: str, schema: str) -> int | None: ...

    def store_by_schema(self, subject: str, schema: str, schema_id: int) -> int: ...

    def lookup_by_version(self, subject: str, version: int | str) -> dict[str, Any] | None: ...

    def store_by_version(self, subject: str, version: int | str, record: dict[str, Any]) -> dict[str, Any]: ...


class InMemoryCache:
    """Stores schemas and ids in process memory.

    All access goes through one lock so concurrent cache-aside callers never
    see a half-updated table.
    """

    def __init__(self) -> None:
        self._tables: dict[str, dict[str, Any]] = {name: {} for name in TABLES}
        self._lock = threading.Lock()

    def lookup_by_id(self, schema_id: int) -> str | None:
        return self._lookup(SCHEMAS_BY_ID, str(schema_id))

    def store_by_id(self, schema_id: int, schema: str) -> str:
        return self._store(SCHEMAS_BY_ID, str(schema_id), None, schema)

    def lookup_by_schema(self, subject: str, schema: str) -> int | None:
        return self._lookup(IDS_BY_SCHEMA, subject, schema)

    def store_by_schema(self, subject: str, schema: str, schema_id: int) -> int:
        return self._store(IDS_BY_SCHEMA, subject, schema, schema_id)

    def lookup_by_version(self, subject: str, version: int | str) -> dict[str, Any] | None:
        return self._lookup(SCHEMAS_BY_SUBJECT_VERSION, subject, str(version))

    def store_by_version(
        self, subject: str, version: int | str, record: dict[str, Any]
    ) -> dict[str, Any]:
        return self._store(SCHEMAS_BY_SUBJECT_VERSION, subject, str(version), record)

    def _lookup(self, table: str, key: str, subkey: str | None = None) -> Any:
        with self._lock:
            value = _get(self._table(table), key, subkey)
            if value is None:
                value = _get(self._refresh(table), key, subkey)
            return value

    def _store(self, table: str, key: str, subkey: str | None, value: Any) -> Any:
        with self._lock:
            entries = self._table(table)
            if subkey is None:
                entries[key] = value
            else:
                entries.setdefault(key, {})[subkey] = value
            self._persist(table)
            return value

    def _table(self, table: str) -> dict[str, Any]:
        return self._tables[table]

    def _refresh(self, table: str) -> dict[str, Any]:
        """Hook for backends that can pick up entries written elsewhere."""
        return self._tables[table]

    def _persist(self, table: str) -> None:
        """Hook for write-through backends."""


class DiskCache(InMemoryCache):
    """Write-through cache persisted as one JSON file per table.

    Files live under ``path`` as ``schemas_by_id.json``, ``ids_by_schema.json``
    and ``schemas_by_subject_version.json``. Reads take a shared lock on the
    file, writes an exclusive one, so concurrent processes never interleave
    partial writes. Each write merges what is on disk before rewriting the
    whole file.

    Example:
        >>> registry = CachedRegistryClient(RegistryClient(url), cache=DiskCache("/var/cache/avro"))
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        super().__init__()
        self._dir = Path(path)
        self._dir.mkdir(parents=True, exist_ok=True)
        self._paths = {name: self._dir / f"{name}.json" for name in TABLES}
        self._loaded: set[str] = set()

    def path_for(self, table: str) -> Path:
        """File backing a table."""
        return self._paths[table]

    def _table(self, table: str) -> dict[str, Any]:
        if table not in self._loaded:
            self._refresh(table)
        return self._tables[table]

    def _refresh(self, table: str) -> dict[str, Any]:
        path = self._paths[table]
        entries = self._tables[table]
        self._loaded.add(table)
        if not path.exists():
            return entries

        with open(path) as f:
            fcntl.flock(f, fcntl.LOCK_SH)
            try:
                text = f.read()
            finally:
                fcntl.flock(f, fcntl.LOCK_UN)

        _merge(entries, self._parse(path, text, warn_empty=True))
        return entries

    def _persist(self, table: str) -> None:
        path = self._paths[table]
        entries = self._tables[table]

        fd = os.open(path, os.O_RDWR | os.O_CREAT, 0o644)
        with os.fdopen(fd, "r+") as f:
            fcntl.flock(f, fcntl.LOCK_EX)
            try:
                on_disk = self._parse(path, f.read(), warn_empty=False)
                _merge(on_disk, entries)
                _merge(entries, on_disk)
                f.seek(0)
                f.truncate()
                json.dump(on_disk, f, indent=2, sort_keys=True)
                f.flush()
            finally:
                fcntl.flock(f, fcntl.LOCK_UN)

    @staticmethod
    def _parse(path: Path, text: str, warn_empty: bool) -> dict[str, Any]:
        if not text:
            if warn_empty:
                logger.warning("DiskCache: zero length file at %s", path)
            return {}
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise CacheCorruptionError(str(path), str(exc)) from exc
        if not isinstance(data, dict):
            raise CacheCorruptionError(str(path), "expected a JSON object")
        return data


def _get(entries: dict[str, Any], key: str, subkey: str | None) -> Any:
    value = entries.get(key)
    if subkey is None or value is None:
        return value
    return value.get(subkey)


def _merge(target: dict[str, Any], source: dict[str, Any]) -> None:
    """Merge ``source`` into ``target``, one level deep for nested tables."""
    for key, value in source.items():
        current = target.get(key)
        if isinstance(value, dict) and isinstance(current, dict):
            current.update(value)
        else:
            target[key] = value
