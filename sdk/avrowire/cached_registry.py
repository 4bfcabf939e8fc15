"""
Caching registry client for avrowire.

CachedRegistryClient wraps any SchemaRegistry and answers repeated lookups
from a SchemaCache:
- fetch(id), fetch_record(id): cached by id, Avro schemas only
- register(subject, schema): cached by (subject, canonical schema)
- subject_version(subject, version): cached by (subject, version), except
  ``latest`` which can move and always goes upstream

Every other operation is delegated unchanged.

Invariants:
    - Cached and uncached clients return the same values
    - Upstream is called at most once per distinct cacheable key
"""

from __future__ import annotations

import logging
from typing import Any

from . import avro
from .cache import InMemoryCache, SchemaCache
from .registry import AVRO_SCHEMA_TYPE, LATEST, SchemaRegistry, schema_text

logger = logging.getLogger(__name__)


class CachedRegistryClient:
    """Cache-aside decorator over a registry client.

    Example:
        >>> registry = CachedRegistryClient(RegistryClient(url))
        >>> registry.register("person", schema)  # upstream
        >>> registry.register("person", schema)  # cache
    """

    def __init__(self, upstream: SchemaRegistry, cache: SchemaCache | None = None) -> None:
        self._upstream = upstream
        self._cache = cache if cache is not None else InMemoryCache()

    @property
    def upstream(self) -> SchemaRegistry:
        """Wrapped registry client."""
        return self._upstream

    @property
    def cache(self) -> SchemaCache:
        """Cache backend."""
        return self._cache

    def close(self) -> None:
        close = getattr(self._upstream, "close", None)
        if close is not None:
            close()

    def __enter__(self) -> CachedRegistryClient:
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.close()

    # =========================================================================
    # Cached operations
    # =========================================================================

    def fetch(self, schema_id: int) -> str:
        return self.fetch_record(schema_id)["schema"]

    def fetch_record(self, schema_id: int) -> dict[str, Any]:
        """Fetch a schema by id; only Avro schemas are cached.

        The cache holds schema text alone, so a cached record is always Avro
        and carries no ``schemaType``.
        """
        cached = self._cache.lookup_by_id(schema_id)
        if cached is not None:
            logger.debug("Cache hit for schema id %s", schema_id)
            return {"schema": cached}

        record = self._upstream.fetch_record(schema_id)
        if record.get("schemaType", AVRO_SCHEMA_TYPE) == AVRO_SCHEMA_TYPE:
            self._cache.store_by_id(schema_id, record["schema"])
        return record

    def register(
        self,
        subject: str,
        schema: Any,
        references: list[dict[str, Any]] | None = None,
    ) -> int:
        text = schema_text(schema)
        key = avro.canonical(text)
        cached = self._cache.lookup_by_schema(subject, key)
        if cached is not None:
            logger.debug("Cache hit for schema registered under `%s`", subject)
            return cached
        schema_id = self._upstream.register(subject, text, references)
        return self._cache.store_by_schema(subject, key, schema_id)

    def subject_version(self, subject: str, version: int | str = LATEST) -> dict[str, Any]:
        if version == LATEST:
            return self._upstream.subject_version(subject, version)

        cached = self._cache.lookup_by_version(subject, version)
        if cached is not None:
            logger.debug("Cache hit for subject `%s` version %s", subject, version)
            return cached
        record = self._upstream.subject_version(subject, version)
        return self._cache.store_by_version(subject, version, record)

    # =========================================================================
    # Delegated operations
    # =========================================================================

    def fetch_subject_versions(self, schema_id: int) -> list[dict[str, Any]]:
        return self._upstream.fetch_subject_versions(schema_id)

    def subjects(self) -> list[str]:
        return self._upstream.subjects()

    def subject_versions(self, subject: str) -> list[int]:
        return self._upstream.subject_versions(subject)

    def check(self, subject: str, schema: Any) -> dict[str, Any] | None:
        return self._upstream.check(subject, schema)

    def compatible(self, subject: str, schema: Any, version: int | str = LATEST) -> bool | None:
        return self._upstream.compatible(subject, schema, version)

    def global_config(self) -> dict[str, Any]:
        return self._upstream.global_config()

    def update_global_config(self, config: dict[str, Any]) -> dict[str, Any]:
        return self._upstream.update_global_config(config)

    def subject_config(self, subject: str) -> dict[str, Any]:
        return self._upstream.subject_config(subject)

    def update_subject_config(self, subject: str, config: dict[str, Any]) -> dict[str, Any]:
        return self._upstream.update_subject_config(subject, config)
