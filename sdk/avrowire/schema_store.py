"""
Filesystem schema store for avrowire.

This module resolves schema names to parsed schemas from a directory tree:
- SchemaStore: Read-only store backed by ``.avsc`` (or ``.json``) files
- MutableSchemaStore: Store that also accepts schemas added at runtime

A schema named ``com.acme.Person`` lives at ``<root>/com/acme/Person.avsc``
and must declare itself as ``com.acme.Person``.

Invariants:
    - Only top-level schemas (one per file) are cached by fullname
    - Nested types never enter the store cache; they live in a names map
      scoped to a single load and are discarded with it
    - A schema whose declared fullname disagrees with its path is never cached
    - A load caches its dependencies only if the whole load succeeds

How to change safely:
    - Keep the names map call-scoped; sharing it across loads lets two files
      that define different nested types with the same fullname clash
"""

from __future__ import annotations

import errno
import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Callable

from . import avro
from .avro import UnresolvedReferenceError
from .errors import SchemaError, SchemaNotFoundError

logger = logging.getLogger(__name__)

DEFAULT_SCHEMAS_PATH = "./schemas"
DEFAULT_FILETYPE = ".avsc"


class SchemaStore:
    """Resolves schema names to parsed schemas from a file tree.

    Lookups for already loaded schemas never block. A miss takes the store
    lock, re-checks the cache, then loads the file and every file it
    references.

    Example:
        >>> store = SchemaStore(path="schemas")
        >>> person = store.find("Person", "com.acme")
    """

    def __init__(self, path: str | os.PathLike[str], filetype: str = DEFAULT_FILETYPE) -> None:
        """Initialize store.

        Args:
            path: Root directory of the schema tree
            filetype: File extension of schema files (``.avsc`` or ``.json``)
        """
        if not path:
            raise ValueError("Please specify a schema path")
        self._path = Path(path)
        self._filetype = filetype if filetype.startswith(".") else f".{filetype}"
        self._schemas: dict[str, Any] = {}
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        """Root directory of the schema tree."""
        return self._path

    @property
    def schemas(self) -> dict[str, Any]:
        """Cached top-level schemas by fullname."""
        return self._schemas

    def find(self, name: str, namespace: str | None = None) -> Any:
        """Resolve and return a schema.

        Args:
            name: Schema name, or fullname if it contains a dot
            namespace: Namespace used to qualify ``name``

        Returns:
            Parsed schema

        Raises:
            SchemaNotFoundError: If no file exists for the name or one of its
                references
            SchemaError: If the file declares a different fullname
        """
        fullname = avro.make_fullname(name, namespace)

        schema = self._schemas.get(fullname)
        if schema is not None:
            return schema

        with self._lock:
            schema = self._schemas.get(fullname)
            if schema is not None:
                return schema

            staged: dict[str, Any] = {}
            schema = self._load_schema(fullname, {}, staged)
            self._schemas.update(staged)
            return schema

    def load_schemas(self) -> None:
        """Load every schema file under the root directory."""
        for schema_path in sorted(self._path.rglob(f"*{self._filetype}")):
            relative = schema_path.relative_to(self._path).with_suffix("")
            self.find(".".join(relative.parts))

    def _build_schema_path(self, fullname: str) -> Path:
        *namespace, schema_name = fullname.split(".")
        return self._path.joinpath(*namespace, schema_name + self._filetype)

    def _read_definition(self, fullname: str) -> Any:
        schema_path = self._build_schema_path(fullname)
        try:
            text = schema_path.read_text()
        except FileNotFoundError as exc:
            raise SchemaNotFoundError(
                f"could not find Avro schema at `{schema_path}'", name=fullname
            ) from exc
        except OSError as exc:
            if exc.errno in (errno.ENAMETOOLONG, errno.ENOTDIR, errno.EISDIR):
                raise SchemaNotFoundError(
                    f"could not find Avro schema at `{schema_path}'", name=fullname
                ) from exc
            raise

        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise SchemaError(
                f"schema file `{schema_path}' is not valid JSON: {exc}",
                expected_name=fullname,
            ) from exc

    def _load_schema(
        self,
        fullname: str,
        local_names: dict[str, Any],
        staged: dict[str, Any],
    ) -> Any:
        """Load one schema and whatever it references into ``local_names``.

        Loaded schemas go to ``staged``; the caller commits them to the cache
        once the outermost load has succeeded. Must be called with the store
        lock held.
        """
        definition = self._read_definition(fullname)
        schema = resolve(
            definition,
            fullname,
            local_names,
            lambda missing, names: self._load_schema(missing, names, staged),
        )

        declared = avro.fullname(schema)
        if declared is not None and declared != fullname:
            raise SchemaError(
                f"expected schema `{self._build_schema_path(fullname)}' "
                f"to define type `{fullname}'",
                expected_name=fullname,
                actual_name=declared,
            )

        staged[fullname] = schema
        return schema


def resolve(
    definition: Any,
    fullname: str,
    local_names: dict[str, Any],
    load_dependency: Callable[[str, dict[str, Any]], Any],
) -> Any:
    """Parse a definition, loading missing references on demand.

    Two-phase resolve: parse; if a referenced type is unknown, load that type
    as its own top-level unit into the same names map, drop the entries the
    failed attempt left behind, and parse again. Partial entries stay in
    place while the dependency loads so mutually recursive types resolve.

    Args:
        definition: Decoded JSON definition
        fullname: Fullname being resolved (for diagnostics)
        local_names: Call-scoped names map, mutated in place
        load_dependency: Callable ``(fullname, local_names)`` loading one type

    Returns:
        Parsed schema
    """
    attempted: set[str] = set()
    while True:
        before = set(local_names)
        try:
            return avro.parse(definition, local_names)
        except UnresolvedReferenceError as exc:
            missing = exc.name
            if missing in attempted:
                raise SchemaNotFoundError(
                    f"could not resolve type `{missing}' referenced by `{fullname}'",
                    name=missing,
                ) from exc
            attempted.add(missing)
            logger.debug("Resolving %s referenced by %s", missing, fullname)

            partial = set(local_names) - before
            load_dependency(missing, local_names)

            for name in partial:
                local_names.pop(name, None)


class MutableSchemaStore(SchemaStore):
    """Schema store that accepts schemas at runtime.

    Only the top-level schema is cached; sub-schemas it defines are parsed
    into a throwaway copy of the names so two schemas may each define a
    nested type with the same fullname.
    """

    def add_schema(self, definition: dict[str, Any] | str) -> Any:
        """Add a schema from its definition.

        Args:
            definition: Schema definition as a dict or JSON text

        Returns:
            The parsed schema, or the cached one if the fullname is known
        """
        if isinstance(definition, str):
            definition = json.loads(definition)

        full_name = avro.make_fullname(definition["name"], definition.get("namespace"))
        with self._lock:
            if full_name in self._schemas:
                return self._schemas[full_name]

            schema = avro.parse(definition, self._known_names())
            self._schemas[full_name] = schema
            return schema

    def _known_names(self) -> dict[str, Any]:
        """Throwaway names map holding every cached schema and its named types."""
        names: dict[str, Any] = {}
        for schema in self._schemas.values():
            names.update(avro.named_types(schema))
        names.update(self._schemas)
        return names
