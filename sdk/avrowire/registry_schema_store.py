"""
Registry-backed schema store for avrowire.

RegistrySchemaStore resolves schema names against registry subjects instead
of files: the subject named after a schema's fullname holds its definition.
References to other named types are resolved as their own subjects with
the same two-phase resolve the filesystem store uses.

Invariants:
    - Only top-level schemas (one per subject) are cached by fullname
    - Registry not-found answers surface as SchemaNotFoundError
"""

from __future__ import annotations

import json
import logging
import threading
from typing import Any

from . import avro
from .cached_registry import CachedRegistryClient
from .errors import RegistryNotFoundError, SchemaError, SchemaNotFoundError
from .registry import LATEST, RegistryClient, SchemaRegistry
from .schema_store import resolve

logger = logging.getLogger(__name__)


class RegistrySchemaStore:
    """Schema store whose source of truth is a schema registry.

    Args:
        registry: Registry client; wrapped in a CachedRegistryClient
            unless it already is one
        registry_url: URL used to build a RegistryClient when no registry
            is given
        **client_options: Extra RegistryClient keyword arguments
    """

    def __init__(
        self,
        registry: SchemaRegistry | None = None,
        registry_url: str | None = None,
        **client_options: Any,
    ) -> None:
        if registry is None:
            if registry_url is None:
                raise ValueError("Please specify a registry or a registry URL")
            registry = RegistryClient(registry_url, **client_options)
        if not isinstance(registry, CachedRegistryClient):
            registry = CachedRegistryClient(registry)

        self._registry = registry
        self._schemas: dict[str, Any] = {}
        self._lock = threading.Lock()

    @property
    def registry(self) -> CachedRegistryClient:
        return self._registry

    @property
    def schemas(self) -> dict[str, Any]:
        """Cached top-level schemas by fullname."""
        return self._schemas

    def find(self, name: str, namespace: str | None = None, version: int | str = LATEST) -> Any:
        """Resolve and return the schema registered under a fullname subject.

        Raises:
            SchemaNotFoundError: If the subject or version does not exist
        """
        fullname = avro.make_fullname(name, namespace)

        schema = self._schemas.get(fullname)
        if schema is not None:
            return schema

        with self._lock:
            schema = self._schemas.get(fullname)
            if schema is not None:
                return schema
            schema = self._load_schema(fullname, {}, version)
            self._schemas[fullname] = schema
            return schema

    def load_schemas(self) -> None:
        """Resolve every subject in the registry."""
        for subject in self._registry.subjects():
            self.find(subject)

    def _load_schema(
        self,
        fullname: str,
        local_names: dict[str, Any],
        version: int | str = LATEST,
    ) -> Any:
        try:
            record = self._registry.subject_version(fullname, version)
        except RegistryNotFoundError as exc:
            raise SchemaNotFoundError(
                f"could not find Avro schema in the Registry: `{fullname}`",
                name=fullname,
            ) from exc

        try:
            definition = json.loads(record["schema"])
        except json.JSONDecodeError as exc:
            raise SchemaError(
                f"schema of subject `{fullname}` is not valid JSON: {exc}",
                expected_name=fullname,
            ) from exc

        return resolve(definition, fullname, local_names, self._load_schema)
