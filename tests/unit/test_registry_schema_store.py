"""
Unit tests for the registry-backed schema store.

Tests cover:
- Finding schemas by fullname subject
- References resolved as their own subjects
- Missing subjects
- Bulk loading
"""

import json

import pytest

from avrowire import avro
from avrowire.cached_registry import CachedRegistryClient
from avrowire.errors import SchemaNotFoundError
from avrowire.registry_schema_store import RegistrySchemaStore

ADDRESS = {
    "type": "record",
    "name": "address",
    "namespace": "test",
    "fields": [{"name": "city", "type": "string"}],
}

PERSON = {
    "type": "record",
    "name": "person",
    "namespace": "test",
    "fields": [
        {"name": "full_name", "type": "string"},
        {"name": "address", "type": "address"},
    ],
}


@pytest.fixture
def store(registry):
    return RegistrySchemaStore(registry=registry)


class TestFind:
    """Tests for RegistrySchemaStore.find."""

    def test_find_schema(self, store, registry):
        """The subject named after the fullname holds the schema."""
        registry.register("test.address", json.dumps(ADDRESS))

        schema = store.find("address", "test")

        assert avro.fullname(schema) == "test.address"

    def test_find_with_references(self, store, registry):
        """Referenced types are loaded from their own subjects."""
        registry.register("test.address", json.dumps(ADDRESS))
        registry.register("test.person", json.dumps(PERSON))

        schema = store.find("person", "test")

        assert avro.fullname(schema) == "test.person"
        assert "test.address" in avro.named_types(schema)

    def test_only_top_level_cached(self, store, registry):
        """Dependencies are not cached as top-level schemas."""
        registry.register("test.address", json.dumps(ADDRESS))
        registry.register("test.person", json.dumps(PERSON))

        store.find("test.person")

        assert set(store.schemas) == {"test.person"}

    def test_find_is_cached(self, store, registry, fake_state):
        """Repeated lookups do not reach the registry."""
        registry.register("test.address", json.dumps(ADDRESS))
        first = store.find("test.address")
        fake_state.clear()

        assert store.find("test.address") is first

    def test_find_version(self, store, registry):
        """An explicit version selects that subject version."""
        registry.register("test.address", json.dumps(ADDRESS))
        registry.register(
            "test.address",
            json.dumps(dict(ADDRESS, fields=ADDRESS["fields"] + [{"name": "zip", "type": "string"}])),
        )

        schema = store.find("address", "test", version=1)

        assert [f["name"] for f in avro.fields(schema)] == ["city"]

    def test_missing_subject(self, store):
        """Unknown subjects raise SchemaNotFoundError."""
        with pytest.raises(SchemaNotFoundError, match="could not find Avro schema in the Registry"):
            store.find("nope")

    def test_missing_reference(self, store, registry):
        """A reference without a subject raises SchemaNotFoundError."""
        registry.register("test.person", json.dumps(PERSON))

        with pytest.raises(SchemaNotFoundError) as exc_info:
            store.find("test.person")

        assert exc_info.value.name == "test.address"


class TestLoadSchemas:
    """Tests for RegistrySchemaStore.load_schemas."""

    def test_loads_every_subject(self, store, registry):
        registry.register("test.address", json.dumps(ADDRESS))
        registry.register("test.person", json.dumps(PERSON))

        store.load_schemas()

        assert set(store.schemas) == {"test.address", "test.person"}


class TestConstruction:
    """Tests for building RegistrySchemaStore instances."""

    def test_wraps_registry_in_cache(self, store):
        assert isinstance(store.registry, CachedRegistryClient)

    def test_keeps_cached_registry(self, registry):
        """An already cached client is used as-is."""
        cached = CachedRegistryClient(registry)

        assert RegistrySchemaStore(registry=cached).registry is cached

    def test_registry_required(self):
        with pytest.raises(ValueError):
            RegistrySchemaStore()
