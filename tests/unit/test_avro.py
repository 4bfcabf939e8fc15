"""
Unit tests for the Avro codec adapter.

Tests cover:
- Name qualification
- Parsing errors and unresolved references
- Self-contained serialisation of parsed schemas
- Structural equality keys
- Validation messages and field paths
- Conversion of Python values
"""

import io
import json
from datetime import date, datetime, time
from decimal import Decimal

import pytest

from avrowire import avro
from avrowire.avro import UnresolvedReferenceError
from avrowire.errors import SchemaError, ValidationError

ADDRESS = {
    "type": "record",
    "name": "address",
    "fields": [{"name": "city", "type": "string"}],
}

PERSON = {
    "type": "record",
    "name": "person",
    "fields": [
        {"name": "full_name", "type": "string"},
        {"name": "address", "type": "address"},
    ],
}


class TestNames:
    """Tests for fullname handling."""

    @pytest.mark.parametrize(
        "name, namespace, expected",
        [
            ("person", "test", "test.person"),
            ("person", None, "person"),
            ("person", "", "person"),
            ("other.person", "test", "other.person"),
        ],
    )
    def test_make_fullname(self, name, namespace, expected):
        assert avro.make_fullname(name, namespace) == expected

    def test_fullname_of_unnamed_schema(self):
        assert avro.fullname(avro.parse("string")) is None
        assert avro.fullname(avro.parse(["null", "string"])) is None


class TestParse:
    """Tests for parsing definitions."""

    def test_unresolved_reference(self):
        """Unknown named types are reported by name."""
        with pytest.raises(UnresolvedReferenceError) as exc_info:
            avro.parse(PERSON)

        assert exc_info.value.name == "address"

    def test_unresolved_reference_is_schema_error(self):
        assert issubclass(UnresolvedReferenceError, SchemaError)

    def test_names_map_shared(self):
        """Types parsed into a names map are referable by later parses."""
        names = {}
        avro.parse(ADDRESS, names)

        schema = avro.parse(PERSON, names)

        assert "address" in avro.named_types(schema)

    def test_invalid_json(self):
        with pytest.raises(SchemaError, match="not valid JSON"):
            avro.loads("{nope")

    def test_missing_name(self):
        """Named types without a name are invalid."""
        with pytest.raises(SchemaError, match="invalid Avro schema"):
            avro.parse({"type": "record", "fields": []})

    def test_missing_type(self):
        with pytest.raises(SchemaError, match="invalid Avro schema"):
            avro.parse({"name": "thing"})

    @pytest.mark.parametrize(
        "definition, expected",
        [
            ("string", "string"),
            (["null", "string"], "union"),
            ({"type": "array", "items": "int"}, "array"),
            (ADDRESS, "record"),
        ],
    )
    def test_kind(self, definition, expected):
        assert avro.kind(avro.parse(definition)) == expected

    def test_fields(self):
        schema = avro.parse(ADDRESS)

        assert [f["name"] for f in avro.fields(schema)] == ["city"]
        assert avro.fields(avro.parse("string")) == []


class TestDumps:
    """Tests for serialising parsed schemas."""

    def test_dumps_is_self_contained(self):
        """Referenced types are inlined so the text parses on its own."""
        names = {}
        avro.parse(ADDRESS, names)
        person = avro.parse(PERSON, names)

        reparsed = avro.loads(avro.dumps(person))

        assert avro.fullname(reparsed) == "person"
        assert "address" in avro.named_types(reparsed)

    def test_dumps_omits_parser_keys(self):
        text = avro.dumps(avro.parse(ADDRESS))

        assert "__fastavro" not in text
        assert "__named_schemas" not in text

    def test_dumps_recursive_schema(self):
        """Self references are kept as names after the first definition."""
        node = {
            "type": "record",
            "name": "node",
            "fields": [{"name": "next", "type": ["null", "node"], "default": None}],
        }

        definition = json.loads(avro.dumps(avro.parse(node)))

        assert definition["fields"][0]["type"] == ["null", "node"]


class TestCanonical:
    """Tests for structural equality keys."""

    def test_whitespace_and_order_ignored(self):
        compact = json.dumps(ADDRESS)
        spaced = json.dumps(dict(reversed(list(ADDRESS.items()))), indent=4)

        assert avro.canonical(compact) == avro.canonical(spaced)

    def test_different_schemas_differ(self):
        other = dict(ADDRESS, fields=[{"name": "town", "type": "string"}])

        assert avro.canonical(json.dumps(ADDRESS)) != avro.canonical(json.dumps(other))

    def test_bare_primitive_name(self):
        """Primitive names that are not JSON text are accepted."""
        assert avro.canonical("string") == '"string"'
        assert avro.canonical('"string"') == '"string"'

    def test_parsed_schema_matches_its_dump(self):
        schema = avro.parse(ADDRESS)

        assert avro.canonical(schema) == avro.canonical(avro.dumps(schema))


class TestReadWrite:
    """Tests for schemaless encoding."""

    def test_round_trip(self):
        schema = avro.parse(ADDRESS)
        buffer = io.BytesIO()

        avro.write(buffer, schema, {"city": "Oslo"})
        buffer.seek(0)

        assert avro.read(buffer, schema) == {"city": "Oslo"}

    def test_string_encoding(self):
        """Strings are a zig-zag length followed by UTF-8 bytes."""
        buffer = io.BytesIO()

        avro.write(buffer, avro.parse("string"), "John Doe")

        assert buffer.getvalue() == b"\x10John Doe"


class TestValidate:
    """Tests for message validation."""

    @pytest.fixture
    def person(self):
        names = {}
        avro.parse(ADDRESS, names)
        return avro.parse(PERSON, names)

    def test_valid_message(self, person):
        avro.validate(person, {"full_name": "John Doe", "address": {"city": "Oslo"}})

    def test_wrong_type(self, person):
        with pytest.raises(ValidationError) as exc_info:
            avro.validate(person, {"full_name": 5, "address": {"city": "Oslo"}})

        assert exc_info.value.errors == ["person.full_name expected type string, got int"]
        assert exc_info.value.fields == ["person.full_name"]

    def test_missing_field(self, person):
        with pytest.raises(ValidationError) as exc_info:
            avro.validate(person, {"address": {"city": "Oslo"}})

        assert exc_info.value.errors == ["person.full_name expected type string, got null"]

    def test_nested_extra_field(self, person):
        """Extra fields are reported with their full path."""
        with pytest.raises(ValidationError) as exc_info:
            avro.validate(person, {"full_name": "John Doe", "address": {"city": "Oslo", "zip": "0150"}})

        assert exc_info.value.fields == ["person.address.zip"]
        assert exc_info.value.errors == ["person.address extra field 'zip' - not in schema"]

    def test_extra_fields_allowed(self, person):
        avro.validate(
            person,
            {"full_name": "John Doe", "address": {"city": "Oslo"}, "age": 3},
            fail_on_extra_fields=False,
        )

    def test_extra_field_in_array(self):
        schema = avro.parse({"type": "array", "items": ADDRESS})

        with pytest.raises(ValidationError) as exc_info:
            avro.validate(schema, [{"city": "Oslo"}, {"city": "Bergen", "zip": "5003"}])

        assert exc_info.value.fields == ["[1].zip"]

    def test_error_code(self, person):
        with pytest.raises(ValidationError) as exc_info:
            avro.validate(person, {})

        assert exc_info.value.code == "VALIDATION_ERROR"


class TestToAvro:
    """Tests for converting Python values."""

    @pytest.mark.parametrize("value", [None, True, 1, 1.5, "text", b"raw", Decimal("1.10")])
    def test_primitives_unchanged(self, value):
        assert avro.to_avro(value) == value

    def test_dates_and_times(self):
        assert avro.to_avro(date(2024, 1, 2)) == "2024-01-02"
        assert avro.to_avro(datetime(2024, 1, 2, 3, 4, 5)) == "2024-01-02T03:04:05"
        assert avro.to_avro(time(3, 4)) == "03:04:00"

    def test_collections(self):
        assert avro.to_avro((1, 2)) == [1, 2]
        assert avro.to_avro({3}) == [3]
        assert avro.to_avro(frozenset()) == []

    def test_nested_mapping(self):
        value = {"when": date(2024, 1, 2), "tags": ("a",), "inner": {"on": date(2024, 1, 3)}}

        assert avro.to_avro(value) == {
            "when": "2024-01-02",
            "tags": ["a"],
            "inner": {"on": "2024-01-03"},
        }
