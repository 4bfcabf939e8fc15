"""
Avro codec adapter for avrowire.

Everything avrowire needs from the Avro implementation goes through this
module, so the rest of the package never touches fastavro directly:
- Parsing definitions against a caller-owned names map
- Serialising parsed schemas back to self-contained JSON
- Structural equality keys for schema content
- Schemaless binary write/read and object container files
- Message validation with field paths
- Conversion of Python values into Avro-friendly values

Invariants:
    - Parsed schemas are fastavro parsed schemas (dict, list or str)
    - Unresolved type references surface as UnresolvedReferenceError
    - dumps() output is parseable without any other schema in scope
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Set
from datetime import date, datetime, time
from decimal import Decimal
from typing import IO, Any, Iterable, Iterator

from fastavro import reader, schemaless_reader, schemaless_writer, writer
from fastavro.schema import SchemaParseException, UnknownType, parse_schema
from fastavro.validation import ValidationError as _FastavroValidationError
from fastavro.validation import validate as _validate

from .errors import SchemaError, ValidationError

logger = logging.getLogger(__name__)

PRIMITIVES = frozenset(
    ("null", "boolean", "int", "long", "float", "double", "bytes", "string")
)
NAMED_KINDS = frozenset(("record", "error", "enum", "fixed"))

# Keys fastavro adds to the top level of a parsed schema.
_INTERNAL_KEYS = frozenset(("__fastavro_parsed", "__named_schemas"))

Schema = Any


class UnresolvedReferenceError(SchemaError):
    """A definition references a named type that is not in scope.

    Attributes:
        name: Fullname of the missing type
    """

    def __init__(self, name: str) -> None:
        super().__init__(
            f'"{name}" is not a schema we know about',
            code="UNRESOLVED_REFERENCE",
        )
        self.name = name


def make_fullname(name: str, namespace: str | None = None) -> str:
    """Qualify a name with a namespace unless it is already qualified."""
    if "." in name or not namespace:
        return name
    return f"{namespace}.{name}"


def parse(definition: Any, names: dict[str, Any] | None = None) -> Schema:
    """Parse a schema definition.

    Args:
        definition: Decoded JSON definition (dict, list or str)
        names: Names map the parser reads and populates; pass the same
            map to successive calls to make earlier types referable

    Returns:
        Parsed schema

    Raises:
        UnresolvedReferenceError: If a referenced type is not in ``names``
        SchemaError: If the definition is not a valid Avro schema
    """
    try:
        return parse_schema(definition, named_schemas=names)
    except UnknownType as exc:
        if not isinstance(exc.name, str):
            raise SchemaError(f"invalid Avro schema: unknown type {exc.name!r}") from exc
        raise UnresolvedReferenceError(exc.name) from exc
    except SchemaParseException as exc:
        raise SchemaError(f"invalid Avro schema: {exc}") from exc
    except (KeyError, TypeError) as exc:
        raise SchemaError(f"invalid Avro schema: missing or malformed {exc}") from exc


def loads(text: str, names: dict[str, Any] | None = None) -> Schema:
    """Parse a schema from its JSON text."""
    try:
        definition = json.loads(text)
    except json.JSONDecodeError as exc:
        raise SchemaError(f"schema is not valid JSON: {exc}") from exc
    return parse(definition, names)


def fullname(schema: Schema) -> str | None:
    """Fullname of a named schema, None for unnamed ones."""
    if not isinstance(schema, Mapping) or "name" not in schema:
        return None
    if schema.get("type") not in NAMED_KINDS:
        return None
    return make_fullname(schema["name"], schema.get("namespace"))


def kind(schema: Schema) -> str:
    """Kind of a schema: record, enum, union, array, a primitive, ..."""
    if isinstance(schema, list):
        return "union"
    if isinstance(schema, str):
        return schema if schema in PRIMITIVES else "reference"
    schema_type = schema["type"]
    if isinstance(schema_type, str):
        return schema_type
    return kind(schema_type)


def fields(schema: Schema) -> list[dict[str, Any]]:
    """Field list of a record schema, empty for any other kind."""
    if isinstance(schema, Mapping):
        return list(schema.get("fields", []))
    return []


def named_types(schema: Schema) -> dict[str, Any]:
    """Named types in scope of a parsed schema."""
    if isinstance(schema, Mapping):
        return schema.get("__named_schemas", {})
    if isinstance(schema, list):
        merged: dict[str, Any] = {}
        for branch in schema:
            merged.update(named_types(branch))
        return merged
    return {}


def to_definition(schema: Schema) -> Any:
    """Convert a parsed schema back into a plain JSON definition.

    Named references are expanded at their first use so the result does not
    depend on any other schema being in scope.
    """
    return _expand(schema, named_types(schema), set())


def _expand(schema: Any, named: Mapping[str, Any], seen: set[str]) -> Any:
    if isinstance(schema, list):
        return [_expand(branch, named, seen) for branch in schema]

    if isinstance(schema, str):
        if schema in PRIMITIVES or schema in seen or schema not in named:
            return schema
        return _expand(named[schema], named, seen)

    definition = {k: v for k, v in schema.items() if k not in _INTERNAL_KEYS}
    schema_type = definition.get("type")

    if schema_type in NAMED_KINDS:
        seen.add(make_fullname(definition["name"], definition.get("namespace")))

    if schema_type in ("record", "error"):
        definition["fields"] = [
            dict(f, type=_expand(f["type"], named, seen))
            for f in definition.get("fields", [])
        ]
    elif schema_type == "array":
        definition["items"] = _expand(definition["items"], named, seen)
    elif schema_type == "map":
        definition["values"] = _expand(definition["values"], named, seen)
    elif isinstance(schema_type, (list, dict)):
        definition["type"] = _expand(schema_type, named, seen)

    return definition


def dumps(schema: Schema) -> str:
    """Serialise a parsed schema to self-contained JSON text."""
    return json.dumps(to_definition(schema))


def canonical(schema: Schema | str) -> str:
    """Structural equality key for schema content.

    Two schemas that differ only in whitespace or key order produce the same
    key. Accepts schema text or a parsed schema.
    """
    if isinstance(schema, str):
        try:
            definition = json.loads(schema)
        except json.JSONDecodeError:
            # Bare primitive names are valid schema text too.
            definition = schema
    else:
        definition = to_definition(schema)
    return json.dumps(definition, sort_keys=True, separators=(",", ":"))


def write(fo: IO[bytes], schema: Schema, message: Any) -> None:
    """Write the Avro binary encoding of ``message`` to ``fo``."""
    schemaless_writer(fo, schema, message)


def read(fo: IO[bytes], writer_schema: Schema, reader_schema: Schema | None = None) -> Any:
    """Read one message from ``fo``.

    When a reader schema is given the codec applies its own reader/writer
    resolution rules.
    """
    if reader_schema is None:
        return schemaless_reader(fo, writer_schema)
    return schemaless_reader(fo, writer_schema, reader_schema)


def write_container(fo: IO[bytes], schema: Schema, records: Iterable[Any], codec: str = "null") -> None:
    """Write records as an Avro object container file (schema embedded)."""
    writer(fo, to_definition(schema), records, codec=codec)


def read_container(fo: IO[bytes], reader_schema: Schema | None = None) -> Iterator[Any]:
    """Iterate the records of an Avro object container file."""
    return iter(reader(fo, reader_schema=reader_schema))


def validate(schema: Schema, message: Any, fail_on_extra_fields: bool = True) -> None:
    """Validate a message against a schema.

    Raises:
        ValidationError: With the path of every offending field
    """
    errors: list[str] = []
    paths: list[str] = []

    try:
        _validate(message, schema, raise_errors=True)
    except _FastavroValidationError as exc:
        for item in exc.errors:
            path = getattr(item, "field", "") or fullname(schema) or ""
            datum = getattr(item, "datum", None)
            expected = _describe(getattr(item, "schema", schema))
            errors.append(f"{path} expected type {expected}, got {_describe_value(datum)}")
            paths.append(path)

    if fail_on_extra_fields:
        root = fullname(schema) or ""
        _extra_fields(message, schema, named_types(schema), root, errors, paths)

    if errors:
        raise ValidationError(
            f"message does not match schema: {'; '.join(errors)}",
            errors=errors,
            fields=paths,
        )


def _describe(schema: Any) -> str:
    if isinstance(schema, list):
        return "union[" + ", ".join(_describe(branch) for branch in schema) + "]"
    if isinstance(schema, Mapping):
        return fullname(schema) or kind(schema)
    return str(schema)


def _describe_value(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "int"
    if isinstance(value, float):
        return "double"
    if isinstance(value, str):
        return "string"
    return type(value).__name__


def _extra_fields(
    datum: Any,
    schema: Any,
    named: Mapping[str, Any],
    path: str,
    errors: list[str],
    paths: list[str],
) -> None:
    if isinstance(schema, str):
        schema = named.get(schema)
        if schema is None:
            return

    if isinstance(schema, list):
        records = [
            branch
            for branch in (named.get(b, b) if isinstance(b, str) else b for b in schema)
            if isinstance(branch, Mapping) and branch.get("type") in ("record", "error")
        ]
        if len(records) == 1 and isinstance(datum, Mapping):
            _extra_fields(datum, records[0], named, path, errors, paths)
        return

    schema_type = schema.get("type")

    if schema_type in ("record", "error") and isinstance(datum, Mapping):
        known = {f["name"] for f in schema.get("fields", [])}
        for key in datum:
            if key not in known:
                errors.append(f"{path} extra field '{key}' - not in schema")
                paths.append(f"{path}.{key}" if path else str(key))
        for f in schema.get("fields", []):
            if f["name"] in datum:
                child = f"{path}.{f['name']}" if path else f["name"]
                _extra_fields(datum[f["name"]], f["type"], named, child, errors, paths)

    elif schema_type == "array" and isinstance(datum, (list, tuple)):
        for index, item in enumerate(datum):
            _extra_fields(item, schema["items"], named, f"{path}[{index}]", errors, paths)

    elif schema_type == "map" and isinstance(datum, Mapping):
        for key, value in datum.items():
            _extra_fields(value, schema["values"], named, f"{path}.{key}", errors, paths)


def to_avro(value: Any) -> Any:
    """Convert a Python value into a value the Avro writer accepts.

    Mappings convert keys and values, sequences and sets become lists,
    dates and times become ISO 8601 strings; null, booleans and other
    primitives pass through unchanged.
    """
    if value is None or isinstance(value, (bool, str, bytes, bytearray, int, float, Decimal)):
        return value
    if isinstance(value, Mapping):
        return {to_avro(k): to_avro(v) for k, v in value.items()}
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, (list, tuple, Set)):
        return [to_avro(item) for item in value]
    return value
