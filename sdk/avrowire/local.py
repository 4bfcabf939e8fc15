"""
Local Avro mode for avrowire.

LocalAvro resolves schemas by name from a schema store and writes Avro
object container files, which embed the writer's schema. No registry is
involved, so the output is self-describing and larger than a framed
message.
"""

from __future__ import annotations

import io
import logging
from typing import IO, Any

from . import avro
from .errors import ValidationError
from .schema_store import DEFAULT_SCHEMAS_PATH, SchemaStore

logger = logging.getLogger(__name__)

CODECS = frozenset(("null", "deflate"))


class LocalAvro:
    """Encodes and decodes Avro container data using local schemas.

    Args:
        schemas_path: Root directory of the schema tree
        schema_store: Store resolving schema names; a SchemaStore over
            ``schemas_path`` when omitted
        namespace: Default namespace for schema names
        codec: Block compression codec, ``null`` (default) or ``deflate``
    """

    def __init__(
        self,
        schemas_path: str | None = None,
        schema_store: Any = None,
        namespace: str | None = None,
        codec: str | None = None,
    ) -> None:
        codec = codec or "null"
        if codec not in CODECS:
            raise ValueError(f"Unsupported codec `{codec}`; use one of {sorted(CODECS)}")
        self._schema_store = schema_store or SchemaStore(schemas_path or DEFAULT_SCHEMAS_PATH)
        self._namespace = namespace
        self._codec = codec

    @property
    def schema_store(self) -> Any:
        return self._schema_store

    def encode(
        self,
        data: Any,
        schema_name: str,
        namespace: str | None = None,
        validate: bool = False,
    ) -> bytes:
        """Encode one record as an Avro container.

        Raises:
            ValidationError: If ``validate`` is set and the data does not
                match the schema
        """
        buffer = io.BytesIO()
        self.encode_to_stream(data, buffer, schema_name, namespace, validate)
        return buffer.getvalue()

    def encode_to_stream(
        self,
        data: Any,
        stream: IO[bytes],
        schema_name: str,
        namespace: str | None = None,
        validate: bool = False,
    ) -> None:
        """Encode one record as an Avro container written to ``stream``."""
        schema = self._schema_store.find(schema_name, namespace or self._namespace)
        datum = avro.to_avro(data)
        if validate:
            avro.validate(schema, datum)
        avro.write_container(stream, schema, [datum], codec=self._codec)

    def decode_first(
        self,
        encoded: bytes,
        schema_name: str | None = None,
        namespace: str | None = None,
    ) -> Any:
        """Decode the first record of an Avro container."""
        return self.decode_first_from_stream(io.BytesIO(encoded), schema_name, namespace)

    decode = decode_first

    def decode_all(
        self,
        encoded: bytes,
        schema_name: str | None = None,
        namespace: str | None = None,
    ) -> list[Any]:
        """Decode every record of an Avro container."""
        return self.decode_all_from_stream(io.BytesIO(encoded), schema_name, namespace)

    def decode_first_from_stream(
        self,
        stream: IO[bytes],
        schema_name: str | None = None,
        namespace: str | None = None,
    ) -> Any:
        """Decode the first record of the container read from ``stream``.

        Returns:
            The record, or None if the container holds no records
        """
        return next(self._records(stream, schema_name, namespace), None)

    def decode_all_from_stream(
        self,
        stream: IO[bytes],
        schema_name: str | None = None,
        namespace: str | None = None,
    ) -> list[Any]:
        """Decode every record of the container read from ``stream``."""
        return list(self._records(stream, schema_name, namespace))

    def valid(self, data: Any, schema_name: str, namespace: str | None = None) -> bool:
        """Check whether data matches a schema.

        Fields not present in the schema are tolerated here.
        """
        schema = self._schema_store.find(schema_name, namespace or self._namespace)
        try:
            avro.validate(schema, avro.to_avro(data), fail_on_extra_fields=False)
        except ValidationError as exc:
            logger.debug("Data does not match %s: %s", schema_name, exc.message)
            return False
        return True

    def load_schemas(self) -> None:
        """Load every schema of the schema store."""
        self._schema_store.load_schemas()

    def _records(self, stream: IO[bytes], schema_name: str | None, namespace: str | None) -> Any:
        reader_schema = None
        if schema_name is not None:
            reader_schema = self._schema_store.find(schema_name, namespace or self._namespace)
        return avro.read_container(stream, reader_schema)
