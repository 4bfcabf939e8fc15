"""
Schema-registry message framing for avrowire.

Messaging encodes messages without embedding their schema: the schema is
registered with (or looked up in) the registry, and the registry-assigned
id is written in front of the Avro payload. Decoding reads the id back and
fetches the writer's schema from the registry.

Envelope layout:
    [0x00][schema id, 4 bytes, big-endian unsigned][Avro binary payload]

Example:
    >>> messaging = Messaging(registry_url="http://localhost:8081", schemas_path="schemas")
    >>> data = messaging.encode({"full_name": "John Doe"}, schema_name="person")
    >>> messaging.decode(data)
    {'full_name': 'John Doe'}

Invariants:
    - Every encoded message starts with MAGIC_BYTE followed by the schema id
    - Writer schemas are fetched once per id per Messaging instance
    - Input shorter than the envelope header, or not starting with
      MAGIC_BYTE, is rejected before any registry access
"""

from __future__ import annotations

import io
import logging
import struct
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from . import avro
from .cache import DiskCache
from .cached_registry import CachedRegistryClient
from .errors import (
    IncompatibleSchemaError,
    MalformedEnvelopeError,
    RegistryNotFoundError,
    SchemaNotFoundError,
)
from .registry import AVRO_SCHEMA_TYPE, LATEST, RegistryClient, SchemaRegistry
from .schema_store import DEFAULT_SCHEMAS_PATH, SchemaStore

if TYPE_CHECKING:
    from .config import RegistrySettings

logger = logging.getLogger(__name__)

MAGIC_BYTE = b"\x00"
SCHEMA_ID = struct.Struct(">I")
HEADER_SIZE = len(MAGIC_BYTE) + SCHEMA_ID.size


@dataclass(frozen=True)
class DecodedMessage:
    """A decoded message together with the schemas used to decode it."""

    schema_id: int
    writer_schema: Any
    reader_schema: Any
    message: Any


def frame(schema_id: int, payload: bytes) -> bytes:
    """Prefix a payload with the envelope header."""
    return MAGIC_BYTE + SCHEMA_ID.pack(schema_id) + payload


def unframe(data: bytes) -> tuple[int, bytes]:
    """Split an encoded message into schema id and payload.

    Raises:
        MalformedEnvelopeError: If the data is too short or the magic byte
            is wrong
    """
    if len(data) < HEADER_SIZE:
        raise MalformedEnvelopeError(
            f"Expected at least {HEADER_SIZE} bytes of data, got {len(data)}"
        )
    magic_byte = bytes(data[:1])
    if magic_byte != MAGIC_BYTE:
        raise MalformedEnvelopeError(
            f"Expected data to begin with a magic byte, got `{magic_byte!r}`"
        )
    (schema_id,) = SCHEMA_ID.unpack(bytes(data[1:HEADER_SIZE]))
    return schema_id, bytes(data[HEADER_SIZE:])


class Messaging:
    """Encodes and decodes registry-framed Avro messages.

    Args:
        registry: Registry client; built from ``registry_url`` when omitted
        registry_url: URL of the registry
        schema_store: Store resolving schema names; a SchemaStore over
            ``schemas_path`` when omitted
        schemas_path: Root directory of the schema tree
        namespace: Default namespace for schema names
        **client_options: Extra RegistryClient keyword arguments
    """

    def __init__(
        self,
        registry: SchemaRegistry | None = None,
        registry_url: str | None = None,
        schema_store: Any = None,
        schemas_path: str | None = None,
        namespace: str | None = None,
        **client_options: Any,
    ) -> None:
        if registry is None:
            if registry_url is None:
                raise ValueError("Please specify a registry or a registry URL")
            registry = CachedRegistryClient(RegistryClient(registry_url, **client_options))

        self._registry = registry
        self._schema_store = schema_store or SchemaStore(schemas_path or DEFAULT_SCHEMAS_PATH)
        self._namespace = namespace
        self._schemas_by_id: dict[int, Any] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: RegistrySettings) -> Messaging:
        """Build an instance from RegistrySettings.

        A disk cache is used when ``cache_path`` is set.
        """
        if settings.registry_url is None:
            raise ValueError("registry_url is not configured")
        cache = DiskCache(settings.cache_path) if settings.cache_path else None
        registry = CachedRegistryClient(
            RegistryClient(settings.registry_url, **settings.client_options()),
            cache=cache,
        )
        return cls(
            registry=registry,
            schemas_path=settings.schemas_path,
            namespace=settings.namespace,
        )

    @property
    def registry(self) -> SchemaRegistry:
        return self._registry

    @property
    def schema_store(self) -> Any:
        return self._schema_store

    # =========================================================================
    # Encoding
    # =========================================================================

    def encode(
        self,
        message: Any,
        schema_name: str | None = None,
        namespace: str | None = None,
        subject: str | None = None,
        version: int | str | None = None,
        schema_id: int | None = None,
        validate: bool = False,
        register_schemas: bool = True,
    ) -> bytes:
        """Encode a message with the envelope header.

        The schema is chosen by the first strategy that applies:
        1. ``schema_id``: the registry schema with that id
        2. ``subject`` and ``version``: that subject version
        3. ``schema_name`` with ``register_schemas``: the local schema,
           registered under ``subject`` (default: its fullname)
        4. ``schema_name`` without ``register_schemas``: the local schema,
           which must already be registered under ``subject``

        Args:
            message: Message matching the schema
            schema_name: Name of a schema in the schema store
            namespace: Namespace of ``schema_name``
            subject: Registry subject
            version: Subject version
            schema_id: Registry schema id
            validate: Validate the message before encoding
            register_schemas: Register local schemas that are missing

        Returns:
            Encoded message

        Raises:
            SchemaNotFoundError: If the schema cannot be found
            ValidationError: If ``validate`` is set and the message does not
                match the schema
        """
        namespace = namespace or self._namespace

        if schema_id is not None:
            schema, schema_id = self.fetch_schema_by_id(schema_id)
        elif subject is not None and version is not None:
            schema, schema_id = self.fetch_schema(subject, version)
        elif schema_name is not None and not register_schemas:
            schema, schema_id = self.fetch_schema_by_body(schema_name, namespace, subject)
        elif schema_name is not None:
            schema, schema_id = self.register_schema(schema_name, namespace, subject)
        else:
            raise ValueError(
                "Neither schema_name nor schema_id nor subject + version "
                "provided to determine the schema."
            )

        if validate:
            avro.validate(schema, message)

        buffer = io.BytesIO()
        avro.write(buffer, schema, message)
        return frame(schema_id, buffer.getvalue())

    # =========================================================================
    # Decoding
    # =========================================================================

    def decode(self, data: bytes, schema_name: str | None = None, namespace: str | None = None) -> Any:
        """Decode an encoded message.

        Args:
            data: Encoded message
            schema_name: Reader schema name; the writer's schema is used
                when omitted
            namespace: Namespace of ``schema_name``

        Returns:
            The decoded message
        """
        return self.decode_message(data, schema_name, namespace).message

    def decode_message(
        self,
        data: bytes,
        schema_name: str | None = None,
        namespace: str | None = None,
    ) -> DecodedMessage:
        """Decode an encoded message, keeping the id and schemas used.

        Raises:
            MalformedEnvelopeError: If the envelope header is missing
        """
        schema_id, payload = unframe(data)

        writer_schema, _ = self.fetch_schema_by_id(schema_id)
        reader_schema = None
        if schema_name is not None:
            reader_schema = self._schema_store.find(schema_name, namespace or self._namespace)

        message = avro.read(io.BytesIO(payload), writer_schema, reader_schema)
        return DecodedMessage(
            schema_id=schema_id,
            writer_schema=writer_schema,
            reader_schema=reader_schema,
            message=message,
        )

    # =========================================================================
    # Schema lookups
    # =========================================================================

    def fetch_schema(self, subject: str, version: int | str = LATEST) -> tuple[Any, int]:
        """Fetch a subject version from the registry.

        Returns:
            Tuple of (schema, schema id)

        Raises:
            SchemaNotFoundError: If the subject or version does not exist
            IncompatibleSchemaError: If the registered schema is not Avro
        """
        try:
            record = self._registry.subject_version(subject, version)
        except RegistryNotFoundError as exc:
            raise SchemaNotFoundError(
                f"could not find version {version} of subject `{subject}` in the Registry",
                name=subject,
            ) from exc

        schema_type = record.get("schemaType")
        if schema_type is not None and schema_type != AVRO_SCHEMA_TYPE:
            raise IncompatibleSchemaError(subject, schema_type)

        return avro.loads(record["schema"]), record["id"]

    def fetch_schema_by_id(self, schema_id: int) -> tuple[Any, int]:
        """Fetch a schema by id, memoised per instance.

        Returns:
            Tuple of (schema, schema id)

        Raises:
            SchemaNotFoundError: If no schema has this id
            IncompatibleSchemaError: If the schema with this id is not Avro
        """
        schema = self._schemas_by_id.get(schema_id)
        if schema is not None:
            return schema, schema_id

        with self._lock:
            schema = self._schemas_by_id.get(schema_id)
            if schema is None:
                try:
                    record = self._registry.fetch_record(schema_id)
                except RegistryNotFoundError as exc:
                    raise SchemaNotFoundError(
                        f"could not find schema with id {schema_id} in the Registry"
                    ) from exc
                schema_type = record.get("schemaType")
                if schema_type is not None and schema_type != AVRO_SCHEMA_TYPE:
                    raise IncompatibleSchemaError(f"schema id {schema_id}", schema_type)
                schema = avro.loads(record["schema"])
                self._schemas_by_id[schema_id] = schema
        return schema, schema_id

    def fetch_schema_by_body(
        self,
        schema_name: str,
        namespace: str | None = None,
        subject: str | None = None,
    ) -> tuple[Any, int]:
        """Look up the id of a local schema without registering it.

        Raises:
            SchemaNotFoundError: If the schema content is not registered
                under the subject
        """
        schema = self._schema_store.find(schema_name, namespace)
        subject = subject or self._subject_for(schema, schema_name, namespace)
        record = self._registry.check(subject, schema)
        if record is None:
            raise SchemaNotFoundError(
                f"Schema with structure: {avro.dumps(schema)} not found on registry",
                name=subject,
            )
        return schema, record["id"]

    def register_schema(
        self,
        schema_name: str,
        namespace: str | None = None,
        subject: str | None = None,
    ) -> tuple[Any, int]:
        """Register a local schema.

        Returns:
            Tuple of (schema, schema id)
        """
        schema = self._schema_store.find(schema_name, namespace)
        subject = subject or self._subject_for(schema, schema_name, namespace)
        return schema, self._registry.register(subject, schema)

    @staticmethod
    def _subject_for(schema: Any, schema_name: str, namespace: str | None) -> str:
        return avro.fullname(schema) or avro.make_fullname(schema_name, namespace)
