"""
avrowire - Avro schema resolution, registry client and message framing.

This package moves Avro records between producers and consumers without
shipping the schema in every message:
- Schema stores resolving names to schemas (files or registry subjects)
- Registry client with in-memory and disk caches
- Messaging: registry-framed encode/decode
- LocalAvro: self-describing container files, no registry needed

Example:
    >>> from avrowire import Messaging
    >>>
    >>> messaging = Messaging(registry_url="http://localhost:8081", schemas_path="schemas")
    >>> data = messaging.encode({"full_name": "John Doe"}, schema_name="person")
    >>> messaging.decode(data)
    {'full_name': 'John Doe'}

Invariants:
    - Schema ids are assigned by the registry, never locally
    - Caches only accelerate; dropping one changes no result

Version: 1.0.0
"""

__version__ = "1.0.0"

from .avro import to_avro
from .cache import DiskCache, InMemoryCache, SchemaCache
from .cached_registry import CachedRegistryClient
from .config import RegistrySettings
from .errors import (
    AvroWireError,
    CacheCorruptionError,
    IncompatibleSchemaError,
    MalformedEnvelopeError,
    RegistryNotFoundError,
    RegistryTransportError,
    SchemaError,
    SchemaNotFoundError,
    ValidationError,
)
from .local import LocalAvro
from .messaging import MAGIC_BYTE, DecodedMessage, Messaging
from .registry import RegistryClient, SchemaRegistry
from .registry_schema_store import RegistrySchemaStore
from .schema_store import MutableSchemaStore, SchemaStore

__all__ = [
    # Version
    "__version__",
    # Schema stores
    "SchemaStore",
    "MutableSchemaStore",
    "RegistrySchemaStore",
    # Registry
    "SchemaRegistry",
    "RegistryClient",
    "CachedRegistryClient",
    # Caches
    "SchemaCache",
    "InMemoryCache",
    "DiskCache",
    # Messaging
    "Messaging",
    "DecodedMessage",
    "MAGIC_BYTE",
    "LocalAvro",
    "to_avro",
    # Config
    "RegistrySettings",
    # Errors
    "AvroWireError",
    "SchemaNotFoundError",
    "SchemaError",
    "IncompatibleSchemaError",
    "ValidationError",
    "RegistryTransportError",
    "RegistryNotFoundError",
    "CacheCorruptionError",
    "MalformedEnvelopeError",
]
