"""
Error types for avrowire.

This module defines all exception types raised by the package:
- AvroWireError: Base exception
- SchemaNotFoundError: No schema file, registry subject, version or id
- SchemaError: A schema's declared identity disagrees with its location
- IncompatibleSchemaError: Registry returned a non-Avro schema
- ValidationError: Message does not conform to its schema
- RegistryTransportError: Unexpected registry HTTP status
- RegistryNotFoundError: Registry answered 404
- CacheCorruptionError: Disk cache file cannot be parsed
- MalformedEnvelopeError: Encoded message lacks a valid envelope

Invariants:
    - All errors inherit from AvroWireError
    - Errors include context for debugging
    - Error messages are actionable
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class AvroWireError(Exception):
    """Base exception for all avrowire errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "AVROWIRE_ERROR"
        self.details = details or {}


class SchemaNotFoundError(AvroWireError):
    """Schema could not be found.

    Raised when:
    - No schema file exists for a name
    - A referenced type can never be resolved
    - Registry has no such subject, version or id
    - Schema content was never registered under a subject
    """

    def __init__(self, message: str, name: Optional[str] = None) -> None:
        super().__init__(message, code="SCHEMA_NOT_FOUND", details={"name": name})
        self.name = name


class SchemaError(AvroWireError):
    """Schema source is misconfigured.

    Raised when:
    - A schema file declares a different fullname than its path implies
    - A schema file is not valid JSON
    """

    def __init__(
        self,
        message: str,
        expected_name: Optional[str] = None,
        actual_name: Optional[str] = None,
        code: str = "SCHEMA_ERROR",
    ) -> None:
        super().__init__(
            message,
            code=code,
            details={"expected_name": expected_name, "actual_name": actual_name},
        )
        self.expected_name = expected_name
        self.actual_name = actual_name


class IncompatibleSchemaError(SchemaError):
    """Registry returned a schema that is not an Avro schema."""

    def __init__(self, subject: str, schema_type: str) -> None:
        super().__init__(
            f"The {schema_type} schema for {subject} is incompatible.",
            code="INCOMPATIBLE_SCHEMA",
        )
        self.subject = subject
        self.schema_type = schema_type


class ValidationError(AvroWireError):
    """Message validation failed.

    Attributes:
        errors: Human readable description of each failure
        fields: Path of each offending field (e.g. ``person.full_name``)
    """

    def __init__(
        self,
        message: str,
        errors: Optional[List[str]] = None,
        fields: Optional[List[str]] = None,
    ) -> None:
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details={"errors": errors or [], "fields": fields or []},
        )
        self.errors = errors or []
        self.fields = fields or []


class RegistryTransportError(AvroWireError):
    """Registry answered with an unexpected status or could not be reached.

    Attributes:
        status_code: HTTP status, None when no response was received
        error_code: Registry error code from the response body, if any
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_code: Optional[int] = None,
        code: str = "REGISTRY_ERROR",
    ) -> None:
        super().__init__(
            message,
            code=code,
            details={"status_code": status_code, "error_code": error_code},
        )
        self.status_code = status_code
        self.error_code = error_code


class RegistryNotFoundError(RegistryTransportError):
    """Registry answered 404 (subject 40401, version 40402, schema 40403)."""

    def __init__(self, message: str, error_code: Optional[int] = None) -> None:
        super().__init__(
            message,
            status_code=404,
            error_code=error_code,
            code="REGISTRY_NOT_FOUND",
        )


class CacheCorruptionError(AvroWireError):
    """A non-empty disk cache file could not be parsed."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(
            f"corrupt cache file at {path}: {reason}",
            code="CACHE_CORRUPTION",
            details={"path": path},
        )
        self.path = path


class MalformedEnvelopeError(AvroWireError):
    """Encoded message does not start with the envelope header."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="MALFORMED_ENVELOPE")
