"""
Schema registry client for avrowire.

This module implements the registry HTTP protocol:
- SchemaRegistry: The operations every registry client provides
- RegistryClient: Stateless HTTP client, one request per operation

Example:
    >>> with RegistryClient("http://localhost:8081") as registry:
    ...     schema_id = registry.register("person", schema_text)
    ...     registry.fetch(schema_id)

Invariants:
    - Each operation issues exactly one HTTP request
    - Unexpected statuses raise RegistryTransportError, 404 raises
      RegistryNotFoundError unless the operation maps it to None
    - Subject context prefixes never leak to callers
"""

from __future__ import annotations

import json
import logging
import ssl
import tempfile
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import httpx

from . import avro
from .errors import RegistryNotFoundError, RegistryTransportError

logger = logging.getLogger(__name__)

CONTENT_TYPE = "application/vnd.schemaregistry.v1+json"
ACCEPT = "application/vnd.schemaregistry.v1+json, application/vnd.schemaregistry+json, application/json"

LATEST = "latest"
AVRO_SCHEMA_TYPE = "AVRO"
DEFAULT_TIMEOUT = 5.0


@runtime_checkable
class SchemaRegistry(Protocol):
    """Operations provided by registry clients.

    Both the HTTP client and the caching client implement every method, so
    callers can use either interchangeably.
    """

    def fetch(self, schema_id: int) -> str: ...

    def fetch_record(self, schema_id: int) -> dict[str, Any]: ...

    def fetch_subject_versions(self, schema_id: int) -> list[dict[str, Any]]: ...

    def register(self, subject: str, schema: Any, references: list[dict[str, Any]] | None = None) -> int: ...

    def subjects(self) -> list[str]: ...

    def subject_versions(self, subject: str) -> list[int]: ...

    def subject_version(self, subject: str, version: int | str = LATEST) -> dict[str, Any]: ...

    def check(self, subject: str, schema: Any) -> dict[str, Any] | None: ...

    def compatible(self, subject: str, schema: Any, version: int | str = LATEST) -> bool | None: ...

    def global_config(self) -> dict[str, Any]: ...

    def update_global_config(self, config: dict[str, Any]) -> dict[str, Any]: ...

    def subject_config(self, subject: str) -> dict[str, Any]: ...

    def update_subject_config(self, subject: str, config: dict[str, Any]) -> dict[str, Any]: ...


def schema_text(schema: Any) -> str:
    """Schema as JSON text; parsed schemas are serialised."""
    if isinstance(schema, str):
        return schema
    return avro.dumps(schema)


class RegistryClient:
    """HTTP client for the schema registry protocol.

    Args:
        url: Base URL of the registry
        path_prefix: Path prepended to every request (registry mounted
            behind a reverse-proxy sub-path)
        schema_context: Context every subject lives in; subjects are sent
            as ``:.<context>:<subject>``
        user: Basic auth user
        password: Basic auth password
        proxy: Proxy URL
        client_cert: Path to a client certificate (mutual TLS)
        client_key: Path to the client certificate's key
        client_key_pass: Password of the client key
        ca_cert: Path to a CA bundle used to verify the registry
        client_cert_data: PEM client certificate, instead of ``client_cert``
        client_key_data: PEM client key, instead of ``client_key``
        ca_cert_data: PEM CA certificates, instead of ``ca_cert``
        connect_timeout: Connect timeout in seconds
        read_timeout: Read timeout in seconds
        http_client: Pre-configured ``httpx.Client``; used as-is and not closed
        transport: ``httpx`` transport for the client built here
    """

    def __init__(
        self,
        url: str,
        *,
        path_prefix: str | None = None,
        schema_context: str | None = None,
        user: str | None = None,
        password: str | None = None,
        proxy: str | None = None,
        client_cert: str | None = None,
        client_key: str | None = None,
        client_key_pass: str | None = None,
        ca_cert: str | None = None,
        client_cert_data: str | None = None,
        client_key_data: str | None = None,
        ca_cert_data: str | None = None,
        connect_timeout: float | None = None,
        read_timeout: float | None = None,
        http_client: httpx.Client | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._url = url
        self._path_prefix = (path_prefix or "").rstrip("/")
        self._context_prefix = f":.{schema_context.lstrip('.')}:" if schema_context else ""

        if http_client is not None:
            self._http = http_client
            self._owns_http = False
            return

        kwargs: dict[str, Any] = {
            "base_url": url,
            "timeout": httpx.Timeout(
                DEFAULT_TIMEOUT,
                connect=DEFAULT_TIMEOUT if connect_timeout is None else connect_timeout,
                read=DEFAULT_TIMEOUT if read_timeout is None else read_timeout,
            ),
        }
        if user is not None:
            kwargs["auth"] = httpx.BasicAuth(user, password or "")
        if proxy is not None:
            kwargs["proxy"] = proxy
        tls_options = {
            "client_cert": client_cert,
            "client_key": client_key,
            "ca_cert": ca_cert,
            "client_cert_data": client_cert_data,
            "client_key_data": client_key_data,
            "ca_cert_data": ca_cert_data,
        }
        if any(value is not None for value in tls_options.values()):
            kwargs["verify"] = self._ssl_context(client_key_pass=client_key_pass, **tls_options)
        if transport is not None:
            kwargs["transport"] = transport

        self._http = httpx.Client(**kwargs)
        self._owns_http = True

    @staticmethod
    def _ssl_context(
        client_cert: str | None = None,
        client_key: str | None = None,
        client_key_pass: str | None = None,
        ca_cert: str | None = None,
        client_cert_data: str | None = None,
        client_key_data: str | None = None,
        ca_cert_data: str | None = None,
    ) -> ssl.SSLContext:
        """Build the TLS context from certificate paths or PEM text.

        ``ssl`` only loads client certificates from files, so PEM text is
        written to a private temporary directory that is removed once the
        chain is loaded.
        """
        context = ssl.create_default_context(cafile=ca_cert, cadata=ca_cert_data)
        if client_cert_data is None and client_key_data is None:
            if client_cert is not None:
                context.load_cert_chain(client_cert, keyfile=client_key, password=client_key_pass)
            return context

        with tempfile.TemporaryDirectory(prefix="avrowire-tls-") as tmp:
            if client_cert_data is not None:
                client_cert = str(Path(tmp) / "client.crt")
                Path(client_cert).write_text(client_cert_data)
            if client_key_data is not None:
                client_key = str(Path(tmp) / "client.key")
                Path(client_key).write_text(client_key_data)
            if client_cert is None:
                raise ValueError("client_key_data requires a client certificate")
            context.load_cert_chain(client_cert, keyfile=client_key, password=client_key_pass)
        return context

    @property
    def url(self) -> str:
        """Base URL of the registry."""
        return self._url

    @property
    def http_client(self) -> httpx.Client:
        """Underlying HTTP client."""
        return self._http

    def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_http:
            self._http.close()

    def __enter__(self) -> RegistryClient:
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.close()

    # =========================================================================
    # Schemas
    # =========================================================================

    def fetch(self, schema_id: int) -> str:
        """Fetch schema text by id.

        Raises:
            RegistryNotFoundError: If no schema has this id
        """
        return self.fetch_record(schema_id)["schema"]

    def fetch_record(self, schema_id: int) -> dict[str, Any]:
        """Fetch a schema by id along with its type.

        Returns:
            Record with ``schema`` and, for non-Avro schemas, ``schemaType``

        Raises:
            RegistryNotFoundError: If no schema has this id
        """
        logger.info("Fetching schema with id %s", schema_id)
        params = {"subject": self._context_prefix} if self._context_prefix else None
        return self._get(f"/schemas/ids/{schema_id}", params=params)

    def fetch_subject_versions(self, schema_id: int) -> list[dict[str, Any]]:
        """List the subject/version pairs that point at a schema id."""
        logger.info("Fetching subject-version pairs for schema with id %s", schema_id)
        params = {"subject": self._context_prefix} if self._context_prefix else None
        data = self._get(f"/schemas/ids/{schema_id}/versions", params=params)
        return [dict(item, subject=self._unqualify(item["subject"])) for item in data]

    def register(
        self,
        subject: str,
        schema: Any,
        references: list[dict[str, Any]] | None = None,
    ) -> int:
        """Register a schema under a subject.

        Registering identical content again returns the same id.

        Returns:
            Registry-assigned schema id
        """
        body = {"schema": schema_text(schema), "references": references or []}
        data = self._post(f"/subjects/{self._qualify(subject)}/versions", body)
        schema_id = data["id"]
        logger.info("Registered schema for subject `%s`; id = %s", subject, schema_id)
        return schema_id

    # =========================================================================
    # Subjects
    # =========================================================================

    def subjects(self) -> list[str]:
        """List all subjects."""
        names = self._get("/subjects")
        if not self._context_prefix:
            return names
        return [
            name[len(self._context_prefix):]
            for name in names
            if name.startswith(self._context_prefix)
        ]

    def subject_versions(self, subject: str) -> list[int]:
        """List all versions of a subject.

        Raises:
            RegistryNotFoundError: If the subject is unknown
        """
        return self._get(f"/subjects/{self._qualify(subject)}/versions")

    def subject_version(self, subject: str, version: int | str = LATEST) -> dict[str, Any]:
        """Get one version of a subject.

        Returns:
            Record with ``subject``, ``version``, ``id`` and ``schema``

        Raises:
            RegistryNotFoundError: If the subject or version is unknown
        """
        data = self._get(f"/subjects/{self._qualify(subject)}/versions/{version}")
        return self._unqualify_record(data)

    def check(self, subject: str, schema: Any) -> dict[str, Any] | None:
        """Look up a schema under a subject without registering it.

        Returns:
            The subject version record, None if the schema is not registered
        """
        data = self._post(
            f"/subjects/{self._qualify(subject)}",
            {"schema": schema_text(schema)},
            allow_not_found=True,
        )
        if data is None or "error_code" in data:
            return None
        return self._unqualify_record(data)

    def compatible(self, subject: str, schema: Any, version: int | str = LATEST) -> bool | None:
        """Check a schema against a stored version.

        Returns:
            True if compatible, False if not, None if the subject or version
            does not exist
        """
        data = self._post(
            f"/compatibility/subjects/{self._qualify(subject)}/versions/{version}",
            {"schema": schema_text(schema)},
            allow_not_found=True,
        )
        if data is None or "error_code" in data:
            return None
        return bool(data.get("is_compatible", False))

    # =========================================================================
    # Config
    # =========================================================================

    def global_config(self) -> dict[str, Any]:
        """Get the global config."""
        return self._get("/config")

    def update_global_config(self, config: dict[str, Any]) -> dict[str, Any]:
        """Update the global config."""
        return self._put("/config", config)

    def subject_config(self, subject: str) -> dict[str, Any]:
        """Get the config of a subject."""
        return self._get(f"/config/{self._qualify(subject)}")

    def update_subject_config(self, subject: str, config: dict[str, Any]) -> dict[str, Any]:
        """Update the config of a subject."""
        return self._put(f"/config/{self._qualify(subject)}", config)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _qualify(self, subject: str) -> str:
        if not self._context_prefix or subject.startswith(":."):
            return subject
        return f"{self._context_prefix}{subject}"

    def _unqualify(self, subject: str) -> str:
        if self._context_prefix and subject.startswith(self._context_prefix):
            return subject[len(self._context_prefix):]
        return subject

    def _unqualify_record(self, data: dict[str, Any]) -> dict[str, Any]:
        for key in ("subject", "name"):
            if isinstance(data.get(key), str):
                data[key] = self._unqualify(data[key])
        return data

    def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return self._request("GET", path, params=params)

    def _post(self, path: str, body: Any, allow_not_found: bool = False) -> Any:
        return self._request("POST", path, body=body, allow_not_found=allow_not_found)

    def _put(self, path: str, body: Any) -> Any:
        return self._request("PUT", path, body=body)

    def _request(
        self,
        method: str,
        path: str,
        body: Any = None,
        params: dict[str, Any] | None = None,
        allow_not_found: bool = False,
    ) -> Any:
        content = json.dumps(body) if body is not None else None
        try:
            response = self._http.request(
                method,
                f"{self._path_prefix}{path}",
                content=content,
                params=params,
                headers={"Content-Type": CONTENT_TYPE, "Accept": ACCEPT},
            )
        except httpx.HTTPError as exc:
            raise RegistryTransportError(
                f"{method} {path} failed: {exc}"
            ) from exc

        if response.status_code == 200:
            return response.json()

        error_code, message = _error_details(response)
        if response.status_code == 404:
            if allow_not_found:
                return None
            raise RegistryNotFoundError(
                f"{method} {path} returned 404: {message}",
                error_code=error_code,
            )
        raise RegistryTransportError(
            f"{method} {path} returned {response.status_code}: {message}",
            status_code=response.status_code,
            error_code=error_code,
        )


def _error_details(response: httpx.Response) -> tuple[int | None, str]:
    """Extract ``error_code`` and ``message`` from a registry error body."""
    try:
        data = response.json()
    except ValueError:
        return None, response.text
    if isinstance(data, dict):
        return data.get("error_code"), str(data.get("message", response.text))
    return None, response.text
