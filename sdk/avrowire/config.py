"""
Configuration for avrowire.

Uses pydantic-settings for environment variable loading.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import Field
from pydantic_settings import BaseSettings

from .schema_store import DEFAULT_SCHEMAS_PATH

# Settings that map one-to-one onto RegistryClient keyword arguments.
_CLIENT_OPTIONS = (
    "path_prefix",
    "schema_context",
    "user",
    "password",
    "proxy",
    "client_cert",
    "client_key",
    "client_key_pass",
    "ca_cert",
    "client_cert_data",
    "client_key_data",
    "ca_cert_data",
    "connect_timeout",
    "read_timeout",
)


class RegistrySettings(BaseSettings):
    """Registry and schema configuration loaded from environment."""

    # Registry connection
    registry_url: Optional[str] = Field(default=None, description="Schema registry base URL")
    path_prefix: Optional[str] = Field(default=None, description="Path prepended to registry requests")
    schema_context: Optional[str] = Field(default=None, description="Registry schema context")

    # Auth
    user: Optional[str] = Field(default=None, description="Basic auth user")
    password: Optional[str] = Field(default=None, description="Basic auth password")
    proxy: Optional[str] = Field(default=None, description="HTTP proxy URL")

    # Mutual TLS
    client_cert: Optional[str] = Field(default=None, description="Client certificate path")
    client_key: Optional[str] = Field(default=None, description="Client key path")
    client_key_pass: Optional[str] = Field(default=None, description="Client key password")
    ca_cert: Optional[str] = Field(default=None, description="CA bundle path")
    client_cert_data: Optional[str] = Field(default=None, description="Client certificate PEM")
    client_key_data: Optional[str] = Field(default=None, description="Client key PEM")
    ca_cert_data: Optional[str] = Field(default=None, description="CA certificates PEM")

    # Timeouts
    connect_timeout: Optional[float] = Field(default=None, description="Connect timeout seconds")
    read_timeout: Optional[float] = Field(default=None, description="Read timeout seconds")

    # Local schemas
    schemas_path: str = Field(default=DEFAULT_SCHEMAS_PATH, description="Root of the schema tree")
    namespace: Optional[str] = Field(default=None, description="Default schema namespace")

    # Disk cache (unset = in-memory only)
    cache_path: Optional[str] = Field(default=None, description="Disk cache directory")

    model_config = {"env_prefix": "AVROWIRE_"}

    def client_options(self) -> dict[str, Any]:
        """Keyword arguments for RegistryClient, unset options omitted."""
        options = {name: getattr(self, name) for name in _CLIENT_OPTIONS}
        return {name: value for name, value in options.items() if value is not None}
