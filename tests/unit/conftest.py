"""
Shared fixtures for avrowire unit tests.

Registry tests talk to the in-memory fake registry through a FastAPI
TestClient injected as the RegistryClient's HTTP client.
"""

import json
from pathlib import Path
from typing import Any, Callable

import pytest
from fastapi.testclient import TestClient

from avrowire.registry import RegistryClient
from avrowire.testing import FakeRegistryState, create_fake_registry_app

REGISTRY_URL = "http://registry.example.com"


@pytest.fixture
def fake_state() -> FakeRegistryState:
    """Empty fake registry contents."""
    return FakeRegistryState()


@pytest.fixture
def make_registry(fake_state: FakeRegistryState) -> Callable[..., RegistryClient]:
    """Build RegistryClients wired to the fake registry.

    The fake app is mounted under the same path prefix the client uses.
    """

    def _make(path_prefix: str = "", **options: Any) -> RegistryClient:
        app = create_fake_registry_app(fake_state, path_prefix=path_prefix)
        http_client = TestClient(app, base_url=REGISTRY_URL)
        return RegistryClient(REGISTRY_URL, http_client=http_client, path_prefix=path_prefix, **options)

    return _make


@pytest.fixture
def registry(make_registry: Callable[..., RegistryClient]) -> RegistryClient:
    """RegistryClient talking to the fake registry."""
    return make_registry()


@pytest.fixture
def schemas_path(tmp_path: Path) -> Path:
    """Empty schema tree root."""
    path = tmp_path / "schemas"
    path.mkdir()
    return path


@pytest.fixture
def define_schema(schemas_path: Path) -> Callable[[str, Any], Path]:
    """Write a schema file relative to the schema tree root."""

    def _define(relative: str, definition: Any) -> Path:
        target = schemas_path / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        if not isinstance(definition, str):
            definition = json.dumps(definition)
        target.write_text(definition)
        return target

    return _define
