"""
Unit tests for environment configuration.
"""

import pytest

from avrowire.config import RegistrySettings
from avrowire.schema_store import DEFAULT_SCHEMAS_PATH


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Start every test without AVROWIRE_ variables."""
    for name in (
        "REGISTRY_URL",
        "USER",
        "PASSWORD",
        "CONNECT_TIMEOUT",
        "CACHE_PATH",
        "SCHEMAS_PATH",
        "CLIENT_CERT_DATA",
        "CLIENT_KEY_DATA",
        "CA_CERT_DATA",
    ):
        monkeypatch.delenv(f"AVROWIRE_{name}", raising=False)


class TestRegistrySettings:
    """Tests for RegistrySettings."""

    def test_defaults(self):
        settings = RegistrySettings()

        assert settings.registry_url is None
        assert settings.schemas_path == DEFAULT_SCHEMAS_PATH
        assert settings.cache_path is None

    def test_reads_prefixed_environment(self, monkeypatch):
        """Variables use the AVROWIRE_ prefix."""
        monkeypatch.setenv("AVROWIRE_REGISTRY_URL", "http://registry.example.com")
        monkeypatch.setenv("AVROWIRE_USER", "user")
        monkeypatch.setenv("AVROWIRE_CONNECT_TIMEOUT", "2.5")

        settings = RegistrySettings()

        assert settings.registry_url == "http://registry.example.com"
        assert settings.user == "user"
        assert settings.connect_timeout == 2.5

    def test_client_options_skip_unset(self):
        """Only configured client options are passed on."""
        settings = RegistrySettings(
            registry_url="http://registry.example.com",
            user="user",
            password="pw",
            read_timeout=3.0,
            namespace="test",
        )

        assert settings.client_options() == {"user": "user", "password": "pw", "read_timeout": 3.0}

    def test_client_options_empty(self):
        assert RegistrySettings().client_options() == {}

    def test_certificate_text_passed_on(self, monkeypatch):
        """PEM text from the environment reaches the client options."""
        monkeypatch.setenv("AVROWIRE_CLIENT_CERT_DATA", "cert-pem")
        monkeypatch.setenv("AVROWIRE_CLIENT_KEY_DATA", "key-pem")
        monkeypatch.setenv("AVROWIRE_CA_CERT_DATA", "ca-pem")

        assert RegistrySettings().client_options() == {
            "client_cert_data": "cert-pem",
            "client_key_data": "key-pem",
            "ca_cert_data": "ca-pem",
        }
