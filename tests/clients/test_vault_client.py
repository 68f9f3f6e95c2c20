"""Tests for VaultClient - HashiCorp Vault secrets management."""

from unittest.mock import MagicMock, patch

import pytest
from hvac.exceptions import InvalidPath

import clients.vault_client as vault_module
from clients.vault_client import VaultClient, VaultError, get_database_url


@pytest.fixture
def vault_env(monkeypatch):
    monkeypatch.setenv("VAULT_ADDR", "https://vault.test:8200")
    monkeypatch.setenv("VAULT_ROLE_ID", "role")
    monkeypatch.setenv("VAULT_SECRET_ID", "secret")
    monkeypatch.delenv("VAULT_NAMESPACE", raising=False)


@pytest.fixture
def hvac_client(vault_env):
    """Patched hvac.Client that authenticates and serves invoicing/database."""
    with patch("clients.vault_client.hvac.Client") as client_cls:
        client = MagicMock()
        client.auth.approle.login.return_value = {"auth": {"client_token": "token"}}
        client.is_authenticated.return_value = True
        client.secrets.kv.v2.read_secret_version.return_value = {
            "data": {"data": {"url": "postgresql://app@db/invoicing"}}
        }
        client_cls.return_value = client
        yield client


@pytest.fixture
def fresh_cache():
    vault_module._vault_client_instance = None
    vault_module._secret_cache.clear()
    yield
    vault_module._vault_client_instance = None
    vault_module._secret_cache.clear()


class TestVaultClientInit:
    """Initialization and authentication."""

    def test_missing_vault_addr_raises(self, monkeypatch):
        monkeypatch.delenv("VAULT_ADDR", raising=False)
        with pytest.raises(ValueError, match="VAULT_ADDR"):
            VaultClient()

    def test_missing_approle_credentials_raises(self, vault_env, monkeypatch):
        monkeypatch.delenv("VAULT_ROLE_ID")
        with pytest.raises(ValueError, match="VAULT_ROLE_ID"):
            VaultClient()

    def test_failed_login_raises_vault_error(self, hvac_client):
        hvac_client.auth.approle.login.side_effect = Exception("permission denied")
        with pytest.raises(VaultError, match="AppRole authentication failed"):
            VaultClient()

    def test_valid_approle_authenticates(self, hvac_client):
        client = VaultClient()
        assert client.client.token == "token"


class TestGetSecret:
    """Secret retrieval - paths automatically scoped to invoicing/."""

    def test_path_is_scoped(self, hvac_client):
        url = VaultClient().get_secret("database", "url")

        assert url == "postgresql://app@db/invoicing"
        kwargs = hvac_client.secrets.kv.v2.read_secret_version.call_args.kwargs
        assert kwargs["path"] == "invoicing/database"

    def test_missing_path_raises(self, hvac_client):
        hvac_client.secrets.kv.v2.read_secret_version.side_effect = InvalidPath()
        with pytest.raises(VaultError, match="not found"):
            VaultClient().get_secret("nonexistent", "field")

    def test_missing_field_raises_keyerror(self, hvac_client):
        with pytest.raises(KeyError, match="not found"):
            VaultClient().get_secret("database", "nonexistent_field")


class TestConvenienceFunctions:

    def test_get_database_url_is_cached(self, hvac_client, fresh_cache):
        assert get_database_url() == "postgresql://app@db/invoicing"
        assert get_database_url() == "postgresql://app@db/invoicing"

        assert hvac_client.secrets.kv.v2.read_secret_version.call_count == 1
