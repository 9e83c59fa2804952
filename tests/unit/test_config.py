"""Tests for configuration loading."""

import pytest

import agentdeck.persistence as persistence
from agentdeck.config import load_config
from agentdeck.engine import InMemoryEngine, get_relay
from agentdeck.engine.http import HttpRelay
from agentdeck.persistence import (
    InMemoryControlRepository,
    SQLiteControlRepository,
    get_repository,
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in (
        "AGENTDECK_CONFIG",
        "AGENTDECK_DATABASE_URL",
        "DATABASE_URL",
        "AGENTDECK_RELAY",
        "AGENTDECK_RELAY_URL",
        "AGENTDECK_RELAY_TOKEN",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(persistence, "_repository_instance", None)


def test_load_config_defaults_when_file_missing(tmp_path):
    config = load_config(str(tmp_path / "missing.yaml"))
    assert config.relay.backend == "inmemory"
    assert config.usage.execution_limit == 50
    assert config.usage.detail_limit == 20
    assert config.usage.batch_size == 5
    assert config.usage.history_days == 30
    assert config.polling.interval == 30.0
    assert config.log_level == "INFO"


def test_load_config_from_env(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
relay:
  backend: http
  url: https://relay.example.com/engine
  timeout: 5
usage:
  detail_limit: 10
webhook:
  url: https://hooks.example.com/agent
"""
    )
    monkeypatch.setenv("AGENTDECK_CONFIG", str(config_path))

    config = load_config()
    assert config.relay.backend == "http"
    assert config.relay.url == "https://relay.example.com/engine"
    assert config.relay.timeout == 5
    assert config.usage.detail_limit == 10
    assert config.usage.execution_limit == 50
    assert config.webhook.url == "https://hooks.example.com/agent"


def test_env_overrides_take_precedence(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("database_url: sqlite:///from-file.db\n")
    monkeypatch.setenv("DATABASE_URL", "sqlite:///from-env.db")
    monkeypatch.setenv("AGENTDECK_RELAY_URL", "https://relay.internal/")
    monkeypatch.setenv("AGENTDECK_RELAY_TOKEN", "secret-token")

    config = load_config(str(config_path))
    assert config.database_url == "sqlite:///from-env.db"
    assert config.relay.url == "https://relay.internal/"
    assert config.relay.backend == "http"
    assert config.relay.token == "secret-token"


def test_explicit_relay_backend_wins_over_url(tmp_path, monkeypatch):
    monkeypatch.setenv("AGENTDECK_RELAY_URL", "https://relay.internal/")
    monkeypatch.setenv("AGENTDECK_RELAY", "inmemory")

    config = load_config(str(tmp_path / "missing.yaml"))
    assert config.relay.backend == "inmemory"


def test_get_relay_uses_config(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
relay:
  backend: http
  url: https://relay.example.com/engine
  token: abc
  max_retries: 0
"""
    )
    monkeypatch.setenv("AGENTDECK_CONFIG", str(config_path))

    relay = get_relay()
    assert isinstance(relay, HttpRelay)
    assert relay.url == "https://relay.example.com/engine"
    assert relay.token == "abc"
    assert relay.max_retries == 0


def test_get_relay_defaults_to_inmemory(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert isinstance(get_relay(), InMemoryEngine)


def test_get_relay_rejects_unknown_backend(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    with pytest.raises(ValueError):
        get_relay("carrier-pigeon")


def test_get_repository_selects_backend(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert isinstance(get_repository(), InMemoryControlRepository)

    repo = get_repository(database_url=f"sqlite://{tmp_path / 'control.db'}")
    assert isinstance(repo, SQLiteControlRepository)
    repo.close()

    with pytest.raises(ValueError):
        get_repository(database_url="mysql://localhost/db")
