from __future__ import annotations

import os
from typing import Literal, Optional

import yaml
from pydantic import BaseModel

from .constants import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_DETAIL_LIMIT,
    DEFAULT_EXECUTION_LIMIT,
    DEFAULT_HISTORY_DAYS,
    DEFAULT_POLL_INTERVAL,
)


class RelayConfig(BaseModel):
    """Connection settings for the trusted engine relay."""

    backend: Literal["inmemory", "http"] = "inmemory"
    url: Optional[str] = None
    token: Optional[str] = None
    timeout: float = 15.0
    max_retries: int = 2


class UsageConfig(BaseModel):
    """Bounds applied when aggregating execution usage."""

    execution_limit: int = DEFAULT_EXECUTION_LIMIT
    detail_limit: int = DEFAULT_DETAIL_LIMIT
    batch_size: int = DEFAULT_BATCH_SIZE
    history_days: int = DEFAULT_HISTORY_DAYS


class PollingConfig(BaseModel):
    interval: float = DEFAULT_POLL_INTERVAL
    stale_after: Optional[float] = None


class WebhookConfig(BaseModel):
    url: Optional[str] = None
    timeout: float = 10.0


class AgentDeckConfig(BaseModel):
    """Top-level configuration model."""

    relay: RelayConfig = RelayConfig()
    usage: UsageConfig = UsageConfig()
    polling: PollingConfig = PollingConfig()
    webhook: WebhookConfig = WebhookConfig()
    database_url: Optional[str] = None
    log_level: str = "INFO"


def load_config(path: Optional[str] = None) -> AgentDeckConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to AGENTDECK_CONFIG env
            variable or 'agentdeck.yaml' in the current directory.
    """

    config_path = path or os.getenv("AGENTDECK_CONFIG", "agentdeck.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = AgentDeckConfig(**data)
    else:
        config = AgentDeckConfig()

    env_db_url = os.getenv("AGENTDECK_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url

    env_backend = os.getenv("AGENTDECK_RELAY")
    if env_backend:
        config.relay.backend = env_backend.lower()
    env_relay_url = os.getenv("AGENTDECK_RELAY_URL")
    if env_relay_url:
        config.relay.url = env_relay_url
        if not env_backend:
            config.relay.backend = "http"
    env_relay_token = os.getenv("AGENTDECK_RELAY_TOKEN")
    if env_relay_token:
        config.relay.token = env_relay_token
    return config
