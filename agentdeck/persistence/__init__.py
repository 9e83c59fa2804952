"""Persistence layer for agentdeck control-plane state."""

from __future__ import annotations

import os
from typing import Optional

from ..config import AgentDeckConfig, load_config
from .inmemory import InMemoryControlRepository
from .models import AgentConfiguration, BehaviorRule, DailyUsageRecord, RetentionPolicy
from .repository import ControlRepository
from .sqlite import SQLiteControlRepository

try:  # pragma: no cover - optional dependency
    from .postgres import PostgresControlRepository
except ImportError:  # pragma: no cover - optional dependency
    PostgresControlRepository = None  # type: ignore

_repository_instance: ControlRepository | None = None


def get_repository(
    database_url: Optional[str] = None, config: Optional[AgentDeckConfig] = None
) -> ControlRepository:
    """Factory function to obtain a control repository.

    The backend is selected from ``database_url``, which can be provided
    explicitly, via environment variable ``AGENTDECK_DATABASE_URL`` or
    ``DATABASE_URL``, or from loaded configuration. When no database is
    configured, an in-memory repository is returned.
    """

    global _repository_instance
    if _repository_instance is not None and database_url is None and config is None:
        return _repository_instance

    config = config or load_config()
    database_url = (
        database_url
        or os.getenv("AGENTDECK_DATABASE_URL")
        or os.getenv("DATABASE_URL")
        or getattr(config, "database_url", None)
    )

    if not database_url:
        _repository_instance = InMemoryControlRepository()
        return _repository_instance

    if database_url.startswith("sqlite://"):
        path = database_url.replace("sqlite://", "", 1)
        _repository_instance = SQLiteControlRepository(path)
    elif database_url.startswith("postgres://") or database_url.startswith(
        "postgresql://"
    ):
        if PostgresControlRepository is None:
            raise RuntimeError("Postgres support not available")
        _repository_instance = PostgresControlRepository(database_url)
    else:
        raise ValueError(f"Unsupported database backend: {database_url}")

    return _repository_instance


__all__ = [
    "AgentConfiguration",
    "BehaviorRule",
    "ControlRepository",
    "DailyUsageRecord",
    "InMemoryControlRepository",
    "PostgresControlRepository",
    "RetentionPolicy",
    "SQLiteControlRepository",
    "get_repository",
]
