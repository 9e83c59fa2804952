"""Repository abstraction for locally owned control-plane state."""

from __future__ import annotations

from datetime import date
from typing import Optional, Protocol

from .models import AgentConfiguration, DailyUsageRecord


class ControlRepository(Protocol):
    """Protocol for persistence backends."""

    async def get_agent_config(
        self, customer_product_id: str
    ) -> AgentConfiguration | None:
        """Return the stored configuration row, if any."""

    async def save_agent_config(self, config: AgentConfiguration) -> None:
        """Upsert the configuration row. Last write wins."""

    async def list_agent_configs(self) -> list[AgentConfiguration]:
        """Return all stored configuration rows."""

    async def record_usage(
        self,
        workflow_id: str,
        day: date,
        tokens: int,
        requests: int = 1,
        model: Optional[str] = None,
        customer_product_id: Optional[str] = None,
    ) -> None:
        """Increment the daily counters for ``(workflow_id, day)``."""

    async def list_daily_usage(
        self, workflow_id: str, since: date, until: Optional[date] = None
    ) -> list[DailyUsageRecord]:
        """Return daily counters in ``[since, until]`` ordered by date."""
