"""In-memory implementation of the control repository."""

from __future__ import annotations

from datetime import date
from typing import Dict, Optional, Tuple

from .models import AgentConfiguration, DailyUsageRecord
from .repository import ControlRepository


class InMemoryControlRepository(ControlRepository):
    """Store rows in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts.
    """

    def __init__(self) -> None:
        self._configs: Dict[str, AgentConfiguration] = {}
        self._usage: Dict[Tuple[str, date], DailyUsageRecord] = {}

    # ------------------------------------------------------------------
    async def get_agent_config(
        self, customer_product_id: str
    ) -> AgentConfiguration | None:
        config = self._configs.get(customer_product_id)
        return config.model_copy(deep=True) if config else None

    async def save_agent_config(self, config: AgentConfiguration) -> None:
        self._configs[config.customer_product_id] = config.model_copy(deep=True)

    async def list_agent_configs(self) -> list[AgentConfiguration]:
        return [self._configs[k].model_copy(deep=True) for k in sorted(self._configs)]

    async def record_usage(
        self,
        workflow_id: str,
        day: date,
        tokens: int,
        requests: int = 1,
        model: Optional[str] = None,
        customer_product_id: Optional[str] = None,
    ) -> None:
        record = self._usage.get((workflow_id, day))
        if record is None:
            self._usage[(workflow_id, day)] = DailyUsageRecord(
                workflow_id=workflow_id,
                date=day,
                tokens_used=tokens,
                requests_count=requests,
                model_used=model,
                customer_product_id=customer_product_id,
            )
            return
        record.tokens_used += tokens
        record.requests_count += requests
        if model:
            record.model_used = model

    async def list_daily_usage(
        self, workflow_id: str, since: date, until: Optional[date] = None
    ) -> list[DailyUsageRecord]:
        rows = [
            r.model_copy()
            for (wf, day), r in self._usage.items()
            if wf == workflow_id and day >= since and (until is None or day <= until)
        ]
        return sorted(rows, key=lambda r: r.date)
