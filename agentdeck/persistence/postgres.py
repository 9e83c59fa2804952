"""PostgreSQL implementation of the control repository."""

from __future__ import annotations

import json
from datetime import date
from typing import Any, Optional

import asyncpg

from .models import AgentConfiguration, DailyUsageRecord
from .repository import ControlRepository


class PostgresControlRepository(ControlRepository):
    """Persist configuration rows and daily counters using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS ai_control_config (
                customer_product_id TEXT PRIMARY KEY,
                config JSONB NOT NULL,
                updated_at TIMESTAMPTZ
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS ai_token_usage (
                workflow_id TEXT NOT NULL,
                date DATE NOT NULL,
                tokens_used BIGINT NOT NULL DEFAULT 0,
                requests_count BIGINT NOT NULL DEFAULT 0,
                model_used TEXT,
                customer_product_id TEXT,
                PRIMARY KEY (workflow_id, date)
            )
            """
        )

    @staticmethod
    def _load_config(value: Any) -> AgentConfiguration:
        data = json.loads(value) if isinstance(value, str) else value
        return AgentConfiguration.from_row(data)

    # ------------------------------------------------------------------
    async def get_agent_config(
        self, customer_product_id: str
    ) -> AgentConfiguration | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                "SELECT config FROM ai_control_config WHERE customer_product_id = $1",
                customer_product_id,
            )
        finally:
            await conn.close()
        if not row:
            return None
        return self._load_config(row["config"])

    async def save_agent_config(self, config: AgentConfiguration) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                """
                INSERT INTO ai_control_config (customer_product_id, config, updated_at)
                VALUES ($1, $2, $3)
                ON CONFLICT (customer_product_id)
                DO UPDATE SET config = EXCLUDED.config, updated_at = EXCLUDED.updated_at
                """,
                config.customer_product_id,
                json.dumps(config.to_row()),
                config.updated_at,
            )
        finally:
            await conn.close()

    async def list_agent_configs(self) -> list[AgentConfiguration]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                "SELECT config FROM ai_control_config ORDER BY customer_product_id"
            )
        finally:
            await conn.close()
        return [self._load_config(r["config"]) for r in rows]

    async def record_usage(
        self,
        workflow_id: str,
        day: date,
        tokens: int,
        requests: int = 1,
        model: Optional[str] = None,
        customer_product_id: Optional[str] = None,
    ) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                """
                INSERT INTO ai_token_usage
                    (workflow_id, date, tokens_used, requests_count, model_used, customer_product_id)
                VALUES ($1, $2, $3, $4, $5, $6)
                ON CONFLICT (workflow_id, date) DO UPDATE SET
                    tokens_used = ai_token_usage.tokens_used + EXCLUDED.tokens_used,
                    requests_count = ai_token_usage.requests_count + EXCLUDED.requests_count,
                    model_used = COALESCE(EXCLUDED.model_used, ai_token_usage.model_used)
                """,
                workflow_id,
                day,
                tokens,
                requests,
                model,
                customer_product_id,
            )
        finally:
            await conn.close()

    async def list_daily_usage(
        self, workflow_id: str, since: date, until: Optional[date] = None
    ) -> list[DailyUsageRecord]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                """
                SELECT workflow_id, date, tokens_used, requests_count, model_used, customer_product_id
                FROM ai_token_usage
                WHERE workflow_id = $1 AND date >= $2 AND ($3::date IS NULL OR date <= $3)
                ORDER BY date
                """,
                workflow_id,
                since,
                until,
            )
        finally:
            await conn.close()
        return [
            DailyUsageRecord(
                workflow_id=r["workflow_id"],
                date=r["date"],
                tokens_used=r["tokens_used"],
                requests_count=r["requests_count"],
                model_used=r["model_used"],
                customer_product_id=r["customer_product_id"],
            )
            for r in rows
        ]
