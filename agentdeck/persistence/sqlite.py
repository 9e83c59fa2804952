"""SQLite implementation of the control repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
from datetime import date
from pathlib import Path
from typing import Any, Optional

from .models import AgentConfiguration, DailyUsageRecord
from .repository import ControlRepository


class SQLiteControlRepository(ControlRepository):
    """Persist configuration rows and daily counters using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS ai_control_config (
                customer_product_id TEXT PRIMARY KEY,
                config TEXT NOT NULL,
                updated_at TEXT
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS ai_token_usage (
                workflow_id TEXT NOT NULL,
                date TEXT NOT NULL,
                tokens_used INTEGER NOT NULL DEFAULT 0,
                requests_count INTEGER NOT NULL DEFAULT 0,
                model_used TEXT,
                customer_product_id TEXT,
                PRIMARY KEY (workflow_id, date)
            )
            """
        )
        self._conn.commit()

    def close(self) -> None:
        self._conn.close()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        self._conn.commit()

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchall()

    # ------------------------------------------------------------------
    # Repository API
    async def get_agent_config(
        self, customer_product_id: str
    ) -> AgentConfiguration | None:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT config FROM ai_control_config WHERE customer_product_id = ?",
            customer_product_id,
        )
        if not row:
            return None
        return AgentConfiguration.from_row(json.loads(row["config"]))

    async def save_agent_config(self, config: AgentConfiguration) -> None:
        row = config.to_row()
        await asyncio.to_thread(
            self._execute,
            """
            INSERT INTO ai_control_config (customer_product_id, config, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(customer_product_id)
            DO UPDATE SET config = excluded.config, updated_at = excluded.updated_at
            """,
            config.customer_product_id,
            json.dumps(row),
            row.get("updated_at"),
        )

    async def list_agent_configs(self) -> list[AgentConfiguration]:
        rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT config FROM ai_control_config ORDER BY customer_product_id",
        )
        return [AgentConfiguration.from_row(json.loads(r["config"])) for r in rows]

    async def record_usage(
        self,
        workflow_id: str,
        day: date,
        tokens: int,
        requests: int = 1,
        model: Optional[str] = None,
        customer_product_id: Optional[str] = None,
    ) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            INSERT INTO ai_token_usage
                (workflow_id, date, tokens_used, requests_count, model_used, customer_product_id)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(workflow_id, date) DO UPDATE SET
                tokens_used = tokens_used + excluded.tokens_used,
                requests_count = requests_count + excluded.requests_count,
                model_used = COALESCE(excluded.model_used, model_used)
            """,
            workflow_id,
            day.isoformat(),
            tokens,
            requests,
            model,
            customer_product_id,
        )

    async def list_daily_usage(
        self, workflow_id: str, since: date, until: Optional[date] = None
    ) -> list[DailyUsageRecord]:
        query = (
            "SELECT workflow_id, date, tokens_used, requests_count, model_used, customer_product_id "
            "FROM ai_token_usage WHERE workflow_id = ? AND date >= ?"
        )
        params: list[Any] = [workflow_id, since.isoformat()]
        if until is not None:
            query += " AND date <= ?"
            params.append(until.isoformat())
        query += " ORDER BY date"
        rows = await asyncio.to_thread(self._fetchall, query, *params)
        return [
            DailyUsageRecord(
                workflow_id=r["workflow_id"],
                date=date.fromisoformat(r["date"]),
                tokens_used=r["tokens_used"],
                requests_count=r["requests_count"],
                model_used=r["model_used"],
                customer_product_id=r["customer_product_id"],
            )
            for r in rows
        ]
