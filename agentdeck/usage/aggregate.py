"""Usage aggregation over recent executions and durable daily counters."""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Callable, List, Optional, Sequence

from pydantic import BaseModel

from ..client import WorkflowEngineClient
from ..constants import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_DETAIL_LIMIT,
    DEFAULT_EXECUTION_LIMIT,
    DEFAULT_HISTORY_DAYS,
)
from ..contracts import (
    CalendarRollup,
    DailyUsagePoint,
    ExecutionSummary,
    ExecutionUsage,
    ExecutionUsageReport,
    UsageBucket,
    UsageReport,
)
from ..errors import AuthError, EngineError, ValidationError
from ..persistence import ControlRepository
from ..persistence.models import DailyUsageRecord
from .extract import extract_usage

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class UsageWindow(BaseModel):
    """Bounds for one aggregation run."""

    execution_limit: int = DEFAULT_EXECUTION_LIMIT
    detail_limit: int = DEFAULT_DETAIL_LIMIT
    batch_size: int = DEFAULT_BATCH_SIZE
    history_days: int = DEFAULT_HISTORY_DAYS


def week_start(day: date) -> date:
    """Sunday on or before ``day``."""
    return day - timedelta(days=(day.weekday() + 1) % 7)


def rollup_daily(
    workflow_id: str,
    records: Sequence[DailyUsageRecord],
    today: date,
    history_days: int = DEFAULT_HISTORY_DAYS,
) -> CalendarRollup:
    """Fold daily counter rows into today/week/month buckets and a daily series."""
    first_of_week = week_start(today)
    first_of_month = today.replace(day=1)
    history_start = today - timedelta(days=history_days)

    per_day: dict[date, DailyUsagePoint] = {}
    today_bucket = UsageBucket()
    week_bucket = UsageBucket()
    month_bucket = UsageBucket()
    for record in records:
        if record.date > today:
            continue
        tokens = record.tokens_used or 0
        requests = record.requests_count or 0
        if record.date >= history_start:
            point = per_day.setdefault(record.date, DailyUsagePoint(date=record.date))
            point.tokens += tokens
            point.requests += requests
        if record.date == today:
            today_bucket.tokens += tokens
            today_bucket.requests += requests
        if record.date >= first_of_week:
            week_bucket.tokens += tokens
            week_bucket.requests += requests
        if record.date >= first_of_month:
            month_bucket.tokens += tokens
            month_bucket.requests += requests

    return CalendarRollup(
        workflow_id=workflow_id,
        today=today_bucket,
        week=week_bucket,
        month=month_bucket,
        daily_data=[per_day[d] for d in sorted(per_day)],
    )


class UsageAggregator:
    """Builds usage reports for a workflow.

    Live figures come from the engine's most recent executions; calendar
    figures come from the durable daily counters. They answer different
    questions and are reported side by side without reconciliation.
    """

    def __init__(
        self,
        client: WorkflowEngineClient,
        repository: ControlRepository,
        window: Optional[UsageWindow] = None,
        today: Optional[Callable[[], date]] = None,
    ) -> None:
        self._client = client
        self._repository = repository
        self.window = window or UsageWindow()
        self._today = today or date.today

    async def load_usage(
        self, workflow_id: str, window: Optional[UsageWindow] = None
    ) -> UsageReport:
        """Return live execution usage plus calendar rollups for ``workflow_id``.

        A failure to list executions leaves ``live`` empty with ``live_error``
        set; the calendar figures are still returned. Authentication failures
        propagate.
        """
        if not workflow_id:
            raise ValidationError("workflow_id is required")
        window = window or self.window

        calendar = await self.load_calendar(workflow_id, window)
        live: Optional[ExecutionUsageReport] = None
        live_error: Optional[str] = None
        try:
            live = await self.load_recent_executions(workflow_id, window)
        except AuthError:
            raise
        except EngineError as exc:
            logger.warning(f"Live usage unavailable for workflow {workflow_id}: {exc}")
            live_error = str(exc)
        return UsageReport(
            workflow_id=workflow_id, live=live, live_error=live_error, calendar=calendar
        )

    async def load_calendar(
        self, workflow_id: str, window: Optional[UsageWindow] = None
    ) -> CalendarRollup:
        window = window or self.window
        today = self._today()
        since = min(
            today - timedelta(days=window.history_days),
            week_start(today),
            today.replace(day=1),
        )
        records = await self._repository.list_daily_usage(workflow_id, since=since, until=today)
        return rollup_daily(workflow_id, records, today, window.history_days)

    async def load_recent_executions(
        self, workflow_id: str, window: Optional[UsageWindow] = None
    ) -> ExecutionUsageReport:
        """Fetch recent terminal executions and extract usage for the newest ones."""
        window = window or self.window
        executions = await self._client.get_executions(
            workflow_id, limit=window.execution_limit
        )
        terminal = [e for e in executions if e.status.is_terminal]
        terminal.sort(key=_recency_key, reverse=True)
        selected = terminal[: window.detail_limit]

        rows: List[ExecutionUsage] = []
        batch_size = max(1, window.batch_size)
        for start in range(0, len(selected), batch_size):
            batch = selected[start : start + batch_size]
            results = await asyncio.gather(
                *(self._usage_for(execution) for execution in batch),
                return_exceptions=True,
            )
            for execution, result in zip(batch, results):
                if isinstance(result, AuthError):
                    raise result
                if isinstance(result, BaseException):
                    if not isinstance(result, Exception):
                        raise result
                    logger.warning(
                        f"Usage unknown for execution {execution.execution_id}: {result}"
                    )
                    rows.append(_unknown_row(execution, str(result)))
                else:
                    rows.append(result)

        rows.sort(key=_recency_key, reverse=True)
        known = [row for row in rows if row.usage_known and row.usage is not None]
        return ExecutionUsageReport(
            workflow_id=workflow_id,
            prompt_tokens=sum(row.usage.prompt_tokens for row in known),
            completion_tokens=sum(row.usage.completion_tokens for row in known),
            total_tokens=sum(row.usage.total_tokens for row in known),
            execution_count=len(known),
            listed_count=len(terminal),
            by_execution=rows,
        )

    async def _usage_for(self, execution: ExecutionSummary) -> ExecutionUsage:
        payload = await self._client.get_execution(execution.execution_id)
        usage = extract_usage(payload)
        return ExecutionUsage(
            execution_id=execution.execution_id,
            workflow_id=execution.workflow_id,
            status=execution.status,
            started_at=execution.started_at,
            stopped_at=execution.stopped_at,
            usage=usage,
        )


def _unknown_row(execution: ExecutionSummary, error: str) -> ExecutionUsage:
    return ExecutionUsage(
        execution_id=execution.execution_id,
        workflow_id=execution.workflow_id,
        status=execution.status,
        started_at=execution.started_at,
        stopped_at=execution.stopped_at,
        usage_known=False,
        usage=None,
        error=error,
    )


def _recency_key(row) -> tuple:
    return (row.started_at or _EPOCH, row.execution_id)
