"""Data contracts exchanged between the relay, the usage engine and callers."""

from __future__ import annotations

from datetime import date as Date
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from .errors import PartialDataError

ActionName = Literal[
    "test_connection",
    "list_workflows",
    "get_workflow",
    "get_executions",
    "get_execution",
    "activate_workflow",
    "deactivate_workflow",
    "sync_config",
]


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class WorkflowDescriptor(BaseModel):
    """Remote identity of an automation workflow. Owned by the engine."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    name: str = ""
    active: bool = False
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v: Any) -> str:
        return str(v)

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _timestamps(cls, v: Any) -> Optional[datetime]:
        return _parse_timestamp(v)


class ExecutionStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    RUNNING = "running"
    UNKNOWN = "unknown"

    @property
    def is_terminal(self) -> bool:
        return self in (ExecutionStatus.SUCCESS, ExecutionStatus.ERROR)

    @classmethod
    def from_engine(cls, raw: Dict[str, Any]) -> "ExecutionStatus":
        """Normalise the engine's status vocabulary into the four known states."""
        status = raw.get("status")
        if isinstance(status, str):
            status = status.lower()
            if status == "success":
                return cls.SUCCESS
            if status in ("error", "crashed", "failed"):
                return cls.ERROR
            if status in ("running", "new", "waiting"):
                return cls.RUNNING
            return cls.UNKNOWN
        finished = raw.get("finished")
        if finished is True:
            return cls.SUCCESS
        if finished is False and not raw.get("stoppedAt"):
            return cls.RUNNING
        return cls.UNKNOWN


class ExecutionSummary(BaseModel):
    """One run of a workflow."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    execution_id: str = Field(validation_alias=AliasChoices("execution_id", "id"))
    workflow_id: str = Field(
        validation_alias=AliasChoices("workflow_id", "workflowId")
    )
    status: ExecutionStatus = ExecutionStatus.UNKNOWN
    started_at: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices("started_at", "startedAt")
    )
    stopped_at: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices("stopped_at", "stoppedAt")
    )

    @field_validator("execution_id", "workflow_id", mode="before")
    @classmethod
    def _coerce_ids(cls, v: Any) -> str:
        return str(v)

    @field_validator("started_at", "stopped_at", mode="before")
    @classmethod
    def _timestamps(cls, v: Any) -> Optional[datetime]:
        return _parse_timestamp(v)

    @classmethod
    def from_engine(cls, raw: Dict[str, Any]) -> "ExecutionSummary":
        data = dict(raw)
        data["status"] = ExecutionStatus.from_engine(raw)
        return cls.model_validate(data)


class NodeUsage(BaseModel):
    """Token usage attributed to a single workflow node."""

    node_name: str
    node_type: str = "unknown"
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    model: Optional[str] = None


class TokenUsage(BaseModel):
    """Usage projection derived from one execution payload."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    model: Optional[str] = None
    provider: Optional[str] = None
    node_breakdown: List[NodeUsage] = Field(default_factory=list)


class ConnectionStatus(BaseModel):
    ok: bool
    message: str = ""
    engine_url: Optional[str] = None
    total_workflows: int = 0


class ExecutionUsage(BaseModel):
    """Row of the recent-execution listing, with drill-down usage when known."""

    execution_id: str
    workflow_id: str
    status: ExecutionStatus
    started_at: Optional[datetime] = None
    stopped_at: Optional[datetime] = None
    usage_known: bool = True
    usage: Optional[TokenUsage] = None
    error: Optional[str] = None


class ExecutionUsageReport(BaseModel):
    """Live token accounting over the most recent executions of a workflow."""

    workflow_id: str
    total_tokens: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    execution_count: int = 0
    listed_count: int = 0
    by_execution: List[ExecutionUsage] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def unknown(self) -> List[ExecutionUsage]:
        return [row for row in self.by_execution if not row.usage_known]

    @property
    def is_partial(self) -> bool:
        return any(not row.usage_known for row in self.by_execution)

    def raise_for_partial(self) -> None:
        """Raise :class:`PartialDataError` when any execution has unknown usage."""
        failed = {
            row.execution_id: row.error or "usage unknown" for row in self.unknown
        }
        if failed:
            raise PartialDataError(failed)


class UsageBucket(BaseModel):
    tokens: int = 0
    requests: int = 0


class DailyUsagePoint(BaseModel):
    date: Date
    tokens: int = 0
    requests: int = 0


class CalendarRollup(BaseModel):
    """Durable daily-counter rollups, independent of the live execution window."""

    workflow_id: str
    today: UsageBucket = Field(default_factory=UsageBucket)
    week: UsageBucket = Field(default_factory=UsageBucket)
    month: UsageBucket = Field(default_factory=UsageBucket)
    daily_data: List[DailyUsagePoint] = Field(default_factory=list)


class UsageReport(BaseModel):
    """Two independent figures: live execution usage and durable daily counters.

    The two are not expected to reconcile.
    """

    workflow_id: str
    live: Optional[ExecutionUsageReport] = None
    live_error: Optional[str] = None
    calendar: CalendarRollup
