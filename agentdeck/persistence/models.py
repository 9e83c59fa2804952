"""Data models for locally owned rows."""

from __future__ import annotations

from datetime import date as Date
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, SecretStr, field_validator


class BehaviorRule(BaseModel):
    """One do/don't instruction for the agent."""

    instruction: str
    type: Literal["do", "dont"] = "do"


class RetentionPolicy(BaseModel):
    """How much conversation memory the agent keeps."""

    context_window: int = Field(default=10, ge=1)
    ttl_days: Optional[int] = Field(default=None, ge=1)


class AgentConfiguration(BaseModel):
    """Agent configuration for one customer product. Source of truth for the UI."""

    customer_product_id: str
    workflow_id: Optional[str] = None
    provider: str = "openai"
    model: str = "gpt-4o-mini"
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=2048, gt=0)
    system_prompt: str = ""
    personality: str = ""
    action_instructions: str = ""
    behavior_rules: List[BehaviorRule] = Field(default_factory=list)
    memory_type: str = "postgresql"
    memory_session_key: str = "={{ $json.session_id }}"
    retention: RetentionPolicy = Field(default_factory=RetentionPolicy)
    enabled_tools: List[str] = Field(default_factory=list)
    credentials: Dict[str, SecretStr] = Field(default_factory=dict)
    updated_at: Optional[datetime] = None

    @field_validator("customer_product_id")
    @classmethod
    def _non_empty_id(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("customer_product_id must be a non-empty string")
        return v

    @field_validator("provider")
    @classmethod
    def _normalise_provider(cls, v: str) -> str:
        return v.strip().lower()

    def credential_for(self, capability: str) -> Optional[str]:
        """Raw secret for ``capability`` (provider or tool id), if stored."""
        secret = self.credentials.get(capability)
        return secret.get_secret_value() if secret is not None else None

    def credentials_plain(self) -> Dict[str, str]:
        return {k: v.get_secret_value() for k, v in self.credentials.items()}

    def to_row(self) -> Dict[str, Any]:
        """Serialise for storage, secrets included."""
        data = self.model_dump(mode="json", exclude={"credentials"})
        data["credentials"] = self.credentials_plain()
        return data

    @classmethod
    def from_row(cls, data: Dict[str, Any]) -> "AgentConfiguration":
        return cls.model_validate(data)

    def touched(self) -> "AgentConfiguration":
        return self.model_copy(update={"updated_at": datetime.now(timezone.utc)})


class DailyUsageRecord(BaseModel):
    """Durable per-day counters for a workflow, written by the usage recorder."""

    workflow_id: str
    date: Date
    tokens_used: int = 0
    requests_count: int = 0
    model_used: Optional[str] = None
    customer_product_id: Optional[str] = None
