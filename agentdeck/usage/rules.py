"""Where usage records live inside engine output items.

Rules are tried in order and the first one that yields a usage record wins
for an item. New aliases are added here; the walk in ``extract`` does not
change.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Tuple

PROMPT_KEYS: Tuple[str, ...] = (
    "promptTokens",
    "prompt_tokens",
    "input_tokens",
    "inputTokens",
    "promptTokenCount",
)
COMPLETION_KEYS: Tuple[str, ...] = (
    "completionTokens",
    "completion_tokens",
    "output_tokens",
    "outputTokens",
    "candidatesTokenCount",
)
TOTAL_KEYS: Tuple[str, ...] = (
    "totalTokens",
    "total_tokens",
    "totalTokenCount",
    "tokensUsed",
)
MODEL_KEYS: Tuple[str, ...] = ("model", "modelName", "modelVersion")


@dataclass(frozen=True)
class UsageRule:
    """A location to probe for a usage record.

    ``path`` is a sequence of mapping keys from the item root. An empty path
    means the counters sit directly on the item.
    """

    name: str
    path: Tuple[str, ...]

    def locate(self, item: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
        node: Any = item
        for key in self.path:
            if not isinstance(node, Mapping):
                return None
            node = node.get(key)
        return node if isinstance(node, Mapping) else None


@dataclass(frozen=True)
class UsageRecord:
    prompt_tokens: Optional[int]
    completion_tokens: Optional[int]
    reported_total: Optional[int]
    rule: str

    @property
    def total_tokens(self) -> int:
        """Prompt plus completion when both are known, else whichever is known."""
        if self.prompt_tokens is not None and self.completion_tokens is not None:
            return self.prompt_tokens + self.completion_tokens
        if self.prompt_tokens is not None:
            return self.prompt_tokens
        if self.completion_tokens is not None:
            return self.completion_tokens
        return self.reported_total or 0


USAGE_RULES: Tuple[UsageRule, ...] = (
    UsageRule("tokenUsage", ("tokenUsage",)),
    UsageRule("usage", ("usage",)),
    UsageRule("response.usage", ("response", "usage")),
    UsageRule("metadata.tokenUsage", ("metadata", "tokenUsage")),
    # Gemini style responses
    UsageRule("usageMetadata", ("usageMetadata",)),
    UsageRule("response.usageMetadata", ("response", "usageMetadata")),
    UsageRule("tokenUsageEstimate", ("tokenUsageEstimate",)),
    # legacy flat {tokensUsed, modelUsed} reports
    UsageRule("tokensUsed", ()),
)


def _count(container: Mapping[str, Any], keys: Tuple[str, ...]) -> Optional[int]:
    for key in keys:
        value = container.get(key)
        if value is None or isinstance(value, bool):
            continue
        try:
            count = int(float(value))
        except (TypeError, ValueError, OverflowError):
            continue
        if count >= 0:
            return count
    return None


def read_usage(
    container: Mapping[str, Any], rule_name: str, flat: bool = False
) -> Optional[UsageRecord]:
    """Build a :class:`UsageRecord` from ``container`` if it holds any counter.

    ``flat`` restricts matching to the legacy total-only keys so that an
    item's own unrelated fields are not mistaken for usage.
    """
    if flat:
        total = _count(container, ("tokensUsed",))
        if total is None:
            return None
        return UsageRecord(None, None, total, rule_name)
    prompt = _count(container, PROMPT_KEYS)
    completion = _count(container, COMPLETION_KEYS)
    total = _count(container, TOTAL_KEYS)
    if prompt is None and completion is None and total is None:
        return None
    return UsageRecord(prompt, completion, total, rule_name)


def probe(
    item: Mapping[str, Any], rules: Tuple[UsageRule, ...] = USAGE_RULES
) -> Optional[UsageRecord]:
    """Return the first usage record found on ``item`` following ``rules``."""
    for rule in rules:
        container = rule.locate(item)
        if container is None:
            continue
        record = read_usage(container, rule.name, flat=not rule.path)
        if record is not None:
            return record
    return None


def find_model(item: Mapping[str, Any]) -> Optional[str]:
    for container in (item, item.get("response"), item.get("metadata")):
        if not isinstance(container, Mapping):
            continue
        for key in MODEL_KEYS + ("modelUsed",):
            value = container.get(key)
            if isinstance(value, str) and value:
                return value
    return None


def detect_provider(model: Optional[str], node_type: Optional[str] = None) -> Optional[str]:
    """Infer the LLM provider from a node type or model name."""
    node_type = (node_type or "").lower()
    if "openai" in node_type:
        return "openai"
    if "gemini" in node_type or "google" in node_type:
        return "google"
    if "anthropic" in node_type:
        return "anthropic"
    if not model:
        return None
    name = model.lower()
    if "claude" in name or "anthropic" in name:
        return "anthropic"
    if "gemini" in name or "google" in name or "palm" in name or "gemma" in name:
        return "google"
    if "gpt" in name or "openai" in name or name.startswith(("o1", "o3", "o4")):
        return "openai"
    return None
