"""Usage extraction over a raw execution payload.

The engine returns, per node, a list of runs; each run maps connection types
(``main``, ``ai_languageModel``, ...) to output branches, and each branch is a
list of items. Usage records may sit on any item under one of several
historical field names, so the walk is structural and the field probing is
delegated to :mod:`agentdeck.usage.rules`.

Everything here is a pure function of its input.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, Mapping, Optional, Tuple

from ..constants import MAX_WALK_DEPTH
from ..contracts import NodeUsage, TokenUsage
from .rules import USAGE_RULES, UsageRule, detect_provider, find_model, probe

logger = logging.getLogger(__name__)


def find_run_data(payload: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
    """Locate the per-node run map inside an execution payload."""
    if not isinstance(payload, Mapping):
        return None
    if isinstance(payload.get("execution"), Mapping):
        payload = payload["execution"]
    result_data = None
    data = payload.get("data")
    if isinstance(data, Mapping):
        result_data = data.get("resultData")
    if result_data is None:
        result_data = payload.get("resultData")
    if not isinstance(result_data, Mapping):
        return None
    run_data = result_data.get("runData")
    return run_data if isinstance(run_data, Mapping) else None


def node_index(payload: Mapping[str, Any]) -> Dict[str, Mapping[str, Any]]:
    """Map node name to its definition from ``workflowData.nodes`` when present."""
    if isinstance(payload.get("execution"), Mapping):
        payload = payload["execution"]
    workflow = payload.get("workflowData")
    nodes = workflow.get("nodes") if isinstance(workflow, Mapping) else None
    index: Dict[str, Mapping[str, Any]] = {}
    for node in nodes or []:
        if isinstance(node, Mapping) and isinstance(node.get("name"), str):
            index[node["name"]] = node
    return index


def iter_items(value: Any, depth: int = 0) -> Iterator[Mapping[str, Any]]:
    """Yield output items found under ``value`` up to ``MAX_WALK_DEPTH``."""
    if depth > MAX_WALK_DEPTH:
        logger.debug("Usage walk depth limit reached; ignoring deeper output")
        return
    if isinstance(value, list):
        for entry in value:
            yield from iter_items(entry, depth + 1)
    elif isinstance(value, Mapping):
        inner = value.get("json")
        yield inner if isinstance(inner, Mapping) else value
    elif value is not None:
        logger.debug(f"Skipping non-structured output value of type {type(value).__name__}")


def _node_items(node_name: str, runs: Any) -> Iterator[Mapping[str, Any]]:
    if not isinstance(runs, list):
        logger.warning(f"Skipping node {node_name!r}: run list is malformed")
        return
    for run in runs:
        if not isinstance(run, Mapping):
            logger.warning(f"Skipping malformed run of node {node_name!r}")
            continue
        outputs = run.get("data")
        if outputs is None:
            continue
        if not isinstance(outputs, Mapping):
            logger.warning(f"Skipping malformed output of node {node_name!r}")
            continue
        for connection in outputs.values():
            yield from iter_items(connection, depth=1)


def _node_model(definition: Optional[Mapping[str, Any]]) -> Optional[str]:
    if not definition:
        return None
    params = definition.get("parameters")
    if not isinstance(params, Mapping):
        return None
    for key in ("model", "modelName"):
        value = params.get(key)
        if isinstance(value, str) and value:
            return value
        # newer nodes store the model as a resource locator {"value": ...}
        if isinstance(value, Mapping) and isinstance(value.get("value"), str):
            return value["value"]
    return None


def summarize_node(
    node_name: str,
    runs: Any,
    definition: Optional[Mapping[str, Any]] = None,
    rules: Tuple[UsageRule, ...] = USAGE_RULES,
) -> Optional[NodeUsage]:
    """Sum the usage of every matched item of one node, or ``None`` if none matched."""
    matched = 0
    prompt = completion = total = 0
    model: Optional[str] = None
    for item in _node_items(node_name, runs):
        record = probe(item, rules)
        if record is None:
            continue
        matched += 1
        prompt += record.prompt_tokens or 0
        completion += record.completion_tokens or 0
        total += record.total_tokens
        if model is None:
            model = find_model(item)
    if not matched:
        return None

    node_type = "unknown"
    if definition and isinstance(definition.get("type"), str):
        node_type = definition["type"]
    return NodeUsage(
        node_name=node_name,
        node_type=node_type,
        prompt_tokens=prompt,
        completion_tokens=completion,
        total_tokens=total,
        model=model or _node_model(definition),
    )


def extract_usage(
    payload: Mapping[str, Any], rules: Tuple[UsageRule, ...] = USAGE_RULES
) -> TokenUsage:
    """Reduce one execution payload to a :class:`TokenUsage` summary.

    Nodes without any usage record are left out of the breakdown. A payload
    without usage anywhere yields an all-zero summary.
    """
    run_data = find_run_data(payload)
    if run_data is None:
        logger.debug("Execution payload has no run data; reporting zero usage")
        return TokenUsage()

    definitions = node_index(payload)
    breakdown = []
    for node_name, runs in run_data.items():
        node = summarize_node(str(node_name), runs, definitions.get(node_name), rules)
        if node is not None and (node.total_tokens or node.prompt_tokens or node.completion_tokens):
            breakdown.append(node)

    model: Optional[str] = None
    provider: Optional[str] = None
    for node in breakdown:
        if node.model:
            model = node.model
            provider = detect_provider(node.model, node.node_type)
            break
    if provider is None and breakdown:
        provider = detect_provider(None, breakdown[0].node_type)

    return TokenUsage(
        prompt_tokens=sum(n.prompt_tokens for n in breakdown),
        completion_tokens=sum(n.completion_tokens for n in breakdown),
        total_tokens=sum(n.total_tokens for n in breakdown),
        model=model,
        provider=provider,
        node_breakdown=breakdown,
    )
