"""Token usage extraction and aggregation."""

from __future__ import annotations

from .aggregate import UsageAggregator, UsageWindow, rollup_daily, week_start
from .extract import extract_usage
from .rules import USAGE_RULES, UsageRule, detect_provider

__all__ = [
    "USAGE_RULES",
    "UsageAggregator",
    "UsageRule",
    "UsageWindow",
    "detect_provider",
    "extract_usage",
    "rollup_daily",
    "week_start",
]
