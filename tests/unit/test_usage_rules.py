"""Usage rule probing tests."""

import pytest

from agentdeck.usage.rules import USAGE_RULES, UsageRule, detect_provider, find_model, probe


def test_probe_reads_langchain_token_usage():
    record = probe({"tokenUsage": {"promptTokens": 12, "completionTokens": 8, "totalTokens": 20}})
    assert record.rule == "tokenUsage"
    assert (record.prompt_tokens, record.completion_tokens, record.total_tokens) == (12, 8, 20)


@pytest.mark.parametrize(
    "item, rule",
    [
        ({"usage": {"input_tokens": 5, "output_tokens": 3}}, "usage"),
        ({"response": {"usage": {"prompt_tokens": 5, "completion_tokens": 3}}}, "response.usage"),
        ({"metadata": {"tokenUsage": {"inputTokens": 5, "outputTokens": 3}}}, "metadata.tokenUsage"),
        ({"usageMetadata": {"promptTokenCount": 5, "candidatesTokenCount": 3}}, "usageMetadata"),
        ({"tokenUsageEstimate": {"promptTokens": 5, "completionTokens": 3}}, "tokenUsageEstimate"),
    ],
)
def test_probe_accepts_known_aliases(item, rule):
    record = probe(item)
    assert record.rule == rule
    assert record.total_tokens == 8


def test_first_matching_rule_wins():
    item = {
        "tokenUsage": {"promptTokens": 100, "completionTokens": 50},
        "usage": {"prompt_tokens": 1, "completion_tokens": 1},
    }
    record = probe(item)
    assert record.rule == "tokenUsage"
    assert record.total_tokens == 150


def test_total_is_sum_even_when_reported_total_disagrees():
    record = probe({"tokenUsage": {"promptTokens": 10, "completionTokens": 5, "totalTokens": 99}})
    assert record.total_tokens == 15


def test_reported_total_used_when_parts_missing():
    record = probe({"usage": {"total_tokens": 42}})
    assert record.prompt_tokens is None
    assert record.total_tokens == 42


def test_flat_legacy_report_only_matches_tokens_used():
    assert probe({"promptTokens": 10, "text": "hi"}) is None
    record = probe({"tokensUsed": 77, "modelUsed": "gpt-4o"})
    assert record.rule == "tokensUsed"
    assert record.total_tokens == 77


def test_invalid_counters_are_ignored():
    assert probe({"usage": {"prompt_tokens": "n/a", "completion_tokens": -3}}) is None
    assert probe({"usage": {"prompt_tokens": True}}) is None


def test_custom_rule_list():
    rules = (UsageRule("billing", ("billing", "tokens")),) + USAGE_RULES
    record = probe({"billing": {"tokens": {"prompt_tokens": 1, "completion_tokens": 2}}}, rules)
    assert record.rule == "billing"


def test_find_model_checks_nested_containers():
    assert find_model({"response": {"model": "claude-3-haiku"}}) == "claude-3-haiku"
    assert find_model({"modelUsed": "gpt-4o"}) == "gpt-4o"
    assert find_model({"text": "hi"}) is None


@pytest.mark.parametrize(
    "model, node_type, provider",
    [
        ("gpt-4o-mini", None, "openai"),
        ("o3-mini", None, "openai"),
        ("claude-3-5-sonnet-20241022", None, "anthropic"),
        ("gemini-1.5-pro", None, "google"),
        (None, "@n8n/n8n-nodes-langchain.lmChatOpenAi", "openai"),
        (None, "@n8n/n8n-nodes-langchain.lmChatAnthropic", "anthropic"),
        ("mistral-large", None, None),
        (None, None, None),
    ],
)
def test_detect_provider(model, node_type, provider):
    assert detect_provider(model, node_type) == provider


def test_single_known_part_is_the_total():
    assert probe({"tokenUsage": {"promptTokens": 7}}).total_tokens == 7
    assert probe({"usage": {"output_tokens": 4}}).total_tokens == 4


@pytest.mark.parametrize("value", ["1e999", float("inf"), float("nan")])
def test_non_finite_counters_are_ignored(value):
    record = probe({"tokenUsage": {"promptTokens": value, "completionTokens": 5}})
    assert record.prompt_tokens is None
    assert record.total_tokens == 5
