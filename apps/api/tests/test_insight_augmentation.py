"""
Insight Augmentation Tests

DETERMINISTIC: the LLM clients are MagicMocks. These tests verify that
1. the prompt summarizes the analysis,
2. well-formed JSON becomes augmented CoachInsights,
3. malformed items are dropped individually,
4. every failure mode yields zero insights instead of an exception.
"""

import json
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from services.insight_augmentation import (
    MAX_AUGMENTED_INSIGHTS,
    SYSTEM_PROMPT,
    InsightAugmenter,
    build_analysis_summary,
    parse_augmented_insights,
)
from services.insight_synthesizer import Difficulty, InsightPriority, InsightType
from services.workflow_analysis import analyze_workflow


def _item(title="Timebox exploration", **overrides):
    item = {
        "type": "strategic_advice",
        "category": "strategic",
        "title": title,
        "description": "You spent 40% of the session idle between prompts.",
        "recommendations": [
            {"action": "Set a 25 minute timer", "expected_improvement": "10% less idle time", "difficulty": "easy"},
        ],
        "priority": "high",
    }
    item.update(overrides)
    return item


@pytest.fixture
def analysis_and_snapshot(make_commands, make_snapshot):
    commands = make_commands(("debug", 0, 1000, False), ("debug", 60, 1000), ("review", 120, 1000))
    snapshot = make_snapshot(commands, workflow_type="coding")
    return analyze_workflow(snapshot), snapshot


def _openai_response(text):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=text))])


def _anthropic_response(text):
    return SimpleNamespace(content=[SimpleNamespace(text=text)])


class TestParseAugmentedInsights:

    def test_valid_array(self):
        insights = parse_augmented_insights(json.dumps([_item()]))

        assert len(insights) == 1
        insight = insights[0]
        assert insight.source == "augmented"
        assert insight.insight_type is InsightType.STRATEGIC_ADVICE
        assert insight.priority is InsightPriority.HIGH
        assert insight.recommendations[0].difficulty is Difficulty.EASY

    def test_array_wrapped_in_prose_and_fence(self):
        raw = "Here are my insights:\n```json\n" + json.dumps([_item()]) + "\n```\nGood luck!"

        assert len(parse_augmented_insights(raw)) == 1

    @pytest.mark.parametrize("raw", [None, "", "   ", "I cannot help with that.", "[not json]", '{"title": "x"}'])
    def test_unusable_responses_yield_nothing(self, raw):
        assert parse_augmented_insights(raw) == []

    def test_invalid_items_are_dropped_individually(self):
        raw = json.dumps([
            _item(title=""),
            _item(priority="critical"),
            "just a string",
            _item(title="Keep this one"),
        ])

        insights = parse_augmented_insights(raw)

        assert [i.title for i in insights] == ["Keep this one"]

    def test_missing_optional_fields_use_defaults(self):
        insights = parse_augmented_insights(json.dumps([{"title": "T", "description": "D"}]))

        assert insights[0].insight_type is InsightType.STRATEGIC_ADVICE
        assert insights[0].priority is InsightPriority.MEDIUM
        assert insights[0].recommendations == []

    def test_blank_text_fields_are_dropped(self):
        raw = json.dumps([
            {"title": "   ", "description": "  "},
            _item(description="\n\t "),
            _item(recommendations=[{"action": "  "}]),
            _item(title="  Padded title  "),
        ])

        insights = parse_augmented_insights(raw)

        assert [i.title for i in insights] == ["Padded title"]

    def test_caps_number_of_insights(self):
        raw = json.dumps([_item(title=f"Insight {i}") for i in range(6)])

        assert len(parse_augmented_insights(raw)) == MAX_AUGMENTED_INSIGHTS


class TestPrompt:

    def test_summary_mentions_key_metrics(self, analysis_and_snapshot):
        analysis, snapshot = analysis_and_snapshot

        summary = build_analysis_summary(analysis, snapshot)

        assert "Workflow Type: coding" in summary
        assert f"Efficiency Score: {analysis.efficiency_score}" in summary
        assert f"Complexity: {analysis.complexity_assessment.level}" in summary
        assert "Time Analysis: Total 120s" in summary
        assert "JSON array" in summary


class TestInsightAugmenter:

    def test_azure_openai_call(self, analysis_and_snapshot):
        analysis, snapshot = analysis_and_snapshot
        client = MagicMock()
        client.chat.completions.create.return_value = _openai_response(json.dumps([_item()]))
        augmenter = InsightAugmenter(client, provider="azure", model="gpt-4o", timeout_s=5)

        insights = augmenter.augment(analysis, snapshot)

        assert len(insights) == 1
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o"
        assert kwargs["timeout"] == 5
        assert kwargs["messages"][0] == {"role": "system", "content": SYSTEM_PROMPT}

    def test_anthropic_call(self, analysis_and_snapshot):
        analysis, snapshot = analysis_and_snapshot
        client = MagicMock()
        client.messages.create.return_value = _anthropic_response(json.dumps([_item(), _item(title="Second")]))
        augmenter = InsightAugmenter(client, provider="anthropic", model="claude-3-5-sonnet-20241022")

        insights = augmenter.augment(analysis, snapshot)

        assert [i.title for i in insights] == ["Timebox exploration", "Second"]
        assert client.messages.create.call_args.kwargs["system"] == SYSTEM_PROMPT

    def test_client_error_yields_nothing(self, analysis_and_snapshot):
        analysis, snapshot = analysis_and_snapshot
        client = MagicMock()
        client.chat.completions.create.side_effect = TimeoutError("request timed out")

        assert InsightAugmenter(client).augment(analysis, snapshot) == []

    def test_empty_choices_yield_nothing(self, analysis_and_snapshot):
        analysis, snapshot = analysis_and_snapshot
        client = MagicMock()
        client.chat.completions.create.return_value = SimpleNamespace(choices=[])

        assert InsightAugmenter(client).augment(analysis, snapshot) == []

    def test_non_json_response_yields_nothing(self, analysis_and_snapshot):
        analysis, snapshot = analysis_and_snapshot
        client = MagicMock()
        client.chat.completions.create.return_value = _openai_response("Great job, keep going!")

        assert InsightAugmenter(client).augment(analysis, snapshot) == []


class TestFromSettings:

    def test_disabled_provider_returns_none(self):
        with patch("services.insight_augmentation.settings") as settings:
            settings.INSIGHT_AUGMENTATION_PROVIDER = "none"
            assert InsightAugmenter.from_settings() is None

    def test_azure_without_credentials_returns_none(self):
        with patch("services.insight_augmentation.settings") as settings:
            settings.INSIGHT_AUGMENTATION_PROVIDER = "azure"
            settings.AZURE_AI_ENDPOINT = None
            settings.AZURE_AI_KEY = None
            assert InsightAugmenter.from_settings() is None

    def test_anthropic_client_is_built(self):
        with patch("services.insight_augmentation.settings") as settings, \
                patch("anthropic.Anthropic") as anthropic_cls:
            settings.INSIGHT_AUGMENTATION_PROVIDER = "anthropic"
            settings.ANTHROPIC_API_KEY = "test-key"
            settings.INSIGHT_AUGMENTATION_MODEL = "claude-3-5-sonnet-20241022"
            settings.INSIGHT_AUGMENTATION_TIMEOUT_S = 7.0
            settings.INSIGHT_AUGMENTATION_MAX_TOKENS = 800
            settings.INSIGHT_AUGMENTATION_TEMPERATURE = 0.7

            augmenter = InsightAugmenter.from_settings()

        assert augmenter.provider == "anthropic"
        assert augmenter.client is anthropic_cls.return_value
        anthropic_cls.assert_called_once_with(api_key="test-key", timeout=7.0, max_retries=0)
