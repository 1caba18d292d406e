"""Tests for parsing provider replies."""

import pytest

from patchx.llm.response import (
    MALFORMED_CONFIDENCE,
    UNSTRUCTURED_CONFIDENCE,
    ProviderFailure,
    ProviderSuccess,
    parse_provider_reply,
)


class TestParseProviderReply:
    """Test parse_provider_reply()."""

    def test_json_embedded_in_prose(self) -> None:
        raw = (
            "Sure, here is the merge:\n```json\n"
            '{"resolvedCode": "int x = 2;", "explanation": "took incoming", '
            '"confidence": 0.85, "suggestions": ["run tests"], "requiresManualReview": true}\n'
            "```\nLet me know!"
        )
        outcome = parse_provider_reply("openai", raw)
        assert isinstance(outcome, ProviderSuccess)
        assert outcome.ok is True
        resolution = outcome.resolution
        assert resolution.resolved_code == "int x = 2;"
        assert resolution.explanation == "took incoming"
        assert resolution.confidence == 0.85
        assert resolution.suggestions == ["run tests"]
        assert resolution.requires_manual_review is True

    def test_missing_fields_get_defaults(self) -> None:
        outcome = parse_provider_reply("anthropic", '{"resolvedCode": "x", "suggestions": null}')
        assert isinstance(outcome, ProviderSuccess)
        assert outcome.resolution.confidence == 0.5
        assert outcome.resolution.explanation == "The AI provided a resolution"
        assert outcome.resolution.suggestions == []

    def test_confidence_is_clamped(self) -> None:
        outcome = parse_provider_reply("openai", '{"resolvedCode": "x", "confidence": 7}')
        assert isinstance(outcome, ProviderSuccess)
        assert outcome.resolution.confidence == 1.0

    def test_no_json_is_unstructured(self) -> None:
        outcome = parse_provider_reply("custom", "Just keep the incoming line.")
        assert isinstance(outcome, ProviderFailure)
        assert outcome.kind == "unstructured"
        resolution = outcome.to_resolution()
        assert resolution.resolved_code == "Just keep the incoming line."
        assert resolution.confidence == UNSTRUCTURED_CONFIDENCE
        assert resolution.requires_manual_review

    @pytest.mark.parametrize(
        "raw",
        [
            "{not json at all}",
            '{"resolvedCode": "x", "confidence": "high"}',
            '{"resolvedCode": "x", "confidence": true}',
            '{"resolvedCode": 42}',
        ],
    )
    def test_malformed(self, raw: str) -> None:
        outcome = parse_provider_reply("openai", raw)
        assert isinstance(outcome, ProviderFailure)
        assert outcome.kind == "malformed"
        resolution = outcome.to_resolution()
        assert resolution.confidence == MALFORMED_CONFIDENCE
        assert resolution.explanation.startswith("Failed to parse AI response")


class TestProviderFailure:
    """Test ProviderFailure.to_resolution() for call errors."""

    def test_error_falls_back_to_target_file(self) -> None:
        failure = ProviderFailure("anthropic", "error", "timed out after 60s")
        resolution = failure.to_resolution(fallback_code="original body")
        assert resolution.resolved_code == "original body"
        assert resolution.confidence == 0.0
        assert resolution.requires_manual_review
        assert resolution.explanation == (
            "AI provider anthropic resolution failed: timed out after 60s"
        )
