"""Parsing of provider replies into a tagged success/failure variant.

Provider output is free text that usually contains a JSON object. The reply is
validated once here with pydantic; the engine only ever sees a
``ProviderSuccess`` or a ``ProviderFailure``.

Failure kinds:
    - ``unstructured``: no JSON object in the reply.
    - ``malformed``: a JSON object was found but did not decode or validate.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from patchx.core.models import Resolution

logger = logging.getLogger(__name__)

JSON_OBJECT_PATTERN = re.compile(r"\{.*\}", re.DOTALL)

DEFAULT_CONFIDENCE = 0.5
UNSTRUCTURED_CONFIDENCE = 0.3
MALFORMED_CONFIDENCE = 0.1
PROVIDER_FAILURE_SUGGESTION = "Please try another AI provider or resolve manually"


class ProviderReply(BaseModel):
    """Expected JSON shape of a provider reply."""

    model_config = ConfigDict(extra="ignore")

    resolved_code: str = Field(default="", alias="resolvedCode")
    explanation: str = ""
    confidence: float | None = None
    suggestions: list[str] = Field(default_factory=list)
    requires_manual_review: bool = Field(default=False, alias="requiresManualReview")

    @field_validator("confidence", mode="before")
    @classmethod
    def _numeric_confidence(cls, value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, int | float):
            raise ValueError(f"confidence must be a number, got {type(value).__name__}")
        return value

    @field_validator("suggestions", mode="before")
    @classmethod
    def _null_suggestions(cls, value: Any) -> Any:
        return [] if value is None else value


@dataclass(frozen=True, slots=True)
class ProviderSuccess:
    provider: str
    resolution: Resolution

    ok: Literal[True] = True

    def to_resolution(self, fallback_code: str = "") -> Resolution:
        return self.resolution


@dataclass(frozen=True, slots=True)
class ProviderFailure:
    """A reply that could not be used as-is, or a failed provider call.

    Attributes:
        provider: Provider name.
        kind: ``unstructured``, ``malformed`` or ``error``.
        reason: Human-readable cause.
        raw: Raw reply text (empty for ``error``).
    """

    provider: str
    kind: Literal["unstructured", "malformed", "error"]
    reason: str
    raw: str = ""

    ok: Literal[False] = False

    def to_resolution(self, fallback_code: str = "") -> Resolution:
        """Synthesize a Resolution flagged for manual review.

        Args:
            fallback_code: Body to return for ``error`` failures (the target file).
        """
        if self.kind == "unstructured":
            return Resolution(
                resolved_code=self.raw,
                explanation="The AI returned a resolution that needs manual formatting",
                confidence=UNSTRUCTURED_CONFIDENCE,
                suggestions=["Please verify the AI-provided resolution manually"],
                requires_manual_review=True,
            )
        if self.kind == "malformed":
            return Resolution(
                resolved_code=self.raw,
                explanation=f"Failed to parse AI response: {self.reason}",
                confidence=MALFORMED_CONFIDENCE,
                suggestions=["The AI response format is abnormal and needs manual review"],
                requires_manual_review=True,
            )
        return Resolution(
            resolved_code=fallback_code,
            explanation=f"AI provider {self.provider} resolution failed: {self.reason}",
            confidence=0.0,
            suggestions=[PROVIDER_FAILURE_SUGGESTION],
            requires_manual_review=True,
        )


ProviderOutcome = ProviderSuccess | ProviderFailure


def parse_provider_reply(provider: str, raw: str) -> ProviderOutcome:
    """Turn raw provider text into a tagged outcome.

    Args:
        provider: Provider name, carried into the outcome.
        raw: Raw completion text.

    Returns:
        ProviderSuccess with a clamped Resolution, or ProviderFailure.

    Example:
        >>> outcome = parse_provider_reply("openai", '{"resolvedCode": "x", "confidence": 0.9}')
        >>> outcome.ok, outcome.resolution.confidence
        (True, 0.9)
    """
    match = JSON_OBJECT_PATTERN.search(raw)
    if not match:
        logger.warning(f"{provider} reply contained no JSON object ({len(raw)} chars)")
        return ProviderFailure(provider, "unstructured", "no JSON object in reply", raw)

    try:
        payload = json.loads(match.group(0))
        if not isinstance(payload, dict):
            raise ValueError("reply JSON is not an object")
        reply = ProviderReply.model_validate(payload)
    except (json.JSONDecodeError, ValidationError, ValueError) as e:
        logger.warning(f"{provider} reply could not be parsed: {e}")
        return ProviderFailure(provider, "malformed", str(e), raw)

    resolution = Resolution(
        resolved_code=reply.resolved_code,
        explanation=reply.explanation or "The AI provided a resolution",
        confidence=DEFAULT_CONFIDENCE if reply.confidence is None else reply.confidence,
        suggestions=list(reply.suggestions),
        requires_manual_review=reply.requires_manual_review,
    )
    return ProviderSuccess(provider, resolution)
