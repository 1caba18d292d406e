"""AI-assisted conflict resolution.

The ConflictResolutionEngine asks one or many configured providers for a merged
file body. Provider calls run in worker threads under a deadline, and a
provider failure never escapes ``resolve_request``: it becomes a Resolution
with confidence 0 flagged for manual review. The multi-provider fan-out waits
for every provider before selecting a winner.

Selection rule for ``resolve_with_multiple_providers``: the highest confidence
among results that do not require manual review wins, ties going to the
provider that comes first in enumeration order. When no result qualifies, the
first provider's result is returned.
"""

import asyncio
import logging
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from patchx.analysis.conflict_detector import ConflictDetector
from patchx.core.models import Conflict, ConflictType, Resolution
from patchx.exceptions import ValidationError
from patchx.llm.constants import DEFAULT_MAX_TOKENS
from patchx.llm.exceptions import LLMConfigurationError
from patchx.llm.prompts import build_conflict_prompt
from patchx.llm.providers.base import LLMProvider
from patchx.llm.response import ProviderFailure, ProviderOutcome, parse_provider_reply
from patchx.orchestration.deadline import with_deadline

logger = logging.getLogger(__name__)

PRESERVATION_THRESHOLD = 0.5

BRACKET_PAIRS: tuple[tuple[str, str, str], ...] = (
    ("{", "}", "braces"),
    ("(", ")", "parentheses"),
    ("[", "]", "square brackets"),
)


def bracket_issues(code: str) -> list[str]:
    """Return one issue per unbalanced bracket pair."""
    issues = []
    for opening, closing, name in BRACKET_PAIRS:
        opened, closed = code.count(opening), code.count(closing)
        if opened != closed:
            issues.append(f"Unbalanced {name}: {opened} open, {closed} close")
    return issues


def retention_ratio(source: str, resolved: str) -> float:
    """Fraction of non-blank ``source`` lines whose trimmed text appears in a resolved line.

    Returns 1.0 when ``source`` has no non-blank lines.
    """
    source_lines = [line.strip() for line in source.split("\n") if line.strip()]
    if not source_lines:
        return 1.0
    resolved_lines = [line for line in resolved.split("\n") if line.strip()]
    kept = sum(1 for line in source_lines if any(line in r for r in resolved_lines))
    return kept / len(source_lines)


@dataclass(frozen=True, slots=True)
class ResolutionRequest:
    """Everything a provider needs to propose a merged body.

    ``current_code`` is also the fallback body returned when a provider fails.
    """

    file_path: str
    original_code: str
    incoming_code: str
    current_code: str
    conflicts: tuple[Conflict, ...]


@dataclass(frozen=True, slots=True)
class ProviderResolution:
    provider: str
    resolution: Resolution

    def to_dict(self) -> dict[str, Any]:
        return {"provider": self.provider, "result": self.resolution.to_dict()}


@dataclass(frozen=True, slots=True)
class MultiProviderResolution:
    """All per-provider results plus the selected winner."""

    resolutions: list[ProviderResolution]
    best_resolution: Resolution
    recommended_provider: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "resolutions": [r.to_dict() for r in self.resolutions],
            "bestResolution": self.best_resolution.to_dict(),
            "recommendedProvider": self.recommended_provider,
        }


@dataclass(frozen=True, slots=True)
class ResolutionValidation:
    valid: bool
    issues: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"valid": self.valid, "issues": self.issues, "suggestions": self.suggestions}


@dataclass(frozen=True, slots=True)
class ProviderTestResult:
    """Health-check result. ``latency`` is in milliseconds."""

    provider: str
    success: bool
    latency: int
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "provider": self.provider,
            "success": self.success,
            "latency": self.latency,
        }
        if self.error is not None:
            data["error"] = self.error
        return data


def select_best(results: Sequence[ProviderResolution]) -> ProviderResolution:
    """Apply the selection rule to results listed in enumeration order."""
    if not results:
        raise ValueError("select_best requires at least one result")
    qualified = [r for r in results if not r.resolution.requires_manual_review]
    if not qualified:
        return results[0]
    best = qualified[0]
    for candidate in qualified[1:]:
        if candidate.resolution.confidence > best.resolution.confidence:
            best = candidate
    return best


def no_conflict_resolution(target: str) -> Resolution:
    return Resolution(
        resolved_code=target,
        explanation="No conflicts detected; the patch can be applied directly",
        confidence=1.0,
    )


class ConflictResolutionEngine:
    """Resolves conflicts with one or many AI-assist providers.

    Args:
        providers: Providers keyed by name, in enumeration order.
        detector: Conflict detector (a new one by default).
        provider_timeout: Deadline in seconds for each provider call.
        max_tokens: Completion budget per call.

    Example:
        >>> engine = ConflictResolutionEngine({"openai": provider})
        >>> result = await engine.resolve_with_multiple_providers(patch, target, "src/app.py")
        >>> result.recommended_provider
        'openai'
    """

    SAMPLE_CONFLICT = ResolutionRequest(
        file_path="test.js",
        original_code='console.log("original")',
        incoming_code='+console.log("test")',
        current_code='console.log("original")',
        conflicts=(
            Conflict(
                line_number=1,
                conflict_type=ConflictType.MODIFY_MODIFY,
                original='console.log("original")',
                incoming='console.log("test")',
                current='console.log("original")',
            ),
        ),
    )

    def __init__(
        self,
        providers: Mapping[str, LLMProvider],
        detector: ConflictDetector | None = None,
        provider_timeout: float = 60.0,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ) -> None:
        self.providers: dict[str, LLMProvider] = dict(providers)
        self.detector = detector or ConflictDetector()
        self.provider_timeout = provider_timeout
        self.max_tokens = max_tokens

    @property
    def enabled(self) -> bool:
        return bool(self.providers)

    def available_providers(self) -> list[str]:
        return list(self.providers)

    def _require_enabled(self) -> None:
        if not self.providers:
            raise LLMConfigurationError(
                "No AI provider configured. Set OPENAI_API_KEY, ANTHROPIC_API_KEY, "
                "or CUSTOM_AI_BASE_URL and CUSTOM_AI_API_KEY."
            )

    def _provider(self, name: str) -> LLMProvider:
        provider = self.providers.get(name)
        if provider is None:
            raise ValidationError(
                f"AI provider '{name}' is not configured",
                details={"provider": name, "available": self.available_providers()},
            )
        return provider

    def build_patch_request(self, patch: str, target: str, path: str) -> ResolutionRequest | None:
        """Build a request from patch-vs-target conflicts, or None when there are none."""
        conflicts = self.detector.detect_patch_conflicts(patch, target, path)
        if not conflicts:
            return None
        return ResolutionRequest(
            file_path=path,
            original_code=target,
            incoming_code=patch,
            current_code=target,
            conflicts=tuple(conflicts),
        )

    async def _call_provider(self, name: str, request: ResolutionRequest) -> ProviderOutcome:
        provider = self._provider(name)
        prompt = build_conflict_prompt(
            request.file_path,
            request.original_code,
            request.incoming_code,
            request.current_code,
            request.conflicts,
        )
        logger.debug(
            f"Calling {name} for {request.file_path}: "
            f"{len(request.conflicts)} conflicts, {len(prompt)} prompt chars"
        )
        raw = await with_deadline(
            asyncio.to_thread(provider.generate, prompt, self.max_tokens),
            self.provider_timeout,
            f"AI provider {name}",
        )
        return parse_provider_reply(name, raw)

    async def resolve_request(self, name: str, request: ResolutionRequest) -> Resolution:
        """Ask one provider to resolve ``request``. Provider failures never raise.

        Raises:
            ValidationError: If ``name`` is not a configured provider.
        """
        self._provider(name)
        try:
            outcome: ProviderOutcome = await self._call_provider(name, request)
        except Exception as e:
            logger.warning(f"AI provider {name} resolution failed: {e}")
            outcome = ProviderFailure(name, "error", str(e))
        return outcome.to_resolution(request.current_code)

    async def resolve_with_provider(
        self, name: str, patch: str, target: str, path: str
    ) -> Resolution:
        """Resolve patch-vs-target conflicts with one provider.

        Returns the target unchanged with confidence 1.0 when the patch has no
        conflicts with it; no provider is called in that case. Provider failures
        (errors, timeouts, unparseable replies) come back as a manual-review
        Resolution with confidence 0 and never raise.

        Raises:
            ValidationError: If ``name`` is not a configured provider. This is a
                caller error, checked before any provider is called.
        """
        self._provider(name)
        request = self.build_patch_request(patch, target, path)
        if request is None:
            return no_conflict_resolution(target)
        return await self.resolve_request(name, request)

    async def resolve_request_with_multiple_providers(
        self, request: ResolutionRequest
    ) -> MultiProviderResolution:
        """Fan ``request`` out to every provider and select the best result."""
        self._require_enabled()
        names = self.available_providers()
        resolutions = await asyncio.gather(*(self.resolve_request(n, request) for n in names))
        results = [ProviderResolution(n, r) for n, r in zip(names, resolutions, strict=True)]
        return self._summarize(results)

    async def resolve_with_multiple_providers(
        self, patch: str, target: str, path: str
    ) -> MultiProviderResolution:
        """Resolve patch-vs-target conflicts with every provider concurrently.

        Raises:
            LLMConfigurationError: If no provider is configured.
        """
        self._require_enabled()
        request = self.build_patch_request(patch, target, path)
        if request is None:
            clean = no_conflict_resolution(target)
            return self._summarize([ProviderResolution(n, clean) for n in self.providers])
        return await self.resolve_request_with_multiple_providers(request)

    @staticmethod
    def _summarize(results: list[ProviderResolution]) -> MultiProviderResolution:
        best = select_best(results)
        logger.info(
            f"Multi-provider resolution: recommended={best.provider}, "
            f"confidence={best.resolution.confidence:.2f}, "
            f"manual_review={best.resolution.requires_manual_review}"
        )
        return MultiProviderResolution(results, best.resolution, best.provider)

    async def resolve_conflict(
        self,
        original: str,
        incoming: str,
        current: str,
        file_path: str,
        provider: str | None = None,
        use_multiple: bool = False,
    ) -> Resolution:
        """Resolve a three-way conflict between explicit file bodies.

        Conflicting lines are flagged with ``ConflictDetector.conflicting_indices``.

        Raises:
            LLMConfigurationError: If no provider is configured.
            ValidationError: If ``provider`` is not configured.
        """
        self._require_enabled()
        if provider is not None:
            self._provider(provider)
        diff = self.detector.three_way(original, incoming, current)
        if not diff.conflicts:
            return no_conflict_resolution(current)
        request = ResolutionRequest(
            file_path=file_path,
            original_code=original,
            incoming_code=incoming,
            current_code=current,
            conflicts=tuple(diff.conflicts),
        )
        if use_multiple:
            result = await self.resolve_request_with_multiple_providers(request)
            return result.best_resolution
        return await self.resolve_request(provider or self.available_providers()[0], request)

    def validate_resolution(self, resolved: str, original: str) -> ResolutionValidation:
        """Heuristic post-check of a resolved body.

        Only an empty result is invalid. Unbalanced brackets are reported as
        issues, and low preservation of the original adds a suggestion.
        """
        if not resolved or not resolved.strip():
            return ResolutionValidation(False, ["Resolved code is empty"], [])

        issues = bracket_issues(resolved)
        suggestions: list[str] = []
        if issues:
            suggestions.append("Check bracket matching in the resolved code")
        if retention_ratio(original, resolved) < PRESERVATION_THRESHOLD:
            suggestions.append(
                "The resolved code differs substantially from the original; review it carefully"
            )
        return ResolutionValidation(True, issues, suggestions)

    async def test_providers(self) -> list[ProviderTestResult]:
        """Call each provider once, sequentially, with a built-in sample conflict."""
        results = []
        for name in self.available_providers():
            started = time.perf_counter()
            try:
                await self._call_provider(name, self.SAMPLE_CONFLICT)
            except Exception as e:
                latency = int((time.perf_counter() - started) * 1000)
                logger.warning(f"Provider test failed for {name}: {e}")
                results.append(ProviderTestResult(name, False, latency, str(e) or "Test failed"))
                continue
            latency = int((time.perf_counter() - started) * 1000)
            results.append(ProviderTestResult(name, True, latency))
        return results
