"""Extended review of a resolved file and the plain-text resolution report."""

from collections import Counter
from collections.abc import Mapping
from dataclasses import dataclass, field

from patchx.analysis.conflict_detector import ChoiceKind, ResolutionChoice, ThreeWayDiff
from patchx.resolution.engine import bracket_issues, retention_ratio

ORIGINAL_RETENTION_THRESHOLD = 0.3
INCOMING_INTEGRATION_THRESHOLD = 0.5
LINE_COUNT_CHANGE_THRESHOLD = 0.5


@dataclass(frozen=True, slots=True)
class ResolutionReview:
    """Outcome of ``review_resolution``: issues block, warnings and suggestions advise."""

    issues: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.issues


def _non_blank_count(text: str) -> int:
    return sum(1 for line in text.split("\n") if line.strip())


def review_resolution(resolved: str, original: str, incoming: str) -> ResolutionReview:
    """Review a resolved body against the original and incoming versions.

    Args:
        resolved: Merged body.
        original: Base version.
        incoming: Incoming version.

    Returns:
        ResolutionReview. An empty result is the only early exit.
    """
    if not resolved.strip():
        return ResolutionReview(issues=["Resolved code is empty"])

    issues = bracket_issues(resolved)
    warnings: list[str] = []
    suggestions: list[str] = []

    kept = retention_ratio(original, resolved)
    if kept < ORIGINAL_RETENTION_THRESHOLD:
        warnings.append(f"Low retention of original code ({kept * 100:.1f}%)")
        suggestions.append("Check that no important original code was removed by accident")

    integrated = retention_ratio(incoming, resolved)
    if integrated < INCOMING_INTEGRATION_THRESHOLD:
        warnings.append(f"Low integration of incoming code ({integrated * 100:.1f}%)")
        suggestions.append("Check that the incoming changes were integrated")

    original_lines = _non_blank_count(original)
    line_delta = abs(_non_blank_count(resolved) - original_lines)
    if line_delta > original_lines * LINE_COUNT_CHANGE_THRESHOLD:
        warnings.append("Line count changed significantly; check for unintended changes")

    return ResolutionReview(issues, warnings, suggestions)


def build_resolution_report(
    diff: ThreeWayDiff,
    choices: Mapping[int, ResolutionChoice],
    review: ResolutionReview,
) -> str:
    """Render a plain-text summary of a conflict resolution session."""
    total = len(diff.conflicts)
    stats = Counter(choice.kind for choice in choices.values())
    lines = [
        "=== Patch conflict resolution report ===",
        "",
        f"Total conflicts: {total}",
        f"Resolved conflicts: {len(choices)}",
        f"Unresolved conflicts: {total - len(choices)}",
        "",
        "Resolution choices:",
        f"- Original version: {stats[ChoiceKind.ORIGINAL]}",
        f"- Incoming version: {stats[ChoiceKind.INCOMING]}",
        f"- Custom: {stats[ChoiceKind.CUSTOM]}",
        "",
        "Validation:",
    ]
    if review.is_valid:
        lines.append("OK: syntax checks passed")
    else:
        lines.append("FAILED: syntax issues found:")
        lines.extend(f"  - {issue}" for issue in review.issues)
    if review.warnings:
        lines.append("Warnings:")
        lines.extend(f"  - {warning}" for warning in review.warnings)
    if review.suggestions:
        lines.append("Suggestions:")
        lines.extend(f"  - {suggestion}" for suggestion in review.suggestions)
    return "\n".join(lines)
