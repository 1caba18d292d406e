"""Conflict detection and analysis functionality.

This module provides the ConflictDetector class, a positional (line-index)
three-way comparator over base, incoming and current file bodies. It does not
realign sequences after insertions or deletions: a single inserted line shifts
every later index, so conflicts past the first shift are approximate.
"""

import logging
from collections.abc import Collection, Mapping
from dataclasses import dataclass, field
from difflib import SequenceMatcher
from enum import Enum
from typing import Any

from patchx.core.models import Conflict, ConflictType

logger = logging.getLogger(__name__)

SIMILARITY_THRESHOLD = 0.8


class LineKind(str, Enum):
    """Classification of a non-conflicting line position."""

    ADD = "add"
    REMOVE = "remove"
    CONTEXT = "context"

    def __str__(self) -> str:
        return self.value


class ChoiceKind(str, Enum):
    """Which variant a per-line resolution keeps."""

    ORIGINAL = "original"
    INCOMING = "incoming"
    CUSTOM = "custom"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class LineComparison:
    """One line position of a three-way comparison (0-based index)."""

    index: int
    kind: LineKind | None
    base: str
    incoming: str
    current: str
    conflict: Conflict | None = None


@dataclass(frozen=True, slots=True)
class ThreeWayDiff:
    """Result of ``ConflictDetector.three_way``.

    ``base``, ``incoming`` and ``current`` hold the unpadded line sequences.
    ``lines`` has one entry per padded index; flagged indices carry a
    ``conflict`` instead of a ``kind``.
    """

    base: list[str]
    incoming: list[str]
    current: list[str]
    lines: list[LineComparison] = field(default_factory=list)
    conflicts: list[Conflict] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "base": self.base,
            "incoming": self.incoming,
            "current": self.current,
            "conflicts": [c.to_dict() for c in self.conflicts],
        }


@dataclass(frozen=True, slots=True)
class ResolutionChoice:
    """Per-line resolution: keep the original, take the incoming, or use custom text."""

    kind: ChoiceKind
    content: str = ""


@dataclass(frozen=True, slots=True)
class AutoResolution:
    """Choices produced by ``auto_resolve_simple_conflicts`` keyed by 1-based line number."""

    choices: dict[int, ResolutionChoice]
    explanation: str

    @property
    def resolved(self) -> bool:
        return bool(self.choices)


def _line_at(lines: list[str], index: int) -> str:
    return lines[index] if index < len(lines) else ""


def similarity(first: str, second: str) -> float:
    """Return a 0..1 similarity ratio between two strings (1.0 for two empty strings)."""
    if not first and not second:
        return 1.0
    return SequenceMatcher(None, first, second).ratio()


class ConflictDetector:
    """Detects and analyzes conflicts between three versions of a file."""

    @staticmethod
    def classify_conflict(base: str, incoming: str, current: str) -> ConflictType | None:
        """Return the conflict type for one line position, or None if it is not a conflict.

        Rules, first match wins:
            - all three equal: no conflict
            - base blank, incoming and current non-blank and different: add_add
            - base non-blank, incoming blank, current non-blank: delete_add
            - base equals current but not incoming: modify_modify
            - all three differ: context_conflict
        """
        if base == incoming == current:
            return None
        if not base.strip() and incoming.strip() and current.strip() and incoming != current:
            return ConflictType.ADD_ADD
        if base.strip() and not incoming.strip() and current.strip():
            return ConflictType.DELETE_ADD
        if base == current and base != incoming:
            return ConflictType.MODIFY_MODIFY
        if base != incoming and base != current and incoming != current:
            return ConflictType.CONTEXT_CONFLICT
        return None

    def conflicting_indices(self, base: str, incoming: str, current: str) -> set[int]:
        """Return the 0-based indices that ``classify_conflict`` flags."""
        base_lines, incoming_lines, current_lines = (
            base.split("\n"),
            incoming.split("\n"),
            current.split("\n"),
        )
        size = max(len(base_lines), len(incoming_lines), len(current_lines))
        return {
            i
            for i in range(size)
            if self.classify_conflict(
                _line_at(base_lines, i), _line_at(incoming_lines, i), _line_at(current_lines, i)
            )
            is not None
        }

    def three_way(
        self,
        base: str,
        incoming: str,
        current: str,
        flagged: Collection[int] | None = None,
    ) -> ThreeWayDiff:
        """Compare three bodies line by line.

        Args:
            base: Common ancestor text.
            incoming: Text carrying the incoming (patch) change.
            current: Text on the target branch.
            flagged: 0-based indices the caller considers conflicting. When None,
                ``conflicting_indices`` is used.

        Returns:
            ThreeWayDiff with one LineComparison per padded index.
        """
        base_lines = base.split("\n")
        incoming_lines = incoming.split("\n")
        current_lines = current.split("\n")
        if flagged is None:
            flagged = self.conflicting_indices(base, incoming, current)

        size = max(len(base_lines), len(incoming_lines), len(current_lines))
        lines: list[LineComparison] = []
        conflicts: list[Conflict] = []
        for i in range(size):
            b = _line_at(base_lines, i)
            inc = _line_at(incoming_lines, i)
            cur = _line_at(current_lines, i)
            if i in flagged:
                conflict = Conflict(
                    line_number=i + 1,
                    conflict_type=self.classify_conflict(b, inc, cur)
                    or ConflictType.CONTEXT_CONFLICT,
                    original=b,
                    incoming=inc,
                    current=cur,
                )
                conflicts.append(conflict)
                lines.append(LineComparison(i, None, b, inc, cur, conflict))
                continue
            if inc == cur and inc != b:
                kind = LineKind.ADD
            elif b == cur and b != inc:
                kind = LineKind.REMOVE
            else:
                kind = LineKind.CONTEXT
            lines.append(LineComparison(i, kind, b, inc, cur))

        logger.debug(f"Three-way comparison: {size} lines, {len(conflicts)} conflicts")
        return ThreeWayDiff(base_lines, incoming_lines, current_lines, lines, conflicts)

    def detect_patch_conflicts(self, patch: str, target: str, path: str = "") -> list[Conflict]:
        """Find patch lines that disagree with the target file.

        A removed line whose trimmed text is absent from the target is a
        delete_add conflict; an added line whose trimmed text already exists
        in the target is an add_add conflict. Header lines are skipped.

        Args:
            patch: Unified-diff text.
            target: Current content of the file the patch applies to.
            path: File path, used for logging only.

        Returns:
            Conflicts with 1-based line numbers into the patch text.
        """
        target_lines = {line.strip() for line in target.split("\n")}
        conflicts: list[Conflict] = []
        for number, line in enumerate(patch.split("\n"), start=1):
            if line.startswith(("---", "+++", "@@")):
                continue
            if line.startswith("-"):
                content = line[1:]
                if content.strip() not in target_lines:
                    conflicts.append(
                        Conflict(number, ConflictType.DELETE_ADD, content, "", "")
                    )
            elif line.startswith("+"):
                content = line[1:]
                if content.strip() in target_lines:
                    conflicts.append(
                        Conflict(number, ConflictType.ADD_ADD, content, content, content)
                    )
        if conflicts:
            logger.info(f"Detected {len(conflicts)} patch conflicts in {path or '<target>'}")
        return conflicts

    def auto_resolve_simple_conflicts(self, diff: ThreeWayDiff) -> AutoResolution:
        """Pick choices for conflicts that have an obvious answer.

        - add_add over a blank base joins incoming and current.
        - delete_add takes the incoming side (the deletion).
        - modify_modify with similar variants keeps the longer one.
        """
        choices: dict[int, ResolutionChoice] = {}
        for conflict in diff.conflicts:
            if conflict.conflict_type is ConflictType.ADD_ADD:
                if not conflict.original.strip() and conflict.incoming != conflict.current:
                    choices[conflict.line_number] = ResolutionChoice(
                        ChoiceKind.CUSTOM, f"{conflict.incoming} {conflict.current}"
                    )
            elif conflict.conflict_type is ConflictType.DELETE_ADD:
                if not conflict.incoming.strip() and conflict.current.strip():
                    choices[conflict.line_number] = ResolutionChoice(
                        ChoiceKind.INCOMING, conflict.incoming
                    )
            elif conflict.conflict_type is ConflictType.MODIFY_MODIFY:
                if similarity(conflict.incoming, conflict.current) > SIMILARITY_THRESHOLD:
                    longer = (
                        conflict.current
                        if len(conflict.current) > len(conflict.incoming)
                        else conflict.incoming
                    )
                    choices[conflict.line_number] = ResolutionChoice(ChoiceKind.CUSTOM, longer)

        return AutoResolution(
            choices=choices, explanation=f"Automatically resolved {len(choices)} simple conflicts"
        )

    @staticmethod
    def apply_resolutions(diff: ThreeWayDiff, choices: Mapping[int, ResolutionChoice]) -> str:
        """Apply per-line choices onto the current lines and return the merged text.

        Conflicts without a choice keep the current line.
        """
        resolved = list(diff.current)
        for conflict in diff.conflicts:
            choice = choices.get(conflict.line_number)
            if choice is None:
                continue
            index = conflict.line_number - 1
            if choice.kind is ChoiceKind.ORIGINAL:
                value = conflict.original
            elif choice.kind is ChoiceKind.INCOMING:
                value = conflict.incoming
            else:
                value = choice.content
            if index < len(resolved):
                resolved[index] = value
            else:
                resolved.extend([""] * (index - len(resolved)))
                resolved.append(value)
        return "\n".join(resolved)
