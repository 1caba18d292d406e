"""Unified-diff validation and parsing.

The validator accepts the unified-diff dialect produced by ``git diff`` and
``diff -u``: a ``---``/``+++`` file header followed by one or more ``@@`` hunk
blocks. Both ``validate`` and ``parse`` are pure functions of their input; the
validator holds no state between calls.
"""

import logging
import re
from dataclasses import dataclass, field

from patchx.exceptions import PatchFormatError

logger = logging.getLogger(__name__)

HUNK_SPLIT_PATTERN = re.compile(r"^@@", re.MULTILINE)
HUNK_HEADER_PATTERN = re.compile(r"^-\d+(?:,\d+)?\s+\+\d+(?:,\d+)?\s+@@.*$")

# Lines that start the next file inside a hunk block
_BOUNDARY_PREFIXES = ("diff --git", "index ")
_HEADER_PREFIXES = ("--- ", "+++ ")

DEV_NULL = "/dev/null"


@dataclass(frozen=True, slots=True)
class PatchValidationResult:
    """Verdict of ``PatchValidator.validate``."""

    valid: bool
    error: str | None = None

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {"valid": self.valid}
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass(frozen=True, slots=True)
class PatchFileStats:
    """Per-file line counts from ``PatchValidator.parse``.

    Attributes:
        old_path: Raw text after ``--- `` up to the first tab.
        new_path: Raw text after ``+++ `` up to the first tab, if present.
        additions: Number of ``+`` lines in the file's hunks.
        deletions: Number of ``-`` lines in the file's hunks.
    """

    old_path: str
    new_path: str | None
    additions: int
    deletions: int

    @property
    def path(self) -> str:
        """Display path: new path unless it is /dev/null, with a/ and b/ stripped."""
        raw = self.new_path if self.new_path and self.new_path != DEV_NULL else self.old_path
        for prefix in ("a/", "b/"):
            if raw.startswith(prefix):
                return raw[len(prefix) :]
        return raw

    def to_dict(self) -> dict[str, object]:
        return {
            "path": self.path,
            "oldPath": self.old_path,
            "newPath": self.new_path,
            "additions": self.additions,
            "deletions": self.deletions,
        }


@dataclass(frozen=True, slots=True)
class ParsedPatch:
    """Summary of a parsed patch."""

    files: tuple[PatchFileStats, ...] = field(default_factory=tuple)

    @property
    def total_additions(self) -> int:
        return sum(f.additions for f in self.files)

    @property
    def total_deletions(self) -> int:
        return sum(f.deletions for f in self.files)

    def to_dict(self) -> dict[str, object]:
        return {
            "files": [f.to_dict() for f in self.files],
            "totalAdditions": self.total_additions,
            "totalDeletions": self.total_deletions,
        }


@dataclass(slots=True)
class _FileAccumulator:
    old_path: str
    new_path: str | None = None
    additions: int = 0
    deletions: int = 0

    def freeze(self) -> PatchFileStats:
        return PatchFileStats(self.old_path, self.new_path, self.additions, self.deletions)


class PatchValidator:
    """Validates and parses unified-diff text.

    Example:
        >>> validator = PatchValidator()
        >>> patch = "--- a/f\\n+++ b/f\\n@@ -1,1 +1,2 @@\\n-old\\n+new\\n+new2\\n"
        >>> validator.validate(patch).valid
        True
        >>> parsed = validator.parse(patch)
        >>> parsed.files[0].path, parsed.total_additions, parsed.total_deletions
        ('f', 2, 1)
    """

    def validate(self, content: str) -> PatchValidationResult:
        """Check that ``content`` is a well-formed unified diff.

        Args:
            content: Raw patch text.

        Returns:
            PatchValidationResult with ``valid`` set and, on failure, an error
            message naming the offending block or line.
        """
        if "---" not in content or "+++" not in content:
            return PatchValidationResult(
                False, "Invalid patch format: missing file header information"
            )

        blocks = HUNK_SPLIT_PATTERN.split(content)
        if len(blocks) < 2:
            return PatchValidationResult(False, "Invalid patch format: missing diff blocks")

        for index, block in enumerate(blocks[1:], start=1):
            error = self._validate_block(index, block)
            if error:
                logger.debug(f"Patch rejected: {error}")
                return PatchValidationResult(False, error)

        return PatchValidationResult(True)

    def check(self, content: str) -> None:
        """Validate ``content`` and raise on failure.

        Raises:
            PatchFormatError: If the patch is not a well-formed unified diff.
        """
        result = self.validate(content)
        if not result.valid:
            raise PatchFormatError(result.error or "Invalid patch format")

    @staticmethod
    def _validate_block(index: int, block: str) -> str | None:
        lines = block.split("\n")
        if not HUNK_HEADER_PATTERN.match(lines[0].strip()):
            return f"Diff block {index} format error"

        has_changes = False
        for number, line in enumerate(lines[1:], start=1):
            if not line:
                continue
            if line.startswith(_BOUNDARY_PREFIXES) or (
                number > 1 and line.startswith(_HEADER_PREFIXES)
            ):
                break
            marker = line[0]
            if marker in "+-":
                has_changes = True
            elif marker not in " \\":
                return f"Line {number} in diff block {index} format error"

        if not has_changes:
            return f"Diff block {index} has no actual changes"
        return None

    def parse(self, content: str) -> ParsedPatch:
        """Tally per-file additions and deletions.

        A ``--- `` line opens a new file segment, closing any open one; a blank
        line outside a hunk also closes it. Hunk bodies end at the first line
        that is not a ``+``, ``-``, context or ``\\`` marker line.

        Args:
            content: Raw patch text. It is not required to be valid.

        Returns:
            ParsedPatch listing files in patch order.
        """
        files: list[PatchFileStats] = []
        current: _FileAccumulator | None = None
        in_hunk = False

        for line in content.split("\n"):
            if line.startswith("--- "):
                if current is not None:
                    files.append(current.freeze())
                current = _FileAccumulator(old_path=line[4:].split("\t")[0])
                in_hunk = False
            elif line.startswith("+++ "):
                if current is not None:
                    current.new_path = line[4:].split("\t")[0]
            elif line.startswith("@@"):
                in_hunk = True
            elif in_hunk and line:
                marker = line[0]
                if marker == "+":
                    if current is not None:
                        current.additions += 1
                elif marker == "-":
                    if current is not None:
                        current.deletions += 1
                elif marker not in " \\":
                    in_hunk = False

            if current is not None and not in_hunk and line == "":
                files.append(current.freeze())
                current = None

        if current is not None:
            files.append(current.freeze())

        return ParsedPatch(files=tuple(files))
