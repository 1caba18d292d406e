"""Prompt templates for AI-assisted conflict resolution."""

from collections.abc import Sequence

from patchx.core.models import Conflict

SYSTEM_PROMPT = (
    "You are an expert at resolving source code merge conflicts. You analyze "
    "conflicting versions of a file and produce the best merged result."
)

CONFLICT_RESOLUTION_PROMPT = """Analyze the following code conflict and propose a resolution.

File path: {file_path}

Current code:
```
{current_code}
```

Original code (from the target branch):
```
{original_code}
```

Incoming code (from the patch):
```
{incoming_code}
```

Conflict locations:
{conflict_markers}

Provide:
1. The resolved code
2. An explanation of the resolution strategy
3. An assessment of the code's behavior after the merge
4. Whether a human should review the result

The resolution must:
- Keep the code functionally complete
- Follow established best practices
- Add comments where a conflict was resolved
- State clearly why, if the conflict cannot be resolved automatically

Return the result as JSON:
{{
  "resolvedCode": "the resolved code",
  "explanation": "resolution strategy",
  "confidence": 0.8,
  "suggestions": ["suggestion 1", "suggestion 2"],
  "requiresManualReview": false
}}"""


def format_conflict_markers(conflicts: Sequence[Conflict]) -> str:
    """Render conflicts as numbered ``Conflict N: lines a-b`` blocks."""
    return "\n".join(
        f"Conflict {index}: lines {c.line_number}-{c.line_number + 1}\n"
        f"Original: {c.original}\nIncoming: {c.incoming}"
        for index, c in enumerate(conflicts, start=1)
    )


def build_conflict_prompt(
    file_path: str,
    original_code: str,
    incoming_code: str,
    current_code: str,
    conflicts: Sequence[Conflict],
) -> str:
    return CONFLICT_RESOLUTION_PROMPT.format(
        file_path=file_path,
        current_code=current_code,
        original_code=original_code,
        incoming_code=incoming_code,
        conflict_markers=format_conflict_markers(conflicts) or "(none)",
    )
