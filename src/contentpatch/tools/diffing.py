"""Pure diff and pre-flight validation helpers for manual review flows."""

from __future__ import annotations

import re
from typing import Sequence

from ..structured import ValidationResult

__all__ = [
    "content_diff",
    "count_occurrences",
    "line_of_offset",
    "surrounding_lines",
    "truncate",
    "validate_replacement",
]

_QUOTE_CHARS = ("'", '"', "`")


def content_diff(old: str, new: str) -> str:
    """Return a line-aligned diff of ``old`` against ``new``.

    Each index up to the longer side yields ``"  line"`` when both sides agree,
    otherwise ``"- old"`` and/or ``"+ new"``. Empty lines are emitted like any
    other line; an index past the end of one side only contributes the other.
    """
    old_lines = old.split("\n")
    new_lines = new.split("\n")
    diff: list[str] = []
    for index in range(max(len(old_lines), len(new_lines))):
        in_old = index < len(old_lines)
        in_new = index < len(new_lines)
        if in_old and in_new and old_lines[index] == new_lines[index]:
            diff.append(f"  {old_lines[index]}")
            continue
        if in_old:
            diff.append(f"- {old_lines[index]}")
        if in_new:
            diff.append(f"+ {new_lines[index]}")
    return "\n".join(diff)


def count_occurrences(content: str, value: str) -> int:
    """Count non-overlapping literal occurrences of ``value``."""
    if not value:
        return 0
    return len(re.findall(re.escape(value), content))


def validate_replacement(file_content: str, old_value: str, new_value: str) -> ValidationResult:
    """Check that replacing ``old_value`` is unambiguous and keeps quotes balanced."""
    occurrences = count_occurrences(file_content, old_value)
    if occurrences == 0:
        return ValidationResult(valid=False, occurrences=0, error="Content not found in file")
    if occurrences > 1:
        return ValidationResult(
            valid=False,
            occurrences=occurrences,
            error=f"Ambiguous replacement: content found {occurrences} times",
        )

    replaced = file_content.replace(old_value, new_value, 1)
    if any(replaced.count(quote) % 2 for quote in _QUOTE_CHARS):
        return ValidationResult(
            valid=False,
            occurrences=1,
            error="Replacement would create unbalanced quotes",
        )
    return ValidationResult(valid=True, occurrences=1)


def line_of_offset(content: str, offset: int) -> int:
    """Return the 1-based line containing character ``offset``."""
    return content.count("\n", 0, max(offset, 0)) + 1


def surrounding_lines(
    lines: Sequence[str], line: int, radius: int = 3
) -> tuple[tuple[str, ...], tuple[str, ...]]:
    """Return up to ``radius`` lines before and after 1-based ``line``."""
    if line < 1 or line > len(lines):
        return (), ()
    index = line - 1
    before = tuple(lines[max(0, index - radius) : index])
    after = tuple(lines[index + 1 : index + 1 + radius])
    return before, after


def truncate(value: str, limit: int = 50) -> str:
    """Shorten ``value`` to ``limit`` characters with an ellipsis marker."""
    if len(value) <= limit:
        return value
    return f"{value[:limit]}..."
