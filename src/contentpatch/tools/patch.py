"""Two-tier content patch engine.

Tier 1 asks the oracle for a verbatim search/replace pair and only accepts it
after a verification gate. Tier 2 is a deterministic string replacement that
trusts the element's line hint when there is one. A failed attempt always
returns the input content unchanged.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Literal, Optional

from ..models.oracle import Malformed, TextOracle
from ..prompts import PATCH_SYSTEM_PROMPT, render_patch_prompt
from ..structured import EditInstruction, PatchMethod, PatchResult
from .diffing import count_occurrences, line_of_offset, truncate
from .telemetry import NullObserver, StageObserver

__all__ = [
    "PatchEngine",
    "PatchSuggestion",
    "describe_edit",
    "replace_on_line",
]

LOGGER = logging.getLogger(__name__)

CONTEXT_RADIUS = 5
MAX_LINE_DRIFT = 1


@dataclass(slots=True)
class PatchSuggestion:
    """Structured search/replace proposal returned by the oracle."""

    search_string: str
    replace_string: str
    line_number: int
    confidence: Literal["high", "medium", "low"]


@dataclass(slots=True)
class _Attempt:
    ok: bool
    content: str
    changed_line: Optional[int] = None
    reason: Optional[str] = None


def describe_edit(instruction: EditInstruction) -> str:
    """Summarise an edit as ``Update <name>: "<old>" → "<new>"``."""
    description = f"Update {instruction.element_name}"
    if instruction.text_changed:
        description += f': "{truncate(instruction.old_value)}" → "{truncate(instruction.new_value)}"'
    if instruction.href_changed:
        separator = ", " if instruction.text_changed else ": "
        description += (
            f'{separator}href: "{truncate(instruction.old_href or "")}" → "{truncate(instruction.new_href or "")}"'
        )
    return description


def replace_on_line(content: str, line_number: int, old_value: str, new_value: str) -> _Attempt:
    """Replace the first ``old_value`` on one 1-based line only."""
    lines = content.split("\n")
    if line_number < 1 or line_number > len(lines):
        return _Attempt(False, content, reason=f"Line {line_number} out of range (file has {len(lines)} lines)")
    line = lines[line_number - 1]
    if not old_value or old_value not in line:
        return _Attempt(False, content, reason=f'"{truncate(old_value, 30)}" not found on line {line_number}')
    lines[line_number - 1] = line.replace(old_value, new_value, 1)
    return _Attempt(True, "\n".join(lines), changed_line=line_number)


class PatchEngine:
    """Apply one :class:`EditInstruction` to one file's content."""

    def __init__(self, oracle: Optional[TextOracle] = None, *, observer: Optional[StageObserver] = None) -> None:
        self._oracle = oracle
        self._observer = observer or NullObserver()

    def apply_edit(self, file_content: str, file_path: str, instruction: EditInstruction) -> PatchResult:
        description = describe_edit(instruction)
        if not instruction.text_changed and not instruction.href_changed:
            return PatchResult(
                success=True,
                content=file_content,
                method=PatchMethod.NOOP,
                description=description,
                changed_line=instruction.line_hint,
            )

        started = time.perf_counter()
        attempt = self._try_oracle(file_content, file_path, instruction)
        self._observer.on_stage_complete(
            "patch.oracle",
            (time.perf_counter() - started) * 1000.0,
            "verified" if attempt.ok else "rejected",
            file=file_path,
            element=instruction.element_name,
            reason=attempt.reason,
        )
        if attempt.ok:
            LOGGER.info("Oracle edit applied to %s (line %s)", file_path, attempt.changed_line)
            return PatchResult(
                success=True,
                content=attempt.content,
                method=PatchMethod.ORACLE,
                description=description,
                changed_line=attempt.changed_line,
            )

        fallback_reason = attempt.reason
        LOGGER.info("Oracle edit rejected for %s, using string replacement: %s", file_path, fallback_reason)
        started = time.perf_counter()
        warnings: list[str] = []
        fallback = self._fallback(file_content, instruction, warnings)
        self._observer.on_stage_complete(
            "patch.fallback",
            (time.perf_counter() - started) * 1000.0,
            "applied" if fallback.ok else "failed",
            file=file_path,
            element=instruction.element_name,
            reason=fallback.reason,
        )
        if not fallback.ok:
            LOGGER.warning("Edit failed for %s: %s", file_path, fallback.reason)
            return PatchResult(
                success=False,
                content=file_content,
                method=PatchMethod.FAILED,
                description=description,
                reason=fallback.reason,
                fallback_reason=fallback_reason,
                warnings=warnings,
            )
        return PatchResult(
            success=True,
            content=fallback.content,
            method=PatchMethod.FALLBACK,
            description=description,
            changed_line=fallback.changed_line,
            fallback_reason=fallback_reason,
            warnings=warnings,
        )

    # ------------------------------------------------------------------ tier 1
    def _try_oracle(self, file_content: str, file_path: str, instruction: EditInstruction) -> _Attempt:
        if self._oracle is None:
            return _Attempt(False, file_content, reason="no oracle configured")

        response = self._oracle.generate_structured(
            PatchSuggestion,
            self._build_prompt(file_content, file_path, instruction),
            system_prompt=PATCH_SYSTEM_PROMPT,
            metadata={"file": file_path, "element": instruction.element_name},
        )
        if isinstance(response, Malformed):
            return _Attempt(False, file_content, reason=f"oracle unavailable: {response.error or 'no response'}")
        return self._verify(file_content, instruction, response.value)

    @staticmethod
    def _build_prompt(file_content: str, file_path: str, instruction: EditInstruction) -> str:
        lines = file_content.split("\n")
        target = instruction.line_hint or 1
        start = max(1, target - CONTEXT_RADIUS)
        end = min(len(lines), target + CONTEXT_RADIUS)

        changes: list[str] = []
        if instruction.text_changed:
            changes.append(f'Change text: "{instruction.old_value}" → "{instruction.new_value}"')
        if instruction.href_changed:
            changes.append(f'Change href: "{instruction.old_href}" → "{instruction.new_href}"')
        if instruction.text_changed and instruction.href_changed:
            changes.append("Both changes belong to the same element: use ONE search/replace spanning the enclosing tag.")
        elif instruction.href_changed:
            changes.append("Only the link target changes; keep the text exactly as it is.")
        else:
            changes.append("Only the text changes; keep every attribute exactly as it is.")

        return render_patch_prompt(
            file_path=file_path,
            element_name=instruction.element_name,
            element_type=instruction.element_type,
            change_description="\n".join(changes),
            context_start=start,
            context_lines=lines[start - 1 : end],
            target_line=target,
        )

    @staticmethod
    def _verify(file_content: str, instruction: EditInstruction, suggestion: PatchSuggestion) -> _Attempt:
        search = suggestion.search_string
        if not search:
            return _Attempt(False, file_content, reason="oracle returned an empty search string")
        occurrences = count_occurrences(file_content, search)
        if occurrences == 0:
            return _Attempt(False, file_content, reason="search string not found in file")
        if occurrences > 1 and suggestion.confidence == "low":
            return _Attempt(
                False,
                file_content,
                reason=f"search string is ambiguous ({occurrences} matches) and confidence is low",
            )

        offset = file_content.index(search)
        candidate = file_content.replace(search, suggestion.replace_string, 1)
        if instruction.text_changed and instruction.new_value not in candidate:
            return _Attempt(False, file_content, reason="modified content does not contain the new text")
        if instruction.href_changed and (instruction.new_href or "") not in candidate:
            return _Attempt(False, file_content, reason="modified content does not contain the new href")
        drift = abs(candidate.count("\n") - file_content.count("\n"))
        if drift > MAX_LINE_DRIFT:
            return _Attempt(False, file_content, reason=f"line count changed by {drift} lines")
        return _Attempt(True, candidate, changed_line=line_of_offset(file_content, offset))

    # ------------------------------------------------------------------ tier 2
    @staticmethod
    def _fallback(file_content: str, instruction: EditInstruction, warnings: list[str]) -> _Attempt:
        content = file_content
        changed_line: Optional[int] = None

        if instruction.text_changed:
            line_hint = instruction.line_hint
            if line_hint is not None:
                attempt = replace_on_line(content, line_hint, instruction.old_value, instruction.new_value)
                if not attempt.ok:
                    return _Attempt(False, file_content, reason=attempt.reason)
                content, changed_line = attempt.content, attempt.changed_line
            else:
                offset = content.find(instruction.old_value) if instruction.old_value else -1
                if offset < 0:
                    return _Attempt(
                        False, file_content, reason=f'"{truncate(instruction.old_value, 30)}" not found in file'
                    )
                content = content.replace(instruction.old_value, instruction.new_value, 1)
                changed_line = line_of_offset(file_content, offset)

        if instruction.href_changed:
            old_href = instruction.old_href or ""
            offset = content.find(old_href)
            if offset >= 0:
                content = content.replace(old_href, instruction.new_href or "", 1)
                if changed_line is None:
                    changed_line = line_of_offset(content, offset)
            else:
                message = f'href "{truncate(old_href, 30)}" not found in file'
                LOGGER.warning("%s; keeping text-only result", message)
                warnings.append(message)
                if not instruction.text_changed:
                    return _Attempt(False, file_content, reason=message)

        return _Attempt(True, content, changed_line=changed_line)
