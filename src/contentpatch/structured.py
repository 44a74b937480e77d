"""Typed payloads exchanged between the extraction, patching and publish layers."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Literal


class PatchMethod(str, Enum):
    """How a single edit instruction was resolved."""

    ORACLE = "oracle"
    FALLBACK = "fallback"
    FAILED = "failed"
    NOOP = "noop"


@dataclass(slots=True)
class RawElement:
    """Candidate editable element produced by an extractor for one file."""

    type: str
    content: str
    line: int
    context: str = ""
    file_path: str = ""
    href: str | None = None
    confidence: float = 0.9
    context_before: tuple[str, ...] = ()
    context_after: tuple[str, ...] = ()


@dataclass(slots=True)
class SectionElement:
    """Named element inside a :class:`SectionGroup`."""

    name: str
    type: str
    file_path: str
    line: int
    current_value: str
    confidence: float = 0.9
    href: str | None = None
    context_before: tuple[str, ...] = ()
    context_after: tuple[str, ...] = ()


@dataclass(slots=True)
class SectionGroup:
    """Logical UI section made of elements in top-to-bottom order."""

    name: str
    source_file: str
    start_line: int
    end_line: int
    elements: list[SectionElement] = field(default_factory=list)
    description: str | None = None


@dataclass(slots=True)
class SourceLocation:
    """Best-effort position of a text fragment inside the repository."""

    file_path: str
    line: int
    column: int
    context: str = ""

    @property
    def has_position(self) -> bool:
        return self.line > 0


@dataclass(slots=True)
class EditInstruction:
    """Unit of work submitted to the patch engine."""

    element_name: str
    element_type: str
    old_value: str
    new_value: str
    old_href: str | None = None
    new_href: str | None = None
    source_line: int | None = None

    @property
    def text_changed(self) -> bool:
        return self.old_value != self.new_value

    @property
    def href_changed(self) -> bool:
        return bool(self.old_href) and bool(self.new_href) and self.old_href != self.new_href

    @property
    def line_hint(self) -> int | None:
        """Return the source line when it is a usable 1-based position."""
        if isinstance(self.source_line, int) and self.source_line > 0:
            return self.source_line
        return None


@dataclass(slots=True)
class ElementEdit:
    """Edit instruction bound to the file that holds the element."""

    file_path: str
    instruction: EditInstruction
    element_id: str | None = None


@dataclass(slots=True)
class PatchResult:
    """Outcome of applying one :class:`EditInstruction` to one file's content."""

    success: bool
    content: str
    method: PatchMethod
    description: str
    changed_line: int | None = None
    reason: str | None = None
    fallback_reason: str | None = None
    warnings: list[str] = field(default_factory=list)


@dataclass(slots=True)
class EditReport:
    """Per-edit audit record kept by the publish orchestrator."""

    file_path: str
    element_name: str
    method: PatchMethod
    description: str
    reason: str | None = None
    fallback_reason: str | None = None
    changed_line: int | None = None
    element_id: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.method in (PatchMethod.ORACLE, PatchMethod.FALLBACK, PatchMethod.NOOP)


@dataclass(slots=True)
class CodeChange:
    """File-scoped change ready to commit."""

    file_path: str
    old_content: str
    new_content: str
    description: str
    sha: str | None = None


@dataclass(slots=True)
class ValidationResult:
    """Pre-flight verdict for a literal replacement."""

    valid: bool
    occurrences: int
    error: str | None = None


@dataclass(slots=True)
class TemplatePlaceholder:
    """Named slot inside an extracted template."""

    name: str
    description: str
    type: Literal["text", "href", "src", "alt"]
    example: str = ""


@dataclass(slots=True)
class ContainerInfo:
    """Container metadata reported alongside an extracted template."""

    indentation: str = ""
    tag: str | None = None
    class_name: str | None = None


@dataclass(slots=True)
class Template:
    """Reusable snippet for one item of a repeating block."""

    template_code: str
    placeholders: list[TemplatePlaceholder] = field(default_factory=list)
    container_info: ContainerInfo = field(default_factory=ContainerInfo)


@dataclass(slots=True)
class TemplateSpan:
    """Repeating block of markup a template is extracted from."""

    file_path: str
    start_line: int
    end_line: int
    item_count: int


__all__ = [
    "CodeChange",
    "ContainerInfo",
    "EditInstruction",
    "EditReport",
    "ElementEdit",
    "PatchMethod",
    "PatchResult",
    "RawElement",
    "SectionElement",
    "SectionGroup",
    "SourceLocation",
    "Template",
    "TemplatePlaceholder",
    "TemplateSpan",
    "ValidationResult",
]
