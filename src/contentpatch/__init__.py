"""Content-to-source patch engine: turn copy edits into verified source changes."""

from .analysis import AnalysisResult, RepositoryAnalyzer
from .publisher import PublishError, Publisher
from .structured import (
    CodeChange,
    EditInstruction,
    EditReport,
    ElementEdit,
    PatchMethod,
    PatchResult,
    RawElement,
    SectionGroup,
    SourceLocation,
    Template,
    ValidationResult,
)
from .tools.diffing import content_diff, validate_replacement
from .tools.patch import PatchEngine
from .tools.templates import fill_template

__all__ = [
    "AnalysisResult",
    "CodeChange",
    "EditInstruction",
    "EditReport",
    "ElementEdit",
    "PatchEngine",
    "PatchMethod",
    "PatchResult",
    "PublishError",
    "Publisher",
    "RawElement",
    "RepositoryAnalyzer",
    "SectionGroup",
    "SourceLocation",
    "Template",
    "ValidationResult",
    "content_diff",
    "fill_template",
    "validate_replacement",
]
