"""Typed records persisted in the element catalog."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


class RecordModel(BaseModel):
    """Base Pydantic model with strict field handling."""

    model_config = ConfigDict(extra="forbid", frozen=False)


class ElementType(str, Enum):
    """Coarse category of an editable element."""

    HEADING = "heading"
    PARAGRAPH = "paragraph"
    BUTTON = "button"
    LINK = "link"
    IMAGE_ALT = "image-alt"
    TEXT = "text"
    ATTRIBUTE = "attribute"
    CUSTOM = "custom"

    @classmethod
    def classify(cls, raw_type: str) -> "ElementType":
        """Map an extractor type such as ``heading-h2`` onto a category."""
        if raw_type.startswith("heading"):
            return cls.HEADING
        try:
            return cls(raw_type)
        except ValueError:
            return cls.CUSTOM


class Placeholder(RecordModel):
    """Named slot of a group template."""

    name: str
    description: str = ""
    type: Literal["text", "href", "src", "alt"] = "text"
    example: str = ""


class ElementGroup(RecordModel):
    """Section or repeating block made of editable elements."""

    id: str
    name: str
    description: Optional[str] = None
    source_file: str
    start_line: int = Field(ge=0)
    end_line: int = Field(ge=0)
    item_count: int = 0
    template: Optional[str] = None
    indentation: str = ""
    placeholders: List[Placeholder] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class EditableElement(RecordModel):
    """Located, named point of user-facing content.

    ``current_value`` and ``href`` only change when a pull request carrying an
    edit to this element is detected as merged.
    """

    id: str
    name: str
    type: str
    kind: ElementType = ElementType.CUSTOM
    source_file: str
    source_line: int = Field(ge=0)
    source_column: Optional[int] = None
    current_value: str
    href: Optional[str] = None
    confidence: float = Field(default=0.9, ge=0.0, le=1.0)
    context_before: List[str] = Field(default_factory=list)
    context_after: List[str] = Field(default_factory=list)
    group_id: Optional[str] = None
    group_index: Optional[int] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


__all__ = [
    "EditableElement",
    "ElementGroup",
    "ElementType",
    "Placeholder",
    "RecordModel",
    "utc_now",
]
