"""Section grouping: partition extracted elements into named UI sections."""

from __future__ import annotations

import logging
import posixpath
from typing import Any, Iterable, List, Optional, Sequence

from ..models.oracle import Malformed, TextOracle, parse_json_array
from ..prompts import GROUPING_SYSTEM_PROMPT, render_grouping_prompt
from ..structured import RawElement, SectionElement, SectionGroup
from .telemetry import NullObserver, StageObserver, timed_stage

__all__ = ["SectionGrouper", "fallback_grouping", "generate_element_name", "sort_reading_order"]

LOGGER = logging.getLogger(__name__)

PROMPT_CONTENT_CHARS = 80
NAME_CONTENT_CHARS = 40

_NAME_PREFIXES = {
    "heading-h1": "Main Heading",
    "heading-h2": "Section Heading",
    "heading-h3": "Subheading",
    "heading-h4": "Subheading",
    "heading-h5": "Subheading",
    "heading-h6": "Subheading",
    "paragraph": "Text",
    "button": "Button",
    "link": "Link",
    "image-alt": "Image Alt",
    "attribute": "Attribute",
}


def generate_element_name(element_type: str, content: str) -> str:
    """Synthesise a display name from type and truncated content."""
    if len(content) > NAME_CONTENT_CHARS:
        content = content[: NAME_CONTENT_CHARS - 3] + "..."
    return f"{_NAME_PREFIXES.get(element_type, 'Content')}: {content}"


def sort_reading_order(elements: Iterable[RawElement]) -> List[RawElement]:
    return sorted(elements, key=lambda element: (element.file_path, element.line))


def _section_element(element: RawElement, name: str) -> SectionElement:
    return SectionElement(
        name=name,
        type=element.type,
        file_path=element.file_path,
        line=element.line,
        current_value=element.content,
        confidence=element.confidence,
        href=element.href,
        context_before=element.context_before,
        context_after=element.context_after,
    )


def _build_section(
    name: str, members: Sequence[tuple[RawElement, str]], description: Optional[str] = None
) -> SectionGroup:
    lines = [element.line for element, _ in members]
    return SectionGroup(
        name=name,
        source_file=members[0][0].file_path,
        start_line=min(lines),
        end_line=max(lines),
        elements=[_section_element(element, title) for element, title in members],
        description=description,
    )


def fallback_grouping(elements: Sequence[RawElement]) -> List[SectionGroup]:
    """Start a new section at every heading; never drops an element."""
    sections: list[SectionGroup] = []
    current: list[RawElement] = []

    def flush() -> None:
        members = [(element, generate_element_name(element.type, element.content)) for element in current]
        sections.append(_build_section(f"Section {len(sections) + 1}", members))

    for element in elements:
        if element.type.startswith("heading") and current:
            flush()
            current = []
        current.append(element)
    if current:
        flush()
    return sections


class SectionGrouper:
    """Ask the oracle for role-titled sections, with a heading-based fallback."""

    def __init__(self, oracle: Optional[TextOracle] = None, *, observer: Optional[StageObserver] = None) -> None:
        self._oracle = oracle
        self._observer = observer or NullObserver()

    def group(self, elements: Sequence[RawElement]) -> List[SectionGroup]:
        if not elements:
            return []
        ordered = sort_reading_order(elements)
        with timed_stage(self._observer, "group", elements=len(ordered)) as state:
            sections = self._group_with_oracle(ordered)
            if sections is None:
                state["outcome"] = "fallback"
                sections = fallback_grouping(ordered)
            state["sections"] = len(sections)
        return sections

    def _group_with_oracle(self, ordered: Sequence[RawElement]) -> Optional[List[SectionGroup]]:
        if self._oracle is None:
            return None
        payload = [
            {
                "idx": idx,
                "file": posixpath.basename(element.file_path),
                "line": element.line,
                "type": element.type,
                "content": element.content[:PROMPT_CONTENT_CHARS],
            }
            for idx, element in enumerate(ordered)
        ]
        LOGGER.info("Sending %d elements to the oracle for grouping", len(payload))
        response = self._oracle.generate_text(render_grouping_prompt(payload), system_prompt=GROUPING_SYSTEM_PROMPT)
        if isinstance(response, Malformed):
            LOGGER.warning("Oracle grouping failed, using heading fallback: %s", response.error)
            return None
        parsed = parse_json_array(response.value)
        if isinstance(parsed, Malformed):
            LOGGER.warning("Oracle grouping was unparseable, using heading fallback: %s", parsed.error)
            return None

        sections: list[SectionGroup] = []
        for raw_section in parsed.value:
            if not isinstance(raw_section, dict):
                continue
            members = [
                (ordered[idx], title)
                for idx, title in self._titled_indices(raw_section)
                if 0 <= idx < len(ordered)
            ]
            if not members:
                continue
            name = raw_section.get("name")
            description = raw_section.get("description")
            sections.append(
                _build_section(
                    name if isinstance(name, str) and name.strip() else "Untitled Section",
                    members,
                    description if isinstance(description, str) else None,
                )
            )
        sections.sort(key=lambda section: (section.source_file, section.start_line))
        return sections

    @staticmethod
    def _titled_indices(raw_section: dict[str, Any]) -> Iterable[tuple[int, str]]:
        """Yield ``(idx, title)`` pairs; entries without a title are dropped."""
        entries = raw_section.get("elements")
        if entries is None:
            # Older shape: bare indices carry no title, so nothing survives.
            entries = raw_section.get("elementIndices") or []
        if not isinstance(entries, list):
            return
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            idx = entry.get("idx")
            title = entry.get("title")
            if isinstance(idx, bool) or not isinstance(idx, int):
                continue
            if not isinstance(title, str) or not title.strip():
                continue
            yield idx, title.strip()
