"""Template extraction for repeating blocks and the add/remove item helpers built on it."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Mapping, Optional, Protocol

from ..models.oracle import Malformed, TextOracle
from ..prompts import TEMPLATE_SYSTEM_PROMPT, render_template_prompt
from ..structured import CodeChange, Template, TemplateSpan
from .telemetry import NullObserver, StageObserver, timed_stage

__all__ = [
    "ALLOWED_PLACEHOLDERS",
    "ItemCode",
    "TemplateExtractor",
    "build_add_item_change",
    "build_remove_item_change",
    "calculate_insert_position",
    "fill_template",
    "generate_add_item_code",
    "generate_delete_item_range",
    "insert_item",
    "remove_item",
    "template_placeholders",
]

LOGGER = logging.getLogger(__name__)

ALLOWED_PLACEHOLDERS = frozenset({"TEXT", "HREF"})
SPAN_CONTEXT_LINES = 3

_PLACEHOLDER_RE = re.compile(r"\{\{(\w+)\}\}")


class _FileSource(Protocol):
    def get_file(self, path: str, ref: Optional[str] = None): ...


@dataclass(slots=True)
class ItemCode:
    code: str
    insert_line: int


def template_placeholders(template_code: str) -> set[str]:
    """Return the placeholder names used in ``template_code``."""
    return set(_PLACEHOLDER_RE.findall(template_code))


def fill_template(template_code: str, values: Mapping[str, str]) -> str:
    """Substitute ``{{KEY}}`` with ``values[KEY]``; unknown keys are left verbatim."""
    return _PLACEHOLDER_RE.sub(lambda match: values.get(match.group(1), match.group(0)), template_code)


def calculate_insert_position(group_end_line: int, item_index: int, total_items: int) -> int:
    """Return the line after which a new item goes.

    Only end-of-group insertion is supported; ``item_index`` and
    ``total_items`` are accepted so mid-list placement can be added here.
    """
    return group_end_line


def generate_add_item_code(template: Template, values: Mapping[str, str], insert_after_line: int) -> ItemCode:
    code = template.container_info.indentation + fill_template(template.template_code, values)
    return ItemCode(code=code, insert_line=insert_after_line)


def generate_delete_item_range(source_line: int, template_line_count: int) -> tuple[int, int]:
    """Return the inclusive 1-based line range occupied by one item."""
    return source_line, source_line + max(template_line_count, 1) - 1


def insert_item(content: str, item: ItemCode) -> str:
    """Insert ``item.code`` after line ``item.insert_line`` (0 inserts at the top)."""
    lines = content.split("\n")
    if item.insert_line < 0 or item.insert_line > len(lines):
        raise ValueError(f"Insert line {item.insert_line} is outside the file (1-{len(lines)})")
    lines[item.insert_line : item.insert_line] = item.code.split("\n")
    return "\n".join(lines)


def remove_item(content: str, start_line: int, end_line: int) -> str:
    """Delete the inclusive 1-based line range ``start_line..end_line``."""
    lines = content.split("\n")
    if start_line < 1 or end_line < start_line or end_line > len(lines):
        raise ValueError(f"Line range {start_line}-{end_line} is outside the file (1-{len(lines)})")
    del lines[start_line - 1 : end_line]
    return "\n".join(lines)


def build_add_item_change(
    file_path: str,
    content: str,
    template: Template,
    values: Mapping[str, str],
    *,
    group_end_line: int,
    item_count: int,
    sha: Optional[str] = None,
) -> CodeChange:
    """Return the change that appends one filled-in item after the group."""
    position = calculate_insert_position(group_end_line, item_count, item_count)
    item = generate_add_item_code(template, values, position)
    label = values.get("TEXT", "item")
    return CodeChange(
        file_path=file_path,
        old_content=content,
        new_content=insert_item(content, item),
        description=f'Add item "{label}" after line {position}',
        sha=sha,
    )


def build_remove_item_change(
    file_path: str,
    content: str,
    template: Template,
    *,
    source_line: int,
    sha: Optional[str] = None,
) -> CodeChange:
    """Return the change that deletes the item starting at ``source_line``."""
    start, end = generate_delete_item_range(source_line, len(template.template_code.split("\n")))
    return CodeChange(
        file_path=file_path,
        old_content=content,
        new_content=remove_item(content, start, end),
        description=f"Remove item at lines {start}-{end}",
        sha=sha,
    )


class TemplateExtractor:
    """Derive a ``{{TEXT}}``/``{{HREF}}`` template for one item of a repeating block."""

    def __init__(
        self,
        oracle: Optional[TextOracle] = None,
        github: Optional[_FileSource] = None,
        *,
        observer: Optional[StageObserver] = None,
    ) -> None:
        self._oracle = oracle
        self._github = github
        self._observer = observer or NullObserver()

    def extract_template(
        self,
        span: TemplateSpan,
        *,
        content: Optional[str] = None,
        ref: Optional[str] = None,
    ) -> Optional[Template]:
        """Return a template for ``span`` or ``None`` when none is available.

        ``content`` skips the remote read. Code-host errors while reading the
        file propagate; oracle failures and rejected templates yield ``None``.
        """
        if self._oracle is None:
            return None
        if content is None:
            if self._github is None:
                raise ValueError("extract_template needs file content or a code-host client")
            content = self._github.get_file(span.file_path, ref).text

        lines = content.split("\n")
        context_start = max(0, span.start_line - SPAN_CONTEXT_LINES)
        context_end = min(len(lines), span.end_line + SPAN_CONTEXT_LINES)
        prompt = render_template_prompt(
            file_path=span.file_path,
            start_line=span.start_line,
            end_line=span.end_line,
            item_count=span.item_count,
            code_block="\n".join(lines[context_start:context_end]),
            group_code="\n".join(lines[span.start_line - 1 : span.end_line]),
        )
        LOGGER.info(
            "Extracting template for %d items from %s:%d-%d",
            span.item_count,
            span.file_path,
            span.start_line,
            span.end_line,
        )

        with timed_stage(self._observer, "template", file=span.file_path, items=span.item_count) as state:
            response = self._oracle.generate_structured(
                Template,
                prompt,
                system_prompt=TEMPLATE_SYSTEM_PROMPT,
                metadata={"file": span.file_path},
            )
            if isinstance(response, Malformed):
                LOGGER.warning("Template extraction failed for %s: %s", span.file_path, response.error)
                state["outcome"] = "unavailable"
                return None
            template = self._accept(response.value)
            if template is None:
                state["outcome"] = "rejected"
                return None
            state["placeholders"] = [placeholder.name for placeholder in template.placeholders]
        return template

    @staticmethod
    def _accept(template: Template) -> Optional[Template]:
        names = template_placeholders(template.template_code)
        if "TEXT" not in names or not names <= ALLOWED_PLACEHOLDERS:
            LOGGER.warning("Discarding template with placeholders %s", sorted(names))
            return None
        template.placeholders = [
            placeholder for placeholder in template.placeholders if placeholder.name in ALLOWED_PLACEHOLDERS
        ]
        return template
