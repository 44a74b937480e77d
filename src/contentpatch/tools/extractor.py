"""Element extractors that turn one source file into candidate editable elements.

Two strategies share one output contract: :class:`RuleBasedExtractor` uses
regular expressions only, :class:`OracleExtractor` asks the oracle. Neither
raises for a single file; a failure yields an empty list.
"""

from __future__ import annotations

import logging
import math
import re
from typing import Any, Iterable, List, Optional, Protocol

from ..models.oracle import Malformed, TextOracle, parse_json_array
from ..prompts import EXTRACTION_SYSTEM_PROMPT, render_extraction_prompt
from ..structured import RawElement
from .diffing import line_of_offset, surrounding_lines

__all__ = [
    "ElementExtractor",
    "MARKUP_EXTENSIONS",
    "OracleExtractor",
    "RuleBasedExtractor",
    "build_extractor",
    "clean_text",
    "dedupe_elements",
    "is_meaningful_text",
]

LOGGER = logging.getLogger(__name__)

MARKUP_EXTENSIONS = frozenset({"jsx", "tsx", "js", "ts", "html", "astro", "vue", "svelte"})
RULE_CONFIDENCE = 0.9
MIN_TEXT_LENGTH = 2
MAX_TEXT_LENGTH = 500
CONTEXT_CHARS = 100

_TAG_RE = re.compile(r"<[^>]+>")
_WHITESPACE_RE = re.compile(r"\s+")
# No letters at all: only whitespace, digits, punctuation or symbols.
_NO_LETTERS_RE = re.compile(r"^[\W\d_]+$")
_HREF_RE = re.compile(r"""href=(?:\{\s*)?["']([^"']+)["']""")

# Order is precedence: earlier patterns win when deduplicating.
_MULTILINE_PATTERNS: tuple[tuple[re.Pattern[str], Optional[str], int], ...] = (
    (re.compile(r"<(h[1-6])(?:\s[^>]*)?>(.*?)</\1>", re.DOTALL), None, 2),
    (re.compile(r"<p(?:\s[^>]*)?>(.*?)</p>", re.DOTALL), "paragraph", 1),
    (re.compile(r"<[Bb]utton(?:\s[^>]*)?>(.*?)</[Bb]utton>", re.DOTALL), "button", 1),
    (re.compile(r"<(?:a|Link)(?:\s[^>]*)?>(.*?)</(?:a|Link)>", re.DOTALL), "link", 1),
    (re.compile(r"<span(?:\s[^>]*)?>(.*?)</span>", re.DOTALL), "text", 1),
    (re.compile(r"<div(?:\s[^>]*)?>\s*([^<]{3,50})\s*</div>"), "text", 1),
)
_ATTRIBUTE_RE = re.compile(r"""(title|alt|placeholder|aria-label)=["']([^"']+)["']""")
_JSX_STRING_RE = re.compile(r"""\{["']([^"']{3,})["']\}""")
_BARE_TEXT_RE = re.compile(r"^\s*([A-Z][^<>{}\n]{10,100})\s*$")


def clean_text(value: str) -> str:
    """Strip nested tags and collapse whitespace."""
    return _WHITESPACE_RE.sub(" ", _TAG_RE.sub("", value)).strip()


def is_meaningful_text(value: str) -> bool:
    """Length 2-500 and not made only of punctuation, digits or whitespace."""
    return MIN_TEXT_LENGTH <= len(value) <= MAX_TEXT_LENGTH and not _NO_LETTERS_RE.match(value)


def dedupe_elements(elements: Iterable[RawElement]) -> List[RawElement]:
    """Collapse elements sharing the same ``(type, content)`` pair; first wins."""
    seen: set[tuple[str, str]] = set()
    unique: list[RawElement] = []
    for element in elements:
        key = (element.type, element.content)
        if key in seen:
            continue
        seen.add(key)
        unique.append(element)
    return unique


def _extension(file_path: str) -> str:
    name = file_path.rsplit("/", 1)[-1]
    if "." not in name:
        return ""
    return name.rsplit(".", 1)[-1].lower()


def _with_snapshot(element: RawElement, lines: list[str]) -> RawElement:
    element.context_before, element.context_after = surrounding_lines(lines, element.line)
    return element


class ElementExtractor(Protocol):
    def extract(self, file_content: str, file_path: str) -> List[RawElement]:
        ...


class RuleBasedExtractor:
    """Deterministic extraction with structural and single-line patterns."""

    def extract(self, file_content: str, file_path: str) -> List[RawElement]:
        if _extension(file_path) not in MARKUP_EXTENSIONS:
            return []
        lines = file_content.split("\n")
        candidates = [*self._multiline(file_content, file_path), *self._single_line(lines, file_path)]
        return [
            _with_snapshot(element, lines)
            for element in dedupe_elements(candidates)
            if is_meaningful_text(element.content)
        ]

    @staticmethod
    def _multiline(content: str, file_path: str) -> Iterable[RawElement]:
        for pattern, fixed_type, group in _MULTILINE_PATTERNS:
            for match in pattern.finditer(content):
                inner = match.group(group)
                if not inner:
                    continue
                cleaned = clean_text(inner)
                if not is_meaningful_text(cleaned):
                    continue
                element_type = fixed_type or f"heading-{match.group(1)}"
                href = None
                if element_type == "link":
                    opening = match.group(0)[: match.group(0).find(">") + 1]
                    href_match = _HREF_RE.search(opening)
                    href = href_match.group(1) if href_match else None
                yield RawElement(
                    type=element_type,
                    content=cleaned,
                    line=line_of_offset(content, match.start()),
                    context=match.group(0)[:CONTEXT_CHARS].strip(),
                    file_path=file_path,
                    href=href,
                    confidence=RULE_CONFIDENCE,
                )

    @staticmethod
    def _single_line(lines: list[str], file_path: str) -> Iterable[RawElement]:
        for index, line in enumerate(lines):
            line_number = index + 1
            context = line.strip()
            for match in _ATTRIBUTE_RE.finditer(line):
                if len(match.group(2)) < MIN_TEXT_LENGTH:
                    continue
                yield RawElement(
                    type="image-alt" if match.group(1) == "alt" else "attribute",
                    content=match.group(2),
                    line=line_number,
                    context=context,
                    file_path=file_path,
                    confidence=RULE_CONFIDENCE,
                )
            for match in _JSX_STRING_RE.finditer(line):
                yield RawElement(
                    type="text",
                    content=match.group(1),
                    line=line_number,
                    context=context,
                    file_path=file_path,
                    confidence=RULE_CONFIDENCE,
                )
            bare = _BARE_TEXT_RE.match(line)
            if bare:
                yield RawElement(
                    type="text",
                    content=bare.group(1).strip(),
                    line=line_number,
                    context=context,
                    file_path=file_path,
                    confidence=RULE_CONFIDENCE,
                )


class OracleExtractor:
    """Ask the oracle to list elements from a line-numbered copy of the file."""

    def __init__(self, oracle: TextOracle) -> None:
        self._oracle = oracle

    def extract(self, file_content: str, file_path: str) -> List[RawElement]:
        response = self._oracle.generate_text(
            render_extraction_prompt(file_path, file_content),
            system_prompt=EXTRACTION_SYSTEM_PROMPT,
        )
        if isinstance(response, Malformed):
            LOGGER.warning("Oracle extraction failed for %s: %s", file_path, response.error)
            return []
        parsed = parse_json_array(response.value)
        if isinstance(parsed, Malformed):
            LOGGER.warning("Oracle extraction for %s was unparseable: %s", file_path, parsed.error)
            return []

        lines = file_content.split("\n")
        elements: list[RawElement] = []
        for item in parsed.value:
            element = self._to_element(item, file_path, len(lines))
            if element is not None and is_meaningful_text(element.content):
                elements.append(_with_snapshot(element, lines))
        return elements

    @staticmethod
    def _to_element(item: Any, file_path: str, line_count: int) -> Optional[RawElement]:
        if not isinstance(item, dict):
            return None
        content = item.get("content")
        element_type = item.get("type")
        line = item.get("line")
        if not isinstance(content, str) or not isinstance(element_type, str):
            return None
        if not _is_finite_number(line):
            return None
        line = int(line)
        if line < 1 or line > line_count:
            return None
        confidence = item.get("confidence")
        if not _is_finite_number(confidence) or not 0 <= confidence <= 1:
            confidence = RULE_CONFIDENCE
        href = item.get("href")
        context = item.get("context")
        return RawElement(
            type=element_type.strip() or "text",
            content=clean_text(content),
            line=line,
            context=context[:CONTEXT_CHARS].strip() if isinstance(context, str) else "",
            file_path=file_path,
            href=href if isinstance(href, str) and href else None,
            confidence=float(confidence),
        )


def _is_finite_number(value: Any) -> bool:
    # json.loads accepts NaN and Infinity
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def build_extractor(strategy: str, oracle: Optional[TextOracle] = None) -> ElementExtractor:
    """Return the extractor for ``strategy`` (``rules`` or ``oracle``)."""
    if strategy == "oracle":
        if oracle is None:
            raise ValueError("The oracle extraction strategy requires an oracle.")
        return OracleExtractor(oracle)
    if strategy == "rules":
        return RuleBasedExtractor()
    raise ValueError(f"Unknown extraction strategy: {strategy!r}")
