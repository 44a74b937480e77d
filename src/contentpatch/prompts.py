"""Prompt templates shared by the oracle-assisted components."""

from __future__ import annotations

import json
from typing import Any, Sequence

JSON_RESPONSE_INSTRUCTION = (
    "Return only JSON. Do not include markdown fences, explanations, or trailing text. "
    "Use double-quoted keys and strings."
)

PATCH_SYSTEM_PROMPT = f"""You are a precise code editor. Your ONLY job is to locate one piece of user-facing content in a source file and describe a surgical search/replace for it.

RULES:
1. search_string MUST be copied verbatim from the file, including whitespace, quotes and indentation.
2. Include enough surrounding characters in search_string to make it unique in the file.
3. replace_string is search_string with ONLY the requested change applied. Do not reformat, fix, or improve anything else.
4. When both text and link target change, cover the whole enclosing tag with a single search/replace pair.
5. line_number is the 1-based line where search_string starts.
6. confidence is "high" when the match is unique and certain, "medium" when likely, "low" when guessing.

{JSON_RESPONSE_INSTRUCTION}"""

EXTRACTION_SYSTEM_PROMPT = f"""You find user-facing, editable content in web source files (JSX/TSX/HTML/Vue/Svelte/Astro).
Report headings, paragraphs, buttons, links, short labels, image alt text and user-visible attributes.
Never report class names, imports, code identifiers or URLs on their own.
Repeated items (for example several navigation links or cards) MUST be reported as separate elements, one per occurrence; never merge them.

{JSON_RESPONSE_INSTRUCTION}"""

GROUPING_SYSTEM_PROMPT = f"""You are an expert at understanding website structure and content organization.
You analyze HTML/JSX elements and group them into meaningful UI sections.
Be concise with section names (2-4 words). A heading typically starts a new section.

{JSON_RESPONSE_INSTRUCTION}"""

TEMPLATE_SYSTEM_PROMPT = f"""You extract simple templates from repeating code patterns.

Use ONLY these placeholders:
- {{{{TEXT}}}}: the main text content (ALWAYS include this)
- {{{{HREF}}}}: link URL (ONLY if the element has an href attribute)

Never use any other placeholder name. Never create more than 2 placeholders.

Example (link): <a href="/about" class="nav-link">About Us</a>
Template: <a href="{{{{HREF}}}}" class="nav-link">{{{{TEXT}}}}</a>

Example (text): <span class="feature">Fast Performance</span>
Template: <span class="feature">{{{{TEXT}}}}</span>

Preserve all formatting, classes and structure exactly; only the variable content becomes a placeholder.
Report the container tag/class when identifiable and the whitespace indentation used for each item.

{JSON_RESPONSE_INSTRUCTION}"""


def number_lines(lines: Sequence[str], start: int = 1) -> str:
    """Prefix ``lines`` with 1-based line numbers."""
    return "\n".join(f"{start + offset}| {line}" for offset, line in enumerate(lines))


def render_patch_prompt(
    *,
    file_path: str,
    element_name: str,
    element_type: str,
    change_description: str,
    context_start: int,
    context_lines: Sequence[str],
    target_line: int,
) -> str:
    context_end = context_start + len(context_lines) - 1
    return (
        "Describe the search/replace that applies this edit.\n\n"
        f"FILE: {file_path}\n"
        f"ELEMENT: {element_name} ({element_type})\n"
        f"TARGET LINE: ~{target_line}\n\n"
        f"EDIT:\n{change_description}\n\n"
        f"CONTEXT (lines {context_start}-{context_end}):\n"
        f"{number_lines(context_lines, context_start)}"
    )


def render_extraction_prompt(file_path: str, content: str) -> str:
    example = [
        {"type": "heading-h1", "content": "Build faster", "line": 12, "context": "<h1>Build faster</h1>"},
        {"type": "link", "content": "Pricing", "line": 20, "context": '<a href="/pricing">Pricing</a>', "href": "/pricing"},
    ]
    return (
        f"FILE: {file_path}\n\n"
        f"{number_lines(content.split(chr(10)))}\n\n"
        "List every editable content element as a JSON array. Each item has: type (heading-h1..heading-h6, "
        "paragraph, button, link, text, image-alt, attribute), content (the visible text, tags stripped), "
        "line (1-based line number from the prefixes above), context (the source snippet, max 100 chars), "
        "optional href for links and optional confidence between 0 and 1.\n"
        f"Example:\n{json.dumps(example, indent=2)}"
    )


def render_grouping_prompt(elements: Sequence[dict[str, Any]]) -> str:
    example = [
        {
            "name": "Hero Section",
            "description": "Main hero area with headline and CTA",
            "elements": [
                {"idx": 0, "title": "Main Headline"},
                {"idx": 1, "title": "Subheading"},
                {"idx": 2, "title": "Primary CTA"},
            ],
        },
        {
            "name": "Navigation Menu",
            "description": "Top navigation with links",
            "elements": [{"idx": 3, "title": "First Link"}, {"idx": 4, "title": "Second Link"}],
        },
    ]
    return (
        "Here are the content elements of a website, sorted top to bottom:\n\n"
        f"{json.dumps(list(elements), indent=2)}\n\n"
        "Group them into logical UI sections (header, navigation, hero, features, testimonials, footer, ...).\n"
        "Rules:\n"
        "1. Group elements that belong together semantically.\n"
        "2. Keep sections reasonably sized (typically 1-10 elements).\n"
        "3. Keep the top-to-bottom order.\n"
        "4. Each element belongs to exactly ONE section.\n"
        "5. Give every element a title describing its ROLE or POSITION, never its content. "
        "\"Primary CTA\" is good; \"Learn More Button\" is bad because it breaks once the text changes.\n\n"
        "Return a JSON array in exactly this format, where idx references the input idx values:\n"
        f"{json.dumps(example, indent=2)}"
    )


def render_template_prompt(
    *,
    file_path: str,
    start_line: int,
    end_line: int,
    item_count: int,
    code_block: str,
    group_code: str,
) -> str:
    return (
        f"Extract a template from this code that contains {item_count} similar items.\n\n"
        f"FILE: {file_path}\n"
        f"LINES: {start_line} to {end_line}\n\n"
        f"CODE BLOCK (with context):\n{code_block}\n\n"
        f"GROUP CODE (the actual items):\n{group_code}\n\n"
        "Identify the repeating pattern and return one template for a single item."
    )


__all__ = [
    "EXTRACTION_SYSTEM_PROMPT",
    "GROUPING_SYSTEM_PROMPT",
    "JSON_RESPONSE_INSTRUCTION",
    "PATCH_SYSTEM_PROMPT",
    "TEMPLATE_SYSTEM_PROMPT",
    "number_lines",
    "render_extraction_prompt",
    "render_grouping_prompt",
    "render_patch_prompt",
    "render_template_prompt",
]
