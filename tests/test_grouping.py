from __future__ import annotations

import json

from contentpatch.structured import RawElement
from contentpatch.tools.grouping import (
    SectionGrouper,
    fallback_grouping,
    generate_element_name,
    sort_reading_order,
)
from contentpatch.tools.telemetry import RecordingObserver


def _element(element_type: str, content: str, line: int, file_path: str = "src/Home.tsx") -> RawElement:
    return RawElement(type=element_type, content=content, line=line, file_path=file_path)


ELEMENTS = [
    _element("heading-h1", "Welcome to Acme", 3),
    _element("paragraph", "We build rockets for everyone.", 4),
    _element("button", "Get started", 5),
    _element("heading-h2", "Pricing", 10),
    _element("paragraph", "Simple plans for every team.", 11),
]


def test_generate_element_name_prefixes_by_type() -> None:
    assert generate_element_name("heading-h1", "Hello") == "Main Heading: Hello"
    assert generate_element_name("heading-h2", "Plans") == "Section Heading: Plans"
    assert generate_element_name("heading-h4", "Details") == "Subheading: Details"
    assert generate_element_name("image-alt", "Logo") == "Image Alt: Logo"
    assert generate_element_name("custom-widget", "Thing") == "Content: Thing"


def test_generate_element_name_truncates_long_content() -> None:
    name = generate_element_name("paragraph", "x" * 60)

    assert name == "Text: " + "x" * 37 + "..."


def test_sort_reading_order_orders_by_file_then_line() -> None:
    shuffled = [
        _element("text", "Zeta", 2, "b.tsx"),
        _element("text", "Beta", 9, "a.tsx"),
        _element("text", "Alpha", 1, "a.tsx"),
    ]

    assert [element.content for element in sort_reading_order(shuffled)] == ["Alpha", "Beta", "Zeta"]


def test_fallback_grouping_starts_sections_at_headings() -> None:
    sections = fallback_grouping(ELEMENTS)

    assert [section.name for section in sections] == ["Section 1", "Section 2"]
    assert [(section.start_line, section.end_line) for section in sections] == [(3, 5), (10, 11)]
    assert sections[0].elements[0].name == "Main Heading: Welcome to Acme"
    assert sum(len(section.elements) for section in sections) == len(ELEMENTS)


def test_fallback_grouping_keeps_leading_non_heading_elements() -> None:
    elements = [_element("text", "Announcement bar", 1), *ELEMENTS]

    sections = fallback_grouping(elements)

    assert [len(section.elements) for section in sections] == [1, 3, 2]


def test_grouper_without_oracle_uses_fallback() -> None:
    observer = RecordingObserver()

    sections = SectionGrouper(observer=observer).group(ELEMENTS)

    assert len(sections) == 2
    assert observer.outcomes("group") == ["fallback"]


def test_grouper_uses_oracle_titles(make_oracle) -> None:
    response = [
        {
            "name": "Pricing",
            "description": "Plans table",
            "elements": [{"idx": 3, "title": "Pricing Title"}, {"idx": 4, "title": "Pricing Intro"}],
        },
        {
            "name": "Hero",
            "elements": [
                {"idx": 0, "title": "Hero Title"},
                {"idx": 1, "title": "Hero Subtitle"},
                {"idx": 2, "title": "Primary CTA"},
            ],
        },
    ]
    oracle = make_oracle(json.dumps(response))
    observer = RecordingObserver()

    sections = SectionGrouper(oracle, observer=observer).group(list(reversed(ELEMENTS)))

    assert [section.name for section in sections] == ["Hero", "Pricing"]
    hero = sections[0]
    assert [element.name for element in hero.elements] == ["Hero Title", "Hero Subtitle", "Primary CTA"]
    assert hero.elements[2].current_value == "Get started"
    assert (hero.start_line, hero.end_line) == (3, 5)
    assert sections[1].description == "Plans table"
    assert observer.outcomes("group") == ["ok"]


def test_grouper_prompt_carries_basename_and_truncated_content(make_oracle) -> None:
    long_text = "word " * 40
    oracle = make_oracle("[]")

    SectionGrouper(oracle).group([_element("paragraph", long_text, 1, "src/pages/index.tsx")])

    prompt = oracle.client.payloads[0]["input"][-1]["content"][0]["text"]
    assert '"file": "index.tsx"' in prompt or '"file":"index.tsx"' in prompt
    assert long_text not in prompt


def test_grouper_drops_untitled_entries_and_names_untitled_sections(make_oracle) -> None:
    response = [
        {"elements": [{"idx": 0, "title": "Hero Title"}, {"idx": 1}]},
        {"name": "Legacy", "elementIndices": [3, 4]},
        {"name": "Bogus", "elements": [{"idx": 99, "title": "Nowhere"}]},
    ]
    oracle = make_oracle(json.dumps(response))

    sections = SectionGrouper(oracle).group(ELEMENTS)

    assert len(sections) == 1
    assert sections[0].name == "Untitled Section"
    assert [element.name for element in sections[0].elements] == ["Hero Title"]


def test_grouper_falls_back_on_unparseable_output(make_oracle) -> None:
    oracle = make_oracle("I would group these into a hero and a pricing section.")

    sections = SectionGrouper(oracle).group(ELEMENTS)

    assert [section.name for section in sections] == ["Section 1", "Section 2"]


def test_grouper_returns_nothing_for_no_elements(make_oracle) -> None:
    oracle = make_oracle()

    assert SectionGrouper(oracle).group([]) == []
    assert oracle.client.payloads == []
