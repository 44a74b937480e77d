from __future__ import annotations

import json
import textwrap

import pytest

from contentpatch.tools.extractor import (
    RULE_CONFIDENCE,
    OracleExtractor,
    RuleBasedExtractor,
    build_extractor,
    clean_text,
    is_meaningful_text,
)

HERO = textwrap.dedent(
    """
    export function Hero() {
      return (
        <section>
          <h1 className="title">
            Build <em>faster</em> sites
          </h1>
          <p>Ship content without waiting on engineers.</p>
          <a href="/pricing" className="cta">See pricing</a>
          <Button>Start free</Button>
          <img src="/hero.png" alt="Product screenshot" />
          <span>...</span>
          <div>123</div>
        </section>
      );
    }
    """
).lstrip()


def _by_type(elements):
    result = {}
    for element in elements:
        result.setdefault(element.type, []).append(element)
    return result


def test_rule_based_extracts_structural_elements() -> None:
    elements = RuleBasedExtractor().extract(HERO, "src/Hero.tsx")
    by_type = _by_type(elements)

    heading = by_type["heading-h1"][0]
    assert heading.content == "Build faster sites"
    assert heading.line == 4
    assert heading.confidence == 0.9
    assert heading.file_path == "src/Hero.tsx"

    assert [element.content for element in by_type["paragraph"]] == ["Ship content without waiting on engineers."]
    link = by_type["link"][0]
    assert link.content == "See pricing"
    assert link.href == "/pricing"
    assert by_type["button"][0].content == "Start free"
    assert by_type["image-alt"][0].content == "Product screenshot"


def test_rule_based_records_context_snapshot() -> None:
    elements = RuleBasedExtractor().extract(HERO, "src/Hero.tsx")
    paragraph = next(element for element in elements if element.type == "paragraph")

    assert paragraph.line == 7
    assert len(paragraph.context_before) == 3
    assert paragraph.context_before[-1].strip() == "</h1>"
    assert paragraph.context_after[0].strip().startswith("<a href")


def test_rule_based_skips_unsupported_extensions() -> None:
    assert RuleBasedExtractor().extract("<h1>Readme title</h1>", "README.md") == []


def test_rule_based_dedupes_repeated_labels() -> None:
    content = "<button>Learn more</button>\n<button>Learn more</button>\n<button>Contact</button>"

    elements = RuleBasedExtractor().extract(content, "index.html")

    assert [(element.type, element.content, element.line) for element in elements] == [
        ("button", "Learn more", 1),
        ("button", "Contact", 3),
    ]


def test_rule_based_single_line_patterns() -> None:
    content = "\n".join(
        [
            '<input placeholder="Your email" />',
            "<Trans>{'Welcome back'}</Trans>",
            "    Everything you need to launch",
        ]
    )

    elements = RuleBasedExtractor().extract(content, "src/Form.jsx")
    found = {(element.type, element.content) for element in elements}

    assert ("attribute", "Your email") in found
    assert ("text", "Welcome back") in found
    assert ("text", "Everything you need to launch") in found


@pytest.mark.parametrize("candidate", ["...", "123", " ", "x" * 501, "a"])
def test_meaningless_candidates_are_rejected(candidate: str) -> None:
    assert is_meaningful_text(clean_text(candidate)) is False


@pytest.mark.parametrize("candidate", ["...", "123", "x" * 501])
def test_rule_based_never_emits_meaningless_candidates(candidate: str) -> None:
    content = f"<h2>{candidate}</h2>\n<p>{candidate}</p>\n<span title=\"{candidate}\">x</span>"

    elements = RuleBasedExtractor().extract(content, "index.html")

    assert all(element.content != candidate for element in elements)


def test_oracle_extractor_parses_first_array(make_oracle) -> None:
    payload = [
        {"type": "link", "content": "Home", "line": 1, "context": '<a href="/">Home</a>', "href": "/"},
        {"type": "link", "content": "Home", "line": 2, "context": '<a href="/">Home</a>', "href": "/"},
        {"type": "text", "content": "...", "line": 1},
        {"type": "text", "content": "123", "line": 1},
        {"type": "text", "content": " ", "line": 1},
        {"type": "text", "content": "x" * 501, "line": 1},
        {"type": "text", "content": "Out of range", "line": 99},
        {"type": "paragraph", "content": "Reported", "line": 3, "confidence": 0.4},
    ]
    oracle = make_oracle(f"Here you go:\n```json\n{json.dumps(payload)}\n```")
    content = '<a href="/">Home</a>\n<a href="/">Home</a>\n<p>Reported</p>'

    elements = OracleExtractor(oracle).extract(content, "index.html")

    assert [(element.type, element.content, element.line) for element in elements] == [
        ("link", "Home", 1),
        ("link", "Home", 2),
        ("paragraph", "Reported", 3),
    ]
    assert elements[0].href == "/"
    assert elements[2].confidence == 0.4


def test_oracle_extractor_yields_nothing_on_garbage(make_oracle) -> None:
    oracle = make_oracle("No elements here, just prose.")

    assert OracleExtractor(oracle).extract("<h1>Title here</h1>", "index.html") == []


def test_oracle_extractor_yields_nothing_when_oracle_fails(make_oracle) -> None:
    oracle = make_oracle()

    assert OracleExtractor(oracle).extract("<h1>Title here</h1>", "index.html") == []


def test_build_extractor_validates_strategy(make_oracle) -> None:
    assert isinstance(build_extractor("rules"), RuleBasedExtractor)
    assert isinstance(build_extractor("oracle", make_oracle()), OracleExtractor)
    with pytest.raises(ValueError):
        build_extractor("oracle")
    with pytest.raises(ValueError):
        build_extractor("magic")


@pytest.mark.parametrize("line", ["NaN", "Infinity", "-Infinity"])
def test_oracle_extractor_drops_non_finite_lines(make_oracle, line: str) -> None:
    oracle = make_oracle(f'[{{"type": "text", "content": "Hello there", "line": {line}}}]')

    assert OracleExtractor(oracle).extract("<p>Hello there</p>", "src/A.tsx") == []


def test_oracle_extractor_replaces_non_finite_confidence(make_oracle) -> None:
    oracle = make_oracle('[{"type": "text", "content": "Hello there", "line": 1, "confidence": NaN}]')

    (element,) = OracleExtractor(oracle).extract("<p>Hello there</p>", "src/A.tsx")

    assert element.line == 1
    assert element.confidence == RULE_CONFIDENCE
