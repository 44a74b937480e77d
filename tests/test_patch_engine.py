from __future__ import annotations

import json

from contentpatch.models.llm_client import LLMTransportError
from contentpatch.structured import EditInstruction, PatchMethod
from contentpatch.tools.patch import PatchEngine, describe_edit, replace_on_line
from contentpatch.tools.telemetry import RecordingObserver


def _suggestion(search: str, replace: str, line: int = 1, confidence: str = "high") -> str:
    return json.dumps(
        {"search_string": search, "replace_string": replace, "line_number": line, "confidence": confidence}
    )


def _instruction(old: str, new: str, **kwargs) -> EditInstruction:
    return EditInstruction(element_name="Hero Heading", element_type="heading-h1", old_value=old, new_value=new, **kwargs)


def test_noop_edit_returns_identical_content() -> None:
    content = "<h1>Welcome</h1>\n<p>Body</p>"
    engine = PatchEngine()

    result = engine.apply_edit(content, "src/App.tsx", _instruction("Welcome", "Welcome", source_line=1))

    assert result.success is True
    assert result.content == content
    assert result.method is PatchMethod.NOOP


def test_fallback_only_touches_hinted_line() -> None:
    lines = [f"<p>line {number}</p>" for number in range(1, 11)]
    lines[4] = "<span>Buy</span><span>Buy</span>"
    lines[8] = "<button>Buy</button>"
    content = "\n".join(lines)
    engine = PatchEngine()

    result = engine.apply_edit(content, "src/App.tsx", _instruction("Buy", "Order", source_line=9))

    new_lines = result.content.split("\n")
    assert result.success is True
    assert result.method is PatchMethod.FALLBACK
    assert new_lines[4] == "<span>Buy</span><span>Buy</span>"
    assert new_lines[8] == "<button>Order</button>"
    assert result.changed_line == 9


def test_fallback_with_line_hint_does_not_search_other_lines() -> None:
    content = "<h1>Welcome</h1>\n<p>Other</p>"
    engine = PatchEngine()

    result = engine.apply_edit(content, "src/App.tsx", _instruction("Welcome", "Hello", source_line=2))

    assert result.success is False
    assert result.method is PatchMethod.FAILED
    assert result.content == content
    assert "line 2" in (result.reason or "")


def test_fallback_without_hint_replaces_first_occurrence() -> None:
    content = "<p>Hi</p>\n<p>Hi</p>"
    engine = PatchEngine()

    result = engine.apply_edit(content, "index.html", _instruction("Hi", "Hey"))

    assert result.success is True
    assert result.content == "<p>Hey</p>\n<p>Hi</p>"
    assert result.changed_line == 1


def test_fallback_without_hint_fails_when_value_missing() -> None:
    content = "<p>Hi</p>"
    result = PatchEngine().apply_edit(content, "index.html", _instruction("Gone", "Here"))

    assert result.success is False
    assert result.content == content
    assert "not found in file" in (result.reason or "")


def test_link_edit_falls_back_when_oracle_unavailable(make_oracle) -> None:
    oracle = make_oracle(LLMTransportError("connection refused"))
    engine = PatchEngine(oracle)
    instruction = EditInstruction(
        element_name="Nav Link",
        element_type="link",
        old_value="Click",
        new_value="Go",
        old_href="/old",
        new_href="/new",
        source_line=1,
    )

    result = engine.apply_edit('<a href="/old">Click</a>', "src/Nav.tsx", instruction)

    assert result.success is True
    assert result.method is PatchMethod.FALLBACK
    assert result.content == '<a href="/new">Go</a>'
    assert "connection refused" in (result.fallback_reason or "")


def test_missing_href_is_a_warning_when_text_changed() -> None:
    instruction = EditInstruction(
        element_name="Nav Link",
        element_type="link",
        old_value="Click",
        new_value="Go",
        old_href="/elsewhere",
        new_href="/new",
        source_line=1,
    )

    result = PatchEngine().apply_edit('<a href="/old">Click</a>', "src/Nav.tsx", instruction)

    assert result.success is True
    assert result.content == '<a href="/old">Go</a>'
    assert result.warnings and "/elsewhere" in result.warnings[0]


def test_href_only_edit_fails_when_href_missing() -> None:
    content = '<a href="/old">Click</a>'
    instruction = EditInstruction(
        element_name="Nav Link",
        element_type="link",
        old_value="Click",
        new_value="Click",
        old_href="/missing",
        new_href="/new",
    )

    result = PatchEngine().apply_edit(content, "src/Nav.tsx", instruction)

    assert result.success is False
    assert result.content == content


def test_oracle_suggestion_is_applied_when_verified(make_oracle) -> None:
    content = "<section>\n  <h1 className=\"hero\">Welcome</h1>\n</section>"
    oracle = make_oracle(_suggestion('<h1 className="hero">Welcome</h1>', '<h1 className="hero">Hello</h1>', 2))
    observer = RecordingObserver()
    engine = PatchEngine(oracle, observer=observer)

    result = engine.apply_edit(content, "src/Hero.tsx", _instruction("Welcome", "Hello", source_line=2))

    assert result.success is True
    assert result.method is PatchMethod.ORACLE
    assert result.content == "<section>\n  <h1 className=\"hero\">Hello</h1>\n</section>"
    assert result.changed_line == 2
    assert observer.outcomes("patch.oracle") == ["verified"]
    assert observer.outcomes("patch.fallback") == []


def test_ambiguous_low_confidence_suggestion_falls_back(make_oracle) -> None:
    content = "<p>Hi</p>\n<p>Hi</p>"
    oracle = make_oracle(_suggestion("<p>Hi</p>", "<p>Hey</p>", 2, confidence="low"))
    observer = RecordingObserver()

    result = PatchEngine(oracle, observer=observer).apply_edit(
        content, "index.html", _instruction("Hi", "Hey", source_line=2)
    )

    assert result.method is PatchMethod.FALLBACK
    assert result.content == "<p>Hi</p>\n<p>Hey</p>"
    assert "ambiguous" in (result.fallback_reason or "")
    assert observer.outcomes("patch.oracle") == ["rejected"]
    assert observer.outcomes("patch.fallback") == ["applied"]


def test_ambiguous_high_confidence_suggestion_replaces_first(make_oracle) -> None:
    content = "<p>Hi</p>\n<p>Hi</p>"
    oracle = make_oracle(_suggestion("<p>Hi</p>", "<p>Hey</p>", 1))

    result = PatchEngine(oracle).apply_edit(content, "index.html", _instruction("Hi", "Hey", source_line=1))

    assert result.method is PatchMethod.ORACLE
    assert result.content == "<p>Hey</p>\n<p>Hi</p>"


def test_suggestion_missing_new_text_is_rejected(make_oracle) -> None:
    content = "<h1>Welcome</h1>"
    oracle = make_oracle(_suggestion("<h1>Welcome</h1>", "<h1>Greetings</h1>"))

    result = PatchEngine(oracle).apply_edit(content, "index.html", _instruction("Welcome", "Hello", source_line=1))

    assert result.method is PatchMethod.FALLBACK
    assert result.content == "<h1>Hello</h1>"
    assert "new text" in (result.fallback_reason or "")


def test_suggestion_not_in_file_is_rejected(make_oracle) -> None:
    oracle = make_oracle(_suggestion("<h2>Welcome</h2>", "<h2>Hello</h2>"))

    result = PatchEngine(oracle).apply_edit("<h1>Welcome</h1>", "index.html", _instruction("Welcome", "Hello"))

    assert result.method is PatchMethod.FALLBACK
    assert "not found" in (result.fallback_reason or "")


def test_suggestion_changing_line_count_is_rejected(make_oracle) -> None:
    content = "<h1>Welcome</h1>\n<p>Body</p>"
    oracle = make_oracle(_suggestion("<h1>Welcome</h1>", "<h1>\n  Hello\n</h1>"))

    result = PatchEngine(oracle).apply_edit(content, "index.html", _instruction("Welcome", "Hello", source_line=1))

    assert result.method is PatchMethod.FALLBACK
    assert result.content == "<h1>Hello</h1>\n<p>Body</p>"
    assert "line count" in (result.fallback_reason or "")


def test_malformed_oracle_output_falls_back(make_oracle) -> None:
    oracle = make_oracle("I could not find that element, sorry.")

    result = PatchEngine(oracle).apply_edit("<h1>Welcome</h1>", "index.html", _instruction("Welcome", "Hello"))

    assert result.method is PatchMethod.FALLBACK
    assert result.content == "<h1>Hello</h1>"
    assert result.fallback_reason


def test_failure_after_rejected_suggestion_keeps_content(make_oracle) -> None:
    content = "<h1>Welcome</h1>"
    oracle = make_oracle(_suggestion("<h1>Welcome</h1>", "<h1>Nope</h1>"))

    result = PatchEngine(oracle).apply_edit(content, "index.html", _instruction("Missing", "Hello", source_line=1))

    assert result.success is False
    assert result.method is PatchMethod.FAILED
    assert result.content == content
    assert result.reason and result.fallback_reason


def test_describe_edit_truncates_values() -> None:
    instruction = EditInstruction(
        element_name="Primary CTA",
        element_type="link",
        old_value="a" * 60,
        new_value="Start",
        old_href="/a",
        new_href="/b",
    )

    assert describe_edit(instruction) == (
        f'Update Primary CTA: "{"a" * 50}..." → "Start", href: "/a" → "/b"'
    )
    href_only = EditInstruction("Nav", "link", "Docs", "Docs", old_href="/a", new_href="/b")
    assert describe_edit(href_only) == 'Update Nav: href: "/a" → "/b"'


def test_replace_on_line_reports_out_of_range() -> None:
    attempt = replace_on_line("one\ntwo", 5, "one", "1")

    assert attempt.ok is False
    assert "out of range" in (attempt.reason or "")


def test_empty_old_value_is_never_found() -> None:
    content = "<p>Body</p>"
    engine = PatchEngine()

    with_hint = engine.apply_edit(content, "index.html", _instruction("", "Intro", source_line=1))
    without_hint = engine.apply_edit(content, "index.html", _instruction("", "Intro"))

    assert with_hint.method is PatchMethod.FAILED
    assert without_hint.method is PatchMethod.FAILED
    assert with_hint.content == without_hint.content == content
