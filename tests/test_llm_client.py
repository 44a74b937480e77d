from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import pytest

from contentpatch.models import OfflineLLMClient, TextOracle, parse_json_array
from contentpatch.models.llm_client import LLMRequest, LLMRetryError, LLMTransportError, extract_json_block
from contentpatch.models.oracle import Malformed, Parsed


@dataclass(slots=True)
class Verdict:
    accepted: bool
    note: Optional[str] = None


def test_parse_json_handles_fences_and_trailing_commas(make_oracle) -> None:
    client = make_oracle('Here it is:\n```json\n{"accepted": true,}\n```').client

    result = client.invoke(LLMRequest(prompt="p", response_model=Verdict))

    assert result == Verdict(accepted=True, note=None)


def test_parse_json_accepts_python_literals(make_oracle) -> None:
    client = make_oracle("{'accepted': False, 'note': 'nope'}").client

    assert client.invoke(LLMRequest(prompt="p", response_model=Verdict)) == Verdict(accepted=False, note="nope")


def test_structured_invoke_retries_until_valid(make_oracle) -> None:
    client = make_oracle("garbage", '{"accepted": true}').client
    client._max_attempts = 2
    client._retry_delay = 0.0

    assert client.invoke(LLMRequest(prompt="p", response_model=Verdict)).accepted is True
    assert len(client.payloads) == 2


def test_structured_invoke_chains_last_error(make_oracle) -> None:
    client = make_oracle(LLMTransportError("boom")).client

    with pytest.raises(LLMRetryError) as excinfo:
        client.invoke(LLMRequest(prompt="p", response_model=Verdict))

    assert isinstance(excinfo.value.__cause__, LLMTransportError)


def test_invoke_text_rejects_blank_output(make_oracle) -> None:
    client = make_oracle("   ").client

    with pytest.raises(LLMRetryError):
        client.invoke_text(LLMRequest(prompt="p", response_model=str))


def test_extract_json_block_ignores_brackets_in_strings() -> None:
    text = 'Result: [{"content": "a ] tricky [ one"}] trailing ]'

    assert extract_json_block(text, "[") == '[{"content": "a ] tricky [ one"}]'


def test_parse_json_array_variants() -> None:
    assert parse_json_array('prefix [1, 2] suffix') == Parsed([1, 2])
    assert isinstance(parse_json_array("no array"), Malformed)
    assert isinstance(parse_json_array("[1, 2"), Malformed)


def test_oracle_wraps_failures_as_malformed() -> None:
    oracle = TextOracle(OfflineLLMClient())

    structured = oracle.generate_structured(Verdict, "p")
    text = oracle.generate_text("p")

    assert isinstance(structured, Malformed)
    assert "offline" in structured.error
    assert isinstance(text, Malformed)


def test_oracle_returns_parsed_values(make_oracle) -> None:
    oracle = make_oracle('{"accepted": true, "note": "ok"}', "plain words")

    assert oracle.generate_structured(Verdict, "p") == Parsed(Verdict(accepted=True, note="ok"))
    assert oracle.generate_text("p") == Parsed("plain words")
