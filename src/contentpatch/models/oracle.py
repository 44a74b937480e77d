"""Capability-typed oracle wrapper that never raises on bad model output."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Generic, Mapping, Optional, Type, TypeVar, Union

from .llm_client import LLMClient, LLMClientError, LLMRequest, extract_json_block

__all__ = ["Malformed", "OracleResponse", "Parsed", "TextOracle", "parse_json_array"]

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(slots=True, frozen=True)
class Parsed(Generic[T]):
    """Oracle produced a usable value."""

    value: T


@dataclass(slots=True, frozen=True)
class Malformed:
    """Oracle failed, timed out, or returned something unusable."""

    raw: str = ""
    error: str = ""


OracleResponse = Union[Parsed[T], Malformed]


def parse_json_array(text: str) -> OracleResponse[list[Any]]:
    """Extract the first JSON array embedded in free-form model text."""
    block = extract_json_block(text, "[")
    if block is None:
        return Malformed(raw=text, error="no JSON array found")
    try:
        data = json.loads(block)
    except json.JSONDecodeError as error:
        return Malformed(raw=text, error=f"invalid JSON array: {error}")
    if not isinstance(data, list):
        return Malformed(raw=text, error="JSON payload is not an array")
    return Parsed(data)


class TextOracle:
    """Text-generation oracle injected into every component that asks a model."""

    def __init__(self, client: LLMClient, *, model: Optional[str] = None) -> None:
        self._client = client
        self._model = model

    @property
    def client(self) -> LLMClient:
        return self._client

    def generate_structured(
        self,
        response_model: Type[T],
        prompt: str,
        *,
        system_prompt: Optional[str] = None,
        max_attempts: Optional[int] = 1,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> OracleResponse[T]:
        """Ask for a schema-conformant object; failures become :class:`Malformed`."""
        request = LLMRequest(
            prompt=prompt,
            response_model=response_model,
            model=self._model,
            system_prompt=system_prompt,
            metadata=dict(metadata or {}),
            max_attempts=max_attempts,
        )
        try:
            value = self._client.invoke(request)
        except LLMClientError as error:
            cause = error.__cause__ or error
            LOGGER.info("Structured oracle call for %s failed: %s", response_model.__name__, cause)
            return Malformed(error=str(cause))
        return Parsed(value)

    def generate_text(
        self,
        prompt: str,
        *,
        system_prompt: Optional[str] = None,
        max_attempts: Optional[int] = 1,
    ) -> OracleResponse[str]:
        """Ask for free text; failures become :class:`Malformed`."""
        request: LLMRequest[str] = LLMRequest(
            prompt=prompt,
            response_model=str,
            model=self._model,
            system_prompt=system_prompt,
            max_attempts=max_attempts,
        )
        try:
            text = self._client.invoke_text(request)
        except LLMClientError as error:
            cause = error.__cause__ or error
            LOGGER.info("Text oracle call failed: %s", cause)
            return Malformed(error=str(cause))
        return Parsed(text)
