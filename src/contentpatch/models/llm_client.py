"""Base client for the language-model oracle."""

from __future__ import annotations

import ast
import json
import re
import time
import types
from dataclasses import dataclass, field, fields, is_dataclass
from functools import lru_cache
from typing import Any, Callable, Dict, Generic, Literal, Optional, Type, TypeVar, Union, get_args, get_origin, get_type_hints

from pydantic import ValidationError
from pydantic.type_adapter import TypeAdapter

__all__ = [
    "LLMClient",
    "LLMClientError",
    "LLMRequest",
    "LLMResponseFormatError",
    "LLMRetryError",
    "LLMTransportError",
    "extract_json_block",
]


T = TypeVar("T")

AttemptLogger = Callable[[Dict[str, Any], Optional[str], Optional[Any], Optional[Exception], int], None]

_FENCE_RE = re.compile(r"```(?:json)?\s*\n(.*?)```", re.DOTALL | re.IGNORECASE)
_TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")
_TYPOGRAPHIC = str.maketrans({0x201C: '"', 0x201D: '"', 0x00A0: " ", 0xFEFF: ""})


class LLMClientError(RuntimeError):
    """Root of every error an oracle client can raise."""


class LLMTransportError(LLMClientError):
    """The request never produced a model answer."""


class LLMResponseFormatError(LLMClientError):
    """The model answered, but not with usable JSON or text."""


class LLMRetryError(LLMClientError):
    """Every attempt failed; ``__cause__`` holds the last failure."""


def _close_schema(value: Any) -> Any:
    """Mark every object schema closed and all of its properties required."""
    if isinstance(value, list):
        return [_close_schema(item) for item in value]
    if not isinstance(value, dict):
        return value
    if value.get("type") == "object" and isinstance(value.get("properties"), dict):
        value["additionalProperties"] = False
        value["required"] = list(value["properties"])
    for key, child in value.items():
        if key == "properties":
            value[key] = {name: _close_schema(schema) for name, schema in child.items()}
        else:
            value[key] = _close_schema(child)
    return value


@dataclass(slots=True)
class LLMRequest(Generic[T]):
    """Typed request payload sent to an LLM.

    A ``response_model`` of ``str`` selects free-text mode: no JSON schema is
    attached and the raw model text is returned untouched.
    """

    prompt: str
    response_model: Type[T]
    model: Optional[str] = None
    system_prompt: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    temperature: float = 0.0
    max_attempts: Optional[int] = None

    @property
    def is_text(self) -> bool:
        return self.response_model is str

    def to_payload(self, default_model: str) -> Dict[str, Any]:
        """Render a transport-ready payload for the Responses API."""
        turns = [("system", self.system_prompt), ("user", self.prompt)]
        payload: Dict[str, Any] = {
            "model": self.model or default_model,
            "input": [
                {"role": role, "content": [{"type": "input_text", "text": text}]}
                for role, text in turns
                if text
            ],
        }
        if not self.is_text:
            payload["text"] = {
                "format": {
                    "type": "json_schema",
                    "name": getattr(self.response_model, "__name__", "contentpatch_response"),
                    "schema": _close_schema(_cached_type_adapter(self.response_model).json_schema()),
                    "strict": True,
                }
            }
        if self.temperature:
            payload["temperature"] = self.temperature
        if self.metadata:
            payload["metadata"] = {
                key: value if isinstance(value, str) else json.dumps(value, separators=(",", ":"), sort_keys=True)
                for key, value in self.metadata.items()
            }
        return payload


class LLMClient:
    """Retrying base client. Subclasses supply the transport in ``_raw_invoke``."""

    def __init__(self, model: str, *, max_attempts: int = 3, retry_delay: float = 0.5) -> None:
        self._model = model
        self._max_attempts = max_attempts
        self._retry_delay = retry_delay

    @property
    def model(self) -> str:
        """Model used when a request does not name one."""
        return self._model

    def invoke(self, request: LLMRequest[T]) -> T:
        """Return only the validated object for ``request``."""
        result, _ = self.invoke_structured(request)
        return result

    def invoke_text(self, request: LLMRequest[str], *, logger: Optional[AttemptLogger] = None) -> str:
        """Invoke the model in free-text mode and return the raw text."""

        def accept(raw: str) -> tuple[str, Any]:
            if not raw.strip():
                raise LLMResponseFormatError("Model returned an empty response.")
            return raw, None

        return self._run_attempts(request, accept, "a text response", logger)[0]

    def invoke_structured(
        self,
        request: LLMRequest[T],
        *,
        logger: Optional[AttemptLogger] = None,
    ) -> tuple[T, Any]:
        """Invoke the model and return both the structured response and the decoded payload."""

        def accept(raw: str) -> tuple[T, Any]:
            data = _fit_to_annotation(request.response_model, self._parse_json(raw))
            return _cached_type_adapter(request.response_model).validate_python(data), data

        return self._run_attempts(request, accept, "schema-valid JSON", logger)

    def _run_attempts(
        self,
        request: LLMRequest[Any],
        accept: Callable[[str], tuple[Any, Any]],
        wanted: str,
        logger: Optional[AttemptLogger],
    ) -> tuple[Any, Any]:
        attempts = request.max_attempts or self._max_attempts
        last_error: Optional[Exception] = None
        for attempt in range(1, attempts + 1):
            payload = request.to_payload(self._model)
            raw: Optional[str] = None
            try:
                raw = self._raw_invoke(payload)
                result, data = accept(raw or "")
            except (LLMTransportError, LLMResponseFormatError, ValidationError) as error:
                last_error = error
                if logger:
                    logger(payload, raw, None, error, attempt)
                if attempt < attempts:
                    time.sleep(self._retry_delay)
                continue
            if logger:
                logger(payload, raw, data, None, attempt)
            return result, data
        raise LLMRetryError(
            f"Failed to produce {wanted} after {attempts} attempt(s) for model {request.model or self._model}"
        ) from last_error

    def _raw_invoke(self, payload: Dict[str, Any]) -> str:
        """Send one payload and return the model text."""
        raise NotImplementedError("Subclasses must implement _raw_invoke().")

    @staticmethod
    def _parse_json(raw_response: str) -> Any:
        """Decode model output, trying the whole text, a fenced block, then the first balanced block."""
        text = raw_response.strip().translate(_TYPOGRAPHIC)
        if not text:
            raise LLMResponseFormatError("Model returned an empty response.")

        fenced = _FENCE_RE.search(text)
        candidates = [text]
        for candidate in (extract_json_block(fenced.group(1) if fenced else text),):
            if candidate and candidate not in candidates:
                candidates.append(candidate)

        for candidate in candidates:
            try:
                return json.loads(candidate)
            except json.JSONDecodeError:
                literal = _python_literal(candidate)
                if literal is not None:
                    return literal
        raise LLMResponseFormatError(f"Model returned invalid JSON: {text[:200]}")


def extract_json_block(text: str, opener: str | None = None) -> str | None:
    """Return the first balanced JSON array/object substring in ``text``.

    ``opener`` restricts the search to ``"["`` or ``"{"``; by default whichever
    appears first wins. Brackets inside string literals are ignored.
    """
    if not text:
        return None
    openers = opener or "[{"
    start = next((index for index, char in enumerate(text) if char in openers), None)
    if start is None:
        return None

    expected: list[str] = []
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char in "{[":
            expected.append("}" if char == "{" else "]")
        elif expected and char == expected[-1]:
            expected.pop()
            if not expected:
                return _TRAILING_COMMA_RE.sub(r"\1", text[start : index + 1].strip())
    return None


def _python_literal(candidate: str) -> Any | None:
    """Accept ``{'a': True}``-style output that models sometimes emit instead of JSON."""
    try:
        literal = ast.literal_eval(candidate)
    except (SyntaxError, TypeError, ValueError):
        return None
    return _jsonable(literal)


def _jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_jsonable(item) for item in value]
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


def _fit_to_annotation(annotation: Any, value: Any) -> Any:
    """Nudge decoded JSON towards ``annotation`` before pydantic validates it.

    Unknown keys are dropped, literals match case-insensitively, scalars bound
    for ``str`` fields are stringified and a lone item bound for a list is
    wrapped. Anything that still does not fit is left for validation to reject.
    """
    if value is None:
        return None
    if isinstance(annotation, type) and is_dataclass(annotation):
        if not isinstance(value, dict):
            return value
        hints = _cached_type_hints(annotation)
        return {
            info.name: _fit_to_annotation(hints.get(info.name, info.type), value[info.name])
            for info in fields(annotation)
            if info.name in value
        }

    origin = get_origin(annotation)
    args = get_args(annotation)
    if origin is list:
        if isinstance(value, (str, dict)) or not isinstance(value, list):
            value = [value]
        item_type = args[0] if args else Any
        return [_fit_to_annotation(item_type, item) for item in value]
    if origin in (Union, types.UnionType):
        arms = [arm for arm in args if arm is not type(None)]
        return _fit_to_annotation(arms[0], value) if len(arms) == 1 else value
    if origin is Literal:
        if isinstance(value, str):
            lowered = value.strip().lower()
            for option in args:
                if isinstance(option, str) and option.lower() == lowered:
                    return option
        return value
    if annotation is str and isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


@lru_cache(maxsize=None)
def _cached_type_hints(model: type[Any]) -> dict[str, Any]:
    return get_type_hints(model)


@lru_cache(maxsize=None)
def _cached_type_adapter(annotation: Any) -> TypeAdapter:
    """Reuse `TypeAdapter` instances across requests."""
    return TypeAdapter(annotation)
