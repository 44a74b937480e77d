"""Production GPT-5 client that speaks the JSON Responses API."""

from __future__ import annotations

import json
import logging
import os
import urllib.error
import urllib.request
from typing import Any, Callable, Dict, Iterator, Mapping, Optional

from .llm_client import LLMClient, LLMResponseFormatError, LLMTransportError

__all__ = ["GPT5Client"]

LOGGER = logging.getLogger(__name__)

Transport = Callable[[Dict[str, Any]], str]

DEFAULT_ENDPOINT = "https://api.openai.com/v1/responses"
DEFAULT_MODEL = "gpt-5-mini"

# (config key, constructor keyword, accepts value)
_CONFIG_FIELDS: tuple[tuple[str, str, Callable[[Any], bool]], ...] = (
    ("timeout", "timeout", lambda value: isinstance(value, (int, float)) and value > 0),
    ("max_attempts", "max_attempts", lambda value: isinstance(value, int) and value > 0),
    ("retry_delay", "retry_delay", lambda value: isinstance(value, (int, float)) and value >= 0),
    ("base_url", "base_url", lambda value: isinstance(value, str) and bool(value.strip())),
    ("api_key", "api_key", lambda value: isinstance(value, str) and bool(value.strip())),
)


def _timeout_from_env(default: float) -> float:
    raw = os.getenv("GPT5_TIMEOUT")
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        LOGGER.warning("Ignoring non-numeric GPT5_TIMEOUT=%r", raw)
        return default
    return value if value > 0 else default


class GPT5Client(LLMClient):
    """Send oracle prompts to the Responses API and hand back the model's text.

    A ``transport`` callable may replace the HTTP call entirely; tests use this
    to return canned responses without a key or network access.
    """

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        base_url: str = DEFAULT_ENDPOINT,
        model: str = DEFAULT_MODEL,
        transport: Optional[Transport] = None,
        timeout: float = 60.0,
        max_attempts: int = 3,
        retry_delay: float = 0.5,
    ) -> None:
        super().__init__(model=model, max_attempts=max_attempts, retry_delay=retry_delay)
        self._api_key = api_key or os.getenv("GPT5_API_KEY") or os.getenv("OPENAI_API_KEY")
        if transport is None and not self._api_key:
            raise ValueError("An API key is required when using the default transport.")
        self._base_url = base_url
        self._timeout = _timeout_from_env(timeout)
        self._transport = transport or self._post

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "GPT5Client":
        """Build a client from the ``models`` configuration section."""
        section = config.get("models") or {}
        kwargs: Dict[str, Any] = {"model": str(section.get("default") or DEFAULT_MODEL)}
        for key, keyword, accepts in _CONFIG_FIELDS:
            value = section.get(key)
            if value is None or not accepts(value):
                continue
            if isinstance(value, str):
                value = value.strip()
            elif keyword in {"timeout", "retry_delay"}:
                value = float(value)
            kwargs[keyword] = value
        return cls(**kwargs)

    def _raw_invoke(self, payload: Dict[str, Any]) -> str:
        try:
            body = self._transport(payload)
        except LLMTransportError:
            raise
        except Exception as error:  # pragma: no cover
            raise LLMTransportError(f"Transport rejected the request: {error}") from error

        text = self._extract_model_payload(body)
        if text is None:
            raise LLMResponseFormatError("GPT-5 response did not contain output text.")
        return text

    def _post(self, payload: Dict[str, Any]) -> str:
        """POST ``payload`` to the configured endpoint and return the body."""
        LOGGER.debug("GPT-5 request to %s (model=%s)", self._base_url, payload.get("model"))
        request = urllib.request.Request(
            self._base_url,
            data=json.dumps(payload).encode("utf-8"),
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self._api_key}",
                "User-Agent": "contentpatch/0.1",
            },
            method="POST",
        )
        try:
            with urllib.request.urlopen(request, timeout=self._timeout) as response:
                status = getattr(response, "status", 200)
                body = response.read().decode("utf-8")
        except urllib.error.HTTPError as error:  # pragma: no cover
            detail = error.read().decode("utf-8", errors="ignore")
            raise LLMTransportError(f"HTTP {error.code}: {detail}") from error
        except urllib.error.URLError as error:  # pragma: no cover
            raise LLMTransportError(f"Failed to reach GPT-5 endpoint: {error.reason}") from error
        except TimeoutError as error:  # pragma: no cover
            raise LLMTransportError("GPT-5 response timed out.") from error
        if status >= 400:
            raise LLMTransportError(f"Unexpected HTTP status {status}")
        return body

    def _extract_model_payload(self, raw_response: str) -> Optional[str]:
        """Pull the model's answer out of a Responses API body.

        ``output_text`` wins when present; otherwise the first text or JSON
        content part is used. Bodies that are not JSON objects are returned
        as-is so the caller can still try to parse them.
        """
        if not raw_response:
            return None
        try:
            body = json.loads(raw_response)
        except json.JSONDecodeError:
            return raw_response
        if not isinstance(body, dict):
            return raw_response

        direct = body.get("output_text")
        if isinstance(direct, str) and direct.strip():
            return direct

        nested = body.get("response")
        sources = (
            body.get("output") or body.get("outputs"),
            nested.get("output") if isinstance(nested, dict) else None,
            body.get("content") or body.get("choices"),
        )
        for source in sources:
            for text in _content_parts(source):
                return text
        return raw_response


def _content_parts(source: Any) -> Iterator[str]:
    """Yield candidate answer strings from an ``output`` style list."""
    if isinstance(source, dict):
        source = [source]
    if not isinstance(source, list):
        return
    for item in source:
        if not isinstance(item, dict):
            continue
        parts = item.get("content")
        if isinstance(parts, list):
            for part in parts:
                if not isinstance(part, dict):
                    continue
                if isinstance(part.get("json"), (dict, list)):
                    yield json.dumps(part["json"])
                elif _has_text(part.get("text")):
                    yield part["text"]
        if _has_text(item.get("text")):
            yield item["text"]
        message = item.get("message")
        if isinstance(message, dict):
            # chat-completions shape
            text = message.get("content") or message.get("text")
            if _has_text(text):
                yield text


def _has_text(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())
