"""Offline client used when no model is configured."""

from __future__ import annotations

from typing import Any, Dict

from .llm_client import LLMClient, LLMTransportError

__all__ = ["OfflineLLMClient"]


class OfflineLLMClient(LLMClient):
    """Client that never reaches a model.

    Every call fails with :class:`LLMTransportError`, which the oracle layer
    reports as a malformed response so each component takes its deterministic
    fallback path.
    """

    def __init__(self, model: str = "offline") -> None:
        super().__init__(model=model, max_attempts=1, retry_delay=0.0)

    def _raw_invoke(self, payload: Dict[str, Any]) -> str:
        raise LLMTransportError("No language model is configured (offline mode).")
