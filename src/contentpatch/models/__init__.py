"""Convenience exports for contentpatch language-model plumbing."""

from .gpt5 import GPT5Client
from .llm_client import (
    LLMClient,
    LLMClientError,
    LLMRequest,
    LLMResponseFormatError,
    LLMRetryError,
    LLMTransportError,
)
from .offline import OfflineLLMClient
from .oracle import Malformed, OracleResponse, Parsed, TextOracle, parse_json_array

__all__ = [
    "GPT5Client",
    "LLMClient",
    "LLMClientError",
    "LLMRequest",
    "LLMResponseFormatError",
    "LLMRetryError",
    "LLMTransportError",
    "Malformed",
    "OfflineLLMClient",
    "OracleResponse",
    "Parsed",
    "TextOracle",
    "parse_json_array",
]
