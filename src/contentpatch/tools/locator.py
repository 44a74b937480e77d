"""Source locator: map a fragment of rendered text back to a file and line."""

from __future__ import annotations

import logging
import posixpath
import re
from typing import Callable, Dict, Hashable, List, Optional, Protocol, Sequence, Tuple

from ..structured import SourceLocation
from ..utils.batching import run_in_batches
from .github import GitHubError
from .telemetry import NullObserver, StageObserver, timed_stage

__all__ = [
    "EXTENSION_PRIORITY",
    "SourceLocator",
    "normalize_fragment",
    "rank_candidates",
]

LOGGER = logging.getLogger(__name__)

EXTENSION_PRIORITY = (".tsx", ".jsx", ".ts", ".js", ".mdx", ".json")
FRAGMENT_CHARS = 50
MIN_FRAGMENT_CHARS = 5
PREFIX_CHARS = 30
CONTEXT_RADIUS = 2

_QUOTES_RE = re.compile(r"['\"]")
_WHITESPACE_RE = re.compile(r"\s+")


class _CodeHost(Protocol):
    def search_code(self, query: str) -> List[str]: ...

    def get_file(self, path: str, ref: Optional[str] = None): ...


def normalize_fragment(fragment: str) -> str:
    """Truncate, drop quote characters, collapse whitespace and trim."""
    return _WHITESPACE_RE.sub(" ", _QUOTES_RE.sub("", fragment[:FRAGMENT_CHARS])).strip()


def _priority(path: str) -> int:
    extension = posixpath.splitext(path)[1].lower()
    try:
        return EXTENSION_PRIORITY.index(extension)
    except ValueError:
        return len(EXTENSION_PRIORITY)


def rank_candidates(paths: Sequence[str]) -> List[str]:
    """Order search hits by extension priority; ties keep search order."""
    return sorted(paths, key=_priority)


class SourceLocator:
    """Best-effort lookup; every code-host error reduces to ``None``."""

    def __init__(
        self,
        github: _CodeHost,
        *,
        ref: Optional[str] = None,
        observer: Optional[StageObserver] = None,
        batch_size: int = 5,
        batch_pause: float = 0.5,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        self._github = github
        self._ref = ref
        self._observer = observer or NullObserver()
        self._batch_size = batch_size
        self._batch_pause = batch_pause
        self._sleep = sleep

    def locate(self, fragment: str) -> Optional[SourceLocation]:
        query = normalize_fragment(fragment)
        if len(query) < MIN_FRAGMENT_CHARS:
            return None
        with timed_stage(self._observer, "locate", query=query) as state:
            try:
                location = self._locate(query)
            except (GitHubError, ValueError) as error:
                LOGGER.warning("Failed to locate %r: %s", query, error)
                state["outcome"] = "error"
                state["status"] = getattr(error, "status", None)
                return None
            if location is None:
                state["outcome"] = "not_found"
            elif not location.has_position:
                state["outcome"] = "file_only"
            state["file"] = location.file_path if location else None
        return location

    def _locate(self, query: str) -> Optional[SourceLocation]:
        candidates = rank_candidates(self._github.search_code(query))
        if not candidates:
            return None
        best = candidates[0]
        lines = self._github.get_file(best, self._ref).text.split("\n")

        prefix = query[:PREFIX_CHARS]
        for index, line in enumerate(lines):
            column = line.find(prefix)
            if column < 0:
                continue
            window = lines[max(0, index - CONTEXT_RADIUS) : index + CONTEXT_RADIUS + 1]
            return SourceLocation(file_path=best, line=index + 1, column=column + 1, context="\n".join(window))
        return SourceLocation(file_path=best, line=0, column=0, context="")

    def map_elements_to_source(
        self, elements: Sequence[Tuple[Hashable, Optional[str]]]
    ) -> Dict[Hashable, Optional[SourceLocation]]:
        """Locate ``(key, current_value)`` pairs in rate-limited batches."""

        def locate_one(item: Tuple[Hashable, Optional[str]]) -> Optional[SourceLocation]:
            _, value = item
            if not value:
                return None
            return self.locate(value)

        extra = {"sleep": self._sleep} if self._sleep is not None else {}
        locations = run_in_batches(
            list(elements),
            locate_one,
            batch_size=self._batch_size,
            pause=self._batch_pause,
            **extra,
        )
        return {key: location for (key, _), location in zip(elements, locations)}
