"""Repository analysis pipeline: list the tree, extract elements per file, group them."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Protocol, Sequence

from .structured import RawElement, SectionGroup
from .tools.extractor import ElementExtractor
from .tools.github import GitHubError, TreeEntry
from .tools.grouping import SectionGrouper
from .tools.telemetry import NullObserver, StageObserver, timed_stage
from .utils.batching import run_in_batches

__all__ = [
    "AnalysisResult",
    "RepositoryAnalyzer",
    "SKIP_FOLDERS",
    "SOURCE_EXTENSIONS",
    "is_source_file",
    "select_source_files",
    "should_skip_path",
]

LOGGER = logging.getLogger(__name__)

SOURCE_EXTENSIONS = (".tsx", ".jsx", ".astro", ".vue", ".svelte", ".html")
SKIP_FOLDERS = ("node_modules", ".git", "dist", "build", ".next", ".nuxt", "coverage", "__tests__", "__mocks__")
DEFAULT_MAX_FILES = 50

ProgressCallback = Callable[[int, str], None]


class _CodeHost(Protocol):
    def list_tree(self, ref: str, *, recursive: bool = True) -> List[TreeEntry]: ...

    def get_file(self, path: str, ref: Optional[str] = None): ...


@dataclass(slots=True)
class AnalysisResult:
    sections: List[SectionGroup] = field(default_factory=list)
    files_analyzed: List[str] = field(default_factory=list)
    failed_files: List[str] = field(default_factory=list)

    @property
    def element_count(self) -> int:
        return sum(len(section.elements) for section in self.sections)


def is_source_file(path: str) -> bool:
    return path.endswith(SOURCE_EXTENSIONS)


def should_skip_path(path: str) -> bool:
    return any(f"/{folder}/" in path or path.startswith(f"{folder}/") for folder in SKIP_FOLDERS)


def select_source_files(
    entries: Sequence[TreeEntry], *, root_path: str = "", max_files: int = DEFAULT_MAX_FILES
) -> List[str]:
    """Return up to ``max_files`` analysable blob paths, optionally under ``root_path``."""
    prefix = root_path.strip("/")
    selected: list[str] = []
    for entry in entries:
        if entry.type != "blob":
            continue
        if prefix and not entry.path.startswith(f"{prefix}/"):
            continue
        if is_source_file(entry.path) and not should_skip_path(entry.path):
            selected.append(entry.path)
    return selected[:max_files]


class RepositoryAnalyzer:
    """Best-effort analysis over a remote repository.

    Listing the tree is a hard requirement and its errors propagate. A failure
    reading any single file is logged, recorded in ``failed_files`` and skipped.
    """

    def __init__(
        self,
        github: _CodeHost,
        extractor: ElementExtractor,
        grouper: SectionGrouper,
        *,
        ref: str = "main",
        root_path: str = "",
        max_files: int = DEFAULT_MAX_FILES,
        batch_size: int = 5,
        batch_pause: float = 0.5,
        observer: Optional[StageObserver] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._github = github
        self._extractor = extractor
        self._grouper = grouper
        self._ref = ref
        self._root_path = root_path
        self._max_files = max_files
        self._batch_size = batch_size
        self._batch_pause = batch_pause
        self._observer = observer or NullObserver()
        self._sleep = sleep

    def analyze(self, on_progress: Optional[ProgressCallback] = None) -> AnalysisResult:
        def report(percent: int, message: str) -> None:
            LOGGER.info("Progress %d%%: %s", percent, message)
            if on_progress is not None:
                on_progress(percent, message)

        with timed_stage(self._observer, "analysis", ref=self._ref, root_path=self._root_path) as state:
            report(5, "Listing repository files")
            files = select_source_files(
                self._github.list_tree(self._ref, recursive=True),
                root_path=self._root_path,
                max_files=self._max_files,
            )
            report(10, f"Found {len(files)} source files")
            if not files:
                LOGGER.info("No source files found in %s", self._root_path or "repository")
                report(100, "No source files found")
                state["outcome"] = "empty"
                return AnalysisResult()

            result = AnalysisResult()

            def on_batch_done(done: int) -> None:
                report(10 + round(done / len(files) * 75), f"Analyzed {done}/{len(files)} files")

            per_file = run_in_batches(
                files,
                self._analyze_file,
                batch_size=self._batch_size,
                pause=self._batch_pause,
                sleep=self._sleep,
                on_batch_done=on_batch_done,
            )
            elements: list[RawElement] = []
            for path, extracted in zip(files, per_file):
                if extracted is None:
                    result.failed_files.append(path)
                    continue
                result.files_analyzed.append(path)
                elements.extend(extracted)

            report(85, "Grouping elements into sections")
            result.sections = self._grouper.group(elements)
            report(95, f"Created {len(result.sections)} sections")
            for index, section in enumerate(result.sections, start=1):
                LOGGER.info("Section %d %r: %d elements", index, section.name, len(section.elements))
            report(100, "Analysis complete")

            state["files"] = len(result.files_analyzed)
            state["failed"] = len(result.failed_files)
            state["sections"] = len(result.sections)
            state["elements"] = result.element_count
        return result

    def _analyze_file(self, path: str) -> Optional[List[RawElement]]:
        with timed_stage(self._observer, "extract", file=path) as state:
            try:
                content = self._github.get_file(path, self._ref).text
            except (GitHubError, ValueError) as error:
                LOGGER.warning("Failed to analyze %s: %s", path, error)
                state["outcome"] = "error"
                return None
            try:
                elements = self._extractor.extract(content, path)
            except Exception as error:
                # a single file never aborts the analysis
                LOGGER.warning("Extraction raised for %s, treating it as empty: %s", path, error)
                state["outcome"] = "extract_error"
                elements = []
            state["elements"] = len(elements)
        if elements:
            LOGGER.info("%s: %d elements found", path, len(elements))
        return elements
