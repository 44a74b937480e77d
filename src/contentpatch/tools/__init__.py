"""Pipeline components: code host, locator, extractors, grouping, templates and patching."""

from .diffing import content_diff, count_occurrences, validate_replacement
from .extractor import OracleExtractor, RuleBasedExtractor, build_extractor
from .github import (
    GitHubAPIError,
    GitHubAuthError,
    GitHubClient,
    GitHubError,
    GitHubNotFoundError,
    GitHubPermissionError,
    GitHubTransportError,
)
from .grouping import SectionGrouper, fallback_grouping
from .locator import SourceLocator
from .patch import PatchEngine, describe_edit
from .telemetry import LoggingObserver, NullObserver, RecordingObserver, StageObserver
from .templates import TemplateExtractor, fill_template

__all__ = [
    "GitHubAPIError",
    "GitHubAuthError",
    "GitHubClient",
    "GitHubError",
    "GitHubNotFoundError",
    "GitHubPermissionError",
    "GitHubTransportError",
    "LoggingObserver",
    "NullObserver",
    "OracleExtractor",
    "PatchEngine",
    "RecordingObserver",
    "RuleBasedExtractor",
    "SectionGrouper",
    "SourceLocator",
    "StageObserver",
    "TemplateExtractor",
    "build_extractor",
    "content_diff",
    "count_occurrences",
    "describe_edit",
    "fallback_grouping",
    "fill_template",
    "validate_replacement",
]
