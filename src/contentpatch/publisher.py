"""Publish orchestrator: fold edits into per-file changes and open a pull request."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from functools import reduce
from typing import Callable, Dict, List, Optional, Protocol, Sequence

from .memory.schema import EditableElement
from .memory.store import CatalogStore
from .structured import CodeChange, EditReport, ElementEdit, PatchMethod
from .tools.github import GitHubError, PullRequest
from .tools.patch import PatchEngine, describe_edit
from .tools.diffing import truncate
from .tools.telemetry import NullObserver, StageObserver, timed_stage
from .utils.slug import slugify

__all__ = [
    "FileFold",
    "PublishError",
    "PublishPlan",
    "PublishedPullRequest",
    "Publisher",
    "fold_edits",
    "generate_branch_name",
    "generate_pr_description",
    "generate_pr_title",
    "group_by_file",
]

LOGGER = logging.getLogger(__name__)

COMMIT_PREFIX = "[cms]"
BRANCH_SLUG_CHARS = 20
APPLIED_METHODS = (PatchMethod.ORACLE, PatchMethod.FALLBACK)


class PublishError(RuntimeError):
    """Raised when a publish request cannot produce a pull request."""


class _CodeHost(Protocol):
    def get_file(self, path: str, ref: Optional[str] = None): ...

    def update_file(self, path: str, content: str, message: str, branch: str, sha: Optional[str] = None): ...

    def create_branch(self, name: str, from_ref: str) -> None: ...

    def create_pull_request(self, title: str, body: str, head: str, base: str) -> PullRequest: ...

    def get_pull_request(self, number: int) -> PullRequest: ...


@dataclass(slots=True, frozen=True)
class FileFold:
    """Accumulator threaded through the edits of one file."""

    content: str
    descriptions: tuple[str, ...] = ()
    reports: tuple[EditReport, ...] = ()


@dataclass(slots=True)
class PublishPlan:
    changes: List[CodeChange] = field(default_factory=list)
    reports: List[EditReport] = field(default_factory=list)

    @property
    def failed(self) -> List[EditReport]:
        return [report for report in self.reports if not report.succeeded]


@dataclass(slots=True)
class PublishedPullRequest:
    number: int
    url: str
    branch_name: str


def _applied_edits(edits: Sequence[ElementEdit], reports: Sequence[EditReport]) -> List[ElementEdit]:
    # reports follow group_by_file order, one per edit
    ordered = [edit for file_edits in group_by_file(edits).values() for edit in file_edits]
    return [edit for edit, report in zip(ordered, reports) if report.method in APPLIED_METHODS]


def group_by_file(edits: Sequence[ElementEdit]) -> Dict[str, List[ElementEdit]]:
    """Group edits by target file, keeping first-seen file order and edit order."""
    grouped: dict[str, list[ElementEdit]] = {}
    for edit in edits:
        grouped.setdefault(edit.file_path, []).append(edit)
    return grouped


def fold_edits(engine: PatchEngine, file_path: str, content: str, edits: Sequence[ElementEdit]) -> FileFold:
    """Apply ``edits`` in order, each one against the previous edit's output.

    Every successful edit, no-ops included, contributes its description in
    edit order. Failed edits only leave a report.
    """

    def step(state: FileFold, edit: ElementEdit) -> FileFold:
        instruction = edit.instruction
        LOGGER.info(
            "Editing %s in %s: %r -> %r",
            instruction.element_name,
            file_path,
            truncate(instruction.old_value),
            truncate(instruction.new_value),
        )
        result = engine.apply_edit(state.content, file_path, instruction)
        report = EditReport(
            file_path=file_path,
            element_name=instruction.element_name,
            method=result.method,
            description=result.description,
            reason=result.reason,
            fallback_reason=result.fallback_reason,
            changed_line=result.changed_line,
            element_id=edit.element_id,
        )
        if not result.success:
            LOGGER.warning("Skipping edit %s in %s: %s", instruction.element_name, file_path, result.reason)
            return FileFold(state.content, state.descriptions, (*state.reports, report))
        return FileFold(result.content, (*state.descriptions, result.description), (*state.reports, report))

    return reduce(step, edits, FileFold(content))


def generate_branch_name(project_name: str, *, now_ms: Optional[int] = None) -> str:
    timestamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"cms-update-{slugify(project_name, max_length=BRANCH_SLUG_CHARS)}-{timestamp}"


def generate_pr_title(edits: Sequence[ElementEdit]) -> str:
    if len(edits) == 1:
        return f"(cms): update {edits[0].instruction.element_name.lower()}"
    types = {edit.instruction.element_type for edit in edits}
    if len(types) == 1:
        return f"(cms): update {len(edits)} {next(iter(types))}s"
    return f"(cms): update {len(edits)} content elements"


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}{'' if count == 1 else 's'}"


def generate_pr_description(edits: Sequence[ElementEdit], skipped: Sequence[EditReport] = ()) -> str:
    """Render the markdown body: per-file diff blocks plus a review checklist.

    ``skipped`` reports are listed under "Not Applied" with their reason.
    """
    grouped = group_by_file(edits)
    element_types = list(dict.fromkeys(edit.instruction.element_type for edit in edits))
    has_link_changes = any(edit.instruction.href_changed for edit in edits)

    lines: list[str] = [
        "# Content Update",
        "",
        f"> **{_plural(len(edits), 'element')}** updated across **{_plural(len(grouped), 'file')}**",
        "",
        "> [!NOTE]",
        "> This PR contains automated content changes.",
        f"> Types: {', '.join(f'`{element_type}`' for element_type in element_types)}",
        "",
        "---",
        "",
        "## Changes",
        "",
    ]
    for file_path, file_edits in grouped.items():
        lines.extend([f"### `{file_path}`", ""])
        for edit in file_edits:
            instruction = edit.instruction
            lines.extend(
                [
                    f"#### {instruction.element_name} `{instruction.element_type}`",
                    "",
                    "```diff",
                    f"- {instruction.old_value}",
                    f"+ {instruction.new_value}",
                    "```",
                ]
            )
            if instruction.href_changed:
                lines.extend(
                    ["", "**Link changed:**", "```diff", f"- {instruction.old_href}", f"+ {instruction.new_href}", "```"]
                )
            if instruction.line_hint is not None:
                lines.extend(["", f"**Line {instruction.line_hint}**"])
            lines.append("")

    if skipped:
        lines.extend(["## Not Applied", ""])
        for report in skipped:
            reason = report.reason or "no change needed"
            lines.append(f"- `{report.file_path}` {report.element_name}: {reason}")
        lines.append("")

    lines.extend(
        [
            "---",
            "",
            "## Review Checklist",
            "",
            "- [ ] Content changes look correct",
            "- [ ] No unintended formatting changes",
        ]
    )
    if has_link_changes:
        lines.append("- [ ] Links are valid")
    lines.append("")
    return "\n".join(lines)


class Publisher:
    """Drive the patch engine per file and land the result as a pull request."""

    def __init__(
        self,
        github: _CodeHost,
        engine: PatchEngine,
        *,
        observer: Optional[StageObserver] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._github = github
        self._engine = engine
        self._observer = observer or NullObserver()
        self._clock = clock

    def collect_changes(self, edits: Sequence[ElementEdit], base_branch: str) -> PublishPlan:
        """Fetch each file once, fold its edits and keep only files that changed."""
        plan = PublishPlan()
        for file_path, file_edits in group_by_file(edits).items():
            with timed_stage(self._observer, "publish.file", file=file_path, edits=len(file_edits)) as state:
                try:
                    remote = self._github.get_file(file_path, base_branch)
                    original = remote.text
                except (GitHubError, ValueError) as error:
                    LOGGER.warning("Cannot read %s from %s: %s", file_path, base_branch, error)
                    state["outcome"] = "error"
                    plan.reports.extend(
                        EditReport(
                            file_path=file_path,
                            element_name=edit.instruction.element_name,
                            method=PatchMethod.FAILED,
                            description=describe_edit(edit.instruction),
                            reason=f"could not read file: {error}",
                            element_id=edit.element_id,
                        )
                        for edit in file_edits
                    )
                    continue

                folded = fold_edits(self._engine, file_path, original, file_edits)
                plan.reports.extend(folded.reports)
                if folded.content == original:
                    state["outcome"] = "unchanged"
                    continue
                plan.changes.append(
                    CodeChange(
                        file_path=file_path,
                        old_content=original,
                        new_content=folded.content,
                        description="\n".join(folded.descriptions),
                        sha=remote.sha,
                    )
                )
                state["outcome"] = "changed"
                state["applied"] = sum(report.method in APPLIED_METHODS for report in folded.reports)
        return plan

    def apply_all(self, edits: Sequence[ElementEdit], base_branch: str) -> List[CodeChange]:
        return self.collect_changes(edits, base_branch).changes

    def create_content_pr(
        self,
        project_name: str,
        changes: Sequence[CodeChange],
        title: str,
        body: str,
        base_branch: str,
    ) -> PublishedPullRequest:
        """Create a branch, commit every change and open the pull request.

        Code-host errors propagate unchanged; a rejected write (stale SHA)
        aborts the whole publish.
        """
        LOGGER.info("Publishing %d changed files for %s", len(changes), project_name)
        if not changes:
            raise PublishError("No changes to commit")

        with timed_stage(self._observer, "publish.pr", files=len(changes)) as state:
            branch_name = generate_branch_name(project_name, now_ms=int(self._clock() * 1000))
            LOGGER.info("Creating branch %s from %s", branch_name, base_branch)
            self._github.create_branch(branch_name, base_branch)

            for change in changes:
                sha = change.sha or self._github.get_file(change.file_path, base_branch).sha
                message = f"{COMMIT_PREFIX} {change.description.split(chr(10))[0]}"
                LOGGER.info("Committing %s", change.file_path)
                self._github.update_file(change.file_path, change.new_content, message, branch_name, sha)

            pull_request = self._github.create_pull_request(title, body, branch_name, base_branch)
            state["pr"] = pull_request.number
            state["branch"] = branch_name
        LOGGER.info("Opened pull request #%d: %s", pull_request.number, pull_request.url)
        return PublishedPullRequest(number=pull_request.number, url=pull_request.url, branch_name=branch_name)

    def publish(
        self, project_name: str, edits: Sequence[ElementEdit], base_branch: str
    ) -> tuple[PublishedPullRequest, PublishPlan]:
        """Collect changes for ``edits`` and open one pull request for them.

        The title and diff blocks describe only edits that changed a file.
        """
        plan = self.collect_changes(edits, base_branch)
        applied = _applied_edits(edits, plan.reports)
        skipped = [report for report in plan.reports if report.method not in APPLIED_METHODS]
        pull_request = self.create_content_pr(
            project_name,
            plan.changes,
            generate_pr_title(applied),
            generate_pr_description(applied, skipped),
            base_branch,
        )
        return pull_request, plan

    def reconcile_merged(
        self, pr_number: int, edits: Sequence[ElementEdit], store: CatalogStore
    ) -> List[EditableElement]:
        """Copy edited values into the catalog once ``pr_number`` is merged."""
        pull_request = self._github.get_pull_request(pr_number)
        if not pull_request.merged:
            LOGGER.info("Pull request #%d is not merged yet (%s)", pr_number, pull_request.state)
            return []
        updated: list[EditableElement] = []
        for edit in edits:
            if edit.element_id is None:
                continue
            instruction = edit.instruction
            new_href = instruction.new_href if instruction.href_changed else None
            element = store.apply_merged_edit(edit.element_id, instruction.new_value, new_href)
            if element is not None:
                updated.append(element)
        LOGGER.info("Pull request #%d merged; updated %d catalog elements", pr_number, len(updated))
        return updated
