"""CLI commands for analysing a repository and publishing content edits."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .analysis import RepositoryAnalyzer
from .config import DEFAULT_CONFIG_NAME, ConfigError, default_config, is_offline_model, load_config
from .memory.store import CatalogStore
from .models import GPT5Client, LLMClient, LLMClientError, OfflineLLMClient, TextOracle
from .publisher import PublishError, Publisher
from .structured import EditInstruction, ElementEdit, PatchMethod
from .tools.diffing import content_diff, validate_replacement
from .tools.extractor import build_extractor
from .tools.github import GitHubClient, GitHubError
from .tools.grouping import SectionGrouper
from .tools.locator import SourceLocator
from .tools.patch import PatchEngine
from .tools.telemetry import LoggingObserver

APP_HELP = "Edit website copy in a source repository and land it as a pull request."

app = typer.Typer(help=APP_HELP)

ConfigOption = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help="Path to the contentpatch configuration file.")
RemoteOption = typer.Option(
    True,
    "--use-remote/--no-use-remote",
    help="Call the GPT-5 API instead of the offline client (requires API key).",
)


class EditEntry(BaseModel):
    """One edit as written in an edits file."""

    model_config = ConfigDict(extra="forbid")

    file: str
    name: str
    type: str = "text"
    old: str
    new: str
    old_href: Optional[str] = None
    new_href: Optional[str] = None
    line: Optional[int] = Field(default=None, ge=1)
    element_id: Optional[str] = None

    def to_edit(self) -> ElementEdit:
        return ElementEdit(
            file_path=self.file,
            instruction=EditInstruction(
                element_name=self.name,
                element_type=self.type,
                old_value=self.old,
                new_value=self.new,
                old_href=self.old_href,
                new_href=self.new_href,
                source_line=self.line,
            ),
            element_id=self.element_id,
        )


@app.callback()
def main(
    log_level: str = typer.Option("WARNING", "--log-level", help="Python logging level for diagnostics."),
) -> None:
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load_config(config: str) -> Dict[str, Any]:
    config_path = Path(config)
    if not config_path.exists() and config == DEFAULT_CONFIG_NAME:
        return default_config()
    try:
        return load_config(config_path)
    except ConfigError as error:
        typer.echo(str(error))
        raise typer.Exit(code=1) from error


def _build_client(config: Dict[str, Any], *, use_remote: bool) -> LLMClient:
    """Select either the real GPT-5 client or the offline client."""
    model_name = str((config.get("models") or {}).get("default", "gpt-5-mini"))
    if use_remote and not is_offline_model(model_name):
        try:
            return GPT5Client.from_config(config)
        except ValueError as error:
            if "api key" in str(error).lower():
                typer.echo(
                    "No API key given. Set OPENAI_API_KEY or GPT5_API_KEY, "
                    "or re-run with --no-use-remote to use the offline client."
                )
            else:
                typer.echo(f"Failed to initialise GPT-5 client: {error}")
            raise typer.Exit(code=1)
        except LLMClientError as error:
            typer.echo(f"Failed to initialise GPT-5 client: {error}")
            raise typer.Exit(code=1)
    typer.echo("Using offline client; every step takes its deterministic path.", err=True)
    return OfflineLLMClient(model_name)


def _build_github(config: Dict[str, Any]) -> GitHubClient:
    try:
        return GitHubClient.from_config(config)
    except (GitHubError, ValueError) as error:
        typer.echo(f"GitHub is not configured: {error}")
        raise typer.Exit(code=1) from error


def _load_edits(path: Path) -> List[ElementEdit]:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or []
    except (OSError, yaml.YAMLError) as error:
        typer.echo(f"Failed to read edits file {path}: {error}")
        raise typer.Exit(code=1) from error
    if isinstance(raw, dict):
        raw = raw.get("edits") or []
    if not isinstance(raw, list):
        typer.echo("Edits file must contain a list of edits.")
        raise typer.Exit(code=1)
    try:
        return [EditEntry.model_validate(item).to_edit() for item in raw]
    except ValidationError as error:
        typer.echo(f"Invalid edits file {path}:\n{error}")
        raise typer.Exit(code=1) from error


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as error:
        typer.echo(f"Failed to read {path}: {error}")
        raise typer.Exit(code=1) from error


@app.command()
def analyze(
    config: str = ConfigOption,
    use_remote: bool = RemoteOption,
    strategy: Optional[str] = typer.Option(None, "--strategy", help="Extraction strategy: rules or oracle."),
    save: bool = typer.Option(True, "--save/--no-save", help="Persist sections to the catalog store."),
) -> None:
    """Analyse the configured repository and group its editable content into sections."""
    config_data = _load_config(config)
    github_cfg = config_data["github"]
    analysis_cfg = config_data["analysis"]
    observer = LoggingObserver()
    oracle = TextOracle(_build_client(config_data, use_remote=use_remote))
    try:
        extractor = build_extractor(strategy or analysis_cfg.get("strategy", "rules"), oracle)
    except ValueError as error:
        raise typer.BadParameter(str(error)) from error

    analyzer = RepositoryAnalyzer(
        _build_github(config_data),
        extractor,
        SectionGrouper(oracle, observer=observer),
        ref=github_cfg.get("base_branch") or "main",
        root_path=github_cfg.get("root_path") or "",
        max_files=int(analysis_cfg.get("max_files", 50)),
        batch_size=int(analysis_cfg.get("batch_size", 5)),
        batch_pause=float(analysis_cfg.get("batch_pause", 0.5)),
        observer=observer,
    )
    try:
        result = analyzer.analyze(on_progress=lambda percent, message: typer.echo(f"[{percent:3d}%] {message}"))
    except GitHubError as error:
        typer.echo(f"Analysis failed: {error}")
        raise typer.Exit(code=1) from error

    for index, section in enumerate(result.sections, start=1):
        typer.echo(f"{index}. {section.name} ({section.source_file}:{section.start_line}-{section.end_line})")
        for element in section.elements:
            typer.echo(f"   - {element.name} [{element.type}] line {element.line}: {element.current_value}")
    if result.failed_files:
        typer.echo(f"Skipped {len(result.failed_files)} unreadable file(s): {', '.join(result.failed_files)}")

    if save and result.sections:
        with CatalogStore.from_config(config_data) as store:
            groups = store.save_sections(result.sections)
        typer.echo(f"Saved {len(groups)} section(s) to the catalog.")


@app.command()
def locate(
    fragment: str = typer.Argument(..., help="Rendered text to find in the repository."),
    config: str = ConfigOption,
) -> None:
    """Find the file and line that most likely holds FRAGMENT."""
    config_data = _load_config(config)
    locator = SourceLocator(
        _build_github(config_data),
        ref=config_data["github"].get("base_branch") or None,
        observer=LoggingObserver(),
    )
    location = locator.locate(fragment)
    if location is None:
        typer.echo("Not found.")
        raise typer.Exit(code=1)
    if not location.has_position:
        typer.echo(f"{location.file_path} (line unknown)")
        return
    typer.echo(f"{location.file_path}:{location.line}:{location.column}")
    typer.echo(location.context)


@app.command()
def extract(
    path: Path = typer.Argument(..., help="Local source file to scan."),
    config: str = ConfigOption,
    use_remote: bool = RemoteOption,
    strategy: str = typer.Option("rules", "--strategy", help="Extraction strategy: rules or oracle."),
) -> None:
    """List the editable elements found in a local file as JSON."""
    oracle = None
    if strategy == "oracle":
        oracle = TextOracle(_build_client(_load_config(config), use_remote=use_remote))
    try:
        extractor = build_extractor(strategy, oracle)
    except ValueError as error:
        raise typer.BadParameter(str(error)) from error
    elements = extractor.extract(_read_text(path), path.as_posix())
    payload = [
        {
            "type": element.type,
            "content": element.content,
            "line": element.line,
            "href": element.href,
            "confidence": element.confidence,
        }
        for element in elements
    ]
    typer.echo(json.dumps(payload, indent=2))


@app.command()
def patch(
    path: Path = typer.Argument(..., help="Local source file to edit."),
    old: str = typer.Option(..., "--old", help="Current text value."),
    new: str = typer.Option(..., "--new", help="Replacement text value."),
    name: str = typer.Option("Element", "--name", help="Element name used in descriptions."),
    element_type: str = typer.Option("text", "--type", help="Element type."),
    old_href: Optional[str] = typer.Option(None, "--old-href"),
    new_href: Optional[str] = typer.Option(None, "--new-href"),
    line: Optional[int] = typer.Option(None, "--line", help="1-based source line hint."),
    write: bool = typer.Option(False, "--write/--dry-run", help="Write the result back to PATH."),
    config: str = ConfigOption,
    use_remote: bool = RemoteOption,
) -> None:
    """Apply one edit to a local file and print the resulting diff."""
    content = _read_text(path)
    oracle = TextOracle(_build_client(_load_config(config), use_remote=use_remote))
    engine = PatchEngine(oracle, observer=LoggingObserver())
    instruction = EditInstruction(
        element_name=name,
        element_type=element_type,
        old_value=old,
        new_value=new,
        old_href=old_href,
        new_href=new_href,
        source_line=line,
    )
    result = engine.apply_edit(content, path.as_posix(), instruction)
    typer.echo(f"{result.method.value}: {result.description}")
    if result.fallback_reason:
        typer.echo(f"Oracle step skipped: {result.fallback_reason}")
    for warning in result.warnings:
        typer.echo(f"Warning: {warning}")
    if not result.success:
        typer.echo(f"Failed: {result.reason}")
        raise typer.Exit(code=1)
    if result.method is PatchMethod.NOOP:
        return
    typer.echo(content_diff(content, result.content))
    if write:
        path.write_text(result.content, encoding="utf-8")
        typer.echo(f"Wrote {path}.")


@app.command()
def validate(
    path: Path = typer.Argument(..., help="Local source file."),
    old: str = typer.Argument(..., help="Value that would be replaced."),
    new: str = typer.Argument(..., help="Replacement value."),
) -> None:
    """Check that replacing OLD with NEW in PATH is unambiguous and keeps quotes balanced."""
    result = validate_replacement(_read_text(path), old, new)
    if result.valid:
        typer.echo(f"OK ({result.occurrences} occurrence)")
        return
    typer.echo(f"Invalid: {result.error} ({result.occurrences} occurrence(s))")
    raise typer.Exit(code=1)


@app.command()
def diff(
    old_path: Path = typer.Argument(..., help="Original file."),
    new_path: Path = typer.Argument(..., help="Modified file."),
) -> None:
    """Print a line-aligned diff of two local files."""
    typer.echo(content_diff(_read_text(old_path), _read_text(new_path)))


@app.command()
def publish(
    edits_file: Path = typer.Argument(..., help="YAML or JSON list of edits."),
    project: str = typer.Option(..., "--project", "-p", help="Project name used in the branch name."),
    config: str = ConfigOption,
    use_remote: bool = RemoteOption,
) -> None:
    """Apply the edits in EDITS_FILE and open one pull request for them."""
    config_data = _load_config(config)
    edits = _load_edits(edits_file)
    observer = LoggingObserver()
    engine = PatchEngine(TextOracle(_build_client(config_data, use_remote=use_remote)), observer=observer)
    publisher = Publisher(_build_github(config_data), engine, observer=observer)
    base_branch = config_data["github"].get("base_branch") or "main"

    try:
        pull_request, plan = publisher.publish(project, edits, base_branch)
    except PublishError as error:
        typer.echo(f"Nothing to publish: {error}")
        raise typer.Exit(code=1) from error
    except GitHubError as error:
        typer.echo(f"Publishing failed: {error}")
        raise typer.Exit(code=1) from error

    for report in plan.reports:
        line = f"[{report.method.value}] {report.file_path}: {report.description}"
        if report.method is PatchMethod.FALLBACK and report.fallback_reason:
            line += f" (fallback: {report.fallback_reason})"
        if report.method is PatchMethod.FAILED:
            line += f" (failed: {report.reason})"
        typer.echo(line)
    typer.echo(f"Opened pull request #{pull_request.number}: {pull_request.url} ({pull_request.branch_name})")


@app.command()
def reconcile(
    pr_number: int = typer.Argument(..., help="Pull request number to check."),
    edits_file: Path = typer.Argument(..., help="Edits that were published in that pull request."),
    config: str = ConfigOption,
) -> None:
    """Update catalog values once the pull request has been merged."""
    config_data = _load_config(config)
    edits = _load_edits(edits_file)
    publisher = Publisher(_build_github(config_data), PatchEngine())
    try:
        with CatalogStore.from_config(config_data) as store:
            updated = publisher.reconcile_merged(pr_number, edits, store)
    except GitHubError as error:
        typer.echo(f"Failed to check pull request #{pr_number}: {error}")
        raise typer.Exit(code=1) from error
    typer.echo(f"Updated {len(updated)} catalog element(s).")


if __name__ == "__main__":  # pragma: no cover
    app()
