from __future__ import annotations

import base64
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from contentpatch.models.llm_client import LLMClient, LLMTransportError  # noqa: E402
from contentpatch.models.oracle import TextOracle  # noqa: E402
from contentpatch.tools.github import (  # noqa: E402
    GitHubAPIError,
    GitHubNotFoundError,
    PullRequest,
    RemoteFile,
    TreeEntry,
)

ScriptedResponse = Union[str, Exception]


class ScriptedClient(LLMClient):
    """LLM client that replays canned raw responses in order."""

    def __init__(self, responses: List[ScriptedResponse]) -> None:
        super().__init__("scripted", max_attempts=1, retry_delay=0.0)
        self._responses = list(responses)
        self.payloads: List[Dict[str, Any]] = []

    def _raw_invoke(self, payload: Dict[str, Any]) -> str:
        self.payloads.append(payload)
        if not self._responses:
            raise LLMTransportError("script exhausted")
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture()
def make_oracle() -> Callable[..., TextOracle]:
    """Build a :class:`TextOracle` over a :class:`ScriptedClient`."""

    def factory(*responses: ScriptedResponse) -> TextOracle:
        return TextOracle(ScriptedClient(list(responses)))

    return factory


@dataclass
class FakeGitHub:
    """In-memory stand-in for the code host."""

    files: Dict[str, str] = field(default_factory=dict)
    search_results: Dict[str, List[str]] = field(default_factory=dict)
    tree: List[TreeEntry] = field(default_factory=list)
    unreadable: set[str] = field(default_factory=set)
    reject_updates: bool = False
    merged: bool = False
    reads: List[str] = field(default_factory=list)
    searches: List[str] = field(default_factory=list)
    branches: List[tuple[str, str]] = field(default_factory=list)
    updates: List[Dict[str, Any]] = field(default_factory=list)
    pull_requests: List[Dict[str, str]] = field(default_factory=list)

    @staticmethod
    def sha_of(text: str) -> str:
        return f"sha-{abs(hash(text)) % 10_000_000}"

    def get_file(self, path: str, ref: Optional[str] = None) -> RemoteFile:
        self.reads.append(path)
        if path in self.unreadable or path not in self.files:
            raise GitHubNotFoundError(f"GET {path} failed with HTTP 404: Not Found", status=404)
        text = self.files[path]
        encoded = base64.b64encode(text.encode("utf-8")).decode("ascii")
        return RemoteFile(path=path, sha=self.sha_of(text), content=encoded)

    def update_file(self, path: str, content: str, message: str, branch: str, sha: Optional[str] = None) -> dict:
        if self.reject_updates:
            raise GitHubAPIError(f"PUT {path} failed with HTTP 409: sha mismatch", status=409)
        self.updates.append({"path": path, "content": content, "message": message, "branch": branch, "sha": sha})
        return {}

    def create_branch(self, name: str, from_ref: str) -> None:
        self.branches.append((name, from_ref))

    def create_pull_request(self, title: str, body: str, head: str, base: str) -> PullRequest:
        self.pull_requests.append({"title": title, "body": body, "head": head, "base": base})
        number = len(self.pull_requests)
        return PullRequest(number=number, url=f"https://github.com/acme/site/pull/{number}")

    def get_pull_request(self, number: int) -> PullRequest:
        return PullRequest(
            number=number,
            url=f"https://github.com/acme/site/pull/{number}",
            merged=self.merged,
            state="closed" if self.merged else "open",
        )

    def search_code(self, query: str) -> List[str]:
        self.searches.append(query)
        return list(self.search_results.get(query, []))

    def list_tree(self, ref: str, *, recursive: bool = True) -> List[TreeEntry]:
        return list(self.tree)


@pytest.fixture()
def fake_github() -> FakeGitHub:
    return FakeGitHub()
