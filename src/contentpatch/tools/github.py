"""Small GitHub REST client covering the repository calls the pipeline needs."""

from __future__ import annotations

import base64
import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple
from urllib.parse import quote

__all__ = [
    "GitHubAPIError",
    "GitHubAuthError",
    "GitHubClient",
    "GitHubError",
    "GitHubNotFoundError",
    "GitHubPermissionError",
    "GitHubTransportError",
    "PullRequest",
    "RemoteFile",
    "TreeEntry",
    "decode_file_content",
    "encode_file_content",
]

LOGGER = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"
API_VERSION = "2022-11-28"

Transport = Callable[[str, str, Optional[Dict[str, Any]]], Tuple[int, str]]


class GitHubError(RuntimeError):
    """Raised when the code host rejects or fails a request."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class GitHubNotFoundError(GitHubError):
    """404: file, ref, repository or pull request does not exist."""


class GitHubAuthError(GitHubError):
    """401: missing or invalid token."""


class GitHubPermissionError(GitHubError):
    """403: token lacks access to the repository."""


class GitHubAPIError(GitHubError):
    """Any other non-2xx response, including stale-SHA write conflicts."""


class GitHubTransportError(GitHubError):
    """The request never produced an HTTP response."""


_STATUS_ERRORS: Dict[int, type[GitHubError]] = {
    401: GitHubAuthError,
    403: GitHubPermissionError,
    404: GitHubNotFoundError,
}


def decode_file_content(encoded: str) -> str:
    """Decode the base64 payload returned by the contents API."""
    return base64.b64decode(encoded.replace("\n", "")).decode("utf-8")


def encode_file_content(text: str) -> str:
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


@dataclass(slots=True)
class RemoteFile:
    path: str
    sha: str
    content: str

    @property
    def text(self) -> str:
        return decode_file_content(self.content)


@dataclass(slots=True)
class TreeEntry:
    path: str
    type: str


@dataclass(slots=True)
class PullRequest:
    number: int
    url: str
    merged: bool = False
    state: str = "open"


class GitHubClient:
    """Repository-scoped client; ``transport`` can be injected for tests."""

    def __init__(
        self,
        token: str,
        owner: str,
        repo: str,
        *,
        api_url: str = DEFAULT_API_URL,
        transport: Optional[Transport] = None,
        timeout: float = 30.0,
    ) -> None:
        self._token = token
        self.owner = owner
        self.repo = repo
        self._api_url = api_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport or self._http_transport

    @classmethod
    def from_config(cls, config: Mapping[str, Any], *, transport: Optional[Transport] = None) -> "GitHubClient":
        section = config.get("github", {}) if isinstance(config, Mapping) else {}
        token = section.get("token") or os.getenv("GITHUB_TOKEN") or os.getenv("GH_TOKEN")
        if not token:
            raise GitHubAuthError("GitHub token is not configured (github.token or GITHUB_TOKEN).", status=401)
        owner = section.get("owner")
        repo = section.get("repo")
        if not owner or not repo:
            raise ValueError("github.owner and github.repo must be configured.")
        return cls(
            token,
            owner,
            repo,
            api_url=section.get("api_url") or DEFAULT_API_URL,
            transport=transport,
            timeout=float(section.get("timeout", 30.0)),
        )

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    # ------------------------------------------------------------------ files
    def get_file(self, path: str, ref: Optional[str] = None) -> RemoteFile:
        suffix = f"?ref={quote(ref, safe='')}" if ref else ""
        data = self._request("GET", f"{self._repo_path}/contents/{quote(path)}{suffix}")
        if not isinstance(data, dict) or "content" not in data:
            raise GitHubAPIError(f"{path} is not a file", status=200)
        return RemoteFile(path=data.get("path", path), sha=data.get("sha", ""), content=data["content"])

    def update_file(
        self,
        path: str,
        content: str,
        message: str,
        branch: str,
        sha: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Write ``content`` to ``path`` on ``branch``; a stale ``sha`` is rejected by the host."""
        body: Dict[str, Any] = {
            "message": message,
            "content": encode_file_content(content),
            "branch": branch,
        }
        if sha:
            body["sha"] = sha
        LOGGER.info("Updating %s on %s", path, branch)
        return self._request("PUT", f"{self._repo_path}/contents/{quote(path)}", body)

    # ------------------------------------------------------------------ refs and pulls
    def create_branch(self, name: str, from_ref: str) -> None:
        ref = self._request("GET", f"{self._repo_path}/git/ref/heads/{quote(from_ref)}")
        sha = ref["object"]["sha"]
        LOGGER.info("Creating branch %s from %s (%s)", name, from_ref, sha[:7])
        self._request("POST", f"{self._repo_path}/git/refs", {"ref": f"refs/heads/{name}", "sha": sha})

    def create_pull_request(self, title: str, body: str, head: str, base: str) -> PullRequest:
        data = self._request(
            "POST",
            f"{self._repo_path}/pulls",
            {"title": title, "body": body, "head": head, "base": base},
        )
        return self._pull_request(data)

    def get_pull_request(self, number: int) -> PullRequest:
        return self._pull_request(self._request("GET", f"{self._repo_path}/pulls/{number}"))

    # ------------------------------------------------------------------ discovery
    def search_code(self, query: str) -> List[str]:
        """Return the paths of files matching ``query`` inside this repository."""
        terms = quote(f"{query} repo:{self.full_name}", safe="")
        data = self._request("GET", f"/search/code?q={terms}")
        return [item["path"] for item in data.get("items", []) if isinstance(item, dict) and "path" in item]

    def list_tree(self, ref: str, *, recursive: bool = True) -> List[TreeEntry]:
        suffix = "?recursive=1" if recursive else ""
        data = self._request("GET", f"{self._repo_path}/git/trees/{quote(ref, safe='')}{suffix}")
        if data.get("truncated"):
            LOGGER.warning("Tree listing for %s@%s was truncated by the host", self.full_name, ref)
        return [
            TreeEntry(path=item["path"], type=item.get("type", "blob"))
            for item in data.get("tree", [])
            if isinstance(item, dict) and "path" in item
        ]

    # ------------------------------------------------------------------ internals
    @property
    def _repo_path(self) -> str:
        return f"/repos/{self.owner}/{self.repo}"

    @staticmethod
    def _pull_request(data: Mapping[str, Any]) -> PullRequest:
        return PullRequest(
            number=int(data["number"]),
            url=data.get("html_url") or data.get("url", ""),
            merged=bool(data.get("merged", False)),
            state=data.get("state", "open"),
        )

    def _request(self, method: str, path: str, body: Optional[Dict[str, Any]] = None) -> Any:
        status, text = self._transport(method, path, body)
        if 200 <= status < 300:
            if not text:
                return {}
            try:
                return json.loads(text)
            except json.JSONDecodeError as error:
                raise GitHubAPIError(f"{method} {path} returned invalid JSON", status=status) from error

        message = text
        try:
            payload = json.loads(text) if text else {}
            if isinstance(payload, dict) and payload.get("message"):
                message = str(payload["message"])
        except json.JSONDecodeError:
            pass
        error_type = _STATUS_ERRORS.get(status, GitHubAPIError)
        raise error_type(f"{method} {path} failed with HTTP {status}: {message[:200]}", status=status)

    def _http_transport(self, method: str, path: str, body: Optional[Dict[str, Any]]) -> Tuple[int, str]:
        """Default transport built on ``urllib``; HTTP errors come back as statuses."""
        import urllib.error
        import urllib.request

        headers = {
            "Authorization": f"Bearer {self._token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": API_VERSION,
            "User-Agent": "contentpatch/0.1",
        }
        data = None
        if body is not None:
            data = json.dumps(body).encode("utf-8")
            headers["Content-Type"] = "application/json"
        request = urllib.request.Request(f"{self._api_url}{path}", data=data, headers=headers, method=method)

        try:
            with urllib.request.urlopen(request, timeout=self._timeout) as response:
                return getattr(response, "status", 200), response.read().decode("utf-8")
        except urllib.error.HTTPError as error:  # pragma: no cover - network-dependent
            return error.code, error.read().decode("utf-8", errors="ignore")
        except TimeoutError as error:  # pragma: no cover - network-dependent
            raise GitHubTransportError(f"{method} {path} timed out") from error
        except urllib.error.URLError as error:  # pragma: no cover - network-dependent
            raise GitHubTransportError(f"Failed to reach {self._api_url}: {error.reason}") from error
