from __future__ import annotations

import base64
import json
from typing import Any, Dict, List, Optional, Tuple

import pytest

from contentpatch.tools.github import (
    GitHubAPIError,
    GitHubAuthError,
    GitHubClient,
    GitHubNotFoundError,
    GitHubPermissionError,
    decode_file_content,
    encode_file_content,
)


class RecordingTransport:
    """Transport stub returning queued ``(status, body)`` pairs."""

    def __init__(self, *responses: Tuple[int, Any]) -> None:
        self._responses = list(responses)
        self.calls: List[Tuple[str, str, Optional[Dict[str, Any]]]] = []

    def __call__(self, method: str, path: str, body: Optional[Dict[str, Any]]) -> Tuple[int, str]:
        self.calls.append((method, path, body))
        status, payload = self._responses.pop(0)
        return status, payload if isinstance(payload, str) else json.dumps(payload)


def _client(transport: RecordingTransport) -> GitHubClient:
    return GitHubClient("token", "acme", "site", transport=transport)


def test_file_content_codec_handles_wrapped_base64() -> None:
    text = "<h1>Héllo</h1>\n" * 20
    encoded = base64.b64encode(text.encode("utf-8")).decode("ascii")
    wrapped = "\n".join(encoded[i : i + 60] for i in range(0, len(encoded), 60))

    assert decode_file_content(wrapped) == text
    assert decode_file_content(encode_file_content("plain")) == "plain"


def test_get_file_decodes_content_and_keeps_sha() -> None:
    transport = RecordingTransport(
        (200, {"path": "src/App.tsx", "sha": "abc123", "content": encode_file_content("<p>Hi</p>")})
    )

    remote = _client(transport).get_file("src/App.tsx", "main")

    assert remote.sha == "abc123"
    assert remote.text == "<p>Hi</p>"
    assert transport.calls == [("GET", "/repos/acme/site/contents/src/App.tsx?ref=main", None)]


def test_get_file_rejects_directories() -> None:
    transport = RecordingTransport((200, [{"path": "src/a.tsx"}]))

    with pytest.raises(GitHubAPIError):
        _client(transport).get_file("src")


def test_update_file_sends_sha_and_encoded_content() -> None:
    transport = RecordingTransport((200, {"content": {}}))

    _client(transport).update_file("src/App.tsx", "<p>Bye</p>", "[cms] Update", "cms-update-x-1", "abc123")

    method, path, body = transport.calls[0]
    assert (method, path) == ("PUT", "/repos/acme/site/contents/src/App.tsx")
    assert body == {
        "message": "[cms] Update",
        "content": encode_file_content("<p>Bye</p>"),
        "branch": "cms-update-x-1",
        "sha": "abc123",
    }


def test_create_branch_resolves_base_sha() -> None:
    transport = RecordingTransport((200, {"object": {"sha": "deadbeef"}}), (201, {"ref": "refs/heads/feature"}))

    _client(transport).create_branch("feature", "main")

    assert transport.calls == [
        ("GET", "/repos/acme/site/git/ref/heads/main", None),
        ("POST", "/repos/acme/site/git/refs", {"ref": "refs/heads/feature", "sha": "deadbeef"}),
    ]


def test_pull_request_round_trip() -> None:
    transport = RecordingTransport(
        (201, {"number": 7, "html_url": "https://github.com/acme/site/pull/7", "state": "open"}),
        (200, {"number": 7, "html_url": "https://github.com/acme/site/pull/7", "state": "closed", "merged": True}),
    )
    client = _client(transport)

    created = client.create_pull_request("(cms): update title", "body", "feature", "main")
    fetched = client.get_pull_request(7)

    assert (created.number, created.url, created.merged) == (7, "https://github.com/acme/site/pull/7", False)
    assert fetched.merged is True
    assert fetched.state == "closed"


def test_search_code_scopes_query_to_repository() -> None:
    transport = RecordingTransport((200, {"items": [{"path": "src/Hero.tsx"}, {"name": "no-path"}]}))

    paths = _client(transport).search_code("Ship faster")

    assert paths == ["src/Hero.tsx"]
    assert transport.calls[0][1] == "/search/code?q=Ship%20faster%20repo%3Aacme%2Fsite"


def test_list_tree_returns_entries() -> None:
    transport = RecordingTransport(
        (200, {"tree": [{"path": "src", "type": "tree"}, {"path": "src/App.tsx", "type": "blob"}], "truncated": False})
    )

    entries = _client(transport).list_tree("main")

    assert [(entry.path, entry.type) for entry in entries] == [("src", "tree"), ("src/App.tsx", "blob")]
    assert transport.calls[0][1] == "/repos/acme/site/git/trees/main?recursive=1"


@pytest.mark.parametrize(
    ("status", "error_type"),
    [
        (401, GitHubAuthError),
        (403, GitHubPermissionError),
        (404, GitHubNotFoundError),
        (409, GitHubAPIError),
        (500, GitHubAPIError),
    ],
)
def test_error_statuses_map_to_typed_errors(status: int, error_type: type) -> None:
    transport = RecordingTransport((status, {"message": "nope"}))

    with pytest.raises(error_type) as excinfo:
        _client(transport).get_file("src/App.tsx")

    assert excinfo.value.status == status
    assert f"HTTP {status}: nope" in str(excinfo.value)


def test_from_config_reads_token_from_environment(monkeypatch) -> None:
    monkeypatch.setenv("GITHUB_TOKEN", "env-token")
    client = GitHubClient.from_config({"github": {"owner": "acme", "repo": "site"}})

    assert client.full_name == "acme/site"


def test_from_config_requires_token_and_repository(monkeypatch) -> None:
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    monkeypatch.delenv("GH_TOKEN", raising=False)

    with pytest.raises(GitHubAuthError):
        GitHubClient.from_config({"github": {"owner": "acme", "repo": "site"}})
    with pytest.raises(ValueError):
        GitHubClient.from_config({"github": {"token": "t", "owner": "acme"}})
