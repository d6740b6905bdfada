"""Tests for the GitHub API client."""

import threading
from unittest.mock import MagicMock

import pytest
import requests

from docsync.core.auth import GitHubAuth
from docsync.core.client import (
    GitHubAPIError,
    GitHubClient,
    ImportCancelled,
    build_retry_session,
)


def make_response(status_code: int = 200, json_data=None, content: bytes = b"", headers=None) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = json_data
    response.content = content or (b"{}" if json_data is not None else b"")
    response.text = response.content.decode("utf-8")
    response.headers = headers or {}
    return response


def make_client(*responses: MagicMock) -> tuple[GitHubClient, MagicMock]:
    session = MagicMock()
    session.get.side_effect = list(responses)
    return GitHubClient(auth=GitHubAuth(token="ghp_test"), session=session), session


class TestGitHubClient:
    """Tests for GitHubClient class."""

    def test_resolve_ref(self) -> None:
        commits = [{
            "sha": "abc123",
            "commit": {
                "tree": {"sha": "tree456"},
                "message": "Fix typo\n\nDetails",
                "committer": {"date": "2024-01-01T00:00:00Z"},
            },
        }]
        client, session = make_client(make_response(json_data=commits))

        commit = client.resolve_ref("acme", "widgets", "main")

        assert commit.sha == "abc123"
        assert commit.tree_sha == "tree456"
        assert commit.summary == "Fix typo"
        assert commit.date == "2024-01-01T00:00:00Z"
        url = session.get.call_args[0][0]
        assert url == "https://api.github.com/repos/acme/widgets/commits"
        assert session.get.call_args[1]["params"] == {"sha": "main", "per_page": "1"}

    def test_resolve_ref_empty(self) -> None:
        client, _ = make_client(make_response(json_data=[]))

        with pytest.raises(GitHubAPIError) as exc_info:
            client.resolve_ref("acme", "widgets", "main")

        assert exc_info.value.status_code == 404

    def test_api_error(self) -> None:
        client, _ = make_client(make_response(404, content=b'{"message": "Not Found"}'))

        with pytest.raises(GitHubAPIError, match="404") as exc_info:
            client.resolve_ref("acme", "widgets", "main")

        assert exc_info.value.status_code == 404

    def test_list_tree(self) -> None:
        listing = {
            "sha": "tree456",
            "truncated": True,
            "tree": [
                {"path": "docs", "type": "tree", "sha": "t1"},
                {"path": "docs/a.md", "type": "blob", "sha": "b1", "size": 10},
            ],
        }
        client, session = make_client(make_response(json_data=listing))

        result = client.list_tree("acme", "widgets", "tree456")

        assert result.truncated
        assert [e.path for e in result.entries] == ["docs", "docs/a.md"]
        assert result.entries[1].size == 10
        assert session.get.call_args[1]["params"] == {"recursive": "1"}

    def test_fetch_raw(self) -> None:
        client, session = make_client(make_response(content=b"# A\n", headers={"ETag": '"e1"'}))

        result = client.fetch_raw("acme", "widgets", "abc", "docs/a.md", {"If-None-Match": '"e0"'})

        assert result.text == "# A\n"
        assert result.headers == {"etag": '"e1"'}
        url = session.get.call_args[0][0]
        headers = session.get.call_args[1]["headers"]
        assert url == "https://raw.githubusercontent.com/acme/widgets/abc/docs/a.md"
        assert headers["If-None-Match"] == '"e0"'
        assert headers["Authorization"] == "Bearer ghp_test"

    def test_fetch_raw_not_modified(self) -> None:
        client, _ = make_client(make_response(304, headers={"ETag": '"e1"'}))

        result = client.fetch_raw("acme", "widgets", "abc", "docs/a.md")

        assert result.not_modified
        assert result.content == b""

    def test_fetch_raw_error(self) -> None:
        client, _ = make_client(make_response(500))

        with pytest.raises(GitHubAPIError) as exc_info:
            client.fetch_raw("acme", "widgets", "abc", "docs/a.md")

        assert exc_info.value.status_code == 500

    def test_transport_error(self) -> None:
        session = MagicMock()
        session.get.side_effect = requests.ConnectionError("connection refused")
        client = GitHubClient(auth=GitHubAuth(token="t"), session=session)

        with pytest.raises(GitHubAPIError, match="Request failed"):
            client.resolve_ref("acme", "widgets", "main")

    def test_cancelled_before_request(self) -> None:
        client, session = make_client(make_response(json_data=[]))
        event = threading.Event()
        event.set()

        with pytest.raises(ImportCancelled):
            client.resolve_ref("acme", "widgets", "main", event)

        session.get.assert_not_called()

    def test_content_metadata_directory(self) -> None:
        client, _ = make_client(make_response(json_data=[{"name": "a.png"}]))

        with pytest.raises(GitHubAPIError, match="directory"):
            client.get_content_metadata("acme", "widgets", "abc", "docs/img")

    def test_content_metadata_and_download(self) -> None:
        client, session = make_client(
            make_response(json_data={"download_url": "https://raw.example.com/x.png"}),
            make_response(content=b"PNG"),
        )

        metadata = client.get_content_metadata("acme", "widgets", "abc", "docs/x.png")
        data = client.download(metadata["download_url"])

        assert data == b"PNG"
        assert session.get.call_args_list[0][1]["params"] == {"ref": "abc"}

    def test_verify_connection_uses_user_endpoint(self) -> None:
        client, session = make_client(make_response(json_data={"login": "octocat"}))

        assert client.verify_connection() == {"login": "octocat"}
        assert session.get.call_args[0][0].endswith("/user")


class TestRetrySession:
    """Tests for the retrying session."""

    def test_adapters_retry(self) -> None:
        session = build_retry_session(total=2)
        retry = session.get_adapter("https://api.github.com").max_retries

        assert retry.total == 2
        assert 503 in retry.status_forcelist
