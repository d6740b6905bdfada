"""Tests for GitHub authentication."""

import os
from unittest.mock import patch

from docsync.core.auth import GitHubAuth


@patch("docsync.core.auth.load_dotenv")
class TestGitHubAuth:
    """Tests for GitHubAuth class."""

    def test_init_with_credentials(self, mock_dotenv) -> None:
        auth = GitHubAuth(token="ghp_test", api_url="https://github.example.com/api/v3/")

        assert auth.token == "ghp_test"
        assert auth.api_url == "https://github.example.com/api/v3"

    def test_init_from_env(self, mock_dotenv) -> None:
        with patch.dict(os.environ, {"GITHUB_TOKEN": "ghp_env"}, clear=True):
            auth = GitHubAuth()

        assert auth.token == "ghp_env"
        assert auth.api_url == "https://api.github.com"
        mock_dotenv.assert_called_once()

    def test_token_optional(self, mock_dotenv) -> None:
        with patch.dict(os.environ, {}, clear=True):
            auth = GitHubAuth()

        assert auth.token == ""
        assert not auth.verify_credentials()

    def test_get_headers(self, mock_dotenv) -> None:
        auth = GitHubAuth(token="ghp_test")

        headers = auth.get_headers()

        assert headers["Authorization"] == "Bearer ghp_test"
        assert headers["Accept"] == "application/vnd.github+json"
        assert headers["X-GitHub-Api-Version"] == "2022-11-28"
        assert "User-Agent" in headers

    def test_get_headers_anonymous(self, mock_dotenv) -> None:
        with patch.dict(os.environ, {}, clear=True):
            auth = GitHubAuth()

        headers = auth.get_headers(accept="*/*")

        assert "Authorization" not in headers
        assert headers["Accept"] == "*/*"

    def test_get_full_url(self, mock_dotenv) -> None:
        with patch.dict(os.environ, {}, clear=True):
            auth = GitHubAuth(token="t")

        assert auth.get_full_url("/repos/acme/widgets") == "https://api.github.com/repos/acme/widgets"
