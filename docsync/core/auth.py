"""Token authentication for the GitHub API."""

import os

from dotenv import load_dotenv


class GitHubAuth:
    """Handles GitHub API authentication with a personal access token.

    The token is optional: without one, requests are anonymous and subject
    to the lower unauthenticated rate limit.
    """

    def __init__(
        self,
        token: str | None = None,
        api_url: str | None = None,
    ) -> None:
        """Initialize authentication with credentials.

        Args:
            token: GitHub token (or load from GITHUB_TOKEN env)
            api_url: API base URL (or load from GITHUB_API_URL env)
        """
        load_dotenv()

        self.token = token or os.getenv("GITHUB_TOKEN", "")
        self.api_url = (api_url or os.getenv("GITHUB_API_URL", "https://api.github.com")).rstrip("/")

    def get_headers(self, accept: str = "application/vnd.github+json") -> dict[str, str]:
        """Generate headers for an API request.

        Args:
            accept: Accept header value

        Returns:
            Dictionary of headers, including Authorization when a token is set
        """
        headers = {
            "Accept": accept,
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "docsync",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def get_full_url(self, path: str) -> str:
        """Build full URL from the API base URL and a path."""
        return f"{self.api_url}{path}"

    def verify_credentials(self) -> bool:
        """Verify that a token is set (does not test API connectivity)."""
        return bool(self.token)
