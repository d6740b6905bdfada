"""HTTP client wrapper for the GitHub API."""

import threading
from dataclasses import dataclass, field
from typing import Any, Protocol
from urllib.parse import quote

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..models.records import CommitInfo, TreeEntry, TreeListing
from .auth import GitHubAuth
from .url_parser import build_raw_url


class GitHubAPIError(Exception):
    """Exception raised for GitHub API errors."""

    def __init__(self, message: str, status_code: int | None = None, response: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.response = response


class ImportCancelled(Exception):
    """Raised when an import is cancelled. Not an error."""
    pass


def raise_if_cancelled(cancel_event: threading.Event | None) -> None:
    """Raise ImportCancelled if the cancellation signal is set."""
    if cancel_event is not None and cancel_event.is_set():
        raise ImportCancelled("Import cancelled")


@dataclass
class RawResponse:
    """Raw file response, including 304 Not Modified."""

    status_code: int
    content: bytes = b""
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def text(self) -> str:
        return self.content.decode("utf-8")

    @property
    def not_modified(self) -> bool:
        return self.status_code == 304


class RemoteTreeProvider(Protocol):
    """Operations the import engine needs from a remote repository host."""

    def resolve_ref(
        self, owner: str, repo: str, ref: str, cancel_event: threading.Event | None = None
    ) -> CommitInfo: ...

    def list_tree(
        self, owner: str, repo: str, tree_sha: str, cancel_event: threading.Event | None = None
    ) -> TreeListing: ...

    def fetch_raw(
        self,
        owner: str,
        repo: str,
        ref: str,
        path: str,
        headers: dict[str, str] | None = None,
        cancel_event: threading.Event | None = None,
    ) -> RawResponse: ...

    def get_content_metadata(
        self, owner: str, repo: str, ref: str, path: str, cancel_event: threading.Event | None = None
    ) -> dict[str, Any]: ...

    def download(self, url: str, cancel_event: threading.Event | None = None) -> bytes: ...


def build_retry_session(total: int = 3, backoff_factor: float = 0.5) -> requests.Session:
    """Create a session that retries transient failures with backoff.

    Connect and read errors plus 429/5xx responses are retried; the final
    response is returned rather than raised so callers see its status.
    """
    session = requests.Session()
    retry = Retry(
        total=total,
        connect=total,
        read=total,
        backoff_factor=backoff_factor,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods=frozenset({"GET", "HEAD"}),
        raise_on_status=False,
        respect_retry_after_header=True,
    )
    adapter = HTTPAdapter(max_retries=retry, pool_connections=10, pool_maxsize=20)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


class GitHubClient:
    """HTTP client for the GitHub REST API and raw content host."""

    TIMEOUT = 30

    def __init__(self, auth: GitHubAuth | None = None, session: requests.Session | None = None) -> None:
        """Initialize client with authentication.

        Args:
            auth: GitHubAuth instance (creates one from env if not provided)
            session: Optional preconfigured session (defaults to a retrying one)
        """
        self.auth = auth or GitHubAuth()
        self.session = session or build_retry_session()

    def _send(
        self,
        url: str,
        headers: dict[str, str],
        params: dict[str, str] | None = None,
        cancel_event: threading.Event | None = None,
    ) -> requests.Response:
        """Send a GET request and map transport failures to GitHubAPIError.

        Raises:
            ImportCancelled: If cancelled before or after the request
            GitHubAPIError: On transport failure after retries
        """
        raise_if_cancelled(cancel_event)
        try:
            response = self.session.get(url, headers=headers, params=params, timeout=self.TIMEOUT)
        except requests.RequestException as e:
            raise GitHubAPIError(f"Request failed: {e}") from e
        raise_if_cancelled(cancel_event)
        return response

    def _request(
        self,
        path: str,
        params: dict[str, str] | None = None,
        cancel_event: threading.Event | None = None,
    ) -> Any:
        """Make an authenticated GET request to the API.

        Args:
            path: API path (without base URL)
            params: Optional query parameters
            cancel_event: Optional cancellation signal

        Returns:
            Parsed JSON response

        Raises:
            GitHubAPIError: On API errors
        """
        response = self._send(
            self.auth.get_full_url(path),
            self.auth.get_headers(),
            params=params,
            cancel_event=cancel_event,
        )

        if response.status_code >= 400:
            error_msg = f"API error {response.status_code}: {response.text[:500]}"
            raise GitHubAPIError(error_msg, response.status_code, response)

        if not response.content:
            return {}

        return response.json()

    # -------------------------------------------------------------------------
    # Repository Operations
    # -------------------------------------------------------------------------

    def resolve_ref(
        self,
        owner: str,
        repo: str,
        ref: str,
        cancel_event: threading.Event | None = None,
    ) -> CommitInfo:
        """Resolve a branch, tag or SHA to its latest commit.

        Args:
            owner: Repository owner
            repo: Repository name
            ref: Branch, tag or commit SHA

        Returns:
            CommitInfo with commit and tree SHAs

        Raises:
            GitHubAPIError: If the repository or ref does not exist
        """
        path = f"/repos/{owner}/{repo}/commits"
        commits = self._request(path, {"sha": ref, "per_page": "1"}, cancel_event)

        if not isinstance(commits, list) or not commits:
            raise GitHubAPIError(f"No commits found for {owner}/{repo}@{ref}", 404)

        latest = commits[0]
        commit = latest.get("commit", {})
        date = (commit.get("committer") or {}).get("date") or (commit.get("author") or {}).get("date") or ""
        return CommitInfo(
            sha=latest.get("sha", ""),
            tree_sha=(commit.get("tree") or {}).get("sha", ""),
            message=commit.get("message", ""),
            date=date,
        )

    def list_tree(
        self,
        owner: str,
        repo: str,
        tree_sha: str,
        cancel_event: threading.Event | None = None,
    ) -> TreeListing:
        """List every entry of a tree in a single recursive call.

        Args:
            owner: Repository owner
            repo: Repository name
            tree_sha: Tree SHA from resolve_ref

        Returns:
            TreeListing of all entries (blobs and trees)
        """
        path = f"/repos/{owner}/{repo}/git/trees/{tree_sha}"
        response = self._request(path, {"recursive": "1"}, cancel_event)

        entries = [
            TreeEntry(
                path=item.get("path", ""),
                type=item.get("type", ""),
                sha=item.get("sha", ""),
                size=item.get("size"),
            )
            for item in response.get("tree", [])
        ]
        return TreeListing(
            sha=response.get("sha", tree_sha),
            entries=entries,
            truncated=bool(response.get("truncated", False)),
        )

    def fetch_raw(
        self,
        owner: str,
        repo: str,
        ref: str,
        path: str,
        headers: dict[str, str] | None = None,
        cancel_event: threading.Event | None = None,
    ) -> RawResponse:
        """Fetch raw file bytes, optionally as a conditional request.

        Args:
            owner: Repository owner
            repo: Repository name
            ref: Commit SHA (or branch/tag)
            path: File path within the repository
            headers: Extra headers such as If-None-Match

        Returns:
            RawResponse; status 304 is returned, not raised

        Raises:
            GitHubAPIError: On 4xx/5xx responses
        """
        request_headers = self.auth.get_headers(accept="*/*")
        request_headers.update(headers or {})

        url = build_raw_url(owner, repo, ref, path)
        response = self._send(url, request_headers, cancel_event=cancel_event)

        if response.status_code >= 400:
            raise GitHubAPIError(
                f"HTTP {response.status_code} fetching {path}",
                response.status_code,
                response,
            )

        return RawResponse(
            status_code=response.status_code,
            content=response.content if response.status_code != 304 else b"",
            headers={k.lower(): v for k, v in response.headers.items()},
        )

    def get_content_metadata(
        self,
        owner: str,
        repo: str,
        ref: str,
        path: str,
        cancel_event: threading.Event | None = None,
    ) -> dict[str, Any]:
        """Get metadata for a single file, including its download_url.

        Raises:
            GitHubAPIError: On API errors or when the path is a directory
        """
        api_path = f"/repos/{owner}/{repo}/contents/{quote(path.lstrip('/'))}"
        response = self._request(api_path, {"ref": ref}, cancel_event)

        if isinstance(response, list):
            raise GitHubAPIError(f"Path is a directory: {path}")
        return response  # type: ignore[no-any-return]

    def download(self, url: str, cancel_event: threading.Event | None = None) -> bytes:
        """Download bytes from a URL such as a download_url.

        Raises:
            GitHubAPIError: On 4xx/5xx responses
        """
        response = self._send(url, self.auth.get_headers(accept="*/*"), cancel_event=cancel_event)
        if response.status_code >= 400:
            raise GitHubAPIError(
                f"HTTP {response.status_code} downloading {url}",
                response.status_code,
                response,
            )
        return response.content

    # -------------------------------------------------------------------------
    # Health Check
    # -------------------------------------------------------------------------

    def verify_connection(self) -> dict[str, Any]:
        """Verify API connectivity and authentication.

        Returns:
            The authenticated user (with a token) or rate limit info

        Raises:
            GitHubAPIError: On connection or auth failure
        """
        if self.auth.token:
            return self._request("/user")  # type: ignore[no-any-return]
        return self._request("/rate_limit")  # type: ignore[no-any-return]
