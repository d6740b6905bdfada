"""URL parsing utilities for GitHub repository URLs.

This module provides functions to parse and construct GitHub URLs,
extracting the owner, repository name and ref used by a source entry.
"""

import re
from urllib.parse import quote, urlparse


class GitHubUrlParseError(ValueError):
    """Raised when URL parsing fails."""
    pass


def parse_url(url: str) -> dict[str, str | None]:
    """Parse a GitHub repository URL into its components.

    Supported formats:
    - https://github.com/{owner}/{repo}
    - https://github.com/{owner}/{repo}.git
    - https://github.com/{owner}/{repo}/tree/{ref}
    - https://github.com/{owner}/{repo}/blob/{ref}/{path}
    - git@github.com:{owner}/{repo}.git
    - {owner}/{repo}@{ref} (shorthand)

    Refs containing slashes are ambiguous in tree/blob URLs; the first
    segment after tree/blob is taken as the ref.

    Args:
        url: GitHub URL or shorthand to parse

    Returns:
        Dictionary with keys: owner, repo, ref, path (values are None if
        not present)

    Raises:
        GitHubUrlParseError: If URL format is invalid
    """
    url = url.strip()
    result: dict[str, str | None] = {
        "owner": None,
        "repo": None,
        "ref": None,
        "path": None,
    }

    # SSH remote form
    ssh_match = re.match(r'^git@github\.com:([^/]+)/([^/]+?)(?:\.git)?/?$', url)
    if ssh_match:
        result["owner"] = ssh_match.group(1)
        result["repo"] = ssh_match.group(2)
        return result

    # owner/repo@ref shorthand
    short_match = re.match(r'^([A-Za-z0-9-]+)/([A-Za-z0-9._-]+?)(?:@(.+))?$', url)
    if short_match and "://" not in url:
        result["owner"] = short_match.group(1)
        result["repo"] = short_match.group(2)
        result["ref"] = short_match.group(3)
        return result

    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        raise GitHubUrlParseError(f"Invalid URL format: {url}")

    if parsed.netloc.lower() not in ("github.com", "www.github.com"):
        raise GitHubUrlParseError(f"Not a GitHub URL: {url}")

    parts = [p for p in parsed.path.split("/") if p]
    if len(parts) < 2:
        raise GitHubUrlParseError(f"Unable to parse GitHub URL: {url}")

    result["owner"] = parts[0]
    result["repo"] = re.sub(r'\.git$', '', parts[1])

    if len(parts) >= 4 and parts[2] in ("tree", "blob"):
        result["ref"] = parts[3]
        if len(parts) > 4:
            result["path"] = "/".join(parts[4:])

    return result


def extract_source_identity(url: str) -> tuple[str, str, str | None]:
    """Extract owner, repository and ref from a URL.

    Args:
        url: GitHub URL or owner/repo@ref shorthand

    Returns:
        Tuple of (owner, repo, ref)

    Raises:
        GitHubUrlParseError: If owner or repo cannot be determined
    """
    parsed = parse_url(url)
    owner = parsed["owner"]
    repo = parsed["repo"]
    if not owner or not repo:
        raise GitHubUrlParseError(f"No repository found in URL: {url}")
    return owner, repo, parsed["ref"]


def build_url(owner: str, repo: str, ref: str | None = None) -> str:
    """Construct a GitHub web URL from components.

    Args:
        owner: Repository owner
        repo: Repository name
        ref: Optional branch, tag or commit

    Returns:
        Constructed URL
    """
    url = f"https://github.com/{owner}/{repo}"
    if ref:
        url += f"/tree/{ref}"
    return url


def build_raw_url(owner: str, repo: str, ref: str, path: str) -> str:
    """Construct a raw.githubusercontent.com URL for a file at a ref.

    Args:
        owner: Repository owner
        repo: Repository name
        ref: Commit SHA, branch or tag
        path: File path within the repository

    Returns:
        Raw content URL
    """
    return f"https://raw.githubusercontent.com/{owner}/{repo}/{ref}/{quote(path.lstrip('/'))}"
