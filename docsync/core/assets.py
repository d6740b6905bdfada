"""Embedded media detection, download and reference rewriting."""

import hashlib
import posixpath
import re
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from ..models.config import SourceConfig, ensure_within_root
from ..models.records import AssetReference
from .client import GitHubAPIError, ImportCancelled, RemoteTreeProvider
from .logger import ImportLogger

MARKDOWN_IMAGE_RE = re.compile(r'!\[[^\]]*\]\(\s*<?([^)\s>]+)>?(?:\s+"[^"]*")?\s*\)')
HTML_MEDIA_RE = re.compile(
    r'<(?:img|source|video|audio)\b[^>]*?\bsrc\s*=\s*["\']([^"\']+)["\'][^>]*>',
    re.IGNORECASE,
)

DEFAULT_ASSETS_DIRNAME = "assets"
MAX_ASSET_WORKERS = 4


class AssetNotFoundError(GitHubAPIError):
    """Raised when an embedded asset does not exist in the repository."""
    pass


@dataclass(frozen=True)
class AssetSettings:
    """Where assets of one document are written and how they are linked."""

    path: str  # Project-relative directory
    base_url: str  # Prefix used in rewritten references


@dataclass
class AssetResult:
    """Content with localized references plus download counts."""

    content: str
    downloaded: int = 0
    cached: int = 0
    failed: int = 0
    references: list[AssetReference] = field(default_factory=list)


def is_external_reference(target: str) -> bool:
    """Check for scheme URLs, protocol-relative URLs and data URIs."""
    lowered = target.lower()
    return "://" in target or lowered.startswith(("//", "data:", "mailto:"))


def _strip_query(target: str) -> str:
    return re.split(r'[?#]', target, maxsplit=1)[0]


def has_asset_extension(target: str, patterns: list[str]) -> bool:
    """Check a reference's extension against configured patterns (".png" or "*.png")."""
    extension = posixpath.splitext(_strip_query(target))[1].lower()
    if not extension:
        return False
    return extension in {p.lstrip("*").lower() for p in patterns}


def detect_assets(content: str, patterns: list[str]) -> list[str]:
    """Find local media references in markdown image and HTML media syntax.

    Returns:
        Unique reference targets in order of first appearance
    """
    found: list[str] = []
    for regex in (MARKDOWN_IMAGE_RE, HTML_MEDIA_RE):
        for match in regex.finditer(content):
            target = match.group(1).strip()
            if (
                target
                and target not in found
                and not is_external_reference(target)
                and has_asset_extension(target, patterns)
            ):
                found.append(target)
    return found


def resolve_asset_path(reference: str, document_path: str) -> str:
    """Resolve a reference to a repository path.

    Leading "/" means repository root; anything else is relative to the
    document's directory.
    """
    clean = _strip_query(reference)
    if clean.startswith("/"):
        return posixpath.normpath(clean.lstrip("/"))
    return posixpath.normpath(posixpath.join(posixpath.dirname(document_path), clean))


def unique_asset_name(repo_path: str, blob_sha: str | None = None) -> str:
    """Stable, collision-resistant local filename for an asset.

    The suffix is derived from the repository path and, when known, the blob
    SHA. Same-named assets in other folders never collide, and a changed
    upstream asset gets a new name so it is downloaded again.
    """
    stem, extension = posixpath.splitext(posixpath.basename(repo_path))
    key = f"{repo_path}@{blob_sha}" if blob_sha else repo_path
    suffix = hashlib.sha1(key.encode("utf-8")).hexdigest()[:8]
    return f"{stem}-{suffix}{extension}"


def join_asset_url(base_url: str, filename: str) -> str:
    """Join base URL and filename, collapsing duplicate slashes."""
    return re.sub(r'(?<!:)/{2,}', '/', f"{base_url}/{filename}")


def resolve_asset_settings(
    source: SourceConfig,
    base_path: str,
    target_path: str,
) -> AssetSettings | None:
    """Decide where a document's assets go.

    Explicit assets_path plus assets_base_url wins. Neither set means an
    "assets" folder under the rule's base path, linked relative to the
    document's destination. Only one of them set disables assets.
    """
    if source.assets_path and source.assets_base_url:
        return AssetSettings(path=source.assets_path, base_url=source.assets_base_url)
    if source.assets_path or source.assets_base_url:
        return None

    assets_dir = posixpath.normpath(posixpath.join(base_path, DEFAULT_ASSETS_DIRNAME))
    relative = posixpath.relpath(assets_dir, posixpath.dirname(target_path) or ".")
    if not relative.startswith("."):
        relative = f"./{relative}"
    return AssetSettings(path=assets_dir, base_url=relative)


def asset_directories(source: SourceConfig, default_base_path: str = ".") -> list[str]:
    """Project-relative directories that may hold downloaded assets."""
    if source.assets_path:
        return [posixpath.normpath(source.assets_path)]
    if source.assets_base_url:
        return []
    base_paths = [r.base_path for r in source.includes] or [default_base_path]
    return sorted({posixpath.normpath(posixpath.join(b, DEFAULT_ASSETS_DIRNAME)) for b in base_paths})


def rewrite_asset_references(content: str, replacements: dict[str, str]) -> str:
    """Replace every markdown and HTML occurrence of each original target."""
    for original, url in replacements.items():
        escaped = re.escape(original)
        content = re.sub(
            r'(!\[[^\]]*\]\(\s*<?)' + escaped + r'(?=[>\s)])',
            lambda m: m.group(1) + url,
            content,
        )
        content = re.sub(
            r'(<(?:img|source|video|audio)\b[^>]*?\bsrc\s*=\s*["\'])' + escaped + r'(?=["\'])',
            lambda m: m.group(1) + url,
            content,
            flags=re.IGNORECASE,
        )
    return content


def _fetch_asset(
    client: RemoteTreeProvider,
    source: SourceConfig,
    ref: str,
    repo_path: str,
    destination: Path,
    cancel_event: threading.Event | None,
) -> str:
    """Download one asset unless it is already on disk.

    Returns:
        "cached" or "downloaded"
    """
    if destination.exists():
        return "cached"

    try:
        metadata = client.get_content_metadata(source.owner, source.repo, ref, repo_path, cancel_event)
    except GitHubAPIError as e:
        if e.status_code == 404:
            raise AssetNotFoundError(f"Asset not found: {repo_path}", 404) from e
        raise

    download_url = metadata.get("download_url")
    if not download_url:
        raise GitHubAPIError(f"No download URL for {repo_path}")

    data = client.download(download_url, cancel_event)
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_bytes(data)
    return "downloaded"


def process_assets(
    client: RemoteTreeProvider,
    source: SourceConfig,
    ref: str,
    content: str,
    document_path: str,
    settings: AssetSettings,
    project_root: Path,
    logger: ImportLogger | None = None,
    cancel_event: threading.Event | None = None,
    blob_shas: dict[str, str] | None = None,
) -> AssetResult:
    """Download a document's embedded assets and point references at them.

    Failed assets are logged and their references left untouched.

    Args:
        client: Remote tree provider
        source: Source being imported
        ref: Commit SHA to fetch at
        content: Document content as fetched
        document_path: Remote path of the document
        settings: Asset directory and URL prefix
        project_root: Root every write must stay within
        blob_shas: Repository path -> blob SHA from the tree listing, used to
            give changed assets a new local name

    Raises:
        ImportCancelled: If cancelled
    """
    references = detect_assets(content, source.asset_patterns)
    result = AssetResult(content=content)
    if not references:
        return result

    planned: list[AssetReference] = []
    for reference in references:
        repo_path = resolve_asset_path(reference, document_path)
        filename = unique_asset_name(repo_path, (blob_shas or {}).get(repo_path))
        planned.append(AssetReference(
            original=reference,
            repo_path=repo_path,
            filename=filename,
            url=join_asset_url(settings.base_url, filename),
        ))

    replacements: dict[str, str] = {}
    workers = min(MAX_ASSET_WORKERS, len(planned))
    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = {}
        for asset in planned:
            try:
                destination = ensure_within_root(posixpath.join(settings.path, asset.filename), project_root)
            except ValueError as e:
                if logger:
                    logger.warn(f"Skipping asset {asset.repo_path}: {e}")
                result.failed += 1
                continue
            futures[asset] = executor.submit(
                _fetch_asset, client, source, ref, asset.repo_path, destination, cancel_event
            )

        for asset, future in futures.items():
            try:
                status = future.result()
            except ImportCancelled:
                executor.shutdown(wait=False, cancel_futures=True)
                raise
            except AssetNotFoundError as e:
                if logger:
                    logger.warn(str(e))
                result.failed += 1
                continue
            except Exception as e:
                if logger:
                    logger.warn(f"Failed to fetch asset {asset.repo_path}: {e}")
                result.failed += 1
                continue

            if status == "cached":
                result.cached += 1
            else:
                result.downloaded += 1
            if logger:
                logger.log_asset_processing(status, asset.repo_path, asset.filename)
            replacements[asset.original] = asset.url
            result.references.append(asset)

    result.content = rewrite_asset_references(content, replacements)
    return result
