"""Conditional fetching with ETag / Last-Modified revalidation."""

import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from ..models.config import SourceConfig
from .client import RemoteTreeProvider
from .logger import ImportLogger


class KeyValueStore(Protocol):
    """Minimal key-value interface used for cache tags."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> bool: ...


def etag_key(stable_id: str) -> str:
    return f"{stable_id}-etag"


def last_modified_key(stable_id: str) -> str:
    return f"{stable_id}-last-modified"


def conditional_headers(meta: KeyValueStore, stable_id: str) -> dict[str, str]:
    """Build revalidation headers from the stored cache tag.

    An ETag is preferred; Last-Modified is used only when no ETag is stored.
    """
    etag = meta.get(etag_key(stable_id))
    if etag:
        return {"If-None-Match": etag}
    last_modified = meta.get(last_modified_key(stable_id))
    if last_modified:
        return {"If-Modified-Since": last_modified}
    return {}


def extract_cache_tags(headers: dict[str, str]) -> dict[str, str]:
    """Pick the revalidation tag from response headers (lowercase keys)."""
    if headers.get("etag"):
        return {"etag": headers["etag"]}
    if headers.get("last-modified"):
        return {"last-modified": headers["last-modified"]}
    return {}


def store_cache_tags(meta: KeyValueStore, stable_id: str, tags: dict[str, str]) -> None:
    """Replace the stored cache tag of one id.

    Both keys are cleared first so an old Last-Modified never outlives a
    newer ETag (or the reverse).
    """
    clear_cache_tags(meta, stable_id)
    if tags.get("etag"):
        meta.set(etag_key(stable_id), tags["etag"])
    elif tags.get("last-modified"):
        meta.set(last_modified_key(stable_id), tags["last-modified"])


def clear_cache_tags(meta: KeyValueStore, stable_id: str) -> None:
    meta.delete(etag_key(stable_id))
    meta.delete(last_modified_key(stable_id))


@dataclass
class FetchOutcome:
    """Content of one file, fresh or from the local copy."""

    content: str
    unchanged: bool  # 304 and the local copy was used
    cache_tags: dict[str, str] = field(default_factory=dict)
    refetched: bool = False  # Stale tag recovered by an unconditional fetch


def fetch_entry(
    client: RemoteTreeProvider,
    source: SourceConfig,
    ref: str,
    remote_path: str,
    stable_id: str,
    local_path: Path,
    meta: KeyValueStore,
    logger: ImportLogger | None = None,
    cancel_event: threading.Event | None = None,
) -> FetchOutcome:
    """Fetch a file, short-circuiting to the local copy when unchanged.

    On 304 with the local copy missing, the cache tag is discarded and the
    file fetched once more without revalidation headers. New cache tags are
    returned, not stored, so callers can record them after persisting.

    Args:
        client: Remote tree provider
        source: Source being imported
        ref: Commit SHA to fetch at
        remote_path: Path within the repository
        stable_id: Store id of the file, keying its cache tag
        local_path: Absolute destination of the file
        meta: Cache tag store scoped to the source

    Raises:
        GitHubAPIError: On 4xx/5xx responses after retries
        ImportCancelled: If cancelled
    """
    headers = conditional_headers(meta, stable_id)
    response = client.fetch_raw(source.owner, source.repo, ref, remote_path, headers, cancel_event)

    if response.not_modified:
        if local_path.exists():
            if logger:
                logger.debug(f"Not modified: {remote_path}")
            return FetchOutcome(content=local_path.read_text(encoding="utf-8"), unchanged=True)

        if logger:
            logger.verbose(f"Cached copy missing for {remote_path}, fetching again")
        clear_cache_tags(meta, stable_id)
        response = client.fetch_raw(source.owner, source.repo, ref, remote_path, {}, cancel_event)
        return FetchOutcome(
            content=response.text,
            unchanged=False,
            cache_tags=extract_cache_tags(response.headers),
            refetched=True,
        )

    return FetchOutcome(
        content=response.text,
        unchanged=False,
        cache_tags=extract_cache_tags(response.headers),
    )
