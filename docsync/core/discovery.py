"""Remote tree discovery: one ref lookup plus one recursive listing."""

import threading
from dataclasses import dataclass, field

from ..models.config import SourceConfig
from ..models.records import CommitInfo, MatchedEntry, PlannedFile
from .client import RemoteTreeProvider
from .logger import ImportLogger
from .paths import generate_id, generate_target_path
from .patterns import match_include


@dataclass
class DiscoveryResult:
    """Matched files of a source at a resolved commit."""

    commit: CommitInfo
    files: list[PlannedFile] = field(default_factory=list)
    skipped: int = 0  # Blobs not matched by any include rule
    truncated: bool = False
    blob_shas: dict[str, str] = field(default_factory=dict)  # Every blob path -> SHA, matched or not


def plan_paths(
    paths: list[str],
    source: SourceConfig,
    default_base_path: str = ".",
) -> tuple[list[PlannedFile], int]:
    """Match remote paths and compute their destinations.

    Returns:
        Tuple of (planned files in listing order, number of unmatched paths)
    """
    planned: list[PlannedFile] = []
    skipped = 0
    for path in paths:
        match = match_include(path, source.includes)
        if match is None:
            skipped += 1
            continue

        base_path = match.rule.base_path if match.rule else default_base_path
        entry = MatchedEntry(
            remote_path=path,
            rule_index=match.rule_index,
            base_path=base_path,
            rule=match.rule,
        )
        planned.append(PlannedFile(
            entry=entry,
            target_path=generate_target_path(path, match.rule, default_base_path),
            stable_id=generate_id(path),
        ))
    return planned, skipped


def discover(
    client: RemoteTreeProvider,
    source: SourceConfig,
    default_base_path: str = ".",
    logger: ImportLogger | None = None,
    cancel_event: threading.Event | None = None,
) -> DiscoveryResult:
    """Resolve the source ref and match every file of its tree.

    Exactly two remote calls are made regardless of directory depth.

    Raises:
        GitHubAPIError: If the ref or tree cannot be fetched
        ImportCancelled: If cancelled between the calls
    """
    commit = client.resolve_ref(source.owner, source.repo, source.ref, cancel_event)
    listing = client.list_tree(source.owner, source.repo, commit.tree_sha, cancel_event)

    if listing.truncated and logger:
        logger.warn(
            f"Tree listing for {source.repository} was truncated by GitHub; "
            "some files may be missing"
        )

    blob_shas = {e.path: e.sha for e in listing.entries if e.type == "blob"}
    blobs = list(blob_shas)
    files, skipped = plan_paths(blobs, source, default_base_path)

    if logger:
        logger.debug(
            f"Discovered {len(blobs)} files at {commit.sha[:8]}, "
            f"{len(files)} matched, {skipped} skipped"
        )

    return DiscoveryResult(
        commit=commit,
        files=files,
        skipped=skipped,
        truncated=listing.truncated,
        blob_shas=blob_shas,
    )
