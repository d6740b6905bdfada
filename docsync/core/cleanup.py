"""Orphan reconciliation: delete local files that no longer exist remotely."""

import threading
import time
from pathlib import Path

from ..models.config import SourceConfig, ensure_within_root
from ..models.records import CleanupStats
from .assets import asset_directories
from .client import GitHubAPIError, ImportCancelled, RemoteTreeProvider, raise_if_cancelled
from .discovery import discover
from .logger import ImportLogger

# Pause between deletions so file watchers are not flooded
DELETE_PAUSE_SECONDS = 0.01


def list_local_files(base_dirs: list[Path], exclude_dirs: list[Path] | None = None) -> set[Path]:
    """Collect files under the managed directories.

    Dot files, files inside dot directories and files under any excluded
    directory are skipped.
    """
    exclude_dirs = exclude_dirs or []
    found: set[Path] = set()
    for base in base_dirs:
        if not base.is_dir():
            continue
        for path in base.rglob("*"):
            if not path.is_file():
                continue
            relative = path.relative_to(base)
            if any(part.startswith(".") for part in relative.parts):
                continue
            if any(path.is_relative_to(excluded) for excluded in exclude_dirs):
                continue
            found.add(path.resolve())
    return found


def _expected_paths(
    client: RemoteTreeProvider,
    source: SourceConfig,
    project_root: Path,
    default_base_path: str,
    logger: ImportLogger | None,
    cancel_event: threading.Event | None,
) -> set[Path]:
    result = discover(client, source, default_base_path, cancel_event=cancel_event)
    expected: set[Path] = set()
    for planned in result.files:
        try:
            expected.add(ensure_within_root(planned.target_path, project_root))
        except ValueError as e:
            if logger:
                logger.warn(f"Ignoring destination outside project: {e}")
    return expected


def _relative(path: Path, project_root: Path) -> str:
    return path.relative_to(project_root.resolve()).as_posix()


def perform_cleanup(
    client: RemoteTreeProvider,
    source: SourceConfig,
    project_root: Path,
    default_base_path: str = ".",
    logger: ImportLogger | None = None,
    cancel_event: threading.Event | None = None,
    confirm_wide_delete: bool = False,
) -> CleanupStats:
    """Delete files under the source's base paths that the remote no longer has.

    The expected set comes from a fresh listing of the live tree. If that
    listing fails, nothing is known to be expected and every local file is an
    orphan; those deletions only run with confirm_wide_delete.

    Args:
        client: Remote tree provider
        source: Source whose base paths are reconciled
        project_root: Project root directory
        default_base_path: Destination root used for sources without rules
        confirm_wide_delete: Allow deletion after a failed listing

    Returns:
        CleanupStats; errors other than cancellation are logged, not raised

    Raises:
        ImportCancelled: If cancelled
    """
    start = time.monotonic()
    project_root = Path(project_root)

    if not source.includes:
        return CleanupStats()

    try:
        base_dirs = sorted({ensure_within_root(r.base_path, project_root) for r in source.includes})
        exclude_dirs = [ensure_within_root(d, project_root) for d in asset_directories(source, default_base_path)]

        existing = list_local_files(base_dirs, exclude_dirs)
        if not existing:
            if logger:
                logger.debug(f"No local files under {source.name} base paths, skipping cleanup")
            return CleanupStats(duration=time.monotonic() - start)

        listing_failed = False
        try:
            expected = _expected_paths(client, source, project_root, default_base_path, logger, cancel_event)
        except GitHubAPIError as e:
            if logger:
                logger.error(f"Cleanup listing failed for {source.repository}: {e}")
            expected = set()
            listing_failed = True

        orphans = sorted(existing - expected)
        orphan_names = [_relative(p, project_root) for p in orphans]
        if not orphans:
            return CleanupStats(duration=time.monotonic() - start)

        if listing_failed and not confirm_wide_delete:
            if logger:
                logger.error(
                    f"Refusing to delete {len(orphans)} local files of {source.name} "
                    "after a failed listing; rerun with --confirm-wide-delete to allow it"
                )
            return CleanupStats(
                duration=time.monotonic() - start,
                blocked=True,
                orphans=orphan_names,
            )

        deleted = 0
        for position, (path, name) in enumerate(zip(orphans, orphan_names)):
            raise_if_cancelled(cancel_event)
            try:
                path.unlink()
                deleted += 1
                if logger:
                    logger.log_file_processing("Deleted", name)
            except OSError as e:
                if logger:
                    logger.warn(f"Failed to delete {name}: {e}")
            if position < len(orphans) - 1:
                time.sleep(DELETE_PAUSE_SECONDS)

        return CleanupStats(
            deleted=deleted,
            duration=time.monotonic() - start,
            orphans=orphan_names,
        )

    except ImportCancelled:
        raise
    except Exception as e:
        if logger:
            logger.error(f"Cleanup failed for {source.name}: {e}")
        return CleanupStats(duration=time.monotonic() - start)
