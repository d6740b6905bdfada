"""Per-source import orchestration."""

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path

from ..models.config import DocsyncConfig, SourceConfig, ensure_within_root
from ..models.records import FileResult, ImportedFile, ImportSummary, PlannedFile
from .assets import process_assets, resolve_asset_settings
from .cleanup import perform_cleanup
from .client import GitHubAPIError, GitHubClient, ImportCancelled, RemoteTreeProvider, raise_if_cancelled
from .discovery import DiscoveryResult, discover
from .fetch import fetch_entry, store_cache_tags
from .links import generate_auto_link_mappings, resolve_links
from .logger import ImportLogger
from .metastore import MetaStore, ScopedMetaStore
from .state import ImportState
from .store import ContentStore, JsonContentStore, persist_file
from .transforms import TransformContext, TransformTable, apply_transforms


class Importer:
    """Imports configured sources into the project tree.

    Each source runs through discovery, concurrent per-file fetch / asset /
    transform work, a batch-wide link pass, persistence, cleanup and finally
    a state update.
    """

    def __init__(
        self,
        config: DocsyncConfig,
        client: RemoteTreeProvider | None = None,
        store: ContentStore | None = None,
        meta: MetaStore | None = None,
        state: ImportState | None = None,
        logger: ImportLogger | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        """Initialize importer.

        Args:
            config: Loaded configuration
            client: Remote tree provider (GitHubClient created if not provided)
            store: Destination store (JSON store in the project if not provided)
            meta: Cache tag store (JSON file in the project if not provided)
            state: Import state (state file in the project if not provided)
            logger: Logger (created from settings.log_level if not provided)
            cancel_event: Set to cancel in-flight work
        """
        self.config = config
        self.settings = config.settings
        self.project_root = Path(config.project_root)
        self.logger = logger or ImportLogger(self.settings.log_level)
        self._client = client
        self.store = store if store is not None else JsonContentStore(self.project_root / self.settings.store_file)
        self.meta = meta if meta is not None else MetaStore(self.project_root / self.settings.cache_file)
        self.state = state if state is not None else ImportState(self.project_root / self.settings.state_file, self.logger)
        self.cancel_event = cancel_event or threading.Event()

    @property
    def client(self) -> RemoteTreeProvider:
        """Get or create GitHubClient (lazy initialization)."""
        if self._client is None:
            self._client = GitHubClient()
        return self._client

    def cancel(self) -> None:
        """Signal in-flight work to stop."""
        self.cancel_event.set()

    def _save_stores(self) -> None:
        self.meta.save()
        save = getattr(self.store, "save", None)
        if callable(save):
            save()

    # =========================================================================
    # Public operations
    # =========================================================================

    def import_all(
        self,
        names: list[str] | None = None,
        cleanup: bool = True,
        confirm_wide_delete: bool = False,
        force: bool = False,
        changed_only: bool = False,
    ) -> list[ImportSummary]:
        """Import every enabled source (or the named ones).

        Stops after a cancelled source; later sources are not started.

        Raises:
            ConfigurationError: If a source is invalid (before any network call)
        """
        sources = [s for s in self.config.sources if s.enabled]
        if names:
            sources = [s for s in sources if s.name in names or s.source_id in names]

        for source in sources:
            source.validate(self.project_root)
            TransformTable.build(source)

        summaries: list[ImportSummary] = []
        try:
            for source in sources:
                summary = self.import_source(
                    source,
                    cleanup=cleanup,
                    confirm_wide_delete=confirm_wide_delete,
                    force=force,
                    changed_only=changed_only,
                )
                summaries.append(summary)
                if summary.status == "cancelled":
                    break
        finally:
            self._save_stores()
            self.state.touch_checked()
            self.state.save()

        self.logger.log_sync_summary(summaries)
        return summaries

    def import_source(
        self,
        source: SourceConfig,
        cleanup: bool = True,
        confirm_wide_delete: bool = False,
        force: bool = False,
        changed_only: bool = False,
    ) -> ImportSummary:
        """Import a single source.

        Per-file failures are recorded in the summary; only configuration
        errors raise.

        Args:
            source: Source to import
            cleanup: Delete orphaned local files afterwards (if the source allows it)
            confirm_wide_delete: Allow cleanup deletions after a failed listing
            force: Drop cache tags first so every file is fetched again
            changed_only: Skip the source when its commit matches the last import

        Raises:
            ConfigurationError: If the source configuration is invalid
        """
        start = time.monotonic()
        log = self.logger.child(source.name)
        summary = ImportSummary(
            source_id=source.source_id,
            name=source.name,
            repository=source.repository,
            ref=source.ref,
        )

        source.validate(self.project_root)
        transforms = TransformTable.build(source)
        if bool(source.assets_path) != bool(source.assets_base_url):
            log.warn("assets_path and assets_base_url must be set together; asset import disabled")

        meta = self.meta.scoped(source.source_id)
        if force:
            meta.clear()

        try:
            discovery = log.time(
                "Discovery",
                lambda: discover(self.client, source, self.settings.base_path, log, self.cancel_event),
            )
        except ImportCancelled:
            summary.status = "cancelled"
            summary.duration = time.monotonic() - start
            log.warn("Import cancelled")
            return summary
        except GitHubAPIError as e:
            summary.status = "error"
            summary.error = str(e)
            summary.duration = time.monotonic() - start
            log.error(f"Failed to list {source.repository}@{source.ref}: {e}")
            self.logger.log_import_summary(summary)
            return summary

        summary.commit_sha = discovery.commit.sha

        if changed_only and not self.state.needs_reimport(source.source_id, discovery.commit.sha):
            log.info(f"Up to date at {discovery.commit.sha[:8]}, skipping")
            summary.duration = time.monotonic() - start
            return summary

        try:
            self._run_batch(source, discovery, transforms, meta, summary, log)

            if cleanup and source.cleanup:
                summary.cleanup = perform_cleanup(
                    self.client,
                    source,
                    self.project_root,
                    default_base_path=self.settings.base_path,
                    logger=log,
                    cancel_event=self.cancel_event,
                    confirm_wide_delete=confirm_wide_delete,
                )

            if summary.files_failed:
                summary.status = "error"
                summary.error = f"{summary.files_failed} file(s) failed"
            else:
                self.state.record_import(source, discovery.commit.sha)
        except ImportCancelled:
            summary.status = "cancelled"
            log.warn("Import cancelled")

        summary.duration = time.monotonic() - start
        self.logger.log_import_summary(summary)
        return summary

    # =========================================================================
    # Batch stages
    # =========================================================================

    def _run_batch(
        self,
        source: SourceConfig,
        discovery: DiscoveryResult,
        transforms: TransformTable,
        meta: ScopedMetaStore,
        summary: ImportSummary,
        log: ImportLogger,
    ) -> None:
        """Fetch and rewrite every file, resolve links, then persist."""
        summary.files_processed = len(discovery.files)
        imported = self._process_files(source, discovery, transforms, meta, summary, log)

        extra_mappings = []
        if source.links.auto_mappings:
            extra_mappings = generate_auto_link_mappings(source.includes, source.links.strip_prefixes)
        resolved = resolve_links(imported, source.links, extra_mappings, log)

        for file in resolved:
            raise_if_cancelled(self.cancel_event)
            try:
                outcome = persist_file(file, self.store, self.project_root, clear=source.clear)
            except ImportCancelled:
                raise
            except Exception as e:
                summary.files_failed += 1
                summary.results.append(FileResult(False, file.source_path, f"Failed to write: {e}"))
                log.error(f"Failed to write {file.target_path}: {e}")
                continue

            if file.cache_tags and not file.unchanged:
                store_cache_tags(meta, file.stable_id, file.cache_tags)

            changed = outcome.written or outcome.stored
            if changed:
                summary.files_updated += 1
                log.log_file_processing("Updated", file.target_path)
            else:
                summary.files_unchanged += 1
            summary.results.append(FileResult(
                success=True,
                path=file.target_path,
                message="Updated" if changed else "Unchanged",
                unchanged=not changed,
                written=outcome.written,
            ))

    def _process_files(
        self,
        source: SourceConfig,
        discovery: DiscoveryResult,
        transforms: TransformTable,
        meta: ScopedMetaStore,
        summary: ImportSummary,
        log: ImportLogger,
    ) -> list[ImportedFile]:
        """Run per-file work concurrently; returns once every file is done."""
        imported: list[ImportedFile] = []
        if not discovery.files:
            return imported

        executor = ThreadPoolExecutor(max_workers=self.settings.concurrency)
        try:
            futures: list[tuple[PlannedFile, Future[ImportedFile]]] = [
                (
                    planned,
                    executor.submit(
                        self._process_file, source, discovery, planned, transforms, meta, log
                    ),
                )
                for planned in discovery.files
            ]

            for planned, future in futures:
                try:
                    file = future.result()
                except ImportCancelled:
                    executor.shutdown(wait=False, cancel_futures=True)
                    raise
                except Exception as e:
                    summary.files_failed += 1
                    summary.results.append(FileResult(False, planned.entry.remote_path, f"Failed: {e}"))
                    log.error(f"Failed to import {planned.entry.remote_path}: {e}")
                    continue

                summary.assets_downloaded += file.assets_downloaded
                summary.assets_cached += file.assets_cached
                imported.append(file)
        finally:
            executor.shutdown(wait=True)

        return imported

    def _process_file(
        self,
        source: SourceConfig,
        discovery: DiscoveryResult,
        planned: PlannedFile,
        transforms: TransformTable,
        meta: ScopedMetaStore,
        log: ImportLogger,
    ) -> ImportedFile:
        """Fetch one file, localize its assets and apply transforms."""
        raise_if_cancelled(self.cancel_event)
        entry = planned.entry
        commit_sha = discovery.commit.sha
        local_path = ensure_within_root(planned.target_path, self.project_root)

        fetched = fetch_entry(
            self.client,
            source,
            commit_sha,
            entry.remote_path,
            planned.stable_id,
            local_path,
            meta,
            log,
            self.cancel_event,
        )

        if fetched.unchanged:
            log.log_file_processing("Unchanged", entry.remote_path)
            return ImportedFile(
                source_path=entry.remote_path,
                target_path=planned.target_path,
                content=fetched.content,
                stable_id=planned.stable_id,
                entry=entry,
                unchanged=True,
            )

        log.log_file_processing("Fetched", entry.remote_path, planned.target_path)
        content = fetched.content
        downloaded = cached = 0

        asset_settings = resolve_asset_settings(source, entry.base_path, planned.target_path)
        if asset_settings is not None:
            assets = process_assets(
                self.client,
                source,
                commit_sha,
                content,
                entry.remote_path,
                asset_settings,
                self.project_root,
                log,
                self.cancel_event,
                discovery.blob_shas,
            )
            content = assets.content
            downloaded, cached = assets.downloaded, assets.cached

        context = TransformContext(
            id=planned.stable_id,
            path=entry.remote_path,
            source=source,
            rule=entry.rule,
            rule_index=entry.rule_index,
            target_path=planned.target_path,
        )
        content = apply_transforms(content, context, transforms.for_rule(entry.rule_index), log)

        return ImportedFile(
            source_path=entry.remote_path,
            target_path=planned.target_path,
            content=content,
            stable_id=planned.stable_id,
            entry=entry,
            cache_tags=fetched.cache_tags,
            assets_downloaded=downloaded,
            assets_cached=cached,
        )
