"""Level-filtered console logging for import runs."""

import time
from typing import Any, Callable, TypeVar

from rich.console import Console
from rich.markup import escape

from ..models.records import CleanupStats, ImportSummary

T = TypeVar("T")

LOG_LEVELS = {"silent": 0, "default": 1, "verbose": 2, "debug": 3}

console = Console()
error_console = Console(stderr=True)


class ImportLogger:
    """Prints import progress through rich consoles.

    Levels, least to most chatty: silent, default, verbose, debug.
    Warnings and errors print at every level except silent.
    """

    def __init__(
        self,
        level: str = "default",
        prefix: str = "",
        out: Console | None = None,
        err: Console | None = None,
    ) -> None:
        if level not in LOG_LEVELS:
            raise ValueError(f"Unknown log level: {level!r}")
        self.level = level
        self.prefix = prefix
        self.out = out or console
        self.err = err or error_console

    def _enabled(self, level: str) -> bool:
        return LOG_LEVELS[self.level] >= LOG_LEVELS[level]

    def _format(self, message: str) -> str:
        text = escape(message)
        if self.prefix:
            return f"[dim]\\[{escape(self.prefix)}][/dim] {text}"
        return text

    def info(self, message: str) -> None:
        if self._enabled("default"):
            self.out.print(self._format(message))

    def verbose(self, message: str) -> None:
        if self._enabled("verbose"):
            self.out.print(self._format(message), style="dim")

    def debug(self, message: str) -> None:
        if self._enabled("debug"):
            self.out.print(self._format(message), style="dim cyan")

    def warn(self, message: str) -> None:
        if self._enabled("default"):
            self.err.print(self._format(message), style="yellow")

    def error(self, message: str) -> None:
        if self._enabled("default"):
            self.err.print(self._format(message), style="red")

    def child(self, prefix: str) -> "ImportLogger":
        """Create a logger sharing level and consoles with a nested prefix."""
        combined = f"{self.prefix}:{prefix}" if self.prefix else prefix
        return ImportLogger(level=self.level, prefix=combined, out=self.out, err=self.err)

    def time(self, label: str, fn: Callable[[], T]) -> T:
        """Run fn and log how long it took at verbose level."""
        start = time.perf_counter()
        try:
            return fn()
        finally:
            elapsed = (time.perf_counter() - start) * 1000
            self.verbose(f"{label} took {elapsed:.0f}ms")

    # -------------------------------------------------------------------------
    # Structured messages
    # -------------------------------------------------------------------------

    def log_file_processing(self, action: str, path: str, detail: str = "") -> None:
        """Per-file progress line, verbose only."""
        suffix = f" ({detail})" if detail else ""
        self.verbose(f"{action}: {path}{suffix}")

    def log_asset_processing(self, action: str, path: str, detail: str = "") -> None:
        """Per-asset progress line, verbose only."""
        suffix = f" ({detail})" if detail else ""
        self.verbose(f"Asset {action}: {path}{suffix}")

    def log_import_summary(self, summary: ImportSummary) -> None:
        """Print the end-of-import summary for one source."""
        if not self._enabled("default"):
            return

        status_style = {
            "success": "green",
            "error": "red",
            "cancelled": "yellow",
        }.get(summary.status, "white")

        self.out.print(
            f"\n[bold]{escape(summary.name)}[/bold] "
            f"({escape(summary.repository)}@{escape(summary.ref)}): "
            f"[{status_style}]{summary.status}[/{status_style}]"
        )
        if summary.commit_sha:
            self.out.print(f"  Commit: {summary.commit_sha[:8]}")
        self.out.print(
            f"  Files: {summary.files_processed} processed, "
            f"{summary.files_updated} updated, "
            f"{summary.files_unchanged} unchanged, "
            f"{summary.files_failed} failed"
        )
        if summary.assets_downloaded or summary.assets_cached:
            self.out.print(
                f"  Assets: {summary.assets_downloaded} downloaded, "
                f"{summary.assets_cached} cached"
            )
        if summary.cleanup.deleted or summary.cleanup.blocked:
            self.log_cleanup_summary(summary.cleanup)
        self.out.print(f"  Duration: {summary.duration:.2f}s")
        if summary.error:
            self.out.print(f"  [red]Error: {escape(summary.error)}[/red]")

    def log_cleanup_summary(self, stats: CleanupStats) -> None:
        """Print what a cleanup pass removed."""
        if not self._enabled("default"):
            return
        if stats.blocked:
            self.out.print(
                f"  Cleanup: [yellow]blocked[/yellow], {len(stats.orphans)} files "
                "would have been removed"
            )
            return
        self.out.print(f"  Cleanup: {stats.deleted} deleted in {stats.duration:.2f}s")

    def log_sync_summary(self, summaries: list[ImportSummary]) -> None:
        """Print the aggregate across all imported sources."""
        if not self._enabled("default") or not summaries:
            return
        counts: dict[str, Any] = {
            "success": sum(1 for s in summaries if s.status == "success"),
            "error": sum(1 for s in summaries if s.status == "error"),
            "cancelled": sum(1 for s in summaries if s.status == "cancelled"),
        }
        updated = sum(s.files_updated for s in summaries)
        deleted = sum(s.cleanup.deleted for s in summaries)
        self.out.print(
            f"\n[bold]Summary:[/bold] {counts['success']} succeeded, "
            f"{counts['error']} failed, {counts['cancelled']} cancelled; "
            f"{updated} files updated, {deleted} deleted"
        )
