"""Dry-run checks: which sources changed upstream since their last import."""

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..models.config import SourceConfig
from ..models.records import CommitInfo
from .client import GitHubAPIError, RemoteTreeProvider
from .logger import ImportLogger
from .state import ImportRecord, ImportState


class CheckStatus:
    """Outcomes of checking a source."""

    UP_TO_DATE = "up-to-date"
    CHANGES = "changes"  # Imported before, commit moved
    NEW = "new"  # Never imported
    ERROR = "error"


@dataclass
class SourceCheck:
    """Result of checking one source."""

    source_id: str
    name: str
    repository: str
    ref: str
    status: str
    latest_commit: CommitInfo | None = None
    record: ImportRecord | None = None
    error: str | None = None

    @property
    def needs_reimport(self) -> bool:
        return self.status in (CheckStatus.CHANGES, CheckStatus.NEW)


@dataclass
class DryRunReport:
    """Checks of every enabled source."""

    checks: list[SourceCheck] = field(default_factory=list)
    checked_at: str = ""

    def count(self, status: str) -> int:
        return sum(1 for c in self.checks if c.status == status)

    @property
    def needs_reimport(self) -> int:
        return sum(1 for c in self.checks if c.needs_reimport)


def format_time_ago(timestamp: str, now: datetime | None = None) -> str:
    """Human-readable age of an ISO timestamp.

    Minutes, hours or days up to a week; the date after that.
    """
    if not timestamp:
        return "never"
    try:
        then = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
    except ValueError:
        return timestamp
    if then.tzinfo is None:
        then = then.replace(tzinfo=timezone.utc)

    now = now or datetime.now(timezone.utc)
    seconds = max(0, int((now - then).total_seconds()))
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24

    if minutes < 1:
        return "just now"
    if minutes < 60:
        return f"{minutes} minute{'s' if minutes != 1 else ''} ago"
    if hours < 24:
        return f"{hours} hour{'s' if hours != 1 else ''} ago"
    if days <= 7:
        return f"{days} day{'s' if days != 1 else ''} ago"
    return then.date().isoformat()


def check_source(
    client: RemoteTreeProvider,
    source: SourceConfig,
    state: ImportState,
    cancel_event: threading.Event | None = None,
) -> SourceCheck:
    """Compare the latest remote commit of a source with its import record."""
    record = state.get_record(source.source_id)
    check = SourceCheck(
        source_id=source.source_id,
        name=source.name,
        repository=source.repository,
        ref=source.ref,
        status=CheckStatus.ERROR,
        record=record,
    )

    try:
        commit = client.resolve_ref(source.owner, source.repo, source.ref, cancel_event)
    except GitHubAPIError as e:
        if e.status_code == 404:
            check.error = f"Repository not found: {source.repository}@{source.ref}"
        else:
            check.error = str(e)
        return check

    check.latest_commit = commit
    if record is None or not record.last_commit:
        check.status = CheckStatus.NEW
    elif state.needs_reimport(source.source_id, commit.sha):
        check.status = CheckStatus.CHANGES
    else:
        check.status = CheckStatus.UP_TO_DATE
    return check


def run_dry_run(
    client: RemoteTreeProvider,
    sources: list[SourceConfig],
    state: ImportState,
    logger: ImportLogger | None = None,
    cancel_event: threading.Event | None = None,
) -> DryRunReport:
    """Check every enabled source without importing anything.

    Only lastChecked is updated in the state file.
    """
    report = DryRunReport()
    for source in sources:
        if not source.enabled:
            if logger:
                logger.verbose(f"Skipping disabled source {source.name}")
            continue
        check = check_source(client, source, state, cancel_event)
        if logger and check.error:
            logger.warn(f"{source.name}: {check.error}")
        report.checks.append(check)

    state.touch_checked()
    state.save()
    report.checked_at = state.state.last_checked or ""
    return report


def render_report(report: DryRunReport, console: Console) -> None:
    """Print a dry-run report as a table plus a summary line."""
    if not report.checks:
        console.print("[yellow]No enabled sources to check.")
        return

    table = Table(title="Import status")
    table.add_column("Source")
    table.add_column("Repository")
    table.add_column("Status")
    table.add_column("Latest change")
    table.add_column("Last import")

    styles = {
        CheckStatus.UP_TO_DATE: "[green]up to date",
        CheckStatus.CHANGES: "[yellow]needs re-import",
        CheckStatus.NEW: "[yellow]never imported",
        CheckStatus.ERROR: "[red]error",
    }

    for check in report.checks:
        if check.latest_commit:
            latest = (
                f"{check.latest_commit.sha[:8]} {escape(check.latest_commit.summary)} "
                f"({format_time_ago(check.latest_commit.date)})"
            )
        else:
            latest = escape(check.error or "")
        last_import = format_time_ago(check.record.last_imported_at) if check.record else "never"
        table.add_row(
            escape(check.name),
            f"{escape(check.repository)}@{escape(check.ref)}",
            styles.get(check.status, check.status),
            latest,
            last_import,
        )

    console.print(table)
    console.print(
        f"\n[bold]Summary:[/bold] {report.needs_reimport} need re-import, "
        f"{report.count(CheckStatus.UP_TO_DATE)} up to date, "
        f"{report.count(CheckStatus.ERROR)} errors"
    )
