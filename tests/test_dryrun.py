"""Tests for dry-run checks."""

import io
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import MagicMock

from fakes import FakeProvider
from rich.console import Console

from docsync.core.client import GitHubAPIError
from docsync.core.dryrun import CheckStatus, check_source, format_time_ago, render_report, run_dry_run
from docsync.core.state import ImportState
from docsync.models.config import SourceConfig

NOW = datetime(2024, 3, 10, 12, 0, 0, tzinfo=timezone.utc)


def make_source(name: str = "docs", enabled: bool = True) -> SourceConfig:
    return SourceConfig(name=name, owner="acme", repo=name, enabled=enabled)


class TestFormatTimeAgo:
    """Tests for human-readable ages."""

    def test_just_now(self) -> None:
        assert format_time_ago("2024-03-10T11:59:30+00:00", NOW) == "just now"

    def test_minutes(self) -> None:
        assert format_time_ago("2024-03-10T11:59:00+00:00", NOW) == "1 minute ago"
        assert format_time_ago("2024-03-10T11:15:00Z", NOW) == "45 minutes ago"

    def test_hours(self) -> None:
        assert format_time_ago("2024-03-10T09:00:00Z", NOW) == "3 hours ago"

    def test_days(self) -> None:
        assert format_time_ago("2024-03-09T12:00:00Z", NOW) == "1 day ago"
        assert format_time_ago("2024-03-04T12:00:00Z", NOW) == "6 days ago"

    def test_old_dates(self) -> None:
        assert format_time_ago("2024-01-01T00:00:00Z", NOW) == "2024-01-01"

    def test_empty_and_invalid(self) -> None:
        assert format_time_ago("", NOW) == "never"
        assert format_time_ago("yesterday", NOW) == "yesterday"


class TestCheckSource:
    """Tests for check_source."""

    def test_new_source(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            state = ImportState(Path(tmpdir) / "state.json")

            check = check_source(FakeProvider(), make_source(), state)

        assert check.status == CheckStatus.NEW
        assert check.needs_reimport
        assert check.latest_commit is not None
        assert check.latest_commit.summary == "Update docs"

    def test_up_to_date_and_changed(self) -> None:
        provider = FakeProvider(commit_sha="1" * 40)
        source = make_source()

        with tempfile.TemporaryDirectory() as tmpdir:
            state = ImportState(Path(tmpdir) / "state.json")
            state.record_import(source, "1" * 40)

            assert check_source(provider, source, state).status == CheckStatus.UP_TO_DATE

            provider.commit_sha = "2" * 40
            assert check_source(provider, source, state).status == CheckStatus.CHANGES

    def test_not_found(self) -> None:
        client = MagicMock()
        client.resolve_ref.side_effect = GitHubAPIError("API error 404", 404)

        with tempfile.TemporaryDirectory() as tmpdir:
            check = check_source(client, make_source(), ImportState(Path(tmpdir) / "state.json"))

        assert check.status == CheckStatus.ERROR
        assert check.error == "Repository not found: acme/docs@main"
        assert not check.needs_reimport


class TestRunDryRun:
    """Tests for run_dry_run and its report."""

    def test_skips_disabled_and_touches_checked(self) -> None:
        sources = [make_source("one"), make_source("two", enabled=False)]

        with tempfile.TemporaryDirectory() as tmpdir:
            state_file = Path(tmpdir) / "state.json"
            report = run_dry_run(FakeProvider(), sources, ImportState(state_file))

            reloaded = ImportState(state_file)
            assert reloaded.state.last_checked == report.checked_at
            assert reloaded.state.imports == {}

        assert [c.name for c in report.checks] == ["one"]
        assert report.needs_reimport == 1

    def test_render_report(self) -> None:
        buffer = io.StringIO()
        console = Console(file=buffer, width=200, color_system=None)

        with tempfile.TemporaryDirectory() as tmpdir:
            report = run_dry_run(FakeProvider(), [make_source()], ImportState(Path(tmpdir) / "state.json"))

        render_report(report, console)
        output = buffer.getvalue()

        assert "never imported" in output
        assert "1 need re-import" in output

    def test_render_empty_report(self) -> None:
        buffer = io.StringIO()

        with tempfile.TemporaryDirectory() as tmpdir:
            report = run_dry_run(FakeProvider(), [], ImportState(Path(tmpdir) / "state.json"))

        render_report(report, Console(file=buffer, color_system=None))

        assert "No enabled sources" in buffer.getvalue()
