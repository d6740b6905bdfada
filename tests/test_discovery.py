"""Tests for remote tree discovery."""

from unittest.mock import MagicMock

from fakes import FakeProvider

from docsync.core.discovery import discover, plan_paths
from docsync.models.config import IncludeRule, SourceConfig


def make_source(includes: list[IncludeRule] | None = None) -> SourceConfig:
    return SourceConfig(name="docs", owner="acme", repo="widgets", includes=includes or [])


class TestPlanPaths:
    """Tests for matching and planning."""

    def test_rules_tag_entries(self) -> None:
        source = make_source([
            IncludeRule(pattern="README.md", base_path="out/project"),
            IncludeRule(pattern="docs/**/*.md", base_path="out/guide"),
        ])

        planned, skipped = plan_paths(["README.md", "docs/a.md", "src/main.py"], source)

        assert skipped == 1
        assert [(p.entry.remote_path, p.entry.rule_index, p.target_path, p.stable_id) for p in planned] == [
            ("README.md", 0, "out/project/README.md", "README"),
            ("docs/a.md", 1, "out/guide/a.md", "docs/a"),
        ]

    def test_no_rules_imports_everything(self) -> None:
        planned, skipped = plan_paths(["a.md", "b/c.txt"], make_source(), "content")

        assert skipped == 0
        assert [p.target_path for p in planned] == ["content/a.md", "content/b/c.txt"]
        assert all(p.entry.rule is None and p.entry.base_path == "content" for p in planned)


class TestDiscover:
    """Tests for discover."""

    def test_two_calls_and_blobs_only(self) -> None:
        provider = FakeProvider({"docs/a.md": "", "docs/deep/nested/b.md": "", "other.txt": ""})
        source = make_source([IncludeRule(pattern="docs/**/*.md", base_path="out")])

        result = discover(provider, source)

        assert provider.resolve_calls == 1
        assert result.commit.sha == provider.commit_sha
        assert sorted(p.entry.remote_path for p in result.files) == ["docs/a.md", "docs/deep/nested/b.md"]
        assert result.skipped == 1
        assert not result.truncated
        assert set(result.blob_shas) == {"docs/a.md", "docs/deep/nested/b.md", "other.txt"}
        assert result.blob_shas["other.txt"] == FakeProvider.blob_sha(b"")

    def test_truncated_listing_warns(self) -> None:
        provider = FakeProvider({"docs/a.md": ""})
        provider.truncated = True
        logger = MagicMock()

        result = discover(provider, make_source(), logger=logger)

        assert result.truncated
        logger.warn.assert_called_once()
