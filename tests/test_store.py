"""Tests for content store persistence."""

import tempfile
from pathlib import Path

import pytest
from fakes import CountingStore

from docsync.core.store import (
    JsonContentStore,
    MemoryContentStore,
    StoreRecord,
    compute_digest,
    parse_entry,
    persist_file,
)
from docsync.models.config import ConfigurationError
from docsync.models.records import ImportedFile, MatchedEntry


def make_file(content: str = "---\ntitle: A\n---\nBody\n", target: str = "out/a.md") -> ImportedFile:
    return ImportedFile(
        source_path="docs/a.md",
        target_path=target,
        content=content,
        stable_id="docs/a",
        entry=MatchedEntry(remote_path="docs/a.md", rule_index=0, base_path="out"),
    )


class TestComputeDigest:
    """Tests for content digests."""

    def test_stable(self) -> None:
        assert compute_digest("abc") == compute_digest("abc")
        assert len(compute_digest("abc")) == 64

    def test_different_content(self) -> None:
        assert compute_digest("a") != compute_digest("b")


class TestParseEntry:
    """Tests for frontmatter splitting."""

    def test_markdown_frontmatter(self) -> None:
        data, body = parse_entry("---\ntitle: Hello\n---\nBody\n", "a.md")

        assert data == {"title": "Hello"}
        assert body == "Body"

    def test_other_files_untouched(self) -> None:
        content = "---\nnot: frontmatter\n---\n"

        assert parse_entry(content, "config.yml") == ({}, content)


class TestPersistFile:
    """Tests for persist_file."""

    def test_writes_and_stores(self) -> None:
        store = CountingStore()
        file = make_file()

        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            outcome = persist_file(file, store, root)

            assert (root / "out/a.md").read_text(encoding="utf-8") == file.content

        assert outcome.written and outcome.stored
        record = store.get("docs/a")
        assert record is not None
        assert record.data == {"title": "A"}
        assert record.body == "Body"
        assert record.file_path == "out/a.md"
        assert record.digest == compute_digest(file.content)

    def test_second_persist_is_a_no_op(self) -> None:
        store = CountingStore()
        file = make_file()

        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            persist_file(file, store, root)
            mtime = (root / "out/a.md").stat().st_mtime_ns

            outcome = persist_file(file, store, root)

            assert (root / "out/a.md").stat().st_mtime_ns == mtime

        assert not outcome.written
        assert not outcome.stored
        assert store.mutations == 1

    def test_changed_content_updates(self) -> None:
        store = CountingStore()

        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            persist_file(make_file("one"), store, root)
            outcome = persist_file(make_file("two"), store, root)

        assert outcome.written and outcome.stored
        assert store.get("docs/a").body == "two"  # type: ignore[union-attr]

    def test_clear_replaces_record(self) -> None:
        store = CountingStore()
        file = make_file()

        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            persist_file(file, store, root)
            outcome = persist_file(file, store, root, clear=True)

        assert outcome.stored
        assert store.mutations == 3

    def test_escape_rejected(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            with pytest.raises(ConfigurationError):
                persist_file(make_file(target="../outside.md"), MemoryContentStore(), Path(tmpdir))


class TestJsonContentStore:
    """Tests for the JSON-backed store."""

    def test_save_and_reload(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "store.json"
            store = JsonContentStore(path)
            store.set(StoreRecord(id="docs/a", body="Body", file_path="out/a.md", digest="d"))

            assert store.save()
            assert not store.save()

            reloaded = JsonContentStore(path)

            assert reloaded.get("docs/a") == StoreRecord(id="docs/a", body="Body", file_path="out/a.md", digest="d")

    def test_clear_and_delete(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = JsonContentStore(Path(tmpdir) / "store.json")
            store.set(StoreRecord(id="a", body=""))
            store.set(StoreRecord(id="b", body=""))

            assert store.delete("a")
            assert not store.delete("a")
            store.clear()

            assert not store.has("b")
