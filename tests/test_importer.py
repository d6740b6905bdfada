"""End-to-end tests for the importer against an in-memory repository."""

import tempfile
import threading
from pathlib import Path

import frontmatter
import pytest
from fakes import CountingStore, FakeProvider

from docsync.core.assets import unique_asset_name
from docsync.core.importer import Importer
from docsync.core.logger import ImportLogger
from docsync.core.metastore import MetaStore
from docsync.core.state import ImportState
from docsync.models.config import (
    ConfigurationError,
    DocsyncConfig,
    IncludeRule,
    LinkSettings,
    SourceConfig,
)

FILES = {
    "docs/a.md": "# A\n\nSee [b](./b.md#x).\n",
    "docs/b.md": "# B\n",
    "README.md": "not included",
}

GUIDE = "src/content/docs/guide"


def make_importer(
    root: Path,
    provider: FakeProvider,
    cancel_event: threading.Event | None = None,
    **source_kwargs: object,
) -> Importer:
    source = SourceConfig(
        name="docs",
        owner="acme",
        repo="widgets",
        includes=[IncludeRule(pattern="docs/**/*.md", base_path=GUIDE)],
        links=LinkSettings(strip_prefixes=["src/content/docs"]),
        **source_kwargs,  # type: ignore[arg-type]
    )
    config = DocsyncConfig(sources=[source], project_root=root)
    return Importer(
        config,
        client=provider,
        store=CountingStore(),
        meta=MetaStore(),
        state=ImportState(root / ".github-import-state.json"),
        logger=ImportLogger("silent"),
        cancel_event=cancel_event,
    )


class TestImportSource:
    """Tests for a single import run."""

    def test_import_writes_and_resolves_links(self) -> None:
        provider = FakeProvider(FILES)

        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            importer = make_importer(root, provider)

            summary = importer.import_all()[0]

            assert (root / GUIDE / "a.md").read_text(encoding="utf-8") == "# A\n\nSee [b](/guide/b/#x).\n"
            assert (root / GUIDE / "b.md").exists()
            assert not (root / GUIDE / "README.md").exists()
            assert (root / ".github-import-state.json").exists()

        assert summary.status == "success"
        assert summary.commit_sha == provider.commit_sha
        assert summary.files_processed == 2
        assert summary.files_updated == 2
        assert importer.state.get_record("acme/widgets@main").last_commit == provider.commit_sha  # type: ignore[union-attr]
        assert importer.store.has("docs/a")
        assert importer.meta.get("acme/widgets@main::docs/a-etag") == FakeProvider.etag_for(FILES["docs/a.md"])

    def test_second_run_makes_no_writes(self) -> None:
        provider = FakeProvider(FILES)

        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            importer = make_importer(root, provider)
            importer.import_all()
            mutations = importer.store.mutations  # type: ignore[attr-defined]
            before = (root / GUIDE / "a.md").stat().st_mtime_ns

            summary = importer.import_all()[0]

            assert (root / GUIDE / "a.md").stat().st_mtime_ns == before
            assert (root / GUIDE / "a.md").read_text(encoding="utf-8") == "# A\n\nSee [b](/guide/b/#x).\n"

        assert summary.files_updated == 0
        assert summary.files_unchanged == 2
        assert not any(r.written for r in summary.results)
        assert importer.store.mutations == mutations  # type: ignore[attr-defined]
        assert all("If-None-Match" in h for h in provider.fetches_of("docs/a.md")[1:])

    def test_upstream_change_is_fetched(self) -> None:
        provider = FakeProvider(FILES)

        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            importer = make_importer(root, provider)
            importer.import_all()

            provider.files["docs/b.md"] = "# B v2\n"
            provider.commit_sha = "b" * 40
            summary = importer.import_all()[0]

            assert (root / GUIDE / "b.md").read_text(encoding="utf-8") == "# B v2\n"

        assert summary.files_updated == 1
        assert summary.files_unchanged == 1
        assert importer.state.get_record("acme/widgets@main").last_commit == "b" * 40  # type: ignore[union-attr]

    def test_orphan_removed_after_upstream_delete(self) -> None:
        provider = FakeProvider(FILES)

        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            importer = make_importer(root, provider)
            importer.import_all()

            del provider.files["docs/b.md"]
            summary = importer.import_all()[0]

            assert not (root / GUIDE / "b.md").exists()
            assert (root / GUIDE / "a.md").exists()

        assert summary.cleanup.deleted == 1

    def test_no_cleanup(self) -> None:
        provider = FakeProvider(FILES)

        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            importer = make_importer(root, provider)
            importer.import_all()

            del provider.files["docs/b.md"]
            importer.import_all(cleanup=False)

            assert (root / GUIDE / "b.md").exists()

    def test_failed_file_does_not_abort_batch(self) -> None:
        provider = FakeProvider(FILES)
        provider.fail_paths = {"docs/b.md"}

        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            importer = make_importer(root, provider)

            summary = importer.import_all()[0]

            assert (root / GUIDE / "a.md").exists()
            assert not (root / GUIDE / "b.md").exists()

        assert summary.status == "error"
        assert summary.files_failed == 1
        assert summary.files_updated == 1
        assert importer.state.get_record("acme/widgets@main") is None

    def test_listing_failure(self) -> None:
        provider = FakeProvider(FILES)
        provider.fail_listing = True

        with tempfile.TemporaryDirectory() as tmpdir:
            importer = make_importer(Path(tmpdir), provider)

            summary = importer.import_all()[0]

        assert summary.status == "error"
        assert "502" in (summary.error or "")
        assert provider.fetch_calls == []

    def test_cancelled(self) -> None:
        provider = FakeProvider(FILES)
        event = threading.Event()
        event.set()

        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            importer = make_importer(root, provider, cancel_event=event)

            summaries = importer.import_all()

            assert not (root / GUIDE).exists()

        assert summaries[0].status == "cancelled"
        assert importer.state.get_record("acme/widgets@main") is None

    def test_invalid_source_fails_before_network(self) -> None:
        provider = FakeProvider(FILES)

        with tempfile.TemporaryDirectory() as tmpdir:
            importer = make_importer(Path(tmpdir), provider)
            importer.config.sources[0].includes[0].base_path = "../escape"

            with pytest.raises(ConfigurationError):
                importer.import_all()

        assert provider.resolve_calls == 0


class TestImportOptions:
    """Tests for force, changed_only, transforms and assets."""

    def test_changed_only_skips_same_commit(self) -> None:
        provider = FakeProvider(FILES)

        with tempfile.TemporaryDirectory() as tmpdir:
            importer = make_importer(Path(tmpdir), provider)
            importer.import_all()
            fetches = len(provider.fetch_calls)

            summary = importer.import_all(changed_only=True)[0]

        assert summary.status == "success"
        assert summary.files_processed == 0
        assert len(provider.fetch_calls) == fetches

    def test_force_fetches_unconditionally(self) -> None:
        provider = FakeProvider(FILES)

        with tempfile.TemporaryDirectory() as tmpdir:
            importer = make_importer(Path(tmpdir), provider)
            importer.import_all()
            mutations = importer.store.mutations  # type: ignore[attr-defined]

            summary = importer.import_all(force=True)[0]

        assert provider.fetches_of("docs/a.md")[-1] == {}
        assert summary.files_unchanged == 2
        assert importer.store.mutations == mutations  # type: ignore[attr-defined]

    def test_transforms_applied(self) -> None:
        provider = FakeProvider(FILES)

        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            importer = make_importer(root, provider, transforms=["convert_h1_to_title"])

            importer.import_all()

            post = frontmatter.loads((root / GUIDE / "a.md").read_text(encoding="utf-8"))

        assert post.metadata["title"] == "A"
        assert "[b](/guide/b/#x)" in post.content
        assert importer.store.get("docs/a").data == {"title": "A"}  # type: ignore[union-attr]

    def test_assets_localized(self) -> None:
        provider = FakeProvider(
            {"docs/a.md": "![logo](./img/logo.png)\n"},
            assets={"docs/img/logo.png": b"PNG"},
        )
        name = unique_asset_name("docs/img/logo.png", FakeProvider.blob_sha(b"PNG"))

        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            importer = make_importer(root, provider)

            summary = importer.import_all()[0]

            assert (root / GUIDE / "assets" / name).read_bytes() == b"PNG"
            assert (root / GUIDE / "a.md").read_text(encoding="utf-8") == f"![logo](./assets/{name})\n"

            # Second run keeps the asset
            importer.import_all()
            assert (root / GUIDE / "assets" / name).exists()

        assert summary.assets_downloaded == 1

    def test_changed_asset_downloaded_again(self) -> None:
        provider = FakeProvider(
            {"docs/a.md": "![logo](./img/logo.png)\n"},
            assets={"docs/img/logo.png": b"OLD"},
        )

        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            importer = make_importer(root, provider)
            importer.import_all()

            provider.assets["docs/img/logo.png"] = b"NEW"
            provider.files["docs/a.md"] = "Updated\n\n![logo](./img/logo.png)\n"
            provider.commit_sha = "b" * 40
            summary = importer.import_all()[0]

            new_name = unique_asset_name("docs/img/logo.png", FakeProvider.blob_sha(b"NEW"))
            assert (root / GUIDE / "assets" / new_name).read_bytes() == b"NEW"
            assert (root / GUIDE / "a.md").read_text(encoding="utf-8") == (
                f"Updated\n\n![logo](./assets/{new_name})\n"
            )

        assert summary.assets_downloaded == 1
        assert summary.assets_cached == 0

    def test_linked_image_keeps_asset_and_resolves_link(self) -> None:
        provider = FakeProvider(
            {"docs/a.md": "[![logo](./img/logo.png)](./b.md)\n", "docs/b.md": "# B\n"},
            assets={"docs/img/logo.png": b"PNG"},
        )
        name = unique_asset_name("docs/img/logo.png", FakeProvider.blob_sha(b"PNG"))

        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            importer = make_importer(root, provider)

            importer.import_all()

            assert (root / GUIDE / "a.md").read_text(encoding="utf-8") == (
                f"[![logo](./assets/{name})](/guide/b/)\n"
            )

    def test_only_named_sources(self) -> None:
        provider = FakeProvider(FILES)

        with tempfile.TemporaryDirectory() as tmpdir:
            importer = make_importer(Path(tmpdir), provider)

            assert importer.import_all(names=["other"]) == []

        assert provider.resolve_calls == 0
