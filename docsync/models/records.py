"""Records passed between import stages."""

from dataclasses import dataclass, field

from .config import IncludeRule


@dataclass(frozen=True)
class CommitInfo:
    """A resolved commit."""

    sha: str
    tree_sha: str
    message: str = ""
    date: str = ""  # ISO timestamp from committer (or author)

    @property
    def summary(self) -> str:
        """First line of the commit message."""
        return self.message.split("\n", 1)[0]


@dataclass(frozen=True)
class TreeEntry:
    """One entry of a recursive tree listing."""

    path: str
    type: str  # "blob", "tree" or "commit" (submodule)
    sha: str = ""
    size: int | None = None


@dataclass
class TreeListing:
    """Full recursive listing of a tree."""

    sha: str
    entries: list[TreeEntry] = field(default_factory=list)
    truncated: bool = False


@dataclass(frozen=True)
class MatchedEntry:
    """A remote file accepted by an include rule."""

    remote_path: str
    rule_index: int | None  # None when the source has no include rules
    base_path: str
    rule: IncludeRule | None = None


@dataclass(frozen=True)
class PlannedFile:
    """A matched entry with its computed destination."""

    entry: MatchedEntry
    target_path: str  # Relative to the project root, forward slashes
    stable_id: str


@dataclass(frozen=True)
class AssetReference:
    """An embedded media reference found in a document."""

    original: str  # Reference text as written in the document
    repo_path: str  # Resolved path within the repository
    filename: str  # Generated local filename
    url: str  # Rewritten reference


@dataclass
class ImportedFile:
    """A processed file waiting for link resolution and persistence."""

    source_path: str
    target_path: str
    content: str
    stable_id: str
    entry: MatchedEntry
    # Content came from an up-to-date local copy and is already rewritten
    unchanged: bool = False
    cache_tags: dict[str, str] = field(default_factory=dict)  # etag / last-modified
    assets_downloaded: int = 0
    assets_cached: int = 0


@dataclass
class FileResult:
    """Result of importing a single file."""

    success: bool
    path: str
    message: str
    unchanged: bool = False
    written: bool = False


@dataclass
class CleanupStats:
    """Outcome of an orphan cleanup pass."""

    deleted: int = 0
    duration: float = 0.0  # Seconds
    blocked: bool = False  # Wide deletion refused without confirmation
    orphans: list[str] = field(default_factory=list)


@dataclass
class ImportSummary:
    """Outcome of importing one source."""

    source_id: str
    name: str
    repository: str
    ref: str
    status: str = "success"  # success, error or cancelled
    commit_sha: str | None = None
    files_processed: int = 0
    files_updated: int = 0
    files_unchanged: int = 0
    files_failed: int = 0
    assets_downloaded: int = 0
    assets_cached: int = 0
    cleanup: CleanupStats = field(default_factory=CleanupStats)
    duration: float = 0.0
    error: str | None = None
    results: list[FileResult] = field(default_factory=list)
