"""Data models for the import system."""

from .config import (
    DEFAULT_ASSET_PATTERNS,
    ConfigurationError,
    DocsyncConfig,
    ImportSettings,
    IncludeRule,
    LinkHandler,
    LinkMapping,
    LinkSettings,
    RenameTarget,
    SourceConfig,
    ensure_within_root,
    validate_identity,
)
from .records import (
    AssetReference,
    CleanupStats,
    CommitInfo,
    FileResult,
    ImportedFile,
    ImportSummary,
    MatchedEntry,
    PlannedFile,
    TreeEntry,
    TreeListing,
)

__all__ = [
    "DEFAULT_ASSET_PATTERNS",
    "AssetReference",
    "CleanupStats",
    "CommitInfo",
    "ConfigurationError",
    "DocsyncConfig",
    "FileResult",
    "ImportSettings",
    "ImportSummary",
    "ImportedFile",
    "IncludeRule",
    "LinkHandler",
    "LinkMapping",
    "LinkSettings",
    "MatchedEntry",
    "PlannedFile",
    "RenameTarget",
    "SourceConfig",
    "TreeEntry",
    "TreeListing",
    "ensure_within_root",
    "validate_identity",
]
