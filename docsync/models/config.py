"""Configuration models for the import system."""

import importlib
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

import yaml

from ..core.url_parser import GitHubUrlParseError, extract_source_identity

DEFAULT_CONFIG_FILENAME = "docsync.yaml"

DEFAULT_ASSET_PATTERNS = [".png", ".jpg", ".jpeg", ".gif", ".svg", ".webp", ".ico", ".bmp"]

# Identity strings end up in API URLs and in local state keys
_OWNER_RE = re.compile(r'^[A-Za-z0-9](?:[A-Za-z0-9-]{0,38})$')
_REPO_RE = re.compile(r'^[A-Za-z0-9._-]{1,100}$')
_REF_RE = re.compile(r'^[A-Za-z0-9._/-]{1,255}$')


class ConfigurationError(ValueError):
    """Raised for invalid configuration, before any network activity."""
    pass


def validate_identity(owner: str, repo: str, ref: str) -> None:
    """Check that a source identity is safe to use in URLs and paths.

    Args:
        owner: Repository owner
        repo: Repository name
        ref: Branch, tag or commit

    Raises:
        ConfigurationError: If any component contains disallowed characters
    """
    if not _OWNER_RE.match(owner or ""):
        raise ConfigurationError(f"Invalid repository owner: {owner!r}")
    if not _REPO_RE.match(repo or "") or repo in (".", ".."):
        raise ConfigurationError(f"Invalid repository name: {repo!r}")
    if (
        not _REF_RE.match(ref or "")
        or ".." in ref
        or ref.startswith(("/", "-"))
        or ref.endswith("/")
    ):
        raise ConfigurationError(f"Invalid ref: {ref!r}")


def ensure_within_root(path: str | Path, root: Path) -> Path:
    """Resolve a path against the project root and reject escapes.

    Args:
        path: Relative (or absolute) path to check
        root: Project root directory

    Returns:
        The resolved absolute path

    Raises:
        ConfigurationError: If the path resolves outside the root
    """
    root = Path(root).resolve()
    resolved = (root / path).resolve()
    if resolved != root and not resolved.is_relative_to(root):
        raise ConfigurationError(f"Path escapes project root: {path}")
    return resolved


def _check_relative_dir(path: str, root: Path, label: str) -> None:
    """Validate a configured directory: relative and inside the project."""
    if Path(path).is_absolute():
        raise ConfigurationError(f"{label} must be relative to the project root: {path}")
    ensure_within_root(path, root)


def load_callable(reference: str) -> Callable[..., Any]:
    """Import a callable from a "package.module:attribute" reference.

    Raises:
        ConfigurationError: If the reference is malformed or cannot be imported
    """
    module_name, sep, attr = reference.partition(":")
    if not sep or not module_name or not attr:
        raise ConfigurationError(
            f"Invalid callable reference {reference!r} (expected 'module:function')"
        )
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"Cannot import {module_name!r}: {e}") from e

    target: Any = module
    for part in attr.split("."):
        target = getattr(target, part, None)
        if target is None:
            raise ConfigurationError(f"{module_name!r} has no attribute {attr!r}")
    if not callable(target):
        raise ConfigurationError(f"{reference!r} is not callable")
    return target  # type: ignore[no-any-return]


@dataclass
class RenameTarget:
    """Destination of a rename rule, relative to the rule's base path."""

    target: str
    # Site URL used for auto link mappings instead of one derived from base_path
    cross_section_path: str | None = None

    @classmethod
    def from_value(cls, value: Any) -> "RenameTarget":
        """Create from a plain string or a {target, cross_section_path} mapping."""
        if isinstance(value, RenameTarget):
            return value
        if isinstance(value, str):
            return cls(target=value)
        if isinstance(value, dict) and "target" in value:
            return cls(
                target=value["target"],
                cross_section_path=value.get("cross_section_path"),
            )
        raise ConfigurationError(f"Invalid rename target: {value!r}")


@dataclass
class IncludeRule:
    """A glob pattern paired with a local destination directory."""

    pattern: str  # Glob matched against the full remote path
    base_path: str  # Local directory, relative to the project root
    rename: dict[str, RenameTarget] = field(default_factory=dict)  # Keys ending in "/" are folders
    transforms: list[Any] = field(default_factory=list)  # Names, "module:function" refs or callables

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "IncludeRule":
        """Create from dictionary."""
        if not data.get("pattern"):
            raise ConfigurationError("Include rule requires a 'pattern'")
        if not data.get("base_path"):
            raise ConfigurationError(f"Include rule {data['pattern']!r} requires a 'base_path'")
        return cls(
            pattern=data["pattern"],
            base_path=data["base_path"],
            rename={k: RenameTarget.from_value(v) for k, v in (data.get("rename") or {}).items()},
            transforms=list(data.get("transforms") or []),
        )


@dataclass
class LinkMapping:
    """A rewrite applied to normalized link paths.

    String patterns replace their first literal occurrence; compiled patterns
    are substituted once. Global mappings run before the batch lookup,
    others only when the lookup fails.
    """

    pattern: str | re.Pattern[str]
    replacement: str | Callable[..., str]  # fn(path, anchor, context) -> str
    is_global: bool = False
    context_filter: Callable[[Any], bool] | None = None
    description: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LinkMapping":
        """Create from dictionary."""
        if "pattern" not in data or "replacement" not in data:
            raise ConfigurationError("Link mapping requires 'pattern' and 'replacement'")

        pattern: str | re.Pattern[str] = data["pattern"]
        if data.get("regex"):
            try:
                pattern = re.compile(data["pattern"])
            except re.error as e:
                raise ConfigurationError(f"Invalid link pattern {data['pattern']!r}: {e}") from e

        replacement = data["replacement"]
        if data.get("replacement_function"):
            replacement = load_callable(replacement)

        context_filter: Callable[[Any], bool] | None = None
        only_base_path = data.get("only_base_path")
        if only_base_path:
            def context_filter(ctx: Any) -> bool:
                return bool(ctx.base_path == only_base_path)

        return cls(
            pattern=pattern,
            replacement=replacement,
            is_global=bool(data.get("global", False)),
            context_filter=context_filter,
            description=data.get("description", ""),
        )


@dataclass
class LinkHandler:
    """Custom resolver tried when no mapping or lookup resolves a link."""

    test: Callable[[str, Any], bool]  # (link, context) -> bool
    transform: Callable[[str, Any], str]  # (link, context) -> url

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LinkHandler":
        """Create from dictionary of "module:function" references."""
        if "test" not in data or "transform" not in data:
            raise ConfigurationError("Link handler requires 'test' and 'transform'")
        return cls(test=load_callable(data["test"]), transform=load_callable(data["transform"]))


@dataclass
class LinkSettings:
    """Link resolution settings for one source."""

    strip_prefixes: list[str] = field(default_factory=list)
    mappings: list[LinkMapping] = field(default_factory=list)
    handlers: list[LinkHandler] = field(default_factory=list)
    auto_mappings: bool = False  # Derive global mappings from rename rules

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "LinkSettings":
        """Create from dictionary."""
        data = data or {}
        return cls(
            strip_prefixes=list(data.get("strip_prefixes") or []),
            mappings=[LinkMapping.from_dict(m) for m in data.get("mappings") or []],
            handlers=[LinkHandler.from_dict(h) for h in data.get("handlers") or []],
            auto_mappings=bool(data.get("auto_mappings", False)),
        )


@dataclass
class SourceConfig:
    """A remote repository tree to import from."""

    name: str
    owner: str
    repo: str
    ref: str = "main"
    state_key: str | None = None  # Stable id overriding owner/repo@ref
    enabled: bool = True
    includes: list[IncludeRule] = field(default_factory=list)
    transforms: list[Any] = field(default_factory=list)  # Applied before rule transforms
    asset_patterns: list[str] = field(default_factory=lambda: list(DEFAULT_ASSET_PATTERNS))
    assets_path: str | None = None
    assets_base_url: str | None = None
    links: LinkSettings = field(default_factory=LinkSettings)
    clear: bool = False  # Replace store entries instead of updating them
    cleanup: bool = True  # Delete local files no longer present remotely

    @property
    def source_id(self) -> str:
        """Stable identifier used for state and cache keys."""
        return self.state_key or f"{self.owner}/{self.repo}@{self.ref}"

    @property
    def repository(self) -> str:
        """owner/repo display form."""
        return f"{self.owner}/{self.repo}"

    def validate(self, project_root: Path) -> None:
        """Validate identity and every configured directory.

        Raises:
            ConfigurationError: On the first invalid value
        """
        validate_identity(self.owner, self.repo, self.ref)
        for rule in self.includes:
            _check_relative_dir(rule.base_path, project_root, "base_path")
        if self.assets_path:
            _check_relative_dir(self.assets_path, project_root, "assets_path")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SourceConfig":
        """Create from dictionary.

        Either owner/repo or a url (https://github.com/owner/repo/tree/ref)
        must be given. Explicit owner/repo/ref keys win over the url.
        """
        owner = data.get("owner")
        repo = data.get("repo")
        ref = data.get("ref")

        if data.get("url"):
            try:
                url_owner, url_repo, url_ref = extract_source_identity(data["url"])
            except GitHubUrlParseError as e:
                raise ConfigurationError(str(e)) from e
            owner = owner or url_owner
            repo = repo or url_repo
            ref = ref or url_ref

        if not owner or not repo:
            raise ConfigurationError(
                f"Source {data.get('name', '?')!r} requires owner and repo (or url)"
            )

        return cls(
            name=data.get("name") or f"{owner}/{repo}",
            owner=owner,
            repo=repo,
            ref=ref or "main",
            state_key=data.get("state_key"),
            enabled=data.get("enabled", True),
            includes=[IncludeRule.from_dict(r) for r in data.get("includes") or []],
            transforms=list(data.get("transforms") or []),
            asset_patterns=list(data.get("asset_patterns") or DEFAULT_ASSET_PATTERNS),
            assets_path=data.get("assets_path"),
            assets_base_url=data.get("assets_base_url"),
            links=LinkSettings.from_dict(data.get("links")),
            clear=data.get("clear", False),
            cleanup=data.get("cleanup", True),
        )


@dataclass
class ImportSettings:
    """Import run settings."""

    log_level: str = "default"  # silent, default, verbose or debug
    concurrency: int = 5
    # Destination for sources without include rules
    base_path: str = "."
    state_file: str = ".github-import-state.json"
    cache_file: str = ".docsync-cache.json"
    store_file: str = ".docsync-store.json"

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "ImportSettings":
        """Create from dictionary."""
        data = data or {}
        concurrency = int(data.get("concurrency", 5))
        if concurrency < 1:
            raise ConfigurationError(f"concurrency must be at least 1, got {concurrency}")
        log_level = data.get("log_level", "default")
        if log_level not in ("silent", "default", "verbose", "debug"):
            raise ConfigurationError(f"Unknown log_level: {log_level!r}")
        return cls(
            log_level=log_level,
            concurrency=concurrency,
            base_path=data.get("base_path", "."),
            state_file=data.get("state_file", ".github-import-state.json"),
            cache_file=data.get("cache_file", ".docsync-cache.json"),
            store_file=data.get("store_file", ".docsync-store.json"),
        )


@dataclass
class DocsyncConfig:
    """Main configuration: sources plus run settings."""

    sources: list[SourceConfig] = field(default_factory=list)
    settings: ImportSettings = field(default_factory=ImportSettings)
    # Directory containing the config file; all relative paths resolve here
    project_root: Path = field(default_factory=Path.cwd)

    @classmethod
    def load(cls, config_path: Path) -> "DocsyncConfig":
        """Load configuration from YAML file.

        Raises:
            ConfigurationError: If the file is malformed or a value is invalid
        """
        config_path = Path(config_path)
        try:
            with open(config_path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Expected a mapping at the top of {config_path}")

        config = cls(
            sources=[SourceConfig.from_dict(s) for s in data.get("sources") or []],
            settings=ImportSettings.from_dict(data.get("settings")),
            project_root=config_path.resolve().parent,
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate every source and the default base path.

        Raises:
            ConfigurationError: On the first invalid value
        """
        _check_relative_dir(self.settings.base_path, self.project_root, "settings.base_path")
        seen: set[str] = set()
        for source in self.sources:
            source.validate(self.project_root)
            if source.source_id in seen:
                raise ConfigurationError(f"Duplicate source id: {source.source_id}")
            seen.add(source.source_id)

    def get_source(self, name: str) -> SourceConfig | None:
        """Find a source by name or id."""
        for source in self.sources:
            if source.name == name or source.source_id == name:
                return source
        return None
