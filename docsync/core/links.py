"""Batch-wide rewriting of links between imported documents.

Links are resolved against the source layout of the repository, so a
document can keep linking to "../guide/setup.md" even after both files have
been remapped to different local directories. Resolution needs the complete
source -> destination map of the batch and therefore runs once, after every
file has been fetched and transformed.
"""

import posixpath
import re
from dataclasses import dataclass, replace
from typing import Any

from slugify import slugify

from ..models.config import IncludeRule, LinkHandler, LinkMapping, LinkSettings
from ..models.records import ImportedFile
from .logger import ImportLogger

# [text](url "title"), but not ![alt](src). The text may hold one nested
# image, as in [![alt](src)](url); only the outer url is captured.
LINK_RE = re.compile(
    r'(?<!!)\[((?:!\[[^\]]*\]\([^)]*\)|[^\[\]])*)\]\(([^)\s]+)((?:\s+"[^"]*")?)\)'
)

EXTERNAL_RE = re.compile(r'^(?:[A-Za-z][A-Za-z0-9+.-]*://|//|mailto:|tel:|data:|ftp:|#)', re.IGNORECASE)

MARKUP_EXTENSION_RE = re.compile(r'\.mdx?$', re.IGNORECASE)

# Keep underscores and drop dots like github-slugger does ("v1.2" -> "v12")
_SLUG_PATTERN = r'[^-a-z0-9_]+'
_SLUG_REPLACEMENTS = [[".", ""]]

# Structural root of content collections, dropped when inferring site URLs
CONTENT_ROOT_RE = re.compile(r'^src/content/docs')


@dataclass(frozen=True)
class LinkContext:
    """The document a link appears in, as seen by mapping filters and handlers."""

    source_path: str
    target_path: str
    base_path: str
    rule_index: int | None
    pattern: str | None


def is_external_link(url: str) -> bool:
    """External schemes and anchor-only links are never rewritten."""
    return bool(EXTERNAL_RE.match(url)) or "://" in url


def split_anchor(url: str) -> tuple[str, str]:
    """Split "path#anchor" into ("path", "#anchor")."""
    index = url.find("#")
    if index == -1:
        return url, ""
    return url[:index], url[index:]


def normalize_link_path(link_path: str, source_path: str) -> str:
    """Resolve a relative link against the linking document's source directory.

    Absolute links are kept; a trailing slash survives normalization.
    """
    if link_path.startswith("/"):
        return link_path
    joined = posixpath.join(posixpath.dirname(source_path), link_path)
    normalized = posixpath.normpath(joined)
    if link_path.endswith("/") and not normalized.endswith("/"):
        normalized += "/"
    return normalized


def strip_markup_extension(path: str) -> str:
    return MARKUP_EXTENSION_RE.sub("", path)


def generate_site_url(target_path: str, strip_prefixes: list[str]) -> str:
    """Convert a destination file path into a site-relative URL.

    "src/content/docs/guide/intro.md" with prefix "src/content/docs"
    becomes "/guide/intro/"; "guide/index.md" becomes "/guide/".
    """
    url = target_path
    for prefix in strip_prefixes:
        if url.startswith(prefix):
            url = url[len(prefix):]
            break

    url = url.lstrip("/")
    url = strip_markup_extension(url)

    if url.endswith("/index"):
        url = url[:-len("/index")]
    elif url == "index":
        url = ""

    segments = [
        slugify(s, regex_pattern=_SLUG_PATTERN, replacements=_SLUG_REPLACEMENTS)
        for s in url.split("/")
        if s
    ]
    segments = [s for s in segments if s]
    if not segments:
        return "/"
    return "/" + "/".join(segments) + "/"


def apply_link_mapping(mapping: LinkMapping, path: str, anchor: str, context: LinkContext) -> str | None:
    """Apply one mapping to a link path.

    Returns:
        The rewritten path, or None when the mapping does not apply
    """
    if mapping.context_filter is not None and not mapping.context_filter(context):
        return None

    if isinstance(mapping.pattern, str):
        if mapping.pattern not in path:
            return None
        if callable(mapping.replacement):
            return mapping.replacement(path, anchor, context)
        return path.replace(mapping.pattern, mapping.replacement, 1)

    if not mapping.pattern.search(path):
        return None
    if callable(mapping.replacement):
        return mapping.replacement(path, anchor, context)
    return mapping.pattern.sub(mapping.replacement, path, count=1)


def _lookup(index: dict[str, str], path: str) -> str | None:
    key = path.lstrip("/") if path.startswith("/") else path
    target = index.get(key)
    if target is None and key.endswith("/"):
        target = index.get(key + "index.md") or index.get(key + "index.mdx")
    return target


class LinkResolver:
    """Resolves links for one batch using its source -> destination map."""

    def __init__(
        self,
        index: dict[str, str],
        settings: LinkSettings,
        extra_mappings: list[LinkMapping] | None = None,
        logger: ImportLogger | None = None,
    ) -> None:
        """Initialize resolver.

        Args:
            index: Remote source path -> project-relative destination path
            settings: Prefixes, mappings and handlers of the source
            extra_mappings: Additional global mappings (e.g. auto mappings)
            logger: Optional logger for debug traces
        """
        self.index = dict(index)
        self.strip_prefixes = settings.strip_prefixes
        mappings = list(settings.mappings) + list(extra_mappings or [])
        self.global_mappings = [m for m in mappings if m.is_global]
        self.local_mappings = [m for m in mappings if not m.is_global]
        self.handlers: list[LinkHandler] = list(settings.handlers)
        self.logger = logger

    def resolve(self, url: str, context: LinkContext) -> str:
        """Resolve a single link URL as written in a document."""
        if not url or is_external_link(url):
            return url

        link_path, anchor = split_anchor(url)
        if not link_path:
            return url

        normalized = normalize_link_path(link_path, context.source_path)

        mapped = normalized
        for mapping in self.global_mappings:
            result = apply_link_mapping(mapping, mapped, anchor, context)
            if result is not None:
                mapped = result

        target = _lookup(self.index, mapped)
        if target is None and mapped != normalized:
            target = _lookup(self.index, normalized)
        if target is not None:
            return generate_site_url(target, self.strip_prefixes) + anchor

        for mapping in self.local_mappings:
            result = apply_link_mapping(mapping, mapped, anchor, context)
            if result is not None and result != mapped:
                return result + anchor

        for handler in self.handlers:
            candidate = mapped + anchor
            if handler.test(candidate, context):
                return handler.transform(candidate, context)

        if self.logger:
            self.logger.debug(f"Unresolved link {url!r} in {context.source_path}")
        return strip_markup_extension(mapped) + anchor

    def rewrite(self, content: str, context: LinkContext) -> str:
        """Rewrite every markdown link in a document."""

        def _replace(match: re.Match[str]) -> str:
            text, url, title = match.group(1), match.group(2), match.group(3)
            return f"[{text}]({self.resolve(url, context)}{title})"

        return LINK_RE.sub(_replace, content)


def link_context_for(file: ImportedFile) -> LinkContext:
    rule = file.entry.rule
    return LinkContext(
        source_path=file.source_path,
        target_path=file.target_path,
        base_path=file.entry.base_path,
        rule_index=file.entry.rule_index,
        pattern=rule.pattern if rule else None,
    )


def resolve_links(
    files: list[ImportedFile],
    settings: LinkSettings,
    extra_mappings: list[LinkMapping] | None = None,
    logger: ImportLogger | None = None,
) -> list[ImportedFile]:
    """Rewrite links across a whole batch.

    The index is built once from the complete batch; files whose content came
    from an up-to-date local copy are indexed but not rewritten again.

    Returns:
        New ImportedFile objects; the input list is not modified
    """
    index = {f.source_path: f.target_path for f in files}
    resolver = LinkResolver(index, settings, extra_mappings, logger)

    resolved: list[ImportedFile] = []
    for file in files:
        if file.unchanged:
            resolved.append(file)
            continue
        content = resolver.rewrite(file.content, link_context_for(file))
        resolved.append(replace(file, content=content))
    return resolved


def infer_cross_section_path(base_path: str) -> str:
    """Site section of a base path: "src/content/docs/reference/api" -> "/reference/api"."""
    return CONTENT_ROOT_RE.sub("", base_path).rstrip("/") or "/"


def _site_path(cross_section: str, target: str, remainder: str = "") -> str:
    if cross_section and cross_section != "/":
        return f"{cross_section}/{target}{remainder}"
    return f"{target}{remainder}"


def generate_auto_link_mappings(rules: list[IncludeRule], strip_prefixes: list[str] | None = None) -> list[LinkMapping]:
    """Derive global link mappings from the rename rules of include rules.

    Links to a renamed source path then resolve to the renamed page even when
    that page belongs to another source or another run.
    """
    strip_prefixes = strip_prefixes or []
    mappings: list[LinkMapping] = []

    for rule in rules:
        inferred = infer_cross_section_path(rule.base_path)
        for source_path, rename in rule.rename.items():
            cross_section = rename.cross_section_path or inferred
            target = rename.target
            escaped = re.escape(source_path)

            if source_path.endswith("/"):
                folder_target = target if not target or target.endswith("/") else target + "/"

                def folder_replacement(
                    path: str,
                    anchor: str,
                    context: Any,
                    _prefix: str = source_path,
                    _target: str = folder_target,
                    _section: str = cross_section,
                ) -> str:
                    remainder = path[len(_prefix):]
                    return generate_site_url(_site_path(_section, _target, remainder), strip_prefixes)

                mappings.append(LinkMapping(
                    pattern=re.compile(f"^{escaped}(.+)$"),
                    replacement=folder_replacement,
                    is_global=True,
                    description=f"auto: {source_path} -> {target}",
                ))
            else:

                def file_replacement(
                    path: str,
                    anchor: str,
                    context: Any,
                    _target: str = target,
                    _section: str = cross_section,
                ) -> str:
                    return generate_site_url(_site_path(_section, _target), strip_prefixes)

                mappings.append(LinkMapping(
                    pattern=re.compile(f"^{escaped}$"),
                    replacement=file_replacement,
                    is_global=True,
                    description=f"auto: {source_path} -> {target}",
                ))

    return mappings
