"""Include-pattern matching against remote paths."""

import re
from dataclasses import dataclass

from wcmatch import glob

from ..models.config import IncludeRule

# Globstar, brace expansion and forward slashes on every OS; case-sensitive
GLOB_FLAGS = glob.GLOBSTAR | glob.BRACE | glob.FORCEUNIX

_WILDCARD_RE = re.compile(r'[*?{\[]')


@dataclass(frozen=True)
class IncludeMatch:
    """Result of matching a path against include rules."""

    rule: IncludeRule | None  # None in import-everything mode
    rule_index: int | None


def matches_glob(path: str, pattern: str) -> bool:
    """Check a full path against a single glob pattern."""
    return bool(glob.globmatch(path, pattern, flags=GLOB_FLAGS))


def match_include(path: str, rules: list[IncludeRule]) -> IncludeMatch | None:
    """Find the first include rule matching a remote path.

    Args:
        path: Remote file path (forward slashes, no leading slash)
        rules: Ordered include rules for the source

    Returns:
        The first match, a rule-less match when no rules are configured,
        or None when the path is not included
    """
    if not rules:
        return IncludeMatch(rule=None, rule_index=None)

    for index, rule in enumerate(rules):
        if matches_glob(path, rule.pattern):
            return IncludeMatch(rule=rule, rule_index=index)

    return None


def glob_literal_prefix(pattern: str) -> str:
    """Return the part of a glob before its first wildcard.

    "docs/**/*.md" -> "docs/", "src/{a,b}/x" -> "src/", "README.md" -> "README.md"
    """
    return _WILDCARD_RE.split(pattern, maxsplit=1)[0]
