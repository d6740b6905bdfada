"""Destination paths and stable ids for imported files."""

import posixpath

from ..models.config import IncludeRule
from .patterns import glob_literal_prefix


def generate_id(path: str) -> str:
    """Derive the stable store id for a remote path.

    The extension after the last dot is dropped, unless that dot is the
    first character (".gitignore" stays as is).
    """
    dot = path.rfind(".")
    if dot > 0:
        return path[:dot]
    return path


def apply_rename(remote_path: str, rule: IncludeRule) -> str | None:
    """Apply a rule's rename mappings to a remote path.

    Exact-file keys win; otherwise the longest folder key (ending in "/")
    that prefixes the path replaces that prefix.

    Returns:
        The renamed path, or None if no mapping applies
    """
    exact = rule.rename.get(remote_path)
    if exact is not None:
        return exact.target

    best_key = ""
    for key in rule.rename:
        if key.endswith("/") and remote_path.startswith(key) and len(key) > len(best_key):
            best_key = key

    if not best_key:
        return None

    target = rule.rename[best_key].target
    if target and not target.endswith("/"):
        target += "/"
    return target + remote_path[len(best_key):]


def rule_relative_path(remote_path: str, rule: IncludeRule) -> str:
    """Strip the pattern's literal prefix from a remote path.

    Falls back to the basename when the prefix does not apply or consumes
    the whole path.
    """
    prefix = glob_literal_prefix(rule.pattern).lstrip("/")
    if prefix and remote_path.startswith(prefix):
        relative = remote_path[len(prefix):].lstrip("/")
        if relative:
            return relative
    elif not prefix and remote_path:
        return remote_path
    return posixpath.basename(remote_path)


def generate_target_path(
    remote_path: str,
    rule: IncludeRule | None,
    default_base_path: str = ".",
) -> str:
    """Compute the local destination of a remote file.

    Args:
        remote_path: Path within the repository
        rule: Matched include rule (None in import-everything mode)
        default_base_path: Destination root used when there is no rule

    Returns:
        Project-relative destination path using forward slashes
    """
    if rule is None:
        return posixpath.normpath(posixpath.join(default_base_path, remote_path))

    renamed = apply_rename(remote_path, rule)
    if renamed is None:
        relative = rule_relative_path(remote_path, rule)
    else:
        # Targets may be written in the source layout; keep them relative
        prefix = glob_literal_prefix(rule.pattern).lstrip("/")
        relative = renamed
        if prefix and renamed.startswith(prefix) and len(renamed) > len(prefix):
            relative = renamed[len(prefix):]
        relative = relative.lstrip("/")

    return posixpath.normpath(posixpath.join(rule.base_path, relative))
