"""Ordered content transforms applied to each imported file."""

import re
from dataclasses import dataclass
from typing import Any, Callable

import frontmatter

from ..models.config import ConfigurationError, IncludeRule, SourceConfig, load_callable
from .logger import ImportLogger


@dataclass(frozen=True)
class TransformContext:
    """What a transform knows about the file it is rewriting."""

    id: str  # Stable store id
    path: str  # Original remote path
    source: SourceConfig
    rule: IncludeRule | None
    rule_index: int | None
    target_path: str = ""


Transform = Callable[[str, TransformContext], str]

_H1_RE = re.compile(r'^#[ \t]+(.+?)[ \t]*#*[ \t]*$', re.MULTILINE)


def _find_first_h1(content: str) -> re.Match[str] | None:
    """Find the first ATX H1 outside fenced code blocks."""
    in_fence = False
    offset = 0
    for line in content.splitlines(keepends=True):
        stripped = line.lstrip()
        if stripped.startswith("```") or stripped.startswith("~~~"):
            in_fence = not in_fence
        elif not in_fence:
            match = _H1_RE.match(content, offset, offset + len(line.rstrip("\r\n")))
            if match:
                return match
        offset += len(line)
    return None


def convert_h1_to_title(content: str, context: TransformContext) -> str:
    """Move the first H1 heading into the frontmatter title.

    Documents that already declare a title keep it; the heading is still
    removed so it does not render twice.
    """
    post = frontmatter.loads(content)
    match = _find_first_h1(post.content)
    if match is None:
        return content

    if not post.metadata.get("title"):
        post.metadata["title"] = match.group(1).strip()
    body = post.content[:match.start()] + post.content[match.end():]
    post.content = body.lstrip("\n")
    return frontmatter.dumps(post) + "\n"


def remove_h1(content: str, context: TransformContext) -> str:
    """Drop the first H1 heading."""
    post = frontmatter.loads(content)
    match = _find_first_h1(post.content)
    if match is None:
        return content
    body = post.content[:match.start()] + post.content[match.end():]
    if not post.metadata:
        return body.lstrip("\n")
    post.content = body.lstrip("\n")
    return frontmatter.dumps(post) + "\n"


BUILTIN_TRANSFORMS: dict[str, Transform] = {
    "convert_h1_to_title": convert_h1_to_title,
    "remove_h1": remove_h1,
}


def resolve_transform(reference: Any) -> Transform:
    """Turn a configured transform into a callable.

    Accepts a callable, a built-in name or a "module:function" reference.

    Raises:
        ConfigurationError: If the reference cannot be resolved
    """
    if callable(reference):
        return reference  # type: ignore[no-any-return]
    if not isinstance(reference, str):
        raise ConfigurationError(f"Invalid transform: {reference!r}")
    if reference in BUILTIN_TRANSFORMS:
        return BUILTIN_TRANSFORMS[reference]
    if ":" in reference:
        return load_callable(reference)
    raise ConfigurationError(
        f"Unknown transform {reference!r}; built-ins are {', '.join(sorted(BUILTIN_TRANSFORMS))}"
    )


def resolve_transforms(references: list[Any]) -> list[Transform]:
    return [resolve_transform(r) for r in references]


def _transform_name(transform: Transform) -> str:
    return getattr(transform, "__name__", repr(transform))


def apply_transforms(
    content: str,
    context: TransformContext,
    transforms: list[Transform],
    logger: ImportLogger | None = None,
) -> str:
    """Run transforms in order, skipping any that raise.

    A failing transform leaves the content as it was before that transform.
    """
    for transform in transforms:
        try:
            result = transform(content, context)
        except Exception as e:
            if logger:
                logger.warn(f"Transform {_transform_name(transform)} failed for {context.path}: {e}")
            continue

        if not isinstance(result, str):
            if logger:
                logger.warn(
                    f"Transform {_transform_name(transform)} returned "
                    f"{type(result).__name__} for {context.path}, ignoring"
                )
            continue
        content = result

    return content


@dataclass
class TransformTable:
    """Resolved transforms of a source, keyed by rule index."""

    source_transforms: list[Transform]
    rule_transforms: dict[int, list[Transform]]

    @classmethod
    def build(cls, source: SourceConfig) -> "TransformTable":
        """Resolve every configured transform up front.

        Raises:
            ConfigurationError: If any reference cannot be resolved
        """
        return cls(
            source_transforms=resolve_transforms(source.transforms),
            rule_transforms={
                index: resolve_transforms(rule.transforms)
                for index, rule in enumerate(source.includes)
            },
        )

    def for_rule(self, rule_index: int | None) -> list[Transform]:
        """Source-level transforms followed by the rule's own."""
        if rule_index is None:
            return list(self.source_transforms)
        return self.source_transforms + self.rule_transforms.get(rule_index, [])
