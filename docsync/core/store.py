"""Destination store records and safe file writes."""

import hashlib
import json
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

import frontmatter

from ..models.config import ensure_within_root
from ..models.records import ImportedFile

FRONTMATTER_EXTENSIONS = (".md", ".mdx")


@dataclass
class StoreRecord:
    """An entry of the destination content store."""

    id: str
    body: str
    data: dict[str, Any] = field(default_factory=dict)
    file_path: str = ""
    digest: str = ""
    rendered: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "body": self.body,
            "data": self.data,
            "file_path": self.file_path,
            "digest": self.digest,
            "rendered": self.rendered,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StoreRecord":
        """Create from dictionary."""
        return cls(
            id=data["id"],
            body=data.get("body", ""),
            data=data.get("data") or {},
            file_path=data.get("file_path", ""),
            digest=data.get("digest", ""),
            rendered=data.get("rendered"),
        )


class ContentStore(Protocol):
    """Store owned by the consuming site; keyed by stable id."""

    def get(self, id: str) -> StoreRecord | None: ...

    def set(self, record: StoreRecord) -> None: ...

    def delete(self, id: str) -> bool: ...

    def clear(self) -> None: ...

    def has(self, id: str) -> bool: ...


class MemoryContentStore:
    """In-process content store."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.records: dict[str, StoreRecord] = {}

    def get(self, id: str) -> StoreRecord | None:
        with self._lock:
            return self.records.get(id)

    def set(self, record: StoreRecord) -> None:
        with self._lock:
            self.records[record.id] = record

    def delete(self, id: str) -> bool:
        with self._lock:
            return self.records.pop(id, None) is not None

    def clear(self) -> None:
        with self._lock:
            self.records.clear()

    def has(self, id: str) -> bool:
        with self._lock:
            return id in self.records


class JsonContentStore(MemoryContentStore):
    """Content store persisted to a JSON file by save()."""

    def __init__(self, path: Path) -> None:
        super().__init__()
        self.path = Path(path)
        self._dirty = False
        if self.path.exists():
            with open(self.path) as f:
                raw = json.load(f)
            self.records = {
                key: StoreRecord.from_dict(value)
                for key, value in (raw.get("records") or {}).items()
            }

    def set(self, record: StoreRecord) -> None:
        super().set(record)
        self._dirty = True

    def delete(self, id: str) -> bool:
        removed = super().delete(id)
        if removed:
            self._dirty = True
        return removed

    def clear(self) -> None:
        if self.records:
            self._dirty = True
        super().clear()

    def save(self) -> bool:
        """Write the store to disk if anything changed.

        Returns:
            True if the file was written
        """
        with self._lock:
            if not self._dirty:
                return False
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w") as f:
                json.dump(
                    {"records": {k: v.to_dict() for k, v in sorted(self.records.items())}},
                    f,
                    indent=2,
                )
                f.write("\n")
            self._dirty = False
            return True


def compute_digest(content: str) -> str:
    """Compute SHA-256 hash of content."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def parse_entry(content: str, path: str) -> tuple[dict[str, Any], str]:
    """Split a document into frontmatter data and body.

    Files other than markdown keep their whole content as body.

    Raises:
        yaml.YAMLError: If the frontmatter block is malformed
    """
    if not path.lower().endswith(FRONTMATTER_EXTENSIONS):
        return {}, content
    post = frontmatter.loads(content)
    return dict(post.metadata), post.content


def write_file(relative_path: str, content: str, project_root: Path) -> Path:
    """Write a UTF-8 document under the project root, creating directories.

    Raises:
        ConfigurationError: If the path resolves outside the project root
    """
    destination = ensure_within_root(relative_path, project_root)
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_text(content, encoding="utf-8")
    return destination


@dataclass
class PersistOutcome:
    written: bool = False  # File on disk changed
    stored: bool = False  # Store entry set


def persist_file(
    file: ImportedFile,
    store: ContentStore,
    project_root: Path,
    clear: bool = False,
) -> PersistOutcome:
    """Write an imported file and record it in the store.

    Nothing is written when the file on disk already has this content, and
    the store is left alone when its record has the same digest and path.
    With clear, an existing record is deleted before being set again.
    """
    outcome = PersistOutcome()
    destination = ensure_within_root(file.target_path, project_root)
    digest = compute_digest(file.content)

    current = destination.read_text(encoding="utf-8") if destination.exists() else None
    if current != file.content:
        write_file(file.target_path, file.content, project_root)
        outcome.written = True

    record = store.get(file.stable_id)
    if clear and record is not None:
        store.delete(file.stable_id)
        record = None

    if record is None or record.digest != digest or record.file_path != file.target_path:
        data, body = parse_entry(file.content, file.target_path)
        store.set(StoreRecord(
            id=file.stable_id,
            body=body,
            data=data,
            file_path=file.target_path,
            digest=digest,
        ))
        outcome.stored = True

    return outcome
