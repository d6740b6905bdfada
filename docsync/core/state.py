"""Change-detection state: last imported commit per source."""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..models.config import SourceConfig
from .logger import ImportLogger

STATE_FILENAME = ".github-import-state.json"


@dataclass
class ImportRecord:
    """State of a single imported source."""

    name: str  # Source name at last import
    last_commit: str  # Commit SHA imported
    last_imported_at: str  # ISO timestamp of last import
    ref: str  # Ref the commit was resolved from

    def to_dict(self) -> dict[str, str]:
        """Convert to dictionary."""
        return {
            "name": self.name,
            "lastCommit": self.last_commit,
            "lastImportedAt": self.last_imported_at,
            "ref": self.ref,
        }

    @classmethod
    def from_dict(cls, data: dict[str, str]) -> "ImportRecord":
        """Create from dictionary."""
        return cls(
            name=data.get("name", ""),
            last_commit=data.get("lastCommit", ""),
            last_imported_at=data.get("lastImportedAt", ""),
            ref=data.get("ref", ""),
        )


@dataclass
class ImportStateData:
    """Complete state for all sources."""

    imports: dict[str, ImportRecord] = field(default_factory=dict)
    last_checked: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "imports": {k: v.to_dict() for k, v in self.imports.items()},
            "lastChecked": self.last_checked,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ImportStateData":
        """Create from dictionary."""
        imports = {}
        for source_id, record in (data.get("imports") or {}).items():
            imports[source_id] = ImportRecord.from_dict(record)
        return cls(imports=imports, last_checked=data.get("lastChecked"))


class ImportState:
    """Manages the per-working-directory import state file.

    The state is advisory: it decides whether a source looks changed, never
    what gets written.
    """

    def __init__(self, state_file: Path, logger: ImportLogger | None = None) -> None:
        """Initialize state manager.

        Args:
            state_file: Path to .github-import-state.json file
            logger: Optional logger for load warnings
        """
        self.state_file = Path(state_file)
        self.logger = logger
        self._state: ImportStateData | None = None

    @property
    def state(self) -> ImportStateData:
        """Get or load the state data."""
        if self._state is None:
            self._state = self._load_state()
        return self._state

    def _load_state(self) -> ImportStateData:
        """Load state from disk, starting fresh if missing or unreadable."""
        if not self.state_file.exists():
            return ImportStateData()
        try:
            with open(self.state_file) as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("state root is not an object")
            return ImportStateData.from_dict(data)
        except (OSError, ValueError) as e:
            if self.logger:
                self.logger.warn(f"Could not read {self.state_file.name}, starting fresh: {e}")
            return ImportStateData()

    def save(self) -> None:
        """Save state to disk."""
        self.state_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.state_file, "w") as f:
            json.dump(self.state.to_dict(), f, indent=2)
            f.write("\n")

    def get_record(self, source_id: str) -> ImportRecord | None:
        """Get state for a specific source."""
        return self.state.imports.get(source_id)

    def needs_reimport(self, source_id: str, commit_sha: str) -> bool:
        """True when nothing was imported yet or the commit moved."""
        record = self.get_record(source_id)
        return record is None or not record.last_commit or record.last_commit != commit_sha

    def record_import(self, source: SourceConfig, commit_sha: str) -> ImportRecord:
        """Update state after a successful import."""
        record = ImportRecord(
            name=source.name,
            last_commit=commit_sha,
            last_imported_at=datetime.now(timezone.utc).isoformat(),
            ref=source.ref,
        )
        self.state.imports[source.source_id] = record
        return record

    def remove_record(self, source_id: str) -> None:
        self.state.imports.pop(source_id, None)

    def touch_checked(self) -> None:
        """Update lastChecked to now."""
        self.state.last_checked = datetime.now(timezone.utc).isoformat()

    def get_status_summary(self) -> dict[str, Any]:
        """Get a summary of import state."""
        return {
            "state_file": str(self.state_file),
            "last_checked": self.state.last_checked,
            "sources": [
                {
                    "id": source_id,
                    "name": record.name,
                    "ref": record.ref,
                    "commit": record.last_commit[:8] if record.last_commit else "N/A",
                    "imported_at": record.last_imported_at,
                }
                for source_id, record in self.state.imports.items()
            ],
        }
