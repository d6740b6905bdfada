"""Key-value side store for conditional-fetch cache tags."""

import json
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


class MetaStore:
    """Thread-safe string key-value store persisted as a JSON manifest.

    Values are kept in memory and written by save(); nothing is written
    when no key changed since the last save.
    """

    VERSION = "1.0"

    def __init__(self, path: Path | None = None) -> None:
        """Initialize the store.

        Args:
            path: JSON file backing the store, or None for memory only
        """
        self.path = Path(path) if path is not None else None
        self._lock = threading.Lock()
        self._data: dict[str, str] | None = None
        self._dirty = False

    @property
    def data(self) -> dict[str, str]:
        """Get or load the stored values."""
        if self._data is None:
            self._data = self._load()
        return self._data

    def _load(self) -> dict[str, str]:
        if self.path is None or not self.path.exists():
            return {}
        with open(self.path) as f:
            raw = json.load(f)
        return {str(k): str(v) for k, v in (raw.get("entries") or {}).items()}

    def save(self) -> bool:
        """Write the store to disk if anything changed.

        Returns:
            True if the file was written
        """
        with self._lock:
            if self.path is None or not self._dirty:
                return False
            payload: dict[str, Any] = {
                "version": self.VERSION,
                "last_updated": datetime.now(timezone.utc).isoformat(),
                "entries": dict(sorted(self.data.items())),
            }
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w") as f:
                json.dump(payload, f, indent=2)
                f.write("\n")
            self._dirty = False
            return True

    def get(self, key: str) -> str | None:
        with self._lock:
            return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            if self.data.get(key) != value:
                self.data[key] = value
                self._dirty = True

    def delete(self, key: str) -> bool:
        with self._lock:
            if key in self.data:
                del self.data[key]
                self._dirty = True
                return True
            return False

    def has(self, key: str) -> bool:
        with self._lock:
            return key in self.data

    def keys(self, prefix: str = "") -> list[str]:
        with self._lock:
            return [k for k in self.data if k.startswith(prefix)]

    def clear(self, prefix: str = "") -> int:
        """Remove every key (or every key with a prefix).

        Returns:
            Number of removed keys
        """
        with self._lock:
            doomed = [k for k in self.data if k.startswith(prefix)]
            for key in doomed:
                del self.data[key]
            if doomed:
                self._dirty = True
            return len(doomed)

    def scoped(self, namespace: str) -> "ScopedMetaStore":
        """View of the store with every key prefixed by a namespace."""
        return ScopedMetaStore(self, namespace)

    def status(self) -> dict[str, Any]:
        """Get store statistics, grouped by namespace."""
        namespaces: dict[str, int] = {}
        for key in self.keys():
            namespace = key.split("::", 1)[0] if "::" in key else ""
            namespaces[namespace] = namespaces.get(namespace, 0) + 1
        return {
            "path": str(self.path) if self.path else None,
            "total_keys": len(self.keys()),
            "namespaces": namespaces,
        }


class ScopedMetaStore:
    """MetaStore view keeping one source's keys apart from the others."""

    def __init__(self, store: MetaStore, namespace: str) -> None:
        self.store = store
        self.namespace = namespace

    def _key(self, key: str) -> str:
        return f"{self.namespace}::{key}"

    def get(self, key: str) -> str | None:
        return self.store.get(self._key(key))

    def set(self, key: str, value: str) -> None:
        self.store.set(self._key(key), value)

    def delete(self, key: str) -> bool:
        return self.store.delete(self._key(key))

    def has(self, key: str) -> bool:
        return self.store.has(self._key(key))

    def clear(self) -> int:
        return self.store.clear(f"{self.namespace}::")
