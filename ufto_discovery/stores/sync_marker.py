"""Persistent marker holding the last commit whose tests were synced."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from ..logging import get_logger

STATE_DIRNAME = ".ufto-discovery"
DEFAULT_MARKER_PATH = Path(STATE_DIRNAME) / "synced_commit.txt"


class SyncMarkerStore:
    """Reads and writes a single opaque commit id on disk."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self.logger = get_logger("stores.sync_marker")

    @classmethod
    def for_repo(cls, root: Path, marker_path: Path | None = None) -> "SyncMarkerStore":
        relative = marker_path or DEFAULT_MARKER_PATH
        return cls(relative if relative.is_absolute() else root / relative)

    @property
    def path(self) -> Path:
        return self._path

    def read(self) -> Optional[str]:
        """Return the stored commit id, or ``None`` before the first sync."""
        try:
            data = self._path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        self.logger.debug("Loaded synced commit from %s", self._path)
        return data or None

    def write(self, commit: str) -> None:
        if not commit or not commit.strip():
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(commit.strip(), encoding="utf-8")
        self.logger.info("Saved synced commit %s to %s", commit.strip(), self._path)

    def clear(self) -> None:
        self._path.unlink(missing_ok=True)


__all__ = ["DEFAULT_MARKER_PATH", "STATE_DIRNAME", "SyncMarkerStore"]
