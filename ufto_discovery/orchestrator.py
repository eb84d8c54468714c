"""Run coordination: config, sync marker, discovery and dispatch."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional

from .config import DiscoveryConfig, load_config
from .discovery import Discovery
from .git.changes import ChangeSetAnalyzer
from .logging import clear_run_context, get_logger, set_run_context
from .models import ToolType
from .result import DiscoveryResult
from .stores.sync_marker import SyncMarkerStore

Dispatch = Callable[[DiscoveryResult], None]


class DiscoveryOrchestrator:
    """Runs one discovery cycle as an all-or-nothing unit.

    The sync marker is read once before discovery and written once after the
    result was dispatched. Any failure leaves the marker untouched.
    """

    def __init__(
        self,
        analyzer: ChangeSetAnalyzer | None = None,
        discovery: Discovery | None = None,
        marker_store: SyncMarkerStore | None = None,
    ) -> None:
        self.analyzer = analyzer
        self.discovery = discovery
        self.marker_store = marker_store
        self.logger = get_logger("orchestrator")

    def run(
        self,
        path: str | Path,
        *,
        tool_type: ToolType | None = None,
        force_full: bool = False,
        dry_run: bool = False,
        dispatch: Optional[Dispatch] = None,
    ) -> DiscoveryResult:
        repo_path = Path(path).expanduser().resolve()
        self.logger.info("Starting discovery run for %s", repo_path)

        config = load_config(repo_path)
        discovery = self._resolve_discovery(config, tool_type)
        marker = self.marker_store or SyncMarkerStore.for_repo(repo_path, config.sync.marker_path)

        last_synced = marker.read()
        if last_synced:
            self.logger.info("Last synced commit: %s", last_synced)
        else:
            self.logger.info("No synced commit recorded; running full discovery")

        since = None if force_full else last_synced
        set_run_context(repo_path.name, since)
        try:
            result = discovery.discover(repo_path, since)
            set_run_context(repo_path.name, since, result.new_commit)
            if dispatch is not None:
                dispatch(result)
            self._update_marker(marker, last_synced, result.new_commit, dry_run=dry_run)
        except Exception as exc:
            self._log_exception("Discovery run failed", exc)
            raise
        finally:
            clear_run_context()
        return result

    def _resolve_discovery(self, config: DiscoveryConfig, tool_type: ToolType | None) -> Discovery:
        if self.discovery is not None:
            return self.discovery
        analyzer = self.analyzer or ChangeSetAnalyzer(
            similarity_threshold=config.discovery.similarity_threshold
        )
        return Discovery(
            tool_type or config.tool_type,
            analyzer,
            exclude_dirs=config.discovery.exclude_dirs,
        )

    def _update_marker(
        self, marker: SyncMarkerStore, old_commit: Optional[str], new_commit: str, *, dry_run: bool
    ) -> None:
        if dry_run:
            self.logger.info("Dry-run completed; synced commit not updated")
            return
        if not new_commit or not new_commit.strip():
            self.logger.info("No head commit available; synced commit not updated")
            return
        if new_commit == old_commit:
            self.logger.debug("Head commit unchanged; synced commit not updated")
            return
        marker.write(new_commit)

    def _log_exception(self, message: str, exc: Exception) -> None:
        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.exception("%s: %s", message, exc)
        else:
            self.logger.error("%s: %s", message, exc)


__all__ = ["DiscoveryOrchestrator", "Dispatch"]
