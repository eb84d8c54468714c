"""In-memory stand-in for ChangeSetAnalyzer."""

from __future__ import annotations

from pathlib import Path
from typing import List, Sequence, Tuple

from ufto_discovery.models import ScmAffectedFile


class StubAnalyzer:
    """Returns a fixed head commit and list of affected files."""

    def __init__(self, records: Sequence[ScmAffectedFile] = (), head: str = "new-commit") -> None:
        self.records = list(records)
        self.head = head
        self.calls: List[Tuple[str, str]] = []

    def head_commit(self, repo_path: Path) -> str:
        return self.head

    def compute(self, repo_path: Path, old_commit: str, new_commit: str) -> List[ScmAffectedFile]:
        self.calls.append((old_commit, new_commit))
        return list(self.records)


__all__ = ["StubAnalyzer"]
