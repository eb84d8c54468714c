"""Change-set computation between two git commits."""

from __future__ import annotations

import difflib
import subprocess
from collections import defaultdict
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Sequence, Tuple

from ..errors import ChangeSetError
from ..logging import get_logger
from ..models import ChangeType, ScmAffectedFile

DEFAULT_SIMILARITY_THRESHOLD = 0.5
HEAD = "HEAD"


def line_similarity(old_text: str, new_text: str) -> float:
    """Share of unchanged lines across all segments of a line diff.

    Lines are compared with surrounding whitespace ignored. Returns 0 when both
    sides are empty.
    """
    old_lines = [line.strip() for line in old_text.splitlines()]
    new_lines = [line.strip() for line in new_text.splitlines()]
    matcher = difflib.SequenceMatcher(None, old_lines, new_lines, autojunk=False)
    unchanged = changed = 0
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            unchanged += i2 - i1
        else:
            changed += (i2 - i1) + (j2 - j1)
    total = unchanged + changed
    return unchanged / total if total else 0.0


class ChangeSetAnalyzer:
    """Reads two git tree snapshots and reports per-path changes.

    Paths only in the new tree are ADDs, paths only in the old tree are DELETEs
    and paths whose blob changed are EDITs carrying both paths. A DELETE and an
    ADD sharing a file name are reported as one EDIT from the old to the new path
    when their blobs are identical or similar enough.
    """

    def __init__(
        self,
        runner: Callable[..., bytes] | None = None,
        *,
        similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    ) -> None:
        self._runner = runner or self._default_runner
        self.similarity_threshold = similarity_threshold
        self.logger = get_logger("git.changes")

    def head_commit(self, repo_path: str | Path) -> str:
        output = self._run(["git", "rev-parse", HEAD], cwd=Path(repo_path))
        return output.decode("utf-8", errors="replace").strip()

    def compute(
        self, repo_path: str | Path, old_commit: str, new_commit: str = HEAD
    ) -> List[ScmAffectedFile]:
        repo = Path(repo_path)
        if not (repo / ".git").exists():
            raise ChangeSetError(f"{repo_path} is not a Git repository")

        old_tree = self.tree(repo, old_commit)
        new_tree = self.tree(repo, new_commit)

        added = sorted(path for path in new_tree if path not in old_tree)
        deleted = sorted(path for path in old_tree if path not in new_tree)
        modified = sorted(
            path for path in new_tree if path in old_tree and old_tree[path] != new_tree[path]
        )

        records: List[ScmAffectedFile] = []
        for path in modified:
            score = self.similarity(repo, old_tree[path], new_tree[path])
            if score < self.similarity_threshold:
                self.logger.debug(
                    "%s changed beyond the similarity threshold (%.2f); reporting as edit", path, score
                )
            records.append(
                ScmAffectedFile(
                    new_path=path,
                    old_path=path,
                    change_type=ChangeType.EDIT,
                    old_id=old_tree[path],
                    new_id=new_tree[path],
                    similarity=score,
                )
            )

        renames, added, deleted = self._pair_renames(repo, added, deleted, old_tree, new_tree)
        records.extend(renames)
        for path in added:
            records.append(
                ScmAffectedFile(
                    new_path=path, old_path=None, change_type=ChangeType.ADD, new_id=new_tree[path]
                )
            )
        for path in deleted:
            records.append(
                ScmAffectedFile(
                    new_path=path, old_path=path, change_type=ChangeType.DELETE, old_id=old_tree[path]
                )
            )

        records.sort(key=lambda record: (record.new_path, record.change_type.value))
        if not records:
            self.logger.info("No differences found between %s and %s", old_commit, new_commit)
        else:
            self.logger.debug("Computed %d affected files between %s and %s", len(records), old_commit, new_commit)
        return records

    def tree(self, repo: Path, ref: str) -> Dict[str, str]:
        """Return ``path -> blob id`` for every file reachable from ``ref``."""
        output = self._run(["git", "ls-tree", "-r", "-z", "--full-tree", ref], cwd=repo)
        entries: Dict[str, str] = {}
        for raw in output.split(b"\0"):
            if not raw:
                continue
            meta, _, raw_path = raw.partition(b"\t")
            fields = meta.split()
            if len(fields) != 3 or fields[1] != b"blob":
                continue
            entries[raw_path.decode("utf-8", errors="replace")] = fields[2].decode("ascii")
        return entries

    def read_blob(self, repo: Path, object_id: str) -> bytes:
        return self._run(["git", "cat-file", "blob", object_id], cwd=repo)

    def similarity(self, repo: Path, old_id: str, new_id: str) -> float:
        old_blob = self.read_blob(repo, old_id)
        new_blob = self.read_blob(repo, new_id)
        try:
            old_text = old_blob.decode("utf-8")
            new_text = new_blob.decode("utf-8")
        except UnicodeDecodeError:
            return 0.0
        return line_similarity(old_text, new_text)

    # ------------------------------------------------------------------
    # Internals

    def _pair_renames(
        self,
        repo: Path,
        added: Sequence[str],
        deleted: Sequence[str],
        old_tree: Dict[str, str],
        new_tree: Dict[str, str],
    ) -> Tuple[List[ScmAffectedFile], List[str], List[str]]:
        added_by_name: Dict[str, List[str]] = defaultdict(list)
        for path in added:
            added_by_name[_file_name(path)].append(path)

        remaining = set(added)
        renames: List[ScmAffectedFile] = []
        unmatched: List[str] = []
        for old_path in deleted:
            candidates = [path for path in added_by_name.get(_file_name(old_path), []) if path in remaining]
            match, score = self._best_candidate(repo, old_tree[old_path], candidates, new_tree)
            if match is None:
                unmatched.append(old_path)
                continue
            remaining.discard(match)
            self.logger.debug("Detected move %s -> %s (similarity %.2f)", old_path, match, score)
            renames.append(
                ScmAffectedFile(
                    new_path=match,
                    old_path=old_path,
                    change_type=ChangeType.EDIT,
                    old_id=old_tree[old_path],
                    new_id=new_tree[match],
                    similarity=score,
                )
            )
        return renames, sorted(remaining), unmatched

    def _best_candidate(
        self, repo: Path, old_id: str, candidates: Iterable[str], new_tree: Dict[str, str]
    ) -> Tuple[str | None, float]:
        candidates = list(candidates)
        for path in candidates:
            if new_tree[path] == old_id:
                return path, 1.0
        best_path: str | None = None
        best_score = 0.0
        for path in candidates:
            score = self.similarity(repo, old_id, new_tree[path])
            if score >= self.similarity_threshold and score > best_score:
                best_path, best_score = path, score
        return best_path, best_score

    def _run(self, args: Sequence[str], *, cwd: Path) -> bytes:
        try:
            return self._runner(args, cwd=cwd)
        except subprocess.CalledProcessError as exc:
            stderr = exc.stderr or ""
            if isinstance(stderr, bytes):
                stderr = stderr.decode("utf-8", errors="replace")
            stderr = stderr.strip()
            raise ChangeSetError(f"Failed to process SCM changes: {' '.join(args)}: {stderr or exc}") from exc
        except OSError as exc:
            raise ChangeSetError(f"Failed to process SCM changes: {' '.join(args)}: {exc}") from exc

    @staticmethod
    def _default_runner(args: Iterable[str], *, cwd: Path) -> bytes:
        completed = subprocess.run(
            list(args),
            cwd=str(cwd),
            check=True,
            capture_output=True,
        )
        return completed.stdout


def _file_name(path: str) -> str:
    return path.rsplit("/", 1)[-1]


__all__ = ["ChangeSetAnalyzer", "DEFAULT_SIMILARITY_THRESHOLD", "line_similarity"]
