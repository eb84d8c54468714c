"""Discovery engine producing lifecycle-tagged tests and resource files."""

from __future__ import annotations

from pathlib import Path, PurePosixPath
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar

from .classifier import (
    classify,
    is_action_parameter_file,
    is_data_table_file,
    is_test_main_file,
    kind_for_main_file,
)
from .git.changes import ChangeSetAnalyzer
from .logging import get_logger
from .metadata import document_description, extract_actions, load_document, to_html_description
from .models import (
    AutomatedTest,
    ChangeType,
    LifecycleStatus,
    ScmAffectedFile,
    ScmResourceFile,
    TestKind,
    ToolType,
)
from .result import DiscoveryResult
from .stores.sync_marker import STATE_DIRNAME

_SKIPPED_DIRS = frozenset({".git", ".github", STATE_DIRNAME})

_Entity = TypeVar("_Entity", AutomatedTest, ScmResourceFile)


def _split_test_path(relative_dir: str, repo: Path) -> Tuple[str, str]:
    """Return ``(package_name, name)`` for a test folder relative to ``repo``."""
    parts = [part for part in relative_dir.split("/") if part and part != "."]
    if not parts:
        return "", repo.name
    return "/".join(parts[:-1]), parts[-1]


def _is_under(folder: str, test_path: str) -> bool:
    return folder == test_path or folder.startswith(f"{test_path}/")


class Discovery:
    """Walks a working tree or a git change-set and builds a :class:`DiscoveryResult`."""

    def __init__(
        self,
        tool_type: ToolType = ToolType.UFT,
        analyzer: ChangeSetAnalyzer | None = None,
        *,
        exclude_dirs: Iterable[str] = (),
    ) -> None:
        self.tool_type = tool_type
        self.analyzer = analyzer or ChangeSetAnalyzer()
        self.exclude_dirs = {entry.strip("/") for entry in exclude_dirs if entry and entry.strip("/")}
        self.logger = get_logger("discovery")

    def discover(self, repo_path: str | Path, last_synced: Optional[str] = None) -> DiscoveryResult:
        """Run a full scan when nothing was synced yet, otherwise an incremental one."""
        repo = Path(repo_path).expanduser().resolve()
        if not repo.is_dir():
            raise NotADirectoryError(f"Repository path is not a directory: {repo_path}")

        if not last_synced:
            head = self.analyzer.head_commit(repo) if (repo / ".git").exists() else ""
            return self.full_scan(repo, head)
        head = self.analyzer.head_commit(repo)
        return self.incremental_scan(repo, last_synced, head)

    # ------------------------------------------------------------------
    # Full scan

    def full_scan(self, repo_path: str | Path, head_commit: str = "") -> DiscoveryResult:
        repo = Path(repo_path)
        self.logger.info("Starting full discovery of %s", repo)
        tests: List[AutomatedTest] = []
        resource_files: List[ScmResourceFile] = []
        self._scan_directory(repo, repo, tests, resource_files)
        self.logger.info(
            "Full discovery found %d tests and %d resource files", len(tests), len(resource_files)
        )
        return DiscoveryResult.build(head_commit, tests, resource_files, is_full_sync=True)

    def _scan_directory(
        self,
        repo: Path,
        directory: Path,
        tests: List[AutomatedTest],
        resource_files: List[ScmResourceFile],
    ) -> None:
        if directory != repo and self._is_excluded(directory.relative_to(repo).as_posix()):
            return

        children = sorted(directory.iterdir(), key=lambda child: child.name)
        kind = classify(child.name for child in children)
        if kind.is_none():
            for child in children:
                if child.is_symlink() and child.is_dir():
                    self.logger.debug("Skipping symlinked directory %s", child)
                    continue
                if child.is_dir():
                    self._scan_directory(repo, child, tests, resource_files)
                elif is_data_table_file(child.name):
                    resource_files.append(self._build_resource_file(repo, child.relative_to(repo).as_posix()))
            return

        if self._skips_kind(kind):
            self.logger.debug("Skipping %s test at %s for %s", kind.value, directory, self.tool_type.value)
            return
        tests.append(self._build_test(repo, directory, kind))

    # ------------------------------------------------------------------
    # Incremental scan

    def incremental_scan(
        self, repo_path: str | Path, old_commit: str, head_commit: str
    ) -> DiscoveryResult:
        repo = Path(repo_path)
        if old_commit == head_commit:
            self.logger.info("Repository is already synced at %s", head_commit)
            return DiscoveryResult.build(head_commit, (), (), is_full_sync=False)

        self.logger.info("Starting incremental discovery %s..%s", old_commit, head_commit)
        affected = self.analyzer.compute(repo, old_commit, head_commit)
        tests: List[AutomatedTest] = []
        resource_files: List[ScmResourceFile] = []
        for record in affected:
            if self._is_excluded(record.new_path) or (
                record.old_path and self._is_excluded(record.old_path)
            ):
                continue
            if is_test_main_file(record.new_path):
                test = self._test_for_main_file(repo, record)
                if test is not None:
                    tests.append(test)
            elif self.tool_type is ToolType.MBT and is_action_parameter_file(record.new_path):
                test = self._test_for_parameter_file(repo, record)
                if test is not None:
                    tests.append(test)
            elif is_data_table_file(record.new_path):
                resource_file = self._resource_for_data_table(repo, record)
                if resource_file is not None:
                    resource_files.append(resource_file)

        for item in (*tests, *resource_files):
            item.change_set_src = old_commit
            item.change_set_dst = head_commit

        tests = _dedupe(tests, key=lambda test: test.key, merge=_merge_move_identity)
        resource_files = _dedupe(resource_files, key=lambda item: item.relative_path)
        resource_files = self._remove_false_positives(tests, resource_files)
        tests.sort(key=lambda test: test.key)
        resource_files.sort(key=lambda item: item.relative_path)

        self.logger.info(
            "Incremental discovery found %d test changes and %d resource file changes",
            len(tests),
            len(resource_files),
        )
        return DiscoveryResult.build(head_commit, tests, resource_files, is_full_sync=False)

    def _test_for_main_file(self, repo: Path, record: ScmAffectedFile) -> Optional[AutomatedTest]:
        path = repo / record.new_path
        test_dir = path.parent
        if record.change_type is ChangeType.DELETE:
            if path.exists():
                return None
            kind = kind_for_main_file(record.new_path)
            if self._skips_kind(kind):
                return None
            package_name, name = _split_test_path(PurePosixPath(record.new_path).parent.as_posix(), repo)
            self.logger.debug("Test %s/%s was deleted", package_name, name)
            return AutomatedTest(
                name=name,
                package_name=package_name,
                test_kind=kind,
                status=LifecycleStatus.DELETED,
                executable=False,
            )

        if not path.exists():
            self.logger.debug("Skipping %s: not present in the working tree", record.new_path)
            return None
        kind = classify(child.name for child in test_dir.iterdir())
        if kind.is_none() or self._skips_kind(kind):
            return None

        if record.change_type is ChangeType.ADD:
            return self._build_test(repo, test_dir, kind)

        test = self._build_test(repo, test_dir, kind, status=LifecycleStatus.MODIFIED)
        old_dir = PurePosixPath(record.old_path or record.new_path).parent.as_posix()
        test.old_package_name, test.old_name = _split_test_path(old_dir, repo)
        if test.is_moved:
            self.logger.debug("Test %s moved from %s", test.path, old_dir)
        return test

    def _test_for_parameter_file(self, repo: Path, record: ScmAffectedFile) -> Optional[AutomatedTest]:
        test_dir = (repo / record.new_path).parent.parent
        if not test_dir.is_dir():
            return None
        kind = classify(child.name for child in test_dir.iterdir())
        if kind is not TestKind.GUI:
            return None
        test = self._build_test(repo, test_dir, kind, status=LifecycleStatus.MODIFIED)
        if record.change_type is ChangeType.EDIT and record.old_path:
            old_dir = PurePosixPath(record.old_path).parent.parent.as_posix()
            test.old_package_name, test.old_name = _split_test_path(old_dir, repo)
        return test

    def _resource_for_data_table(self, repo: Path, record: ScmAffectedFile) -> Optional[ScmResourceFile]:
        exists = (repo / record.new_path).exists()
        if record.change_type is ChangeType.ADD and exists:
            return self._build_resource_file(repo, record.new_path)
        if record.change_type is ChangeType.DELETE and not exists:
            return self._build_resource_file(repo, record.new_path, status=LifecycleStatus.DELETED)
        if (
            record.change_type is ChangeType.EDIT
            and exists
            and record.old_path
            and record.old_path != record.new_path
        ):
            resource_file = self._build_resource_file(repo, record.new_path, status=LifecycleStatus.MODIFIED)
            resource_file.old_relative_path = record.old_path
            return resource_file
        return None

    def _remove_false_positives(
        self, tests: Sequence[AutomatedTest], resource_files: Sequence[ScmResourceFile]
    ) -> List[ScmResourceFile]:
        """Drop resource files that belong to a discovered test folder.

        A table whose current folder lies inside any discovered test is part of
        that test and is dropped whatever its status. A table moved out of a
        discovered test folder is reported as NEW at its current location.
        """
        test_paths = {test.path for test in tests}
        test_paths.update(test.old_path for test in tests if test.is_moved)
        if not test_paths:
            return list(resource_files)

        remaining: List[ScmResourceFile] = []
        for item in resource_files:
            if any(_is_under(item.folder, path) for path in test_paths):
                self.logger.debug("Dropping %s resource file %s inside a test", item.status.value, item.relative_path)
                continue
            old_folder = item.old_folder
            if old_folder is not None and any(_is_under(old_folder, path) for path in test_paths):
                self.logger.debug("Resource file %s left test folder %s", item.relative_path, old_folder)
                item.status = LifecycleStatus.NEW
                item.old_relative_path = None
            remaining.append(item)
        return remaining

    # ------------------------------------------------------------------
    # Builders

    def _build_test(
        self,
        repo: Path,
        test_dir: Path,
        kind: TestKind,
        *,
        status: LifecycleStatus = LifecycleStatus.NEW,
    ) -> AutomatedTest:
        package_name, name = _split_test_path(test_dir.relative_to(repo).as_posix(), repo)
        test = AutomatedTest(name=name, package_name=package_name, test_kind=kind, status=status)

        document = load_document(test_dir, kind)
        test.description = to_html_description(document_description(document, kind))

        if self.tool_type is ToolType.MBT and kind is TestKind.GUI and document is not None:
            test.actions = extract_actions(
                document, test_name=name, path_prefix=test.path_prefix(), test_dir=test_dir
            )
        self.logger.debug("Built %s %s test %s", status.value, kind.value, test.path)
        return test

    @staticmethod
    def _build_resource_file(
        repo: Path, relative_path: str, *, status: LifecycleStatus = LifecycleStatus.NEW
    ) -> ScmResourceFile:
        return ScmResourceFile(
            name=str(repo / relative_path), relative_path=relative_path, status=status
        )

    def _skips_kind(self, kind: TestKind) -> bool:
        return kind.is_none() or (self.tool_type is ToolType.MBT and kind is TestKind.API)

    def _is_excluded(self, relative_path: str) -> bool:
        parts = [part for part in relative_path.split("/") if part]
        for index, part in enumerate(parts):
            if part in _SKIPPED_DIRS or part in self.exclude_dirs:
                return True
            if "/".join(parts[: index + 1]) in self.exclude_dirs:
                return True
        return False


def _merge_move_identity(kept: AutomatedTest, duplicate: AutomatedTest) -> None:
    """Carry the pre-move identity of a collapsed MODIFIED entry onto the kept one."""
    if duplicate.is_moved and not kept.is_moved:
        kept.old_package_name = duplicate.old_package_name
        kept.old_name = duplicate.old_name


def _dedupe(
    items: Sequence[_Entity],
    *,
    key: Callable[[_Entity], object],
    merge: Optional[Callable[[_Entity, _Entity], None]] = None,
) -> List[_Entity]:
    """Collapse entries sharing a key.

    MODIFIED entries are dropped when the key also has NEW or DELETED entries;
    otherwise the first entry of each status is kept in first-seen order and
    ``merge`` is called with it and every later duplicate.
    """
    statuses: Dict[object, set] = {}
    for item in items:
        statuses.setdefault(key(item), set()).add(item.status)

    first: Dict[Tuple[object, LifecycleStatus], _Entity] = {}
    kept: List[_Entity] = []
    for item in items:
        item_key = key(item)
        if item.status is LifecycleStatus.MODIFIED and statuses[item_key] & {
            LifecycleStatus.NEW,
            LifecycleStatus.DELETED,
        }:
            continue
        marker = (item_key, item.status)
        if marker in first:
            if merge is not None:
                merge(first[marker], item)
            continue
        first[marker] = item
        kept.append(item)
    return kept


__all__ = ["Discovery"]
