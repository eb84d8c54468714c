"""Immutable, categorized output of a discovery run."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Tuple

from .models import AutomatedTest, LifecycleStatus, ScmResourceFile


@dataclass(frozen=True)
class DiscoveryResult:
    """Tests and resource files produced by one run, split by lifecycle status."""

    new_commit: str
    tests: Tuple[AutomatedTest, ...] = ()
    resource_files: Tuple[ScmResourceFile, ...] = ()
    is_full_sync: bool = False
    _tests_by_status: Dict[LifecycleStatus, Tuple[AutomatedTest, ...]] = field(
        init=False, repr=False, compare=False
    )
    _files_by_status: Dict[LifecycleStatus, Tuple[ScmResourceFile, ...]] = field(
        init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        object.__setattr__(self, "tests", tuple(self.tests))
        object.__setattr__(self, "resource_files", tuple(self.resource_files))
        object.__setattr__(self, "_tests_by_status", _partition(self.tests))
        object.__setattr__(self, "_files_by_status", _partition(self.resource_files))

    @classmethod
    def build(
        cls,
        new_commit: str,
        tests: Iterable[AutomatedTest],
        resource_files: Iterable[ScmResourceFile],
        *,
        is_full_sync: bool,
    ) -> "DiscoveryResult":
        return cls(
            new_commit=new_commit,
            tests=tuple(tests),
            resource_files=tuple(resource_files),
            is_full_sync=is_full_sync,
        )

    @property
    def has_changes(self) -> bool:
        return bool(self.tests or self.resource_files)

    @property
    def new_tests(self) -> Tuple[AutomatedTest, ...]:
        return self._tests_by_status.get(LifecycleStatus.NEW, ())

    @property
    def modified_tests(self) -> Tuple[AutomatedTest, ...]:
        return self._tests_by_status.get(LifecycleStatus.MODIFIED, ())

    @property
    def deleted_tests(self) -> Tuple[AutomatedTest, ...]:
        return self._tests_by_status.get(LifecycleStatus.DELETED, ())

    @property
    def new_resource_files(self) -> Tuple[ScmResourceFile, ...]:
        return self._files_by_status.get(LifecycleStatus.NEW, ())

    @property
    def modified_resource_files(self) -> Tuple[ScmResourceFile, ...]:
        return self._files_by_status.get(LifecycleStatus.MODIFIED, ())

    @property
    def deleted_resource_files(self) -> Tuple[ScmResourceFile, ...]:
        return self._files_by_status.get(LifecycleStatus.DELETED, ())

    def summary(self) -> Dict[str, object]:
        """JSON-friendly digest for logs, the CLI and the dispatch collaborator."""
        return {
            "new_commit": self.new_commit,
            "full_sync": self.is_full_sync,
            "tests": {
                "new": [_test_label(test) for test in self.new_tests],
                "modified": [_test_label(test) for test in self.modified_tests],
                "deleted": [_test_label(test) for test in self.deleted_tests],
            },
            "resource_files": {
                "new": [item.relative_path for item in self.new_resource_files],
                "modified": [item.relative_path for item in self.modified_resource_files],
                "deleted": [item.relative_path for item in self.deleted_resource_files],
            },
        }


def _partition(items: Tuple) -> Dict[LifecycleStatus, Tuple]:
    buckets: Dict[LifecycleStatus, list] = {}
    for item in items:
        buckets.setdefault(item.status, []).append(item)
    return {status: tuple(members) for status, members in buckets.items()}


def _test_label(test: AutomatedTest) -> str:
    label = test.path
    if test.is_moved:
        previous = f"{test.old_package_name}/{test.old_name}" if test.old_package_name else test.old_name
        label = f"{previous} -> {label}"
    return label


__all__ = ["DiscoveryResult"]
