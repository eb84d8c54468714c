"""Core data models shared across discovery components."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple


class TestKind(Enum):
    """Kind of automated test rooted at a directory."""

    __test__ = False  # keep pytest from collecting the enum

    GUI = "gui"
    API = "api"
    NONE = "none"

    def is_none(self) -> bool:
        return self is TestKind.NONE


class ToolType(Enum):
    """Authoring tool variant; MBT additionally discovers actions and parameters."""

    UFT = "uft"
    MBT = "mbt"

    @classmethod
    def parse(cls, value: str) -> "ToolType":
        normalized = value.strip().lower()
        for member in cls:
            if member.value == normalized:
                return member
        raise ValueError(f"Unknown tool type: {value!r}")


class LifecycleStatus(Enum):
    """Reconciliation state of a discovered entity."""

    NEW = "new"
    MODIFIED = "modified"
    DELETED = "deleted"
    NONE = "none"


class ParamDirection(Enum):
    IN = 0
    OUT = 1


class ChangeType(Enum):
    ADD = "ADD"
    DELETE = "DELETE"
    EDIT = "EDIT"


@dataclass
class UftoTestParam:
    """Parameter declared by an action in its resource.mtr file."""

    name: str
    direction: ParamDirection = ParamDirection.IN
    default_value: Optional[str] = None
    status: LifecycleStatus = LifecycleStatus.NEW


@dataclass
class UftoTestAction:
    """Reusable step sequence inside a GUI test."""

    name: str
    test_name: str
    logical_name: Optional[str] = None
    repository_path: Optional[str] = None
    description: str = ""
    parameters: List[UftoTestParam] = field(default_factory=list)
    status: LifecycleStatus = LifecycleStatus.NEW


@dataclass
class AutomatedTest:
    """One discovered test folder."""

    name: str
    package_name: str
    test_kind: TestKind
    status: LifecycleStatus = LifecycleStatus.NEW
    executable: bool = True
    description: str = ""
    actions: List[UftoTestAction] = field(default_factory=list)
    old_name: Optional[str] = None
    old_package_name: Optional[str] = None
    change_set_src: Optional[str] = None
    change_set_dst: Optional[str] = None

    def __post_init__(self) -> None:
        if self.status is LifecycleStatus.DELETED:
            self.executable = False

    @property
    def key(self) -> Tuple[str, str]:
        return (self.package_name, self.name)

    @property
    def path(self) -> str:
        """Slash-joined folder of the test relative to the repository root."""
        return f"{self.package_name}/{self.name}" if self.package_name else self.name

    @property
    def is_moved(self) -> bool:
        if not self.old_name or not self.name:
            return False
        return (self.old_package_name or "", self.old_name) != (self.package_name, self.name)

    @property
    def old_path(self) -> Optional[str]:
        if not self.old_name:
            return None
        return f"{self.old_package_name}/{self.old_name}" if self.old_package_name else self.old_name

    def path_prefix(self, original: bool = False) -> str:
        """Return the backslash-joined package and name used in action paths.

        With ``original`` set, the pre-move identity is used instead.
        """
        package = (self.old_package_name if original else self.package_name) or ""
        name = (self.old_name if original else self.name) or ""
        segments = [segment for segment in package.split("/") if segment]
        segments.append(name)
        return "\\".join(segments)


@dataclass
class ScmResourceFile:
    """Data table file tracked alongside the tests."""

    name: str
    relative_path: str
    status: LifecycleStatus = LifecycleStatus.NEW
    old_relative_path: Optional[str] = None
    change_set_src: Optional[str] = None
    change_set_dst: Optional[str] = None

    @property
    def folder(self) -> str:
        head, _, _ = self.relative_path.rpartition("/")
        return head

    @property
    def old_folder(self) -> Optional[str]:
        if not self.old_relative_path:
            return None
        head, _, _ = self.old_relative_path.rpartition("/")
        return head

    @property
    def is_moved(self) -> bool:
        if not self.old_relative_path or not self.relative_path:
            return False
        return self.old_relative_path != self.relative_path


@dataclass(frozen=True)
class ScmAffectedFile:
    """One path-level change between two commits."""

    new_path: str
    old_path: Optional[str]
    change_type: ChangeType
    old_id: str = ""
    new_id: str = ""
    similarity: Optional[float] = None


__all__ = [
    "AutomatedTest",
    "ChangeType",
    "LifecycleStatus",
    "ParamDirection",
    "ScmAffectedFile",
    "ScmResourceFile",
    "TestKind",
    "ToolType",
    "UftoTestAction",
    "UftoTestParam",
]
