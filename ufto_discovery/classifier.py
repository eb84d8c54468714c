"""Directory classification and path predicates for UFT assets."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Iterable

from .models import TestKind

GUI_TEST_SUFFIX = ".tsp"
API_TEST_SUFFIX = ".st"
GUI_TEST_FILE = "Test.tsp"
API_ACTIONS_FILE = "actions.xml"
RESOURCE_MTR_FILE = "resource.mtr"

_DATA_TABLE_SUFFIXES = (".xls", ".xlsx")


def _suffix(name: str) -> str:
    return PurePosixPath(name).suffix.lower()


def _basename(path: str) -> str:
    return path.replace("\\", "/").rsplit("/", 1)[-1]


def classify(file_names: Iterable[str]) -> TestKind:
    """Return the test kind rooted at a directory holding ``file_names``.

    GUI wins over API when both markers are present. Only the given level is
    inspected; callers decide whether to recurse.
    """
    found_api = False
    for name in file_names:
        suffix = _suffix(name)
        if suffix == GUI_TEST_SUFFIX:
            return TestKind.GUI
        if suffix == API_TEST_SUFFIX:
            found_api = True
    return TestKind.API if found_api else TestKind.NONE


def is_test_main_file(path: str) -> bool:
    name = _basename(path).lower()
    return name.endswith((GUI_TEST_SUFFIX, API_TEST_SUFFIX)) or name == API_ACTIONS_FILE


def kind_for_main_file(path: str) -> TestKind:
    name = _basename(path)
    suffix = _suffix(name)
    if suffix == GUI_TEST_SUFFIX:
        return TestKind.GUI
    if suffix == API_TEST_SUFFIX or name.lower() == API_ACTIONS_FILE:
        return TestKind.API
    return TestKind.NONE


def is_data_table_file(path: str) -> bool:
    return _suffix(_basename(path)) in _DATA_TABLE_SUFFIXES


def is_action_parameter_file(path: str) -> bool:
    """True for ``<test>/<action>/resource.mtr`` paths."""
    parts = [part for part in path.replace("\\", "/").split("/") if part]
    return len(parts) >= 3 and parts[-1].lower() == RESOURCE_MTR_FILE


__all__ = [
    "API_ACTIONS_FILE",
    "GUI_TEST_FILE",
    "RESOURCE_MTR_FILE",
    "classify",
    "is_action_parameter_file",
    "is_data_table_file",
    "is_test_main_file",
    "kind_for_main_file",
]
