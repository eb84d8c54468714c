"""Tests for the discovery data model."""

from __future__ import annotations

import pytest

from ufto_discovery.models import (
    AutomatedTest,
    LifecycleStatus,
    ScmResourceFile,
    TestKind,
    ToolType,
)


def test_deleted_test_is_never_executable() -> None:
    test = AutomatedTest(
        name="Login", package_name="suite", test_kind=TestKind.GUI, status=LifecycleStatus.DELETED
    )

    assert test.executable is False


def test_is_moved_requires_both_identities() -> None:
    test = AutomatedTest(name="SignIn", package_name="suite", test_kind=TestKind.GUI)
    assert not test.is_moved

    test.old_name, test.old_package_name = "SignIn", "suite"
    assert not test.is_moved

    test.old_name = "Login"
    assert test.is_moved


def test_path_prefix_uses_backslashes() -> None:
    test = AutomatedTest(
        name="SignIn",
        package_name="suite/auth",
        test_kind=TestKind.GUI,
        old_name="Login",
        old_package_name="",
    )

    assert test.path == "suite/auth/SignIn"
    assert test.path_prefix() == "suite\\auth\\SignIn"
    assert test.path_prefix(original=True) == "Login"


def test_resource_file_move_and_folder() -> None:
    item = ScmResourceFile(name="/repo/data/new/Users.xlsx", relative_path="data/new/Users.xlsx")
    assert item.folder == "data/new"
    assert not item.is_moved

    item.old_relative_path = "data/Users.xlsx"
    assert item.is_moved


def test_tool_type_parse() -> None:
    assert ToolType.parse(" MBT ") is ToolType.MBT
    with pytest.raises(ValueError, match="Unknown tool type"):
        ToolType.parse("selenium")
