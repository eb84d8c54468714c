"""Tests for console and file logging of discovery runs."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from tests._fixtures.repo_builder import RepoBuilder
from tests._fixtures.stub_analyzer import StubAnalyzer
from ufto_discovery.logging import (
    RunContextFilter,
    clear_run_context,
    configure_logging,
    current_run_context,
    get_logger,
    set_run_context,
)
from ufto_discovery.orchestrator import DiscoveryOrchestrator
from ufto_discovery.stores.sync_marker import SyncMarkerStore


def _record(name: str) -> logging.LogRecord:
    return logging.LogRecord(name, logging.INFO, __file__, 1, "message", None, None)


def test_get_logger_nests_under_package() -> None:
    assert get_logger().name == "ufto_discovery"
    assert get_logger("discovery").name == "ufto_discovery.discovery"


def test_filter_strips_package_prefix_from_component() -> None:
    record = _record("ufto_discovery.git.changes")

    assert RunContextFilter().filter(record) is True
    assert record.component == "git.changes"
    assert record.run == "-"


def test_run_context_labels() -> None:
    set_run_context("tests")
    assert current_run_context() == "tests@full"

    set_run_context("tests", "1a2b3c4d5e6f", "9f8e7d6c5b4a")
    assert current_run_context() == "tests@1a2b3c4..9f8e7d6"

    set_run_context("tests", "1a2b3c4d5e6f")
    assert current_run_context() == "tests@1a2b3c4.."

    clear_run_context()
    assert current_run_context() == "-"


@pytest.mark.parametrize(
    ("verbose", "quiet", "expected"),
    [
        (False, False, logging.INFO),
        (True, False, logging.DEBUG),
        (False, True, logging.WARNING),
        (True, True, logging.DEBUG),
    ],
)
def test_console_level_policy(verbose: bool, quiet: bool, expected: int) -> None:
    logger = configure_logging(verbose=verbose, quiet=quiet)

    assert logger.propagate is False
    assert [handler.level for handler in logger.handlers] == [expected]


def test_verbose_console_names_component(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging(verbose=True)

    get_logger("metadata").debug("parsed %s", "Test.tsp")

    assert "[ufto-discovery] DEBUG metadata: parsed Test.tsp" in capsys.readouterr().err


def test_reconfiguring_does_not_duplicate_handlers() -> None:
    configure_logging()
    logger = configure_logging(verbose=True)

    assert len(logger.handlers) == 1


def test_quiet_console_still_writes_info_to_file(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    log_file = tmp_path / "run.log"
    configure_logging(quiet=True, log_file=log_file)
    set_run_context("tests", "aaaaaaaaaa", "bbbbbbbbbb")

    get_logger("discovery").info("found %d tests", 2)

    assert "found 2 tests" not in capsys.readouterr().err
    content = log_file.read_text(encoding="utf-8")
    assert "INFO discovery [tests@aaaaaaa..bbbbbbb]: found 2 tests" in content


def test_orchestrator_stamps_file_log_with_commit_range(
    repo_builder: RepoBuilder, tmp_path: Path
) -> None:
    repo_builder.add_gui_test("suite/Login")
    store = SyncMarkerStore(repo_builder.path() / "marker")
    store.write("c1c1c1c1c1")
    log_file = tmp_path / "run.log"
    configure_logging(log_file=log_file)

    DiscoveryOrchestrator(
        analyzer=StubAnalyzer([], head="c2c2c2c2c2"), marker_store=store
    ).run(repo_builder.path())

    content = log_file.read_text(encoding="utf-8")
    assert f"[{repo_builder.path().name}@c1c1c1c..c2c2c2c]" in content
    assert current_run_context() == "-"
