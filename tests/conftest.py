from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Iterator

import pytest

from tests._fixtures.repo_builder import RepoBuilder
from ufto_discovery.logging import clear_run_context


@pytest.fixture
def repo_builder(tmp_path: Path) -> RepoBuilder:
    """Provide a reusable repo builder rooted at the pytest tmp_path."""
    return RepoBuilder(tmp_path)


@pytest.fixture
def git_repo(repo_builder: RepoBuilder) -> RepoBuilder:
    """Repo builder with an initialised git repository; skipped without git."""
    if shutil.which("git") is None:
        pytest.skip("git executable not available")
    repo_builder.init_git()
    return repo_builder


@pytest.fixture(autouse=True)
def _reset_package_logger() -> Iterator[None]:
    """Undo handler changes made by configure_logging so caplog keeps working."""
    logger = logging.getLogger("ufto_discovery")
    yield
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
    clear_run_context()
