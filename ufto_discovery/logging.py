"""Logging for discovery runs.

Console output stays terse unless ``verbose`` is set, in which case each line
names the component that emitted it. File logs carry the repository and
commit range of the run in progress so several runs can share one log file.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

_LOGGER_NAME = "ufto_discovery"

_CONSOLE_FORMAT = "[ufto-discovery] %(levelname)s %(message)s"
_VERBOSE_CONSOLE_FORMAT = "[ufto-discovery] %(levelname)s %(component)s: %(message)s"
_FILE_FORMAT = "%(asctime)s %(levelname)s %(component)s [%(run)s]: %(message)s"


class RunContextFilter(logging.Filter):
    """Stamps records with ``component`` and ``run`` attributes for the formatters."""

    def __init__(self) -> None:
        super().__init__()
        self.run = "-"

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        if name.startswith(f"{_LOGGER_NAME}."):
            name = name[len(_LOGGER_NAME) + 1 :]
        record.component = name
        record.run = self.run
        return True


_RUN_CONTEXT = RunContextFilter()


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a module-scoped logger under the ufto_discovery hierarchy."""
    full_name = f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME
    return logging.getLogger(full_name)


def set_run_context(repo: str, since: Optional[str] = None, head: Optional[str] = None) -> None:
    """Describe the run in progress, e.g. ``tests@1a2b3c4..5d6e7f8``.

    A run without a synced commit is labelled ``full``.
    """
    commits = f"{_short(since)}..{_short(head) if head else ''}" if since else "full"
    _RUN_CONTEXT.run = f"{repo}@{commits}"


def clear_run_context() -> None:
    _RUN_CONTEXT.run = "-"


def current_run_context() -> str:
    return _RUN_CONTEXT.run


def _short(commit: Optional[str]) -> str:
    return (commit or "")[:7]


def configure_logging(
    *, verbose: bool = False, quiet: bool = False, log_file: Path | None = None
) -> logging.Logger:
    """Configure the package logger with console output and optional file sink.

    ``verbose`` wins over ``quiet``. The file sink always records INFO and
    above so that a quiet console still leaves a trail of the run.
    """
    if verbose:
        console_level = logging.DEBUG
    elif quiet:
        console_level = logging.WARNING
    else:
        console_level = logging.INFO
    file_level = min(console_level, logging.INFO)

    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(file_level if log_file is not None else console_level)
    logger.propagate = False

    # Repeated CLI invocations in one process must not duplicate output.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(console_level)
    stream_handler.addFilter(_RUN_CONTEXT)
    stream_handler.setFormatter(
        logging.Formatter(_VERBOSE_CONSOLE_FORMAT if verbose else _CONSOLE_FORMAT)
    )
    logger.addHandler(stream_handler)

    if log_file is not None:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(file_level)
        file_handler.addFilter(_RUN_CONTEXT)
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT))
        logger.addHandler(file_handler)

    return logger


__all__ = [
    "RunContextFilter",
    "clear_run_context",
    "configure_logging",
    "current_run_context",
    "get_logger",
    "set_run_context",
]
