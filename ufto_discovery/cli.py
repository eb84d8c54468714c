"""CLI entrypoints for ufto-discovery commands."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from .config import ConfigError
from .errors import DiscoveryError
from .logging import configure_logging
from .models import ToolType
from .orchestrator import DiscoveryOrchestrator


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    if suppress_default:
        kwargs["default"] = argparse.SUPPRESS
    else:
        kwargs["default"] = False
    parser.add_argument(
        "-v",
        "--verbose",
        **kwargs,
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ufto-discovery",
        description="Discover UFT tests in a git working tree and report what changed since the last sync.",
    )
    _add_verbose_option(parser)
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Only log warnings and errors to the console.",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also write logs to this file.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    discover_parser = subparsers.add_parser(
        "discover",
        help="Scan the repository and print the discovered change-set as JSON.",
    )
    _add_verbose_option(discover_parser, suppress_default=True)
    discover_parser.add_argument(
        "path",
        nargs="?",
        default=".",
        help="Path to the repository root (defaults to current directory).",
    )
    discover_parser.add_argument(
        "--tool",
        choices=[tool.value for tool in ToolType],
        default=None,
        help="Authoring tool variant; overrides tool_type from .ufto-discovery.yml.",
    )
    discover_parser.add_argument(
        "--full",
        action="store_true",
        help="Ignore the synced commit and scan the whole working tree.",
    )
    discover_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report changes without updating the synced commit.",
    )

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for ufto-discovery commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=bool(args.verbose), quiet=bool(args.quiet), log_file=args.log_file)

    orchestrator = DiscoveryOrchestrator()

    if args.command == "discover":
        tool_type = ToolType.parse(args.tool) if args.tool else None
        try:
            result = orchestrator.run(
                args.path,
                tool_type=tool_type,
                force_full=bool(getattr(args, "full", False)),
                dry_run=bool(getattr(args, "dry_run", False)),
            )
        except (ConfigError, OSError) as exc:
            parser.exit(1, f"{exc}\n")
        except DiscoveryError as exc:
            parser.exit(1, f"ufto-discovery discover failed: {exc}\nRun with --verbose for more details.\n")
        print(json.dumps(result.summary(), indent=2))
    else:  # pragma: no cover - argparse enforces choices
        parser.exit(1, "Unknown command\n")


if __name__ == "__main__":
    main(sys.argv[1:])
