"""CLI entrypoints for depcheck commands."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from .config import load_settings
from .engine import Engine
from .errors import ConfigurationError, DepcheckError, NoCatalogDataError
from .feeds.pipeline import FeedOutcome
from .logging import configure_logging
from .report import render_json
from .service import run_service


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


def _add_config_option(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        default=".",
        help="Path to .depcheck.yml or the directory containing it (defaults to current directory).",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="depcheck",
        description="Identify bundled third-party components and their known vulnerabilities.",
    )
    _add_verbose_option(parser)
    parser.add_argument("--log-file", type=Path, default=None, help="Also write logs to this file.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    update_parser = subparsers.add_parser(
        "update",
        help="Download stale vulnerability feeds into the local knowledge base.",
    )
    _add_verbose_option(update_parser, suppress_default=True)
    _add_config_option(update_parser)
    update_parser.add_argument(
        "--force",
        action="store_true",
        help="Re-ingest every feed regardless of its last update time.",
    )
    update_parser.add_argument(
        "--feed",
        action="append",
        dest="feeds",
        default=None,
        help="Limit the update to this feed id (repeatable).",
    )

    check_parser = subparsers.add_parser(
        "check",
        help="Scan files or directories and report vulnerable components.",
    )
    _add_verbose_option(check_parser, suppress_default=True)
    _add_config_option(check_parser)
    check_parser.add_argument("paths", nargs="+", help="Files or directories to scan.")
    check_parser.add_argument(
        "--no-update",
        action="store_true",
        help="Skip the feed update before scanning.",
    )
    check_parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Write the JSON summary to this file instead of stdout.",
    )
    check_parser.add_argument(
        "--fail-on-vulnerable",
        action="store_true",
        help="Exit with status 2 when any vulnerability is found.",
    )

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP service.")
    _add_verbose_option(serve_parser, suppress_default=True)
    serve_parser.add_argument("--host", default="127.0.0.1", help="Interface to bind.")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to listen on.")
    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for depcheck commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=bool(args.verbose), log_file=args.log_file)

    if args.command == "serve":
        run_service(host=args.host, port=args.port)
        return

    try:
        settings = load_settings(Path(args.config))
        engine = Engine.from_settings(settings)
    except ConfigurationError as exc:
        parser.exit(1, f"Invalid configuration: {exc}\n")
    except DepcheckError as exc:
        parser.exit(1, f"depcheck failed to start: {exc}\n")

    try:
        if args.command == "update":
            report = engine.update(feed_ids=args.feeds, force=bool(args.force))
            for feed_id, result in sorted(report.results.items()):
                line = f"{feed_id}: {result.outcome.value}"
                if result.outcome is FeedOutcome.COMMITTED:
                    line += f" ({result.persisted} records)"
                elif result.error is not None:
                    line += f" ({result.error})"
                print(line)
            if report.degraded:
                parser.exit(1, "Some feeds failed to update; existing data was kept.\n")
        elif args.command == "check":
            update = settings.auto_update and not bool(args.no_update)
            try:
                result = engine.run(args.paths, update=update)
            except NoCatalogDataError as exc:
                parser.exit(1, f"{exc}\n")
            except FileNotFoundError as exc:
                parser.exit(1, f"{exc}\n")
            payload = render_json(result)
            if args.output is not None:
                args.output.write_text(payload + "\n", encoding="utf-8")
            else:
                print(payload)
            for warning in result.warnings:
                print(f"WARNING: {warning}", file=sys.stderr)
            if args.fail_on_vulnerable and result.vulnerable:
                parser.exit(2)
        else:  # pragma: no cover - argparse enforces choices
            parser.exit(1, "Unknown command\n")
    except DepcheckError as exc:
        parser.exit(1, f"depcheck {args.command} failed: {exc}\nRun with --verbose for more details.\n")
    finally:
        engine.close()


if __name__ == "__main__":
    main(sys.argv[1:])
