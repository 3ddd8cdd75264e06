from __future__ import annotations

import argparse
import functools
import logging
import sys
import threading
from collections.abc import Sequence
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from typing import Any

from suji.build import build_schedule, generate_run_id, run_build
from suji.config import SiteConfig
from suji.errors import BuildFailed, SiteFault
from suji.foundation.config_io import load_config
from suji.foundation.logging_utils import close_build_logger, setup_build_logger
from suji.persist import staging_dir

EXIT_OK = 0
EXIT_FAULTS = 1
EXIT_CONFIG = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="suji", add_help=True)
    sub = parser.add_subparsers(dest="command", required=True)

    build = sub.add_parser("build", help="Build the site described by a config file")
    build.add_argument("config", help="Path to the site config (YAML)")
    build.add_argument("--watch", action="store_true", help="Rebuild whenever a source file changes")
    build.add_argument("--serve", action="store_true", help="Serve the output directory over HTTP")
    build.add_argument("--port", type=int, default=8000, help="Port for --serve (default: 8000)")
    build.add_argument("--verbose", action="store_true", help="Log at DEBUG level")
    build.add_argument("--log-file", default=None, help="Also write a DEBUG log to this file")

    sub.add_parser("list-systems", help="List the build stages and their systems")
    return parser


def load_site_config(config_path: str) -> tuple[SiteConfig, list[str], dict[str, Any]]:
    cfg, meta = load_config(config_path)
    config, warnings = SiteConfig.from_dict(cfg, base_dir=meta["config_dir"])
    return config, warnings, meta


def _print_faults(faults: Sequence[SiteFault]) -> None:
    for fault in faults:
        print(fault.describe(), file=sys.stderr)


def build_once(
    config_path: str,
    *,
    verbose: bool = False,
    log_file: str | None = None,
    logger_name: str | None = None,
) -> int:
    """Run one build; `logger_name` lets repeated rebuilds share a single logger."""

    run_id = generate_run_id()
    logger = setup_build_logger(logger_name or run_id, verbose=verbose, log_file=log_file)
    try:
        try:
            config, warnings, meta = load_site_config(config_path)
        except (OSError, ValueError, SiteFault) as exc:
            logger.error("Failed to load configuration: %s", exc)
            print(exc.describe() if isinstance(exc, SiteFault) else f"config: {exc}", file=sys.stderr)
            return EXIT_CONFIG

        logger.info("Loaded config (%s) from %s", meta["mode"], ", ".join(meta["paths"]))
        for warning in warnings:
            logger.warning("%s", warning)

        try:
            result = run_build(config, logger=logger, run_id=run_id)
        except BuildFailed as exc:
            _print_faults(exc.faults)
            print(str(exc), file=sys.stderr)
            return EXIT_FAULTS

        if result.faults:
            _print_faults(result.faults)
            return EXIT_FAULTS
        return EXIT_OK
    finally:
        close_build_logger(logger)


def start_server(directory: str, port: int, *, logger: logging.Logger) -> ThreadingHTTPServer:
    handler = functools.partial(SimpleHTTPRequestHandler, directory=directory)
    server = ThreadingHTTPServer(("127.0.0.1", port), handler)
    thread = threading.Thread(target=server.serve_forever, name="suji-serve", daemon=True)
    thread.start()
    logger.info("Serving %s at http://127.0.0.1:%d/", directory, server.server_address[1])
    return server


def _run_build_command(args: argparse.Namespace) -> int:
    code = build_once(
        args.config,
        verbose=args.verbose,
        log_file=args.log_file,
        logger_name="watch" if args.watch else None,
    )
    if not (args.watch or args.serve):
        return code

    logger = setup_build_logger("serve", verbose=args.verbose)
    try:
        config, _warnings, meta = load_site_config(args.config)
    except (OSError, ValueError, SiteFault):
        close_build_logger(logger)
        return code

    server = start_server(config.output_dir, args.port, logger=logger) if args.serve else None
    try:
        if args.watch:
            from suji.watch import watch_and_rebuild

            watch_and_rebuild(
                lambda: build_once(
                    args.config, verbose=args.verbose, log_file=args.log_file, logger_name="watch"
                ),
                paths=[config.source_dir, *meta["paths"]],
                ignore=[config.output_dir, str(staging_dir(config))],
                logger=logger,
            )
        else:
            threading.Event().wait()
    except KeyboardInterrupt:
        pass
    finally:
        if server is not None:
            server.shutdown()
            server.server_close()
        close_build_logger(logger)
    return code


def list_systems() -> None:
    for row in build_schedule().describe():
        doc = row.get("doc") or ""
        access = f"reads={','.join(row['reads']) or '-'} writes={','.join(row['writes']) or '-'}"
        print(f"{row['stage_order']}.{row['stage']}\twave {row['wave']}\t{row['system_id']}\t{access}\t{doc}")


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(list(argv) if argv is not None else None)

    if args.command == "build":
        return _run_build_command(args)

    if args.command == "list-systems":
        list_systems()
        return EXIT_OK

    raise AssertionError(f"Unhandled command: {args.command}")


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main(sys.argv[1:]))
