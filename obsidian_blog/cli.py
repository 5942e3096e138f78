"""Command line entry point: generate once, watch, or serve the output."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import List, Optional

from .config import BlogConfig, load_config
from .errors import BlogError
from .generator import BlogGenerator
from .logs import setup_logging
from .serve import serve_site
from .watcher import BlogWatcher

logger = logging.getLogger("obsidian_blog.cli")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="obsidian-blog",
        description="Generate a static blog from an Obsidian vault.",
    )
    parser.add_argument("--config", type=Path, default=None,
                        help="YAML configuration file (default: built-in settings)")
    parser.add_argument("--input", type=Path, default=None,
                        help="Vault folder with markdown notes (overrides paths.source)")
    parser.add_argument("--output", type=Path, default=None,
                        help="Output folder for generated pages (overrides paths.output)")
    parser.add_argument("--log-file", type=Path, default=None,
                        help="Append log lines to this file (overrides watch.log_file)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("generate", help="Generate the blog once and exit")
    sub.add_parser("watch", help="Generate, then regenerate whenever the vault changes")
    serve = sub.add_parser("serve", help="Serve the output folder over HTTP")
    serve.add_argument("--port", type=int, default=None, help="Port (overrides server.port)")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> BlogConfig:
    config = load_config(args.config)
    if args.input is not None:
        config.paths.source = args.input.expanduser().resolve()
    if args.output is not None:
        config.paths.output = args.output.expanduser().resolve()
    if args.log_file is not None:
        config.watch.log_file = args.log_file.expanduser().resolve()
    if getattr(args, "port", None) is not None:
        config.server.port = args.port
    return config


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    level = logging.DEBUG if args.verbose else logging.INFO
    setup_logging(level)

    try:
        config = build_config(args)
    except BlogError as exc:
        logger.error("%s", exc)
        return 1

    # the watcher always mirrors its log to a file; one-off commands only on request
    if args.command == "watch" or args.log_file is not None:
        setup_logging(level, config.watch.log_file)

    if args.command == "generate":
        result = BlogGenerator(config).generate()
        return 0 if result.success else 1

    if args.command == "watch":
        try:
            BlogWatcher(config).run_forever()
        except BlogError as exc:
            logger.error("%s", exc)
            return 1
        return 0

    return serve_site(Path(config.paths.output), config.server.host, config.server.port)
