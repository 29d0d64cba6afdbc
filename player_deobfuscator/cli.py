"""Command line entry point for deobfuscating values against a saved player."""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path

from .config import load_config
from .exceptions import DeobfuscationError
from .logging_config import close_debug_logger, configure_console_logging, configure_debug_file_logger
from .manager import JavaScriptPlayerManager
from .sources import FileScriptSource
from .streams import try_decrypt_url

LOG = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1


def _build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--player", required=True, type=Path, help="Saved player script")
    common.add_argument("--identity", default="local", help="Content identity used as cache key")
    common.add_argument("--timeout", type=float, help="Sandbox execution budget in seconds")
    common.add_argument("--debug-log", type=Path, help="Write debug logging to this file")
    common.add_argument("-v", "--verbose", action="store_true", help="Log progress to stderr")

    parser = argparse.ArgumentParser(
        prog="player-deobfuscator",
        description="Extract and run signature and throttling functions from a player script",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("sts", parents=[common], help="Print the signature timestamp")

    sig = sub.add_parser("sig", parents=[common], help="Deobfuscate a signature")
    sig.add_argument("signature")

    nsig = sub.add_parser("nsig", parents=[common], help="Decrypt the n parameter of a URL")
    nsig.add_argument("url")
    nsig.add_argument(
        "--fallback",
        action="store_true",
        help="Print the original URL instead of failing when decryption fails",
    )
    return parser


def _run(args: argparse.Namespace, manager: JavaScriptPlayerManager) -> str:
    if args.command == "sts":
        return manager.get_signature_timestamp(args.identity)
    if args.command == "sig":
        return manager.deobfuscate_signature(args.identity, args.signature)
    if args.fallback:
        return try_decrypt_url(manager, args.url, args.identity)
    return manager.decrypt_throttling_parameter(args.url, args.identity)


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_console_logging(logging.INFO if args.verbose else logging.WARNING)
    config = load_config()
    if args.timeout is not None:
        try:
            config = replace(config, sandbox_timeout_s=args.timeout)
        except ValueError as exc:
            parser.error(str(exc))

    debug_logger = None
    if args.debug_log is not None:
        debug_logger = configure_debug_file_logger("player_deobfuscator", args.debug_log)

    manager = JavaScriptPlayerManager(FileScriptSource(args.player), config=config)
    try:
        print(_run(args, manager))
    except DeobfuscationError as exc:
        LOG.debug("%s failed", args.command, exc_info=True)
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_FAILURE
    finally:
        if debug_logger is not None:
            close_debug_logger(debug_logger)
    return EXIT_OK


if __name__ == "__main__":  # pragma: no cover - CLI wrapper
    raise SystemExit(main())
