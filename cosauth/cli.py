# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Command-line entry point for cosauth.

Subcommands:

* ``init``: create a stub config file
* ``policy``: print the access policy requested for credentials
* ``authorize``: fetch a credential and print an authorization bundle
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from cosauth.broker import CredentialBroker
from cosauth.config import STUB_CONFIG, BrokerConfig, get_config_path
from cosauth.errors import CosAuthError
from cosauth.logging import configure_logging
from cosauth.types import SigningContext


_USAGE = """\
usage: cosauth <command> [args]

commands:
  init        Create a stub config file
  policy      Print the access policy document
  authorize   Print an authorization bundle for one storage operation

Run 'cosauth <command> --help' for command-specific help.\
"""


def _parser(command: str, description: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=f"cosauth {command}", description=description
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Config file (default: ~/.config/cosauth/cosauth.yaml)",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )
    return parser


def _setup_logging(verbose: bool) -> None:
    configure_logging(level=logging.DEBUG if verbose else logging.WARNING)


def _parse_pairs(pairs: list[str], option: str) -> dict[str, str]:
    """Parse repeated ``KEY=VALUE`` options into a mapping.

    Raises:
        ValueError: If an item has no ``=``.
    """
    result: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"{option} expects KEY=VALUE, got {pair!r}")
        result[key] = value
    return result


# ── init subcommand ─────────────────────────────────────────────────


def cmd_init(argv: list[str]) -> int:
    """Create a stub configuration file.

    Never overwrites an existing file.

    Args:
        argv: Command-line arguments after ``init``.

    Returns:
        Exit code (always 0).
    """
    parser = _parser("init", "Create a stub config file")
    args = parser.parse_args(argv)
    config_path: Path = args.config or get_config_path()

    if config_path.exists():
        print(f"Config already exists: {config_path}")
        return 0

    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(STUB_CONFIG)
    print(f"Created stub config: {config_path}")
    return 0


# ── policy subcommand ───────────────────────────────────────────────


def cmd_policy(argv: list[str]) -> int:
    """Print the access policy document as JSON.

    Args:
        argv: Command-line arguments after ``policy``.

    Returns:
        Exit code (0 on success, 1 on configuration error).
    """
    parser = _parser("policy", "Print the access policy document")
    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    try:
        broker = CredentialBroker(BrokerConfig.from_yaml(args.config))
    except CosAuthError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    print(json.dumps(broker.policy().to_dict(), indent=2))
    return 0


# ── authorize subcommand ────────────────────────────────────────────


def cmd_authorize(argv: list[str]) -> int:
    """Fetch a credential and print the authorization bundle as JSON.

    Args:
        argv: Command-line arguments after ``authorize``.

    Returns:
        Exit code (0 on success, 1 on any broker error).
    """
    parser = _parser(
        "authorize", "Print an authorization bundle for one operation"
    )
    parser.add_argument("--method", default="post", help="HTTP method")
    parser.add_argument("--path", default="/", help="Object path")
    parser.add_argument(
        "--header",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Header included in the signature (repeatable)",
    )
    parser.add_argument(
        "--query",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Query parameter included in the signature (repeatable)",
    )
    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    try:
        context = SigningContext(
            method=args.method,
            path=args.path,
            query=_parse_pairs(args.query, "--query"),
            headers=_parse_pairs(args.header, "--header"),
        )
    except ValueError as e:
        parser.error(str(e))

    try:
        broker = CredentialBroker(BrokerConfig.from_yaml(args.config))
        bundle = broker.authorize(context)
    except CosAuthError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    print(json.dumps(bundle.to_dict(), indent=2))
    return 0


_DISPATCH = {
    "init": cmd_init,
    "policy": cmd_policy,
    "authorize": cmd_authorize,
}


def cli(argv: list[str] | None = None) -> None:
    """Entry point for ``cosauth``.

    Prints usage when no subcommand is given.
    """
    if argv is None:
        argv = sys.argv[1:]

    if not argv or argv[0] in ("-h", "--help"):
        print(_USAGE)
        sys.exit(0)

    handler = _DISPATCH.get(argv[0])
    if handler is None:
        print(f"cosauth: unknown command '{argv[0]}'", file=sys.stderr)
        print(_USAGE, file=sys.stderr)
        sys.exit(2)

    sys.exit(handler(argv[1:]))
