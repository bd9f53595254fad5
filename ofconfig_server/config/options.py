from __future__ import annotations

import argparse
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, NoReturn, Sequence

from ofconfig_server.observability.logging import Verbosity


VERBOSE_ENV = "OFC_VERBOSE"
PROG = "ofconfig-server"


@dataclass(frozen=True, slots=True)
class ProcessConfig:
    run_foreground: bool = False
    verbosity: Verbosity = Verbosity.ERROR
    config_path: Path | None = None


class _UsageParser(argparse.ArgumentParser):
    """Any parse problem prints the usage text and exits with status 0."""

    def error(self, message: str) -> NoReturn:  # noqa: ARG002
        _print_usage_and_exit(self)


def _print_usage_and_exit(parser: argparse.ArgumentParser) -> NoReturn:
    sys.stdout.write(parser.format_help())
    sys.stdout.flush()
    raise SystemExit(0)


def _build_parser(prog: str) -> argparse.ArgumentParser:
    parser = _UsageParser(
        prog=prog,
        description="OF-CONFIG NETCONF server",
        add_help=False,
    )
    parser.add_argument("-f", "--foreground", action="store_true", help="run in foreground")
    parser.add_argument("-h", "--help", action="store_true", help="display help")
    parser.add_argument(
        "-v",
        "--verbose",
        type=int,
        metavar="LEVEL",
        default=None,
        help="verbose output level (0 error .. 3 debug)",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        metavar="PATH",
        default=None,
        help="settings YAML file",
    )
    return parser


def _env_verbosity(env: Mapping[str, str]) -> int:
    raw = env.get(VERBOSE_ENV)
    if raw is None:
        return Verbosity.ERROR
    try:
        return int(raw.strip())
    except ValueError:
        return Verbosity.ERROR


def configure(argv: Sequence[str] | None = None, env: Mapping[str, str] | None = None) -> ProcessConfig:
    """Build the immutable process configuration.

    ``-h``/``--help`` and any unusable option print the usage text to stdout and
    raise ``SystemExit(0)`` before anything else happens.
    """

    args = list(argv) if argv is not None else sys.argv[1:]
    environ = env if env is not None else os.environ

    parser = _build_parser(PROG)
    ns = parser.parse_args(args)
    if ns.help:
        _print_usage_and_exit(parser)

    level = ns.verbose if ns.verbose is not None else _env_verbosity(environ)

    return ProcessConfig(
        run_foreground=bool(ns.foreground),
        verbosity=Verbosity.clamp(level),
        config_path=ns.config,
    )
