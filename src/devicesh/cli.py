"""Command-line interface for the device shell."""

from __future__ import annotations

import argparse
import logging
import os
import sys
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from devicesh import __version__
from devicesh.namespace import DEFAULT_LIBEXEC, DEFAULT_SYSCONF, Namespace, parse_pathext

if TYPE_CHECKING:
    from devicesh.walk import Session

CONFIG_NAME = ".device.toml"
HISTORY_NAME = ".device_history"


@dataclass(frozen=True, slots=True)
class CliOptions:
    """Parsed CLI options."""

    libexec: Path
    sysconf: Path
    pathext: tuple[str, ...]
    history_file: Path | None
    input_file: Path | None
    commands: list[str]
    debug: bool


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser (separate function for testability)."""
    p = argparse.ArgumentParser(
        prog="device",
        description="Interactive shell for a filesystem-backed command tree",
    )
    p.add_argument("commands", nargs="*", help="Run this one command and exit")
    p.add_argument("-f", "--file", metavar="FILE", help="Read commands from FILE ('-' for stdin)")
    p.add_argument("--libexec", metavar="DIR", help=f"Command tree root (default: {DEFAULT_LIBEXEC})")
    p.add_argument("--sysconf", metavar="DIR", help=f"Configuration tree root (default: {DEFAULT_SYSCONF})")
    p.add_argument("--config", metavar="FILE", help=f"Config file (default: ~/{CONFIG_NAME})")
    p.add_argument("--no-history", action="store_true", help="Do not load or save line history")
    p.add_argument("--debug", action="store_true", help="Dump resolved commands and debug logging to stderr")
    p.add_argument("-v", "--version", action="version", version=f"%(prog)s {__version__}")
    return p


def load_config(config_path: Path | None, home_dir: Path) -> dict[str, Any]:
    """Load a TOML config file, returning an empty dict on missing/absent file."""
    path = config_path if config_path is not None else home_dir / CONFIG_NAME

    if not path.is_file():
        return {}

    with open(path, "rb") as f:
        return tomllib.load(f)


def _config_path(config: dict[str, Any], key: str) -> Path | None:
    value = config.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise argparse.ArgumentTypeError(f"invalid config value for '{key}' (expected a string): {value!r}")
    return Path(value).expanduser()


def resolve_options(args: argparse.Namespace, environ: Mapping[str, str]) -> CliOptions:
    """Merge defaults, config file, environment and CLI args into CliOptions.

    Precedence: defaults < config file < environment < CLI flags.
    """
    home_dir = Path(environ.get("HOME") or Path.home())
    config_path = Path(args.config) if args.config else None
    config = load_config(config_path, home_dir)

    # Tree roots: config < environment < CLI
    libexec = _config_path(config, "libexec") or DEFAULT_LIBEXEC
    sysconf = _config_path(config, "sysconf") or DEFAULT_SYSCONF
    if environ.get("DEVICE_LIBEXEC"):
        libexec = Path(environ["DEVICE_LIBEXEC"])
    if environ.get("DEVICE_SYSCONF"):
        sysconf = Path(environ["DEVICE_SYSCONF"])
    if args.libexec:
        libexec = Path(args.libexec)
    if args.sysconf:
        sysconf = Path(args.sysconf)

    # Executable suffixes: config < environment
    pathext: tuple[str, ...] = ()
    cfg_pathext = config.get("pathext")
    if cfg_pathext is not None:
        if not isinstance(cfg_pathext, list) or not all(isinstance(e, str) for e in cfg_pathext):
            raise argparse.ArgumentTypeError(
                f"invalid config value for 'pathext' (expected a list of strings): {cfg_pathext!r}"
            )
        pathext = tuple(e for e in cfg_pathext if e)
    if environ.get("PATHEXT"):
        pathext = parse_pathext(environ["PATHEXT"])

    # History: config < CLI
    history_file: Path | None = home_dir / HISTORY_NAME
    cfg_history = config.get("history")
    if isinstance(cfg_history, dict):
        cfg_file = _config_path(cfg_history, "file")
        if cfg_file is not None:
            history_file = cfg_file
        if cfg_history.get("enabled") is False:
            history_file = None
    if args.no_history:
        history_file = None

    return CliOptions(
        libexec=libexec,
        sysconf=sysconf,
        pathext=pathext,
        history_file=history_file,
        input_file=Path(args.file) if args.file else None,
        commands=list(args.commands),
        debug=args.debug,
    )


def make_session(options: CliOptions, environ: Mapping[str, str]) -> Session:
    """Build the shell session the options describe."""
    from devicesh.walk import Session

    namespace = Namespace.from_environ(
        environ,
        libexec=options.libexec,
        sysconf=options.sysconf,
        pathext=options.pathext,
    )
    return Session(namespace, trace=options.debug)


def run(options: CliOptions, environ: Mapping[str, str]) -> int:
    """Pick the front-end for the options and run it."""
    from devicesh.shell import compgen, completion_line, read_lines, run_argv

    session = make_session(options, environ)

    line = completion_line(environ)
    if line is not None:
        return compgen(session, line)

    if options.commands:
        return run_argv(session, options.commands)

    if options.input_file is not None and str(options.input_file) != "-":
        with open(options.input_file, encoding="utf-8", errors="surrogateescape") as f:
            return read_lines(session, f)

    if options.input_file is not None or not sys.stdin.isatty():
        return read_lines(session, sys.stdin)

    from devicesh.prompt import UniqueFileHistory, interactive

    history = UniqueFileHistory(options.history_file) if options.history_file is not None else None
    return interactive(session, history)


def main(argv: list[str] | None = None, environ: Mapping[str, str] | None = None) -> int:
    """CLI entry point. Returns exit code (0/1/2). Does not call sys.exit()."""
    parser = build_parser()
    args = parser.parse_args(argv)
    env = environ if environ is not None else os.environ

    try:
        options = resolve_options(args, env)
    except argparse.ArgumentTypeError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    except (OSError, tomllib.TOMLDecodeError) as exc:
        print(f"error: cannot read config: {exc}", file=sys.stderr)
        return 2

    if options.debug:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.WARNING)

    try:
        return run(options, env)
    except OSError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
