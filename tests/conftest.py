"""Shared test fixtures and helpers."""

from __future__ import annotations

import stat
from dataclasses import dataclass
from pathlib import Path

import pytest

from devicesh.lexer import tokenize
from devicesh.namespace import Namespace
from devicesh.walk import Session

# Probe: print the candidates for the word being completed (the last pair).
# Exec: record the arguments after "--" in the working directory.
SET_SCRIPT = """\
if [ "$1" = "-c" ]; then
    shift
    while [ $# -gt 2 ]; do shift 2; done
    if [ "$1" = "host" ]; then
        echo "-host=example.com"
    else
        echo "-host="
        echo "*mode="
        echo "-verbose"
    fi
    exit 0
fi
shift
printf '%s\\n' "$@" > set.out
"""

SHOW_SCRIPT = """\
if [ "$1" = "-c" ]; then
    exit 0
fi
echo "$@" >> show.log
"""

BROKEN_SCRIPT = """\
echo "broken: refusing $*" >&2
exit 3
"""


def make_command(path: Path, body: str) -> None:
    """Write a small executable command script."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"#!/bin/sh\n{body}\n")
    path.chmod(path.stat().st_mode | stat.S_IEXEC | stat.S_IREAD)


@dataclass
class CommandTree:
    libexec: Path
    sysconf: Path

    def namespace(self, pathext: tuple[str, ...] = ()) -> Namespace:
        return Namespace(libexec=self.libexec, sysconf=self.sysconf, pathext=pathext)

    def session(self, path: tuple[str, ...] = ()) -> Session:
        return Session(self.namespace(), path)


@pytest.fixture
def command_tree(tmp_path: Path) -> CommandTree:
    """A small command tree with a parallel configuration tree.

    /            set, show, broken, interfaces/, system/, prec/
    /interfaces  enable, eth0/
    /prec        foo, foobar
    """
    libexec = tmp_path / "libexec"
    sysconf = tmp_path / "sysconf"

    make_command(libexec / "set", SET_SCRIPT)
    make_command(libexec / "show", SHOW_SCRIPT)
    make_command(libexec / "broken", BROKEN_SCRIPT)
    make_command(libexec / ".hidden", "exit 0")
    (libexec / "README").write_text("not a command\n")

    make_command(libexec / "interfaces" / "enable", SHOW_SCRIPT)
    (libexec / "interfaces" / "eth0").mkdir(parents=True)
    (libexec / "system").mkdir()
    make_command(libexec / "prec" / "foo", SHOW_SCRIPT)
    make_command(libexec / "prec" / "foobar", SHOW_SCRIPT)

    for sub in ("", "interfaces", "interfaces/eth0", "system", "prec"):
        (sysconf / sub).mkdir(parents=True, exist_ok=True)

    return CommandTree(libexec, sysconf)


@pytest.fixture
def lex():
    """Return a helper that tokenizes a line and returns the decoded words."""

    def _lex(line: str | bytes) -> list[bytes]:
        return [t.data for t in tokenize(line).tokens]

    return _lex
