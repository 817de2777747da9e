"""The filesystem-backed command tree: directory listing and node factories."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from devicesh.nodes import CommandNode, ContainerNode, ParseTree

logger = logging.getLogger(__name__)

DEFAULT_LIBEXEC = Path("/usr/libexec/device/state")
DEFAULT_SYSCONF = Path("/etc/device")

ROOT_BUILTINS = ("exit", "quit")

# Variables passed through to every child process
ALLOWED_ENVIRONMENT = ("TERM", "LANG", "LC_ALL", "TMPDIR", "TZ", "USER")


def sanitized_environment(environ: Mapping[str, str]) -> dict[str, str]:
    """Copy only the allow-listed variables that are set."""
    return {name: environ[name] for name in ALLOWED_ENVIRONMENT if name in environ}


def parse_pathext(pathext: str | None) -> tuple[str, ...]:
    """Split a ``;``-separated suffix list, dropping empty entries."""
    if not pathext:
        return ()
    return tuple(ext for ext in pathext.split(";") if ext)


@dataclass(frozen=True, slots=True)
class Listing:
    """One directory's worth of names.

    ``command_files`` maps each command name to the file that backs it,
    which differs from the name when a PATHEXT suffix was stripped.
    """

    containers: tuple[str, ...] = ()
    commands: tuple[str, ...] = ()
    command_files: Mapping[str, str] = field(default_factory=dict)


def _command_name(entry: os.DirEntry[str], pathext: tuple[str, ...]) -> str | None:
    lowered = entry.name.lower()
    for ext in pathext:
        if len(entry.name) > len(ext) and lowered.endswith(ext.lower()):
            return entry.name[: -len(ext)]
    if os.access(entry.path, os.R_OK | os.X_OK):
        return entry.name
    return None


def list_directory(path: Path, pathext: tuple[str, ...] = ()) -> Listing:
    """List the containers and commands in one directory.

    Hidden entries are skipped. A directory that cannot be read lists as
    empty.
    """
    containers: list[str] = []
    command_files: dict[str, str] = {}

    try:
        entries = list(os.scandir(path))
    except OSError as exc:
        logger.debug("cannot list %s: %s", path, exc)
        return Listing()

    for entry in entries:
        if entry.name.startswith("."):
            continue
        try:
            if entry.is_dir(follow_symlinks=False):
                containers.append(entry.name)
            elif entry.is_symlink() or entry.is_file(follow_symlinks=False):
                name = _command_name(entry, pathext)
                if name is not None:
                    command_files.setdefault(name, entry.name)
        except OSError:
            # unstattable entries are ignored
            continue

    return Listing(
        containers=tuple(sorted(containers)),
        commands=tuple(sorted(command_files)),
        command_files=command_files,
    )


@dataclass(frozen=True, slots=True)
class Namespace:
    """Where the command tree lives and how its children are run."""

    libexec: Path = DEFAULT_LIBEXEC
    sysconf: Path = DEFAULT_SYSCONF
    pathext: tuple[str, ...] = ()
    environ: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_environ(
        cls,
        environ: Mapping[str, str],
        libexec: Path | None = None,
        sysconf: Path | None = None,
        pathext: tuple[str, ...] | None = None,
    ) -> Namespace:
        """Build a namespace whose children see a sanitized ``environ``."""
        return cls(
            libexec=libexec if libexec is not None else DEFAULT_LIBEXEC,
            sysconf=sysconf if sysconf is not None else DEFAULT_SYSCONF,
            pathext=pathext if pathext is not None else parse_pathext(environ.get("PATHEXT")),
            environ=sanitized_environment(environ),
        )

    def root(self, tree: ParseTree) -> ContainerNode:
        """The top of the tree, holding the session builtins."""
        return self.container(tree, None, None)

    def container(self, tree: ParseTree, parent: ContainerNode | None, name: str | None) -> ContainerNode:
        if parent is None:
            libexec, sysconf = self.libexec, self.sysconf
        else:
            libexec, sysconf = parent.libexec / name, parent.sysconf / name
        listing = list_directory(libexec, self.pathext)
        return tree.add(
            ContainerNode(
                name,
                parent,
                libexec=libexec,
                sysconf=sysconf,
                containers=list(listing.containers),
                commands=list(listing.commands),
                command_files=dict(listing.command_files),
                builtins=list(ROOT_BUILTINS) if parent is None else [],
            )
        )

    def command(self, tree: ParseTree, parent: ContainerNode, name: str) -> CommandNode:
        filename = parent.command_files.get(name, name)
        return tree.add(
            CommandNode(
                name,
                parent,
                executable=parent.libexec / filename,
                sysconf=parent.sysconf,
            )
        )

