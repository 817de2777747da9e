"""--debug dump of a resolved chain to stderr."""

from __future__ import annotations

import sys
from typing import TextIO

from devicesh.nodes import (
    AmbiguousNode,
    CommandNode,
    ContainerNode,
    OptionNode,
    ParameterNode,
    ParseNode,
)


def dump_chain(node: ParseNode, *, file: TextIO | None = None) -> None:
    """Print each node from the root down to *node*, one per line."""
    f = file if file is not None else sys.stderr
    for depth, current in enumerate(node.chain()):
        f.write(f"{_indent(depth)}{_describe(current)}\n")


def _indent(depth: int) -> str:
    return "  " * depth


def _describe(node: ParseNode) -> str:
    label = node.kind.name.capitalize()
    name = "/" if node.name is None else repr(node.name)

    if isinstance(node, ContainerNode):
        return f"{label} {name} libexec={node.libexec} sysconf={node.sysconf}"
    if isinstance(node, CommandNode):
        return f"{label} {name} executable={node.executable}"
    if isinstance(node, ParameterNode):
        text = f"{label} key={node.key!r} value={node.value!r}"
        if node.required:
            text += " required"
        if node.error is not None:
            text += f" error={node.error!r}"
        return text
    if isinstance(node, OptionNode):
        return f"{label} {name} command={node.command.name if node.command else None!r}"
    if isinstance(node, AmbiguousNode):
        return f"{label} {name} common={node.common!r} candidates={node.candidates()}"
    return f"{label} {name}"
