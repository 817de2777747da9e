"""Parse tree node types built while resolving one line."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from pathlib import Path
from typing import ClassVar, Iterator, TypeVar

from devicesh.tokens import Token


class NodeKind(Enum):
    CONTAINER = auto()
    COMMAND = auto()
    PARAMETER = auto()
    BUILTIN = auto()
    OPTION = auto()
    AMBIGUOUS = auto()


@dataclass(eq=False, slots=True)
class ParseNode:
    """Base for all nodes; ``parent`` is a back-reference only."""

    name: str | None
    parent: ParseNode | None
    token: Token | None = None
    completion: str = " "

    kind: ClassVar[NodeKind]

    def chain(self) -> list[ParseNode]:
        """Nodes from the root down to this one."""
        nodes: list[ParseNode] = []
        node: ParseNode | None = self
        while node is not None:
            nodes.append(node)
            node = node.parent
        nodes.reverse()
        return nodes

    @property
    def is_root(self) -> bool:
        return self.parent is None


@dataclass(eq=False, slots=True)
class ContainerNode(ParseNode):
    """A directory in the command tree."""

    libexec: Path = Path()
    sysconf: Path = Path()
    containers: list[str] = field(default_factory=list)
    commands: list[str] = field(default_factory=list)
    command_files: dict[str, str] = field(default_factory=dict)
    builtins: list[str] = field(default_factory=list)

    kind: ClassVar[NodeKind] = NodeKind.CONTAINER

    def path(self) -> tuple[str, ...]:
        """Container names from the root to here (the root itself excluded)."""
        return tuple(node.name for node in self.chain() if node.name is not None)


@dataclass(eq=False, slots=True)
class CommandNode(ParseNode):
    """An executable; root of a chain of parameters."""

    executable: Path = Path()
    sysconf: Path = Path()

    kind: ClassVar[NodeKind] = NodeKind.COMMAND


@dataclass(eq=False, slots=True)
class ParameterNode(ParseNode):
    """One ``key[=value]`` argument of a command.

    ``keys``, ``required_keys`` and ``values`` are the candidates reported
    by the command's schema probe; ``error`` and ``stderr`` record a failed
    probe.
    """

    command: CommandNode | None = None
    key: str | None = None
    value: str = ""
    keys: list[str] = field(default_factory=list)
    required_keys: list[str] = field(default_factory=list)
    values: list[str] = field(default_factory=list)
    required: bool = False
    error: str | None = None
    stderr: bytes = b""

    kind: ClassVar[NodeKind] = NodeKind.PARAMETER

    def pair(self) -> tuple[str, str]:
        """The two argv words this parameter contributes."""
        if self.key is not None:
            return self.key, self.value
        return self.value, ""


@dataclass(eq=False, slots=True)
class BuiltinNode(ParseNode):
    kind: ClassVar[NodeKind] = NodeKind.BUILTIN


@dataclass(eq=False, slots=True)
class OptionNode(ParseNode):
    command: CommandNode | None = None

    kind: ClassVar[NodeKind] = NodeKind.OPTION


@dataclass(eq=False, slots=True)
class AmbiguousNode(ParseNode):
    """A typed prefix that matches more than one candidate.

    ``common`` is the longest run shared by every candidate after the
    prefix, or None when no candidate was seen.
    """

    prefix: str = ""
    common: str | None = None
    containers: list[str] = field(default_factory=list)
    commands: list[str] = field(default_factory=list)
    builtins: list[str] = field(default_factory=list)
    keys: list[str] = field(default_factory=list)
    required_keys: list[str] = field(default_factory=list)
    values: list[str] = field(default_factory=list)

    kind: ClassVar[NodeKind] = NodeKind.AMBIGUOUS

    def candidates(self) -> list[str]:
        return [
            *self.builtins,
            *self.commands,
            *self.containers,
            *self.keys,
            *self.required_keys,
            *self.values,
        ]


N = TypeVar("N", bound=ParseNode)


class ParseTree:
    """Arena owning every node built while resolving one line.

    Used as a context manager; on exit the nodes are released and no
    further nodes may be added.
    """

    def __init__(self) -> None:
        self._nodes: list[ParseNode] = []
        self._closed = False

    def add(self, node: N) -> N:
        if self._closed:
            raise RuntimeError("parse tree already released")
        self._nodes.append(node)
        return node

    def close(self) -> None:
        self._nodes.clear()
        self._closed = True

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[ParseNode]:
        return iter(self._nodes)

    def __enter__(self) -> ParseTree:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


def owning_command(node: ParseNode) -> CommandNode | None:
    """Walk up through parameters to the command they belong to."""
    current: ParseNode | None = node
    while isinstance(current, ParameterNode):
        current = current.parent
    if isinstance(current, CommandNode):
        return current
    return None


def parameter_chain(node: ParseNode) -> list[ParameterNode]:
    """Parameters from just below the command down to ``node``."""
    params: list[ParameterNode] = []
    current: ParseNode | None = node
    while isinstance(current, ParameterNode):
        params.append(current)
        current = current.parent
    params.reverse()
    return params
