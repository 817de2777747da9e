"""Walk a line's tokens through the command tree and act on where it lands.

A Session holds the saved path (the current container) between lines.
Each line is resolved in its own ParseTree: first the saved path is
replayed without probing, then the typed tokens are resolved, probing
commands when the caller asks for validation.
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field
from enum import Enum, auto

from devicesh.debug import dump_chain
from devicesh.errors import AmbiguousError, ExecError, ResolveError
from devicesh.executor import execute
from devicesh.lexer import escape_word
from devicesh.namespace import ROOT_BUILTINS, Namespace
from devicesh.nodes import (
    AmbiguousNode,
    BuiltinNode,
    CommandNode,
    ContainerNode,
    OptionNode,
    ParameterNode,
    ParseNode,
    ParseTree,
)
from devicesh.resolver import Resolver
from devicesh.tokens import Token, TokenizeResult

logger = logging.getLogger(__name__)

ROOT = b"/"


class Outcome(Enum):
    CONTINUE = auto()
    TERMINATE = auto()
    ERROR = auto()


@dataclass
class Resolution:
    """Where a line landed, plus the arena that owns its nodes.

    ``steps`` pairs each typed token with the node it resolved to. Use as
    a context manager so the arena is released when the caller is done.
    """

    tree: ParseTree
    node: ParseNode | None
    steps: list[tuple[Token, ParseNode]] = field(default_factory=list)

    def __enter__(self) -> Resolution:
        return self

    def __exit__(self, *exc: object) -> None:
        self.tree.close()


class SavedPathError(Exception):
    """The saved path no longer resolves (the tree changed underneath)."""


def _split_root(tokens: tuple[Token, ...]) -> tuple[bool, list[Token]]:
    """Detect a leading ``/`` and strip it from the first word.

    On a typed line only a bare slash counts; a quoted or escaped one is
    part of the word.
    """
    words = list(tokens)
    if not words or not words[0].data.startswith(ROOT):
        return False, words
    if words[0].located and words[0].offsets[0] != words[0].start:
        return False, words
    if words[0].data == ROOT:
        del words[0]
    else:
        words[0] = words[0].lstrip(1)
    return True, words


class Session:
    """One shell session: the namespace plus the saved path."""

    def __init__(self, namespace: Namespace, path: tuple[str, ...] = (), trace: bool = False) -> None:
        self.namespace = namespace
        self.path = path
        self.trace = trace

    def prompt_path(self) -> str:
        return "/" + " ".join(self.path)

    # ------------------------------------------------------------------
    # Shared walk
    # ------------------------------------------------------------------

    def _begin(self, resolver: Resolver, from_root: bool) -> ParseNode:
        current: ParseNode = resolver.root()
        if from_root:
            return current
        for name in self.path:
            try:
                current = resolver.resolve(current, name)
            except ResolveError as exc:
                raise SavedPathError(f"bad saved command '{name}'") from exc
        return current

    def _walk(
        self,
        result: TokenizeResult,
        validate: bool,
        tolerant: bool = False,
        probe_next: bool = False,
    ) -> Resolution:
        tree = ParseTree()
        try:
            if result.comment:
                return Resolution(tree, None)

            from_root, words = _split_root(result.tokens)
            if probe_next and not result.state.in_token:
                words.append(Token.empty(len(result.source)))

            resolver = Resolver(self.namespace, tree)
            resolution = Resolution(tree, self._begin(resolver, from_root))
            for token in words:
                try:
                    node = resolver.resolve(resolution.node, token.text, token, validate)
                except ResolveError:
                    if tolerant:
                        break
                    raise
                resolution.node = node
                resolution.steps.append((token, node))
            return resolution
        except BaseException:
            tree.close()
            raise

    # ------------------------------------------------------------------
    # Front-end entry points
    # ------------------------------------------------------------------

    def colourise(self, result: TokenizeResult) -> Resolution:
        """Resolve for highlighting: no probes, stop quietly at the first failure."""
        try:
            return self._walk(result, validate=False, tolerant=True)
        except SavedPathError:
            return Resolution(ParseTree(), None)

    def complete(self, result: TokenizeResult) -> Resolution:
        """Resolve for completion, probing commands.

        After trailing whitespace an empty word is resolved too, so the
        result describes what may come next. Raises ResolveError or
        SavedPathError when the line cannot be resolved.
        """
        return self._walk(result, validate=True, probe_next=True)

    def resolve(self, result: TokenizeResult, validate: bool = False) -> Resolution:
        """Resolve the typed words only, raising on the first failure."""
        return self._walk(result, validate=validate)

    def command(self, result: TokenizeResult, line: int | None = None) -> Outcome:
        """Resolve the typed words, then act on where they land."""
        if result.empty:
            return Outcome.CONTINUE

        try:
            resolution = self._walk(result, validate=True)
        except SavedPathError as exc:
            print(str(exc), file=sys.stderr)
            return Outcome.ERROR
        except ResolveError as exc:
            print(exc.format(line, result.source or None), file=sys.stderr)
            return Outcome.ERROR

        with resolution:
            node = resolution.node
            assert node is not None
            if self.trace:
                dump_chain(node)
            return self._dispatch(node, result, line)

    def _dispatch(self, node: ParseNode, result: TokenizeResult, line: int | None) -> Outcome:
        if isinstance(node, ContainerNode):
            self.path = node.path()
            logger.debug("saved path now %s", self.path)
            return Outcome.CONTINUE

        if isinstance(node, (CommandNode, ParameterNode)):
            try:
                execute(node, self.namespace.environ)
            except ExecError as exc:
                print(exc.format(), file=sys.stderr)
                return Outcome.ERROR
            return Outcome.CONTINUE

        if isinstance(node, (BuiltinNode, OptionNode)):
            builtin = next((n for n in node.chain() if isinstance(n, BuiltinNode)), None)
            if builtin is None or builtin.parent is None:
                return Outcome.CONTINUE
            if builtin.parent.is_root and builtin.name in ROOT_BUILTINS:
                return Outcome.TERMINATE
            return Outcome.CONTINUE

        assert isinstance(node, AmbiguousNode)
        error = AmbiguousError(node.prefix, node.token, node.candidates())
        print(error.format(line, result.source or None), file=sys.stderr)
        return Outcome.ERROR


def completion_candidates(node: ParseNode, token: Token | None) -> list[tuple[str, str, bool]]:
    """Text to insert for each way of completing ``node``.

    Each entry is ``(text, category, after_equals)``: the escaped word
    with its suffix, the kind of name it is, and whether it replaces only
    the value after the ``=`` of ``token``.
    """
    keyed = token is not None and token.equals is not None

    if isinstance(node, AmbiguousNode):
        groups = (
            (node.containers, "container", " ", False),
            (node.commands, "command", " ", False),
            (node.builtins, "builtin", " ", False),
            (node.keys, "key", "=", False),
            (node.required_keys, "key.required", "=", False),
            (node.values, "value", " ", keyed),
        )
        return [
            (escape_word(name) + suffix, category, after_equals)
            for names, category, suffix, after_equals in groups
            for name in names
        ]

    if isinstance(node, ParameterNode) and node.key is not None and keyed:
        if not node.value:
            return []
        return [(escape_word(node.value) + node.completion, "value", True)]

    if not node.name:
        return []
    return [(escape_word(node.name) + node.completion, node.kind.name.lower(), False)]


def replace_from(result: TokenizeResult, token: Token | None, after_equals: bool) -> int:
    """Source byte offset where a completion's text starts."""
    if token is None or not token.located or not result.state.in_token:
        return len(result.source)
    if after_equals and token.equals is not None:
        if token.equals < len(token.offsets):
            return token.offsets[token.equals] + 1
        return len(result.source)
    return token.start
