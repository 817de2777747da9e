"""Resolve one word against the current position in the command tree."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from devicesh.errors import AboveRootError, NotFoundError
from devicesh.namespace import Namespace
from devicesh.nodes import (
    AmbiguousNode,
    BuiltinNode,
    CommandNode,
    ContainerNode,
    NodeKind,
    OptionNode,
    ParameterNode,
    ParseNode,
    ParseTree,
)
from devicesh.schema import probe
from devicesh.tokens import Token

logger = logging.getLogger(__name__)

PARENT = ".."


def with_prefix(names: Iterable[str], prefix: str) -> list[str]:
    return [name for name in names if name.startswith(prefix)]


def common_suffix(names: Iterable[str], prefix: str) -> str | None:
    """Longest run shared by every name after ``prefix``; None if no names."""
    common: str | None = None
    for name in names:
        rest = name[len(prefix) :]
        if common is None:
            common = rest
            continue
        i = 0
        while i < len(common) and i < len(rest) and common[i] == rest[i]:
            i += 1
        common = common[:i]
    return common


def _ambiguous(
    tree: ParseTree,
    parent: ParseNode,
    word: str,
    token: Token | None,
    prefix: str,
    **groups: list[str],
) -> AmbiguousNode:
    matched = {name: with_prefix(names, prefix) for name, names in groups.items()}
    common = common_suffix((n for names in matched.values() for n in names), prefix)
    return tree.add(AmbiguousNode(word, parent, token, prefix=word, common=common, **matched))


class Resolver:
    """Builds the next node for a word, given where the walk has got to."""

    def __init__(self, namespace: Namespace, tree: ParseTree) -> None:
        self.namespace = namespace
        self.tree = tree

    def root(self) -> ContainerNode:
        return self.namespace.root(self.tree)

    def resolve(
        self,
        current: ParseNode,
        word: str,
        token: Token | None = None,
        validate: bool = False,
    ) -> ParseNode:
        """Return the node ``word`` leads to from ``current``.

        Raises NotFoundError when nothing matches and AboveRootError for
        ``..`` at the top. With ``validate`` set, parameters are checked by
        probing their command.
        """
        logger.debug("resolve %r below %s %r", word, current.kind.name.lower(), current.name)
        if isinstance(current, ContainerNode):
            return self._in_container(current, word, token)
        if isinstance(current, CommandNode):
            return self._parameter(current, current, word, token, validate)
        if isinstance(current, ParameterNode):
            assert current.command is not None
            return self._parameter(current, current.command, word, token, validate)
        if isinstance(current, BuiltinNode):
            return self.tree.add(BuiltinNode(word, current, token))
        if isinstance(current, OptionNode):
            return self.tree.add(OptionNode(word, current, token, command=current.command))
        # nothing lives below an ambiguous node
        raise NotFoundError(word, token)

    # ------------------------------------------------------------------
    # Containers
    # ------------------------------------------------------------------

    def _in_container(self, current: ContainerNode, word: str, token: Token | None) -> ParseNode:
        if word == PARENT:
            if current.parent is None:
                raise AboveRootError(word, token)
            return current.parent

        if word in current.builtins:
            return self._make(current, NodeKind.BUILTIN, word, token)
        if word in current.commands:
            return self._make(current, NodeKind.COMMAND, word, token)
        if word in current.containers:
            return self._make(current, NodeKind.CONTAINER, word, token)

        builtins = with_prefix(current.builtins, word)
        commands = with_prefix(current.commands, word)
        containers = with_prefix(current.containers, word)
        matches = len(builtins) + len(commands) + len(containers)

        if matches == 1:
            if builtins:
                return self._make(current, NodeKind.BUILTIN, builtins[0], token)
            if commands:
                return self._make(current, NodeKind.COMMAND, commands[0], token)
            return self._make(current, NodeKind.CONTAINER, containers[0], token)

        if matches > 1:
            return _ambiguous(
                self.tree,
                current,
                word,
                token,
                word,
                builtins=current.builtins,
                commands=current.commands,
                containers=current.containers,
            )

        raise NotFoundError(word, token)

    def _make(self, current: ContainerNode, kind: NodeKind, name: str, token: Token | None) -> ParseNode:
        if kind == NodeKind.BUILTIN:
            node: ParseNode = self.tree.add(BuiltinNode(name, current))
        elif kind == NodeKind.COMMAND:
            node = self.namespace.command(self.tree, current, name)
        else:
            node = self.namespace.container(self.tree, current, name)
        node.token = token
        return node

    # ------------------------------------------------------------------
    # Parameters
    # ------------------------------------------------------------------

    def _parameter(
        self,
        parent: ParseNode,
        command: CommandNode,
        word: str,
        token: Token | None,
        validate: bool,
    ) -> ParseNode:
        node = self.tree.add(ParameterNode(word, parent, token, command=command))

        split = token if token is not None else Token.from_word(word)
        key, value = split.split_equals()
        node.key, node.value = key, value
        if key is not None and "=" in key:
            node.error = "key contains a hidden equals character."
            return node

        if validate:
            probe(node, self.namespace.environ)

        if node.key is not None:
            return self._match_value(node, parent, word, token)
        return self._match_word(node, parent, word, token)

    def _match_value(self, node: ParameterNode, parent: ParseNode, word: str, token: Token | None) -> ParseNode:
        if node.value in node.values:
            return node
        values = with_prefix(node.values, node.value)
        if len(values) == 1:
            node.value = values[0]
            node.name = f"{node.key}={values[0]}"
        elif len(values) > 1:
            return _ambiguous(self.tree, parent, word, token, node.value, values=node.values)
        return node

    def _match_word(self, node: ParameterNode, parent: ParseNode, word: str, token: Token | None) -> ParseNode:
        if word in node.required_keys:
            node.required = True
            return node
        if word in node.keys or word in node.values:
            return node

        keys = with_prefix(node.keys, word)
        required = with_prefix(node.required_keys, word)
        values = with_prefix(node.values, word)
        matches = len(keys) + len(required) + len(values)

        if matches == 1:
            if keys or required:
                node.required = bool(required)
                node.key = (keys or required)[0]
                node.value = ""
                node.name = node.key
                node.completion = "="
            else:
                node.value = values[0]
                node.name = values[0]
        elif matches > 1:
            return _ambiguous(
                self.tree,
                parent,
                word,
                token,
                word,
                keys=node.keys,
                required_keys=node.required_keys,
                values=node.values,
            )
        return node


def resolve(
    namespace: Namespace,
    tree: ParseTree,
    current: ParseNode,
    word: str,
    token: Token | None = None,
    validate: bool = False,
) -> ParseNode:
    """Convenience function: resolve one word with a throwaway Resolver."""
    return Resolver(namespace, tree).resolve(current, word, token, validate)
