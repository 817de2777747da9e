"""Test resolving single words against containers and commands."""

import pytest

from devicesh.errors import AboveRootError, NotFoundError
from devicesh.lexer import tokenize
from devicesh.nodes import (
    AmbiguousNode,
    BuiltinNode,
    CommandNode,
    ContainerNode,
    OptionNode,
    ParameterNode,
    ParseTree,
)
from devicesh.resolver import Resolver, common_suffix, resolve, with_prefix


@pytest.fixture
def resolver(command_tree):
    tree = ParseTree()
    yield Resolver(command_tree.namespace(), tree)
    tree.close()


class TestHelpers:
    def test_with_prefix(self):
        assert with_prefix(["set", "show", "system"], "s") == ["set", "show", "system"]
        assert with_prefix(["set", "show", "system"], "sh") == ["show"]

    def test_common_suffix(self):
        assert common_suffix(["foo", "foobar"], "f") == "oo"

    def test_common_suffix_diverging(self):
        assert common_suffix(["set", "show"], "s") == ""

    def test_common_suffix_no_names(self):
        assert common_suffix([], "x") is None


class TestContainer:
    def test_exact_command(self, resolver):
        node = resolver.resolve(resolver.root(), "set")
        assert isinstance(node, CommandNode)
        assert node.name == "set"

    def test_exact_container(self, resolver):
        node = resolver.resolve(resolver.root(), "system")
        assert isinstance(node, ContainerNode)
        assert node.path() == ("system",)

    def test_builtin(self, resolver):
        node = resolver.resolve(resolver.root(), "exit")
        assert isinstance(node, BuiltinNode)

    def test_unique_prefix(self, resolver):
        node = resolver.resolve(resolver.root(), "sh")
        assert isinstance(node, CommandNode)
        assert node.name == "show"

    def test_unique_prefix_of_container(self, resolver):
        node = resolver.resolve(resolver.root(), "int")
        assert isinstance(node, ContainerNode)
        assert node.name == "interfaces"

    def test_ambiguous_prefix(self, resolver):
        node = resolver.resolve(resolver.root(), "s")
        assert isinstance(node, AmbiguousNode)
        assert node.commands == ["set", "show"]
        assert node.containers == ["system"]
        assert node.builtins == []
        assert node.common == ""

    def test_exact_match_beats_longer_prefix_match(self, resolver):
        prec = resolver.resolve(resolver.root(), "prec")
        node = resolver.resolve(prec, "foo")
        assert isinstance(node, CommandNode)
        assert node.name == "foo"

    def test_common_run_of_candidates(self, resolver):
        prec = resolver.resolve(resolver.root(), "prec")
        node = resolver.resolve(prec, "f")
        assert isinstance(node, AmbiguousNode)
        assert node.commands == ["foo", "foobar"]
        assert node.common == "oo"

    def test_common_run_after_longer_prefix(self, resolver):
        prec = resolver.resolve(resolver.root(), "prec")
        node = resolver.resolve(prec, "fo")
        assert isinstance(node, AmbiguousNode)
        assert node.candidates() == ["foo", "foobar"]
        assert node.common == "o"
        assert node.prefix == "fo"

    def test_not_found(self, resolver):
        with pytest.raises(NotFoundError) as info:
            resolver.resolve(resolver.root(), "frob")
        assert info.value.word == "frob"

    def test_parent(self, resolver):
        root = resolver.root()
        interfaces = resolver.resolve(root, "interfaces")
        assert resolver.resolve(interfaces, "..") is root

    def test_parent_of_root(self, resolver):
        with pytest.raises(AboveRootError):
            resolver.resolve(resolver.root(), "..")

    def test_builtins_only_at_root(self, resolver):
        system = resolver.resolve(resolver.root(), "system")
        with pytest.raises(NotFoundError):
            resolver.resolve(system, "exit")

    def test_nested(self, resolver):
        interfaces = resolver.resolve(resolver.root(), "interfaces")
        eth0 = resolver.resolve(interfaces, "eth0")
        assert isinstance(eth0, ContainerNode)
        assert eth0.path() == ("interfaces", "eth0")

    def test_keeps_token(self, resolver):
        token = tokenize("show").tokens[0]
        node = resolver.resolve(resolver.root(), "show", token)
        assert node.token is token


class TestBelowOtherNodes:
    def test_words_after_builtin(self, resolver):
        builtin = resolver.resolve(resolver.root(), "exit")
        node = resolver.resolve(builtin, "now")
        assert isinstance(node, BuiltinNode)
        assert node.parent is builtin

    def test_option_keeps_command(self, resolver):
        command = resolver.resolve(resolver.root(), "show")
        option = OptionNode("--all", command, command=command)
        node = resolver.resolve(option, "more")
        assert isinstance(node, OptionNode)
        assert node.command is command

    def test_nothing_below_ambiguous(self, resolver):
        ambiguous = resolver.resolve(resolver.root(), "s")
        with pytest.raises(NotFoundError):
            resolver.resolve(ambiguous, "x")


class TestParameters:
    def test_key_value_without_probe(self, resolver):
        command = resolver.resolve(resolver.root(), "set")
        node = resolver.resolve(command, "host=a")
        assert isinstance(node, ParameterNode)
        assert node.command is command
        assert (node.key, node.value) == ("host", "a")
        assert node.pair() == ("host", "a")

    def test_bare_value(self, resolver):
        command = resolver.resolve(resolver.root(), "set")
        node = resolver.resolve(command, "verbose")
        assert node.key is None
        assert node.pair() == ("verbose", "")

    def test_chain_keeps_command(self, resolver):
        command = resolver.resolve(resolver.root(), "set")
        first = resolver.resolve(command, "a=1")
        second = resolver.resolve(first, "b=2")
        assert second.parent is first
        assert second.command is command

    def test_hidden_equals(self, resolver):
        command = resolver.resolve(resolver.root(), "set")
        token = tokenize(r'"a=b"=c').tokens[0]
        node = resolver.resolve(command, token.text, token)
        assert node.error == "key contains a hidden equals character."

    def test_quoted_equals_is_part_of_value(self, resolver):
        command = resolver.resolve(resolver.root(), "set")
        token = tokenize("'a=b'").tokens[0]
        node = resolver.resolve(command, token.text, token)
        assert node.key is None
        assert node.value == "a=b"

    def test_probe_completes_value(self, resolver):
        command = resolver.resolve(resolver.root(), "set")
        node = resolver.resolve(command, "host=exam", validate=True)
        assert isinstance(node, ParameterNode)
        assert node.values == ["example.com"]
        assert node.value == "example.com"
        assert node.name == "host=example.com"

    def test_probe_completes_key(self, resolver):
        command = resolver.resolve(resolver.root(), "set")
        node = resolver.resolve(command, "ho", validate=True)
        assert node.key == "host"
        assert node.completion == "="
        assert not node.required

    def test_probe_completes_required_key(self, resolver):
        command = resolver.resolve(resolver.root(), "set")
        node = resolver.resolve(command, "mo", validate=True)
        assert node.key == "mode"
        assert node.required

    def test_probe_completes_bare_value(self, resolver):
        command = resolver.resolve(resolver.root(), "set")
        node = resolver.resolve(command, "verb", validate=True)
        assert node.key is None
        assert node.value == "verbose"

    def test_probe_ambiguous(self, resolver):
        command = resolver.resolve(resolver.root(), "set")
        node = resolver.resolve(command, "", validate=True)
        assert isinstance(node, AmbiguousNode)
        assert node.keys == ["host"]
        assert node.required_keys == ["mode"]
        assert node.values == ["verbose"]

    def test_unknown_word_is_kept(self, resolver):
        command = resolver.resolve(resolver.root(), "set")
        node = resolver.resolve(command, "other", validate=True)
        assert isinstance(node, ParameterNode)
        assert node.value == "other"
        assert node.error is None


def test_module_level_resolve(command_tree):
    ns = command_tree.namespace()
    with ParseTree() as tree:
        node = resolve(ns, tree, ns.root(tree), "show")
        assert isinstance(node, CommandNode)
