"""Test the --debug chain dump."""

import io

from devicesh.debug import dump_chain
from devicesh.lexer import tokenize


def test_dump_chain(command_tree):
    out = io.StringIO()
    with command_tree.session().resolve(tokenize("interfaces enable x=1")) as resolution:
        dump_chain(resolution.node, file=out)
    lines = out.getvalue().splitlines()
    assert lines[0].startswith("Container / libexec=")
    assert lines[1].startswith("  Container 'interfaces'")
    assert lines[2].startswith("    Command 'enable' executable=")
    assert lines[3] == "      Parameter key='x' value='1'"


def test_dump_ambiguous(command_tree):
    out = io.StringIO()
    with command_tree.session().resolve(tokenize("s")) as resolution:
        dump_chain(resolution.node, file=out)
    last = out.getvalue().splitlines()[-1]
    assert last == "  Ambiguous 's' common='' candidates=['set', 'show', 'system']"


def test_dump_defaults_to_stderr(command_tree, capsys):
    with command_tree.session().resolve(tokenize("show")) as resolution:
        dump_chain(resolution.node)
    assert "Command 'show'" in capsys.readouterr().err


def test_trace_on_command(command_tree, capsys):
    session = command_tree.session()
    session.trace = True
    session.command(tokenize("system"))
    assert "Container 'system'" in capsys.readouterr().err
