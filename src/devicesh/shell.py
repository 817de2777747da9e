"""Non-interactive front-ends: script/pipe reader, argv mode, shell completion."""

from __future__ import annotations

import dataclasses
import logging
import sys
from collections.abc import Iterable, Mapping, Sequence
from typing import TextIO

from devicesh.errors import LexError, ResolveError
from devicesh.lexer import tokenize
from devicesh.nodes import AmbiguousNode
from devicesh.tokens import Token, TokenizeResult, TokenizeState
from devicesh.walk import Outcome, SavedPathError, Session

logger = logging.getLogger(__name__)


def read_lines(session: Session, lines: Iterable[str | bytes]) -> int:
    """Run every line in turn until ``exit``/``quit`` or end of input.

    Returns 0 if every line succeeded, 1 otherwise.
    """
    failed = False
    for number, line in enumerate(lines, 1):
        try:
            result = tokenize(line, final=True)
        except LexError as exc:
            print(exc.format(number), file=sys.stderr)
            failed = True
            continue

        outcome = session.command(result, number)
        if outcome is Outcome.TERMINATE:
            break
        if outcome is Outcome.ERROR:
            failed = True

    return 1 if failed else 0


def argv_result(words: Sequence[str]) -> TokenizeResult:
    """Wrap already-split words as a tokenize result (no unescaping)."""
    return TokenizeResult(tuple(Token.from_word(word) for word in words), TokenizeState())


def run_argv(session: Session, words: Sequence[str]) -> int:
    """Run one command given as separate words."""
    if words and words[0].startswith("#"):
        return 0
    outcome = session.command(argv_result(words))
    return 1 if outcome is Outcome.ERROR else 0


def completion_line(environ: Mapping[str, str]) -> str | None:
    """The shell's partial command line, cut at the cursor, if completing."""
    line = environ.get("COMP_LINE", environ.get("COMMAND_LINE"))
    if line is None:
        return None
    point = environ.get("COMP_POINT")
    if point is not None and point.isdigit():
        line = line[: int(point)]
    return line


def compgen(session: Session, line: str, out: TextIO | None = None) -> int:
    """Print completion candidates for ``line``, which starts with the program name."""
    f = out if out is not None else sys.stdout
    try:
        result = tokenize(line)
    except LexError:
        return 0
    if result.comment or not result.tokens:
        return 0

    # drop the program name
    result = dataclasses.replace(result, tokens=result.tokens[1:])

    try:
        resolution = session.complete(result)
    except (ResolveError, SavedPathError) as exc:
        logger.debug("no completion for %r: %s", line, exc)
        return 0

    with resolution:
        node = resolution.node
        if isinstance(node, AmbiguousNode):
            # builtins make no sense from the calling shell
            for name in [*node.containers, *node.commands]:
                f.write(f"{name}\n")
        elif node is not None and node.name is not None:
            f.write(f"{node.name}\n")
    return 0
