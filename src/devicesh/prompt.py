"""Interactive front-end built on prompt_toolkit.

Completion and highlighting both go through the session's walk, so what
the user sees is exactly what the shell would do with the line.
"""

from __future__ import annotations

import getpass
import logging
import socket
import sys
from collections.abc import Callable, Iterable
from pathlib import Path

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import CompleteEvent, Completer, Completion
from prompt_toolkit.document import Document
from prompt_toolkit.formatted_text import StyleAndTextTuples
from prompt_toolkit.history import FileHistory, History, InMemoryHistory
from prompt_toolkit.lexers import Lexer
from prompt_toolkit.styles import Style

from devicesh.errors import LexError, ResolveError
from devicesh.lexer import tokenize
from devicesh.nodes import (
    BuiltinNode,
    CommandNode,
    ContainerNode,
    ParameterNode,
    ParseNode,
)
from devicesh.tokens import EscapeMode, TokenizeResult
from devicesh.walk import (
    Outcome,
    SavedPathError,
    Session,
    completion_candidates,
    replace_from,
)

logger = logging.getLogger(__name__)

MAX_HISTORY = 1000

CONTINUATION = "> "

STYLE = Style.from_dict(
    {
        "prompt.device": "bold ansiwhite",
        "prompt.user": "bold ansigreen",
        "container": "ansiblue",
        "command": "ansibrightblue",
        "builtin": "ansicyan",
        "parameter": "ansigreen",
        "parameter.required": "ansibrightgreen",
        "parameter.failed": "ansibrightred",
        "key": "ansimagenta",
        "key.required": "ansibrightmagenta",
        "value": "ansimagenta",
        "escape": "ansimagenta",
        "quoted": "ansibrightblack",
        "comment": "ansigray",
        "error": "bg:ansired ansiwhite",
    }
)


def _char_offset(source: bytes, offset: int) -> int:
    return len(source[:offset].decode("utf-8", "surrogateescape"))


# ----------------------------------------------------------------------
# Completion
# ----------------------------------------------------------------------


class DeviceCompleter(Completer):
    """Tab completion backed by the session's completion walk."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def get_completions(self, document: Document, complete_event: CompleteEvent) -> Iterable[Completion]:
        text = document.text_before_cursor
        try:
            result = tokenize(text)
        except LexError:
            return
        if result.comment:
            return

        try:
            resolution = self.session.complete(result)
        except (ResolveError, SavedPathError) as exc:
            logger.debug("no completion for %r: %s", text, exc)
            return

        with resolution:
            node = resolution.node
            if node is None:
                return
            token = resolution.steps[-1][0] if resolution.steps else None
            cursor = len(text)
            for completion, category, after_equals in completion_candidates(node, token):
                start = _char_offset(result.source, replace_from(result, token, after_equals))
                yield Completion(
                    completion,
                    start_position=start - cursor,
                    display=completion.rstrip(" "),
                    style=f"class:{category}",
                )


# ----------------------------------------------------------------------
# Highlighting
# ----------------------------------------------------------------------


def _node_style(node: ParseNode) -> str | None:
    if isinstance(node, ContainerNode):
        return "class:container"
    if isinstance(node, CommandNode):
        return "class:command"
    if isinstance(node, BuiltinNode):
        return "class:builtin"
    if isinstance(node, ParameterNode):
        if node.error is not None:
            return "class:parameter.failed"
        if node.required:
            return "class:parameter.required"
        return "class:parameter"
    return None


def highlight(session: Session, line: str) -> StyleAndTextTuples:
    """Style each character of ``line`` the way the shell reads it."""
    source = line.encode("utf-8", "surrogateescape")
    styles: list[str] = [""] * len(source)

    try:
        result = tokenize(source)
    except LexError as exc:
        if exc.offset < len(styles):
            styles[exc.offset] = "class:error"
        return _fragments(source, styles)

    if result.comment:
        return _fragments(source, ["class:comment"] * len(source))

    for i, state in enumerate(result.states[: len(source)]):
        if state.escaped:
            styles[i] = "class:escape"
        elif state.quoted:
            styles[i] = "class:quoted"

    with session.colourise(result) as resolution:
        for token, node in resolution.steps:
            style = _node_style(node)
            if style is None:
                continue
            for offset in token.offsets:
                styles[offset] = style

    return _fragments(source, styles)


def _fragments(source: bytes, styles: list[str]) -> StyleAndTextTuples:
    fragments: StyleAndTextTuples = []
    offset = 0
    for char in source.decode("utf-8", "surrogateescape"):
        fragments.append((styles[offset] if offset < len(styles) else "", char))
        offset += len(char.encode("utf-8", "surrogateescape"))
    return fragments


class DeviceLexer(Lexer):
    """Syntax highlighting backed by the session's display walk."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def lex_document(self, document: Document) -> Callable[[int], StyleAndTextTuples]:
        lines = document.lines

        def get_line(lineno: int) -> StyleAndTextTuples:
            if lineno >= len(lines):
                return []
            return highlight(self.session, lines[lineno])

        return get_line


# ----------------------------------------------------------------------
# History
# ----------------------------------------------------------------------


class UniqueFileHistory(FileHistory):
    """File history that loads each distinct line once, newest first."""

    def __init__(self, filename: str | Path, limit: int = MAX_HISTORY) -> None:
        super().__init__(str(filename))
        self.limit = limit

    def load_history_strings(self) -> Iterable[str]:
        seen: set[str] = set()
        for string in super().load_history_strings():
            if string in seen:
                continue
            seen.add(string)
            yield string
            if len(seen) >= self.limit:
                break


# ----------------------------------------------------------------------
# Prompt loop
# ----------------------------------------------------------------------


def prompt_message(session: Session, user: str | None = None, host: str | None = None) -> StyleAndTextTuples:
    user = user if user is not None else getpass.getuser()
    host = host if host is not None else socket.gethostname()
    return [
        ("class:prompt.device", "(device)"),
        ("", " "),
        ("class:prompt.user", f"{user}@{host}"),
        ("", f" {session.prompt_path()}> "),
    ]


def join_continuation(pending: str, text: str, result: TokenizeResult) -> str:
    """Text to carry into the next prompt when ``result`` ends open.

    A trailing backslash joins the lines directly; otherwise the newline
    is kept, inside the open quote.
    """
    if result.state.escape == EscapeMode.SLASH and text.endswith("\\"):
        return pending + text[:-1]
    return pending + text + "\n"


def interactive(session: Session, history: History | None = None) -> int:
    """Run the interactive prompt until ``exit``, ``quit`` or Ctrl-D."""
    prompt_session: PromptSession[str] = PromptSession(
        history=history if history is not None else InMemoryHistory(),
        completer=DeviceCompleter(session),
        lexer=DeviceLexer(session),
        style=STYLE,
        complete_while_typing=False,
    )

    number = 0
    pending = ""
    while True:
        try:
            text = prompt_session.prompt(CONTINUATION if pending else prompt_message(session))
        except KeyboardInterrupt:
            pending = ""
            continue
        except EOFError:
            print()
            break

        number += 1
        source = pending + text
        try:
            result = tokenize(source)
        except LexError as exc:
            print(exc.format(number), file=sys.stderr)
            pending = ""
            continue

        if result.state.is_open:
            pending = join_continuation(pending, text, result)
            continue
        pending = ""

        if session.command(result, number) is Outcome.TERMINATE:
            print()
            break

    return 0
