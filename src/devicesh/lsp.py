"""Minimal LSP server for device scripts: diagnostics and completion."""

from __future__ import annotations

import os

from lsprotocol.types import (
    TEXT_DOCUMENT_COMPLETION,
    TEXT_DOCUMENT_DID_CHANGE,
    TEXT_DOCUMENT_DID_OPEN,
    CompletionItem,
    CompletionItemKind,
    CompletionList,
    CompletionParams,
    Diagnostic,
    DiagnosticSeverity,
    DidChangeTextDocumentParams,
    DidOpenTextDocumentParams,
    Position,
    PublishDiagnosticsParams,
    Range,
    TextDocumentSyncKind,
    TextEdit,
)
from pygls.lsp.server import LanguageServer

from devicesh import __version__
from devicesh.errors import LexError, ResolveError
from devicesh.lexer import tokenize
from devicesh.namespace import Namespace
from devicesh.nodes import AmbiguousNode, ContainerNode
from devicesh.tokens import Token, column_of
from devicesh.walk import SavedPathError, Session, completion_candidates, replace_from

server = LanguageServer("device-lsp", __version__, text_document_sync_kind=TextDocumentSyncKind.Full)

_namespace: Namespace | None = None

_ITEM_KINDS = {
    "container": CompletionItemKind.Module,
    "command": CompletionItemKind.Function,
    "builtin": CompletionItemKind.Keyword,
    "key": CompletionItemKind.Property,
    "key.required": CompletionItemKind.Property,
    "parameter": CompletionItemKind.Property,
    "value": CompletionItemKind.Value,
}


def get_namespace() -> Namespace:
    """The namespace configured the same way as the shell, loaded once."""
    global _namespace
    if _namespace is None:
        from devicesh.cli import build_parser, make_session, resolve_options

        options = resolve_options(build_parser().parse_args([]), os.environ)
        _namespace = make_session(options, os.environ).namespace
    return _namespace


def _token_range(line: int, source: bytes, token: Token | None) -> Range:
    if token is None or not token.located:
        return Range(start=Position(line=line, character=0), end=Position(line=line, character=0))
    start = column_of(source, token.start) - 1
    end = max(start + 1, column_of(source, token.end) - 1)
    return Range(start=Position(line=line, character=start), end=Position(line=line, character=end))


def diagnose(session: Session, lines: list[str]) -> list[Diagnostic]:
    """Check each line in turn, following container changes without running anything."""
    diagnostics: list[Diagnostic] = []

    for index, text in enumerate(lines):
        try:
            result = tokenize(text, final=True)
        except LexError as exc:
            col = exc.column - 1
            diagnostics.append(
                Diagnostic(
                    range=Range(
                        start=Position(line=index, character=col),
                        end=Position(line=index, character=col + 1),
                    ),
                    message=exc.message,
                    severity=DiagnosticSeverity.Error,
                    source="device",
                )
            )
            continue

        if result.empty:
            continue

        try:
            resolution = session.resolve(result)
        except SavedPathError as exc:
            session.path = ()
            diagnostics.append(
                Diagnostic(
                    range=_token_range(index, result.source, None),
                    message=str(exc),
                    severity=DiagnosticSeverity.Warning,
                    source="device",
                )
            )
            continue
        except ResolveError as exc:
            diagnostics.append(
                Diagnostic(
                    range=_token_range(index, result.source, exc.token),
                    message=f"bad command '{exc.word}': {exc.reason}",
                    severity=DiagnosticSeverity.Warning,
                    source="device",
                )
            )
            continue

        with resolution:
            node = resolution.node
            if isinstance(node, AmbiguousNode):
                candidates = ", ".join(node.candidates())
                diagnostics.append(
                    Diagnostic(
                        range=_token_range(index, result.source, node.token),
                        message=f"bad command '{node.prefix}': ambiguous, could be one of: {candidates}",
                        severity=DiagnosticSeverity.Warning,
                        source="device",
                    )
                )
            elif isinstance(node, ContainerNode):
                session.path = node.path()

    return diagnostics


def _validate(ls: LanguageServer, uri: str) -> None:
    """Check the document and publish diagnostics."""
    doc = ls.workspace.get_text_document(uri)
    session = Session(get_namespace())
    diagnostics = diagnose(session, doc.source.splitlines())
    ls.text_document_publish_diagnostics(PublishDiagnosticsParams(uri=uri, diagnostics=diagnostics))


def complete_at(session: Session, lines: list[str], line: int, character: int) -> list[CompletionItem]:
    """Completion items for the cursor at (line, character)."""
    # earlier lines only move the session between containers
    diagnose(session, lines[:line])

    text = lines[line][:character] if line < len(lines) else ""
    try:
        result = tokenize(text)
    except LexError:
        return []
    if result.comment:
        return []

    try:
        resolution = session.complete(result)
    except (ResolveError, SavedPathError):
        return []

    items: list[CompletionItem] = []
    with resolution:
        node = resolution.node
        if node is None:
            return []
        token = resolution.steps[-1][0] if resolution.steps else None
        for completion, category, after_equals in completion_candidates(node, token):
            start = column_of(result.source, replace_from(result, token, after_equals)) - 1
            items.append(
                CompletionItem(
                    label=completion.rstrip(" "),
                    kind=_ITEM_KINDS.get(category, CompletionItemKind.Text),
                    text_edit=TextEdit(
                        range=Range(
                            start=Position(line=line, character=start),
                            end=Position(line=line, character=character),
                        ),
                        new_text=completion,
                    ),
                )
            )
    return items


@server.feature(TEXT_DOCUMENT_DID_OPEN)
def did_open(ls: LanguageServer, params: DidOpenTextDocumentParams) -> None:
    _validate(ls, params.text_document.uri)


@server.feature(TEXT_DOCUMENT_DID_CHANGE)
def did_change(ls: LanguageServer, params: DidChangeTextDocumentParams) -> None:
    _validate(ls, params.text_document.uri)


@server.feature(TEXT_DOCUMENT_COMPLETION)
def completion(ls: LanguageServer, params: CompletionParams) -> CompletionList:
    doc = ls.workspace.get_text_document(params.text_document.uri)
    session = Session(get_namespace())
    items = complete_at(session, doc.source.splitlines(), params.position.line, params.position.character)
    return CompletionList(is_incomplete=False, items=items)


def main() -> None:
    server.start_io()
