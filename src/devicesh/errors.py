"""Error types with line/column positions and source context."""

from __future__ import annotations

from typing import TYPE_CHECKING

from devicesh.tokens import column_of

if TYPE_CHECKING:
    from devicesh.tokens import Token


def _where(column: int | None, line: int | None) -> str:
    if column is None:
        return ""
    if line is None:
        return f" (column {column})"
    return f" (line {line} column {column})"


def _physical_line(source: bytes, offset: int) -> tuple[int, bytes]:
    """Start offset and bytes of the newline-separated line holding ``offset``.

    A buffer joined from continuation lines holds several physical lines;
    positions are reported within the one the offset falls on.
    """
    start = source.rfind(b"\n", 0, offset) + 1
    end = source.find(b"\n", start)
    if end < 0:
        end = len(source)
    return start, source[start:end]


def _column(source: bytes, offset: int) -> int:
    start, line = _physical_line(source, offset)
    return column_of(line, offset - start)


def _context(source: bytes, offset: int, width: int) -> str:
    """Render the source line with carets under the offending range."""
    start, line = _physical_line(source, offset)
    text = line.decode("utf-8", "surrogateescape").rstrip("\r")
    col = column_of(line, offset - start)
    underline_len = max(1, min(width, len(text) - col + 1))
    return f"  | {text}\n  | {' ' * (col - 1)}{'^' * underline_len}"


class LexError(Exception):
    """Raised on the first lexing error, with byte offset and source line."""

    def __init__(self, message: str, offset: int, source: bytes) -> None:
        self.message = message
        self.offset = offset
        self.source = source
        super().__init__(self.format())

    @property
    def column(self) -> int:
        return _column(self.source, self.offset)

    def format(self, line: int | None = None) -> str:
        if self.offset < len(self.source):
            ch = self.source[self.offset : self.offset + 1].decode("utf-8", "replace")
            what = f"'{ch}'"
        else:
            what = "end of line"
        return (
            f"syntax error at {what}: {self.message}{_where(self.column, line)}\n"
            f"{_context(self.source, self.offset, 1)}"
        )


class ResolveError(Exception):
    """A word could not be resolved against the namespace."""

    reason = "cannot be resolved"

    def __init__(self, word: str, token: Token | None = None, reason: str | None = None) -> None:
        self.word = word
        self.token = token
        if reason is not None:
            self.reason = reason
        super().__init__(self.format())

    def column(self, source: bytes | None = None) -> int | None:
        if self.token is None or not self.token.located:
            return None
        if source is None:
            return self.token.start + 1
        return _column(source, self.token.start)

    def format(self, line: int | None = None, source: bytes | None = None) -> str:
        message = f"bad command '{self.word}': {self.reason}{_where(self.column(source), line)}"
        if source and self.token is not None and self.token.located:
            width = max(1, self.token.end - self.token.start)
            message += "\n" + _context(source, self.token.start, width)
        return message


class NotFoundError(ResolveError):
    reason = "not found"


class AboveRootError(ResolveError):
    reason = "already at the top level"


class AmbiguousError(ResolveError):
    reason = "ambiguous"

    def __init__(self, word: str, token: Token | None = None, candidates: list[str] | None = None) -> None:
        self.candidates = list(candidates or [])
        reason = "ambiguous"
        if self.candidates:
            reason += ", could be one of: " + ", ".join(self.candidates)
        super().__init__(word, token, reason)


class SchemaError(Exception):
    """A schema probe could not be run or rejected its arguments."""


class ExecError(Exception):
    """The resolved command could not be run, or it failed."""

    def __init__(self, message: str, stderr: bytes = b"") -> None:
        self.message = message
        self.stderr = stderr
        super().__init__(message)

    def format(self) -> str:
        text = self.message
        if self.stderr:
            text += "\n" + self.stderr.decode("utf-8", "replace").rstrip("\n")
        return text
