"""Tokenizer state, token data structures, and character classification helpers."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum, auto


class EscapeMode(Enum):
    NONE = auto()
    WAS_ESCAPE = auto()  # an escape just completed
    SLASH = auto()  # seen \
    OCTAL2 = auto()  # seen \[0-3]
    OCTAL3 = auto()  # seen \[0-3][0-7]
    HEX1 = auto()  # seen \x
    HEX2 = auto()  # seen \xH
    UTF16_1 = auto()  # seen \u
    UTF16_2 = auto()
    UTF16_3 = auto()
    UTF16_4 = auto()
    UTF32_1 = auto()  # seen \U
    UTF32_2 = auto()
    UTF32_3 = auto()
    UTF32_4 = auto()
    UTF32_5 = auto()
    UTF32_6 = auto()
    UTF32_7 = auto()
    UTF32_8 = auto()
    CONTROL = auto()  # seen \c


class QuoteMode(Enum):
    NONE = auto()
    WAS_QUOTE = auto()  # a quote just closed
    SINGLE = auto()
    DOUBLE = auto()


# Escape modes in which a partial value is still being read
OPEN_ESCAPES = frozenset(EscapeMode) - {EscapeMode.NONE, EscapeMode.WAS_ESCAPE}


@dataclass(frozen=True, slots=True)
class TokenizeState:
    """Everything needed to interpret the next byte of input.

    ``code`` holds the value accumulated so far by an unfinished octal,
    hex or unicode escape.
    """

    escape: EscapeMode = EscapeMode.NONE
    quote: QuoteMode = QuoteMode.NONE
    in_token: bool = False
    equals_seen: bool = False
    code: int = 0

    @property
    def escaped(self) -> bool:
        """True while inside an escape sequence (including its final byte)."""
        return self.escape != EscapeMode.NONE

    @property
    def quoted(self) -> bool:
        """True while inside quotes (including the closing quote)."""
        return self.quote != QuoteMode.NONE

    @property
    def is_open(self) -> bool:
        """True if a quote or an escape sequence is still unfinished."""
        return self.escape in OPEN_ESCAPES or self.quote in (QuoteMode.SINGLE, QuoteMode.DOUBLE)

    def evolve(self, **changes: object) -> TokenizeState:
        return replace(self, **changes)


@dataclass(frozen=True, slots=True)
class Token:
    """One decoded word of input.

    ``data`` is the decoded byte string, ``start``/``end`` the byte range in
    the source line, ``equals`` the index in ``data`` of the first unquoted,
    unescaped ``=`` (or None), and ``offsets`` maps each decoded byte back
    to the source byte that produced it.
    """

    data: bytes
    start: int
    end: int
    equals: int | None
    offsets: tuple[int, ...]
    located: bool = True

    @property
    def text(self) -> str:
        return self.data.decode("utf-8", "surrogateescape")

    def split_equals(self) -> tuple[str | None, str]:
        """Return (key, value); key is None if the token has no equals."""
        if self.equals is None:
            return None, self.text
        key = self.data[: self.equals].decode("utf-8", "surrogateescape")
        value = self.data[self.equals + 1 :].decode("utf-8", "surrogateescape")
        return key, value

    def lstrip(self, count: int = 1) -> Token:
        """Drop the first ``count`` decoded bytes, keeping offsets aligned."""
        equals = self.equals
        if equals is not None:
            equals = equals - count if equals >= count else None
        start = self.offsets[count] if count < len(self.offsets) else self.end
        return Token(
            self.data[count:], start, self.end, equals, self.offsets[count:], self.located
        )

    @classmethod
    def from_word(cls, word: str) -> Token:
        """Build a token from an already-split word (no escapes, no offsets)."""
        data = word.encode("utf-8", "surrogateescape")
        index = data.find(b"=")
        return cls(data, 0, 0, index if index >= 0 else None, (), located=False)

    @classmethod
    def empty(cls, at: int) -> Token:
        """The synthetic empty word used to ask "what comes next"."""
        return cls(b"", at, at, None, ())


@dataclass(frozen=True, slots=True)
class TokenizeResult:
    """Output of one tokenize call."""

    tokens: tuple[Token, ...]
    state: TokenizeState
    states: tuple[TokenizeState, ...] = ()
    comment: bool = False
    source: bytes = b""

    @property
    def empty(self) -> bool:
        return self.comment or not self.tokens


# Whitespace skipped between words; vertical tab is skipped but does not end a word
SKIP_WHITESPACE = frozenset(b" \t\n\v\f\r")
WORD_BREAK = frozenset(b" \t\n\f\r")


def is_hex_digit(ch: int) -> bool:
    """Return True if byte ch is a hexadecimal digit."""
    return ch in b"0123456789abcdefABCDEF"


def is_octal_digit(ch: int) -> bool:
    return 0x30 <= ch <= 0x37


def encode_source(line: str | bytes) -> bytes:
    """Return the byte form of a source line; offsets index into this."""
    if isinstance(line, bytes):
        return line
    return line.encode("utf-8", "surrogateescape")


def column_of(source: bytes, offset: int) -> int:
    """Convert a byte offset into a 1-based character column."""
    return len(source[:offset].decode("utf-8", "surrogateescape")) + 1
