"""Device lexer: splits one input line into shell-like words.

Quoting follows POSIX word splitting (adjacent quoted and unquoted runs join
into one word), escapes follow ANSI C, and every decoded byte remembers the
source byte that produced it.
"""

from __future__ import annotations

from typing import NamedTuple

from devicesh.errors import LexError
from devicesh.tokens import (
    SKIP_WHITESPACE,
    WORD_BREAK,
    EscapeMode,
    QuoteMode,
    Token,
    TokenizeResult,
    TokenizeState,
    encode_source,
    is_hex_digit,
    is_octal_digit,
)

_BACKSLASH = ord("\\")
_DQUOTE = ord('"')
_SQUOTE = ord("'")
_EQUALS = ord("=")
_HASH = ord("#")
_SLASH = ord("/")

# \X -> byte
_SIMPLE_ESCAPES: dict[int, int] = {
    ord("a"): 0x07,
    ord("b"): 0x08,
    ord("e"): 0x1B,
    ord("f"): 0x0C,
    ord("n"): 0x0A,
    ord("r"): 0x0D,
    ord("t"): 0x09,
    ord("v"): 0x0B,
    ord("\\"): ord("\\"),
    ord("'"): ord("'"),
    ord('"'): ord('"'),
    ord("?"): ord("?"),
    ord(" "): ord(" "),
}

# \cX accepts @A-Z[\]^_
_CONTROL_CHARS = frozenset(range(0x40, 0x60))

# hex digit state -> state after the digit (None when the escape is complete)
_HEX_NEXT: dict[EscapeMode, EscapeMode | None] = {
    EscapeMode.HEX1: EscapeMode.HEX2,
    EscapeMode.HEX2: None,
    EscapeMode.UTF16_1: EscapeMode.UTF16_2,
    EscapeMode.UTF16_2: EscapeMode.UTF16_3,
    EscapeMode.UTF16_3: EscapeMode.UTF16_4,
    EscapeMode.UTF16_4: None,
    EscapeMode.UTF32_1: EscapeMode.UTF32_2,
    EscapeMode.UTF32_2: EscapeMode.UTF32_3,
    EscapeMode.UTF32_3: EscapeMode.UTF32_4,
    EscapeMode.UTF32_4: EscapeMode.UTF32_5,
    EscapeMode.UTF32_5: EscapeMode.UTF32_6,
    EscapeMode.UTF32_6: EscapeMode.UTF32_7,
    EscapeMode.UTF32_7: EscapeMode.UTF32_8,
    EscapeMode.UTF32_8: None,
}

_ESCAPE_START: dict[int, EscapeMode] = {
    ord("c"): EscapeMode.CONTROL,
    ord("x"): EscapeMode.HEX1,
    ord("u"): EscapeMode.UTF16_1,
    ord("U"): EscapeMode.UTF32_1,
}


class Step(NamedTuple):
    """Result of feeding one byte to the tokenizer state machine."""

    state: TokenizeState
    output: bytes = b""
    error: str | None = None
    boundary: bool = False


def step(state: TokenizeState, ch: int) -> Step:
    """Advance the state machine by one source byte."""
    escape = state.escape

    if escape in (EscapeMode.NONE, EscapeMode.WAS_ESCAPE):
        if escape == EscapeMode.WAS_ESCAPE:
            state = state.evolve(escape=EscapeMode.NONE)
        return _step_plain(state, ch)

    if escape == EscapeMode.SLASH:
        if ch in _SIMPLE_ESCAPES:
            return Step(state.evolve(escape=EscapeMode.WAS_ESCAPE), bytes((_SIMPLE_ESCAPES[ch],)))
        if ch in b"0123":
            return Step(state.evolve(escape=EscapeMode.OCTAL2, code=ch - 0x30))
        if ch in _ESCAPE_START:
            return Step(state.evolve(escape=_ESCAPE_START[ch], code=0))
        return Step(state, error=f"invalid escape sequence '\\{chr(ch)}'")

    if escape in (EscapeMode.OCTAL2, EscapeMode.OCTAL3):
        if not is_octal_digit(ch):
            return Step(state, error=f"invalid octal digit '{chr(ch)}' in escape sequence")
        code = state.code * 8 + ch - 0x30
        if escape == EscapeMode.OCTAL2:
            return Step(state.evolve(escape=EscapeMode.OCTAL3, code=code))
        return Step(state.evolve(escape=EscapeMode.WAS_ESCAPE, code=0), bytes((code,)))

    if escape in _HEX_NEXT:
        if not is_hex_digit(ch):
            return Step(state, error=f"invalid hex digit '{chr(ch)}' in escape sequence")
        code = state.code * 16 + int(chr(ch), 16)
        following = _HEX_NEXT[escape]
        if following is not None:
            return Step(state.evolve(escape=following, code=code))
        done = state.evolve(escape=EscapeMode.WAS_ESCAPE, code=0)
        if escape == EscapeMode.HEX2:
            return Step(done, bytes((code,)))
        if code > 0x10FFFF:
            return Step(state, error=f"Unicode codepoint U+{code:X} is out of range")
        if 0xD800 <= code <= 0xDFFF:
            return Step(state, error=f"Unicode codepoint U+{code:04X} is a surrogate")
        return Step(done, chr(code).encode("utf-8"))

    if escape == EscapeMode.CONTROL:
        if ch not in _CONTROL_CHARS:
            return Step(state, error=f"invalid control character '{chr(ch)}' in escape sequence")
        return Step(state.evolve(escape=EscapeMode.WAS_ESCAPE), bytes((ch ^ 0x40,)))

    return Step(state, error="internal error: unknown escape state")


def _step_plain(state: TokenizeState, ch: int) -> Step:
    quote = state.quote

    if quote == QuoteMode.SINGLE:
        if ch == _SQUOTE:
            return Step(state.evolve(quote=QuoteMode.WAS_QUOTE))
        return Step(state, bytes((ch,)))

    if quote == QuoteMode.DOUBLE:
        if ch == _DQUOTE:
            return Step(state.evolve(quote=QuoteMode.WAS_QUOTE))
        if ch == _BACKSLASH:
            return Step(state.evolve(escape=EscapeMode.SLASH))
        return Step(state, bytes((ch,)))

    if quote == QuoteMode.WAS_QUOTE:
        state = state.evolve(quote=QuoteMode.NONE)

    if ch == _DQUOTE:
        return Step(state.evolve(quote=QuoteMode.DOUBLE))
    if ch == _SQUOTE:
        return Step(state.evolve(quote=QuoteMode.SINGLE))
    if ch == _BACKSLASH:
        return Step(state.evolve(escape=EscapeMode.SLASH))
    if ch in WORD_BREAK:
        return Step(state.evolve(in_token=False), boundary=True)
    if ch == _EQUALS and not state.equals_seen:
        state = state.evolve(equals_seen=True)
    return Step(state, bytes((ch,)))


class Lexer:
    """Tokenize one line of device input into a TokenizeResult."""

    def __init__(self, line: str | bytes, state: TokenizeState | None = None) -> None:
        self._source = encode_source(line)
        self._pos = 0
        self._state = state if state is not None else TokenizeState()
        self._tokens: list[Token] = []
        self._states: list[TokenizeState] = []

    def tokenize(self, final: bool = False) -> TokenizeResult:
        """Tokenize the whole line.

        With ``final`` set, an unclosed quote or unfinished escape is an
        error rather than state carried over to a following line.
        """
        continuing = self._state.is_open

        if not continuing:
            self._skip_whitespace()
            if self._peek() == _HASH:
                return TokenizeResult(
                    (),
                    self._state,
                    tuple(self._state for _ in self._source),
                    comment=True,
                    source=self._source,
                )

        while self._pos < len(self._source):
            self._lex_word(continuing)
            continuing = False
            self._skip_whitespace()

        if final and self._state.is_open:
            raise self._error(self._incomplete_message(), len(self._source))

        return TokenizeResult(
            tuple(self._tokens),
            self._state,
            tuple(self._states),
            comment=False,
            source=self._source,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _peek(self) -> int | None:
        if self._pos < len(self._source):
            return self._source[self._pos]
        return None

    def _skip_whitespace(self) -> None:
        while self._pos < len(self._source) and self._source[self._pos] in SKIP_WHITESPACE:
            self._states.append(self._state)
            self._pos += 1

    def _error(self, message: str, offset: int) -> LexError:
        return LexError(message, offset, self._source)

    def _incomplete_message(self) -> str:
        if self._state.quote == QuoteMode.DOUBLE:
            return "incomplete input: unterminated double quote"
        if self._state.quote == QuoteMode.SINGLE:
            return "incomplete input: unterminated single quote"
        return "incomplete input: unfinished escape sequence"

    # ------------------------------------------------------------------
    # Words
    # ------------------------------------------------------------------

    def _lex_word(self, continuing: bool) -> None:
        start = self._pos
        state = self._state.evolve(in_token=True)
        if not continuing:
            state = state.evolve(equals_seen=False)

        data = bytearray()
        offsets: list[int] = []
        equals: int | None = None
        end = len(self._source)

        while self._pos < len(self._source):
            ch = self._source[self._pos]
            result = step(state, ch)
            if result.error is not None:
                raise self._error(result.error, self._pos)
            if result.state.equals_seen and not state.equals_seen:
                equals = len(data)
            state = result.state
            self._states.append(state)
            if result.boundary:
                end = self._pos
                self._pos += 1
                break
            for byte in result.output:
                data.append(byte)
                offsets.append(self._pos)
            self._pos += 1

        self._state = state
        self._tokens.append(Token(bytes(data), start, end, equals, tuple(offsets)))


def tokenize(line: str | bytes, state: TokenizeState | None = None, final: bool = False) -> TokenizeResult:
    """Convenience function: tokenize one line and return the result."""
    return Lexer(line, state).tokenize(final)


_NAMED_ESCAPES: dict[int, str] = {
    0x07: "a",
    0x08: "b",
    0x1B: "e",
    0x0C: "f",
    0x0A: "n",
    0x0D: "r",
    0x09: "t",
    0x0B: "v",
}

_BACKSLASHED = frozenset(b" \\'\"")


def escape_word(word: str | bytes) -> str:
    """Escape a decoded word so that tokenizing the result gives it back."""
    data = encode_source(word)
    if not data:
        return "''"

    out: list[str] = []
    i = 0
    while i < len(data):
        ch = data[i]
        if i == 0 and ch == _HASH:
            out.append("\\x23")
        elif i == 0 and ch == _SLASH:
            # a literal leading slash would restart the walk at the root
            out.append("\\x2f")
        elif ch in _BACKSLASHED:
            out.append("\\" + chr(ch))
        elif ch in _NAMED_ESCAPES:
            out.append("\\" + _NAMED_ESCAPES[ch])
        elif ch < 0x20 or ch == 0x7F:
            out.append(f"\\x{ch:02x}")
        elif ch < 0x80:
            out.append(chr(ch))
        else:
            # keep valid UTF-8 sequences readable, hex-escape stray bytes
            length = _utf8_length(data, i)
            if length:
                out.append(data[i : i + length].decode("utf-8"))
                i += length
                continue
            out.append(f"\\x{ch:02x}")
        i += 1
    return "".join(out)


def _utf8_length(data: bytes, i: int) -> int:
    """Length of the valid UTF-8 sequence starting at data[i], or 0."""
    for length in (2, 3, 4):
        try:
            data[i : i + length].decode("utf-8")
        except UnicodeDecodeError:
            continue
        return length
    return 0
