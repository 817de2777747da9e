"""Test error message formatting."""

from devicesh.errors import (
    AboveRootError,
    AmbiguousError,
    ExecError,
    LexError,
    NotFoundError,
    ResolveError,
)
from devicesh.tokens import Token


class TestLexError:
    def test_format_with_line(self):
        err = LexError("bad", 2, b"abcd")
        assert err.format(3) == "syntax error at 'c': bad (line 3 column 3)\n  | abcd\n  |   ^"

    def test_format_without_line(self):
        err = LexError("bad", 0, b"abcd")
        assert err.format().startswith("syntax error at 'a': bad (column 1)")

    def test_end_of_line(self):
        err = LexError("incomplete input: unterminated double quote", 4, b'a "b')
        assert "syntax error at end of line" in err.format()
        assert err.column == 5

    def test_column_counts_characters(self):
        source = "é\\q".encode()
        err = LexError("invalid escape sequence '\\q'", 3, source)
        assert err.column == 3

    def test_str_is_formatted(self):
        assert str(LexError("bad", 0, b"x")).startswith("syntax error")

    def test_position_within_continued_line(self):
        err = LexError("invalid escape sequence '\\q'", 9, b'set "a\nb\\q"')
        assert err.column == 3
        assert err.format(2) == (
            "syntax error at 'q': invalid escape sequence '\\q' (line 2 column 3)\n"
            '  | b\\q"\n'
            "  |   ^"
        )


class TestResolveError:
    def test_not_found(self):
        assert str(NotFoundError("frob")) == "bad command 'frob': not found"

    def test_above_root(self):
        assert str(AboveRootError("..")) == "bad command '..': already at the top level"

    def test_custom_reason(self):
        assert str(ResolveError("x", reason="broken")) == "bad command 'x': broken"

    def test_ambiguous_lists_candidates(self):
        err = AmbiguousError("fo", None, ["foo", "foobar"])
        assert str(err) == "bad command 'fo': ambiguous, could be one of: foo, foobar"
        assert err.candidates == ["foo", "foobar"]

    def test_ambiguous_without_candidates(self):
        assert str(AmbiguousError("fo")) == "bad command 'fo': ambiguous"

    def test_format_with_source(self):
        token = Token(b"frob", 4, 8, None, (4, 5, 6, 7))
        err = NotFoundError("frob", token)
        assert err.format(2, b"set frob") == (
            "bad command 'frob': not found (line 2 column 5)\n  | set frob\n  |     ^^^^"
        )

    def test_format_on_continued_line(self):
        source = b'set "a\nb" frob'
        token = Token(b"frob", 10, 14, None, (10, 11, 12, 13))
        assert NotFoundError("frob", token).format(2, source) == (
            "bad command 'frob': not found (line 2 column 4)\n  | b\" frob\n  |    ^^^^"
        )

    def test_unlocated_token_has_no_column(self):
        err = NotFoundError("frob", Token.from_word("frob"))
        assert err.column() is None
        assert err.format(1, b"frob") == "bad command 'frob': not found"

    def test_is_resolve_error(self):
        assert isinstance(NotFoundError("x"), ResolveError)
        assert isinstance(AmbiguousError("x"), ResolveError)


class TestExecError:
    def test_message_only(self):
        assert ExecError("command exited normally with code 3").format() == (
            "command exited normally with code 3"
        )

    def test_appends_stderr(self):
        err = ExecError("probe failed", b"usage: set key=value\n")
        assert err.format() == "probe failed\nusage: set key=value"

    def test_str_is_message(self):
        assert str(ExecError("boom", b"detail")) == "boom"
