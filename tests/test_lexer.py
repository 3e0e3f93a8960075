"""Unit tests for the scene language tokenizer.

Tests cover:
- Token kinds for numbers, strings, identifiers, keywords and operators
- Source positions (line, column, offset)
- Comments and whitespace
- include/use path tokens
- Lexical errors
"""

import pytest

from scadtrace.errors import ScadSyntaxError
from scadtrace.lang.lexer import tokenize


def kinds(source):
    return [t.kind for t in tokenize(source)]


class TestTokenKinds:
    """Tests for the kinds and values of tokens."""

    def test_assignment(self):
        assert kinds("a = 1;") == ["IDENT", "=", "NUMBER", ";", "EOF"]

    def test_empty_source_is_just_eof(self):
        tokens = tokenize("")
        assert len(tokens) == 1
        assert tokens[0].kind == "EOF"

    def test_numbers(self):
        tokens = tokenize("1 2.5 .5 1e3 2.5E-2 3.")
        values = [t.value for t in tokens if t.kind == "NUMBER"]
        assert values == [1.0, 2.5, 0.5, 1000.0, 0.025, 3.0]

    def test_string_escapes(self):
        tokens = tokenize(r'"a\"b\n\x41"')
        assert tokens[0].kind == "STRING"
        assert tokens[0].value == 'a"b\nA'

    def test_keywords_and_identifiers(self):
        assert kinds("module foo function true false undef $fn") == [
            "module",
            "IDENT",
            "function",
            "true",
            "false",
            "undef",
            "IDENT",
            "EOF",
        ]

    def test_longest_operator_wins(self):
        assert kinds("a <= b == c && !d") == [
            "IDENT",
            "<=",
            "IDENT",
            "==",
            "IDENT",
            "&&",
            "!",
            "IDENT",
            "EOF",
        ]

    def test_include_and_use_paths(self):
        tokens = tokenize("include <ray_trace.scad>\nuse < lib/util.scad >")
        assert tokens[0].kind == "INCLUDE"
        assert tokens[0].value == "ray_trace.scad"
        assert tokens[1].kind == "USE"
        assert tokens[1].value == "lib/util.scad"


class TestTriviaAndPositions:
    """Tests for comments, whitespace and source positions."""

    def test_comments_are_skipped(self):
        source = "// line comment\na /* block\ncomment */ = 1;"
        assert kinds(source) == ["IDENT", "=", "NUMBER", ";", "EOF"]

    def test_positions(self):
        tokens = tokenize("a = 1;\n  sphere(r=2);")
        sphere = tokens[4]
        assert sphere.value == "sphere"
        assert (sphere.line, sphere.column) == (2, 3)
        assert sphere.offset == 9
        assert sphere.position.line == 2


class TestLexicalErrors:
    """Tests for malformed input."""

    def test_unterminated_string(self):
        with pytest.raises(ScadSyntaxError) as excinfo:
            tokenize('a = "abc;')
        assert excinfo.value.line == 1
        assert excinfo.value.column == 5

    def test_unterminated_block_comment(self):
        with pytest.raises(ScadSyntaxError):
            tokenize("a = 1; /* never closed")

    def test_unexpected_character(self):
        with pytest.raises(ScadSyntaxError):
            tokenize("a = 1 @ 2;")

    def test_malformed_exponent(self):
        with pytest.raises(ScadSyntaxError):
            tokenize("a = 1e;")
