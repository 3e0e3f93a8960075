"""Tokenizer for the scene description language.

Turns source text into a flat list of :class:`Token` objects terminated by an
``EOF`` token. Comments and whitespace are dropped. ``include <file>`` and
``use <file>`` are lexed into a single ``INCLUDE``/``USE`` token carrying the
file name, because the angle-bracket path is not an expression.

Example:
    >>> from scadtrace.lang.lexer import tokenize
    >>> [t.kind for t in tokenize("a = 1;")]
    ['IDENT', '=', 'NUMBER', ';', 'EOF']
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from scadtrace.errors import Position, ScadSyntaxError

KEYWORDS = {
    "true",
    "false",
    "undef",
    "function",
    "module",
    "for",
    "if",
    "else",
    "let",
    "each",
    "assert",
}

# Longest operators first so that "<=" wins over "<".
OPERATORS = (
    "==",
    "!=",
    "<=",
    ">=",
    "&&",
    "||",
    "=",
    "<",
    ">",
    "!",
    "+",
    "-",
    "*",
    "/",
    "%",
    "^",
    "?",
    ":",
    "(",
    ")",
    "[",
    "]",
    "{",
    "}",
    ",",
    ";",
    ".",
    "#",
)

_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    '"': '"',
    "\\": "\\",
}


@dataclass(frozen=True)
class Token:
    """A lexical unit.

    Attributes:
        kind: ``NUMBER``, ``STRING``, ``IDENT``, ``INCLUDE``, ``USE``,
            ``EOF``, a keyword, or the operator text itself.
        value: The literal value (float for numbers, decoded str for strings,
            name for identifiers, file name for include/use).
        line: 1-based line of the first character.
        column: 1-based column of the first character.
        offset: 0-based character offset into the source.
    """

    kind: str
    value: Any
    line: int
    column: int
    offset: int

    @property
    def position(self) -> Position:
        return Position(self.line, self.column)


class _Scanner:
    def __init__(self, source: str) -> None:
        self.source = source
        self.pos = 0
        self.line = 1
        self.column = 1

    def peek(self, ahead: int = 0) -> str:
        index = self.pos + ahead
        return self.source[index] if index < len(self.source) else ""

    def advance(self, count: int = 1) -> str:
        text = self.source[self.pos : self.pos + count]
        for ch in text:
            if ch == "\n":
                self.line += 1
                self.column = 1
            else:
                self.column += 1
        self.pos += count
        return text

    def error(self, message: str) -> ScadSyntaxError:
        return ScadSyntaxError(message, self.line, self.column)


def _skip_trivia(scanner: _Scanner) -> None:
    while True:
        ch = scanner.peek()
        if ch and ch in " \t\r\n\f\v":
            scanner.advance()
        elif ch == "/" and scanner.peek(1) == "/":
            while scanner.peek() and scanner.peek() != "\n":
                scanner.advance()
        elif ch == "/" and scanner.peek(1) == "*":
            start_line, start_column = scanner.line, scanner.column
            scanner.advance(2)
            while not (scanner.peek() == "*" and scanner.peek(1) == "/"):
                if not scanner.peek():
                    raise ScadSyntaxError("unterminated block comment", start_line, start_column)
                scanner.advance()
            scanner.advance(2)
        else:
            return


def _read_number(scanner: _Scanner) -> float:
    start = scanner.pos
    while scanner.peek().isdigit():
        scanner.advance()
    if scanner.peek() == "." and scanner.peek(1).isdigit():
        scanner.advance()
        while scanner.peek().isdigit():
            scanner.advance()
    elif scanner.peek() == "." and start != scanner.pos and not scanner.peek(1).isalpha():
        # "1." is a valid number
        scanner.advance()
    if scanner.peek() in ("e", "E"):
        sign = 1 if scanner.peek(1) in ("+", "-") else 0
        if scanner.peek(1 + sign).isdigit():
            scanner.advance(1 + sign)
            while scanner.peek().isdigit():
                scanner.advance()
        else:
            raise scanner.error("malformed exponent in number literal")
    return float(scanner.source[start : scanner.pos])


def _read_string(scanner: _Scanner) -> str:
    start_line, start_column = scanner.line, scanner.column
    scanner.advance()  # opening quote
    chars: list[str] = []
    while True:
        ch = scanner.peek()
        if not ch:
            raise ScadSyntaxError("unterminated string literal", start_line, start_column)
        if ch == '"':
            scanner.advance()
            return "".join(chars)
        if ch == "\\":
            escape = scanner.peek(1)
            if escape in _ESCAPES:
                scanner.advance(2)
                chars.append(_ESCAPES[escape])
            elif escape in ("x", "u", "U"):
                width = {"x": 2, "u": 4, "U": 6}[escape]
                digits = scanner.source[scanner.pos + 2 : scanner.pos + 2 + width]
                try:
                    code = int(digits, 16)
                except ValueError:
                    raise scanner.error(f"invalid escape sequence \\{escape}{digits}") from None
                scanner.advance(2 + width)
                chars.append(chr(code))
            else:
                raise scanner.error(f"invalid escape sequence \\{escape}")
        else:
            chars.append(scanner.advance())


def _read_path(scanner: _Scanner, keyword: str) -> str:
    _skip_trivia(scanner)
    if scanner.peek() != "<":
        raise scanner.error(f"expected '<' after {keyword}")
    scanner.advance()
    start = scanner.pos
    while scanner.peek() != ">":
        if not scanner.peek() or scanner.peek() == "\n":
            raise scanner.error(f"unterminated {keyword} path")
        scanner.advance()
    path = scanner.source[start : scanner.pos]
    scanner.advance()
    return path.strip()


def tokenize(source: str) -> list[Token]:
    """Split source text into tokens.

    Args:
        source: Scene description source text.

    Returns:
        The token list, always ending with an ``EOF`` token.

    Raises:
        ScadSyntaxError: On an unexpected character, unterminated string or
            comment, or malformed number.
    """
    scanner = _Scanner(source)
    tokens: list[Token] = []

    while True:
        _skip_trivia(scanner)
        line, column, offset = scanner.line, scanner.column, scanner.pos
        ch = scanner.peek()

        if not ch:
            tokens.append(Token("EOF", None, line, column, offset))
            return tokens

        if ch.isdigit() or (ch == "." and scanner.peek(1).isdigit()):
            tokens.append(Token("NUMBER", _read_number(scanner), line, column, offset))
        elif ch == '"':
            tokens.append(Token("STRING", _read_string(scanner), line, column, offset))
        elif ch.isalpha() or ch in "_$":
            start = scanner.pos
            scanner.advance()
            while scanner.peek().isalnum() or scanner.peek() == "_":
                scanner.advance()
            word = source[start : scanner.pos]
            if word in ("include", "use"):
                path = _read_path(scanner, word)
                tokens.append(Token(word.upper(), path, line, column, offset))
            elif word in KEYWORDS:
                tokens.append(Token(word, word, line, column, offset))
            else:
                tokens.append(Token("IDENT", word, line, column, offset))
        else:
            for op in OPERATORS:
                if source.startswith(op, scanner.pos):
                    scanner.advance(len(op))
                    tokens.append(Token(op, op, line, column, offset))
                    break
            else:
                raise scanner.error(f"unexpected character {ch!r}")
