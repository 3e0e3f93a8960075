"""Exception hierarchy shared by the scene language and the renderer.

Parse and evaluation errors are fatal to a render: the caller receives the
diagnostic and no partial scene is ever produced. Degenerate geometry inside
kernels is never raised; it resolves to a miss or an absorbed ray.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Position:
    """A 1-based line/column location in scene source text."""

    line: int
    column: int

    def __str__(self) -> str:
        return f"{self.line}:{self.column}"


class ScadTraceError(Exception):
    """Base class for all scadtrace errors."""


class ScadSyntaxError(ScadTraceError):
    """Raised by the lexer or parser for malformed or unsupported source.

    Attributes:
        message: Human readable description.
        line: 1-based line of the offending token.
        column: 1-based column of the offending token.
    """

    def __init__(self, message: str, line: int, column: int) -> None:
        super().__init__(f"{line}:{column}: {message}")
        self.message = message
        self.line = line
        self.column = column

    @property
    def position(self) -> Position:
        return Position(self.line, self.column)


class EvalError(ScadTraceError):
    """Raised by the evaluator; aborts the whole scene.

    Attributes:
        kind: Machine readable category, e.g. ``"undefined_identifier"``,
            ``"arity"``, ``"type_error"``, ``"division_by_zero"``,
            ``"unsupported"``, ``"recursion_depth"``, ``"missing_asset"``,
            ``"invalid_range"``.
        message: Human readable description.
        context: Name of the module or function being evaluated, if any.
        position: Source position of the failing node, if known.
    """

    def __init__(
        self,
        kind: str,
        message: str,
        context: str | None = None,
        position: Position | None = None,
    ) -> None:
        where = f"{position}: " if position is not None else ""
        inside = f" (in {context})" if context else ""
        super().__init__(f"{where}{message}{inside}")
        self.kind = kind
        self.message = message
        self.context = context
        self.position = position


class RenderError(ScadTraceError):
    """Raised when a render cannot proceed or a render generation failed."""
