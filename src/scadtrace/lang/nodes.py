"""Abstract syntax tree for the scene description language.

Every node is a frozen dataclass, so trees are immutable after parsing and
compare structurally: parsing the same source twice yields equal trees.
Each node records the :class:`~scadtrace.errors.Position` of its first token.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from scadtrace.errors import Position

_NOWHERE = Position(0, 0)


# =============================================================================
# Expressions
# =============================================================================


@dataclass(frozen=True)
class Expr:
    """Base class for expression nodes."""


@dataclass(frozen=True)
class NumberLit(Expr):
    value: float
    pos: Position = field(default=_NOWHERE, compare=False)


@dataclass(frozen=True)
class BoolLit(Expr):
    value: bool
    pos: Position = field(default=_NOWHERE, compare=False)


@dataclass(frozen=True)
class StringLit(Expr):
    value: str
    pos: Position = field(default=_NOWHERE, compare=False)


@dataclass(frozen=True)
class UndefLit(Expr):
    pos: Position = field(default=_NOWHERE, compare=False)


@dataclass(frozen=True)
class VectorLit(Expr):
    items: tuple[Expr, ...]
    pos: Position = field(default=_NOWHERE, compare=False)


@dataclass(frozen=True)
class RangeLit(Expr):
    """``[start:end]`` or ``[start:step:end]``; ``step`` is None when omitted."""

    start: Expr
    end: Expr
    step: Expr | None = None
    pos: Position = field(default=_NOWHERE, compare=False)


@dataclass(frozen=True)
class Identifier(Expr):
    name: str
    pos: Position = field(default=_NOWHERE, compare=False)


@dataclass(frozen=True)
class UnaryOp(Expr):
    op: str
    operand: Expr
    pos: Position = field(default=_NOWHERE, compare=False)


@dataclass(frozen=True)
class BinaryOp(Expr):
    op: str
    left: Expr
    right: Expr
    pos: Position = field(default=_NOWHERE, compare=False)


@dataclass(frozen=True)
class Ternary(Expr):
    condition: Expr
    if_true: Expr
    if_false: Expr
    pos: Position = field(default=_NOWHERE, compare=False)


@dataclass(frozen=True)
class Index(Expr):
    target: Expr
    index: Expr
    pos: Position = field(default=_NOWHERE, compare=False)


@dataclass(frozen=True)
class Member(Expr):
    """Dot access such as ``v.x``."""

    target: Expr
    name: str
    pos: Position = field(default=_NOWHERE, compare=False)


@dataclass(frozen=True)
class Argument:
    """A call argument; ``name`` is None for positional arguments."""

    value: Expr
    name: str | None = None
    pos: Position = field(default=_NOWHERE, compare=False)


@dataclass(frozen=True)
class Call(Expr):
    callee: Expr
    args: tuple[Argument, ...]
    pos: Position = field(default=_NOWHERE, compare=False)


# =============================================================================
# Statements
# =============================================================================


@dataclass(frozen=True)
class Parameter:
    """A declared parameter of a user function or module."""

    name: str
    default: Expr | None = None
    pos: Position = field(default=_NOWHERE, compare=False)


@dataclass(frozen=True)
class Statement:
    """Base class for statement nodes."""


@dataclass(frozen=True)
class Empty(Statement):
    pos: Position = field(default=_NOWHERE, compare=False)


@dataclass(frozen=True)
class Assignment(Statement):
    name: str
    value: Expr
    pos: Position = field(default=_NOWHERE, compare=False)


@dataclass(frozen=True)
class ModuleCall(Statement):
    """``name(args) child;`` or ``name(args) { children }``.

    Attributes:
        braced: True when the children were written inside ``{ }``, which
            opens a new variable scope.
    """

    name: str
    args: tuple[Argument, ...]
    children: tuple[Statement, ...] = ()
    braced: bool = False
    pos: Position = field(default=_NOWHERE, compare=False)


@dataclass(frozen=True)
class Block(Statement):
    """A bare ``{ ... }`` at statement level."""

    body: tuple[Statement, ...]
    pos: Position = field(default=_NOWHERE, compare=False)


@dataclass(frozen=True)
class FunctionDef(Statement):
    name: str
    params: tuple[Parameter, ...]
    body: Expr
    pos: Position = field(default=_NOWHERE, compare=False)


@dataclass(frozen=True)
class ModuleDef(Statement):
    name: str
    params: tuple[Parameter, ...]
    body: tuple[Statement, ...]
    pos: Position = field(default=_NOWHERE, compare=False)


@dataclass(frozen=True)
class ForLoop(Statement):
    """``for (a = ..., b = ...) body``; multiple bindings nest left to right."""

    bindings: tuple[Argument, ...]
    body: tuple[Statement, ...]
    pos: Position = field(default=_NOWHERE, compare=False)


@dataclass(frozen=True)
class IfElse(Statement):
    condition: Expr
    then_body: tuple[Statement, ...]
    else_body: tuple[Statement, ...] = ()
    pos: Position = field(default=_NOWHERE, compare=False)


@dataclass(frozen=True)
class Include(Statement):
    """``include <file>`` (``use_only`` False) or ``use <file>`` (True)."""

    filename: str
    use_only: bool = False
    pos: Position = field(default=_NOWHERE, compare=False)


@dataclass(frozen=True)
class Program:
    statements: tuple[Statement, ...]
