"""Runtime values of the scene language.

Values use a closed set of Python representations:

==============  ==========================================
Language type   Python representation
==============  ==========================================
undefined       :data:`UNDEF`
boolean         ``bool``
number          ``float`` (always float, never int)
string          ``str``
vector          ``tuple`` of values (heterogeneous)
range           :class:`RangeValue`
function        :class:`FunctionRef`
texture         a texture dataclass from :mod:`scadtrace.scene.model`
==============  ==========================================

Helpers in this module convert values for builtin handlers and raise
``EvalError`` with kind ``"type_error"`` on invalid input instead of coercing.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Iterator

from scadtrace.errors import EvalError
from scadtrace.scene.model import Texture


class _Undefined:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "undef"

    def __bool__(self) -> bool:
        return False

    def __reduce__(self):
        return (_Undefined, ())


UNDEF = _Undefined()


@dataclass(frozen=True)
class RangeValue:
    """An inclusive numeric range ``[start : step : end]``."""

    start: float
    step: float
    end: float

    def count(self) -> int:
        """Number of elements; 0 for a zero step or one pointing away from the end."""
        if self.step == 0 or (self.end - self.start) * self.step < 0:
            return 0
        return int(math.floor((self.end - self.start) / self.step + 1e-9)) + 1

    def is_finite(self) -> bool:
        return all(math.isfinite(x) for x in (self.start, self.step, self.end))

    def __iter__(self) -> Iterator[float]:
        for i in range(self.count()):
            yield self.start + i * self.step


@dataclass(frozen=True)
class FunctionRef:
    """A reference to a user-defined function.

    Attributes:
        name: Function name, used in diagnostics.
        params: Declared parameters (``nodes.Parameter``).
        body: Body expression (``nodes.Expr``).
        env_index: Index of the defining environment frame.
    """

    name: str
    params: tuple
    body: Any
    env_index: int


def is_number(value: Any) -> bool:
    return isinstance(value, float)


def is_vector(value: Any) -> bool:
    return isinstance(value, tuple)


def type_name(value: Any) -> str:
    if value is UNDEF:
        return "undef"
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, tuple):
        return "vector"
    if isinstance(value, RangeValue):
        return "range"
    if isinstance(value, FunctionRef):
        return "function"
    if isinstance(value, Texture):
        return "texture"
    return type(value).__name__


def truthy(value: Any) -> bool:
    """OpenSCAD truthiness: undef, false, 0, "" and [] are false."""
    if isinstance(value, RangeValue):
        return True
    if isinstance(value, (FunctionRef, Texture)):
        return True
    return bool(value)


def values_equal(a: Any, b: Any) -> bool:
    """Structural equality; values of different types are never equal."""
    if type_name(a) != type_name(b):
        return False
    if isinstance(a, tuple):
        return len(a) == len(b) and all(values_equal(x, y) for x, y in zip(a, b))
    return a == b


def to_number(value: Any, what: str = "value", context: str | None = None) -> float:
    if not is_number(value):
        raise EvalError("type_error", f"{what} must be a number, got {type_name(value)}", context)
    return value


def to_vector(
    value: Any, size: int, what: str = "value", context: str | None = None
) -> tuple[float, ...]:
    """Convert a numeric vector of exactly ``size`` elements."""
    if not is_vector(value) or len(value) != size or not all(is_number(v) for v in value):
        raise EvalError(
            "type_error",
            f"{what} must be a vector of {size} numbers, got {format_value(value)}",
            context,
        )
    return tuple(value)


def to_vec3(
    value: Any, what: str = "value", context: str | None = None
) -> tuple[float, float, float]:
    """Convert a 3-vector; 2-vectors are extended with z = 0."""
    if is_vector(value) and len(value) == 2 and all(is_number(v) for v in value):
        return (value[0], value[1], 0.0)
    x, y, z = to_vector(value, 3, what, context)
    return (x, y, z)


def to_color(
    value: Any, what: str = "color", context: str | None = None
) -> tuple[float, float, float]:
    """Convert a number (gray) or an RGB/RGBA vector to an RGB triple."""
    if is_number(value):
        return (value, value, value)
    if is_vector(value) and len(value) == 4:
        value = value[:3]
    r, g, b = to_vector(value, 3, what, context)
    return (r, g, b)


def to_int(value: Any, what: str = "value", context: str | None = None) -> int:
    number = to_number(value, what, context)
    if not math.isfinite(number):
        raise EvalError("type_error", f"{what} must be finite, got {format_value(value)}", context)
    return int(number)


def require_finite(value, what: str = "value", context: str | None = None):
    """Return a number or numeric vector unchanged if every component is finite."""
    components = value if is_vector(value) else (value,)
    if not all(math.isfinite(c) for c in components):
        raise EvalError("type_error", f"{what} must be finite, got {format_value(value)}", context)
    return value


def format_number(value: float) -> str:
    if math.isnan(value):
        return "nan"
    if math.isinf(value):
        return "inf" if value > 0 else "-inf"
    if value == int(value) and abs(value) < 1e15:
        return str(int(value))
    text = f"{value:.6f}".rstrip("0").rstrip(".")
    return "0" if text in ("-0", "") else text


def format_value(value: Any, quote_strings: bool = True) -> str:
    """Format a value the way ``echo`` prints it."""
    if value is UNDEF:
        return "undef"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return format_number(value)
    if isinstance(value, str):
        return f'"{value}"' if quote_strings else value
    if isinstance(value, tuple):
        return "[" + ", ".join(format_value(item) for item in value) + "]"
    if isinstance(value, RangeValue):
        return (
            f"[{format_number(value.start)} : {format_number(value.step)} : "
            f"{format_number(value.end)}]"
        )
    if isinstance(value, FunctionRef):
        return f"function {value.name}"
    if isinstance(value, Texture):
        return f"texture({type(value).__name__})"
    return repr(value)
