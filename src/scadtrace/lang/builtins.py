"""Builtin functions of the scene language.

Builtins register themselves in :data:`FUNCTIONS` with the
:func:`builtin` decorator. Each receives the running evaluator (for the
random generator and host assets) and a dict of bound arguments. Trigonometric
functions take and return degrees, as in OpenSCAD.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable

import numpy as np

from scadtrace.errors import EvalError
from scadtrace.lang.values import (
    UNDEF,
    FunctionRef,
    RangeValue,
    format_value,
    is_number,
    is_vector,
    to_color,
    to_int,
    to_number,
    type_name,
)
from scadtrace.scene.model import (
    Asset,
    CheckerTexture,
    ImageTexture,
    PerlinTexture,
)

if TYPE_CHECKING:
    from scadtrace.lang.evaluator import Evaluator


@dataclass(frozen=True)
class BuiltinFunction:
    """A registered builtin.

    Attributes:
        name: Name used in source.
        params: Parameter names for positional binding; None for variadic
            builtins, which receive ``{"args": [...]}``.
        fn: Implementation, called as ``fn(evaluator, bound)``.
    """

    name: str
    params: tuple[str, ...] | None
    fn: Callable[["Evaluator", dict[str, Any]], Any]


FUNCTIONS: dict[str, BuiltinFunction] = {}


def builtin(name: str, *params: str, variadic: bool = False):
    """Register a builtin function under ``name``."""

    def register(fn):
        FUNCTIONS[name] = BuiltinFunction(name, None if variadic else params, fn)
        return fn

    return register


def bind_arguments(
    callee: str,
    names: tuple[str, ...],
    positional: list[Any],
    named: dict[str, Any],
) -> dict[str, Any]:
    """Bind positional arguments by order and named ones by name.

    Named arguments starting with ``$`` (``$fn`` and friends) are accepted and
    dropped.

    Raises:
        EvalError: ``arity`` for too many positional or unknown named arguments.
    """
    if len(positional) > len(names):
        raise EvalError(
            "arity",
            f"{callee}() takes at most {len(names)} positional arguments, got {len(positional)}",
            callee,
        )
    bound = dict(zip(names, positional))
    for key, value in named.items():
        if key.startswith("$"):
            continue
        if key not in names:
            raise EvalError("arity", f"{callee}() got an unknown argument '{key}'", callee)
        bound[key] = value
    return bound


def _num(bound: dict[str, Any], key: str, callee: str) -> float:
    if key not in bound or bound[key] is UNDEF:
        raise EvalError("arity", f"{callee}() missing required argument '{key}'", callee)
    return to_number(bound[key], f"{callee}() argument '{key}'", callee)


def _safe(fn: Callable[..., float], *args: float) -> float:
    try:
        return float(fn(*args))
    except (ValueError, OverflowError):
        return math.nan


# =============================================================================
# Arithmetic and trigonometry
# =============================================================================


def _unary_math(name: str, fn: Callable[[float], float]) -> None:
    @builtin(name, "x")
    def _impl(ev, bound):
        return _safe(fn, _num(bound, "x", name))


_unary_math("abs", abs)
_unary_math("sign", lambda x: float((x > 0) - (x < 0)))
_unary_math("sin", lambda x: math.sin(math.radians(x)))
_unary_math("cos", lambda x: math.cos(math.radians(x)))
_unary_math("tan", lambda x: math.tan(math.radians(x)))
_unary_math("asin", lambda x: math.degrees(math.asin(x)))
_unary_math("acos", lambda x: math.degrees(math.acos(x)))
_unary_math("atan", lambda x: math.degrees(math.atan(x)))
_unary_math("floor", math.floor)
_unary_math("ceil", math.ceil)
_unary_math("round", lambda x: math.copysign(math.floor(abs(x) + 0.5), x))
_unary_math("exp", math.exp)
_unary_math("sqrt", math.sqrt)
_unary_math("ln", math.log)


@builtin("atan2", "y", "x")
def _atan2(ev, bound):
    return math.degrees(math.atan2(_num(bound, "y", "atan2"), _num(bound, "x", "atan2")))


@builtin("pow", "base", "exponent")
def _pow(ev, bound):
    return _safe(math.pow, _num(bound, "base", "pow"), _num(bound, "exponent", "pow"))


@builtin("log", "a", "b")
def _log(ev, bound):
    # log(x) is base 10; log(b, x) is base b.
    if bound.get("b", UNDEF) is UNDEF:
        return _safe(math.log10, _num(bound, "a", "log"))
    return _safe(math.log, _num(bound, "b", "log"), _num(bound, "a", "log"))


def _min_max(name: str, pick: Callable[..., float]) -> None:
    @builtin(name, variadic=True)
    def _impl(ev, bound):
        args = bound["args"]
        if len(args) == 1 and is_vector(args[0]):
            args = list(args[0])
        if not args:
            raise EvalError("arity", f"{name}() requires at least one value", name)
        return pick(to_number(a, f"{name}() argument", name) for a in args)


_min_max("min", min)
_min_max("max", max)


# =============================================================================
# Vectors, strings and lists
# =============================================================================


def _numeric_vector(value: Any, callee: str) -> np.ndarray:
    if not is_vector(value) or not all(is_number(v) for v in value):
        raise EvalError(
            "type_error", f"{callee}() expects a numeric vector, got {type_name(value)}", callee
        )
    return np.array(value, dtype=np.float64)


@builtin("norm", "v")
def _norm(ev, bound):
    return float(np.linalg.norm(_numeric_vector(bound.get("v", UNDEF), "norm")))


@builtin("cross", "a", "b")
def _cross(ev, bound):
    a = _numeric_vector(bound.get("a", UNDEF), "cross")
    b = _numeric_vector(bound.get("b", UNDEF), "cross")
    if len(a) == len(b) == 2:
        return float(a[0] * b[1] - a[1] * b[0])
    if len(a) != 3 or len(b) != 3:
        raise EvalError("type_error", "cross() expects two 2- or 3-vectors", "cross")
    return tuple(float(c) for c in np.cross(a, b))


@builtin("len", "v")
def _len(ev, bound):
    value = bound.get("v", UNDEF)
    if isinstance(value, (tuple, str)):
        return float(len(value))
    raise EvalError(
        "type_error", f"len() expects a vector or string, got {type_name(value)}", "len"
    )


@builtin("concat", variadic=True)
def _concat(ev, bound):
    result: list[Any] = []
    for arg in bound["args"]:
        if is_vector(arg):
            result.extend(arg)
        else:
            result.append(arg)
    return tuple(result)


@builtin("str", variadic=True)
def _str(ev, bound):
    return "".join(format_value(arg, quote_strings=False) for arg in bound["args"])


@builtin("chr", variadic=True)
def _chr(ev, bound):
    codes: list[Any] = []
    for arg in bound["args"]:
        codes.extend(arg if is_vector(arg) else [arg])
    points = [to_int(code, "chr() code point", "chr") for code in codes]
    for point in points:
        if not 0 < point < 0x110000:
            raise EvalError("type_error", f"chr() code point {point} is out of range", "chr")
    return "".join(chr(point) for point in points)


@builtin("ord", "s")
def _ord(ev, bound):
    value = bound.get("s", UNDEF)
    if not isinstance(value, str) or len(value) != 1:
        raise EvalError("type_error", "ord() expects a single-character string", "ord")
    return float(ord(value))


@builtin("rands", "min_value", "max_value", "value_count", "seed_value")
def _rands(ev, bound):
    low = _num(bound, "min_value", "rands")
    high = _num(bound, "max_value", "rands")
    count = to_int(bound.get("value_count", UNDEF), "rands() value_count", "rands")
    if low > high:
        low, high = high, low
    seed = bound.get("seed_value", UNDEF)
    if seed is UNDEF:
        rng = ev.rng
    else:
        rng = np.random.default_rng(to_int(seed, "rands() seed_value", "rands") % 2**32)
    return tuple(float(x) for x in rng.uniform(low, high, size=max(count, 0)))


# =============================================================================
# Type predicates
# =============================================================================


def _predicate(name: str, test: Callable[[Any], bool]) -> None:
    @builtin(name, "x")
    def _impl(ev, bound):
        return test(bound.get("x", UNDEF))


_predicate("is_undef", lambda v: v is UNDEF)
_predicate("is_bool", lambda v: isinstance(v, bool))
_predicate("is_num", lambda v: is_number(v) and not math.isnan(v))
_predicate("is_string", lambda v: isinstance(v, str))
_predicate("is_list", lambda v: is_vector(v))
_predicate("is_function", lambda v: isinstance(v, FunctionRef))
_predicate("is_range", lambda v: isinstance(v, RangeValue))


# =============================================================================
# Textures
# =============================================================================


@builtin("checker", "scale", "even", "odd")
def _checker(ev, bound):
    scale = to_number(bound.get("scale", 1.0), "checker() scale", "checker")
    if scale <= 0.0:
        raise EvalError("type_error", "checker() scale must be positive", "checker")
    even = to_color(bound.get("even", (0.0, 0.0, 0.0)), "checker() even", "checker")
    odd = to_color(bound.get("odd", (1.0, 1.0, 1.0)), "checker() odd", "checker")
    return CheckerTexture(scale, even, odd)


@builtin("perlin_turbulence", "scale", "turbulence_depth")
def _perlin_turbulence(ev, bound):
    scale = to_number(bound.get("scale", 1.0), "perlin_turbulence() scale", "perlin_turbulence")
    depth = to_int(
        bound.get("turbulence_depth", 7.0),
        "perlin_turbulence() turbulence_depth",
        "perlin_turbulence",
    )
    if depth < 1:
        raise EvalError(
            "type_error", "perlin_turbulence() turbulence_depth must be >= 1", "perlin_turbulence"
        )
    seed = int(ev.rng.integers(0, 2**31 - 1))
    return PerlinTexture(scale, depth, seed)


@builtin("image", "filename")
def _image(ev, bound):
    filename = bound.get("filename", UNDEF)
    if not isinstance(filename, str):
        raise EvalError("type_error", "image() filename must be a string", "image")
    asset = ev.assets.get(filename)
    if asset is None:
        raise EvalError("missing_asset", f'failed to get image "{filename}"', "image")
    if isinstance(asset, ImageTexture):
        return asset
    if isinstance(asset, Asset):
        try:
            return asset.to_texture(filename)
        except ValueError as e:
            raise EvalError("missing_asset", str(e), "image") from e
    raise EvalError("missing_asset", f'asset "{filename}" is not an image', "image")
