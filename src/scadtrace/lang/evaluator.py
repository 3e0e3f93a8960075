"""Tree-walking evaluator that turns a parsed program into a Scene.

The evaluator threads two things through nested module invocations:

- an environment index into an :class:`EnvironmentArena` (variables, user
  functions and user modules), and
- a :class:`TransformContext` holding the accumulated object-to-world matrix
  and the active material. Transform and material modules evaluate their
  children with a modified copy; siblings never observe the change.

Primitive modules emit shapes using the current context. ``camera(...)``
records the camera; when several are evaluated the last one wins.

Any error aborts the evaluation with an :class:`~scadtrace.errors.EvalError`;
no partial scene is returned.

Example:
    >>> from scadtrace.lang.evaluator import load_scene
    >>> scene = load_scene("for (a = [0:2]) translate([a, 0, 0]) sphere(r=1);")
    >>> [s.world_center for s in scene.shapes]
    [(0.0, 0.0, 0.0), (1.0, 0.0, 0.0), (2.0, 0.0, 0.0)]
"""

from __future__ import annotations

import logging
import math
import sys
from contextlib import contextmanager
from dataclasses import dataclass, replace
from typing import Any, Callable, Iterator, Mapping

import numpy as np

from scadtrace.errors import EvalError, Position
from scadtrace.lang import nodes
from scadtrace.lang.builtins import FUNCTIONS, bind_arguments
from scadtrace.lang.environment import EnvironmentArena
from scadtrace.lang.parser import parse
from scadtrace.lang.values import (
    UNDEF,
    FunctionRef,
    RangeValue,
    format_value,
    is_number,
    is_vector,
    require_finite,
    to_color,
    to_int,
    to_number,
    to_vec3,
    truthy,
    type_name,
    values_equal,
)
from scadtrace.scene import transform
from scadtrace.scene.model import (
    DEFAULT_CAMERA,
    DEFAULT_MATERIAL,
    Asset,
    BoxShape,
    Camera,
    CylinderShape,
    Dielectric,
    DiffuseLight,
    ImageTexture,
    Lambertian,
    Material,
    Message,
    MessageLevel,
    Metal,
    QuadShape,
    Scene,
    Shape,
    SolidTexture,
    SphereShape,
    Texture,
)

logger = logging.getLogger(__name__)

# Nested user function/module calls allowed before aborting.
MAX_RECURSION_DEPTH = 100

# Python frames needed per nested user call, with headroom.
_PYTHON_FRAMES_PER_CALL = 40

# Elements a single range may produce.
MAX_RANGE_ELEMENTS = 1_000_000

IGNORED_INCLUDES = ("ray_trace.scad",)

UNSUPPORTED_MODULES = {
    "union",
    "difference",
    "intersection",
    "hull",
    "minkowski",
    "render",
    "children",
    "square",
    "circle",
    "polygon",
    "text",
    "offset",
    "linear_extrude",
    "rotate_extrude",
    "projection",
    "import",
    "surface",
    "polyhedron",
    "mirror",
    "resize",
}

_WHITE = (1.0, 1.0, 1.0)
_MEMBER_INDEX = {"x": 0, "y": 1, "z": 2}

IncludeResolver = Callable[[str], "str | None"]


@dataclass(frozen=True)
class TransformContext:
    """Accumulated transform and active material; replaced, never mutated."""

    matrix: np.ndarray
    material: Material | None = None

    def then(self, m: np.ndarray) -> TransformContext:
        return replace(self, matrix=self.matrix @ m)

    def with_material(self, material: Material) -> TransformContext:
        return replace(self, material=material)

    @property
    def active_material(self) -> Material:
        return self.material if self.material is not None else DEFAULT_MATERIAL


@dataclass(frozen=True)
class UserModule:
    name: str
    params: tuple[nodes.Parameter, ...]
    body: tuple[nodes.Statement, ...]
    env_index: int


def _with_position(error: EvalError, pos: Position, context: str | None) -> EvalError:
    if error.position is not None or pos.line == 0:
        return error
    return EvalError(error.kind, error.message, error.context or context, pos)


@contextmanager
def _recursion_headroom(frames: int) -> Iterator[None]:
    previous = sys.getrecursionlimit()
    if previous < frames:
        sys.setrecursionlimit(frames)
    try:
        yield
    finally:
        sys.setrecursionlimit(previous)


class Evaluator:
    """Evaluates one program into one :class:`Scene`.

    Args:
        assets: Host-supplied images keyed by filename, as :class:`Asset` or
            ready :class:`ImageTexture` values.
        rng: Random generator for ``rands()`` and Perlin tables. Pass a
            seeded generator for reproducible scenes.
        include_resolver: Callable returning the source of an included file,
            or None when the file does not exist.
    """

    def __init__(
        self,
        *,
        assets: Mapping[str, Asset | ImageTexture] | None = None,
        rng: np.random.Generator | None = None,
        include_resolver: IncludeResolver | None = None,
    ) -> None:
        self.arena = EnvironmentArena()
        self.rng = rng if rng is not None else np.random.default_rng()
        self.assets = dict(assets or {})
        self.include_resolver = include_resolver
        self.shapes: list[Shape] = []
        self.camera: Camera | None = None
        self.messages: list[Message] = []
        self._depth = 0
        self._context: list[str] = []
        self._include_stack: list[str] = []

        root = self.arena.root
        for name, value in (("$fn", 0.0), ("$fs", 2.0), ("$fa", 12.0), ("$t", 0.0)):
            self.arena.assign(root, name, value)

        self._modules: dict[str, Callable] = {
            "translate": self._module_translate,
            "rotate": self._module_rotate,
            "scale": self._module_scale,
            "multmatrix": self._module_multmatrix,
            "color": self._module_color,
            "lambertian": self._module_lambertian,
            "metal": self._module_metal,
            "dielectric": self._module_dielectric,
            "diffuse_light": self._module_diffuse_light,
            "sphere": self._module_sphere,
            "cube": self._module_cube,
            "cylinder": self._module_cylinder,
            "quad": self._module_quad,
            "camera": self._module_camera,
            "echo": self._module_echo,
        }

    # -------------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------------

    def evaluate(self, program: nodes.Program) -> Scene:
        """Run every top-level statement and return the finished scene."""
        ctx = TransformContext(transform.identity())
        with _recursion_headroom(MAX_RECURSION_DEPTH * _PYTHON_FRAMES_PER_CALL):
            try:
                self._run_block(program.statements, self.arena.root, ctx)
            except RecursionError:
                raise EvalError(
                    "recursion_depth", "maximum recursion depth exceeded", self._current_context
                ) from None

        camera_declared = self.camera is not None
        if not camera_declared:
            self._message(MessageLevel.WARNING, "no camera declared; using the default camera")
        return Scene(
            shapes=tuple(self.shapes),
            camera=self.camera if camera_declared else DEFAULT_CAMERA,
            camera_declared=camera_declared,
            messages=tuple(self.messages),
        )

    @property
    def _current_context(self) -> str | None:
        return self._context[-1] if self._context else None

    def _message(self, level: MessageLevel, text: str, pos: Position | None = None) -> None:
        line = pos.line if pos is not None and pos.line else None
        column = pos.column if pos is not None and pos.line else None
        self.messages.append(Message(level, text, line, column))

    # -------------------------------------------------------------------------
    # Statements
    # -------------------------------------------------------------------------

    def _run_block(
        self, statements: tuple[nodes.Statement, ...], env: int, ctx: TransformContext
    ) -> None:
        # Definitions are visible to the whole block, regardless of order.
        for statement in statements:
            if isinstance(statement, (nodes.FunctionDef, nodes.ModuleDef)):
                self._define(statement, env)
        for statement in statements:
            self._exec(statement, env, ctx)

    def _define(self, statement: nodes.FunctionDef | nodes.ModuleDef, env: int) -> None:
        if isinstance(statement, nodes.FunctionDef):
            ref = FunctionRef(statement.name, statement.params, statement.body, env)
            self.arena.define_function(env, statement.name, ref)
        else:
            module = UserModule(statement.name, statement.params, statement.body, env)
            self.arena.define_module(env, statement.name, module)

    def _exec(self, statement: nodes.Statement, env: int, ctx: TransformContext) -> None:
        try:
            if isinstance(statement, nodes.Assignment):
                self.arena.assign(env, statement.name, self.eval_expr(statement.value, env))
            elif isinstance(statement, nodes.ModuleCall):
                self._call_module(statement, env, ctx)
            elif isinstance(statement, nodes.ForLoop):
                self._run_for(statement.bindings, statement.body, env, ctx, statement.pos)
            elif isinstance(statement, nodes.IfElse):
                if truthy(self.eval_expr(statement.condition, env)):
                    self._run_block(statement.then_body, env, ctx)
                else:
                    self._run_block(statement.else_body, env, ctx)
            elif isinstance(statement, nodes.Block):
                self._run_block(statement.body, env, ctx)
            elif isinstance(statement, nodes.Include):
                self._include(statement, env, ctx)
            elif isinstance(statement, (nodes.Empty, nodes.FunctionDef, nodes.ModuleDef)):
                pass
            else:
                raise EvalError("unsupported", f"unsupported statement {type(statement).__name__}")
        except EvalError as e:
            raise _with_position(e, statement.pos, self._current_context) from None

    def _run_for(
        self,
        bindings: tuple[nodes.Argument, ...],
        body: tuple[nodes.Statement, ...],
        env: int,
        ctx: TransformContext,
        pos: Position,
    ) -> None:
        first, rest = bindings[0], bindings[1:]
        for value in self._iterate(self.eval_expr(first.value, env)):
            child = self.arena.push(env)
            self.arena.assign(child, first.name, value)
            if rest:
                self._run_for(rest, body, child, ctx, pos)
            else:
                self._run_block(body, child, ctx)

    def _iterate(self, value: Any) -> Iterator[Any]:
        if isinstance(value, RangeValue):
            return iter(value)
        if is_vector(value):
            return iter(value)
        if isinstance(value, str):
            return iter(list(value))
        if is_number(value) or isinstance(value, bool):
            return iter((value,))
        if value is UNDEF:
            return iter(())
        raise EvalError("type_error", f"cannot iterate over {type_name(value)}", "for")

    def _include(self, statement: nodes.Include, env: int, ctx: TransformContext) -> None:
        filename = statement.filename
        if filename.endswith(IGNORED_INCLUDES):
            return
        source = self.include_resolver(filename) if self.include_resolver is not None else None
        if source is None:
            raise EvalError("missing_include", f'cannot resolve include "{filename}"', "include")
        if filename in self._include_stack:
            raise EvalError("missing_include", f'recursive include of "{filename}"', "include")

        program = parse(source)
        self._include_stack.append(filename)
        try:
            if statement.use_only:
                for child in program.statements:
                    if isinstance(child, (nodes.FunctionDef, nodes.ModuleDef)):
                        self._define(child, env)
            else:
                self._run_block(program.statements, env, ctx)
        finally:
            self._include_stack.pop()

    # -------------------------------------------------------------------------
    # Module invocation
    # -------------------------------------------------------------------------

    def _evaluate_arguments(
        self, args: tuple[nodes.Argument, ...], env: int
    ) -> tuple[list[Any], dict[str, Any]]:
        positional: list[Any] = []
        named: dict[str, Any] = {}
        for arg in args:
            value = self.eval_expr(arg.value, env)
            if arg.name is None:
                positional.append(value)
            else:
                named[arg.name] = value
        return positional, named

    def _call_module(self, call: nodes.ModuleCall, env: int, ctx: TransformContext) -> None:
        user_module = self.arena.find_module(env, call.name)
        if user_module is None and call.name not in self._modules:
            if call.name in UNSUPPORTED_MODULES:
                raise EvalError("unsupported", f"unsupported construct: {call.name}()", call.name)
            raise EvalError("undefined_module", f"unknown module '{call.name}'", call.name)

        positional, named = self._evaluate_arguments(call.args, env)
        self._context.append(call.name)
        try:
            if user_module is not None:
                self._call_user_module(user_module, call, positional, named, ctx)
            else:
                self._modules[call.name](call, env, ctx, positional, named)
        finally:
            self._context.pop()

    def _run_children(self, call: nodes.ModuleCall, env: int, ctx: TransformContext) -> None:
        # Unbraced children get their own frame too, so an assignment never leaks.
        child_env = self.arena.push(env)
        self._run_block(call.children, child_env, ctx)

    def _call_user_module(
        self,
        module: UserModule,
        call: nodes.ModuleCall,
        positional: list[Any],
        named: dict[str, Any],
        ctx: TransformContext,
    ) -> None:
        if call.children:
            raise EvalError(
                "unsupported", "unsupported construct: children passed to a user module", call.name
            )
        frame = self._bind_user_parameters(
            module.name, module.params, module.env_index, positional, named
        )
        self._enter_call(module.name)
        try:
            self._run_block(module.body, frame, ctx)
        finally:
            self._depth -= 1

    def _bind_user_parameters(
        self,
        name: str,
        params: tuple[nodes.Parameter, ...],
        parent: int,
        positional: list[Any],
        named: dict[str, Any],
    ) -> int:
        names = tuple(p.name for p in params)
        bound = bind_arguments(name, names, positional, named)
        frame = self.arena.push(parent)
        for key, value in named.items():
            if key.startswith("$"):
                self.arena.assign(frame, key, value)
        for param in params:
            if param.name in bound:
                value = bound[param.name]
            elif param.default is not None:
                value = self.eval_expr(param.default, frame)
            else:
                value = UNDEF
            self.arena.assign(frame, param.name, value)
        return frame

    def _enter_call(self, name: str) -> None:
        self._depth += 1
        if self._depth > MAX_RECURSION_DEPTH:
            self._depth -= 1
            raise EvalError(
                "recursion_depth",
                f"recursion depth exceeded {MAX_RECURSION_DEPTH} nested calls",
                name,
            )

    def _bind(
        self,
        call: nodes.ModuleCall,
        names: tuple[str, ...],
        positional: list[Any],
        named: dict[str, Any],
    ) -> dict[str, Any]:
        return bind_arguments(call.name, names, positional, named)

    def _no_children(self, call: nodes.ModuleCall) -> None:
        if call.children:
            self._message(
                MessageLevel.WARNING,
                f"{call.name}() does not take children; ignoring them",
                call.pos,
            )

    # Transform modules ------------------------------------------------------

    def _module_translate(self, call, env, ctx, positional, named) -> None:
        args = self._bind(call, ("v",), positional, named)
        offset = to_vec3(args.get("v", (0.0, 0.0, 0.0)), "translate() v", "translate")
        self._run_children(call, env, ctx.then(transform.translation(offset)))

    def _module_rotate(self, call, env, ctx, positional, named) -> None:
        args = self._bind(call, ("a", "v"), positional, named)
        angle = args.get("a", UNDEF)
        axis = args.get("v", UNDEF)
        if angle is UNDEF:
            m = transform.identity()
        elif is_vector(angle):
            angles = to_vec3(angle, "rotate() a", "rotate")
            m = transform.rotation_xyz(require_finite(angles, "rotate() a", "rotate"))
        else:
            degrees = to_number(angle, "rotate() a", "rotate")
            require_finite(degrees, "rotate() a", "rotate")
            if axis is UNDEF:
                m = transform.rotation_z(degrees)
            else:
                m = transform.rotation_axis(degrees, to_vec3(axis, "rotate() v", "rotate"))
        self._run_children(call, env, ctx.then(m))

    def _module_scale(self, call, env, ctx, positional, named) -> None:
        args = self._bind(call, ("v",), positional, named)
        value = args.get("v", (1.0, 1.0, 1.0))
        if is_number(value):
            factors = (value, value, value)
        elif is_vector(value) and len(value) == 2:
            factors = (*to_vec3(value, "scale() v", "scale")[:2], 1.0)
        else:
            factors = to_vec3(value, "scale() v", "scale")
        self._run_children(call, env, ctx.then(transform.scaling(factors)))

    def _module_multmatrix(self, call, env, ctx, positional, named) -> None:
        args = self._bind(call, ("m",), positional, named)
        rows = args.get("m", UNDEF)
        if not is_vector(rows) or len(rows) not in (3, 4):
            raise EvalError(
                "type_error", "multmatrix() m must be a 3x4 or 4x4 matrix", "multmatrix"
            )
        m = transform.identity()
        for i, row in enumerate(rows[:3]):
            values = row if is_vector(row) else ()
            if len(values) != 4 or not all(is_number(v) for v in values):
                raise EvalError("type_error", "multmatrix() rows must have 4 numbers", "multmatrix")
            m[i, :] = values
        self._run_children(call, env, ctx.then(m))

    # Material modules -------------------------------------------------------

    def _module_color(self, call, env, ctx, positional, named) -> None:
        args = self._bind(call, ("c", "alpha"), positional, named)
        if "c" not in args:
            raise EvalError("arity", "color() missing required argument 'c'", "color")
        color = to_color(args["c"], "color() c", "color")
        self._run_children(call, env, ctx.with_material(Lambertian(SolidTexture(color))))

    def _module_lambertian(self, call, env, ctx, positional, named) -> None:
        args = self._bind(call, ("c", "t"), positional, named)
        if args.get("c", UNDEF) is not UNDEF:
            texture: Texture = SolidTexture(to_color(args["c"], "lambertian() c", "lambertian"))
        elif args.get("t", UNDEF) is not UNDEF:
            texture = args["t"]
            if not isinstance(texture, Texture):
                raise EvalError(
                    "type_error",
                    f"lambertian() t must be a texture, got {type_name(texture)}",
                    "lambertian",
                )
        else:
            raise EvalError("arity", "lambertian() requires 'c' or 't'", "lambertian")
        self._run_children(call, env, ctx.with_material(Lambertian(texture)))

    def _module_metal(self, call, env, ctx, positional, named) -> None:
        args = self._bind(call, ("c", "fuzz"), positional, named)
        albedo = to_color(args.get("c", _WHITE), "metal() c", "metal")
        fuzz = to_number(args.get("fuzz", 0.2), "metal() fuzz", "metal")
        material = Metal(albedo, min(max(fuzz, 0.0), 1.0))
        self._run_children(call, env, ctx.with_material(material))

    def _module_dielectric(self, call, env, ctx, positional, named) -> None:
        args = self._bind(call, ("n",), positional, named)
        if args.get("n", UNDEF) is UNDEF:
            raise EvalError("arity", "dielectric() missing required argument 'n'", "dielectric")
        n = to_number(args["n"], "dielectric() n", "dielectric")
        if n <= 0.0:
            raise EvalError("type_error", "dielectric() n must be positive", "dielectric")
        self._run_children(call, env, ctx.with_material(Dielectric(n)))

    def _module_diffuse_light(self, call, env, ctx, positional, named) -> None:
        args = self._bind(call, ("c",), positional, named)
        emission = to_color(args.get("c", _WHITE), "diffuse_light() c", "diffuse_light")
        self._run_children(call, env, ctx.with_material(DiffuseLight(emission)))

    # Primitive modules ------------------------------------------------------

    def _emit(self, shape: Shape) -> None:
        if not transform.is_invertible(shape.transform):
            self._message(MessageLevel.WARNING, "skipping shape with a degenerate transform")
            return
        self.shapes.append(shape)

    def _module_sphere(self, call, env, ctx, positional, named) -> None:
        args = self._bind(call, ("r", "d"), positional, named)
        if args.get("d", UNDEF) is not UNDEF:
            radius = to_number(args["d"], "sphere() d", "sphere") / 2.0
        else:
            radius = to_number(args.get("r", 1.0), "sphere() r", "sphere")
        self._no_children(call)
        if radius <= 0.0:
            self._message(MessageLevel.WARNING, "sphere() radius must be positive", call.pos)
            return
        self._emit(SphereShape(ctx.active_material, ctx.matrix, radius=radius))

    def _module_cube(self, call, env, ctx, positional, named) -> None:
        args = self._bind(call, ("size", "center"), positional, named)
        size = args.get("size", 1.0)
        if is_number(size):
            extents = (size, size, size)
        else:
            extents = to_vec3(size, "cube() size", "cube")
        self._no_children(call)
        if min(extents) <= 0.0:
            self._message(MessageLevel.WARNING, "cube() size must be positive", call.pos)
            return
        if truthy(args.get("center", False)):
            minimum = tuple(-e / 2.0 for e in extents)
            maximum = tuple(e / 2.0 for e in extents)
        else:
            minimum = (0.0, 0.0, 0.0)
            maximum = extents
        self._emit(BoxShape(ctx.active_material, ctx.matrix, minimum=minimum, maximum=maximum))

    def _module_cylinder(self, call, env, ctx, positional, named) -> None:
        names = ("h", "r1", "r2", "center", "r", "d", "d1", "d2")
        args = self._bind(call, names, positional, named)

        def number(key: str) -> float | None:
            value = args.get(key, UNDEF)
            return None if value is UNDEF else to_number(value, f"cylinder() {key}", "cylinder")

        height = number("h")
        height = 1.0 if height is None else height
        radius = number("r")
        diameter = number("d")
        if diameter is not None:
            radius = diameter / 2.0
        radius = 1.0 if radius is None else radius

        r1 = number("r1")
        r2 = number("r2")
        d1 = number("d1")
        d2 = number("d2")
        bottom = d1 / 2.0 if d1 is not None else (r1 if r1 is not None else radius)
        top = d2 / 2.0 if d2 is not None else (r2 if r2 is not None else radius)

        self._no_children(call)
        if height <= 0.0 or bottom < 0.0 or top < 0.0 or (bottom == 0.0 and top == 0.0):
            self._message(MessageLevel.WARNING, "cylinder() has no volume", call.pos)
            return
        base_z = -height / 2.0 if truthy(args.get("center", False)) else 0.0
        self._emit(
            CylinderShape(
                ctx.active_material,
                ctx.matrix,
                height=height,
                radius_bottom=bottom,
                radius_top=top,
                base_z=base_z,
            )
        )

    def _module_quad(self, call, env, ctx, positional, named) -> None:
        args = self._bind(call, ("q", "u", "v"), positional, named)
        for key in ("q", "u", "v"):
            if args.get(key, UNDEF) is UNDEF:
                raise EvalError("arity", f"quad() missing required argument '{key}'", "quad")
        corner = transform.transform_point(ctx.matrix, to_vec3(args["q"], "quad() q", "quad"))
        u = transform.transform_vector(ctx.matrix, to_vec3(args["u"], "quad() u", "quad"))
        v = transform.transform_vector(ctx.matrix, to_vec3(args["v"], "quad() v", "quad"))
        self._no_children(call)
        if np.linalg.norm(np.cross(u, v)) < 1e-12:
            self._message(MessageLevel.WARNING, "quad() edges are parallel", call.pos)
            return
        self.shapes.append(QuadShape(ctx.active_material, ctx.matrix, corner=corner, u=u, v=v))

    # Camera and diagnostics -------------------------------------------------

    def _module_camera(self, call, env, ctx, positional, named) -> None:
        names = (
            "image_width",
            "image_height",
            "aspect_ratio",
            "samples_per_pixel",
            "max_depth",
            "vertical_fov",
            "look_from",
            "look_at",
            "up",
            "defocus_angle",
            "focus_distance",
            "background",
        )
        args = self._bind(call, names, positional, named)
        self._no_children(call)

        def given(key: str) -> bool:
            return args.get(key, UNDEF) is not UNDEF

        def integer(key: str, minimum: int) -> int:
            value = to_int(args[key], f"camera() {key}", "camera")
            if value < minimum:
                raise EvalError("type_error", f"camera() {key} must be >= {minimum}", "camera")
            return value

        defaults = Camera()
        aspect = 1.0
        if given("aspect_ratio"):
            aspect = to_number(args["aspect_ratio"], "camera() aspect_ratio", "camera")
        if not (math.isfinite(aspect) and aspect > 0.0):
            raise EvalError(
                "type_error", "camera() aspect_ratio must be positive and finite", "camera"
            )

        if given("image_height"):
            height = integer("image_height", 1)
            if given("image_width"):
                width = integer("image_width", 1)
            elif given("aspect_ratio"):
                width = max(1, int(round(aspect * height)))
            else:
                width = height
        else:
            width = integer("image_width", 1) if given("image_width") else defaults.image_width
            height = max(1, int(width / aspect))

        def vec(key: str, default):
            return to_vec3(args[key], f"camera() {key}", "camera") if given(key) else default

        def num(key: str, default: float) -> float:
            return to_number(args[key], f"camera() {key}", "camera") if given(key) else default

        camera = Camera(
            image_width=width,
            image_height=height,
            samples_per_pixel=(
                integer("samples_per_pixel", 1)
                if given("samples_per_pixel")
                else defaults.samples_per_pixel
            ),
            max_depth=integer("max_depth", 0) if given("max_depth") else defaults.max_depth,
            vertical_fov=num("vertical_fov", defaults.vertical_fov),
            look_from=vec("look_from", defaults.look_from),
            look_at=vec("look_at", defaults.look_at),
            up=vec("up", defaults.up),
            defocus_angle=num("defocus_angle", defaults.defocus_angle),
            focus_distance=num("focus_distance", defaults.focus_distance),
            background=to_color(args["background"], "camera() background", "camera")
            if given("background")
            else defaults.background,
        )
        if np.allclose(camera.look_from, camera.look_at):
            raise EvalError("type_error", "camera() look_from and look_at must differ", "camera")
        if self.camera is not None:
            logger.debug("camera declared again at %s; last declaration wins", call.pos)
        self.camera = camera

    def _module_echo(self, call, env, ctx, positional, named) -> None:
        parts = [format_value(value) for value in positional]
        parts += [f"{key} = {format_value(value)}" for key, value in named.items()]
        text = ", ".join(parts)
        logger.debug("ECHO: %s", text)
        self._message(MessageLevel.ECHO, text, call.pos)
        self._run_children(call, env, ctx)

    # -------------------------------------------------------------------------
    # Expressions
    # -------------------------------------------------------------------------

    def eval_expr(self, expr: nodes.Expr, env: int) -> Any:
        handler = getattr(self, "_eval_" + type(expr).__name__, None)
        if handler is None:
            raise EvalError("unsupported", f"unsupported expression {type(expr).__name__}")
        return handler(expr, env)

    def _eval_NumberLit(self, expr: nodes.NumberLit, env: int) -> float:
        return float(expr.value)

    def _eval_BoolLit(self, expr: nodes.BoolLit, env: int) -> bool:
        return expr.value

    def _eval_StringLit(self, expr: nodes.StringLit, env: int) -> str:
        return expr.value

    def _eval_UndefLit(self, expr: nodes.UndefLit, env: int) -> Any:
        return UNDEF

    def _eval_VectorLit(self, expr: nodes.VectorLit, env: int) -> tuple:
        return tuple(self.eval_expr(item, env) for item in expr.items)

    def _eval_RangeLit(self, expr: nodes.RangeLit, env: int) -> RangeValue:
        start = to_number(self.eval_expr(expr.start, env), "range start")
        end = to_number(self.eval_expr(expr.end, env), "range end")
        step = 1.0 if expr.step is None else to_number(self.eval_expr(expr.step, env), "range step")
        value = RangeValue(start, step, end)
        if not value.is_finite():
            raise EvalError(
                "invalid_range", f"range bounds must be finite, got {format_value(value)}"
            )
        if value.count() > MAX_RANGE_ELEMENTS:
            raise EvalError(
                "invalid_range",
                f"range {format_value(value)} has more than {MAX_RANGE_ELEMENTS} elements",
            )
        return value

    def _eval_Identifier(self, expr: nodes.Identifier, env: int) -> Any:
        value = self.arena.lookup(env, expr.name, None)
        if value is not None:
            return value
        if expr.name.startswith("$"):
            return UNDEF
        ref = self.arena.find_function(env, expr.name)
        if ref is not None:
            return ref
        raise EvalError(
            "undefined_identifier",
            f"unknown identifier '{expr.name}'",
            self._current_context,
            expr.pos,
        )

    def _eval_Member(self, expr: nodes.Member, env: int) -> Any:
        target = self.eval_expr(expr.target, env)
        if expr.name not in _MEMBER_INDEX:
            raise EvalError(
                "type_error", f"unknown member '.{expr.name}'", self._current_context, expr.pos
            )
        if not is_vector(target):
            raise EvalError(
                "type_error",
                f"cannot take .{expr.name} of {type_name(target)}",
                self._current_context,
                expr.pos,
            )
        index = _MEMBER_INDEX[expr.name]
        return target[index] if index < len(target) else UNDEF

    def _eval_Index(self, expr: nodes.Index, env: int) -> Any:
        target = self.eval_expr(expr.target, env)
        index = self.eval_expr(expr.index, env)
        if not isinstance(target, (tuple, str)):
            raise EvalError(
                "type_error", f"cannot index {type_name(target)}", self._current_context, expr.pos
            )
        number = to_number(index, "index", self._current_context)
        if math.isfinite(number) and 0 <= math.floor(number) < len(target):
            return target[math.floor(number)]
        self._message(
            MessageLevel.WARNING,
            f"index {format_value(number)} out of bounds for length {len(target)}",
            expr.pos,
        )
        return UNDEF

    def _eval_Ternary(self, expr: nodes.Ternary, env: int) -> Any:
        if truthy(self.eval_expr(expr.condition, env)):
            return self.eval_expr(expr.if_true, env)
        return self.eval_expr(expr.if_false, env)

    def _eval_UnaryOp(self, expr: nodes.UnaryOp, env: int) -> Any:
        operand = self.eval_expr(expr.operand, env)
        if expr.op == "!":
            return not truthy(operand)
        try:
            if expr.op == "-":
                return _elementwise1(operand, lambda x: -x)
            return _elementwise1(operand, lambda x: x)
        except TypeError:
            raise EvalError(
                "type_error",
                f"bad operand type for unary {expr.op}: {type_name(operand)}",
                self._current_context,
                expr.pos,
            ) from None

    def _eval_BinaryOp(self, expr: nodes.BinaryOp, env: int) -> Any:
        op = expr.op
        if op == "&&":
            if not truthy(self.eval_expr(expr.left, env)):
                return False
            return truthy(self.eval_expr(expr.right, env))
        if op == "||":
            return truthy(self.eval_expr(expr.left, env)) or truthy(self.eval_expr(expr.right, env))

        left = self.eval_expr(expr.left, env)
        right = self.eval_expr(expr.right, env)
        try:
            return _binary(op, left, right)
        except ZeroDivisionError:
            raise EvalError(
                "division_by_zero", "division by zero", self._current_context, expr.pos
            ) from None
        except TypeError:
            raise EvalError(
                "type_error",
                f"unsupported operand types for {op}: {type_name(left)} and {type_name(right)}",
                self._current_context,
                expr.pos,
            ) from None

    def _eval_Call(self, expr: nodes.Call, env: int) -> Any:
        positional, named = self._evaluate_arguments(expr.args, env)

        if isinstance(expr.callee, nodes.Identifier):
            name = expr.callee.name
            ref = self.arena.find_function(env, name)
            if ref is None:
                variable = self.arena.lookup(env, name, None)
                if isinstance(variable, FunctionRef):
                    ref = variable
            if ref is None and name in FUNCTIONS:
                return self._call_builtin(name, positional, named, expr.pos)
            if ref is None:
                if name in self._modules or name in UNSUPPORTED_MODULES:
                    raise EvalError(
                        "type_error",
                        f"module '{name}' cannot be used as a function",
                        name,
                        expr.pos,
                    )
                raise EvalError("undefined_function", f"unknown function '{name}'", name, expr.pos)
        else:
            ref = self.eval_expr(expr.callee, env)
            if not isinstance(ref, FunctionRef):
                raise EvalError(
                    "type_error",
                    f"{type_name(ref)} is not callable",
                    self._current_context,
                    expr.pos,
                )

        return self.call_function(ref, positional, named, expr.pos)

    def _call_builtin(
        self, name: str, positional: list[Any], named: dict[str, Any], pos: Position
    ) -> Any:
        builtin = FUNCTIONS[name]
        try:
            if builtin.params is None:
                bound = {"args": list(positional) + list(named.values())}
            else:
                bound = bind_arguments(name, builtin.params, positional, named)
            return builtin.fn(self, bound)
        except EvalError as e:
            raise _with_position(e, pos, name) from None

    def call_function(
        self,
        ref: FunctionRef,
        positional: list[Any],
        named: dict[str, Any],
        pos: Position | None = None,
    ) -> Any:
        """Invoke a user function in a fresh frame whose parent is its definition scope."""
        self._context.append(ref.name)
        try:
            frame = self._bind_user_parameters(
                ref.name, ref.params, ref.env_index, positional, named
            )
            self._enter_call(ref.name)
            try:
                return self.eval_expr(ref.body, frame)
            finally:
                self._depth -= 1
        except EvalError as e:
            raise _with_position(e, pos or Position(0, 0), ref.name) from None
        finally:
            self._context.pop()


# =============================================================================
# Operators
# =============================================================================


def _elementwise1(value: Any, fn: Callable[[float], float]) -> Any:
    if is_number(value):
        return fn(value)
    if is_vector(value):
        return tuple(_elementwise1(item, fn) for item in value)
    raise TypeError


def _elementwise2(a: Any, b: Any, fn: Callable[[float, float], float]) -> Any:
    if is_number(a) and is_number(b):
        return fn(a, b)
    if is_vector(a) and is_vector(b):
        return tuple(_elementwise2(x, y, fn) for x, y in zip(a, b))
    raise TypeError


def _broadcast(vector: Any, scalar: float, fn: Callable[[float, float], float]) -> Any:
    if is_number(vector):
        return fn(vector, scalar)
    if is_vector(vector):
        return tuple(_broadcast(item, scalar, fn) for item in vector)
    raise TypeError


def _divide(a: float, b: float) -> float:
    if b == 0.0:
        raise ZeroDivisionError
    return a / b


def _modulo(a: float, b: float) -> float:
    if b == 0.0:
        raise ZeroDivisionError
    return math.fmod(a, b)


def _power(a: float, b: float) -> float:
    if a == 0.0 and b < 0.0:
        return math.inf
    try:
        return float(math.pow(a, b))
    except OverflowError:
        # A negative base overflows to -inf only for odd exponents.
        return -math.inf if a < 0.0 and b % 2.0 == 1.0 else math.inf
    except ValueError:
        return math.nan


def _binary(op: str, left: Any, right: Any) -> Any:
    if op == "==":
        return values_equal(left, right)
    if op == "!=":
        return not values_equal(left, right)

    if op in ("<", "<=", ">", ">="):
        if not (
            (is_number(left) and is_number(right))
            or (isinstance(left, str) and isinstance(right, str))
        ):
            raise TypeError
        if op == "<":
            return left < right
        if op == "<=":
            return left <= right
        if op == ">":
            return left > right
        return left >= right

    if op == "+":
        return _elementwise2(left, right, lambda a, b: a + b)
    if op == "-":
        return _elementwise2(left, right, lambda a, b: a - b)

    if op == "*":
        if is_number(left) and is_vector(right):
            return _broadcast(right, left, lambda a, b: a * b)
        if is_vector(left) and is_number(right):
            return _broadcast(left, right, lambda a, b: a * b)
        if is_vector(left) and is_vector(right):
            if (
                len(left) == len(right)
                and all(is_number(v) for v in left)
                and all(is_number(v) for v in right)
            ):
                return float(sum(a * b for a, b in zip(left, right)))
            raise TypeError
        return _elementwise2(left, right, lambda a, b: a * b)

    if op == "/":
        if is_vector(left) and is_number(right):
            return _broadcast(left, right, _divide)
        if is_number(left) and is_vector(right):
            return _broadcast(right, left, lambda a, b: _divide(b, a))
        if is_number(left) and is_number(right):
            return _divide(left, right)
        raise TypeError

    if op == "%":
        if is_number(left) and is_number(right):
            return _modulo(left, right)
        raise TypeError

    if op == "^":
        if is_number(left) and is_number(right):
            return _power(left, right)
        raise TypeError

    raise TypeError


def evaluate(
    program: nodes.Program,
    *,
    assets: Mapping[str, Asset | ImageTexture] | None = None,
    rng: np.random.Generator | None = None,
    seed: int | None = None,
    include_resolver: IncludeResolver | None = None,
) -> Scene:
    """Evaluate a parsed program into a :class:`Scene`.

    Args:
        program: The parsed program.
        assets: Host-supplied images keyed by filename.
        rng: Random generator; takes precedence over ``seed``.
        seed: Seed for a fresh generator when ``rng`` is not given.
        include_resolver: Source lookup for ``include``/``use`` directives.

    Raises:
        EvalError: On any evaluation failure.
    """
    if rng is None and seed is not None:
        rng = np.random.default_rng(seed)
    evaluator = Evaluator(assets=assets, rng=rng, include_resolver=include_resolver)
    return evaluator.evaluate(program)


def load_scene(source: str, **kwargs: Any) -> Scene:
    """Parse and evaluate source text in one step.

    Raises:
        ScadSyntaxError: On malformed source.
        EvalError: On any evaluation failure.
    """
    return evaluate(parse(source), **kwargs)
