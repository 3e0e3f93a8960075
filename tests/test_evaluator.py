"""Unit tests for the scene evaluator.

Tests cover:
- Loops, transforms and emitted geometry
- Scoping of variables, functions and modules
- Expression semantics and builtin functions
- Materials, textures and assets
- Camera selection and diagnostics
- include/use resolution
- Evaluation errors
"""

import math

import numpy as np
import pytest

from scadtrace.errors import EvalError
from scadtrace.lang import load_scene
from scadtrace.scene.model import (
    DEFAULT_CAMERA,
    DEFAULT_MATERIAL,
    Asset,
    BoxShape,
    CheckerTexture,
    CylinderShape,
    Dielectric,
    DiffuseLight,
    ImageTexture,
    Lambertian,
    MessageLevel,
    Metal,
    PerlinTexture,
    QuadShape,
    SolidTexture,
    SphereShape,
)


def echoes(source, **kwargs):
    scene = load_scene(source, **kwargs)
    return [m.text for m in scene.messages if m.level is MessageLevel.ECHO]


def eval_error(source, **kwargs):
    with pytest.raises(EvalError) as excinfo:
        load_scene(source, **kwargs)
    return excinfo.value


class TestGeometry:
    """Tests for primitives, loops and transforms."""

    def test_loop_translate_spheres(self):
        scene = load_scene("for (a = [0:2]) translate([a, 0, 0]) sphere(r=1);")
        assert len(scene.shapes) == 3
        centers = [s.world_center for s in scene.shapes]
        assert centers == [(0.0, 0.0, 0.0), (1.0, 0.0, 0.0), (2.0, 0.0, 0.0)]
        assert all(isinstance(s, SphereShape) and s.radius == 1.0 for s in scene.shapes)

    def test_range_with_step_and_empty_ranges(self):
        assert len(load_scene("for (i = [0:2:5]) sphere();").shapes) == 3
        assert len(load_scene("for (i = [0:0:5]) sphere();").shapes) == 0
        assert len(load_scene("for (i = [3:0]) sphere();").shapes) == 0

    def test_nested_loop_variables(self):
        scene = load_scene("for (i = [0:1], j = [0:2]) translate([i, j, 0]) sphere();")
        assert len(scene.shapes) == 6

    def test_loop_over_vector(self):
        scene = load_scene("for (r = [1, 2, 5]) sphere(r=r);")
        assert [s.radius for s in scene.shapes] == [1.0, 2.0, 5.0]

    def test_sphere_diameter(self):
        assert load_scene("sphere(d=3);").shapes[0].radius == 1.5

    def test_cube_centered_and_not(self):
        corner, centered = load_scene("cube([1, 2, 3]); cube(2, center=true);").shapes
        assert isinstance(corner, BoxShape)
        assert corner.minimum == (0.0, 0.0, 0.0)
        assert corner.maximum == (1.0, 2.0, 3.0)
        assert centered.minimum == (-1.0, -1.0, -1.0)
        assert centered.maximum == (1.0, 1.0, 1.0)

    def test_cylinder_radii(self):
        cone, centered = load_scene(
            "cylinder(h=4, r1=2, r2=0); cylinder(h=2, d=3, center=true);"
        ).shapes
        assert isinstance(cone, CylinderShape)
        assert (cone.height, cone.radius_bottom, cone.radius_top) == (4.0, 2.0, 0.0)
        assert cone.base_z == 0.0
        assert centered.radius_bottom == centered.radius_top == 1.5
        assert centered.base_z == -1.0

    def test_quad_is_transformed_to_world_space(self):
        scene = load_scene("translate([0, 0, 5]) quad(q=[0, 0, 0], u=[1, 0, 0], v=[0, 2, 0]);")
        quad = scene.shapes[0]
        assert isinstance(quad, QuadShape)
        assert quad.corner == (0.0, 0.0, 5.0)
        assert quad.v == (0.0, 2.0, 0.0)

    def test_rotate_then_translate(self):
        scene = load_scene("rotate([0, 0, 90]) translate([1, 0, 0]) sphere();")
        center = scene.shapes[0].world_center
        assert center == pytest.approx((0.0, 1.0, 0.0), abs=1e-9)

    def test_rotate_about_axis(self):
        scene = load_scene("rotate(a=180, v=[1, 0, 0]) translate([0, 1, 0]) sphere();")
        assert scene.shapes[0].world_center == pytest.approx((0.0, -1.0, 0.0), abs=1e-9)

    def test_scale_and_multmatrix(self):
        scene = load_scene(
            "scale(2) translate([1, 0, 0]) sphere();"
            "multmatrix([[1, 0, 0, 3], [0, 1, 0, 0], [0, 0, 1, 0]]) sphere();"
        )
        assert scene.shapes[0].world_center == pytest.approx((2.0, 0.0, 0.0))
        assert scene.shapes[1].world_center == pytest.approx((3.0, 0.0, 0.0))
        assert np.allclose(scene.shapes[0].transform[:3, :3], 2.0 * np.identity(3))

    def test_transform_does_not_leak_to_siblings(self):
        scene = load_scene("translate([5, 0, 0]) sphere(); sphere();")
        assert scene.shapes[1].world_center == (0.0, 0.0, 0.0)

    def test_degenerate_shapes_are_skipped_with_warning(self):
        scene = load_scene("sphere(r=0); scale([1, 0, 1]) sphere();")
        assert scene.shapes == ()
        warnings = [m for m in scene.messages if m.level is MessageLevel.WARNING]
        assert len(warnings) >= 2


class TestScoping:
    """Tests for environments, hoisting and closures."""

    def test_braced_block_scope(self):
        scene = load_scene("a = 1; color([1, 0, 0]) { a = 2; sphere(r=a); } sphere(r=a);")
        assert [s.radius for s in scene.shapes] == [2.0, 1.0]

    def test_definitions_are_hoisted(self):
        scene = load_scene("ball(); module ball() sphere(r=sq(2)); function sq(x) = x * x;")
        assert scene.shapes[0].radius == 4.0

    def test_module_sees_defining_scope(self):
        scene = load_scene("module m() sphere(r=k); k = 3; m();")
        assert scene.shapes[0].radius == 3.0

    def test_module_parameters_and_defaults(self):
        scene = load_scene("module m(r, s=2) sphere(r=r * s); m(1); m(1, s=5);")
        assert [s.radius for s in scene.shapes] == [2.0, 5.0]

    def test_loop_variable_does_not_leak(self):
        error = eval_error("for (i = [0:1]) sphere(); echo(i);")
        assert error.kind == "undefined_identifier"

    def test_unbraced_child_assignment_does_not_leak(self):
        error = eval_error("translate([1, 0, 0]) x = 3; echo(x);")
        assert error.kind == "undefined_identifier"

    def test_special_variables_predefined(self):
        assert echoes("echo($fn, $fs, $fa, $t);") == ["0, 2, 12, 0"]

    def test_special_variable_arguments_ignored(self):
        assert len(load_scene("sphere(r=1, $fn=64);").shapes) == 1


class TestExpressions:
    """Tests for operators and builtin functions."""

    @pytest.mark.parametrize(
        "expr, expected",
        [
            ("1 + 2 * 3", "7"),
            ("2 ^ 10", "1024"),
            ("7 % 3", "1"),
            ("[1, 2, 3] * [4, 5, 6]", "32"),
            ("2 * [1, 2]", "[2, 4]"),
            ("[2, 4] / 2", "[1, 2]"),
            ("[1, 2, 3] + [1, 1]", "[2, 3]"),
            ("1 / 3", "0.333333"),
            ('"abc" < "abd"', "true"),
            ("[1, [2]] == [1, [2]]", "true"),
            ("!0 && [1]", "true"),
            ('"" || []', "false"),
            ("true ? 1 : 2", "1"),
            ("[1, 2, 3][1]", "2"),
            ("[4, 5, 6].z", "6"),
            ("0 ^ -1", "inf"),
            ("(-2) ^ 3", "-8"),
            ("(-2) ^ 0.5", "nan"),
            ("[1, 2][sqrt(-1)]", "undef"),
        ],
    )
    def test_operators(self, expr, expected):
        assert echoes(f"echo({expr});") == [expected]

    @pytest.mark.parametrize(
        "expr, expected",
        [
            ("sin(90)", "1"),
            ("atan2(1, 1)", "45"),
            ("sqrt(16)", "4"),
            ("max(3, 7, 5)", "7"),
            ("min([4, 2, 8])", "2"),
            ("norm([3, 4])", "5"),
            ("cross([1, 0, 0], [0, 1, 0])", "[0, 0, 1]"),
            ("len([1, 2, 3])", "3"),
            ("concat([1], [2, 3])", "[1, 2, 3]"),
            ('str("a", 1)', '"a1"'),
            ("chr(65)", '"A"'),
            ('ord("A")', "65"),
            ("round(2.5)", "3"),
            ("sign(-3)", "-1"),
            ("is_num(1)", "true"),
            ("is_undef(undef)", "true"),
            ("is_list([])", "true"),
        ],
    )
    def test_builtin_functions(self, expr, expected):
        assert echoes(f"echo({expr});") == [expected]

    def test_user_function_values(self):
        assert echoes("function f(x) = x > 0 ? x + f(x - 1) : 0; echo(f(4));") == ["10"]

    def test_echo_named_arguments(self):
        assert echoes('echo("r", r=2);') == ['"r", r = 2']

    def test_rands_with_seed_is_reproducible(self):
        first = echoes("echo(rands(0, 1, 3, 42));")
        second = echoes("echo(rands(0, 1, 3, 42));", seed=999)
        assert first == second

    def test_rands_follows_evaluator_seed(self):
        source = "echo(rands(0, 10, 4));"
        assert echoes(source, seed=1) == echoes(source, seed=1)
        assert echoes(source, seed=1) != echoes(source, seed=2)

    def test_rands_injected_generator(self):
        values = load_scene("x = rands(5, 6, 2); echo(x);", rng=np.random.default_rng(3))
        assert len(values.messages) == 2  # echo plus the missing camera warning


class TestMaterials:
    """Tests for material modules and textures."""

    def test_default_material(self):
        assert load_scene("sphere();").shapes[0].material == DEFAULT_MATERIAL

    def test_color_is_solid_lambertian(self):
        shape = load_scene("color([1, 0, 0, 0.5]) sphere();").shapes[0]
        assert shape.material == Lambertian(SolidTexture((1.0, 0.0, 0.0)))

    def test_material_modules(self):
        scene = load_scene(
            "metal(c=[0.8, 0.8, 0.8], fuzz=0.1) sphere();"
            "metal() sphere();"
            "dielectric(n=1.5) sphere();"
            "diffuse_light(c=[4, 4, 4]) sphere();"
        )
        materials = [s.material for s in scene.shapes]
        assert materials[0] == Metal((0.8, 0.8, 0.8), 0.1)
        assert materials[1] == Metal((1.0, 1.0, 1.0), 0.2)
        assert materials[2] == Dielectric(1.5)
        assert materials[3] == DiffuseLight((4.0, 4.0, 4.0))

    def test_metal_fuzz_clamped(self):
        assert load_scene("metal(fuzz=3) sphere();").shapes[0].material.fuzz == 1.0

    def test_innermost_material_wins(self):
        scene = load_scene("color([1, 0, 0]) { sphere(); dielectric(n=2) sphere(); }")
        assert isinstance(scene.shapes[0].material, Lambertian)
        assert scene.shapes[1].material == Dielectric(2.0)

    def test_checker_texture(self):
        shape = load_scene("lambertian(t=checker(scale=2, odd=[0, 1, 0])) sphere();").shapes[0]
        assert shape.material.texture == CheckerTexture(2.0, (0.0, 0.0, 0.0), (0.0, 1.0, 0.0))

    def test_perlin_texture_seed_follows_evaluator_seed(self):
        source = "lambertian(t=perlin_turbulence(scale=4)) sphere();"
        first = load_scene(source, seed=5).shapes[0].material.texture
        second = load_scene(source, seed=5).shapes[0].material.texture
        assert isinstance(first, PerlinTexture)
        assert first.turbulence_depth == 7
        assert first == second

    def test_image_texture_from_asset(self):
        rgba = bytes([255, 0, 0, 255, 0, 0, 255, 128])
        scene = load_scene(
            'lambertian(t=image("tex.png")) sphere();', assets={"tex.png": Asset(2, 1, rgba)}
        )
        texture = scene.shapes[0].material.texture
        assert isinstance(texture, ImageTexture)
        assert texture.pixels.shape == (1, 2, 3)
        assert np.allclose(texture.pixels[0, 1], (0.0, 0.0, 1.0))

    def test_missing_image_asset(self):
        error = eval_error('lambertian(t=image("earth.png")) sphere();')
        assert error.kind == "missing_asset"

    def test_lambertian_requires_texture(self):
        assert eval_error("lambertian(t=3) sphere();").kind == "type_error"


class TestCamera:
    """Tests for camera declarations."""

    def test_default_camera_with_warning(self):
        scene = load_scene("sphere();")
        assert not scene.camera_declared
        assert scene.camera == DEFAULT_CAMERA
        assert any(m.level is MessageLevel.WARNING for m in scene.messages)

    def test_camera_fields(self):
        scene = load_scene(
            "camera(image_width=40, image_height=20, samples_per_pixel=3, max_depth=4,"
            " vertical_fov=30, look_from=[0, -5, 0], look_at=[0, 0, 0],"
            " defocus_angle=2, focus_distance=5, background=[1, 0, 0]);"
        )
        camera = scene.camera
        assert scene.camera_declared
        assert (camera.image_width, camera.image_height) == (40, 20)
        assert camera.samples_per_pixel == 3
        assert camera.max_depth == 4
        assert camera.background == (1.0, 0.0, 0.0)
        assert camera.defocus_radius == pytest.approx(5.0 * math.tan(math.radians(1.0)))

    def test_aspect_ratio_derives_height(self):
        camera = load_scene("camera(image_width=320, aspect_ratio=2);").camera
        assert camera.image_height == 160

    def test_last_camera_wins(self):
        camera = load_scene("camera(image_width=10); camera(image_width=20);").camera
        assert camera.image_width == 20

    def test_camera_in_loop_last_iteration_wins(self):
        camera = load_scene("for (w = [10:10:30]) camera(image_width=w);").camera
        assert camera.image_width == 30

    def test_invalid_camera(self):
        assert eval_error("camera(image_width=0);").kind == "type_error"
        assert eval_error("camera(look_from=[1, 1, 1], look_at=[1, 1, 1]);").kind == "type_error"


class TestIncludes:
    """Tests for include and use."""

    LIB = "module ball(r) sphere(r=r); function double(x) = 2 * x; sphere(r=9);"

    def test_ray_trace_include_is_ignored(self):
        assert load_scene("include <ray_trace.scad>\nsphere();").shapes[0].radius == 1.0

    def test_include_runs_statements(self):
        scene = load_scene(
            "include <lib.scad>\nball(double(2));", include_resolver={"lib.scad": self.LIB}.get
        )
        assert [s.radius for s in scene.shapes] == [9.0, 4.0]

    def test_use_keeps_only_definitions(self):
        scene = load_scene("use <lib.scad>\nball(1);", include_resolver={"lib.scad": self.LIB}.get)
        assert [s.radius for s in scene.shapes] == [1.0]

    def test_missing_include(self):
        assert eval_error("include <nope.scad>").kind == "missing_include"
        error = eval_error("use <nope.scad>", include_resolver={}.get)
        assert error.kind == "missing_include"


class TestErrors:
    """Tests for evaluation errors."""

    @pytest.mark.parametrize(
        "source, kind",
        [
            ("echo(nope);", "undefined_identifier"),
            ("frobnicate();", "undefined_module"),
            ("x = frobnicate(1);", "undefined_function"),
            ("x = 1 / 0;", "division_by_zero"),
            ("x = 5 % 0;", "division_by_zero"),
            ("x = [1, 2] + 1;", "type_error"),
            ('x = "a" * 2;', "type_error"),
            ("sphere(1, 2, 3);", "arity"),
            ("sphere(q=1);", "arity"),
            ("union() sphere();", "unsupported"),
            ("difference() { cube(); sphere(); }", "unsupported"),
            ("square(2);", "unsupported"),
            ("linear_extrude(2) circle(1);", "unsupported"),
            ("polyhedron();", "unsupported"),
            ("module m() children(); m() sphere();", "unsupported"),
            ("function f(n) = f(n + 1); x = f(0);", "recursion_depth"),
            ("module m() m(); m();", "recursion_depth"),
            ("rotate(sqrt(-1)) sphere();", "type_error"),
            ("rotate(1e400) sphere();", "type_error"),
            ("for (i = [0:sqrt(-1)]) sphere();", "invalid_range"),
            ("for (i = [0:1:1e400]) sphere();", "invalid_range"),
            ("for (i = [0:0.000001:10]) sphere();", "invalid_range"),
            ("x = chr(-1);", "type_error"),
            ("camera(image_width=10, aspect_ratio=sqrt(-1));", "type_error"),
        ],
    )
    def test_error_kinds(self, source, kind):
        assert eval_error(source).kind == kind

    def test_error_carries_position_and_context(self):
        error = eval_error("a = 1;\nmodule m() sphere(r=b);\nm();")
        assert error.kind == "undefined_identifier"
        assert error.position is not None
        assert error.position.line == 2
        assert error.context is not None
