"""Unit tests for textures.

Tests cover:
- Checker parity, including negative coordinates
- Perlin table determinism and noise ranges
- Image sampling with row 0 at the top
- Texture table dispatch and validation
- Conversion of RGBA assets to image textures
"""

import numpy as np
import pytest
import taichi as ti

vec3 = ti.math.vec3

RED = (1.0, 0.0, 0.0)
GREEN = (0.0, 1.0, 0.0)
BLUE = (0.0, 0.0, 1.0)
WHITE = (1.0, 1.0, 1.0)


def _quad_image():
    """2x2 image: red, green on the top row; blue, white on the bottom row."""
    return np.array([[RED, GREEN], [BLUE, WHITE]], dtype=np.float32)


class TestChecker:
    """Tests for the 3-D checker pattern."""

    @pytest.mark.parametrize(
        "point,expected",
        [
            ((0.5, 0.5, 0.5), RED),
            ((1.5, 0.5, 0.5), BLUE),
            ((1.5, 1.5, 0.5), RED),
            ((-0.5, 0.5, 0.5), BLUE),
            ((-0.5, -0.5, 0.5), RED),
        ],
    )
    def test_parity(self, point, expected):
        from scadtrace.textures.checker import checker_value

        result = ti.Vector.field(3, dtype=ti.f32, shape=())

        @ti.kernel
        def test_kernel(p: vec3):
            result[None] = checker_value(1.0, vec3(1.0, 0.0, 0.0), vec3(0.0, 0.0, 1.0), p)

        test_kernel(point)
        assert np.allclose(result[None].to_numpy(), expected)

    def test_scale_widens_cells(self):
        from scadtrace.textures.checker import checker_value

        result = ti.Vector.field(3, dtype=ti.f32, shape=())

        @ti.kernel
        def test_kernel():
            p = vec3(1.5, 0.5, 0.5)
            result[None] = checker_value(2.0, vec3(1.0, 0.0, 0.0), vec3(0.0, 0.0, 1.0), p)

        test_kernel()
        assert np.allclose(result[None].to_numpy(), RED)


class TestPerlin:
    """Tests for Perlin tables and noise."""

    def test_tables_deterministic_per_seed(self):
        from scadtrace.textures.perlin import POINT_COUNT, build_perlin_tables

        g1, p1 = build_perlin_tables(7)
        g2, p2 = build_perlin_tables(7)
        g3, _ = build_perlin_tables(8)

        assert np.array_equal(g1, g2)
        assert np.array_equal(p1, p2)
        assert not np.array_equal(g1, g3)
        assert np.allclose(np.linalg.norm(g1, axis=1), 1.0, atol=1e-5)
        for row in p1:
            assert sorted(row.tolist()) == list(range(POINT_COUNT))

    def test_noise_ranges(self):
        from scadtrace.textures.perlin import (
            add_perlin_table,
            marble_value,
            perlin_noise,
            perlin_turbulence,
        )

        n = 512
        noise = ti.field(dtype=ti.f32, shape=n)
        turbulence = ti.field(dtype=ti.f32, shape=n)
        marble = ti.field(dtype=ti.f32, shape=n)
        table = add_perlin_table(42)

        @ti.kernel
        def test_kernel(t: ti.i32):
            for i in range(n):
                p = vec3(0.37 * i, 0.11 * i - 3.0, 1.7 - 0.05 * i)
                noise[i] = perlin_noise(t, p)
                turbulence[i] = perlin_turbulence(t, p, 7)
                marble[i] = marble_value(t, 4.0, 7, p)[0]

        test_kernel(table)
        assert np.all(np.abs(noise.to_numpy()) <= 1.0 + 1e-5)
        assert np.all(turbulence.to_numpy() >= 0.0)
        assert np.all((marble.to_numpy() >= 0.0) & (marble.to_numpy() <= 1.0))
        assert np.std(noise.to_numpy()) > 0.0

    def test_table_capacity(self):
        from scadtrace.textures.perlin import MAX_PERLIN_TABLES, add_perlin_table

        for i in range(MAX_PERLIN_TABLES):
            assert add_perlin_table(i) == i
        with pytest.raises(RuntimeError):
            add_perlin_table(0)


class TestImage:
    """Tests for image upload and sampling."""

    @pytest.mark.parametrize(
        "uv,expected",
        [
            ((0.25, 0.75), RED),
            ((0.75, 0.75), GREEN),
            ((0.25, 0.25), BLUE),
            ((0.75, 0.25), WHITE),
            ((-1.0, 2.0), RED),
            ((1.0, 0.0), WHITE),
        ],
    )
    def test_sampling_flips_v(self, uv, expected):
        from scadtrace.textures.image import add_image, image_value

        result = ti.Vector.field(3, dtype=ti.f32, shape=())
        image = add_image(_quad_image())

        @ti.kernel
        def test_kernel(img: ti.i32, u: ti.f32, v: ti.f32):
            result[None] = image_value(img, u, v)

        test_kernel(image, uv[0], uv[1])
        assert np.allclose(result[None].to_numpy(), expected)

    def test_bad_shape_rejected(self):
        from scadtrace.textures.image import add_image

        with pytest.raises(ValueError):
            add_image(np.zeros((4, 4), dtype=np.float32))
        with pytest.raises(ValueError):
            add_image(np.zeros((0, 4, 3), dtype=np.float32))

    def test_images_packed_back_to_back(self):
        from scadtrace.textures.image import add_image, image_value

        result = ti.Vector.field(3, dtype=ti.f32, shape=())
        add_image(_quad_image())
        second = add_image(np.full((3, 1, 3), 0.5, dtype=np.float32))

        @ti.kernel
        def test_kernel(img: ti.i32):
            result[None] = image_value(img, 0.5, 0.5)

        test_kernel(second)
        assert np.allclose(result[None].to_numpy(), (0.5, 0.5, 0.5))


class TestTextureTable:
    """Tests for texture dispatch."""

    def test_dispatch_by_kind(self):
        from scadtrace.textures.texture import (
            add_checker_texture,
            add_image_texture,
            add_solid_texture,
            get_texture_count,
            texture_value,
        )

        solid = add_solid_texture((0.2, 0.4, 0.6))
        checker = add_checker_texture(1.0, RED, BLUE)
        image = add_image_texture(_quad_image())
        assert get_texture_count() == 3

        result = ti.Vector.field(3, dtype=ti.f32, shape=3)

        @ti.kernel
        def test_kernel(a: ti.i32, b: ti.i32, c: ti.i32):
            p = vec3(1.5, 0.5, 0.5)
            result[0] = texture_value(a, 0.0, 0.0, p)
            result[1] = texture_value(b, 0.0, 0.0, p)
            result[2] = texture_value(c, 0.75, 0.75, p)

        test_kernel(solid, checker, image)
        values = result.to_numpy()
        assert np.allclose(values[0], (0.2, 0.4, 0.6))
        assert np.allclose(values[1], BLUE)
        assert np.allclose(values[2], GREEN)

    def test_validation(self):
        from scadtrace.textures.texture import add_checker_texture, add_perlin_texture

        with pytest.raises(ValueError):
            add_checker_texture(0.0, RED, BLUE)
        with pytest.raises(ValueError):
            add_perlin_texture(1.0, 0, 0)

    def test_clear_resets_count(self):
        from scadtrace.textures.texture import (
            add_solid_texture,
            clear_textures,
            get_texture_count,
        )

        add_solid_texture(RED)
        clear_textures()
        assert get_texture_count() == 0
        assert add_solid_texture(GREEN) == 0


class TestAsset:
    """Tests for RGBA asset conversion."""

    def test_to_texture_drops_alpha(self):
        from scadtrace.scene.model import Asset

        asset = Asset(2, 1, bytes([255, 0, 0, 10, 0, 0, 255, 255]))
        texture = asset.to_texture("stripes")
        assert texture.pixels.shape == (1, 2, 3)
        assert np.allclose(texture.pixels[0, 0], RED)
        assert np.allclose(texture.pixels[0, 1], BLUE)

    def test_wrong_byte_count_rejected(self):
        from scadtrace.scene.model import Asset

        with pytest.raises(ValueError):
            Asset(2, 2, bytes(8)).to_texture("short")
