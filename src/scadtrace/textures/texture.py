"""Unified texture table and texture dispatch.

Every texture, whatever its kind, occupies one row of the table: a type tag,
two colors, a scale and one integer parameter (the Perlin table or image
index). Lambertian materials refer to textures by row index, and the
integrator calls :func:`texture_value` to sample them.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from scadtrace.textures.texture import add_solid_texture, add_checker_texture
    >>> red = add_solid_texture((0.8, 0.1, 0.1))
    >>> floor = add_checker_texture(2.0, (0.2, 0.3, 0.1), (0.9, 0.9, 0.9))
"""

from enum import IntEnum

import numpy as np
import taichi as ti
import taichi.math as tm

from scadtrace.textures.checker import checker_value
from scadtrace.textures.image import add_image, clear_images, image_value
from scadtrace.textures.perlin import add_perlin_table, clear_perlin_tables, marble_value

vec3 = tm.vec3


class TextureType(IntEnum):
    """Texture kinds, used for dispatch in :func:`texture_value`."""

    SOLID = 0
    CHECKER = 1
    PERLIN = 2
    IMAGE = 3


# Capacity of the texture table; one Lambertian can own one texture
MAX_TEXTURES = 1024

texture_types = ti.field(dtype=ti.i32, shape=MAX_TEXTURES)
texture_color_a = ti.Vector.field(3, dtype=ti.f32, shape=MAX_TEXTURES)
texture_color_b = ti.Vector.field(3, dtype=ti.f32, shape=MAX_TEXTURES)
texture_scales = ti.field(dtype=ti.f32, shape=MAX_TEXTURES)
texture_params = ti.field(dtype=ti.i32, shape=MAX_TEXTURES)
texture_indices = ti.field(dtype=ti.i32, shape=MAX_TEXTURES)
num_textures = ti.field(dtype=ti.i32, shape=())


def clear_textures() -> None:
    """Clear the texture table and the Perlin and image storage behind it."""
    num_textures[None] = 0
    clear_perlin_tables()
    clear_images()


def _add_texture(
    texture_type: TextureType,
    color_a=(0.0, 0.0, 0.0),
    color_b=(0.0, 0.0, 0.0),
    scale: float = 1.0,
    param: int = 0,
    index: int = 0,
) -> int:
    idx = num_textures[None]
    if idx >= MAX_TEXTURES:
        raise RuntimeError(f"texture table is full ({MAX_TEXTURES} entries)")
    texture_types[idx] = int(texture_type)
    texture_color_a[idx] = vec3(color_a[0], color_a[1], color_a[2])
    texture_color_b[idx] = vec3(color_b[0], color_b[1], color_b[2])
    texture_scales[idx] = scale
    texture_params[idx] = param
    texture_indices[idx] = index
    num_textures[None] = idx + 1
    return idx


def add_solid_texture(color: tuple[float, float, float]) -> int:
    """Add a constant-color texture.

    Raises:
        RuntimeError: If the texture table is full.
    """
    return _add_texture(TextureType.SOLID, color_a=color)


def add_checker_texture(
    scale: float,
    even: tuple[float, float, float],
    odd: tuple[float, float, float],
) -> int:
    """Add a 3-D checker texture.

    Raises:
        RuntimeError: If the texture table is full.
        ValueError: If scale is not positive.
    """
    if scale <= 0.0:
        raise ValueError(f"Checker scale = {scale} must be positive.")
    return _add_texture(TextureType.CHECKER, color_a=even, color_b=odd, scale=scale)


def add_perlin_texture(scale: float, turbulence_depth: int, seed: int) -> int:
    """Add a marbled Perlin texture with its own noise tables.

    Raises:
        RuntimeError: If the texture or Perlin table capacity is exceeded.
        ValueError: If turbulence_depth is less than 1.
    """
    if turbulence_depth < 1:
        raise ValueError(f"Turbulence depth = {turbulence_depth} must be at least 1.")
    table = add_perlin_table(seed)
    return _add_texture(TextureType.PERLIN, scale=scale, param=turbulence_depth, index=table)


def add_image_texture(pixels: np.ndarray) -> int:
    """Add an image texture from a (height, width, 3) float array.

    Raises:
        RuntimeError: If the texture or image capacity is exceeded.
        ValueError: If the array has the wrong shape.
    """
    image = add_image(pixels)
    return _add_texture(TextureType.IMAGE, index=image)


def get_texture_count() -> int:
    return int(num_textures[None])


@ti.func
def texture_value(texture_id: ti.i32, u: ti.f32, v: ti.f32, p: vec3) -> vec3:
    """Sample a texture at surface coordinates (u, v) and world point p."""
    kind = texture_types[texture_id]
    result = texture_color_a[texture_id]

    if kind == int(TextureType.CHECKER):
        result = checker_value(
            texture_scales[texture_id], texture_color_a[texture_id], texture_color_b[texture_id], p
        )
    elif kind == int(TextureType.PERLIN):
        result = marble_value(
            texture_indices[texture_id], texture_scales[texture_id], texture_params[texture_id], p
        )
    elif kind == int(TextureType.IMAGE):
        result = image_value(texture_indices[texture_id], u, v)

    return result
