"""Textures module.

Components:
    texture: Unified texture table and texture_value dispatch
    checker: 3-D checker pattern
    perlin: Gradient noise, turbulence and the marble texture
    image: Image storage and nearest-texel sampling
"""

from .texture import (
    MAX_TEXTURES,
    TextureType,
    add_checker_texture,
    add_image_texture,
    add_perlin_texture,
    add_solid_texture,
    clear_textures,
    get_texture_count,
    texture_value,
)

__all__ = [
    "MAX_TEXTURES",
    "TextureType",
    "add_solid_texture",
    "add_checker_texture",
    "add_perlin_texture",
    "add_image_texture",
    "clear_textures",
    "get_texture_count",
    "texture_value",
]
