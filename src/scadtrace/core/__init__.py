"""Core rendering module.

Components:
    ray: Ray data structure, vector utilities and per-pixel random streams
    integrator: Path tracing kernel, tile rendering and byte quantization

All compute-intensive operations use Taichi kernels. The modules declare
Taichi fields at import time, so import them only after ``ti.init``.
"""

from .ray import (
    MAX_RNG_STREAMS,
    Ray,
    length_squared,
    near_zero,
    random_f32,
    random_in_unit_disk,
    random_in_unit_sphere,
    random_unit_vector,
    ray_at,
    reflect,
    refract,
    schlick_reflectance,
    seed_stream,
    vec3,
)

# Note: integrator is NOT imported here to avoid circular imports.
# Import directly from scadtrace.core.integrator when needed.

__all__ = [
    "MAX_RNG_STREAMS",
    "Ray",
    "ray_at",
    "vec3",
    "length_squared",
    "reflect",
    "refract",
    "schlick_reflectance",
    "near_zero",
    "seed_stream",
    "random_f32",
    "random_in_unit_sphere",
    "random_unit_vector",
    "random_in_unit_disk",
]
