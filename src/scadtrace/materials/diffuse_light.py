"""Diffuse area light material.

A diffuse light emits a constant color from every point of its surface, on
both faces, and never scatters: a path that reaches it ends there. Emission
values may exceed 1 for bright lights.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from scadtrace.materials.diffuse_light import add_diffuse_light_material
    >>> idx = add_diffuse_light_material((4.0, 4.0, 4.0))
"""

import taichi as ti
import taichi.math as tm

# Type alias for 3D vectors
vec3 = tm.vec3

# Capacity of the diffuse light table
MAX_DIFFUSE_LIGHT_MATERIALS = 1024

diffuse_light_emissions = ti.Vector.field(3, dtype=ti.f32, shape=MAX_DIFFUSE_LIGHT_MATERIALS)
num_diffuse_light_materials = ti.field(dtype=ti.i32, shape=())


def clear_diffuse_light_materials() -> None:
    """Clear all diffuse light materials."""
    num_diffuse_light_materials[None] = 0


def add_diffuse_light_material(emission: tuple[float, float, float]) -> int:
    """Add a diffuse light material to the registry.

    Args:
        emission: The emitted radiance as (R, G, B); components must be
            non-negative but may exceed 1.

    Returns:
        The index of the added material.

    Raises:
        RuntimeError: If the table is full.
        ValueError: If any emission component is negative.
    """
    for i, component in enumerate(emission):
        if component < 0.0:
            raise ValueError(f"Emission component {i} = {component} is negative.")

    idx = num_diffuse_light_materials[None]
    if idx >= MAX_DIFFUSE_LIGHT_MATERIALS:
        raise RuntimeError(f"diffuse light table is full ({MAX_DIFFUSE_LIGHT_MATERIALS} entries)")

    diffuse_light_emissions[idx] = vec3(emission[0], emission[1], emission[2])
    num_diffuse_light_materials[None] = idx + 1
    return idx


def get_diffuse_light_material_count() -> int:
    """Get the number of diffuse light materials in the registry."""
    return int(num_diffuse_light_materials[None])


@ti.func
def get_diffuse_light_emission(material_idx: ti.i32) -> vec3:
    return diffuse_light_emissions[material_idx]
