"""Lambertian (ideal diffuse) material.

The scattered direction is the surface normal plus a random unit vector,
which is cosine distributed about the normal. The attenuation is the
material's texture evaluated at the hit, so this module only stores which
texture each Lambertian material uses; the integrator samples it.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from scadtrace.materials.lambertian import scatter_lambertian
    >>> # Use within a Taichi kernel:
    >>> # direction, did_scatter = scatter_lambertian(slot, normal)
"""

import taichi as ti
import taichi.math as tm

from scadtrace.core.ray import near_zero, random_unit_vector

# Type alias for 3D vectors
vec3 = tm.vec3


@ti.func
def scatter_lambertian(slot: ti.i32, normal: vec3):
    """Sample a scattered direction for a Lambertian surface.

    Args:
        slot: Random stream of the pixel being rendered.
        normal: The unit surface normal at the hit point.

    Returns:
        A tuple of (scattered_direction, did_scatter). A sample that lands
        (nearly) opposite the normal cancels to zero and is absorbed.
    """
    scattered_direction = normal + random_unit_vector(slot)
    did_scatter = 1
    if near_zero(scattered_direction):
        did_scatter = 0
        scattered_direction = vec3(0.0, 0.0, 0.0)
    return scattered_direction, did_scatter


# =============================================================================
# Material Field Storage
# =============================================================================

# Capacity of the Lambertian table
MAX_LAMBERTIAN_MATERIALS = 1024

# Texture id (see scadtrace.textures.texture) for each Lambertian material
lambertian_texture_ids = ti.field(dtype=ti.i32, shape=MAX_LAMBERTIAN_MATERIALS)
num_lambertian_materials = ti.field(dtype=ti.i32, shape=())


def clear_lambertian_materials() -> None:
    """Forget every registered Lambertian material."""
    num_lambertian_materials[None] = 0


def add_lambertian_material(texture_id: int) -> int:
    """Add a Lambertian material that samples the given texture.

    Args:
        texture_id: Index into the texture table.

    Returns:
        Slot of the new material.

    Raises:
        ValueError: If texture_id is negative.
        RuntimeError: If the table is full.
    """
    if texture_id < 0:
        raise ValueError(f"texture id must be non-negative, got {texture_id}")

    idx = num_lambertian_materials[None]
    if idx >= MAX_LAMBERTIAN_MATERIALS:
        raise RuntimeError(f"Lambertian table is full ({MAX_LAMBERTIAN_MATERIALS} entries)")

    lambertian_texture_ids[idx] = texture_id
    num_lambertian_materials[None] = idx + 1
    return idx


def get_lambertian_material_count() -> int:
    """Number of Lambertian materials currently registered."""
    return int(num_lambertian_materials[None])


@ti.func
def get_lambertian_texture_id(material_idx: ti.i32) -> ti.i32:
    return lambertian_texture_ids[material_idx]
