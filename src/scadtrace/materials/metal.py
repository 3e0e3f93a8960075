"""Metal (specular reflective) material.

The incident ray is mirrored about the normal and perturbed by ``fuzz``
times a random unit vector. A perturbed ray that ends up below the surface
is absorbed.

    R = I - 2(I . N)N
"""

import taichi as ti
import taichi.math as tm

from scadtrace.core.ray import random_unit_vector, reflect

# Type alias for 3D vectors
vec3 = tm.vec3


@ti.func
def scatter_metal(
    slot: ti.i32,
    albedo: vec3,
    fuzz: ti.f32,
    incident_direction: vec3,
    normal: vec3,
):
    """Compute the scattered ray for a metal surface.

    Args:
        slot: Random stream of the pixel being rendered.
        albedo: The reflective color (RGB, each component in [0, 1]).
        fuzz: Perturbation radius in [0, 1]. 0 = perfect mirror.
        incident_direction: The incoming ray direction.
        normal: The unit surface normal facing against the ray.

    Returns:
        A tuple of (scattered_direction, attenuation, did_scatter) where
        did_scatter is 0 if the ray was absorbed.
    """
    reflected = tm.normalize(reflect(incident_direction, normal))
    scattered_direction = reflected + fuzz * random_unit_vector(slot)

    did_scatter = 1
    if tm.dot(scattered_direction, normal) <= 0.0:
        did_scatter = 0
        scattered_direction = vec3(0.0, 0.0, 0.0)

    attenuation = albedo

    return scattered_direction, attenuation, did_scatter


# =============================================================================
# Material Field Storage
# =============================================================================

# Capacity of the metal table; the scene manager deduplicates identical entries
MAX_METAL_MATERIALS = 1024

metal_albedos = ti.Vector.field(3, dtype=ti.f32, shape=MAX_METAL_MATERIALS)
metal_fuzz = ti.field(dtype=ti.f32, shape=MAX_METAL_MATERIALS)
num_metal_materials = ti.field(dtype=ti.i32, shape=())


def clear_metal_materials() -> None:
    """Forget every registered metal."""
    num_metal_materials[None] = 0


def add_metal_material(albedo: tuple[float, float, float], fuzz: float = 0.0) -> int:
    """Append a metal to the table and return its slot.

    Callers clamp out-of-range values before this point; a value outside
    [0, 1] here is a programming error.

    Raises:
        ValueError: If an albedo channel or the fuzz lies outside [0, 1].
        RuntimeError: If the table is full.
    """
    for i, component in enumerate(albedo):
        if component < 0.0 or component > 1.0:
            raise ValueError(f"albedo channel {i} is {component}, expected a value in [0, 1]")
    if fuzz < 0.0 or fuzz > 1.0:
        raise ValueError(f"fuzz is {fuzz}, expected a value in [0, 1]")

    idx = num_metal_materials[None]
    if idx >= MAX_METAL_MATERIALS:
        raise RuntimeError(f"metal table is full ({MAX_METAL_MATERIALS} entries)")

    metal_albedos[idx] = vec3(albedo[0], albedo[1], albedo[2])
    metal_fuzz[idx] = fuzz
    num_metal_materials[None] = idx + 1
    return idx


def get_metal_material_count() -> int:
    """Number of metals currently registered."""
    return int(num_metal_materials[None])


@ti.func
def get_metal_albedo(material_idx: ti.i32) -> vec3:
    return metal_albedos[material_idx]


@ti.func
def get_metal_fuzz(material_idx: ti.i32) -> ti.f32:
    return metal_fuzz[material_idx]
