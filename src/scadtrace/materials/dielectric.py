"""Dielectric (glass/water) material.

Key physics:
    - Snell's law for refraction: n1 * sin(theta1) = n2 * sin(theta2)
    - Schlick's approximation for Fresnel reflectance
    - Total internal reflection when ratio * sin(theta) > 1

The material randomly chooses between reflection and refraction with the
Schlick reflectance as the probability of reflecting. Total internal
reflection always reflects.
"""

import taichi as ti
import taichi.math as tm

from scadtrace.core.ray import random_f32, reflect, refract, schlick_reflectance

# Type alias for 3D vectors
vec3 = tm.vec3


@ti.func
def refraction_ratio(ior: ti.f32, front_face: ti.i32) -> ti.f32:
    """1/ior when entering the material, ior when leaving it."""
    ratio = 1.0 / ior
    if front_face == 0:
        ratio = ior
    return ratio


@ti.func
def cannot_refract(
    ior: ti.f32, incident_direction: vec3, normal: vec3, front_face: ti.i32
) -> ti.i32:
    """Return 1 if the ray is totally internally reflected."""
    unit_direction = tm.normalize(incident_direction)
    cos_theta = tm.min(-tm.dot(unit_direction, normal), 1.0)
    sin_theta = ti.sqrt(tm.max(0.0, 1.0 - cos_theta * cos_theta))
    result = 0
    if refraction_ratio(ior, front_face) * sin_theta > 1.0:
        result = 1
    return result


@ti.func
def scatter_dielectric(
    slot: ti.i32,
    ior: ti.f32,
    incident_direction: vec3,
    normal: vec3,
    front_face: ti.i32,
):
    """Compute the scattered ray for a dielectric surface.

    Args:
        slot: Random stream of the pixel being rendered.
        ior: Index of refraction of the material.
        incident_direction: The incoming ray direction.
        normal: The unit surface normal facing against the ray.
        front_face: 1 if the ray hits the outside of the surface.

    Returns:
        A tuple of (scattered_direction, attenuation, did_scatter). Clear
        dielectrics never absorb, so attenuation is white and did_scatter 1.
    """
    attenuation = vec3(1.0, 1.0, 1.0)
    ratio = refraction_ratio(ior, front_face)

    unit_direction = tm.normalize(incident_direction)
    cos_theta = tm.min(-tm.dot(unit_direction, normal), 1.0)
    sin_theta = ti.sqrt(tm.max(0.0, 1.0 - cos_theta * cos_theta))

    scattered_direction = vec3(0.0, 0.0, 0.0)
    if ratio * sin_theta > 1.0 or schlick_reflectance(cos_theta, ratio) > random_f32(slot):
        scattered_direction = reflect(unit_direction, normal)
    else:
        scattered_direction = refract(unit_direction, normal, ratio)

    did_scatter = 1

    return scattered_direction, attenuation, did_scatter


# =============================================================================
# Material Field Storage
# =============================================================================

# Capacity of the dielectric table
MAX_DIELECTRIC_MATERIALS = 1024

dielectric_iors = ti.field(dtype=ti.f32, shape=MAX_DIELECTRIC_MATERIALS)
num_dielectric_materials = ti.field(dtype=ti.i32, shape=())


def clear_dielectric_materials() -> None:
    """Forget every registered dielectric."""
    num_dielectric_materials[None] = 0


def add_dielectric_material(ior: float = 1.5) -> int:
    """Append a dielectric to the table and return its slot.

    Args:
        ior: Index of refraction relative to the surrounding medium. Values
            below 1 model, for example, an air bubble inside glass.

    Raises:
        ValueError: If the IOR is not positive.
        RuntimeError: If the table is full.
    """
    if ior <= 0.0:
        raise ValueError(f"index of refraction must be positive, got {ior}")

    idx = num_dielectric_materials[None]
    if idx >= MAX_DIELECTRIC_MATERIALS:
        raise RuntimeError(f"dielectric table is full ({MAX_DIELECTRIC_MATERIALS} entries)")

    dielectric_iors[idx] = ior
    num_dielectric_materials[None] = idx + 1
    return idx


def get_dielectric_material_count() -> int:
    """Number of dielectrics currently registered."""
    return int(num_dielectric_materials[None])


@ti.func
def get_dielectric_ior(material_idx: ti.i32) -> ti.f32:
    return dielectric_iors[material_idx]
