"""Ray data structure, vector utilities and per-pixel random streams.

All functions here are Taichi functions for use inside kernels. Random
sampling draws from an explicit xorshift32 stream identified by a slot index
instead of ``ti.random``: each pixel seeds its own stream from a hash of
``(seed, x, y)``, so a pixel's color does not depend on which tile, worker or
thread rendered it.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from scadtrace.core.ray import seed_stream, random_unit_vector
    >>> @ti.kernel
    ... def sample() -> ti.f32:
    ...     seed_stream(0, 42, 3, 7)
    ...     return random_unit_vector(0).norm()
"""

import taichi as ti
import taichi.math as tm

# Type alias for 3D vectors using Taichi's math module
vec3 = tm.vec3

# Number of independent random streams; one per pixel of the largest tile.
MAX_RNG_STREAMS = 256 * 256

_rng_state = ti.field(dtype=ti.u32, shape=MAX_RNG_STREAMS)


@ti.dataclass
class Ray:
    """A ray with an origin point and direction vector.

    Attributes:
        origin: The starting point of the ray (vec3).
        direction: The direction of the ray (vec3). Not necessarily unit
            length; transformed rays keep the scaled direction so that the
            parameter t is shared between world and object space.
    """

    origin: vec3
    direction: vec3


@ti.func
def ray_at(ray: Ray, t: ti.f32) -> vec3:
    """Return the point ``origin + t * direction``."""
    return ray.origin + t * ray.direction


# =============================================================================
# Vector Utility Functions
# =============================================================================


@ti.func
def length_squared(v: vec3) -> ti.f32:
    return tm.dot(v, v)


@ti.func
def reflect(incident: vec3, normal: vec3) -> vec3:
    """Reflect an incident vector about a unit normal."""
    return incident - 2.0 * tm.dot(incident, normal) * normal


@ti.func
def refract(unit_incident: vec3, normal: vec3, eta_ratio: ti.f32) -> vec3:
    """Refract a unit incident vector through a surface (Snell's law).

    The caller must have ruled out total internal reflection.

    Args:
        unit_incident: The incoming direction, unit length.
        normal: The unit normal facing against the incident ray.
        eta_ratio: Ratio of refractive indices (n_incident / n_transmitted).

    Returns:
        The refracted direction.
    """
    cos_theta = tm.min(tm.dot(-unit_incident, normal), 1.0)
    r_perp = eta_ratio * (unit_incident + cos_theta * normal)
    r_parallel = -ti.sqrt(ti.abs(1.0 - length_squared(r_perp))) * normal
    return r_perp + r_parallel


@ti.func
def schlick_reflectance(cosine: ti.f32, eta_ratio: ti.f32) -> ti.f32:
    """Fresnel reflectance by Schlick's approximation."""
    r0 = (1.0 - eta_ratio) / (1.0 + eta_ratio)
    r0 = r0 * r0
    return r0 + (1.0 - r0) * ((1.0 - cosine) ** 5)


@ti.func
def near_zero(v: vec3) -> ti.i32:
    """Return 1 if every component of v is below 1e-8 in magnitude."""
    s = 1e-8
    return ti.abs(v.x) < s and ti.abs(v.y) < s and ti.abs(v.z) < s


# =============================================================================
# Random Streams
# =============================================================================


@ti.func
def wang_hash(value: ti.u32) -> ti.u32:
    h = (value ^ ti.u32(61)) ^ (value >> 16)
    h *= ti.u32(9)
    h = h ^ (h >> 4)
    h *= ti.u32(668265261)
    h = h ^ (h >> 15)
    return h


@ti.func
def seed_stream(slot: ti.i32, seed: ti.i32, x: ti.i32, y: ti.i32):
    """Seed stream ``slot`` from the render seed and an absolute pixel position."""
    xy = wang_hash(ti.cast(x, ti.u32) + wang_hash(ti.cast(y, ti.u32)))
    h = wang_hash(ti.cast(seed, ti.u32) ^ xy)
    # xorshift never leaves the all-zero state
    if h == 0:
        h = ti.u32(1)
    _rng_state[slot] = h


@ti.func
def next_u32(slot: ti.i32) -> ti.u32:
    x = _rng_state[slot]
    x ^= x << 13
    x ^= x >> 17
    x ^= x << 5
    _rng_state[slot] = x
    return x


@ti.func
def random_f32(slot: ti.i32) -> ti.f32:
    """Uniform float in [0, 1) from the top 24 bits of the stream."""
    return ti.cast(next_u32(slot) >> 8, ti.f32) * (1.0 / 16777216.0)


@ti.func
def random_range(slot: ti.i32, lo: ti.f32, hi: ti.f32) -> ti.f32:
    return lo + (hi - lo) * random_f32(slot)


@ti.func
def random_in_unit_sphere(slot: ti.i32) -> vec3:
    """Generate a random point inside the unit sphere by rejection sampling."""
    p = vec3(0.0, 0.0, 0.0)
    found = False
    for _ in range(100):
        if not found:
            p = vec3(
                random_range(slot, -1.0, 1.0),
                random_range(slot, -1.0, 1.0),
                random_range(slot, -1.0, 1.0),
            )
            lensq = length_squared(p)
            if 1e-12 < lensq and lensq < 1.0:
                found = True
    return p


@ti.func
def random_unit_vector(slot: ti.i32) -> vec3:
    """Random unit vector uniformly distributed on the sphere."""
    return tm.normalize(random_in_unit_sphere(slot))


@ti.func
def random_in_unit_disk(slot: ti.i32) -> vec3:
    """Random point (x, y, 0) with x^2 + y^2 < 1."""
    p = vec3(0.0, 0.0, 0.0)
    found = False
    for _ in range(100):
        if not found:
            p = vec3(random_range(slot, -1.0, 1.0), random_range(slot, -1.0, 1.0), 0.0)
            if p.x * p.x + p.y * p.y < 1.0:
                found = True
    return p
