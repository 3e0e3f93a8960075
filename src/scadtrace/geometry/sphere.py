"""Sphere primitive with robust ray-sphere intersection.

Also defines :class:`HitRecord`, the per-primitive intersection result shared
by every shape in the geometry package.

The robust quadratic formula from Ray Tracing Gems avoids catastrophic
cancellation when b^2 is nearly equal to 4ac.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from scadtrace.geometry.sphere import Sphere, hit_sphere
    >>> sphere = Sphere(center=ti.math.vec3(0, -3, 0), radius=0.5)
    >>> # Use hit_sphere within a Taichi kernel
"""

import taichi as ti
import taichi.math as tm

# Type alias for 3D vectors using Taichi's math module
vec3 = tm.vec3


@ti.dataclass
class Sphere:
    """A sphere defined by center point and radius.

    Attributes:
        center: The center point of the sphere (vec3).
        radius: The radius of the sphere (positive float).
    """

    center: vec3
    radius: ti.f32


@ti.dataclass
class HitRecord:
    """Record of a ray-primitive intersection.

    Attributes:
        hit: 1 if the ray intersected the primitive, 0 on a miss.
        t: Ray parameter of the intersection. Only valid if hit == 1.
        point: The intersection point. Only valid if hit == 1.
        normal: Unit surface normal, always facing against the ray.
        front_face: 1 if the ray hit the outside of the surface, 0 otherwise.
        u: First surface coordinate in [0, 1].
        v: Second surface coordinate in [0, 1].
    """

    hit: ti.i32
    t: ti.f32
    point: vec3
    normal: vec3
    front_face: ti.i32
    u: ti.f32
    v: ti.f32


@ti.func
def make_miss_record() -> HitRecord:
    return HitRecord(
        hit=0,
        t=0.0,
        point=vec3(0.0, 0.0, 0.0),
        normal=vec3(0.0, 0.0, 0.0),
        front_face=0,
        u=0.0,
        v=0.0,
    )


@ti.func
def make_hit_record(
    ray_direction: vec3, t: ti.f32, point: vec3, outward_normal: vec3, u: ti.f32, v: ti.f32
) -> HitRecord:
    """Build a hit record, flipping the outward normal to face the ray."""
    front_face = 1
    normal = outward_normal
    if tm.dot(ray_direction, outward_normal) > 0.0:
        front_face = 0
        normal = -outward_normal
    return HitRecord(hit=1, t=t, point=point, normal=normal, front_face=front_face, u=u, v=v)


@ti.func
def solve_quadratic_robust(h: ti.f32, a: ti.f32, c: ti.f32, sqrt_d: ti.f32):
    """Solve a*t^2 + 2*h*t + c = 0 given sqrt(h^2 - a*c).

    Returns:
        Tuple of (t0, t1) with t0 <= t1.
    """
    sign_h = ti.select(h < 0.0, -1.0, 1.0)
    q = -(h + sign_h * sqrt_d)

    t0 = 0.0
    t1 = 0.0

    if ti.abs(q) < 1e-10:
        # Tangent ray; fall back to the textbook formula
        t0 = (-h - sqrt_d) / a
        t1 = (-h + sqrt_d) / a
    else:
        t0 = q / a
        t1 = c / q

    if t0 > t1:
        temp = t0
        t0 = t1
        t1 = temp

    return t0, t1


@ti.func
def sphere_uv(p: vec3):
    """Spherical (u, v) of a point on the unit sphere.

    u is the angle around the z axis from -x, v the angle from -z to +z,
    both normalized to [0, 1].
    """
    theta = tm.acos(tm.clamp(-p.z, -1.0, 1.0))
    phi = tm.atan2(-p.y, p.x) + tm.pi
    return phi / (2.0 * tm.pi), theta / tm.pi


@ti.func
def hit_sphere(
    ray_origin: vec3,
    ray_direction: vec3,
    sphere: Sphere,
    t_min: ti.f32,
    t_max: ti.f32,
) -> HitRecord:
    """Test for ray-sphere intersection in the open interval (t_min, t_max).

    Solves |origin + t*direction - center|^2 = radius^2 as
    a*t^2 + 2*h*t + c = 0 with the robust formula, preferring the smaller
    valid root. A negative discriminant or non-positive radius is a miss.

    Args:
        ray_origin: The starting point of the ray.
        ray_direction: The ray direction (need not be normalized).
        sphere: The sphere to test.
        t_min: Lower bound on accepted t (avoids self-intersection).
        t_max: Upper bound on accepted t (closest hit so far).

    Returns:
        A HitRecord; check ``hit`` to see whether the ray intersected.
    """
    oc = ray_origin - sphere.center

    a = tm.dot(ray_direction, ray_direction)
    h = tm.dot(ray_direction, oc)
    c = tm.dot(oc, oc) - sphere.radius * sphere.radius

    discriminant = h * h - a * c

    result = make_miss_record()

    if sphere.radius > 0.0 and a > 0.0 and discriminant >= 0.0:
        sqrt_d = ti.sqrt(discriminant)
        t0, t1 = solve_quadratic_robust(h, a, c, sqrt_d)

        t = t0
        valid = (t > t_min) and (t < t_max)
        if not valid:
            t = t1
            valid = (t > t_min) and (t < t_max)

        if valid:
            point = ray_origin + t * ray_direction
            outward_normal = (point - sphere.center) / sphere.radius
            u, v = sphere_uv(outward_normal)
            result = make_hit_record(ray_direction, t, point, outward_normal, u, v)

    return result
