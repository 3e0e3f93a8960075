"""Cylinder and cone-frustum primitive.

In object space the frustum runs along +z from ``base_z`` to
``base_z + height`` with radius ``radius_bottom`` at the base and
``radius_top`` at the top. Either radius may be zero (a cone), not both.

The lateral surface x^2 + y^2 = (r1 + k*z)^2, k = (r2 - r1)/h, gives a
quadratic in t. NaN or negative discriminants are misses, and a near-zero
quadratic term (ray parallel to the cone wall) falls back to the linear
solution. Both cap disks are tested as well; the closest valid hit wins.
"""

import taichi as ti
import taichi.math as tm

from scadtrace.geometry.sphere import HitRecord, make_hit_record, make_miss_record

vec3 = tm.vec3


@ti.dataclass
class Cylinder:
    """A z-aligned cone frustum.

    Attributes:
        height: Extent along z (positive).
        radius_bottom: Radius at ``base_z``.
        radius_top: Radius at ``base_z + height``.
        base_z: z coordinate of the bottom cap.
    """

    height: ti.f32
    radius_bottom: ti.f32
    radius_top: ti.f32
    base_z: ti.f32


@ti.func
def _lateral_uv(p: vec3, z: ti.f32, height: ti.f32):
    u = (tm.atan2(p.y, p.x) + tm.pi) / (2.0 * tm.pi)
    return u, tm.clamp(z / height, 0.0, 1.0)


@ti.func
def _hit_cap(
    ray_origin: vec3,
    ray_direction: vec3,
    z: ti.f32,
    radius: ti.f32,
    outward_z: ti.f32,
    t_min: ti.f32,
    t_max: ti.f32,
) -> HitRecord:
    # ray_origin is relative to the base; the cap lies in the plane at height z
    result = make_miss_record()
    if radius > 0.0 and ti.abs(ray_direction.z) > 1e-12:
        t = (z - ray_origin.z) / ray_direction.z
        if t > t_min and t < t_max:
            p = ray_origin + t * ray_direction
            r2 = p.x * p.x + p.y * p.y
            if r2 <= radius * radius:
                u = 0.5 + 0.5 * p.x / radius
                v = 0.5 + 0.5 * p.y / radius
                result = make_hit_record(
                    ray_direction, t, p, vec3(0.0, 0.0, outward_z), u, v
                )
    return result


@ti.func
def hit_cylinder(
    ray_origin: vec3,
    ray_direction: vec3,
    cylinder: Cylinder,
    t_min: ti.f32,
    t_max: ti.f32,
) -> HitRecord:
    """Test for ray-frustum intersection in the open interval (t_min, t_max).

    Args:
        ray_origin: The ray origin in object space.
        ray_direction: The ray direction in object space.
        cylinder: The frustum to test.
        t_min: Lower bound on accepted t.
        t_max: Upper bound on accepted t.

    Returns:
        A HitRecord; the point is reported in object space.
    """
    h = cylinder.height
    r1 = cylinder.radius_bottom
    k = (cylinder.radius_top - r1) / h

    o = ray_origin - vec3(0.0, 0.0, cylinder.base_z)
    d = ray_direction

    closest = t_max
    result = make_miss_record()

    # Lateral surface
    radius_at_origin = r1 + k * o.z
    a = d.x * d.x + d.y * d.y - k * k * d.z * d.z
    b = 2.0 * (o.x * d.x + o.y * d.y - k * d.z * radius_at_origin)
    c = o.x * o.x + o.y * o.y - radius_at_origin * radius_at_origin

    t0 = -1.0
    t1 = -1.0
    if ti.abs(a) < 1e-12:
        if ti.abs(b) > 1e-12:
            t0 = -c / b
            t1 = t0
    else:
        discriminant = b * b - 4.0 * a * c
        if discriminant >= 0.0:
            sqrt_d = ti.sqrt(discriminant)
            t0 = (-b - sqrt_d) / (2.0 * a)
            t1 = (-b + sqrt_d) / (2.0 * a)
            if t0 > t1:
                temp = t0
                t0 = t1
                t1 = temp

    for i in ti.static(range(2)):
        t = t0
        if ti.static(i == 1):
            t = t1
        if t > t_min and t < closest:
            p = o + t * d
            radius_at_hit = r1 + k * p.z
            if p.z >= 0.0 and p.z <= h and radius_at_hit >= 0.0:
                outward = tm.normalize(vec3(p.x, p.y, -k * radius_at_hit))
                u, v = _lateral_uv(p, p.z, h)
                closest = t
                result = make_hit_record(d, t, p, outward, u, v)

    # Caps
    bottom = _hit_cap(o, d, 0.0, r1, -1.0, t_min, closest)
    if bottom.hit == 1:
        closest = bottom.t
        result = bottom
    top = _hit_cap(o, d, h, cylinder.radius_top, 1.0, t_min, closest)
    if top.hit == 1:
        result = top

    if result.hit == 1:
        result.point = result.point + vec3(0.0, 0.0, cylinder.base_z)

    return result
