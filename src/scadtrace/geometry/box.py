"""Axis-aligned box primitive with slab intersection.

Boxes are intersected in object space, where they are axis aligned between
``minimum`` and ``maximum``; rotated or sheared boxes are handled by the
instance transform (see :mod:`scadtrace.geometry.instance`).

The slab test intersects the ray with the three pairs of parallel planes,
keeping the latest entry and earliest exit. The normal is that of the slab
the ray entered through, or exited through when the ray starts inside.
"""

import taichi as ti
import taichi.math as tm

from scadtrace.geometry.sphere import HitRecord, make_hit_record, make_miss_record

vec3 = tm.vec3


@ti.dataclass
class Box:
    """An axis-aligned box.

    Attributes:
        minimum: The corner with the smallest coordinates (vec3).
        maximum: The corner with the largest coordinates (vec3).
    """

    minimum: vec3
    maximum: vec3


@ti.func
def _face_uv(box: Box, point: vec3, axis: ti.i32):
    # Surface coordinates are the two remaining coordinates, normalized.
    extent = box.maximum - box.minimum
    rel = (point - box.minimum) / tm.max(extent, vec3(1e-20, 1e-20, 1e-20))
    u = rel.x
    v = rel.y
    if axis == 0:
        u = rel.y
        v = rel.z
    elif axis == 1:
        u = rel.x
        v = rel.z
    return tm.clamp(u, 0.0, 1.0), tm.clamp(v, 0.0, 1.0)


@ti.func
def hit_box(
    ray_origin: vec3,
    ray_direction: vec3,
    box: Box,
    t_min: ti.f32,
    t_max: ti.f32,
) -> HitRecord:
    """Test for ray-box intersection in the open interval (t_min, t_max).

    Args:
        ray_origin: The ray origin in object space.
        ray_direction: The ray direction in object space.
        box: The box to test.
        t_min: Lower bound on accepted t.
        t_max: Upper bound on accepted t.

    Returns:
        A HitRecord with the outward slab normal flipped to face the ray.
    """
    t_near = -1e30
    t_far = 1e30
    near_axis = 0
    far_axis = 0
    miss = 0

    for k in ti.static(range(3)):
        if ti.abs(ray_direction[k]) < 1e-12:
            # Parallel to this slab: inside it or never inside the box
            if ray_origin[k] < box.minimum[k] or ray_origin[k] > box.maximum[k]:
                miss = 1
        else:
            inv = 1.0 / ray_direction[k]
            t0 = (box.minimum[k] - ray_origin[k]) * inv
            t1 = (box.maximum[k] - ray_origin[k]) * inv
            if t0 > t1:
                temp = t0
                t0 = t1
                t1 = temp
            if t0 > t_near:
                t_near = t0
                near_axis = k
            if t1 < t_far:
                t_far = t1
                far_axis = k

    result = make_miss_record()

    if miss == 0 and t_near <= t_far:
        t = t_near
        axis = near_axis
        exiting = 0
        if not (t > t_min and t < t_max):
            t = t_far
            axis = far_axis
            exiting = 1

        if t > t_min and t < t_max:
            point = ray_origin + t * ray_direction
            outward_normal = vec3(0.0, 0.0, 0.0)
            # Entering: the normal opposes the ray along the axis; exiting: it follows it
            sign = -1.0
            if exiting == 1:
                sign = 1.0
            for k in ti.static(range(3)):
                if axis == k:
                    outward_normal[k] = sign * ti.select(ray_direction[k] < 0.0, -1.0, 1.0)
            u, v = _face_uv(box, point, axis)
            result = make_hit_record(ray_direction, t, point, outward_normal, u, v)

    return result
