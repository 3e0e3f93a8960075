"""Quad primitive with ray-quad intersection.

A quad is the parallelogram ``Q + a*u + b*v`` for a, b in [0, 1]. Quads are
stored in world space: the scene manager bakes the object transform into
Q, u and v at upload time.

Ray-quad intersection uses the parametric plane test:
1. Find where the ray intersects the plane containing the quad
2. Express the hit in planar coordinates (alpha, beta) and check [0, 1]^2

The planar coordinates double as the surface (u, v) of the hit.
"""

import taichi as ti
import taichi.math as tm

from scadtrace.geometry.sphere import HitRecord, make_hit_record, make_miss_record

# Type alias for 3D vectors using Taichi's math module
vec3 = tm.vec3


@ti.dataclass
class Quad:
    """A parallelogram defined by a corner point and two edge vectors.

    Attributes:
        Q: The corner point of the quad (vec3).
        u: Edge vector from Q to adjacent corner (vec3).
        v: Edge vector from Q to other adjacent corner (vec3).
    """

    Q: vec3
    u: vec3
    v: vec3


@ti.func
def _compute_quad_frame(quad: Quad):
    """Compute the plane normal, plane constant and planar-coordinate helpers.

    With n = u x v, the helpers w_u = (v x n)/|n|^2 and w_v = (n x u)/|n|^2
    satisfy alpha = dot(w_u, P - Q) and beta = dot(w_v, P - Q). A degenerate
    quad (parallel edges) yields zero helpers.
    """
    n = tm.cross(quad.u, quad.v)
    n_dot_n = tm.dot(n, n)

    normal = vec3(0.0, 0.0, 0.0)
    w_u = vec3(0.0, 0.0, 0.0)
    w_v = vec3(0.0, 0.0, 0.0)

    if n_dot_n > 1e-20:
        normal = n / ti.sqrt(n_dot_n)
        w_u = tm.cross(quad.v, n) / n_dot_n
        w_v = tm.cross(n, quad.u) / n_dot_n

    d = tm.dot(normal, quad.Q)
    return normal, d, w_u, w_v


@ti.func
def hit_quad(
    ray_origin: vec3,
    ray_direction: vec3,
    quad: Quad,
    t_min: ti.f32,
    t_max: ti.f32,
) -> HitRecord:
    """Test for ray-quad intersection in the open interval (t_min, t_max).

    Rays parallel to the plane and degenerate quads never hit.

    Args:
        ray_origin: The starting point of the ray.
        ray_direction: The ray direction (need not be normalized).
        quad: The quad to test.
        t_min: Lower bound on accepted t.
        t_max: Upper bound on accepted t.

    Returns:
        A HitRecord whose (u, v) are the planar coordinates of the hit.
    """
    normal, d, w_u, w_v = _compute_quad_frame(quad)
    denom = tm.dot(normal, ray_direction)

    result = make_miss_record()

    if ti.abs(denom) > 1e-8:
        t = (d - tm.dot(normal, ray_origin)) / denom

        if t > t_min and t < t_max:
            point = ray_origin + t * ray_direction
            p_minus_q = point - quad.Q
            alpha = tm.dot(w_u, p_minus_q)
            beta = tm.dot(w_v, p_minus_q)

            if alpha >= 0.0 and alpha <= 1.0 and beta >= 0.0 and beta <= 1.0:
                result = make_hit_record(ray_direction, t, point, normal, alpha, beta)

    return result
