"""World/object space mapping for transformed primitives.

Each transformed shape stores its world-to-object matrix and the normal
matrix (inverse transpose of the object-to-world linear part), both computed
once at upload time. A world ray is mapped into object space without
renormalizing its direction, so the ray parameter t of an object-space hit
is also the world-space t.
"""

import numpy as np
import taichi as ti
import taichi.math as tm

from scadtrace.geometry.sphere import HitRecord

vec3 = tm.vec3
vec4 = tm.vec4
mat3 = tm.mat3
mat4 = tm.mat4


def world_to_object_matrices(object_to_world: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Return (world_to_object 4x4, normal matrix 3x3) for a 4x4 transform.

    Raises:
        ValueError: If the transform is singular.
    """
    linear = object_to_world[:3, :3]
    if abs(np.linalg.det(linear)) < 1e-12:
        raise ValueError("object transform is not invertible")
    world_to_object = np.linalg.inv(object_to_world)
    normal_matrix = world_to_object[:3, :3].T
    return world_to_object, normal_matrix


@ti.func
def to_object_point(world_to_object: mat4, p: vec3) -> vec3:
    q = world_to_object @ vec4(p.x, p.y, p.z, 1.0)
    return vec3(q.x, q.y, q.z)


@ti.func
def to_object_vector(world_to_object: mat4, d: vec3) -> vec3:
    q = world_to_object @ vec4(d.x, d.y, d.z, 0.0)
    return vec3(q.x, q.y, q.z)


@ti.func
def to_world_record(
    rec: HitRecord, ray_origin: vec3, ray_direction: vec3, normal_matrix: mat3
) -> HitRecord:
    """Map an object-space hit back to world space.

    The facing of the normal is preserved by the normal matrix, so only
    the point and the normal length need fixing.
    """
    result = rec
    if rec.hit == 1:
        result.point = ray_origin + rec.t * ray_direction
        result.normal = tm.normalize(normal_matrix @ rec.normal)
    return result
