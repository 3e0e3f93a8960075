"""Scene primitive tables and the closest-hit query.

This module stores every primitive of the scene in Taichi fields and answers
closest-hit queries over all of them, returning the hit together with the
primitive's material ID.

Spheres, boxes and cylinders are stored in their local (object-space) form
with a world-to-object matrix and a normal matrix per primitive. Quads are
baked to world space when the scene is built and are stored as-is.

Example:
    >>> import numpy as np
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from scadtrace.scene.intersection import add_sphere, add_quad, clear_scene
    >>> clear_scene()
    >>> add_sphere((0.0, 0.0, 0.0), 0.5, material_id=0, object_to_world=np.identity(4))
    >>> add_quad((-1, -1, -2), (2, 0, 0), (0, 2, 0), material_id=1)
    >>> # Use intersect_scene within a Taichi kernel
"""

import numpy as np
import taichi as ti
import taichi.math as tm

from scadtrace.geometry.box import Box, hit_box
from scadtrace.geometry.cylinder import Cylinder, hit_cylinder
from scadtrace.geometry.instance import (
    to_object_point,
    to_object_vector,
    to_world_record,
    world_to_object_matrices,
)
from scadtrace.geometry.quad import Quad, hit_quad
from scadtrace.geometry.sphere import HitRecord, Sphere, hit_sphere

# Type alias for 3D vectors using Taichi's math module
vec3 = tm.vec3


@ti.dataclass
class SceneHitRecord:
    """Record of a ray-scene intersection with material information.

    Attributes:
        hit: 1 if the ray intersected any primitive, 0 on a miss.
        t: Ray parameter of the closest intersection.
        point: World-space intersection point.
        normal: Unit world-space normal, facing against the ray.
        front_face: 1 if the ray hit the outside of the surface.
        u: First surface coordinate.
        v: Second surface coordinate.
        material_id: Unified material ID of the hit primitive; -1 on a miss.
    """

    hit: ti.i32
    t: ti.f32
    point: vec3
    normal: vec3
    front_face: ti.i32
    u: ti.f32
    v: ti.f32
    material_id: ti.i32


# Table capacities
MAX_SPHERES = 1024
MAX_BOXES = 1024
MAX_CYLINDERS = 1024
MAX_QUADS = 1024

# Sphere storage (object space)
sphere_centers = ti.Vector.field(3, dtype=ti.f32, shape=MAX_SPHERES)
sphere_radii = ti.field(dtype=ti.f32, shape=MAX_SPHERES)
sphere_world_to_object = ti.Matrix.field(4, 4, dtype=ti.f32, shape=MAX_SPHERES)
sphere_normal_matrices = ti.Matrix.field(3, 3, dtype=ti.f32, shape=MAX_SPHERES)
sphere_material_ids = ti.field(dtype=ti.i32, shape=MAX_SPHERES)
num_spheres = ti.field(dtype=ti.i32, shape=())

# Box storage (object space)
box_minimums = ti.Vector.field(3, dtype=ti.f32, shape=MAX_BOXES)
box_maximums = ti.Vector.field(3, dtype=ti.f32, shape=MAX_BOXES)
box_world_to_object = ti.Matrix.field(4, 4, dtype=ti.f32, shape=MAX_BOXES)
box_normal_matrices = ti.Matrix.field(3, 3, dtype=ti.f32, shape=MAX_BOXES)
box_material_ids = ti.field(dtype=ti.i32, shape=MAX_BOXES)
num_boxes = ti.field(dtype=ti.i32, shape=())

# Cylinder storage (object space): height, bottom radius, top radius, base z
cylinder_params = ti.Vector.field(4, dtype=ti.f32, shape=MAX_CYLINDERS)
cylinder_world_to_object = ti.Matrix.field(4, 4, dtype=ti.f32, shape=MAX_CYLINDERS)
cylinder_normal_matrices = ti.Matrix.field(3, 3, dtype=ti.f32, shape=MAX_CYLINDERS)
cylinder_material_ids = ti.field(dtype=ti.i32, shape=MAX_CYLINDERS)
num_cylinders = ti.field(dtype=ti.i32, shape=())

# Quad storage (world space)
quad_corners = ti.Vector.field(3, dtype=ti.f32, shape=MAX_QUADS)
quad_edge_u = ti.Vector.field(3, dtype=ti.f32, shape=MAX_QUADS)
quad_edge_v = ti.Vector.field(3, dtype=ti.f32, shape=MAX_QUADS)
quad_material_ids = ti.field(dtype=ti.i32, shape=MAX_QUADS)
num_quads = ti.field(dtype=ti.i32, shape=())


def clear_scene() -> None:
    """Clear all primitives from the scene.

    Resets the primitive counts to zero. The field data is overwritten when
    new primitives are added.
    """
    num_spheres[None] = 0
    num_boxes[None] = 0
    num_cylinders[None] = 0
    num_quads[None] = 0


def _store_transform(w2o_field, normal_field, idx: int, object_to_world) -> None:
    if object_to_world is None:
        matrix = np.identity(4)
    else:
        matrix = np.asarray(object_to_world, dtype=np.float64)
    world_to_object, normal_matrix = world_to_object_matrices(matrix)
    w2o_field[idx] = ti.Matrix(world_to_object.tolist())
    normal_field[idx] = ti.Matrix(normal_matrix.tolist())


def add_sphere(center, radius: float, material_id: int = 0, object_to_world=None) -> int:
    """Add a sphere to the scene.

    Args:
        center: Object-space center of the sphere.
        radius: Radius of the sphere. Non-positive radii never hit.
        material_id: The unified material ID of this sphere.
        object_to_world: 4x4 transform; identity when omitted.

    Returns:
        The index of the added sphere.

    Raises:
        RuntimeError: If the sphere table is full.
        ValueError: If the transform is singular.
    """
    idx = num_spheres[None]
    if idx >= MAX_SPHERES:
        raise RuntimeError(f"sphere table is full ({MAX_SPHERES} entries)")
    _store_transform(sphere_world_to_object, sphere_normal_matrices, idx, object_to_world)
    sphere_centers[idx] = vec3(center[0], center[1], center[2])
    sphere_radii[idx] = radius
    sphere_material_ids[idx] = material_id
    num_spheres[None] = idx + 1
    return idx


def add_box(minimum, maximum, material_id: int = 0, object_to_world=None) -> int:
    """Add an axis-aligned (in object space) box to the scene.

    Raises:
        RuntimeError: If the box table is full.
        ValueError: If the transform is singular.
    """
    idx = num_boxes[None]
    if idx >= MAX_BOXES:
        raise RuntimeError(f"box table is full ({MAX_BOXES} entries)")
    _store_transform(box_world_to_object, box_normal_matrices, idx, object_to_world)
    box_minimums[idx] = vec3(minimum[0], minimum[1], minimum[2])
    box_maximums[idx] = vec3(maximum[0], maximum[1], maximum[2])
    box_material_ids[idx] = material_id
    num_boxes[None] = idx + 1
    return idx


def add_cylinder(
    height: float,
    radius_bottom: float,
    radius_top: float,
    base_z: float = 0.0,
    material_id: int = 0,
    object_to_world=None,
) -> int:
    """Add a z-aligned cone frustum to the scene.

    Raises:
        RuntimeError: If the cylinder table is full.
        ValueError: If the transform is singular.
    """
    idx = num_cylinders[None]
    if idx >= MAX_CYLINDERS:
        raise RuntimeError(f"cylinder table is full ({MAX_CYLINDERS} entries)")
    _store_transform(cylinder_world_to_object, cylinder_normal_matrices, idx, object_to_world)
    cylinder_params[idx] = tm.vec4(height, radius_bottom, radius_top, base_z)
    cylinder_material_ids[idx] = material_id
    num_cylinders[None] = idx + 1
    return idx


def add_quad(q, u, v, material_id: int = 0) -> int:
    """Add a world-space quad to the scene.

    The quad represents a parallelogram with vertices at Q, Q+u, Q+v, Q+u+v.

    Raises:
        RuntimeError: If the quad table is full.
    """
    idx = num_quads[None]
    if idx >= MAX_QUADS:
        raise RuntimeError(f"quad table is full ({MAX_QUADS} entries)")
    quad_corners[idx] = vec3(q[0], q[1], q[2])
    quad_edge_u[idx] = vec3(u[0], u[1], u[2])
    quad_edge_v[idx] = vec3(v[0], v[1], v[2])
    quad_material_ids[idx] = material_id
    num_quads[None] = idx + 1
    return idx


def get_sphere_count() -> int:
    return int(num_spheres[None])


def get_box_count() -> int:
    return int(num_boxes[None])


def get_cylinder_count() -> int:
    return int(num_cylinders[None])


def get_quad_count() -> int:
    return int(num_quads[None])


def get_primitive_count() -> int:
    """Get the total number of primitives of all kinds."""
    return get_sphere_count() + get_box_count() + get_cylinder_count() + get_quad_count()


@ti.func
def _to_scene_record(rec: HitRecord, material_id: ti.i32) -> SceneHitRecord:
    return SceneHitRecord(
        hit=rec.hit,
        t=rec.t,
        point=rec.point,
        normal=rec.normal,
        front_face=rec.front_face,
        u=rec.u,
        v=rec.v,
        material_id=material_id,
    )


@ti.func
def _make_miss_record() -> SceneHitRecord:
    return SceneHitRecord(
        hit=0,
        t=0.0,
        point=vec3(0.0, 0.0, 0.0),
        normal=vec3(0.0, 0.0, 0.0),
        front_face=0,
        u=0.0,
        v=0.0,
        material_id=-1,
    )


@ti.func
def intersect_scene(
    ray_origin: vec3,
    ray_direction: vec3,
    t_min: ti.f32,
    t_max: ti.f32,
) -> SceneHitRecord:
    """Find the closest hit along a world-space ray.

    Each transformed primitive is intersected in its own object space; the
    object-space direction is not renormalized, so the returned t values of
    all primitives are comparable.

    Args:
        ray_origin: The starting point of the ray.
        ray_direction: The direction vector of the ray.
        t_min: Exclusive lower bound on t.
        t_max: Exclusive upper bound on t.

    Returns:
        The closest intersection, or a miss record.
    """
    closest_t = t_max
    result = _make_miss_record()

    for i in range(num_spheres[None]):
        w2o = sphere_world_to_object[i]
        local_origin = to_object_point(w2o, ray_origin)
        local_direction = to_object_vector(w2o, ray_direction)
        sphere = Sphere(center=sphere_centers[i], radius=sphere_radii[i])
        rec = hit_sphere(local_origin, local_direction, sphere, t_min, closest_t)
        if rec.hit == 1:
            closest_t = rec.t
            rec = to_world_record(rec, ray_origin, ray_direction, sphere_normal_matrices[i])
            result = _to_scene_record(rec, sphere_material_ids[i])

    for i in range(num_boxes[None]):
        w2o = box_world_to_object[i]
        local_origin = to_object_point(w2o, ray_origin)
        local_direction = to_object_vector(w2o, ray_direction)
        box = Box(minimum=box_minimums[i], maximum=box_maximums[i])
        rec = hit_box(local_origin, local_direction, box, t_min, closest_t)
        if rec.hit == 1:
            closest_t = rec.t
            rec = to_world_record(rec, ray_origin, ray_direction, box_normal_matrices[i])
            result = _to_scene_record(rec, box_material_ids[i])

    for i in range(num_cylinders[None]):
        w2o = cylinder_world_to_object[i]
        local_origin = to_object_point(w2o, ray_origin)
        local_direction = to_object_vector(w2o, ray_direction)
        params = cylinder_params[i]
        cylinder = Cylinder(
            height=params[0], radius_bottom=params[1], radius_top=params[2], base_z=params[3]
        )
        rec = hit_cylinder(local_origin, local_direction, cylinder, t_min, closest_t)
        if rec.hit == 1:
            closest_t = rec.t
            rec = to_world_record(rec, ray_origin, ray_direction, cylinder_normal_matrices[i])
            result = _to_scene_record(rec, cylinder_material_ids[i])

    for i in range(num_quads[None]):
        quad = Quad(Q=quad_corners[i], u=quad_edge_u[i], v=quad_edge_v[i])
        rec = hit_quad(ray_origin, ray_direction, quad, t_min, closest_t)
        if rec.hit == 1:
            closest_t = rec.t
            result = _to_scene_record(rec, quad_material_ids[i])

    return result
