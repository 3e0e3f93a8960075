"""Geometry module for shape primitives.

Components:
    sphere: Sphere primitive and the shared HitRecord
    box: Axis-aligned box (slab test)
    cylinder: z-aligned cone frustum with end caps
    quad: Parallelogram primitive
    instance: World/object space mapping for transformed primitives

All intersection routines are Taichi functions (@ti.func) that accept hits
only in the open interval (t_min, t_max) and return a HitRecord whose normal
faces against the ray.
"""

from .box import Box, hit_box
from .cylinder import Cylinder, hit_cylinder
from .instance import to_object_point, to_object_vector, to_world_record, world_to_object_matrices
from .quad import Quad, hit_quad
from .sphere import HitRecord, Sphere, hit_sphere

__all__ = [
    "HitRecord",
    "Sphere",
    "hit_sphere",
    "Box",
    "hit_box",
    "Cylinder",
    "hit_cylinder",
    "Quad",
    "hit_quad",
    "world_to_object_matrices",
    "to_object_point",
    "to_object_vector",
    "to_world_record",
]
