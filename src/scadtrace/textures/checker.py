"""Solid 3-D checker texture.

The texture partitions space into cubes of side ``scale``. A point is in an
even cube when floor(x/scale) + floor(y/scale) + floor(z/scale) is even.
"""

import taichi as ti
import taichi.math as tm

vec3 = tm.vec3


@ti.func
def checker_value(scale: ti.f32, even: vec3, odd: vec3, p: vec3) -> vec3:
    inv_scale = 1.0 / scale
    x = ti.cast(ti.floor(inv_scale * p.x), ti.i32)
    y = ti.cast(ti.floor(inv_scale * p.y), ti.i32)
    z = ti.cast(ti.floor(inv_scale * p.z), ti.i32)
    result = odd
    if (x + y + z) % 2 == 0:
        result = even
    return result
