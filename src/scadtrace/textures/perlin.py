"""Perlin gradient noise and the marbled turbulence texture.

Each Perlin texture owns a table of 256 random unit gradients and three
permutations of 0..255, built on the host with numpy from the texture's
seed. Noise is trilinearly interpolated with Hermite smoothing over the
gradients at the eight corners of the lattice cell.

Turbulence sums ``depth`` octaves with weight halving and frequency
doubling. The marble texture is gray ``0.5 * (1 + sin(scale*z + 10*turb))``.
"""

import numpy as np
import taichi as ti
import taichi.math as tm

vec3 = tm.vec3

POINT_COUNT = 256

# Capacity of the Perlin table store; each Perlin texture owns one table
MAX_PERLIN_TABLES = 1024

perlin_gradients = ti.Vector.field(3, dtype=ti.f32, shape=(MAX_PERLIN_TABLES, POINT_COUNT))
perlin_perm_x = ti.field(dtype=ti.i32, shape=(MAX_PERLIN_TABLES, POINT_COUNT))
perlin_perm_y = ti.field(dtype=ti.i32, shape=(MAX_PERLIN_TABLES, POINT_COUNT))
perlin_perm_z = ti.field(dtype=ti.i32, shape=(MAX_PERLIN_TABLES, POINT_COUNT))
num_perlin_tables = ti.field(dtype=ti.i32, shape=())


def build_perlin_tables(seed: int) -> tuple[np.ndarray, np.ndarray]:
    """Build (gradients (256, 3), permutations (3, 256)) for a seed."""
    rng = np.random.default_rng(seed)
    gradients = rng.uniform(-1.0, 1.0, size=(POINT_COUNT, 3))
    norms = np.linalg.norm(gradients, axis=1, keepdims=True)
    gradients = gradients / np.maximum(norms, 1e-12)
    permutations = np.stack([rng.permutation(POINT_COUNT) for _ in range(3)])
    return gradients.astype(np.float32), permutations.astype(np.int32)


def clear_perlin_tables() -> None:
    num_perlin_tables[None] = 0


@ti.kernel
def _upload_table(
    idx: ti.i32, gradients: ti.types.ndarray(), permutations: ti.types.ndarray()
):
    for i in range(POINT_COUNT):
        perlin_gradients[idx, i] = vec3(gradients[i, 0], gradients[i, 1], gradients[i, 2])
        perlin_perm_x[idx, i] = permutations[0, i]
        perlin_perm_y[idx, i] = permutations[1, i]
        perlin_perm_z[idx, i] = permutations[2, i]


def add_perlin_table(seed: int) -> int:
    """Upload the tables for ``seed`` and return their index.

    Raises:
        RuntimeError: If the table store is full.
    """
    idx = num_perlin_tables[None]
    if idx >= MAX_PERLIN_TABLES:
        raise RuntimeError(f"Perlin table store is full ({MAX_PERLIN_TABLES} entries)")

    gradients, permutations = build_perlin_tables(seed)
    _upload_table(idx, gradients, permutations)

    num_perlin_tables[None] = idx + 1
    return idx


@ti.func
def perlin_noise(table: ti.i32, p: vec3) -> ti.f32:
    """Gradient noise in roughly [-1, 1]."""
    fx = p.x - ti.floor(p.x)
    fy = p.y - ti.floor(p.y)
    fz = p.z - ti.floor(p.z)

    i = ti.cast(ti.floor(p.x), ti.i32)
    j = ti.cast(ti.floor(p.y), ti.i32)
    k = ti.cast(ti.floor(p.z), ti.i32)

    uu = fx * fx * (3.0 - 2.0 * fx)
    vv = fy * fy * (3.0 - 2.0 * fy)
    ww = fz * fz * (3.0 - 2.0 * fz)

    accum = 0.0
    for di, dj, dk in ti.static(ti.ndrange(2, 2, 2)):
        index = (
            perlin_perm_x[table, (i + di) & 255]
            ^ perlin_perm_y[table, (j + dj) & 255]
            ^ perlin_perm_z[table, (k + dk) & 255]
        )
        gradient = perlin_gradients[table, index]
        weight = vec3(fx - di, fy - dj, fz - dk)
        accum += (
            (di * uu + (1 - di) * (1.0 - uu))
            * (dj * vv + (1 - dj) * (1.0 - vv))
            * (dk * ww + (1 - dk) * (1.0 - ww))
            * tm.dot(gradient, weight)
        )
    return accum


@ti.func
def perlin_turbulence(table: ti.i32, p: vec3, depth: ti.i32) -> ti.f32:
    accum = 0.0
    temp_p = p
    weight = 1.0
    for _ in range(depth):
        accum += weight * perlin_noise(table, temp_p)
        weight *= 0.5
        temp_p *= 2.0
    return ti.abs(accum)


@ti.func
def marble_value(table: ti.i32, scale: ti.f32, depth: ti.i32, p: vec3) -> vec3:
    gray = 0.5 * (1.0 + ti.sin(scale * p.z + 10.0 * perlin_turbulence(table, p, depth)))
    return vec3(gray, gray, gray)
