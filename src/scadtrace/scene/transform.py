"""Affine transform helpers for the evaluator's transform context.

All matrices are 4x4 ``float64`` numpy arrays acting on column vectors, so a
child transform composes as ``parent @ child``.
"""

from __future__ import annotations

import math

import numpy as np
import numpy.typing as npt

Matrix = npt.NDArray[np.float64]


def identity() -> Matrix:
    return np.identity(4)


def translation(offset) -> Matrix:
    m = np.identity(4)
    m[:3, 3] = offset
    return m


def scaling(factors) -> Matrix:
    m = np.identity(4)
    m[0, 0], m[1, 1], m[2, 2] = factors
    return m


def rotation_x(degrees: float) -> Matrix:
    c, s = _cos_sin(degrees)
    m = np.identity(4)
    m[1, 1], m[1, 2] = c, -s
    m[2, 1], m[2, 2] = s, c
    return m


def rotation_y(degrees: float) -> Matrix:
    c, s = _cos_sin(degrees)
    m = np.identity(4)
    m[0, 0], m[0, 2] = c, s
    m[2, 0], m[2, 2] = -s, c
    return m


def rotation_z(degrees: float) -> Matrix:
    c, s = _cos_sin(degrees)
    m = np.identity(4)
    m[0, 0], m[0, 1] = c, -s
    m[1, 0], m[1, 1] = s, c
    return m


def rotation_xyz(angles) -> Matrix:
    """Rotate about x, then y, then z (OpenSCAD ``rotate([ax, ay, az])``)."""
    ax, ay, az = angles
    return rotation_z(az) @ rotation_y(ay) @ rotation_x(ax)


def rotation_axis(degrees: float, axis) -> Matrix:
    """Rotate ``degrees`` about an arbitrary axis (Rodrigues' formula).

    A zero-length axis yields the identity.
    """
    axis = np.asarray(axis, dtype=np.float64)
    norm = np.linalg.norm(axis)
    if norm < 1e-12:
        return np.identity(4)
    x, y, z = axis / norm
    c, s = _cos_sin(degrees)
    t = 1.0 - c
    m = np.identity(4)
    m[:3, :3] = [
        [t * x * x + c, t * x * y - s * z, t * x * z + s * y],
        [t * x * y + s * z, t * y * y + c, t * y * z - s * x],
        [t * x * z - s * y, t * y * z + s * x, t * z * z + c],
    ]
    return m


def transform_point(m: Matrix, p) -> tuple[float, float, float]:
    r = m @ np.array([p[0], p[1], p[2], 1.0])
    return (float(r[0]), float(r[1]), float(r[2]))


def transform_vector(m: Matrix, v) -> tuple[float, float, float]:
    r = m[:3, :3] @ np.asarray(v, dtype=np.float64)
    return (float(r[0]), float(r[1]), float(r[2]))


def is_invertible(m: Matrix) -> bool:
    return abs(np.linalg.det(m[:3, :3])) > 1e-12


def _cos_sin(degrees: float) -> tuple[float, float]:
    if not math.isfinite(degrees):
        raise ValueError(f"Rotation angle {degrees} is not finite.")
    # Exact values at multiples of 90 degrees keep axis-aligned scenes exact.
    quarter = degrees / 90.0
    if quarter == int(quarter):
        return [(1.0, 0.0), (0.0, 1.0), (-1.0, 0.0), (0.0, -1.0)][int(quarter) % 4]
    radians = math.radians(degrees)
    return math.cos(radians), math.sin(radians)
