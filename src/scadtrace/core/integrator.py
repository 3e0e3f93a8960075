"""Path tracing integrator and tile rendering.

This module implements the rendering kernel: for every pixel of a tile it
averages ``samples_per_pixel`` path-traced samples, replaces non-finite
channels with zero, gamma-corrects and quantizes to bytes.

Depth semantics of a path:
    - A ray that misses all geometry returns the background color, including
      a ray scattered from the last allowed bounce.
    - A ray that hits a surface at ``depth >= max_depth`` contributes black.
    - Otherwise the hit contributes ``emitted + attenuation * next``.

Every pixel seeds its own random stream from ``(seed, x, y)`` before
tracing, so the color of a pixel is independent of how the image is split
into blocks.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from scadtrace.lang import load_scene
    >>> from scadtrace.scene.manager import SceneManager
    >>> from scadtrace.core.integrator import render_block
    >>> SceneManager().load(load_scene("camera(image_width=8, image_height=8);"))
    >>> pixels = render_block(0, 8, 0, 8, seed=0)  # (8, 8, 3) uint8
"""

import numpy as np
import taichi as ti
import taichi.math as tm

from scadtrace.camera.thin_lens import (
    get_background,
    get_image_size,
    get_max_depth,
    get_ray,
    get_samples_per_pixel,
)
from scadtrace.core.ray import MAX_RNG_STREAMS, seed_stream
from scadtrace.materials.dielectric import get_dielectric_ior, scatter_dielectric
from scadtrace.materials.diffuse_light import get_diffuse_light_emission
from scadtrace.materials.lambertian import get_lambertian_texture_id, scatter_lambertian
from scadtrace.materials.metal import get_metal_albedo, get_metal_fuzz, scatter_metal
from scadtrace.scene.intersection import SceneHitRecord, intersect_scene
from scadtrace.scene.manager import MaterialType, get_material_type, get_material_type_index
from scadtrace.textures.texture import texture_value

# Type alias for 3D vectors
vec3 = tm.vec3

# =============================================================================
# Rendering Constants
# =============================================================================

# t_min and t_max for ray intersection
T_MIN = 1e-3
T_MAX = 1e10

# Largest tile rendered by one kernel launch; one random stream per pixel
MAX_TILE_SIZE = 256
assert MAX_TILE_SIZE * MAX_TILE_SIZE <= MAX_RNG_STREAMS

# Quantized colors of the tile being rendered, indexed (x, y) within the tile
_tile = ti.Vector.field(3, dtype=ti.i32, shape=(MAX_TILE_SIZE, MAX_TILE_SIZE))


# =============================================================================
# Material Dispatch
# =============================================================================


@ti.func
def _scatter_material(slot: ti.i32, rec: SceneHitRecord, incident_direction: vec3):
    """Dispatch to the scattering function of the hit material.

    Returns:
        A tuple of (scattered_direction, attenuation, did_scatter) where
        did_scatter is 0 if the ray was absorbed.
    """
    mat_type = get_material_type(rec.material_id)
    type_index = get_material_type_index(rec.material_id)

    scattered_direction = vec3(0.0, 0.0, 0.0)
    attenuation = vec3(0.0, 0.0, 0.0)
    did_scatter = 0

    if mat_type == int(MaterialType.LAMBERTIAN):
        texture_id = get_lambertian_texture_id(type_index)
        attenuation = texture_value(texture_id, rec.u, rec.v, rec.point)
        scattered_direction, did_scatter = scatter_lambertian(slot, rec.normal)

    elif mat_type == int(MaterialType.METAL):
        scattered_direction, attenuation, did_scatter = scatter_metal(
            slot,
            get_metal_albedo(type_index),
            get_metal_fuzz(type_index),
            incident_direction,
            rec.normal,
        )

    elif mat_type == int(MaterialType.DIELECTRIC):
        scattered_direction, attenuation, did_scatter = scatter_dielectric(
            slot, get_dielectric_ior(type_index), incident_direction, rec.normal, rec.front_face
        )

    return scattered_direction, attenuation, did_scatter


@ti.func
def _emitted(material_id: ti.i32) -> vec3:
    emission = vec3(0.0, 0.0, 0.0)
    if get_material_type(material_id) == int(MaterialType.DIFFUSE_LIGHT):
        emission = get_diffuse_light_emission(get_material_type_index(material_id))
    return emission


# =============================================================================
# Path Tracing Core
# =============================================================================


@ti.func
def trace_ray(slot: ti.i32, origin: vec3, direction: vec3, max_depth: ti.i32) -> vec3:
    """Trace one path and return its radiance.

    The recursion ``emitted + attenuation * trace(scattered, depth + 1)`` is
    unrolled into a loop that carries the path throughput.

    Args:
        slot: Random stream of the pixel being rendered.
        origin: Ray origin.
        direction: Ray direction (not necessarily unit length).
        max_depth: Number of surface interactions allowed.
    """
    radiance = vec3(0.0, 0.0, 0.0)
    throughput = vec3(1.0, 1.0, 1.0)
    ray_origin = origin
    ray_direction = direction
    depth = 0
    active = 1

    while active == 1:
        rec = intersect_scene(ray_origin, ray_direction, T_MIN, T_MAX)

        if rec.hit == 0:
            radiance += throughput * get_background()
            active = 0
        elif depth >= max_depth:
            active = 0
        else:
            radiance += throughput * _emitted(rec.material_id)
            scattered_direction, attenuation, did_scatter = _scatter_material(
                slot, rec, ray_direction
            )
            if did_scatter == 0:
                active = 0
            else:
                throughput *= attenuation
                ray_origin = rec.point
                ray_direction = scattered_direction
                depth += 1

    return radiance


@ti.func
def quantize(color: vec3) -> tm.ivec3:
    """Map a linear color to bytes: non-finite to 0, sqrt gamma, clamp, scale."""
    result = tm.ivec3(0, 0, 0)
    for c in ti.static(range(3)):
        value = color[c]
        if tm.isnan(value) or tm.isinf(value):
            value = 0.0
        value = tm.clamp(ti.sqrt(tm.max(value, 0.0)), 0.0, 0.999)
        result[c] = ti.cast(256.0 * value, ti.i32)
    return result


# =============================================================================
# Rendering Kernels
# =============================================================================


@ti.kernel
def _render_tile(xmin: ti.i32, ymin: ti.i32, width: ti.i32, height: ti.i32, seed: ti.i32):
    spp = get_samples_per_pixel()
    max_depth = get_max_depth()

    for i, j in ti.ndrange(width, height):
        slot = j * MAX_TILE_SIZE + i
        px = xmin + i
        py = ymin + j
        seed_stream(slot, seed, px, py)

        color = vec3(0.0, 0.0, 0.0)
        for _ in range(spp):
            ray = get_ray(slot, px, py)
            sample = trace_ray(slot, ray.origin, ray.direction, max_depth)

            # Check for NaN/Inf and replace with zero
            for c in ti.static(range(3)):
                if tm.isnan(sample[c]) or tm.isinf(sample[c]):
                    sample[c] = 0.0
            color += sample

        _tile[i, j] = quantize(color / ti.cast(spp, ti.f32))


# =============================================================================
# Public Rendering API
# =============================================================================


def render_block(xmin: int, xmax: int, ymin: int, ymax: int, seed: int = 0) -> np.ndarray:
    """Render the pixels ``[xmin, xmax) x [ymin, ymax)`` of the loaded scene.

    Blocks larger than MAX_TILE_SIZE are rendered in several kernel launches.

    Args:
        xmin: First column (inclusive).
        xmax: Last column (exclusive).
        ymin: First row (inclusive), 0 being the top row.
        ymax: Last row (exclusive).
        seed: Render seed mixed into every pixel's random stream.

    Returns:
        uint8 array of shape (ymax - ymin, xmax - xmin, 3).

    Raises:
        ValueError: If the block is empty or outside the image.
    """
    width, height = get_image_size()
    if not (0 <= xmin < xmax <= width and 0 <= ymin < ymax <= height):
        raise ValueError(
            f"Block x=[{xmin}, {xmax}) y=[{ymin}, {ymax}) is outside the {width}x{height} image"
        )

    out = np.zeros((ymax - ymin, xmax - xmin, 3), dtype=np.uint8)
    for y0 in range(ymin, ymax, MAX_TILE_SIZE):
        for x0 in range(xmin, xmax, MAX_TILE_SIZE):
            w = min(MAX_TILE_SIZE, xmax - x0)
            h = min(MAX_TILE_SIZE, ymax - y0)
            _render_tile(x0, y0, w, h, seed)
            tile = _tile.to_numpy()[:w, :h, :]
            # Transpose from (x, y, 3) to (row, column, 3)
            out[y0 - ymin : y0 - ymin + h, x0 - xmin : x0 - xmin + w] = np.transpose(
                tile, (1, 0, 2)
            ).astype(np.uint8)
    return out


def render_pixel(x: int, y: int, seed: int = 0) -> tuple[int, int, int]:
    """Render a single pixel and return its (r, g, b) bytes."""
    r, g, b = render_block(x, x + 1, y, y + 1, seed)[0, 0]
    return (int(r), int(g), int(b))
