"""Thin-lens look-at camera for primary ray generation.

The camera is configured from a :class:`scadtrace.scene.model.Camera`:
- Look-at positioning (look_from, look_at, up)
- Vertical field of view in degrees
- Image size in pixels, which also fixes the aspect ratio
- Optional defocus blur through a lens disk of angle ``defocus_angle``

The camera builds an orthonormal basis (u, v, w) from the view parameters:
- w: points from look_at toward look_from (opposite view direction)
- u: points right in the image plane
- v: points up in the image plane

The viewport lies at ``focus_distance`` in front of the camera. Pixel (0, 0)
is the top-left pixel of the image. With ``defocus_angle <= 0`` every ray
starts exactly at the camera center.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from scadtrace.scene.model import Camera
    >>> from scadtrace.camera.thin_lens import setup_camera, get_ray
    >>> setup_camera(Camera(image_width=64, image_height=48))
    >>> @ti.kernel
    ... def primary() -> ti.f32:
    ...     ray = get_ray(0, 32, 24)
    ...     return ray.direction.norm()
"""

import math

import numpy as np
import taichi as ti
import taichi.math as tm

from scadtrace.core.ray import Ray, random_f32, random_in_unit_disk, vec3
from scadtrace.scene.model import Camera

# =============================================================================
# Taichi Fields for Camera State
# =============================================================================

_camera_center = ti.Vector.field(3, dtype=ti.f32, shape=())

# Location of the center of pixel (0, 0) and the offsets between pixels
_pixel00 = ti.Vector.field(3, dtype=ti.f32, shape=())
_pixel_delta_u = ti.Vector.field(3, dtype=ti.f32, shape=())
_pixel_delta_v = ti.Vector.field(3, dtype=ti.f32, shape=())

# Defocus disk basis, scaled by the disk radius
_defocus_disk_u = ti.Vector.field(3, dtype=ti.f32, shape=())
_defocus_disk_v = ti.Vector.field(3, dtype=ti.f32, shape=())
_defocus_angle = ti.field(dtype=ti.f32, shape=())

_image_width = ti.field(dtype=ti.i32, shape=())
_image_height = ti.field(dtype=ti.i32, shape=())
_samples_per_pixel = ti.field(dtype=ti.i32, shape=())
_max_depth = ti.field(dtype=ti.i32, shape=())
_background = ti.Vector.field(3, dtype=ti.f32, shape=())


# =============================================================================
# Camera Setup (Python-side)
# =============================================================================


def _camera_basis(camera: Camera) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    look_from = np.array(camera.look_from, dtype=np.float64)
    look_at = np.array(camera.look_at, dtype=np.float64)
    up = np.array(camera.up, dtype=np.float64)

    w = look_from - look_at
    w_len = np.linalg.norm(w)
    if w_len == 0.0:
        raise ValueError("Camera look_from and look_at must differ.")
    w = w / w_len

    u = np.cross(up, w)
    u_len = np.linalg.norm(u)
    if u_len < 1e-12:
        # up is parallel to the view direction; pick any perpendicular axis
        fallback = np.array([1.0, 0.0, 0.0]) if abs(w[0]) < 0.9 else np.array([0.0, 1.0, 0.0])
        u = np.cross(fallback, w)
        u_len = np.linalg.norm(u)
    u = u / u_len

    v = np.cross(w, u)
    return u, v, w


def setup_camera(camera: Camera) -> None:
    """Initialize camera state from a scene camera.

    Computes the orthonormal basis, the viewport at the focus distance and the
    defocus disk. This must be called before rendering.

    Args:
        camera: The scene's active camera.

    Raises:
        ValueError: If the image size is not positive or look_from equals
            look_at.
    """
    if camera.image_width < 1 or camera.image_height < 1:
        raise ValueError(
            f"Image size {camera.image_width}x{camera.image_height} must be positive."
        )

    u, v, w = _camera_basis(camera)
    center = np.array(camera.look_from, dtype=np.float64)

    theta = math.radians(camera.vertical_fov)
    h = math.tan(theta / 2.0)
    viewport_height = 2.0 * h * camera.focus_distance
    viewport_width = viewport_height * camera.image_width / camera.image_height

    # Viewport edges: across the image and down the image
    viewport_u = viewport_width * u
    viewport_v = -viewport_height * v

    delta_u = viewport_u / camera.image_width
    delta_v = viewport_v / camera.image_height

    upper_left = center - camera.focus_distance * w - viewport_u / 2.0 - viewport_v / 2.0
    pixel00 = upper_left + 0.5 * (delta_u + delta_v)

    radius = camera.defocus_radius

    _camera_center[None] = center.tolist()
    _pixel00[None] = pixel00.tolist()
    _pixel_delta_u[None] = delta_u.tolist()
    _pixel_delta_v[None] = delta_v.tolist()
    _defocus_disk_u[None] = (u * radius).tolist()
    _defocus_disk_v[None] = (v * radius).tolist()
    _defocus_angle[None] = camera.defocus_angle

    _image_width[None] = camera.image_width
    _image_height[None] = camera.image_height
    _samples_per_pixel[None] = camera.samples_per_pixel
    _max_depth[None] = camera.max_depth
    _background[None] = list(camera.background)


# =============================================================================
# Ray Generation
# =============================================================================


@ti.func
def get_ray(slot: ti.i32, px: ti.i32, py: ti.i32) -> Ray:
    """Generate a jittered primary ray through pixel (px, py).

    The sample point is uniformly jittered within the pixel square and the
    origin is sampled on the defocus disk when defocus is enabled.

    Args:
        slot: Random stream of the pixel being rendered.
        px: Pixel column (0 = left).
        py: Pixel row (0 = top).
    """
    offset_x = random_f32(slot) - 0.5
    offset_y = random_f32(slot) - 0.5
    pixel_sample = (
        _pixel00[None]
        + (ti.cast(px, ti.f32) + offset_x) * _pixel_delta_u[None]
        + (ti.cast(py, ti.f32) + offset_y) * _pixel_delta_v[None]
    )

    origin = _camera_center[None]
    if _defocus_angle[None] > 0.0:
        p = random_in_unit_disk(slot)
        origin = origin + p.x * _defocus_disk_u[None] + p.y * _defocus_disk_v[None]

    return Ray(origin=origin, direction=pixel_sample - origin)


@ti.func
def get_background() -> vec3:
    return _background[None]


@ti.func
def get_samples_per_pixel() -> ti.i32:
    return _samples_per_pixel[None]


@ti.func
def get_max_depth() -> ti.i32:
    return _max_depth[None]


def get_image_size() -> tuple[int, int]:
    """Return the configured (width, height) in pixels."""
    return int(_image_width[None]), int(_image_height[None])


def get_camera_info() -> dict[str, tuple[float, float, float]]:
    """Get current camera state for debugging."""

    def _as_tuple(field):
        value = field[None]
        return (float(value[0]), float(value[1]), float(value[2]))

    return {
        "center": _as_tuple(_camera_center),
        "pixel00": _as_tuple(_pixel00),
        "delta_u": _as_tuple(_pixel_delta_u),
        "delta_v": _as_tuple(_pixel_delta_v),
        "defocus_disk_u": _as_tuple(_defocus_disk_u),
        "defocus_disk_v": _as_tuple(_defocus_disk_v),
    }
