"""Camera module for primary ray generation.

Components:
    thin_lens: Look-at camera with vertical field of view and defocus disk

Pixel coordinates start at the top-left corner: x grows to the right and
y grows downward.
"""

from .thin_lens import (
    get_background,
    get_camera_info,
    get_image_size,
    get_max_depth,
    get_ray,
    get_samples_per_pixel,
    setup_camera,
)

__all__ = [
    "setup_camera",
    "get_ray",
    "get_camera_info",
    "get_image_size",
    "get_background",
    "get_samples_per_pixel",
    "get_max_depth",
]
