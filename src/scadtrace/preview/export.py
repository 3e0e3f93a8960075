"""Image assembly and export for rendered blocks.

Rendered blocks arrive as row-major ``(r, g, b)`` byte triples that are
already gamma-corrected, so exporting is a matter of placing them in a
(height, width, 3) uint8 array and handing that to Pillow.

Example:
    >>> from scadtrace.preview.export import composite, save_png
    >>> image = composite(job.results, 64, 64)
    >>> save_png(image, "output.png")
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

import numpy as np
import numpy.typing as npt
from PIL import Image as PILImage

if TYPE_CHECKING:
    from scadtrace.render.scheduler import RenderResult


def composite(
    results: Iterable[RenderResult], width: int, height: int
) -> npt.NDArray[np.uint8]:
    """Place rendered blocks into an image; pixels never rendered stay black.

    Args:
        results: Rendered blocks, in any order.
        width: Image width in pixels.
        height: Image height in pixels.

    Returns:
        uint8 array of shape (height, width, 3).

    Raises:
        ValueError: If a block lies outside the image or has the wrong
            number of pixels.
    """
    image = np.zeros((height, width, 3), dtype=np.uint8)
    for result in results:
        b = result.bounds
        if not (0 <= b.xmin < b.xmax <= width and 0 <= b.ymin < b.ymax <= height):
            raise ValueError(f"Block {b} lies outside the {width}x{height} image")
        block_pixels = np.asarray(result.pixels, dtype=np.uint8)
        if block_pixels.shape != (b.width * b.height, 3):
            raise ValueError(
                f"Block {b} carries {len(result.pixels)} pixels, expected {b.width * b.height}"
            )
        image[b.ymin : b.ymax, b.xmin : b.xmax] = block_pixels.reshape(b.height, b.width, 3)
    return image


def save_png(image: npt.NDArray[np.uint8], filepath: str) -> None:
    """Save a (height, width, 3) uint8 image as an 8-bit RGB PNG."""
    pil_image = PILImage.fromarray(np.ascontiguousarray(image, dtype=np.uint8), mode="RGB")
    pil_image.save(filepath)


def load_rgba(filepath: str) -> tuple[int, int, bytes]:
    """Read an image file as (width, height, RGBA bytes) for use as a scene asset."""
    with PILImage.open(filepath) as pil_image:
        rgba = pil_image.convert("RGBA")
        return rgba.width, rgba.height, rgba.tobytes()


def compute_rmse(
    image_a: npt.NDArray[np.generic],
    image_b: npt.NDArray[np.generic],
) -> float:
    """Compute root mean squared error between two images.

    Raises:
        ValueError: If image shapes don't match.
    """
    if image_a.shape != image_b.shape:
        raise ValueError(f"Image shapes must match: {image_a.shape} vs {image_b.shape}")

    diff = image_a.astype(np.float64) - image_b.astype(np.float64)
    return float(np.sqrt(np.mean(diff**2)))
