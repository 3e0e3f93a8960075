"""Image texture storage and nearest-texel sampling.

All images share one flat texel field; each image records its offset,
width and height. Texels are stored row-major with row 0 at the top of the
image, so a surface coordinate (u, v) samples texel (u*w, (1-v)*h).
"""

import numpy as np
import taichi as ti
import taichi.math as tm

vec3 = tm.vec3

# Capacity of the image store, in images and in texels across all images
MAX_IMAGES = 64
MAX_TEXELS = 1024 * 1024

image_texels = ti.Vector.field(3, dtype=ti.f32, shape=MAX_TEXELS)
image_offsets = ti.field(dtype=ti.i32, shape=MAX_IMAGES)
image_widths = ti.field(dtype=ti.i32, shape=MAX_IMAGES)
image_heights = ti.field(dtype=ti.i32, shape=MAX_IMAGES)
num_images = ti.field(dtype=ti.i32, shape=())
num_texels = ti.field(dtype=ti.i32, shape=())


def clear_images() -> None:
    num_images[None] = 0
    num_texels[None] = 0


@ti.kernel
def _upload_texels(offset: ti.i32, pixels: ti.types.ndarray(dtype=ti.f32, ndim=2)):
    for i in range(pixels.shape[0]):
        image_texels[offset + i] = vec3(pixels[i, 0], pixels[i, 1], pixels[i, 2])


def add_image(pixels: np.ndarray) -> int:
    """Upload an image and return its index.

    Args:
        pixels: float array of shape (height, width, 3) with values in [0, 1],
            row 0 at the top.

    Raises:
        RuntimeError: If the image or texel capacity is exceeded.
        ValueError: If the array is not (height, width, 3) or is empty.
    """
    if pixels.ndim != 3 or pixels.shape[2] != 3 or pixels.shape[0] == 0 or pixels.shape[1] == 0:
        raise ValueError(f"Expected a non-empty (height, width, 3) array, got {pixels.shape}")

    height, width = int(pixels.shape[0]), int(pixels.shape[1])
    idx = num_images[None]
    if idx >= MAX_IMAGES:
        raise RuntimeError(f"image store is full ({MAX_IMAGES} images)")
    offset = num_texels[None]
    if offset + width * height > MAX_TEXELS:
        raise RuntimeError(f"image store is full ({MAX_TEXELS} texels)")

    flat = np.ascontiguousarray(pixels.reshape(width * height, 3), dtype=np.float32)
    _upload_texels(offset, flat)

    image_offsets[idx] = offset
    image_widths[idx] = width
    image_heights[idx] = height
    num_texels[None] = offset + width * height
    num_images[None] = idx + 1
    return idx


@ti.func
def image_value(image: ti.i32, u: ti.f32, v: ti.f32) -> vec3:
    width = image_widths[image]
    height = image_heights[image]
    uc = tm.clamp(u, 0.0, 1.0)
    vc = 1.0 - tm.clamp(v, 0.0, 1.0)
    i = tm.clamp(ti.cast(uc * width, ti.i32), 0, width - 1)
    j = tm.clamp(ti.cast(vc * height, ti.i32), 0, height - 1)
    return image_texels[image_offsets[image] + j * width + i]
