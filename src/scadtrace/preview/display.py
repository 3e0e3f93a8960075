"""Matplotlib-based preview of rendered images.

Example:
    >>> from scadtrace.preview.display import show_image
    >>> show_image(job.wait(), title="scene.scad")
"""

from __future__ import annotations

import numpy as np
import numpy.typing as npt


def show_image(
    image: npt.NDArray[np.uint8],
    *,
    title: str | None = None,
    figsize: tuple[float, float] = (8, 8),
    block: bool = True,
) -> None:
    """Display a (height, width, 3) uint8 image in a Matplotlib window.

    Args:
        image: The rendered image.
        title: Figure title (default shows the image size).
        figsize: Figure size in inches (width, height).
        block: Whether to block execution until the figure is closed.
    """
    import matplotlib.pyplot as plt

    fig, ax = plt.subplots(1, 1, figsize=figsize)
    ax.imshow(image)
    ax.axis("off")
    height, width = image.shape[:2]
    ax.set_title(title if title is not None else f"Render Preview - {width}x{height}")

    plt.tight_layout()
    plt.show(block=block)


def show_progress(
    image: npt.NDArray[np.uint8],
    progress: float,
    *,
    figsize: tuple[float, float] = (8, 8),
):
    """Draw a partially rendered image without blocking; returns the figure.

    Call repeatedly while blocks arrive; the same figure is reused.
    """
    import matplotlib.pyplot as plt

    fig = plt.figure("scadtrace", figsize=figsize)
    fig.clf()
    ax = fig.add_subplot(1, 1, 1)
    ax.imshow(image)
    ax.axis("off")
    ax.set_title(f"Rendering... {100.0 * progress:.0f}%")
    plt.pause(0.001)
    return fig
