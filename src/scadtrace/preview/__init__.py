"""Preview module for output and visualization.

Components:
    display: Matplotlib-based preview windows
    export: Compositing rendered blocks and PNG export via Pillow

Example:
    >>> from scadtrace.preview import composite, save_png, show_image
    >>> image = composite(job.results, 64, 64)
    >>> save_png(image, "output.png")
    >>> show_image(image)
"""

from scadtrace.preview.display import show_image, show_progress
from scadtrace.preview.export import composite, compute_rmse, load_rgba, save_png

__all__ = [
    # Display functions
    "show_image",
    "show_progress",
    # Export functions
    "composite",
    "compute_rmse",
    "load_rgba",
    "save_png",
]
