"""Unit tests for image assembly, export and display.

Tests cover:
- Compositing rendered blocks into an image
- PNG export and RGBA loading
- RMSE computation
- Matplotlib display on a non-interactive backend
- Module exports
"""

import numpy as np
import pytest
from PIL import Image as PILImage

from scadtrace.render.scheduler import Bounds, RenderResult


def _block(xmin, xmax, ymin, ymax, color):
    count = (xmax - xmin) * (ymax - ymin)
    return RenderResult(Bounds(xmin, xmax, ymin, ymax), (color,) * count)


class TestComposite:
    """Test placing blocks into an image."""

    def test_blocks_in_any_order(self):
        """Test that blocks land at their bounds regardless of arrival order."""
        from scadtrace.preview.export import composite

        results = [
            _block(2, 4, 1, 3, (0, 0, 255)),
            _block(0, 2, 0, 1, (255, 0, 0)),
            _block(2, 4, 0, 1, (0, 255, 0)),
        ]
        image = composite(results, 4, 3)

        assert image.shape == (3, 4, 3)
        assert image.dtype == np.uint8
        assert np.all(image[0, :2] == (255, 0, 0))
        assert np.all(image[0, 2:] == (0, 255, 0))
        assert np.all(image[1:, 2:] == (0, 0, 255))
        # Never rendered
        assert np.all(image[1:, :2] == 0)

    def test_row_major_pixels(self):
        """Test that block pixels are read row by row."""
        from scadtrace.preview.export import composite

        pixels = ((1, 1, 1), (2, 2, 2), (3, 3, 3), (4, 4, 4), (5, 5, 5), (6, 6, 6))
        image = composite([RenderResult(Bounds(0, 3, 0, 2), pixels)], 3, 2)
        assert image[0, 2, 0] == 3
        assert image[1, 0, 0] == 4

    def test_block_outside_image_raises(self):
        """Test that a block beyond the image bounds is rejected."""
        from scadtrace.preview.export import composite

        with pytest.raises(ValueError, match="outside"):
            composite([_block(0, 5, 0, 1, (0, 0, 0))], 4, 4)

    def test_wrong_pixel_count_raises(self):
        """Test that a block with too few pixels is rejected."""
        from scadtrace.preview.export import composite

        result = RenderResult(Bounds(0, 2, 0, 2), ((0, 0, 0),) * 3)
        with pytest.raises(ValueError, match="expected 4"):
            composite([result], 4, 4)


class TestPngExport:
    """Test PNG export and asset loading."""

    def test_save_png_creates_file(self, tmp_path):
        """Test that save_png writes an 8-bit RGB PNG."""
        from scadtrace.preview.export import save_png

        image = np.zeros((6, 10, 3), dtype=np.uint8)
        image[:, :, 1] = 200
        filepath = tmp_path / "render.png"
        save_png(image, str(filepath))

        with PILImage.open(filepath) as img:
            assert img.size == (10, 6)
            assert img.mode == "RGB"
            assert np.array_equal(np.asarray(img), image)

    def test_load_rgba_round_trip(self, tmp_path):
        """Test that a saved render loads back as opaque RGBA bytes."""
        from scadtrace.preview.export import load_rgba, save_png

        image = np.arange(2 * 3 * 3, dtype=np.uint8).reshape(2, 3, 3)
        filepath = tmp_path / "asset.png"
        save_png(image, str(filepath))

        width, height, rgba = load_rgba(str(filepath))
        assert (width, height) == (3, 2)
        pixels = np.frombuffer(rgba, dtype=np.uint8).reshape(2, 3, 4)
        assert np.array_equal(pixels[:, :, :3], image)
        assert np.all(pixels[:, :, 3] == 255)

    def test_load_rgba_missing_file(self, tmp_path):
        """Test that a missing file raises OSError."""
        from scadtrace.preview.export import load_rgba

        with pytest.raises(OSError):
            load_rgba(str(tmp_path / "missing.png"))


class TestComputeRmse:
    """Test RMSE computation."""

    def test_rmse_identical_images(self):
        """Test RMSE of identical images is zero."""
        from scadtrace.preview.export import compute_rmse

        image = np.random.default_rng(0).integers(0, 256, (10, 10, 3)).astype(np.uint8)
        assert compute_rmse(image, image) == 0.0

    def test_rmse_does_not_wrap_uint8(self):
        """Test that uint8 differences are computed without overflow."""
        from scadtrace.preview.export import compute_rmse

        image_a = np.zeros((4, 4, 3), dtype=np.uint8)
        image_b = np.full((4, 4, 3), 255, dtype=np.uint8)
        assert np.isclose(compute_rmse(image_a, image_b), 255.0)

    def test_rmse_shape_mismatch_raises(self):
        """Test that RMSE raises for shape mismatch."""
        from scadtrace.preview.export import compute_rmse

        with pytest.raises(ValueError, match="shapes must match"):
            compute_rmse(np.zeros((10, 10, 3)), np.zeros((20, 20, 3)))


class TestDisplay:
    """Test Matplotlib display without a window."""

    @pytest.fixture(autouse=True)
    def agg_backend(self):
        import matplotlib

        matplotlib.use("Agg")
        yield
        import matplotlib.pyplot as plt

        plt.close("all")

    def test_show_image_default_title(self):
        """Test that the default title reports the image size."""
        import matplotlib.pyplot as plt

        from scadtrace.preview.display import show_image

        show_image(np.zeros((4, 6, 3), dtype=np.uint8), block=False)
        assert plt.gca().get_title() == "Render Preview - 6x4"

    def test_show_progress_reuses_figure(self):
        """Test that progress updates draw into the same figure."""
        from scadtrace.preview.display import show_progress

        image = np.zeros((4, 4, 3), dtype=np.uint8)
        first = show_progress(image, 0.25)
        second = show_progress(image, 0.5)
        assert first is second
        assert second.axes[0].get_title() == "Rendering... 50%"


class TestModuleExports:
    """Test that all expected symbols are exported from the module."""

    def test_preview_exports(self):
        """Test that export and display functions are exported."""
        from scadtrace.preview import (
            composite,
            compute_rmse,
            load_rgba,
            save_png,
            show_image,
            show_progress,
        )

        for function in (composite, compute_rmse, load_rgba, save_png, show_image, show_progress):
            assert callable(function)
