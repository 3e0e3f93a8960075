"""Unit tests for the thin-lens camera.

Tests cover:
- Viewport basis for the default orientation (z up)
- Image size and render settings
- Primary rays with and without defocus
- Rejection of degenerate cameras
"""

import math

import numpy as np
import pytest
import taichi as ti

NUM_RAYS = 128


def _trace_primary_rays(px, py):
    """Generate NUM_RAYS primary rays through one pixel."""
    from scadtrace.camera.thin_lens import get_ray
    from scadtrace.core.ray import seed_stream

    origins = ti.Vector.field(3, dtype=ti.f32, shape=NUM_RAYS)
    directions = ti.Vector.field(3, dtype=ti.f32, shape=NUM_RAYS)

    @ti.kernel
    def test_kernel(x: ti.i32, y: ti.i32):
        for i in range(NUM_RAYS):
            seed_stream(i, 11, i, 0)
            ray = get_ray(i, x, y)
            origins[i] = ray.origin
            directions[i] = ray.direction

    test_kernel(px, py)
    return origins.to_numpy(), directions.to_numpy()


class TestCameraSetup:
    """Tests for setup_camera and the stored viewport."""

    def test_default_basis(self):
        from scadtrace.camera.thin_lens import get_camera_info, setup_camera
        from scadtrace.scene.model import Camera

        setup_camera(Camera())
        info = get_camera_info()

        # Looking down -y with z up puts image right at -x
        assert np.allclose(info["center"], (0.0, 0.0, 0.0))
        assert np.allclose(info["delta_u"], (-0.2, 0.0, 0.0), atol=1e-6)
        assert np.allclose(info["delta_v"], (0.0, 0.0, -0.2), atol=1e-6)
        assert np.allclose(info["pixel00"], (9.9, -10.0, 9.9), atol=1e-5)
        assert np.allclose(info["defocus_disk_u"], (0.0, 0.0, 0.0))

    def test_image_size(self):
        from scadtrace.camera.thin_lens import get_image_size, setup_camera
        from scadtrace.scene.model import Camera

        setup_camera(Camera(image_width=320, image_height=200))
        assert get_image_size() == (320, 200)

    def test_up_parallel_to_view_still_has_basis(self):
        from scadtrace.camera.thin_lens import get_camera_info, setup_camera
        from scadtrace.scene.model import Camera

        setup_camera(Camera(look_from=(0.0, 0.0, 10.0), look_at=(0.0, 0.0, 0.0)))
        info = get_camera_info()
        assert np.linalg.norm(info["delta_u"]) == pytest.approx(0.2, abs=1e-6)
        assert np.dot(info["delta_u"], info["delta_v"]) == pytest.approx(0.0, abs=1e-6)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"look_from": (1.0, 2.0, 3.0), "look_at": (1.0, 2.0, 3.0)},
            {"image_width": 0},
            {"image_height": -4},
        ],
    )
    def test_degenerate_camera_rejected(self, kwargs):
        from scadtrace.camera.thin_lens import setup_camera
        from scadtrace.scene.model import Camera

        with pytest.raises(ValueError):
            setup_camera(Camera(**kwargs))


class TestPrimaryRays:
    """Tests for get_ray."""

    def test_pinhole_origin_is_center(self):
        from scadtrace.camera.thin_lens import setup_camera
        from scadtrace.scene.model import Camera

        setup_camera(Camera(look_from=(1.0, 2.0, 3.0), look_at=(1.0, -8.0, 3.0)))
        origins, directions = _trace_primary_rays(50, 50)

        assert np.all(origins == np.array([1.0, 2.0, 3.0], dtype=np.float32))
        # Pixel (50, 50) is centered at (-0.1, -10, -0.1) from the eye, jittered by half a pixel
        offsets = directions - np.array([-0.1, -10.0, -0.1])
        assert np.all(np.abs(offsets) <= 0.1 + 1e-4)
        assert np.std(directions[:, 0]) > 0.0

    def test_defocus_origins_on_lens_disk(self):
        from scadtrace.camera.thin_lens import setup_camera
        from scadtrace.scene.model import Camera

        camera = Camera(defocus_angle=10.0, focus_distance=5.0)
        setup_camera(camera)
        origins, _ = _trace_primary_rays(10, 90)

        radius = 5.0 * math.tan(math.radians(5.0))
        assert camera.defocus_radius == pytest.approx(radius)
        # The lens disk is spanned by the image axes, x and z here
        assert np.allclose(origins[:, 1], 0.0, atol=1e-6)
        assert np.all(np.linalg.norm(origins, axis=1) <= radius + 1e-5)
        assert np.any(np.linalg.norm(origins, axis=1) > 0.0)

    def test_rays_deterministic_per_stream(self):
        from scadtrace.camera.thin_lens import setup_camera
        from scadtrace.scene.model import Camera

        setup_camera(Camera(defocus_angle=3.0))
        first = _trace_primary_rays(7, 7)
        second = _trace_primary_rays(7, 7)
        assert np.array_equal(first[0], second[0])
        assert np.array_equal(first[1], second[1])
