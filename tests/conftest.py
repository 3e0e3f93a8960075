"""Pytest configuration for scadtrace tests.

This module provides shared fixtures for all test modules, including
Taichi initialization which must happen once per session.
"""

import pytest
import taichi as ti


@pytest.fixture(scope="session", autouse=True)
def init_taichi_session():
    """Initialize Taichi once for the entire test session.

    Using session scope prevents multiple ti.init() calls which can cause
    segmentation faults due to Taichi runtime conflicts.
    """
    ti.init(arch=ti.cpu, random_seed=42)
    yield


@pytest.fixture(autouse=True)
def clear_all_scene_data():
    """Clear the primitive, material and texture registries around each test."""
    # Import here so the fields are declared after ti.init
    from scadtrace.scene.manager import SceneManager

    manager = SceneManager()
    yield
    manager.clear()


@pytest.fixture
def manager():
    """A SceneManager with empty registries."""
    from scadtrace.scene.manager import SceneManager

    return SceneManager()


@pytest.fixture
def render_source():
    """Return a function that loads source into the registries and renders it."""

    def _render(source, seed=0, **kwargs):
        from scadtrace.core.integrator import render_block
        from scadtrace.lang import load_scene
        from scadtrace.scene.manager import SceneManager

        scene = load_scene(source, seed=seed, **kwargs)
        SceneManager().load(scene)
        camera = scene.camera
        return render_block(0, camera.image_width, 0, camera.image_height, seed)

    return _render
