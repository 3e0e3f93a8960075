"""In-process render session: load a scene once, render blocks of it.

A session owns the Taichi-side scene registries of its process, so there is
one session per process. ``ti.init`` must have been called before a session
is created; the Taichi modules are imported lazily for that reason.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from scadtrace.render.session import RenderSession
    >>> session = RenderSession(seed=7)
    >>> result = session.initialize("camera(image_width=32, image_height=32); sphere(r=1);")
    >>> result.loaded
    True
    >>> pixels = session.render_block(0, 32, 0, 8)
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass

import numpy as np

from scadtrace.errors import EvalError, RenderError, ScadSyntaxError
from scadtrace.lang.evaluator import IncludeResolver, load_scene
from scadtrace.scene.model import Asset, ImageTexture, Message, MessageLevel, Scene

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoadResult:
    """Outcome of :meth:`RenderSession.initialize`.

    Attributes:
        loaded: True if the scene is ready to render.
        diagnostics: Echo output, warnings and, on failure, the error.
    """

    loaded: bool
    diagnostics: tuple[Message, ...] = ()

    @property
    def errors(self) -> tuple[Message, ...]:
        return tuple(m for m in self.diagnostics if m.level is MessageLevel.ERROR)


@dataclass(frozen=True)
class CameraInfo:
    width: int
    height: int


def _error_message(error: Exception) -> Message:
    if isinstance(error, ScadSyntaxError):
        return Message(MessageLevel.ERROR, error.message, error.line, error.column)
    if isinstance(error, EvalError):
        text = f"{error.kind}: {error.message}"
        if error.context:
            text += f" (in {error.context})"
        line = error.position.line if error.position is not None else None
        column = error.position.column if error.position is not None else None
        return Message(MessageLevel.ERROR, text, line, column)
    return Message(MessageLevel.ERROR, str(error))


class RenderSession:
    """Loads scene source and renders pixel blocks of it.

    Attributes:
        seed: Seed for scene evaluation (``rands``, Perlin tables) and for the
            per-pixel random streams.
        scene: The loaded scene, or None before a successful initialize.
    """

    def __init__(self, seed: int = 0, include_resolver: IncludeResolver | None = None) -> None:
        from scadtrace.scene.manager import SceneManager

        self.seed = seed
        self.include_resolver = include_resolver
        self.scene: Scene | None = None
        self._manager = SceneManager()

    def initialize(
        self, source: str, assets: Mapping[str, Asset | ImageTexture] | None = None
    ) -> LoadResult:
        """Parse, evaluate and upload ``source``.

        Parse and evaluation errors never raise; they are returned as an
        error diagnostic with ``loaded=False`` and the previous scene is
        discarded.
        """
        self.scene = None
        try:
            scene = load_scene(
                source, assets=assets, seed=self.seed, include_resolver=self.include_resolver
            )
        except (ScadSyntaxError, EvalError) as e:
            logger.info("scene failed to load: %s", e)
            return LoadResult(False, (_error_message(e),))

        diagnostics = list(scene.messages)
        try:
            self._manager.load(scene)
        except (RuntimeError, ValueError) as e:
            logger.info("scene failed to upload: %s", e)
            diagnostics.append(_error_message(e))
            return LoadResult(False, tuple(diagnostics))

        self.scene = scene
        logger.info(
            "loaded scene: %d shapes, %dx%d, %d spp",
            len(scene.shapes),
            scene.camera.image_width,
            scene.camera.image_height,
            scene.camera.samples_per_pixel,
        )
        return LoadResult(True, tuple(diagnostics))

    def _require_scene(self) -> Scene:
        if self.scene is None:
            raise RenderError("no scene loaded")
        return self.scene

    def camera_info(self) -> CameraInfo:
        """Return the image size of the loaded scene.

        Raises:
            RenderError: If no scene is loaded.
        """
        camera = self._require_scene().camera
        return CameraInfo(camera.image_width, camera.image_height)

    def render_array(self, xmin: int, xmax: int, ymin: int, ymax: int) -> np.ndarray:
        """Render a block as a uint8 array of shape (ymax-ymin, xmax-xmin, 3).

        Raises:
            RenderError: If no scene is loaded or the block is out of range.
        """
        from scadtrace.core.integrator import render_block

        info = self.camera_info()
        if not (0 <= xmin < xmax <= info.width and 0 <= ymin < ymax <= info.height):
            raise RenderError(
                f"block x=[{xmin}, {xmax}) y=[{ymin}, {ymax}) is outside the "
                f"{info.width}x{info.height} image"
            )
        return render_block(xmin, xmax, ymin, ymax, self.seed)

    def render_block(
        self, xmin: int, xmax: int, ymin: int, ymax: int
    ) -> list[tuple[int, int, int]]:
        """Render a block and return its pixels as row-major (r, g, b) triples.

        Raises:
            RenderError: If no scene is loaded or the block is out of range.
        """
        pixels = self.render_array(xmin, xmax, ymin, ymax).reshape(-1, 3)
        return [(int(r), int(g), int(b)) for r, g, b in pixels]

    def render_image(self) -> np.ndarray:
        """Render the whole image as a uint8 array of shape (height, width, 3)."""
        info = self.camera_info()
        return self.render_array(0, info.width, 0, info.height)
