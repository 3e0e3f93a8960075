"""Plain-data scene graph produced by the evaluator.

Everything here is an immutable dataclass with no Taichi dependency, so a
scene can be built, compared and pickled without a Taichi runtime. The
:class:`~scadtrace.scene.manager.SceneManager` uploads a :class:`Scene` into
the GPU-side field registries.

Coordinates follow the scene language: z is up.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum

import numpy as np
import numpy.typing as npt

Color = tuple[float, float, float]
Vec3 = tuple[float, float, float]


# =============================================================================
# Textures
# =============================================================================


class Texture:
    """Marker base class for texture values."""


@dataclass(frozen=True)
class SolidTexture(Texture):
    color: Color


@dataclass(frozen=True)
class CheckerTexture(Texture):
    """3-D checker: parity of floor(x/scale)+floor(y/scale)+floor(z/scale)."""

    scale: float
    even: Color
    odd: Color


@dataclass(frozen=True)
class PerlinTexture(Texture):
    """Marbled Perlin turbulence.

    Attributes:
        scale: Frequency of the sine stripes along z.
        turbulence_depth: Number of noise octaves summed by the turbulence.
        seed: Seed of the gradient and permutation tables.
    """

    scale: float
    turbulence_depth: int
    seed: int


@dataclass(frozen=True, eq=False)
class ImageTexture(Texture):
    """An RGB image sampled by surface UV.

    Attributes:
        name: Asset name the image was loaded from.
        width: Image width in pixels.
        height: Image height in pixels.
        pixels: float32 array of shape (height, width, 3) in [0, 1], row 0 at
            the top.
    """

    name: str
    width: int
    height: int
    pixels: npt.NDArray[np.float32] = field(repr=False)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ImageTexture):
            return NotImplemented
        return (
            self.name == other.name
            and self.width == other.width
            and self.height == other.height
            and np.array_equal(self.pixels, other.pixels)
        )

    def __hash__(self) -> int:
        return hash((self.name, self.width, self.height))


@dataclass(frozen=True)
class Asset:
    """A host-supplied raw image: ``width * height * 4`` RGBA bytes, row-major."""

    width: int
    height: int
    rgba: bytes

    def to_texture(self, name: str) -> ImageTexture:
        expected = self.width * self.height * 4
        if len(self.rgba) != expected:
            raise ValueError(
                f"asset '{name}' has {len(self.rgba)} bytes, expected {expected} "
                f"for {self.width}x{self.height} RGBA"
            )
        data = np.frombuffer(self.rgba, dtype=np.uint8).reshape(self.height, self.width, 4)
        pixels = data[:, :, :3].astype(np.float32) / 255.0
        return ImageTexture(name, self.width, self.height, pixels)


# =============================================================================
# Materials
# =============================================================================


@dataclass(frozen=True)
class Lambertian:
    texture: Texture


@dataclass(frozen=True)
class Metal:
    albedo: Color
    fuzz: float


@dataclass(frozen=True)
class Dielectric:
    refractive_index: float


@dataclass(frozen=True)
class DiffuseLight:
    emission: Color


Material = Lambertian | Metal | Dielectric | DiffuseLight

DEFAULT_MATERIAL = Lambertian(SolidTexture((0.99, 0.85, 0.26)))


# =============================================================================
# Geometry
# =============================================================================


def _identity() -> npt.NDArray[np.float64]:
    return np.identity(4)


@dataclass(frozen=True, eq=False)
class Shape:
    """Base class for placed geometry.

    Attributes:
        material: The material in effect when the shape was emitted.
        transform: 4x4 object-to-world matrix.
    """

    material: Material
    transform: npt.NDArray[np.float64] = field(default_factory=_identity, repr=False)

    def world_point(self, local: Vec3) -> Vec3:
        p = self.transform @ np.array([local[0], local[1], local[2], 1.0])
        return (float(p[0]), float(p[1]), float(p[2]))


@dataclass(frozen=True, eq=False)
class SphereShape(Shape):
    center: Vec3 = (0.0, 0.0, 0.0)
    radius: float = 1.0

    @property
    def world_center(self) -> Vec3:
        return self.world_point(self.center)


@dataclass(frozen=True, eq=False)
class BoxShape(Shape):
    """Axis-aligned box in object space between ``minimum`` and ``maximum``."""

    minimum: Vec3 = (0.0, 0.0, 0.0)
    maximum: Vec3 = (1.0, 1.0, 1.0)

    @property
    def center(self) -> Vec3:
        return tuple((a + b) / 2.0 for a, b in zip(self.minimum, self.maximum))

    @property
    def half_extents(self) -> Vec3:
        return tuple((b - a) / 2.0 for a, b in zip(self.minimum, self.maximum))


@dataclass(frozen=True, eq=False)
class CylinderShape(Shape):
    """Cone frustum along object-space +z from ``base_z`` to ``base_z + height``."""

    height: float = 1.0
    radius_bottom: float = 1.0
    radius_top: float = 1.0
    base_z: float = 0.0


@dataclass(frozen=True, eq=False)
class QuadShape(Shape):
    """Parallelogram ``corner + a*u + b*v`` for a, b in [0, 1].

    ``corner``, ``u`` and ``v`` are already in world space; ``transform`` is
    kept only for reference.
    """

    corner: Vec3 = (0.0, 0.0, 0.0)
    u: Vec3 = (1.0, 0.0, 0.0)
    v: Vec3 = (0.0, 1.0, 0.0)


# =============================================================================
# Camera and Scene
# =============================================================================


@dataclass(frozen=True)
class Camera:
    """Camera and render settings declared by ``camera(...)``."""

    image_width: int = 100
    image_height: int = 100
    samples_per_pixel: int = 10
    max_depth: int = 10
    vertical_fov: float = 90.0
    look_from: Vec3 = (0.0, 0.0, 0.0)
    look_at: Vec3 = (0.0, -1.0, 0.0)
    up: Vec3 = (0.0, 0.0, 1.0)
    defocus_angle: float = 0.0
    focus_distance: float = 10.0
    background: Color = (0.0, 0.0, 0.0)

    @property
    def aspect_ratio(self) -> float:
        return self.image_width / self.image_height

    @property
    def defocus_radius(self) -> float:
        return self.focus_distance * math.tan(math.radians(self.defocus_angle / 2.0))


DEFAULT_CAMERA = Camera(
    image_width=600,
    image_height=600,
    samples_per_pixel=10,
    max_depth=50,
    vertical_fov=90.0,
    look_from=(-50.0, -50.0, 70.0),
    look_at=(0.0, 0.0, 0.0),
    up=(0.0, 0.0, 1.0),
    background=(0.7, 0.8, 1.0),
)


class MessageLevel(str, Enum):
    ECHO = "echo"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Message:
    """A diagnostic produced while loading a scene."""

    level: MessageLevel
    text: str
    line: int | None = None
    column: int | None = None

    def __str__(self) -> str:
        where = f"{self.line}:{self.column}: " if self.line is not None else ""
        return f"{self.level.value.upper()}: {where}{self.text}"


@dataclass(frozen=True)
class Scene:
    """The fully evaluated, immutable scene.

    Attributes:
        shapes: Placed geometry in declaration order.
        camera: The active camera.
        camera_declared: False when no ``camera(...)`` was evaluated and the
            default camera is in use.
        messages: Echo output and warnings, in evaluation order.
    """

    shapes: tuple[Shape, ...]
    camera: Camera
    camera_declared: bool = True
    messages: tuple[Message, ...] = ()

    @property
    def background(self) -> Color:
        return self.camera.background
