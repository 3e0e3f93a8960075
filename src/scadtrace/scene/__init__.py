"""Scene representation and GPU upload.

Components:
    model: Immutable dataclasses for shapes, materials, textures and camera
    transform: 4x4 affine matrix helpers used by the evaluator
    intersection: Taichi field registries for primitives and closest-hit query
    manager: Uploads a model.Scene into the Taichi registries

Only ``model`` and ``transform`` are importable before ``ti.init``; the
Taichi-backed modules declare fields at import time and must be imported
directly once Taichi is initialized:

    from scadtrace.scene.manager import SceneManager
"""

from .model import (
    DEFAULT_CAMERA,
    DEFAULT_MATERIAL,
    Asset,
    BoxShape,
    Camera,
    CheckerTexture,
    CylinderShape,
    Dielectric,
    DiffuseLight,
    ImageTexture,
    Lambertian,
    Message,
    MessageLevel,
    Metal,
    PerlinTexture,
    QuadShape,
    Scene,
    Shape,
    SolidTexture,
    SphereShape,
    Texture,
)

__all__ = [
    "Asset",
    "BoxShape",
    "Camera",
    "CheckerTexture",
    "CylinderShape",
    "DEFAULT_CAMERA",
    "DEFAULT_MATERIAL",
    "Dielectric",
    "DiffuseLight",
    "ImageTexture",
    "Lambertian",
    "Message",
    "MessageLevel",
    "Metal",
    "PerlinTexture",
    "QuadShape",
    "Scene",
    "Shape",
    "SolidTexture",
    "SphereShape",
    "Texture",
]
