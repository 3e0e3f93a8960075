"""Uploads an evaluated scene into the Taichi field registries.

This module coordinates primitive storage with material and texture
assignment. It tracks which material type (Lambertian, Metal, Dielectric,
DiffuseLight) each material ID corresponds to, so the path tracer can
dispatch to the right scattering function.

The SceneManager maintains:
- A unified material_id space across all material types
- Mapping from material_id to (material_type, type_local_index)
- Deduplication of equal materials and textures to a single registry slot

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from scadtrace.lang import load_scene
    >>> from scadtrace.scene.manager import SceneManager
    >>> manager = SceneManager()
    >>> manager.load(load_scene("color([1,0,0]) sphere(r=2);"))
"""

import logging
from dataclasses import dataclass
from enum import IntEnum

import taichi as ti

from scadtrace.camera.thin_lens import setup_camera
from scadtrace.materials.dielectric import add_dielectric_material, clear_dielectric_materials
from scadtrace.materials.diffuse_light import (
    add_diffuse_light_material,
    clear_diffuse_light_materials,
)
from scadtrace.materials.lambertian import add_lambertian_material, clear_lambertian_materials
from scadtrace.materials.metal import add_metal_material, clear_metal_materials
from scadtrace.scene import model
from scadtrace.scene.intersection import add_box, add_cylinder, add_quad, add_sphere, clear_scene
from scadtrace.textures.texture import (
    add_checker_texture,
    add_image_texture,
    add_perlin_texture,
    add_solid_texture,
    clear_textures,
)

logger = logging.getLogger(__name__)


class MaterialType(IntEnum):
    """Enumeration of supported material types.

    Used for material dispatch in the path tracer to determine which
    scattering function to call.
    """

    LAMBERTIAN = 0
    METAL = 1
    DIELECTRIC = 2
    DIFFUSE_LIGHT = 3


# Capacity of the material table, across all types
MAX_MATERIALS = 1024

# material_types[i] stores the MaterialType for material_id i
material_types = ti.field(dtype=ti.i32, shape=MAX_MATERIALS)
# material_type_indices[i] stores the type-local index for material_id i
material_type_indices = ti.field(dtype=ti.i32, shape=MAX_MATERIALS)
num_materials = ti.field(dtype=ti.i32, shape=())


def _clear_material_tracking() -> None:
    num_materials[None] = 0


@ti.func
def get_material_type(material_id: ti.i32) -> ti.i32:
    """Get the material type for a material ID, or -1 if it is invalid."""
    result = -1
    if 0 <= material_id < num_materials[None]:
        result = material_types[material_id]
    return result


@ti.func
def get_material_type_index(material_id: ti.i32) -> ti.i32:
    """Get the index into the type-specific registry, or -1 if invalid."""
    result = -1
    if 0 <= material_id < num_materials[None]:
        result = material_type_indices[material_id]
    return result


@dataclass
class MaterialInfo:
    """Information about a registered material.

    Attributes:
        material_id: The unified material ID.
        material_type: The type of material.
        type_index: The index within the type-specific material registry.
        material: The scene material it was created from.
    """

    material_id: int
    material_type: MaterialType
    type_index: int
    material: model.Material


def _clamp_unit(color: model.Color) -> model.Color:
    return tuple(min(max(float(c), 0.0), 1.0) for c in color)


class SceneManager:
    """Uploads scenes into the primitive, material and texture registries.

    Attributes:
        materials: MaterialInfo for every registered material, by material ID.
        shape_count: Number of primitives uploaded by the last load.
    """

    def __init__(self) -> None:
        self.materials: list[MaterialInfo] = []
        self.shape_count = 0
        self._material_ids: dict[model.Material, int] = {}
        self._texture_ids: dict[model.Texture, int] = {}
        self._clear_all()

    def _clear_all(self) -> None:
        clear_scene()
        clear_textures()
        clear_lambertian_materials()
        clear_metal_materials()
        clear_dielectric_materials()
        clear_diffuse_light_materials()
        _clear_material_tracking()
        self.materials.clear()
        self._material_ids.clear()
        self._texture_ids.clear()
        self.shape_count = 0

    def clear(self) -> None:
        """Clear the entire scene (primitives, materials and textures)."""
        self._clear_all()

    # =========================================================================
    # Textures and Materials
    # =========================================================================

    def add_texture(self, texture: model.Texture) -> int:
        """Register a texture, reusing the slot of an equal texture.

        Raises:
            RuntimeError: If a texture registry is full.
            TypeError: If the texture kind is unknown.
        """
        existing = self._texture_ids.get(texture)
        if existing is not None:
            return existing

        if isinstance(texture, model.SolidTexture):
            texture_id = add_solid_texture(texture.color)
        elif isinstance(texture, model.CheckerTexture):
            texture_id = add_checker_texture(texture.scale, texture.even, texture.odd)
        elif isinstance(texture, model.PerlinTexture):
            texture_id = add_perlin_texture(texture.scale, texture.turbulence_depth, texture.seed)
        elif isinstance(texture, model.ImageTexture):
            texture_id = add_image_texture(texture.pixels)
        else:
            raise TypeError(f"Unknown texture type: {type(texture).__name__}")

        self._texture_ids[texture] = texture_id
        return texture_id

    def add_material(self, material: model.Material) -> int:
        """Register a material and return its unified material ID.

        Equal materials share one ID. Metal albedos are clamped into [0, 1]
        and negative emission components are raised to 0.

        Raises:
            RuntimeError: If the table is full.
            TypeError: If the material kind is unknown.
        """
        existing = self._material_ids.get(material)
        if existing is not None:
            return existing

        material_id = num_materials[None]
        if material_id >= MAX_MATERIALS:
            raise RuntimeError(f"material table is full ({MAX_MATERIALS} entries)")

        if isinstance(material, model.Lambertian):
            material_type = MaterialType.LAMBERTIAN
            type_index = add_lambertian_material(self.add_texture(material.texture))
        elif isinstance(material, model.Metal):
            material_type = MaterialType.METAL
            fuzz = min(max(material.fuzz, 0.0), 1.0)
            type_index = add_metal_material(_clamp_unit(material.albedo), fuzz)
        elif isinstance(material, model.Dielectric):
            material_type = MaterialType.DIELECTRIC
            type_index = add_dielectric_material(material.refractive_index)
        elif isinstance(material, model.DiffuseLight):
            material_type = MaterialType.DIFFUSE_LIGHT
            emission = tuple(max(float(c), 0.0) for c in material.emission)
            type_index = add_diffuse_light_material(emission)
        else:
            raise TypeError(f"Unknown material type: {type(material).__name__}")

        material_types[material_id] = int(material_type)
        material_type_indices[material_id] = type_index
        num_materials[None] = material_id + 1

        self.materials.append(MaterialInfo(material_id, material_type, type_index, material))
        self._material_ids[material] = material_id
        return material_id

    # =========================================================================
    # Primitives
    # =========================================================================

    def add_shape(self, shape: model.Shape) -> int:
        """Upload one placed shape with its material.

        Returns:
            The index of the primitive within its own registry.

        Raises:
            RuntimeError: If a registry is full.
            ValueError: If the shape transform is singular.
            TypeError: If the shape kind is unknown.
        """
        material_id = self.add_material(shape.material)

        if isinstance(shape, model.SphereShape):
            index = add_sphere(shape.center, shape.radius, material_id, shape.transform)
        elif isinstance(shape, model.BoxShape):
            index = add_box(shape.minimum, shape.maximum, material_id, shape.transform)
        elif isinstance(shape, model.CylinderShape):
            index = add_cylinder(
                shape.height,
                shape.radius_bottom,
                shape.radius_top,
                shape.base_z,
                material_id,
                shape.transform,
            )
        elif isinstance(shape, model.QuadShape):
            index = add_quad(shape.corner, shape.u, shape.v, material_id)
        else:
            raise TypeError(f"Unknown shape type: {type(shape).__name__}")

        self.shape_count += 1
        return index

    def load(self, scene: model.Scene) -> None:
        """Replace the uploaded scene with ``scene`` and configure the camera.

        Raises:
            RuntimeError: If a registry is full.
            ValueError: If a transform or the camera is degenerate.
        """
        self._clear_all()
        for shape in scene.shapes:
            self.add_shape(shape)
        setup_camera(scene.camera)
        logger.debug(
            "uploaded %d shapes, %d materials, %d textures",
            self.shape_count,
            len(self.materials),
            len(self._texture_ids),
        )

    def get_material_count(self) -> int:
        return len(self.materials)
