"""Materials module for light scattering.

Components:
    lambertian: Ideal diffuse reflection, colored by a texture
    metal: Specular reflection with optional fuzz
    dielectric: Glass-like refraction with Schlick reflectance
    diffuse_light: Emissive surfaces that never scatter

Each material keeps its parameters in a Taichi field registry
(``add_*_material`` / ``clear_*_materials``) and provides a scatter or
emission function for use inside kernels.
"""

from .dielectric import (
    add_dielectric_material,
    cannot_refract,
    clear_dielectric_materials,
    get_dielectric_ior,
    get_dielectric_material_count,
    refraction_ratio,
    scatter_dielectric,
)
from .diffuse_light import (
    add_diffuse_light_material,
    clear_diffuse_light_materials,
    get_diffuse_light_emission,
    get_diffuse_light_material_count,
)
from .lambertian import (
    add_lambertian_material,
    clear_lambertian_materials,
    get_lambertian_material_count,
    get_lambertian_texture_id,
    scatter_lambertian,
)
from .metal import (
    add_metal_material,
    clear_metal_materials,
    get_metal_albedo,
    get_metal_fuzz,
    get_metal_material_count,
    scatter_metal,
)

__all__ = [
    # Lambertian
    "scatter_lambertian",
    "add_lambertian_material",
    "clear_lambertian_materials",
    "get_lambertian_material_count",
    "get_lambertian_texture_id",
    # Metal
    "scatter_metal",
    "add_metal_material",
    "clear_metal_materials",
    "get_metal_material_count",
    "get_metal_albedo",
    "get_metal_fuzz",
    # Dielectric
    "scatter_dielectric",
    "refraction_ratio",
    "cannot_refract",
    "add_dielectric_material",
    "clear_dielectric_materials",
    "get_dielectric_material_count",
    "get_dielectric_ior",
    # Diffuse light
    "add_diffuse_light_material",
    "clear_diffuse_light_materials",
    "get_diffuse_light_material_count",
    "get_diffuse_light_emission",
]
