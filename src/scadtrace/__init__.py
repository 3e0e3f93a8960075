"""scadtrace: path tracing for scenes written in an OpenSCAD-like language.

Scene source is parsed and evaluated into an immutable scene description,
uploaded into Taichi fields and path traced block by block, optionally
across a pool of worker processes.

Subpackages:
    lang: Lexer, parser and evaluator of the scene language (no Taichi)
    scene: Scene model, transforms and the Taichi primitive registries
    core: Ray utilities, random streams and the path tracing integrator
    geometry: Shape primitives and intersection algorithms
    materials: Lambertian, metal, dielectric and diffuse light materials
    textures: Solid, checker, Perlin and image textures
    camera: Thin-lens camera with ray generation
    render: Render session, worker processes and tile scheduler
    preview: Compositing, PNG export and Matplotlib preview
"""

__version__ = "0.1.0"
