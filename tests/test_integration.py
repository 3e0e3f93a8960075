"""End-to-end tests: bundled scenes and the render_scad command line."""

import importlib.util
from pathlib import Path

import numpy as np
import pytest
from PIL import Image as PILImage

EXAMPLES_DIR = Path(__file__).resolve().parents[1] / "examples"
SCENES = sorted((EXAMPLES_DIR / "scenes").glob("*.scad"))

SMALL_CAMERA = "\ncamera(image_width=16, image_height=9, samples_per_pixel=2, max_depth=4,"
SMALL_CAMERA += " look_from=[0, -12, 3], look_at=[0, 0, 1], background=[0.7, 0.8, 1.0]);\n"


def _load_cli():
    spec = importlib.util.spec_from_file_location("render_scad", EXAMPLES_DIR / "render_scad.py")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def _resolver(base_dir):
    def resolve(name):
        path = base_dir / name
        return path.read_text() if path.is_file() else None

    return resolve


class TestBundledScenes:
    """The example scenes evaluate and render."""

    def test_scenes_found(self):
        assert len(SCENES) >= 3

    @pytest.mark.parametrize("scene_path", SCENES, ids=lambda p: p.name)
    def test_scene_evaluates(self, scene_path):
        from scadtrace.lang import load_scene

        scene = load_scene(scene_path.read_text(), include_resolver=_resolver(scene_path.parent))
        assert scene.camera_declared
        assert len(scene.shapes) > 0
        assert all(m.level.value != "error" for m in scene.messages)

    @pytest.mark.parametrize("scene_path", SCENES, ids=lambda p: p.name)
    def test_scene_renders_small(self, scene_path):
        from scadtrace.render.session import RenderSession

        session = RenderSession(seed=1, include_resolver=_resolver(scene_path.parent))
        # The last camera declared wins
        result = session.initialize(scene_path.read_text() + SMALL_CAMERA)
        assert result.loaded, result.diagnostics

        image = session.render_image()
        assert image.shape == (9, 16, 3)
        assert image.std() > 0.0


class TestCommandLine:
    """Tests for examples/render_scad.py."""

    def test_syntax_error_exit_code(self, tmp_path, capsys):
        cli = _load_cli()
        scene = tmp_path / "broken.scad"
        scene.write_text("x = 1\nsphere();\n")

        assert cli.main([str(scene), "--quiet"]) == 1
        assert "Syntax error" in capsys.readouterr().err

    def test_bad_asset_argument(self, tmp_path, capsys):
        cli = _load_cli()
        scene = tmp_path / "scene.scad"
        scene.write_text("sphere();\n")

        assert cli.main([str(scene), "--quiet", "--asset", "no-equals-sign"]) == 1
        assert "NAME=PATH" in capsys.readouterr().err

    def test_missing_asset_exit_code(self, tmp_path, capsys):
        cli = _load_cli()
        scene = tmp_path / "scene.scad"
        scene.write_text('lambertian(t=image("wood")) sphere();\n')

        assert cli.main([str(scene), "--quiet"]) == 1
        assert "missing_asset" in capsys.readouterr().err

    @pytest.mark.slow
    def test_render_to_png(self, tmp_path):
        cli = _load_cli()
        (tmp_path / "lib.scad").write_text("module ball() color([1, 0, 0]) sphere(r=8);\n")
        scene = tmp_path / "scene.scad"
        scene.write_text(
            "use <lib.scad>\n"
            "camera(image_width=12, image_height=8, samples_per_pixel=1,"
            " look_from=[0, -20, 0], look_at=[0, 0, 0], background=[1, 1, 1]);\n"
            "ball();\n"
        )
        asset = tmp_path / "tile.png"
        PILImage.fromarray(np.zeros((2, 2, 3), dtype=np.uint8)).save(asset)
        output = tmp_path / "out.png"

        argv = [str(scene), "--threads", "2", "--block-size", "5", "--quiet"]
        argv += ["--output", str(output), "--asset", f"tile={asset}"]
        assert cli.main(argv) == 0

        with PILImage.open(output) as img:
            assert img.size == (12, 8)
            pixels = np.asarray(img.convert("RGB"))
        assert tuple(pixels[0, 0]) == (255, 255, 255)
        assert pixels[4, 6, 0] > 0
        assert pixels[4, 6, 2] == 0
