#!/usr/bin/env python3
"""Render a .scad scene file to PNG.

The scene is evaluated once in this process to learn the image size and to
report diagnostics, then rendered block by block by a pool of worker
processes.

Usage:
    python examples/render_scad.py SCENE [options]

Options:
    --threads N         Number of worker processes (default: CPU count)
    --block-size SIZE   Edge length of a render block in pixels (default: 64)
    --seed SEED         Seed for rands(), Perlin tables and sampling (default: 0)
    --output OUTPUT     Output file path (default: SCENE with .png suffix)
    --asset NAME=PATH   Image asset available to image(NAME); repeatable
    --preview           Show the finished image with matplotlib
    --quiet             Suppress progress output

Example:
    python examples/render_scad.py examples/scenes/spheres.scad --threads 4
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
import time
from pathlib import Path

from scadtrace.errors import EvalError, RenderError, ScadSyntaxError
from scadtrace.lang import load_scene
from scadtrace.preview.export import load_rgba, save_png
from scadtrace.render.scheduler import EventKind, RenderEvent, RenderOptions, RenderWorkerPool
from scadtrace.scene.model import Asset, Message


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Render a .scad scene file to PNG.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("scene", type=str, help="Path to the .scad scene file")
    parser.add_argument(
        "--threads",
        type=int,
        default=os.cpu_count() or 1,
        help="Number of worker processes (default: CPU count)",
    )
    parser.add_argument(
        "--block-size",
        type=int,
        default=64,
        help="Edge length of a render block in pixels (default: 64)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=0,
        help="Seed for rands(), Perlin tables and sampling (default: 0)",
    )
    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Output file path (default: scene path with .png suffix)",
    )
    parser.add_argument(
        "--asset",
        action="append",
        default=[],
        metavar="NAME=PATH",
        help="Image asset available to image(NAME); may be repeated",
    )
    parser.add_argument(
        "--preview",
        action="store_true",
        help="Show the finished image with matplotlib",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress progress output",
    )
    return parser.parse_args(argv)


def load_assets(specs: list[str]) -> dict[str, Asset]:
    """Load ``NAME=PATH`` asset arguments into RGBA assets.

    Raises:
        ValueError: If an argument is not of the form NAME=PATH.
    """
    assets = {}
    for spec in specs:
        name, sep, path = spec.partition("=")
        if not sep or not name or not path:
            raise ValueError(f"--asset expects NAME=PATH, got '{spec}'")
        width, height, rgba = load_rgba(path)
        assets[name] = Asset(width, height, rgba)
    return assets


def print_diagnostics(messages: tuple[Message, ...]) -> None:
    for message in messages:
        print(message, file=sys.stderr)


def render_scad(
    scene_path: str,
    output_path: str | None = None,
    threads: int = 1,
    block_size: int = 64,
    seed: int = 0,
    assets: dict[str, Asset] | None = None,
    preview: bool = False,
    quiet: bool = False,
) -> Path:
    """Render a scene file and save it as PNG.

    Args:
        scene_path: Path to the .scad source.
        output_path: Output PNG path; defaults to the scene path with a .png suffix.
        threads: Number of worker processes.
        block_size: Edge length of a render block.
        seed: Render seed.
        assets: Image assets keyed by the name used in ``image()``.
        preview: If True, show the finished image with matplotlib.
        quiet: If True, suppress progress output.

    Returns:
        Path to the saved image file.

    Raises:
        ScadSyntaxError: If the scene does not parse.
        EvalError: If the scene does not evaluate.
        RenderError: If the render fails.
    """
    scene_file = Path(scene_path)
    source = scene_file.read_text()
    base_dir = scene_file.parent

    def resolve_include(name: str) -> str | None:
        path = base_dir / name
        return path.read_text() if path.is_file() else None

    # Evaluate here once for the image size and diagnostics; workers repeat it
    scene = load_scene(source, assets=assets, seed=seed, include_resolver=resolve_include)
    if not quiet:
        print_diagnostics(scene.messages)

    includes = {}
    for path in base_dir.glob("*.scad"):
        if path != scene_file:
            includes[path.name] = path.read_text()

    width = scene.camera.image_width
    height = scene.camera.image_height
    options = RenderOptions(width=width, height=height, block_size=block_size, seed=seed)

    if not quiet:
        print(
            f"Rendering {scene_file.name} ({width}x{height}, "
            f"{scene.camera.samples_per_pixel} spp) with {threads} workers..."
        )

    def progress_callback(event: RenderEvent) -> None:
        if quiet:
            return
        if event.kind is EventKind.INIT:
            print(f"  {event.block_count} blocks of {event.block_size}px")
        elif event.kind is EventKind.RESULT:
            elapsed = time.time() - start_time
            print(
                f"\r  Progress: {event.progress * 100:.1f}% - {elapsed:.1f}s",
                end="",
                flush=True,
            )

    start_time = time.time()
    with RenderWorkerPool(thread_count=threads) as pool:
        job = pool.render(
            source, options, callback=progress_callback, assets=assets, includes=includes
        )
        image = job.wait()

    if not quiet:
        print()  # Newline after progress

    output_file = Path(output_path) if output_path else scene_file.with_suffix(".png")
    save_png(image, str(output_file))

    total_time = time.time() - start_time
    if not quiet:
        print(f"Saved to: {output_file.absolute()}")
        print(f"Total time: {total_time:.2f}s")

    if preview:
        from scadtrace.preview.display import show_image

        show_image(image, title=scene_file.name)

    return output_file


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.WARNING if args.quiet else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        render_scad(
            args.scene,
            output_path=args.output,
            threads=args.threads,
            block_size=args.block_size,
            seed=args.seed,
            assets=load_assets(args.asset),
            preview=args.preview,
            quiet=args.quiet,
        )
        return 0
    except ScadSyntaxError as e:
        print(f"Syntax error: {e}", file=sys.stderr)
        return 1
    except EvalError as e:
        print(f"Evaluation error [{e.kind}]: {e}", file=sys.stderr)
        return 1
    except (RenderError, OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
