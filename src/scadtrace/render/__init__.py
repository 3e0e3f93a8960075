"""Rendering surface and the worker-process scheduler.

Components:
    session: RenderSession (initialize / camera_info / render_block)
    protocol: Messages between the scheduler and worker processes
    worker: Worker process loop
    scheduler: Block partitioning, RenderWorkerPool and render events

Only the Taichi-free modules are imported here. ``RenderSession`` needs an
initialized Taichi runtime; import it from ``scadtrace.render.session``.
"""

from .scheduler import (
    Bounds,
    EventKind,
    RenderEvent,
    RenderJob,
    RenderOptions,
    RenderResult,
    RenderWorkerPool,
    partition_blocks,
)

__all__ = [
    "Bounds",
    "EventKind",
    "RenderEvent",
    "RenderJob",
    "RenderOptions",
    "RenderResult",
    "RenderWorkerPool",
    "partition_blocks",
]
