"""Messages exchanged between the scheduler and its worker processes.

Every message carries the render ``generation`` it belongs to. Workers echo
the generation of the request they answer, so the scheduler can drop replies
that belong to an abandoned render.

scheduler -> worker: :class:`Init`, :class:`Work`, :class:`Shutdown`
worker -> scheduler: :class:`InitAck`, :class:`Data`, :class:`WorkerError`
"""

from __future__ import annotations

from dataclasses import dataclass, field

from scadtrace.scene.model import Asset, Message


@dataclass(frozen=True)
class Init:
    """Load ``source`` and prepare to render blocks of it.

    ``includes`` maps file names to source text for ``include``/``use``.
    """

    generation: int
    worker_id: int
    source: str
    assets: dict[str, Asset] = field(default_factory=dict)
    seed: int = 0
    includes: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Work:
    """Render the block ``[xmin, xmax) x [ymin, ymax)``."""

    generation: int
    xmin: int
    xmax: int
    ymin: int
    ymax: int


@dataclass(frozen=True)
class Shutdown:
    generation: int = -1


@dataclass(frozen=True)
class InitAck:
    generation: int
    worker_id: int
    loaded: bool
    diagnostics: tuple[Message, ...] = ()


@dataclass(frozen=True)
class Data:
    """Rendered pixels of one block, row-major ``(r, g, b)`` byte triples."""

    generation: int
    worker_id: int
    xmin: int
    xmax: int
    ymin: int
    ymax: int
    pixels: tuple[tuple[int, int, int], ...]


@dataclass(frozen=True)
class WorkerError:
    generation: int
    worker_id: int
    message: str
