"""Tile scheduler and persistent worker-process pool.

The image is split into row-major blocks by :func:`partition_blocks`. A
:class:`RenderWorkerPool` keeps a fixed number of worker processes alive
across renders; for each render a dispatcher thread hands out one block at a
time to every worker whose scene has loaded, and streams results back as
:class:`RenderEvent` values.

Example:
    >>> from scadtrace.render.scheduler import RenderOptions, RenderWorkerPool
    >>> source = "camera(image_width=64, image_height=64, samples_per_pixel=4); sphere(r=20);"
    >>> with RenderWorkerPool(thread_count=4) as pool:
    ...     job = pool.render(source, RenderOptions(width=64, height=64, block_size=16))
    ...     for event in job.events():
    ...         print(event.kind, event.progress)
    ...     image = job.image()
"""

from __future__ import annotations

import logging
import multiprocessing
import queue
import threading
import time
from collections import deque
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum

import numpy as np

from scadtrace.errors import RenderError
from scadtrace.render.protocol import Data, Init, InitAck, Shutdown, Work, WorkerError
from scadtrace.render.worker import worker_main
from scadtrace.scene.model import Asset, Message

logger = logging.getLogger(__name__)

# Seconds the dispatcher waits on the outbox before checking commands and
# worker liveness again
POLL_INTERVAL = 0.05

# Seconds close() waits for a worker to exit before terminating it
SHUTDOWN_TIMEOUT = 5.0


# =============================================================================
# Blocks and Options
# =============================================================================


@dataclass(frozen=True)
class Bounds:
    """Pixel rectangle ``[xmin, xmax) x [ymin, ymax)``."""

    xmin: int
    xmax: int
    ymin: int
    ymax: int

    @property
    def width(self) -> int:
        return self.xmax - self.xmin

    @property
    def height(self) -> int:
        return self.ymax - self.ymin

    @property
    def area(self) -> int:
        return self.width * self.height


def partition_blocks(width: int, height: int, block_size: int) -> list[Bounds]:
    """Split an image into row-major blocks, clipped at the right and bottom.

    Raises:
        ValueError: If any argument is less than 1.
    """
    if width < 1 or height < 1:
        raise ValueError(f"Image size {width}x{height} must be positive.")
    if block_size < 1:
        raise ValueError(f"Block size {block_size} must be positive.")
    return [
        Bounds(x, min(x + block_size, width), y, min(y + block_size, height))
        for y in range(0, height, block_size)
        for x in range(0, width, block_size)
    ]


@dataclass(frozen=True)
class RenderOptions:
    """Options of one render.

    Raises:
        ValueError: If the image size or block size is less than 1.

    Attributes:
        width: Image width in pixels; must match the scene's camera.
        height: Image height in pixels; must match the scene's camera.
        block_size: Side of the square blocks handed to workers.
        seed: Seed for scene evaluation and per-pixel random streams.
    """

    width: int
    height: int
    block_size: int = 64
    seed: int = 0

    def __post_init__(self) -> None:
        if self.width < 1 or self.height < 1:
            raise ValueError(f"Image size {self.width}x{self.height} must be positive.")
        if self.block_size < 1:
            raise ValueError(f"Block size {self.block_size} must be positive.")


@dataclass(frozen=True)
class RenderResult:
    """One rendered block: bounds plus row-major (r, g, b) byte triples."""

    bounds: Bounds
    pixels: tuple[tuple[int, int, int], ...]


# =============================================================================
# Events and Jobs
# =============================================================================


class EventKind(str, Enum):
    INIT = "init"
    RESULT = "result"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class RenderEvent:
    """Progress notification of a render job.

    Attributes:
        kind: Which of the fields below are meaningful.
        block_size: Block side (init).
        block_count: Number of blocks of the render (init).
        start_time: ``time.time()`` when the render started (init).
        result: The block just received (result).
        progress: Fraction of blocks received so far (result, done).
        error: Failure description (failed).
        diagnostics: Scene diagnostics reported by the workers (done, failed).
    """

    kind: EventKind
    block_size: int = 0
    block_count: int = 0
    start_time: float = 0.0
    result: RenderResult | None = None
    progress: float = 0.0
    error: str | None = None
    diagnostics: tuple[Message, ...] = ()

    @classmethod
    def init(cls, block_size: int, block_count: int, start_time: float) -> RenderEvent:
        return cls(
            EventKind.INIT, block_size=block_size, block_count=block_count, start_time=start_time
        )

    @classmethod
    def for_result(cls, result: RenderResult, progress: float) -> RenderEvent:
        return cls(EventKind.RESULT, result=result, progress=progress)

    @classmethod
    def finished(cls, diagnostics: tuple[Message, ...] = ()) -> RenderEvent:
        return cls(EventKind.DONE, progress=1.0, diagnostics=diagnostics)

    @classmethod
    def failed(cls, error: str, diagnostics: tuple[Message, ...] = ()) -> RenderEvent:
        return cls(EventKind.FAILED, error=error, diagnostics=diagnostics)

    @property
    def is_terminal(self) -> bool:
        return self.kind in (EventKind.DONE, EventKind.FAILED)


class RenderJob:
    """Handle to a render in progress.

    Events are delivered to the optional callback (on the dispatcher thread)
    and are also queued for :meth:`events`.
    """

    def __init__(
        self,
        generation: int,
        options: RenderOptions,
        callback: Callable[[RenderEvent], None] | None = None,
    ) -> None:
        self.generation = generation
        self.options = options
        self.block_count = 0
        self.diagnostics: tuple[Message, ...] = ()
        self._callback = callback
        self._events: queue.Queue[RenderEvent] = queue.Queue()
        self._results: list[RenderResult] = []
        self._done = threading.Event()
        self._error: str | None = None

    # Called on the dispatcher thread -----------------------------------------

    def _emit(self, event: RenderEvent) -> None:
        if event.kind is EventKind.RESULT and event.result is not None:
            self._results.append(event.result)
        elif event.kind is EventKind.FAILED:
            self._error = event.error
        self._events.put(event)
        if self._callback is not None:
            try:
                self._callback(event)
            except Exception:
                logger.exception("render callback raised on %s event", event.kind.value)
        if event.is_terminal:
            self._done.set()

    # Public API --------------------------------------------------------------

    @property
    def done(self) -> bool:
        return self._done.is_set()

    @property
    def progress(self) -> float:
        if self.block_count == 0:
            return 0.0
        if len(self._results) == self.block_count:
            return 1.0
        return len(self._results) / self.block_count

    @property
    def results(self) -> list[RenderResult]:
        return list(self._results)

    @property
    def error(self) -> str | None:
        return self._error

    def events(self, timeout: float | None = None) -> Iterator[RenderEvent]:
        """Yield events as they arrive, ending after the terminal event.

        Raises:
            RenderError: If no event arrives within ``timeout`` seconds.
        """
        while True:
            try:
                event = self._events.get(timeout=timeout)
            except queue.Empty:
                raise RenderError(f"no render event within {timeout} seconds") from None
            yield event
            if event.is_terminal:
                return

    def wait(self, timeout: float | None = None) -> np.ndarray:
        """Block until the render ends and return the composited image.

        Raises:
            RenderError: If the render failed or did not finish in time.
        """
        if not self._done.wait(timeout):
            raise RenderError(f"render did not finish within {timeout} seconds")
        if self._error is not None:
            raise RenderError(self._error)
        return self.image()

    def image(self) -> np.ndarray:
        """Composite the results received so far into a (height, width, 3) array."""
        from scadtrace.preview.export import composite

        return composite(self._results, self.options.width, self.options.height)


# =============================================================================
# Worker Pool
# =============================================================================


@dataclass
class _Worker:
    worker_id: int
    process: multiprocessing.process.BaseProcess
    inbox: object
    ready_generation: int = -1
    retired_generation: int = -1
    in_flight: Bounds | None = None
    death_reported: bool = False

    def usable(self, generation: int) -> bool:
        return self.process.is_alive() and self.retired_generation != generation


@dataclass
class _RenderState:
    job: RenderJob
    source: str
    assets: dict[str, Asset]
    includes: dict[str, str]
    pending: deque[Bounds] = field(default_factory=deque)
    received: int = 0


class RenderWorkerPool:
    """A fixed set of persistent render worker processes.

    Args:
        thread_count: Number of worker processes.
        poll_interval: Dispatcher polling interval in seconds.

    Raises:
        ValueError: If thread_count is less than 1.
    """

    def __init__(self, thread_count: int, poll_interval: float = POLL_INTERVAL) -> None:
        if thread_count < 1:
            raise ValueError(f"thread_count = {thread_count} must be at least 1.")

        self.thread_count = thread_count
        self.poll_interval = poll_interval
        self._mp = multiprocessing.get_context("spawn")
        self._outbox = self._mp.Queue()
        self._workers: list[_Worker] = []
        self._commands: queue.Queue = queue.Queue()
        self._generation = 0
        self._state: _RenderState | None = None
        self._closed = False
        self._lock = threading.Lock()

        for worker_id in range(thread_count):
            inbox = self._mp.Queue()
            process = self._mp.Process(
                target=worker_main,
                args=(worker_id, inbox, self._outbox),
                name=f"scadtrace-worker-{worker_id}",
                daemon=True,
            )
            process.start()
            self._workers.append(_Worker(worker_id, process, inbox))
            logger.info("started render worker %d (pid %s)", worker_id, process.pid)

        self._dispatcher = threading.Thread(
            target=self._dispatch_loop, name="scadtrace-dispatcher", daemon=True
        )
        self._dispatcher.start()

    def __enter__(self) -> RenderWorkerPool:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def live_workers(self) -> int:
        return sum(1 for w in self._workers if w.process.is_alive())

    def render(
        self,
        source: str,
        options: RenderOptions,
        callback: Callable[[RenderEvent], None] | None = None,
        assets: Mapping[str, Asset] | None = None,
        includes: Mapping[str, str] | None = None,
    ) -> RenderJob:
        """Start rendering ``source`` and return immediately.

        A render already in progress is abandoned: it fails with a
        superseded error and its late replies are dropped.

        Raises:
            RenderError: If the pool is closed.
        """
        blocks = partition_blocks(options.width, options.height, options.block_size)
        with self._lock:
            if self._closed:
                raise RenderError("render pool is closed")
            self._generation += 1
            job = RenderJob(self._generation, options, callback)
        job.block_count = len(blocks)
        state = _RenderState(job, source, dict(assets or {}), dict(includes or {}), deque(blocks))
        self._commands.put(("render", state))
        return job

    def close(self) -> None:
        """Fail any active render, stop the dispatcher and shut the workers down."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._commands.put(("close", None))
        self._dispatcher.join()

        for worker in self._workers:
            if worker.process.is_alive():
                worker.inbox.put(Shutdown())
        for worker in self._workers:
            worker.process.join(SHUTDOWN_TIMEOUT)
            if worker.process.is_alive():
                logger.warning("terminating unresponsive worker %d", worker.worker_id)
                worker.process.terminate()
                worker.process.join()
        logger.info("render pool closed")

    # -------------------------------------------------------------------------
    # Dispatcher thread
    # -------------------------------------------------------------------------

    def _dispatch_loop(self) -> None:
        while True:
            try:
                command, payload = self._commands.get_nowait()
            except queue.Empty:
                command, payload = None, None

            if command == "close":
                self._fail("render pool closed")
                return
            if command == "render":
                self._start(payload)

            try:
                message = self._outbox.get(timeout=self.poll_interval)
            except queue.Empty:
                message = None
            if message is not None:
                self._handle(message)

            self._check_workers()

    def _start(self, state: _RenderState) -> None:
        if self._state is not None:
            self._fail("superseded by a newer render")

        self._state = state
        job = state.job
        logger.info(
            "render %d: %d blocks of %d px on %d workers",
            job.generation,
            job.block_count,
            job.options.block_size,
            self.live_workers,
        )
        job._emit(RenderEvent.init(job.options.block_size, job.block_count, time.time()))

        for worker in self._workers:
            worker.in_flight = None
            if worker.process.is_alive():
                worker.inbox.put(
                    Init(
                        job.generation,
                        worker.worker_id,
                        state.source,
                        state.assets,
                        job.options.seed,
                        state.includes,
                    )
                )
        self._check_workers()

    def _handle(self, message) -> None:
        state = self._state
        if state is None or message.generation != state.job.generation:
            logger.debug(
                "dropping stale %s from generation %d", type(message).__name__, message.generation
            )
            return
        worker = self._workers[message.worker_id]

        if isinstance(message, InitAck):
            if not message.loaded:
                self._fail("scene failed to load", message.diagnostics)
                return
            if not state.job.diagnostics:
                state.job.diagnostics = message.diagnostics
            worker.ready_generation = state.job.generation
            self._dispatch(worker)

        elif isinstance(message, Data):
            bounds = Bounds(message.xmin, message.xmax, message.ymin, message.ymax)
            worker.in_flight = None
            state.received += 1
            job = state.job
            if state.received == job.block_count:
                progress = 1.0
            else:
                progress = state.received / job.block_count
            job._emit(RenderEvent.for_result(RenderResult(bounds, message.pixels), progress))
            if state.received == job.block_count:
                logger.info("render %d finished", job.generation)
                job._emit(RenderEvent.finished(job.diagnostics))
                self._state = None
                return
            self._dispatch(worker)

        elif isinstance(message, WorkerError):
            logger.error("worker %d failed: %s", worker.worker_id, message.message)
            worker.retired_generation = state.job.generation
            self._requeue(worker)
            self._dispatch_idle()

    def _dispatch(self, worker: _Worker) -> None:
        state = self._state
        if state is None or worker.in_flight is not None or not state.pending:
            return
        generation = state.job.generation
        if worker.ready_generation != generation or not worker.usable(generation):
            return
        bounds = state.pending.popleft()
        worker.in_flight = bounds
        worker.inbox.put(
            Work(state.job.generation, bounds.xmin, bounds.xmax, bounds.ymin, bounds.ymax)
        )

    def _dispatch_idle(self) -> None:
        for worker in self._workers:
            self._dispatch(worker)

    def _requeue(self, worker: _Worker) -> None:
        if worker.in_flight is not None and self._state is not None:
            logger.info("requeueing block %s from worker %d", worker.in_flight, worker.worker_id)
            self._state.pending.appendleft(worker.in_flight)
        worker.in_flight = None

    def _check_workers(self) -> None:
        state = self._state
        if state is None:
            return
        for worker in self._workers:
            if not worker.process.is_alive() and not worker.death_reported:
                worker.death_reported = True
                logger.error(
                    "worker %d died (exit code %s)", worker.worker_id, worker.process.exitcode
                )
                self._requeue(worker)
                self._dispatch_idle()
        if not any(w.usable(state.job.generation) for w in self._workers):
            self._fail("no render workers remain")

    def _fail(self, error: str, diagnostics: tuple[Message, ...] = ()) -> None:
        state = self._state
        if state is None:
            return
        logger.error("render %d failed: %s", state.job.generation, error)
        state.job._emit(RenderEvent.failed(error, diagnostics))
        self._state = None
