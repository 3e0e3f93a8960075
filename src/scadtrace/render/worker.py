"""Worker process loop for the render pool.

Each worker initializes Taichi on the CPU, owns one :class:`RenderSession`
and serves messages from its private inbox until it receives
:class:`Shutdown`. Replies go to the outbox shared by all workers.

The entry point must stay importable without Taichi: worker processes are
started with the "spawn" method, and Taichi fields may only be declared
after ``ti.init``.
"""

from __future__ import annotations

import logging

from scadtrace.render.protocol import Data, Init, InitAck, Shutdown, Work, WorkerError
from scadtrace.scene.model import Message, MessageLevel

logger = logging.getLogger(__name__)


def worker_main(worker_id: int, inbox, outbox) -> None:
    """Serve Init/Work messages until Shutdown.

    Args:
        worker_id: Identifier echoed in every reply.
        inbox: Queue of messages addressed to this worker.
        outbox: Queue shared by all workers for replies.
    """
    import taichi as ti

    ti.init(arch=ti.cpu, cpu_max_num_threads=1)

    from scadtrace.render.session import RenderSession

    session = RenderSession()
    logger.debug("worker %d ready", worker_id)

    while True:
        message = inbox.get()

        if isinstance(message, Shutdown):
            break

        if isinstance(message, Init):
            session.seed = message.seed
            session.include_resolver = message.includes.get
            try:
                result = session.initialize(message.source, message.assets)
            except Exception as e:
                logger.exception("worker %d failed to initialize", worker_id)
                error = Message(MessageLevel.ERROR, f"initialize failed: {e}")
                outbox.put(InitAck(message.generation, worker_id, False, (error,)))
                continue
            outbox.put(InitAck(message.generation, worker_id, result.loaded, result.diagnostics))

        elif isinstance(message, Work):
            try:
                pixels = session.render_block(
                    message.xmin, message.xmax, message.ymin, message.ymax
                )
            except Exception as e:
                logger.exception("worker %d failed to render a block", worker_id)
                outbox.put(WorkerError(message.generation, worker_id, f"render failed: {e}"))
                continue
            outbox.put(
                Data(
                    message.generation,
                    worker_id,
                    message.xmin,
                    message.xmax,
                    message.ymin,
                    message.ymax,
                    tuple(pixels),
                )
            )

        else:
            logger.warning("worker %d ignoring unknown message %r", worker_id, message)

    logger.debug("worker %d shutting down", worker_id)
