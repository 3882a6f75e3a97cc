"""Serialized, throttled reload requests to the simulator."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable

from equanimity.models import ReloadRequest

_logger = logging.getLogger(__name__)

ReloadCall = Callable[[int | None], Awaitable[None]]
"""Sends one reload to the simulator; ``None`` means every car."""


class ReloadDispatcher:
    """Drain reload requests one at a time, in enqueue order.

    A single worker task owns the queue, so the simulator never sees two
    overlapping reload calls. Each request waits ``throttle`` seconds
    before it is sent. :meth:`enqueue` never blocks the caller.

    Usage::

        dispatcher = ReloadDispatcher(source.request_reload, throttle=0.2)
        dispatcher.start()
        dispatcher.enqueue(ReloadRequest.for_slot(3))
        dispatcher.enqueue(ReloadRequest.sentinel())
        await dispatcher.join()
        await dispatcher.close()
    """

    def __init__(
        self,
        reload: ReloadCall,
        *,
        throttle: float = 0.2,
        quit_after_batch: bool = False,
        on_quit: Callable[[], None] | None = None,
    ) -> None:
        self._reload = reload
        self._throttle = throttle
        self._quit_after_batch = quit_after_batch
        self._on_quit = on_quit
        self._queue: asyncio.Queue[ReloadRequest] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None
        self._in_flight = 0
        self._batches_done = 0
        self._stopped = False

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def batches_done(self) -> int:
        return self._batches_done

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def set_quit_after_batch(self, enabled: bool) -> None:
        self._quit_after_batch = enabled

    def start(self) -> None:
        if self.is_running:
            return
        self._stopped = False
        self._worker = asyncio.get_running_loop().create_task(self._run(), name="equanimity-reload-dispatcher")

    def enqueue(self, request: ReloadRequest) -> None:
        """Queue *request* behind everything already queued."""
        if self._stopped:
            _logger.debug("Dispatcher stopped, dropping %s", request)
            return
        self._queue.put_nowait(request)
        _logger.debug("Queued %s (pending=%d)", request, self._queue.qsize())

    async def join(self) -> None:
        """Wait until every queued request has been processed."""
        await self._queue.join()

    async def close(self) -> None:
        """Stop the worker. Requests still queued are discarded."""
        self._stopped = True
        worker = self._worker
        self._worker = None
        if worker is None:
            return
        worker.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await worker

    async def _run(self) -> None:
        while True:
            request = await self._queue.get()
            try:
                if self._throttle > 0:
                    await asyncio.sleep(self._throttle)
                keep_going = await self._process(request)
            finally:
                self._queue.task_done()
            if not keep_going:
                return

    async def _process(self, request: ReloadRequest) -> bool:
        if request.batch_done:
            self._batches_done += 1
            _logger.info("All reload requests for this batch have been issued")
            if self._quit_after_batch:
                _logger.info("QuitAfterCopy is set, stopping")
                self._stopped = True
                if self._on_quit is not None:
                    self._on_quit()
                return False
            return True

        self._in_flight += 1
        try:
            await self._reload(request.slot)
            _logger.debug("Reload requested for slot %s", request.slot)
        except Exception as exc:
            _logger.warning("Reload for slot %s failed: %s", request.slot, exc)
        finally:
            self._in_flight -= 1
        return True
