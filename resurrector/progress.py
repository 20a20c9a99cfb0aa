"""Progress reporting: ordered stage events delivered to a caller-owned sink."""

from __future__ import annotations

import asyncio
from typing import AsyncIterator, Callable, List, Optional, Set

from .logging import get_logger
from .models import PIPELINE_STAGES, ProgressEvent, Stage, Status

ProgressSink = Callable[[ProgressEvent], None]

_STAGE_ORDER = {stage: index for index, stage in enumerate(PIPELINE_STAGES)}

_logger = get_logger("progress")


class ProgressTracker:
    """Emits progress events and enforces monotonic stage completion.

    When a stage starts running, every earlier stage that is still open is
    completed first, so listeners never see an earlier stage finish after a
    later one began.
    """

    def __init__(self, sink: Optional[ProgressSink] = None) -> None:
        self._sink = sink
        self._open: List[Stage] = []
        self._finished: Set[Stage] = set()
        self.events: List[ProgressEvent] = []

    def running(self, stage: Stage, message: Optional[str] = None) -> None:
        self._complete_earlier(stage)
        if stage not in self._open and stage not in self._finished:
            self._open.append(stage)
        self._emit(ProgressEvent(stage, Status.RUNNING, message))

    def complete(self, stage: Stage, message: Optional[str] = None) -> None:
        self._close(stage)
        self._emit(ProgressEvent(stage, Status.COMPLETE, message))

    def error(self, stage: Stage, message: str) -> None:
        self._close(stage)
        self._emit(ProgressEvent(stage, Status.ERROR, message))

    def _complete_earlier(self, stage: Stage) -> None:
        position = _STAGE_ORDER.get(stage)
        if position is None:
            return
        for earlier in list(self._open):
            if _STAGE_ORDER.get(earlier, position) < position:
                self.complete(earlier)

    def _close(self, stage: Stage) -> None:
        if stage in self._open:
            self._open.remove(stage)
        self._finished.add(stage)

    def _emit(self, event: ProgressEvent) -> None:
        self.events.append(event)
        if self._sink is None:
            return
        try:
            self._sink(event)
        except Exception as exc:
            _logger.warning("Progress sink failed for %s/%s: %s", event.stage.value, event.status.value, exc)


_CLOSED = object()


class ProgressChannel:
    """Sink that buffers events for an async consumer.

    Pass the channel wherever a progress callback is accepted, then iterate it
    with ``async for``. Iteration ends once ``close`` is called.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._closed = False

    def __call__(self, event: ProgressEvent) -> None:
        if self._closed:
            return
        self._queue.put_nowait(event)

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> AsyncIterator[ProgressEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[ProgressEvent]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item  # type: ignore[misc]


__all__ = ["ProgressChannel", "ProgressSink", "ProgressTracker"]
