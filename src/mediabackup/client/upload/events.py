"""Event channel the scheduler publishes pipeline events to.

Listeners are plain callables invoked on the event loop thread in publish
order. A failing listener is logged and never breaks the pipeline.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable

from mediabackup.client.upload.types import AllCompleteEvent, EventListener, PipelineEvent

logger = logging.getLogger(__name__)


class EventChannel:
    """Publish/subscribe channel for ProgressEvent, ItemCompleteEvent and AllCompleteEvent."""

    def __init__(self) -> None:
        self._listeners: list[EventListener] = []

    def subscribe(self, listener: EventListener) -> Callable[[], None]:
        """Register a listener.

        Returns:
            Function that removes the listener again.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: PipelineEvent) -> None:
        """Deliver an event to every listener."""
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(f"Event listener failed on {type(event).__name__}")

    async def stream(self) -> AsyncIterator[PipelineEvent]:
        """Iterate over published events until the run completes.

        The AllCompleteEvent is the last event yielded.

        Usage:
            async for event in scheduler.events.stream():
                print(event)
        """
        queue: asyncio.Queue[PipelineEvent] = asyncio.Queue()
        unsubscribe = self.subscribe(queue.put_nowait)
        try:
            while True:
                event = await queue.get()
                yield event
                if isinstance(event, AllCompleteEvent):
                    return
        finally:
            unsubscribe()

    def __len__(self) -> int:
        """Get number of listeners."""
        return len(self._listeners)
