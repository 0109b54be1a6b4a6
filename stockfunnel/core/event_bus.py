"""Async pub-sub used for progress reporting."""
from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any, Callable, Coroutine

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Coroutine[Any, Any, None]]

SCREENER_PROGRESS = "screener.progress"
AI_PROGRESS = "ai.progress"


class EventBus:
    """Async event bus. A failing handler is logged and never reaches the emitter.

    Example:
        >>> bus = EventBus()
        >>> async def on_progress(snapshot):
        ...     print(snapshot["processed"])
        >>> bus.subscribe(SCREENER_PROGRESS, on_progress)
        >>> await bus.emit(SCREENER_PROGRESS, {"processed": 10})
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = defaultdict(list)

    def subscribe(self, event: str, handler: Handler) -> None:
        if not callable(handler):
            raise TypeError(f"Handler must be callable, got {type(handler)}")
        self._handlers[event].append(handler)

    def unsubscribe(self, event: str, handler: Handler) -> None:
        handlers = self._handlers.get(event)
        if handlers and handler in handlers:
            handlers.remove(handler)

    async def emit(self, event: str, data: Any = None) -> None:
        handlers = list(self._handlers.get(event, []))
        if handlers:
            await asyncio.gather(*(self._safe_call(h, event, data) for h in handlers))

    async def _safe_call(self, handler: Handler, event: str, data: Any) -> None:
        try:
            await handler(data)
        except Exception:
            logger.exception(
                "Handler %s failed for event '%s'",
                getattr(handler, "__name__", repr(handler)),
                event,
            )
