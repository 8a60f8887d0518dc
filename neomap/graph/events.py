"""Observer registration for model lifecycle events.

Models emit ``create(node)``, ``update(node, updates)`` and ``remove(node_id)``.
Handlers may be plain callables or coroutine functions.
"""

import inspect
from collections import defaultdict
from collections.abc import Callable
from typing import Any

import structlog

logger = structlog.get_logger(__name__)

Handler = Callable[..., Any]


class EventEmitter:
    """Minimal async-aware event emitter."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = defaultdict(list)

    def on(self, event: str, handler: Handler) -> Handler:
        """Register ``handler`` for ``event`` and return it."""
        self._handlers[event].append(handler)
        return handler

    def off(self, event: str, handler: Handler | None = None) -> None:
        """Remove one handler, or every handler for ``event`` when none is given."""
        if handler is None:
            self._handlers.pop(event, None)
        elif handler in self._handlers.get(event, []):
            self._handlers[event].remove(handler)

    def listeners(self, event: str) -> list[Handler]:
        return list(self._handlers.get(event, []))

    async def emit(self, event: str, *args: Any) -> None:
        """Call every handler of ``event`` in registration order."""
        handlers = self.listeners(event)
        logger.debug("Emitting event", event_name=event, handlers=len(handlers))
        for handler in handlers:
            result = handler(*args)
            if inspect.isawaitable(result):
                await result
