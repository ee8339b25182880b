"""Coalescing of rapid-fire events for the same entity.

Saving a page three times in a second should notify subscribers once, with
the latest data. Events are held for a quiet period keyed on event type and
entity ID, and are always released within a maximum wait.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from hookline.models import FormEventData

if TYPE_CHECKING:
    from .dispatcher import Dispatcher

logger = logging.getLogger(__name__)


def entity_key(event_type: str, data: Any) -> str:
    """Debounce key for an event.

    Form submissions are keyed on the submission, everything else on its
    ``id``. Data without an identifiable entity is keyed on the event type.
    """
    entity_id: Any = None
    if isinstance(data, FormEventData):
        entity_id = data.submission_id
    elif isinstance(data, Mapping):
        entity_id = data.get("id")
    else:
        entity_id = getattr(data, "id", None)

    if isinstance(entity_id, float) and entity_id.is_integer():
        entity_id = int(entity_id)
    if entity_id is None or isinstance(entity_id, bool):
        return event_type
    return f"{event_type}:{entity_id}"


@dataclass
class _Pending:
    event_type: str
    data: Any
    first_seen: float
    handle: asyncio.TimerHandle | None = field(default=None, repr=False)


class Debouncer:
    """Holds events back briefly and dispatches only the latest per entity.

    Must be used from within a running event loop.

    Example:
        ```python
        debouncer = Debouncer(dispatcher, interval=1.0, max_wait=5.0)
        debouncer.dispatch("page.updated", {"id": 7, "title": "Draft"})
        debouncer.dispatch("page.updated", {"id": 7, "title": "Final"})
        await debouncer.stop()  # one delivery per webhook, with "Final"
        ```
    """

    def __init__(
        self,
        dispatcher: Dispatcher,
        interval: float = 1.0,
        max_wait: float = 5.0,
    ) -> None:
        """Initialize the debouncer.

        Args:
            dispatcher: Dispatcher that receives the coalesced events.
            interval: Quiet period in seconds after the last event for a key.
            max_wait: Seconds after the first event by which it is dispatched.
        """
        self._dispatcher = dispatcher
        self._interval = interval
        self._max_wait = max_wait
        self._pending: dict[str, _Pending] = {}
        self._inflight: set[asyncio.Task[list[str]]] = set()
        self._stopped = False

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def dispatch(self, event_type: str, data: Any) -> None:
        """Queue an event, replacing any pending event for the same entity."""
        if self._stopped:
            raise RuntimeError("Debouncer is stopped")

        loop = asyncio.get_running_loop()
        now = loop.time()
        key = entity_key(event_type, data)

        pending = self._pending.get(key)
        if pending is None:
            pending = _Pending(event_type=event_type, data=data, first_seen=now)
            self._pending[key] = pending
            logger.debug("Debounced event queued: %s", key)
        else:
            pending.event_type = event_type
            pending.data = data
            if pending.handle is not None:
                pending.handle.cancel()
            logger.debug("Debounced event updated: %s (waiting %.2fs)", key, now - pending.first_seen)

        remaining = self._max_wait - (now - pending.first_seen)
        if remaining <= 0:
            self._fire(key)
            return
        pending.handle = loop.call_later(min(self._interval, remaining), self._fire, key)

    def flush(self) -> int:
        """Dispatch every pending event now.

        Returns:
            Number of events released.
        """
        keys = list(self._pending)
        for key in keys:
            self._fire(key)
        return len(keys)

    async def stop(self) -> None:
        """Flush pending events and wait for their dispatches to finish."""
        self._stopped = True
        self.flush()
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)

    def _fire(self, key: str) -> None:
        pending = self._pending.pop(key, None)
        if pending is None:
            return
        if pending.handle is not None:
            pending.handle.cancel()

        task = asyncio.get_running_loop().create_task(
            self._dispatcher.dispatch(pending.event_type, pending.data)
        )
        self._inflight.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task[list[str]]) -> None:
        self._inflight.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Failed to dispatch debounced event: %s", exc, exc_info=exc)
