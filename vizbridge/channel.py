"""Outbound message channel from the bridge to the control process.

Every notification the bridge raises (readiness, schema snapshot, settings
updates, selection changes, dialog results) is published as a discrete,
timestamped ``ControlMessage`` and fanned out to all subscribers.  Host
callbacks never call into the control process directly.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any

log = logging.getLogger(__name__)

__all__ = ["ControlChannel", "ControlMessage"]


@dataclass(slots=True, frozen=True)
class ControlMessage:
    """One outbound notification.

    Attributes
    ----------
    type : str
        Message kind (``ready``, ``schema``, ``setting``, ``settings``,
        ``selection-changed``, ``dialog-closed``, ``error``...).
    body : dict[str, Any]
        Kind-specific fields, merged into the wire form.
    timestamp : float
        Wall-clock time the message was published.
    """

    type: str
    body: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    def to_wire(self) -> dict[str, Any]:
        return {"type": self.type, "timestamp": self.timestamp, **self.body}


class ControlChannel:
    """Fans out published messages to every subscriber queue."""

    def __init__(self, max_buffer: int = 100, queue_size: int = 500) -> None:
        self._subscribers: dict[str, asyncio.Queue[ControlMessage]] = {}
        self._event_buffer: list[ControlMessage] = []
        self._max_buffer = max_buffer
        self._queue_size = queue_size

    def subscribe(self, replay: bool = False) -> tuple[str, asyncio.Queue[ControlMessage]]:
        """Register a subscriber; with *replay*, buffered messages are queued first."""
        sub_id = str(uuid.uuid4())[:8]
        queue: asyncio.Queue[ControlMessage] = asyncio.Queue(maxsize=self._queue_size)
        if replay:
            for message in self._event_buffer[-self._queue_size:]:
                queue.put_nowait(message)
        self._subscribers[sub_id] = queue
        log.debug("channel subscriber %s added (total: %d)", sub_id, len(self._subscribers))
        return sub_id, queue

    def unsubscribe(self, sub_id: str) -> None:
        self._subscribers.pop(sub_id, None)
        log.debug("channel subscriber %s removed (total: %d)", sub_id, len(self._subscribers))

    def publish(self, type_: str, **body: Any) -> ControlMessage:
        """Publish a message of kind *type_* to all subscribers."""
        message = ControlMessage(type=type_, body=body)
        self._event_buffer.append(message)
        if len(self._event_buffer) > self._max_buffer:
            self._event_buffer = self._event_buffer[-self._max_buffer:]

        for sub_id, queue in list(self._subscribers.items()):
            try:
                queue.put_nowait(message)
            except asyncio.QueueFull:
                # Drop the oldest message for a slow subscriber.
                log.warning("channel subscriber %s is full; dropping oldest message", sub_id)
                try:
                    queue.get_nowait()
                    queue.put_nowait(message)
                except (asyncio.QueueEmpty, asyncio.QueueFull):
                    pass
        return message

    @property
    def recent_messages(self) -> list[ControlMessage]:
        """Return recent buffered messages."""
        return list(self._event_buffer)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)
