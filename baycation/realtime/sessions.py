from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from dataclasses import field
from typing import Any

# Pushed onto an outbox to stop its writer.
CLOSE = object()


@dataclass(eq=False)
class Session:
    """One live connection.

    Outbound events are queued on ``outbox`` without suspending; the transport
    drains it. Inbound commands are queued on ``inbox`` and processed one at a
    time, which is what keeps a sender's events in order.
    """

    session_id: str
    user_id: int
    user_name: str = ""
    rooms: set[str] = field(default_factory=set)
    connected_at: float = field(default_factory=time.monotonic)
    last_activity: float = field(default_factory=time.monotonic)
    outbox: asyncio.Queue = field(default_factory=asyncio.Queue, repr=False)
    inbox: asyncio.Queue = field(default_factory=asyncio.Queue, repr=False)
    closed: bool = False

    @property
    def user_payload(self) -> dict[str, Any]:
        return {"id": self.user_id, "name": self.user_name}

    def touch(self, now: float | None = None) -> None:
        self.last_activity = time.monotonic() if now is None else now

    def deliver(self, event: str, payload: Any) -> bool:
        if self.closed:
            return False
        self.outbox.put_nowait((event, payload))
        return True

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.outbox.put_nowait(CLOSE)

    def drain(self) -> list[tuple[str, Any]]:
        """Pop every queued outbound event (used by tests and shutdown)."""

        events = []
        while not self.outbox.empty():
            item = self.outbox.get_nowait()
            if item is not CLOSE:
                events.append(item)
        return events
