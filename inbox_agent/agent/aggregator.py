"""Per-sender debounce aggregation of inbound message fragments."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from loguru import logger


@dataclass(slots=True)
class Fragment:
    """One inbound text fragment with its originating timestamp (epoch seconds)."""

    content: str
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {"timestamp": self.timestamp, "content": self.content}


FlushCallback = Callable[[str, list[Fragment]], Awaitable[Any]]


@dataclass(slots=True)
class AggregationBuffer:
    """Fragments accumulated for one user since the previous flush."""

    user_id: str
    fragments: list[Fragment] = field(default_factory=list)
    timer: asyncio.TimerHandle | None = None


class MessageAggregator:
    """
    Buffer fragments per user and flush them after a quiet period.

    Every `push` reschedules the user's flush to `debounce_seconds` after that
    push. When the timer fires the buffer leaves the active map before the
    callback starts, so fragments arriving during a running flush open a fresh
    buffer. Flush failures are logged and never retried.
    """

    def __init__(self, callback: FlushCallback, *, debounce_seconds: float = 10.0, name: str = ""):
        self.callback = callback
        self.debounce_seconds = max(0.0, float(debounce_seconds))
        self.name = name or "aggregator"
        self._buffers: dict[str, AggregationBuffer] = {}
        self._inflight: set[asyncio.Task[None]] = set()

    @property
    def active_users(self) -> list[str]:
        return list(self._buffers)

    @property
    def inflight(self) -> int:
        return len(self._inflight)

    def pending(self, user_id: str) -> list[Fragment]:
        """Fragments waiting in the user's active buffer."""
        buffer = self._buffers.get(user_id)
        return list(buffer.fragments) if buffer else []

    def push(self, user_id: str, fragment: Fragment) -> None:
        """Append a fragment and (re)schedule the user's flush. Never blocks."""
        loop = asyncio.get_running_loop()
        buffer = self._buffers.get(user_id)
        if buffer is None:
            buffer = AggregationBuffer(user_id=user_id)
            self._buffers[user_id] = buffer
        elif buffer.timer is not None:
            buffer.timer.cancel()

        buffer.fragments.append(fragment)
        buffer.timer = loop.call_later(self.debounce_seconds, self._fire, buffer)
        logger.debug(
            f"{self.name}: buffered fragment for {user_id} ({len(buffer.fragments)} pending)"
        )

    def _fire(self, buffer: AggregationBuffer) -> None:
        if self._buffers.get(buffer.user_id) is not buffer:
            return
        del self._buffers[buffer.user_id]
        buffer.timer = None
        task = asyncio.get_running_loop().create_task(self._run_flush(buffer))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _run_flush(self, buffer: AggregationBuffer) -> None:
        logger.info(
            f"{self.name}: flushing {len(buffer.fragments)} fragment(s) for {buffer.user_id}"
        )
        try:
            await self.callback(buffer.user_id, buffer.fragments)
        except Exception as e:
            logger.error(f"{self.name}: flush failed for {buffer.user_id}: {e}")

    def flush_now(self, user_id: str) -> bool:
        """Flush a user's buffer immediately. Returns False when nothing is pending."""
        buffer = self._buffers.get(user_id)
        if buffer is None:
            return False
        if buffer.timer is not None:
            buffer.timer.cancel()
        self._fire(buffer)
        return True

    async def close(self, *, flush: bool = True) -> None:
        """Flush (or drop) pending buffers and wait for running flushes."""
        for user_id in list(self._buffers):
            if flush:
                self.flush_now(user_id)
            else:
                buffer = self._buffers.pop(user_id)
                if buffer.timer is not None:
                    buffer.timer.cancel()
        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)
