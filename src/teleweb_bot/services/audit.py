"""Fire-and-forget activity logging."""

import asyncio
import contextlib
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Protocol
from uuid import UUID

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActivityEvent:
    """A single user action reported to the activity log."""

    telegram_user_id: int
    user_id: UUID | None
    action: str
    mode: str | None
    success: bool
    details: dict[str, object] | None = None
    error_message: str | None = None
    occurred_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))


class ActivityRepository(Protocol):
    """Persistence interface for activity events."""

    def create_activity(self, event: ActivityEvent) -> None:
        """Persist an activity event."""


@dataclass
class ActivityService:
    """Buffer activity events and write them in the background.

    ``record_activity`` never blocks and never raises. When the buffer is
    full the oldest event is dropped.
    """

    repository: ActivityRepository
    max_queue: int = 1000
    recorded: int = field(default=0, init=False)
    dropped: int = field(default=0, init=False)
    failed: int = field(default=0, init=False)
    _events: deque[ActivityEvent] = field(default_factory=deque, init=False)
    _wakeup: asyncio.Event | None = field(default=None, init=False)
    _task: asyncio.Task | None = field(default=None, init=False)

    def record_activity(  # noqa: PLR0913
        self,
        telegram_user_id: int,
        action: str,
        *,
        user_id: UUID | None = None,
        mode: str | None = None,
        success: bool = True,
        details: dict[str, object] | None = None,
        error_message: str | None = None,
    ) -> None:
        """Queue an activity event for persistence."""
        if len(self._events) >= self.max_queue:
            self._events.popleft()
            self.dropped += 1
        self._events.append(
            ActivityEvent(
                telegram_user_id=telegram_user_id,
                user_id=user_id,
                action=action,
                mode=mode,
                success=success,
                details=details,
                error_message=error_message,
            )
        )
        if self._wakeup is not None:
            self._wakeup.set()

    def pending(self) -> int:
        return len(self._events)

    def stats(self) -> dict[str, int]:
        return {
            "pending": len(self._events),
            "recorded": self.recorded,
            "dropped": self.dropped,
            "failed": self.failed,
        }

    def start(self) -> None:
        """Start draining events on the running event loop."""
        if self._task is not None and not self._task.done():
            return
        self._wakeup = asyncio.Event()
        self._task = asyncio.create_task(self._drain_forever())

    async def stop(self) -> None:
        """Stop the background writer and flush what is left."""
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        self._wakeup = None
        await self.flush()

    async def flush(self) -> None:
        while self._events:
            event = self._events.popleft()
            try:
                await asyncio.to_thread(self.repository.create_activity, event)
            except Exception:
                self.failed += 1
                logger.exception(
                    "Failed to record activity",
                    extra={"action": event.action, "user": event.telegram_user_id},
                )
            else:
                self.recorded += 1

    async def _drain_forever(self) -> None:
        wakeup = self._wakeup or asyncio.Event()
        wakeup.set()
        while True:
            await wakeup.wait()
            wakeup.clear()
            await self.flush()
