"""Per-user media ingestion queue."""

import asyncio
import contextlib
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from teleweb_bot.adapters.telegram_client import TelegramClient
from teleweb_bot.domain.models import AcquiredFile, Mode, PerUserQueueState, QueueTask

logger = logging.getLogger(__name__)

ItemHandler = Callable[[QueueTask, AcquiredFile], Awaitable[None]]


class MediaAcquirer(Protocol):
    """Interface for turning a media reference into a local file."""

    async def acquire(self, media_ref: str, target_path: Path) -> AcquiredFile:
        """Write the referenced media to ``target_path``."""


@dataclass
class IngestionQueue:
    """FIFO of media tasks per user, drained by one worker per user.

    Items for one user are acquired strictly in order with at least
    ``min_spacing`` seconds between them. Different users drain independently.
    A failing item is logged and counted; the rest of the batch continues.
    """

    acquisition: MediaAcquirer
    notifier: TelegramClient
    min_spacing: float = 0.1
    progress_every: int = 10
    clock: Callable[[], float] = time.monotonic
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    _states: dict[int, PerUserQueueState] = field(default_factory=dict, init=False)
    _generations: dict[int, int] = field(default_factory=dict, init=False)
    _handlers: dict[Mode, ItemHandler] = field(default_factory=dict, init=False)
    _workers: dict[int, asyncio.Task] = field(default_factory=dict, init=False)

    def register(self, mode: Mode, on_item: ItemHandler) -> None:
        """Register the completion routine for items enqueued by ``mode``."""
        self._handlers[mode] = on_item

    def enqueue(self, task: QueueTask) -> int:
        """Append a task and return the number of items now pending."""
        state = self._states.setdefault(task.owner_user_id, PerUserQueueState())
        state.pending.append(task)
        if not state.is_draining:
            state.is_draining = True
            self._workers[task.owner_user_id] = asyncio.create_task(
                self._drain(task.owner_user_id)
            )
        return len(state.pending)

    def clear(self, user_id: int) -> int:
        """Drop pending items for the user and reset counters.

        An item already being processed is allowed to finish.
        """
        state = self._states.get(user_id)
        if state is None:
            return 0
        dropped = len(state.pending)
        state.pending.clear()
        state.processed_count = 0
        state.error_count = 0
        self._generations[user_id] = self._generations.get(user_id, 0) + 1
        if not state.is_draining:
            self._forget(user_id)
        if dropped:
            logger.info(
                "Cleared ingestion queue",
                extra={"user_id": user_id, "dropped": dropped},
            )
        return dropped

    def pending_count(self, user_id: int) -> int:
        state = self._states.get(user_id)
        return len(state.pending) if state else 0

    def is_draining(self, user_id: int) -> bool:
        state = self._states.get(user_id)
        return state.is_draining if state else False

    def state(self, user_id: int) -> PerUserQueueState:
        return self._states.setdefault(user_id, PerUserQueueState())

    def view(self, user_id: int) -> PerUserQueueState:
        """Return the user's state without keeping an entry for unknown users."""
        return self._states.get(user_id) or PerUserQueueState()

    def snapshot(self) -> dict[str, dict[str, object]]:
        return {
            str(user_id): {
                "pending": len(state.pending),
                "is_draining": state.is_draining,
                "processed_count": state.processed_count,
                "error_count": state.error_count,
            }
            for user_id, state in self._states.items()
        }

    async def wait_idle(self, user_id: int) -> None:
        """Wait until the user's worker has drained the queue."""
        worker = self._workers.get(user_id)
        if worker is not None:
            await asyncio.shield(worker)

    async def close(self) -> None:
        workers = list(self._workers.values())
        for worker in workers:
            worker.cancel()
        for worker in workers:
            with contextlib.suppress(asyncio.CancelledError):
                await worker
        self._workers.clear()

    async def _drain(self, user_id: int) -> None:
        state = self._states[user_id]
        generation = self._generations.get(user_id, 0)
        handled = 0
        failed = 0
        try:
            while state.pending:
                task = state.pending.popleft()
                await self._wait_for_spacing(state)
                ok = await self._process(task)
                state.last_processed_at = self.clock()
                if self._generations.get(user_id, 0) != generation:
                    # Cleared while this item was in flight.
                    generation = self._generations.get(user_id, 0)
                    handled = failed = 0
                    continue
                handled += 1
                if ok:
                    state.processed_count += 1
                else:
                    state.error_count += 1
                    failed += 1
                if state.pending and handled % self.progress_every == 0:
                    await self._notify(
                        task.chat_id,
                        f"Progress: {handled}/{handled + len(state.pending)} photos "
                        f"handled, {failed} failed, {len(state.pending)} remaining.",
                    )
                elif not state.pending:
                    # Items enqueued during this await are picked up by the loop.
                    await self._notify(task.chat_id, _summary(handled, failed))
                    handled = failed = 0
        finally:
            state.is_draining = False
            self._workers.pop(user_id, None)
            if not state.pending and not (state.processed_count or state.error_count):
                self._forget(user_id)

    def _forget(self, user_id: int) -> None:
        self._states.pop(user_id, None)
        self._generations.pop(user_id, None)

    async def _wait_for_spacing(self, state: PerUserQueueState) -> None:
        if state.last_processed_at is None:
            return
        elapsed = self.clock() - state.last_processed_at
        if elapsed < self.min_spacing:
            await self.sleep(self.min_spacing - elapsed)

    async def _process(self, task: QueueTask) -> bool:
        handler = self._handlers.get(task.mode)
        try:
            acquired = await self.acquisition.acquire(task.media_ref, task.target_path)
            if handler is not None:
                await handler(task, acquired)
        except Exception:
            logger.exception(
                "Failed to ingest media",
                extra={
                    "user_id": task.owner_user_id,
                    "media_ref": task.media_ref,
                    "mode": task.mode.value,
                },
            )
            return False
        return True

    async def _notify(self, chat_id: int, text: str) -> None:
        try:
            await self.notifier.send_message(chat_id=chat_id, text=text)
        except Exception:
            logger.exception("Failed to send queue progress", extra={"chat": chat_id})


def _summary(handled: int, failed: int) -> str:
    saved = handled - failed
    if failed:
        return f"Done: {saved} of {handled} photos saved, {failed} failed."
    return f"Done: {saved} of {handled} photos saved."
