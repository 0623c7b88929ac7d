"""Shared plumbing for feature handlers."""

import asyncio
import contextlib
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import ClassVar

from teleweb_bot.adapters.telegram_client import TelegramClient
from teleweb_bot.api.telegram_models import TelegramMessage, TelegramPhotoSize
from teleweb_bot.domain.models import Mode, QueueTask
from teleweb_bot.services.audit import ActivityService
from teleweb_bot.services.gate import RequestContext
from teleweb_bot.services.ingestion import IngestionQueue
from teleweb_bot.services.modes import ModeStore
from teleweb_bot.services.storage import UserStorage

logger = logging.getLogger(__name__)

CommandHandler = Callable[[RequestContext, TelegramMessage, str], Awaitable[None]]


@dataclass
class HandlerDeps:
    """Collaborators every feature handler needs."""

    telegram_client: TelegramClient
    modes: ModeStore
    storage: UserStorage
    queue: IngestionQueue
    activity: ActivityService


class UserLocks:
    """One asyncio lock per user for read-modify-write of feature state."""

    def __init__(self) -> None:
        self._locks: dict[int, asyncio.Lock] = {}
        self._holders: dict[int, int] = {}

    @contextlib.asynccontextmanager
    async def hold(self, user_id: int) -> AsyncIterator[None]:
        """Hold the user's lock; it is discarded once nobody holds or awaits it."""
        lock = self._locks.setdefault(user_id, asyncio.Lock())
        self._holders[user_id] = self._holders.get(user_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[user_id] -= 1
            if not self._holders[user_id]:
                del self._holders[user_id]
                del self._locks[user_id]

    def __len__(self) -> int:
        return len(self._locks)


@dataclass
class FeatureHandler:
    """Base class for the per-mode handlers.

    Subclasses set ``mode``, ``entry_command`` and ``description``, and
    override whichever ``on_*`` hooks the feature reacts to.
    """

    mode: ClassVar[Mode]
    entry_command: ClassVar[str | None] = None
    description: ClassVar[str] = ""

    deps: HandlerDeps

    def __post_init__(self) -> None:
        self.locks = UserLocks()

    def commands(self) -> dict[str, CommandHandler]:
        """Slash commands that only apply while the user is in this mode."""
        return {}

    async def enter(
        self, ctx: RequestContext, message: TelegramMessage, args: str
    ) -> None:
        self.deps.modes.set_mode(ctx.telegram_user_id, self.mode)
        await self.reply(ctx, self.description)

    async def reset(self, ctx: RequestContext) -> None:
        """Drop any in-memory progress for the user."""

    async def on_text(self, ctx: RequestContext, message: TelegramMessage) -> None:
        await self.reply(ctx, self.unsupported_message("text"))

    async def on_photo(self, ctx: RequestContext, message: TelegramMessage) -> None:
        await self.reply(ctx, self.unsupported_message("photos"))

    async def on_document(
        self, ctx: RequestContext, message: TelegramMessage
    ) -> None:
        await self.reply(ctx, self.unsupported_message("files"))

    async def on_location(
        self, ctx: RequestContext, message: TelegramMessage
    ) -> None:
        await self.reply(ctx, self.unsupported_message("locations"))

    def unsupported_message(self, kind: str) -> str:
        return (
            f"{self.mode.value.upper()} mode does not accept {kind}. "
            "Send /menu to switch features."
        )

    async def reply(self, ctx: RequestContext, text: str) -> None:
        await self.deps.telegram_client.send_message(chat_id=ctx.chat_id, text=text)

    def feature_dir(self, ctx: RequestContext) -> Path:
        return self.deps.storage.ensure_user_feature_dir(
            ctx.telegram_user_id, self.mode.value
        )

    def enqueue_photo(
        self,
        ctx: RequestContext,
        media_ref: str,
        target_dir: Path,
        target_name: str,
        context: dict[str, object] | None = None,
    ) -> int:
        return self.deps.queue.enqueue(
            QueueTask(
                media_ref=media_ref,
                target_name=target_name,
                target_dir=target_dir,
                owner_user_id=ctx.telegram_user_id,
                chat_id=ctx.chat_id,
                mode=self.mode,
                enqueued_at=datetime.now(tz=UTC),
                context=context or {},
            )
        )

    def record(
        self,
        ctx: RequestContext,
        action: str,
        *,
        success: bool = True,
        details: dict[str, object] | None = None,
        error_message: str | None = None,
    ) -> None:
        self.deps.activity.record_activity(
            ctx.telegram_user_id,
            action,
            user_id=ctx.user.id if ctx.user else None,
            mode=self.mode.value,
            success=success,
            details=details,
            error_message=error_message,
        )


class IdleHandler(FeatureHandler):
    """Handles events from users who have not picked a feature."""

    mode = Mode.IDLE

    def unsupported_message(self, kind: str) -> str:
        return "Pick a feature first. Send /help to see the ones available to you."


def select_largest_photo(photos: list[TelegramPhotoSize]) -> TelegramPhotoSize:
    """Select the largest photo size from the Telegram payload."""
    return max(photos, key=lambda photo: (photo.width * photo.height))


def timestamp_ms() -> int:
    return int(time.time() * 1000)


def unique_path(directory: Path, name: str) -> Path:
    """Return ``directory/name``, adding a counter if the file already exists."""
    candidate = directory / name
    stem = candidate.stem
    suffix = candidate.suffix
    counter = 1
    while candidate.exists():
        candidate = directory / f"{stem}_{counter}{suffix}"
        counter += 1
    return candidate
