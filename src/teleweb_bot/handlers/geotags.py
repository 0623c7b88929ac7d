"""Stamp photos with the location they were taken at."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime

from teleweb_bot.api.telegram_models import TelegramMessage
from teleweb_bot.domain.geo import GeoPoint
from teleweb_bot.domain.models import AcquiredFile, Mode, QueueTask
from teleweb_bot.handlers.base import (
    CommandHandler,
    FeatureHandler,
    select_largest_photo,
    timestamp_ms,
)
from teleweb_bot.services.gate import RequestContext
from teleweb_bot.services.geo import format_decimal, make_point
from teleweb_bot.services.geotag import GeotagRenderer, GeotagStamp

logger = logging.getLogger(__name__)

ALWAYS_TAG = "always_tag"
STICKY_LOCATION = "sticky_location"
PENDING_PHOTOS = "pending_photos"
CUSTOM_TIME = "custom_time"

TIME_FORMAT = "%Y-%m-%d %H:%M"

GEOTAGS_HELP = (
    "Geotags mode is active.\n\n"
    "Send a photo, then share the location to stamp onto it.\n\n"
    "- /alwaystag toggles a sticky location: share it once and every "
    "following photo is stamped with it\n"
    "- /set_time YYYY-MM-DD HH:MM sets the time printed on photos "
    "(/set_time reset uses the current time)\n\n"
    "Send /menu to leave."
)


@dataclass
class GeotagsHandler(FeatureHandler):
    """Pair photos with a location and send back the stamped image."""

    mode = Mode.GEOTAGS
    entry_command = "geotags"
    description = GEOTAGS_HELP

    renderer: GeotagRenderer = field(default_factory=GeotagRenderer)

    def __post_init__(self) -> None:
        super().__post_init__()
        self.deps.queue.register(self.mode, self.on_item_saved)

    def commands(self) -> dict[str, CommandHandler]:
        return {"alwaystag": self.toggle_always_tag, "set_time": self.set_time}

    async def toggle_always_tag(
        self, ctx: RequestContext, message: TelegramMessage, args: str
    ) -> None:
        state = self.deps.modes.get_state(ctx.telegram_user_id)
        if state.get(ALWAYS_TAG):
            self.deps.modes.update_state(
                ctx.telegram_user_id, {ALWAYS_TAG: False, STICKY_LOCATION: None}
            )
            await self.reply(
                ctx, "Always-tag is off. Each photo needs its own location."
            )
            return
        self.deps.modes.update_state(
            ctx.telegram_user_id, {ALWAYS_TAG: True, STICKY_LOCATION: None}
        )
        await self.reply(
            ctx,
            "Always-tag is on. Share the location to use for the next photos. "
            "Send /alwaystag again to turn it off.",
        )

    async def set_time(
        self, ctx: RequestContext, message: TelegramMessage, args: str
    ) -> None:
        value = args.strip()
        if not value:
            await self.reply(
                ctx,
                "Usage: /set_time YYYY-MM-DD HH:MM\n"
                "Example: /set_time 2024-01-20 10:30\n"
                "Use /set_time reset to go back to the current time.",
            )
            return
        if value.lower() == "reset":
            self.deps.modes.update_state(ctx.telegram_user_id, {CUSTOM_TIME: None})
            await self.reply(ctx, "Photos will be stamped with the current time.")
            return
        try:
            parsed = datetime.strptime(value, TIME_FORMAT)
        except ValueError:
            await self.reply(
                ctx, "Invalid date/time. Use YYYY-MM-DD HH:MM, e.g. 2024-06-28 14:00."
            )
            return
        self.deps.modes.update_state(
            ctx.telegram_user_id, {CUSTOM_TIME: parsed.isoformat()}
        )
        await self.reply(
            ctx, f"Photos will be stamped with {parsed.strftime(TIME_FORMAT)}."
        )

    async def on_photo(self, ctx: RequestContext, message: TelegramMessage) -> None:
        if not message.photo:
            return
        photo = select_largest_photo(message.photo)
        state = self.deps.modes.get_state(ctx.telegram_user_id)
        sticky = _point_from_state(state.get(STICKY_LOCATION))
        if state.get(ALWAYS_TAG) and sticky is not None:
            self._enqueue(ctx, photo.file_id, sticky, state.get(CUSTOM_TIME))
            return
        pending = [*_pending(state), photo.file_id]
        self.deps.modes.update_state(ctx.telegram_user_id, {PENDING_PHOTOS: pending})
        if state.get(ALWAYS_TAG):
            await self.reply(
                ctx,
                f"Photo received ({len(pending)} waiting). Share the sticky location "
                "to stamp them.",
            )
        else:
            await self.reply(
                ctx, f"Photo received ({len(pending)} waiting). Now share the location."
            )

    async def on_location(
        self, ctx: RequestContext, message: TelegramMessage
    ) -> None:
        location = message.location
        point = make_point(location.latitude, location.longitude) if location else None
        if point is None:
            await self.reply(ctx, "That location could not be read.")
            return
        user_id = ctx.telegram_user_id
        state = self.deps.modes.get_state(user_id)
        pending = _pending(state)
        if state.get(ALWAYS_TAG):
            self.deps.modes.update_state(
                user_id,
                {STICKY_LOCATION: point.model_dump(), PENDING_PHOTOS: []},
            )
            await self.reply(
                ctx, f"Sticky location set to {format_decimal(point)}."
            )
        elif not pending:
            await self.reply(ctx, "Send a photo first, then the location.")
            return
        else:
            self.deps.modes.update_state(user_id, {PENDING_PHOTOS: []})
        for file_id in pending:
            self._enqueue(ctx, file_id, point, state.get(CUSTOM_TIME))
        if pending:
            await self.reply(ctx, f"Stamping {len(pending)} photos...")

    async def on_item_saved(self, task: QueueTask, acquired: AcquiredFile) -> None:
        point = GeoPoint.model_validate(task.context["point"])
        custom_time = task.context.get("custom_time")
        taken_at = (
            datetime.fromisoformat(custom_time)
            if isinstance(custom_time, str)
            else datetime.now(tz=UTC)
        )
        target = acquired.path.with_name(f"stamped_{acquired.path.name}")
        try:
            await asyncio.to_thread(
                self.renderer.render,
                acquired.path,
                target,
                GeotagStamp(point=point, taken_at=taken_at),
            )
            await self.deps.telegram_client.send_photo(
                chat_id=task.chat_id, path=target, caption=format_decimal(point)
            )
        finally:
            acquired.path.unlink(missing_ok=True)
        self.deps.activity.record_activity(
            task.owner_user_id, "geotag_photo", mode=self.mode.value
        )

    def _enqueue(
        self,
        ctx: RequestContext,
        file_id: str,
        point: GeoPoint,
        custom_time: object,
    ) -> None:
        self.enqueue_photo(
            ctx,
            media_ref=file_id,
            target_dir=self.feature_dir(ctx),
            target_name=f"geotag_{timestamp_ms()}_{file_id[-8:]}.jpg",
            context={"point": point.model_dump(), "custom_time": custom_time},
        )


def _pending(state: dict[str, object]) -> list[str]:
    value = state.get(PENDING_PHOTOS)
    return [str(item) for item in value] if isinstance(value, list) else []


def _point_from_state(value: object) -> GeoPoint | None:
    if not isinstance(value, dict):
        return None
    return make_point(value.get("latitude", 0.0), value.get("longitude", 0.0))
