"""Coordinate lookup and distance measurement."""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from teleweb_bot.api.telegram_models import TelegramMessage
from teleweb_bot.domain.geo import GeoPoint
from teleweb_bot.domain.models import Mode
from teleweb_bot.handlers.base import CommandHandler, FeatureHandler
from teleweb_bot.services.gate import RequestContext
from teleweb_bot.services.geo import (
    extract_coordinates,
    format_decimal,
    format_distance,
    format_dms,
    haversine_m,
    make_point,
    parse_coordinate_args,
)

MEASURE = "measure"
MEASURE_TIMEOUT = timedelta(minutes=10)

LOCATION_HELP = (
    "Location mode is active.\n\n"
    "- Share a location to get its coordinates in decimal and DMS\n"
    "- /koordinat <lat> <lon> converts typed coordinates\n"
    "- /ukur measures the distance between the next two shared locations\n"
    "- /batal cancels a measurement\n\n"
    "Send /menu to leave."
)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class LocationHandler(FeatureHandler):
    """Echo coordinates and measure straight-line distances."""

    mode = Mode.LOCATION
    entry_command = "location"
    description = LOCATION_HELP

    clock: Callable[[], datetime] = field(default=_utcnow)

    def commands(self) -> dict[str, CommandHandler]:
        return {
            "koordinat": self.convert_coordinates,
            "ukur": self.start_measurement,
            "batal": self.cancel_measurement,
        }

    async def on_location(
        self, ctx: RequestContext, message: TelegramMessage
    ) -> None:
        location = message.location
        point = make_point(location.latitude, location.longitude) if location else None
        if point is None:
            await self.reply(ctx, "That location could not be read.")
            return
        measure = self._active_measurement(ctx.telegram_user_id)
        if measure is None:
            await self.reply(ctx, _describe(point))
            return
        start = measure.get("start")
        if not isinstance(start, dict):
            measure["start"] = point.model_dump()
            self.deps.modes.update_state(ctx.telegram_user_id, {MEASURE: measure})
            await self.reply(
                ctx, f"Start point {format_decimal(point)} saved. Share the end point."
            )
            return
        start_point = GeoPoint.model_validate(start)
        distance = haversine_m(start_point, point)
        self.deps.modes.update_state(ctx.telegram_user_id, {MEASURE: None})
        self.record(ctx, "location_measure", details={"metres": round(distance, 1)})
        await self.reply(
            ctx,
            "Distance measured:\n"
            f"- From: {format_decimal(start_point)}\n"
            f"- To: {format_decimal(point)}\n"
            f"- Straight line: {format_distance(distance)}",
        )

    async def on_text(self, ctx: RequestContext, message: TelegramMessage) -> None:
        point = extract_coordinates(message.text or "")
        if point is None:
            await self.reply(
                ctx, "Share a location, or send coordinates like -7.2575, 112.7521."
            )
            return
        await self.reply(ctx, _describe(point))

    async def convert_coordinates(
        self, ctx: RequestContext, message: TelegramMessage, args: str
    ) -> None:
        point = parse_coordinate_args(args.split())
        if point is None:
            await self.reply(ctx, "Usage: /koordinat <latitude> <longitude>")
            return
        await self.reply(ctx, _describe(point))

    async def start_measurement(
        self, ctx: RequestContext, message: TelegramMessage, args: str
    ) -> None:
        self.deps.modes.update_state(
            ctx.telegram_user_id,
            {MEASURE: {"started_at": self.clock().isoformat(), "start": None}},
        )
        await self.reply(
            ctx, "Measurement started. Share the start point, then the end point."
        )

    async def cancel_measurement(
        self, ctx: RequestContext, message: TelegramMessage, args: str
    ) -> None:
        if self._active_measurement(ctx.telegram_user_id) is None:
            await self.reply(ctx, "There is no measurement in progress.")
            return
        self.deps.modes.update_state(ctx.telegram_user_id, {MEASURE: None})
        await self.reply(ctx, "Measurement cancelled.")

    def _active_measurement(self, user_id: int) -> dict[str, object] | None:
        measure = self.deps.modes.get_state(user_id).get(MEASURE)
        if not isinstance(measure, dict):
            return None
        started_at = datetime.fromisoformat(str(measure["started_at"]))
        if self.clock() - started_at > MEASURE_TIMEOUT:
            self.deps.modes.update_state(user_id, {MEASURE: None})
            return None
        return dict(measure)


def _describe(point: GeoPoint) -> str:
    return (
        f"Decimal: {format_decimal(point)}\n"
        f"DMS: {format_dms(point)}\n"
        f"Map: https://maps.google.com/?q={point.latitude},{point.longitude}"
    )
