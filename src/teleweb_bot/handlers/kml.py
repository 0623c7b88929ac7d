"""KML point and line collection."""

import asyncio
from dataclasses import dataclass

from teleweb_bot.api.telegram_models import TelegramMessage
from teleweb_bot.domain.kml import KmlData
from teleweb_bot.domain.models import Mode
from teleweb_bot.handlers.base import CommandHandler, FeatureHandler, timestamp_ms
from teleweb_bot.services.geo import make_point, parse_coordinate_args
from teleweb_bot.services.gate import RequestContext
from teleweb_bot.services.kml import (
    KmlAccumulator,
    PointAdded,
    PointSource,
    kml_filename,
    render_kml,
)
from teleweb_bot.services.storage import FeatureStateStore

NEXT_POINT_NAME = "next_point_name"

KML_HELP = (
    "KML mode is active.\n\n"
    "Points:\n"
    "- Share a location to add a point\n"
    "- /add <lat> <lon> [name] adds a point by hand\n"
    "- /addpoint <name> names the next point\n"
    "- /alwayspoint [name] sets a default name (no name clears it)\n\n"
    "Lines:\n"
    "- /startline [name], then share locations\n"
    "- /endline saves the line, /cancelline drops it\n\n"
    "Output:\n"
    "- /mydata shows what you have collected\n"
    "- /createkml [name] builds the .kml file\n"
    "- /cleardata deletes everything\n\n"
    "Send /menu to leave."
)


@dataclass
class KmlHandler(FeatureHandler):
    """Collect points and lines, then export them as a KML document."""

    mode = Mode.KML
    entry_command = "kml"
    description = KML_HELP

    state_store: FeatureStateStore[KmlData] | None = None

    def __post_init__(self) -> None:
        super().__post_init__()
        if self.state_store is None:
            self.state_store = FeatureStateStore(
                self.deps.storage, Mode.KML.value, KmlData
            )

    def commands(self) -> dict[str, CommandHandler]:
        return {
            "add": self.add_manual_point,
            "addpoint": self.queue_point_name,
            "alwayspoint": self.set_default_name,
            "startline": self.start_line,
            "endline": self.end_line,
            "cancelline": self.cancel_line,
            "mydata": self.show_data,
            "createkml": self.create_kml,
            "cleardata": self.clear_data,
        }

    async def on_location(
        self, ctx: RequestContext, message: TelegramMessage
    ) -> None:
        location = message.location
        point = make_point(location.latitude, location.longitude) if location else None
        if point is None:
            await self.reply(ctx, "That location could not be read.")
            return
        user_id = ctx.telegram_user_id
        async with self.locks.hold(user_id):
            accumulator = self._load(user_id)
            queued = self.deps.modes.get_state(user_id).get(NEXT_POINT_NAME)
            result = accumulator.add_point(
                point,
                source=PointSource.LOCATION,
                queued_name=queued if isinstance(queued, str) else None,
            )
            self._save(user_id, accumulator)
        if not result.on_line and queued:
            self.deps.modes.update_state(user_id, {NEXT_POINT_NAME: None})
        self.record(ctx, "kml_add_location", details={"on_line": result.on_line})
        await self.reply(ctx, _describe_point(result))

    async def on_text(self, ctx: RequestContext, message: TelegramMessage) -> None:
        await self.reply(
            ctx, "Share a location or use one of the KML commands. Send /kml for help."
        )

    async def add_manual_point(
        self, ctx: RequestContext, message: TelegramMessage, args: str
    ) -> None:
        parts = args.split()
        point = parse_coordinate_args(parts[:2])
        if point is None:
            await self.reply(
                ctx,
                "Usage: /add <latitude> <longitude> [name]\n"
                "Latitude must be between -90 and 90, longitude between -180 and 180.",
            )
            return
        name = " ".join(parts[2:]) or None
        user_id = ctx.telegram_user_id
        async with self.locks.hold(user_id):
            accumulator = self._load(user_id)
            result = accumulator.add_point(
                point, source=PointSource.MANUAL, explicit_name=name
            )
            self._save(user_id, accumulator)
        self.record(ctx, "kml_add_manual", details={"on_line": result.on_line})
        await self.reply(ctx, _describe_point(result))

    async def queue_point_name(
        self, ctx: RequestContext, message: TelegramMessage, args: str
    ) -> None:
        name = args.strip().strip('"').strip()
        if not name:
            await self.reply(ctx, "Usage: /addpoint <name>")
            return
        self.deps.modes.update_state(ctx.telegram_user_id, {NEXT_POINT_NAME: name})
        data = self._load(ctx.telegram_user_id).data
        if data.active_line is not None:
            await self.reply(
                ctx,
                f'Line "{data.active_line.name}" is active, so locations go to the '
                f'line. "{name}" will be used for the next standalone point.',
            )
            return
        await self.reply(ctx, f'The next shared location will be saved as "{name}".')

    async def set_default_name(
        self, ctx: RequestContext, message: TelegramMessage, args: str
    ) -> None:
        user_id = ctx.telegram_user_id
        async with self.locks.hold(user_id):
            accumulator = self._load(user_id)
            name = accumulator.set_default_name(args)
            self._save(user_id, accumulator)
        if name is None:
            await self.reply(ctx, "Default point name cleared.")
        else:
            await self.reply(ctx, f'Points without a name will be called "{name}".')

    async def start_line(
        self, ctx: RequestContext, message: TelegramMessage, args: str
    ) -> None:
        user_id = ctx.telegram_user_id
        async with self.locks.hold(user_id):
            accumulator = self._load(user_id)
            line = accumulator.start_line(args)
            self._save(user_id, accumulator)
        await self.reply(
            ctx,
            f'Line "{line.name}" started. Share locations or use /add to add points, '
            "then /endline to save it.",
        )

    async def end_line(
        self, ctx: RequestContext, message: TelegramMessage, args: str
    ) -> None:
        user_id = ctx.telegram_user_id
        async with self.locks.hold(user_id):
            accumulator = self._load(user_id)
            line = accumulator.end_line()
            self._save(user_id, accumulator)
        self.record(ctx, "kml_end_line", details={"points": len(line.points)})
        await self.reply(
            ctx, f'Line "{line.name}" saved with {len(line.points)} points.'
        )

    async def cancel_line(
        self, ctx: RequestContext, message: TelegramMessage, args: str
    ) -> None:
        user_id = ctx.telegram_user_id
        async with self.locks.hold(user_id):
            accumulator = self._load(user_id)
            line = accumulator.cancel_line()
            self._save(user_id, accumulator)
        await self.reply(
            ctx,
            f'Active line "{line.name}" with {len(line.points)} points was discarded.',
        )

    async def show_data(
        self, ctx: RequestContext, message: TelegramMessage, args: str
    ) -> None:
        accumulator = self._load(ctx.telegram_user_id)
        if accumulator.is_empty():
            await self.reply(ctx, "You have not collected any points or lines yet.")
            return
        data = accumulator.data
        lines: list[str] = []
        if data.placemarks:
            lines.append(f"Points ({len(data.placemarks)}):")
            lines.extend(
                f"{index}. {placemark.name} "
                f"({placemark.point.latitude:.5f}, {placemark.point.longitude:.5f})"
                for index, placemark in enumerate(data.placemarks, start=1)
            )
            lines.append("")
        if data.lines:
            lines.append(f"Saved lines ({len(data.lines)}):")
            lines.extend(
                f"{index}. {line.name} ({len(line.points)} points)"
                for index, line in enumerate(data.lines, start=1)
            )
            lines.append("")
        if data.active_line is not None:
            lines.append(
                f'Active line: "{data.active_line.name}" '
                f"({len(data.active_line.points)} points)"
            )
        if data.default_point_name:
            lines.append(f'Default point name: "{data.default_point_name}"')
        await self.reply(ctx, "\n".join(lines).strip())

    async def create_kml(
        self, ctx: RequestContext, message: TelegramMessage, args: str
    ) -> None:
        user_id = ctx.telegram_user_id
        accumulator = self._load(user_id)
        if accumulator.is_empty():
            await self.reply(ctx, "Nothing to export yet. Add points or lines first.")
            return
        doc_name = args.strip() or f"TeleWeb KML {user_id}"
        target = self.feature_dir(ctx) / kml_filename(doc_name, timestamp_ms())
        content = render_kml(accumulator.data, doc_name)
        await asyncio.to_thread(target.write_text, content, "utf-8")
        await self.deps.telegram_client.send_document(
            chat_id=ctx.chat_id, path=target, caption=f"KML file: {doc_name}"
        )
        self.record(
            ctx,
            "kml_create",
            details={
                "points": len(accumulator.data.placemarks),
                "lines": len(accumulator.data.lines),
            },
        )

    async def clear_data(
        self, ctx: RequestContext, message: TelegramMessage, args: str
    ) -> None:
        user_id = ctx.telegram_user_id
        async with self.locks.hold(user_id):
            accumulator = self._load(user_id)
            accumulator.clear()
            self._save(user_id, accumulator)
        self.deps.modes.update_state(user_id, {NEXT_POINT_NAME: None})
        await self.reply(ctx, "All KML points and lines were deleted.")

    def _load(self, user_id: int) -> KmlAccumulator:
        return KmlAccumulator(self.state_store.load(user_id))

    def _save(self, user_id: int, accumulator: KmlAccumulator) -> None:
        self.state_store.save(user_id, accumulator.data)


def _describe_point(result: PointAdded) -> str:
    coords = f"{result.point.latitude:.5f}, {result.point.longitude:.5f}"
    if result.on_line:
        return (
            f'Point ({coords}) added to line "{result.name}". '
            f"The line now has {result.line_point_count} points."
        )
    return f'Point "{result.name}" ({coords}) saved.'
