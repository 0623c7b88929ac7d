"""Commands that work in every mode."""

from collections.abc import Mapping
from dataclasses import dataclass

from teleweb_bot.api.telegram_models import TelegramMessage
from teleweb_bot.domain.models import FEATURE_MODES, Mode
from teleweb_bot.handlers.base import CommandHandler, FeatureHandler, HandlerDeps
from teleweb_bot.services.gate import RequestContext

WELCOME_MESSAGE = (
    "Welcome to the TeleWeb bot!\n\n"
    "Pick a feature with one of the commands below. "
    "Send /menu at any time to leave the current feature."
)
UNREGISTERED_HINT = (
    "You are not registered yet. "
    "Ask an administrator to register your Telegram ID: {telegram_user_id}."
)
NO_FEATURES_HINT = "No features are enabled for your account yet."

FEATURE_LABELS = {
    Mode.OCR: "read text or coordinates from photos",
    Mode.ARCHIVE: "zip files or unpack zip archives",
    Mode.LOCATION: "convert coordinates and measure distances",
    Mode.GEOTAGS: "stamp photos with a location",
    Mode.KML: "collect points and lines into a KML file",
    Mode.WORKBOOK: "collect photos into an Excel workbook",
}


@dataclass
class GeneralCommands:
    """Start, help, menu, status, profile and admin commands."""

    deps: HandlerDeps
    handlers: Mapping[Mode, FeatureHandler]

    def commands(self) -> dict[str, CommandHandler]:
        return {
            "start": self.start,
            "help": self.start,
            "menu": self.menu,
            "cancel": self.menu,
            "status": self.status,
            "profile": self.profile,
            "admin": self.admin,
        }

    async def start(
        self, ctx: RequestContext, message: TelegramMessage, args: str
    ) -> None:
        await self.reset_current(ctx)
        if ctx.user is None:
            await self._reply(
                ctx, UNREGISTERED_HINT.format(telegram_user_id=ctx.telegram_user_id)
            )
            return
        await self._reply(ctx, f"{WELCOME_MESSAGE}\n\n{self.feature_menu(ctx)}")

    async def menu(
        self, ctx: RequestContext, message: TelegramMessage, args: str
    ) -> None:
        await self.reset_current(ctx)
        await self._reply(ctx, self.feature_menu(ctx))

    async def reset_current(self, ctx: RequestContext) -> None:
        """Leave the current feature, dropping its queue and scratch state."""
        user_id = ctx.telegram_user_id
        mode = self.deps.modes.get_mode(user_id)
        await self.handlers[mode].reset(ctx)
        self.deps.queue.clear(user_id)
        self.deps.modes.clear_mode(user_id)

    async def status(
        self, ctx: RequestContext, message: TelegramMessage, args: str
    ) -> None:
        user_id = ctx.telegram_user_id
        session = self.deps.modes.get_session(user_id)
        queue_state = self.deps.queue.view(user_id)
        lines = ["Status:"]
        if session is None:
            lines.append("- Mode: none (send /help to pick a feature)")
        else:
            lines.append(f"- Mode: {session.mode.value}")
            lines.append(
                f"- Active since: {session.created_at.strftime('%Y-%m-%d %H:%M')} UTC"
            )
        lines.append(
            f"- Queue: {len(queue_state.pending)} waiting, "
            f"{queue_state.processed_count} saved, {queue_state.error_count} failed"
        )
        await self._reply(ctx, "\n".join(lines))

    async def profile(
        self, ctx: RequestContext, message: TelegramMessage, args: str
    ) -> None:
        user = ctx.user
        if user is None:
            return
        features = ", ".join(sorted(user.granted_features)) or "none"
        lines = [
            "Profile:",
            f"- Name: {user.name or '-'}",
            f"- Username: @{user.username}" if user.username else "- Username: -",
            f"- Telegram ID: {user.telegram_user_id}",
            f"- Role: {user.role}",
            f"- Features: {features}",
        ]
        if user.created_at is not None:
            lines.append(f"- Registered: {user.created_at.date().isoformat()}")
        await self._reply(ctx, "\n".join(lines))

    async def admin(
        self, ctx: RequestContext, message: TelegramMessage, args: str
    ) -> None:
        session_stats = self.deps.modes.stats()
        distribution = session_stats["mode_distribution"]
        queues = self.deps.queue.snapshot()
        activity = self.deps.activity.stats()
        lines = [
            "Bot stats:",
            f"- Active sessions: {session_stats['total_sessions']}",
        ]
        if isinstance(distribution, dict):
            for mode, count in sorted(distribution.items()):
                lines.append(f"  - {mode}: {count}")
        waiting = sum(int(entry["pending"]) for entry in queues.values())
        lines.append(f"- Queues: {len(queues)} users, {waiting} photos waiting")
        lines.append(
            f"- Activity log: {activity['recorded']} recorded, "
            f"{activity['dropped']} dropped, {activity['failed']} failed"
        )
        await self._reply(ctx, "\n".join(lines))

    def feature_menu(self, ctx: RequestContext) -> str:
        rows = []
        for mode in FEATURE_MODES:
            handler = self.handlers[mode]
            if handler.entry_command and ctx.has_feature(mode.value):
                label = FEATURE_LABELS.get(mode, mode.value)
                rows.append(f"/{handler.entry_command} - {label}")
        if not rows:
            return NO_FEATURES_HINT
        return "Available features:\n" + "\n".join(rows)

    async def _reply(self, ctx: RequestContext, text: str) -> None:
        await self.deps.telegram_client.send_message(chat_id=ctx.chat_id, text=text)
