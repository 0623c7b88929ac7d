"""Route Telegram updates to the handler for the user's current mode."""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field

from teleweb_bot.api.telegram_models import (
    TelegramCallbackQuery,
    TelegramMessage,
    TelegramUpdate,
)
from teleweb_bot.domain.models import Mode
from teleweb_bot.errors import AuthorizationDenied, InvalidStateTransition
from teleweb_bot.handlers.base import CommandHandler, FeatureHandler, HandlerDeps
from teleweb_bot.handlers.general import GeneralCommands
from teleweb_bot.services.gate import Access, EntitlementGate, RequestContext

logger = logging.getLogger(__name__)

GENERIC_FAILURE_MESSAGE = "Something went wrong. Please try again."
UNKNOWN_COMMAND_MESSAGE = "Unknown command /{command}. Send /help to see what I can do."
WRONG_MODE_MESSAGE = (
    "/{command} only works in {mode} mode. Send /{entry} to switch to it."
)


@dataclass(frozen=True)
class CommandRoute:
    """A command, its access policy and the coroutine that runs it."""

    access: Access
    run: CommandHandler


@dataclass
class UpdateDispatcher:
    """Authorize each update, then hand it to the right handler.

    Every ``Mode`` must have a handler; construction fails otherwise.
    """

    deps: HandlerDeps
    gate: EntitlementGate
    handlers: Mapping[Mode, FeatureHandler]
    general: GeneralCommands = field(init=False)
    _global_routes: dict[str, CommandRoute] = field(default_factory=dict, init=False)

    def __post_init__(self) -> None:
        missing = [mode.value for mode in Mode if mode not in self.handlers]
        if missing:
            raise ValueError(f"No handler registered for modes: {', '.join(missing)}")
        self.general = GeneralCommands(self.deps, self.handlers)
        general = self.general.commands()
        self._global_routes = {
            "start": CommandRoute(Access.optional(), general["start"]),
            "help": CommandRoute(Access.optional(), general["help"]),
            "menu": CommandRoute(Access.registered(), general["menu"]),
            "cancel": CommandRoute(Access.registered(), general["cancel"]),
            "status": CommandRoute(Access.registered(), general["status"]),
            "profile": CommandRoute(Access.registered(), general["profile"]),
            "admin": CommandRoute(Access.admin(), general["admin"]),
        }
        for mode, handler in self.handlers.items():
            if handler.entry_command:
                self._global_routes[handler.entry_command] = CommandRoute(
                    Access.for_feature(mode.value), self._entry_for(handler)
                )

    async def dispatch(self, update: TelegramUpdate) -> None:
        """Handle one update. Errors are reported to the user, never raised."""
        if update.callback_query is not None:
            await self._handle_callback(update.callback_query)
            return
        message = update.message
        if message is None:
            return
        ctx = RequestContext(message.from_user.id, message.chat.id)
        try:
            await self._handle_message(message)
        except AuthorizationDenied as exc:
            self.deps.activity.record_activity(
                ctx.telegram_user_id,
                "access_denied",
                success=False,
                error_message=exc.message,
            )
            await self._reply(ctx, exc.message)
        except InvalidStateTransition as exc:
            await self._reply(ctx, exc.message)
        except Exception:
            logger.exception(
                "Failed to handle update",
                extra={"update_id": update.update_id, "user_id": ctx.telegram_user_id},
            )
            self.deps.activity.record_activity(
                ctx.telegram_user_id,
                "update_failed",
                mode=self.deps.modes.get_mode(ctx.telegram_user_id).value,
                success=False,
            )
            await self._reply(ctx, GENERIC_FAILURE_MESSAGE)

    def mode_commands(self, mode: Mode) -> dict[str, CommandHandler]:
        return self.handlers[mode].commands()

    async def _handle_message(self, message: TelegramMessage) -> None:
        text = (message.text or "").strip()
        if text.startswith("/"):
            command, args = parse_command(text)
            await self._handle_command(message, command, args)
            return

        user_id = message.from_user.id
        mode = self.deps.modes.get_mode(user_id)
        access = Access.registered() if mode is Mode.IDLE else Access.for_feature(
            mode.value
        )
        ctx = self.gate.authorize(user_id, message.chat.id, access)
        handler = self.handlers[mode]
        if message.location is not None:
            await handler.on_location(ctx, message)
        elif message.photo:
            await handler.on_photo(ctx, message)
        elif message.document is not None:
            await handler.on_document(ctx, message)
        elif text:
            await handler.on_text(ctx, message)

    async def _handle_command(
        self, message: TelegramMessage, command: str, args: str
    ) -> None:
        user_id = message.from_user.id
        chat_id = message.chat.id
        route = self._global_routes.get(command)
        if route is not None:
            ctx = self.gate.authorize(user_id, chat_id, route.access)
            await route.run(ctx, message, args)
            self._record_command(ctx, command)
            return

        mode = self.deps.modes.get_mode(user_id)
        mode_command = self.mode_commands(mode).get(command)
        if mode_command is not None:
            ctx = self.gate.authorize(user_id, chat_id, Access.for_feature(mode.value))
            await mode_command(ctx, message, args)
            self._record_command(ctx, command)
            return

        ctx = self.gate.authorize(user_id, chat_id, Access.optional())
        owner = self._owning_handler(command)
        if owner is not None and owner.entry_command:
            await self._reply(
                ctx,
                WRONG_MODE_MESSAGE.format(
                    command=command, mode=owner.mode.value, entry=owner.entry_command
                ),
            )
            return
        await self._reply(ctx, UNKNOWN_COMMAND_MESSAGE.format(command=command))

    async def _handle_callback(self, callback: TelegramCallbackQuery) -> None:
        try:
            await self.deps.telegram_client.answer_callback_query(callback.id)
        except Exception:
            logger.exception(
                "Failed to answer callback query", extra={"callback_id": callback.id}
            )

    def _entry_for(self, handler: FeatureHandler) -> CommandHandler:
        async def enter(
            ctx: RequestContext, message: TelegramMessage, args: str
        ) -> None:
            current = self.deps.modes.get_mode(ctx.telegram_user_id)
            if current is not handler.mode:
                await self.handlers[current].reset(ctx)
            await handler.enter(ctx, message, args)

        return enter

    def _owning_handler(self, command: str) -> FeatureHandler | None:
        for handler in self.handlers.values():
            if command in handler.commands():
                return handler
        return None

    def _record_command(self, ctx: RequestContext, command: str) -> None:
        self.deps.activity.record_activity(
            ctx.telegram_user_id,
            f"command_{command}",
            user_id=ctx.user.id if ctx.user else None,
            mode=self.deps.modes.get_mode(ctx.telegram_user_id).value,
        )

    async def _reply(self, ctx: RequestContext, text: str) -> None:
        try:
            await self.deps.telegram_client.send_message(
                chat_id=ctx.chat_id, text=text
            )
        except Exception:
            logger.exception(
                "Failed to send reply", extra={"user_id": ctx.telegram_user_id}
            )


def parse_command(text: str) -> tuple[str, str]:
    """Split ``/cmd@bot args`` into ``("cmd", "args")``."""
    head, *rest = text.split(maxsplit=1)
    command = head[1:].split("@", 1)[0].lower()
    return command, rest[0].strip() if rest else ""
