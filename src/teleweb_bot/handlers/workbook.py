"""Collect photos into named sheets and export them as a workbook."""

import asyncio
import logging
import re
import shutil
from dataclasses import dataclass
from pathlib import Path

from teleweb_bot.adapters.workbook_client import WorkbookExporter
from teleweb_bot.api.telegram_models import TelegramMessage
from teleweb_bot.domain.models import AcquiredFile, Mode, QueueTask
from teleweb_bot.domain.workbook import WorkbookState
from teleweb_bot.handlers.base import (
    CommandHandler,
    FeatureHandler,
    select_largest_photo,
    timestamp_ms,
)
from teleweb_bot.services.gate import RequestContext
from teleweb_bot.services.storage import FeatureStateStore

logger = logging.getLogger(__name__)

_IMAGE_SUFFIXES = {".jpg", ".jpeg", ".png"}
_RESERVED_WORDS = {"clear", "cek", "send"}
_UNSAFE_CHARS = re.compile(r"[\\/:*?\"<>|\x00-\x1f]")
_MAX_SHEET_NAME = 31

WORKBOOK_HELP = (
    "Workbook mode is active.\n\n"
    "1. Send a sheet name as text to create or select a sheet\n"
    "2. Send photos; they are saved into the active sheet\n"
    "3. Send another name to switch sheets\n\n"
    "Commands:\n"
    "- cek: list sheets and photo counts\n"
    "- send: build the Excel workbook\n"
    "- clear: delete all sheets and photos\n"
    "- /workbook_stats: counters for this session\n\n"
    "Send /menu to leave."
)


@dataclass
class WorkbookHandler(FeatureHandler):
    """Photos go to the ingestion queue; text picks the sheet."""

    mode = Mode.WORKBOOK
    entry_command = "workbook"
    description = WORKBOOK_HELP

    exporter: WorkbookExporter | None = None
    state_store: FeatureStateStore[WorkbookState] | None = None

    def __post_init__(self) -> None:
        super().__post_init__()
        if self.state_store is None:
            self.state_store = FeatureStateStore(
                self.deps.storage, Mode.WORKBOOK.value, WorkbookState
            )
        self.deps.queue.register(self.mode, self.on_item_saved)

    def commands(self) -> dict[str, CommandHandler]:
        return {"workbook_stats": self.show_stats}

    async def enter(
        self, ctx: RequestContext, message: TelegramMessage, args: str
    ) -> None:
        await super().enter(ctx, message, args)
        state = self.state_store.load(ctx.telegram_user_id)
        if state.active_sheet:
            await self.reply(ctx, f'Active sheet: "{state.active_sheet}".')

    async def on_text(self, ctx: RequestContext, message: TelegramMessage) -> None:
        text = (message.text or "").strip()
        keyword = text.lower()
        if keyword == "clear":
            await self.clear_all(ctx)
        elif keyword == "cek":
            await self.list_sheets(ctx)
        elif keyword == "send":
            await self.export(ctx)
        else:
            await self.select_sheet(ctx, text)

    async def on_photo(self, ctx: RequestContext, message: TelegramMessage) -> None:
        if not message.photo:
            return
        user_id = ctx.telegram_user_id
        async with self.locks.hold(user_id):
            state = self.state_store.load(user_id)
            if not state.active_sheet:
                await self.reply(ctx, "Send a sheet name first, then the photos.")
                return
            state.image_counter += 1
            self.state_store.save(user_id, state)
        photo = select_largest_photo(message.photo)
        self.enqueue_photo(
            ctx,
            media_ref=photo.file_id,
            target_dir=self.feature_dir(ctx) / state.active_sheet,
            target_name=f"image_{timestamp_ms()}_{state.image_counter}.jpg",
        )

    async def on_document(
        self, ctx: RequestContext, message: TelegramMessage
    ) -> None:
        await self.reply(ctx, "Send images as photos, not as files.")

    async def on_item_saved(self, task: QueueTask, acquired: AcquiredFile) -> None:
        async with self.locks.hold(task.owner_user_id):
            state = self.state_store.load(task.owner_user_id)
            state.download_count += 1
            self.state_store.save(task.owner_user_id, state)

    async def reset(self, ctx: RequestContext) -> None:
        async with self.locks.hold(ctx.telegram_user_id):
            state = self.state_store.load(ctx.telegram_user_id)
            state.active_sheet = None
            self.state_store.save(ctx.telegram_user_id, state)

    async def select_sheet(self, ctx: RequestContext, raw_name: str) -> None:
        name = sanitize_sheet_name(raw_name)
        if name is None:
            await self.reply(
                ctx,
                "That sheet name is not usable. Use letters, numbers and spaces, "
                f"up to {_MAX_SHEET_NAME} characters.",
            )
            return
        sheet_dir = self.feature_dir(ctx) / name
        existed = sheet_dir.is_dir()
        sheet_dir.mkdir(parents=True, exist_ok=True)
        async with self.locks.hold(ctx.telegram_user_id):
            state = self.state_store.load(ctx.telegram_user_id)
            state.active_sheet = name
            self.state_store.save(ctx.telegram_user_id, state)
        if existed:
            count = len(_sheet_images(sheet_dir))
            await self.reply(
                ctx, f'Switched to sheet "{name}" ({count} photos). Send more photos.'
            )
        else:
            await self.reply(ctx, f'Sheet "{name}" created. Send photos for it.')

    async def list_sheets(self, ctx: RequestContext) -> None:
        sheets = _list_sheets(self.feature_dir(ctx))
        pending = self.deps.queue.pending_count(ctx.telegram_user_id)
        if not sheets:
            await self.reply(ctx, "No sheets yet. Send a sheet name to create one.")
            return
        state = self.state_store.load(ctx.telegram_user_id)
        rows = [f"Sheets ({len(sheets)}):"]
        for sheet in sheets:
            images = _sheet_images(sheet)
            size_mb = sum(image.stat().st_size for image in images) / (1024 * 1024)
            marker = " (active)" if sheet.name == state.active_sheet else ""
            rows.append(
                f"- {sheet.name}{marker}: {len(images)} photos, {size_mb:.2f} MB"
            )
        if pending:
            rows.append(f"\n{pending} photos are still being saved.")
        await self.reply(ctx, "\n".join(rows))

    async def export(self, ctx: RequestContext) -> None:
        user_id = ctx.telegram_user_id
        pending = self.deps.queue.pending_count(user_id)
        if pending or self.deps.queue.is_draining(user_id):
            await self.reply(
                ctx,
                f"Still saving photos ({pending} waiting). "
                "Send 'send' again once they are done.",
            )
            return
        sheets = [
            sheet.name
            for sheet in _list_sheets(self.feature_dir(ctx))
            if _sheet_images(sheet)
        ]
        if not sheets:
            await self.reply(ctx, "No sheets with photos yet. Add photos first.")
            return
        if self.exporter is None:
            await self.reply(ctx, "Workbook export is not configured.")
            return
        await self.reply(ctx, f"Building the workbook with {len(sheets)} sheets...")
        try:
            result = await self.exporter.generate(
                telegram_user_id=user_id,
                user_id=str(ctx.user.id) if ctx.user else "",
                media_folder=str(self.feature_dir(ctx)),
                sheets=sheets,
            )
            await self.deps.telegram_client.send_document(
                chat_id=ctx.chat_id, path=Path(result.file_path)
            )
        except Exception as exc:
            logger.exception("Workbook export failed", extra={"user_id": user_id})
            self.record(ctx, "workbook_export", success=False, error_message=str(exc))
            await self.reply(ctx, "Could not build the workbook. Please try again.")
            return
        size = f" ({result.size_mb:.2f} MB)" if result.size_mb is not None else ""
        self.record(ctx, "workbook_export", details={"sheets": len(sheets)})
        await self.reply(ctx, f"Workbook with {len(sheets)} sheets sent{size}.")

    async def clear_all(self, ctx: RequestContext) -> None:
        user_id = ctx.telegram_user_id
        dropped = self.deps.queue.clear(user_id)
        feature_dir = self.feature_dir(ctx)
        sheets = _list_sheets(feature_dir)
        for sheet in sheets:
            await asyncio.to_thread(shutil.rmtree, sheet, True)
        async with self.locks.hold(user_id):
            self.state_store.save(user_id, WorkbookState())
        self.record(ctx, "workbook_clear", details={"sheets": len(sheets)})
        message = f"Deleted {len(sheets)} sheets."
        if dropped:
            message += f" {dropped} queued photos were cancelled."
        await self.reply(ctx, message)

    async def show_stats(
        self, ctx: RequestContext, message: TelegramMessage, args: str
    ) -> None:
        user_id = ctx.telegram_user_id
        state = self.state_store.load(user_id)
        queue_state = self.deps.queue.view(user_id)
        await self.reply(
            ctx,
            "Workbook stats:\n"
            f"- Active sheet: {state.active_sheet or 'none'}\n"
            f"- Photos received: {state.image_counter}\n"
            f"- Photos saved: {state.download_count}\n"
            f"- Queue: {len(queue_state.pending)} waiting, "
            f"{queue_state.processed_count} done, {queue_state.error_count} failed",
        )


def sanitize_sheet_name(raw: str) -> str | None:
    """Return a safe sheet/folder name, or ``None`` if nothing usable is left."""
    name = _UNSAFE_CHARS.sub("", raw).strip().strip(".")
    name = re.sub(r"\s+", " ", name)[:_MAX_SHEET_NAME].strip()
    if not name or name.lower() in _RESERVED_WORDS:
        return None
    return name


def _list_sheets(feature_dir: Path) -> list[Path]:
    return sorted(path for path in feature_dir.iterdir() if path.is_dir())


def _sheet_images(sheet_dir: Path) -> list[Path]:
    return sorted(
        path
        for path in sheet_dir.iterdir()
        if path.is_file() and path.suffix.lower() in _IMAGE_SUFFIXES
    )
