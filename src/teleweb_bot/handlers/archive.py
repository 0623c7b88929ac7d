"""Zip up files, or unpack zip archives."""

import asyncio
import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

from teleweb_bot.api.telegram_models import TelegramMessage
from teleweb_bot.domain.models import Mode
from teleweb_bot.errors import InvalidStateTransition, MediaAcquisitionFailed
from teleweb_bot.handlers.base import (
    CommandHandler,
    FeatureHandler,
    select_largest_photo,
    timestamp_ms,
    unique_path,
)
from teleweb_bot.services.archive import build_zip, extract_zip, is_supported_archive
from teleweb_bot.services.gate import RequestContext
from teleweb_bot.services.ingestion import MediaAcquirer

logger = logging.getLogger(__name__)

SUB_MODE = "sub_mode"
ZIP = "zip"
EXTRACT = "extract"
MAX_EXTRACTED_UPLOADS = 50

ARCHIVE_HELP = (
    "Archive mode is active.\n\n"
    "- /zip then send files (or photos) to pack them into one .zip\n"
    "- /extract then send .zip files to unpack them\n"
    "- /send when you are done\n\n"
    "Send /menu to leave."
)


@dataclass
class ArchiveHandler(FeatureHandler):
    """Collect files and pack or unpack them on /send."""

    mode = Mode.ARCHIVE
    entry_command = "archive"
    description = ARCHIVE_HELP

    acquisition: MediaAcquirer | None = None

    def commands(self) -> dict[str, CommandHandler]:
        return {
            "zip": self.choose_zip,
            "extract": self.choose_extract,
            "send": self.send,
        }

    async def enter(
        self, ctx: RequestContext, message: TelegramMessage, args: str
    ) -> None:
        await self._clear_files(ctx)
        await super().enter(ctx, message, args)

    async def reset(self, ctx: RequestContext) -> None:
        await self._clear_files(ctx)

    async def choose_zip(
        self, ctx: RequestContext, message: TelegramMessage, args: str
    ) -> None:
        await self._choose(ctx, ZIP)
        await self.reply(ctx, "Zip mode: send the files to pack, then /send.")

    async def choose_extract(
        self, ctx: RequestContext, message: TelegramMessage, args: str
    ) -> None:
        await self._choose(ctx, EXTRACT)
        await self.reply(ctx, "Extract mode: send .zip files to unpack, then /send.")

    async def on_document(
        self, ctx: RequestContext, message: TelegramMessage
    ) -> None:
        document = message.document
        if document is None:
            return
        sub_mode = self._sub_mode(ctx)
        file_name = Path(document.file_name or f"file_{message.message_id}").name
        if sub_mode == EXTRACT and not is_supported_archive(file_name):
            await self.reply(ctx, f"{file_name} is not a .zip archive. It was skipped.")
            return
        await self._collect(ctx, document.file_id, file_name)

    async def on_photo(self, ctx: RequestContext, message: TelegramMessage) -> None:
        if not message.photo:
            return
        if self._sub_mode(ctx) != ZIP:
            await self.reply(ctx, "Photos can only be added in /zip mode.")
            return
        photo = select_largest_photo(message.photo)
        await self._collect(ctx, photo.file_id, f"photo_{message.message_id}.jpg")

    async def send(
        self, ctx: RequestContext, message: TelegramMessage, args: str
    ) -> None:
        sub_mode = self._sub_mode(ctx)
        files = _list_files(self._incoming_dir(ctx))
        if not files:
            await self.reply(ctx, "No files collected yet.")
            return
        output_dir = self._output_dir(ctx)
        try:
            if sub_mode == ZIP:
                await self._send_zip(ctx, files, output_dir)
            else:
                await self._send_extracted(ctx, files, output_dir)
        except Exception as exc:
            logger.exception(
                "Archive processing failed", extra={"user_id": ctx.telegram_user_id}
            )
            self.record(
                ctx, f"archive_{sub_mode}", success=False, error_message=str(exc)
            )
            await self.reply(ctx, "Could not process the files. Please try again.")
            return
        finally:
            await self._clear_files(ctx)
        self.record(ctx, f"archive_{sub_mode}", details={"files": len(files)})

    async def _send_zip(
        self, ctx: RequestContext, files: list[Path], output_dir: Path
    ) -> None:
        target = output_dir / f"archive_{timestamp_ms()}.zip"
        await asyncio.to_thread(build_zip, files, target)
        await self.deps.telegram_client.send_document(
            chat_id=ctx.chat_id, path=target, caption=f"{len(files)} files zipped."
        )

    async def _send_extracted(
        self, ctx: RequestContext, files: list[Path], output_dir: Path
    ) -> None:
        extracted: list[Path] = []
        for archive in files:
            extracted.extend(
                await asyncio.to_thread(extract_zip, archive, output_dir / archive.stem)
            )
        if not extracted:
            await self.reply(ctx, "The archives were empty.")
            return
        for path in extracted[:MAX_EXTRACTED_UPLOADS]:
            await self.deps.telegram_client.send_document(
                chat_id=ctx.chat_id, path=path
            )
        skipped = len(extracted) - MAX_EXTRACTED_UPLOADS
        summary = f"Extracted {len(extracted)} files from {len(files)} archives."
        if skipped > 0:
            summary += f" Only the first {MAX_EXTRACTED_UPLOADS} were sent."
        await self.reply(ctx, summary)

    async def _collect(self, ctx: RequestContext, file_id: str, file_name: str) -> None:
        incoming = self._incoming_dir(ctx)
        target = unique_path(incoming, file_name)
        try:
            await self.acquisition.acquire(file_id, target)
        except MediaAcquisitionFailed as exc:
            logger.warning(
                "Archive file download failed", extra={"reasons": exc.reasons}
            )
            await self.reply(
                ctx, f"Couldn't download {file_name}. Please send it again."
            )
            return
        count = len(_list_files(incoming))
        await self.reply(
            ctx, f"{file_name} received ({count} files). Send /send when ready."
        )

    async def _choose(self, ctx: RequestContext, sub_mode: str) -> None:
        await self._clear_files(ctx)
        self.deps.modes.update_state(ctx.telegram_user_id, {SUB_MODE: sub_mode})

    def _sub_mode(self, ctx: RequestContext) -> str:
        sub_mode = self.deps.modes.get_state(ctx.telegram_user_id).get(SUB_MODE)
        if sub_mode not in (ZIP, EXTRACT):
            raise InvalidStateTransition("Choose /zip or /extract first.")
        return str(sub_mode)

    def _incoming_dir(self, ctx: RequestContext) -> Path:
        path = self.feature_dir(ctx) / "incoming"
        path.mkdir(parents=True, exist_ok=True)
        return path

    def _output_dir(self, ctx: RequestContext) -> Path:
        path = self.feature_dir(ctx) / "output"
        path.mkdir(parents=True, exist_ok=True)
        return path

    async def _clear_files(self, ctx: RequestContext) -> None:
        base = self.deps.storage.feature_dir(ctx.telegram_user_id, self.mode.value)
        for name in ("incoming", "output"):
            await asyncio.to_thread(shutil.rmtree, base / name, True)


def _list_files(directory: Path) -> list[Path]:
    return sorted(path for path in directory.iterdir() if path.is_file())
