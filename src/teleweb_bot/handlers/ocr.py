"""Extract text, or just coordinates, from photos."""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

from teleweb_bot.api.telegram_models import TelegramMessage
from teleweb_bot.domain.models import Mode
from teleweb_bot.errors import MediaAcquisitionFailed
from teleweb_bot.handlers.base import (
    CommandHandler,
    FeatureHandler,
    select_largest_photo,
)
from teleweb_bot.services.gate import RequestContext
from teleweb_bot.services.geo import extract_coordinates, format_decimal, format_dms
from teleweb_bot.services.ingestion import MediaAcquirer
from teleweb_bot.services.ocr import OcrService, split_message

logger = logging.getLogger(__name__)

COORDINATES_ONLY = "coordinates_only"

OCR_HELP = (
    "OCR mode is active.\n\n"
    "Send a photo (or an image file) and I will reply with the text in it.\n"
    "- /ocr_koordinat toggles coordinates-only mode, which replies with the "
    "coordinates found in the image in decimal and DMS\n\n"
    "Send /menu to leave."
)


@dataclass
class OcrHandler(FeatureHandler):
    """Run OCR on each image as it arrives."""

    mode = Mode.OCR
    entry_command = "ocr"
    description = OCR_HELP

    acquisition: MediaAcquirer | None = None
    ocr_service: OcrService | None = None

    def commands(self) -> dict[str, CommandHandler]:
        return {"ocr_koordinat": self.toggle_coordinates}

    async def toggle_coordinates(
        self, ctx: RequestContext, message: TelegramMessage, args: str
    ) -> None:
        enabled = not self.deps.modes.get_state(ctx.telegram_user_id).get(
            COORDINATES_ONLY, False
        )
        self.deps.modes.update_state(ctx.telegram_user_id, {COORDINATES_ONLY: enabled})
        if enabled:
            await self.reply(
                ctx, "Coordinates mode on. Send a photo that shows coordinates."
            )
        else:
            await self.reply(ctx, "Coordinates mode off. Back to full text OCR.")

    async def on_photo(self, ctx: RequestContext, message: TelegramMessage) -> None:
        if not message.photo:
            return
        photo = select_largest_photo(message.photo)
        await self._process(ctx, photo.file_id, f"ocr_{message.message_id}.jpg")

    async def on_document(
        self, ctx: RequestContext, message: TelegramMessage
    ) -> None:
        document = message.document
        if document is None or not (document.mime_type or "").startswith("image/"):
            await self.reply(ctx, "Send an image (photo or image file) for OCR.")
            return
        suffix = Path(document.file_name or "image.jpg").suffix or ".jpg"
        await self._process(ctx, document.file_id, f"ocr_{message.message_id}{suffix}")

    async def _process(self, ctx: RequestContext, file_id: str, name: str) -> None:
        target = self.feature_dir(ctx) / name
        try:
            acquired = await self.acquisition.acquire(file_id, target)
        except MediaAcquisitionFailed as exc:
            logger.warning("OCR image download failed", extra={"reasons": exc.reasons})
            self.record(ctx, "ocr_extract", success=False, error_message=str(exc))
            await self.reply(ctx, "Couldn't download that image. Please send it again.")
            return

        try:
            image_bytes = await asyncio.to_thread(acquired.path.read_bytes)
            text = await self.ocr_service.extract_text(image_bytes)
        except Exception as exc:
            logger.exception("OCR extraction failed", extra={"file_id": file_id})
            self.record(ctx, "ocr_extract", success=False, error_message=str(exc))
            await self.reply(
                ctx, "Sorry, I couldn't read that image. Please try again."
            )
            return
        finally:
            acquired.path.unlink(missing_ok=True)

        coordinates_only = bool(
            self.deps.modes.get_state(ctx.telegram_user_id).get(COORDINATES_ONLY)
        )
        self.record(
            ctx,
            "ocr_extract",
            details={"characters": len(text), "coordinates_only": coordinates_only},
        )
        if coordinates_only:
            point = extract_coordinates(text)
            if point is None:
                await self.reply(ctx, "No coordinates found in that image.")
                return
            await self.reply(ctx, f"Decimal: {format_decimal(point)}")
            await self.reply(ctx, f"DMS: {format_dms(point)}")
            return
        if not text:
            await self.reply(ctx, "No text found in that image.")
            return
        for chunk in split_message(text):
            await self.reply(ctx, chunk)
