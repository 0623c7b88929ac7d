"""Text extraction from images."""

import base64
import re
from dataclasses import dataclass
from typing import Protocol

OCR_PROMPT = (
    "Transcribe all readable text in this image exactly as it appears. "
    "Keep the original line breaks. Reply with the text only, without "
    "commentary. Reply with an empty message if there is no text."
)

TELEGRAM_MESSAGE_LIMIT = 4096

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


class OcrClient(Protocol):
    """Interface for image-to-text extraction."""

    async def extract_text(
        self, *, model: str, image_data_url: str, prompt: str
    ) -> str:
        """Return the text found in the image."""


@dataclass
class OcrService:
    """Prepare images for the OCR client and clean up its output."""

    client: OcrClient
    model: str

    async def extract_text(self, image_bytes: bytes) -> str:
        raw = await self.client.extract_text(
            model=self.model,
            image_data_url=to_data_url(image_bytes),
            prompt=OCR_PROMPT,
        )
        return sanitize_text(raw)


def sanitize_text(text: str) -> str:
    """Strip control characters and trailing whitespace from OCR output."""
    cleaned = _CONTROL_CHARS.sub("", text.replace("\r\n", "\n"))
    lines = [line.rstrip() for line in cleaned.split("\n")]
    return "\n".join(lines).strip()


def split_message(text: str, limit: int = TELEGRAM_MESSAGE_LIMIT) -> list[str]:
    """Split text into chunks Telegram will accept, preferring line breaks."""
    if len(text) <= limit:
        return [text]
    chunks: list[str] = []
    current = ""
    for line in text.split("\n"):
        while len(line) > limit:
            if current:
                chunks.append(current)
                current = ""
            chunks.append(line[:limit])
            line = line[limit:]
        candidate = f"{current}\n{line}" if current else line
        if len(candidate) > limit:
            chunks.append(current)
            current = line
        else:
            current = candidate
    if current:
        chunks.append(current)
    return chunks


def to_data_url(image_bytes: bytes) -> str:
    """Convert bytes to a base64 data URL for image input."""
    mime_type = detect_mime_type(image_bytes)
    encoded = base64.b64encode(image_bytes).decode("utf-8")
    return f"data:{mime_type};base64,{encoded}"


def detect_mime_type(image_bytes: bytes) -> str:
    """Infer a basic image MIME type from file signatures."""
    if image_bytes.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if image_bytes.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if image_bytes[:4] == b"RIFF" and image_bytes[8:12] == b"WEBP":
        return "image/webp"
    return "image/jpeg"
