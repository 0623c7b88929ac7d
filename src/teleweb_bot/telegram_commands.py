"""Telegram bot command configuration."""

from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True)
class TelegramCommand:
    """Declarative bot command definition."""

    command: str
    description: str


class BotCommand(Enum):
    """Enum of bot commands shown in the Telegram menu."""

    START = TelegramCommand("start", "Welcome and the features available to you")
    MENU = TelegramCommand("menu", "Leave the current feature")
    OCR = TelegramCommand("ocr", "Read text or coordinates from photos")
    ARCHIVE = TelegramCommand("archive", "Zip files or unpack zip archives")
    LOCATION = TelegramCommand("location", "Convert coordinates, measure distances")
    GEOTAGS = TelegramCommand("geotags", "Stamp photos with a location")
    KML = TelegramCommand("kml", "Collect points and lines into a KML file")
    WORKBOOK = TelegramCommand("workbook", "Collect photos into an Excel workbook")
    STATUS = TelegramCommand("status", "Current feature and queue progress")
    PROFILE = TelegramCommand("profile", "Your account and enabled features")
    HELP = TelegramCommand("help", "Quick guide")


def telegram_commands() -> list[dict[str, str]]:
    """Return commands formatted for Telegram API."""
    return [
        {"command": entry.value.command, "description": entry.value.description}
        for entry in BotCommand
    ]


CHAT_MENU_BUTTON: dict[str, object] = {"type": "commands"}
