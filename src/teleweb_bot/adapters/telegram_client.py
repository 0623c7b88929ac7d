"""Telegram API client adapter."""

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import httpx


class TelegramClient(Protocol):
    """Interface for Telegram API interactions."""

    async def send_message(
        self, chat_id: int, text: str, reply_markup: dict | None = None
    ) -> None:
        """Send a text message to a Telegram chat."""

    async def send_document(
        self, chat_id: int, path: Path, caption: str | None = None
    ) -> None:
        """Upload a local file as a document."""

    async def send_photo(
        self, chat_id: int, path: Path, caption: str | None = None
    ) -> None:
        """Upload a local image as a photo."""

    async def answer_callback_query(
        self, callback_query_id: str, text: str | None = None
    ) -> None:
        """Answer a Telegram callback query."""

    async def set_my_commands(self, commands: list[dict[str, str]]) -> None:
        """Set the bot command list."""

    async def set_chat_menu_button(
        self, menu_button: dict[str, object] | None = None
    ) -> None:
        """Set the chat menu button."""


@dataclass
class HttpxTelegramClient:
    """Telegram client implemented with httpx."""

    bot_token: str
    http_client: httpx.AsyncClient
    api_base_url: str = "https://api.telegram.org"

    @classmethod
    def create(
        cls, bot_token: str, api_base_url: str = "https://api.telegram.org"
    ) -> "HttpxTelegramClient":
        """Create a Telegram client with a managed httpx session."""
        return cls(
            bot_token=bot_token,
            http_client=httpx.AsyncClient(),
            api_base_url=api_base_url.rstrip("/"),
        )

    def _url(self, method: str) -> str:
        return f"{self.api_base_url}/bot{self.bot_token}/{method}"

    async def send_message(
        self, chat_id: int, text: str, reply_markup: dict | None = None
    ) -> None:
        """Send a message using Telegram's sendMessage API."""
        payload: dict[str, object] = {"chat_id": chat_id, "text": text}
        if reply_markup is not None:
            payload["reply_markup"] = reply_markup
        response = await self.http_client.post(
            self._url("sendMessage"), json=payload, timeout=10
        )
        response.raise_for_status()

    async def send_document(
        self, chat_id: int, path: Path, caption: str | None = None
    ) -> None:
        """Upload a file with sendDocument."""
        await self._upload("sendDocument", "document", chat_id, path, caption)

    async def send_photo(
        self, chat_id: int, path: Path, caption: str | None = None
    ) -> None:
        """Upload an image with sendPhoto."""
        await self._upload("sendPhoto", "photo", chat_id, path, caption)

    async def _upload(  # noqa: PLR0913
        self,
        method: str,
        field_name: str,
        chat_id: int,
        path: Path,
        caption: str | None,
    ) -> None:
        data: dict[str, str] = {"chat_id": str(chat_id)}
        if caption:
            data["caption"] = caption
        with path.open("rb") as handle:
            response = await self.http_client.post(
                self._url(method),
                data=data,
                files={field_name: (path.name, handle)},
                timeout=60,
            )
        response.raise_for_status()

    async def answer_callback_query(
        self, callback_query_id: str, text: str | None = None
    ) -> None:
        """Answer a callback query using Telegram's API."""
        payload: dict[str, object] = {"callback_query_id": callback_query_id}
        if text is not None:
            payload["text"] = text
        response = await self.http_client.post(
            self._url("answerCallbackQuery"), json=payload, timeout=10
        )
        response.raise_for_status()

    async def close(self) -> None:
        """Close the underlying HTTP client session."""
        await self.http_client.aclose()

    async def set_my_commands(self, commands: list[dict[str, str]]) -> None:
        """Set the bot command list."""
        payload: dict[str, object] = {"commands": commands}
        response = await self.http_client.post(
            self._url("setMyCommands"), json=payload, timeout=10
        )
        response.raise_for_status()

    async def set_chat_menu_button(
        self, menu_button: dict[str, object] | None = None
    ) -> None:
        """Set the chat menu button."""
        payload: dict[str, object] = {
            "menu_button": menu_button or {"type": "commands"}
        }
        response = await self.http_client.post(
            self._url("setChatMenuButton"), json=payload, timeout=10
        )
        response.raise_for_status()
