"""Telegram file lookup and download client."""

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import httpx


@dataclass(frozen=True)
class TelegramFile:
    """File metadata returned by Telegram's getFile."""

    file_id: str
    file_path: str
    file_size: int | None = None


class TelegramFileClient(Protocol):
    """Interface for resolving and downloading Telegram files."""

    async def get_file_metadata(self, file_id: str) -> TelegramFile:
        """Return file metadata for a Telegram file id."""

    def resolve_download_url(self, file_path: str) -> str:
        """Return the download URL for a file path from getFile."""

    async def stream_to_path(self, url: str, path: Path, timeout: float) -> int:
        """Stream a download to ``path`` and return the bytes written."""


@dataclass
class HttpxTelegramFileClient(TelegramFileClient):
    """Telegram file client using httpx."""

    bot_token: str
    http_client: httpx.AsyncClient
    api_base_url: str = "https://api.telegram.org"

    @classmethod
    def create(
        cls, bot_token: str, api_base_url: str = "https://api.telegram.org"
    ) -> "HttpxTelegramFileClient":
        """Create a Telegram file client with a managed httpx session."""
        return cls(
            bot_token=bot_token,
            http_client=httpx.AsyncClient(),
            api_base_url=api_base_url.rstrip("/"),
        )

    async def get_file_metadata(self, file_id: str) -> TelegramFile:
        """Look up a file via getFile."""
        get_file_url = f"{self.api_base_url}/bot{self.bot_token}/getFile"
        response = await self.http_client.get(
            get_file_url, params={"file_id": file_id}, timeout=10
        )
        response.raise_for_status()
        payload = response.json()
        if not payload.get("ok"):
            raise RuntimeError("Telegram getFile failed")
        result = payload["result"]
        file_path = result.get("file_path")
        if not file_path:
            raise RuntimeError("Telegram getFile returned no file_path")
        return TelegramFile(
            file_id=file_id,
            file_path=file_path,
            file_size=result.get("file_size"),
        )

    def resolve_download_url(self, file_path: str) -> str:
        return f"{self.api_base_url}/file/bot{self.bot_token}/{file_path}"

    async def stream_to_path(self, url: str, path: Path, timeout: float) -> int:
        """Download ``url`` into ``path`` chunk by chunk."""
        written = 0
        async with self.http_client.stream("GET", url, timeout=timeout) as response:
            response.raise_for_status()
            with path.open("wb") as handle:
                async for chunk in response.aiter_bytes():
                    handle.write(chunk)
                    written += len(chunk)
        return written

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()
