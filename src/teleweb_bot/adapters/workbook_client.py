"""HTTP client for the workbook export service."""

from dataclasses import dataclass
from typing import Protocol

import httpx


@dataclass(frozen=True)
class WorkbookExport:
    """Result returned by the export service."""

    file_path: str
    size_mb: float | None = None


class WorkbookExporter(Protocol):
    """Interface for turning collected sheets into a workbook."""

    async def generate(
        self,
        telegram_user_id: int,
        user_id: str,
        media_folder: str,
        sheets: list[str],
    ) -> WorkbookExport:
        """Ask the backend to build a workbook from the user's sheets."""


@dataclass
class HttpxWorkbookExporter(WorkbookExporter):
    """Workbook exporter implemented with httpx."""

    base_url: str
    http_client: httpx.AsyncClient
    timeout: float = 60.0

    @classmethod
    def create(cls, base_url: str) -> "HttpxWorkbookExporter":
        """Create an exporter with a managed httpx session."""
        return cls(base_url=base_url.rstrip("/"), http_client=httpx.AsyncClient())

    async def generate(
        self,
        telegram_user_id: int,
        user_id: str,
        media_folder: str,
        sheets: list[str],
    ) -> WorkbookExport:
        """POST to the backend's workbook endpoint."""
        response = await self.http_client.post(
            f"{self.base_url}/files/workbook/generate",
            json={
                "telegramId": str(telegram_user_id),
                "userId": user_id,
                "mediaFolderPath": media_folder,
                "folders": sheets,
            },
            timeout=self.timeout,
        )
        response.raise_for_status()
        payload = response.json()
        if not payload.get("success"):
            raise RuntimeError(payload.get("error") or "Workbook export failed")
        data = payload.get("data") or {}
        file_path = data.get("excelFilePath")
        if not file_path:
            raise RuntimeError("Workbook export returned no file")
        size = data.get("fileSizeInMB")
        return WorkbookExport(
            file_path=file_path,
            size_mb=float(size) if size is not None else None,
        )

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()
