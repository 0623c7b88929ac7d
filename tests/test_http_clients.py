"""Tests for HTTP-based adapters."""

import asyncio
import json
from pathlib import Path

import httpx
import pytest

from teleweb_bot.adapters.openai_ocr_client import OpenAIOcrClient
from teleweb_bot.adapters.telegram_client import HttpxTelegramClient
from teleweb_bot.adapters.telegram_file_client import HttpxTelegramFileClient
from teleweb_bot.adapters.workbook_client import HttpxWorkbookExporter


class _FakeResponses:
    def __init__(self) -> None:
        self.last_payload: dict[str, object] | None = None

    async def create(self, **kwargs):  # type: ignore[no-untyped-def]
        self.last_payload = kwargs
        return type("Resp", (), {"output_text": "Jl. Pemuda 12"})()


class _FakeOpenAI:
    def __init__(self) -> None:
        self.responses = _FakeResponses()


def test_openai_ocr_client_returns_output_text() -> None:
    fake = _FakeOpenAI()
    client = OpenAIOcrClient(client=fake)

    text = asyncio.run(
        client.extract_text(
            model="gpt-4.1-mini",
            image_data_url="data:image/jpeg;base64,ZmFrZQ==",
            prompt="Transcribe",
        )
    )

    assert text == "Jl. Pemuda 12"
    assert fake.responses.last_payload is not None
    content = fake.responses.last_payload["input"][0]["content"]
    assert content[1]["image_url"] == "data:image/jpeg;base64,ZmFrZQ=="


def test_telegram_client_send_and_callback() -> None:
    seen: list[tuple[str, dict[str, object]]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.url.path, json.loads(request.content.decode())))
        return httpx.Response(200, json={"ok": True, "result": {}})

    transport = httpx.MockTransport(handler)
    async_client = httpx.AsyncClient(transport=transport)
    client = HttpxTelegramClient(bot_token="token", http_client=async_client)

    asyncio.run(client.send_message(chat_id=1, text="Hi"))
    asyncio.run(client.answer_callback_query(callback_query_id="cbq-1"))

    assert seen[0] == ("/bottoken/sendMessage", {"chat_id": 1, "text": "Hi"})
    assert seen[1] == ("/bottoken/answerCallbackQuery", {"callback_query_id": "cbq-1"})


def test_telegram_client_uploads_documents(tmp_path: Path) -> None:
    bodies: list[bytes] = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path.endswith("/sendDocument")
        bodies.append(request.read())
        return httpx.Response(200, json={"ok": True, "result": {}})

    path = tmp_path / "points.kml"
    path.write_bytes(b"<kml/>")
    transport = httpx.MockTransport(handler)
    client = HttpxTelegramClient(
        bot_token="token",
        http_client=httpx.AsyncClient(transport=transport),
        api_base_url="http://relay.local:8081",
    )

    asyncio.run(client.send_document(chat_id=5, path=path, caption="Survey"))

    assert b'filename="points.kml"' in bodies[0]
    assert b"<kml/>" in bodies[0]
    assert b"Survey" in bodies[0]


def test_telegram_client_raises_on_error_status() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(429))
    client = HttpxTelegramClient(
        bot_token="token", http_client=httpx.AsyncClient(transport=transport)
    )

    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(client.send_message(chat_id=1, text="Hi"))


def test_telegram_client_commands_and_menu_button() -> None:
    seen_paths: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen_paths.append(request.url.path)
        payload = json.loads(request.content.decode())
        if request.url.path.endswith("/setMyCommands"):
            assert payload["commands"][0]["command"] == "start"
        if request.url.path.endswith("/setChatMenuButton"):
            assert payload["menu_button"]["type"] == "commands"
        return httpx.Response(200, json={"ok": True, "result": True})

    transport = httpx.MockTransport(handler)
    async_client = httpx.AsyncClient(transport=transport)
    client = HttpxTelegramClient(bot_token="token", http_client=async_client)

    asyncio.run(
        client.set_my_commands([{"command": "start", "description": "Main menu"}])
    )
    asyncio.run(client.set_chat_menu_button())

    assert any(path.endswith("/setMyCommands") for path in seen_paths)
    assert any(path.endswith("/setChatMenuButton") for path in seen_paths)


def test_telegram_file_client_streams_to_disk(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/getFile"):
            assert request.url.params["file_id"] == "file-id"
            return httpx.Response(
                200,
                json={
                    "ok": True,
                    "result": {"file_path": "photos/file.jpg", "file_size": 11},
                },
            )
        assert request.url.path == "/file/bottoken/photos/file.jpg"
        return httpx.Response(200, content=b"image-bytes")

    transport = httpx.MockTransport(handler)
    async_client = httpx.AsyncClient(transport=transport)
    client = HttpxTelegramFileClient(bot_token="token", http_client=async_client)
    target = tmp_path / "file.jpg"

    async def run() -> int:
        metadata = await client.get_file_metadata("file-id")
        url = client.resolve_download_url(metadata.file_path)
        return await client.stream_to_path(url, target, timeout=5)

    written = asyncio.run(run())

    assert written == 11
    assert target.read_bytes() == b"image-bytes"


def test_telegram_file_client_rejects_missing_path() -> None:
    transport = httpx.MockTransport(
        lambda request: httpx.Response(200, json={"ok": True, "result": {}})
    )
    client = HttpxTelegramFileClient(
        bot_token="token", http_client=httpx.AsyncClient(transport=transport)
    )

    with pytest.raises(RuntimeError, match="no file_path"):
        asyncio.run(client.get_file_metadata("file-id"))


def test_workbook_exporter_posts_sheets() -> None:
    payloads: list[dict[str, object]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/files/workbook/generate"
        payloads.append(json.loads(request.content.decode()))
        return httpx.Response(
            200,
            json={
                "success": True,
                "data": {"excelFilePath": "/exports/wb.xlsx", "fileSizeInMB": "1.5"},
            },
        )

    exporter = HttpxWorkbookExporter(
        base_url="http://backend.test",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )

    result = asyncio.run(
        exporter.generate(
            telegram_user_id=123,
            user_id="user-1",
            media_folder="/data/123/workbook",
            sheets=["Site A", "Site B"],
        )
    )

    assert result.file_path == "/exports/wb.xlsx"
    assert result.size_mb == 1.5
    assert payloads[0] == {
        "telegramId": "123",
        "userId": "user-1",
        "mediaFolderPath": "/data/123/workbook",
        "folders": ["Site A", "Site B"],
    }


def test_workbook_exporter_reports_backend_error() -> None:
    transport = httpx.MockTransport(
        lambda request: httpx.Response(
            200, json={"success": False, "error": "no images"}
        )
    )
    exporter = HttpxWorkbookExporter(
        base_url="http://backend.test",
        http_client=httpx.AsyncClient(transport=transport),
    )

    with pytest.raises(RuntimeError, match="no images"):
        asyncio.run(exporter.generate(1, "u", "/data", ["A"]))
