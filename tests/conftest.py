"""Shared test fixtures."""

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from uuid import UUID, uuid4

import pytest

from teleweb_bot.adapters.telegram_client import TelegramClient
from teleweb_bot.adapters.telegram_file_client import TelegramFile, TelegramFileClient
from teleweb_bot.adapters.workbook_client import WorkbookExport, WorkbookExporter
from teleweb_bot.api.telegram_models import TelegramUpdate
from teleweb_bot.config import Settings
from teleweb_bot.containers import AppContainer, build_handlers
from teleweb_bot.domain.models import UserRecord
from teleweb_bot.handlers.base import HandlerDeps
from teleweb_bot.services.acquisition import FileAcquisitionService
from teleweb_bot.services.audit import (
    ActivityEvent,
    ActivityRepository,
    ActivityService,
)
from teleweb_bot.services.dispatcher import UpdateDispatcher
from teleweb_bot.services.gate import EntitlementGate
from teleweb_bot.services.ingestion import IngestionQueue
from teleweb_bot.services.modes import ModeStore
from teleweb_bot.services.ocr import OcrClient, OcrService
from teleweb_bot.services.storage import UserStorage
from teleweb_bot.services.users import UserRepository, UserService

ALL_FEATURES = frozenset(
    {"ocr", "archive", "location", "geotags", "kml", "workbook"}
)


@dataclass
class InMemoryUserRepository(UserRepository):
    """In-memory user repository for tests."""

    users: dict[int, UserRecord] = field(default_factory=dict)
    touched: list[UUID] = field(default_factory=list)
    unavailable: bool = False

    def get_by_telegram_id(self, telegram_user_id: int) -> UserRecord | None:
        if self.unavailable:
            raise ConnectionError("directory down")
        return self.users.get(telegram_user_id)

    def add_user(
        self,
        telegram_user_id: int,
        features: frozenset[str] = ALL_FEATURES,
        role: str = "USER",
        is_active: bool = True,
    ) -> UserRecord:
        user = UserRecord(
            id=uuid4(),
            telegram_user_id=telegram_user_id,
            name="Test User",
            username="tester",
            role=role,
            is_active=is_active,
            granted_features=frozenset(features),
            created_at=datetime(2024, 1, 1, tzinfo=UTC),
        )
        self.users[telegram_user_id] = user
        return user

    def touch_last_active(self, user_id: UUID) -> None:
        self.touched.append(user_id)

    def ping(self) -> None:
        if self.unavailable:
            raise ConnectionError("directory down")


@dataclass
class FakeTelegramClient(TelegramClient):
    """Fake Telegram client that records messages and uploads."""

    messages: list[tuple[int, str]] = field(default_factory=list)
    documents: list[tuple[int, str, bytes]] = field(default_factory=list)
    photos: list[tuple[int, str, str | None]] = field(default_factory=list)
    callbacks: list[tuple[str, str | None]] = field(default_factory=list)
    commands: list[dict[str, str]] | None = None
    menu_button: dict[str, object] | None = None
    fail_sends: bool = False

    async def send_message(
        self, chat_id: int, text: str, reply_markup: dict | None = None
    ) -> None:
        if self.fail_sends:
            raise RuntimeError("sendMessage failed")
        self.messages.append((chat_id, text))

    async def send_document(
        self, chat_id: int, path: Path, caption: str | None = None
    ) -> None:
        self.documents.append((chat_id, path.name, path.read_bytes()))

    async def send_photo(
        self, chat_id: int, path: Path, caption: str | None = None
    ) -> None:
        self.photos.append((chat_id, path.name, caption))

    async def answer_callback_query(
        self, callback_query_id: str, text: str | None = None
    ) -> None:
        self.callbacks.append((callback_query_id, text))

    async def set_my_commands(self, commands: list[dict[str, str]]) -> None:
        self.commands = commands

    async def set_chat_menu_button(
        self, menu_button: dict[str, object] | None = None
    ) -> None:
        self.menu_button = menu_button

    def texts(self) -> list[str]:
        return [text for _, text in self.messages]


@dataclass
class FakeTelegramFileClient(TelegramFileClient):
    """Fake Telegram file client backed by a dict of file contents."""

    files: dict[str, bytes] = field(default_factory=dict)
    kind: str = "photos"
    failing_downloads: set[str] = field(default_factory=set)
    downloads: list[str] = field(default_factory=list)

    async def get_file_metadata(self, file_id: str) -> TelegramFile:
        if file_id not in self.files:
            raise LookupError(f"unknown file {file_id}")
        return TelegramFile(
            file_id=file_id,
            file_path=f"{self.kind}/{file_id}.jpg",
            file_size=len(self.files[file_id]),
        )

    def resolve_download_url(self, file_path: str) -> str:
        return f"https://files.test/{file_path}"

    async def stream_to_path(self, url: str, path: Path, timeout: float) -> int:
        file_id = Path(url).stem
        self.downloads.append(file_id)
        if file_id in self.failing_downloads:
            raise ConnectionError("download failed")
        content = self.files[file_id]
        path.write_bytes(content)
        return len(content)


@dataclass
class FakeActivityRepository(ActivityRepository):
    """Activity repository that keeps events in memory."""

    events: list[ActivityEvent] = field(default_factory=list)
    fail: bool = False

    def create_activity(self, event: ActivityEvent) -> None:
        if self.fail:
            raise ConnectionError("insert failed")
        self.events.append(event)


@dataclass
class FakeOcrClient(OcrClient):
    """OCR client returning a fixed transcription."""

    text: str = "Hello from the image"
    calls: int = 0

    async def extract_text(
        self, *, model: str, image_data_url: str, prompt: str
    ) -> str:
        self.calls += 1
        return self.text


@dataclass
class FakeWorkbookExporter(WorkbookExporter):
    """Workbook exporter that writes a placeholder file."""

    output_dir: Path
    calls: list[dict[str, object]] = field(default_factory=list)

    async def generate(
        self,
        telegram_user_id: int,
        user_id: str,
        media_folder: str,
        sheets: list[str],
    ) -> WorkbookExport:
        self.calls.append(
            {
                "telegram_user_id": telegram_user_id,
                "media_folder": media_folder,
                "sheets": list(sheets),
            }
        )
        path = self.output_dir / f"workbook_{telegram_user_id}.xlsx"
        path.write_bytes(b"xlsx")
        return WorkbookExport(file_path=str(path), size_mb=0.01)


async def no_sleep(seconds: float) -> None:
    return None


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        telegram_bot_token="test-token",
        supabase_url="https://example.supabase.co",
        supabase_service_key="service-key",
        admin_token="admin-token",
        openai_api_key="openai-key",
        user_data_dir=str(tmp_path / "users"),
        bot_api_data_dir=str(tmp_path / "relay"),
        ingestion_min_spacing_seconds=0,
    )


@pytest.fixture
def user_repository() -> InMemoryUserRepository:
    return InMemoryUserRepository()


@pytest.fixture
def telegram_client() -> FakeTelegramClient:
    return FakeTelegramClient()


@pytest.fixture
def file_client() -> FakeTelegramFileClient:
    return FakeTelegramFileClient()


@pytest.fixture
def activity_repository() -> FakeActivityRepository:
    return FakeActivityRepository()


@pytest.fixture
def ocr_client() -> FakeOcrClient:
    return FakeOcrClient()


@pytest.fixture
def workbook_exporter(tmp_path: Path) -> FakeWorkbookExporter:
    output_dir = tmp_path / "exports"
    output_dir.mkdir()
    return FakeWorkbookExporter(output_dir)


@pytest.fixture
def storage(settings: Settings) -> UserStorage:
    return UserStorage(Path(settings.user_data_dir))


@pytest.fixture
def deps(
    telegram_client: FakeTelegramClient,
    file_client: FakeTelegramFileClient,
    activity_repository: FakeActivityRepository,
    storage: UserStorage,
) -> HandlerDeps:
    acquisition = FileAcquisitionService(file_client=file_client)
    return HandlerDeps(
        telegram_client=telegram_client,
        modes=ModeStore(),
        storage=storage,
        queue=IngestionQueue(
            acquisition=acquisition,
            notifier=telegram_client,
            min_spacing=0,
            sleep=no_sleep,
        ),
        activity=ActivityService(activity_repository),
    )


@pytest.fixture
def container(  # noqa: PLR0913
    settings: Settings,
    user_repository: InMemoryUserRepository,
    telegram_client: FakeTelegramClient,
    file_client: FakeTelegramFileClient,
    ocr_client: FakeOcrClient,
    workbook_exporter: FakeWorkbookExporter,
    deps: HandlerDeps,
) -> AppContainer:
    user_service = UserService(user_repository)
    acquisition = deps.queue.acquisition
    handlers = build_handlers(
        deps,
        acquisition,
        OcrService(client=ocr_client, model=settings.openai_model),
        workbook_exporter,
    )
    dispatcher = UpdateDispatcher(
        deps=deps,
        gate=EntitlementGate(user_service, deps.storage),
        handlers=handlers,
    )

    async def close_resources() -> None:
        return None

    return AppContainer(
        settings=settings,
        telegram_client=telegram_client,
        telegram_file_client=file_client,
        user_service=user_service,
        modes=deps.modes,
        queue=deps.queue,
        acquisition=acquisition,
        activity=deps.activity,
        dispatcher=dispatcher,
        close_resources=close_resources,
    )


def make_message(  # noqa: PLR0913
    text: str | None = None,
    *,
    user_id: int = 123,
    chat_id: int = 99,
    message_id: int = 10,
    photo: str | None = None,
    document: dict[str, object] | None = None,
    location: tuple[float, float] | None = None,
) -> dict[str, object]:
    """Build a Telegram message payload."""
    message: dict[str, object] = {
        "message_id": message_id,
        "date": 1700000000,
        "chat": {"id": chat_id, "type": "private"},
        "from": {"id": user_id, "is_bot": False, "first_name": "Test"},
    }
    if text is not None:
        message["text"] = text
    if photo is not None:
        message["photo"] = [
            {
                "file_id": f"{photo}-small",
                "file_unique_id": f"{photo}-small-unique",
                "width": 90,
                "height": 90,
            },
            {
                "file_id": photo,
                "file_unique_id": f"{photo}-unique",
                "width": 1280,
                "height": 960,
            },
        ]
    if document is not None:
        message["document"] = document
    if location is not None:
        message["location"] = {"latitude": location[0], "longitude": location[1]}
    return message


def dispatch_messages(
    container: AppContainer, *messages: dict[str, object], wait_for: int = 123
) -> None:
    """Feed messages through the dispatcher and wait for queued media."""

    async def run() -> None:
        for update_id, message in enumerate(messages, start=1):
            update = TelegramUpdate.model_validate(
                {"update_id": update_id, "message": message}
            )
            await container.dispatcher.dispatch(update)
        await container.queue.wait_idle(wait_for)

    asyncio.run(run())
