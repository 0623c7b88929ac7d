"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

from supabase import create_client

from teleweb_bot.adapters.openai_ocr_client import OpenAIOcrClient
from teleweb_bot.adapters.supabase_activity_repository import (
    SupabaseActivityRepository,
)
from teleweb_bot.adapters.supabase_user_repository import SupabaseUserRepository
from teleweb_bot.adapters.telegram_client import (
    HttpxTelegramClient,
    TelegramClient,
)
from teleweb_bot.adapters.telegram_file_client import (
    HttpxTelegramFileClient,
    TelegramFileClient,
)
from teleweb_bot.adapters.workbook_client import (
    HttpxWorkbookExporter,
    WorkbookExporter,
)
from teleweb_bot.config import Settings
from teleweb_bot.domain.models import Mode
from teleweb_bot.handlers.archive import ArchiveHandler
from teleweb_bot.handlers.base import FeatureHandler, HandlerDeps, IdleHandler
from teleweb_bot.handlers.geotags import GeotagsHandler
from teleweb_bot.handlers.kml import KmlHandler
from teleweb_bot.handlers.location import LocationHandler
from teleweb_bot.handlers.ocr import OcrHandler
from teleweb_bot.handlers.workbook import WorkbookHandler
from teleweb_bot.services.acquisition import FileAcquisitionService
from teleweb_bot.services.audit import ActivityService
from teleweb_bot.services.dispatcher import UpdateDispatcher
from teleweb_bot.services.gate import EntitlementGate
from teleweb_bot.services.ingestion import IngestionQueue, MediaAcquirer
from teleweb_bot.services.modes import ModeStore
from teleweb_bot.services.ocr import OcrService
from teleweb_bot.services.storage import UserStorage
from teleweb_bot.services.users import UserService


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    telegram_client: TelegramClient
    telegram_file_client: TelegramFileClient
    user_service: UserService
    modes: ModeStore
    queue: IngestionQueue
    acquisition: FileAcquisitionService
    activity: ActivityService
    dispatcher: UpdateDispatcher
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    user_service = UserService(SupabaseUserRepository(supabase_client))
    activity = ActivityService(
        SupabaseActivityRepository(supabase_client),
        max_queue=resolved_settings.activity_queue_size,
    )
    telegram_client = HttpxTelegramClient.create(
        resolved_settings.telegram_bot_token, resolved_settings.telegram_api_base_url
    )
    telegram_file_client = HttpxTelegramFileClient.create(
        resolved_settings.telegram_bot_token, resolved_settings.telegram_api_base_url
    )
    workbook_exporter = HttpxWorkbookExporter.create(
        resolved_settings.workbook_service_url
    )
    ocr_service = OcrService(
        client=OpenAIOcrClient.create(resolved_settings.openai_api_key),
        model=resolved_settings.openai_model,
    )
    storage = UserStorage(Path(resolved_settings.user_data_dir))
    acquisition = FileAcquisitionService(
        file_client=telegram_file_client,
        relay_dir=Path(resolved_settings.bot_api_data_dir),
        download_timeout=resolved_settings.download_timeout_seconds,
    )
    modes = ModeStore(
        idle_timeout=timedelta(seconds=resolved_settings.session_idle_timeout_seconds),
        sweep_interval=timedelta(
            seconds=resolved_settings.session_sweep_interval_seconds
        ),
    )
    queue = IngestionQueue(
        acquisition=acquisition,
        notifier=telegram_client,
        min_spacing=resolved_settings.ingestion_min_spacing_seconds,
        progress_every=resolved_settings.ingestion_progress_every,
    )
    deps = HandlerDeps(
        telegram_client=telegram_client,
        modes=modes,
        storage=storage,
        queue=queue,
        activity=activity,
    )
    dispatcher = UpdateDispatcher(
        deps=deps,
        gate=EntitlementGate(user_service, storage),
        handlers=build_handlers(deps, acquisition, ocr_service, workbook_exporter),
    )

    async def close_resources() -> None:
        await telegram_client.close()
        await telegram_file_client.close()
        await workbook_exporter.close()

    return AppContainer(
        settings=resolved_settings,
        telegram_client=telegram_client,
        telegram_file_client=telegram_file_client,
        user_service=user_service,
        modes=modes,
        queue=queue,
        acquisition=acquisition,
        activity=activity,
        dispatcher=dispatcher,
        close_resources=close_resources,
    )


def build_handlers(
    deps: HandlerDeps,
    acquisition: MediaAcquirer,
    ocr_service: OcrService,
    workbook_exporter: WorkbookExporter | None,
) -> dict[Mode, FeatureHandler]:
    """Create one handler per mode."""
    return {
        Mode.IDLE: IdleHandler(deps),
        Mode.OCR: OcrHandler(deps, acquisition=acquisition, ocr_service=ocr_service),
        Mode.ARCHIVE: ArchiveHandler(deps, acquisition=acquisition),
        Mode.LOCATION: LocationHandler(deps),
        Mode.GEOTAGS: GeotagsHandler(deps),
        Mode.KML: KmlHandler(deps),
        Mode.WORKBOOK: WorkbookHandler(deps, exporter=workbook_exporter),
    }
