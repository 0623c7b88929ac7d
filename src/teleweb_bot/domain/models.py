"""Core domain models for the bot."""

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from uuid import UUID


class Mode(Enum):
    """Feature a user is currently working in.

    The value doubles as the feature name used for entitlements and storage.
    """

    IDLE = "idle"
    OCR = "ocr"
    ARCHIVE = "archive"
    LOCATION = "location"
    GEOTAGS = "geotags"
    KML = "kml"
    WORKBOOK = "workbook"


FEATURE_MODES: tuple[Mode, ...] = tuple(mode for mode in Mode if mode is not Mode.IDLE)

ADMIN_ROLE = "ADMIN"


@dataclass(frozen=True)
class UserRecord:
    """Represents a registered bot user."""

    id: UUID
    telegram_user_id: int
    name: str | None = None
    username: str | None = None
    role: str = "USER"
    is_active: bool = True
    granted_features: frozenset[str] = frozenset()
    created_at: datetime | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE

    def has_feature(self, feature: str) -> bool:
        return feature in self.granted_features


@dataclass
class Session:
    """In-memory per-user mode session."""

    user_id: int
    mode: Mode
    mode_state: dict[str, object]
    created_at: datetime
    last_activity_at: datetime


@dataclass(frozen=True)
class QueueTask:
    """A media item waiting to be acquired for a user."""

    media_ref: str
    target_name: str
    target_dir: Path
    owner_user_id: int
    chat_id: int
    mode: Mode
    enqueued_at: datetime
    context: dict[str, object] = field(default_factory=dict, compare=False)

    @property
    def target_path(self) -> Path:
        return self.target_dir / self.target_name


@dataclass
class PerUserQueueState:
    """Queue bookkeeping for a single user."""

    pending: deque[QueueTask] = field(default_factory=deque)
    is_draining: bool = False
    last_processed_at: float | None = None
    processed_count: int = 0
    error_count: int = 0


@dataclass(frozen=True)
class AcquiredFile:
    """Result of materializing a media reference on local disk."""

    path: Path
    bytes_written: int
    strategy: str
