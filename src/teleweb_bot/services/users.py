"""User directory lookups."""

import logging
from dataclasses import dataclass
from typing import Protocol
from uuid import UUID

from teleweb_bot.domain.models import UserRecord
from teleweb_bot.errors import TransientDependencyFailure

logger = logging.getLogger(__name__)


class UserRepository(Protocol):
    """Persistence interface for registered users and their grants."""

    def get_by_telegram_id(self, telegram_user_id: int) -> UserRecord | None:
        """Return the user for a Telegram user id, if registered."""

    def touch_last_active(self, user_id: UUID) -> None:
        """Update the last active timestamp for the user."""

    def ping(self) -> None:
        """Raise if the directory cannot be reached."""


@dataclass
class UserService:
    """Application service for resolving bot users."""

    repository: UserRepository

    def resolve_user(self, telegram_user_id: int) -> UserRecord | None:
        """Return the registered user, or ``None`` when unknown.

        Raises ``TransientDependencyFailure`` when the directory cannot be
        queried, so callers can tell "not registered" apart from "unknown".
        """
        try:
            return self.repository.get_by_telegram_id(telegram_user_id)
        except Exception as exc:
            raise TransientDependencyFailure("user directory", exc) from exc

    def touch_last_active(self, user: UserRecord) -> None:
        self.repository.touch_last_active(user.id)

    def is_healthy(self) -> bool:
        try:
            self.repository.ping()
        except Exception:
            logger.exception("User directory health check failed")
            return False
        return True
