"""Per-user file storage layout."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Generic, TypeVar

from pydantic import BaseModel, ValidationError

from teleweb_bot.domain.models import FEATURE_MODES

logger = logging.getLogger(__name__)

StateT = TypeVar("StateT", bound=BaseModel)


@dataclass
class UserStorage:
    """Durable storage rooted at ``base_dir/<telegram id>/<feature>/``."""

    base_dir: Path

    def user_dir(self, user_id: int) -> Path:
        return self.base_dir / str(user_id)

    def feature_dir(self, user_id: int, feature: str) -> Path:
        return self.user_dir(user_id) / feature

    def ensure_user_feature_dir(self, user_id: int, feature: str) -> Path:
        path = self.feature_dir(user_id, feature)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def initialize_user_dirs(self, user_id: int) -> None:
        for mode in FEATURE_MODES:
            self.ensure_user_feature_dir(user_id, mode.value)


@dataclass
class FeatureStateStore(Generic[StateT]):
    """Load and save one JSON document per user for a feature."""

    storage: UserStorage
    feature: str
    model: type[StateT]

    def path(self, user_id: int) -> Path:
        return self.storage.feature_dir(user_id, self.feature) / (
            f"{self.feature}_state.json"
        )

    def load(self, user_id: int) -> StateT:
        path = self.path(user_id)
        if not path.exists():
            return self.model()
        try:
            return self.model.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError):
            logger.warning(
                "Discarding unreadable feature state",
                extra={"user_id": user_id, "feature": self.feature},
            )
            return self.model()

    def save(self, user_id: int, state: StateT) -> None:
        directory = self.storage.ensure_user_feature_dir(user_id, self.feature)
        target = directory / f"{self.feature}_state.json"
        tmp = target.with_suffix(".json.tmp")
        tmp.write_text(state.model_dump_json(indent=2), encoding="utf-8")
        tmp.replace(target)

    def delete(self, user_id: int) -> None:
        self.path(user_id).unlink(missing_ok=True)
