"""Supabase-backed user directory."""

from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

from supabase import Client

from teleweb_bot.domain.models import UserRecord
from teleweb_bot.services.users import UserRepository

_USER_COLUMNS = (
    "id, telegram_user_id, name, username, role, is_active, created_at, "
    "user_feature_access(features(name, is_enabled))"
)


@dataclass
class SupabaseUserRepository(UserRepository):
    """Supabase implementation of the user directory."""

    client: Client

    def get_by_telegram_id(self, telegram_user_id: int) -> UserRecord | None:
        """Return the user and their enabled feature grants, if registered."""
        response = (
            self.client.table("users")
            .select(_USER_COLUMNS)
            .eq("telegram_user_id", telegram_user_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        row = response.data[0]
        created_at = row.get("created_at")
        return UserRecord(
            id=UUID(row["id"]),
            telegram_user_id=row["telegram_user_id"],
            name=row.get("name"),
            username=row.get("username"),
            role=row.get("role") or "USER",
            is_active=bool(row.get("is_active", True)),
            granted_features=_enabled_features(row.get("user_feature_access")),
            created_at=datetime.fromisoformat(created_at) if created_at else None,
        )

    def touch_last_active(self, user_id: UUID) -> None:
        """Update the last_active_at timestamp for a user."""
        self.client.table("users").update(
            {"last_active_at": datetime.now(tz=UTC).isoformat()}
        ).eq("id", str(user_id)).execute()

    def ping(self) -> None:
        self.client.table("users").select("id").limit(1).execute()


def _enabled_features(access_rows: object) -> frozenset[str]:
    """Return feature names that are both granted and globally enabled."""
    if not isinstance(access_rows, list):
        return frozenset()
    names: set[str] = set()
    for access in access_rows:
        feature = access.get("features") if isinstance(access, dict) else None
        if isinstance(feature, dict) and feature.get("is_enabled"):
            names.add(str(feature["name"]))
    return frozenset(names)
