"""Tests for Supabase adapter implementations."""

from dataclasses import dataclass, field
from uuid import UUID, uuid4

from teleweb_bot.adapters.supabase_activity_repository import (
    SupabaseActivityRepository,
)
from teleweb_bot.adapters.supabase_user_repository import SupabaseUserRepository
from teleweb_bot.services.audit import ActivityEvent


@dataclass
class FakeResponse:
    data: list[dict[str, object]] | None


@dataclass
class FakeTable:
    name: str
    response_queue: dict[str, list[list[dict[str, object]]]] = field(
        default_factory=lambda: {"select": [], "insert": [], "update": []}
    )
    last_payload: object | None = None
    last_select: str | None = None
    last_filters: list[tuple[str, object]] = field(default_factory=list)

    def queue(self, action: str, data: list[dict[str, object]]) -> None:
        self.response_queue[action].append(data)

    def select(self, columns: str) -> "FakeTable":
        self._action = "select"
        self.last_select = columns
        return self

    def insert(self, payload) -> "FakeTable":  # type: ignore[no-untyped-def]
        self._action = "insert"
        self.last_payload = payload
        return self

    def update(self, payload) -> "FakeTable":  # type: ignore[no-untyped-def]
        self._action = "update"
        self.last_payload = payload
        return self

    def eq(self, column: str, value) -> "FakeTable":  # type: ignore[no-untyped-def]
        self.last_filters.append((column, value))
        return self

    def limit(self, _count: int) -> "FakeTable":
        return self

    def execute(self) -> FakeResponse:
        action = getattr(self, "_action", "select")
        queue = self.response_queue.get(action, [])
        data = queue.pop(0) if queue else []
        return FakeResponse(data=data)


@dataclass
class FakeSupabaseClient:
    tables: dict[str, FakeTable] = field(default_factory=dict)

    def table(self, name: str) -> FakeTable:
        if name not in self.tables:
            self.tables[name] = FakeTable(name=name)
        return self.tables[name]


def test_user_repository_reads_enabled_features() -> None:
    client = FakeSupabaseClient()
    users_table = client.table("users")
    user_id = str(uuid4())
    users_table.queue(
        "select",
        [
            {
                "id": user_id,
                "telegram_user_id": 123,
                "name": "Rina",
                "username": "rina",
                "role": "ADMIN",
                "is_active": True,
                "created_at": "2024-02-01T08:00:00+00:00",
                "user_feature_access": [
                    {"features": {"name": "kml", "is_enabled": True}},
                    {"features": {"name": "ocr", "is_enabled": False}},
                    {"features": None},
                ],
            }
        ],
    )

    repository = SupabaseUserRepository(client)
    user = repository.get_by_telegram_id(123)

    assert user is not None
    assert user.id == UUID(user_id)
    assert user.is_admin
    assert user.granted_features == frozenset({"kml"})
    assert user.created_at is not None and user.created_at.year == 2024
    assert ("telegram_user_id", 123) in users_table.last_filters
    assert "user_feature_access" in (users_table.last_select or "")


def test_user_repository_unknown_user() -> None:
    repository = SupabaseUserRepository(FakeSupabaseClient())

    assert repository.get_by_telegram_id(999) is None


def test_user_repository_defaults_for_sparse_rows() -> None:
    client = FakeSupabaseClient()
    client.table("users").queue(
        "select", [{"id": str(uuid4()), "telegram_user_id": 5}]
    )

    user = SupabaseUserRepository(client).get_by_telegram_id(5)

    assert user is not None
    assert user.role == "USER"
    assert user.is_active
    assert user.granted_features == frozenset()
    assert user.created_at is None


def test_user_repository_touch_last_active() -> None:
    client = FakeSupabaseClient()
    user_id = uuid4()

    SupabaseUserRepository(client).touch_last_active(user_id)

    users_table = client.table("users")
    assert isinstance(users_table.last_payload, dict)
    assert "last_active_at" in users_table.last_payload
    assert ("id", str(user_id)) in users_table.last_filters


def test_activity_repository_inserts_event() -> None:
    client = FakeSupabaseClient()
    user_id = uuid4()
    event = ActivityEvent(
        telegram_user_id=123,
        user_id=user_id,
        action="kml_export",
        mode="kml",
        success=True,
        details={"points": 3},
    )

    SupabaseActivityRepository(client).create_activity(event)

    payload = client.table("bot_activities").last_payload
    assert isinstance(payload, dict)
    assert payload["user_id"] == str(user_id)
    assert payload["action"] == "kml_export"
    assert payload["details"] == {"points": 3}
    assert payload["created_at"] == event.occurred_at.isoformat()
