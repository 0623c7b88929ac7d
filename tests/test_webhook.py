"""Tests for Telegram webhook handling."""

from fastapi.testclient import TestClient

from teleweb_bot.api.app import create_app
from teleweb_bot.domain.kml import KmlData
from teleweb_bot.domain.models import Mode
from teleweb_bot.services.storage import FeatureStateStore
from teleweb_bot.telegram_commands import CHAT_MENU_BUTTON
from tests.conftest import FakeTelegramClient, InMemoryUserRepository, make_message


def test_webhook_start_for_registered_user(
    container,
    user_repository: InMemoryUserRepository,
    telegram_client: FakeTelegramClient,
) -> None:
    user = user_repository.add_user(123)
    app = create_app(container)
    client = TestClient(app)

    payload = {"update_id": 1, "message": make_message("/start")}

    response = client.post("/telegram/webhook", json=payload)

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    chat_id, text = telegram_client.messages[0]
    assert chat_id == 99
    assert "Available features:" in text
    assert user_repository.touched == [user.id]


def test_webhook_enters_feature_mode(
    container,
    user_repository: InMemoryUserRepository,
    telegram_client: FakeTelegramClient,
) -> None:
    user_repository.add_user(321)
    app = create_app(container)
    client = TestClient(app)

    response = client.post(
        "/telegram/webhook",
        json={"update_id": 2, "message": make_message("/kml", user_id=321)},
    )

    assert response.status_code == 200
    assert container.modes.get_mode(321) is Mode.KML
    assert telegram_client.texts()[0].startswith("KML mode is active.")


def test_webhook_ignores_updates_without_message(
    container, telegram_client: FakeTelegramClient
) -> None:
    app = create_app(container)
    client = TestClient(app)

    response = client.post(
        "/telegram/webhook",
        json={"update_id": 3, "edited_message": make_message("/start")},
    )

    assert response.status_code == 200
    assert telegram_client.messages == []


def test_webhook_rejects_malformed_payload(container) -> None:
    client = TestClient(create_app(container))

    response = client.post("/telegram/webhook", json={"message": {"text": "hi"}})

    assert response.status_code == 422


def test_lifespan_syncs_bot_commands(
    container, telegram_client: FakeTelegramClient
) -> None:
    with TestClient(create_app(container)) as client:
        assert client.get("/health").json() == {"status": "ok"}

    assert telegram_client.commands is not None
    assert telegram_client.commands[0]["command"] == "start"
    assert telegram_client.menu_button == CHAT_MENU_BUTTON


def test_webhook_acknowledges_update_when_replies_fail(
    container,
    user_repository: InMemoryUserRepository,
    telegram_client: FakeTelegramClient,
) -> None:
    user_repository.add_user(123)
    client = TestClient(create_app(container))
    client.post(
        "/telegram/webhook", json={"update_id": 1, "message": make_message("/kml")}
    )
    telegram_client.fail_sends = True

    response = client.post(
        "/telegram/webhook",
        json={"update_id": 2, "message": make_message(location=(-6.2, 106.8))},
    )

    assert response.status_code == 200
    store = FeatureStateStore(container.dispatcher.deps.storage, "kml", KmlData)
    assert [point.name for point in store.load(123).placemarks] == ["Pinned point 1"]
