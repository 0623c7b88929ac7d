"""Tests for admin endpoints."""

from fastapi.testclient import TestClient

from teleweb_bot.api.app import create_app
from teleweb_bot.domain.models import Mode
from tests.conftest import InMemoryUserRepository

HEADERS = {"X-Admin-Token": "admin-token"}


def test_admin_endpoints_require_token(container) -> None:
    client = TestClient(create_app(container))

    assert client.get("/admin/sessions").status_code == 401
    assert (
        client.get("/admin/sessions", headers={"X-Admin-Token": "wrong"}).status_code
        == 401
    )


def test_admin_sessions_endpoint(container) -> None:
    container.modes.set_mode(1, Mode.KML)
    container.modes.set_mode(2, Mode.KML)
    container.modes.set_mode(3, Mode.OCR)
    client = TestClient(create_app(container))

    response = client.get("/admin/sessions", headers=HEADERS)

    assert response.status_code == 200
    assert response.json() == {
        "total_sessions": 3,
        "mode_distribution": {"kml": 2, "ocr": 1},
    }


def test_admin_health_reports_directory_outage(
    container, user_repository: InMemoryUserRepository
) -> None:
    client = TestClient(create_app(container))

    healthy = client.get("/admin/health", headers=HEADERS).json()
    user_repository.unavailable = True
    degraded = client.get("/admin/health", headers=HEADERS).json()

    assert healthy == {
        "status": "ok",
        "user_directory": True,
        "relay_available": False,
    }
    assert degraded["status"] == "degraded"
    assert degraded["user_directory"] is False


def test_admin_queues_and_activity(container) -> None:
    container.queue.state(42)
    container.activity.record_activity(42, "command_start")
    client = TestClient(create_app(container))

    queues = client.get("/admin/queues", headers=HEADERS).json()
    activity = client.get("/admin/activity", headers=HEADERS).json()

    assert queues == {
        "queues": {
            "42": {
                "pending": 0,
                "is_draining": False,
                "processed_count": 0,
                "error_count": 0,
            }
        }
    }
    assert activity == {"pending": 1, "recorded": 0, "dropped": 0, "failed": 0}
