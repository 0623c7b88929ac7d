"""Tests for user service."""

import pytest

from teleweb_bot.errors import TransientDependencyFailure
from teleweb_bot.services.users import UserService
from tests.conftest import InMemoryUserRepository


def test_resolve_user_returns_registered_user() -> None:
    repository = InMemoryUserRepository()
    user = repository.add_user(123)
    service = UserService(repository)

    assert service.resolve_user(123) == user
    assert service.resolve_user(456) is None


def test_resolve_user_wraps_directory_errors() -> None:
    repository = InMemoryUserRepository(unavailable=True)
    service = UserService(repository)

    with pytest.raises(TransientDependencyFailure):
        service.resolve_user(123)
    assert not service.is_healthy()


def test_touch_last_active() -> None:
    repository = InMemoryUserRepository()
    user = repository.add_user(123)

    UserService(repository).touch_last_active(user)

    assert repository.touched == [user.id]
