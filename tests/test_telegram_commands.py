"""Tests for Telegram command definitions."""

from teleweb_bot.domain.models import FEATURE_MODES
from teleweb_bot.telegram_commands import BotCommand, telegram_commands


def test_telegram_commands_include_start() -> None:
    commands = telegram_commands()

    assert {
        "command": "start",
        "description": "Welcome and the features available to you",
    } in commands
    assert len(commands) == len(list(BotCommand))


def test_every_feature_has_a_menu_entry() -> None:
    names = {command["command"] for command in telegram_commands()}

    assert {mode.value for mode in FEATURE_MODES} <= names
    assert all(len(command["description"]) <= 256 for command in telegram_commands())
