"""ASGI entrypoint for the TeleWeb bot API."""

from teleweb_bot.api.app import create_app
from teleweb_bot.containers import build_container

app = create_app(build_container())
