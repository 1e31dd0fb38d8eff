# flashdeck/api/deps.py
from fastapi import Request

from flashdeck.core.config import Settings
from flashdeck.realtime.manager import ConnectionManager
from flashdeck.storage.base import Storage


def get_storage(request: Request) -> Storage:
    # selected once at startup and attached by create_app()
    return request.app.state.storage


def get_broadcaster(request: Request) -> ConnectionManager:
    return request.app.state.broadcaster


def get_settings(request: Request) -> Settings:
    # the settings create_app() was built with, not necessarily the module default
    return request.app.state.settings
