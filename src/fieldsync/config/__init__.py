"""Configuration package for the field sync engine."""

from .settings import (
    StorageSettings,
    RemoteSettings,
    LoggingSettings,
    ServerSettings,
    AppSettings,
    get_settings,
    reset_settings
)

__all__ = [
    "StorageSettings",
    "RemoteSettings",
    "LoggingSettings",
    "ServerSettings",
    "AppSettings",
    "get_settings",
    "reset_settings"
]
