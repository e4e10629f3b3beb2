"""Application configuration settings."""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class StorageSettings(BaseSettings):
    """Local storage configuration."""

    url: str = Field(default="sqlite:///./data/fieldsync.db")

    class Config:
        env_prefix = "STORAGE_"


class RemoteSettings(BaseSettings):
    """Remote document store (CouchDB API) configuration."""

    base_url: str = Field(default="http://localhost:5984")
    username: str = Field(default="admin")
    password: str = Field(default="password")
    probe_timeout_seconds: float = Field(default=10.0)
    push_timeout_seconds: float = Field(default=30.0)
    distributions_db: str = Field(default="omvs_distributions")
    gps_photos_db: str = Field(default="omvs_gps_photos")
    # PUT with the local id as remote key instead of POST
    idempotent_push: bool = Field(default=False)

    class Config:
        env_prefix = "REMOTE_"


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field(default="INFO")
    format: str = Field(default="json")
    file_path: Optional[str] = Field(default="./logs/fieldsync.log")

    class Config:
        env_prefix = "LOG_"


class ServerSettings(BaseSettings):
    """Status/sync web server configuration."""

    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8080)

    class Config:
        env_prefix = "SERVER_"


class AppSettings(BaseSettings):
    """Main application settings."""

    name: str = Field(default="Field Sync")
    version: str = Field(default="1.0.0")
    environment: str = Field(default="development")

    # Sub-settings
    storage: StorageSettings = Field(default_factory=StorageSettings)
    remote: RemoteSettings = Field(default_factory=RemoteSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)

    class Config:
        env_prefix = "APP_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


_settings: Optional[AppSettings] = None


def get_settings() -> AppSettings:
    """Get application settings."""
    global _settings
    if _settings is None:
        _settings = AppSettings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None
