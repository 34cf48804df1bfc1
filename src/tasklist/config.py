"""Configuration for the task list server and client.

Settings Loading Priority (highest to lowest):
    1. Constructor arguments
    2. Environment variables (TASKLIST_* prefix)
    3. Project config (./.tasklist/settings.json)
    4. User config (~/.tasklist/settings.json)
    5. .env file
    6. Default values

Example:
    TASKLIST_PORT=9090 TASKLIST_DATA_DIR=/tmp/tasks python -m tasklist
"""

from pathlib import Path
from typing import Literal, Tuple, Type

from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings as PydanticBaseSettings,
    JsonConfigSettingsSource,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

__all__ = [
    "Settings",
    "config_files",
    "get_settings",
    "set_settings",
    "reload_settings",
]

APP_NAME = "tasklist"


def config_files() -> list[Path]:
    """JSON settings files in precedence order: project, then user."""
    return [
        Path.cwd() / f".{APP_NAME}" / "settings.json",
        Path.home() / f".{APP_NAME}" / "settings.json",
    ]


class Settings(PydanticBaseSettings):
    """Settings for the task list server and client.

    The data directory holds the live task file (``tasks.json``) and the
    ``backups`` directory.
    """

    model_config = SettingsConfigDict(
        env_prefix="TASKLIST_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = Field(
        default=APP_NAME,
        title="App Name",
        description="Application name, also used for config directories",
    )

    data_dir: Path = Field(
        default_factory=lambda: Path.home() / ".todolist",
        title="Data Directory",
        description="Directory holding the task file and backups",
    )

    # Network
    host: str = Field(
        default="127.0.0.1",
        title="Host",
        description="Address the server listens on and the client connects to",
    )
    port: int = Field(
        default=8080,
        ge=0,
        le=65535,
        title="Port",
        description="TCP port of the server",
    )
    client_timeout: float | None = Field(
        default=None,
        gt=0,
        title="Client Timeout",
        description="Seconds a client waits for a response (None waits forever)",
    )
    max_request_bytes: int = Field(
        default=1024 * 1024,
        gt=0,
        title="Max Request Size",
        description="Longest accepted request line in bytes",
    )

    # Logging
    log_level: Literal["debug", "info", "warning", "error"] = Field(
        default="info",
        title="Log Level",
        description="Logging verbosity level",
    )
    log_format: Literal["console", "json"] = Field(
        default="console",
        title="Log Format",
        description="Log output format (console for dev, json for production)",
    )

    @field_validator("data_dir", mode="before")
    @classmethod
    def expand_path(cls, v: str | Path) -> Path:
        """Expand ~ in paths."""
        if isinstance(v, str):
            return Path(v).expanduser()
        return v.expanduser()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[PydanticBaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        """Put existing JSON config files between the environment and .env."""
        json_sources = [
            JsonConfigSettingsSource(settings_cls, json_file=path)
            for path in config_files()
            if path.is_file()
        ]
        return (init_settings, env_settings, *json_sources, dotenv_settings)

    @property
    def storage_file(self) -> Path:
        """Live task file."""
        return self.data_dir / "tasks.json"

    @property
    def backup_dir(self) -> Path:
        """Directory for backup snapshots."""
        return self.data_dir / "backups"

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


_settings_instance: Settings | None = None


def get_settings() -> Settings:
    """Get the global settings instance, creating it on first access."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance


def set_settings(settings: Settings) -> None:
    """Replace the global settings instance."""
    global _settings_instance
    _settings_instance = settings


def reload_settings() -> Settings:
    """Discard the cached instance and load settings again."""
    global _settings_instance
    _settings_instance = None
    return get_settings()
