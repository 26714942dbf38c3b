from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from levelsync.domain.constants import (
    DEFAULT_LEVEL_COUNT,
    DEFAULT_TOGGLE_COUNT,
    FLUSH_INTERVAL,
    QUEUE_KEY,
    REQUEST_TIMEOUT,
    SIMULATED_DELAY,
    STATES_KEY,
)

CONFIG_FILES = [
    Path.home() / ".config/levelsync/config.toml",
    Path.home() / ".levelsync.toml",
]


class AppConfig(BaseSettings):
    """
    Configuration model for levelsync.
    Supports loading from:
    1. Environment variables (LEVELSYNC_*)
    2. Config file (~/.config/levelsync/config.toml)
    3. Manual overrides (CLI / API)
    """

    model_config = SettingsConfigDict(
        env_prefix="LEVELSYNC_",
        extra="ignore",
    )

    # Paths
    data_dir: Path = Field(default_factory=lambda: Path.home() / ".local/share/levelsync")

    # Backends
    store_backend: Literal["file", "sqlite", "memory"] = "file"
    remote_backend: Literal["http", "simulated"] = "simulated"
    sync_url: str | None = None
    request_timeout: float = REQUEST_TIMEOUT
    simulated_delay: float = SIMULATED_DELAY

    # Tracking
    toggle_count: int = Field(default=DEFAULT_TOGGLE_COUNT, ge=1)
    level_count: int = Field(default=DEFAULT_LEVEL_COUNT, ge=2)

    # Sync
    flush_interval: float = Field(default=FLUSH_INTERVAL, gt=0)
    states_key: str = STATES_KEY
    queue_key: str = QUEUE_KEY

    verbose: int = 1

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        from pydantic_settings import TomlConfigSettingsSource

        # Overrides first, then environment, then the first config file found
        toml_file = next((f for f in CONFIG_FILES if f.exists()), None)
        if toml_file:
            return (
                init_settings,
                env_settings,
                TomlConfigSettingsSource(settings_cls, toml_file=toml_file),
            )
        return (init_settings, env_settings)

    @field_validator("data_dir", mode="before")
    @classmethod
    def expand_path(cls, v: Any) -> Path:
        return Path(v).expanduser().resolve()

    @model_validator(mode="after")
    def check_remote(self) -> "AppConfig":
        if self.remote_backend == "http" and not self.sync_url:
            raise ValueError("remote_backend 'http' requires sync_url")
        return self


def resolve_config(cli_overrides: dict[str, Any] | None = None) -> AppConfig:
    """
    Multi-layered configuration resolution.
    1. Defaults in AppConfig
    2. ~/.config/levelsync/config.toml (if exists)
    3. Environment variables (LEVELSYNC_*)
    4. cli_overrides (passed from Typer or the API)
    """
    overrides = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
    config = AppConfig(**overrides)

    # A configured URL with no explicit backend choice means real HTTP sync
    if config.sync_url and "remote_backend" not in config.model_fields_set:
        config.remote_backend = "http"

    return config
