"""Configuration loading for SwingTrack.

Settings live in ``~/.config/swingtrack/config.toml``; the
``SWINGTRACK_CONFIG`` environment variable points elsewhere. A missing
file means defaults.
"""

import os
from pathlib import Path
from typing import Optional

import toml
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

from swingtrack.errors import ConfigError

CONFIG_DIR = Path.home() / ".config" / "swingtrack"
DEFAULT_CONFIG_PATH = CONFIG_DIR / "config.toml"
DEFAULT_DB_PATH = CONFIG_DIR / "swingtrack.db"

CONFIG_ENV_VAR = "SWINGTRACK_CONFIG"


class DatabaseConfig(BaseModel):
    """Ledger database settings."""

    path: Path = Field(default=DEFAULT_DB_PATH, description="SQLite database file")
    busy_timeout: float = Field(
        default=5.0, gt=0, description="Seconds to wait on a locked database"
    )


class EngineConfig(BaseModel):
    """Recalculation engine settings."""

    max_retries: int = Field(default=3, ge=1, description="Attempts per transaction")
    retry_backoff: float = Field(
        default=0.05, ge=0, description="Base retry delay in seconds"
    )


class UserConfig(BaseModel):
    """Default identity for the CLI."""

    id: str = Field(default="default", min_length=1, description="User ID")


class LoggingConfig(BaseModel):
    """Logging settings."""

    level: str = Field(default="WARNING", description="Root log level")


class AppConfig(BaseModel):
    """Top-level configuration."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    engine: EngineConfig = Field(default_factory=EngineConfig)
    user: UserConfig = Field(default_factory=UserConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @property
    def db_path(self) -> Path:
        return self.database.path.expanduser()


def config_path() -> Path:
    """Resolve the config file location."""
    override = os.environ.get(CONFIG_ENV_VAR)
    return Path(override).expanduser() if override else DEFAULT_CONFIG_PATH


def load_config(path: Optional[Path] = None) -> AppConfig:
    """Load configuration from a TOML file.

    Args:
        path: Explicit config file. Defaults to :func:`config_path`.

    Returns:
        Parsed configuration, or defaults when the file does not exist.

    Raises:
        ConfigError: If the file cannot be parsed or holds invalid values.
    """
    path = Path(path) if path else config_path()
    if not path.exists():
        return AppConfig()

    try:
        data = toml.load(path)
    except (toml.TomlDecodeError, OSError) as exc:
        raise ConfigError(f"Could not read {path}: {exc}") from exc

    try:
        return AppConfig.model_validate(data)
    except PydanticValidationError as exc:
        raise ConfigError(f"Invalid configuration in {path}: {exc}") from exc


def save_config(config: AppConfig, path: Optional[Path] = None) -> Path:
    """Write configuration to a TOML file.

    Returns:
        The path written.
    """
    path = Path(path) if path else config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        toml.dump(config.model_dump(mode="json"), f)
    return path
