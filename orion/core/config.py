"""Application configuration management."""
import json
import os
import tempfile
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from orion.backends.nanodlp.analytics import PRESSURE_METRIC_ID

DEFAULT_ODYSSEY_URL = "http://localhost:12357"
DEFAULT_NANODLP_URL = "http://localhost"
CONFIG_PATH_ENV = "ORION_CONFIG_PATH"


class DeveloperConfig(BaseModel):
    """Developer-only switches."""
    model_config = {"extra": "ignore"}

    simulated: bool = Field(False, description="Use the built-in simulated NanoDLP backend")


class AnalyticsConfig(BaseModel):
    """Analytics poller tuning."""
    model_config = {"extra": "ignore"}

    fast_metric_id: int = Field(PRESSURE_METRIC_ID, description="Metric id sampled on the fast path (6 = Pressure)")
    fast_hz: float = Field(2.0, description="Fast-path sampling frequency in Hz")
    window_seconds: int = Field(60, description="Rolling window kept per metric in seconds")
    batch_every: int = Field(5, description="Run the batched fetch every N fast cycles")
    batch_size: int = Field(200, description="Number of entries requested by the batched fetch")
    poll_interval: float = Field(1.0, description="Odyssey poll fallback interval in seconds")


class ThumbnailConfig(BaseModel):
    """Shared thumbnail cache settings."""
    model_config = {"extra": "ignore"}

    memory_max_bytes: int = Field(50 * 1024 * 1024, description="In-memory cache budget in bytes")
    real_ttl_seconds: float = Field(120.0, description="Lifetime of real thumbnails")
    placeholder_ttl_seconds: float = Field(5.0, description="Lifetime of generated placeholders")
    disk_cache_dir: Optional[str] = Field(
        default=None,
        description="Optional directory used to persist real thumbnails",
    )


class AppConfig(BaseModel):
    """Application-level configuration model."""
    model_config = {"extra": "ignore"}

    host: str = Field("0.0.0.0", description="Application bind address")
    port: int = Field(5000, description="Application bind port")
    log_level: str = Field("INFO", description="Root logging level")
    backend: str = Field("odyssey", description="Printer backend flavor: odyssey or nanodlp")
    odyssey_url: str = Field(DEFAULT_ODYSSEY_URL, description="Base URL of the Odyssey API")
    nanodlp_url: str = Field(DEFAULT_NANODLP_URL, description="Base URL of the NanoDLP web UI")
    use_usb_by_default: bool = Field(False, description="Prefer USB storage when listing files")
    request_timeout: float = Field(5.0, description="Per-request timeout in seconds")
    developer: DeveloperConfig = Field(default_factory=DeveloperConfig)
    analytics: AnalyticsConfig = Field(default_factory=AnalyticsConfig)
    thumbnails: ThumbnailConfig = Field(default_factory=ThumbnailConfig)


class ConfigFile(BaseModel):
    """Root configuration file structure."""

    app_settings: AppConfig = Field(default_factory=AppConfig)


class Settings(BaseSettings):
    """Resolved server settings; environment variables win over orion.json."""

    model_config = SettingsConfigDict(env_prefix="ORION_", extra="ignore")

    host: str = Field("0.0.0.0", description="Application bind address")
    port: int = Field(5000, description="Application bind port")
    log_level: str = Field("INFO", description="Root logging level")


@dataclass(frozen=True)
class RuntimeOptions:
    """Immutable snapshot of the options business logic depends on."""

    backend: str = "odyssey"
    simulated: bool = False
    use_usb_by_default: bool = False

    @property
    def is_nanodlp_mode(self) -> bool:
        # The simulator mimics NanoDLP, so it shares the polling-only path.
        return self.backend.strip().lower() == "nanodlp" or self.simulated

    @classmethod
    def from_config(cls, config: AppConfig) -> "RuntimeOptions":
        return cls(
            backend=config.backend,
            simulated=config.developer.simulated,
            use_usb_by_default=config.use_usb_by_default,
        )


def _get_config_file_path() -> Path:
    """Get the absolute path to the orion.json configuration file."""
    override = os.environ.get(CONFIG_PATH_ENV)
    if override:
        return Path(override)
    project_root = Path(__file__).parent.parent.parent
    return project_root / "orion.json"


def _default_config() -> ConfigFile:
    return ConfigFile(app_settings=AppConfig())


def _persist_config(config: ConfigFile, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            delete=False,
            dir=path.parent,
            suffix=".tmp",
        ) as tmp_file:
            json.dump(config.model_dump(mode="json"), tmp_file, indent=2, ensure_ascii=False)
            tmp_name = Path(tmp_file.name)
        os.replace(tmp_name, path)
    except Exception as exc:  # noqa: BLE001
        raise RuntimeError(f"Failed to persist configuration to {path}: {exc}") from exc


def _ensure_config_file() -> Path:
    path = _get_config_file_path()
    if path.exists():
        return path

    _persist_config(_default_config(), path)
    return path


def _load_config_from_json() -> ConfigFile:
    """Load and parse configuration from orion.json (blocking, use at startup)."""
    config_path = _ensure_config_file()

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            config_data = json.load(f)
        return ConfigFile(**config_data)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in {config_path}: {e}")
    except Exception as e:
        raise RuntimeError(f"Error loading configuration from {config_path}: {e}")


async def _load_config_from_json_async() -> ConfigFile:
    """Load and parse configuration from orion.json (async, use in endpoints)."""
    import aiofiles

    config_path = _get_config_file_path()
    if not config_path.exists():
        return _default_config()

    try:
        async with aiofiles.open(config_path, "r", encoding="utf-8") as f:
            content = await f.read()
        config_data = json.loads(content)
        return ConfigFile(**config_data)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in {config_path}: {e}")
    except Exception as e:
        raise RuntimeError(f"Error loading configuration from {config_path}: {e}")


@lru_cache(maxsize=None)
def get_app_config() -> AppConfig:
    """Return application-wide settings (blocking, cached)."""

    config = _load_config_from_json()
    return config.app_settings


async def get_app_config_async() -> AppConfig:
    """Async helper to read configuration without blocking the loop."""

    config = await _load_config_from_json_async()
    return config.app_settings


@lru_cache(maxsize=None)
def get_settings() -> Settings:
    """Return the cached server Settings (orion.json values, env overrides)."""

    app_config = get_app_config()
    overrides = {
        key: value
        for key, value in {
            "host": app_config.host,
            "port": app_config.port,
            "log_level": app_config.log_level,
        }.items()
        if f"ORION_{key.upper()}" not in os.environ
    }
    return Settings(**overrides)


def update_app_config(
    *,
    backend: Optional[str] = None,
    simulated: Optional[bool] = None,
    use_usb_by_default: Optional[bool] = None,
) -> AppConfig:
    """Update application settings stored in orion.json."""

    config = _load_config_from_json()
    app_settings = config.app_settings
    if backend is not None:
        app_settings.backend = backend
    if simulated is not None:
        app_settings.developer.simulated = bool(simulated)
    if use_usb_by_default is not None:
        app_settings.use_usb_by_default = bool(use_usb_by_default)
    config.app_settings = app_settings
    _persist_config(config, _ensure_config_file())
    get_app_config.cache_clear()
    get_settings.cache_clear()
    return app_settings
