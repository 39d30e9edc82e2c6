from __future__ import annotations

import json
import os
import sys
from pathlib import Path
from typing import Any, Optional

from pydantic import Field, HttpUrl, TypeAdapter, ValidationError, field_validator
from pydantic_settings import (
    BaseSettings,
    JsonConfigSettingsSource,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from aqfile.exceptions import ConfigError

APP_NAME = "aqfile"
DEFAULT_SERVICE = "https://bsky.social"
CONFIG_PATH_ENV = "AQFILE_CONFIG"
PERSISTED_KEYS = ("service", "handle", "app_password")

_http_url = TypeAdapter(HttpUrl)


def get_config_path() -> Path:
    """Platform config location; ``AQFILE_CONFIG`` overrides it."""
    override = os.environ.get(CONFIG_PATH_ENV)
    if override:
        return Path(override).expanduser()

    home = Path(os.environ.get("HOME") or os.environ.get("USERPROFILE") or Path.home())
    if sys.platform == "darwin":
        return home / "Library" / "Application Support" / APP_NAME / "config.json"
    if sys.platform == "win32":
        app_data = os.environ.get("APPDATA")
        base = Path(app_data) if app_data else home / "AppData" / "Roaming"
        return base / APP_NAME / "config.json"
    config_home = os.environ.get("XDG_CONFIG_HOME")
    base = Path(config_home) if config_home else home / ".config"
    return base / APP_NAME / "config.json"


def normalize_service_url(url: Optional[str]) -> Optional[str]:
    """
    Trim, default to ``https://``, refuse plain HTTP and reject malformed URLs.
    Paths and ports are kept; a trailing slash is dropped.
    """
    if url is None:
        return None
    candidate = url.strip()
    if not candidate:
        raise ConfigError("Invalid service URL: empty value")
    if candidate.lower().startswith("http://"):
        raise ConfigError(
            f"HTTP protocol is not supported for security reasons: {candidate}. Use https:// instead."
        )
    if "://" not in candidate:
        candidate = f"https://{candidate}"
    try:
        _http_url.validate_python(candidate)
    except ValidationError as exc:
        raise ConfigError(f"Invalid service URL: {url.strip()}") from exc
    if not candidate.lower().startswith("https://"):
        raise ConfigError(f"Invalid service URL: {url.strip()}")
    return candidate.rstrip("/")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="AQFILE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    service: str = DEFAULT_SERVICE
    handle: Optional[str] = Field(None, description="Handle (alice.bsky.social) or DID")
    app_password: Optional[str] = Field(None, description="App password, not the account password")
    log_level: str = "WARNING"

    @field_validator("service")
    @classmethod
    def _normalize_service(cls, value: str) -> str:
        try:
            return normalize_service_url(value)
        except ConfigError as exc:
            raise ValueError(str(exc)) from exc

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # CLI arguments > environment > .env > config file > defaults
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            JsonConfigSettingsSource(settings_cls, json_file=get_config_path()),
        )

    @property
    def has_credentials(self) -> bool:
        return bool(self.handle and self.app_password)


def load_settings(**cli_values: Any) -> Settings:
    """Merge every configuration layer. ``None`` CLI values never mask lower layers."""
    overrides = {key: value for key, value in cli_values.items() if value is not None}
    try:
        return Settings(**overrides)
    except ValidationError as exc:
        messages = [err["msg"].removeprefix("Value error, ") for err in exc.errors()]
        raise ConfigError("; ".join(messages)) from exc
    except ValueError as exc:
        raise ConfigError(f"Failed to load config file {get_config_path()}: {exc}") from exc


def load_config_file() -> dict[str, Any]:
    path = get_config_path()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return {}
    except (OSError, ValueError) as exc:
        raise ConfigError(f"Failed to load config file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Failed to load config file {path}: expected a JSON object")
    return data


def save_config(service: Optional[str], handle: Optional[str], app_password: Optional[str]) -> Path:
    path = get_config_path()
    values = {"service": service, "handle": handle, "app_password": app_password}
    payload = {key: values[key] for key in PERSISTED_KEYS if values[key] is not None}

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    if os.name != "nt":
        path.chmod(0o600)
    return path


def clear_config() -> bool:
    """Delete the saved config. Returns ``False`` if there was nothing to delete."""
    path = get_config_path()
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    return True
