"""
config.py
---------
Runtime settings for the demo app, read from the environment.

A `.env` file in the working directory is loaded first (python-dotenv),
then each variable is read with `os.getenv`. Empty strings count as unset.

    APP_ENV                      development | test | production
    PORT                         HTTP port (default 3005)
    DUCSIGR_ENDPOINT             ingest base URL (default http://localhost:8080)
    DUCSIGR_API_KEY              optional API key for ingest + SDK routes
    OTEL_SERVICE_NAME            service.name resource attribute
    OTEL_EXPORTER_OTLP_HEADERS   extra exporter headers "k=v,k2=v2"
    DUCSIGR_EXPORT_TRACES        "false" disables the tracer provider
    DUCSIGR_EXPORT_LOGS          "false" disables OTLP log export
    SKIP_ENV_VALIDATION          any value skips validation
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

from dotenv import load_dotenv

from ducsigr_demo import __version__

APP_ENVS = ("development", "test", "production")


class ConfigError(ValueError):
    """Raised when an environment variable holds an unusable value."""


@dataclass(frozen=True)
class Settings:
    app_env: str = "development"
    port: int = 3005
    endpoint: str = "http://localhost:8080"
    api_key: Optional[str] = None
    service_name: str = "ducsigr-demo"
    service_version: str = __version__
    otlp_headers: Optional[str] = None
    export_traces: bool = True
    export_logs: bool = True

    @property
    def is_dev(self) -> bool:
        return self.app_env == "development"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "production"

    @property
    def traces_url(self) -> str:
        return f"{self.endpoint}/v1/traces"

    @property
    def logs_url(self) -> str:
        return f"{self.endpoint}/v1/logs"


def _env(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return None
    return value.strip()


def _parse_bool(name: str, raw: Optional[str], default: bool) -> bool:
    if raw is None:
        return default
    lowered = raw.lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ConfigError(f"{name} must be a boolean, got {raw!r}")


def _parse_port(raw: Optional[str], default: int) -> int:
    if raw is None:
        return default
    try:
        port = int(raw)
    except ValueError:
        raise ConfigError(f"PORT must be an integer, got {raw!r}") from None
    if not 0 < port < 65536:
        raise ConfigError(f"PORT out of range: {port}")
    return port


def _validate(settings: Settings) -> None:
    if settings.app_env not in APP_ENVS:
        raise ConfigError(
            f"APP_ENV must be one of {', '.join(APP_ENVS)}, got {settings.app_env!r}"
        )
    parsed = urlparse(settings.endpoint)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigError(f"DUCSIGR_ENDPOINT is not a valid URL: {settings.endpoint!r}")


def load_settings_from_env(*, dotenv: bool = True) -> Settings:
    """
    Build `Settings` from the environment.
    Raises ConfigError on bad values unless SKIP_ENV_VALIDATION is set.
    """
    if dotenv:
        load_dotenv()

    skip_validation = _env("SKIP_ENV_VALIDATION") is not None
    defaults = Settings()

    try:
        port = _parse_port(_env("PORT"), defaults.port)
    except ConfigError:
        if not skip_validation:
            raise
        port = defaults.port

    settings = Settings(
        app_env=(_env("APP_ENV") or defaults.app_env).lower(),
        port=port,
        endpoint=(_env("DUCSIGR_ENDPOINT") or defaults.endpoint).rstrip("/"),
        api_key=_env("DUCSIGR_API_KEY"),
        service_name=_env("OTEL_SERVICE_NAME") or defaults.service_name,
        otlp_headers=_env("OTEL_EXPORTER_OTLP_HEADERS"),
        export_traces=_parse_bool(
            "DUCSIGR_EXPORT_TRACES", _env("DUCSIGR_EXPORT_TRACES"), True
        ),
        export_logs=_parse_bool("DUCSIGR_EXPORT_LOGS", _env("DUCSIGR_EXPORT_LOGS"), True),
    )

    if not skip_validation:
        _validate(settings)
    return settings
