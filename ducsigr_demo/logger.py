"""
logger.py
---------
Application logging: JSON lines on stdout plus batched OTLP export to the
ingest (see otlp_logs.py).

Everything logs under the "ducsigr_demo" logger. Routes use a child logger
that stamps its bindings on every record:

    log = create_child_logger(route="weather")
    log.info("Weather request received", extra={"city": city})
"""

import logging
import sys
from typing import Any, MutableMapping, Optional, Tuple

from pythonjsonlogger.json import JsonFormatter

from ducsigr_demo.config import Settings
from ducsigr_demo.otlp_logs import OtlpLogHandler

APP_LOGGER = "ducsigr_demo"

_otlp_handler: Optional[OtlpLogHandler] = None
_console_handler: Optional[logging.Handler] = None


class BoundLogger(logging.LoggerAdapter):
    """LoggerAdapter that merges its bindings with the call's `extra=`."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs

    def bind(self, **bindings: Any) -> "BoundLogger":
        return BoundLogger(self.logger, {**self.extra, **bindings})


def get_logger() -> logging.Logger:
    return logging.getLogger(APP_LOGGER)


def create_child_logger(**bindings: Any) -> BoundLogger:
    """A logger carrying extra context (e.g. route=...) on every record."""
    return BoundLogger(get_logger(), bindings)


def configure_logging(settings: Settings, otlp_handler: Optional[OtlpLogHandler] = None) -> Optional[OtlpLogHandler]:
    """
    Set up the app logger. Safe to call more than once: handlers installed
    by a previous call are flushed and replaced.

    Returns the OTLP handler, or None when log export is disabled.
    """
    global _otlp_handler, _console_handler

    app_logger = get_logger()
    app_logger.setLevel(logging.DEBUG if settings.is_dev else logging.INFO)
    app_logger.propagate = False

    for old in (_console_handler, _otlp_handler):
        if old is not None:
            app_logger.removeHandler(old)
            old.close()
    _console_handler = _otlp_handler = None

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(JsonFormatter(
        "%(asctime)s %(levelname)s %(name)s %(message)s",
        static_fields={"service": settings.service_name, "version": settings.service_version},
    ))
    app_logger.addHandler(console)
    _console_handler = console

    if otlp_handler is None and settings.export_logs:
        otlp_handler = OtlpLogHandler(
            url=settings.logs_url,
            service_name=settings.service_name,
            service_version=settings.service_version,
            api_key=settings.api_key,
            base_attributes={"service": settings.service_name, "version": settings.service_version},
        )
    if otlp_handler is not None:
        app_logger.addHandler(otlp_handler)
        _otlp_handler = otlp_handler

    return _otlp_handler


def flush_pending_logs() -> None:
    """Push whatever is buffered to the ingest (used on shutdown)."""
    if _otlp_handler is not None:
        _otlp_handler.flush()
