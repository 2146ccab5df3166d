"""
errors.py
---------
Errors raised by the demo routes, and the FastAPI handlers that turn them
into the JSON bodies clients see.
"""

from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


class UpstreamError(RuntimeError):
    """An external API answered with a non-2xx status or an unusable body."""


class DemoRouteError(RuntimeError):
    """
    Raised when a demo route fails after its span was started.
    Carries the trace id so the client can look the trace up in the ingest.
    """
    def __init__(self, message: str, trace_id: Optional[str] = None, status_code: int = 500):
        super().__init__(message)
        self.message = message
        self.trace_id = trace_id
        self.status_code = status_code


class ObserverUnavailable(RuntimeError):
    """The SDK routes were called but no API key was configured."""

    def __init__(self, message: str = "SDK not initialized — set DUCSIGR_API_KEY in .env"):
        super().__init__(message)
        self.message = message


async def demo_route_error_handler(_: Request, exc: DemoRouteError):
    content = {"success": False, "error": exc.message}
    if exc.trace_id is not None:
        content = {"success": False, "traceId": exc.trace_id, "error": exc.message}
    return JSONResponse(status_code=exc.status_code, content=content)


async def observer_unavailable_handler(_: Request, exc: ObserverUnavailable):
    # 503: the feature exists but is not configured on this instance
    return JSONResponse(status_code=503, content={"success": False, "error": exc.message})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DemoRouteError, demo_route_error_handler)
    app.add_exception_handler(ObserverUnavailable, observer_unavailable_handler)
