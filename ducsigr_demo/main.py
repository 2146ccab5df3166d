import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates

# Auto-instrument incoming HTTP requests with OpenTelemetry
from opentelemetry.instrumentation.asgi import OpenTelemetryMiddleware

# Prometheus metrics
from prometheus_fastapi_instrumentator import Instrumentator

from ducsigr_demo.config import Settings, load_settings_from_env
from ducsigr_demo.errors import register_error_handlers
from ducsigr_demo.logger import configure_logging, create_child_logger, flush_pending_logs
from ducsigr_demo.observe import Observer
from ducsigr_demo.routes import ALL_ROUTERS
from ducsigr_demo.telemetry import init_tracing, shutdown_tracing

PACKAGE_DIR = Path(__file__).resolve().parent

# Noisy endpoints we don't want a trace for
EXCLUDED_URLS = "/health,/metrics"

log = create_child_logger(component="server")


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    app.state.http_client = httpx.AsyncClient(timeout=10.0, follow_redirects=True)
    log.info(
        "Ducsigr Demo App started",
        extra={"port": settings.port, "tracesUrl": settings.traces_url, "logsUrl": settings.logs_url},
    )
    try:
        yield
    finally:
        log.info("Shutting down server...")
        await app.state.http_client.aclose()
        if app.state.observer is not None:
            app.state.observer.shutdown()
        if app.state.tracer_provider is not None:
            shutdown_tracing(app.state.tracer_provider)
        log.info("Server closed")
        await asyncio.to_thread(flush_pending_logs)


def create_app(settings: Optional[Settings] = None, observer: Optional[Observer] = None) -> FastAPI:
    """
    Build the demo app.

    1. Logging (stdout JSON + OTLP export) and tracing come up first, so
       everything after is observed.
    2. Routes, error handlers, tracing middleware, /metrics and the UI.

    `observer` overrides the SDK-route observer built from settings.
    """
    settings = settings or load_settings_from_env()

    configure_logging(settings)
    tracer_provider = init_tracing(settings) if settings.export_traces else None

    app = FastAPI(title="Ducsigr Demo App", version=settings.service_version, lifespan=lifespan)
    app.state.settings = settings
    app.state.tracer_provider = tracer_provider
    app.state.observer = observer or Observer.from_settings(settings)
    if app.state.observer is None:
        log.warning("Ducsigr SDK not initialized: DUCSIGR_API_KEY not set, SDK test routes will return 503")
    else:
        log.info("Ducsigr SDK initialized for sdk-test routes")

    register_error_handlers(app)

    # Prometheus metrics at /metrics
    Instrumentator().instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)

    # OTel middleware: one server span per HTTP request
    app.add_middleware(OpenTelemetryMiddleware, excluded_urls=EXCLUDED_URLS)

    templates = Jinja2Templates(directory=str(PACKAGE_DIR / "templates"))
    templates.env.globals["service_name"] = settings.service_name
    templates.env.globals["traces_url"] = settings.traces_url
    templates.env.globals["logs_url"] = settings.logs_url
    app.mount("/static", StaticFiles(directory=str(PACKAGE_DIR / "static")), name="static")

    for router in ALL_ROUTERS:
        app.include_router(router, prefix="/api/demo")

    @app.get("/health")
    def health():
        return {
            "status": "ok",
            "service": settings.service_name,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.get("/", response_class=HTMLResponse, include_in_schema=False)
    def home(request: Request):
        return templates.TemplateResponse(request, "index.html")

    return app
