import httpx
import pytest
from fastapi.testclient import TestClient
from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

# Route tracers resolve through the global provider; capture everything in memory.
SPAN_EXPORTER = InMemorySpanExporter()
_provider = TracerProvider()
_provider.add_span_processor(SimpleSpanProcessor(SPAN_EXPORTER))
trace.set_tracer_provider(_provider)

from ducsigr_demo import simulation  # noqa: E402
from ducsigr_demo.config import Settings  # noqa: E402
from ducsigr_demo.deps import get_http_client  # noqa: E402
from ducsigr_demo.main import create_app  # noqa: E402


@pytest.fixture(autouse=True)
def no_latency(monkeypatch):
    """Simulated work returns immediately."""
    async def instant(ms):
        return None
    monkeypatch.setattr(simulation, "simulate_work", instant)


@pytest.fixture
def spans():
    SPAN_EXPORTER.clear()
    yield SPAN_EXPORTER
    SPAN_EXPORTER.clear()


@pytest.fixture
def settings():
    return Settings(app_env="test", export_traces=False, export_logs=False)


@pytest.fixture
def app(settings):
    return create_app(settings)


def _no_upstream(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"unexpected outbound call: {request.url}")


@pytest.fixture
def make_client(app):
    """
    make_client(handler) -> TestClient whose outbound httpx calls are
    answered by `handler(request) -> httpx.Response`.
    """
    opened = []

    def _make(handler=_no_upstream):
        upstream = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        app.dependency_overrides[get_http_client] = lambda: upstream
        client = TestClient(app)
        client.__enter__()
        opened.append(client)
        return client

    yield _make
    for client in opened:
        client.__exit__(None, None, None)
    app.dependency_overrides.clear()
