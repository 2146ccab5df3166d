"""
observe.py
----------
A small "observation" API on top of OpenTelemetry, used by the SDK-test
routes to send richly-annotated traces straight to the ingest.

    observer = Observer.from_settings(settings)
    result = await observer.observe(
        "step-1", do_work, user_id="u1", metadata={"purpose": "demo"},
    )
    await observer.flush()

Each observation is a span carrying:
- ducsigr.observation.type   "span" or "generation"
- user.id / session.id       when given
- ducsigr.metadata.<key>     flattened metadata (nested dicts -> dotted keys)

For "generation" observations, an OpenAI-style `usage` block in the
result is copied to gen_ai.usage.* attributes.

The observer owns its tracer provider, so flush() only waits on its own
spans and does not depend on the global provider being configured.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, TypeVar

from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Status, StatusCode

from ducsigr_demo.config import Settings
from ducsigr_demo.telemetry import build_resource, exporter_headers

T = TypeVar("T")

OBSERVATION_TYPES = ("span", "generation")
METADATA_PREFIX = "ducsigr.metadata"


def flatten_metadata(metadata: Mapping[str, Any], prefix: str = METADATA_PREFIX) -> Dict[str, Any]:
    """
    Flatten nested metadata into span attributes.
    None values are dropped; values that are not str/bool/int/float
    (or lists of those) are stringified.
    """
    out: Dict[str, Any] = {}
    for key, value in metadata.items():
        name = f"{prefix}.{key}"
        if value is None:
            continue
        if isinstance(value, Mapping):
            out.update(flatten_metadata(value, name))
        elif isinstance(value, (str, bool, int, float)):
            out[name] = value
        elif isinstance(value, (list, tuple)) and all(isinstance(v, (str, bool, int, float)) for v in value):
            out[name] = list(value)
        else:
            out[name] = str(value)
    return out


def usage_attributes(result: Any) -> Dict[str, Any]:
    """Pull model + token usage out of an OpenAI-style completion dict."""
    if not isinstance(result, Mapping):
        return {}
    attributes: Dict[str, Any] = {}
    if isinstance(result.get("model"), str):
        attributes["gen_ai.response.model"] = result["model"]
    usage = result.get("usage")
    if isinstance(usage, Mapping):
        for key in ("prompt_tokens", "completion_tokens", "total_tokens"):
            if isinstance(usage.get(key), int):
                attributes[f"gen_ai.usage.{key}"] = usage[key]
    return attributes


class Observer:
    def __init__(self, provider: TracerProvider, debug: bool = False):
        self._provider = provider
        self._tracer = provider.get_tracer("ducsigr_demo.observe")
        self.debug = debug

    @classmethod
    def from_settings(cls, settings: Settings) -> Optional["Observer"]:
        """None when no API key is configured: the ingest would reject the spans."""
        if not settings.api_key:
            return None
        provider = TracerProvider(resource=build_resource(settings))
        exporter = OTLPSpanExporter(
            endpoint=settings.traces_url,
            headers=exporter_headers(settings),
            timeout=10,
        )
        provider.add_span_processor(BatchSpanProcessor(exporter))
        return cls(provider, debug=settings.is_dev)

    async def observe(
        self,
        name: str,
        func: Callable[[], Awaitable[T]],
        *,
        type: str = "span",
        user_id: Optional[str] = None,
        session_id: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> T:
        """Run `func` inside a span named `name` and return its result."""
        if type not in OBSERVATION_TYPES:
            raise ValueError(f"unknown observation type: {type!r}")

        attributes: Dict[str, Any] = {"ducsigr.observation.type": type}
        if user_id:
            attributes["user.id"] = user_id
        if session_id:
            attributes["session.id"] = session_id
        attributes.update(flatten_metadata(metadata or {}))

        with self._tracer.start_as_current_span(name, attributes=attributes) as span:
            result = await func()
            if type == "generation":
                span.set_attributes(usage_attributes(result))
            span.set_status(Status(StatusCode.OK))
            return result

    async def flush(self, timeout_millis: int = 30000) -> bool:
        return await asyncio.to_thread(self._provider.force_flush, timeout_millis)

    def shutdown(self) -> None:
        self._provider.shutdown()
