"""Span helpers shared by the demo routes."""

from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from opentelemetry import trace
from opentelemetry.trace import Span, Status, StatusCode

from ducsigr_demo.errors import DemoRouteError


def span_ids(span: Span) -> Dict[str, str]:
    ctx = span.get_span_context()
    return {
        "traceId": trace.format_trace_id(ctx.trace_id),
        "spanId": trace.format_span_id(ctx.span_id),
    }


def mark_ok(span: Span) -> None:
    span.set_status(Status(StatusCode.OK))


def mark_failed(span: Span, exc: BaseException, message: Optional[str] = None) -> None:
    span.set_status(Status(StatusCode.ERROR, message or str(exc)))
    span.record_exception(exc)


@contextmanager
def traced(tracer: trace.Tracer, name: str, attributes: Optional[Dict[str, Any]] = None) -> Iterator[Span]:
    """
    Start `name` as the current span. Any exception escaping the block marks
    the span failed and is re-raised as DemoRouteError carrying the trace id.
    """
    with tracer.start_as_current_span(
        name,
        attributes=attributes,
        record_exception=False,
        set_status_on_exception=False,
    ) as span:
        try:
            yield span
        except DemoRouteError as exc:
            # failed in a child span; the parent fails with the same message
            mark_failed(span, exc)
            raise
        except Exception as exc:
            mark_failed(span, exc)
            raise DemoRouteError(str(exc) or "Unknown error", trace_id=span_ids(span)["traceId"]) from exc
