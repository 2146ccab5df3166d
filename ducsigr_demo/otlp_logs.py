"""
otlp_logs.py
------------
Ship Python log records to the ingest's /v1/logs in OTLP/JSON shape.

Two pieces:
- Formatting: LogRecord -> OTLP `logRecord` dict, and a batch of those ->
  `ExportLogsServiceRequest` JSON (resourceLogs / scopeLogs / logRecords).
- OtlpLogHandler: a logging.Handler that buffers records and POSTs them in
  batches. A batch goes out when the buffer reaches MAX_BATCH_SIZE, or
  FLUSH_INTERVAL seconds after the first buffered record. A failed batch
  is put back at the front of the buffer while the buffer is below
  MAX_REQUEUE_BUFFER; past that it is dropped.

At most one flush is queued or running at a time. The running flush keeps
sending while full batches remain; after a failed send the next attempt
waits for the interval timer instead of retrying on every new record.

Severity numbers follow the OTLP logs data model:
https://opentelemetry.io/docs/specs/otel/logs/data-model/#severity-fields
"""

from __future__ import annotations

import json
import logging
import sys
import threading
import time
from typing import Any, Dict, List, Mapping, Optional, Tuple

import httpx
from opentelemetry import trace

from ducsigr_demo import __version__

FLUSH_INTERVAL = 5.0  # seconds
MAX_BATCH_SIZE = 50
MAX_REQUEUE_BUFFER = 500

SCOPE_NAME = "ducsigr_demo.logging"

# Loggers whose records are never exported; the exporter's own HTTP calls
# would otherwise feed back into the buffer.
EXCLUDED_LOGGERS = ("httpx", "httpcore")

# Attributes every LogRecord carries; anything else came in via `extra=`.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime"}


# --- Formatting --------------------------------------------------------------

def level_to_severity(levelno: int) -> Tuple[int, str]:
    """Map a logging level number to (severityNumber, severityText)."""
    if levelno < logging.DEBUG:
        return 1, "TRACE"
    if levelno < logging.INFO:
        return 5, "DEBUG"
    if levelno < logging.WARNING:
        return 9, "INFO"
    if levelno < logging.ERROR:
        return 13, "WARN"
    if levelno < logging.CRITICAL:
        return 17, "ERROR"
    return 21, "FATAL"


def to_otlp_value(value: Any) -> Dict[str, Any]:
    # bool before int: bool is an int subclass
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, bool):
        return {"boolValue": value}
    if isinstance(value, int):
        return {"intValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    return {"stringValue": str(value)}


def to_otlp_attributes(values: Mapping[str, Any]) -> List[Dict[str, Any]]:
    return [{"key": key, "value": to_otlp_value(value)} for key, value in values.items()]


def record_extras(record: logging.LogRecord) -> Dict[str, Any]:
    """The `extra=` fields (and bound context) carried by a record."""
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _RESERVED_ATTRS and not key.startswith("_")
    }


def format_log_record(
    record: logging.LogRecord,
    base_attributes: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Turn one LogRecord into an OTLP logRecord (minus observedTimeUnixNano).
    Must run on the logging thread: trace ids come from the active span.
    """
    severity_number, severity_text = level_to_severity(record.levelno)
    attributes: Dict[str, Any] = dict(base_attributes or {})
    attributes.update(record_extras(record))
    if record.exc_info and record.exc_info[0] is not None:
        attributes["exception.type"] = record.exc_info[0].__name__
        attributes["exception.message"] = str(record.exc_info[1])

    entry: Dict[str, Any] = {
        "timeUnixNano": str(int(record.created * 1_000_000_000)),
        "severityNumber": severity_number,
        "severityText": severity_text,
        "body": {"stringValue": record.getMessage() or ""},
        "attributes": to_otlp_attributes(attributes),
    }
    span_context = trace.get_current_span().get_span_context()
    if span_context.is_valid:
        entry["traceId"] = trace.format_trace_id(span_context.trace_id)
        entry["spanId"] = trace.format_span_id(span_context.span_id)
    return entry


def format_otlp_payload(
    entries: List[Dict[str, Any]],
    service_name: str,
    service_version: str = __version__,
    observed_time_ns: Optional[int] = None,
) -> Dict[str, Any]:
    """Wrap formatted records into an ExportLogsServiceRequest body."""
    observed = str(observed_time_ns if observed_time_ns is not None else time.time_ns())
    return {
        "resourceLogs": [
            {
                "resource": {
                    "attributes": to_otlp_attributes({
                        "service.name": service_name,
                        "service.version": service_version,
                    }),
                },
                "scopeLogs": [
                    {
                        "scope": {"name": SCOPE_NAME, "version": __version__},
                        "logRecords": [
                            dict(entry, observedTimeUnixNano=observed) for entry in entries
                        ],
                    }
                ],
            }
        ]
    }


# --- Handler -----------------------------------------------------------------

class _ExcludeExporterLoggers(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        return not any(
            record.name == name or record.name.startswith(name + ".")
            for name in EXCLUDED_LOGGERS
        )


class OtlpLogHandler(logging.Handler):
    """
    Buffers log records and POSTs them to an OTLP/JSON logs endpoint.

    - url:              full logs URL, e.g. http://localhost:8080/v1/logs
    - api_key:          sent as "Authorization: Bearer <key>" when set
    - base_attributes:  added to every record (service, version)
    - client:           httpx.Client to send with; one is created if omitted
    """

    def __init__(
        self,
        url: str,
        service_name: str,
        service_version: str = __version__,
        api_key: Optional[str] = None,
        base_attributes: Optional[Mapping[str, Any]] = None,
        client: Optional[httpx.Client] = None,
        flush_interval: float = FLUSH_INTERVAL,
        max_batch_size: int = MAX_BATCH_SIZE,
        max_requeue_buffer: int = MAX_REQUEUE_BUFFER,
        level: int = logging.NOTSET,
    ):
        super().__init__(level=level)
        self.url = url
        self.service_name = service_name
        self.service_version = service_version
        self.api_key = api_key
        self.base_attributes = dict(base_attributes or {})
        self.flush_interval = flush_interval
        self.max_batch_size = max_batch_size
        self.max_requeue_buffer = max_requeue_buffer
        self._client = client or httpx.Client(timeout=10.0)
        self._owns_client = client is None
        self._buffer: List[Dict[str, Any]] = []
        self._buffer_lock = threading.Lock()
        self._send_lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._timer_immediate = False
        self._flushing = 0
        self._backing_off = False
        self.addFilter(_ExcludeExporterLoggers())

    @property
    def pending(self) -> int:
        with self._buffer_lock:
            return len(self._buffer)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            entry = format_log_record(record, self.base_attributes)
        except Exception:
            self.handleError(record)
            return

        with self._buffer_lock:
            self._buffer.append(entry)
            full = len(self._buffer) >= self.max_batch_size
        self._schedule_flush(immediate=full)

    # Scheduling

    def _schedule_flush(self, immediate: bool = False) -> None:
        with self._buffer_lock:
            if self._flushing:
                # the running flush picks up full batches, then re-arms the timer
                return
            immediate = immediate and not self._backing_off
            if self._timer is not None:
                if not immediate or self._timer_immediate:
                    return
                self._timer.cancel()
            timer = threading.Timer(0 if immediate else self.flush_interval, self._on_timer)
            timer.daemon = True
            self._timer = timer
            self._timer_immediate = immediate
        timer.start()

    def _cancel_timer(self) -> None:
        with self._buffer_lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def _on_timer(self) -> None:
        with self._buffer_lock:
            self._timer = None
            self._flushing += 1
        try:
            while True:
                sent = self.flush_batch()
                with self._buffer_lock:
                    self._backing_off = not sent
                    full = len(self._buffer) >= self.max_batch_size
                if not sent or not full:
                    break
        finally:
            with self._buffer_lock:
                self._flushing -= 1
        if self.pending:
            self._schedule_flush()

    # Sending

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _requeue(self, batch: List[Dict[str, Any]]) -> None:
        with self._buffer_lock:
            if len(self._buffer) < self.max_requeue_buffer:
                self._buffer[:0] = batch

    def flush_batch(self) -> bool:
        """
        Send up to one batch from the front of the buffer.
        Returns False when the batch failed and was re-queued (or dropped).
        """
        with self._send_lock:
            with self._buffer_lock:
                batch = self._buffer[: self.max_batch_size]
                del self._buffer[: self.max_batch_size]
            if not batch:
                return True

            payload = format_otlp_payload(batch, self.service_name, self.service_version)
            try:
                response = self._client.post(
                    self.url, content=json.dumps(payload), headers=self._headers()
                )
            except httpx.HTTPError as exc:
                print(f"[Logger] Error sending logs: {exc}", file=sys.stderr)
                self._requeue(batch)
                return False

            if response.is_error:
                print(
                    f"[Logger] Failed to send logs: {response.status_code} {response.text}",
                    file=sys.stderr,
                )
                self._requeue(batch)
                return False
            return True

    def flush(self) -> None:
        """Cancel the pending timer and drain the buffer, stopping at the first failure."""
        self._cancel_timer()
        while self.pending:
            if not self.flush_batch():
                break

    def close(self) -> None:
        try:
            self.flush()
        finally:
            if self._owns_client:
                self._client.close()
            super().close()
