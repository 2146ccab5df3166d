import json
import logging

import httpx
import pytest

from ducsigr_demo.config import Settings
from ducsigr_demo.logger import (
    configure_logging,
    create_child_logger,
    flush_pending_logs,
    get_logger,
)
from ducsigr_demo.otlp_logs import OtlpLogHandler


class Capture(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


@pytest.fixture
def capture():
    handler = Capture()
    get_logger().addHandler(handler)
    yield handler
    get_logger().removeHandler(handler)


def test_child_logger_merges_bindings_with_extra(capture):
    configure_logging(Settings(app_env="test", export_logs=False))
    log = create_child_logger(route="weather")

    log.info("Weather request received", extra={"city": "Oslo"})

    record = capture.records[-1]
    assert record.route == "weather"
    assert record.city == "Oslo"
    assert record.getMessage() == "Weather request received"


def test_bind_adds_context(capture):
    configure_logging(Settings(app_env="test", export_logs=False))
    log = create_child_logger(route="jokes").bind(request_id="r-1")

    log.warning("slow")

    record = capture.records[-1]
    assert (record.route, record.request_id) == ("jokes", "r-1")


def test_level_follows_environment():
    configure_logging(Settings(app_env="development", export_logs=False))
    assert get_logger().level == logging.DEBUG
    configure_logging(Settings(app_env="production", export_logs=False))
    assert get_logger().level == logging.INFO


def test_export_disabled_installs_no_otlp_handler():
    assert configure_logging(Settings(app_env="test", export_logs=False)) is None
    assert not any(isinstance(h, OtlpLogHandler) for h in get_logger().handlers)


def test_export_enabled_ships_app_logs_on_flush():
    sent = []

    def ingest(request):
        sent.append(request)
        return httpx.Response(200)

    handler = OtlpLogHandler(
        url="http://ingest.test/v1/logs",
        service_name="svc",
        client=httpx.Client(transport=httpx.MockTransport(ingest)),
        flush_interval=60,
    )
    installed = configure_logging(Settings(app_env="test"), otlp_handler=handler)
    assert installed is handler

    create_child_logger(route="quotes").info("Quotes request received")
    flush_pending_logs()

    assert len(sent) == 1
    assert b"Quotes request received" in sent[0].content

    # reconfiguring replaces (and flushes) the previous handlers
    configure_logging(Settings(app_env="test", export_logs=False))
    assert handler not in get_logger().handlers


def test_console_output_is_one_json_object_per_line(capsys):
    configure_logging(Settings(app_env="test", export_logs=False))

    create_child_logger(route="jokes").info("Joke fetched", extra={"jokeId": 7})

    line = capsys.readouterr().out.strip().splitlines()[-1]
    entry = json.loads(line)
    assert entry["message"] == "Joke fetched"
    assert entry["levelname"] == "INFO"
    assert entry["route"] == "jokes"
    assert entry["jokeId"] == 7
    assert entry["service"] == "ducsigr-demo"
