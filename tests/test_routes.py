import asyncio

import httpx
from fastapi.testclient import TestClient
from opentelemetry.trace import StatusCode

WTTR_PAYLOAD = {
    "current_condition": [
        {"temp_C": "12", "temp_F": "54", "humidity": "81", "weatherDesc": [{"value": "Light rain"}]}
    ],
    "nearest_area": [
        {"areaName": [{"value": "Oslo"}], "country": [{"value": "Norway"}]}
    ],
}


def by_name(spans):
    return {span.name: span for span in spans.get_finished_spans()}


def test_health(make_client):
    response = make_client().get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["service"] == "ducsigr-demo"
    assert "timestamp" in body


def test_index_page_lists_demos(make_client):
    response = make_client().get("/")
    assert response.status_code == 200
    assert "/api/demo/failures" in response.text
    assert "/v1/traces" in response.text


def test_metrics_exposed(make_client):
    response = make_client().get("/metrics")
    assert response.status_code == 200


def test_shutdown_flushes_logs_off_the_event_loop(app, monkeypatch):
    calls = []

    def fake_flush():
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            calls.append("worker thread")
        else:
            calls.append("event loop")

    monkeypatch.setattr("ducsigr_demo.main.flush_pending_logs", fake_flush)
    with TestClient(app) as client:
        assert client.get("/health").status_code == 200
        assert calls == []

    assert calls == ["worker thread"]


# --- weather -----------------------------------------------------------------

def test_weather_success(make_client, spans):
    seen = []

    def upstream(request):
        seen.append(request)
        return httpx.Response(200, json=WTTR_PAYLOAD)

    response = make_client(upstream).post("/api/demo/weather", json={"city": "Oslo"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"] == {
        "city": "Oslo",
        "country": "Norway",
        "temperature": {"celsius": 12, "fahrenheit": 54},
        "humidity": 81,
        "condition": "Light rain",
    }
    assert seen[0].url.host == "wttr.in"
    assert seen[0].url.path == "/Oslo"
    assert seen[0].url.params["format"] == "j1"
    assert seen[0].headers["User-Agent"] == "Ducsigr-Demo/1.0"

    span = by_name(spans)["weather.fetch"]
    assert format(span.context.trace_id, "032x") == body["traceId"]
    assert format(span.context.span_id, "016x") == body["spanId"]
    assert span.attributes["weather.city.requested"] == "Oslo"
    assert span.attributes["weather.temp_c"] == 12
    assert span.attributes["weather.country"] == "Norway"
    assert span.status.status_code == StatusCode.OK


def test_weather_defaults_to_london_without_body(make_client):
    seen = []

    def upstream(request):
        seen.append(request)
        return httpx.Response(200, json=WTTR_PAYLOAD)

    assert make_client(upstream).post("/api/demo/weather").status_code == 200
    assert seen[0].url.path == "/London"


def test_weather_upstream_error(make_client, spans):
    response = make_client(lambda r: httpx.Response(503)).post("/api/demo/weather", json={})

    assert response.status_code == 500
    body = response.json()
    assert body == {"success": False, "traceId": body["traceId"], "error": "Weather API returned 503"}

    span = by_name(spans)["weather.fetch"]
    assert span.status.status_code == StatusCode.ERROR
    assert span.status.description == "Weather API returned 503"
    assert any(event.name == "exception" for event in span.events)


def test_weather_invalid_payload(make_client):
    upstream = lambda r: httpx.Response(200, json={"current_condition": [], "nearest_area": []})
    response = make_client(upstream).post("/api/demo/weather", json={"city": "Nowhere"})
    assert response.status_code == 500
    assert response.json()["error"] == "Invalid weather data received"


# --- quotes ------------------------------------------------------------------

def test_quotes_success(make_client, spans):
    quote = {"q": "Stay hungry, stay foolish.", "a": "Steve Jobs", "h": ""}
    response = make_client(lambda r: httpx.Response(200, json=[quote])).post("/api/demo/quotes")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data == {
        "quote": "Stay hungry, stay foolish.",
        "author": "Steve Jobs",
        "stats": {"wordCount": 4, "charCount": 26},
    }

    named = by_name(spans)
    parent = named["quotes.fetch"]
    assert parent.attributes["quotes.success"] is True
    for child in ("quotes.api_call", "quotes.process"):
        assert named[child].parent.span_id == parent.context.span_id
    assert named["quotes.api_call"].attributes["quotes.count"] == 1
    assert named["quotes.process"].attributes["quotes.author"] == "Steve Jobs"


def test_quotes_empty_response_fails_parent_and_child(make_client, spans):
    response = make_client(lambda r: httpx.Response(200, json=[])).post("/api/demo/quotes")

    assert response.status_code == 500
    assert response.json()["error"] == "No quote received from API"

    named = by_name(spans)
    assert named["quotes.api_call"].status.status_code == StatusCode.ERROR
    assert named["quotes.fetch"].status.status_code == StatusCode.ERROR
    assert "quotes.process" not in named


# --- jokes -------------------------------------------------------------------

def test_jokes_success(make_client, spans):
    joke = {"id": "abc", "joke": "I only know 25 letters of the alphabet. I don't know y.", "status": 200}
    response = make_client(lambda r: httpx.Response(200, json=joke)).post("/api/demo/jokes")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["id"] == "abc"
    assert data["stats"]["wordCount"] == 12
    assert data["stats"]["length"] == len(joke["joke"])

    span = by_name(spans)["jokes.fetch"]
    assert span.attributes["jokes.type"] == "dad_joke"
    assert span.attributes["jokes.word_count"] == 12
    assert "jokes.fetch_duration_ms" in span.attributes


def test_jokes_transport_error(make_client):
    def upstream(request):
        raise httpx.ConnectError("no route to host", request=request)

    response = make_client(upstream).post("/api/demo/jokes")

    assert response.status_code == 500
    assert response.json()["success"] is False
    assert "no route to host" in response.json()["error"]
