import asyncio

import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from ducsigr_demo.config import Settings
from ducsigr_demo.observe import Observer, flatten_metadata, usage_attributes


@pytest.fixture
def exported():
    return InMemorySpanExporter()


@pytest.fixture
def observer(exported):
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(exported))
    return Observer(provider)


def test_flatten_metadata():
    flat = flatten_metadata({
        "source": "demo",
        "temperature": 0.7,
        "clientInfo": {"userAgent": "curl", "ip": None},
        "tags": ["a", "b"],
        "when": object,
    })
    assert flat["ducsigr.metadata.source"] == "demo"
    assert flat["ducsigr.metadata.temperature"] == 0.7
    assert flat["ducsigr.metadata.clientInfo.userAgent"] == "curl"
    assert "ducsigr.metadata.clientInfo.ip" not in flat
    assert flat["ducsigr.metadata.tags"] == ["a", "b"]
    assert flat["ducsigr.metadata.when"] == str(object)


def test_usage_attributes():
    result = {"model": "gpt-4-mock", "usage": {"prompt_tokens": 10, "completion_tokens": 25, "total_tokens": 35}}
    assert usage_attributes(result) == {
        "gen_ai.response.model": "gpt-4-mock",
        "gen_ai.usage.prompt_tokens": 10,
        "gen_ai.usage.completion_tokens": 25,
        "gen_ai.usage.total_tokens": 35,
    }
    assert usage_attributes("not a dict") == {}


def test_observe_nests_spans_and_returns_result(observer, exported):
    async def inner():
        return {"model": "m", "usage": {"total_tokens": 3}}

    async def outer():
        return await observer.observe("child", inner, type="generation")

    result = asyncio.run(observer.observe("root", outer, user_id="u1", session_id="s1"))

    assert result["usage"]["total_tokens"] == 3
    spans = {span.name: span for span in exported.get_finished_spans()}
    assert spans["child"].parent.span_id == spans["root"].context.span_id
    assert spans["root"].attributes["user.id"] == "u1"
    assert spans["root"].attributes["session.id"] == "s1"
    assert spans["root"].attributes["ducsigr.observation.type"] == "span"
    assert spans["child"].attributes["gen_ai.usage.total_tokens"] == 3


def test_observe_rejects_unknown_type(observer):
    async def work():
        return None

    with pytest.raises(ValueError):
        asyncio.run(observer.observe("x", work, type="event"))


def test_observer_requires_api_key():
    assert Observer.from_settings(Settings()) is None
    observer = Observer.from_settings(Settings(api_key="k"))
    assert isinstance(observer, Observer)
    observer.shutdown()
