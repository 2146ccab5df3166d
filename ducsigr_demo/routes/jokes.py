"""
Jokes route.

Fetches a dad joke from icanhazdadjoke.com inside one manual span with
timing attributes.
"""

import time

import httpx
from fastapi import APIRouter, Depends
from opentelemetry import trace

from ducsigr_demo.deps import JSON_HEADERS, get_http_client
from ducsigr_demo.errors import UpstreamError
from ducsigr_demo.logger import create_child_logger
from ducsigr_demo.tracing import mark_ok, span_ids, traced

JOKES_API_URL = "https://icanhazdadjoke.com/"

router = APIRouter()
tracer = trace.get_tracer("demo-routes")
log = create_child_logger(route="jokes")


@router.post("/jokes")
async def jokes(client: httpx.AsyncClient = Depends(get_http_client)):
    log.info("Jokes request received")
    start = time.perf_counter()

    with traced(tracer, "jokes.fetch") as span:
        span.set_attribute("jokes.api", "icanhazdadjoke.com")
        span.set_attribute("jokes.type", "dad_joke")
        log.debug("Fetching joke from icanhazdadjoke.com")

        try:
            response = await client.get(JOKES_API_URL, headers=JSON_HEADERS)
            if response.is_error:
                raise UpstreamError(f"Jokes API returned {response.status_code}")
            payload = response.json()
            joke_id, joke = payload["id"], payload["joke"]
        except (httpx.HTTPError, UpstreamError, KeyError, ValueError) as exc:
            log.error("Joke fetch failed", extra={"error": str(exc)})
            raise

        duration_ms = int((time.perf_counter() - start) * 1000)
        word_count = len(joke.split())

        span.set_attribute("jokes.id", joke_id)
        span.set_attribute("jokes.length", len(joke))
        span.set_attribute("jokes.word_count", word_count)
        span.set_attribute("jokes.fetch_duration_ms", duration_ms)
        mark_ok(span)

        log.info(
            "Joke retrieved successfully",
            extra={"jokeId": joke_id, "wordCount": word_count, "durationMs": duration_ms},
        )

        return {
            "success": True,
            **span_ids(span),
            "data": {
                "id": joke_id,
                "joke": joke,
                "stats": {
                    "length": len(joke),
                    "wordCount": word_count,
                    "fetchDurationMs": duration_ms,
                },
            },
        }
