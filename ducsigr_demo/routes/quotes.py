"""
Quotes route.

Fetches a random quote from zenquotes.io. Shows a parent span with two
children: the API call and the processing step.
"""

import httpx
from fastapi import APIRouter, Depends
from opentelemetry import trace

from ducsigr_demo.deps import JSON_HEADERS, get_http_client
from ducsigr_demo.errors import DemoRouteError, UpstreamError
from ducsigr_demo.logger import create_child_logger
from ducsigr_demo.tracing import mark_ok, span_ids, traced

QUOTES_API_URL = "https://zenquotes.io/api/random"

router = APIRouter()
tracer = trace.get_tracer("demo-routes")
log = create_child_logger(route="quotes")


@router.post("/quotes")
async def quotes(client: httpx.AsyncClient = Depends(get_http_client)):
    log.info("Quotes request received")

    with traced(tracer, "quotes.fetch") as parent:
        try:
            log.debug("Fetching quote from zenquotes.io")
            with traced(tracer, "quotes.api_call", {"quotes.api": "zenquotes.io"}) as fetch_span:
                response = await client.get(QUOTES_API_URL, headers=JSON_HEADERS)
                if response.is_error:
                    raise UpstreamError(f"Quotes API returned {response.status_code}")
                items = response.json()
                if not items:
                    raise UpstreamError("No quote received from API")
                text, author = items[0]["q"], items[0]["a"]
                fetch_span.set_attribute("quotes.count", len(items))
                mark_ok(fetch_span)
        except DemoRouteError as exc:
            log.error("Quote fetch failed", extra={"error": str(exc)})
            raise

        with tracer.start_as_current_span("quotes.process") as process_span:
            word_count = len(text.split())
            char_count = len(text)
            process_span.set_attribute("quotes.word_count", word_count)
            process_span.set_attribute("quotes.char_count", char_count)
            process_span.set_attribute("quotes.author", author)
            mark_ok(process_span)

        parent.set_attribute("quotes.success", True)
        mark_ok(parent)

        log.info(
            "Quote retrieved successfully",
            extra={"author": author, "wordCount": word_count, "charCount": char_count},
        )

        return {
            "success": True,
            **span_ids(parent),
            "data": {
                "quote": text,
                "author": author,
                "stats": {"wordCount": word_count, "charCount": char_count},
            },
        }
