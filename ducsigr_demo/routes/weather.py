"""
Weather route.

Fetches current conditions from wttr.in inside a manual span. The httpx
call itself is auto-instrumented, so it shows up as a child span.
"""

from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx
from fastapi import APIRouter, Body, Depends
from opentelemetry import trace
from pydantic import BaseModel

from ducsigr_demo.deps import JSON_HEADERS, get_http_client
from ducsigr_demo.errors import UpstreamError
from ducsigr_demo.logger import create_child_logger
from ducsigr_demo.tracing import mark_ok, span_ids, traced

WEATHER_API_URL = "https://wttr.in"

router = APIRouter()
tracer = trace.get_tracer("demo-routes")
log = create_child_logger(route="weather")


class WeatherRequest(BaseModel):
    city: str = "London"


def _first_value(items: Any, default: str) -> str:
    if items and isinstance(items, list) and isinstance(items[0], dict):
        return items[0].get("value", default)
    return default


async def fetch_weather(client: httpx.AsyncClient, city: str) -> Dict[str, Any]:
    response = await client.get(
        f"{WEATHER_API_URL}/{quote(city, safe='')}",
        params={"format": "j1"},
        headers=JSON_HEADERS,
    )
    if response.is_error:
        raise UpstreamError(f"Weather API returned {response.status_code}")
    return response.json()


@router.post("/weather")
async def weather(
    body: Optional[WeatherRequest] = Body(default=None),
    client: httpx.AsyncClient = Depends(get_http_client),
):
    city = (body or WeatherRequest()).city
    log.info("Weather request received", extra={"city": city})

    with traced(tracer, "weather.fetch") as span:
        span.set_attribute("weather.city.requested", city)
        span.set_attribute("weather.api", "wttr.in")
        log.debug("Fetching weather data", extra={"city": city, "api": "wttr.in"})

        try:
            data = await fetch_weather(client, city)
            current = (data.get("current_condition") or [None])[0]
            area = (data.get("nearest_area") or [None])[0]
            if not current or not area:
                raise UpstreamError("Invalid weather data received")

            temp_c = int(current["temp_C"])
            temp_f = int(current["temp_F"])
            humidity = int(current["humidity"])
        except (httpx.HTTPError, UpstreamError, KeyError, ValueError) as exc:
            log.error("Weather fetch failed", extra={"city": city, "error": str(exc)})
            raise

        resolved_city = _first_value(area.get("areaName"), city)
        country = _first_value(area.get("country"), "Unknown")
        condition = _first_value(current.get("weatherDesc"), "Unknown")

        span.set_attribute("weather.temp_c", temp_c)
        span.set_attribute("weather.temp_f", temp_f)
        span.set_attribute("weather.humidity", humidity)
        span.set_attribute("weather.city.resolved", resolved_city)
        span.set_attribute("weather.country", country)
        mark_ok(span)

        log.info(
            "Weather data retrieved successfully",
            extra={"city": resolved_city, "country": country, "temperature": temp_c, "condition": condition},
        )

        return {
            "success": True,
            **span_ids(span),
            "data": {
                "city": resolved_city,
                "country": country,
                "temperature": {"celsius": temp_c, "fahrenheit": temp_f},
                "humidity": humidity,
                "condition": condition,
            },
        }
