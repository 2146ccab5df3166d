"""FastAPI dependencies: per-app objects created in create_app()/lifespan."""

import httpx
from fastapi import Request

from ducsigr_demo.config import Settings
from ducsigr_demo.errors import ObserverUnavailable
from ducsigr_demo.observe import Observer

USER_AGENT = "Ducsigr-Demo/1.0"
JSON_HEADERS = {"Accept": "application/json", "User-Agent": USER_AGENT}


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_http_client(request: Request) -> httpx.AsyncClient:
    """The shared outbound client opened by the app lifespan."""
    return request.app.state.http_client


def get_observer(request: Request) -> Observer:
    observer = getattr(request.app.state, "observer", None)
    if observer is None:
        raise ObserverUnavailable()
    return observer
