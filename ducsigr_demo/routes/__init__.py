from ducsigr_demo.routes.failures import router as failures_router
from ducsigr_demo.routes.jokes import router as jokes_router
from ducsigr_demo.routes.llm_mock import router as llm_router
from ducsigr_demo.routes.quotes import router as quotes_router
from ducsigr_demo.routes.sdk_test import router as sdk_test_router
from ducsigr_demo.routes.weather import router as weather_router

ALL_ROUTERS = (
    weather_router,
    quotes_router,
    jokes_router,
    llm_router,
    failures_router,
    sdk_test_router,
)
