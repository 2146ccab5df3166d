"""Run the demo app: python -m ducsigr_demo"""

import uvicorn

from ducsigr_demo.config import load_settings_from_env
from ducsigr_demo.main import create_app

BANNER = """
  Ducsigr Demo App

  Server running at:     http://localhost:{port}
  Health check:          http://localhost:{port}/health

  API Endpoints:
    POST /api/demo/weather              - Weather data (wttr.in)
    POST /api/demo/quotes               - Random quotes (zenquotes.io)
    POST /api/demo/jokes                - Dad jokes (icanhazdadjoke.com)
    POST /api/demo/llm                  - Mock LLM response
    POST /api/demo/failures             - Failure simulation scenarios
    POST /api/demo/sdk-test             - Observation API test
    POST /api/demo/sdk-test/simple      - Simple observation API test

  Traces exporting to:   {traces_url}
  Logs exporting to:     {logs_url}
"""


def main() -> None:
    settings = load_settings_from_env()
    app = create_app(settings)
    print(BANNER.format(port=settings.port, traces_url=settings.traces_url, logs_url=settings.logs_url))
    uvicorn.run(app, host="0.0.0.0", port=settings.port, log_level="debug" if settings.is_dev else "info")


if __name__ == "__main__":
    main()
