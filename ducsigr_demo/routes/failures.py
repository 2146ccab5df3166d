"""
Failure simulation route.

Reproduces the ways an LLM call goes wrong in production, so each failure
mode can be seen in the ingest as a trace:

    failures.simulate
      failures.validate-input   (always succeeds)
      failures.llm-call         (where the scenario plays out)
      failures.post-process     (only when the call "succeeded")

Scenarios: timeout, rate-limit, context-overflow, invalid-response,
hallucination, auth-failure. A missing or unknown scenario picks one at
random.
"""

import json
import random
from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body
from fastapi.responses import JSONResponse
from opentelemetry import trace
from opentelemetry.trace import Span
from pydantic import BaseModel, ConfigDict

from ducsigr_demo import simulation
from ducsigr_demo.logger import create_child_logger
from ducsigr_demo.simulation import count_tokens
from ducsigr_demo.tracing import mark_failed, mark_ok, span_ids

router = APIRouter()
tracer = trace.get_tracer("demo-failures")
log = create_child_logger(route="failures")

SCENARIOS = (
    "timeout",
    "rate-limit",
    "context-overflow",
    "invalid-response",
    "hallucination",
    "auth-failure",
)

# HTTP status returned for each failing scenario; anything else is a 500
SCENARIO_STATUS = {"auth-failure": 401, "rate-limit": 429}

TIMEOUT_MS = 3000
MAX_CONTEXT_TOKENS = 8192
MOCK_REQUESTED_TOKENS = 32768
RATE_LIMIT_RESET_SECONDS = 60
HALLUCINATION_THRESHOLD = 0.5


class FailureRequest(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    scenario: Optional[str] = None
    prompt: str = "Tell me about quantum computing in extreme detail..."
    model: str = "gpt-4-mock"


@dataclass
class ScenarioResult:
    success: bool
    error: Optional[str] = None
    warning: Optional[str] = None
    confidence_score: Optional[float] = None
    output_tokens: Optional[int] = None
    data: Optional[Dict[str, Any]] = None


class SimulatedFailure(RuntimeError):
    """Recorded on the span of a scenario that fails."""


def pick_scenario(requested: Optional[str]) -> str:
    if requested in SCENARIOS:
        return requested
    return random.choice(SCENARIOS)


def _fail(span: Span, message: str) -> ScenarioResult:
    mark_failed(span, SimulatedFailure(message))
    return ScenarioResult(success=False, error=message)


# --- Scenarios ---------------------------------------------------------------

async def simulate_timeout(span: Span, model: str, **_) -> ScenarioResult:
    span.set_attribute("llm.request.timeout_ms", TIMEOUT_MS)
    await simulation.simulate_work(TIMEOUT_MS)
    return _fail(span, f"Deadline exceeded: LLM response took >{TIMEOUT_MS}ms (model: {model})")


async def simulate_rate_limit(span: Span, model: str, **_) -> ScenarioResult:
    await simulation.simulate_jittered_work(50, 100)
    span.set_attribute("http.status_code", 429)
    span.set_attribute("llm.rate_limit.remaining", 0)
    span.set_attribute("llm.rate_limit.reset_seconds", RATE_LIMIT_RESET_SECONDS)
    return _fail(span, f"Rate limit exceeded: 429 Too Many Requests from provider (model: {model})")


async def simulate_context_overflow(span: Span, model: str, **_) -> ScenarioResult:
    await simulation.simulate_jittered_work(30, 50)
    # pretend the prompt is far bigger than it is
    span.set_attribute("llm.context_window.max_tokens", MAX_CONTEXT_TOKENS)
    span.set_attribute("llm.context_window.requested_tokens", MOCK_REQUESTED_TOKENS)
    return _fail(
        span,
        f"Context length exceeded: {MOCK_REQUESTED_TOKENS} tokens > {MAX_CONTEXT_TOKENS} max for {model}",
    )


async def simulate_invalid_response(span: Span, model: str, **_) -> ScenarioResult:
    await simulation.simulate_jittered_work(200, 300)
    garbled = "{\x00\x01invalid json \xffresp"
    try:
        json.loads(garbled)
        message = "Unexpected valid JSON"
    except json.JSONDecodeError as exc:
        message = f"Invalid LLM response: {exc} (model: {model})"
    span.set_attribute("llm.response.raw_length", len(garbled))
    span.set_attribute("llm.response.parse_error", True)
    return _fail(span, message)


async def simulate_hallucination(span: Span, model: str, **_) -> ScenarioResult:
    await simulation.simulate_jittered_work(150, 250)
    output_tokens = 45 + random.randrange(30)
    confidence = 0.15 + random.random() * 0.2
    span.set_attribute("gen_ai.usage.completion_tokens", output_tokens)
    span.set_attribute("llm.usage.completion_tokens", output_tokens)
    span.set_attribute("llm.confidence_score", confidence)
    span.add_event("hallucination_detected", {
        "hallucination.confidence_score": confidence,
        "hallucination.threshold": HALLUCINATION_THRESHOLD,
        "hallucination.flagged": True,
    })
    # the call itself succeeded; only the content is suspect
    mark_ok(span)
    return ScenarioResult(
        success=True,
        warning="Low confidence response — possible hallucination",
        confidence_score=round(confidence, 2),
        output_tokens=output_tokens,
        data={
            "response": (
                "The quantum decoherence of neural network weights causes spontaneous "
                "token generation in the Hilbert space of transformer attention heads."
            ),
            "model": model,
        },
    )


async def simulate_auth_failure(span: Span, model: str, **_) -> ScenarioResult:
    await simulation.simulate_jittered_work(30, 50)
    span.set_attribute("http.status_code", 401)
    span.set_attribute("llm.auth.method", "bearer_token")
    return _fail(
        span,
        f"Authentication failed: 401 Unauthorized — invalid or expired API key (model: {model})",
    )


SIMULATORS = {
    "timeout": simulate_timeout,
    "rate-limit": simulate_rate_limit,
    "context-overflow": simulate_context_overflow,
    "invalid-response": simulate_invalid_response,
    "hallucination": simulate_hallucination,
    "auth-failure": simulate_auth_failure,
}


# --- Route -------------------------------------------------------------------

@router.post("/failures")
async def failures(body: Optional[FailureRequest] = Body(default=None)):
    req = body or FailureRequest()
    scenario = pick_scenario(req.scenario)
    log.info("Failure simulation requested", extra={"scenario": scenario, "model": req.model})

    with tracer.start_as_current_span(
        "failures.simulate", record_exception=False, set_status_on_exception=False
    ) as parent:
        ids = span_ids(parent)
        parent.set_attributes({
            "failure.scenario": scenario,
            "failure.type": "simulated",
            "llm.model.name": req.model,
            "llm.model.provider": "mock",
        })

        try:
            with tracer.start_as_current_span("failures.validate-input") as span:
                input_tokens = count_tokens(req.prompt)
                span.set_attribute("input.token_count", input_tokens)
                span.set_attribute("input.prompt_length", len(req.prompt))
                await simulation.simulate_jittered_work(10, 20)
                mark_ok(span)

            with tracer.start_as_current_span(
                "failures.llm-call", record_exception=False, set_status_on_exception=False
            ) as span:
                span.set_attribute("llm.model.name", req.model)
                span.set_attribute("gen_ai.usage.prompt_tokens", input_tokens)
                span.set_attribute("llm.usage.prompt_tokens", input_tokens)
                result = await SIMULATORS[scenario](span, model=req.model)

            if result.success:
                with tracer.start_as_current_span("failures.post-process") as span:
                    span.set_attribute("output.token_count", result.output_tokens or 0)
                    if result.warning:
                        span.add_event("hallucination_detected", {
                            "hallucination.confidence_score": result.confidence_score or 0.0,
                            "hallucination.flagged": True,
                        })
                        span.set_attribute("post_process.hallucination_flagged", True)
                    await simulation.simulate_jittered_work(15, 25)
                    mark_ok(span)
        except Exception as exc:
            mark_failed(parent, exc, str(exc) or "Unknown error")
            log.exception("Failure simulation crashed", extra={"scenario": scenario})
            return JSONResponse(
                status_code=500,
                content={"success": False, "traceId": ids["traceId"], "scenario": scenario,
                         "error": str(exc) or "Unknown error"},
            )

        if result.error:
            mark_failed(parent, SimulatedFailure(result.error))
            log.warning("Simulated failure", extra={"scenario": scenario, "error": result.error})
        else:
            mark_ok(parent)

    content: Dict[str, Any] = {"success": not result.error, **ids, "scenario": scenario}
    if result.error:
        content["error"] = result.error
    if result.warning:
        content["warning"] = result.warning
        content["confidenceScore"] = result.confidence_score
    if result.data:
        content["data"] = result.data

    status_code = SCENARIO_STATUS.get(scenario, 500) if result.error else 200
    return JSONResponse(status_code=status_code, content=content)
