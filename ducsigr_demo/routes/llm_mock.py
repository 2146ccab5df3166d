"""
Mock LLM route.

Simulates an LLM call with token usage tracking. The trace has the same
shape as a real generation:

    llm.generate
      llm.tokenize
      llm.infer
      llm.detokenize

Usage attributes are set under both gen_ai.* (OpenTelemetry GenAI semantic
conventions) and llm.*.
"""

import random
import time
from typing import Optional

from fastapi import APIRouter, Body
from opentelemetry import trace
from pydantic import BaseModel, ConfigDict, Field

from ducsigr_demo import simulation
from ducsigr_demo.simulation import count_tokens
from ducsigr_demo.tracing import mark_ok, span_ids, traced

router = APIRouter()
tracer = trace.get_tracer("demo-llm")

MOCK_RESPONSES = [
    "The answer to your question involves understanding the fundamental principles at play. Let me explain in detail...",
    "Based on my analysis, I can provide several insights that may help address your query. First, consider that...",
    "That's an interesting question! The key factors to consider are the underlying patterns and their implications.",
    "I'd be happy to help with that. The most important aspect here is recognizing the relationship between...",
    "Great question! Let me break this down into manageable parts to give you a comprehensive answer.",
]

PROMPT_PREVIEW_CHARS = 100


class LLMRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())

    prompt: str = "Tell me something interesting"
    model: str = "gpt-4-mock"
    max_tokens: int = Field(default=100, alias="maxTokens", ge=0)


def preview(prompt: str) -> str:
    if len(prompt) > PROMPT_PREVIEW_CHARS:
        return prompt[:PROMPT_PREVIEW_CHARS] + "..."
    return prompt


@router.post("/llm")
async def llm(body: Optional[LLMRequest] = Body(default=None)):
    req = body or LLMRequest()
    start = time.perf_counter()

    with traced(tracer, "llm.generate") as parent:
        parent.set_attribute("llm.model.name", req.model)
        parent.set_attribute("llm.model.provider", "mock")
        parent.set_attribute("llm.request.max_tokens", req.max_tokens)

        with tracer.start_as_current_span("llm.tokenize") as span:
            input_tokens = count_tokens(req.prompt)
            span.set_attribute("llm.tokenize.input_length", len(req.prompt))
            span.set_attribute("llm.tokenize.token_count", input_tokens)
            await simulation.simulate_token_latency(input_tokens / 10)
            mark_ok(span)

        with tracer.start_as_current_span("llm.infer") as span:
            response_text = random.choice(MOCK_RESPONSES)
            output_tokens = min(count_tokens(response_text), req.max_tokens)
            span.set_attribute("llm.infer.model", req.model)
            span.set_attribute("llm.infer.output_tokens", output_tokens)
            await simulation.simulate_token_latency(output_tokens)
            mark_ok(span)

        with tracer.start_as_current_span("llm.detokenize") as span:
            span.set_attribute("llm.detokenize.token_count", output_tokens)
            await simulation.simulate_token_latency(output_tokens / 10)
            mark_ok(span)

        total_tokens = input_tokens + output_tokens
        latency_ms = int((time.perf_counter() - start) * 1000)
        tokens_per_second = round(output_tokens / max(latency_ms, 1) * 1000)

        parent.set_attributes({
            "gen_ai.usage.prompt_tokens": input_tokens,
            "gen_ai.usage.completion_tokens": output_tokens,
            "gen_ai.usage.total_tokens": total_tokens,
            "llm.usage.prompt_tokens": input_tokens,
            "llm.usage.completion_tokens": output_tokens,
            "llm.usage.total_tokens": total_tokens,
            "llm.latency_ms": latency_ms,
            "llm.tokens_per_second": tokens_per_second,
        })
        mark_ok(parent)

        return {
            "success": True,
            **span_ids(parent),
            "data": {
                "model": req.model,
                "prompt": preview(req.prompt),
                "response": response_text,
                "usage": {
                    "promptTokens": input_tokens,
                    "completionTokens": output_tokens,
                    "totalTokens": total_tokens,
                },
                "performance": {
                    "latencyMs": latency_ms,
                    "tokensPerSecond": tokens_per_second,
                },
            },
        }
