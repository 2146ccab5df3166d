"""Fake work for the mock routes: sleeps and rough token counts."""

import asyncio
import math
import random


def count_tokens(text: str) -> int:
    """Roughly 4 characters per token."""
    return math.ceil(len(text) / 4)


async def simulate_work(ms: float) -> None:
    await asyncio.sleep(ms / 1000)


async def simulate_jittered_work(base_ms: float, jitter_ms: float) -> None:
    """Sleep base_ms plus up to jitter_ms."""
    await simulate_work(base_ms + random.random() * jitter_ms)


async def simulate_token_latency(tokens: float) -> None:
    # 100ms base + 5ms per token + 0-50ms jitter
    await simulate_work(100 + tokens * 5 + random.random() * 50)
