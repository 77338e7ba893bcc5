"""Fixed-window attempt budgets kept in Redis."""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import Optional

from app.infra.redis import redis_client


@dataclass(frozen=True)
class Budget:
	allowed: bool
	remaining: int
	reset_in: int


async def consume(
	kind: str,
	actor_id: str,
	*,
	limit: int,
	window_seconds: int = 60,
	now: Optional[float] = None,
) -> Budget:
	"""Spend one attempt of `actor_id` for `kind` and report what is left in the window."""
	window = max(1, int(window_seconds))
	now = now or time.time()
	slot = int(math.floor(now / window))
	reset_in = max(1, int(math.ceil((slot + 1) * window - now)))
	if limit <= 0:
		return Budget(allowed=False, remaining=0, reset_in=reset_in)
	key = f"rl:{kind}:{actor_id}:{slot}:{window}"
	async with redis_client.pipeline(transaction=True) as pipe:
		pipe.incr(key)
		pipe.expire(key, window)
		count, _ = await pipe.execute()
	count = int(count)
	return Budget(allowed=count <= limit, remaining=max(0, limit - count), reset_in=reset_in)

