"""Redis connection management.

Provides a stable proxy object so imports like `from app.infra.redis import redis_client`
always reference the same proxy instance. The underlying client can be swapped at
runtime (e.g., to fakeredis in tests) without breaking previously imported references.
"""

from __future__ import annotations

import redis.asyncio as redis

from app.settings import settings


class RedisProxy:
	"""Forward attribute access to an underlying Redis client."""

	def __init__(self, client: redis.Redis):
		self._client: redis.Redis = client

	def set_client(self, client: redis.Redis) -> None:
		self._client = client

	async def claim_once(self, key: str, *, ttl_seconds: int, value: str = "1") -> bool:
		"""Atomically mark `key` as used; False when somebody already did."""
		created = await self._client.set(key, value, nx=True, ex=max(1, int(ttl_seconds)))
		return bool(created)

	async def xadd_capped(self, stream: str, fields: dict[str, str], *, maxlen: int = 10000) -> str:
		"""Append to a stream while keeping it roughly bounded."""
		return await self._client.xadd(stream, fields, maxlen=maxlen, approximate=True)

	# Fallback: delegate everything else to the underlying client
	def __getattr__(self, item):
		return getattr(self._client, item)


_real_client = redis.from_url(
	settings.redis_url,
	decode_responses=True,
	socket_timeout=settings.redis_socket_timeout_seconds,
	socket_connect_timeout=settings.redis_socket_timeout_seconds,
)
redis_client: RedisProxy = RedisProxy(_real_client)


def set_redis_client(client: redis.Redis) -> None:
	redis_client.set_client(client)
