"""Failure classification for store calls made by the claim services."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from asyncpg import exceptions as pg_exceptions

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
	pg_exceptions.PostgresConnectionError,
	pg_exceptions.InterfaceError,
	OSError,
	asyncio.TimeoutError,
)

TRANSACTION_CONFLICTS: tuple[type[BaseException], ...] = (
	pg_exceptions.SerializationError,
	pg_exceptions.DeadlockDetectedError,
)


async def read_with_retry(label: str, call: Callable[[], Awaitable[T]]) -> T:
	"""Run an idempotent read, repeating it once after a transient failure."""
	try:
		return await call()
	except TRANSIENT_ERRORS:
		LOGGER.warning("store read failed, retrying once", extra={"read": label}, exc_info=True)
		return await call()
