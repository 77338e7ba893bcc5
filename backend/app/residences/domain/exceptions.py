"""Custom exceptions for residence access services.

Claim decisions are reported as `ClaimOutcome` values; these exceptions cover
authorization and management operations around them.
"""

from __future__ import annotations

from fastapi import status

if hasattr(status, "HTTP_422_UNPROCESSABLE_CONTENT"):
	_HTTP_422 = status.HTTP_422_UNPROCESSABLE_CONTENT
else:  # pragma: no cover - older Starlette builds
	_HTTP_422 = status.HTTP_422_UNPROCESSABLE_ENTITY


class ResidenceError(Exception):
	"""Base class for residence related errors."""

	status_code: int = status.HTTP_400_BAD_REQUEST
	detail: str = "residence_error"

	def __init__(self, detail: str | None = None) -> None:
		super().__init__(detail or self.detail)
		if detail:
			self.detail = detail


class NotFoundError(ResidenceError):
	"""Thrown when a resource is missing or its reference is ambiguous."""

	status_code = status.HTTP_404_NOT_FOUND
	detail = "not_found"


class ForbiddenError(ResidenceError):
	"""Raised when authorization fails."""

	status_code = status.HTTP_403_FORBIDDEN
	detail = "forbidden"


class ConflictError(ResidenceError):
	"""Raised for conflicting operations."""

	status_code = status.HTTP_409_CONFLICT
	detail = "conflict"


class ValidationError(ResidenceError):
	"""Raised for validation errors not covered by FastAPI schema validation."""

	status_code = _HTTP_422
	detail = "validation_error"


class RateLimitedError(ResidenceError):
	"""Raised when an actor exhausted its attempt budget."""

	status_code = status.HTTP_429_TOO_MANY_REQUESTS
	detail = "rate_limited"

	def __init__(self, detail: str | None = None, *, retry_after: int | None = None) -> None:
		super().__init__(detail)
		self.retry_after = retry_after

	@property
	def headers(self) -> dict[str, str] | None:
		if self.retry_after is None:
			return None
		return {"Retry-After": str(self.retry_after)}
