"""Error translation helpers for residence access API."""

from __future__ import annotations

from fastapi import HTTPException, status

from app.residences.domain import exceptions


def to_http_error(exc: Exception) -> HTTPException:
	"""Translate domain exceptions to FastAPI HTTP errors."""
	if isinstance(exc, exceptions.ResidenceError):
		return HTTPException(status_code=exc.status_code, detail=exc.detail, headers=getattr(exc, "headers", None))
	return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
