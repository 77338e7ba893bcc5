"""Signed, single-use continuation tokens for the join flow.

A visitor who scans a residence QR code or opens an invitation link before
signing in receives a short-lived token naming where they were going. The
token travels through the login redirect and is exchanged exactly once for
its target.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Optional
from uuid import UUID, uuid4

from jwt import InvalidTokenError

from app.infra import jwt as jwt_helper
from app.infra.auth import AuthenticatedUser
from app.infra.redis import redis_client
from app.residences.domain.codes import normalise_code
from app.residences.domain.directory import DirectoryStore
from app.residences.domain.exceptions import ForbiddenError, ValidationError
from app.settings import settings

LOGGER = logging.getLogger(__name__)

_JTI_KEY = "res:continuation:{jti}"


@dataclass(slots=True)
class IssuedContinuation:
	token: str
	expires_in: int


@dataclass(slots=True)
class Continuation:
	residence_id: Optional[UUID] = None
	building_id: Optional[UUID] = None
	invitation_code: Optional[str] = None


class ContinuationService:
	def __init__(self, *, directory: DirectoryStore | None = None) -> None:
		self.directory = directory or DirectoryStore()

	async def issue(
		self,
		*,
		reference: str | None = None,
		invitation_code: str | None = None,
	) -> IssuedContinuation:
		code = normalise_code(invitation_code)
		if bool(reference) == bool(code):
			raise ValidationError("continuation_target_required")
		claims: dict[str, object] = {"jti": uuid4().hex}
		if reference:
			target = await self.directory.resolve_landing(reference)
			claims["rid"] = str(target.residence.id)
			if target.building is not None:
				claims["bid"] = str(target.building.id)
		else:
			claims["inv"] = code
		ttl = settings.continuation_ttl_seconds
		token = jwt_helper.encode_continuation(claims, ttl_seconds=ttl)
		return IssuedContinuation(token=token, expires_in=ttl)

	async def resume(self, user: AuthenticatedUser, token: str) -> Continuation:
		try:
			payload = jwt_helper.decode_continuation(token)
		except InvalidTokenError as exc:
			raise ForbiddenError("continuation_invalid") from exc

		remaining = int(payload["exp"]) - int(time.time())  # type: ignore[call-overload]
		first_use = await redis_client.claim_once(
			_JTI_KEY.format(jti=payload["jti"]),
			ttl_seconds=max(remaining, 1) + 5,
		)
		if not first_use:
			LOGGER.warning("continuation replayed", extra={"user_id": user.id})
			raise ForbiddenError("continuation_invalid")

		try:
			return Continuation(
				residence_id=UUID(str(payload["rid"])) if payload.get("rid") else None,
				building_id=UUID(str(payload["bid"])) if payload.get("bid") else None,
				invitation_code=str(payload["inv"]) if payload.get("inv") else None,
			)
		except ValueError as exc:
			raise ForbiddenError("continuation_invalid") from exc
