"""Unit join codes and residence invitation codes.

A unit join code is a standing secret with no usage counter: anyone who knows
it can join the unit as a dependent until it is rotated. An invitation code is
residence-scoped and may expire or cap its number of redemptions; spending a
use is a single conditional UPDATE so two redeemers can never both take the
last one.
"""

from __future__ import annotations

import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Callable, Literal, Union
from uuid import UUID

import asyncpg

from app.infra.auth import AuthenticatedUser
from app.obs import metrics as obs_metrics
from app.residences.domain import models, policies, repo as repo_module
from app.residences.domain.exceptions import ConflictError, NotFoundError, ValidationError
from app.residences.domain.outcomes import RejectionReason
from app.residences.domain.retry import read_with_retry
from app.settings import settings

LOGGER = logging.getLogger(__name__)

CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
_CREATE_ATTEMPTS = 5

ExpiryOption = Literal["1day", "7days", "30days", "never"]
_EXPIRY_DELTAS: dict[str, timedelta | None] = {
	"1day": timedelta(days=1),
	"7days": timedelta(days=7),
	"30days": timedelta(days=30),
	"never": None,
}

InvitationCheck = Union[models.Invitation, RejectionReason]


def generate_code(length: int) -> str:
	if length < 4:
		raise ValueError("code length must be at least 4")
	return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def normalise_code(code: str | None) -> str:
	return (code or "").strip().upper()


def _utcnow() -> datetime:
	return datetime.now(timezone.utc)


def evaluate_invitation(
	invitation: models.Invitation | None,
	*,
	now: datetime,
	residence_id: UUID | None = None,
) -> RejectionReason | None:
	"""Why an invitation cannot be redeemed at `now`, or None when it can."""
	if invitation is None:
		return RejectionReason.INVITATION_NOT_FOUND
	if residence_id is not None and invitation.residence_id != residence_id:
		return RejectionReason.INVITATION_NOT_FOUND
	if not invitation.is_active:
		return RejectionReason.INVITATION_INACTIVE
	if invitation.expires_at is not None and now > invitation.expires_at:
		return RejectionReason.INVITATION_EXPIRED
	if invitation.max_uses is not None and invitation.uses_count >= invitation.max_uses:
		return RejectionReason.INVITATION_EXHAUSTED
	return None


class CodeRegistry:
	"""Validate and consume unit join codes and invitation codes."""

	def __init__(
		self,
		*,
		repository: repo_module.ResidencesRepository | None = None,
		clock: Callable[[], datetime] | None = None,
	) -> None:
		self.repo = repository or repo_module.ResidencesRepository()
		self.clock = clock or _utcnow

	# --- Unit join codes ----------------------------------------------------

	@staticmethod
	def check_unit_join_code(unit: models.Unit, supplied_code: str | None) -> bool:
		"""Case-insensitive match against the unit's current join code."""
		if unit.is_vacant or not unit.join_code:
			return False
		supplied = normalise_code(supplied_code)
		if not supplied:
			return False
		return hmac.compare_digest(normalise_code(unit.join_code), supplied)

	async def rotate_unit_join_code(self, user: AuthenticatedUser, unit_id: UUID) -> str:
		unit = await read_with_retry("unit", lambda: self.repo.get_unit(unit_id))
		if unit is None:
			raise NotFoundError("unit_not_found")
		roles = await self.repo.list_roles(policies.actor_id(user), unit.residence_id)
		policies.assert_can_rotate_join_code(user, roles, unit)
		new_code = generate_code(settings.unit_join_code_length)
		updated = await self.repo.update_join_code(unit_id, new_code)
		if updated is None:
			raise NotFoundError("unit_not_found")
		obs_metrics.inc_join_code_rotation()
		LOGGER.info(
			"unit join code rotated",
			extra={"unit_id": str(unit_id), "residence_id": str(unit.residence_id), "actor_id": user.id},
		)
		return new_code

	# --- Invitation codes ---------------------------------------------------

	async def inspect_invitation(self, code: str, residence_id: UUID | None = None) -> InvitationCheck:
		"""Read-only validity check; spends nothing."""
		normalised = normalise_code(code)
		if not normalised:
			return RejectionReason.INVITATION_NOT_FOUND
		invitation = await read_with_retry(
			"invitation",
			lambda: self.repo.get_invitation_by_code(normalised),
		)
		reason = evaluate_invitation(invitation, now=self.clock(), residence_id=residence_id)
		return reason if reason is not None else invitation  # type: ignore[return-value]

	async def redeem_invitation_code(
		self,
		code: str,
		residence_id: UUID | None = None,
		*,
		conn: asyncpg.Connection,
	) -> InvitationCheck:
		"""Spend one use of `code` on `conn`; the caller's transaction decides whether it sticks."""
		normalised = normalise_code(code)
		if not normalised:
			return RejectionReason.INVITATION_NOT_FOUND
		now = self.clock()
		invitation = await self.repo.get_invitation_by_code(normalised, conn=conn)
		reason = evaluate_invitation(invitation, now=now, residence_id=residence_id)
		if reason is not None:
			return reason
		assert invitation is not None
		consumed = await self.repo.consume_invitation(invitation.id, now=now, conn=conn)
		if consumed is not None:
			return consumed
		# Lost a race: re-read to report why the conditional update matched nothing.
		current = await self.repo.get_invitation_by_code(normalised, conn=conn)
		return evaluate_invitation(current, now=now, residence_id=residence_id) or RejectionReason.INVITATION_EXHAUSTED

	async def create_invitation(
		self,
		user: AuthenticatedUser,
		residence_id: UUID,
		*,
		expires_in: ExpiryOption | None = None,
		expires_at: datetime | None = None,
		max_uses: int | None = None,
	) -> models.Invitation:
		creator = policies.actor_id(user)
		roles = await self.repo.list_roles(creator, residence_id)
		policies.assert_can_manage(user, roles)
		if max_uses is not None and max_uses < 1:
			raise ValidationError("max_uses_must_be_positive")
		if expires_at is not None and expires_at.tzinfo is None:
			expires_at = expires_at.replace(tzinfo=timezone.utc)
		if expires_at is None and expires_in is not None:
			delta = _EXPIRY_DELTAS.get(expires_in)
			expires_at = self.clock() + delta if delta is not None else None
		if expires_at is not None and expires_at <= self.clock():
			raise ValidationError("expires_at_in_past")

		for attempt in range(_CREATE_ATTEMPTS):
			code = generate_code(settings.invitation_code_length)
			try:
				invitation = await self.repo.create_invitation(
					residence_id=residence_id,
					code=code,
					created_by=creator,
					expires_at=expires_at,
					max_uses=max_uses,
				)
			except ConflictError:
				LOGGER.info("invitation code collision", extra={"attempt": attempt + 1})
				continue
			obs_metrics.inc_invitation_created()
			LOGGER.info(
				"invitation created",
				extra={"invitation_id": str(invitation.id), "residence_id": str(residence_id), "actor_id": user.id},
			)
			return invitation
		raise ConflictError("invitation_code_exhausted")

	async def list_invitations(
		self,
		user: AuthenticatedUser,
		residence_id: UUID,
		*,
		include_inactive: bool = False,
	) -> list[models.Invitation]:
		roles = await self.repo.list_roles(policies.actor_id(user), residence_id)
		policies.assert_can_manage(user, roles)
		return await self.repo.list_invitations(residence_id, include_inactive=include_inactive)

	async def deactivate_invitation(self, user: AuthenticatedUser, invitation_id: UUID) -> models.Invitation:
		invitation = await self.repo.get_invitation(invitation_id)
		if invitation is None:
			raise NotFoundError("invitation_not_found")
		roles = await self.repo.list_roles(policies.actor_id(user), invitation.residence_id)
		policies.assert_can_manage(user, roles)
		updated = await self.repo.deactivate_invitation(invitation_id)
		if updated is None:
			raise NotFoundError("invitation_not_found")
		return updated
