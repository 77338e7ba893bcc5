"""Claim coordinator: decides and applies residence access grants.

Two entry points share one shape. A membership short-circuit runs first, then
validation, then a single transaction whose writes commit together. Every
contended check is re-evaluated by the store inside that transaction
(compare-and-set on the unit, conditional increment on the invitation, share
lock on the unit for join-code checks), so a decision made on a stale read can
never be committed.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable
from uuid import UUID

import asyncpg

from app.infra import rate_limit
from app.obs import metrics as obs_metrics
from app.residences.domain import models, repo as repo_module
from app.residences.domain.codes import CodeRegistry, normalise_code
from app.residences.domain.exceptions import ConflictError, RateLimitedError
from app.residences.domain.ledger import MembershipLedger
from app.residences.domain.outcomes import ClaimOutcome, ClaimStatus, RejectionReason
from app.residences.domain.retry import TRANSACTION_CONFLICTS, read_with_retry
from app.residences.infra.notifications import ClaimNotifier
from app.settings import settings

LOGGER = logging.getLogger(__name__)

FLOW_UNIT = "unit"
FLOW_INVITATION = "invitation"


class _Abort(Exception):
	"""Leave the open transaction, rolling it back, with a final outcome."""

	def __init__(self, outcome: ClaimOutcome) -> None:
		super().__init__(outcome.status.value)
		self.outcome = outcome


class ClaimCoordinator:
	"""Unit-selection and invitation-code claim flows."""

	def __init__(
		self,
		*,
		repository: repo_module.ResidencesRepository | None = None,
		ledger: MembershipLedger | None = None,
		registry: CodeRegistry | None = None,
		notifier: ClaimNotifier | None = None,
	) -> None:
		self.repo = repository or repo_module.ResidencesRepository()
		self.ledger = ledger or MembershipLedger(repository=self.repo)
		self.registry = registry or CodeRegistry(repository=self.repo)
		self.notifier = notifier or ClaimNotifier()

	async def claim_unit(
		self,
		user_id: UUID,
		residence_id: UUID,
		unit_id: UUID,
		*,
		code: str | None = None,
		building_id: UUID | None = None,
	) -> ClaimOutcome:
		"""Bind `user_id` to a unit, as primary occupant when vacant or as a dependent with the join code."""
		try:
			outcome = await self._attempt(
				FLOW_UNIT,
				lambda: self._claim_unit_once(user_id, residence_id, unit_id, code=code, building_id=building_id),
			)
		except ConflictError as exc:
			obs_metrics.record_claim(FLOW_UNIT, "conflict", exc.detail)
			LOGGER.warning(
				"claim conflict",
				extra={"flow": FLOW_UNIT, "user_id": str(user_id), "unit_id": str(unit_id), "reason": exc.detail},
			)
			raise
		await self._finish(FLOW_UNIT, user_id, outcome)
		return outcome

	async def redeem_invitation(
		self,
		user_id: UUID,
		code: str,
		*,
		residence_id: UUID | None = None,
	) -> ClaimOutcome:
		"""Grant residence membership through an invitation code; binds no unit."""
		outcome = await self._attempt(
			FLOW_INVITATION,
			lambda: self._redeem_once(user_id, code, residence_id=residence_id),
		)
		await self._finish(FLOW_INVITATION, user_id, outcome)
		return outcome

	# --- Unit-selection flow -------------------------------------------------

	async def _claim_unit_once(
		self,
		user_id: UUID,
		residence_id: UUID,
		unit_id: UUID,
		*,
		code: str | None,
		building_id: UUID | None,
	) -> ClaimOutcome:
		if await self.ledger.has_membership(user_id, residence_id):
			return ClaimOutcome.already_member(residence_id)

		unit = await read_with_retry("unit", lambda: self.repo.get_unit(unit_id))
		if unit is None or unit.residence_id != residence_id:
			return ClaimOutcome.rejected(RejectionReason.NOT_FOUND, residence_id=residence_id, unit_id=unit_id)
		if building_id is not None and unit.building_id != building_id:
			return ClaimOutcome.rejected(RejectionReason.NOT_FOUND, residence_id=residence_id, unit_id=unit_id)

		if unit.is_vacant:
			return await self._claim_primary(user_id, unit)
		if not normalise_code(code):
			return ClaimOutcome.awaiting_code(residence_id, unit_id)
		await self._spend_join_code_attempt(user_id)
		return await self._claim_dependent(user_id, unit, code or "")

	async def _claim_primary(self, user_id: UUID, unit: models.Unit) -> ClaimOutcome:
		try:
			async with self.repo.transaction() as conn:
				if not await self.ledger.set_primary_occupant(unit.id, user_id, conn=conn):
					# The winner may be this identity's own earlier submission.
					if await self.repo.has_membership(user_id, unit.residence_id, conn=conn):
						raise _Abort(ClaimOutcome.already_member(unit.residence_id))
					raise _Abort(
						ClaimOutcome.rejected(
							RejectionReason.UNIT_NO_LONGER_VACANT,
							residence_id=unit.residence_id,
							unit_id=unit.id,
						)
					)
				await self._grant(conn, user_id, unit, models.OCCUPANCY_PRIMARY)
		except _Abort as abort:
			return abort.outcome
		return ClaimOutcome.granted(unit.residence_id, unit_id=unit.id, occupancy_kind=models.OCCUPANCY_PRIMARY)

	async def _claim_dependent(self, user_id: UUID, unit: models.Unit, code: str) -> ClaimOutcome:
		try:
			async with self.repo.transaction() as conn:
				# Held until commit so a concurrent rotation cannot slip between check and grant.
				locked = await self.repo.lock_unit(unit.id, conn=conn)
				if locked is None or locked.residence_id != unit.residence_id:
					raise _Abort(
						ClaimOutcome.rejected(RejectionReason.NOT_FOUND, residence_id=unit.residence_id, unit_id=unit.id)
					)
				if not self.registry.check_unit_join_code(locked, code):
					raise _Abort(
						ClaimOutcome.rejected(RejectionReason.INVALID_CODE, residence_id=unit.residence_id, unit_id=unit.id)
					)
				await self._grant(conn, user_id, locked, models.OCCUPANCY_OCCUPANT)
		except _Abort as abort:
			return abort.outcome
		return ClaimOutcome.granted(unit.residence_id, unit_id=unit.id, occupancy_kind=models.OCCUPANCY_OCCUPANT)

	async def _grant(self, conn: asyncpg.Connection, user_id: UUID, unit: models.Unit, kind: str) -> None:
		membership = await self.ledger.record_membership(user_id, unit.residence_id, models.RESIDENT_ROLE, conn=conn)
		if membership is None:
			raise _Abort(ClaimOutcome.already_member(unit.residence_id))
		occupancy = await self.ledger.record_occupancy(user_id, unit.id, kind, conn=conn)
		if occupancy is None:
			raise ConflictError("occupancy_already_active")

	# --- Invitation-code flow ------------------------------------------------

	async def _redeem_once(self, user_id: UUID, code: str, *, residence_id: UUID | None) -> ClaimOutcome:
		check = await self.registry.inspect_invitation(code, residence_id)
		if isinstance(check, RejectionReason):
			return ClaimOutcome.rejected(check, residence_id=residence_id)
		invitation = check

		# Already-member redemptions must not spend a use.
		if await self.ledger.has_membership(user_id, invitation.residence_id):
			return ClaimOutcome.already_member(invitation.residence_id)

		try:
			async with self.repo.transaction() as conn:
				redeemed = await self.registry.redeem_invitation_code(code, residence_id, conn=conn)
				if isinstance(redeemed, RejectionReason):
					raise _Abort(ClaimOutcome.rejected(redeemed, residence_id=invitation.residence_id))
				membership = await self.ledger.record_membership(
					user_id,
					redeemed.residence_id,
					models.RESIDENT_ROLE,
					conn=conn,
				)
				if membership is None:
					raise _Abort(ClaimOutcome.already_member(redeemed.residence_id))
		except _Abort as abort:
			return abort.outcome
		return ClaimOutcome.granted(invitation.residence_id)

	# --- Shared --------------------------------------------------------------

	async def _spend_join_code_attempt(self, user_id: UUID) -> None:
		"""Charge one guess against the identity's join-code budget."""
		budget = await rate_limit.consume(
			"join_code",
			str(user_id),
			limit=settings.join_code_attempt_limit,
			window_seconds=settings.join_code_attempt_window_seconds,
		)
		if not budget.allowed:
			obs_metrics.inc_join_code_rate_limited()
			raise RateLimitedError("join_code_rate_limited", retry_after=budget.reset_in)

	async def _attempt(self, flow: str, attempt: Callable[[], Awaitable[ClaimOutcome]]) -> ClaimOutcome:
		try:
			return await attempt()
		except TRANSACTION_CONFLICTS:
			# The rerun starts again from the membership check.
			obs_metrics.inc_claim_conflict_retry(flow)
			LOGGER.warning("claim transaction conflict, retrying once", extra={"flow": flow}, exc_info=True)
			return await attempt()

	async def _finish(self, flow: str, user_id: UUID, outcome: ClaimOutcome) -> None:
		reason = outcome.reason.value if outcome.reason else None
		obs_metrics.record_claim(flow, outcome.status.value, reason)
		LOGGER.info(
			"claim %s",
			outcome.status.value,
			extra={
				"flow": flow,
				"user_id": str(user_id),
				"residence_id": str(outcome.residence_id) if outcome.residence_id else None,
				"unit_id": str(outcome.unit_id) if outcome.unit_id else None,
				"reason": reason,
			},
		)
		if outcome.status is ClaimStatus.GRANTED and settings.claim_notifications_enabled:
			await self.notifier.claim_granted(flow=flow, user_id=user_id, outcome=outcome)
