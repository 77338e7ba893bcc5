"""Household listing and dependent removal for a unit."""

from __future__ import annotations

import logging
from uuid import UUID

from app.infra.auth import AuthenticatedUser
from app.residences.domain import models, policies, repo as repo_module
from app.residences.domain.exceptions import ConflictError, NotFoundError
from app.residences.domain.retry import read_with_retry

LOGGER = logging.getLogger(__name__)


class HouseholdService:
	"""Active occupancies of a unit and the primary occupant's controls over them."""

	def __init__(self, *, repository: repo_module.ResidencesRepository | None = None) -> None:
		self.repo = repository or repo_module.ResidencesRepository()

	async def list_household(self, user: AuthenticatedUser, unit_id: UUID) -> list[models.Occupancy]:
		unit = await self._require_unit(unit_id)
		occupancies = await read_with_retry("household", lambda: self.repo.list_active_occupancies(unit_id))
		roles = await self.repo.list_roles(policies.actor_id(user), unit.residence_id)
		policies.assert_can_view_household(user, roles, occupancies)
		return occupancies

	async def end_occupancy(self, user: AuthenticatedUser, occupancy_id: UUID) -> models.Occupancy:
		"""Deactivate a dependent occupancy, dropping the resident role when it was the last one."""
		occupancy = await self.repo.get_occupancy(occupancy_id)
		if occupancy is None:
			raise NotFoundError("occupancy_not_found")
		unit = await self._require_unit(occupancy.lot_id)
		roles = await self.repo.list_roles(policies.actor_id(user), unit.residence_id)
		policies.assert_can_end_occupancy(user, roles, unit)
		if occupancy.type == models.OCCUPANCY_PRIMARY:
			raise ConflictError("primary_occupancy_locked")

		async with self.repo.transaction() as conn:
			ended = await self.repo.end_occupancy(occupancy_id, conn=conn)
			if ended is None:
				raise ConflictError("occupancy_not_active")
			remaining = await self.repo.count_active_occupancies_in_residence(
				ended.user_id,
				unit.residence_id,
				conn=conn,
			)
			if remaining == 0:
				await self.repo.delete_resident_membership(
					user_id=ended.user_id,
					residence_id=unit.residence_id,
					conn=conn,
				)
		LOGGER.info(
			"occupancy ended",
			extra={
				"occupancy_id": str(occupancy_id),
				"unit_id": str(unit.id),
				"residence_id": str(unit.residence_id),
				"actor_id": user.id,
				"membership_removed": remaining == 0,
			},
		)
		return ended

	async def _require_unit(self, unit_id: UUID) -> models.Unit:
		unit = await read_with_retry("unit", lambda: self.repo.get_unit(unit_id))
		if unit is None:
			raise NotFoundError("unit_not_found")
		return unit
