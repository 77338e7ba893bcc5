"""Membership and occupancy records.

The ledger persists; it does not decide. Callers validate first and pass the
connection of their open transaction so every write of a grant commits or rolls
back together.
"""

from __future__ import annotations

from uuid import UUID

import asyncpg

from app.residences.domain import models, repo as repo_module
from app.residences.domain.retry import read_with_retry


class MembershipLedger:
	"""Authoritative record of who belongs to which residence and unit."""

	def __init__(self, *, repository: repo_module.ResidencesRepository | None = None) -> None:
		self.repo = repository or repo_module.ResidencesRepository()

	async def has_membership(self, user_id: UUID, residence_id: UUID) -> bool:
		"""True when any role row already ties the identity to the residence."""
		return await read_with_retry(
			"membership",
			lambda: self.repo.has_membership(user_id, residence_id),
		)

	async def record_membership(
		self,
		user_id: UUID,
		residence_id: UUID,
		role: str,
		*,
		conn: asyncpg.Connection,
	) -> models.Membership | None:
		return await self.repo.insert_membership(
			user_id=user_id,
			residence_id=residence_id,
			role=role,
			conn=conn,
		)

	async def record_occupancy(
		self,
		user_id: UUID,
		unit_id: UUID,
		kind: str,
		*,
		conn: asyncpg.Connection,
	) -> models.Occupancy | None:
		return await self.repo.insert_occupancy(user_id=user_id, lot_id=unit_id, kind=kind, conn=conn)

	async def set_primary_occupant(
		self,
		unit_id: UUID,
		user_id: UUID,
		*,
		conn: asyncpg.Connection,
	) -> bool:
		"""Compare-and-set the unit's primary occupant from empty to `user_id`."""
		claimed = await self.repo.set_primary_resident(unit_id, user_id, conn=conn)
		return claimed is not None
