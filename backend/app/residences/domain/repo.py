"""Async repository helpers for the residence access domain.

Contended rows (a unit's primary occupant and an invitation's use counter) are
only ever changed through single conditional UPDATE statements. Methods that
take `conn` run on the caller's connection so several of them can share one
transaction opened with `transaction()`.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Optional
from uuid import UUID, uuid4

import asyncpg

from app.infra.postgres import get_pool
from app.residences.domain import models
from app.residences.domain.exceptions import ConflictError


@asynccontextmanager
async def _connection(conn: Optional[asyncpg.Connection]) -> AsyncIterator[asyncpg.Connection]:
	if conn is not None:
		yield conn
		return
	pool = await get_pool()
	async with pool.acquire() as pooled_conn:
		yield pooled_conn


class ResidencesRepository:
	"""Thin data-access layer around asyncpg."""

	@asynccontextmanager
	async def transaction(self) -> AsyncIterator[asyncpg.Connection]:
		pool = await get_pool()
		async with pool.acquire() as conn:
			async with conn.transaction():
				yield conn

	# --- Directory reads ----------------------------------------------------

	async def get_residence(self, residence_id: UUID) -> models.Residence | None:
		async with _connection(None) as conn:
			record = await conn.fetchrow("SELECT * FROM residences WHERE id=$1", residence_id)
		return models.Residence.model_validate(dict(record)) if record else None

	async def find_residences_by_prefix(self, prefix: str, *, limit: int = 2) -> list[models.Residence]:
		async with _connection(None) as conn:
			rows = await conn.fetch(
				"""
				SELECT * FROM residences
				WHERE id::text LIKE $1 || '%'
				ORDER BY id
				LIMIT $2
				""",
				prefix,
				limit,
			)
		return [models.Residence.model_validate(dict(row)) for row in rows]

	async def get_building(self, building_id: UUID) -> models.Building | None:
		async with _connection(None) as conn:
			record = await conn.fetchrow("SELECT * FROM buildings WHERE id=$1", building_id)
		return models.Building.model_validate(dict(record)) if record else None

	async def find_buildings_by_prefix(
		self,
		prefix: str,
		*,
		residence_id: UUID | None = None,
		limit: int = 2,
	) -> list[models.Building]:
		async with _connection(None) as conn:
			rows = await conn.fetch(
				"""
				SELECT * FROM buildings
				WHERE id::text LIKE $1 || '%'
					AND ($2::uuid IS NULL OR residence_id = $2)
				ORDER BY id
				LIMIT $3
				""",
				prefix,
				residence_id,
				limit,
			)
		return [models.Building.model_validate(dict(row)) for row in rows]

	async def list_units(self, residence_id: UUID, *, building_id: UUID | None = None) -> list[models.Unit]:
		async with _connection(None) as conn:
			rows = await conn.fetch(
				"""
				SELECT * FROM lots
				WHERE residence_id=$1
					AND ($2::uuid IS NULL OR building_id = $2)
				ORDER BY floor ASC NULLS LAST, door ASC NULLS LAST, lot_number ASC, id ASC
				""",
				residence_id,
				building_id,
			)
		return [models.Unit.model_validate(dict(row)) for row in rows]

	async def get_unit(self, unit_id: UUID, *, conn: asyncpg.Connection | None = None) -> models.Unit | None:
		async with _connection(conn) as active:
			record = await active.fetchrow("SELECT * FROM lots WHERE id=$1", unit_id)
		return models.Unit.model_validate(dict(record)) if record else None

	async def lock_unit(self, unit_id: UUID, *, conn: asyncpg.Connection) -> models.Unit | None:
		"""Read a unit and hold a share lock on it until the transaction ends."""
		record = await conn.fetchrow("SELECT * FROM lots WHERE id=$1 FOR SHARE", unit_id)
		return models.Unit.model_validate(dict(record)) if record else None

	# --- Membership & occupancy ---------------------------------------------

	async def has_membership(
		self,
		user_id: UUID,
		residence_id: UUID,
		*,
		conn: asyncpg.Connection | None = None,
	) -> bool:
		async with _connection(conn) as active:
			found = await active.fetchval(
				"SELECT EXISTS (SELECT 1 FROM user_roles WHERE user_id=$1 AND residence_id=$2)",
				user_id,
				residence_id,
			)
		return bool(found)

	async def list_roles(self, user_id: UUID, residence_id: UUID) -> list[str]:
		async with _connection(None) as conn:
			rows = await conn.fetch(
				"SELECT role FROM user_roles WHERE user_id=$1 AND residence_id=$2",
				user_id,
				residence_id,
			)
		return [row["role"] for row in rows]

	async def insert_membership(
		self,
		*,
		user_id: UUID,
		residence_id: UUID,
		role: str,
		conn: asyncpg.Connection,
	) -> models.Membership | None:
		"""Insert a role row; None when the resident row already exists."""
		record = await conn.fetchrow(
			"""
			INSERT INTO user_roles (id, user_id, residence_id, role)
			VALUES ($1, $2, $3, $4)
			ON CONFLICT (user_id, residence_id) WHERE role = 'resident' DO NOTHING
			RETURNING *
			""",
			uuid4(),
			user_id,
			residence_id,
			role,
		)
		return models.Membership.model_validate(dict(record)) if record else None

	async def delete_resident_membership(
		self,
		*,
		user_id: UUID,
		residence_id: UUID,
		conn: asyncpg.Connection,
	) -> int:
		result = await conn.execute(
			"DELETE FROM user_roles WHERE user_id=$1 AND residence_id=$2 AND role='resident'",
			user_id,
			residence_id,
		)
		return int(result.split()[-1]) if result else 0

	async def insert_occupancy(
		self,
		*,
		user_id: UUID,
		lot_id: UUID,
		kind: str,
		conn: asyncpg.Connection,
	) -> models.Occupancy | None:
		"""Insert an active occupancy; None when one is already active for the pair."""
		record = await conn.fetchrow(
			"""
			INSERT INTO occupancies (id, user_id, lot_id, type, is_active, start_date)
			VALUES ($1, $2, $3, $4, TRUE, CURRENT_DATE)
			ON CONFLICT (user_id, lot_id) WHERE is_active DO NOTHING
			RETURNING *
			""",
			uuid4(),
			user_id,
			lot_id,
			kind,
		)
		return models.Occupancy.model_validate(dict(record)) if record else None

	async def set_primary_resident(
		self,
		unit_id: UUID,
		user_id: UUID,
		*,
		conn: asyncpg.Connection,
	) -> models.Unit | None:
		"""Compare-and-set on a vacant unit; None when the unit is no longer vacant."""
		record = await conn.fetchrow(
			"""
			UPDATE lots
			SET primary_resident_id = $2, updated_at = NOW()
			WHERE id=$1 AND primary_resident_id IS NULL
			RETURNING *
			""",
			unit_id,
			user_id,
		)
		return models.Unit.model_validate(dict(record)) if record else None

	async def list_active_occupancies(self, lot_id: UUID) -> list[models.Occupancy]:
		async with _connection(None) as conn:
			rows = await conn.fetch(
				"""
				SELECT * FROM occupancies
				WHERE lot_id=$1 AND is_active
				ORDER BY start_date ASC, created_at ASC
				""",
				lot_id,
			)
		return [models.Occupancy.model_validate(dict(row)) for row in rows]

	async def get_occupancy(self, occupancy_id: UUID) -> models.Occupancy | None:
		async with _connection(None) as conn:
			record = await conn.fetchrow("SELECT * FROM occupancies WHERE id=$1", occupancy_id)
		return models.Occupancy.model_validate(dict(record)) if record else None

	async def end_occupancy(self, occupancy_id: UUID, *, conn: asyncpg.Connection) -> models.Occupancy | None:
		record = await conn.fetchrow(
			"""
			UPDATE occupancies
			SET is_active = FALSE, end_date = CURRENT_DATE
			WHERE id=$1 AND is_active
			RETURNING *
			""",
			occupancy_id,
		)
		return models.Occupancy.model_validate(dict(record)) if record else None

	async def count_active_occupancies_in_residence(
		self,
		user_id: UUID,
		residence_id: UUID,
		*,
		conn: asyncpg.Connection,
	) -> int:
		count = await conn.fetchval(
			"""
			SELECT COUNT(*) FROM occupancies o
			JOIN lots l ON l.id = o.lot_id
			WHERE o.user_id=$1 AND l.residence_id=$2 AND o.is_active
			""",
			user_id,
			residence_id,
		)
		return int(count or 0)

	# --- Codes --------------------------------------------------------------

	async def update_join_code(self, unit_id: UUID, code: str) -> models.Unit | None:
		async with _connection(None) as conn:
			record = await conn.fetchrow(
				"""
				UPDATE lots
				SET join_code = $2, updated_at = NOW()
				WHERE id=$1
				RETURNING *
				""",
				unit_id,
				code,
			)
		return models.Unit.model_validate(dict(record)) if record else None

	async def get_invitation(self, invitation_id: UUID) -> models.Invitation | None:
		async with _connection(None) as conn:
			record = await conn.fetchrow("SELECT * FROM residence_invitations WHERE id=$1", invitation_id)
		return models.Invitation.model_validate(dict(record)) if record else None

	async def get_invitation_by_code(
		self,
		code: str,
		*,
		conn: asyncpg.Connection | None = None,
	) -> models.Invitation | None:
		async with _connection(conn) as active:
			record = await active.fetchrow(
				"SELECT * FROM residence_invitations WHERE upper(code) = upper($1)",
				code,
			)
		return models.Invitation.model_validate(dict(record)) if record else None

	async def consume_invitation(
		self,
		invitation_id: UUID,
		*,
		now: datetime,
		conn: asyncpg.Connection,
	) -> models.Invitation | None:
		"""Spend one use if the invitation is still redeemable at `now`."""
		record = await conn.fetchrow(
			"""
			UPDATE residence_invitations
			SET uses_count = uses_count + 1, updated_at = NOW()
			WHERE id=$1
				AND is_active
				AND (expires_at IS NULL OR expires_at >= $2)
				AND (max_uses IS NULL OR uses_count < max_uses)
			RETURNING *
			""",
			invitation_id,
			now,
		)
		return models.Invitation.model_validate(dict(record)) if record else None

	async def create_invitation(
		self,
		*,
		residence_id: UUID,
		code: str,
		created_by: UUID,
		expires_at: datetime | None,
		max_uses: int | None,
	) -> models.Invitation:
		async with _connection(None) as conn:
			try:
				record = await conn.fetchrow(
					"""
					INSERT INTO residence_invitations (id, residence_id, code, created_by, expires_at, max_uses)
					VALUES ($1, $2, $3, $4, $5, $6)
					RETURNING *
					""",
					uuid4(),
					residence_id,
					code,
					created_by,
					expires_at,
					max_uses,
				)
			except asyncpg.UniqueViolationError as exc:  # type: ignore[attr-defined]
				raise ConflictError("invitation_code_exists") from exc
		return models.Invitation.model_validate(dict(record))

	async def list_invitations(
		self,
		residence_id: UUID,
		*,
		include_inactive: bool = False,
	) -> list[models.Invitation]:
		async with _connection(None) as conn:
			rows = await conn.fetch(
				"""
				SELECT * FROM residence_invitations
				WHERE residence_id=$1 AND (is_active OR $2)
				ORDER BY created_at DESC
				""",
				residence_id,
				include_inactive,
			)
		return [models.Invitation.model_validate(dict(row)) for row in rows]

	async def deactivate_invitation(self, invitation_id: UUID) -> models.Invitation | None:
		async with _connection(None) as conn:
			record = await conn.fetchrow(
				"""
				UPDATE residence_invitations
				SET is_active = FALSE, updated_at = NOW()
				WHERE id=$1
				RETURNING *
				""",
				invitation_id,
			)
		return models.Invitation.model_validate(dict(record)) if record else None
