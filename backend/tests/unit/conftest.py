"""In-memory stand-in for ResidencesRepository.

Transactions are serialised by a lock and run against a private copy of the
state whose changed rows are merged back only when the block exits cleanly, so
conditional writes behave like their SQL counterparts and an exception inside a
transaction leaves nothing behind. Every call yields to the event loop first,
letting `asyncio.gather` interleave concurrent claim attempts.
"""

from __future__ import annotations

import asyncio
import copy
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, fields
from datetime import date, datetime, timedelta, timezone
from typing import AsyncIterator, Optional
from uuid import UUID, uuid4

import pytest

from app.residences.domain import models
from app.residences.domain.coordinator import ClaimCoordinator
from app.residences.domain.exceptions import ConflictError
from app.residences.domain.outcomes import ClaimOutcome


@dataclass
class _State:
	residences: dict[UUID, models.Residence] = field(default_factory=dict)
	buildings: dict[UUID, models.Building] = field(default_factory=dict)
	units: dict[UUID, models.Unit] = field(default_factory=dict)
	occupancies: dict[UUID, models.Occupancy] = field(default_factory=dict)
	memberships: dict[UUID, models.Membership] = field(default_factory=dict)
	invitations: dict[UUID, models.Invitation] = field(default_factory=dict)


class FakeConnection:
	def __init__(self, state: _State) -> None:
		self.state = state


class FakeResidencesRepository:
	def __init__(self) -> None:
		self.state = _State()
		self.commits = 0
		self.transaction_errors: list[BaseException] = []
		self._lock = asyncio.Lock()
		self._tick = datetime(2024, 1, 1, tzinfo=timezone.utc)

	# --- seeding ---------------------------------------------------------------

	def _now(self) -> datetime:
		self._tick += timedelta(seconds=1)
		return self._tick

	def add_residence(self, name: str = "Les Tilleuls", *, residence_id: UUID | None = None) -> models.Residence:
		residence = models.Residence(id=residence_id or uuid4(), name=name, created_at=self._now())
		self.state.residences[residence.id] = residence
		return residence

	def add_building(
		self,
		residence: models.Residence,
		name: str = "A",
		*,
		building_id: UUID | None = None,
	) -> models.Building:
		building = models.Building(id=building_id or uuid4(), residence_id=residence.id, name=name)
		self.state.buildings[building.id] = building
		return building

	def add_unit(
		self,
		residence: models.Residence,
		lot_number: str = "1",
		*,
		building: models.Building | None = None,
		floor: int | None = None,
		door: str | None = None,
		join_code: str | None = None,
	) -> models.Unit:
		unit = models.Unit(
			id=uuid4(),
			residence_id=residence.id,
			building_id=building.id if building else None,
			lot_number=lot_number,
			floor=floor,
			door=door,
			join_code=join_code,
		)
		self.state.units[unit.id] = unit
		return unit

	def seat_primary(self, unit: models.Unit, user_id: UUID) -> models.Unit:
		"""Make `user_id` the unit's primary occupant with matching ledger rows."""
		seated = unit.model_copy(update={"primary_resident_id": user_id})
		self.state.units[unit.id] = seated
		self.add_membership(user_id, unit.residence_id)
		self.add_occupancy(user_id, seated, models.OCCUPANCY_PRIMARY)
		return seated

	def add_membership(self, user_id: UUID, residence_id: UUID, role: str = models.RESIDENT_ROLE) -> models.Membership:
		membership = models.Membership(id=uuid4(), user_id=user_id, residence_id=residence_id, role=role)
		self.state.memberships[membership.id] = membership
		return membership

	def add_occupancy(self, user_id: UUID, unit: models.Unit, kind: str) -> models.Occupancy:
		occupancy = models.Occupancy(
			id=uuid4(),
			user_id=user_id,
			lot_id=unit.id,
			type=kind,
			is_active=True,
			start_date=date.today(),
			created_at=self._now(),
		)
		self.state.occupancies[occupancy.id] = occupancy
		return occupancy

	def add_invitation(
		self,
		residence: models.Residence,
		code: str,
		*,
		max_uses: int | None = None,
		uses_count: int = 0,
		expires_at: datetime | None = None,
		is_active: bool = True,
	) -> models.Invitation:
		invitation = models.Invitation(
			id=uuid4(),
			residence_id=residence.id,
			code=code,
			is_active=is_active,
			expires_at=expires_at,
			max_uses=max_uses,
			uses_count=uses_count,
			created_at=self._now(),
		)
		self.state.invitations[invitation.id] = invitation
		return invitation

	# --- inspection ------------------------------------------------------------

	def resident_rows(self, user_id: UUID, residence_id: UUID) -> list[models.Membership]:
		return [
			m
			for m in self.state.memberships.values()
			if m.user_id == user_id and m.residence_id == residence_id and m.role == models.RESIDENT_ROLE
		]

	def active_occupancies_of(self, user_id: UUID) -> list[models.Occupancy]:
		return [o for o in self.state.occupancies.values() if o.user_id == user_id and o.is_active]

	def unit(self, unit_id: UUID) -> models.Unit:
		return self.state.units[unit_id]

	def invitation(self, invitation_id: UUID) -> models.Invitation:
		return self.state.invitations[invitation_id]

	# --- repository surface ----------------------------------------------------

	def _view(self, conn: Optional[FakeConnection]) -> _State:
		return conn.state if conn is not None else self.state

	@asynccontextmanager
	async def transaction(self) -> AsyncIterator[FakeConnection]:
		async with self._lock:
			if self.transaction_errors:
				raise self.transaction_errors.pop(0)
			snapshot = copy.deepcopy(self.state)
			working = copy.deepcopy(self.state)
			yield FakeConnection(working)
			self._merge(snapshot, working)
			self.commits += 1

	def _merge(self, snapshot: _State, working: _State) -> None:
		"""Apply only the rows this transaction touched; writes made outside it survive."""
		for table in fields(_State):
			before = getattr(snapshot, table.name)
			after = getattr(working, table.name)
			committed = getattr(self.state, table.name)
			for row_id, row in after.items():
				if before.get(row_id) != row:
					committed[row_id] = row
			for row_id in before.keys() - after.keys():
				committed.pop(row_id, None)

	async def get_residence(self, residence_id: UUID) -> models.Residence | None:
		await asyncio.sleep(0)
		return self.state.residences.get(residence_id)

	async def find_residences_by_prefix(self, prefix: str, *, limit: int = 2) -> list[models.Residence]:
		await asyncio.sleep(0)
		matches = sorted((r for r in self.state.residences.values() if str(r.id).startswith(prefix)), key=lambda r: str(r.id))
		return matches[:limit]

	async def get_building(self, building_id: UUID) -> models.Building | None:
		await asyncio.sleep(0)
		return self.state.buildings.get(building_id)

	async def find_buildings_by_prefix(
		self,
		prefix: str,
		*,
		residence_id: UUID | None = None,
		limit: int = 2,
	) -> list[models.Building]:
		await asyncio.sleep(0)
		matches = sorted(
			(
				b
				for b in self.state.buildings.values()
				if str(b.id).startswith(prefix) and (residence_id is None or b.residence_id == residence_id)
			),
			key=lambda b: str(b.id),
		)
		return matches[:limit]

	async def list_units(self, residence_id: UUID, *, building_id: UUID | None = None) -> list[models.Unit]:
		await asyncio.sleep(0)
		units = [
			u
			for u in self.state.units.values()
			if u.residence_id == residence_id and (building_id is None or u.building_id == building_id)
		]
		return sorted(
			units,
			key=lambda u: (u.floor is None, u.floor or 0, u.door is None, u.door or "", u.lot_number, str(u.id)),
		)

	async def get_unit(self, unit_id: UUID, *, conn: FakeConnection | None = None) -> models.Unit | None:
		await asyncio.sleep(0)
		return self._view(conn).units.get(unit_id)

	async def lock_unit(self, unit_id: UUID, *, conn: FakeConnection) -> models.Unit | None:
		await asyncio.sleep(0)
		return conn.state.units.get(unit_id)

	async def has_membership(self, user_id: UUID, residence_id: UUID, *, conn: FakeConnection | None = None) -> bool:
		await asyncio.sleep(0)
		return any(
			m.user_id == user_id and m.residence_id == residence_id for m in self._view(conn).memberships.values()
		)

	async def list_roles(self, user_id: UUID, residence_id: UUID) -> list[str]:
		await asyncio.sleep(0)
		return [
			m.role for m in self.state.memberships.values() if m.user_id == user_id and m.residence_id == residence_id
		]

	async def insert_membership(
		self,
		*,
		user_id: UUID,
		residence_id: UUID,
		role: str,
		conn: FakeConnection,
	) -> models.Membership | None:
		await asyncio.sleep(0)
		if role == models.RESIDENT_ROLE and any(
			m.user_id == user_id and m.residence_id == residence_id and m.role == models.RESIDENT_ROLE
			for m in conn.state.memberships.values()
		):
			return None
		membership = models.Membership(id=uuid4(), user_id=user_id, residence_id=residence_id, role=role)
		conn.state.memberships[membership.id] = membership
		return membership

	async def delete_resident_membership(self, *, user_id: UUID, residence_id: UUID, conn: FakeConnection) -> int:
		await asyncio.sleep(0)
		doomed = [
			key
			for key, m in conn.state.memberships.items()
			if m.user_id == user_id and m.residence_id == residence_id and m.role == models.RESIDENT_ROLE
		]
		for key in doomed:
			del conn.state.memberships[key]
		return len(doomed)

	async def insert_occupancy(
		self,
		*,
		user_id: UUID,
		lot_id: UUID,
		kind: str,
		conn: FakeConnection,
	) -> models.Occupancy | None:
		await asyncio.sleep(0)
		if any(o.user_id == user_id and o.lot_id == lot_id and o.is_active for o in conn.state.occupancies.values()):
			return None
		occupancy = models.Occupancy(
			id=uuid4(),
			user_id=user_id,
			lot_id=lot_id,
			type=kind,
			is_active=True,
			start_date=date.today(),
			created_at=self._now(),
		)
		conn.state.occupancies[occupancy.id] = occupancy
		return occupancy

	async def set_primary_resident(self, unit_id: UUID, user_id: UUID, *, conn: FakeConnection) -> models.Unit | None:
		await asyncio.sleep(0)
		unit = conn.state.units.get(unit_id)
		if unit is None or unit.primary_resident_id is not None:
			return None
		claimed = unit.model_copy(update={"primary_resident_id": user_id})
		conn.state.units[unit_id] = claimed
		return claimed

	async def list_active_occupancies(self, lot_id: UUID) -> list[models.Occupancy]:
		await asyncio.sleep(0)
		active = [o for o in self.state.occupancies.values() if o.lot_id == lot_id and o.is_active]
		return sorted(active, key=lambda o: (o.start_date, o.created_at))

	async def get_occupancy(self, occupancy_id: UUID) -> models.Occupancy | None:
		await asyncio.sleep(0)
		return self.state.occupancies.get(occupancy_id)

	async def end_occupancy(self, occupancy_id: UUID, *, conn: FakeConnection) -> models.Occupancy | None:
		await asyncio.sleep(0)
		occupancy = conn.state.occupancies.get(occupancy_id)
		if occupancy is None or not occupancy.is_active:
			return None
		ended = occupancy.model_copy(update={"is_active": False, "end_date": date.today()})
		conn.state.occupancies[occupancy_id] = ended
		return ended

	async def count_active_occupancies_in_residence(
		self,
		user_id: UUID,
		residence_id: UUID,
		*,
		conn: FakeConnection,
	) -> int:
		await asyncio.sleep(0)
		return sum(
			1
			for o in conn.state.occupancies.values()
			if o.user_id == user_id and o.is_active and conn.state.units[o.lot_id].residence_id == residence_id
		)

	async def update_join_code(self, unit_id: UUID, code: str) -> models.Unit | None:
		await asyncio.sleep(0)
		unit = self.state.units.get(unit_id)
		if unit is None:
			return None
		updated = unit.model_copy(update={"join_code": code})
		self.state.units[unit_id] = updated
		return updated

	async def get_invitation(self, invitation_id: UUID) -> models.Invitation | None:
		await asyncio.sleep(0)
		return self.state.invitations.get(invitation_id)

	async def get_invitation_by_code(self, code: str, *, conn: FakeConnection | None = None) -> models.Invitation | None:
		await asyncio.sleep(0)
		for invitation in self._view(conn).invitations.values():
			if invitation.code.upper() == code.upper():
				return invitation
		return None

	async def consume_invitation(
		self,
		invitation_id: UUID,
		*,
		now: datetime,
		conn: FakeConnection,
	) -> models.Invitation | None:
		await asyncio.sleep(0)
		invitation = conn.state.invitations.get(invitation_id)
		if invitation is None or not invitation.is_active:
			return None
		if invitation.expires_at is not None and invitation.expires_at < now:
			return None
		if invitation.max_uses is not None and invitation.uses_count >= invitation.max_uses:
			return None
		consumed = invitation.model_copy(update={"uses_count": invitation.uses_count + 1})
		conn.state.invitations[invitation_id] = consumed
		return consumed

	async def create_invitation(
		self,
		*,
		residence_id: UUID,
		code: str,
		created_by: UUID,
		expires_at: datetime | None,
		max_uses: int | None,
	) -> models.Invitation:
		await asyncio.sleep(0)
		if any(i.code.upper() == code.upper() for i in self.state.invitations.values()):
			raise ConflictError("invitation_code_exists")
		invitation = models.Invitation(
			id=uuid4(),
			residence_id=residence_id,
			code=code,
			is_active=True,
			expires_at=expires_at,
			max_uses=max_uses,
			uses_count=0,
			created_by=created_by,
			created_at=self._now(),
		)
		self.state.invitations[invitation.id] = invitation
		return invitation

	async def list_invitations(self, residence_id: UUID, *, include_inactive: bool = False) -> list[models.Invitation]:
		await asyncio.sleep(0)
		rows = [
			i
			for i in self.state.invitations.values()
			if i.residence_id == residence_id and (i.is_active or include_inactive)
		]
		return sorted(rows, key=lambda i: i.created_at, reverse=True)

	async def deactivate_invitation(self, invitation_id: UUID) -> models.Invitation | None:
		await asyncio.sleep(0)
		invitation = self.state.invitations.get(invitation_id)
		if invitation is None:
			return None
		updated = invitation.model_copy(update={"is_active": False})
		self.state.invitations[invitation_id] = updated
		return updated


class RecordingNotifier:
	def __init__(self) -> None:
		self.events: list[tuple[str, UUID, ClaimOutcome]] = []

	async def claim_granted(self, *, flow: str, user_id: UUID, outcome: ClaimOutcome) -> None:
		self.events.append((flow, user_id, outcome))


@pytest.fixture()
def fake_repo() -> FakeResidencesRepository:
	return FakeResidencesRepository()


@pytest.fixture()
def notifier() -> RecordingNotifier:
	return RecordingNotifier()


@pytest.fixture()
def coordinator(fake_repo, notifier) -> ClaimCoordinator:
	return ClaimCoordinator(repository=fake_repo, notifier=notifier)
