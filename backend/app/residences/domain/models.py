"""Domain models for residences, units and the access records bound to them."""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict

RESIDENT_ROLE = "resident"
MANAGER_ROLES = frozenset({"owner", "admin", "manager", "syndic", "cs"})

OCCUPANCY_PRIMARY = "primary"
OCCUPANCY_OCCUPANT = "occupant"


class Residence(BaseModel):
	"""A managed property."""

	id: UUID
	name: str
	address: Optional[str] = None
	postal_code: Optional[str] = None
	city: Optional[str] = None
	country: Optional[str] = None
	created_at: Optional[datetime] = None

	model_config = ConfigDict(from_attributes=True)


class Building(BaseModel):
	"""Optional subdivision of a residence, used to scope unit listings."""

	id: UUID
	residence_id: UUID
	name: str
	address: Optional[str] = None
	created_at: Optional[datetime] = None

	model_config = ConfigDict(from_attributes=True)


class Unit(BaseModel):
	"""A housing unit ("lot"); `join_code` only matters once a primary occupant exists."""

	id: UUID
	residence_id: UUID
	building_id: Optional[UUID] = None
	lot_number: str
	door: Optional[str] = None
	floor: Optional[int] = None
	rooms: Optional[int] = None
	primary_resident_id: Optional[UUID] = None
	join_code: Optional[str] = None
	created_at: Optional[datetime] = None
	updated_at: Optional[datetime] = None

	model_config = ConfigDict(from_attributes=True)

	@property
	def is_vacant(self) -> bool:
		return self.primary_resident_id is None


class Occupancy(BaseModel):
	"""Binds an identity to a unit as its primary occupant or a dependent."""

	id: UUID
	user_id: UUID
	lot_id: UUID
	type: str
	is_active: bool
	start_date: date
	end_date: Optional[date] = None
	created_at: Optional[datetime] = None

	model_config = ConfigDict(from_attributes=True)


class Membership(BaseModel):
	"""An (identity, residence, role) row."""

	id: UUID
	user_id: UUID
	residence_id: UUID
	role: str
	created_at: Optional[datetime] = None

	model_config = ConfigDict(from_attributes=True)


class Invitation(BaseModel):
	"""Residence-level invitation code with optional expiry and use cap."""

	id: UUID
	residence_id: UUID
	code: str
	is_active: bool
	expires_at: Optional[datetime] = None
	max_uses: Optional[int] = None
	uses_count: int
	created_by: Optional[UUID] = None
	created_at: Optional[datetime] = None

	model_config = ConfigDict(from_attributes=True)

	@property
	def remaining_uses(self) -> Optional[int]:
		if self.max_uses is None:
			return None
		return max(0, self.max_uses - self.uses_count)
