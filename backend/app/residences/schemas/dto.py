"""Pydantic schemas for the residence access API."""

from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.residences.domain import models
from app.residences.domain.outcomes import ClaimOutcome


class ResidenceResponse(BaseModel):
	id: UUID
	name: str
	address: Optional[str] = None
	postal_code: Optional[str] = None
	city: Optional[str] = None
	country: Optional[str] = None


class BuildingResponse(BaseModel):
	id: UUID
	residence_id: UUID
	name: str
	address: Optional[str] = None


class LandingResponse(BaseModel):
	residence: ResidenceResponse
	building: Optional[BuildingResponse] = None


class UnitResponse(BaseModel):
	"""Public view of a unit; the join code is never listed."""

	id: UUID
	residence_id: UUID
	building_id: Optional[UUID] = None
	lot_number: str
	door: Optional[str] = None
	floor: Optional[int] = None
	rooms: Optional[int] = None
	is_vacant: bool

	@classmethod
	def from_unit(cls, unit: models.Unit) -> "UnitResponse":
		return cls(
			id=unit.id,
			residence_id=unit.residence_id,
			building_id=unit.building_id,
			lot_number=unit.lot_number,
			door=unit.door,
			floor=unit.floor,
			rooms=unit.rooms,
			is_vacant=unit.is_vacant,
		)


class UnitListResponse(BaseModel):
	items: List[UnitResponse]


class ClaimUnitRequest(BaseModel):
	unit_id: UUID
	building_id: Optional[UUID] = None
	code: Optional[str] = Field(default=None, max_length=32)


class RedeemInvitationRequest(BaseModel):
	code: str = Field(..., min_length=1, max_length=32)
	residence_id: Optional[UUID] = None


class ClaimOutcomeResponse(BaseModel):
	status: str
	reason: Optional[str] = None
	residence_id: Optional[UUID] = None
	unit_id: Optional[UUID] = None
	occupancy_kind: Optional[str] = None

	@classmethod
	def from_outcome(cls, outcome: ClaimOutcome) -> "ClaimOutcomeResponse":
		return cls(
			status=outcome.status.value,
			reason=outcome.reason.value if outcome.reason else None,
			residence_id=outcome.residence_id,
			unit_id=outcome.unit_id,
			occupancy_kind=outcome.occupancy_kind,
		)


class JoinCodeResponse(BaseModel):
	unit_id: UUID
	join_code: str


class InvitationCreateRequest(BaseModel):
	expires_in: Optional[str] = Field(default=None, pattern="^(1day|7days|30days|never)$")
	expires_at: Optional[datetime] = None
	max_uses: Optional[int] = Field(default=None, ge=1)


class InvitationResponse(BaseModel):
	id: UUID
	residence_id: UUID
	code: str
	is_active: bool
	expires_at: Optional[datetime] = None
	max_uses: Optional[int] = None
	uses_count: int
	remaining_uses: Optional[int] = None
	created_by: Optional[UUID] = None
	created_at: Optional[datetime] = None

	@classmethod
	def from_invitation(cls, invitation: models.Invitation) -> "InvitationResponse":
		return cls(**invitation.model_dump(), remaining_uses=invitation.remaining_uses)


class InvitationListResponse(BaseModel):
	items: List[InvitationResponse]


class OccupancyResponse(BaseModel):
	id: UUID
	user_id: UUID
	lot_id: UUID
	type: str
	is_active: bool
	start_date: date
	end_date: Optional[date] = None


class HouseholdResponse(BaseModel):
	unit_id: UUID
	items: List[OccupancyResponse]


class ContinuationCreateRequest(BaseModel):
	reference: Optional[str] = Field(default=None, max_length=64)
	invitation_code: Optional[str] = Field(default=None, max_length=32)


class ContinuationResponse(BaseModel):
	token: str
	expires_in: int


class ContinuationResumeRequest(BaseModel):
	token: str = Field(..., min_length=1)


class ContinuationTargetResponse(BaseModel):
	residence_id: Optional[UUID] = None
	building_id: Optional[UUID] = None
	invitation_code: Optional[str] = None
