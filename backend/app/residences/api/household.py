"""Household endpoints for a unit's occupancies."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends

from app.infra.auth import AuthenticatedUser, get_current_user
from app.residences.api._errors import to_http_error
from app.residences.domain.exceptions import ResidenceError
from app.residences.domain.household_service import HouseholdService
from app.residences.schemas import dto

router = APIRouter(tags=["residences:household"])
_service = HouseholdService()


@router.get("/units/{unit_id}/household", response_model=dto.HouseholdResponse)
async def list_household_endpoint(
	unit_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.HouseholdResponse:
	try:
		occupancies = await _service.list_household(auth_user, unit_id)
	except ResidenceError as exc:
		raise to_http_error(exc) from exc
	return dto.HouseholdResponse(
		unit_id=unit_id,
		items=[dto.OccupancyResponse(**occupancy.model_dump()) for occupancy in occupancies],
	)


@router.post("/occupancies/{occupancy_id}/end", response_model=dto.OccupancyResponse)
async def end_occupancy_endpoint(
	occupancy_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.OccupancyResponse:
	try:
		occupancy = await _service.end_occupancy(auth_user, occupancy_id)
	except ResidenceError as exc:
		raise to_http_error(exc) from exc
	return dto.OccupancyResponse(**occupancy.model_dump())


__all__ = ["router"]
