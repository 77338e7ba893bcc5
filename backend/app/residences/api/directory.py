"""Directory endpoints: landing links, residences, buildings and units."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from app.infra.auth import AuthenticatedUser, get_current_user
from app.residences.api._errors import to_http_error
from app.residences.domain.directory import DirectoryStore
from app.residences.domain.exceptions import ResidenceError
from app.residences.schemas import dto

router = APIRouter(tags=["residences:directory"])
_service = DirectoryStore()


@router.get("/landing/{reference}", response_model=dto.LandingResponse)
async def resolve_landing_endpoint(reference: str) -> dto.LandingResponse:
	try:
		target = await _service.resolve_landing(reference)
	except ResidenceError as exc:
		raise to_http_error(exc) from exc
	return dto.LandingResponse(
		residence=dto.ResidenceResponse(**target.residence.model_dump()),
		building=dto.BuildingResponse(**target.building.model_dump()) if target.building else None,
	)


@router.get("/residences/{reference}", response_model=dto.ResidenceResponse)
async def resolve_residence_endpoint(reference: str) -> dto.ResidenceResponse:
	try:
		residence = await _service.resolve_residence(reference)
	except ResidenceError as exc:
		raise to_http_error(exc) from exc
	return dto.ResidenceResponse(**residence.model_dump())


@router.get("/buildings/{reference}", response_model=dto.BuildingResponse)
async def resolve_building_endpoint(
	reference: str,
	residence_id: Optional[UUID] = Query(default=None),
) -> dto.BuildingResponse:
	try:
		building = await _service.resolve_building(reference, residence_id)
	except ResidenceError as exc:
		raise to_http_error(exc) from exc
	return dto.BuildingResponse(**building.model_dump())


@router.get("/residences/{reference}/units", response_model=dto.UnitListResponse)
async def list_units_endpoint(
	reference: str,
	building: Optional[str] = Query(default=None, max_length=64),
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.UnitListResponse:
	try:
		residence = await _service.resolve_residence(reference)
		building_id = None
		if building:
			building_id = (await _service.resolve_building(building, residence.id)).id
		units = await _service.list_units(residence.id, building_id)
	except ResidenceError as exc:
		raise to_http_error(exc) from exc
	return dto.UnitListResponse(items=[dto.UnitResponse.from_unit(unit) for unit in units])


__all__ = ["router"]
