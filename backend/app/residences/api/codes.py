"""Join-code rotation and invitation management endpoints."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query

from app.infra.auth import AuthenticatedUser, get_current_user
from app.residences.api._errors import to_http_error
from app.residences.domain.codes import CodeRegistry
from app.residences.domain.exceptions import ResidenceError
from app.residences.schemas import dto

router = APIRouter(tags=["residences:codes"])
_service = CodeRegistry()


@router.post("/units/{unit_id}/join-code/rotate", response_model=dto.JoinCodeResponse)
async def rotate_join_code_endpoint(
	unit_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.JoinCodeResponse:
	try:
		code = await _service.rotate_unit_join_code(auth_user, unit_id)
	except ResidenceError as exc:
		raise to_http_error(exc) from exc
	return dto.JoinCodeResponse(unit_id=unit_id, join_code=code)


@router.get("/residences/{residence_id}/invitations", response_model=dto.InvitationListResponse)
async def list_invitations_endpoint(
	residence_id: UUID,
	include_inactive: bool = Query(default=False),
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.InvitationListResponse:
	try:
		invitations = await _service.list_invitations(auth_user, residence_id, include_inactive=include_inactive)
	except ResidenceError as exc:
		raise to_http_error(exc) from exc
	return dto.InvitationListResponse(items=[dto.InvitationResponse.from_invitation(item) for item in invitations])


@router.post("/residences/{residence_id}/invitations", response_model=dto.InvitationResponse, status_code=201)
async def create_invitation_endpoint(
	residence_id: UUID,
	payload: dto.InvitationCreateRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.InvitationResponse:
	try:
		invitation = await _service.create_invitation(
			auth_user,
			residence_id,
			expires_in=payload.expires_in,  # type: ignore[arg-type]
			expires_at=payload.expires_at,
			max_uses=payload.max_uses,
		)
	except ResidenceError as exc:
		raise to_http_error(exc) from exc
	return dto.InvitationResponse.from_invitation(invitation)


@router.post("/invitations/{invitation_id}/deactivate", response_model=dto.InvitationResponse)
async def deactivate_invitation_endpoint(
	invitation_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.InvitationResponse:
	try:
		invitation = await _service.deactivate_invitation(auth_user, invitation_id)
	except ResidenceError as exc:
		raise to_http_error(exc) from exc
	return dto.InvitationResponse.from_invitation(invitation)


__all__ = ["router"]
