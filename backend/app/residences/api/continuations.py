"""Continuation tokens carrying a visitor through sign-in back to the join flow."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from app.infra.auth import AuthenticatedUser, get_current_user
from app.residences.api._errors import to_http_error
from app.residences.domain.continuation import ContinuationService
from app.residences.domain.exceptions import ResidenceError
from app.residences.schemas import dto

router = APIRouter(tags=["residences:continuations"])
_service = ContinuationService()


@router.post("/continuations", response_model=dto.ContinuationResponse, status_code=201)
async def issue_continuation_endpoint(payload: dto.ContinuationCreateRequest) -> dto.ContinuationResponse:
	try:
		issued = await _service.issue(reference=payload.reference, invitation_code=payload.invitation_code)
	except ResidenceError as exc:
		raise to_http_error(exc) from exc
	return dto.ContinuationResponse(token=issued.token, expires_in=issued.expires_in)


@router.post("/continuations/resume", response_model=dto.ContinuationTargetResponse)
async def resume_continuation_endpoint(
	payload: dto.ContinuationResumeRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.ContinuationTargetResponse:
	try:
		target = await _service.resume(auth_user, payload.token)
	except ResidenceError as exc:
		raise to_http_error(exc) from exc
	return dto.ContinuationTargetResponse(
		residence_id=target.residence_id,
		building_id=target.building_id,
		invitation_code=target.invitation_code,
	)


__all__ = ["router"]
