"""Claim endpoints: unit selection and invitation redemption."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from app.infra.auth import AuthenticatedUser, get_current_user
from app.residences.api._errors import to_http_error
from app.residences.domain import policies
from app.residences.domain.coordinator import ClaimCoordinator
from app.residences.domain.exceptions import ResidenceError
from app.residences.domain.outcomes import ClaimOutcome, ClaimStatus, RejectionReason
from app.residences.schemas import dto

router = APIRouter(tags=["residences:claims"])
_service = ClaimCoordinator()

_REJECTION_STATUS: dict[RejectionReason, int] = {
	RejectionReason.NOT_FOUND: status.HTTP_404_NOT_FOUND,
	RejectionReason.INVITATION_NOT_FOUND: status.HTTP_404_NOT_FOUND,
	RejectionReason.UNIT_NO_LONGER_VACANT: status.HTTP_409_CONFLICT,
	RejectionReason.INVALID_CODE: status.HTTP_403_FORBIDDEN,
	RejectionReason.INVITATION_INACTIVE: status.HTTP_410_GONE,
	RejectionReason.INVITATION_EXPIRED: status.HTTP_410_GONE,
	RejectionReason.INVITATION_EXHAUSTED: status.HTTP_410_GONE,
}


def outcome_status_code(outcome: ClaimOutcome) -> int:
	if outcome.status is ClaimStatus.GRANTED:
		return status.HTTP_201_CREATED
	if outcome.status is ClaimStatus.REJECTED and outcome.reason is not None:
		return _REJECTION_STATUS[outcome.reason]
	return status.HTTP_200_OK


def _render(outcome: ClaimOutcome) -> JSONResponse:
	body = dto.ClaimOutcomeResponse.from_outcome(outcome)
	return JSONResponse(status_code=outcome_status_code(outcome), content=body.model_dump(mode="json"))


@router.post("/residences/{residence_id}/claims", response_model=dto.ClaimOutcomeResponse)
async def claim_unit_endpoint(
	residence_id: UUID,
	payload: dto.ClaimUnitRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> JSONResponse:
	try:
		outcome = await _service.claim_unit(
			policies.actor_id(auth_user),
			residence_id,
			payload.unit_id,
			code=payload.code,
			building_id=payload.building_id,
		)
	except ResidenceError as exc:
		raise to_http_error(exc) from exc
	return _render(outcome)


@router.post("/invitations/redeem", response_model=dto.ClaimOutcomeResponse)
async def redeem_invitation_endpoint(
	payload: dto.RedeemInvitationRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> JSONResponse:
	try:
		outcome = await _service.redeem_invitation(
			policies.actor_id(auth_user),
			payload.code,
			residence_id=payload.residence_id,
		)
	except ResidenceError as exc:
		raise to_http_error(exc) from exc
	return _render(outcome)


__all__ = ["router"]
