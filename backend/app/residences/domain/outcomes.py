"""Typed results of claim attempts.

Every way a claim can end is a value here so callers can render a distinct
message per case without inspecting exception types.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional
from uuid import UUID


class ClaimStatus(str, Enum):
	GRANTED = "granted"
	ALREADY_MEMBER = "already_member"
	AWAITING_CODE = "awaiting_code"
	REJECTED = "rejected"


class RejectionReason(str, Enum):
	NOT_FOUND = "not_found"
	UNIT_NO_LONGER_VACANT = "unit_no_longer_vacant"
	INVALID_CODE = "invalid_code"
	INVITATION_NOT_FOUND = "invitation_not_found"
	INVITATION_INACTIVE = "invitation_inactive"
	INVITATION_EXPIRED = "invitation_expired"
	INVITATION_EXHAUSTED = "invitation_exhausted"


@dataclass(slots=True, frozen=True)
class ClaimOutcome:
	status: ClaimStatus
	reason: Optional[RejectionReason] = None
	residence_id: Optional[UUID] = None
	unit_id: Optional[UUID] = None
	occupancy_kind: Optional[str] = None

	@property
	def is_success(self) -> bool:
		"""Granted and already-member both leave the identity with access."""
		return self.status in (ClaimStatus.GRANTED, ClaimStatus.ALREADY_MEMBER)

	@classmethod
	def granted(
		cls,
		residence_id: UUID,
		*,
		unit_id: UUID | None = None,
		occupancy_kind: str | None = None,
	) -> "ClaimOutcome":
		return cls(
			ClaimStatus.GRANTED,
			residence_id=residence_id,
			unit_id=unit_id,
			occupancy_kind=occupancy_kind,
		)

	@classmethod
	def already_member(cls, residence_id: UUID) -> "ClaimOutcome":
		return cls(ClaimStatus.ALREADY_MEMBER, residence_id=residence_id)

	@classmethod
	def awaiting_code(cls, residence_id: UUID, unit_id: UUID) -> "ClaimOutcome":
		return cls(ClaimStatus.AWAITING_CODE, residence_id=residence_id, unit_id=unit_id)

	@classmethod
	def rejected(
		cls,
		reason: RejectionReason,
		*,
		residence_id: UUID | None = None,
		unit_id: UUID | None = None,
	) -> "ClaimOutcome":
		return cls(ClaimStatus.REJECTED, reason=reason, residence_id=residence_id, unit_id=unit_id)
