"""Redis stream hand-off for claim notifications.

The push/e-mail service consumes `res:claims:granted`; publishing is best
effort and never affects the outcome of the claim that triggered it.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from uuid import UUID

from app.infra.redis import redis_client
from app.obs import metrics as obs_metrics
from app.residences.domain.outcomes import ClaimOutcome
from app.settings import settings

LOGGER = logging.getLogger(__name__)

STREAM_CLAIMS_GRANTED = "res:claims:granted"


async def publish_claim_granted(*, flow: str, user_id: UUID, outcome: ClaimOutcome) -> None:
	fields: dict[str, str] = {
		"event": "claim.granted",
		"flow": flow,
		"user_id": str(user_id),
		"residence_id": str(outcome.residence_id),
		"ts": datetime.now(timezone.utc).isoformat(),
	}
	if outcome.unit_id is not None:
		fields["unit_id"] = str(outcome.unit_id)
	if outcome.occupancy_kind:
		fields["occupancy_kind"] = outcome.occupancy_kind
	await redis_client.xadd_capped(STREAM_CLAIMS_GRANTED, fields)


class ClaimNotifier:
	"""Informs the notification service about granted claims."""

	async def claim_granted(self, *, flow: str, user_id: UUID, outcome: ClaimOutcome) -> None:
		try:
			await asyncio.wait_for(
				publish_claim_granted(flow=flow, user_id=user_id, outcome=outcome),
				timeout=settings.claim_notification_timeout_seconds,
			)
		except asyncio.TimeoutError:
			obs_metrics.claim_notification("timeout")
			LOGGER.warning(
				"claim notification timed out",
				extra={"flow": flow, "residence_id": str(outcome.residence_id)},
			)
			return
		except Exception:
			obs_metrics.claim_notification("error")
			LOGGER.warning(
				"claim notification failed",
				extra={"flow": flow, "residence_id": str(outcome.residence_id)},
				exc_info=True,
			)
			return
		obs_metrics.claim_notification("sent")
