"""API surface tests for residence access endpoints."""

from __future__ import annotations

import time
from datetime import date, datetime, timezone
from uuid import UUID, uuid4

import pytest

from app.infra import jwt as jwt_helper
from app.residences.api import (
	claims as claims_api,
	codes as codes_api,
	continuations as continuations_api,
	directory as directory_api,
	household as household_api,
)
from app.residences.domain import models
from app.residences.domain.continuation import Continuation, IssuedContinuation
from app.residences.domain.directory import LandingTarget
from app.residences.domain.exceptions import ForbiddenError, NotFoundError, RateLimitedError
from app.residences.domain.outcomes import ClaimOutcome, RejectionReason
from app.settings import settings

BASE = "/api/residences/v1"


@pytest.fixture()
def user_id() -> UUID:
	return uuid4()


@pytest.fixture()
def user_headers(user_id) -> dict[str, str]:
	return {"X-User-Id": str(user_id)}


class _StubCoordinator:
	def __init__(self, outcome: ClaimOutcome) -> None:
		self.outcome = outcome
		self.calls: list[tuple] = []

	async def claim_unit(self, user_id, residence_id, unit_id, *, code=None, building_id=None):
		self.calls.append(("claim", user_id, residence_id, unit_id, code, building_id))
		return self.outcome

	async def redeem_invitation(self, user_id, code, *, residence_id=None):
		self.calls.append(("redeem", user_id, code, residence_id))
		return self.outcome


def _unit(residence_id: UUID, **overrides) -> models.Unit:
	values = dict(id=uuid4(), residence_id=residence_id, lot_number="3", floor=1, door="B", join_code="SECRET22")
	values.update(overrides)
	return models.Unit(**values)


@pytest.mark.asyncio
async def test_granted_claim_returns_created(api_client, monkeypatch, user_headers, user_id):
	residence_id, unit_id = uuid4(), uuid4()
	stub = _StubCoordinator(ClaimOutcome.granted(residence_id, unit_id=unit_id, occupancy_kind="primary"))
	monkeypatch.setattr(claims_api, "_service", stub)

	resp = await api_client.post(
		f"{BASE}/residences/{residence_id}/claims",
		json={"unit_id": str(unit_id)},
		headers=user_headers,
	)

	assert resp.status_code == 201
	body = resp.json()
	assert body["status"] == "granted"
	assert body["reason"] is None
	assert body["occupancy_kind"] == "primary"
	assert stub.calls == [("claim", user_id, residence_id, unit_id, None, None)]


@pytest.mark.asyncio
@pytest.mark.parametrize(
	("outcome", "expected_status"),
	[
		(ClaimOutcome.already_member(uuid4()), 200),
		(ClaimOutcome.awaiting_code(uuid4(), uuid4()), 200),
		(ClaimOutcome.rejected(RejectionReason.NOT_FOUND), 404),
		(ClaimOutcome.rejected(RejectionReason.UNIT_NO_LONGER_VACANT), 409),
		(ClaimOutcome.rejected(RejectionReason.INVALID_CODE), 403),
	],
)
async def test_claim_outcomes_map_to_status_codes(api_client, monkeypatch, user_headers, outcome, expected_status):
	monkeypatch.setattr(claims_api, "_service", _StubCoordinator(outcome))

	resp = await api_client.post(
		f"{BASE}/residences/{uuid4()}/claims",
		json={"unit_id": str(uuid4()), "code": "ABCD2345"},
		headers=user_headers,
	)

	assert resp.status_code == expected_status
	assert resp.json()["status"] == outcome.status.value
	assert resp.json()["reason"] == (outcome.reason.value if outcome.reason else None)


@pytest.mark.asyncio
@pytest.mark.parametrize(
	("reason", "expected_status"),
	[
		(RejectionReason.INVITATION_NOT_FOUND, 404),
		(RejectionReason.INVITATION_INACTIVE, 410),
		(RejectionReason.INVITATION_EXPIRED, 410),
		(RejectionReason.INVITATION_EXHAUSTED, 410),
	],
)
async def test_redeem_rejections_keep_reason(api_client, monkeypatch, user_headers, reason, expected_status):
	stub = _StubCoordinator(ClaimOutcome.rejected(reason))
	monkeypatch.setattr(claims_api, "_service", stub)

	resp = await api_client.post(f"{BASE}/invitations/redeem", json={"code": "WELCOME1"}, headers=user_headers)

	assert resp.status_code == expected_status
	assert resp.json()["reason"] == reason.value
	assert stub.calls[0][2] == "WELCOME1"


@pytest.mark.asyncio
async def test_claims_require_authentication(api_client, monkeypatch):
	monkeypatch.setattr(claims_api, "_service", _StubCoordinator(ClaimOutcome.granted(uuid4())))

	resp = await api_client.post(f"{BASE}/invitations/redeem", json={"code": "WELCOME1"})

	assert resp.status_code == 401
	assert resp.json()["detail"] == "invalid_token"
	assert "request_id" in resp.json()


@pytest.mark.asyncio
async def test_dev_headers_ignored_outside_dev(api_client, monkeypatch, user_headers):
	monkeypatch.setattr(claims_api, "_service", _StubCoordinator(ClaimOutcome.granted(uuid4())))
	settings.environment = "production"

	resp = await api_client.post(f"{BASE}/invitations/redeem", json={"code": "WELCOME1"}, headers=user_headers)

	assert resp.status_code == 401


@pytest.mark.asyncio
async def test_bearer_token_identifies_caller(api_client, monkeypatch, user_id):
	stub = _StubCoordinator(ClaimOutcome.granted(uuid4()))
	monkeypatch.setattr(claims_api, "_service", stub)
	token = jwt_helper.encode_access({"sub": str(user_id), "exp": int(time.time()) + 300})

	resp = await api_client.post(
		f"{BASE}/invitations/redeem",
		json={"code": "WELCOME1"},
		headers={"Authorization": f"Bearer {token}"},
	)

	assert resp.status_code == 201
	assert stub.calls[0][1] == user_id


@pytest.mark.asyncio
async def test_non_uuid_identity_is_rejected(api_client, monkeypatch):
	monkeypatch.setattr(claims_api, "_service", _StubCoordinator(ClaimOutcome.granted(uuid4())))

	resp = await api_client.post(
		f"{BASE}/invitations/redeem",
		json={"code": "WELCOME1"},
		headers={"X-User-Id": "not-a-uuid"},
	)

	assert resp.status_code == 422
	assert resp.json()["detail"] == "invalid_user_id"


@pytest.mark.asyncio
async def test_exhausted_join_code_budget_maps_to_429(api_client, monkeypatch, user_headers):
	class _ThrottledCoordinator(_StubCoordinator):
		async def claim_unit(self, user_id, residence_id, unit_id, *, code=None, building_id=None):
			await super().claim_unit(user_id, residence_id, unit_id, code=code, building_id=building_id)
			raise RateLimitedError("join_code_rate_limited", retry_after=42)

	stub = _ThrottledCoordinator(ClaimOutcome.rejected(RejectionReason.INVALID_CODE))
	monkeypatch.setattr(claims_api, "_service", stub)

	resp = await api_client.post(
		f"{BASE}/residences/{uuid4()}/claims",
		json={"unit_id": str(uuid4()), "code": "GUESS222"},
		headers=user_headers,
	)

	assert resp.status_code == 429
	assert resp.json()["detail"] == "join_code_rate_limited"
	assert resp.headers["Retry-After"] == "42"
	assert len(stub.calls) == 1


@pytest.mark.asyncio
async def test_landing_is_public(api_client, monkeypatch):
	residence = models.Residence(id=uuid4(), name="Les Tilleuls", city="Lyon")
	building = models.Building(id=uuid4(), residence_id=residence.id, name="B")

	class _Directory:
		async def resolve_landing(self, reference):
			assert reference == "abcdef12"
			return LandingTarget(residence=residence, building=building)

	monkeypatch.setattr(directory_api, "_service", _Directory())

	resp = await api_client.get(f"{BASE}/landing/abcdef12")

	assert resp.status_code == 200
	assert resp.json()["residence"]["name"] == "Les Tilleuls"
	assert resp.json()["building"]["id"] == str(building.id)


@pytest.mark.asyncio
async def test_unknown_residence_is_not_found(api_client, monkeypatch):
	class _Directory:
		async def resolve_residence(self, reference):
			raise NotFoundError("residence_not_found")

	monkeypatch.setattr(directory_api, "_service", _Directory())

	resp = await api_client.get(f"{BASE}/residences/abcdef")

	assert resp.status_code == 404
	assert resp.json()["detail"] == "residence_not_found"


@pytest.mark.asyncio
async def test_unit_listing_hides_join_codes(api_client, monkeypatch, user_headers):
	residence = models.Residence(id=uuid4(), name="R1")
	building = models.Building(id=uuid4(), residence_id=residence.id, name="A")
	vacant = _unit(residence.id, join_code=None)
	taken = _unit(residence.id, lot_number="4", primary_resident_id=uuid4())
	seen: dict[str, object] = {}

	class _Directory:
		async def resolve_residence(self, reference):
			return residence

		async def resolve_building(self, reference, residence_id=None):
			seen["building"] = (reference, residence_id)
			return building

		async def list_units(self, residence_id, building_id=None):
			seen["units"] = (residence_id, building_id)
			return [vacant, taken]

	monkeypatch.setattr(directory_api, "_service", _Directory())

	resp = await api_client.get(f"{BASE}/residences/{residence.id}/units?building=A1B2C3", headers=user_headers)

	assert resp.status_code == 200
	items = resp.json()["items"]
	assert [item["is_vacant"] for item in items] == [True, False]
	assert all("join_code" not in item for item in items)
	assert seen["building"] == ("A1B2C3", residence.id)
	assert seen["units"] == (residence.id, building.id)


@pytest.mark.asyncio
async def test_rotate_join_code(api_client, monkeypatch, user_headers):
	unit_id = uuid4()

	class _Registry:
		async def rotate_unit_join_code(self, user, target):
			assert target == unit_id
			return "XJ92KQ7M"

	monkeypatch.setattr(codes_api, "_service", _Registry())

	resp = await api_client.post(f"{BASE}/units/{unit_id}/join-code/rotate", headers=user_headers)

	assert resp.status_code == 200
	assert resp.json() == {"unit_id": str(unit_id), "join_code": "XJ92KQ7M"}


@pytest.mark.asyncio
async def test_rotate_join_code_forbidden(api_client, monkeypatch, user_headers):
	class _Registry:
		async def rotate_unit_join_code(self, user, target):
			raise ForbiddenError("join_code_rotation_forbidden")

	monkeypatch.setattr(codes_api, "_service", _Registry())

	resp = await api_client.post(f"{BASE}/units/{uuid4()}/join-code/rotate", headers=user_headers)

	assert resp.status_code == 403
	assert resp.json()["detail"] == "join_code_rotation_forbidden"


@pytest.mark.asyncio
async def test_create_and_list_invitations(api_client, monkeypatch, user_headers):
	residence_id = uuid4()
	created = models.Invitation(
		id=uuid4(),
		residence_id=residence_id,
		code="WELC0M",
		is_active=True,
		max_uses=3,
		uses_count=1,
		created_at=datetime(2024, 6, 1, tzinfo=timezone.utc),
	)
	captured: dict[str, object] = {}

	class _Registry:
		async def create_invitation(self, user, target, *, expires_in=None, expires_at=None, max_uses=None):
			captured.update(expires_in=expires_in, max_uses=max_uses, roles=user.roles)
			return created

		async def list_invitations(self, user, target, *, include_inactive=False):
			captured["include_inactive"] = include_inactive
			return [created]

	monkeypatch.setattr(codes_api, "_service", _Registry())
	headers = {**user_headers, "X-User-Roles": "admin"}

	resp = await api_client.post(
		f"{BASE}/residences/{residence_id}/invitations",
		json={"expires_in": "30days", "max_uses": 3},
		headers=headers,
	)
	assert resp.status_code == 201
	assert resp.json()["remaining_uses"] == 2
	assert captured["expires_in"] == "30days"
	assert captured["roles"] == ("admin",)

	listed = await api_client.get(
		f"{BASE}/residences/{residence_id}/invitations?include_inactive=true",
		headers=headers,
	)
	assert listed.status_code == 200
	assert [item["code"] for item in listed.json()["items"]] == ["WELC0M"]
	assert captured["include_inactive"] is True


@pytest.mark.asyncio
async def test_invitation_payload_validation(api_client, user_headers):
	resp = await api_client.post(
		f"{BASE}/residences/{uuid4()}/invitations",
		json={"expires_in": "forever", "max_uses": 0},
		headers=user_headers,
	)

	assert resp.status_code == 422
	assert resp.json()["detail"] == "validation_error"


@pytest.mark.asyncio
async def test_household_endpoints(api_client, monkeypatch, user_headers, user_id):
	unit_id = uuid4()
	occupancy = models.Occupancy(
		id=uuid4(),
		user_id=user_id,
		lot_id=unit_id,
		type="occupant",
		is_active=True,
		start_date=date(2024, 1, 1),
	)

	class _Household:
		async def list_household(self, user, target):
			return [occupancy]

		async def end_occupancy(self, user, occupancy_id):
			return occupancy.model_copy(update={"is_active": False, "end_date": date(2024, 6, 1)})

	monkeypatch.setattr(household_api, "_service", _Household())

	listed = await api_client.get(f"{BASE}/units/{unit_id}/household", headers=user_headers)
	assert listed.status_code == 200
	assert listed.json()["items"][0]["type"] == "occupant"

	ended = await api_client.post(f"{BASE}/occupancies/{occupancy.id}/end", headers=user_headers)
	assert ended.status_code == 200
	assert ended.json()["is_active"] is False
	assert ended.json()["end_date"] == "2024-06-01"


@pytest.mark.asyncio
async def test_continuation_round_trip_through_api(api_client, monkeypatch, user_headers):
	residence_id = uuid4()

	class _Continuations:
		async def issue(self, *, reference=None, invitation_code=None):
			assert reference == "abcdef12"
			return IssuedContinuation(token="signed-token", expires_in=900)

		async def resume(self, user, token):
			assert token == "signed-token"
			return Continuation(residence_id=residence_id)

	monkeypatch.setattr(continuations_api, "_service", _Continuations())

	issued = await api_client.post(f"{BASE}/continuations", json={"reference": "abcdef12"})
	assert issued.status_code == 201
	assert issued.json() == {"token": "signed-token", "expires_in": 900}

	resumed = await api_client.post(
		f"{BASE}/continuations/resume",
		json={"token": "signed-token"},
		headers=user_headers,
	)
	assert resumed.status_code == 200
	assert resumed.json()["residence_id"] == str(residence_id)


@pytest.mark.asyncio
async def test_request_id_is_echoed(api_client):
	resp = await api_client.get("/health/live", headers={"X-Request-Id": "req-123"})

	assert resp.status_code == 200
	assert resp.headers["X-Request-Id"] == "req-123"


@pytest.mark.asyncio
async def test_metrics_require_admin_token(api_client, monkeypatch):
	monkeypatch.setattr(settings, "obs_metrics_public", False)
	monkeypatch.setattr(settings, "obs_admin_token", "ops-token")

	denied = await api_client.get("/metrics")
	allowed = await api_client.get("/metrics", headers={"X-Admin-Token": "ops-token"})

	assert denied.status_code == 403
	assert allowed.status_code == 200
	assert "residence_claim_outcomes_total" in allowed.text
