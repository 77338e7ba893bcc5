"""Centralised JWT helpers.

Uses HS256 with the application's secret key. Access tokens are issued by the
identity service; continuation tokens are minted here to carry a visitor through
the login redirect back into the join flow.
"""

from __future__ import annotations

import time
from typing import Any, Dict

import jwt
from jwt import InvalidTokenError

from app.settings import settings


ISSUER = "residence-api"
AUDIENCE = "residence-fe"
CONTINUATION_AUDIENCE = "residence-join"


def encode_access(payload: dict[str, object]) -> str:
	"""Encode an access token with required issuer/audience defaults."""
	now = int(time.time())
	body: Dict[str, Any] = {"iss": ISSUER, "aud": AUDIENCE, "iat": now}
	body.update(payload)
	return jwt.encode(body, settings.secret_key, algorithm="HS256")


def decode_access(token: str) -> dict[str, object]:
	"""Decode and validate an access token.

	Raises jwt.InvalidTokenError subclasses on failure.
	"""
	options = {"require": ["exp", "iat", "iss", "aud"]}
	payload = jwt.decode(
		token,
		settings.secret_key,
		algorithms=["HS256"],
		audience=AUDIENCE,
		issuer=ISSUER,
		leeway=5,
		options=options,
	)
	if not payload.get("sub"):
		raise InvalidTokenError("missing_claim:sub")
	return payload  # type: ignore[return-value]


def encode_continuation(payload: dict[str, object], *, ttl_seconds: int) -> str:
	now = int(time.time())
	body: Dict[str, Any] = {
		"iss": ISSUER,
		"aud": CONTINUATION_AUDIENCE,
		"iat": now,
		"exp": now + int(ttl_seconds),
	}
	body.update(payload)
	return jwt.encode(body, settings.secret_key, algorithm="HS256")


def decode_continuation(token: str) -> dict[str, object]:
	payload = jwt.decode(
		token,
		settings.secret_key,
		algorithms=["HS256"],
		audience=CONTINUATION_AUDIENCE,
		issuer=ISSUER,
		options={"require": ["exp", "iat", "iss", "aud", "jti"]},
	)
	return payload  # type: ignore[return-value]
