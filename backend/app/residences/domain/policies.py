"""Authorization policies for residence access operations."""

from __future__ import annotations

from typing import Iterable
from uuid import UUID

from app.infra.auth import AuthenticatedUser
from app.residences.domain import models
from app.residences.domain.exceptions import ForbiddenError, ValidationError

GLOBAL_ADMIN_ROLE = "admin"


def actor_id(user: AuthenticatedUser) -> UUID:
	"""Identity of the caller as stored in membership rows."""
	try:
		return UUID(str(user.id))
	except ValueError as exc:
		raise ValidationError("invalid_user_id") from exc


def is_manager(user: AuthenticatedUser, residence_roles: Iterable[str]) -> bool:
	if user.has_role(GLOBAL_ADMIN_ROLE):
		return True
	return any(role in models.MANAGER_ROLES for role in residence_roles)


def assert_can_manage(user: AuthenticatedUser, residence_roles: Iterable[str]) -> None:
	if not is_manager(user, residence_roles):
		raise ForbiddenError("manager_role_required")


def assert_can_rotate_join_code(
	user: AuthenticatedUser,
	residence_roles: Iterable[str],
	unit: models.Unit,
) -> None:
	"""Managers and the unit's primary occupant may rotate its join code."""
	if is_manager(user, residence_roles):
		return
	if unit.primary_resident_id is not None and unit.primary_resident_id == actor_id(user):
		return
	raise ForbiddenError("join_code_rotation_forbidden")


def assert_can_view_household(
	user: AuthenticatedUser,
	residence_roles: Iterable[str],
	occupancies: Iterable[models.Occupancy],
) -> None:
	if is_manager(user, residence_roles):
		return
	caller = actor_id(user)
	if any(occupancy.user_id == caller for occupancy in occupancies):
		return
	raise ForbiddenError("household_not_visible")


def assert_can_end_occupancy(
	user: AuthenticatedUser,
	residence_roles: Iterable[str],
	unit: models.Unit,
) -> None:
	if is_manager(user, residence_roles):
		return
	if unit.primary_resident_id is not None and unit.primary_resident_id == actor_id(user):
		return
	raise ForbiddenError("primary_occupant_required")
