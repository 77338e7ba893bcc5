"""Read-only resolution of residences, buildings and units.

References are either a full UUID or a short prefix of one (at least six
characters, as printed under QR codes). A prefix shared by more than one row is
treated as not found rather than resolved to an arbitrary match.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from app.residences.domain import models, repo as repo_module
from app.residences.domain.exceptions import NotFoundError
from app.residences.domain.retry import read_with_retry

LOGGER = logging.getLogger(__name__)

MIN_PREFIX_LENGTH = 6

_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$")
_PREFIX_RE = re.compile(r"^[0-9a-f-]+$")


def normalise_reference(reference: str) -> str:
	return (reference or "").strip().lower()


def as_full_id(reference: str) -> UUID | None:
	ref = normalise_reference(reference)
	return UUID(ref) if _UUID_RE.match(ref) else None


def is_prefix_candidate(reference: str) -> bool:
	ref = normalise_reference(reference)
	return len(ref) >= MIN_PREFIX_LENGTH and bool(_PREFIX_RE.match(ref))


@dataclass(slots=True)
class LandingTarget:
	residence: models.Residence
	building: Optional[models.Building] = None


class DirectoryStore:
	"""Residence, building and unit lookups; never mutates state."""

	def __init__(self, *, repository: repo_module.ResidencesRepository | None = None) -> None:
		self.repo = repository or repo_module.ResidencesRepository()

	async def resolve_residence(self, reference: str) -> models.Residence:
		full_id = as_full_id(reference)
		if full_id is not None:
			residence = await read_with_retry("residence", lambda: self.repo.get_residence(full_id))
			if residence is not None:
				return residence
			raise NotFoundError("residence_not_found")
		residence = await self._residence_by_prefix(reference)
		if residence is None:
			raise NotFoundError("residence_not_found")
		return residence

	async def resolve_building(self, reference: str, residence_id: UUID | None = None) -> models.Building:
		full_id = as_full_id(reference)
		if full_id is not None:
			building = await read_with_retry("building", lambda: self.repo.get_building(full_id))
			if building is not None and (residence_id is None or building.residence_id == residence_id):
				return building
			raise NotFoundError("building_not_found")
		building = await self._building_by_prefix(reference, residence_id=residence_id)
		if building is None:
			raise NotFoundError("building_not_found")
		return building

	async def resolve_landing(self, reference: str) -> LandingTarget:
		"""Resolve a QR/short-link reference that may name a residence or one of its buildings."""
		full_id = as_full_id(reference)
		if full_id is not None:
			residence = await read_with_retry("residence", lambda: self.repo.get_residence(full_id))
			if residence is not None:
				return LandingTarget(residence=residence)
			building = await read_with_retry("building", lambda: self.repo.get_building(full_id))
			if building is not None:
				return await self._landing_for_building(building)
			raise NotFoundError("residence_not_found")

		residence = await self._residence_by_prefix(reference)
		if residence is not None:
			return LandingTarget(residence=residence)
		building = await self._building_by_prefix(reference)
		if building is not None:
			return await self._landing_for_building(building)
		raise NotFoundError("residence_not_found")

	async def list_units(self, residence_id: UUID, building_id: UUID | None = None) -> list[models.Unit]:
		"""Units of a residence ordered by floor, then door label."""
		return await read_with_retry(
			"units",
			lambda: self.repo.list_units(residence_id, building_id=building_id),
		)

	async def _residence_by_prefix(self, reference: str) -> models.Residence | None:
		if not is_prefix_candidate(reference):
			return None
		prefix = normalise_reference(reference)
		matches = await read_with_retry(
			"residence_prefix",
			lambda: self.repo.find_residences_by_prefix(prefix, limit=2),
		)
		return self._single(matches, kind="residence", prefix=prefix)

	async def _building_by_prefix(
		self,
		reference: str,
		*,
		residence_id: UUID | None = None,
	) -> models.Building | None:
		if not is_prefix_candidate(reference):
			return None
		prefix = normalise_reference(reference)
		matches = await read_with_retry(
			"building_prefix",
			lambda: self.repo.find_buildings_by_prefix(prefix, residence_id=residence_id, limit=2),
		)
		return self._single(matches, kind="building", prefix=prefix)

	async def _landing_for_building(self, building: models.Building) -> LandingTarget:
		residence = await read_with_retry("residence", lambda: self.repo.get_residence(building.residence_id))
		if residence is None:
			raise NotFoundError("residence_not_found")
		return LandingTarget(residence=residence, building=building)

	@staticmethod
	def _single(matches: list, *, kind: str, prefix: str):
		if len(matches) > 1:
			LOGGER.warning("ambiguous short reference", extra={"kind": kind, "prefix": prefix})
			raise NotFoundError(f"{kind}_not_found")
		return matches[0] if matches else None
