"""FastAPI routers for residence access."""

from __future__ import annotations

from fastapi import APIRouter

from app.residences.api import claims, codes, continuations, directory, household

router = APIRouter(prefix="/api/residences/v1")

router.include_router(directory.router)
router.include_router(claims.router)
router.include_router(codes.router)
router.include_router(household.router)
router.include_router(continuations.router)

__all__ = ["router"]
