"""API v1 routes."""

from fastapi import APIRouter

from api.routes.v1 import jobs, providers

router = APIRouter(prefix="/v1", tags=["v1"])
router.include_router(jobs.router, tags=["jobs"])
router.include_router(providers.router, tags=["providers"])
