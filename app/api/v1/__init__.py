"""API v1 module.

Contains all v1 API routes.
"""

from fastapi import APIRouter

from app.api.v1.credits import router as credits_router
from app.api.v1.generate import router as generate_router
from app.api.v1.jobs import router as jobs_router
from app.api.v1.webhooks import router as webhooks_router

router = APIRouter(prefix="/api/v1")
router.include_router(generate_router)
router.include_router(jobs_router)
router.include_router(credits_router)
router.include_router(webhooks_router)

__all__ = ["router"]
