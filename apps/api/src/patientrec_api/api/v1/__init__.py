from fastapi import APIRouter

from .endpoints import backups, health, observability

router = APIRouter()
router.include_router(health.router, tags=["Health"])
router.include_router(backups.router)
router.include_router(observability.router)
