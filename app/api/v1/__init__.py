"""API v1 routes. Every route passes through the action policy gate."""

from fastapi import APIRouter, Depends

from app.api.deps import enforce_action_policy
from app.api.v1 import auth, health

router = APIRouter(dependencies=[Depends(enforce_action_policy)])
router.include_router(health.router, prefix="/health", tags=["health"])
router.include_router(auth.router, prefix="/auth", tags=["auth"])
