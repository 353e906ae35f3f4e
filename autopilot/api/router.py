from fastapi import APIRouter

from autopilot.api.performance import router as performance_router
from autopilot.api.runs import router as runs_router

api_router = APIRouter()

# API routes at /api/*
api_router.include_router(runs_router, prefix="/api", tags=["runs"])
api_router.include_router(performance_router, prefix="/api", tags=["performance"])
