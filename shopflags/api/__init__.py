"""API router aggregation."""
from fastapi import APIRouter

from shopflags.api.v1 import experiments, flags

api_router = APIRouter()

v1_router = APIRouter(prefix="/v1")
v1_router.include_router(flags.router, prefix="/flags", tags=["flags"])
v1_router.include_router(experiments.router, prefix="/experiments", tags=["experiments"])

api_router.include_router(v1_router)
