from __future__ import annotations

from fastapi import APIRouter

from src.api.customers import router as customers_router
from src.api.dashboard import router as dashboard_router
from src.api.fx import router as fx_router
from src.api.health import router as health_router
from src.api.trips import router as trips_router


api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(dashboard_router)
api_router.include_router(customers_router)
api_router.include_router(trips_router)
api_router.include_router(fx_router)
