from fastapi import APIRouter

from app.partsflow.core.config import settings
from app.partsflow.routers.health import router as health_router
from app.partsflow.routers.metrics import router as metrics_router
from app.partsflow.routers.orders import router as orders_router

api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(orders_router, tags=["orders"])
if settings.METRICS_ENABLED:
    api_router.include_router(metrics_router, tags=["ops"])
