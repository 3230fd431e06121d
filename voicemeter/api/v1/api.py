"""API routes for the FastAPI application."""

from fastapi import APIRouter

from voicemeter.api.v1.endpoints import alerts, billing, health, metering

api_router = APIRouter()
api_router.include_router(health.router, prefix="/health", tags=["health"])
api_router.include_router(metering.router, prefix="/metering", tags=["metering"])
api_router.include_router(alerts.router, prefix="/alerts", tags=["alerts"])
api_router.include_router(billing.router, prefix="/billing", tags=["billing"])
