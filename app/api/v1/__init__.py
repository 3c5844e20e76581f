"""API v1 router aggregator."""

from fastapi import APIRouter

from app.api.v1 import admin_settings, payments, settings, upload

api_router = APIRouter(tags=["API v1"])

api_router.include_router(admin_settings.router)
api_router.include_router(settings.router)
api_router.include_router(upload.router)
api_router.include_router(payments.router)
