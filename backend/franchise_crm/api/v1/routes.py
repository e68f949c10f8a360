"""
API Router
Combines all endpoint routers
"""
from fastapi import APIRouter
from franchise_crm.api.v1.endpoints import (
    tenants,
    records,
    campaigns,
    export,
    websockets,
)

api_router = APIRouter()

api_router.include_router(tenants.router)
api_router.include_router(records.router)
api_router.include_router(campaigns.router)
api_router.include_router(export.router)
api_router.include_router(websockets.router)
