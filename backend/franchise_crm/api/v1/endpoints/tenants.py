"""
Tenant Endpoints
Franchise registry: list, register, activate/deactivate
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from franchise_crm.api.v1.dependencies import get_container, get_identity, require_privileged
from franchise_crm.core.container import AppContainer
from franchise_crm.domain.models.tenant import IdentityContext, Tenant, TenantStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tenants", tags=["tenants"])


class TenantRegisterRequest(BaseModel):
    id: str = Field(..., min_length=1, description="Tenant id (franchise login e-mail)")
    display_name: str = Field(..., min_length=1)


class TenantStatusRequest(BaseModel):
    status: TenantStatus


class TenantListResponse(BaseModel):
    head_office: dict
    tenants: List[Tenant]


@router.get("/", response_model=TenantListResponse)
async def list_tenants(
    identity: IdentityContext = Depends(get_identity),
    container: AppContainer = Depends(get_container)
):
    """
    Registered franchises in registration order.

    Franchise viewers only see their own entry.
    """
    registry = container.registry
    tenants = await registry.list_tenants()
    if not identity.is_privileged:
        tenants = [t for t in tenants if t.id == identity.viewer_tenant]

    return TenantListResponse(
        head_office={"id": registry.privileged_tenant_id, "display_name": registry.head_office_name},
        tenants=tenants,
    )


@router.post("/", response_model=Tenant, status_code=status.HTTP_201_CREATED)
async def register_tenant(
    request: TenantRegisterRequest,
    identity: IdentityContext = Depends(require_privileged),
    container: AppContainer = Depends(get_container)
):
    """Register a new franchise (head office only)."""
    tenant = await container.registry.register(request.id, request.display_name)
    logger.info(f"Tenant {tenant.id} registered by {identity.viewer_tenant}")
    return tenant


@router.patch("/{tenant_id}/status", response_model=Tenant)
async def set_tenant_status(
    tenant_id: str,
    request: TenantStatusRequest,
    identity: IdentityContext = Depends(require_privileged),
    container: AppContainer = Depends(get_container)
):
    """Activate or deactivate a franchise. Its data stays visible to head office."""
    return await container.registry.set_status(tenant_id, request.status)
