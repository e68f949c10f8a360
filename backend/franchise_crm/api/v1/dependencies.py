"""
API Dependencies
Shared dependencies for identity resolution and per-request services
"""
from typing import Optional

from fastapi import Depends, HTTPException, Query, Request, status

from franchise_crm.core.container import AppContainer
from franchise_crm.domain.models.tenant import IdentityContext
from franchise_crm.domain.services.aggregation_gateway import AggregationGateway
from franchise_crm.domain.services.record_filter import DateScope, RecordFilter
from franchise_crm.domain.services.record_service import RecordService


def get_container(request: Request) -> AppContainer:
    """
    Application container built during startup.

    Raises:
        RuntimeError: If the app was started without a container
    """
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise RuntimeError("Application container is not initialized")
    return container


def get_identity(
    request: Request,
    container: AppContainer = Depends(get_container)
) -> IdentityContext:
    """
    Identity of the caller, as resolved by IdentityMiddleware.

    Raises:
        HTTPException: 401 if no tenant could be resolved
    """
    tenant_id = getattr(request.state, "viewer_tenant", None)
    if not tenant_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Tenant identity missing. Send a Bearer token or X-Tenant-Id header.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return container.identity_for(tenant_id)


def require_privileged(identity: IdentityContext = Depends(get_identity)) -> IdentityContext:
    """
    Dependency that requires the head office identity.

    Raises:
        HTTPException: 403 for franchise viewers
    """
    if not identity.is_privileged:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Head office access required"
        )
    return identity


def get_gateway(
    identity: IdentityContext = Depends(get_identity),
    container: AppContainer = Depends(get_container)
) -> AggregationGateway:
    return container.gateway_for(identity)


def get_record_service(
    identity: IdentityContext = Depends(get_identity),
    container: AppContainer = Depends(get_container)
) -> RecordService:
    return container.record_service_for(identity)


def get_record_filter(
    search: Optional[str] = Query(None, description="Name or phone substring"),
    status_filter: Optional[str] = Query(None, alias="status"),
    city: Optional[str] = Query(None),
    owner_tenant: Optional[str] = Query(None),
    date_scope: DateScope = Query(DateScope.ALL),
    month: Optional[str] = Query(None, pattern=r"^\d{4}-\d{2}$", description="YYYY-MM"),
) -> RecordFilter:
    """List filters from query parameters."""
    return RecordFilter(
        search=search,
        status=status_filter,
        city=city,
        owner_tenant=owner_tenant,
        date_scope=date_scope,
        month=month,
    )
