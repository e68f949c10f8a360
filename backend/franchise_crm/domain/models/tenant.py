"""
Tenant Models
Tenants (head office + franchises) and the per-request identity context
"""
from pydantic import BaseModel, Field
from datetime import datetime
from enum import Enum

from franchise_crm.utils.clock import business_now


class TenantStatus(str, Enum):
    """Lifecycle status of a franchise tenant"""
    ACTIVE = "Active"
    INACTIVE = "Inactive"


class ViewerRole(str, Enum):
    """Coarse authorization role of the current viewer"""
    PRIVILEGED = "privileged"
    SCOPED = "scoped"


class Tenant(BaseModel):
    """
    An owning business entity.

    The head office is implicit and never stored in the registry; franchises
    are registered in order and keep their position for aggregated reads.
    """

    id: str = Field(..., min_length=1, description="Stable tenant identifier (e-mail in the legacy data)")
    display_name: str = Field(..., min_length=1, description="Name shown as the aggregation tag")
    status: TenantStatus = Field(default=TenantStatus.ACTIVE)
    registered_at: datetime = Field(default_factory=business_now)

    model_config = {"use_enum_values": True}

    @property
    def is_active(self) -> bool:
        return self.status == TenantStatus.ACTIVE.value


class IdentityContext(BaseModel):
    """Who is looking at the data for the current request"""

    viewer_tenant: str = Field(..., min_length=1)
    role: ViewerRole = Field(default=ViewerRole.SCOPED)

    model_config = {"use_enum_values": True, "frozen": True}

    @property
    def is_privileged(self) -> bool:
        return self.role == ViewerRole.PRIVILEGED.value

    @classmethod
    def for_tenant(cls, tenant_id: str, privileged_tenant_id: str) -> "IdentityContext":
        """Derive the role from the configured privileged tenant id."""
        role = ViewerRole.PRIVILEGED if tenant_id == privileged_tenant_id else ViewerRole.SCOPED
        return cls(viewer_tenant=tenant_id, role=role)
