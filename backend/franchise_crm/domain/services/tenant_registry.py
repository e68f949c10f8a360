"""
Tenant Registry
Ordered list of franchise tenants; the head office is implicit
"""
import asyncio
import json
import logging
from typing import List, Optional

from pydantic import ValidationError as PydanticValidationError

from franchise_crm.domain.errors import (
    CorruptedPartitionError,
    PersistenceError,
    UnknownTenantError,
    ValidationError,
)
from franchise_crm.domain.interfaces.kv_backend import KeyValueBackend
from franchise_crm.domain.models.tenant import Tenant, TenantStatus
from franchise_crm.utils.clock import BusinessClock

logger = logging.getLogger(__name__)


class TenantRegistry:
    """
    Franchise tenants in registration order.

    Stored as one JSON array under {namespace}corporate_accounts. Inactive
    tenants stay registered so their data remains visible to head office.
    """

    REGISTRY_KEY = "corporate_accounts"

    def __init__(
        self,
        backend: KeyValueBackend,
        namespace: str = "crm:",
        privileged_tenant_id: str = "admin",
        head_office_name: str = "Head Office",
        clock: Optional[BusinessClock] = None
    ):
        self._backend = backend
        self._key = f"{namespace}{self.REGISTRY_KEY}"
        self.privileged_tenant_id = privileged_tenant_id
        self.head_office_name = head_office_name
        self.clock = clock or BusinessClock()
        self._lock = asyncio.Lock()

    async def list_tenants(self) -> List[Tenant]:
        """All registered franchise tenants, active and inactive, in order."""
        try:
            raw = await self._backend.get(self._key)
        except Exception as e:
            logger.error(f"Failed to read tenant registry: {e}")
            raise PersistenceError("read", self._key, e) from e

        if not raw:
            return []
        try:
            return [Tenant.model_validate(item) for item in json.loads(raw)]
        except (json.JSONDecodeError, TypeError, PydanticValidationError) as e:
            raise CorruptedPartitionError("tenants", self.privileged_tenant_id, str(e)) from e

    async def get(self, tenant_id: str) -> Optional[Tenant]:
        for tenant in await self.list_tenants():
            if tenant.id == tenant_id:
                return tenant
        return None

    async def is_known(self, tenant_id: str) -> bool:
        """Head office or a registered franchise."""
        if tenant_id == self.privileged_tenant_id:
            return True
        return await self.get(tenant_id) is not None

    async def require(self, tenant_id: str) -> None:
        if not await self.is_known(tenant_id):
            raise UnknownTenantError(tenant_id)

    async def display_name(self, tenant_id: str) -> str:
        if tenant_id == self.privileged_tenant_id:
            return self.head_office_name
        tenant = await self.get(tenant_id)
        if tenant is None:
            raise UnknownTenantError(tenant_id)
        return tenant.display_name

    async def register(self, tenant_id: str, display_name: str) -> Tenant:
        """
        Append a franchise tenant.

        Raises:
            ValidationError: id is taken or reserved for head office
        """
        if tenant_id == self.privileged_tenant_id:
            raise ValidationError(
                "Tenant id is reserved for head office",
                fields={"id": "reserved"}
            )

        async with self._lock:
            tenants = await self.list_tenants()
            if any(t.id == tenant_id for t in tenants):
                raise ValidationError(
                    f"Tenant {tenant_id} is already registered",
                    fields={"id": "duplicate"}
                )
            tenant = Tenant(id=tenant_id, display_name=display_name, registered_at=self.clock.now())
            tenants.append(tenant)
            await self._write(tenants)

        logger.info(f"Registered tenant {tenant_id} ({display_name})")
        return tenant

    async def set_status(self, tenant_id: str, status: TenantStatus) -> Tenant:
        async with self._lock:
            tenants = await self.list_tenants()
            for i, tenant in enumerate(tenants):
                if tenant.id == tenant_id:
                    tenants[i] = tenant.model_copy(update={"status": TenantStatus(status).value})
                    await self._write(tenants)
                    logger.info(f"Tenant {tenant_id} status set to {tenants[i].status}")
                    return tenants[i]
        raise UnknownTenantError(tenant_id)

    async def _write(self, tenants: List[Tenant]) -> None:
        payload = json.dumps([t.model_dump(mode="json") for t in tenants])
        try:
            await self._backend.set(self._key, payload)
        except Exception as e:
            logger.error(f"Failed to write tenant registry: {e}")
            raise PersistenceError("write", self._key, e) from e
