"""
Aggregation Gateway
Identity-aware read/write front for the per-module partition stores

Privileged viewer (head office):
- Reads the union of every partition: head office first, then franchises
  in registration order, each record tagged with its origin
- Writes route back to the owning tenant's partition

Scoped viewer (franchise):
- Reads and writes only its own partition
"""
import logging
import re
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from franchise_crm.domain.errors import TenantAccessError, UnknownTenantError
from franchise_crm.domain.models.record import AggregatedRecord, BaseRecord
from franchise_crm.domain.models.tenant import IdentityContext
from franchise_crm.domain.services.partition_store import PartitionStore
from franchise_crm.domain.services.tenant_registry import TenantRegistry

logger = logging.getLogger(__name__)


def phone_digits(phone: str) -> str:
    return re.sub(r"\D", "", phone or "")


class AggregationGateway:
    """
    Built per request from the registry, the module stores and the
    caller's identity. Holds no cached records between calls.
    """

    def __init__(
        self,
        registry: TenantRegistry,
        stores: Dict[str, PartitionStore],
        identity: IdentityContext,
        scoped_self_tag: str = "My Franchise"
    ):
        self._registry = registry
        self._stores = stores
        self.identity = identity
        self._scoped_self_tag = scoped_self_tag

    def store(self, module: str) -> PartitionStore:
        if module not in self._stores:
            available = ", ".join(self._stores.keys())
            raise ValueError(f"Unknown module: {module}. Available: {available}")
        return self._stores[module]

    async def visible_partitions(self) -> List[Tuple[str, str]]:
        """
        (tenant_id, tag) pairs the viewer can read, in aggregation order.

        Raises:
            UnknownTenantError: Scoped viewer is not registered
        """
        if self.identity.is_privileged:
            partitions = [(self._registry.privileged_tenant_id, self._registry.head_office_name)]
            for tenant in await self._registry.list_tenants():
                partitions.append((tenant.id, tenant.display_name))
            return partitions

        if not await self._registry.is_known(self.identity.viewer_tenant):
            raise UnknownTenantError(self.identity.viewer_tenant)
        return [(self.identity.viewer_tenant, self._scoped_self_tag)]

    async def read_all(self, module: str, degraded: bool = False) -> List[AggregatedRecord]:
        """
        All records the viewer may see, tagged with their origin.

        Args:
            module: Module value
            degraded: Skip corrupted partitions instead of raising
        """
        store = self.store(module)
        result: List[AggregatedRecord] = []
        for tenant_id, tag in await self.visible_partitions():
            records = await store.load(tenant_id, degraded=degraded)
            result.extend(AggregatedRecord(record=r, tenant_tag=tag) for r in records)

        logger.debug(
            f"Aggregated {len(result)} {module} records for {self.identity.viewer_tenant}"
        )
        return result

    async def find(self, module: str, record_id: str) -> Optional[AggregatedRecord]:
        for item in await self.read_all(module):
            if item.record.id == record_id:
                return item
        return None

    async def find_by_phone(self, module: str, phone: str) -> List[AggregatedRecord]:
        """Records whose phone contains the given digits."""
        digits = phone_digits(phone)
        if not digits:
            return []
        return [
            item for item in await self.read_all(module)
            if digits in phone_digits(item.record.phone)
        ]

    async def check_write_access(self, owner_tenant: str) -> None:
        """
        Raises:
            UnknownTenantError: owner is not head office or a registered tenant
            TenantAccessError: scoped viewer targeting another tenant
        """
        if not await self._registry.is_known(owner_tenant):
            raise UnknownTenantError(owner_tenant)
        if not self.identity.is_privileged and owner_tenant != self.identity.viewer_tenant:
            raise TenantAccessError(self.identity.viewer_tenant, owner_tenant)

    async def write_back(
        self,
        module: str,
        record: Union[BaseRecord, AggregatedRecord]
    ) -> BaseRecord:
        """Persist record into its owner's partition, dropping any read-time tag."""
        if isinstance(record, AggregatedRecord):
            record = record.strip()

        await self.check_write_access(record.owner_tenant)
        return await self.store(module).upsert(record.owner_tenant, record)

    async def modify(
        self,
        module: str,
        owner_tenant: str,
        record_id: str,
        change: Callable[[BaseRecord], BaseRecord]
    ) -> BaseRecord:
        """Atomic re-read and replace of one record in its owner's partition."""
        await self.check_write_access(owner_tenant)
        return await self.store(module).modify(owner_tenant, record_id, change)

    async def delete(self, module: str, owner_tenant: str, record_id: str) -> bool:
        await self.check_write_access(owner_tenant)
        removed = await self.store(module).remove(owner_tenant, record_id)
        if removed:
            logger.info(f"Deleted {module} record {record_id} from {owner_tenant}")
        return removed

    async def export_snapshot(self, module: str) -> List[Dict[str, Any]]:
        """Flat rows with a `source` column, ready for a CSV writer."""
        return [item.to_export_row() for item in await self.read_all(module)]

    async def module_counts(self, modules: Optional[Iterable[str]] = None) -> Dict[str, int]:
        counts = {}
        for module in modules or self._stores.keys():
            counts[module] = len(await self.read_all(module, degraded=True))
        return counts
