"""
Partition Store
Tenant-partitioned persistence for one module's records

Key layout:
- {namespace}{storage_key}             - head office partition
- {namespace}{storage_key}_{tenant_id} - franchise partitions
Each partition is a single JSON array written in one SET.
"""
import asyncio
import json
import logging
from typing import Callable, Dict, Generic, List, Optional, TypeVar

from pydantic import ValidationError as PydanticValidationError

from franchise_crm.domain.errors import (
    CorruptedPartitionError,
    PersistenceError,
    RecordNotFoundError,
    ValidationError,
)
from franchise_crm.domain.interfaces.change_notifier import ChangeNotifier
from franchise_crm.domain.interfaces.kv_backend import KeyValueBackend
from franchise_crm.domain.models.change_event import ChangeEvent, ChangeOperation
from franchise_crm.domain.models.modules import ModuleSpec
from franchise_crm.domain.models.record import BaseRecord

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=BaseRecord)


class PartitionStore(Generic[RecordT]):
    """
    Loads and saves one module's records, one partition per tenant.

    Read-modify-save cycles on the same key are serialized by a per-key
    asyncio.Lock, so two coroutines in this process cannot lose each
    other's update. Across processes the later save wins.
    """

    def __init__(
        self,
        spec: ModuleSpec,
        backend: KeyValueBackend,
        notifier: Optional[ChangeNotifier] = None,
        namespace: str = "crm:",
        privileged_tenant_id: str = "admin"
    ):
        self.spec = spec
        self._backend = backend
        self._notifier = notifier
        self._namespace = namespace
        self._privileged_tenant_id = privileged_tenant_id
        self._locks: Dict[str, asyncio.Lock] = {}

    @property
    def module(self) -> str:
        return self.spec.module.value

    @property
    def record_class(self):
        return self.spec.record_class

    def key_for(self, tenant_id: str) -> str:
        """Storage key of tenant's partition."""
        if tenant_id == self._privileged_tenant_id:
            return f"{self._namespace}{self.spec.storage_key}"
        return f"{self._namespace}{self.spec.storage_key}_{tenant_id}"

    def _lock_for(self, key: str) -> asyncio.Lock:
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    # =========================================================================
    # Reads
    # =========================================================================

    async def load(self, tenant_id: str, degraded: bool = False) -> List[RecordT]:
        """
        Load tenant's partition in stored order.

        Args:
            tenant_id: Partition owner
            degraded: Return [] instead of raising when the data is corrupted

        Returns:
            Records, or [] when the partition has never been written

        Raises:
            CorruptedPartitionError: Stored data is unreadable and degraded is False
            PersistenceError: Backend read failed
        """
        key = self.key_for(tenant_id)
        try:
            return await self._read(key, tenant_id)
        except CorruptedPartitionError as e:
            if not degraded:
                raise
            logger.warning(f"Degraded read of {key}, returning empty partition: {e.reason}")
            return []

    async def get(self, tenant_id: str, record_id: str) -> Optional[RecordT]:
        for record in await self.load(tenant_id):
            if record.id == record_id:
                return record
        return None

    async def _read(self, key: str, tenant_id: str) -> List[RecordT]:
        try:
            raw = await self._backend.get(key)
        except Exception as e:
            logger.error(f"Backend read failed for {key}: {e}")
            raise PersistenceError("read", key, e) from e

        if raw is None or raw == "":
            return []

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise CorruptedPartitionError(self.module, tenant_id, f"invalid JSON: {e}") from e

        if data is None:
            return []
        if not isinstance(data, list):
            raise CorruptedPartitionError(
                self.module, tenant_id, f"expected a JSON array, got {type(data).__name__}"
            )

        try:
            return [self.record_class.model_validate(item) for item in data]
        except PydanticValidationError as e:
            raise CorruptedPartitionError(
                self.module, tenant_id, f"{e.error_count()} invalid record field(s)"
            ) from e

    # =========================================================================
    # Writes
    # =========================================================================

    async def save(self, tenant_id: str, records: List[RecordT]) -> None:
        """
        Replace tenant's partition with records.

        Raises:
            ValidationError: A record is owned by a different tenant
            PersistenceError: Backend write failed (stored data unchanged)
        """
        self._check_ownership(tenant_id, records)
        key = self.key_for(tenant_id)
        async with self._lock_for(key):
            await self._write(key, records)
        await self._publish(tenant_id, ChangeOperation.SAVE)

    async def upsert(self, tenant_id: str, record: RecordT) -> RecordT:
        """Replace record by id, or insert it at the front (newest first)."""
        self._check_ownership(tenant_id, [record])

        def apply(records: List[RecordT]) -> List[RecordT]:
            for i, existing in enumerate(records):
                if existing.id == record.id:
                    records[i] = record
                    return records
            return [record] + records

        await self._mutate(tenant_id, apply)
        await self._publish(tenant_id, ChangeOperation.UPSERT, record.id)
        return record

    async def modify(
        self,
        tenant_id: str,
        record_id: str,
        change: Callable[[RecordT], RecordT]
    ) -> RecordT:
        """
        Re-read record_id and replace it with change(record), all under the
        partition lock. Errors raised by change abort the write.

        Raises:
            RecordNotFoundError: record_id is not in the partition
        """
        updated: Optional[RecordT] = None

        def apply(records: List[RecordT]) -> List[RecordT]:
            nonlocal updated
            for i, existing in enumerate(records):
                if existing.id == record_id:
                    updated = change(existing)
                    self._check_ownership(tenant_id, [updated])
                    records[i] = updated
                    return records
            raise RecordNotFoundError(self.module, record_id)

        await self._mutate(tenant_id, apply)
        await self._publish(tenant_id, ChangeOperation.UPSERT, record_id)
        return updated

    async def append_many(self, tenant_id: str, new_records: List[RecordT]) -> None:
        """Append records after the existing ones, keeping their order."""
        self._check_ownership(tenant_id, new_records)
        await self._mutate(tenant_id, lambda records: records + list(new_records))
        await self._publish(tenant_id, ChangeOperation.SAVE)

    async def remove(self, tenant_id: str, record_id: str) -> bool:
        """Delete a record permanently. Returns False if it was not present."""
        removed = False

        def apply(records: List[RecordT]) -> List[RecordT]:
            nonlocal removed
            kept = [r for r in records if r.id != record_id]
            removed = len(kept) != len(records)
            return kept

        await self._mutate(tenant_id, apply)
        if removed:
            await self._publish(tenant_id, ChangeOperation.REMOVE, record_id)
        return removed

    async def clear(self, tenant_id: str) -> None:
        """Drop tenant's whole partition."""
        key = self.key_for(tenant_id)
        async with self._lock_for(key):
            try:
                await self._backend.delete(key)
            except Exception as e:
                logger.error(f"Backend delete failed for {key}: {e}")
                raise PersistenceError("delete", key, e) from e
        logger.info(f"Cleared partition {key}")
        await self._publish(tenant_id, ChangeOperation.CLEAR)

    async def _mutate(
        self,
        tenant_id: str,
        apply: Callable[[List[RecordT]], List[RecordT]]
    ) -> None:
        """Read, apply and write back under the partition lock."""
        key = self.key_for(tenant_id)
        async with self._lock_for(key):
            records = await self._read(key, tenant_id)
            await self._write(key, apply(records))

    async def _write(self, key: str, records: List[RecordT]) -> None:
        payload = json.dumps([r.model_dump(mode="json") for r in records])
        try:
            await self._backend.set(key, payload)
        except Exception as e:
            logger.error(f"Backend write failed for {key}: {e}")
            raise PersistenceError("write", key, e) from e

    def _check_ownership(self, tenant_id: str, records: List[RecordT]) -> None:
        foreign = {r.id: r.owner_tenant for r in records if r.owner_tenant != tenant_id}
        if foreign:
            raise ValidationError(
                f"Records not owned by {tenant_id} cannot be saved to its partition",
                fields={rid: f"owned by {owner}" for rid, owner in foreign.items()}
            )

    async def _publish(
        self,
        tenant_id: str,
        operation: ChangeOperation,
        record_id: Optional[str] = None
    ) -> None:
        if self._notifier is None:
            return
        event = ChangeEvent(
            module=self.module,
            tenant_id=tenant_id,
            operation=operation,
            record_id=record_id
        )
        try:
            await self._notifier.publish(event)
        except Exception as e:
            # The write already succeeded; views catch up on the next read
            logger.error(f"Failed to publish change for {self.module}/{tenant_id}: {e}")
