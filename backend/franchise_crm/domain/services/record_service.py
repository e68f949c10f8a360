"""
Record Service
User actions on module records, routed through the aggregation gateway

Every write re-reads the owning partition under its lock immediately
before saving, so concurrent views in this process never lose updates.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple, Union

from franchise_crm.domain.errors import MissingFollowUpError, RecordNotFoundError, ValidationError
from franchise_crm.domain.models.modules import ModuleType
from franchise_crm.domain.models.record import (
    AggregatedRecord,
    BaseRecord,
    EnquiryStatus,
)
from franchise_crm.domain.services.aggregation_gateway import AggregationGateway
from franchise_crm.domain.services.record_filter import RecordFilter
from franchise_crm.domain.services.record_lifecycle import RecordLifecycle

logger = logging.getLogger(__name__)


# Called after a transition is persisted, e.g. to enrich the record from an
# external service. Runs in the background; failures are only logged.
EnrichmentHook = Callable[[str, BaseRecord], Awaitable[None]]


class ImportMode(str, Enum):
    APPEND = "append"
    REPLACE = "replace"


@dataclass
class ImportRowError:
    row: int
    error: str
    phone: Optional[str] = None


@dataclass
class ImportResult:
    """Outcome of a bulk import"""
    total_rows: int
    imported: int
    skipped: int
    errors: List[ImportRowError] = field(default_factory=list)
    owner_tenant: str = ""


class RecordService:
    """Create, edit, disposition, delete and import records for one viewer."""

    def __init__(
        self,
        gateway: AggregationGateway,
        lifecycle: RecordLifecycle,
        hooks: Optional[List[EnrichmentHook]] = None,
        background: Optional[Set[asyncio.Task]] = None
    ):
        self.gateway = gateway
        self.lifecycle = lifecycle
        self._hooks = list(hooks or [])
        # Owned by the container when shared; shutdown drains it
        self._background: Set[asyncio.Task] = background if background is not None else set()

    @property
    def identity(self):
        return self.gateway.identity

    async def list_records(
        self,
        module: str,
        record_filter: Optional[RecordFilter] = None,
        degraded: bool = False
    ) -> List[AggregatedRecord]:
        items = await self.gateway.read_all(module, degraded=degraded)
        if record_filter is None:
            return items
        return record_filter.apply(items, self.lifecycle.clock.today())

    async def get_record(self, module: str, record_id: str) -> AggregatedRecord:
        item = await self.gateway.find(module, record_id)
        if item is None:
            raise RecordNotFoundError(module, record_id)
        return item

    def resolve_owner(self, owner_tenant: Optional[str] = None) -> str:
        """
        Partition a new record goes into.

        Scoped viewers always write to themselves; head office writes to
        its own partition unless an explicit owner is given.
        """
        if not self.identity.is_privileged:
            return self.identity.viewer_tenant
        return owner_tenant or self.identity.viewer_tenant

    # =========================================================================
    # Single-record actions
    # =========================================================================

    async def create_record(
        self,
        module: str,
        fields: Dict[str, Any],
        owner_tenant: Optional[str] = None,
        follow_up_due: Optional[Union[datetime, date]] = None
    ) -> BaseRecord:
        owner = self.resolve_owner(owner_tenant)
        record = self.lifecycle.create(module, owner, fields, follow_up_due=follow_up_due)
        saved = await self.gateway.write_back(module, record)
        logger.info(f"Created {module} record {saved.id} in {owner}")
        return saved

    async def update_record(self, module: str, record_id: str, changes: Dict[str, Any]) -> BaseRecord:
        item = await self.get_record(module, record_id)
        return await self.gateway.modify(
            module,
            item.record.owner_tenant,
            record_id,
            lambda current: self.lifecycle.apply_edits(current, changes)
        )

    async def apply_disposition(
        self,
        module: str,
        record_id: str,
        status: str,
        note: Optional[str] = None,
        follow_up_due: Optional[Union[datetime, date]] = None
    ) -> BaseRecord:
        """
        Log an interaction outcome on a record.

        The transition is computed from the freshly re-read record inside
        the partition lock; validation errors abort before anything is saved.
        """
        item = await self.get_record(module, record_id)
        updated = await self.gateway.modify(
            module,
            item.record.owner_tenant,
            record_id,
            lambda current: self.lifecycle.transition(
                current, status, note=note, follow_up_due=follow_up_due
            )
        )
        self._run_hooks(module, updated)
        return updated

    async def delete_record(self, module: str, record_id: str) -> None:
        item = await self.get_record(module, record_id)
        removed = await self.gateway.delete(module, item.record.owner_tenant, record_id)
        if not removed:
            raise RecordNotFoundError(module, record_id)

    async def clear_partition(self, module: str, owner_tenant: Optional[str] = None) -> str:
        owner = self.resolve_owner(owner_tenant)
        await self.gateway.check_write_access(owner)
        await self.gateway.store(module).clear(owner)
        return owner

    # =========================================================================
    # Bulk import
    # =========================================================================

    async def import_records(
        self,
        module: str,
        rows: List[Dict[str, Any]],
        mode: ImportMode = ImportMode.APPEND,
        owner_tenant: Optional[str] = None
    ) -> ImportResult:
        """
        Create records from parsed rows.

        Rows without a phone number are skipped; invalid rows are reported
        with their 1-based row number. Replace mode overwrites the owner's
        partition with the imported records only.
        """
        owner = self.resolve_owner(owner_tenant)
        await self.gateway.check_write_access(owner)

        created: List[BaseRecord] = []
        errors: List[ImportRowError] = []
        for row_num, row in enumerate(rows, start=1):
            phone = str(row.get("phone") or "").strip()
            if not phone:
                errors.append(ImportRowError(row=row_num, error="Missing phone number"))
                continue
            try:
                created.append(self.lifecycle.create(
                    module, owner, row, follow_up_due=row.get("next_follow_up") or None
                ))
            except (ValidationError, MissingFollowUpError) as e:
                errors.append(ImportRowError(row=row_num, error=e.message, phone=phone))

        store = self.gateway.store(module)
        if ImportMode(mode) == ImportMode.REPLACE:
            await store.save(owner, created)
        elif created:
            await store.append_many(owner, created)

        logger.info(
            f"Imported {len(created)}/{len(rows)} {module} rows into {owner} "
            f"({ImportMode(mode).value}, {len(errors)} skipped)"
        )
        return ImportResult(
            total_rows=len(rows),
            imported=len(created),
            skipped=len(errors),
            errors=errors,
            owner_tenant=owner,
        )

    # =========================================================================
    # Cross-module actions
    # =========================================================================

    async def promote_enquiry_to_vendor(
        self,
        enquiry_id: str,
        vehicle_type: str = "",
        note: Optional[str] = None
    ) -> Tuple[BaseRecord, BaseRecord]:
        """
        Turn an enquiry into a vendor in the same tenant.

        Returns:
            (updated enquiry, new vendor)

        Raises:
            ValidationError: enquiry was already promoted
        """
        enquiry_module = ModuleType.ENQUIRY.value
        vendor_module = ModuleType.VENDOR.value

        enquiry = (await self.get_record(enquiry_module, enquiry_id)).record
        self._check_not_promoted(enquiry)

        vendor = self.lifecycle.create(vendor_module, enquiry.owner_tenant, {
            "owner_name": enquiry.name,
            "phone": enquiry.phone,
            "email": enquiry.email,
            "city": enquiry.city,
            "vehicle_type": vehicle_type,
            "remarks": enquiry.details,
        })
        vendor = await self.gateway.write_back(vendor_module, vendor)

        def convert(current: BaseRecord) -> BaseRecord:
            # Re-checked under the partition lock
            self._check_not_promoted(current)
            converted = self.lifecycle.transition(
                current,
                EnquiryStatus.CONVERTED,
                note=note or f"Converted to vendor {vendor.id}."
            )
            return converted.model_copy(update={"vendor_id": vendor.id})

        try:
            updated = await self.gateway.modify(enquiry_module, enquiry.owner_tenant, enquiry_id, convert)
        except Exception:
            logger.warning(
                f"Promotion of enquiry {enquiry_id} failed, removing vendor {vendor.id}"
            )
            await self.gateway.delete(vendor_module, enquiry.owner_tenant, vendor.id)
            raise

        logger.info(f"Promoted enquiry {enquiry_id} to vendor {vendor.id} in {enquiry.owner_tenant}")
        return updated, vendor

    def _check_not_promoted(self, enquiry: BaseRecord) -> None:
        if enquiry.vendor_id:
            raise ValidationError(
                f"Enquiry {enquiry.id} is already linked to vendor {enquiry.vendor_id}",
                fields={"vendor_id": "already set"}
            )

    async def lookup_by_phone(
        self,
        phone: str,
        modules: Optional[List[str]] = None
    ) -> Dict[str, List[AggregatedRecord]]:
        """Existing vendors and enquiries (by default) matching a caller's number."""
        modules = modules or [ModuleType.VENDOR.value, ModuleType.ENQUIRY.value]
        return {module: await self.gateway.find_by_phone(module, phone) for module in modules}

    # =========================================================================
    # Enrichment hooks
    # =========================================================================

    def _run_hooks(self, module: str, record: BaseRecord) -> None:
        for hook in self._hooks:
            task = asyncio.create_task(self._run_hook(hook, module, record))
            self._background.add(task)
            task.add_done_callback(self._background.discard)

    async def _run_hook(self, hook: EnrichmentHook, module: str, record: BaseRecord) -> None:
        try:
            await hook(module, record)
        except Exception as e:
            logger.error(f"Enrichment hook failed for {module} {record.id}: {e}", exc_info=True)

    async def wait_for_hooks(self) -> None:
        """Await background hooks (used on shutdown and in tests)."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
