"""
Unit Tests for RecordService
Owner resolution, dispositions, import, promotion and enrichment hooks
"""
import asyncio
import logging
from datetime import date, datetime
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from franchise_crm.core.config import ConfigManager
from franchise_crm.core.container import AppContainer
from franchise_crm.domain.errors import (
    MissingFollowUpError,
    PersistenceError,
    RecordNotFoundError,
    TenantAccessError,
    UnknownTenantError,
    ValidationError,
)
from franchise_crm.domain.services.record_filter import RecordFilter
from franchise_crm.domain.services.record_service import ImportMode, RecordService


@pytest_asyncio.fixture
async def tenants(container):
    await container.registry.register("a@boz.com", "Franchise A")
    await container.registry.register("b@boz.com", "Franchise B")
    return container


def service_for(container, tenant_id, hooks=None):
    identity = container.identity_for(tenant_id)
    return RecordService(container.gateway_for(identity), container.lifecycle, hooks=hooks)


class TestOwnerResolution:
    """Tests for where new records land"""

    @pytest.mark.asyncio
    async def test_scoped_viewer_always_owns(self, tenants):
        """A franchise cannot create into another partition"""
        service = service_for(tenants, "a@boz.com")

        record = await service.create_record(
            "lead", {"name": "Kiran", "phone": "99887"}, owner_tenant="b@boz.com"
        )

        assert record.owner_tenant == "a@boz.com"
        assert await tenants.stores["lead"].load("b@boz.com") == []

    @pytest.mark.asyncio
    async def test_head_office_defaults_to_itself(self, tenants):
        record = await service_for(tenants, "admin").create_record("lead", {"name": "Kiran", "phone": "1"})
        assert record.owner_tenant == "admin"

    @pytest.mark.asyncio
    async def test_head_office_can_target_franchise(self, tenants):
        service = service_for(tenants, "admin")

        record = await service.create_record("lead", {"name": "Kiran", "phone": "1"}, owner_tenant="b@boz.com")

        assert [r.id for r in await tenants.stores["lead"].load("b@boz.com")] == [record.id]


class TestDispositions:
    """Tests for apply_disposition()"""

    @pytest.mark.asyncio
    async def test_disposition_persists_to_owner(self, tenants):
        """Head office disposition on a franchise record lands in the franchise"""
        franchise = service_for(tenants, "a@boz.com")
        record = await franchise.create_record("dialer_contact", {"name": "Meena", "phone": "98765"})

        updated = await service_for(tenants, "admin").apply_disposition("dialer_contact", record.id, "No Answer")

        stored = (await tenants.stores["dialer_contact"].load("a@boz.com"))[0]
        assert stored.status == "No Answer"
        assert stored.history[0].note == "Call not answered."
        assert updated.history == stored.history

    @pytest.mark.asyncio
    async def test_missing_follow_up_saves_nothing(self, tenants):
        service = service_for(tenants, "a@boz.com")
        record = await service.create_record("dialer_contact", {"name": "Meena", "phone": "98765"})

        with pytest.raises(MissingFollowUpError):
            await service.apply_disposition("dialer_contact", record.id, "Callback")

        stored = (await tenants.stores["dialer_contact"].load("a@boz.com"))[0]
        assert stored.status == "Pending"
        assert stored.history == []

    @pytest.mark.asyncio
    async def test_unknown_record(self, tenants):
        with pytest.raises(RecordNotFoundError):
            await service_for(tenants, "admin").apply_disposition("dialer_contact", "C-missing", "No Answer")

    @pytest.mark.asyncio
    async def test_scoped_viewer_cannot_see_other_records(self, tenants):
        """Franchise B cannot disposition A's record"""
        record = await service_for(tenants, "a@boz.com").create_record(
            "dialer_contact", {"name": "Meena", "phone": "98765"}
        )

        with pytest.raises(RecordNotFoundError):
            await service_for(tenants, "b@boz.com").apply_disposition("dialer_contact", record.id, "No Answer")

    @pytest.mark.asyncio
    async def test_hook_failure_is_logged_not_raised(self, tenants, caplog):
        """A failing enrichment hook does not undo the transition"""
        calls = []

        async def broken(module, record):
            calls.append(record.id)
            raise RuntimeError("enrichment down")

        service = service_for(tenants, "a@boz.com", hooks=[broken])
        record = await service.create_record("vendor", {"owner_name": "Ravi", "phone": "98765"})

        with caplog.at_level(logging.ERROR):
            updated = await service.apply_disposition("vendor", record.id, "Active")
            await service.wait_for_hooks()

        assert updated.status == "Active"
        assert calls == [record.id]
        assert "Enrichment hook failed" in caplog.text
        assert (await tenants.stores["vendor"].load("a@boz.com"))[0].status == "Active"


class TestEditsAndDeletes:
    """Tests for update, delete and clear"""

    @pytest.mark.asyncio
    async def test_update_record(self, tenants):
        service = service_for(tenants, "a@boz.com")
        record = await service.create_record("staff", {"name": "Divya", "phone": "1"})

        updated = await service.update_record("staff", record.id, {"department": "Ops"})

        assert updated.department == "Ops"
        assert (await tenants.stores["staff"].load("a@boz.com"))[0].department == "Ops"

    @pytest.mark.asyncio
    async def test_delete_record(self, tenants):
        service = service_for(tenants, "a@boz.com")
        record = await service.create_record("staff", {"name": "Divya", "phone": "1"})

        await service.delete_record("staff", record.id)

        with pytest.raises(RecordNotFoundError):
            await service.get_record("staff", record.id)

    @pytest.mark.asyncio
    async def test_clear_partition_scoped_to_owner(self, tenants):
        """Clearing from a franchise only empties its own partition"""
        await service_for(tenants, "a@boz.com").create_record("staff", {"name": "A", "phone": "1"})
        await service_for(tenants, "b@boz.com").create_record("staff", {"name": "B", "phone": "2"})

        owner = await service_for(tenants, "a@boz.com").clear_partition("staff", owner_tenant="b@boz.com")

        assert owner == "a@boz.com"
        assert await tenants.stores["staff"].load("a@boz.com") == []
        assert len(await tenants.stores["staff"].load("b@boz.com")) == 1

    @pytest.mark.asyncio
    async def test_list_records_with_filter(self, tenants):
        service = service_for(tenants, "admin")
        await service.create_record("lead", {"name": "Kiran", "phone": "1", "city": "Pune"})
        await service.create_record("lead", {"name": "Rahul", "phone": "2", "city": "Delhi"})

        items = await service.list_records("lead", RecordFilter(city="Pune"))

        assert [i.record.name for i in items] == ["Kiran"]


class TestImport:
    """Tests for bulk import"""

    @pytest.mark.asyncio
    async def test_append_skips_rows_without_phone(self, tenants):
        service = service_for(tenants, "a@boz.com")
        rows = [
            {"name": "One", "phone": "111"},
            {"name": "Two", "phone": ""},
            {"name": "Three", "phone": "333"},
        ]

        result = await service.import_records("dialer_contact", rows)

        assert result.imported == 2
        assert result.skipped == 1
        assert result.errors[0].row == 2
        assert result.errors[0].error == "Missing phone number"
        assert [r.name for r in await tenants.stores["dialer_contact"].load("a@boz.com")] == ["One", "Three"]

    @pytest.mark.asyncio
    async def test_append_keeps_existing(self, tenants):
        service = service_for(tenants, "a@boz.com")
        await service.create_record("dialer_contact", {"name": "Existing", "phone": "1"})

        await service.import_records("dialer_contact", [{"name": "New", "phone": "2"}])

        names = [r.name for r in await tenants.stores["dialer_contact"].load("a@boz.com")]
        assert names == ["Existing", "New"]

    @pytest.mark.asyncio
    async def test_replace_overwrites_partition(self, tenants):
        service = service_for(tenants, "a@boz.com")
        await service.create_record("dialer_contact", {"name": "Existing", "phone": "1"})

        result = await service.import_records(
            "dialer_contact", [{"name": "New", "phone": "2"}], mode=ImportMode.REPLACE
        )

        assert result.owner_tenant == "a@boz.com"
        assert [r.name for r in await tenants.stores["dialer_contact"].load("a@boz.com")] == ["New"]

    @pytest.mark.asyncio
    async def test_invalid_rows_are_reported(self, tenants):
        """Rows failing validation are skipped with their reason"""
        service = service_for(tenants, "admin")

        result = await service.import_records("vendor", [{"phone": "1"}, {"owner_name": "Ravi", "phone": "2"}])

        assert result.imported == 1
        assert result.errors[0].row == 1
        assert result.errors[0].phone == "1"

    @pytest.mark.asyncio
    async def test_import_into_unknown_tenant_rejected(self, tenants):
        with pytest.raises(UnknownTenantError):
            await service_for(tenants, "admin").import_records(
                "lead", [{"name": "X", "phone": "1"}], owner_tenant="ghost@boz.com"
            )


class TestPromoteEnquiry:
    """Tests for enquiry to vendor promotion"""

    @pytest.mark.asyncio
    async def test_promote_creates_vendor_in_same_tenant(self, tenants):
        service = service_for(tenants, "a@boz.com")
        enquiry = await service.create_record(
            "enquiry",
            {"name": "Suresh", "phone": "98765", "city": "Pune", "enquiry_type": "Vendor", "details": "2 cabs"},
        )

        updated, vendor = await service.promote_enquiry_to_vendor(enquiry.id, vehicle_type="Sedan")

        assert vendor.owner_tenant == "a@boz.com"
        assert vendor.owner_name == "Suresh"
        assert vendor.vehicle_type == "Sedan"
        assert vendor.remarks == "2 cabs"
        assert updated.status == "Converted"
        assert updated.vendor_id == vendor.id
        assert updated.history[0].note == f"Converted to vendor {vendor.id}."

    @pytest.mark.asyncio
    async def test_promote_twice_rejected(self, tenants):
        service = service_for(tenants, "a@boz.com")
        enquiry = await service.create_record("enquiry", {"name": "Suresh", "phone": "98765"})
        await service.promote_enquiry_to_vendor(enquiry.id)

        with pytest.raises(ValidationError):
            await service.promote_enquiry_to_vendor(enquiry.id)

        assert len(await tenants.stores["vendor"].load("a@boz.com")) == 1

    @pytest.mark.asyncio
    async def test_failed_enquiry_write_removes_vendor(self, tenants, monkeypatch):
        """A vendor is not left behind when the enquiry cannot be converted"""
        service = service_for(tenants, "a@boz.com")
        enquiry = await service.create_record("enquiry", {"name": "Suresh", "phone": "98765"})
        failure = PersistenceError("write", "crm:enquiries_a@boz.com", RuntimeError("backend down"))
        monkeypatch.setattr(tenants.stores["enquiry"], "modify", AsyncMock(side_effect=failure))

        with pytest.raises(PersistenceError):
            await service.promote_enquiry_to_vendor(enquiry.id, vehicle_type="Sedan")

        assert await tenants.stores["vendor"].load("a@boz.com") == []
        stored = (await tenants.stores["enquiry"].load("a@boz.com"))[0]
        assert stored.vendor_id is None

    @pytest.mark.asyncio
    async def test_enquiry_deleted_mid_promotion(self, tenants, monkeypatch):
        """The enquiry vanishing before conversion rolls back the vendor"""
        service = service_for(tenants, "a@boz.com")
        enquiry = await service.create_record("enquiry", {"name": "Suresh", "phone": "98765"})
        store = tenants.stores["enquiry"]
        original_modify = store.modify

        async def delete_then_modify(tenant_id, record_id, change):
            await store.remove(tenant_id, record_id)
            return await original_modify(tenant_id, record_id, change)

        monkeypatch.setattr(store, "modify", delete_then_modify)

        with pytest.raises(RecordNotFoundError):
            await service.promote_enquiry_to_vendor(enquiry.id)

        assert await tenants.stores["vendor"].load("a@boz.com") == []

    @pytest.mark.asyncio
    async def test_concurrent_promotions_create_one_vendor(self, tenants):
        service = service_for(tenants, "a@boz.com")
        enquiry = await service.create_record("enquiry", {"name": "Suresh", "phone": "98765"})

        results = await asyncio.gather(
            service.promote_enquiry_to_vendor(enquiry.id),
            service.promote_enquiry_to_vendor(enquiry.id),
            return_exceptions=True,
        )

        assert sum(isinstance(r, ValidationError) for r in results) == 1
        vendors = await tenants.stores["vendor"].load("a@boz.com")
        assert len(vendors) == 1
        stored = (await tenants.stores["enquiry"].load("a@boz.com"))[0]
        assert stored.vendor_id == vendors[0].id

    @pytest.mark.asyncio
    async def test_lookup_by_phone(self, tenants):
        """Incoming caller matched against vendors and enquiries"""
        service = service_for(tenants, "admin")
        await service.create_record("vendor", {"owner_name": "Ravi", "phone": "+91 98765 43210"}, owner_tenant="b@boz.com")

        matches = await service.lookup_by_phone("9876543210")

        assert len(matches["vendor"]) == 1
        assert matches["vendor"][0].tenant_tag == "Franchise B"
        assert matches["enquiry"] == []


class TestAccess:
    """Tests for scoped write protection"""

    @pytest.mark.asyncio
    async def test_scoped_import_cannot_target_other_tenant(self, tenants):
        """Scoped owner resolution ignores the requested tenant"""
        result = await service_for(tenants, "b@boz.com").import_records(
            "lead", [{"name": "X", "phone": "1"}], owner_tenant="a@boz.com"
        )
        assert result.owner_tenant == "b@boz.com"

    @pytest.mark.asyncio
    async def test_unregistered_scoped_viewer_cannot_write(self, tenants):
        with pytest.raises((UnknownTenantError, TenantAccessError)):
            await service_for(tenants, "ghost@boz.com").create_record("lead", {"name": "X", "phone": "1"})

    @pytest.mark.asyncio
    async def test_due_follow_up_roundtrip(self, tenants):
        service = service_for(tenants, "a@boz.com")
        record = await service.create_record("lead", {"name": "Kiran", "phone": "1"})

        updated = await service.apply_disposition("lead", record.id, "Callback", follow_up_due=date(2024, 6, 16))

        assert updated.next_follow_up.date() == date(2024, 6, 16)


class TestFollowUpOnCreate:
    """Records created straight into the follow-up status"""

    @pytest.mark.asyncio
    async def test_create_with_due_date(self, tenants):
        service = service_for(tenants, "a@boz.com")

        record = await service.create_record(
            "dialer_contact",
            {"name": "Meena", "phone": "98765", "status": "Callback"},
            follow_up_due=date(2024, 6, 14),
        )

        assert record.next_follow_up == datetime(2024, 6, 14)
        engine = tenants.campaign_engine("dialer_contact")
        assert engine.is_due(record, date(2024, 6, 15))

    @pytest.mark.asyncio
    async def test_create_without_due_date_saves_nothing(self, tenants):
        service = service_for(tenants, "a@boz.com")

        with pytest.raises(MissingFollowUpError):
            await service.create_record("dialer_contact", {"name": "Meena", "phone": "98765", "status": "Callback"})

        assert await tenants.stores["dialer_contact"].load("a@boz.com") == []

    @pytest.mark.asyncio
    async def test_import_callback_rows(self, tenants):
        """Callback rows need a next_follow_up column"""
        result = await service_for(tenants, "a@boz.com").import_records("dialer_contact", [
            {"name": "A", "phone": "1", "status": "Callback"},
            {"name": "B", "phone": "2", "status": "Callback", "next_follow_up": "2024-06-14"},
        ])

        assert result.imported == 1
        assert [e.row for e in result.errors] == [1]
        stored = await tenants.stores["dialer_contact"].load("a@boz.com")
        assert stored[0].name == "B"
        assert stored[0].next_follow_up == datetime(2024, 6, 14)


class TestHookShutdown:
    """Enrichment hooks outlive the request but not the container"""

    @pytest.mark.asyncio
    async def test_shutdown_drains_pending_hooks(self, settings, backend, notifier, clock, tmp_path):
        calls = []

        async def slow_enrichment(module, record):
            await asyncio.sleep(0.01)
            calls.append((module, record.id))

        container = AppContainer(
            settings,
            ConfigManager(env="test", config_dir=tmp_path),
            backend,
            notifier,
            clock=clock,
            hooks=[slow_enrichment],
        )
        service = container.record_service_for(container.identity_for("admin"))
        record = await service.create_record("vendor", {"owner_name": "Ravi", "phone": "98765"})
        await service.apply_disposition("vendor", record.id, "Active")

        assert len(container.hook_tasks) == 1

        await container.shutdown()

        assert calls == [("vendor", record.id)]
        assert container.hook_tasks == set()
