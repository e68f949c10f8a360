"""
Unit Tests for AggregationGateway
Privileged union reads, scoped isolation and write routing
"""
import pytest

from franchise_crm.domain.errors import TenantAccessError, UnknownTenantError
from franchise_crm.domain.models.record import AggregatedRecord, Vendor
from franchise_crm.domain.models.tenant import IdentityContext, TenantStatus
from franchise_crm.domain.services.aggregation_gateway import AggregationGateway


HEAD_OFFICE = IdentityContext.for_tenant("admin", "admin")
FRANCHISE_A = IdentityContext.for_tenant("a@boz.com", "admin")
FRANCHISE_B = IdentityContext.for_tenant("b@boz.com", "admin")


def vendor(record_id: str, owner: str, phone: str = "9000000000") -> Vendor:
    return Vendor(id=record_id, owner_tenant=owner, status="Pending", owner_name=record_id, phone=phone)


@pytest.fixture
def gateway_for(registry, stores):
    def build(identity):
        return AggregationGateway(registry, stores, identity)
    return build


async def seed(registry, stores):
    """Franchise A with 3 vendors, B with 2, head office with 1."""
    await registry.register("a@boz.com", "Franchise A")
    await registry.register("b@boz.com", "Franchise B")
    await stores["vendor"].save("a@boz.com", [vendor(f"A{i}", "a@boz.com") for i in range(1, 4)])
    await stores["vendor"].save("b@boz.com", [vendor(f"B{i}", "b@boz.com") for i in range(1, 3)])


class TestPrivilegedReads:
    """Tests for head office aggregation"""

    @pytest.mark.asyncio
    async def test_union_in_registration_order(self, registry, stores, gateway_for):
        """A's three vendors then B's two, each tagged with its franchise"""
        await seed(registry, stores)

        items = await gateway_for(HEAD_OFFICE).read_all("vendor")

        assert [i.record.id for i in items] == ["A1", "A2", "A3", "B1", "B2"]
        assert [i.tenant_tag for i in items] == ["Franchise A"] * 3 + ["Franchise B"] * 2

    @pytest.mark.asyncio
    async def test_head_office_partition_comes_first(self, registry, stores, gateway_for):
        """Head office records precede franchise records"""
        await seed(registry, stores)
        await stores["vendor"].save("admin", [vendor("H1", "admin")])

        items = await gateway_for(HEAD_OFFICE).read_all("vendor")

        assert items[0].record.id == "H1"
        assert items[0].tenant_tag == "Head Office"
        assert len(items) == 6

    @pytest.mark.asyncio
    async def test_inactive_tenants_are_included(self, registry, stores, gateway_for):
        """Deactivating a franchise does not hide its data from head office"""
        await seed(registry, stores)
        await registry.set_status("b@boz.com", TenantStatus.INACTIVE)

        items = await gateway_for(HEAD_OFFICE).read_all("vendor")

        assert len(items) == 5

    @pytest.mark.asyncio
    async def test_read_does_not_write(self, registry, stores, gateway_for, backend):
        """Aggregation never writes to source partitions"""
        await seed(registry, stores)
        before = {k: await backend.get(k) for k in backend.keys()}

        await gateway_for(HEAD_OFFICE).read_all("vendor")

        assert {k: await backend.get(k) for k in backend.keys()} == before

    @pytest.mark.asyncio
    async def test_degraded_read_skips_corrupted_partition(self, registry, stores, gateway_for, backend):
        """With degraded=True a broken franchise partition reads as empty"""
        await seed(registry, stores)
        await backend.set("crm:vendor_data_b@boz.com", "garbage")

        items = await gateway_for(HEAD_OFFICE).read_all("vendor", degraded=True)

        assert [i.record.id for i in items] == ["A1", "A2", "A3"]


class TestScopedReads:
    """Tests for franchise views"""

    @pytest.mark.asyncio
    async def test_scoped_sees_only_own_partition(self, registry, stores, gateway_for):
        """Franchise B sees its two vendors tagged as its own"""
        await seed(registry, stores)

        items = await gateway_for(FRANCHISE_B).read_all("vendor")

        assert [i.record.id for i in items] == ["B1", "B2"]
        assert all(i.tenant_tag == "My Franchise" for i in items)

    @pytest.mark.asyncio
    async def test_unknown_scoped_viewer_raises(self, registry, stores, gateway_for):
        """Unregistered franchises cannot read"""
        stranger = IdentityContext.for_tenant("x@boz.com", "admin")

        with pytest.raises(UnknownTenantError):
            await gateway_for(stranger).read_all("vendor")

    @pytest.mark.asyncio
    async def test_find_by_phone_matches_digits(self, registry, stores, gateway_for):
        """Phone lookup ignores formatting"""
        await registry.register("a@boz.com", "Franchise A")
        await stores["vendor"].save("a@boz.com", [vendor("A1", "a@boz.com", phone="+91 98765-43210")])

        matches = await gateway_for(FRANCHISE_A).find_by_phone("vendor", "98765 43210")

        assert [m.record.id for m in matches] == ["A1"]


class TestWriteBack:
    """Tests for write routing"""

    @pytest.mark.asyncio
    async def test_privileged_write_lands_in_owner_partition(self, registry, stores, gateway_for):
        """Editing a franchise record from head office writes to the franchise"""
        await seed(registry, stores)
        gateway = gateway_for(HEAD_OFFICE)
        item = (await gateway.read_all("vendor"))[3]

        updated = item.record.model_copy(update={"remarks": "Checked"})
        await gateway.write_back("vendor", AggregatedRecord(record=updated, tenant_tag=item.tenant_tag))

        b_records = await stores["vendor"].load("b@boz.com")
        assert b_records[0].remarks == "Checked"
        assert await stores["vendor"].load("admin") == []

    @pytest.mark.asyncio
    async def test_write_back_strips_tag(self, registry, stores, gateway_for, backend):
        """The aggregation tag is never persisted"""
        await seed(registry, stores)
        gateway = gateway_for(HEAD_OFFICE)
        item = (await gateway.read_all("vendor"))[0]

        await gateway.write_back("vendor", item)

        assert "Franchise A" not in await backend.get("crm:vendor_data_a@boz.com")
        assert "tenant_tag" not in await backend.get("crm:vendor_data_a@boz.com")

    @pytest.mark.asyncio
    async def test_unknown_owner_raises(self, registry, stores, gateway_for):
        """Records owned by unregistered tenants are rejected"""
        with pytest.raises(UnknownTenantError):
            await gateway_for(HEAD_OFFICE).write_back("vendor", vendor("X1", "ghost@boz.com"))

    @pytest.mark.asyncio
    async def test_scoped_cannot_write_other_tenant(self, registry, stores, gateway_for):
        """Franchise A cannot write into franchise B"""
        await seed(registry, stores)

        with pytest.raises(TenantAccessError):
            await gateway_for(FRANCHISE_A).write_back("vendor", vendor("B9", "b@boz.com"))

        assert len(await stores["vendor"].load("b@boz.com")) == 2

    @pytest.mark.asyncio
    async def test_scoped_delete_of_other_tenant_is_refused(self, registry, stores, gateway_for):
        """Deletes follow the same ownership rule"""
        await seed(registry, stores)

        with pytest.raises(TenantAccessError):
            await gateway_for(FRANCHISE_A).delete("vendor", "b@boz.com", "B1")


class TestExport:
    """Tests for export snapshot and counts"""

    @pytest.mark.asyncio
    async def test_export_rows_have_source(self, registry, stores, gateway_for):
        """Rows are flat and carry the origin tag"""
        await seed(registry, stores)

        rows = await gateway_for(HEAD_OFFICE).export_snapshot("vendor")

        assert len(rows) == 5
        assert rows[0]["source"] == "Franchise A"
        assert rows[0]["history_count"] == 0
        assert "history" not in rows[0]

    @pytest.mark.asyncio
    async def test_module_counts(self, registry, stores, gateway_for):
        await seed(registry, stores)

        counts = await gateway_for(HEAD_OFFICE).module_counts(["vendor", "lead"])

        assert counts == {"vendor": 5, "lead": 0}
