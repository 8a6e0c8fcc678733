"""
Inventory units: barcodes, listing, sale links and history.
"""
from decimal import Decimal

import pytest

from pos_inventory.db_models import InventoryUnitStatus
from pos_inventory.errors import ConflictError, NotFoundError, ValidationError
from pos_inventory.services.inventory_units import InventoryUnitService, generate_placeholder_barcode
from pos_inventory.services.sales import SaleService

from tests.helpers import each_line, make_each_item, receive_each, sale, units_of


class TestBarcodes:

    def test_placeholder_format(self):
        code = generate_placeholder_barcode()
        assert code.startswith("AUTO-")
        assert generate_placeholder_barcode() != code

    def test_normalize(self):
        assert InventoryUnitService.normalize_barcode("  SN-9 ") == "SN-9"
        assert InventoryUnitService.normalize_barcode("   ") is None
        with pytest.raises(ValidationError, match="characters or fewer"):
            InventoryUnitService.normalize_barcode("X" * 192)

    async def test_assign_replaces_placeholder(self, db):
        item = await make_each_item(db)
        await receive_each(db, item.id, 1)
        [unit] = await units_of(db, item.id)
        assert unit.is_placeholder

        updated = await InventoryUnitService(db).assign_barcode(unit.id, "  4006381333931 ")
        assert updated.barcode == "4006381333931"
        assert updated.is_placeholder is False

    async def test_assign_empty_clears_barcode(self, db):
        item = await make_each_item(db)
        await receive_each(db, item.id, 1, serials=["SN-1"])
        [unit] = await units_of(db, item.id)
        updated = await InventoryUnitService(db).assign_barcode(unit.id, "")
        assert updated.barcode is None
        assert updated.is_placeholder is True

    async def test_assign_taken_barcode(self, db):
        item = await make_each_item(db)
        await receive_each(db, item.id, 2, serials=["SN-1", "SN-2"])
        first, second = await units_of(db, item.id)
        with pytest.raises(ConflictError, match="already assigned"):
            await InventoryUnitService(db).assign_barcode(second.id, "SN-1")

    async def test_reassigning_own_barcode_is_fine(self, db):
        item = await make_each_item(db)
        await receive_each(db, item.id, 1, serials=["SN-1"])
        [unit] = await units_of(db, item.id)
        assert (await InventoryUnitService(db).assign_barcode(unit.id, "SN-1")).barcode == "SN-1"

    async def test_lookup(self, db):
        item = await make_each_item(db)
        await receive_each(db, item.id, 1, serials=["SN-1"])
        service = InventoryUnitService(db)
        assert (await service.lookup_by_barcode(" SN-1 ")).item_id == item.id
        with pytest.raises(ValidationError, match="Barcode is required"):
            await service.lookup_by_barcode("  ")
        with pytest.raises(NotFoundError, match="No inventory unit matches"):
            await service.lookup_by_barcode("SN-404")

    async def test_unknown_unit(self, db):
        with pytest.raises(NotFoundError, match="Inventory unit not found"):
            await InventoryUnitService(db).assign_barcode(12345, "X")


class TestListing:

    async def test_placeholders_hidden_by_default(self, db):
        item = await make_each_item(db)
        await receive_each(db, item.id, 2, serials=["SN-1", "SN-2"])
        await receive_each(db, item.id, 3)
        service = InventoryUnitService(db)

        real = await service.list_for_item(item.id)
        assert sorted(u.barcode for u in real) == ["SN-1", "SN-2"]
        assert len(await service.list_for_item(item.id, include_placeholders=True)) == 5

    async def test_newest_first_and_limit(self, db):
        item = await make_each_item(db)
        await receive_each(db, item.id, 3, serials=["A", "B", "C"])
        units = await InventoryUnitService(db).list_for_item(item.id, limit=2)
        assert [u.barcode for u in units] == ["C", "B"]

    def test_limit_clamped(self):
        assert InventoryUnitService.clamp_limit(None) == 200
        assert InventoryUnitService.clamp_limit(0) == 1
        assert InventoryUnitService.clamp_limit(5000) == 1000

    async def test_status_filter(self, db):
        item = await make_each_item(db)
        await receive_each(db, item.id, 2, serials=["SN-1", "SN-2"])
        first, _ = await units_of(db, item.id)
        await SaleService(db).create_transaction(sale(each_line(item.id, 1, [first.id])))

        sold = await InventoryUnitService(db).list_for_item(item.id, status=InventoryUnitStatus.sold)
        assert [u.id for u in sold] == [first.id]

    async def test_auto_serial_off_leaves_barcode_empty(self, db):
        item = await make_each_item(db)
        await receive_each(db, item.id, 2, auto_serial=False)
        units = await units_of(db, item.id)
        assert [u.barcode for u in units] == [None, None]
        assert all(u.is_placeholder for u in units)


class TestSaleLinks:

    async def test_unit_cannot_be_linked_twice(self, db):
        item = await make_each_item(db)
        await receive_each(db, item.id, 1, serials=["SN-1"])
        [unit] = await units_of(db, item.id)
        tx = await SaleService(db).create_transaction(sale(each_line(item.id, 1, [unit.id])))
        receipt = await SaleService(db).receipt(tx.id)

        with pytest.raises(ConflictError, match="already linked"):
            await InventoryUnitService(db).mark_sold(unit.id, receipt["items"][0]["id"])

    async def test_release_makes_unit_available(self, db):
        item = await make_each_item(db)
        await receive_each(db, item.id, 1, serials=["SN-1"])
        [unit] = await units_of(db, item.id)
        await SaleService(db).create_transaction(sale(each_line(item.id, 1, [unit.id])))

        service = InventoryUnitService(db)
        released = await service.release(unit.id)
        assert released.status == InventoryUnitStatus.available
        assert await service.link_of(unit.id) is None

    async def test_history(self, db):
        item = await make_each_item(db)
        restock = await receive_each(db, item.id, 1, serials=["SN-1"], supplier_name="Velo Parts")
        [unit] = await units_of(db, item.id)
        tx = await SaleService(db).create_transaction(sale(each_line(item.id, 1, [unit.id]), paid="25"))

        history = await InventoryUnitService(db).unit_history(unit.id)
        assert history["unit"]["status"] == "sold"
        assert history["unit"]["item"]["name"] == "Bike lock"
        assert history["restock"]["id"] == restock.id
        assert history["restock"]["supplier_name"] == "Velo Parts"
        [entry] = history["sales"]
        assert entry["transaction_id"] == tx.id
        assert entry["current"] is True
        assert entry["price_each"] == Decimal("25.00")
        assert history["returns"] == []
