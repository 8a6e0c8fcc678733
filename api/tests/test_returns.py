"""
Return requests and their resolution, plus direct returns at the counter.
"""
from decimal import Decimal

import pytest

from pos_inventory.db_models import InventoryUnitStatus, ReturnOutcome, ReturnStatus
from pos_inventory.errors import NotFoundError, ValidationError
from pos_inventory.lifecycle import LifecycleEvent
from pos_inventory.services.cashbox import SupplierService
from pos_inventory.services.inventory_units import InventoryUnitService
from pos_inventory.services.returns import ReturnService
from pos_inventory.services.sales import SaleService
from pos_inventory.services.stock import StockLedgerService

from tests.helpers import each_line, make_each_item, make_meter_item, receive_each, sale, units_of

D = Decimal


async def sold_unit(db):
    """An item with two serialized pieces, the first of them sold."""
    item = await make_each_item(db)
    await receive_each(db, item.id, 2, serials=["SN-1", "SN-2"])
    units = await units_of(db, item.id)
    tx = await SaleService(db).create_transaction(sale(each_line(item.id, 1, [units[0].id])))
    return item, units[0], tx


class TestRequest:

    async def test_request_links_sale(self, db):
        item, unit, tx = await sold_unit(db)
        record = await ReturnService(db).request_return(unit.id, ReturnOutcome.defective, "rattles", user="anna")
        assert record.status == ReturnStatus.pending
        assert record.requested_outcome == ReturnOutcome.defective
        assert record.transaction_id == tx.id
        assert record.user == "anna"
        assert unit.status == InventoryUnitStatus.sold

    async def test_only_sold_units(self, db):
        item = await make_each_item(db)
        await receive_each(db, item.id, 1, serials=["SN-1"])
        [unit] = await units_of(db, item.id)
        with pytest.raises(ValidationError, match="Only sold units can be returned"):
            await ReturnService(db).request_return(unit.id, ReturnOutcome.restock)

    async def test_one_pending_return_per_unit(self, db):
        _, unit, _ = await sold_unit(db)
        service = ReturnService(db)
        await service.request_return(unit.id, ReturnOutcome.restock)
        with pytest.raises(ValidationError, match="already pending"):
            await service.request_return(unit.id, ReturnOutcome.restock)

    async def test_unknown_unit(self, db):
        with pytest.raises(NotFoundError):
            await ReturnService(db).request_return(999, ReturnOutcome.restock)


class TestResolve:

    async def test_restock(self, db):
        item, unit, _ = await sold_unit(db)
        service = ReturnService(db)
        record = await service.request_return(unit.id, ReturnOutcome.restock)
        resolved = await service.resolve(record.id, "restock", note="as new", user="anna")

        assert resolved.status == ReturnStatus.restocked
        assert resolved.resolved_by == "anna"
        assert resolved.resolution_note == "as new"
        assert resolved.resolved_at is not None
        assert unit.status == InventoryUnitStatus.available
        assert await StockLedgerService(db).current_stock(item.id) == D("2")
        assert await InventoryUnitService(db).link_of(unit.id) is None

        # back on the shelf: it can be sold again
        await SaleService(db).create_transaction(sale(each_line(item.id, 1, [unit.id])))
        assert unit.status == InventoryUnitStatus.sold

    async def test_trash(self, db):
        item, unit, _ = await sold_unit(db)
        service = ReturnService(db)
        record = await service.request_return(unit.id, ReturnOutcome.defective)
        resolved = await service.resolve(record.id, "trash")
        assert resolved.status == ReturnStatus.trashed
        assert unit.status == InventoryUnitStatus.defective
        assert await StockLedgerService(db).current_stock(item.id) == D("1")

    async def test_return_to_supplier(self, db):
        item, unit, _ = await sold_unit(db)
        supplier = await SupplierService(db).create_supplier("Velo Parts")
        service = ReturnService(db)
        record = await service.request_return(unit.id, ReturnOutcome.defective)

        with pytest.raises(ValidationError, match="A supplier is required"):
            await service.resolve(record.id, "returnToSupplier")

        resolved = await service.resolve(record.id, "returnToSupplier",
                                         supplier_id=supplier.id, supplier_note="RMA 77")
        assert resolved.status == ReturnStatus.returned_to_supplier
        assert resolved.supplier_id == supplier.id
        assert resolved.supplier_note == "RMA 77"
        assert unit.status == InventoryUnitStatus.defective

        with pytest.raises(ValidationError, match="not available"):
            await SaleService(db).create_transaction(sale(each_line(item.id, 1, [unit.id])))

    async def test_resolve_twice(self, db):
        _, unit, _ = await sold_unit(db)
        service = ReturnService(db)
        record = await service.request_return(unit.id, ReturnOutcome.restock)
        await service.resolve(record.id, "trash")
        with pytest.raises(ValidationError, match="already resolved"):
            await service.resolve(record.id, "restock")

    async def test_unknown_action(self, db):
        _, unit, _ = await sold_unit(db)
        service = ReturnService(db)
        record = await service.request_return(unit.id, ReturnOutcome.restock)
        with pytest.raises(ValidationError, match="Unknown return action"):
            await service.resolve(record.id, "refund")

    async def test_unknown_record(self, db):
        with pytest.raises(NotFoundError, match="Return 5 not found"):
            await ReturnService(db).resolve(5, "restock")

    async def test_roll_restock_keeps_counter(self, db):
        chain = await make_meter_item(db, rolls=[5.25])
        [roll_unit] = await units_of(db, chain.id)
        await InventoryUnitService(db).apply(roll_unit, LifecycleEvent.sell)
        service = ReturnService(db)
        record = await service.request_return(roll_unit.id, ReturnOutcome.restock)
        await service.resolve(record.id, "restock")
        assert roll_unit.status == InventoryUnitStatus.available
        assert await StockLedgerService(db).current_stock(chain.id) == D("0")


class TestListing:

    async def test_filters(self, db):
        _, unit, _ = await sold_unit(db)
        service = ReturnService(db)
        record = await service.request_return(unit.id, ReturnOutcome.defective, note="scratched frame")

        assert [r["id"] for r in await service.list_returns(status=ReturnStatus.pending)] == [record.id]
        assert await service.list_returns(status=ReturnStatus.restocked) == []
        assert await service.list_returns(requested_outcome=ReturnOutcome.restock) == []
        [found] = await service.list_returns(search="SN-1")
        assert found["unit"]["barcode"] == "SN-1"
        assert found["item"]["name"] == "Bike lock"
        assert len(await service.list_returns(search="scratched")) == 1


class TestDirectReturn:

    async def test_restock(self, db):
        item, unit, tx = await sold_unit(db)
        service = InventoryUnitService(db)
        await service.resolve_return(unit.id, ReturnOutcome.restock, user="anna")

        assert unit.status == InventoryUnitStatus.available
        assert await StockLedgerService(db).current_stock(item.id) == D("2")
        assert await service.link_of(unit.id) is None
        [record] = (await service.unit_history(unit.id))["returns"]
        assert record["status"] == "restocked"
        assert record["resolved_by"] == "anna"
        assert record["transaction_id"] == tx.id

    async def test_defective(self, db):
        item, unit, _ = await sold_unit(db)
        await InventoryUnitService(db).resolve_return(unit.id, ReturnOutcome.defective)
        assert unit.status == InventoryUnitStatus.defective
        assert await StockLedgerService(db).current_stock(item.id) == D("1")

    async def test_unsold_unit(self, db):
        item = await make_each_item(db)
        await receive_each(db, item.id, 1, serials=["SN-1"])
        [unit] = await units_of(db, item.id)
        with pytest.raises(ValidationError, match="Only sold units can be returned"):
            await InventoryUnitService(db).resolve_return(unit.id, ReturnOutcome.restock)

    async def test_pending_request_blocks_direct_return(self, db):
        _, unit, _ = await sold_unit(db)
        await ReturnService(db).request_return(unit.id, ReturnOutcome.restock)
        with pytest.raises(ValidationError, match="already pending"):
            await InventoryUnitService(db).resolve_return(unit.id, ReturnOutcome.restock)
