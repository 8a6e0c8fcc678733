"""
Cashboxes, manual entries, suppliers and supplier debt.
"""
from decimal import Decimal

import pytest

from pos_inventory.db_models import PaymentStatus
from pos_inventory.errors import ConflictError, NotFoundError, ValidationError
from pos_inventory.services.cashbox import CashboxService, SupplierDebtService, SupplierService, payment_status
from pos_inventory.services.sales import SaleService

from tests.helpers import each_line, make_each_item, receive_each, sale

D = Decimal


@pytest.mark.parametrize("total, paid, expected", [
    ("0", "0", PaymentStatus.PAID),
    ("10", "0", PaymentStatus.UNPAID),
    ("10", "4", PaymentStatus.PARTIAL),
    ("10", "9.99", PaymentStatus.PAID),
    ("10", "10", PaymentStatus.PAID),
])
def test_payment_status(total, paid, expected):
    assert payment_status(D(total), D(paid)) == expected


class TestCashboxes:

    async def test_default_boxes_created_lazily(self, db):
        balances = await CashboxService(db).balances()
        assert [(b["code"], b["balance"]) for b in balances] == [("A", D("0")), ("B", D("0")), ("C", D("0"))]

    async def test_unknown_box(self, db):
        with pytest.raises(NotFoundError, match="Cashbox Z"):
            await CashboxService(db).get_cashbox("Z")

    async def test_balances_follow_movements(self, db):
        service = CashboxService(db)
        await service.manual_entry("income", D("100"), note="float")
        await service.manual_entry("expense", D("30"), cashbox_code="a", note="coffee")
        item = await make_each_item(db, stock=1)
        await SaleService(db).create_transaction(sale(each_line(item.id, 1), paid="25", cashbox_code="B"))

        balances = {b["code"]: b["balance"] for b in await service.balances()}
        assert balances == {"A": D("70.00"), "B": D("25.00"), "C": D("0")}

    async def test_entries_filter(self, db):
        service = CashboxService(db)
        await service.manual_entry("income", D("100"), user="anna")
        await service.manual_entry("expense", D("5"), cashbox_code="B")

        [entry] = await service.list_entries(cashbox_code="b")
        assert entry["kind"] == "expense"
        assert entry["direction"] == "out"
        [entry] = await service.list_entries(kind="income")
        assert entry["cashbox_code"] == "A"
        assert entry["user"] == "anna"

    async def test_manual_entry_kinds(self, db):
        with pytest.raises(ValidationError, match="income or expense"):
            await CashboxService(db).manual_entry("sale", D("5"))

    async def test_amount_must_be_positive(self, db):
        with pytest.raises(ValidationError, match="greater than zero"):
            await CashboxService(db).manual_entry("income", D("0"))


class TestSuppliers:

    async def test_create_and_list(self, db):
        service = SupplierService(db)
        await service.create_supplier("Velo Parts", "orders@velo.example")
        await service.create_supplier("Alpha Bikes")
        assert [s.name for s in await service.list_suppliers()] == ["Alpha Bikes", "Velo Parts"]

    async def test_duplicate_name(self, db):
        service = SupplierService(db)
        await service.create_supplier("Velo Parts")
        with pytest.raises(ConflictError):
            await service.create_supplier(" velo parts ")

    async def test_name_required(self, db):
        with pytest.raises(ValidationError):
            await SupplierService(db).create_supplier("  ")


class TestSupplierDebt:

    async def setup_debt(self, db):
        item = await make_each_item(db)
        supplier = await SupplierService(db).create_supplier("Velo Parts")
        first = await receive_each(db, item.id, 3, unit_cost="10", supplier_id=supplier.id)
        second = await receive_each(db, item.id, 2, unit_cost="10", supplier_id=supplier.id)
        return supplier, first, second

    async def test_overview(self, db):
        supplier, _, _ = await self.setup_debt(db)
        await SupplierService(db).create_supplier("Alpha Bikes")
        overview = {row["supplier"]["name"]: row for row in await SupplierDebtService(db).overview()}
        assert overview["Velo Parts"]["outstanding"] == D("50.00")
        assert overview["Velo Parts"]["restocks"] == 2
        assert overview["Alpha Bikes"]["outstanding"] == D("0")

    async def test_payment_allocated_oldest_first(self, db):
        supplier, first, second = await self.setup_debt(db)
        debt = SupplierDebtService(db)
        result = await debt.record_payment(supplier.id, D("40"), pay_method="transfer", user="anna")

        assert result["allocations"] == [
            {"restock_id": first.id, "amount": D("30.00")},
            {"restock_id": second.id, "amount": D("10.00")},
        ]
        assert first.payment_status == PaymentStatus.PAID
        assert second.payment_status == PaymentStatus.PARTIAL
        assert second.outstanding == D("10.00")
        assert (await debt.detail(supplier.id))["outstanding"] == D("10.00")

        [entry] = await CashboxService(db).list_entries(kind="supplier_payment")
        assert entry["amount"] == D("40.00")
        assert entry["supplier_id"] == supplier.id

    async def test_overpayment(self, db):
        supplier, _, _ = await self.setup_debt(db)
        with pytest.raises(ValidationError, match="exceeds outstanding debt"):
            await SupplierDebtService(db).record_payment(supplier.id, D("60"))

    async def test_unknown_supplier(self, db):
        with pytest.raises(NotFoundError):
            await SupplierDebtService(db).detail(77)
