"""
Business logic services for POS Inventory.
"""
from pos_inventory.services.stock import StockLedgerService
from pos_inventory.services.inventory_units import InventoryUnitService
from pos_inventory.services.items import ItemService
from pos_inventory.services.cashbox import CashboxService, SupplierService, SupplierDebtService
from pos_inventory.services.restocks import RestockService
from pos_inventory.services.sales import SaleService
from pos_inventory.services.returns import ReturnService
from pos_inventory.services.reports import ReportService

__all__ = [
    "StockLedgerService",
    "InventoryUnitService",
    "ItemService",
    "CashboxService",
    "SupplierService",
    "SupplierDebtService",
    "RestockService",
    "SaleService",
    "ReturnService",
    "ReportService",
]
