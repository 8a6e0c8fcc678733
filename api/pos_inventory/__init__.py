"""POS Inventory - serialized units, meter rolls, restocks, sales and returns."""
