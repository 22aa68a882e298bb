"""
Inventory ledger tables.

Models:
- InventoryMovement (append-only deltas; stock itself lives on media.inventory_stock)
"""
