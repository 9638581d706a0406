"""
Multi-location inventory.

Models:
- StockLocation (named location; exactly one primary per tenant)
- ProductStock (quantity per product per location)
- StockTransaction (append-only ledger of every quantity change)
- InventoryCount / InventoryCountItem (physical count sessions)
"""
