from stocklens.models.inventory import InventoryItem

__all__ = [
    "InventoryItem",
]
