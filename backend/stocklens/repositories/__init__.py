# Repository Layer — Data Access (Repository Pattern, GoF)
from stocklens.repositories.base import BaseRepository
from stocklens.repositories.inventory_repository import InventoryRepository
from stocklens.repositories.inventory_data_source import (
    InventoryDataSource,
    SqlInventoryDataSource,
    to_record,
)

__all__ = [
    "BaseRepository",
    "InventoryRepository",
    "InventoryDataSource",
    "SqlInventoryDataSource",
    "to_record",
]
