"""
Inventory Data Source — the boundary between persistence and analysis.

The analysis and reporting layers only ever see ``InventoryRecord`` objects;
``to_record`` is the single place where ORM rows are translated.
"""
import logging
from typing import Any, List, Mapping, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from stocklens.core.exceptions import DataSourceException
from stocklens.models.inventory import InventoryItem
from stocklens.repositories.inventory_repository import InventoryRepository, SortSpec
from stocklens.schemas.inventory import InventoryRecord, InventoryStats

logger = logging.getLogger(__name__)


class InventoryDataSource(Protocol):
    def list_items(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        sort: SortSpec = None,
        limit: Optional[int] = None,
    ) -> List[InventoryRecord]:
        ...

    def find_low_stock(self, threshold: Optional[int] = None) -> List[InventoryRecord]:
        ...

    def find_out_of_stock(self) -> List[InventoryRecord]:
        ...

    def get_stats(self) -> InventoryStats:
        ...


def to_record(item: InventoryItem) -> InventoryRecord:
    return InventoryRecord(
        id=item.id,
        sku=item.sku,
        name=item.name,
        description=item.description,
        category_id=item.category_id,
        supplier_id=item.supplier_id,
        quantity=int(item.quantity or 0),
        min_stock_level=int(item.min_stock_level if item.min_stock_level is not None else 5),
        price=float(item.price or 0),
        updated_at=item.updated_at,
    )


class SqlInventoryDataSource:
    """Session-per-call adapter over ``InventoryRepository``."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def _run(self, operation: str, fn):
        db = self._session_factory()
        try:
            return fn(InventoryRepository(db))
        except SQLAlchemyError as exc:
            logger.error("inventory_query_failed", extra={"operation": operation, "error": str(exc)})
            raise DataSourceException(
                f"Inventory query '{operation}' failed", details={"error": str(exc)}
            ) from exc
        finally:
            db.close()

    def list_items(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        sort: SortSpec = None,
        limit: Optional[int] = None,
    ) -> List[InventoryRecord]:
        return self._run(
            "list_items",
            lambda repo: [to_record(i) for i in repo.list_filtered(filters, sort=sort, limit=limit)],
        )

    def find_low_stock(self, threshold: Optional[int] = None) -> List[InventoryRecord]:
        return self._run("find_low_stock", lambda repo: [to_record(i) for i in repo.list_low_stock(threshold)])

    def find_out_of_stock(self) -> List[InventoryRecord]:
        return self._run("find_out_of_stock", lambda repo: [to_record(i) for i in repo.list_out_of_stock()])

    def get_stats(self) -> InventoryStats:
        return self._run("get_stats", lambda repo: InventoryStats(**repo.aggregate_stats()))
