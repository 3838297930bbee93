"""
Inventory Repository — Repository Pattern (GoF)

Filters use a small document-store style dialect so report definitions can be
translated without knowing about SQLAlchemy:

    {"category_id": "tools"}                      equality
    {"sku": ["A-1", "A-2"]}                       membership
    {"quantity": {"$gt": 0, "$lt": 10}}           operators ($gt $gte $lt $lte $ne $in)
    {"quantity": {"$lt": "$min_stock_level"}}     operand referencing another column
"""
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from sqlalchemy import and_, case, func
from sqlalchemy.orm import Session

from stocklens.core.exceptions import InvalidInputException
from stocklens.models.inventory import InventoryItem
from stocklens.repositories.base import BaseRepository

SortSpec = Union[Mapping[str, Any], Sequence[Tuple[str, Any]], None]

FIELD_ALIASES = {
    "categoryId": "category_id",
    "supplierId": "supplier_id",
    "minStockLevel": "min_stock_level",
    "updatedAt": "updated_at",
    "createdAt": "created_at",
}

FILTERABLE_FIELDS = {
    "id",
    "sku",
    "name",
    "category_id",
    "supplier_id",
    "quantity",
    "min_stock_level",
    "price",
    "created_at",
    "updated_at",
}

_OPERATORS = {
    "$gt": lambda col, v: col > v,
    "$gte": lambda col, v: col >= v,
    "$lt": lambda col, v: col < v,
    "$lte": lambda col, v: col <= v,
    "$ne": lambda col, v: col != v,
}


class InventoryRepository(BaseRepository[InventoryItem]):

    def __init__(self, db: Session):
        super().__init__(InventoryItem, db)

    # ── Query helpers ────────────────────────────────────────────────────────

    @staticmethod
    def _column(field: str):
        name = FIELD_ALIASES.get(field, field)
        if name not in FILTERABLE_FIELDS:
            raise InvalidInputException(f"Unknown inventory field: {field}", details={"field": field})
        return getattr(InventoryItem, name)

    def _operand(self, value: Any):
        if isinstance(value, str) and value.startswith("$"):
            return self._column(value[1:])
        return value

    def _build_conditions(self, filters: Optional[Mapping[str, Any]]) -> List[Any]:
        conditions = []
        for field, constraint in (filters or {}).items():
            if constraint is None:
                continue
            col = self._column(field)
            if isinstance(constraint, Mapping):
                for op, operand in constraint.items():
                    if op == "$in":
                        conditions.append(col.in_(list(operand)))
                    elif op in _OPERATORS:
                        conditions.append(_OPERATORS[op](col, self._operand(operand)))
                    else:
                        raise InvalidInputException(
                            f"Unsupported filter operator: {op}",
                            details={"field": field, "operator": op},
                        )
            elif isinstance(constraint, (list, tuple, set)):
                conditions.append(col.in_(list(constraint)))
            else:
                conditions.append(col == self._operand(constraint))
        return conditions

    def _order_by(self, sort: SortSpec) -> List[Any]:
        if not sort:
            return [InventoryItem.id.asc()]
        pairs = sort.items() if isinstance(sort, Mapping) else sort
        clauses = []
        for field, direction in pairs:
            col = self._column(field)
            descending = direction in (-1, "-1", "desc", "DESC", "descending")
            clauses.append(col.desc() if descending else col.asc())
        return clauses

    # ── Reads ────────────────────────────────────────────────────────────────

    def list_filtered(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        sort: SortSpec = None,
        limit: Optional[int] = None,
    ) -> List[InventoryItem]:
        q = self.query()
        conditions = self._build_conditions(filters)
        if conditions:
            q = q.filter(and_(*conditions))
        q = q.order_by(*self._order_by(sort))
        if limit:
            q = q.limit(limit)
        return q.all()

    def list_low_stock(self, threshold: Optional[int] = None) -> List[InventoryItem]:
        ceiling = threshold if threshold else InventoryItem.min_stock_level
        return (
            self.query()
            .filter(InventoryItem.quantity > 0, InventoryItem.quantity < ceiling)
            .order_by(InventoryItem.quantity.asc(), InventoryItem.id.asc())
            .all()
        )

    def list_out_of_stock(self) -> List[InventoryItem]:
        return (
            self.query()
            .filter(InventoryItem.quantity == 0)
            .order_by(InventoryItem.id.asc())
            .all()
        )

    def aggregate_stats(self) -> Dict[str, Any]:
        low_case = case(
            (and_(InventoryItem.quantity > 0, InventoryItem.quantity < InventoryItem.min_stock_level), 1),
            else_=0,
        )
        out_case = case((InventoryItem.quantity == 0, 1), else_=0)
        row = self.db.query(
            func.count(InventoryItem.id),
            func.coalesce(func.sum(InventoryItem.quantity), 0),
            func.coalesce(func.sum(InventoryItem.quantity * InventoryItem.price), 0),
            func.coalesce(func.avg(InventoryItem.price), 0),
            func.coalesce(func.sum(low_case), 0),
            func.coalesce(func.sum(out_case), 0),
        ).one()
        return {
            "total_items": int(row[0] or 0),
            "total_quantity": int(row[1] or 0),
            "total_value": round(float(row[2] or 0), 2),
            "average_price": round(float(row[3] or 0), 2),
            "low_stock_count": int(row[4] or 0),
            "out_of_stock_count": int(row[5] or 0),
        }
