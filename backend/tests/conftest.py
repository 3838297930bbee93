"""
Shared fixtures.

- ``record``: factory for ``InventoryRecord`` objects
- ``FakeInventoryDataSource``: in-memory data source honouring the filter dialect subset used by the builders
- ``session_factory`` / ``seed_items``: SQLite in-memory database shared across threads
- ``client``: FastAPI TestClient wired to the in-memory database and a local-only AIService
"""
import operator
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

from stocklens.config import settings
from stocklens.core.exceptions import DataSourceException
from stocklens.database import build_engine, build_session_factory, create_tables
from stocklens.ml.strategies import AdvancedAnalysisStrategy
from stocklens.models.inventory import InventoryItem
from stocklens.schemas.inventory import InventoryRecord, InventoryStats
from stocklens.services.ai_service import AIService

_OPS = {
    "$gt": operator.gt,
    "$gte": operator.ge,
    "$lt": operator.lt,
    "$lte": operator.le,
    "$ne": operator.ne,
}


def make_record(idx: int, quantity: int, min_stock_level: int = 10, price: float = 10.0, **extra) -> InventoryRecord:
    data = {
        "id": idx,
        "sku": f"SKU-{idx:03d}",
        "name": f"Item {idx}",
        "quantity": quantity,
        "min_stock_level": min_stock_level,
        "price": price,
        "updated_at": datetime(2024, 1, idx % 28 + 1, 12, 0),
    }
    data.update(extra)
    return InventoryRecord(**data)


class FakeInventoryDataSource:
    """Keeps records in a list; counts calls so tests can assert data access."""

    def __init__(self, records: Optional[List[InventoryRecord]] = None, fail: bool = False):
        self.records = list(records or [])
        self.fail = fail
        self.calls: List[str] = []
        self.last_filters: Optional[Mapping[str, Any]] = None
        self.last_limit: Optional[int] = None

    def _guard(self, name: str):
        self.calls.append(name)
        if self.fail:
            raise DataSourceException(f"Inventory query '{name}' failed")

    @staticmethod
    def _resolve(record: InventoryRecord, operand: Any) -> Any:
        if isinstance(operand, str) and operand.startswith("$"):
            return getattr(record, operand[1:])
        return operand

    def _matches(self, record: InventoryRecord, filters: Mapping[str, Any]) -> bool:
        for field, constraint in filters.items():
            value = getattr(record, field)
            if isinstance(constraint, Mapping):
                for op, operand in constraint.items():
                    if op == "$in":
                        if value not in operand:
                            return False
                    elif not _OPS[op](value, self._resolve(record, operand)):
                        return False
            elif isinstance(constraint, (list, tuple, set)):
                if value not in constraint:
                    return False
            elif value != self._resolve(record, constraint):
                return False
        return True

    def list_items(self, filters=None, sort=None, limit=None) -> List[InventoryRecord]:
        self._guard("list_items")
        self.last_filters = filters
        self.last_limit = limit
        rows = [r for r in self.records if self._matches(r, filters or {})]
        if limit:
            rows = rows[:limit]
        return rows

    def find_low_stock(self, threshold=None) -> List[InventoryRecord]:
        self._guard("find_low_stock")
        return [r for r in self.records if 0 < r.quantity < (threshold or r.min_stock_level)]

    def find_out_of_stock(self) -> List[InventoryRecord]:
        self._guard("find_out_of_stock")
        return [r for r in self.records if r.quantity == 0]

    def get_stats(self) -> InventoryStats:
        self._guard("get_stats")
        return InventoryStats(total_items=len(self.records))


@pytest.fixture
def record():
    return make_record


@pytest.fixture
def mixed_records() -> List[InventoryRecord]:
    """3 low-stock, 2 healthy, 1 out-of-stock."""
    return [
        make_record(1, 2),
        make_record(2, 4),
        make_record(3, 6),
        make_record(4, 50),
        make_record(5, 80),
        make_record(6, 0),
    ]


@pytest.fixture
def fake_source(mixed_records) -> FakeInventoryDataSource:
    return FakeInventoryDataSource(mixed_records)


@pytest.fixture
def local_ai() -> AIService:
    return AIService(strategies=[AdvancedAnalysisStrategy()], active_strategy="advanced_analysis", enabled=True)


# ── Database ─────────────────────────────────────────────────────────────────

@pytest.fixture
def engine():
    eng = build_engine("sqlite://", poolclass=StaticPool)
    create_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def seed_items(session_factory) -> Dict[str, InventoryItem]:
    rows = [
        InventoryItem(sku="BOLT-01", name="Bolt", category_id="hardware", quantity=3, min_stock_level=10, price=0.5),
        InventoryItem(sku="NUT-01", name="Nut", category_id="hardware", quantity=0, min_stock_level=20, price=0.2),
        InventoryItem(sku="SAW-01", name="Saw", category_id="tools", quantity=15, min_stock_level=5, price=25.0),
        InventoryItem(sku="DRILL-01", name="Drill", category_id="tools", quantity=8, min_stock_level=4, price=120.0),
        InventoryItem(sku="TAPE-01", name="Tape", category_id="supplies", quantity=7, min_stock_level=12, price=3.0),
    ]
    db = session_factory()
    try:
        db.add_all(rows)
        db.commit()
        return {r.sku: r for r in rows}
    finally:
        db.close()


@pytest.fixture
def client(session_factory, seed_items, local_ai, monkeypatch):
    from stocklens.main import create_app

    monkeypatch.setattr(settings, "ENABLE_REQUEST_LOGGING", False)
    app = create_app(settings=settings, session_factory=session_factory, ai_service=local_ai)
    with TestClient(app) as c:
        yield c
