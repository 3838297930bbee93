from sqlalchemy import (
    Column,
    Integer,
    String,
    Numeric,
    DateTime,
    CheckConstraint,
    Index,
    func,
)
from stocklens.database import Base


class InventoryItem(Base):
    __tablename__ = "inventory_items"
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_inventory_items_quantity_non_negative"),
        CheckConstraint("min_stock_level >= 0", name="ck_inventory_items_min_stock_non_negative"),
        CheckConstraint("price >= 0", name="ck_inventory_items_price_non_negative"),
        Index("ix_inventory_items_category_quantity", "category_id", "quantity"),
    )

    id = Column(Integer, primary_key=True, index=True)
    sku = Column(String(64), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(String(1000), nullable=True)
    category_id = Column(String(64), nullable=True, index=True)
    supplier_id = Column(String(64), nullable=True, index=True)
    quantity = Column(Integer, nullable=False, default=0)
    min_stock_level = Column(Integer, nullable=False, default=5)
    price = Column(Numeric(12, 2), nullable=False, default=0)
    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)
