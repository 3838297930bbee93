from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional
from datetime import datetime


class InventoryRecord(BaseModel):
    """Read-only view of one inventory item as seen by the analysis layer."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: Optional[int] = None
    sku: str
    name: str
    description: Optional[str] = None
    category_id: Optional[str] = None
    supplier_id: Optional[str] = None
    quantity: int = Field(0, ge=0)
    min_stock_level: int = Field(5, ge=0)
    price: float = Field(0.0, ge=0)
    updated_at: Optional[datetime] = None

    @property
    def is_out_of_stock(self) -> bool:
        return self.quantity == 0

    @property
    def is_low_stock(self) -> bool:
        return 0 < self.quantity < self.min_stock_level

    @property
    def stock_value(self) -> float:
        return self.quantity * self.price


class SalesRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    date: str = Field(..., min_length=1)
    quantity: float = Field(..., ge=0)
    revenue: float = Field(..., ge=0)
    item_id: Optional[str] = None
    item_name: Optional[str] = None

    @field_validator("date")
    @classmethod
    def date_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("date must be a non-empty string")
        return v


class InventoryStats(BaseModel):
    total_items: int = 0
    total_quantity: int = 0
    total_value: float = 0.0
    average_price: float = 0.0
    low_stock_count: int = 0
    out_of_stock_count: int = 0
