# backend/schemas/product.py
from datetime import datetime
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List

from models.product import QuantityType


# Base configuration for ORM compatibility
class ORMBase(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# Shared base attributes for product entities
class ProductBase(ORMBase):
    code: int = Field(gt=0)
    description: str = Field(min_length=1)
    quantity_type: QuantityType = QuantityType.UNITS
    price: Optional[float] = Field(default=None, ge=0)


# Schema for creating a new product; initial stock is booked as an opening movement
class ProductCreate(ProductBase):
    stock: int = Field(default=0, ge=0)


# Schema for updating catalogue fields. Stock only changes through movements.
class ProductUpdate(ORMBase):
    code: Optional[int] = Field(None, gt=0)
    description: Optional[str] = Field(None, min_length=1)
    quantity_type: Optional[QuantityType] = None
    price: Optional[float] = Field(None, ge=0)


class ProductResponse(ProductBase):
    id: int
    stock: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# Paginated response for product listings
class ProductListPage(ORMBase):
    items: List[ProductResponse]
    total: int
    page: int
    page_size: int
