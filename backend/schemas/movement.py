# backend/schemas/movement.py
from datetime import date, datetime
from pydantic import BaseModel, Field, ConfigDict, BeforeValidator
from typing import Annotated, List, Optional

from exceptions import InvalidInputError
from models.movement import MovementType
from schemas.product import ProductResponse
from utils.dates import parse_calendar_date


def _calendar_date(value):
    try:
        return parse_calendar_date(value)
    except InvalidInputError as exc:
        # Pydantic only reports ValueError as a field error
        raise ValueError(exc.message)


# Date-only value exchanged as a YYYY-MM-DD string
CalendarDate = Annotated[date, BeforeValidator(_calendar_date)]


# Schema for registering merchandise entering stock
class InboundMovementCreate(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)
    date: CalendarDate
    description: str = Field(min_length=1)
    invoice_number: Optional[int] = Field(default=None, gt=0)


# Schema for registering merchandise leaving stock
class OutboundMovementCreate(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)
    date: CalendarDate
    description: str = Field(min_length=1)


class MovementQuantityUpdate(BaseModel):
    quantity: int = Field(gt=0)


# Moves a movement to another product, with its new magnitude
class MovementProductUpdate(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)


# Movement with the product it refers to embedded
class MovementResponse(BaseModel):
    id: int
    product_id: int
    product: Optional[ProductResponse] = None
    invoice_number: Optional[int] = None
    date: CalendarDate
    description: str
    quantity: int
    type: MovementType
    active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# Paginated response for movement history
class MovementPage(BaseModel):
    items: List[MovementResponse]
    total: int
    page: int
    page_size: int


class ErrorResponse(BaseModel):
    kind: str
    message: str
