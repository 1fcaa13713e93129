# backend/routes/movements.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from database import get_db
from models.movement import MovementType
from models.users import User
from services.ledger import LedgerService
from utils.tokenJWT import get_current_user
import schemas.movement as movement_schemas

router = APIRouter(
    prefix="/api/movements",
    tags=["Movements"],
    responses={
        400: {"model": movement_schemas.ErrorResponse},
        404: {"model": movement_schemas.ErrorResponse},
        500: {"model": movement_schemas.ErrorResponse},
    },
)
logger = logging.getLogger(__name__)


def get_ledger(db: Session = Depends(get_db)) -> LedgerService:
    return LedgerService(db)


@router.get("", response_model=movement_schemas.MovementPage)
def list_movements(
    type: Optional[MovementType] = Query(None),
    product_id: Optional[int] = Query(None),
    date_from: Optional[movement_schemas.CalendarDate] = Query(None, description="YYYY-MM-DD"),
    date_to: Optional[movement_schemas.CalendarDate] = Query(None, description="YYYY-MM-DD"),
    active: Optional[bool] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=500),
    ledger: LedgerService = Depends(get_ledger),
    current_user: User = Depends(get_current_user),
):
    items, total = ledger.list_movements(
        movement_type=type, product_id=product_id,
        date_from=date_from, date_to=date_to, active=active,
        page=page, page_size=page_size,
    )
    return {"items": items, "total": total, "page": page, "page_size": page_size}


@router.get("/{movement_id}", response_model=movement_schemas.MovementResponse)
def get_movement(
    movement_id: int,
    ledger: LedgerService = Depends(get_ledger),
    current_user: User = Depends(get_current_user),
):
    return ledger.get_movement(movement_id)


# Merchandise entering the warehouse
@router.post("/inbound", response_model=movement_schemas.MovementResponse, status_code=status.HTTP_201_CREATED)
def create_inbound(
    payload: movement_schemas.InboundMovementCreate,
    ledger: LedgerService = Depends(get_ledger),
    current_user: User = Depends(get_current_user),
):
    return ledger.record_inbound(
        product_id=payload.product_id,
        quantity=payload.quantity,
        movement_date=payload.date,
        description=payload.description,
        invoice_number=payload.invoice_number,
    )


# Merchandise leaving the warehouse
@router.post("/outbound", response_model=movement_schemas.MovementResponse, status_code=status.HTTP_201_CREATED)
def create_outbound(
    payload: movement_schemas.OutboundMovementCreate,
    ledger: LedgerService = Depends(get_ledger),
    current_user: User = Depends(get_current_user),
):
    return ledger.record_outbound(
        product_id=payload.product_id,
        quantity=payload.quantity,
        movement_date=payload.date,
        description=payload.description,
    )


@router.post("/{movement_id}/void", response_model=movement_schemas.MovementResponse)
def void_movement(
    movement_id: int,
    ledger: LedgerService = Depends(get_ledger),
    current_user: User = Depends(get_current_user),
):
    logger.info("User %s voids movement %s", current_user.id, movement_id)
    return ledger.void_movement(movement_id)


@router.patch("/{movement_id}/quantity", response_model=movement_schemas.MovementResponse)
def update_movement_quantity(
    movement_id: int,
    payload: movement_schemas.MovementQuantityUpdate,
    ledger: LedgerService = Depends(get_ledger),
    current_user: User = Depends(get_current_user),
):
    return ledger.edit_quantity(movement_id, payload.quantity)


@router.patch("/{movement_id}/product", response_model=movement_schemas.MovementResponse)
def update_movement_product(
    movement_id: int,
    payload: movement_schemas.MovementProductUpdate,
    ledger: LedgerService = Depends(get_ledger),
    current_user: User = Depends(get_current_user),
):
    return ledger.reassign_product(movement_id, payload.product_id, payload.quantity)
