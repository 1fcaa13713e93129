"""
Ledger service

Keeps each product's ``stock`` equal to the signed sum of the quantities of its
active movements. Every mutating operation runs inside one transaction: the
rows it touches are read with ``SELECT ... FOR UPDATE``, adjusted, and committed
together, or the whole operation is rolled back and the previous state stays
visible.

Stock arithmetic comes in two directions:

- applying a movement books its magnitude on the product (INBOUND adds,
  OUTBOUND subtracts and needs enough stock);
- reversing a movement undoes it (INBOUND subtracts and needs enough stock,
  because the received goods may already have left; OUTBOUND adds back).

Voiding reverses, recording applies, reassigning reverses on the old product
and applies on the new one. Quantity edits only validate the delta against
current stock, so an inbound movement can be reduced even when part of it has
already been consumed, as long as the reduction itself is covered.
"""

import logging
from contextlib import contextmanager
from datetime import date
from typing import Dict, List, Optional, Tuple, Union

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from exceptions import (
    AlreadyVoidedError,
    ConflictError,
    InsufficientStockError,
    InvalidInputError,
    LedgerError,
    NotFoundError,
    StorageFailureError,
)
from models.movement import Movement, MovementType
from models.product import Product, QuantityType
from utils.dates import parse_calendar_date

logger = logging.getLogger(__name__)

OPENING_BALANCE_DESCRIPTION = "Opening balance"


def _require_positive(quantity, field="quantity") -> int:
    # bool is an int subclass; True must not pass as 1
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidInputError(f"{field} must be a positive integer, got {quantity!r}")
    return quantity


def _require_description(description) -> str:
    if not isinstance(description, str) or not description.strip():
        raise InvalidInputError("description must not be blank")
    return description.strip()


def _signed(movement_type: MovementType, magnitude: int) -> int:
    return magnitude if movement_type == MovementType.INBOUND else -magnitude


class LedgerService:
    """Stock/movement consistency over a request-scoped SQLAlchemy session."""

    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Transaction handling
    # ------------------------------------------------------------------
    @contextmanager
    def transaction(self):
        """Commit on success, roll back on any failure.

        Business errors propagate unchanged. Database errors, including a
        failing commit, are logged and re-raised as StorageFailureError.
        """
        try:
            yield self.db
            self.db.commit()
        except LedgerError as exc:
            self.db.rollback()
            logger.warning("Ledger operation rejected (%s): %s", exc.kind, exc.message)
            raise
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Ledger transaction failed and was rolled back")
            raise StorageFailureError() from exc
        except Exception:
            self.db.rollback()
            raise

    # ------------------------------------------------------------------
    # Row access
    # ------------------------------------------------------------------
    def _lock_product(self, product_id: int) -> Product:
        product = self.db.query(Product).filter(Product.id == product_id).with_for_update().populate_existing().first()
        if product is None:
            raise NotFoundError(f"Product {product_id} not found", {"product_id": product_id})
        return product

    def _lock_products(self, *product_ids: int) -> Dict[int, Product]:
        # Always lock in id order so two reassignments cannot deadlock
        return {pid: self._lock_product(pid) for pid in sorted(set(product_ids))}

    def _lock_active_movement(self, movement_id: int) -> Movement:
        movement = self.db.query(Movement).filter(Movement.id == movement_id).with_for_update().populate_existing().first()
        if movement is None:
            raise NotFoundError(f"Movement {movement_id} not found", {"movement_id": movement_id})
        if not movement.active:
            raise AlreadyVoidedError(movement_id)
        return movement

    # ------------------------------------------------------------------
    # Stock arithmetic
    # ------------------------------------------------------------------
    @staticmethod
    def _require_stock(product: Product, required: int) -> None:
        if product.stock < required:
            raise InsufficientStockError(product.code, required, product.stock)

    def _apply(self, product: Product, movement_type: MovementType, magnitude: int) -> None:
        if movement_type == MovementType.INBOUND:
            product.stock += magnitude
        else:
            self._require_stock(product, magnitude)
            product.stock -= magnitude

    def _reverse(self, product: Product, movement_type: MovementType, magnitude: int) -> None:
        if movement_type == MovementType.INBOUND:
            self._require_stock(product, magnitude)
            product.stock -= magnitude
        else:
            product.stock += magnitude

    def _record(
        self,
        movement_type: MovementType,
        product_id: int,
        quantity: int,
        movement_date: Union[str, date],
        description: str,
        invoice_number: Optional[int] = None,
    ) -> Movement:
        _require_positive(quantity)
        movement_date = parse_calendar_date(movement_date)
        if invoice_number is not None:
            _require_positive(invoice_number, "invoice_number")

        with self.transaction():
            product = self._lock_product(product_id)
            self._apply(product, movement_type, quantity)
            movement = Movement(
                product=product,
                invoice_number=invoice_number,
                date=movement_date,
                description=description or "",
                quantity=_signed(movement_type, quantity),
                type=movement_type,
                active=True,
            )
            self.db.add(movement)
            self.db.flush()
            stock = product.stock

        logger.info(
            "Recorded %s movement %s on product %s (qty=%s, stock=%s)",
            movement_type.value, movement.id, product_id, quantity, stock,
        )
        return movement

    # ------------------------------------------------------------------
    # Mutating operations
    # ------------------------------------------------------------------
    def record_inbound(
        self,
        product_id: int,
        quantity: int,
        movement_date: Union[str, date],
        description: str,
        invoice_number: Optional[int] = None,
    ) -> Movement:
        """Book goods received: stock += quantity."""
        return self._record(MovementType.INBOUND, product_id, quantity, movement_date, description, invoice_number)

    def record_outbound(
        self,
        product_id: int,
        quantity: int,
        movement_date: Union[str, date],
        description: str,
    ) -> Movement:
        """Book goods issued: stock -= quantity, rejected when stock is short."""
        return self._record(MovementType.OUTBOUND, product_id, quantity, movement_date, description)

    def void_movement(self, movement_id: int) -> Movement:
        """Reverse a movement's stock effect and mark it inactive. Irreversible."""
        with self.transaction():
            movement = self._lock_active_movement(movement_id)
            product = self._lock_product(movement.product_id)
            self._reverse(product, movement.type, abs(movement.quantity))
            movement.active = False
            stock = product.stock

        logger.info("Voided movement %s on product %s (stock=%s)", movement_id, movement.product_id, stock)
        return movement

    def edit_quantity(self, movement_id: int, new_quantity: int) -> Movement:
        _require_positive(new_quantity)

        with self.transaction():
            movement = self._lock_active_movement(movement_id)
            product = self._lock_product(movement.product_id)

            delta = new_quantity - abs(movement.quantity)
            if movement.type == MovementType.INBOUND:
                if delta < 0:
                    self._require_stock(product, -delta)
                product.stock += delta
            else:
                if delta > 0:
                    self._require_stock(product, delta)
                product.stock -= delta
            movement.quantity = _signed(movement.type, new_quantity)
            stock = product.stock

        logger.info(
            "Changed quantity of movement %s to %s (delta=%s, stock=%s)",
            movement_id, new_quantity, delta, stock,
        )
        return movement

    def reassign_product(self, movement_id: int, new_product_id: int, new_quantity: int) -> Movement:
        """Move an active movement to another product, keeping its direction.

        The old effect is reversed on the current product and the new quantity
        applied on the target product, both in the same transaction.
        """
        _require_positive(new_quantity)

        with self.transaction():
            movement = self._lock_active_movement(movement_id)
            old_product_id = movement.product_id
            products = self._lock_products(old_product_id, new_product_id)
            old_product = products[old_product_id]
            new_product = products[new_product_id]

            self._reverse(old_product, movement.type, abs(movement.quantity))
            self._apply(new_product, movement.type, new_quantity)

            movement.product = new_product
            movement.quantity = _signed(movement.type, new_quantity)

        logger.info(
            "Reassigned movement %s from product %s to %s (qty=%s)",
            movement_id, old_product_id, new_product_id, new_quantity,
        )
        return movement

    # ------------------------------------------------------------------
    # Product administration
    # ------------------------------------------------------------------
    def create_product(
        self,
        code: int,
        description: str,
        quantity_type: QuantityType = QuantityType.UNITS,
        price: Optional[float] = None,
        initial_stock: int = 0,
    ) -> Product:
        """Create a product. Initial stock is booked as an opening INBOUND movement."""
        _require_positive(code, "code")
        description = _require_description(description)
        if isinstance(initial_stock, bool) or not isinstance(initial_stock, int) or initial_stock < 0:
            raise InvalidInputError(f"initial stock must be a non-negative integer, got {initial_stock!r}")

        with self.transaction():
            if self._code_taken(code):
                raise ConflictError(f"Product code {code} already exists", {"code": code})

            product = Product(code=code, description=description, quantity_type=quantity_type, price=price, stock=0)
            self.db.add(product)
            self._flush_product(code)

            if initial_stock > 0:
                self._apply(product, MovementType.INBOUND, initial_stock)
                self.db.add(Movement(
                    product=product,
                    date=date.today(),
                    description=OPENING_BALANCE_DESCRIPTION,
                    quantity=initial_stock,
                    type=MovementType.INBOUND,
                    active=True,
                ))

        logger.info("Created product %s (code=%s, stock=%s)", product.id, code, initial_stock)
        return product

    def update_product(self, product_id: int, changes: Dict[str, object]) -> Product:
        """Change catalogue fields. Stock is never touched here.

        ``changes`` holds only the fields the caller sent. ``price`` may be
        cleared with None; a None for any other field leaves it as is.
        """
        code = changes.get("code")
        if code is not None:
            _require_positive(code, "code")
        description = changes.get("description")
        if description is not None:
            description = _require_description(description)

        with self.transaction():
            product = self.db.query(Product).filter(Product.id == product_id).first()
            if product is None:
                raise NotFoundError(f"Product {product_id} not found", {"product_id": product_id})

            if code is not None and code != product.code:
                if self._code_taken(code, exclude_id=product.id):
                    raise ConflictError(f"Product code {code} already exists", {"code": code})
                product.code = code
            if description is not None:
                product.description = description
            if changes.get("quantity_type") is not None:
                product.quantity_type = QuantityType(changes["quantity_type"])
            if "price" in changes:
                product.price = changes["price"]
            self._flush_product(product.code)

        self.db.refresh(product)
        logger.info("Updated product %s (%s)", product_id, ", ".join(sorted(changes)) or "no changes")
        return product

    def _code_taken(self, code: int, exclude_id: Optional[int] = None) -> bool:
        query = self.db.query(Product.id).filter(Product.code == code)
        if exclude_id is not None:
            query = query.filter(Product.id != exclude_id)
        return query.first() is not None

    def _flush_product(self, code: int) -> None:
        # A concurrent writer can take the code between the check and the write
        try:
            self.db.flush()
        except IntegrityError as exc:
            if "code" not in str(exc.orig):
                raise
            raise ConflictError(f"Product code {code} already exists", {"code": code}) from exc

    def delete_product(self, product_id: int) -> None:
        """Delete a product that no movement references."""
        with self.transaction():
            product = self._lock_product(product_id)
            referenced = self.db.query(func.count(Movement.id)).filter(Movement.product_id == product_id).scalar()
            if referenced:
                raise ConflictError(
                    f"Product {product_id} has {referenced} movements and cannot be deleted",
                    {"product_id": product_id, "movements": referenced},
                )
            self.db.delete(product)

        logger.info("Deleted product %s", product_id)

    # ------------------------------------------------------------------
    # Read-only queries
    # ------------------------------------------------------------------
    def get_product(self, product_id: int) -> Product:
        product = self.db.query(Product).filter(Product.id == product_id).first()
        if product is None:
            raise NotFoundError(f"Product {product_id} not found", {"product_id": product_id})
        return product

    def get_product_by_code(self, code: int) -> Product:
        product = self.db.query(Product).filter(Product.code == code).first()
        if product is None:
            raise NotFoundError(f"Product with code {code} not found", {"code": code})
        return product

    def get_movement(self, movement_id: int) -> Movement:
        movement = (
            self.db.query(Movement)
            .options(joinedload(Movement.product))
            .filter(Movement.id == movement_id)
            .first()
        )
        if movement is None:
            raise NotFoundError(f"Movement {movement_id} not found", {"movement_id": movement_id})
        return movement

    def list_movements(
        self,
        movement_type: Optional[MovementType] = None,
        product_id: Optional[int] = None,
        date_from: Optional[Union[str, date]] = None,
        date_to: Optional[Union[str, date]] = None,
        active: Optional[bool] = None,
        page: int = 1,
        page_size: int = 50,
    ) -> Tuple[List[Movement], int]:
        """Movements matching the filters, newest date first, with the total count."""
        if page < 1 or page_size < 1:
            raise InvalidInputError("page and page_size must be positive")

        query = self.db.query(Movement)
        if movement_type is not None:
            query = query.filter(Movement.type == MovementType(movement_type))
        if product_id is not None:
            query = query.filter(Movement.product_id == product_id)
        if date_from is not None:
            date_from = parse_calendar_date(date_from)
            query = query.filter(Movement.date >= date_from)
        if date_to is not None:
            date_to = parse_calendar_date(date_to)
            query = query.filter(Movement.date <= date_to)
        if date_from is not None and date_to is not None and date_from > date_to:
            raise InvalidInputError("date_from must not be after date_to")
        if active is not None:
            query = query.filter(Movement.active.is_(active))

        total = query.count()
        items = (
            query.options(joinedload(Movement.product))
            .order_by(Movement.date.desc(), Movement.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return items, total

    def ledger_balance(self, product_id: int) -> int:
        """Signed sum of the product's active movements; equals its stock."""
        total = (
            self.db.query(func.coalesce(func.sum(Movement.quantity), 0))
            .filter(Movement.product_id == product_id, Movement.active.is_(True))
            .scalar()
        )
        return int(total)
