from datetime import date

import pytest
from sqlalchemy.exc import OperationalError

from exceptions import (
    AlreadyVoidedError,
    ConflictError,
    InsufficientStockError,
    InvalidInputError,
    NotFoundError,
    StorageFailureError,
)
from models.movement import Movement, MovementType
from models.product import Product
from services.ledger import OPENING_BALANCE_DESCRIPTION


def stock_of(session, product_id):
    session.expire_all()
    return session.get(Product, product_id).stock


def assert_balanced(session, ledger, *products):
    for product in products:
        assert stock_of(session, product.id) == ledger.ledger_balance(product.id)
        assert stock_of(session, product.id) >= 0


# ---------------------------------------------------------------------------
# Recording
# ---------------------------------------------------------------------------
def test_record_inbound_adds_stock_and_creates_active_movement(session, ledger, make_product):
    product = make_product()

    movement = ledger.record_inbound(product.id, 50, "2024-01-10", "Supplier delivery", invoice_number=1234)

    assert stock_of(session, product.id) == 50
    assert movement.type == MovementType.INBOUND
    assert movement.quantity == 50
    assert movement.active is True
    assert movement.date == date(2024, 1, 10)
    assert movement.invoice_number == 1234
    assert movement.product.id == product.id


def test_record_outbound_subtracts_stock_with_negative_quantity(session, ledger, make_product):
    product = make_product(stock=30)

    movement = ledger.record_outbound(product.id, 12, "2024-01-11", "Counter sale")

    assert stock_of(session, product.id) == 18
    assert movement.type == MovementType.OUTBOUND
    assert movement.quantity == -12
    assert movement.invoice_number is None


def test_outbound_larger_than_stock_is_rejected_and_stock_unchanged(session, ledger, make_product):
    product = make_product(stock=10)

    with pytest.raises(InsufficientStockError):
        ledger.record_outbound(product.id, 15, "2024-01-11", "Too much")

    assert stock_of(session, product.id) == 10
    assert session.query(Movement).filter(Movement.type == MovementType.OUTBOUND).count() == 0


def test_outbound_of_exact_stock_leaves_zero(session, ledger, make_product):
    product = make_product(stock=7)
    ledger.record_outbound(product.id, 7, "2024-01-11", "Everything")
    assert stock_of(session, product.id) == 0


@pytest.mark.parametrize("quantity", [0, -5, True, 2.5])
def test_non_positive_or_non_integer_quantity_is_invalid(ledger, make_product, quantity):
    product = make_product()
    with pytest.raises(InvalidInputError):
        ledger.record_inbound(product.id, quantity, "2024-01-10", "Bad")


def test_malformed_date_is_rejected_before_touching_stock(session, ledger, make_product):
    product = make_product(stock=5)
    with pytest.raises(InvalidInputError):
        ledger.record_outbound(product.id, 1, "11/01/2024", "Bad date")
    assert stock_of(session, product.id) == 5


def test_recording_on_missing_product_is_not_found(ledger):
    with pytest.raises(NotFoundError):
        ledger.record_inbound(999, 1, "2024-01-10", "Ghost")


# ---------------------------------------------------------------------------
# Voiding
# ---------------------------------------------------------------------------
def test_void_inbound_round_trip_restores_stock(session, ledger, make_product):
    product = make_product(stock=4)
    movement = ledger.record_inbound(product.id, 10, "2024-01-10", "Delivery")

    voided = ledger.void_movement(movement.id)

    assert stock_of(session, product.id) == 4
    assert voided.active is False
    # The historical record is preserved
    assert voided.quantity == 10
    assert voided.product_id == product.id


def test_void_outbound_returns_stock(session, ledger, make_product):
    product = make_product(stock=20)
    movement = ledger.record_outbound(product.id, 8, "2024-01-11", "Sale")

    ledger.void_movement(movement.id)

    assert stock_of(session, product.id) == 20
    assert_balanced(session, ledger, product)


def test_void_partially_consumed_inbound_is_rejected(session, ledger, make_product):
    product = make_product()
    inbound = ledger.record_inbound(product.id, 50, "2024-01-10", "Delivery")
    ledger.record_outbound(product.id, 20, "2024-01-11", "Sale")
    assert stock_of(session, product.id) == 30

    with pytest.raises(InsufficientStockError):
        ledger.void_movement(inbound.id)

    assert stock_of(session, product.id) == 30
    assert session.get(Movement, inbound.id).active is True


def test_voided_movement_is_terminal(session, ledger, make_product):
    product = make_product(stock=10)
    other = make_product(stock=10)
    movement = ledger.record_outbound(product.id, 3, "2024-01-11", "Sale")
    ledger.void_movement(movement.id)

    with pytest.raises(AlreadyVoidedError):
        ledger.void_movement(movement.id)
    with pytest.raises(AlreadyVoidedError):
        ledger.edit_quantity(movement.id, 1)
    with pytest.raises(AlreadyVoidedError):
        ledger.reassign_product(movement.id, other.id, 1)

    assert stock_of(session, product.id) == 10
    assert stock_of(session, other.id) == 10


def test_void_missing_movement_is_not_found(ledger):
    with pytest.raises(NotFoundError):
        ledger.void_movement(12345)


# ---------------------------------------------------------------------------
# Quantity edits
# ---------------------------------------------------------------------------
def test_reducing_inbound_applies_negative_delta(session, ledger, make_product):
    product = make_product()
    movement = ledger.record_inbound(product.id, 20, "2024-01-10", "Delivery")

    edited = ledger.edit_quantity(movement.id, 5)

    assert edited.quantity == 5
    assert stock_of(session, product.id) == 5


def test_reducing_inbound_beyond_remaining_stock_is_rejected(session, ledger, make_product):
    product = make_product()
    movement = ledger.record_inbound(product.id, 20, "2024-01-10", "Delivery")
    ledger.record_outbound(product.id, 10, "2024-01-11", "Sale")

    # Needs 15 units of headroom, only 10 remain
    with pytest.raises(InsufficientStockError):
        ledger.edit_quantity(movement.id, 5)

    assert stock_of(session, product.id) == 10
    assert session.get(Movement, movement.id).quantity == 20


def test_reducing_partially_consumed_inbound_within_headroom(session, ledger, make_product):
    product = make_product()
    movement = ledger.record_inbound(product.id, 20, "2024-01-10", "Delivery")
    ledger.record_outbound(product.id, 10, "2024-01-11", "Sale")

    ledger.edit_quantity(movement.id, 12)

    assert stock_of(session, product.id) == 2
    assert_balanced(session, ledger, product)


def test_increasing_outbound_needs_stock_for_delta_only(session, ledger, make_product):
    product = make_product(stock=10)
    movement = ledger.record_outbound(product.id, 6, "2024-01-11", "Sale")

    ledger.edit_quantity(movement.id, 10)
    assert stock_of(session, product.id) == 0
    assert session.get(Movement, movement.id).quantity == -10

    with pytest.raises(InsufficientStockError):
        ledger.edit_quantity(movement.id, 11)
    assert stock_of(session, product.id) == 0


def test_decreasing_outbound_returns_stock(session, ledger, make_product):
    product = make_product(stock=10)
    movement = ledger.record_outbound(product.id, 6, "2024-01-11", "Sale")

    ledger.edit_quantity(movement.id, 1)

    assert stock_of(session, product.id) == 9
    assert session.get(Movement, movement.id).quantity == -1


def test_edit_with_non_positive_quantity_is_invalid(ledger, make_product):
    product = make_product()
    movement = ledger.record_inbound(product.id, 3, "2024-01-10", "Delivery")
    with pytest.raises(InvalidInputError):
        ledger.edit_quantity(movement.id, 0)


def test_edit_or_reassign_missing_movement_is_not_found(session, ledger, make_product):
    product = make_product(stock=10)

    with pytest.raises(NotFoundError):
        ledger.edit_quantity(12345, 2)
    with pytest.raises(NotFoundError):
        ledger.reassign_product(12345, product.id, 2)

    assert stock_of(session, product.id) == 10


# ---------------------------------------------------------------------------
# Product reassignment
# ---------------------------------------------------------------------------
def test_reassign_outbound_moves_stock_between_products(session, ledger, make_product):
    p1 = make_product(stock=20)
    p2 = make_product(stock=10)
    movement = ledger.record_outbound(p1.id, 8, "2024-01-11", "Sale")
    assert stock_of(session, p1.id) == 12

    moved = ledger.reassign_product(movement.id, p2.id, 8)

    assert stock_of(session, p1.id) == 20
    assert stock_of(session, p2.id) == 2
    assert moved.product_id == p2.id
    assert moved.quantity == -8
    assert moved.type == MovementType.OUTBOUND
    assert_balanced(session, ledger, p1, p2)


def test_reassign_outbound_to_short_product_rolls_back_reversal(session, ledger, make_product):
    p1 = make_product(stock=20)
    p2 = make_product(stock=5)
    movement = ledger.record_outbound(p1.id, 8, "2024-01-11", "Sale")

    with pytest.raises(InsufficientStockError):
        ledger.reassign_product(movement.id, p2.id, 8)

    assert stock_of(session, p1.id) == 12
    assert stock_of(session, p2.id) == 5
    assert session.get(Movement, movement.id).product_id == p1.id


def test_reassign_inbound_with_new_quantity(session, ledger, make_product):
    p1 = make_product()
    p2 = make_product(stock=1)
    movement = ledger.record_inbound(p1.id, 10, "2024-01-10", "Wrong product")

    moved = ledger.reassign_product(movement.id, p2.id, 4)

    assert stock_of(session, p1.id) == 0
    assert stock_of(session, p2.id) == 5
    assert moved.quantity == 4
    assert moved.type == MovementType.INBOUND


def test_reassign_consumed_inbound_is_rejected(session, ledger, make_product):
    p1 = make_product()
    p2 = make_product()
    movement = ledger.record_inbound(p1.id, 10, "2024-01-10", "Delivery")
    ledger.record_outbound(p1.id, 4, "2024-01-11", "Sale")

    with pytest.raises(InsufficientStockError):
        ledger.reassign_product(movement.id, p2.id, 10)

    assert stock_of(session, p1.id) == 6
    assert stock_of(session, p2.id) == 0


def test_reassign_to_same_product_behaves_like_quantity_change(session, ledger, make_product):
    product = make_product(stock=10)
    movement = ledger.record_outbound(product.id, 4, "2024-01-11", "Sale")

    ledger.reassign_product(movement.id, product.id, 9)

    assert stock_of(session, product.id) == 1
    assert_balanced(session, ledger, product)


def test_reassign_to_missing_product_is_not_found(session, ledger, make_product):
    product = make_product(stock=10)
    movement = ledger.record_outbound(product.id, 4, "2024-01-11", "Sale")

    with pytest.raises(NotFoundError):
        ledger.reassign_product(movement.id, 999, 4)

    assert stock_of(session, product.id) == 6


# ---------------------------------------------------------------------------
# Invariants and failures
# ---------------------------------------------------------------------------
def test_stock_matches_ledger_after_mixed_operations(session, ledger, make_product):
    p1 = make_product(stock=5)
    p2 = make_product()

    a = ledger.record_inbound(p1.id, 40, "2024-03-01", "Delivery")    # p1 45
    b = ledger.record_outbound(p1.id, 15, "2024-03-02", "Sale")       # p1 30
    c = ledger.record_inbound(p2.id, 9, "2024-03-02", "Delivery")     # p2 9
    ledger.edit_quantity(a.id, 35)                                    # p1 25
    ledger.reassign_product(b.id, p2.id, 3)                           # p1 40, p2 6
    ledger.record_outbound(p2.id, 2, "2024-03-03", "Sale")            # p2 4
    with pytest.raises(InsufficientStockError):
        ledger.void_movement(c.id)
    with pytest.raises(InsufficientStockError):
        ledger.record_outbound(p2.id, 1000, "2024-03-04", "Too much")
    ledger.void_movement(b.id)                                        # p2 7

    assert stock_of(session, p1.id) == 40
    assert stock_of(session, p2.id) == 7
    assert_balanced(session, ledger, p1, p2)


def test_storage_failure_on_commit_rolls_back(session, ledger, make_product, monkeypatch):
    product = make_product(stock=10)

    def failing_commit():
        raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(session, "commit", failing_commit)
    with pytest.raises(StorageFailureError):
        ledger.record_outbound(product.id, 3, "2024-01-11", "Sale")
    monkeypatch.undo()

    assert stock_of(session, product.id) == 10
    assert session.query(Movement).filter(Movement.type == MovementType.OUTBOUND).count() == 0


# ---------------------------------------------------------------------------
# Product administration and queries
# ---------------------------------------------------------------------------
def test_initial_stock_is_booked_as_opening_movement(session, ledger, make_product):
    product = make_product(stock=25)

    movements = session.query(Movement).filter(Movement.product_id == product.id).all()
    assert len(movements) == 1
    assert movements[0].description == OPENING_BALANCE_DESCRIPTION
    assert movements[0].quantity == 25
    assert_balanced(session, ledger, product)


def test_duplicate_product_code_conflicts(make_product):
    make_product(code=77)
    with pytest.raises(ConflictError):
        make_product(code=77)


@pytest.mark.parametrize("code, description", [(0, "Flour"), (-3, "Flour"), (5, ""), (5, "   ")])
def test_product_needs_positive_code_and_description(session, ledger, code, description):
    with pytest.raises(InvalidInputError):
        ledger.create_product(code=code, description=description)
    assert session.query(Product).count() == 0


def test_code_taken_between_check_and_write_conflicts(session, ledger, make_product, monkeypatch):
    make_product(code=88)
    other = make_product(code=89)
    monkeypatch.setattr(ledger, "_code_taken", lambda code, exclude_id=None: False)

    with pytest.raises(ConflictError):
        ledger.create_product(code=88, description="Duplicate")
    with pytest.raises(ConflictError):
        ledger.update_product(other.id, {"code": 88})

    session.expire_all()
    assert session.query(Product).filter(Product.code == 88).count() == 1
    assert session.get(Product, other.id).code == 89


def test_update_product_can_clear_price(session, ledger, make_product):
    product = make_product(stock=4, price=12.5)

    ledger.update_product(product.id, {"description": "Renamed"})
    assert session.get(Product, product.id).price == 12.5

    updated = ledger.update_product(product.id, {"price": None})
    assert updated.price is None
    assert updated.description == "Renamed"
    assert updated.stock == 4


def test_update_missing_product_is_not_found(ledger):
    with pytest.raises(NotFoundError):
        ledger.update_product(999, {"description": "Ghost"})


def test_product_with_movements_cannot_be_deleted(session, ledger, make_product):
    product = make_product(stock=3)
    with pytest.raises(ConflictError):
        ledger.delete_product(product.id)
    assert session.get(Product, product.id) is not None


def test_product_without_movements_can_be_deleted(session, ledger, make_product):
    product = make_product()
    ledger.delete_product(product.id)
    session.expire_all()
    assert session.get(Product, product.id) is None


def test_lookup_by_id_and_code(ledger, make_product):
    product = make_product(code=4242)
    assert ledger.get_product(product.id).code == 4242
    assert ledger.get_product_by_code(4242).id == product.id
    with pytest.raises(NotFoundError):
        ledger.get_product_by_code(1)
    with pytest.raises(NotFoundError):
        ledger.get_movement(1)


def test_list_movements_filters_and_orders_newest_first(ledger, make_product):
    p1 = make_product()
    p2 = make_product(stock=50)
    first = ledger.record_inbound(p1.id, 10, "2024-01-05", "Delivery")
    second = ledger.record_outbound(p2.id, 5, "2024-01-20", "Sale")
    third = ledger.record_inbound(p1.id, 3, "2024-02-01", "Delivery")
    ledger.void_movement(third.id)

    items, total = ledger.list_movements(product_id=p1.id)
    assert total == 2
    assert [m.id for m in items] == [third.id, first.id]

    items, total = ledger.list_movements(movement_type=MovementType.OUTBOUND)
    assert [m.id for m in items] == [second.id]
    assert items[0].product.code == p2.code

    items, total = ledger.list_movements(date_from="2024-01-10", date_to="2024-01-31")
    assert [m.id for m in items] == [second.id]

    items, total = ledger.list_movements(product_id=p1.id, active=True)
    assert [m.id for m in items] == [first.id]

    with pytest.raises(InvalidInputError):
        ledger.list_movements(date_from="2024-02-01", date_to="2024-01-01")
