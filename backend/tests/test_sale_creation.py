from datetime import timedelta
from decimal import Decimal

from backoffice.errors import (
    DECIMALS_NOT_ALLOWED,
    INSUFFICIENT_PAYMENT,
    INSUFFICIENT_STOCK,
    INVALID_QUANTITY,
    TILL_CLOSED,
)
from backoffice.models import PaymentProof, Product, Sale, SaleLine, TillMovement
from backoffice.models.tills import DIRECTION_INFLOW, TILL_STATUS_CLOSED
from backoffice.services import cash_ledger, commerce_service
from backoffice.services.transaction_store import line_total_cents
from backoffice.time_utils import today

from conftest import transaction_payload


def _assert_no_state_change(db_session, product, quantity, till):
    db_session.expire_all()
    assert db_session.get(Product, product.id).quantity == Decimal(quantity)
    assert db_session.query(Sale).count() == 0
    assert db_session.query(SaleLine).count() == 0
    assert db_session.query(TillMovement).filter(TillMovement.reference_type == "sale").count() == 0
    assert db_session.query(PaymentProof).count() == 0


def test_sale_moves_stock_and_cash(db_session, make_product, kilogram, till, make_sale):
    product = make_product("10", kilogram)

    result = make_sale([(product, 5, 2)], tendered_cents=10)

    assert result.is_success, result.error
    assert result.value["number"] == "S-0001"
    assert result.value["date"] == today().isoformat()
    assert db_session.get(Product, product.id).quantity == Decimal("8")

    movement = db_session.query(TillMovement).filter_by(reference_type="sale").one()
    assert movement.reference_id == result.value["id"]
    assert movement.amount_cents == 10
    assert movement.direction == DIRECTION_INFLOW
    assert movement.description == "Sale S-0001"
    assert len(movement.payment_proofs) == 1
    assert movement.payment_proofs[0].descriptor == "Cash"

    line = db_session.query(SaleLine).one()
    assert line.line_total_cents == 10
    assert cash_ledger.till_balance(till.id) == 10


def test_sale_with_fraction_for_integral_unit_is_rejected(db_session, make_product, unit, till, make_sale):
    product = make_product("10", unit)

    result = make_sale([(product, 5, "1.5")], tendered_cents=100)

    assert result.kind == DECIMALS_NOT_ALLOWED
    assert result.error.details["field"] == "lines.0.quantity"
    _assert_no_state_change(db_session, product, "10", till)


def test_sale_needs_stock(db_session, make_product, unit, till, make_sale):
    product = make_product("1", unit)

    result = make_sale([(product, 100, 2)])

    assert result.kind == INSUFFICIENT_STOCK
    assert result.error.details["items"][0]["product_id"] == product.id
    _assert_no_state_change(db_session, product, "1", till)


def test_sale_needs_full_payment(db_session, make_product, unit, till, make_sale):
    product = make_product("5", unit)

    result = make_sale([(product, 300, 2)], tendered_cents=599)

    assert result.kind == INSUFFICIENT_PAYMENT
    assert result.error.details == {"total_cents": 600, "tendered_cents": 599}
    _assert_no_state_change(db_session, product, "5", till)


def test_overpayment_is_accepted(db_session, make_product, unit, till, make_sale):
    product = make_product("5", unit)

    result = make_sale([(product, 300, 1)], tendered_cents=500)

    assert result.is_success
    assert cash_ledger.till_balance(till.id) == 500


def test_split_tender_writes_one_movement_per_tender(db_session, make_product, unit, person, till, cash, card):
    product = make_product("5", unit)
    payload = transaction_payload(
        person.id, till.id, [(product.id, 1000, 2)], [(1500, cash.id), (500, card.id)], number="S-SPLIT",
    )
    payload["tenders"][1]["descriptor"] = "VISA ****4242"

    result = commerce_service.create_sale(payload)

    assert result.is_success
    movements = db_session.query(TillMovement).filter_by(reference_id=result.value["id"]).order_by(TillMovement.id).all()
    assert [m.amount_cents for m in movements] == [1500, 500]
    assert [m.payment_proofs[0].descriptor for m in movements] == ["Cash", "VISA ****4242"]


def test_line_total_rounds_half_up():
    assert line_total_cents(333, Decimal("1.5")) == 500  # 499.5
    assert line_total_cents(101, Decimal("0.005")) == 1  # 0.505
    assert line_total_cents(100, Decimal("0.004")) == 0


def test_duplicate_number_is_an_integrity_conflict(db_session, make_product, unit, till, make_sale):
    product = make_product("10", unit)
    assert make_sale([(product, 100, 1)], number="S-DUP").is_success

    result = make_sale([(product, 100, 1)], number="S-DUP")

    assert result.kind == "integrity_conflict"
    assert not result.retryable
    assert db_session.get(Product, product.id).quantity == Decimal("9")


def test_closed_till_rejects_sale(db_session, make_product, unit, till, make_sale):
    product = make_product("10", unit)
    till.status = TILL_STATUS_CLOSED
    db_session.commit()

    assert make_sale([(product, 100, 1)]).kind == TILL_CLOSED


def test_missing_references_are_not_found(db_session, make_product, unit, person, till, cash):
    product = make_product("10", unit)

    for overrides in ({"person_id": 999}, {"till_id": 999}):
        payload = transaction_payload(person.id, till.id, [(product.id, 100, 1)], [(100, cash.id)])
        payload.update(overrides)
        assert commerce_service.create_sale(payload).kind == "not_found"

    payload = transaction_payload(person.id, till.id, [(999, 100, 1)], [(100, cash.id)])
    assert commerce_service.create_sale(payload).kind == "not_found"

    payload = transaction_payload(person.id, till.id, [(product.id, 100, 1)], [(100, 999)])
    assert commerce_service.create_sale(payload).kind == "not_found"


def test_payload_validation_collects_field_errors(db_session, person, till, cash):
    payload = transaction_payload(
        person.id, till.id, [(1, 100, 1), (1, -5, "abc")], [(0, cash.id)],
        number="   ", transaction_date=today() + timedelta(days=1),
    )

    result = commerce_service.create_sale(payload)

    assert result.kind == "validation_error"
    details = result.error.details
    assert "number" in details
    assert "transaction_date" in details
    assert "lines.1.product_id" in details
    assert "lines.1.unit_amount_cents" in details
    assert "lines.1.quantity" in details
    assert "tenders.0.amount_cents" in details


def test_zero_quantity_rejected_by_validator(db_session, make_product, kilogram, till, make_sale):
    product = make_product("10", kilogram)

    result = make_sale([(product, 100, 0)], tendered_cents=100)

    assert result.kind == INVALID_QUANTITY
    _assert_no_state_change(db_session, product, "10", till)


def test_quantity_finer_than_stored_scale_is_rejected(db_session, make_product, kilogram, till, make_sale):
    product = make_product("10", kilogram)

    # 0.0004 would be stored as 0.000 and leave a sale that cannot be reversed
    result = make_sale([(product, 5000, "0.0004")], tendered_cents=2)

    assert result.kind == INVALID_QUANTITY
    assert result.error.details["field"] == "lines.0.quantity"
    _assert_no_state_change(db_session, product, "10", till)
    assert cash_ledger.till_balance(till.id) == 0
