import logging
from datetime import timedelta
from decimal import Decimal

from backoffice.errors import ALREADY_DELETED, HAS_REFUNDS, INVALID_STATUS
from backoffice.models import PaymentProof, Product, Purchase, Sale, SaleLine, Till, TillMovement
from backoffice.models.commerce import STATUS_CANCELLED, STATUS_REFUNDED
from backoffice.services import cash_ledger, commerce_service, refund_service
from backoffice.time_utils import today, utcnow


def test_deleting_a_sale_restores_stock_and_cash(db_session, make_product, kilogram, till, make_sale):
    product = make_product("10", kilogram)
    created = make_sale([(product, 5, 2)], tendered_cents=10)
    sale_id = created.value["id"]

    result = commerce_service.delete_sale(sale_id)

    assert result.is_success, result.error
    assert result.value == {"id": sale_id}
    assert db_session.get(Product, product.id).quantity == Decimal("10")
    assert db_session.query(TillMovement).filter(TillMovement.deleted_at.is_(None)).count() == 0
    assert db_session.query(PaymentProof).filter(PaymentProof.deleted_at.is_(None)).count() == 0
    assert db_session.query(SaleLine).filter(SaleLine.deleted_at.is_(None)).count() == 0
    assert db_session.get(Sale, sale_id).deleted_at is not None
    assert cash_ledger.till_balance(till.id) == 0


def test_deleting_a_purchase_restores_stock_and_cash(db_session, make_product, unit, till, fund_till, make_purchase):
    product = make_product("1", unit, cost_price_cents=70)
    fund_till(till, 500)
    created = make_purchase([(product, 100, 3)])

    result = commerce_service.delete_purchase(created.value["id"])

    assert result.is_success, result.error
    refreshed = db_session.get(Product, product.id)
    assert refreshed.quantity == Decimal("1")
    # Cost price stays at the purchase's unit amount
    assert refreshed.cost_price_cents == 100
    assert cash_ledger.till_balance(till.id) == 500
    assert db_session.get(Purchase, created.value["id"]).deleted_at is not None


def test_second_delete_reports_already_deleted(db_session, make_product, unit, till, make_sale):
    product = make_product("3", unit)
    sale_id = make_sale([(product, 100, 1)]).value["id"]

    assert commerce_service.delete_sale(sale_id).is_success
    again = commerce_service.delete_sale(sale_id)

    assert again.kind == ALREADY_DELETED
    assert db_session.get(Product, product.id).quantity == Decimal("3")


def test_unknown_sale(db_session):
    assert commerce_service.delete_sale(12345).kind == "not_found"
    assert commerce_service.delete_purchase(12345).kind == "not_found"


def test_cancelled_or_refunded_sale_cannot_be_deleted(db_session, make_product, unit, till, make_sale):
    product = make_product("5", unit)
    for number, status in (("S-C", STATUS_CANCELLED), ("S-R", STATUS_REFUNDED)):
        sale_id = make_sale([(product, 100, 1)], number=number).value["id"]
        sale = db_session.get(Sale, sale_id)
        sale.status = status
        db_session.commit()

        result = commerce_service.delete_sale(sale_id)

        assert result.kind == INVALID_STATUS
        db_session.expire_all()
        assert db_session.get(Sale, sale_id).deleted_at is None
        assert cash_ledger.count_live_cash_entries("sale", sale_id) == (1, 1)

    assert db_session.get(Product, product.id).quantity == Decimal("3")


def test_sale_with_live_refunds_cannot_be_deleted(db_session, make_product, unit, till, make_sale):
    product = make_product("5", unit)
    sale_id = make_sale([(product, 100, 2)]).value["id"]
    refund = refund_service.create_refund({
        "sale_id": sale_id,
        "refund_date": today().isoformat(),
        "lines": [{"product_id": product.id, "quantity": 1}],
    })
    assert refund.is_success

    assert commerce_service.delete_sale(sale_id).kind == HAS_REFUNDS

    assert refund_service.delete_refund(refund.value["id"]).is_success
    assert commerce_service.delete_sale(sale_id).is_success
    assert db_session.get(Product, product.id).quantity == Decimal("5")


def test_failed_cash_reversal_rolls_back_everything(db_session, make_product, unit, till, make_sale, monkeypatch, caplog):
    product = make_product("10", unit)
    sale_id = make_sale([(product, 100, 4)]).value["id"]

    monkeypatch.setattr(cash_ledger, "tombstone_cash_entries", lambda *args, **kwargs: (0, 0))
    with caplog.at_level(logging.CRITICAL, logger="backoffice"):
        result = commerce_service.delete_sale(sale_id)

    assert result.kind == "reversal_incomplete"
    assert any(r.levelno == logging.CRITICAL for r in caplog.records)

    db_session.expire_all()
    # Stock reversal ran before the failing step and must have been rolled back
    assert db_session.get(Product, product.id).quantity == Decimal("6")
    assert db_session.get(Sale, sale_id).deleted_at is None
    assert cash_ledger.till_balance(till.id) == 400


def test_sale_without_movements_is_incomplete(db_session, make_product, unit, till, make_sale):
    product = make_product("10", unit)
    sale_id = make_sale([(product, 100, 1)]).value["id"]
    for movement in db_session.query(TillMovement).all():
        movement.deleted_at = utcnow()
    db_session.commit()

    assert commerce_service.delete_sale(sale_id).kind == "incomplete_transaction"
    assert db_session.get(Product, product.id).quantity == Decimal("9")


def test_tombstoned_product_is_a_dangling_reference(db_session, make_product, unit, till, make_sale):
    product = make_product("10", unit)
    sale_id = make_sale([(product, 100, 1)]).value["id"]
    db_session.get(Product, product.id).deleted_at = utcnow()
    db_session.commit()

    result = commerce_service.delete_sale(sale_id)

    assert result.kind == "dangling_reference"
    assert result.error.details["product_ids"] == [product.id]


def test_negative_stock_after_reversal_is_logged_not_failed(db_session, make_product, unit, till, fund_till, make_purchase, caplog):
    product = make_product("0", unit)
    fund_till(till, 1000)
    purchase_id = make_purchase([(product, 100, 5)]).value["id"]

    # Stock sold off outside the ledger
    db_session.get(Product, product.id).quantity = Decimal("2")
    db_session.commit()

    with caplog.at_level(logging.WARNING, logger="backoffice"):
        result = commerce_service.delete_purchase(purchase_id)

    assert result.is_success
    assert db_session.get(Product, product.id).quantity == Decimal("-3")
    assert any(getattr(r, "anomaly", None) == "negative_stock" for r in caplog.records)


def test_stale_transaction_only_warns(db_session, make_product, unit, till, make_sale, caplog):
    product = make_product("10", unit)
    sale_id = make_sale([(product, 100, 1)], transaction_date=today() - timedelta(days=90)).value["id"]

    with caplog.at_level(logging.WARNING, logger="backoffice"):
        result = commerce_service.delete_sale(sale_id)

    assert result.is_success
    assert any(getattr(r, "age_days", 0) == 90 for r in caplog.records)


def test_tombstoned_till_is_a_dangling_reference(db_session, make_product, unit, till, make_sale):
    product = make_product("10", unit)
    sale_id = make_sale([(product, 100, 1)]).value["id"]
    db_session.get(Till, till.id).deleted_at = utcnow()
    db_session.commit()

    result = commerce_service.delete_sale(sale_id)

    assert result.kind == "dangling_reference"
    assert result.error.details["till_ids"] == [till.id]
    db_session.expire_all()
    assert db_session.get(Sale, sale_id).deleted_at is None
    assert db_session.get(Product, product.id).quantity == Decimal("9")


def test_second_purchase_delete_reports_already_deleted(db_session, make_product, unit, till, fund_till, make_purchase):
    product = make_product("0", unit)
    fund_till(till, 500)
    purchase_id = make_purchase([(product, 100, 2)]).value["id"]

    assert commerce_service.delete_purchase(purchase_id).is_success
    again = commerce_service.delete_purchase(purchase_id)

    assert again.kind == ALREADY_DELETED
    assert db_session.get(Product, product.id).quantity == Decimal("0")
    assert cash_ledger.till_balance(till.id) == 500


def test_cancelled_purchase_cannot_be_deleted(db_session, make_product, unit, till, fund_till, make_purchase):
    product = make_product("0", unit)
    fund_till(till, 500)
    purchase_id = make_purchase([(product, 100, 2)]).value["id"]
    db_session.get(Purchase, purchase_id).status = STATUS_CANCELLED
    db_session.commit()

    result = commerce_service.delete_purchase(purchase_id)

    assert result.kind == INVALID_STATUS
    db_session.expire_all()
    assert db_session.get(Purchase, purchase_id).deleted_at is None
    assert db_session.get(Product, product.id).quantity == Decimal("2")
    assert cash_ledger.till_balance(till.id) == 300
