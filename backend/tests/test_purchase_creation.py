from decimal import Decimal

from backoffice.errors import DECIMALS_NOT_ALLOWED, INSUFFICIENT_TILL_FUNDS
from backoffice.models import Product, Purchase, PurchaseLine, TillMovement
from backoffice.models.tills import DIRECTION_OUTFLOW
from backoffice.services import cash_ledger


def test_purchase_adds_stock_sets_cost_and_pays_from_till(db_session, make_product, kilogram, till, fund_till, make_purchase):
    product = make_product("2", kilogram, cost_price_cents=90)
    fund_till(till, 1000)

    result = make_purchase([(product, 120, "2.5")])

    assert result.is_success, result.error
    refreshed = db_session.get(Product, product.id)
    assert refreshed.quantity == Decimal("4.5")
    assert refreshed.cost_price_cents == 120

    movement = db_session.query(TillMovement).filter_by(reference_type="purchase").one()
    assert movement.amount_cents == -300
    assert movement.direction == DIRECTION_OUTFLOW
    assert movement.description == "Purchase P-0001"
    assert cash_ledger.till_balance(till.id) == 700


def test_purchase_cannot_exceed_till_balance(db_session, make_product, unit, till, fund_till, make_purchase):
    product = make_product("0", unit, cost_price_cents=10)
    fund_till(till, 100)

    result = make_purchase([(product, 50, 3)])

    assert result.kind == INSUFFICIENT_TILL_FUNDS
    assert result.error.details == {"till_id": till.id, "balance_cents": 100, "total_cents": 150}
    db_session.expire_all()
    assert db_session.get(Product, product.id).quantity == Decimal("0")
    assert db_session.get(Product, product.id).cost_price_cents == 10
    assert db_session.query(Purchase).count() == 0
    assert db_session.query(PurchaseLine).count() == 0
    assert cash_ledger.till_balance(till.id) == 100


def test_purchase_exactly_draining_till(db_session, make_product, unit, till, fund_till, make_purchase):
    product = make_product("0", unit)
    fund_till(till, 150)

    assert make_purchase([(product, 50, 3)]).is_success
    assert cash_ledger.till_balance(till.id) == 0


def test_purchase_respects_decimal_policy(db_session, make_product, unit, till, fund_till, make_purchase):
    product = make_product("0", unit)
    fund_till(till, 1000)

    result = make_purchase([(product, 10, "0.5")], tendered_cents=5)

    assert result.kind == DECIMALS_NOT_ALLOWED
    assert cash_ledger.till_balance(till.id) == 1000
