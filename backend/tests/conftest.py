"""
Pytest fixtures for the commerce ledger tests.

Provides the app over in-memory SQLite, a per-test clean database, and
factories for reference data (units, tender types, persons, tills, products).
"""

from datetime import date
from decimal import Decimal

import pytest

from backoffice import create_app
from backoffice.extensions import db
from backoffice.models import MeasurementUnit, Person, Product, TenderType, Till
from backoffice.services import cash_ledger, commerce_service
from backoffice.time_utils import today


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LOG_LEVEL': 'DEBUG',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def unit(db_session):
    """Integral unit: decimals not allowed."""
    u = MeasurementUnit(name="Unit", abbreviation="u", allows_decimals=False)
    db_session.add(u)
    db_session.commit()
    return u


@pytest.fixture(scope='function')
def kilogram(db_session):
    u = MeasurementUnit(name="Kilogram", abbreviation="kg", allows_decimals=True)
    db_session.add(u)
    db_session.commit()
    return u


@pytest.fixture(scope='function')
def cash(db_session):
    tender = TenderType(name="Cash")
    db_session.add(tender)
    db_session.commit()
    return tender


@pytest.fixture(scope='function')
def card(db_session):
    tender = TenderType(name="Card")
    db_session.add(tender)
    db_session.commit()
    return tender


@pytest.fixture(scope='function')
def person(db_session):
    p = Person(name="Ana Lopez", document_number="30111222")
    db_session.add(p)
    db_session.commit()
    return p


@pytest.fixture(scope='function')
def till(db_session, person):
    t = Till(name="Front Counter", person_id=person.id)
    db_session.add(t)
    db_session.commit()
    return t


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: make_product(quantity, unit=None, name=...)."""
    def _make(quantity="0", unit=None, name="Widget", cost_price_cents=0, sale_price_cents=0):
        product = Product(
            name=name,
            quantity=Decimal(str(quantity)),
            measurement_unit_id=unit.id if unit is not None else None,
            cost_price_cents=cost_price_cents,
            sale_price_cents=sale_price_cents,
        )
        db_session.add(product)
        db_session.commit()
        return product
    return _make


@pytest.fixture(scope='function')
def fund_till(db_session):
    """Factory: deposit cash into a till and return the new balance."""
    def _fund(till_obj, amount_cents):
        result = cash_ledger.deposit_cash(till_obj.id, amount_cents, "Opening float")
        assert result.is_success, result.error
        return result.value["balance_cents"]
    return _fund


def transaction_payload(
    person_id,
    till_id,
    lines,
    tenders,
    number="T-0001",
    transaction_date=None,
):
    """
    Build a sale/purchase payload.

    lines: [(product_id, unit_amount_cents, quantity)]
    tenders: [(amount_cents, tender_type_id)]
    """
    return {
        "person_id": person_id,
        "till_id": till_id,
        "number": number,
        "transaction_date": (transaction_date or today()).isoformat(),
        "lines": [
            {"product_id": pid, "unit_amount_cents": amount, "quantity": qty}
            for pid, amount, qty in lines
        ],
        "tenders": [
            {"amount_cents": amount, "tender_type_id": tid}
            for amount, tid in tenders
        ],
    }


@pytest.fixture(scope='function')
def make_sale(person, till, cash):
    """Factory: register a sale of ``[(product, unit_amount_cents, quantity)]`` paid in cash."""
    def _make(lines, number="S-0001", tendered_cents=None, transaction_date: date = None):
        raw = [(p.id, amount, qty) for p, amount, qty in lines]
        total = sum(int(Decimal(str(amount)) * Decimal(str(qty))) for _, amount, qty in raw)
        payload = transaction_payload(
            person.id, till.id, raw,
            [(tendered_cents if tendered_cents is not None else total, cash.id)],
            number=number, transaction_date=transaction_date,
        )
        return commerce_service.create_sale(payload)
    return _make


@pytest.fixture(scope='function')
def make_purchase(person, till, cash):
    """Factory: register a purchase of ``[(product, unit_amount_cents, quantity)]`` paid in cash."""
    def _make(lines, number="P-0001", tendered_cents=None, transaction_date: date = None):
        raw = [(p.id, amount, qty) for p, amount, qty in lines]
        total = sum(int(Decimal(str(amount)) * Decimal(str(qty))) for _, amount, qty in raw)
        payload = transaction_payload(
            person.id, till.id, raw,
            [(tendered_cents if tendered_cents is not None else total, cash.id)],
            number=number, transaction_date=transaction_date,
        )
        return commerce_service.create_purchase(payload)
    return _make
