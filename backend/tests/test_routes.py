import logging
from decimal import Decimal

from backoffice.models import Product, RefundLine, Sale
from backoffice.services import commerce_service
from backoffice.time_utils import today

from conftest import transaction_payload


def test_create_and_delete_sale_over_http(client, db_session, make_product, kilogram, person, till, cash):
    product = make_product("10", kilogram)
    payload = transaction_payload(person.id, till.id, [(product.id, 5, 2)], [(10, cash.id)], number="S-HTTP")

    created = client.post("/api/sales", json=payload)
    assert created.status_code == 201
    body = created.get_json()
    assert body["number"] == "S-HTTP"
    assert body["date"] == today().isoformat()

    fetched = client.get(f"/api/sales/{body['id']}")
    assert fetched.status_code == 200
    assert fetched.get_json()["lines"][0]["quantity"] in ("2", "2.000")

    balance = client.get(f"/api/tills/{till.id}/balance")
    assert balance.get_json()["balance_cents"] == 10

    deleted = client.delete(f"/api/sales/{body['id']}")
    assert deleted.status_code == 200
    assert deleted.get_json() == {"id": body["id"]}

    again = client.delete(f"/api/sales/{body['id']}")
    assert again.status_code == 400
    assert again.get_json()["kind"] == "already_deleted"

    db_session.expire_all()
    assert db_session.get(Product, product.id).quantity == Decimal("10")
    assert db_session.get(Sale, body["id"]).deleted_at is not None


def test_status_mapping(client, db_session, make_product, unit, person, till, cash):
    product = make_product("10", unit)

    invalid = client.post("/api/sales", json={"person_id": "x"})
    assert invalid.status_code == 422
    assert invalid.get_json()["kind"] == "validation_error"
    assert "lines" in invalid.get_json()["details"]

    fractional = client.post("/api/sales", json=transaction_payload(
        person.id, till.id, [(product.id, 100, "1.5")], [(200, cash.id)],
    ))
    assert fractional.status_code == 400
    assert fractional.get_json()["kind"] == "decimals_not_allowed"

    assert client.delete("/api/sales/999").status_code == 404
    assert client.get("/api/sales/999").status_code == 404

    first = client.post("/api/sales", json=transaction_payload(
        person.id, till.id, [(product.id, 100, 1)], [(100, cash.id)], number="DUP",
    ))
    assert first.status_code == 201
    dup = client.post("/api/sales", json=transaction_payload(
        person.id, till.id, [(product.id, 100, 1)], [(100, cash.id)], number="DUP",
    ))
    assert dup.status_code == 409
    assert dup.get_json()["retryable"] is False


def test_purchase_and_deposit_over_http(client, db_session, make_product, unit, person, till, cash):
    product = make_product("0", unit)
    payload = transaction_payload(person.id, till.id, [(product.id, 50, 3)], [(150, cash.id)], number="P-HTTP")

    short = client.post("/api/purchases", json=payload)
    assert short.status_code == 400
    assert short.get_json()["kind"] == "insufficient_till_funds"

    deposit = client.post(f"/api/tills/{till.id}/deposits", json={"amount_cents": 100})
    assert deposit.status_code == 201
    assert deposit.get_json()["balance_cents"] == 100

    assert client.post(f"/api/tills/{till.id}/deposits", json={"amount_cents": -1}).status_code == 422

    client.post(f"/api/tills/{till.id}/deposits", json={"amount_cents": 50})
    created = client.post("/api/purchases", json=payload)
    assert created.status_code == 201

    withdrawal = client.post(f"/api/tills/{till.id}/withdrawals", json={"amount_cents": 1})
    assert withdrawal.status_code == 400

    deleted = client.delete(f"/api/purchases/{created.get_json()['id']}")
    assert deleted.status_code == 200
    assert client.get(f"/api/tills/{till.id}/balance").get_json()["balance_cents"] == 150


def test_refund_endpoints(client, db_session, make_product, unit, person, till, cash):
    product = make_product("10", unit)
    sale = client.post("/api/sales", json=transaction_payload(
        person.id, till.id, [(product.id, 100, 3)], [(300, cash.id)],
    )).get_json()

    created = client.post("/api/refunds", json={
        "sale_id": sale["id"],
        "refund_date": today().isoformat(),
        "lines": [{"product_id": product.id, "quantity": 1}],
    })
    assert created.status_code == 201
    refund_id = created.get_json()["id"]

    line_id = db_session.query(RefundLine).filter_by(refund_id=refund_id).one().id

    patched = client.patch(f"/api/refund-lines/{line_id}", json={"quantity": 2})
    assert patched.status_code == 200
    assert Decimal(patched.get_json()["quantity"]) == 2

    too_many = client.patch(f"/api/refund-lines/{line_id}", json={"quantity": 4})
    assert too_many.status_code == 400
    assert too_many.get_json()["kind"] == "refund_exceeds_sold"

    assert client.delete(f"/api/refund-lines/{line_id}").status_code == 200
    assert client.delete(f"/api/refund-lines/{line_id}").status_code == 400
    assert client.delete(f"/api/refunds/{refund_id}").status_code == 200
    assert client.delete(f"/api/refunds/{refund_id}").status_code == 400

    db_session.expire_all()
    assert db_session.get(Product, product.id).quantity == Decimal("7")


def test_deleted_sale_keeps_its_history(client, db_session, make_product, unit, person, till, cash):
    product = make_product("5", unit)
    payload = transaction_payload(person.id, till.id, [(product.id, 300, 2)], [(600, cash.id)], number="S-HIST")
    sale_id = client.post("/api/sales", json=payload).get_json()["id"]
    assert client.delete(f"/api/sales/{sale_id}").status_code == 200

    fetched = client.get(f"/api/sales/{sale_id}")

    assert fetched.status_code == 200
    body = fetched.get_json()
    assert body["sale"]["deleted_at"] is not None
    assert len(body["lines"]) == 1
    assert body["lines"][0]["deleted_at"] is not None
    assert len(body["till_movements"]) == 1
    assert body["till_movements"][0]["amount_cents"] == 600
    assert body["till_movements"][0]["deleted_at"] is not None


def test_read_failure_is_logged_and_hidden(client, db_session, monkeypatch, caplog):
    def broken(kind, header_id):
        raise RuntimeError("connection string with password")

    monkeypatch.setattr(commerce_service, "get_transaction", broken)

    for path in ("/api/sales/1", "/api/purchases/1"):
        with caplog.at_level(logging.ERROR):
            response = client.get(path)
        assert response.status_code == 500
        assert response.get_json() == {"error": "Internal server error"}

    messages = [r.getMessage() for r in caplog.records]
    assert "Failed to read sale" in messages
    assert "Failed to read purchase" in messages
