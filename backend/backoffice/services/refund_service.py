# Overview: Service-layer operations for refunds; goods back into stock against a sale.

"""
Refund invariants:

- A refund only moves stock (REFUND adds, REFUND_REVERSAL subtracts); it
  never writes to a till.
- Per product: live refunded quantity <= quantity sold on the sale.
- Every quantity passes the validator for the product's measurement unit
  (create, update and delete alike).
- Deleting a refund line or refund tombstones it; deleting twice fails with
  already_deleted.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Mapping

from sqlalchemy import func

from ..errors import (
    INVALID_STATUS,
    PRODUCT_NOT_IN_SALE,
    REFUND_EXCEEDS_SOLD,
    BusinessRuleViolation,
    NotFoundError,
    already_deleted,
)
from ..extensions import db
from ..models import Refund, RefundLine, Sale, SaleLine
from ..models.commerce import STATUS_ACTIVE
from ..time_utils import utcnow
from ..validation import RefundRequest, parse_quantity_field, parse_refund_request
from . import stock_ledger
from .concurrency import lock_for_update, unit_of_work
from .quantity_validator import quantity_error, to_decimal
from .results import CommerceResult, run_operation
from .stock_ledger import QUANTITY_PLACES, StockMovement

logger = logging.getLogger(__name__)


# =============================================================================
# LOOKUPS
# =============================================================================

def _load_sale_for_refund(sale_id: int) -> Sale:
    sale = lock_for_update(db.session.query(Sale).filter(Sale.id == sale_id)).first()
    if sale is None or sale.deleted_at is not None:
        raise NotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})
    if sale.status != STATUS_ACTIVE:
        raise BusinessRuleViolation(
            f"Cannot refund a sale with status {sale.status}",
            details={"sale_id": sale_id, "status": sale.status},
            kind=INVALID_STATUS,
        )
    return sale


def _sold_quantity(sale_id: int, product_id: int) -> Decimal | None:
    """Quantity of ``product_id`` on the sale's live lines; None when not on the sale."""
    line = (
        db.session.query(SaleLine)
        .filter(
            SaleLine.sale_id == sale_id,
            SaleLine.product_id == product_id,
            SaleLine.deleted_at.is_(None),
        )
        .first()
    )
    return None if line is None else Decimal(line.quantity)


def _refunded_quantity(sale_id: int, product_id: int, exclude_line_id: int | None = None) -> Decimal:
    """Live refunded quantity for a product across all live refunds of a sale."""
    db.session.flush()
    query = (
        db.session.query(func.coalesce(func.sum(RefundLine.quantity), 0))
        .join(Refund, RefundLine.refund_id == Refund.id)
        .filter(
            Refund.sale_id == sale_id,
            Refund.deleted_at.is_(None),
            RefundLine.product_id == product_id,
            RefundLine.deleted_at.is_(None),
        )
    )
    if exclude_line_id is not None:
        query = query.filter(RefundLine.id != exclude_line_id)
    return Decimal(str(query.scalar() or 0)).quantize(QUANTITY_PLACES)


def _check_cap(sale_id: int, product_id: int, requested: Decimal, *, exclude_line_id: int | None = None) -> None:
    sold = _sold_quantity(sale_id, product_id)
    if sold is None:
        raise BusinessRuleViolation(
            f"Product {product_id} is not on sale {sale_id}",
            details={"sale_id": sale_id, "product_id": product_id},
            kind=PRODUCT_NOT_IN_SALE,
        )
    already = _refunded_quantity(sale_id, product_id, exclude_line_id)
    if already + requested > sold:
        raise BusinessRuleViolation(
            "Refund exceeds quantity sold",
            details={
                "sale_id": sale_id,
                "product_id": product_id,
                "sold": str(sold),
                "already_refunded": str(already),
                "requested": str(requested),
            },
            kind=REFUND_EXCEEDS_SOLD,
        )


def _load_refund_line(line_id: int) -> RefundLine:
    line = lock_for_update(db.session.query(RefundLine).filter(RefundLine.id == line_id)).first()
    if line is None:
        raise NotFoundError(f"Refund line {line_id} not found", details={"refund_line_id": line_id})
    if line.deleted_at is not None or line.refund.deleted_at is not None:
        raise already_deleted(
            f"Refund line {line_id} has already been deleted",
            details={"refund_line_id": line_id},
        )
    return line


def _validated(quantity: Any, product, field: str = "quantity") -> Decimal:
    error = quantity_error(quantity, product.measurement_unit)
    if error is not None:
        error.details.update({"field": field, "product_id": product.id})
        raise error
    return to_decimal(quantity)


# =============================================================================
# OPERATIONS
# =============================================================================

def _create_refund(payload: RefundRequest | Mapping) -> dict:
    request = payload if isinstance(payload, RefundRequest) else parse_refund_request(payload)

    with unit_of_work():
        sale = _load_sale_for_refund(request.sale_id)

        refund = Refund(sale_id=sale.id, refund_date=request.refund_date, note=request.note)
        db.session.add(refund)
        db.session.flush()

        for idx, item in enumerate(request.lines):
            product = stock_ledger.load_product(item.product_id, lock=True)
            quantity = _validated(item.quantity, product, f"lines.{idx}.quantity")
            _check_cap(sale.id, product.id, quantity)

            stock_ledger.apply_stock_delta(product, quantity, StockMovement.REFUND)
            db.session.add(RefundLine(refund_id=refund.id, product_id=product.id, quantity=quantity))

        db.session.flush()
        result = {"id": refund.id, "sale_id": sale.id, "date": refund.refund_date.isoformat()}

    logger.info(
        "Refund created",
        extra={"refund_id": result["id"], "sale_id": result["sale_id"], "line_count": len(request.lines)},
    )
    return result


def _update_refund_line(line_id: int, quantity: Any) -> dict:
    """
    Replace a refund line's quantity.

    The cap is re-checked excluding the line's own quantity, and only the
    difference moves stock.
    """
    raw = parse_quantity_field(quantity)

    with unit_of_work():
        line = _load_refund_line(line_id)
        product = stock_ledger.load_product(line.product_id, lock=True, include_deleted=True)
        new_quantity = _validated(raw, product)
        old_quantity = Decimal(line.quantity)

        _check_cap(line.refund.sale_id, product.id, new_quantity, exclude_line_id=line.id)

        diff = new_quantity - old_quantity
        if diff > 0:
            stock_ledger.apply_stock_delta(product, diff, StockMovement.REFUND)
        elif diff < 0:
            stock_ledger.apply_stock_delta(product, -diff, StockMovement.REFUND_REVERSAL)

        line.quantity = new_quantity
        db.session.flush()
        result = line.to_dict()

    logger.info(
        "Refund line updated",
        extra={"refund_line_id": line_id, "old_quantity": str(old_quantity), "new_quantity": str(new_quantity)},
    )
    return result


def _reverse_refund_line(line: RefundLine, when) -> None:
    product = stock_ledger.load_product(line.product_id, lock=True, include_deleted=True)
    stock_ledger.apply_stock_delta(product, line.quantity, StockMovement.REFUND_REVERSAL)
    line.deleted_at = when
    for anomaly in stock_ledger.stock_anomalies(product):
        logger.warning(
            "Stock anomaly after refund reversal: %s",
            anomaly,
            extra={"refund_line_id": line.id, "product_id": product.id, "on_hand": str(product.quantity)},
        )


def _delete_refund_line(line_id: int) -> dict:
    with unit_of_work():
        line = _load_refund_line(line_id)
        _reverse_refund_line(line, utcnow())
        db.session.flush()

    logger.info("Refund line deleted", extra={"refund_line_id": line_id})
    return {"id": line_id}


def _delete_refund(refund_id: int) -> dict:
    with unit_of_work():
        refund = lock_for_update(db.session.query(Refund).filter(Refund.id == refund_id)).first()
        if refund is None:
            raise NotFoundError(f"Refund {refund_id} not found", details={"refund_id": refund_id})
        if refund.deleted_at is not None:
            raise already_deleted(
                f"Refund {refund_id} has already been deleted",
                details={"refund_id": refund_id},
            )

        now = utcnow()
        live = [line for line in refund.lines if line.deleted_at is None]
        for line in live:
            _reverse_refund_line(line, now)
        refund.deleted_at = now
        db.session.flush()

    logger.info("Refund deleted", extra={"refund_id": refund_id, "lines_reversed": len(live)})
    return {"id": refund_id}


def create_refund(request: RefundRequest | Mapping) -> CommerceResult:
    return run_operation("create_refund", _create_refund, request)


def update_refund_line(line_id: int, quantity: Any) -> CommerceResult:
    return run_operation("update_refund_line", _update_refund_line, line_id, quantity)


def delete_refund_line(line_id: int) -> CommerceResult:
    return run_operation("delete_refund_line", _delete_refund_line, line_id)


def delete_refund(refund_id: int) -> CommerceResult:
    return run_operation("delete_refund", _delete_refund, refund_id)
