# Overview: Service-layer operations for product stock; the only writer of Product.quantity.

"""
Stock ledger invariants:

- Product.quantity changes only through apply_stock_delta.
- The sign of a change comes from the StockMovement kind, never from
  free-form strings.
- Every delta is checked by the quantity validator against the product's
  measurement unit before it is applied.
- Only purchases move the cost price; reversals keep the cost untouched.
- Negative or fractional-for-integral-unit results after a reversal are
  reported by stock_anomalies and logged by callers, not rejected.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from enum import Enum

from ..errors import NotFoundError
from ..extensions import db
from ..models import Product
from .concurrency import lock_for_update
from .quantity_validator import is_integral, validate_quantity

logger = logging.getLogger(__name__)

QUANTITY_PLACES = Decimal("0.001")


class StockMovement(str, Enum):
    SALE = "sale"
    PURCHASE = "purchase"
    SALE_REVERSAL = "sale_reversal"
    PURCHASE_REVERSAL = "purchase_reversal"
    REFUND = "refund"
    REFUND_REVERSAL = "refund_reversal"

    @property
    def sign(self) -> int:
        return _SIGNS[self]


_SIGNS = {
    StockMovement.SALE: -1,
    StockMovement.PURCHASE: 1,
    StockMovement.SALE_REVERSAL: 1,
    StockMovement.PURCHASE_REVERSAL: -1,
    StockMovement.REFUND: 1,
    StockMovement.REFUND_REVERSAL: -1,
}


def load_product(product_id: int, *, lock: bool = False, include_deleted: bool = False) -> Product:
    """Fetch a product (optionally FOR UPDATE); NotFoundError when absent or tombstoned."""
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None or (product.deleted_at is not None and not include_deleted):
        raise NotFoundError(f"Product {product_id} not found", details={"product_id": product_id})
    return product


def apply_stock_delta(
    product: Product,
    quantity,
    movement: StockMovement,
    *,
    unit_cost_cents: int | None = None,
) -> Decimal:
    """
    Apply ``movement.sign * quantity`` to the product's stock.

    Returns the new on-hand quantity. Raises the validator's
    BusinessRuleViolation when the quantity breaks the unit's policy.
    """
    delta = validate_quantity(quantity, product.measurement_unit)
    current = product.quantity if product.quantity is not None else Decimal("0")
    product.quantity = (current + movement.sign * delta).quantize(QUANTITY_PLACES)

    if movement is StockMovement.PURCHASE and unit_cost_cents is not None:
        product.cost_price_cents = unit_cost_cents

    logger.debug(
        "Stock delta applied",
        extra={
            "product_id": product.id,
            "movement": movement.value,
            "delta": str(movement.sign * delta),
            "on_hand": str(product.quantity),
        },
    )
    return product.quantity


def current_quantity(product_id: int) -> Decimal | None:
    """Re-read the stored quantity straight from the database."""
    db.session.flush()
    value = db.session.query(Product.quantity).filter(Product.id == product_id).scalar()
    return Decimal(value) if value is not None else None


def stock_anomalies(product: Product, quantity: Decimal | None = None) -> list[str]:
    """Data-quality signals for a product's on-hand quantity."""
    value = product.quantity if quantity is None else quantity
    anomalies: list[str] = []
    if value is None:
        return anomalies
    if value < 0:
        anomalies.append("negative_stock")
    unit = product.measurement_unit
    if unit is not None and not unit.allows_decimals and not is_integral(value):
        anomalies.append("fractional_stock_for_integral_unit")
    return anomalies
