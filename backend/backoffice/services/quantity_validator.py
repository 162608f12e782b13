"""
Quantity validation against a measurement unit's decimal policy.

Pure functions: no database access, no side effects. Every stock mutation
(creation, reversal, refund create/update/delete) passes through
validate_quantity first.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

from ..errors import BusinessRuleViolation, decimals_not_allowed, invalid_quantity

# Matches the Numeric(14, 3) scale of every stored quantity
QUANTITY_SCALE = Decimal("0.001")


def to_decimal(quantity: Any) -> Decimal | None:
    """Best-effort numeric conversion; None when the value is not a finite number."""
    if quantity is None or isinstance(quantity, bool):
        return None
    if isinstance(quantity, Decimal):
        value = quantity
    elif isinstance(quantity, int):
        value = Decimal(quantity)
    elif isinstance(quantity, float):
        value = Decimal(str(quantity))
    elif isinstance(quantity, str):
        try:
            value = Decimal(quantity.strip())
        except InvalidOperation:
            return None
    else:
        return None
    if not value.is_finite():
        return None
    return value


def is_integral(value: Decimal) -> bool:
    return value == value.to_integral_value()


def quantity_error(quantity: Any, unit) -> BusinessRuleViolation | None:
    """
    Return the rule the quantity breaks for ``unit``, or None when it is valid.

    ``unit`` is a MeasurementUnit or None; products without a unit only get
    the numeric/positive check.
    """
    value = to_decimal(quantity)
    if value is None:
        return invalid_quantity(
            "Quantity must be a valid number",
            details={"quantity": str(quantity)},
        )
    if value <= 0:
        return invalid_quantity(
            "Quantity must be a positive number",
            details={"quantity": str(value)},
        )
    if value.normalize().as_tuple().exponent < QUANTITY_SCALE.as_tuple().exponent:
        return invalid_quantity(
            "Quantity cannot have more than 3 decimal places",
            details={"quantity": str(value)},
        )
    if unit is not None and not unit.allows_decimals and not is_integral(value):
        return decimals_not_allowed(
            f"Unit {unit.name} does not allow decimal quantities",
            details={"quantity": str(value), "measurement_unit_id": unit.id, "unit": unit.name},
        )
    return None


def validate_quantity(quantity: Any, unit) -> Decimal:
    """Return ``quantity`` as a Decimal, or raise the BusinessRuleViolation it triggers."""
    error = quantity_error(quantity, unit)
    if error is not None:
        raise error
    return to_decimal(quantity)
