"""
Input parsing for ledger operations.

Payloads arrive as plain dicts (JSON bodies, CLI arguments, tests) and are
turned into frozen request records before any database access. Every
problem is collected per field and raised as a single ValidationError whose
``details`` maps field paths (``lines.0.quantity``) to messages.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

from flask import current_app, has_app_context

from .errors import ValidationError
from .time_utils import parse_business_date, today

# Maximum amount: 9,999,999.99 (999,999,999 cents)
MAX_AMOUNT_CENTS = 999_999_999
DEFAULT_MAX_QUANTITY = Decimal("999999.999")
MAX_NUMBER_LENGTH = 64
MAX_DESCRIPTOR_LENGTH = 255


@dataclass(frozen=True)
class LineInput:
    product_id: int
    unit_amount_cents: int
    # Raw value; numeric and decimal policy are checked against the product's unit
    quantity: Any


@dataclass(frozen=True)
class TenderInput:
    amount_cents: int
    tender_type_id: int
    descriptor: str | None = None


@dataclass(frozen=True)
class TransactionRequest:
    person_id: int
    transaction_date: date
    number: str
    till_id: int
    lines: tuple[LineInput, ...]
    tenders: tuple[TenderInput, ...]


@dataclass(frozen=True)
class RefundLineInput:
    product_id: int
    quantity: Any


@dataclass(frozen=True)
class RefundRequest:
    sale_id: int
    refund_date: date
    lines: tuple[RefundLineInput, ...]
    note: str | None = None


class _Collector:
    def __init__(self):
        self.errors: dict[str, str] = {}

    def add(self, field: str, message: str) -> None:
        self.errors.setdefault(field, message)

    def raise_if_any(self, message: str) -> None:
        if self.errors:
            raise ValidationError(message, details=dict(self.errors))


def _max_quantity() -> Decimal:
    if has_app_context():
        return Decimal(str(current_app.config.get("MAX_LINE_QUANTITY", DEFAULT_MAX_QUANTITY)))
    return DEFAULT_MAX_QUANTITY


def _coerce_int(value: Any, field: str, errors: _Collector, *, positive: bool = True) -> int | None:
    """Strict integer coercion; rejects floats, decimals and scientific notation."""
    if value is None:
        errors.add(field, f"{field} is required")
        return None
    result: int | None = None
    if isinstance(value, bool):
        result = None
    elif isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if stripped and "e" not in stripped.lower() and "." not in stripped:
            try:
                result = int(stripped)
            except ValueError:
                result = None
    if result is None:
        errors.add(field, f"{field} must be an integer")
        return None
    if positive and result <= 0:
        errors.add(field, f"{field} must be > 0")
        return None
    return result


def _coerce_amount(value: Any, field: str, errors: _Collector) -> int | None:
    amount = _coerce_int(value, field, errors)
    if amount is not None and amount > MAX_AMOUNT_CENTS:
        errors.add(field, f"{field} cannot exceed {MAX_AMOUNT_CENTS}")
        return None
    return amount


def _check_quantity_shape(value: Any, field: str, errors: _Collector) -> Any:
    """
    Reject quantities that are not numbers at all or are out of range.

    Positivity and the decimal policy are left to the quantity validator,
    which knows the product's measurement unit.
    """
    if value is None or isinstance(value, bool):
        errors.add(field, f"{field} must be a number")
        return None
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation:
        errors.add(field, f"{field} must be a number")
        return None
    if not number.is_finite():
        errors.add(field, f"{field} must be a number")
        return None
    if number > _max_quantity():
        errors.add(field, f"{field} cannot exceed {_max_quantity()}")
        return None
    return value


def _coerce_date(value: Any, field: str, errors: _Collector) -> date | None:
    try:
        parsed = parse_business_date(value)
    except ValueError:
        errors.add(field, f"{field} must be an ISO-8601 date")
        return None
    if parsed is None:
        errors.add(field, f"{field} is required")
        return None
    if parsed > today():
        errors.add(field, f"{field} cannot be in the future")
        return None
    return parsed


def _coerce_text(value: Any, field: str, errors: _Collector, *, max_length: int, required: bool) -> str | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            errors.add(field, f"{field} cannot be blank")
        return None
    text = str(value).strip()
    if len(text) > max_length:
        errors.add(field, f"{field} exceeds max length {max_length}")
        return None
    return text


def _require_list(payload: Mapping, field: str, errors: _Collector) -> list:
    items = payload.get(field)
    if not isinstance(items, (list, tuple)) or not items:
        errors.add(field, f"{field} must contain at least one entry")
        return []
    return list(items)


def parse_transaction_request(payload: Mapping | None) -> TransactionRequest:
    """
    Validate + normalize a sale/purchase payload.

    Expected keys: person_id, transaction_date, number, till_id,
    lines[{product_id, unit_amount_cents, quantity}],
    tenders[{amount_cents, tender_type_id, descriptor?}].
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, Mapping):
        raise ValidationError("Invalid JSON payload")

    errors = _Collector()
    person_id = _coerce_int(payload.get("person_id"), "person_id", errors)
    till_id = _coerce_int(payload.get("till_id"), "till_id", errors)
    number = _coerce_text(payload.get("number"), "number", errors, max_length=MAX_NUMBER_LENGTH, required=True)
    transaction_date = _coerce_date(payload.get("transaction_date"), "transaction_date", errors)

    lines: list[LineInput] = []
    seen_products: set[int] = set()
    for idx, raw in enumerate(_require_list(payload, "lines", errors)):
        prefix = f"lines.{idx}"
        if not isinstance(raw, Mapping):
            errors.add(prefix, "line must be an object")
            continue
        product_id = _coerce_int(raw.get("product_id"), f"{prefix}.product_id", errors)
        unit_amount = _coerce_amount(raw.get("unit_amount_cents"), f"{prefix}.unit_amount_cents", errors)
        quantity = _check_quantity_shape(raw.get("quantity"), f"{prefix}.quantity", errors)
        if product_id is not None:
            if product_id in seen_products:
                errors.add(f"{prefix}.product_id", f"product {product_id} appears on more than one line")
            seen_products.add(product_id)
        if product_id is not None and unit_amount is not None and quantity is not None:
            lines.append(LineInput(product_id=product_id, unit_amount_cents=unit_amount, quantity=quantity))

    tenders: list[TenderInput] = []
    for idx, raw in enumerate(_require_list(payload, "tenders", errors)):
        prefix = f"tenders.{idx}"
        if not isinstance(raw, Mapping):
            errors.add(prefix, "tender must be an object")
            continue
        amount = _coerce_amount(raw.get("amount_cents"), f"{prefix}.amount_cents", errors)
        tender_type_id = _coerce_int(raw.get("tender_type_id"), f"{prefix}.tender_type_id", errors)
        descriptor = _coerce_text(
            raw.get("descriptor"), f"{prefix}.descriptor", errors,
            max_length=MAX_DESCRIPTOR_LENGTH, required=False,
        )
        if amount is not None and tender_type_id is not None:
            tenders.append(TenderInput(amount_cents=amount, tender_type_id=tender_type_id, descriptor=descriptor))

    errors.raise_if_any("Invalid transaction payload")
    return TransactionRequest(
        person_id=person_id,
        transaction_date=transaction_date,
        number=number,
        till_id=till_id,
        lines=tuple(lines),
        tenders=tuple(tenders),
    )


def parse_refund_request(payload: Mapping | None) -> RefundRequest:
    """Validate a refund payload: sale_id, refund_date, lines[{product_id, quantity}], note?"""
    if payload is None:
        payload = {}
    if not isinstance(payload, Mapping):
        raise ValidationError("Invalid JSON payload")

    errors = _Collector()
    sale_id = _coerce_int(payload.get("sale_id"), "sale_id", errors)
    refund_date = _coerce_date(payload.get("refund_date"), "refund_date", errors)
    note = _coerce_text(payload.get("note"), "note", errors, max_length=MAX_DESCRIPTOR_LENGTH, required=False)

    lines: list[RefundLineInput] = []
    seen_products: set[int] = set()
    for idx, raw in enumerate(_require_list(payload, "lines", errors)):
        prefix = f"lines.{idx}"
        if not isinstance(raw, Mapping):
            errors.add(prefix, "line must be an object")
            continue
        product_id = _coerce_int(raw.get("product_id"), f"{prefix}.product_id", errors)
        quantity = _check_quantity_shape(raw.get("quantity"), f"{prefix}.quantity", errors)
        if product_id is not None:
            if product_id in seen_products:
                errors.add(f"{prefix}.product_id", f"product {product_id} appears on more than one line")
            seen_products.add(product_id)
        if product_id is not None and quantity is not None:
            lines.append(RefundLineInput(product_id=product_id, quantity=quantity))

    errors.raise_if_any("Invalid refund payload")
    return RefundRequest(sale_id=sale_id, refund_date=refund_date, lines=tuple(lines), note=note)


def parse_quantity_field(value: Any, field: str = "quantity") -> Any:
    """Shape check for a single quantity (refund line updates)."""
    errors = _Collector()
    quantity = _check_quantity_shape(value, field, errors)
    errors.raise_if_any("Invalid quantity")
    return quantity
