"""
Sales & purchases: creation and compensating deletion.

WHY: A sale or purchase is not a single row. It moves stock, writes a header
and its lines, and puts cash in (or takes it out of) a till with a payment
proof per tender. Creating one must do all of that or nothing; deleting one
must undo every side effect or nothing.

CREATION ORDER (one unit of work):
1. Resolve counterparty, till (locked), tender types, products (locked);
   validate quantities; sales need enough stock
2. Total = sum of line totals
3. Purchases need enough cash in the till
4. Tenders must cover the total (overpayment allowed, change not modelled)
5. Stock ledger deltas (purchases also set the product cost price)
6. Header + lines
7. One till movement + one payment proof per tender
8. Commit

DELETION ORDER (one unit of work): validate without mutating, then run the
compensation steps stock -> cash ledger -> lines/header, checking each
step's postcondition before the next one starts.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Mapping

from flask import current_app

from ..errors import (
    HAS_REFUNDS,
    INSUFFICIENT_PAYMENT,
    INSUFFICIENT_STOCK,
    INSUFFICIENT_TILL_FUNDS,
    INVALID_STATUS,
    BusinessRuleViolation,
    DanglingReference,
    IncompleteTransaction,
    NotFoundError,
    ReversalIncomplete,
    already_deleted,
)
from ..extensions import db
from ..models import Person, Product, Refund, Till
from ..models.commerce import UNDELETABLE_STATUSES
from ..time_utils import today, utcnow
from ..validation import TransactionRequest, parse_transaction_request
from . import cash_ledger, stock_ledger, transaction_store
from .concurrency import unit_of_work
from .quantity_validator import quantity_error, to_decimal
from .results import CommerceResult, run_operation
from .transaction_store import PreparedLine, TransactionKind

logger = logging.getLogger(__name__)


# =============================================================================
# CREATION
# =============================================================================

def _require_person(person_id: int) -> Person:
    person = db.session.query(Person).filter_by(id=person_id).first()
    if person is None or person.deleted_at is not None:
        raise NotFoundError(f"Person {person_id} not found", details={"person_id": person_id})
    return person


def _prepare_lines(kind: TransactionKind, request: TransactionRequest) -> list[PreparedLine]:
    """Resolve and lock every product, validate quantities and (for sales) stock."""
    prepared: list[PreparedLine] = []
    insufficient = []
    for idx, line in enumerate(request.lines):
        product = stock_ledger.load_product(line.product_id, lock=True)

        error = quantity_error(line.quantity, product.measurement_unit)
        if error is not None:
            error.details.update({"field": f"lines.{idx}.quantity", "product_id": product.id})
            raise error
        quantity = to_decimal(line.quantity)

        if kind is TransactionKind.SALE and product.quantity < quantity:
            insufficient.append({
                "product_id": product.id,
                "requested_quantity": str(quantity),
                "on_hand": str(product.quantity),
            })

        prepared.append(PreparedLine(
            product=product,
            unit_amount_cents=line.unit_amount_cents,
            quantity=quantity,
        ))

    if insufficient:
        raise BusinessRuleViolation(
            "Insufficient stock to register the sale",
            details={"items": insufficient},
            kind=INSUFFICIENT_STOCK,
        )
    return prepared


def _create_transaction(kind: TransactionKind, payload: TransactionRequest | Mapping) -> dict:
    request = payload if isinstance(payload, TransactionRequest) else parse_transaction_request(payload)

    with unit_of_work():
        _require_person(request.person_id)
        till = cash_ledger.load_till(request.till_id, lock=True)
        tender_types = [cash_ledger.load_tender_type(t.tender_type_id) for t in request.tenders]

        # 1. products, quantities, stock
        prepared = _prepare_lines(kind, request)

        # 2. total
        total_cents = sum(p.line_total_cents for p in prepared)

        # 3. till funds (purchases pay out of the till)
        if kind is TransactionKind.PURCHASE:
            balance = cash_ledger.till_balance(till.id)
            if balance < total_cents:
                raise BusinessRuleViolation(
                    "Not enough cash in the till to pay for the purchase",
                    details={"till_id": till.id, "balance_cents": balance, "total_cents": total_cents},
                    kind=INSUFFICIENT_TILL_FUNDS,
                )

        # 4. payment coverage
        tendered_cents = sum(t.amount_cents for t in request.tenders)
        if tendered_cents < total_cents:
            raise BusinessRuleViolation(
                "Payments do not cover the transaction total",
                details={"total_cents": total_cents, "tendered_cents": tendered_cents},
                kind=INSUFFICIENT_PAYMENT,
            )

        # 5. stock
        for p in prepared:
            stock_ledger.apply_stock_delta(
                p.product,
                p.quantity,
                kind.stock_movement,
                unit_cost_cents=p.unit_amount_cents,
            )

        # 6. header + lines
        header = transaction_store.create_header(
            kind,
            person_id=request.person_id,
            number=request.number,
            transaction_date=request.transaction_date,
        )
        transaction_store.add_lines(kind, header, prepared)

        # 7. cash ledger
        for tender, tender_type in zip(request.tenders, tender_types):
            movement = cash_ledger.record_movement(
                till_id=till.id,
                direction=kind.till_direction,
                amount_cents=tender.amount_cents,
                reference_type=kind.reference_type,
                reference_id=header.id,
                description=f"{kind.label} {header.number}",
                movement_date=request.transaction_date,
            )
            cash_ledger.record_payment_proof(movement, tender_type, tender.descriptor)

        result = {
            "id": header.id,
            "number": header.number,
            "date": header.transaction_date.isoformat(),
        }

    logger.info(
        "%s %s created",
        kind.label,
        result["number"],
        extra={
            "transaction_kind": kind.value,
            "transaction_id": result["id"],
            "total_cents": total_cents,
            "tendered_cents": tendered_cents,
            "line_count": len(prepared),
        },
    )
    return result


# =============================================================================
# DELETION
# =============================================================================

@dataclass
class ReversalContext:
    """State shared by the compensation steps of one deletion."""

    kind: TransactionKind
    header: object
    lines: list
    movements: list
    now: datetime
    notes: dict = field(default_factory=dict)

    @property
    def header_id(self) -> int:
        return self.header.id


@dataclass(frozen=True)
class CompensationStep:
    name: str
    apply: Callable[[ReversalContext], None]
    verify: Callable[[ReversalContext], None]


def _reverse_stock(ctx: ReversalContext) -> None:
    for line in ctx.lines:
        product = stock_ledger.load_product(line.product_id, lock=True)
        stock_ledger.apply_stock_delta(product, line.quantity, ctx.kind.reversal_movement)


def _verify_stock(ctx: ReversalContext) -> None:
    for line in ctx.lines:
        quantity = stock_ledger.current_quantity(line.product_id)
        if quantity is None:
            raise ReversalIncomplete(
                f"Product {line.product_id} vanished during stock reversal",
                details={"product_id": line.product_id, "transaction_id": ctx.header_id},
            )
        product = db.session.get(Product, line.product_id)
        for anomaly in stock_ledger.stock_anomalies(product, quantity):
            logger.warning(
                "Stock anomaly after %s reversal: %s",
                ctx.kind.value,
                anomaly,
                extra={
                    "transaction_kind": ctx.kind.value,
                    "transaction_id": ctx.header_id,
                    "product_id": line.product_id,
                    "on_hand": str(quantity),
                    "anomaly": anomaly,
                },
            )


def _reverse_cash_ledger(ctx: ReversalContext) -> None:
    proofs, movements = cash_ledger.tombstone_cash_entries(ctx.kind.reference_type, ctx.header_id, ctx.now)
    ctx.notes["proofs_removed"] = proofs
    ctx.notes["movements_removed"] = movements


def _verify_cash_ledger(ctx: ReversalContext) -> None:
    movements, proofs = cash_ledger.count_live_cash_entries(ctx.kind.reference_type, ctx.header_id)
    if movements or proofs:
        raise ReversalIncomplete(
            f"{ctx.kind.label} {ctx.header_id} still has live till entries after reversal",
            details={
                "transaction_id": ctx.header_id,
                "remaining_movements": movements,
                "remaining_payment_proofs": proofs,
            },
        )


def _retire_transaction(ctx: ReversalContext) -> None:
    ctx.notes["lines_removed"] = transaction_store.tombstone_lines(ctx.kind, ctx.header_id, ctx.now)
    transaction_store.tombstone_header(ctx.header, ctx.now)


def _verify_retired(ctx: ReversalContext) -> None:
    remaining = transaction_store.count_live_lines(ctx.kind, ctx.header_id)
    tombstoned = transaction_store.is_header_tombstoned(ctx.kind, ctx.header_id)
    if remaining or not tombstoned:
        raise ReversalIncomplete(
            f"{ctx.kind.label} {ctx.header_id} was not fully retired",
            details={
                "transaction_id": ctx.header_id,
                "remaining_lines": remaining,
                "header_tombstoned": tombstoned,
            },
        )


COMPENSATION_STEPS: tuple[CompensationStep, ...] = (
    CompensationStep("reverse_stock", _reverse_stock, _verify_stock),
    CompensationStep("reverse_cash_ledger", _reverse_cash_ledger, _verify_cash_ledger),
    CompensationStep("retire_transaction", _retire_transaction, _verify_retired),
)


def _validate_for_deletion(kind: TransactionKind, header_id: int) -> ReversalContext:
    """All deletion preconditions; raises before anything is mutated."""
    header = transaction_store.get_header(kind, header_id, lock=True)
    if header is None:
        raise NotFoundError(f"{kind.label} {header_id} not found", details={"transaction_id": header_id})

    if header.deleted_at is not None:
        raise already_deleted(
            f"{kind.label} {header_id} has already been deleted",
            details={"transaction_id": header_id},
        )

    if header.status in UNDELETABLE_STATUSES:
        raise BusinessRuleViolation(
            f"Cannot delete a {kind.value} with status {header.status}",
            details={"transaction_id": header_id, "status": header.status},
            kind=INVALID_STATUS,
        )

    if kind is TransactionKind.SALE:
        live_refunds = db.session.query(Refund).filter(
            Refund.sale_id == header_id, Refund.deleted_at.is_(None)
        ).count()
        if live_refunds:
            raise BusinessRuleViolation(
                f"Sale {header_id} has refunds; delete them first",
                details={"transaction_id": header_id, "refunds": live_refunds},
                kind=HAS_REFUNDS,
            )

    lines = transaction_store.live_lines(kind, header_id)
    movements = cash_ledger.live_movements_for(kind.reference_type, header_id)
    if not lines or not movements:
        raise IncompleteTransaction(
            f"{kind.label} {header_id} is missing its lines or till movements",
            details={"transaction_id": header_id, "lines": len(lines), "till_movements": len(movements)},
        )

    dangling_products = sorted({
        line.product_id for line in lines
        if line.product is None or line.product.deleted_at is not None
    })
    if dangling_products:
        raise DanglingReference(
            f"{kind.label} {header_id} references products that no longer exist",
            details={"transaction_id": header_id, "product_ids": dangling_products},
        )

    till_ids = {m.till_id for m in movements}
    live_tills = {
        t.id for t in db.session.query(Till).filter(Till.id.in_(till_ids), Till.deleted_at.is_(None)).all()
    }
    dangling_tills = sorted(till_ids - live_tills)
    if dangling_tills:
        raise DanglingReference(
            f"{kind.label} {header_id} references tills that no longer exist",
            details={"transaction_id": header_id, "till_ids": dangling_tills},
        )

    stale_days = current_app.config.get("STALE_TRANSACTION_DAYS", 30)
    age_days = (today() - header.transaction_date).days
    if age_days > stale_days:
        logger.warning(
            "Deleting a %s older than %s days",
            kind.value,
            stale_days,
            extra={"transaction_kind": kind.value, "transaction_id": header_id, "age_days": age_days},
        )

    proofs = cash_ledger.live_proofs_for(kind.reference_type, header_id)
    if not proofs:
        logger.warning(
            "Till movements without payment proofs",
            extra={"transaction_kind": kind.value, "transaction_id": header_id, "till_movements": len(movements)},
        )

    return ReversalContext(kind=kind, header=header, lines=lines, movements=movements, now=utcnow())


def _delete_transaction(kind: TransactionKind, header_id: int) -> dict:
    logger.info(
        "%s deletion initiated",
        kind.label,
        extra={"transaction_kind": kind.value, "transaction_id": header_id},
    )
    with unit_of_work():
        ctx = _validate_for_deletion(kind, header_id)
        number = ctx.header.number
        for step in COMPENSATION_STEPS:
            step.apply(ctx)
            step.verify(ctx)
            logger.debug(
                "Compensation step %s done",
                step.name,
                extra={"transaction_kind": kind.value, "transaction_id": header_id},
            )

    logger.info(
        "%s %s deleted",
        kind.label,
        number,
        extra={"transaction_kind": kind.value, "transaction_id": header_id, **ctx.notes},
    )
    return {"id": header_id}


# =============================================================================
# PUBLIC API
# =============================================================================

def create_sale(request: TransactionRequest | Mapping) -> CommerceResult:
    """Register a sale: stock out, cash into the till. Value: {id, number, date}."""
    return run_operation("create_sale", _create_transaction, TransactionKind.SALE, request)


def create_purchase(request: TransactionRequest | Mapping) -> CommerceResult:
    """Register a purchase: stock in, cash out of the till. Value: {id, number, date}."""
    return run_operation("create_purchase", _create_transaction, TransactionKind.PURCHASE, request)


def delete_sale(sale_id: int) -> CommerceResult:
    """Reverse every effect of a sale and tombstone it. Value: {id}."""
    return run_operation("delete_sale", _delete_transaction, TransactionKind.SALE, sale_id)


def delete_purchase(purchase_id: int) -> CommerceResult:
    """Reverse every effect of a purchase and tombstone it. Value: {id}."""
    return run_operation("delete_purchase", _delete_transaction, TransactionKind.PURCHASE, purchase_id)


def get_transaction(kind: TransactionKind, header_id: int) -> dict | None:
    """
    Header with its lines and till movements.

    A live header shows its live rows; a tombstoned header shows the rows
    retired with it, so the history of a deleted transaction stays readable.
    """
    header = transaction_store.get_header(kind, header_id)
    if header is None:
        return None
    if header.deleted_at is None:
        lines = transaction_store.live_lines(kind, header_id)
        movements = cash_ledger.live_movements_for(kind.reference_type, header_id)
    else:
        lines = transaction_store.lines_for(kind, header_id)
        movements = cash_ledger.movements_for(kind.reference_type, header_id)
    return {
        kind.value: header.to_dict(),
        "lines": [line.to_dict() for line in lines],
        "till_movements": [m.to_dict() for m in movements],
    }


__all__ = [
    "COMPENSATION_STEPS",
    "CompensationStep",
    "ReversalContext",
    "create_purchase",
    "create_sale",
    "delete_purchase",
    "delete_sale",
    "get_transaction",
]
