# Overview: Service-layer operations for tills; movements, payment proofs and derived balances.

"""
Cash ledger invariants:

- A till's balance is SUM(amount_cents) over its live movements. It is never
  stored; every read aggregates inside the caller's unit of work.
- Movement amounts are signed: inflow > 0, outflow < 0.
- Sales and purchases write one movement per tender and one payment proof
  per movement; both are tombstoned together when the transaction is
  deleted.
- Manual deposits/withdrawals fund or drain a till outside any sale or
  purchase (reference_type deposit/withdrawal, no reference id).
"""

from __future__ import annotations

import logging
from datetime import date, datetime

from sqlalchemy import func

from ..errors import (
    INSUFFICIENT_TILL_FUNDS,
    TILL_CLOSED,
    BusinessRuleViolation,
    NotFoundError,
    ValidationError,
)
from ..extensions import db
from ..models import PaymentProof, TenderType, Till, TillMovement
from ..models.tills import (
    DIRECTION_INFLOW,
    DIRECTION_OUTFLOW,
    REFERENCE_DEPOSIT,
    REFERENCE_WITHDRAWAL,
    TILL_STATUS_OPEN,
)
from ..time_utils import today
from .concurrency import lock_for_update, unit_of_work
from .results import CommerceResult, run_operation

logger = logging.getLogger(__name__)


def load_till(till_id: int, *, lock: bool = False, require_open: bool = True) -> Till:
    """
    Fetch a live till, optionally FOR UPDATE.

    The lock on the till row serializes every writer of its movement
    aggregate, so a balance read after locking stays valid until commit.
    """
    query = db.session.query(Till).filter_by(id=till_id)
    if lock:
        query = lock_for_update(query)
    till = query.first()
    if till is None or till.deleted_at is not None:
        raise NotFoundError(f"Till {till_id} not found", details={"till_id": till_id})
    if require_open and till.status != TILL_STATUS_OPEN:
        raise BusinessRuleViolation(
            f"Till {till_id} is {till.status}",
            details={"till_id": till_id, "status": till.status},
            kind=TILL_CLOSED,
        )
    return till


def load_tender_type(tender_type_id: int) -> TenderType:
    tender_type = db.session.query(TenderType).filter_by(id=tender_type_id).first()
    if tender_type is None or tender_type.deleted_at is not None or not tender_type.is_active:
        raise NotFoundError(
            f"Tender type {tender_type_id} not found",
            details={"tender_type_id": tender_type_id},
        )
    return tender_type


def till_balance(till_id: int) -> int:
    """Current balance in cents: aggregate of the till's live movements."""
    db.session.flush()
    total = db.session.query(
        func.coalesce(func.sum(TillMovement.amount_cents), 0)
    ).filter(
        TillMovement.till_id == till_id,
        TillMovement.deleted_at.is_(None),
    ).scalar()
    return int(total or 0)


def record_movement(
    *,
    till_id: int,
    direction: str,
    amount_cents: int,
    reference_type: str,
    reference_id: int | None,
    description: str | None,
    movement_date: date,
) -> TillMovement:
    """Append a movement; ``amount_cents`` is the unsigned magnitude, the sign follows ``direction``."""
    if amount_cents <= 0:
        raise ValueError("amount_cents must be positive")
    if direction not in (DIRECTION_INFLOW, DIRECTION_OUTFLOW):
        raise ValueError(f"invalid direction {direction!r}")

    signed = amount_cents if direction == DIRECTION_INFLOW else -amount_cents
    movement = TillMovement(
        till_id=till_id,
        reference_type=reference_type,
        reference_id=reference_id,
        description=description,
        amount_cents=signed,
        direction=direction,
        movement_date=movement_date,
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def record_payment_proof(movement: TillMovement, tender_type: TenderType, descriptor: str | None = None) -> PaymentProof:
    """Attach the tender backing ``movement``; descriptor defaults to the tender name."""
    proof = PaymentProof(
        till_movement_id=movement.id,
        tender_type_id=tender_type.id,
        descriptor=descriptor or tender_type.name,
    )
    db.session.add(proof)
    db.session.flush()
    return proof


def live_movements_for(reference_type: str, reference_id: int) -> list[TillMovement]:
    return (
        db.session.query(TillMovement)
        .filter(
            TillMovement.reference_type == reference_type,
            TillMovement.reference_id == reference_id,
            TillMovement.deleted_at.is_(None),
        )
        .order_by(TillMovement.id)
        .all()
    )


def movements_for(reference_type: str, reference_id: int) -> list[TillMovement]:
    """Every movement of the reference, tombstoned ones included."""
    return (
        db.session.query(TillMovement)
        .filter(
            TillMovement.reference_type == reference_type,
            TillMovement.reference_id == reference_id,
        )
        .order_by(TillMovement.id)
        .all()
    )


def live_proofs_for(reference_type: str, reference_id: int) -> list[PaymentProof]:
    """Live proofs under any movement (live or not) of the reference."""
    return (
        db.session.query(PaymentProof)
        .join(TillMovement, PaymentProof.till_movement_id == TillMovement.id)
        .filter(
            TillMovement.reference_type == reference_type,
            TillMovement.reference_id == reference_id,
            PaymentProof.deleted_at.is_(None),
        )
        .order_by(PaymentProof.id)
        .all()
    )


def count_live_cash_entries(reference_type: str, reference_id: int) -> tuple[int, int]:
    """(live movements, live payment proofs) referencing the transaction."""
    db.session.flush()
    return (
        len(live_movements_for(reference_type, reference_id)),
        len(live_proofs_for(reference_type, reference_id)),
    )


def tombstone_cash_entries(reference_type: str, reference_id: int, when: datetime) -> tuple[int, int]:
    """
    Tombstone every payment proof of the reference, then its movements.

    Returns (proofs, movements) tombstoned.
    """
    proofs = live_proofs_for(reference_type, reference_id)
    for proof in proofs:
        proof.deleted_at = when
    db.session.flush()

    movements = live_movements_for(reference_type, reference_id)
    for movement in movements:
        movement.deleted_at = when
    db.session.flush()
    return len(proofs), len(movements)


# =============================================================================
# MANUAL CASH OPERATIONS
# =============================================================================

def _check_amount(amount_cents) -> None:
    if not isinstance(amount_cents, int) or isinstance(amount_cents, bool) or amount_cents <= 0:
        raise ValidationError(
            "amount_cents must be a positive integer",
            details={"amount_cents": "amount_cents must be > 0"},
        )


def _deposit(till_id: int, amount_cents: int, description: str | None, movement_date: date | None) -> dict:
    _check_amount(amount_cents)
    with unit_of_work():
        till = load_till(till_id, lock=True)
        movement = record_movement(
            till_id=till.id,
            direction=DIRECTION_INFLOW,
            amount_cents=amount_cents,
            reference_type=REFERENCE_DEPOSIT,
            reference_id=None,
            description=description or "Cash deposit",
            movement_date=movement_date or today(),
        )
        result = {"id": movement.id, "till_id": till.id, "balance_cents": till_balance(till.id)}
    logger.info("Cash deposited", extra={"till_id": till_id, "amount_cents": amount_cents})
    return result


def _withdraw(till_id: int, amount_cents: int, description: str | None, movement_date: date | None) -> dict:
    _check_amount(amount_cents)
    with unit_of_work():
        till = load_till(till_id, lock=True)
        balance = till_balance(till.id)
        if balance < amount_cents:
            raise BusinessRuleViolation(
                "Not enough cash in the till for this withdrawal",
                details={"till_id": till_id, "balance_cents": balance, "requested_cents": amount_cents},
                kind=INSUFFICIENT_TILL_FUNDS,
            )
        movement = record_movement(
            till_id=till.id,
            direction=DIRECTION_OUTFLOW,
            amount_cents=amount_cents,
            reference_type=REFERENCE_WITHDRAWAL,
            reference_id=None,
            description=description or "Cash withdrawal",
            movement_date=movement_date or today(),
        )
        result = {"id": movement.id, "till_id": till.id, "balance_cents": till_balance(till.id)}
    logger.info("Cash withdrawn", extra={"till_id": till_id, "amount_cents": amount_cents})
    return result


def _balance(till_id: int) -> dict:
    till = load_till(till_id, require_open=False)
    return {"till_id": till.id, "status": till.status, "balance_cents": till_balance(till.id)}


def deposit_cash(till_id: int, amount_cents: int, description: str | None = None, movement_date: date | None = None) -> CommerceResult:
    return run_operation("deposit_cash", _deposit, till_id, amount_cents, description, movement_date)


def withdraw_cash(till_id: int, amount_cents: int, description: str | None = None, movement_date: date | None = None) -> CommerceResult:
    return run_operation("withdraw_cash", _withdraw, till_id, amount_cents, description, movement_date)


def get_till_balance(till_id: int) -> CommerceResult:
    return run_operation("till_balance", _balance, till_id)
