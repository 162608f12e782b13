# Overview: Header/line store for sales and purchases; the only writer of their rows.

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum

from sqlalchemy.exc import IntegrityError

from ..errors import IntegrityConflict
from ..extensions import db
from ..models import Product, Purchase, PurchaseLine, Sale, SaleLine
from ..models.commerce import STATUS_ACTIVE
from ..models.tills import DIRECTION_INFLOW, DIRECTION_OUTFLOW, REFERENCE_PURCHASE, REFERENCE_SALE
from .concurrency import lock_for_update
from .stock_ledger import StockMovement


class TransactionKind(str, Enum):
    """
    The two structurally identical transaction variants.

    Each kind fixes its tables, stock movements and till direction, so the
    orchestrators never branch on strings.
    """

    SALE = "sale"
    PURCHASE = "purchase"

    @property
    def header_model(self):
        return Sale if self is TransactionKind.SALE else Purchase

    @property
    def line_model(self):
        return SaleLine if self is TransactionKind.SALE else PurchaseLine

    @property
    def line_fk(self):
        return SaleLine.sale_id if self is TransactionKind.SALE else PurchaseLine.purchase_id

    @property
    def stock_movement(self) -> StockMovement:
        return StockMovement.SALE if self is TransactionKind.SALE else StockMovement.PURCHASE

    @property
    def reversal_movement(self) -> StockMovement:
        return StockMovement.SALE_REVERSAL if self is TransactionKind.SALE else StockMovement.PURCHASE_REVERSAL

    @property
    def till_direction(self) -> str:
        return DIRECTION_INFLOW if self is TransactionKind.SALE else DIRECTION_OUTFLOW

    @property
    def reference_type(self) -> str:
        return REFERENCE_SALE if self is TransactionKind.SALE else REFERENCE_PURCHASE

    @property
    def label(self) -> str:
        return "Sale" if self is TransactionKind.SALE else "Purchase"


@dataclass(frozen=True)
class PreparedLine:
    """A request line resolved against its product and validated."""

    product: Product
    unit_amount_cents: int
    quantity: Decimal

    @property
    def line_total_cents(self) -> int:
        return line_total_cents(self.unit_amount_cents, self.quantity)


def line_total_cents(unit_amount_cents: int, quantity: Decimal) -> int:
    """unit amount x quantity, nearest-cent rounding (half-up)."""
    return int((Decimal(unit_amount_cents) * quantity).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def get_header(kind: TransactionKind, header_id: int, *, lock: bool = False):
    """Header by id, tombstoned or not; None when absent."""
    model = kind.header_model
    query = db.session.query(model).filter(model.id == header_id)
    if lock:
        query = lock_for_update(query)
    return query.first()


def create_header(kind: TransactionKind, *, person_id: int, number: str, transaction_date: date):
    header = kind.header_model(
        person_id=person_id,
        number=number,
        transaction_date=transaction_date,
        status=STATUS_ACTIVE,
    )
    db.session.add(header)
    try:
        db.session.flush()
    except IntegrityError as exc:
        raise IntegrityConflict(
            f"{kind.label} number {number!r} is already in use",
            details={"number": number},
        ) from exc
    return header


def add_lines(kind: TransactionKind, header, lines: list[PreparedLine]) -> list:
    created = []
    for prepared in lines:
        line = kind.line_model(
            product_id=prepared.product.id,
            unit_amount_cents=prepared.unit_amount_cents,
            quantity=prepared.quantity,
            line_total_cents=prepared.line_total_cents,
        )
        if kind is TransactionKind.SALE:
            line.sale_id = header.id
        else:
            line.purchase_id = header.id
        db.session.add(line)
        created.append(line)
    db.session.flush()
    return created


def live_lines(kind: TransactionKind, header_id: int) -> list:
    model = kind.line_model
    return (
        db.session.query(model)
        .filter(kind.line_fk == header_id, model.deleted_at.is_(None))
        .order_by(model.id)
        .all()
    )


def lines_for(kind: TransactionKind, header_id: int) -> list:
    """Every line of the header, tombstoned ones included."""
    model = kind.line_model
    return db.session.query(model).filter(kind.line_fk == header_id).order_by(model.id).all()


def count_live_lines(kind: TransactionKind, header_id: int) -> int:
    db.session.flush()
    model = kind.line_model
    return db.session.query(model).filter(kind.line_fk == header_id, model.deleted_at.is_(None)).count()


def tombstone_lines(kind: TransactionKind, header_id: int, when: datetime) -> int:
    lines = live_lines(kind, header_id)
    for line in lines:
        line.deleted_at = when
    db.session.flush()
    return len(lines)


def tombstone_header(header, when: datetime) -> None:
    header.deleted_at = when
    db.session.flush()


def is_header_tombstoned(kind: TransactionKind, header_id: int) -> bool:
    """Re-read the tombstone straight from the database."""
    db.session.flush()
    model = kind.header_model
    deleted_at = db.session.query(model.deleted_at).filter(model.id == header_id).scalar()
    return deleted_at is not None
