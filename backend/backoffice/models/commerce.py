from __future__ import annotations

from decimal import Decimal

from sqlalchemy.orm import declared_attr

from ..extensions import db
from backoffice.time_utils import to_utc_z, to_iso_date

STATUS_ACTIVE = "active"
STATUS_CANCELLED = "cancelled"
STATUS_REFUNDED = "refunded"

# Headers in these states keep their side effects and cannot be deleted
UNDELETABLE_STATUSES = (STATUS_CANCELLED, STATUS_REFUNDED)


class TransactionHeaderMixin:
    """
    Columns shared by Sale and Purchase headers.

    number is unique across live and tombstoned headers of the same kind;
    a tombstoned header keeps its number reserved for the audit trail.
    """

    id = db.Column(db.Integer, primary_key=True)
    number = db.Column(db.String(64), nullable=False, unique=True)
    transaction_date = db.Column(db.Date, nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default=STATUS_ACTIVE, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    @declared_attr
    def person_id(cls):
        return db.Column(db.Integer, db.ForeignKey("persons.id"), nullable=False, index=True)

    @declared_attr
    def person(cls):
        return db.relationship("Person")

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "person_id": self.person_id,
            "number": self.number,
            "transaction_date": to_iso_date(self.transaction_date),
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "deleted_at": to_utc_z(self.deleted_at),
        }


class TransactionLineMixin:
    """Columns shared by SaleLine and PurchaseLine."""

    id = db.Column(db.Integer, primary_key=True)
    unit_amount_cents = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Numeric(14, 3, asdecimal=True), nullable=False, default=Decimal("0"))
    # unit_amount_cents * quantity, half-up to the cent
    line_total_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    @declared_attr
    def product_id(cls):
        return db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    @declared_attr
    def product(cls):
        return db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "unit_amount_cents": self.unit_amount_cents,
            "quantity": str(self.quantity),
            "line_total_cents": self.line_total_cents,
            "deleted_at": to_utc_z(self.deleted_at),
        }


class Sale(TransactionHeaderMixin, db.Model):
    """Sale header. Stock leaves, cash enters the till."""
    __tablename__ = "sales"
    __table_args__ = {"sqlite_autoincrement": True}


class SaleLine(TransactionLineMixin, db.Model):
    __tablename__ = "sale_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)

    sale = db.relationship("Sale", backref=db.backref("lines", lazy=True))

    @property
    def header_id(self) -> int:
        return self.sale_id


class Purchase(TransactionHeaderMixin, db.Model):
    """Purchase header. Stock enters, cash leaves the till."""
    __tablename__ = "purchases"
    __table_args__ = {"sqlite_autoincrement": True}


class PurchaseLine(TransactionLineMixin, db.Model):
    __tablename__ = "purchase_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, index=True)

    purchase = db.relationship("Purchase", backref=db.backref("lines", lazy=True))

    @property
    def header_id(self) -> int:
        return self.purchase_id
