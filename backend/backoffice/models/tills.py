from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z, to_iso_date

TILL_STATUS_OPEN = "open"
TILL_STATUS_CLOSED = "closed"

DIRECTION_INFLOW = "inflow"
DIRECTION_OUTFLOW = "outflow"

REFERENCE_SALE = "sale"
REFERENCE_PURCHASE = "purchase"
REFERENCE_DEPOSIT = "deposit"
REFERENCE_WITHDRAWAL = "withdrawal"


class Till(db.Model):
    """
    Physical cash drawer.

    There is no stored balance: the balance is SUM(amount_cents) over the
    till's live movements, recomputed on every read.
    """
    __tablename__ = "tills"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    person_id = db.Column(db.Integer, db.ForeignKey("persons.id"), nullable=True, index=True)

    status = db.Column(db.String(16), nullable=False, default=TILL_STATUS_OPEN, index=True)
    till_type = db.Column(db.String(32), nullable=False, default="cash")

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    person = db.relationship("Person", backref=db.backref("tills", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "person_id": self.person_id,
            "status": self.status,
            "till_type": self.till_type,
            "version_id": self.version_id,
            "deleted_at": to_utc_z(self.deleted_at),
        }


class TillMovement(db.Model):
    """
    Single cash inflow/outflow settling a transaction.

    amount_cents is signed: positive for inflow, negative for outflow.
    (reference_type, reference_id) points at the sale, purchase or manual
    cash operation the movement belongs to.
    """
    __tablename__ = "till_movements"
    __table_args__ = (
        db.CheckConstraint(
            "(direction = 'inflow' AND amount_cents > 0) OR (direction = 'outflow' AND amount_cents < 0)",
            name="ck_till_movements_signed_amount",
        ),
        db.Index("ix_till_movements_reference", "reference_type", "reference_id"),
        db.Index("ix_till_movements_till_live", "till_id", "deleted_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    till_id = db.Column(db.Integer, db.ForeignKey("tills.id"), nullable=False, index=True)

    reference_type = db.Column(db.String(16), nullable=False)
    reference_id = db.Column(db.Integer, nullable=True)
    description = db.Column(db.String(255), nullable=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    direction = db.Column(db.String(8), nullable=False)
    movement_date = db.Column(db.Date, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    till = db.relationship("Till", backref=db.backref("movements", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "till_id": self.till_id,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "description": self.description,
            "amount_cents": self.amount_cents,
            "direction": self.direction,
            "movement_date": to_iso_date(self.movement_date),
            "deleted_at": to_utc_z(self.deleted_at),
        }


class PaymentProof(db.Model):
    """Tender breakdown (cash, card...) backing one till movement."""
    __tablename__ = "payment_proofs"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    till_movement_id = db.Column(db.Integer, db.ForeignKey("till_movements.id"), nullable=False, index=True)
    tender_type_id = db.Column(db.Integer, db.ForeignKey("tender_types.id"), nullable=False)
    descriptor = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    till_movement = db.relationship("TillMovement", backref=db.backref("payment_proofs", lazy=True))
    tender_type = db.relationship("TenderType")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "till_movement_id": self.till_movement_id,
            "tender_type_id": self.tender_type_id,
            "descriptor": self.descriptor,
            "deleted_at": to_utc_z(self.deleted_at),
        }
