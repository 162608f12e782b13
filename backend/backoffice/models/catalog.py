from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from backoffice.time_utils import to_utc_z


class MeasurementUnit(db.Model):
    """
    Unit a product is bought and sold in (unit, kilogram, litre...).

    allows_decimals decides whether fractional quantities are valid for every
    product using the unit. A unit referenced by live products cannot be
    tombstoned.
    """
    __tablename__ = "measurement_units"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), nullable=False, unique=True)
    abbreviation = db.Column(db.String(10), nullable=False)
    allows_decimals = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<MeasurementUnit id={self.id} name={self.name!r} allows_decimals={self.allows_decimals}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "abbreviation": self.abbreviation,
            "allows_decimals": self.allows_decimals,
            "is_active": self.is_active,
            "deleted_at": to_utc_z(self.deleted_at),
        }


class TenderType(db.Model):
    """Form of payment backing a till movement (cash, card, transfer...)."""
    __tablename__ = "tender_types"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False, unique=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "is_active": self.is_active}


class Product(db.Model):
    """
    Product master data with its on-hand quantity.

    quantity is written only through the stock ledger. When the product's
    measurement unit disallows decimals the quantity stays integral.
    Category, brand and tax type belong to reference-data collaborators and
    are kept as plain ids.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)

    cost_price_cents = db.Column(db.Integer, nullable=False, default=0)
    sale_price_cents = db.Column(db.Integer, nullable=False, default=0)
    quantity = db.Column(db.Numeric(14, 3, asdecimal=True), nullable=False, default=Decimal("0"))

    category_id = db.Column(db.Integer, nullable=True)
    brand_id = db.Column(db.Integer, nullable=True)
    tax_type_id = db.Column(db.Integer, nullable=True)
    measurement_unit_id = db.Column(
        db.Integer, db.ForeignKey("measurement_units.id"), nullable=True, index=True
    )

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    measurement_unit = db.relationship("MeasurementUnit", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "cost_price_cents": self.cost_price_cents,
            "sale_price_cents": self.sale_price_cents,
            "quantity": str(self.quantity) if self.quantity is not None else None,
            "category_id": self.category_id,
            "brand_id": self.brand_id,
            "tax_type_id": self.tax_type_id,
            "measurement_unit_id": self.measurement_unit_id,
            "version_id": self.version_id,
            "deleted_at": to_utc_z(self.deleted_at),
        }
