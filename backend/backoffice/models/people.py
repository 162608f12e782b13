from __future__ import annotations

from ..extensions import db


class Person(db.Model):
    """Customer, supplier or employee. Counterparty of sales and purchases, holder of tills."""
    __tablename__ = "persons"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    document_number = db.Column(db.String(32), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "document_number": self.document_number}
