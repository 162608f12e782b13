"""Commerce ledger schema: catalog, persons, tills, sales, purchases, refunds

Revision ID: 20261018_commerce_ledger
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_commerce_ledger"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    ]


def _header_table(name: str):
    op.create_table(
        name,
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("number", sa.String(64), nullable=False),
        sa.Column("transaction_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
        sa.Column("person_id", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["person_id"], ["persons.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("number"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table(name, schema=None) as batch_op:
        batch_op.create_index(f"ix_{name}_transaction_date", ["transaction_date"], unique=False)
        batch_op.create_index(f"ix_{name}_status", ["status"], unique=False)
        batch_op.create_index(f"ix_{name}_person_id", ["person_id"], unique=False)
        batch_op.create_index(f"ix_{name}_deleted_at", ["deleted_at"], unique=False)


def _line_table(name: str, parent_fk: str, parent_table: str):
    op.create_table(
        name,
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(parent_fk, sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("unit_amount_cents", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Numeric(14, 3), nullable=False),
        sa.Column("line_total_cents", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint([parent_fk], [f"{parent_table}.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table(name, schema=None) as batch_op:
        batch_op.create_index(f"ix_{name}_{parent_fk}", [parent_fk], unique=False)
        batch_op.create_index(f"ix_{name}_product_id", ["product_id"], unique=False)


def upgrade():
    op.create_table(
        "measurement_units",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(50), nullable=False),
        sa.Column("abbreviation", sa.String(10), nullable=False),
        sa.Column("allows_decimals", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "tender_types",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(64), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "persons",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("document_number", sa.String(32), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("persons", schema=None) as batch_op:
        batch_op.create_index("ix_persons_document_number", ["document_number"], unique=False)

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("cost_price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("sale_price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("quantity", sa.Numeric(14, 3), nullable=False, server_default=sa.text("0")),
        sa.Column("category_id", sa.Integer(), nullable=True),
        sa.Column("brand_id", sa.Integer(), nullable=True),
        sa.Column("tax_type_id", sa.Integer(), nullable=True),
        sa.Column("measurement_unit_id", sa.Integer(), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["measurement_unit_id"], ["measurement_units.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.create_index("ix_products_name", ["name"], unique=False)
        batch_op.create_index("ix_products_measurement_unit_id", ["measurement_unit_id"], unique=False)

    op.create_table(
        "tills",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("person_id", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="open"),
        sa.Column("till_type", sa.String(32), nullable=False, server_default="cash"),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.ForeignKeyConstraint(["person_id"], ["persons.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("tills", schema=None) as batch_op:
        batch_op.create_index("ix_tills_person_id", ["person_id"], unique=False)
        batch_op.create_index("ix_tills_status", ["status"], unique=False)

    op.create_table(
        "till_movements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("till_id", sa.Integer(), nullable=False),
        sa.Column("reference_type", sa.String(16), nullable=False),
        sa.Column("reference_id", sa.Integer(), nullable=True),
        sa.Column("description", sa.String(255), nullable=True),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("direction", sa.String(8), nullable=False),
        sa.Column("movement_date", sa.Date(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint(
            "(direction = 'inflow' AND amount_cents > 0) OR (direction = 'outflow' AND amount_cents < 0)",
            name="ck_till_movements_signed_amount",
        ),
        sa.ForeignKeyConstraint(["till_id"], ["tills.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("till_movements", schema=None) as batch_op:
        batch_op.create_index("ix_till_movements_till_id", ["till_id"], unique=False)
        batch_op.create_index("ix_till_movements_reference", ["reference_type", "reference_id"], unique=False)
        batch_op.create_index("ix_till_movements_till_live", ["till_id", "deleted_at"], unique=False)

    op.create_table(
        "payment_proofs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("till_movement_id", sa.Integer(), nullable=False),
        sa.Column("tender_type_id", sa.Integer(), nullable=False),
        sa.Column("descriptor", sa.String(255), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["till_movement_id"], ["till_movements.id"]),
        sa.ForeignKeyConstraint(["tender_type_id"], ["tender_types.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("payment_proofs", schema=None) as batch_op:
        batch_op.create_index("ix_payment_proofs_till_movement_id", ["till_movement_id"], unique=False)

    _header_table("sales")
    _line_table("sale_lines", "sale_id", "sales")
    _header_table("purchases")
    _line_table("purchase_lines", "purchase_id", "purchases")

    op.create_table(
        "refunds",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("sale_id", sa.Integer(), nullable=False),
        sa.Column("refund_date", sa.Date(), nullable=False),
        sa.Column("note", sa.String(255), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["sale_id"], ["sales.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("refunds", schema=None) as batch_op:
        batch_op.create_index("ix_refunds_sale_id", ["sale_id"], unique=False)

    op.create_table(
        "refund_lines",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("refund_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Numeric(14, 3), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["refund_id"], ["refunds.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("refund_lines", schema=None) as batch_op:
        batch_op.create_index("ix_refund_lines_refund_id", ["refund_id"], unique=False)
        batch_op.create_index("ix_refund_lines_product_id", ["product_id"], unique=False)


def downgrade():
    for table in (
        "refund_lines",
        "refunds",
        "purchase_lines",
        "purchases",
        "sale_lines",
        "sales",
        "payment_proofs",
        "till_movements",
        "tills",
        "products",
        "persons",
        "tender_types",
        "measurement_units",
    ):
        op.drop_table(table)
