# Overview: Reference data for the ledger: measurement units and tender types.

from __future__ import annotations

import logging

from ..errors import MEASUREMENT_UNIT_IN_USE, BusinessRuleViolation, NotFoundError, already_deleted
from ..extensions import db
from ..models import MeasurementUnit, Product, TenderType
from ..time_utils import utcnow
from .concurrency import lock_for_update, unit_of_work
from .results import CommerceResult, run_operation

logger = logging.getLogger(__name__)

# (name, abbreviation, allows_decimals)
DEFAULT_MEASUREMENT_UNITS = (
    ("Unit", "u", False),
    ("Kilogram", "kg", True),
    ("Litre", "l", True),
)

DEFAULT_TENDER_TYPES = ("Cash", "Card", "Transfer")


def _delete_measurement_unit(unit_id: int) -> dict:
    with unit_of_work():
        unit = lock_for_update(db.session.query(MeasurementUnit).filter(MeasurementUnit.id == unit_id)).first()
        if unit is None:
            raise NotFoundError(f"Measurement unit {unit_id} not found", details={"measurement_unit_id": unit_id})
        if unit.deleted_at is not None:
            raise already_deleted(
                f"Measurement unit {unit_id} has already been deleted",
                details={"measurement_unit_id": unit_id},
            )

        in_use = db.session.query(Product).filter(
            Product.measurement_unit_id == unit_id,
            Product.deleted_at.is_(None),
        ).count()
        if in_use:
            raise BusinessRuleViolation(
                f"Measurement unit {unit.name} is used by {in_use} product(s)",
                details={"measurement_unit_id": unit_id, "products": in_use},
                kind=MEASUREMENT_UNIT_IN_USE,
            )

        unit.deleted_at = utcnow()
        unit.is_active = False

    logger.info("Measurement unit deleted", extra={"measurement_unit_id": unit_id})
    return {"id": unit_id}


def delete_measurement_unit(unit_id: int) -> CommerceResult:
    """Tombstone a unit; refused while live products still use it."""
    return run_operation("delete_measurement_unit", _delete_measurement_unit, unit_id)


def seed_reference_data() -> dict:
    """
    Create the default measurement units and tender types.

    Idempotent: existing rows (matched by name) are left untouched.
    Returns how many of each were created.
    """
    created = {"measurement_units": 0, "tender_types": 0}
    with unit_of_work():
        for name, abbreviation, allows_decimals in DEFAULT_MEASUREMENT_UNITS:
            if db.session.query(MeasurementUnit).filter_by(name=name).first() is None:
                db.session.add(MeasurementUnit(name=name, abbreviation=abbreviation, allows_decimals=allows_decimals))
                created["measurement_units"] += 1

        for name in DEFAULT_TENDER_TYPES:
            if db.session.query(TenderType).filter_by(name=name).first() is None:
                db.session.add(TenderType(name=name))
                created["tender_types"] += 1

    if any(created.values()):
        logger.info("Reference data seeded", extra=created)
    return created
