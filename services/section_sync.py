"""
Booking section synchronization.

Adds a booking section for every schema section of the booking's template
that has not been cloned yet. Strictly additive: existing booking sections
and their answers are never touched.
"""
from sqlalchemy.orm import Session

from core.config import logger
from core.errors import SyncFailure
from models.booking import Booking
from models.template import Section, SECTION_MODEL_BOOKING
from services.schema import load_template, resolve_booking_template, iter_schema_sections


def _existing_origins(db: Session, booking_id: int) -> set:
    rows = (
        db.query(Section.orig_section_id)
        .filter(Section.model_type == SECTION_MODEL_BOOKING, Section.model_id == booking_id)
        .all()
    )
    return {r[0] for r in rows if r[0] is not None}


def _clone_missing_sections(db: Session, booking: Booking, template) -> list:
    # Read inside the caller's transaction, after the booking row is locked
    existing = _existing_origins(db, booking.id)
    created = []
    for schema_section in iter_schema_sections(template):
        if schema_section.id in existing:
            continue
        section = Section(
            model_type=SECTION_MODEL_BOOKING,
            model_id=booking.id,
            orig_section_id=schema_section.id,
            label=schema_section.label,
            order=schema_section.order,
            type=schema_section.type,
        )
        db.add(section)
        existing.add(schema_section.id)
        created.append(section)
    if created:
        db.flush()
    return created


def _lock_booking(db: Session, booking_id: int) -> Booking:
    return db.query(Booking).filter(Booking.id == booking_id).with_for_update().populate_existing().first()


def sync_sections(db: Session, booking_id: int) -> bool:
    """True on success or no-op; False on failure (rolled back and logged, never raised)."""
    try:
        booking = _lock_booking(db, booking_id)
        if booking is None:
            raise SyncFailure(f"booking {booking_id} not found")
        if not booking.sections:
            db.rollback()
            return True

        template = resolve_booking_template(db, booking)
        created = _clone_missing_sections(db, booking, template)
        db.commit()
        if created:
            logger.info(f"[sync] booking {booking.uuid}: added {len(created)} section(s) from template {template.id}")
        return True
    except Exception as ex:
        db.rollback()
        logger.warning(f"[sync] section sync failed for booking {booking_id}: {ex}")
        return False


def create_booking_sections(db: Session, booking: Booking, template_id: int) -> list:
    """Clone every schema section of a template into a booking that has none yet."""
    template = load_template(db, template_id)
    locked = _lock_booking(db, booking.id)
    try:
        created = _clone_missing_sections(db, locked, template)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info(f"[sync] booking {locked.uuid}: created {len(created)} section(s) from template {template_id}")
    return created
