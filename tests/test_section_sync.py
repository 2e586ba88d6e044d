"""Tests for booking section synchronization."""

from models.booking import Booking
from models.template import Section, SECTION_MODEL_BOOKING, SECTION_MODEL_PAGE
from services.section_sync import sync_sections


def _booking_origins(db, booking_id):
    rows = (
        db.query(Section.orig_section_id)
        .filter(Section.model_type == SECTION_MODEL_BOOKING, Section.model_id == booking_id)
        .all()
    )
    return sorted(r[0] for r in rows)


class TestSyncSections:
    """Additive, idempotent cloning of schema sections."""

    def test_sync_on_up_to_date_booking_changes_nothing(self, form):
        before = _booking_origins(form.db, form.booking.id)
        assert sync_sections(form.db, form.booking.id) is True
        assert _booking_origins(form.db, form.booking.id) == before

    def test_new_schema_section_is_cloned_once(self, form):
        extra = Section(model_type=SECTION_MODEL_PAGE, model_id=form.page.id, label="Dietary needs", order=3)
        form.db.add(extra)
        form.db.commit()

        assert sync_sections(form.db, form.booking.id) is True
        assert sync_sections(form.db, form.booking.id) is True

        origins = _booking_origins(form.db, form.booking.id)
        assert origins == sorted([form.stay.id, form.funding.id, extra.id])

        clone = (
            form.db.query(Section)
            .filter(Section.model_id == form.booking.id, Section.orig_section_id == extra.id)
            .one()
        )
        assert clone.model_type == SECTION_MODEL_BOOKING
        assert clone.label == "Dietary needs"
        assert clone.order == 3

    def test_existing_answers_survive_sync(self, form):
        qa = form.answer("funder", "Private")
        extra = Section(model_type=SECTION_MODEL_PAGE, model_id=form.page.id, label="Extras", order=3)
        form.db.add(extra)
        form.db.commit()

        assert sync_sections(form.db, form.booking.id) is True
        form.db.refresh(qa)
        assert qa.answer == "Private"

    def test_booking_without_sections_is_left_alone(self, form):
        other = Booking(guest_id=form.guest.id)
        form.db.add(other)
        form.db.commit()

        assert sync_sections(form.db, other.id) is True
        assert _booking_origins(form.db, other.id) == []

    def test_broken_template_chain_reports_failure(self, form):
        orphan = Booking(guest_id=form.guest.id)
        form.db.add(orphan)
        form.db.flush()
        form.db.add(Section(model_type=SECTION_MODEL_BOOKING, model_id=orphan.id, orig_section_id=9999, label="Lost"))
        form.db.commit()

        assert sync_sections(form.db, orphan.id) is False
        assert _booking_origins(form.db, orphan.id) == [9999]

    def test_unknown_booking_reports_failure(self, db):
        assert sync_sections(db, 12345) is False
