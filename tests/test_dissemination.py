"""Tests for dissemination of answers into rooms, booking fields and guest documents."""

from datetime import date

from models.booking import BookingEquipment, Equipment
from services.dissemination import build_projection, disseminate_changes, relocate_uploads, DisseminationResult


def _deluxe_batch(form):
    return [
        form.answer("rooms", [{"name": "Deluxe Suite", "order": 1}], commit=False),
        form.answer("dates", "2022-12-01 - 2022-12-05", commit=False),
        form.answer("infants", "1", commit=False),
        form.answer("children", "2", commit=False),
        form.answer("adults", "3", commit=False),
        form.answer("pets", "Yes", commit=False),
        form.answer("late", "true"),
    ]


class TestDisseminateChanges:
    """Room reconciliation and booking field projection."""

    def test_deluxe_suite_scenario(self, form):
        result = disseminate_changes(form.db, form.booking, _deluxe_batch(form))

        assert result.ok
        rooms = form.rooms()
        assert len(rooms) == 1
        room = rooms[0]
        assert room.label == "Deluxe Suite"
        assert room.room_type_id == form.deluxe.id
        assert room.checkin == date(2022, 12, 1)
        assert room.checkout == date(2022, 12, 5)
        assert (room.infants, room.children, room.adults, room.pets) == (1, 2, 3, 1)
        assert room.total_guests == 7

        form.db.refresh(form.booking)
        assert form.booking.late_arrival is True
        assert form.booking.preferred_arrival_date == date(2022, 12, 1)
        assert form.booking.preferred_departure_date == date(2022, 12, 5)

    def test_resubmitting_same_batch_keeps_one_room(self, form):
        batch = _deluxe_batch(form)
        disseminate_changes(form.db, form.booking, batch)
        first = [r.to_dict() for r in form.rooms()]

        disseminate_changes(form.db, form.booking, batch)
        second = [r.to_dict() for r in form.rooms()]

        assert len(second) == 1
        assert first == second

    def test_rooms_beyond_selection_are_deleted(self, form):
        form.add_room(1, form.studio)
        form.add_room(2, form.ocean)
        form.add_room(3, form.studio)

        batch = [form.answer("rooms", [{"name": "Deluxe Suite"}, {"name": "Ocean View Room"}])]
        result = disseminate_changes(form.db, form.booking, batch)

        assert result.rooms_deleted == [3]
        assert result.rooms_written == [1, 2]
        assert [(r.order, r.label) for r in form.rooms()] == [(1, "Deluxe Suite"), (2, "Ocean View Room")]

    def test_unknown_room_type_skips_only_that_slot(self, form):
        form.add_room(2, form.studio)
        batch = [form.answer("rooms", [{"name": "Deluxe Suite"}, {"name": "Penthouse"}])]

        result = disseminate_changes(form.db, form.booking, batch)

        assert not result.ok
        assert any(f.step == "room_selection" for f in result.failures)
        rooms = form.rooms()
        assert [(r.order, r.label) for r in rooms] == [(1, "Deluxe Suite"), (2, "Standard Studio Room")]

    def test_occupancy_without_selection_updates_existing_rooms(self, form):
        form.add_room(1, form.studio, adults=1)
        batch = [form.answer("adults", "4", commit=False), form.answer("children", "1")]

        disseminate_changes(form.db, form.booking, batch)

        room = form.rooms()[0]
        assert room.adults == 4
        assert room.children == 1
        assert room.total_guests == 5
        assert room.label == "Standard Studio Room"

    def test_unparseable_dates_do_not_block_other_fields(self, form):
        form.add_room(1, form.studio)
        batch = [form.answer("dates", "sometime - later", commit=False), form.answer("adults", "2")]

        result = disseminate_changes(form.db, form.booking, batch)

        assert [f.step for f in result.failures] == ["stay_dates"]
        room = form.rooms()[0]
        assert room.adults == 2
        assert room.checkin is None

    def test_equipment_without_dates_takes_stay_dates(self, form):
        equipment = Equipment(name="Shower commode", serial_number="SC-01")
        form.db.add(equipment)
        form.db.flush()
        form.db.add(BookingEquipment(booking_id=form.booking.id, equipment_id=equipment.id))
        form.db.commit()

        disseminate_changes(form.db, form.booking, [form.answer("dates", "01/02/2025 - 06/02/2025")])

        link = form.db.query(BookingEquipment).filter(BookingEquipment.booking_id == form.booking.id).one()
        assert link.start_date == date(2025, 2, 1)
        assert link.end_date == date(2025, 2, 6)


class TestBuildProjection:
    """Projection is a pure read of the answer batch."""

    def test_dict_answers_are_accepted(self, db):
        batch = [
            {"question_key": "check-in-date-and-check-out-date", "question": "x", "answer": "2025-01-10 - 2025-01-12"},
            {"question_key": "will-you-be-bringing-an-assistance-animal-with-you-on-your-stay", "question": "y", "answer": "No"},
        ]
        projection = build_projection(db, batch)
        assert projection.slots is None
        assert projection.arrival == date(2025, 1, 10)
        assert projection.room_fields["pets"] == 0

    def test_unkeyed_rows_resolve_through_generated_key(self, db):
        batch = [{"question_key": None, "question": "Expected Arrival Time (Check In is from 2pm)", "answer": "3pm"}]
        projection = build_projection(db, batch)
        assert projection.room_fields["arrival_time"] == "3pm"


class TestRelocateUploads:
    """Guest uploads are copied once into the documents folder."""

    def test_each_file_is_copied_or_recorded(self):
        calls = []

        def fake_copy(src, dst):
            calls.append((src, dst))
            return {"a.pdf": "copied", "b.pdf": "exists", "c.pdf": "failed"}[src.rsplit("/", 1)[-1]]

        result = DisseminationResult()
        relocate_uploads(7, ["a.pdf", "b.pdf", "c.pdf"], result, copy_if_absent=fake_copy)

        assert calls[0] == ("booking_request_form/7/a.pdf", "guests/7/documents/a.pdf")
        assert result.uploads_copied == ["guests/7/documents/a.pdf"]
        assert len(result.failures) == 1
        assert result.failures[0].step == "uploads"
