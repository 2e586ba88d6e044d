"""Tests for answer saving and amendment tracking."""

import pytest

from models.booking import BookingStatus
from models.template import QaPair
from services.booking_updates import pending_tasks, record_amendments, save_qa_pairs, serialize_answer
from utils.question_keys import QUESTION_KEYS


def _qa_rows(form):
    return form.db.query(QaPair).order_by(QaPair.id).all()


class TestSaveQaPairs:
    """Upserts keyed by id, then by question within the section."""

    def test_create_then_update_same_question(self, form):
        section_id = form.booking_section(form.q["adults"]).id
        record = {"section_id": section_id, "question_id": form.q["adults"].id, "question": "Adults", "question_type": "number", "answer": 2}

        save_qa_pairs(form.db, form.booking, [record])
        save_qa_pairs(form.db, form.booking, [dict(record, answer=3)])

        [row] = _qa_rows(form)
        assert row.answer == "3"
        assert row.question_key == QUESTION_KEYS.ADULTS_COUNT

    def test_question_resolved_from_key(self, form):
        section_id = form.booking_section(form.q["funder"]).id
        record = {"section_id": section_id, "question_key": QUESTION_KEYS.FUNDING_SOURCE, "question": "Funding", "answer": "NDIS"}

        [saved] = save_qa_pairs(form.db, form.booking, [record])

        assert saved.question_id == form.q["funder"].id

    def test_delete_and_equipment_records(self, form):
        qa = form.answer("pets", "Yes")
        records = [
            {"section_id": qa.section_id, "question_id": form.q["pets"].id, "question": qa.question, "delete": True},
            {"section_id": qa.section_id, "question": "Equipment", "question_type": "equipment", "answer": [{"id": 1}]},
        ]

        assert save_qa_pairs(form.db, form.booking, records) == []
        assert _qa_rows(form) == []

    def test_foreign_section_rolls_back_the_batch(self, form):
        good = {"section_id": form.booking_section(form.q["adults"]).id, "question": "Adults", "answer": "2"}
        bad = {"section_id": form.stay.id + 1000, "question": "Nope", "answer": "x"}

        with pytest.raises(ValueError):
            save_qa_pairs(form.db, form.booking, [good, bad])
        assert _qa_rows(form) == []

    def test_serialize_answer(self):
        assert serialize_answer(["a"]) == '["a"]'
        assert serialize_answer(True) == "true"
        assert serialize_answer(4) == "4"
        assert serialize_answer(None) is None


class TestAmendments:
    """Dirty answers that changed are recorded on the booking."""

    def test_unchanged_answers_are_ignored(self, form):
        assert record_amendments(form.booking, [{"question": "Adults", "answer": "2", "old_answer": 2, "dirty": True}]) is False
        assert record_amendments(form.booking, [{"question": "Adults", "answer": "3", "old_answer": "2"}]) is False

    def test_latest_pending_change_wins(self, form):
        record_amendments(form.booking, [{"question": "Adults", "answer": "3", "old_answer": "2", "dirty": True}])
        record_amendments(form.booking, [{"question": "Adults", "answer": "4", "old_answer": "3", "dirty": True}])

        [entry] = form.booking.get_metainfo()["amendments"]
        assert entry["qa_pair"]["answer"] == "4"
        assert entry["approved"] is False

    def test_admin_changes_are_approved(self, form):
        record_amendments(form.booking, [{"question": "Adults", "answer": "3", "old_answer": "2", "dirty": True}], origin="admin")
        [entry] = form.booking.get_metainfo()["amendments"]
        assert entry["approved"] is True
        assert entry["approved_by"] == "admin"


class TestPendingTasks:
    """Tasks owed to a complete booking depend on its flags and status."""

    def test_new_booking(self, form):
        assert pending_tasks(form.booking) == ["triggerEmailsOnSubmit", "generatePDFExport"]

    def test_confirmed_booking_after_submit_emails(self, form):
        form.booking.set_flag("triggered_emails.on_submit")
        form.booking.set_status(BookingStatus.BOOKING_CONFIRMED.value)
        assert pending_tasks(form.booking, notify_amendment=True) == [
            "sendBookingAmendedEmails",
            "triggerEmailsOnBookingConfirmed",
            "generatePDFExport",
        ]
