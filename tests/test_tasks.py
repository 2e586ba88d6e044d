"""Tests for background booking tasks and their idempotency flags."""

from datetime import datetime, timedelta

from sqlalchemy.orm import sessionmaker

import services.tasks as tasks
from models.booking import BookingStatus
from services.tasks import DATES_OF_STAY_FLAG, PDF_EXPORT_FLAG, run_service_task
from utils.question_keys import QUESTION_KEYS


class FakeExporter:
    """Stands in for the PDF renderer and the bucket upload."""

    def __init__(self):
        self.rendered = []
        self.uploaded = []

    def render(self, template_name, data, output_path):
        self.rendered.append((template_name, data["guest_name"], output_path))

    def upload(self, local_path, key):
        self.uploaded.append(key)


def _highlights_rule(form, recipient="team@example.com"):
    return form.add_trigger("booking-highlights", [{"question": "Room Selection", "answer": None}], recipient=recipient)


class TestTriggerTasks:
    """Trigger passes set their flag only when nothing failed."""

    def test_successful_pass_sets_flag_once(self, form, mailer):
        form.answer_all_required()
        _highlights_rule(form)
        payload = {"booking_id": form.booking.id}

        status, body = run_service_task(form.db, "triggerEmailsOnSubmit", payload, send_email=mailer)
        assert status == 201
        assert body["result"]["sent"] == 1
        form.db.refresh(form.booking)
        assert form.booking.flag("triggered_emails.on_submit") is True

        status, body = run_service_task(form.db, "triggerEmailsOnSubmit", payload, send_email=mailer)
        assert status == 200
        assert body["message"] == "Emails already triggered"
        assert len(mailer.sent) == 1

    def test_failed_rule_leaves_flag_unset(self, form, mailer):
        form.answer_all_required()
        _highlights_rule(form, recipient="down@example.com")
        mailer.fail_for = {"down@example.com"}

        status, body = run_service_task(form.db, "triggerEmailsOnSubmit", {"booking_id": form.booking.id}, send_email=mailer)

        assert status == 400
        assert body["result"]["failed"] == 1
        form.db.refresh(form.booking)
        assert form.booking.flag("triggered_emails.on_submit") is False

    def test_incomplete_booking_is_not_marked(self, form, mailer):
        _highlights_rule(form)
        status, body = run_service_task(form.db, "triggerEmails", {"booking_id": form.booking.id}, send_email=mailer)
        assert status == 400
        assert body["result"] is None
        assert form.booking.flag("triggered_emails.legacy") is False

    def test_events_keep_separate_flags(self, form, mailer):
        form.answer_all_required()
        payload = {"booking_id": form.booking.id}

        run_service_task(form.db, "triggerEmailsOnSubmit", payload, send_email=mailer)
        status, _ = run_service_task(form.db, "triggerEmailsOnBookingConfirmed", payload, send_email=mailer)

        assert status == 201
        form.db.refresh(form.booking)
        assert form.booking.get_metainfo()["triggered_emails"] == {"on_submit": True, "on_booking_confirmed": True}

    def test_generic_pass_leaves_lifecycle_flags_alone(self, form, mailer):
        form.answer_all_required()
        _highlights_rule(form)
        form.add_trigger(
            "internal-recipient-foundation-stay",
            [{"question_key": QUESTION_KEYS.FUNDING_SOURCE, "answer": "private"}],
            recipient="foundation@example.com",
        )
        payload = {"booking_id": form.booking.id}

        status, _ = run_service_task(form.db, "triggerEmails", payload, send_email=mailer)
        assert status == 201
        assert mailer.templates() == ["booking-highlights"]

        status, body = run_service_task(form.db, "triggerEmailsOnSubmit", payload, send_email=mailer)
        assert status == 201
        assert body["result"]["sent"] == 2
        assert "internal-recipient-foundation-stay" in mailer.templates()

        form.db.refresh(form.booking)
        flags = form.booking.get_metainfo()["triggered_emails"]
        assert flags == {"on_submit": True, "on_booking_confirmed": False, "legacy": True}


class TestPdfExportTask:
    """Exports are throttled by the cooldown after a successful run."""

    def test_export_cooldown(self, form):
        form.answer_all_required()
        fake = FakeExporter()
        payload = {"booking_id": form.booking.id}

        status, _ = run_service_task(form.db, "generatePDFExport", payload, render=fake.render, upload=fake.upload)
        assert status == 201
        assert fake.uploaded == [f"exports/{form.booking.uuid}.pdf"]
        assert fake.rendered[0][1] == "Jamie Lee"
        assert form.booking.flag(PDF_EXPORT_FLAG) is True

        status, body = run_service_task(form.db, "generatePDFExport", payload, render=fake.render, upload=fake.upload)
        assert status == 200
        assert body["message"] == "PDF already exported, try again in some time"
        assert len(fake.uploaded) == 1

        form.booking.updated_at = datetime.utcnow() - timedelta(hours=1)
        form.db.commit()
        status, _ = run_service_task(form.db, "generatePDFExport", payload, render=fake.render, upload=fake.upload)
        assert status == 201
        assert len(fake.uploaded) == 2

    def test_incomplete_booking_is_not_exported(self, form):
        fake = FakeExporter()
        status, _ = run_service_task(form.db, "generatePDFExport", {"booking_id": form.booking.id}, render=fake.render, upload=fake.upload)
        assert status == 201
        assert fake.uploaded == []
        assert form.booking.flag(PDF_EXPORT_FLAG) is False


class TestDatesOfStayTask:
    """The reminder goes out once, and only for incomplete bookings."""

    def test_reminder_sent_once(self, form, mailer):
        form.answer("dates", "2025-03-01 - 2025-03-05")
        payload = {"booking_id": form.booking.id}

        status, _ = run_service_task(form.db, "sendDatesOfStayEmail", payload, send_email=mailer)
        assert status == 201
        [message] = mailer.sent
        assert message["recipient"] == "jamie@example.com"
        assert message["template"] == "booking-notify-date-of-stay"
        assert message["data"]["dateOfStay"] == "01/03/2025 - 05/03/2025"
        assert form.booking.flag(DATES_OF_STAY_FLAG) is True

        status, _ = run_service_task(form.db, "sendDatesOfStayEmail", payload, send_email=mailer)
        assert status == 200
        assert len(mailer.sent) == 1

    def test_complete_booking_is_skipped(self, form, mailer):
        form.answer("dates", "2025-03-01 - 2025-03-05")
        form.booking.complete = True
        form.db.commit()

        status, body = run_service_task(form.db, "sendDatesOfStayEmail", {"booking_id": form.booking.id}, send_email=mailer)

        assert status == 200
        assert body["message"] == "Booking is complete, not sending Dates of Stay Email"
        assert mailer.sent == []

    def test_missing_dates_is_an_error(self, form, mailer):
        status, _ = run_service_task(form.db, "sendDatesOfStayEmail", {"booking_id": form.booking.id}, send_email=mailer)
        assert status == 400
        assert form.booking.flag(DATES_OF_STAY_FLAG) is False


class TestOtherTasks:
    """Dispatching of the remaining task types."""

    def test_unknown_type_is_rejected(self, db):
        status, body = run_service_task(db, "reticulateSplines", {})
        assert status == 400
        assert body["success"] is False

    def test_missing_booking_is_not_found(self, db, mailer):
        status, _ = run_service_task(db, "triggerEmails", {"booking_id": 999}, send_email=mailer)
        assert status == 404

    def test_send_trigger_email(self, db, mailer):
        payload = {"recipient": "guest@example.com", "templateId": "booking-highlights", "emailData": {"guest_name": "Jamie"}}
        status, _ = run_service_task(db, "sendTriggerEmail", payload, send_email=mailer)
        assert status == 200
        assert mailer.sent[0]["data"] == {"guest_name": "Jamie"}

        status, _ = run_service_task(db, "sendTriggerEmail", {"recipient": "nobody", "templateId": "x"}, send_email=mailer)
        assert status == 400

    def test_disseminate_uses_stored_answers(self, form):
        form.answer("rooms", [{"name": "Ocean View Room"}], commit=False)
        form.answer("adults", "2")

        status, body = run_service_task(form.db, "disseminateChanges", {"booking_id": form.booking.id})

        assert status == 201
        assert body["result"]["rooms_written"] == [1]
        assert [r.label for r in form.rooms()] == ["Ocean View Room"]

    def test_amendment_emails_need_amended_status(self, form, mailer):
        payload = {"booking_id": form.booking.id}
        status, _ = run_service_task(form.db, "sendBookingAmendedEmails", payload, send_email=mailer)
        assert status == 400

        form.booking.set_status(BookingStatus.BOOKING_AMENDED.value)
        form.db.commit()
        status, _ = run_service_task(form.db, "sendBookingAmendedEmails", payload, send_email=mailer)
        assert status == 201
        assert sorted(mailer.templates()) == ["booking-amended", "booking-amended-admin"]

    def test_evaluate_email_triggers(self, form, mailer):
        form.answer("pets", "Yes")
        form.add_trigger("booking-highlights", [{"question": "Will you be bringing an assistance animal with you on your stay?", "answer": "yes"}], recipient="team@example.com")

        status, body = run_service_task(form.db, "evaluateEmailTriggers", {"booking_id": form.booking.id}, send_email=mailer)

        assert status == 200
        assert body["result"]["sent"] == 1


class TestDispatchTask:
    """Background execution with a dedicated session."""

    def test_task_runs_on_daemon_thread_with_own_session(self, engine, monkeypatch):
        seen = []

        def fake_run(db, task_type, payload):
            seen.append((task_type, payload, db.bind is engine))
            return 201, {"success": True}

        monkeypatch.setattr(tasks, "SessionLocal", sessionmaker(bind=engine))
        monkeypatch.setattr(tasks, "run_service_task", fake_run)

        thread = tasks.dispatch_task("generatePDFExport", {"booking_id": 1})
        thread.join(timeout=5)

        assert thread.daemon is True
        assert seen == [("generatePDFExport", {"booking_id": 1}, True)]

    def test_task_errors_are_contained(self, engine, monkeypatch):
        def broken(db, task_type, payload):
            raise RuntimeError("boom")

        monkeypatch.setattr(tasks, "SessionLocal", sessionmaker(bind=engine))
        monkeypatch.setattr(tasks, "run_service_task", broken)

        thread = tasks.dispatch_task("triggerEmails", {"booking_id": 1})
        thread.join(timeout=5)
        assert not thread.is_alive()
