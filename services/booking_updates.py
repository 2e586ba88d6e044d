"""
Answer saving and the post-save booking lifecycle.

save_qa_pairs() upserts a submitted batch in one transaction.
apply_submission() then disseminates the answers, marks the booking complete,
records amendments and queues the follow-up background tasks.
"""
import copy
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session

from core.config import logger
from models.booking import Booking, BookingStatus
from models.template import QaPair, Question, Section, SECTION_MODEL_BOOKING
from services.completion import is_booking_complete
from services.dissemination import disseminate_changes
from services.notifications import NOTIFICATIONS_FLAG, generate_notifications
from utils.form_validation import validate_answer

ORIGIN_ADMIN = "admin"


@dataclass
class SubmissionResult:
    complete: bool = False
    booking_amended: bool = False
    invalid_answers: list = field(default_factory=list)
    dissemination: Optional[dict] = None
    tasks: list = field(default_factory=list)

    def to_dict(self):
        return {
            "complete": self.complete,
            "bookingAmended": self.booking_amended,
            "invalid_answers": self.invalid_answers,
            "dissemination": self.dissemination,
            "tasks": self.tasks,
        }


def _field(record: Any, name: str, default=None):
    if isinstance(record, dict):
        return record.get(name, default)
    return getattr(record, name, default)


def serialize_answer(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (list, dict)):
        return json.dumps(value)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _resolve_question_id(db: Session, section: Section, record) -> Optional[int]:
    question_id = _field(record, "question_id")
    if question_id:
        return question_id
    key = _field(record, "question_key")
    if not key or section.orig_section_id is None:
        return None
    question = (
        db.query(Question)
        .filter(Question.section_id == section.orig_section_id, Question.question_key == key)
        .first()
    )
    return question.id if question else None


def _find_existing(db: Session, section_id: int, question_id: Optional[int], question: Optional[str]) -> Optional[QaPair]:
    query = db.query(QaPair).filter(QaPair.section_id == section_id)
    if question_id:
        found = query.filter(QaPair.question_id == question_id).first()
        if found is not None:
            return found
    if question:
        return query.filter(QaPair.question == question).first()
    return None


def save_qa_pairs(db: Session, booking: Booking, records: list) -> list:
    """Upsert answers by id, then by (section, question). Equipment answers are managed elsewhere."""
    sections = {
        s.id: s
        for s in db.query(Section).filter(Section.model_type == SECTION_MODEL_BOOKING, Section.model_id == booking.id).all()
    }
    saved = []
    try:
        for record in records:
            if _field(record, "question_type") == "equipment":
                continue
            section = sections.get(_field(record, "section_id"))
            if section is None:
                raise ValueError(f"section {_field(record, 'section_id')} does not belong to booking {booking.uuid}")

            question_id = _resolve_question_id(db, section, record)
            answer = serialize_answer(_field(record, "answer"))

            if _field(record, "delete"):
                existing = _find_existing(db, section.id, question_id, _field(record, "question"))
                if existing is not None:
                    db.delete(existing)
                continue

            qa = db.get(QaPair, _field(record, "id")) if _field(record, "id") else None
            if qa is not None and qa.section_id != section.id:
                qa = None
            if qa is None:
                qa = _find_existing(db, section.id, question_id, _field(record, "question"))
            if qa is None:
                qa = QaPair(section_id=section.id)
                db.add(qa)

            qa.question_id = question_id or qa.question_id
            qa.question = _field(record, "question") or qa.question
            qa.question_type = _field(record, "question_type") or qa.question_type
            qa.label = _field(record, "label") or qa.label
            qa.answer = answer
            qa.updated_at = datetime.utcnow()
            saved.append(qa)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info(f"[save-qa] booking {booking.uuid}: saved {len(saved)} answer(s)")
    return saved


def record_amendments(booking: Booking, records: list, origin: Optional[str] = None) -> bool:
    """Append a metainfo amendment entry for each dirty answer that changed."""
    changed = [
        r for r in records
        if _field(r, "dirty") and serialize_answer(_field(r, "answer")) != serialize_answer(_field(r, "old_answer"))
    ]
    if not changed:
        return False

    meta = copy.deepcopy(booking.get_metainfo())
    amendments = list(meta.get("amendments") or [])
    now = datetime.utcnow().isoformat()
    for r in changed:
        entry = {
            "approved": origin == ORIGIN_ADMIN,
            "approved_by": ORIGIN_ADMIN if origin == ORIGIN_ADMIN else None,
            "approval_date": now if origin == ORIGIN_ADMIN else None,
            "created_at": now,
            "qa_pair": {
                "id": _field(r, "id"),
                "question": _field(r, "question"),
                "question_type": _field(r, "question_type"),
                "answer": serialize_answer(_field(r, "answer")),
                "old_answer": serialize_answer(_field(r, "old_answer")),
            },
        }
        # one pending entry per question, latest change wins
        amendments = [
            a for a in amendments
            if a.get("approved") or a.get("qa_pair", {}).get("question") != entry["qa_pair"]["question"]
        ]
        amendments.append(entry)
    meta["amendments"] = amendments
    booking.metainfo = meta
    return True


def pending_tasks(booking: Booking, notify_amendment: bool = False) -> list:
    """Background tasks still owed to a complete booking."""
    tasks = ["sendBookingAmendedEmails"] if notify_amendment else []
    if not booking.flag("triggered_emails.on_submit"):
        tasks.append("triggerEmailsOnSubmit")
    if (
        booking.status_name == BookingStatus.BOOKING_CONFIRMED.value
        and not booking.flag("triggered_emails.on_booking_confirmed")
    ):
        tasks.append("triggerEmailsOnBookingConfirmed")
    tasks.append("generatePDFExport")
    return tasks


def apply_submission(db: Session, booking: Booking, records: list, saved: list, origin: Optional[str] = None,
                     dispatch: Optional[Callable[[str, dict], Any]] = None) -> SubmissionResult:
    result = SubmissionResult()
    for r in records:
        ok, err = validate_answer(_field(r, "question_type"), _field(r, "answer"))
        if not ok:
            result.invalid_answers.append({"question": _field(r, "question"), "error": err})
    if result.invalid_answers:
        logger.info(f"[save-qa] booking {booking.uuid}: {len(result.invalid_answers)} answer(s) failed validation")

    db.refresh(booking)
    result.dissemination = disseminate_changes(db, booking, saved).to_dict()

    db.refresh(booking)
    complete = is_booking_complete(db, booking.uuid)
    submitted = [r for r in records if _field(r, "submit") is not None]
    all_submitted = all(_field(r, "submit") for r in submitted)
    if not (complete and (booking.complete or all_submitted)):
        return result

    result.complete = True
    if not booking.complete:
        booking.complete = True
        logger.info(f"[save-qa] booking {booking.uuid} marked complete")

    previous_status = booking.status_name
    result.booking_amended = record_amendments(booking, records, origin)
    if result.booking_amended and origin != ORIGIN_ADMIN:
        booking.set_status(BookingStatus.BOOKING_AMENDED.value, "Booking Amended", "orange")
    db.commit()

    if not booking.flag(NOTIFICATIONS_FLAG):
        generate_notifications(db, booking)

    if dispatch is not None:
        notify_amendment = (
            result.booking_amended
            and origin != ORIGIN_ADMIN
            and previous_status == BookingStatus.BOOKING_CONFIRMED.value
        )
        for task_type in pending_tasks(booking, notify_amendment):
            dispatch(task_type, {"booking_id": booking.id})
            result.tasks.append(task_type)
    return result
